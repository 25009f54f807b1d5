import logging

from cryptography.fernet import Fernet

from connectors.crypto import TokenCipher


def test_round_trip(cipher):
    sealed = cipher.encrypt('refresh-token-123')
    assert sealed != 'refresh-token-123'
    assert cipher.decrypt(sealed) == 'refresh-token-123'


def test_each_encryption_uses_a_fresh_iv(cipher):
    assert cipher.encrypt('same') != cipher.encrypt('same')


def test_decrypt_is_best_effort(cipher, caplog):
    with caplog.at_level(logging.WARNING, logger='campaign_pulse'):
        assert cipher.decrypt('not-a-fernet-token') == ''
    assert 'Failed to decrypt' in caplog.text
    assert cipher.decrypt(None) == ''
    assert cipher.decrypt('') == ''


def test_decrypt_with_another_key_returns_empty(cipher):
    other = TokenCipher(Fernet.generate_key().decode())
    assert other.decrypt(cipher.encrypt('secret')) == ''


def test_missing_key_falls_back_to_dev_key(caplog):
    with caplog.at_level(logging.WARNING, logger='campaign_pulse'):
        cipher = TokenCipher(None)
    assert cipher.using_fallback_key
    assert 'APP_ENCRYPTION_KEY not set' in caplog.text
    assert cipher.decrypt(cipher.encrypt('x')) == 'x'


def test_invalid_key_falls_back_to_dev_key():
    cipher = TokenCipher('definitely-not-base64')
    assert cipher.using_fallback_key
    assert TokenCipher(None).decrypt(cipher.encrypt('x')) == 'x'


def test_valid_key_is_used(cipher):
    assert not cipher.using_fallback_key
