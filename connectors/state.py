"""State helpers for OAuth flows: HMAC-signed short-lived state tokens.

The start route puts a signed `state` value on the provider redirect that
encodes the shop domain and a timestamp. The callback verifies the signature
and age before storing the returned credential against that shop, so the
shop never travels through the provider as a bare, forgeable string.

The key is `AppConfig.hmac_key` (`DASHBOARD_HMAC_KEY`, else
`APP_ENCRYPTION_KEY`). Without a key, tokens are produced and accepted
unsigned (base64 only) and only their age is checked.
"""
import base64
import hashlib
import hmac
import time
from typing import Optional

from connectors.logs import get_logger

logger = get_logger('state')

DEFAULT_TTL_SECONDS = 600


def _key_bytes(key: Optional[str]) -> Optional[bytes]:
    if not key:
        return None
    return key.encode() if isinstance(key, str) else key


def make_state_token(shop_domain: str, key: Optional[str], now: Optional[float] = None) -> str:
    """Create a URL-safe state token for `shop_domain`.

    Format: base64url(payload).hexsig where payload = "shop|ts". Without a
    key only base64url(payload) is returned.
    """
    ts = int(now if now is not None else time.time())
    payload = f'{shop_domain}|{ts}'
    b64 = base64.urlsafe_b64encode(payload.encode()).decode()
    key_bytes = _key_bytes(key)
    if key_bytes:
        sig = hmac.new(key_bytes, payload.encode(), hashlib.sha256).hexdigest()
        return f'{b64}.{sig}'
    return b64


def verify_state_token(token: Optional[str], key: Optional[str], max_age_seconds: int = DEFAULT_TTL_SECONDS,
                       now: Optional[float] = None) -> Optional[str]:
    """Return the shop domain embedded in `token`, or None if it is forged, malformed or expired."""
    if not token:
        return None
    key_bytes = _key_bytes(key)
    try:
        if key_bytes:
            if '.' not in token:
                return None
            b64payload, sig = token.rsplit('.', 1)
            payload = base64.urlsafe_b64decode(b64payload.encode()).decode()
            expected = hmac.new(key_bytes, payload.encode(), hashlib.sha256).hexdigest()
            if not hmac.compare_digest(expected, sig):
                logger.warning('Rejected OAuth state with a bad signature.')
                return None
        else:
            payload = base64.urlsafe_b64decode(token.split('.', 1)[0].encode()).decode()

        shop_domain, ts_s = payload.rsplit('|', 1)
        ts = int(ts_s)
    except ValueError:
        # bad base64, bad utf-8 or no timestamp
        return None

    current = now if now is not None else time.time()
    if int(current) - ts > max_age_seconds:
        logger.info('Rejected expired OAuth state for %s.', shop_domain)
        return None
    return shop_domain or None
