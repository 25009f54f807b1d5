"""Per-shop, per-platform connection records and their encrypted credentials.

`ConnectionStore` implements the operations the rest of the app uses
(`is_connected`, `set_connected`, `save_google_auth`, `save_meta_auth`, ...)
on top of two primitives, `get_connection` and `put_connection`, which the
storage backends provide:

* `InMemoryConnectionStore` for tests and mock-connection mode.
* `JsonFileConnectionStore`, a JSON document at `<data_dir>/connections.json`
  shaped `{shop_domain: {platform: record}}`.

Tokens are encrypted with the injected `TokenCipher` on the way in and
returned decrypted on the way out. Records are never deleted; disconnecting
only flips `status`. Concurrent writes are last-write-wins.
"""
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from connectors.crypto import TokenCipher
from connectors.logs import get_logger
from connectors.models import ConnectionRecord, ConnectionStatus, GoogleAuth, MetaAuth, Platform

logger = get_logger('connection_store')


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionStore(ABC):
    def __init__(self, cipher: TokenCipher):
        self.cipher = cipher

    @abstractmethod
    def get_connection(self, platform, shop_domain: str) -> Optional[ConnectionRecord]:
        """Stored record for (shop, platform), tokens still encrypted."""

    @abstractmethod
    def put_connection(self, record: ConnectionRecord) -> None:
        """Insert or replace the record for (record.shop_domain, record.platform)."""

    @abstractmethod
    def list_connections(self, shop_domain: str) -> List[ConnectionRecord]:
        pass

    def _get_or_create(self, platform, shop_domain: str) -> ConnectionRecord:
        record = self.get_connection(platform, shop_domain)
        if record is None:
            record = ConnectionRecord(shop_domain=shop_domain, platform=Platform(platform))
        return record

    def is_connected(self, platform, shop_domain: Optional[str]) -> bool:
        if not shop_domain:
            return False
        record = self.get_connection(platform, shop_domain)
        return bool(record and record.is_connected)

    def set_connected(self, platform, connected: bool, shop_domain: Optional[str]) -> None:
        if not shop_domain:
            return
        record = self._get_or_create(platform, shop_domain)
        status = ConnectionStatus.CONNECTED if connected else ConnectionStatus.DISCONNECTED
        self.put_connection(record.model_copy(update={'status': status, 'updated_at': _now()}))
        logger.info('Marked %s %s for %s.', platform, status.value, shop_domain)

    def save_google_auth(self, shop_domain: Optional[str], refresh_token: str, email: Optional[str] = None,
                         manager_id: Optional[str] = None, manager_name: Optional[str] = None,
                         selected_external_id: Optional[str] = None, selected_name: Optional[str] = None,
                         currency_code: Optional[str] = None) -> None:
        if not shop_domain:
            return
        record = self._get_or_create(Platform.GOOGLE, shop_domain)
        auth = GoogleAuth(
            refresh_token=self.cipher.encrypt(refresh_token),
            email=email or None,
            manager_id=manager_id or None,
            manager_name=manager_name or None,
            selected_external_id=selected_external_id or None,
            selected_name=selected_name or None,
            currency_code=currency_code or None,
        )
        self.put_connection(record.model_copy(update={
            'google': auth,
            'status': ConnectionStatus.CONNECTED,
            'updated_at': _now(),
        }))
        logger.info('Stored Google credentials for %s.', shop_domain)

    def save_meta_auth(self, shop_domain: Optional[str], long_lived_token: str,
                       meta_account_id: Optional[str] = None, meta_ad_id: Optional[str] = None,
                       meta_ad_name: Optional[str] = None) -> None:
        if not shop_domain:
            return
        record = self._get_or_create(Platform.META, shop_domain)
        auth = MetaAuth(
            long_lived_token=self.cipher.encrypt(long_lived_token),
            meta_account_id=meta_account_id or None,
            meta_ad_id=meta_ad_id or None,
            meta_ad_name=meta_ad_name or None,
        )
        self.put_connection(record.model_copy(update={
            'meta': auth,
            'status': ConnectionStatus.CONNECTED,
            'updated_at': _now(),
        }))
        logger.info('Stored Meta credentials for %s.', shop_domain)

    def get_google_auth(self, shop_domain: Optional[str]) -> Optional[GoogleAuth]:
        """Google sub-record with the refresh token decrypted ('' if it cannot be)."""
        if not shop_domain:
            return None
        record = self.get_connection(Platform.GOOGLE, shop_domain)
        if record is None or record.google is None:
            return None
        return record.google.model_copy(update={'refresh_token': self.cipher.decrypt(record.google.refresh_token)})

    def get_meta_auth(self, shop_domain: Optional[str]) -> Optional[MetaAuth]:
        """Meta sub-record with the long-lived token decrypted ('' if it cannot be)."""
        if not shop_domain:
            return None
        record = self.get_connection(Platform.META, shop_domain)
        if record is None or record.meta is None:
            return None
        return record.meta.model_copy(update={'long_lived_token': self.cipher.decrypt(record.meta.long_lived_token)})


class InMemoryConnectionStore(ConnectionStore):
    def __init__(self, cipher: TokenCipher):
        super().__init__(cipher)
        self._records: Dict[tuple, ConnectionRecord] = {}

    def get_connection(self, platform, shop_domain: str) -> Optional[ConnectionRecord]:
        return self._records.get((shop_domain, Platform(platform)))

    def put_connection(self, record: ConnectionRecord) -> None:
        self._records[(record.shop_domain, record.platform)] = record

    def list_connections(self, shop_domain: str) -> List[ConnectionRecord]:
        return [r for (shop, _), r in self._records.items() if shop == shop_domain]


class JsonFileConnectionStore(ConnectionStore):
    def __init__(self, cipher: TokenCipher, path: str):
        super().__init__(cipher)
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> Dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except ValueError:
            # keep the unreadable file for inspection; the next write starts fresh
            corrupt_path = f'{self.path}.corrupt'
            os.replace(self.path, corrupt_path)
            logger.error('Connection store %s is not valid JSON; moved it to %s.', self.path, corrupt_path)
            return {}
        if not isinstance(data, dict):
            logger.error('Connection store %s does not hold a JSON object; ignoring it.', self.path)
            return {}
        return data

    def _write(self, data: Dict) -> None:
        directory = os.path.dirname(self.path) or '.'
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.connections-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def get_connection(self, platform, shop_domain: str) -> Optional[ConnectionRecord]:
        raw = self._load().get(shop_domain, {}).get(Platform(platform).value)
        if raw is None:
            return None
        return ConnectionRecord.model_validate(raw)

    def put_connection(self, record: ConnectionRecord) -> None:
        with self._lock:
            data = self._load()
            data.setdefault(record.shop_domain, {})[record.platform.value] = record.model_dump(mode='json')
            self._write(data)

    def list_connections(self, shop_domain: str) -> List[ConnectionRecord]:
        shop = self._load().get(shop_domain, {})
        return [ConnectionRecord.model_validate(raw) for raw in shop.values()]


def build_connection_store(config, cipher: TokenCipher) -> ConnectionStore:
    """Pick the backend named by `config.connection_store` ('memory' or 'file')."""
    if config.connection_store == 'file':
        return JsonFileConnectionStore(cipher, os.path.join(config.data_dir, 'connections.json'))
    if config.connection_store != 'memory':
        logger.warning('Unknown CONNECTION_STORE %r; using in-memory store.', config.connection_store)
    return InMemoryConnectionStore(cipher)
