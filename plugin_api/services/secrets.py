"""
Per-tenant webhook secret store.

One active secret per tenant. Secrets are minted on registration, removed on
unregistration and resolved at the moment a webhook is signed, so a reissue or
revoke takes effect on the very next delivery.
"""

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..config import SECRET_BYTES
from ..db import session_scope
from ..errors import UnknownTenant

logger = logging.getLogger("services.secrets")


@dataclass(frozen=True)
class SecretRecord:
    tenant_id: str
    secret: str
    issued_at: datetime
    tenant_name: Optional[str] = None
    platform_url: Optional[str] = None
    last_used_at: Optional[datetime] = None


class InMemorySecretBackend:
    """Dict-backed storage; contents are lost when the process exits"""

    def __init__(self):
        self._records: Dict[str, SecretRecord] = {}

    def get(self, tenant_id: str) -> Optional[SecretRecord]:
        return self._records.get(tenant_id)

    def put(self, record: SecretRecord) -> None:
        self._records[record.tenant_id] = record

    def delete(self, tenant_id: str) -> bool:
        return self._records.pop(tenant_id, None) is not None

    def touch(self, tenant_id: str, when: datetime) -> None:
        record = self._records.get(tenant_id)
        if record:
            self._records[tenant_id] = replace(record, last_used_at=when)

    def list(self) -> List[SecretRecord]:
        return list(self._records.values())


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlSecretBackend:
    """SQLAlchemy-backed storage in the installations table"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @staticmethod
    def _to_record(row) -> SecretRecord:
        return SecretRecord(
            tenant_id=row.tenant_id,
            secret=row.secret,
            issued_at=_aware(row.issued_at),
            tenant_name=row.tenant_name,
            platform_url=row.platform_url,
            last_used_at=_aware(row.last_used_at),
        )

    def get(self, tenant_id: str) -> Optional[SecretRecord]:
        from ..models.installation import Installation
        with session_scope(self.session_factory) as db:
            row = db.get(Installation, tenant_id)
            return self._to_record(row) if row else None

    def put(self, record: SecretRecord) -> None:
        from ..models.installation import Installation
        with session_scope(self.session_factory) as db:
            db.merge(Installation(
                tenant_id=record.tenant_id,
                secret=record.secret,
                tenant_name=record.tenant_name,
                platform_url=record.platform_url,
                issued_at=record.issued_at,
                last_used_at=record.last_used_at,
            ))

    def delete(self, tenant_id: str) -> bool:
        from ..models.installation import Installation
        with session_scope(self.session_factory) as db:
            row = db.get(Installation, tenant_id)
            if not row:
                return False
            db.delete(row)
            return True

    def touch(self, tenant_id: str, when: datetime) -> None:
        from ..models.installation import Installation
        with session_scope(self.session_factory) as db:
            row = db.get(Installation, tenant_id)
            if row:
                row.last_used_at = when

    def list(self) -> List[SecretRecord]:
        from ..models.installation import Installation
        with session_scope(self.session_factory) as db:
            return [self._to_record(r) for r in db.query(Installation).all()]


class SecretStore:
    """Thread-safe tenant secret registry over an injectable backend"""

    def __init__(self, backend=None, secret_bytes: int = SECRET_BYTES):
        if secret_bytes < 32:
            raise ValueError("secret_bytes must provide at least 256 bits")
        self.backend = backend if backend is not None else InMemorySecretBackend()
        self.secret_bytes = secret_bytes
        self._lock = threading.RLock()

    def issue(self, tenant_id: str, tenant_name: Optional[str] = None,
              platform_url: Optional[str] = None) -> SecretRecord:
        """Mint a fresh secret for tenant_id, replacing any previous one"""
        if not tenant_id:
            raise ValueError("tenant_id is required")
        record = SecretRecord(
            tenant_id=tenant_id,
            secret=secrets.token_hex(self.secret_bytes),
            issued_at=datetime.now(timezone.utc),
            tenant_name=tenant_name,
            platform_url=platform_url,
        )
        with self._lock:
            replaced = self.backend.get(tenant_id) is not None
            self.backend.put(record)
        logger.info("Issued webhook secret", extra={
            "component": "secrets",
            "event": "reissued" if replaced else "issued",
            "tenant_id": tenant_id
        })
        return record

    def revoke(self, tenant_id: str) -> bool:
        """Remove the tenant's secret; returns False if there was none"""
        with self._lock:
            removed = self.backend.delete(tenant_id)
        if removed:
            logger.info("Revoked webhook secret", extra={
                "component": "secrets",
                "event": "revoked",
                "tenant_id": tenant_id
            })
        return removed

    def resolve(self, tenant_id: str) -> str:
        """Return the tenant's current secret or raise UnknownTenant"""
        with self._lock:
            record = self.backend.get(tenant_id)
            if record is None:
                raise UnknownTenant(tenant_id)
            self.backend.touch(tenant_id, datetime.now(timezone.utc))
            return record.secret

    def get(self, tenant_id: str) -> Optional[SecretRecord]:
        with self._lock:
            return self.backend.get(tenant_id)

    def list_tenants(self) -> List[SecretRecord]:
        with self._lock:
            return self.backend.list()

    def count(self) -> int:
        return len(self.list_tenants())
