"""
Multi-Tenancy Support Module

Each cooperative society is a tenant with isolated members, loans and
notifications inside the same deployment. Super-admins operate with no tenant
set and manage the cooperative registry itself.
"""

import contextvars
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from enum import Enum

from .storage import StorageInterface
from .errors import NotFoundError, TenantError


logger = logging.getLogger("cooperative.tenancy")


class CooperativeStatus(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TRIAL = "trial"
    EXPIRED = "expired"


class SubscriptionTier(Enum):
    """Subscription tier options for cooperatives"""
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass
class Cooperative:
    """A cooperative society registered on the platform"""
    id: str
    name: str
    code: str  # Unique short code, e.g. "UNITY_COOP"
    status: CooperativeStatus = CooperativeStatus.TRIAL
    subscription_tier: SubscriptionTier = SubscriptionTier.BASIC
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)  # Per-cooperative rule overrides
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_operational(self) -> bool:
        return self.status in (CooperativeStatus.ACTIVE, CooperativeStatus.TRIAL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'status': self.status.value,
            'subscription_tier': self.subscription_tier.value,
            'contact_email': self.contact_email,
            'contact_phone': self.contact_phone,
            'address': self.address,
            'settings': self.settings,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Cooperative':
        data = dict(data)
        data.pop('_tenant_id', None)
        data['status'] = CooperativeStatus(data['status'])
        data['subscription_tier'] = SubscriptionTier(data['subscription_tier'])
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        return cls(**data)


_current_tenant = contextvars.ContextVar('current_cooperative', default=None)


def get_current_tenant() -> Optional[str]:
    """Get the current cooperative ID for this context"""
    return _current_tenant.get()


def set_current_tenant(tenant_id: Optional[str]) -> None:
    _current_tenant.set(tenant_id)


@contextmanager
def tenant_context(tenant_id: Optional[str]):
    """Run a block on behalf of one cooperative"""
    token = _current_tenant.set(tenant_id)
    try:
        yield
    finally:
        _current_tenant.reset(token)


class TenantAwareStorage(StorageInterface):
    """
    Storage wrapper isolating cooperatives that share one backend.

    Records are stamped with `_tenant_id` and keyed as "<tenant>:<id>" in the
    inner storage, so two cooperatives may both own a member called MEM001.
    With no tenant set (super-admin mode) untenanted records are addressed
    directly and every record is visible to load_all. Sequential ids and
    hash chains are per owner and read through load_scope.
    """

    def __init__(self, inner_storage: StorageInterface):
        self.inner = inner_storage

    @staticmethod
    def _key(record_id: str) -> str:
        tenant_id = get_current_tenant()
        return f"{tenant_id}:{record_id}" if tenant_id else record_id

    @staticmethod
    def _visible(record: Dict[str, Any]) -> bool:
        tenant_id = get_current_tenant()
        if not tenant_id:
            return True
        return record.get('_tenant_id') == tenant_id

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        tenant_id = get_current_tenant()
        if tenant_id:
            data = dict(data, _tenant_id=tenant_id)
        self.inner.save(table, self._key(record_id), data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        record = self.inner.load(table, self._key(record_id))
        if record is None or not self._visible(record):
            return None
        return record

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        return [record for record in self.inner.load_all(table) if self._visible(record)]

    def load_scope(self, table: str) -> List[Dict[str, Any]]:
        """Records owned by the current cooperative, or untenanted records in super-admin mode"""
        tenant_id = get_current_tenant() or None
        return [record for record in self.inner.load_all(table) if record.get('_tenant_id') == tenant_id]

    def delete(self, table: str, record_id: str) -> bool:
        if self.load(table, record_id) is None:
            return False
        return self.inner.delete(table, self._key(record_id))

    def clear_table(self, table: str) -> None:
        if get_current_tenant():
            raise PermissionError("Cannot clear table with a cooperative context active")
        self.inner.clear_table(table)

    def close(self) -> None:
        self.inner.close()

    def begin_transaction(self) -> None:
        self.inner.begin_transaction()

    def commit(self) -> None:
        self.inner.commit()

    def rollback(self) -> None:
        self.inner.rollback()


class CooperativeManager:
    """Super-admin registry of cooperative tenants"""

    TABLE = "cooperatives"

    def __init__(self, storage: StorageInterface):
        # Raw storage: the registry itself is never tenant scoped
        self.storage = storage

    def create_cooperative(self, name: str, code: str,
                           subscription_tier: SubscriptionTier = SubscriptionTier.BASIC,
                           status: CooperativeStatus = CooperativeStatus.TRIAL,
                           contact_email: Optional[str] = None,
                           contact_phone: Optional[str] = None,
                           address: Optional[str] = None,
                           settings: Optional[Dict[str, Any]] = None) -> Cooperative:
        code = code.strip().upper()
        if not name.strip() or not code:
            raise TenantError("Cooperative name and code are required")
        if self.get_by_code(code):
            raise TenantError(f"Cooperative code '{code}' already exists")

        cooperative = Cooperative(
            id=str(uuid.uuid4()),
            name=name.strip(),
            code=code,
            status=status,
            subscription_tier=subscription_tier,
            contact_email=contact_email,
            contact_phone=contact_phone,
            address=address,
            settings=settings or {},
        )
        self.storage.save(self.TABLE, cooperative.id, cooperative.to_dict())
        logger.info("Cooperative %s registered", code, extra={'action': 'cooperative_created',
                                                             'resource': f"cooperative:{cooperative.id}"})
        return cooperative

    def get_cooperative(self, cooperative_id: str) -> Optional[Cooperative]:
        data = self.storage.load(self.TABLE, cooperative_id)
        return Cooperative.from_dict(data) if data else None

    def get_by_code(self, code: str) -> Optional[Cooperative]:
        matches = self.storage.find(self.TABLE, {'code': code.strip().upper()})
        return Cooperative.from_dict(matches[0]) if matches else None

    def list_cooperatives(self, status: Optional[CooperativeStatus] = None) -> List[Cooperative]:
        filters = {'status': status.value} if status else {}
        return [Cooperative.from_dict(data) for data in self.storage.find(self.TABLE, filters)]

    def _set_status(self, cooperative_id: str, status: CooperativeStatus) -> Cooperative:
        cooperative = self.require(cooperative_id)
        cooperative.status = status
        cooperative.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.TABLE, cooperative.id, cooperative.to_dict())
        logger.info("Cooperative %s is now %s", cooperative.code, status.value,
                    extra={'action': 'cooperative_status_changed'})
        return cooperative

    def activate(self, cooperative_id: str) -> Cooperative:
        return self._set_status(cooperative_id, CooperativeStatus.ACTIVE)

    def suspend(self, cooperative_id: str) -> Cooperative:
        return self._set_status(cooperative_id, CooperativeStatus.SUSPENDED)

    def update_settings(self, cooperative_id: str, settings: Dict[str, Any]) -> Cooperative:
        cooperative = self.require(cooperative_id)
        cooperative.settings.update(settings)
        cooperative.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.TABLE, cooperative.id, cooperative.to_dict())
        return cooperative

    def require(self, cooperative_id: str) -> Cooperative:
        cooperative = self.get_cooperative(cooperative_id)
        if not cooperative:
            raise NotFoundError(f"Cooperative {cooperative_id} not found")
        return cooperative

    def require_operational(self, cooperative_id: str) -> Cooperative:
        """Cooperative must exist and be active or on trial"""
        cooperative = self.require(cooperative_id)
        if not cooperative.is_operational:
            raise TenantError(f"Cooperative {cooperative.code} is {cooperative.status.value}")
        return cooperative
