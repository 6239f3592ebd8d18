"""
Admin Log Module

Append-only record of administrative and workflow actions (loan approvals,
guarantor responses, fine runs, member changes). Entries are hash-chained with
SHA-256 so tampering with history is detectable.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from enum import Enum

from .storage import StorageInterface, StorageRecord, next_sequential_id


class AdminAction(Enum):
    MEMBER_ADDED = "member_added"
    MEMBER_UPDATED = "member_updated"
    MEMBER_SUSPENDED = "member_suspended"
    MEMBER_ACTIVATED = "member_activated"
    MEMBER_DORMANT = "member_dormant"
    BALANCE_UPDATED = "balance_updated"
    SAVINGS_ALLOCATED = "savings_allocated"
    LOAN_APPLICATION = "loan_application"
    LOAN_APPROVED = "loan_approved"
    LOAN_REJECTED = "loan_rejected"
    LOAN_REPAYMENT = "loan_repayment"
    LOAN_REPAID = "loan_repaid"
    LOAN_DEFAULTED = "loan_defaulted"
    GUARANTOR_RESPONSE = "guarantor_response"
    FINES_APPLIED = "fines_applied"
    FINE_SETTINGS_UPDATED = "fine_settings_updated"
    APPROVAL_DECIDED = "approval_decided"
    BROADCAST_SENT = "broadcast_sent"
    INVESTMENT_CREATED = "investment_created"
    INVESTMENT_APPROVED = "investment_approved"
    INVESTMENT_REJECTED = "investment_rejected"


GENESIS_HASH = "0" * 64
SYSTEM_ADMIN_ID = "SYSTEM"


@dataclass
class AdminLogEntry(StorageRecord):
    admin_id: str
    admin_name: str
    action: AdminAction
    details: str
    previous_hash: str
    current_hash: str = ""
    target_member: Optional[str] = None
    amount: Optional[Decimal] = None

    def calculate_hash(self) -> str:
        content = {
            'id': self.id,
            'timestamp': self.created_at.isoformat(),
            'admin_id': self.admin_id,
            'action': self.action.value,
            'details': self.details,
            'target_member': self.target_member,
            'amount': str(self.amount) if self.amount is not None else None,
            'previous_hash': self.previous_hash,
        }
        return hashlib.sha256(json.dumps(content, sort_keys=True).encode('utf-8')).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'admin_id': self.admin_id,
            'admin_name': self.admin_name,
            'action': self.action.value,
            'details': self.details,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash,
            'target_member': self.target_member,
            'amount': str(self.amount) if self.amount is not None else None,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AdminLogEntry':
        return cls(
            **cls.base_kwargs(data),
            admin_id=data['admin_id'],
            admin_name=data['admin_name'],
            action=AdminAction(data['action']),
            details=data['details'],
            previous_hash=data['previous_hash'],
            current_hash=data['current_hash'],
            target_member=data.get('target_member'),
            amount=Decimal(data['amount']) if data.get('amount') is not None else None,
        )


class AdminLog:
    """Hash-chained admin log"""

    TABLE = "admin_logs"

    def __init__(self, storage: StorageInterface, enabled: bool = True):
        self.storage = storage
        self.enabled = enabled

    def _last_hash(self) -> str:
        entries = self.storage.load_scope(self.TABLE)
        return entries[-1]['current_hash'] if entries else GENESIS_HASH

    def add_admin_log(
        self,
        admin_id: str,
        admin_name: str,
        action: AdminAction,
        details: str,
        target_member: Optional[str] = None,
        amount: Optional[Decimal] = None
    ) -> Optional[AdminLogEntry]:
        if not self.enabled:
            return None

        now = datetime.now(timezone.utc)
        entry = AdminLogEntry(
            id=next_sequential_id(self.storage, self.TABLE, "LOG"),
            created_at=now,
            updated_at=now,
            admin_id=admin_id,
            admin_name=admin_name,
            action=action,
            details=details,
            previous_hash=self._last_hash(),
            target_member=target_member,
            amount=amount,
        )
        entry.current_hash = entry.calculate_hash()
        self.storage.save(self.TABLE, entry.id, entry.to_dict())
        return entry

    def list_entries(self, action: Optional[AdminAction] = None,
                     target_member: Optional[str] = None) -> List[AdminLogEntry]:
        filters: Dict[str, Any] = {}
        if action:
            filters['action'] = action.value
        if target_member:
            filters['target_member'] = target_member
        return [AdminLogEntry.from_dict(d) for d in self.storage.find(self.TABLE, filters)]

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Walk the chain and report the first broken link, if any.

        Each cooperative keeps its own chain, so a super-admin view holding
        several cooperatives' entries checks every chain separately.
        """
        chains: Dict[Optional[str], List[AdminLogEntry]] = {}
        records = self.storage.load_all(self.TABLE)
        for data in records:
            chains.setdefault(data.get('_tenant_id'), []).append(AdminLogEntry.from_dict(data))

        for entries in chains.values():
            previous = GENESIS_HASH
            for entry in entries:
                if entry.previous_hash != previous or entry.calculate_hash() != entry.current_hash:
                    return {'valid': False, 'entries_checked': len(records), 'broken_at': entry.id}
                previous = entry.current_hash
        return {'valid': True, 'entries_checked': len(records), 'broken_at': None}
