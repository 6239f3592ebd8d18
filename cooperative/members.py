"""
Member Registry Module

Holds member records: identity, savings/loan/investment balances, fines,
membership status and the guarantor commitments a member has pledged.
Also tracks member activity for the dormant/inactive sweeps.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
import logging

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, next_sequential_id
from .admin_log import AdminLog, AdminAction, SYSTEM_ADMIN_ID
from .errors import NotFoundError, ValidationError


logger = logging.getLogger("cooperative.members")


class MemberStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    DORMANT = "dormant"


class BalanceOperation(Enum):
    ADD = "add"
    SUBTRACT = "subtract"


@dataclass
class GuarantorCommitment:
    """A loan this member has agreed to guarantee"""
    loan_id: str
    member_id: str      # borrower
    member_name: str
    loan_amount: Money
    remaining_amount: Money

    def to_dict(self) -> Dict[str, Any]:
        return {
            'loan_id': self.loan_id,
            'member_id': self.member_id,
            'member_name': self.member_name,
            'loan_amount': str(self.loan_amount.amount),
            'remaining_amount': str(self.remaining_amount.amount),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], currency: Currency) -> 'GuarantorCommitment':
        return cls(
            loan_id=data['loan_id'],
            member_id=data['member_id'],
            member_name=data['member_name'],
            loan_amount=Money(Decimal(data['loan_amount']), currency),
            remaining_amount=Money(Decimal(data['remaining_amount']), currency),
        )


MONEY_FIELDS = ('balance', 'savings', 'loan_balance', 'investment_balance', 'fines')


@dataclass
class Member(StorageRecord):
    membership_id: str          # account number shown to members
    name: str
    phone: str
    currency: Currency = Currency.NGN
    email: Optional[str] = None
    address: Optional[str] = None
    occupation: Optional[str] = None
    join_date: Optional[date] = None
    status: MemberStatus = MemberStatus.ACTIVE
    balance: Money = None
    savings: Money = None
    loan_balance: Money = None
    investment_balance: Money = None
    fines: Money = None
    last_activity_date: Optional[date] = None
    guarantor_for: List[GuarantorCommitment] = field(default_factory=list)

    def __post_init__(self):
        for name in MONEY_FIELDS:
            if getattr(self, name) is None:
                setattr(self, name, Money.zero(self.currency))
        if self.join_date is None:
            self.join_date = self.created_at.date()

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @property
    def has_loan(self) -> bool:
        return not self.loan_balance.is_zero()

    @property
    def open_commitments(self) -> List[GuarantorCommitment]:
        return [c for c in self.guarantor_for if c.remaining_amount.is_positive()]

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'membership_id': self.membership_id,
            'name': self.name,
            'phone': self.phone,
            'currency': self.currency.code,
            'email': self.email,
            'address': self.address,
            'occupation': self.occupation,
            'join_date': self.join_date.isoformat() if self.join_date else None,
            'status': self.status.value,
            'last_activity_date': self.last_activity_date.isoformat() if self.last_activity_date else None,
            'guarantor_for': [c.to_dict() for c in self.guarantor_for],
        })
        for name in MONEY_FIELDS:
            result[name] = str(getattr(self, name).amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Member':
        currency = Currency[data.get('currency', 'NGN')]

        def get_date(key: str) -> Optional[date]:
            return date.fromisoformat(data[key]) if data.get(key) else None

        return cls(
            **cls.base_kwargs(data),
            membership_id=data['membership_id'],
            name=data['name'],
            phone=data['phone'],
            currency=currency,
            email=data.get('email'),
            address=data.get('address'),
            occupation=data.get('occupation'),
            join_date=get_date('join_date'),
            status=MemberStatus(data['status']),
            last_activity_date=get_date('last_activity_date'),
            guarantor_for=[GuarantorCommitment.from_dict(c, currency) for c in data.get('guarantor_for', [])],
            **{name: Money(Decimal(data[name]), currency) for name in MONEY_FIELDS},
        )


UPDATABLE_FIELDS = {'name', 'phone', 'email', 'address', 'occupation'}


class MemberRegistry:
    """Repository and rules for cooperative members"""

    TABLE = "members"

    def __init__(
        self,
        storage: StorageInterface,
        admin_log: AdminLog,
        currency: Currency = Currency.NGN,
        search_limit: int = 5,
        at_risk_after_days: int = 7,
        recently_inactive_after_days: int = 14,
        dormant_after_days: int = 21
    ):
        self.storage = storage
        self.admin_log = admin_log
        self.currency = currency
        self.search_limit = search_limit
        self.at_risk_after_days = at_risk_after_days
        self.recently_inactive_after_days = recently_inactive_after_days
        self.dormant_after_days = dormant_after_days

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add_member(
        self,
        name: str,
        phone: str,
        email: Optional[str] = None,
        address: Optional[str] = None,
        occupation: Optional[str] = None,
        membership_id: Optional[str] = None,
        opening_balance: Optional[Money] = None,
        status: MemberStatus = MemberStatus.ACTIVE,
        join_date: Optional[date] = None,
        admin_id: str = SYSTEM_ADMIN_ID,
        admin_name: str = "System"
    ) -> Member:
        if not name or not name.strip():
            raise ValidationError("Member name is required")
        if not phone or not phone.strip():
            raise ValidationError("Member phone number is required")

        member_id = next_sequential_id(self.storage, self.TABLE, "MEM")
        if membership_id is None:
            membership_id = f"ACC{int(member_id[3:]):06d}"
        elif self.find_by_membership_id(membership_id):
            raise ValidationError(f"Account number {membership_id} is already in use")

        now = datetime.now(timezone.utc)
        member = Member(
            id=member_id,
            created_at=now,
            updated_at=now,
            membership_id=membership_id,
            name=name.strip(),
            phone=phone.strip(),
            currency=self.currency,
            email=email,
            address=address,
            occupation=occupation,
            join_date=join_date,
            status=status,
            balance=opening_balance,
        )
        member.last_activity_date = member.join_date
        self.save(member)

        self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.MEMBER_ADDED,
                                     f"Added new member: {member.name}", target_member=member.id)
        logger.info("Member %s added", member.id, extra={'member_id': member.id, 'action': 'member_added'})
        return member

    def get_member(self, member_id: str) -> Optional[Member]:
        data = self.storage.load(self.TABLE, member_id)
        return Member.from_dict(data) if data else None

    def require_member(self, member_id: str) -> Member:
        member = self.get_member(member_id)
        if not member:
            raise NotFoundError(f"Member {member_id} not found")
        return member

    def get_all_members(self, status: Optional[MemberStatus] = None) -> List[Member]:
        members = [Member.from_dict(d) for d in self.storage.load_all(self.TABLE)]
        if status:
            members = [m for m in members if m.status == status]
        return members

    def find_by_membership_id(self, membership_id: str) -> Optional[Member]:
        matches = self.storage.find(self.TABLE, {'membership_id': membership_id})
        return Member.from_dict(matches[0]) if matches else None

    def save(self, member: Member) -> None:
        self.storage.save(self.TABLE, member.id, member.to_dict())

    def update_member(self, member_id: str, admin_id: str = SYSTEM_ADMIN_ID,
                      admin_name: str = "System", **updates) -> Member:
        member = self.require_member(member_id)
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        for key, value in updates.items():
            setattr(member, key, value)
        member.touch()
        self.save(member)
        self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.MEMBER_UPDATED,
                                     f"Updated member: {member_id}", target_member=member_id)
        return member

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def update_balance(self, member_id: str, amount: Money, operation: BalanceOperation,
                       admin_id: str = SYSTEM_ADMIN_ID, admin_name: str = "System") -> Member:
        """Add to or subtract from the member balance; never goes below zero"""
        if not amount.is_positive():
            raise ValidationError("Amount must be greater than zero")
        member = self.require_member(member_id)
        if operation == BalanceOperation.ADD:
            member.balance = member.balance + amount
        else:
            member.balance = (member.balance - amount).clamp_zero()
        member.last_activity_date = date.today()
        member.touch()
        self.save(member)

        verb = "Added" if operation == BalanceOperation.ADD else "Subtracted"
        self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.BALANCE_UPDATED,
                                     f"{verb} {amount.to_string()} for member: {member_id}",
                                     target_member=member_id, amount=amount.amount)
        return member

    def allocate_savings(self, member_id: str, amount: Money,
                         admin_id: str = SYSTEM_ADMIN_ID, admin_name: str = "System") -> Member:
        if not amount.is_positive():
            raise ValidationError("Amount must be greater than zero")
        member = self.require_member(member_id)
        member.savings = member.savings + amount
        member.last_activity_date = date.today()
        member.touch()
        self.save(member)
        self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.SAVINGS_ALLOCATED,
                                     f"Allocated {amount.to_string()} to member: {member_id}",
                                     target_member=member_id, amount=amount.amount)
        return member

    def add_fine(self, member_id: str, amount: Money) -> Member:
        member = self.require_member(member_id)
        member.fines = member.fines + amount
        member.touch()
        self.save(member)
        return member

    def clear_fines(self, member_id: str) -> Member:
        member = self.require_member(member_id)
        member.fines = Money.zero(member.currency)
        member.touch()
        self.save(member)
        return member

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _set_status(self, member_id: str, status: MemberStatus, action: AdminAction,
                    admin_id: str, admin_name: str) -> Member:
        member = self.require_member(member_id)
        member.status = status
        if status == MemberStatus.ACTIVE:
            member.last_activity_date = date.today()
        member.touch()
        self.save(member)
        self.admin_log.add_admin_log(admin_id, admin_name, action,
                                     f"Member {member_id} is now {status.value}", target_member=member_id)
        logger.info("Member %s status -> %s", member_id, status.value,
                    extra={'member_id': member_id, 'action': action.value})
        return member

    def suspend_member(self, member_id: str, admin_id: str = SYSTEM_ADMIN_ID,
                       admin_name: str = "System") -> Member:
        return self._set_status(member_id, MemberStatus.SUSPENDED, AdminAction.MEMBER_SUSPENDED,
                                admin_id, admin_name)

    def activate_member(self, member_id: str, admin_id: str = SYSTEM_ADMIN_ID,
                        admin_name: str = "System") -> Member:
        return self._set_status(member_id, MemberStatus.ACTIVE, AdminAction.MEMBER_ACTIVATED,
                                admin_id, admin_name)

    # ------------------------------------------------------------------
    # Guarantors
    # ------------------------------------------------------------------

    def search_guarantors(self, borrower_id: str, query: str,
                          limit: Optional[int] = None) -> List[Member]:
        """
        Candidate guarantors for a borrower.

        Case-insensitive substring match on name or account number, never
        returning the borrower, capped to the first `limit` matches.
        """
        limit = self.search_limit if limit is None else limit
        needle = (query or "").strip().lower()
        if not needle:
            return []

        results = []
        for member in self.get_all_members():
            if member.id == borrower_id:
                continue
            if needle in member.name.lower() or needle in member.membership_id.lower():
                results.append(member)
                if len(results) >= limit:
                    break
        return results

    def can_member_be_guarantor(self, member_id: str) -> Tuple[bool, Optional[str]]:
        member = self.get_member(member_id)
        if not member:
            return False, "Member not found"
        if not member.is_active:
            return False, f"Member is {member.status.value}"
        if member.has_loan:
            return False, "Member has an outstanding loan balance"
        return True, None

    def add_guarantor_commitment(self, guarantor_id: str, commitment: GuarantorCommitment) -> Member:
        member = self.require_member(guarantor_id)
        member.guarantor_for = [c for c in member.guarantor_for if c.loan_id != commitment.loan_id]
        member.guarantor_for.append(commitment)
        member.touch()
        self.save(member)
        return member

    def update_guarantor_commitment(self, guarantor_id: str, loan_id: str, remaining: Money) -> None:
        member = self.get_member(guarantor_id)
        if not member:
            return
        for commitment in member.guarantor_for:
            if commitment.loan_id == loan_id:
                commitment.remaining_amount = remaining.clamp_zero()
        member.touch()
        self.save(member)

    def release_guarantor_commitments(self, loan_id: str) -> List[str]:
        """Drop every commitment tied to a loan; returns affected guarantor ids"""
        released = []
        for member in self.get_all_members():
            kept = [c for c in member.guarantor_for if c.loan_id != loan_id]
            if len(kept) != len(member.guarantor_for):
                member.guarantor_for = kept
                member.touch()
                self.save(member)
                released.append(member.id)
        return released

    def has_open_commitments(self, member_id: str) -> bool:
        member = self.get_member(member_id)
        return bool(member and member.open_commitments)

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def record_activity(self, member_id: str, on: Optional[date] = None) -> Member:
        member = self.require_member(member_id)
        member.last_activity_date = on or date.today()
        member.touch()
        self.save(member)
        return member

    @staticmethod
    def inactivity_days(member: Member, as_of: Optional[date] = None) -> int:
        as_of = as_of or date.today()
        last_seen = member.last_activity_date or member.join_date
        return max(0, (as_of - last_seen).days)

    def categorize_inactivity(self, as_of: Optional[date] = None) -> Dict[str, List[Member]]:
        categories: Dict[str, List[Member]] = {
            'dormant': [], 'inactive': [], 'recently_inactive': [], 'at_risk': []
        }
        for member in self.get_all_members():
            if member.status == MemberStatus.DORMANT:
                categories['dormant'].append(member)
            elif member.status == MemberStatus.INACTIVE:
                categories['inactive'].append(member)
            elif member.is_active:
                days = self.inactivity_days(member, as_of)
                if self.recently_inactive_after_days <= days < self.dormant_after_days:
                    categories['recently_inactive'].append(member)
                elif self.at_risk_after_days <= days < self.recently_inactive_after_days:
                    categories['at_risk'].append(member)
        return categories

    def flag_dormant_members(self, as_of: Optional[date] = None) -> List[Member]:
        """Move active members idle for the dormant threshold to dormant"""
        flagged = []
        for member in self.get_all_members(MemberStatus.ACTIVE):
            if self.inactivity_days(member, as_of) >= self.dormant_after_days:
                member.status = MemberStatus.DORMANT
                member.touch()
                self.save(member)
                self.admin_log.add_admin_log(SYSTEM_ADMIN_ID, "System", AdminAction.MEMBER_DORMANT,
                                             f"Member {member.id} flagged dormant",
                                             target_member=member.id)
                flagged.append(member)
        if flagged:
            logger.info("%d members flagged dormant", len(flagged), extra={'action': 'dormant_sweep'})
        return flagged

    def get_stats(self) -> Dict[str, Any]:
        members = self.get_all_members()
        zero = Money.zero(self.currency)
        return {
            'total_members': len(members),
            'total_savings': sum((m.savings for m in members), zero),
            'total_balance': sum((m.balance for m in members), zero),
            'total_loans': sum((m.loan_balance for m in members), zero),
            'active_loans': len([m for m in members if m.has_loan]),
            'total_fines': sum((m.fines for m in members), zero),
            'dormant_members': len([m for m in members if m.status == MemberStatus.DORMANT]),
        }
