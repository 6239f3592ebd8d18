"""
Loan Lifecycle Module

Loan records and their state machine:

    pending -> approved | rejected
    approved -> repaid | defaulted

Approval disburses the principal to the borrower and starts a weekly repayment
schedule; repayments shrink the outstanding amount for the borrower and for
every guarantor's commitment until the loan is repaid.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from enum import Enum
import logging

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, next_sequential_id
from .members import MemberRegistry
from .notifications import NotificationCenter, NotificationType
from .admin_log import AdminLog, AdminAction, SYSTEM_ADMIN_ID
from .errors import InvalidTransitionError, NotFoundError, ValidationError


logger = logging.getLogger("cooperative.loans")

PAYMENT_INTERVAL = timedelta(days=7)

# (loan, admin_id, admin_name, notes)
DecisionHook = Callable[['Loan', str, str, Optional[str]], None]


class LoanStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REPAID = "repaid"
    DEFAULTED = "defaulted"


VALID_TRANSITIONS = {
    LoanStatus.PENDING: {LoanStatus.APPROVED, LoanStatus.REJECTED},
    LoanStatus.APPROVED: {LoanStatus.REPAID, LoanStatus.DEFAULTED},
    LoanStatus.REJECTED: set(),
    LoanStatus.REPAID: set(),
    LoanStatus.DEFAULTED: set(),
}


class GuarantorStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class LoanGuarantor:
    member_id: str
    member_name: str
    status: GuarantorStatus = GuarantorStatus.PENDING
    responded_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'member_id': self.member_id,
            'member_name': self.member_name,
            'status': self.status.value,
            'responded_at': self.responded_at.isoformat() if self.responded_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanGuarantor':
        return cls(
            member_id=data['member_id'],
            member_name=data['member_name'],
            status=GuarantorStatus(data['status']),
            responded_at=datetime.fromisoformat(data['responded_at']) if data.get('responded_at') else None,
        )


@dataclass
class Repayment:
    amount: Money
    paid_on: date
    method: str
    weeks_covered: int
    remaining_after: Money

    def to_dict(self) -> Dict[str, Any]:
        return {
            'amount': str(self.amount.amount),
            'paid_on': self.paid_on.isoformat(),
            'method': self.method,
            'weeks_covered': self.weeks_covered,
            'remaining_after': str(self.remaining_after.amount),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], currency: Currency) -> 'Repayment':
        return cls(
            amount=Money(Decimal(data['amount']), currency),
            paid_on=date.fromisoformat(data['paid_on']),
            method=data['method'],
            weeks_covered=data['weeks_covered'],
            remaining_after=Money(Decimal(data['remaining_after']), currency),
        )


LOAN_MONEY_FIELDS = ('amount', 'total_amount', 'interest_amount', 'monthly_payment',
                     'weekly_payment', 'remaining_amount', 'fines')


@dataclass
class Loan(StorageRecord):
    member_id: str
    member_name: str
    amount: Money
    purpose: str
    duration_months: int
    interest_rate: Decimal
    total_amount: Money
    interest_amount: Money
    monthly_payment: Money
    weekly_payment: Money
    total_weeks: int
    status: LoanStatus = LoanStatus.PENDING
    guarantors: List[LoanGuarantor] = field(default_factory=list)
    application_date: Optional[date] = None
    approved_date: Optional[date] = None
    approved_by: Optional[str] = None
    approval_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    weeks_remaining: int = 0
    remaining_amount: Money = None
    fines: Money = None
    next_payment_date: Optional[date] = None
    last_fined_period: Optional[str] = None
    repayment_history: List[Repayment] = field(default_factory=list)

    def __post_init__(self):
        if self.remaining_amount is None:
            self.remaining_amount = self.total_amount
        if self.fines is None:
            self.fines = Money.zero(self.currency)
        if self.application_date is None:
            self.application_date = self.created_at.date()

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def all_guarantors_accepted(self) -> bool:
        return bool(self.guarantors) and all(g.status == GuarantorStatus.ACCEPTED for g in self.guarantors)

    def guarantor(self, member_id: str) -> Optional[LoanGuarantor]:
        for entry in self.guarantors:
            if entry.member_id == member_id:
                return entry
        return None

    def amount_repaid(self) -> Money:
        return sum((r.amount for r in self.repayment_history), Money.zero(self.currency))

    def to_dict(self) -> Dict[str, Any]:
        def iso(value):
            return value.isoformat() if value else None

        result = self.base_dict()
        result.update({
            'member_id': self.member_id,
            'member_name': self.member_name,
            'currency': self.currency.code,
            'purpose': self.purpose,
            'duration_months': self.duration_months,
            'interest_rate': str(self.interest_rate),
            'total_weeks': self.total_weeks,
            'status': self.status.value,
            'guarantors': [g.to_dict() for g in self.guarantors],
            'application_date': iso(self.application_date),
            'approved_date': iso(self.approved_date),
            'approved_by': self.approved_by,
            'approval_notes': self.approval_notes,
            'rejection_reason': self.rejection_reason,
            'weeks_remaining': self.weeks_remaining,
            'next_payment_date': iso(self.next_payment_date),
            'last_fined_period': self.last_fined_period,
            'repayment_history': [r.to_dict() for r in self.repayment_history],
        })
        for name in LOAN_MONEY_FIELDS:
            result[name] = str(getattr(self, name).amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        currency = Currency[data.get('currency', 'NGN')]

        def get_date(key: str) -> Optional[date]:
            return date.fromisoformat(data[key]) if data.get(key) else None

        return cls(
            **cls.base_kwargs(data),
            member_id=data['member_id'],
            member_name=data['member_name'],
            purpose=data['purpose'],
            duration_months=data['duration_months'],
            interest_rate=Decimal(data['interest_rate']),
            total_weeks=data['total_weeks'],
            status=LoanStatus(data['status']),
            guarantors=[LoanGuarantor.from_dict(g) for g in data.get('guarantors', [])],
            application_date=get_date('application_date'),
            approved_date=get_date('approved_date'),
            approved_by=data.get('approved_by'),
            approval_notes=data.get('approval_notes'),
            rejection_reason=data.get('rejection_reason'),
            weeks_remaining=data.get('weeks_remaining', 0),
            next_payment_date=get_date('next_payment_date'),
            last_fined_period=data.get('last_fined_period'),
            repayment_history=[Repayment.from_dict(r, currency) for r in data.get('repayment_history', [])],
            **{name: Money(Decimal(data[name]), currency) for name in LOAN_MONEY_FIELDS},
        )


def is_overdue(loan: Loan, as_of: Optional[date] = None, grace_days: int = 3) -> bool:
    """Approved loan whose next instalment is past due beyond the grace period"""
    if loan.status != LoanStatus.APPROVED or loan.next_payment_date is None:
        return False
    as_of = as_of or date.today()
    return as_of > loan.next_payment_date + timedelta(days=grace_days)


class LoanManager:
    """Loan repository and lifecycle transitions"""

    TABLE = "loans"

    def __init__(
        self,
        storage: StorageInterface,
        members: MemberRegistry,
        notifications: NotificationCenter,
        admin_log: AdminLog,
        default_after_days: int = 90
    ):
        self.storage = storage
        self.members = members
        self.notifications = notifications
        self.admin_log = admin_log
        self.default_after_days = default_after_days
        self._decision_hooks: List[DecisionHook] = []

    def on_decision(self, hook: DecisionHook) -> None:
        """Call hook inside the transaction whenever a loan is approved or rejected"""
        self._decision_hooks.append(hook)

    def _decided(self, loan: Loan, admin_id: str, admin_name: str, notes: Optional[str]) -> None:
        for hook in self._decision_hooks:
            hook(loan, admin_id, admin_name, notes)

    # ------------------------------------------------------------------
    # Repository
    # ------------------------------------------------------------------

    def next_id(self) -> str:
        return next_sequential_id(self.storage, self.TABLE, "LOAN")

    def save(self, loan: Loan) -> None:
        self.storage.save(self.TABLE, loan.id, loan.to_dict())

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.TABLE, loan_id)
        return Loan.from_dict(data) if data else None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None,
                   member_id: Optional[str] = None) -> List[Loan]:
        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status.value
        if member_id:
            filters['member_id'] = member_id
        return [Loan.from_dict(d) for d in self.storage.find(self.TABLE, filters)]

    def loans_for_member(self, member_id: str, statuses: Optional[List[LoanStatus]] = None) -> List[Loan]:
        loans = self.list_loans(member_id=member_id)
        if statuses:
            loans = [loan for loan in loans if loan.status in statuses]
        return loans

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(loan: Loan, new_status: LoanStatus) -> None:
        if new_status not in VALID_TRANSITIONS[loan.status]:
            raise InvalidTransitionError(
                f"Cannot move loan {loan.id} from {loan.status.value} to {new_status.value}"
            )
        loan.status = new_status
        loan.touch()

    def approve_loan(self, loan_id: str, admin_id: str = SYSTEM_ADMIN_ID, admin_name: str = "Admin",
                     notes: Optional[str] = None, approved_on: Optional[date] = None) -> Loan:
        """
        Approve a pending loan once every nominated guarantor has accepted.

        Disburses the principal to the borrower's balance, sets the member's
        loan balance to the amount owed and schedules the first weekly
        instalment seven days out.
        """
        loan = self.require_loan(loan_id)
        if loan.status == LoanStatus.PENDING and not loan.all_guarantors_accepted:
            waiting = [g.member_name for g in loan.guarantors if g.status != GuarantorStatus.ACCEPTED]
            raise InvalidTransitionError(
                f"Loan {loan_id} cannot be approved until all guarantors accept ({', '.join(waiting)})"
            )

        with self.storage.atomic():
            self._transition(loan, LoanStatus.APPROVED)
            approved_on = approved_on or date.today()
            loan.approved_date = approved_on
            loan.approved_by = admin_id
            loan.approval_notes = notes
            loan.weeks_remaining = loan.total_weeks
            loan.remaining_amount = loan.total_amount
            loan.next_payment_date = approved_on + PAYMENT_INTERVAL
            self.save(loan)

            member = self.members.require_member(loan.member_id)
            member.balance = member.balance + loan.amount
            member.loan_balance = loan.total_amount
            member.last_activity_date = approved_on
            member.touch()
            self.members.save(member)

            self.notifications.notify(
                loan.member_id, NotificationType.LOAN, "Loan Approved",
                f"Your loan of {loan.amount.to_string()} has been approved. "
                f"Weekly repayment: {loan.weekly_payment.to_string()} for {loan.total_weeks} weeks.",
                related_id=loan.id,
            )
            self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.LOAN_APPROVED,
                                         f"Approved loan: {loan.member_name} - {loan.amount.to_string()}",
                                         target_member=loan.member_id, amount=loan.amount.amount)
            self._decided(loan, admin_id, admin_name, notes)

        logger.info("Loan %s approved", loan.id,
                    extra={'member_id': loan.member_id, 'action': 'loan_approved',
                           'resource': f"loan:{loan.id}"})
        return loan

    def reject_loan(self, loan_id: str, admin_id: str = SYSTEM_ADMIN_ID, admin_name: str = "Admin",
                    reason: Optional[str] = None) -> Loan:
        loan = self.require_loan(loan_id)
        with self.storage.atomic():
            self._transition(loan, LoanStatus.REJECTED)
            loan.rejection_reason = reason
            self.save(loan)
            self.members.release_guarantor_commitments(loan.id)

            message = f"Your loan application of {loan.amount.to_string()} was not approved."
            if reason:
                message += f" Reason: {reason}"
            self.notifications.notify(loan.member_id, NotificationType.LOAN, "Loan Rejected",
                                      message, related_id=loan.id)
            self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.LOAN_REJECTED,
                                         f"Rejected loan: {loan.member_name} - {loan.amount.to_string()}",
                                         target_member=loan.member_id, amount=loan.amount.amount)
            self._decided(loan, admin_id, admin_name, reason)

        logger.info("Loan %s rejected", loan.id,
                    extra={'member_id': loan.member_id, 'action': 'loan_rejected',
                           'resource': f"loan:{loan.id}"})
        return loan

    def record_repayment(self, loan_id: str, amount: Money, method: str = "cash",
                         paid_on: Optional[date] = None) -> Loan:
        loan = self.require_loan(loan_id)
        if loan.status != LoanStatus.APPROVED:
            raise InvalidTransitionError(f"Loan {loan_id} is {loan.status.value}; repayments not accepted")
        if not amount.is_positive():
            raise ValidationError("Repayment amount must be greater than zero")
        if amount > loan.remaining_amount:
            raise ValidationError(
                f"Repayment {amount.to_string()} exceeds outstanding {loan.remaining_amount.to_string()}"
            )

        paid_on = paid_on or date.today()
        weeks_covered = 1
        if loan.weekly_payment.is_positive():
            weeks_covered = max(1, int(amount.amount // loan.weekly_payment.amount))

        with self.storage.atomic():
            loan.remaining_amount = loan.remaining_amount - amount
            loan.weeks_remaining = max(0, loan.weeks_remaining - weeks_covered)
            loan.next_payment_date = (loan.next_payment_date or paid_on) + PAYMENT_INTERVAL * weeks_covered
            loan.repayment_history.append(
                Repayment(amount, paid_on, method, weeks_covered, loan.remaining_amount)
            )
            loan.touch()

            member = self.members.require_member(loan.member_id)
            member.loan_balance = (member.loan_balance - amount).clamp_zero()
            member.last_activity_date = paid_on
            member.touch()
            self.members.save(member)

            for guarantor in loan.guarantors:
                self.members.update_guarantor_commitment(guarantor.member_id, loan.id, loan.remaining_amount)

            self.admin_log.add_admin_log(SYSTEM_ADMIN_ID, "System", AdminAction.LOAN_REPAYMENT,
                                         f"Repayment on {loan.id}: {amount.to_string()} via {method}",
                                         target_member=loan.member_id, amount=amount.amount)

            if loan.remaining_amount.is_zero():
                self._mark_repaid(loan)
            self.save(loan)

        logger.info("Repayment of %s recorded on loan %s", amount.amount, loan.id,
                    extra={'member_id': loan.member_id, 'action': 'loan_repayment',
                           'resource': f"loan:{loan.id}"})
        return loan

    def _mark_repaid(self, loan: Loan) -> None:
        self._transition(loan, LoanStatus.REPAID)
        loan.weeks_remaining = 0
        loan.next_payment_date = None
        self.members.release_guarantor_commitments(loan.id)
        self.notifications.notify(loan.member_id, NotificationType.LOAN, "Loan Repaid",
                                  f"Your loan {loan.id} has been fully repaid.", related_id=loan.id)
        self.admin_log.add_admin_log(SYSTEM_ADMIN_ID, "System", AdminAction.LOAN_REPAID,
                                     f"Loan {loan.id} fully repaid", target_member=loan.member_id)

    def refresh_loan_status(self, loan_id: str, as_of: Optional[date] = None) -> Loan:
        """Apply any derived transition (repaid/defaulted) the loan now qualifies for"""
        loan = self.require_loan(loan_id)
        if loan.status != LoanStatus.APPROVED:
            return loan
        with self.storage.atomic():
            if loan.remaining_amount.is_zero():
                self._mark_repaid(loan)
                self.save(loan)
            elif self._is_in_default(loan, as_of or date.today(), self.default_after_days):
                self._mark_defaulted(loan)
                self.save(loan)
        return loan

    @staticmethod
    def _is_in_default(loan: Loan, as_of: date, default_after_days: int) -> bool:
        if loan.next_payment_date is None:
            return False
        return (as_of - loan.next_payment_date).days >= default_after_days

    def _mark_defaulted(self, loan: Loan) -> None:
        self._transition(loan, LoanStatus.DEFAULTED)
        self.admin_log.add_admin_log(SYSTEM_ADMIN_ID, "System", AdminAction.LOAN_DEFAULTED,
                                     f"Loan {loan.id} defaulted with {loan.remaining_amount.to_string()} outstanding",
                                     target_member=loan.member_id, amount=loan.remaining_amount.amount)
        logger.warning("Loan %s defaulted", loan.id,
                       extra={'member_id': loan.member_id, 'action': 'loan_defaulted',
                              'resource': f"loan:{loan.id}"})

    def mark_defaults(self, as_of: Optional[date] = None,
                      default_after_days: Optional[int] = None) -> List[Loan]:
        """Move approved loans unpaid for default_after_days past their due date to defaulted"""
        as_of = as_of or date.today()
        threshold = self.default_after_days if default_after_days is None else default_after_days
        defaulted = []
        with self.storage.atomic():
            for loan in self.list_loans(status=LoanStatus.APPROVED):
                if self._is_in_default(loan, as_of, threshold):
                    self._mark_defaulted(loan)
                    self.save(loan)
                    defaulted.append(loan)
        return defaulted

    def get_loan_summary(self, currency: Currency = Currency.NGN) -> Dict[str, Any]:
        loans = self.list_loans()
        zero = Money.zero(currency)
        disbursed = [loan for loan in loans
                     if loan.status in (LoanStatus.APPROVED, LoanStatus.REPAID, LoanStatus.DEFAULTED)]
        return {
            'total_loans': len(loans),
            'pending': len([loan for loan in loans if loan.status == LoanStatus.PENDING]),
            'active': len([loan for loan in loans if loan.status == LoanStatus.APPROVED]),
            'repaid': len([loan for loan in loans if loan.status == LoanStatus.REPAID]),
            'defaulted': len([loan for loan in loans if loan.status == LoanStatus.DEFAULTED]),
            'total_disbursed': sum((loan.amount for loan in disbursed), zero),
            'total_repaid': sum((loan.amount_repaid() for loan in disbursed), zero),
            'outstanding': sum((loan.remaining_amount for loan in loans
                                if loan.status == LoanStatus.APPROVED), zero),
            'total_fines': sum((loan.fines for loan in loans), zero),
        }
