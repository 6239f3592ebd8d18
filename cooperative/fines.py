"""
Automated Fines Module

Batch fine run over approved loans whose next instalment is overdue beyond
the grace period. Each run charges `percentage` of the loan principal to
both the loan and the borrower, at most once per loan per ISO week, so the
batch may be triggered by an admin button or a scheduler without double
charging.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from .currency import Money, Currency
from .storage import StorageInterface
from .members import MemberRegistry
from .loans import Loan, LoanManager, LoanStatus, is_overdue
from .notifications import NotificationCenter, NotificationType
from .admin_log import AdminLog, AdminAction, SYSTEM_ADMIN_ID
from .logging_config import get_logger, log_action
from .errors import ValidationError


@dataclass
class FinePolicy:
    percentage: Decimal = Decimal('2')
    grace_period_days: int = 3
    enabled: bool = True


@dataclass
class FineRunResult:
    period: str
    fined: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    total: Money = None

    def __post_init__(self):
        if self.total is None:
            self.total = Money.zero(Currency.NGN)


def fine_period(as_of: date) -> str:
    """ISO week label, e.g. 2024-W07"""
    year, week, _ = as_of.isocalendar()
    return f"{year}-W{week:02d}"


class FineEngine:

    def __init__(self, storage: StorageInterface, members: MemberRegistry, loans: LoanManager,
                 notifications: NotificationCenter, admin_log: AdminLog,
                 policy: Optional[FinePolicy] = None, currency: Currency = Currency.NGN):
        self.storage = storage
        self.members = members
        self.loans = loans
        self.notifications = notifications
        self.admin_log = admin_log
        self.policy = policy or FinePolicy()
        self.currency = currency
        self.logger = get_logger("cooperative.fines")

    def overdue_loans(self, as_of: Optional[date] = None) -> List[Loan]:
        as_of = as_of or date.today()
        return [loan for loan in self.loans.list_loans(status=LoanStatus.APPROVED)
                if is_overdue(loan, as_of, self.policy.grace_period_days)]

    def potential_fine(self, loan: Loan) -> Money:
        return loan.amount * self.policy.percentage / Decimal(100)

    def update_policy(self, admin_id: str, admin_name: str = "Admin",
                      percentage: Optional[Decimal] = None, grace_period_days: Optional[int] = None,
                      enabled: Optional[bool] = None) -> FinePolicy:
        if percentage is not None and (not percentage.is_finite() or percentage < 0):
            raise ValidationError("Fine percentage must be a non-negative number")
        if percentage is not None:
            self.policy.percentage = percentage
        if grace_period_days is not None:
            self.policy.grace_period_days = grace_period_days
        if enabled is not None:
            self.policy.enabled = enabled
        self.admin_log.add_admin_log(
            admin_id, admin_name, AdminAction.FINE_SETTINGS_UPDATED,
            f"Fine settings: {self.policy.percentage}% after {self.policy.grace_period_days} days, "
            f"{'enabled' if self.policy.enabled else 'disabled'}",
        )
        return self.policy

    def apply_fines(self, as_of: Optional[date] = None, admin_id: str = SYSTEM_ADMIN_ID,
                    admin_name: str = "System") -> FineRunResult:
        as_of = as_of or date.today()
        result = FineRunResult(period=fine_period(as_of), total=Money.zero(self.currency))

        if not self.policy.enabled:
            log_action(self.logger, "info", "Fine run skipped: fines disabled", action="fines_disabled")
            return result

        with self.storage.atomic():
            for loan in self.overdue_loans(as_of):
                if loan.last_fined_period == result.period:
                    result.skipped.append(loan.id)
                    continue

                fine = self.potential_fine(loan)
                loan.fines = loan.fines + fine
                loan.last_fined_period = result.period
                loan.touch()
                self.loans.save(loan)
                self.members.add_fine(loan.member_id, fine)

                self.notifications.notify(
                    loan.member_id, NotificationType.FINE, "Late Payment Fine",
                    f"A fine of {fine.to_string()} was charged on loan {loan.id} "
                    f"for a payment overdue since {loan.next_payment_date.isoformat()}.",
                    related_id=loan.id,
                )
                result.fined.append(loan.id)
                result.total = result.total + fine

            if result.fined:
                self.admin_log.add_admin_log(
                    admin_id, admin_name, AdminAction.FINES_APPLIED,
                    f"Applied fines to {len(result.fined)} loans for {result.period}",
                    amount=result.total.amount,
                )

        log_action(
            self.logger, "info", f"Fine run {result.period}: {len(result.fined)} fined",
            action="fines_applied",
            extra={
                "period": result.period,
                "fined": result.fined,
                "skipped": result.skipped,
                "total": result.total.to_string(),
            }
        )
        return result

    def run_scheduled(self, as_of: Optional[date] = None) -> FineRunResult:
        """Entry point for a periodic job"""
        return self.apply_fines(as_of)
