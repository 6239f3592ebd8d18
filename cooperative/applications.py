"""
Loan Application Intake Module

Turns a member's request (amount, purpose, duration, nominated guarantors)
into a pending loan:

1. Draft validation: required fields, allowed durations, amount limits and
   the combined savings rule deciding whether one or two guarantors are
   needed. Nothing is written when validation fails.
2. Eligibility: the borrower must be active, without another pending or
   approved loan, without an outstanding loan balance, and must not be
   guaranteeing someone else's unpaid loan.
3. Submission: the loan, one guarantor request notification per nominee, the
   admin approval entry and the admin log entry are written in a single
   transaction.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence
import logging

from .currency import Money, Currency
from .storage import StorageInterface
from .members import Member, MemberRegistry
from .loans import Loan, LoanGuarantor, LoanManager, LoanStatus
from .notifications import NotificationCenter, NotificationType
from .approvals import ApprovalQueue, ApprovalType, ApprovalPriority
from .admin_log import AdminLog, AdminAction
from .errors import EligibilityError, ValidationError


logger = logging.getLogger("cooperative.applications")

LOAN_DURATIONS = (6, 12, 18, 24)
DEFAULT_INTEREST_RATE = Decimal('5')
WEEKS_PER_YEAR = 52
HIGH_PRIORITY_AMOUNT = Decimal('200000')


def can_use_one_guarantor(borrower_balance: Money, guarantor1_balance: Money, amount: Money) -> bool:
    """One guarantor suffices when borrower + first guarantor balances cover the loan"""
    return borrower_balance + guarantor1_balance >= amount


def required_guarantor_count(borrower_balance: Money, guarantor1_balance: Money, amount: Money) -> int:
    return 1 if can_use_one_guarantor(borrower_balance, guarantor1_balance, amount) else 2


@dataclass
class LoanTerms:
    monthly_payment: Money
    total_amount: Money
    interest_amount: Money
    weekly_payment: Money
    total_weeks: int


def _whole(value: Decimal) -> Decimal:
    return value.quantize(Decimal('1'), rounding=ROUND_HALF_UP)


def calculate_loan_terms(amount: Money, duration_months: int,
                         interest_rate: Decimal = DEFAULT_INTEREST_RATE) -> LoanTerms:
    """
    Flat-interest repayment terms.

    total = amount * (1 + rate/100 * months/12); instalments are rounded
    half-up to whole currency units. ₦120,000 over 12 months at 5% gives
    ₦6,000 interest, ₦126,000 total and ₦10,500 a month.
    """
    if duration_months <= 0:
        raise ValidationError("Duration must be a positive number of months")

    years = Decimal(duration_months) / Decimal(12)
    total_exact = amount.amount * (Decimal(1) + interest_rate / Decimal(100) * years)
    total_weeks = int(_whole(Decimal(duration_months) * WEEKS_PER_YEAR / Decimal(12)))
    currency = amount.currency

    return LoanTerms(
        monthly_payment=Money(_whole(total_exact / duration_months), currency),
        total_amount=Money(_whole(total_exact), currency),
        interest_amount=Money(_whole(total_exact - amount.amount), currency),
        weekly_payment=Money(_whole(total_exact / total_weeks), currency),
        total_weeks=total_weeks,
    )


@dataclass
class LoanApplicationDraft:
    member_id: str
    amount: Money
    purpose: str
    duration_months: int
    guarantor1_id: Optional[str] = None
    guarantor2_id: Optional[str] = None

    @property
    def guarantor_ids(self) -> List[str]:
        return [gid for gid in (self.guarantor1_id, self.guarantor2_id) if gid]


@dataclass
class EligibilityResult:
    eligible: bool
    reason: Optional[str] = None
    max_eligible_amount: Optional[Money] = None


class LoanApplicationService:
    """Validates, gates and persists loan applications"""

    def __init__(
        self,
        storage: StorageInterface,
        members: MemberRegistry,
        loans: LoanManager,
        notifications: NotificationCenter,
        approvals: ApprovalQueue,
        admin_log: AdminLog,
        interest_rate: Decimal = DEFAULT_INTEREST_RATE,
        allowed_durations: Sequence[int] = LOAN_DURATIONS,
        max_loan_amount: Optional[Money] = None,
        currency: Currency = Currency.NGN
    ):
        self.storage = storage
        self.members = members
        self.loans = loans
        self.notifications = notifications
        self.approvals = approvals
        self.admin_log = admin_log
        self.interest_rate = interest_rate
        self.allowed_durations = tuple(allowed_durations)
        self.max_loan_amount = max_loan_amount
        self.currency = currency

    def check_duration(self, duration_months: int) -> None:
        if duration_months not in self.allowed_durations:
            allowed = ", ".join(str(d) for d in self.allowed_durations)
            raise ValidationError(f"Duration must be one of {allowed} months")

    def calculate_loan_terms(self, amount: Money, duration_months: int) -> LoanTerms:
        """Terms for one of the cooperative's loan durations"""
        self.check_duration(duration_months)
        return calculate_loan_terms(amount, duration_months, self.interest_rate)

    def validate_draft(self, draft: LoanApplicationDraft) -> List[Member]:
        """
        Check a draft before anything is written.

        Returns:
            The resolved guarantor members, in nomination order

        Raises:
            ValidationError: On any missing field or insufficient guarantor coverage
        """
        if not draft.member_id:
            raise ValidationError("Member is required")
        if draft.amount is None or not draft.amount.is_positive():
            raise ValidationError("Loan amount must be greater than zero")
        if self.max_loan_amount is not None and draft.amount > self.max_loan_amount:
            raise ValidationError(f"Loan amount cannot exceed {self.max_loan_amount.to_string()}")
        if not draft.purpose or not draft.purpose.strip():
            raise ValidationError("Loan purpose is required")
        self.check_duration(draft.duration_months)
        if not draft.guarantor1_id:
            raise ValidationError("At least one guarantor is required")
        if draft.member_id in draft.guarantor_ids:
            raise ValidationError("You cannot be your own guarantor")
        if draft.guarantor2_id and draft.guarantor2_id == draft.guarantor1_id:
            raise ValidationError("Guarantors must be two different members")

        borrower = self.members.require_member(draft.member_id)
        guarantors = []
        for guarantor_id in draft.guarantor_ids:
            guarantor = self.members.get_member(guarantor_id)
            if not guarantor:
                raise ValidationError(f"Guarantor {guarantor_id} not found")
            guarantors.append(guarantor)

        if not draft.guarantor2_id and not can_use_one_guarantor(
                borrower.balance, guarantors[0].balance, draft.amount):
            raise ValidationError(
                "Combined savings of borrower and first guarantor do not cover the loan; "
                "a second guarantor is required"
            )
        return guarantors

    def check_loan_eligibility(self, member_id: str, amount: Optional[Money] = None) -> EligibilityResult:
        member = self.members.get_member(member_id)
        if not member:
            return EligibilityResult(False, "Member not found")
        if not member.is_active:
            return EligibilityResult(False, f"Member account is {member.status.value}")

        open_loans = self.loans.loans_for_member(member_id, [LoanStatus.PENDING, LoanStatus.APPROVED])
        if open_loans:
            return EligibilityResult(False, "Member has an active or pending loan application")
        if member.has_loan:
            return EligibilityResult(False, "Member has an outstanding loan balance")
        if member.open_commitments:
            return EligibilityResult(
                False, "Member is guaranteeing a loan that has not been fully repaid"
            )

        if amount is not None and self.max_loan_amount is not None and amount > self.max_loan_amount:
            return EligibilityResult(
                False, f"Requested amount exceeds the maximum of {self.max_loan_amount.to_string()}",
                self.max_loan_amount,
            )
        return EligibilityResult(True, None, self.max_loan_amount)

    def submit(self, draft: LoanApplicationDraft) -> Loan:
        """
        Submit a loan application.

        Raises:
            ValidationError: Draft is incomplete or under-guaranteed
            EligibilityError: Borrower may not take a loan now; carries the reason
        """
        guarantors = self.validate_draft(draft)

        eligibility = self.check_loan_eligibility(draft.member_id, draft.amount)
        if not eligibility.eligible:
            logger.warning("Loan application rejected: %s", eligibility.reason,
                           extra={'member_id': draft.member_id, 'action': 'loan_ineligible'})
            raise EligibilityError(eligibility.reason, eligibility.max_eligible_amount)

        borrower = self.members.require_member(draft.member_id)
        terms = self.calculate_loan_terms(draft.amount, draft.duration_months)

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            loan = Loan(
                id=self.loans.next_id(),
                created_at=now,
                updated_at=now,
                member_id=borrower.id,
                member_name=borrower.name,
                amount=draft.amount,
                purpose=draft.purpose.strip(),
                duration_months=draft.duration_months,
                interest_rate=self.interest_rate,
                total_amount=terms.total_amount,
                interest_amount=terms.interest_amount,
                monthly_payment=terms.monthly_payment,
                weekly_payment=terms.weekly_payment,
                total_weeks=terms.total_weeks,
                status=LoanStatus.PENDING,
                guarantors=[LoanGuarantor(g.id, g.name) for g in guarantors],
                weeks_remaining=terms.total_weeks,
            )
            self.loans.save(loan)

            for guarantor in guarantors:
                self.notifications.notify(
                    guarantor.id,
                    NotificationType.GUARANTOR,
                    f"Guarantor Request from {borrower.name}",
                    f"{borrower.name} has requested you to be a guarantor for a loan of "
                    f"{draft.amount.to_string()} over {draft.duration_months} months "
                    f"for {loan.purpose}.",
                    action_required=True,
                    related_id=loan.id,
                    borrower_id=borrower.id,
                    metadata={'loan_amount': str(draft.amount.amount)},
                )

            priority = ApprovalPriority.HIGH if draft.amount.amount >= HIGH_PRIORITY_AMOUNT \
                else ApprovalPriority.MEDIUM
            self.approvals.submit(ApprovalType.LOAN, borrower.id, borrower.name,
                                  amount=draft.amount.amount, details=loan.purpose,
                                  related_id=loan.id, priority=priority)

            self.admin_log.add_admin_log(borrower.id, borrower.name, AdminAction.LOAN_APPLICATION,
                                         f"New loan application: {borrower.name} - {draft.amount.to_string()}",
                                         target_member=borrower.id, amount=draft.amount.amount)

        logger.info("Loan application %s submitted", loan.id,
                    extra={'member_id': borrower.id, 'action': 'loan_application',
                           'resource': f"loan:{loan.id}"})
        return loan

    def list_applications(self, member_id: Optional[str] = None,
                          status: Optional[LoanStatus] = None) -> List[Loan]:
        applications = self.loans.list_loans(status=status, member_id=member_id)
        return sorted(applications, key=lambda loan: loan.created_at, reverse=True)
