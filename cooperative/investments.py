"""
Investment Module

Cooperative investment products (livestock, farm produce, equipment) sold in
units. A member applies for a number of units; once the application is
approved the full price is added to the member's investment balance and paid
off in equal weekly instalments over the product's term.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from enum import Enum
import logging

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, next_sequential_id
from .members import MemberRegistry
from .notifications import NotificationCenter, NotificationType
from .approvals import Approval, ApprovalPriority, ApprovalQueue, ApprovalType
from .admin_log import AdminLog, AdminAction, SYSTEM_ADMIN_ID
from .errors import InvalidTransitionError, NotFoundError, ValidationError


logger = logging.getLogger("cooperative.investments")


class InvestmentStatus(Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class InvestmentApplicationStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


@dataclass
class Investment(StorageRecord):
    product_name: str
    description: str
    unit_price: Money
    total_weeks: int
    total_units: int
    available_units: int
    status: InvestmentStatus = InvestmentStatus.ACTIVE
    product_images: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'product_name': self.product_name,
            'description': self.description,
            'unit_price': str(self.unit_price.amount),
            'currency': self.unit_price.currency.code,
            'total_weeks': self.total_weeks,
            'total_units': self.total_units,
            'available_units': self.available_units,
            'status': self.status.value,
            'product_images': list(self.product_images),
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Investment':
        return cls(
            **cls.base_kwargs(data),
            product_name=data['product_name'],
            description=data['description'],
            unit_price=Money(Decimal(data['unit_price']), Currency[data.get('currency', 'NGN')]),
            total_weeks=data['total_weeks'],
            total_units=data['total_units'],
            available_units=data['available_units'],
            status=InvestmentStatus(data['status']),
            product_images=data.get('product_images', []),
        )


@dataclass
class InvestmentApplication(StorageRecord):
    investment_id: str
    product_name: str
    member_id: str
    member_name: str
    quantity: int
    total_amount: Money
    weekly_payment: Money
    remaining_amount: Money
    weeks_remaining: int
    status: InvestmentApplicationStatus = InvestmentApplicationStatus.PENDING
    decided_by: Optional[str] = None
    decided_on: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'investment_id': self.investment_id,
            'product_name': self.product_name,
            'member_id': self.member_id,
            'member_name': self.member_name,
            'quantity': self.quantity,
            'currency': self.total_amount.currency.code,
            'total_amount': str(self.total_amount.amount),
            'weekly_payment': str(self.weekly_payment.amount),
            'remaining_amount': str(self.remaining_amount.amount),
            'weeks_remaining': self.weeks_remaining,
            'status': self.status.value,
            'decided_by': self.decided_by,
            'decided_on': self.decided_on.isoformat() if self.decided_on else None,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InvestmentApplication':
        currency = Currency[data.get('currency', 'NGN')]
        return cls(
            **cls.base_kwargs(data),
            investment_id=data['investment_id'],
            product_name=data['product_name'],
            member_id=data['member_id'],
            member_name=data['member_name'],
            quantity=data['quantity'],
            total_amount=Money(Decimal(data['total_amount']), currency),
            weekly_payment=Money(Decimal(data['weekly_payment']), currency),
            remaining_amount=Money(Decimal(data['remaining_amount']), currency),
            weeks_remaining=data['weeks_remaining'],
            status=InvestmentApplicationStatus(data['status']),
            decided_by=data.get('decided_by'),
            decided_on=date.fromisoformat(data['decided_on']) if data.get('decided_on') else None,
        )


class InvestmentManager:
    """Investment products, member applications and weekly contributions"""

    TABLE = "investments"
    APPLICATIONS_TABLE = "investment_applications"

    def __init__(self, storage: StorageInterface, members: MemberRegistry,
                 notifications: NotificationCenter, approvals: ApprovalQueue, admin_log: AdminLog):
        self.storage = storage
        self.members = members
        self.notifications = notifications
        self.approvals = approvals
        self.admin_log = admin_log
        approvals.register_handler(ApprovalType.INVESTMENT, self._decide_from_queue)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_investment(self, product_name: str, description: str, unit_price: Money,
                          total_weeks: int, total_units: int,
                          product_images: Optional[List[str]] = None,
                          admin_id: str = SYSTEM_ADMIN_ID, admin_name: str = "Admin") -> Investment:
        if not product_name or not product_name.strip():
            raise ValidationError("Product name is required")
        if not unit_price.is_positive():
            raise ValidationError("Unit price must be greater than zero")
        if total_weeks < 1:
            raise ValidationError("Investment term must be at least one week")
        if total_units < 1:
            raise ValidationError("An investment needs at least one unit")

        now = datetime.now(timezone.utc)
        investment = Investment(
            id=next_sequential_id(self.storage, self.TABLE, "INV"),
            created_at=now,
            updated_at=now,
            product_name=product_name.strip(),
            description=description,
            unit_price=unit_price,
            total_weeks=total_weeks,
            total_units=total_units,
            available_units=total_units,
            product_images=product_images or [],
        )
        with self.storage.atomic():
            self._save(investment)
            self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.INVESTMENT_CREATED,
                                         f"Created investment: {investment.product_name}")
        logger.info("Investment %s created", investment.id,
                    extra={'action': 'investment_created', 'resource': f"investment:{investment.id}"})
        return investment

    def get_investment(self, investment_id: str) -> Optional[Investment]:
        data = self.storage.load(self.TABLE, investment_id)
        return Investment.from_dict(data) if data else None

    def require_investment(self, investment_id: str) -> Investment:
        investment = self.get_investment(investment_id)
        if not investment:
            raise NotFoundError(f"Investment {investment_id} not found")
        return investment

    def list_investments(self, status: Optional[InvestmentStatus] = None) -> List[Investment]:
        filters = {'status': status.value} if status else {}
        return [Investment.from_dict(d) for d in self.storage.find(self.TABLE, filters)]

    def close_investment(self, investment_id: str) -> Investment:
        investment = self.require_investment(investment_id)
        investment.status = InvestmentStatus.CLOSED
        investment.touch()
        self._save(investment)
        return investment

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def apply_for_investment(self, investment_id: str, member_id: str, quantity: int) -> InvestmentApplication:
        """Apply for units of an active product; units are only taken on approval"""
        investment = self.require_investment(investment_id)
        member = self.members.require_member(member_id)
        if investment.status != InvestmentStatus.ACTIVE:
            raise ValidationError(f"{investment.product_name} is closed to new applications")
        if not member.is_active:
            raise ValidationError(f"Member {member_id} is {member.status.value}")
        if quantity < 1:
            raise ValidationError("Quantity must be at least one unit")
        if quantity > investment.available_units:
            raise ValidationError(
                f"Only {investment.available_units} units of {investment.product_name} are available"
            )

        total = investment.unit_price * quantity
        now = datetime.now(timezone.utc)
        application = InvestmentApplication(
            id=next_sequential_id(self.storage, self.APPLICATIONS_TABLE, "INVAPP"),
            created_at=now,
            updated_at=now,
            investment_id=investment.id,
            product_name=investment.product_name,
            member_id=member.id,
            member_name=member.name,
            quantity=quantity,
            total_amount=total,
            weekly_payment=(total / investment.total_weeks).round_whole(),
            remaining_amount=total,
            weeks_remaining=investment.total_weeks,
        )
        with self.storage.atomic():
            self._save_application(application)
            self.approvals.submit(
                ApprovalType.INVESTMENT, member.id, member.name,
                amount=total.amount,
                details=f"{quantity} x {investment.product_name}",
                related_id=application.id,
                priority=ApprovalPriority.MEDIUM,
            )
        logger.info("Investment application %s for %s", application.id, investment.id,
                    extra={'member_id': member.id, 'action': 'investment_application'})
        return application

    def get_application(self, application_id: str) -> Optional[InvestmentApplication]:
        data = self.storage.load(self.APPLICATIONS_TABLE, application_id)
        return InvestmentApplication.from_dict(data) if data else None

    def require_application(self, application_id: str) -> InvestmentApplication:
        application = self.get_application(application_id)
        if not application:
            raise NotFoundError(f"Investment application {application_id} not found")
        return application

    def list_applications(self, investment_id: Optional[str] = None, member_id: Optional[str] = None,
                          status: Optional[InvestmentApplicationStatus] = None) -> List[InvestmentApplication]:
        filters: Dict[str, Any] = {}
        if investment_id:
            filters['investment_id'] = investment_id
        if member_id:
            filters['member_id'] = member_id
        if status:
            filters['status'] = status.value
        return [InvestmentApplication.from_dict(d) for d in self.storage.find(self.APPLICATIONS_TABLE, filters)]

    def approve_application(self, application_id: str, admin_id: str = SYSTEM_ADMIN_ID,
                            admin_name: str = "Admin", notes: Optional[str] = None,
                            approved_on: Optional[date] = None) -> InvestmentApplication:
        """
        Approve a pending application.

        Takes the units from the product (closing it when none are left) and
        adds the full price to the member's investment balance.
        """
        application = self._require_pending(application_id)
        investment = self.require_investment(application.investment_id)
        if application.quantity > investment.available_units:
            raise InvalidTransitionError(
                f"Only {investment.available_units} units of {investment.product_name} remain"
            )

        with self.storage.atomic():
            investment.available_units -= application.quantity
            if investment.available_units == 0:
                investment.status = InvestmentStatus.CLOSED
            investment.touch()
            self._save(investment)

            application.status = InvestmentApplicationStatus.APPROVED
            application.decided_by = admin_id
            application.decided_on = approved_on or date.today()
            application.touch()
            self._save_application(application)

            member = self.members.require_member(application.member_id)
            member.investment_balance = member.investment_balance + application.total_amount
            member.touch()
            self.members.save(member)

            self.notifications.notify(
                member.id, NotificationType.INVESTMENT, "Investment Approved",
                f"Your application for {application.quantity} x {application.product_name} was approved. "
                f"Weekly contribution: {application.weekly_payment.to_string()} "
                f"for {application.weeks_remaining} weeks.",
                related_id=application.id,
            )
            self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.INVESTMENT_APPROVED,
                                         f"Approved investment: {member.name} - {application.product_name}",
                                         target_member=member.id, amount=application.total_amount.amount)
            self.approvals.settle_related(application.id, True, admin_id, admin_name, notes)

        logger.info("Investment application %s approved", application.id,
                    extra={'member_id': application.member_id, 'action': 'investment_approved'})
        return application

    def reject_application(self, application_id: str, admin_id: str = SYSTEM_ADMIN_ID,
                           admin_name: str = "Admin", reason: Optional[str] = None) -> InvestmentApplication:
        application = self._require_pending(application_id)
        with self.storage.atomic():
            application.status = InvestmentApplicationStatus.REJECTED
            application.decided_by = admin_id
            application.decided_on = date.today()
            application.touch()
            self._save_application(application)

            message = f"Your application for {application.product_name} was not approved."
            if reason:
                message += f" Reason: {reason}"
            self.notifications.notify(application.member_id, NotificationType.INVESTMENT,
                                      "Investment Rejected", message, related_id=application.id)
            self.admin_log.add_admin_log(admin_id, admin_name, AdminAction.INVESTMENT_REJECTED,
                                         f"Rejected investment: {application.member_name} - "
                                         f"{application.product_name}",
                                         target_member=application.member_id)
            self.approvals.settle_related(application.id, False, admin_id, admin_name, reason)
        return application

    def record_contribution(self, application_id: str, amount: Money,
                            paid_on: Optional[date] = None) -> InvestmentApplication:
        """Weekly payment towards an approved investment"""
        application = self.require_application(application_id)
        if application.status != InvestmentApplicationStatus.APPROVED:
            raise InvalidTransitionError(
                f"Investment application {application_id} is {application.status.value}"
            )
        if not amount.is_positive():
            raise ValidationError("Contribution must be greater than zero")
        if amount > application.remaining_amount:
            raise ValidationError(
                f"Contribution {amount.to_string()} exceeds outstanding "
                f"{application.remaining_amount.to_string()}"
            )

        weeks_covered = 1
        if application.weekly_payment.is_positive():
            weeks_covered = max(1, int(amount.amount // application.weekly_payment.amount))

        with self.storage.atomic():
            application.remaining_amount = application.remaining_amount - amount
            application.weeks_remaining = max(0, application.weeks_remaining - weeks_covered)
            if application.remaining_amount.is_zero():
                application.status = InvestmentApplicationStatus.COMPLETED
                application.weeks_remaining = 0
            application.touch()
            self._save_application(application)
            self.members.record_activity(application.member_id, paid_on)
        return application

    def _decide_from_queue(self, approval: Approval, approved: bool, admin_id: str, admin_name: str,
                           notes: Optional[str]) -> None:
        if not approval.related_id:
            return
        if approved:
            self.approve_application(approval.related_id, admin_id, admin_name, notes=notes)
        else:
            self.reject_application(approval.related_id, admin_id, admin_name, reason=notes)

    def _require_pending(self, application_id: str) -> InvestmentApplication:
        application = self.require_application(application_id)
        if application.status != InvestmentApplicationStatus.PENDING:
            raise InvalidTransitionError(
                f"Investment application {application_id} is already {application.status.value}"
            )
        return application

    def _save(self, investment: Investment) -> None:
        self.storage.save(self.TABLE, investment.id, investment.to_dict())

    def _save_application(self, application: InvestmentApplication) -> None:
        self.storage.save(self.APPLICATIONS_TABLE, application.id, application.to_dict())
