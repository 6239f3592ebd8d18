"""
Service container and shared API dependencies
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException, Request

from ..config import CooperativeConfig, get_config
from ..currency import Currency, Money, to_money
from ..storage import InMemoryStorage, StorageInterface, create_storage
from ..tenancy import CooperativeManager, TenantAwareStorage
from ..admin_log import AdminLog
from ..notifications import NotificationCenter, WebhookDelivery
from ..members import MemberRegistry
from ..loans import LoanManager
from ..approvals import ApprovalQueue
from ..investments import InvestmentManager
from ..applications import LoanApplicationService
from ..guarantors import GuarantorWorkflow
from ..fines import FineEngine, FinePolicy
from ..errors import (
    CooperativeError, EligibilityError, GuarantorNotEligibleError, InvalidTransitionError,
    NotFoundError, TenantError, ValidationError
)


APPLICATION_FAILED = "Loan application failed, please try again"


class CooperativeSystem:
    """Cooperative services wired over one storage backend"""

    def __init__(self, config: Optional[CooperativeConfig] = None,
                 storage: Optional[StorageInterface] = None, use_sqlite: Optional[bool] = None):
        self.config = config or get_config()
        if storage is None:
            if use_sqlite is False:
                storage = InMemoryStorage()
            else:
                storage = create_storage(self.config.database_url, self.config.use_sqlite)

        self.raw_storage = storage
        self.storage = TenantAwareStorage(storage)
        self.currency = Currency[self.config.currency]

        webhook = None
        if self.config.notification_webhook_url:
            webhook = WebhookDelivery(self.config.notification_webhook_url,
                                      self.config.notification_webhook_timeout)

        self.cooperatives = CooperativeManager(self.raw_storage)
        self.admin_log = AdminLog(self.storage, enabled=self.config.enable_admin_log)
        self.notifications = NotificationCenter(self.storage, webhook)
        self.members = MemberRegistry(
            self.storage, self.admin_log, self.currency,
            search_limit=self.config.guarantor_search_limit,
            at_risk_after_days=self.config.at_risk_after_days,
            recently_inactive_after_days=self.config.recently_inactive_after_days,
            dormant_after_days=self.config.dormant_after_days,
        )
        self.loans = LoanManager(self.storage, self.members, self.notifications, self.admin_log,
                                 default_after_days=self.config.default_after_days)
        self.approvals = ApprovalQueue(self.storage, self.members, self.loans, self.admin_log)
        self.investments = InvestmentManager(self.storage, self.members, self.notifications,
                                             self.approvals, self.admin_log)
        self.applications = LoanApplicationService(
            self.storage, self.members, self.loans, self.notifications, self.approvals,
            self.admin_log,
            interest_rate=Decimal(self.config.loan_interest_rate),
            allowed_durations=self.config.allowed_loan_durations,
            max_loan_amount=Money(Decimal(self.config.max_loan_amount), self.currency),
            currency=self.currency,
        )
        self.guarantors = GuarantorWorkflow(self.storage, self.members, self.loans,
                                            self.notifications, self.admin_log)
        self.fines = FineEngine(
            self.storage, self.members, self.loans, self.notifications, self.admin_log,
            policy=FinePolicy(
                percentage=Decimal(self.config.fine_percentage),
                grace_period_days=self.config.grace_period_days,
                enabled=self.config.fines_enabled,
            ),
            currency=self.currency,
        )

    def money(self, amount) -> Money:
        """Parse a request amount such as "50000" or "₦50,000" """
        try:
            return to_money(amount, self.currency)
        except ValueError as e:
            raise ValidationError(str(e))

    def close(self) -> None:
        self.raw_storage.close()


def get_system(request: Request) -> CooperativeSystem:
    return request.app.state.system


def http_error(error: CooperativeError) -> HTTPException:
    """Map a domain error onto an HTTP error response"""
    if isinstance(error, EligibilityError):
        return HTTPException(status_code=422, detail=error.reason)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidTransitionError, GuarantorNotEligibleError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, TenantError):
        return HTTPException(status_code=403, detail=str(error))
    # ValidationError, TermsNotAcceptedError and the rest
    return HTTPException(status_code=400, detail=str(error))


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")
