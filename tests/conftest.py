"""
Shared fixtures: an in-memory cooperative and a standard loan scenario.

Borrower Ada (₦10,000) applies for ₦50,000 over 6 months with Bola (₦45,000)
as sole guarantor; the combined savings rule allows one guarantor.
"""

import pytest
from datetime import date
from decimal import Decimal

from cooperative.config import CooperativeConfig
from cooperative.currency import Money, Currency
from cooperative.api.system import CooperativeSystem
from cooperative.applications import LoanApplicationDraft
from cooperative.guarantors import GuarantorResponse


APPROVAL_DATE = date(2024, 1, 1)


def naira(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.NGN)


@pytest.fixture
def system():
    """Fresh in-memory cooperative with default rules"""
    config = CooperativeConfig(notification_webhook_url="", enable_admin_log=True, fines_enabled=True)
    system = CooperativeSystem(config=config, use_sqlite=False)
    yield system
    system.close()


@pytest.fixture
def make_member(system):
    def _make(name, balance=0, **kwargs):
        return system.members.add_member(
            name=name,
            phone="08030000000",
            opening_balance=naira(balance) if balance else None,
            **kwargs
        )
    return _make


@pytest.fixture
def borrower(make_member):
    return make_member("Ada Obi", 10000)


@pytest.fixture
def guarantor(make_member):
    return make_member("Bola Ade", 45000)


@pytest.fixture
def pending_loan(system, borrower, guarantor):
    draft = LoanApplicationDraft(
        member_id=borrower.id,
        amount=naira(50000),
        purpose="Shop stock",
        duration_months=6,
        guarantor1_id=guarantor.id,
    )
    return system.applications.submit(draft)


@pytest.fixture
def guarantor_request(system, pending_loan, guarantor):
    return system.notifications.pending_guarantor_requests(guarantor.id)[0]


@pytest.fixture
def accepted_loan(system, pending_loan, guarantor, guarantor_request):
    return system.guarantors.respond_to_guarantor_request(
        guarantor_request.id, GuarantorResponse.ACCEPTED, guarantor.id, agreed_to_terms=True
    )


@pytest.fixture
def approved_loan(system, accepted_loan):
    return system.loans.approve_loan(accepted_loan.id, "ADMIN001", "Admin User",
                                     notes="Approved at meeting", approved_on=APPROVAL_DATE)
