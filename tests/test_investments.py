"""
Tests for investment products and member applications
"""

import pytest
from datetime import date
from decimal import Decimal

from cooperative.currency import Money
from cooperative.investments import InvestmentApplicationStatus, InvestmentStatus
from cooperative.approvals import ApprovalStatus, ApprovalType
from cooperative.notifications import NotificationType
from cooperative.admin_log import AdminAction
from cooperative.errors import InvalidTransitionError, NotFoundError, ValidationError


def naira(amount) -> Money:
    return Money(Decimal(str(amount)))


@pytest.fixture
def goats(system):
    return system.investments.create_investment("Goat rearing", "Two goats per unit", naira(15000),
                                                total_weeks=10, total_units=5)


@pytest.fixture
def application(system, goats, borrower):
    return system.investments.apply_for_investment(goats.id, borrower.id, 2)


class TestProducts:

    def test_create(self, system, goats):
        assert goats.id == "INV001"
        assert goats.available_units == 5
        assert goats.status == InvestmentStatus.ACTIVE
        assert system.admin_log.list_entries(AdminAction.INVESTMENT_CREATED)

    def test_invalid_product(self, system):
        with pytest.raises(ValidationError):
            system.investments.create_investment("Poultry", "", naira(0), 10, 5)
        with pytest.raises(ValidationError):
            system.investments.create_investment("Poultry", "", naira(5000), 0, 5)

    def test_missing_product(self, system, borrower):
        with pytest.raises(NotFoundError):
            system.investments.apply_for_investment("INV404", borrower.id, 1)


class TestApplications:

    def test_apply_queues_approval(self, system, application, borrower):
        assert application.total_amount == naira(30000)
        assert application.weekly_payment == naira(3000)
        assert application.weeks_remaining == 10
        approval = system.approvals.for_related(application.id)
        assert approval.approval_type == ApprovalType.INVESTMENT
        assert approval.amount == Decimal('30000.00')
        assert system.members.get_member(borrower.id).investment_balance.is_zero()

    def test_quantity_checks(self, system, goats, borrower):
        with pytest.raises(ValidationError):
            system.investments.apply_for_investment(goats.id, borrower.id, 0)
        with pytest.raises(ValidationError, match="Only 5 units"):
            system.investments.apply_for_investment(goats.id, borrower.id, 6)

    def test_closed_product(self, system, goats, borrower):
        system.investments.close_investment(goats.id)
        with pytest.raises(ValidationError, match="closed"):
            system.investments.apply_for_investment(goats.id, borrower.id, 1)

    def test_queue_approval_credits_investment_balance(self, system, goats, application, borrower):
        approval = system.approvals.for_related(application.id)
        decided = system.approvals.approve(approval.id, "ADMIN001", "Admin User")
        assert decided.status == ApprovalStatus.APPROVED

        assert system.investments.get_application(application.id).status == InvestmentApplicationStatus.APPROVED
        assert system.members.get_member(borrower.id).investment_balance == naira(30000)
        assert system.investments.get_investment(goats.id).available_units == 3
        inbox = system.notifications.list_for_member(borrower.id, notification_type=NotificationType.INVESTMENT)
        assert [n.title for n in inbox] == ["Investment Approved"]
        assert len(system.admin_log.list_entries(AdminAction.APPROVAL_DECIDED)) == 1

    def test_direct_approval_settles_queue(self, system, application):
        system.investments.approve_application(application.id, "ADMIN001")
        assert system.approvals.for_related(application.id).status == ApprovalStatus.APPROVED
        with pytest.raises(InvalidTransitionError):
            system.investments.approve_application(application.id, "ADMIN001")

    def test_rejection_through_queue(self, system, application, borrower):
        approval = system.approvals.for_related(application.id)
        system.approvals.reject(approval.id, "ADMIN001", notes="Product oversubscribed")
        assert system.investments.get_application(application.id).status == InvestmentApplicationStatus.REJECTED
        assert system.members.get_member(borrower.id).investment_balance.is_zero()

    def test_last_units_close_product(self, system, goats, borrower, guarantor):
        first = system.investments.apply_for_investment(goats.id, borrower.id, 3)
        second = system.investments.apply_for_investment(goats.id, guarantor.id, 3)
        system.investments.approve_application(first.id)
        with pytest.raises(InvalidTransitionError, match="Only 2 units"):
            system.investments.approve_application(second.id)

        third = system.investments.apply_for_investment(goats.id, guarantor.id, 2)
        system.investments.approve_application(third.id)
        assert system.investments.get_investment(goats.id).status == InvestmentStatus.CLOSED

    def test_list_applications(self, system, application, borrower, guarantor, goats):
        system.investments.apply_for_investment(goats.id, guarantor.id, 1)
        assert len(system.investments.list_applications(investment_id=goats.id)) == 2
        assert [a.id for a in system.investments.list_applications(member_id=borrower.id)] == [application.id]


class TestContributions:

    @pytest.fixture
    def approved(self, system, application):
        return system.investments.approve_application(application.id, "ADMIN001")

    def test_weekly_contribution(self, system, approved, borrower):
        updated = system.investments.record_contribution(approved.id, naira(6000), paid_on=date(2024, 3, 4))
        assert updated.remaining_amount == naira(24000)
        assert updated.weeks_remaining == 8
        assert system.members.get_member(borrower.id).last_activity_date == date(2024, 3, 4)

    def test_final_contribution_completes(self, system, approved):
        updated = system.investments.record_contribution(approved.id, naira(30000))
        assert updated.status == InvestmentApplicationStatus.COMPLETED
        assert updated.weeks_remaining == 0

    def test_overpayment_refused(self, system, approved):
        with pytest.raises(ValidationError):
            system.investments.record_contribution(approved.id, naira(30001))

    def test_pending_application_refuses_contributions(self, system, application):
        with pytest.raises(InvalidTransitionError):
            system.investments.record_contribution(application.id, naira(3000))
