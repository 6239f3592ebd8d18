"""
Test suite for loan application intake

Covers the combined savings rule, loan terms, draft validation, eligibility
and the transactional submission of a loan with its guarantor requests.
"""

import pytest
from decimal import Decimal
from unittest.mock import patch

from cooperative.currency import Money
from cooperative.applications import (
    LoanApplicationDraft, can_use_one_guarantor, required_guarantor_count, calculate_loan_terms
)
from cooperative.loans import GuarantorStatus, LoanStatus
from cooperative.members import GuarantorCommitment
from cooperative.notifications import NotificationType, WebhookDelivery
from cooperative.approvals import ApprovalType, ApprovalPriority
from cooperative.admin_log import AdminAction
from cooperative.errors import EligibilityError, ValidationError


def naira(amount) -> Money:
    return Money(Decimal(str(amount)))


def draft_for(borrower, guarantor1=None, guarantor2=None, amount=50000, duration=6, purpose="Shop stock"):
    return LoanApplicationDraft(
        member_id=borrower.id,
        amount=naira(amount),
        purpose=purpose,
        duration_months=duration,
        guarantor1_id=guarantor1.id if guarantor1 else None,
        guarantor2_id=guarantor2.id if guarantor2 else None,
    )


class TestCombinedSavingsRule:

    def test_second_guarantor_required_when_short(self):
        # 10,000 + 30,000 < 50,000
        assert not can_use_one_guarantor(naira(10000), naira(30000), naira(50000))
        assert required_guarantor_count(naira(10000), naira(30000), naira(50000)) == 2

    def test_one_guarantor_when_covered(self):
        # 10,000 + 45,000 >= 50,000
        assert can_use_one_guarantor(naira(10000), naira(45000), naira(50000))
        assert required_guarantor_count(naira(10000), naira(45000), naira(50000)) == 1

    def test_exact_cover_is_enough(self):
        assert can_use_one_guarantor(naira(20000), naira(30000), naira(50000))


class TestLoanTerms:

    def test_twelve_month_terms(self):
        terms = calculate_loan_terms(naira(120000), 12)
        assert terms.interest_amount == naira(6000)
        assert terms.total_amount == naira(126000)
        assert terms.monthly_payment == naira(10500)
        assert terms.total_weeks == 52
        assert terms.weekly_payment == naira(2423)

    def test_six_month_terms_round_to_whole_naira(self):
        terms = calculate_loan_terms(naira(50000), 6)
        assert terms.total_amount == naira(51250)
        assert terms.interest_amount == naira(1250)
        assert terms.monthly_payment == naira(8542)
        assert terms.total_weeks == 26
        assert terms.weekly_payment == naira(1971)

    @pytest.mark.parametrize("months,weeks", [(6, 26), (12, 52), (18, 78), (24, 104)])
    def test_weeks_per_duration(self, months, weeks):
        assert calculate_loan_terms(naira(10000), months).total_weeks == weeks

    def test_custom_rate(self):
        terms = calculate_loan_terms(naira(100000), 24, Decimal('10'))
        assert terms.total_amount == naira(120000)

    def test_invalid_duration(self):
        with pytest.raises(ValidationError):
            calculate_loan_terms(naira(1000), 0)


class TestDraftValidation:

    @pytest.mark.parametrize("changes,message", [
        ({'amount': 0}, "greater than zero"),
        ({'amount': 600000}, "cannot exceed"),
        ({'purpose': "   "}, "purpose is required"),
        ({'duration': 9}, "Duration must be one of"),
    ])
    def test_rejects_bad_fields(self, system, borrower, guarantor, changes, message):
        with pytest.raises(ValidationError, match=message):
            system.applications.validate_draft(draft_for(borrower, guarantor, **changes))

    def test_requires_first_guarantor(self, system, borrower):
        with pytest.raises(ValidationError, match="At least one guarantor"):
            system.applications.validate_draft(draft_for(borrower))

    def test_borrower_cannot_guarantee_self(self, system, borrower):
        with pytest.raises(ValidationError, match="own guarantor"):
            system.applications.validate_draft(draft_for(borrower, borrower))

    def test_guarantors_must_differ(self, system, borrower, guarantor):
        with pytest.raises(ValidationError, match="different members"):
            system.applications.validate_draft(draft_for(borrower, guarantor, guarantor))

    def test_unknown_guarantor(self, system, borrower, guarantor):
        draft = draft_for(borrower, guarantor)
        draft.guarantor1_id = "MEM404"
        with pytest.raises(ValidationError, match="not found"):
            system.applications.validate_draft(draft)

    def test_second_guarantor_required_when_savings_short(self, system, borrower, make_member):
        weak = make_member("Chidi Okafor", 30000)
        with pytest.raises(ValidationError, match="second guarantor is required"):
            system.applications.validate_draft(draft_for(borrower, weak))

    def test_second_guarantor_satisfies_rule(self, system, borrower, make_member):
        weak = make_member("Chidi Okafor", 30000)
        other = make_member("Dayo Ige", 5000)
        guarantors = system.applications.validate_draft(draft_for(borrower, weak, other))
        assert [g.id for g in guarantors] == [weak.id, other.id]


class TestEligibility:

    def test_eligible_member(self, system, borrower):
        result = system.applications.check_loan_eligibility(borrower.id, naira(50000))
        assert result.eligible
        assert result.reason is None
        assert result.max_eligible_amount == naira(500000)

    def test_missing_member(self, system):
        result = system.applications.check_loan_eligibility("MEM404")
        assert not result.eligible
        assert result.reason == "Member not found"

    def test_suspended_member(self, system, borrower):
        system.members.suspend_member(borrower.id)
        result = system.applications.check_loan_eligibility(borrower.id)
        assert result.reason == "Member account is suspended"

    def test_pending_loan_blocks_new_application(self, system, borrower, pending_loan):
        result = system.applications.check_loan_eligibility(borrower.id, naira(1000))
        assert not result.eligible
        assert result.reason == "Member has an active or pending loan application"

    def test_outstanding_loan_balance(self, system, borrower):
        member = system.members.get_member(borrower.id)
        member.loan_balance = naira(100)
        system.members.save(member)
        assert system.applications.check_loan_eligibility(borrower.id).reason == \
            "Member has an outstanding loan balance"

    def test_guarantor_with_open_commitment_cannot_borrow(self, system, guarantor):
        system.members.add_guarantor_commitment(
            guarantor.id, GuarantorCommitment("LOAN001", "MEM001", "Ada Obi", naira(50000), naira(51250))
        )
        result = system.applications.check_loan_eligibility(guarantor.id, naira(1000))
        assert not result.eligible
        assert "guaranteeing" in result.reason

    def test_amount_above_maximum(self, system, borrower):
        result = system.applications.check_loan_eligibility(borrower.id, naira(750000))
        assert not result.eligible
        assert result.max_eligible_amount == naira(500000)


class TestSubmission:

    def test_creates_pending_loan(self, system, pending_loan, borrower, guarantor):
        assert pending_loan.id == "LOAN001"
        assert pending_loan.status == LoanStatus.PENDING
        assert pending_loan.member_name == "Ada Obi"
        assert pending_loan.total_amount == naira(51250)
        assert pending_loan.weekly_payment == naira(1971)
        assert [(g.member_id, g.status) for g in pending_loan.guarantors] == \
            [(guarantor.id, GuarantorStatus.PENDING)]
        assert system.loans.get_loan("LOAN001").purpose == "Shop stock"

    def test_notifies_each_guarantor_with_foreign_keys(self, system, pending_loan, borrower, guarantor):
        requests = system.notifications.pending_guarantor_requests(guarantor.id)
        assert len(requests) == 1
        request = requests[0]
        assert request.notification_type == NotificationType.GUARANTOR
        assert request.title == "Guarantor Request from Ada Obi"
        assert request.related_id == pending_loan.id
        assert request.borrower_id == borrower.id
        assert request.action_required

    def test_two_guarantors_both_notified(self, system, borrower, make_member):
        weak = make_member("Chidi Okafor", 30000)
        other = make_member("Dayo Ige", 5000)
        loan = system.applications.submit(draft_for(borrower, weak, other))
        assert len(loan.guarantors) == 2
        assert len(system.notifications.for_related(loan.id)) == 2

    def test_queues_admin_approval_and_logs(self, system, pending_loan, borrower):
        approvals = system.approvals.list()
        assert len(approvals) == 1
        assert approvals[0].approval_type == ApprovalType.LOAN
        assert approvals[0].related_id == pending_loan.id
        assert approvals[0].priority == ApprovalPriority.MEDIUM
        entries = system.admin_log.list_entries(AdminAction.LOAN_APPLICATION)
        assert entries[0].target_member == borrower.id

    def test_large_loan_is_high_priority(self, system, make_member):
        borrower = make_member("Big Borrower", 200000)
        guarantor = make_member("Big Guarantor", 100000)
        system.applications.submit(draft_for(borrower, guarantor, amount=250000, duration=12))
        assert system.approvals.list()[0].priority == ApprovalPriority.HIGH

    def test_ineligible_submission_raises_reason(self, system, pending_loan, borrower, guarantor):
        with pytest.raises(EligibilityError) as excinfo:
            system.applications.submit(draft_for(borrower, guarantor))
        assert excinfo.value.reason == "Member has an active or pending loan application"
        assert len(system.loans.list_loans()) == 1

    def test_validation_failure_writes_nothing(self, system, borrower, make_member):
        weak = make_member("Chidi Okafor", 30000)
        with pytest.raises(ValidationError):
            system.applications.submit(draft_for(borrower, weak))
        assert system.loans.list_loans() == []
        assert system.notifications.list_for_member(weak.id) == []

    def test_failure_mid_submission_rolls_back(self, system, borrower, guarantor, monkeypatch):
        def broken_notify(*args, **kwargs):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr(system.notifications, "notify", broken_notify)
        with pytest.raises(RuntimeError):
            system.applications.submit(draft_for(borrower, guarantor))

        assert system.loans.list_loans() == []
        assert system.approvals.list() == []
        assert system.admin_log.list_entries(AdminAction.LOAN_APPLICATION) == []

    def test_gateway_not_told_about_rolled_back_submission(self, system, borrower, guarantor, monkeypatch):
        def broken_log(*args, **kwargs):
            raise RuntimeError("admin log unavailable")

        system.notifications.webhook = WebhookDelivery("https://gateway.example.com/notify")
        monkeypatch.setattr(system.admin_log, "add_admin_log", broken_log)
        with patch("cooperative.notifications.requests.post") as post:
            with pytest.raises(RuntimeError):
                system.applications.submit(draft_for(borrower, guarantor))

        post.assert_not_called()
        assert system.notifications.list_for_member(guarantor.id) == []

    def test_gateway_told_after_commit(self, system, borrower, guarantor):
        system.notifications.webhook = WebhookDelivery("https://gateway.example.com/notify")
        with patch("cooperative.notifications.requests.post") as post:
            loan = system.applications.submit(draft_for(borrower, guarantor))

        sent = [call.kwargs["json"] for call in post.call_args_list]
        assert [(p["member_id"], p["related_id"]) for p in sent] == [(guarantor.id, loan.id)]

    def test_list_applications(self, system, pending_loan, borrower, make_member):
        other = make_member("Dayo Ige", 60000)
        helper = make_member("Efe Uche", 1000)
        system.applications.submit(draft_for(other, helper, amount=20000))

        assert len(system.applications.list_applications()) == 2
        assert [l.id for l in system.applications.list_applications(member_id=borrower.id)] == [pending_loan.id]
        assert system.applications.list_applications(status=LoanStatus.APPROVED) == []
