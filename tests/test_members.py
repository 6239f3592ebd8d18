"""
Test suite for the member registry

Covers member records, balance updates, guarantor search and eligibility,
guarantor commitments and inactivity tracking.
"""

import pytest
from datetime import date
from decimal import Decimal

from cooperative.currency import Money
from cooperative.members import (
    Member, MemberStatus, BalanceOperation, GuarantorCommitment
)
from cooperative.admin_log import AdminAction
from cooperative.errors import NotFoundError, ValidationError


def naira(amount) -> Money:
    return Money(Decimal(str(amount)))


class TestMemberRecords:

    def test_add_member_assigns_sequential_ids(self, system):
        first = system.members.add_member("Ada Obi", "0803")
        second = system.members.add_member("Bola Ade", "0805")
        assert first.id == "MEM001"
        assert second.id == "MEM002"
        assert first.membership_id == "ACC000001"
        assert first.status == MemberStatus.ACTIVE
        assert first.balance == Money.zero()

    def test_add_member_logs_admin_action(self, system):
        member = system.members.add_member("Ada Obi", "0803", admin_id="ADMIN001", admin_name="Admin User")
        entries = system.admin_log.list_entries(AdminAction.MEMBER_ADDED)
        assert len(entries) == 1
        assert entries[0].target_member == member.id
        assert entries[0].admin_id == "ADMIN001"

    def test_name_and_phone_required(self, system):
        with pytest.raises(ValidationError):
            system.members.add_member("  ", "0803")
        with pytest.raises(ValidationError):
            system.members.add_member("Ada", "")

    def test_duplicate_account_number_rejected(self, system):
        system.members.add_member("Ada Obi", "0803", membership_id="COOP-17")
        with pytest.raises(ValidationError, match="already in use"):
            system.members.add_member("Ada Twin", "0803", membership_id="COOP-17")

    def test_round_trip_through_storage(self, system, make_member):
        member = make_member("Ada Obi", 10000, email="ada@example.com", join_date=date(2023, 5, 1))
        member.guarantor_for.append(GuarantorCommitment("LOAN009", "MEM009", "Chi", naira(1000), naira(500)))
        system.members.save(member)

        loaded = system.members.get_member(member.id)
        assert loaded.email == "ada@example.com"
        assert loaded.join_date == date(2023, 5, 1)
        assert loaded.balance == naira(10000)
        assert loaded.guarantor_for[0].remaining_amount == naira(500)
        assert isinstance(Member.from_dict(member.to_dict()), Member)

    def test_update_member(self, system, make_member):
        member = make_member("Ada Obi")
        updated = system.members.update_member(member.id, phone="0809", occupation="Trader")
        assert updated.phone == "0809"
        assert system.members.get_member(member.id).occupation == "Trader"

    def test_update_member_rejects_financial_fields(self, system, make_member):
        member = make_member("Ada Obi")
        with pytest.raises(ValidationError):
            system.members.update_member(member.id, balance=naira(1))

    def test_missing_member(self, system):
        assert system.members.get_member("MEM404") is None
        with pytest.raises(NotFoundError):
            system.members.require_member("MEM404")

    def test_status_changes(self, system, make_member):
        member = make_member("Ada Obi")
        assert system.members.suspend_member(member.id).status == MemberStatus.SUSPENDED
        assert system.members.activate_member(member.id).status == MemberStatus.ACTIVE
        actions = [e.action for e in system.admin_log.list_entries(target_member=member.id)]
        assert AdminAction.MEMBER_SUSPENDED in actions
        assert AdminAction.MEMBER_ACTIVATED in actions

    def test_get_all_members_by_status(self, system, make_member):
        make_member("Ada Obi")
        other = make_member("Bola Ade")
        system.members.suspend_member(other.id)
        assert len(system.members.get_all_members()) == 2
        assert [m.id for m in system.members.get_all_members(MemberStatus.SUSPENDED)] == [other.id]


class TestBalances:

    def test_add_and_subtract(self, system, make_member):
        member = make_member("Ada Obi", 10000)
        system.members.update_balance(member.id, naira(2500), BalanceOperation.ADD)
        updated = system.members.update_balance(member.id, naira(500), BalanceOperation.SUBTRACT)
        assert updated.balance == naira(12000)

    def test_subtract_never_goes_negative(self, system, make_member):
        member = make_member("Ada Obi", 1000)
        updated = system.members.update_balance(member.id, naira(5000), BalanceOperation.SUBTRACT)
        assert updated.balance == Money.zero()

    def test_non_positive_amount_rejected(self, system, make_member):
        member = make_member("Ada Obi", 1000)
        with pytest.raises(ValidationError):
            system.members.update_balance(member.id, Money.zero(), BalanceOperation.ADD)

    def test_allocate_savings(self, system, make_member):
        member = make_member("Ada Obi")
        updated = system.members.allocate_savings(member.id, naira(7500))
        assert updated.savings == naira(7500)
        assert system.admin_log.list_entries(AdminAction.SAVINGS_ALLOCATED)[0].amount == Decimal('7500.00')

    def test_fines(self, system, make_member):
        member = make_member("Ada Obi")
        system.members.add_fine(member.id, naira(1000))
        assert system.members.add_fine(member.id, naira(1000)).fines == naira(2000)
        assert system.members.clear_fines(member.id).fines == Money.zero()

    def test_stats(self, system, make_member):
        make_member("Ada Obi", 10000)
        other = make_member("Bola Ade", 45000)
        system.members.allocate_savings(other.id, naira(3000))
        stats = system.members.get_stats()
        assert stats['total_members'] == 2
        assert stats['total_balance'] == naira(55000)
        assert stats['total_savings'] == naira(3000)
        assert stats['active_loans'] == 0


class TestGuarantorSearch:

    @pytest.fixture
    def members(self, make_member):
        return [
            make_member("Ada Obi", 10000),
            make_member("Adamu Bello", 20000),
            make_member("Bola Ade", 30000),
            make_member("Chidi Okafor", 40000),
        ]

    def test_case_insensitive_name_match(self, system, members):
        borrower = members[3]
        results = system.members.search_guarantors(borrower.id, "ADA")
        assert [m.name for m in results] == ["Ada Obi", "Adamu Bello"]

    def test_excludes_borrower(self, system, members):
        borrower = members[0]
        results = system.members.search_guarantors(borrower.id, "ada")
        assert borrower.id not in [m.id for m in results]
        assert [m.name for m in results] == ["Adamu Bello"]

    def test_matches_account_number(self, system, members):
        results = system.members.search_guarantors(members[0].id, "acc000003")
        assert [m.id for m in results] == [members[2].id]

    def test_capped_at_five(self, system, make_member):
        borrower = make_member("Borrower")
        for i in range(8):
            make_member(f"Member {i}")
        assert len(system.members.search_guarantors(borrower.id, "member")) == 5
        assert len(system.members.search_guarantors(borrower.id, "member", limit=3)) == 3

    def test_blank_query_returns_nothing(self, system, members):
        assert system.members.search_guarantors(members[0].id, "  ") == []


class TestGuarantorEligibility:

    def test_active_member_without_loan_can_guarantee(self, system, make_member):
        member = make_member("Ada Obi", 10000)
        assert system.members.can_member_be_guarantor(member.id) == (True, None)

    def test_member_with_loan_balance_cannot_guarantee(self, system, make_member):
        member = make_member("Ada Obi", 10000)
        member.loan_balance = naira(25000)
        system.members.save(member)
        can_guarantee, reason = system.members.can_member_be_guarantor(member.id)
        assert not can_guarantee
        assert "outstanding loan" in reason

    def test_inactive_or_missing_member_cannot_guarantee(self, system, make_member):
        member = make_member("Ada Obi")
        system.members.suspend_member(member.id)
        assert system.members.can_member_be_guarantor(member.id) == (False, "Member is suspended")
        assert system.members.can_member_be_guarantor("MEM404") == (False, "Member not found")


class TestGuarantorCommitments:

    def test_add_update_release(self, system, make_member):
        guarantor = make_member("Bola Ade")
        commitment = GuarantorCommitment("LOAN001", "MEM009", "Ada Obi", naira(50000), naira(51250))
        system.members.add_guarantor_commitment(guarantor.id, commitment)
        assert system.members.has_open_commitments(guarantor.id)

        system.members.update_guarantor_commitment(guarantor.id, "LOAN001", naira(1000))
        assert system.members.get_member(guarantor.id).guarantor_for[0].remaining_amount == naira(1000)

        assert system.members.release_guarantor_commitments("LOAN001") == [guarantor.id]
        assert not system.members.has_open_commitments(guarantor.id)

    def test_adding_same_loan_twice_replaces(self, system, make_member):
        guarantor = make_member("Bola Ade")
        commitment = GuarantorCommitment("LOAN001", "MEM009", "Ada Obi", naira(50000), naira(51250))
        system.members.add_guarantor_commitment(guarantor.id, commitment)
        system.members.add_guarantor_commitment(guarantor.id, commitment)
        assert len(system.members.get_member(guarantor.id).guarantor_for) == 1

    def test_fully_repaid_commitment_is_not_open(self, system, make_member):
        guarantor = make_member("Bola Ade")
        commitment = GuarantorCommitment("LOAN001", "MEM009", "Ada Obi", naira(50000), naira(100))
        system.members.add_guarantor_commitment(guarantor.id, commitment)
        system.members.update_guarantor_commitment(guarantor.id, "LOAN001", naira(-5))
        assert not system.members.has_open_commitments(guarantor.id)


class TestInactivity:

    @pytest.fixture
    def joined(self, make_member):
        return make_member("Ada Obi", join_date=date(2024, 1, 1))

    def test_inactivity_days(self, system, joined):
        assert system.members.inactivity_days(joined, date(2024, 1, 10)) == 9

    @pytest.mark.parametrize("as_of,category", [
        (date(2024, 1, 5), None),
        (date(2024, 1, 8), 'at_risk'),
        (date(2024, 1, 15), 'recently_inactive'),
        (date(2024, 1, 21), 'recently_inactive'),
        (date(2024, 1, 22), None),
    ])
    def test_categorize(self, system, joined, as_of, category):
        categories = system.members.categorize_inactivity(as_of)
        found = [name for name, members in categories.items() if joined.id in [m.id for m in members]]
        assert found == ([category] if category else [])

    def test_record_activity_resets_clock(self, system, joined):
        system.members.record_activity(joined.id, date(2024, 1, 20))
        member = system.members.get_member(joined.id)
        assert system.members.inactivity_days(member, date(2024, 1, 22)) == 2

    def test_flag_dormant_members(self, system, joined, make_member):
        make_member("Recent", join_date=date(2024, 1, 20))
        flagged = system.members.flag_dormant_members(date(2024, 1, 22))
        assert [m.id for m in flagged] == [joined.id]
        assert system.members.get_member(joined.id).status == MemberStatus.DORMANT

        categories = system.members.categorize_inactivity(date(2024, 1, 22))
        assert [m.id for m in categories['dormant']] == [joined.id]
        assert system.admin_log.list_entries(AdminAction.MEMBER_DORMANT)[0].target_member == joined.id

    def test_sweep_is_idempotent(self, system, joined):
        system.members.flag_dormant_members(date(2024, 2, 1))
        assert system.members.flag_dormant_members(date(2024, 2, 1)) == []
