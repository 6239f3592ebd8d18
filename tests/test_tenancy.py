"""
Tests for cooperative tenancy

Covers the cooperative registry, the tenant context variable and isolation of
members and loans between cooperatives sharing one storage backend.
"""

import pytest

from cooperative.storage import InMemoryStorage
from cooperative.tenancy import (
    Cooperative, CooperativeManager, CooperativeStatus, SubscriptionTier, TenantAwareStorage,
    get_current_tenant, set_current_tenant, tenant_context
)
from cooperative.errors import NotFoundError, TenantError
from cooperative.admin_log import AdminAction, GENESIS_HASH


@pytest.fixture
def manager():
    return CooperativeManager(InMemoryStorage())


class TestCooperativeRegistry:

    def test_create_cooperative(self, manager):
        coop = manager.create_cooperative("Unity Cooperative", "unity_coop",
                                          subscription_tier=SubscriptionTier.STANDARD)
        assert coop.code == "UNITY_COOP"
        assert coop.status == CooperativeStatus.TRIAL
        assert coop.is_operational
        assert manager.get_by_code("unity_coop").id == coop.id

    def test_duplicate_code_rejected(self, manager):
        manager.create_cooperative("Unity Cooperative", "UNITY")
        with pytest.raises(TenantError, match="already exists"):
            manager.create_cooperative("Another Unity", "unity")

    def test_name_and_code_required(self, manager):
        with pytest.raises(TenantError):
            manager.create_cooperative(" ", "UNITY")

    def test_status_changes(self, manager):
        coop = manager.create_cooperative("Unity Cooperative", "UNITY")
        assert manager.activate(coop.id).status == CooperativeStatus.ACTIVE
        manager.suspend(coop.id)
        with pytest.raises(TenantError, match="suspended"):
            manager.require_operational(coop.id)
        assert [c.id for c in manager.list_cooperatives(CooperativeStatus.SUSPENDED)] == [coop.id]

    def test_missing_cooperative(self, manager):
        assert manager.get_cooperative("nope") is None
        with pytest.raises(NotFoundError):
            manager.require_operational("nope")

    def test_settings_merge(self, manager):
        coop = manager.create_cooperative("Unity Cooperative", "UNITY", settings={'fine_percentage': "2"})
        updated = manager.update_settings(coop.id, {'grace_period_days': 5})
        assert updated.settings == {'fine_percentage': "2", 'grace_period_days': 5}

    def test_round_trip(self, manager):
        coop = manager.create_cooperative("Unity Cooperative", "UNITY", contact_email="hq@unity.example")
        assert Cooperative.from_dict(coop.to_dict()) == coop


class TestTenantContext:

    def test_context_manager_restores(self):
        assert get_current_tenant() is None
        with tenant_context("coop-a"):
            assert get_current_tenant() == "coop-a"
            with tenant_context("coop-b"):
                assert get_current_tenant() == "coop-b"
            assert get_current_tenant() == "coop-a"
        assert get_current_tenant() is None

    def test_set_current_tenant(self):
        set_current_tenant("coop-a")
        try:
            assert get_current_tenant() == "coop-a"
        finally:
            set_current_tenant(None)


class TestTenantAwareStorage:

    @pytest.fixture
    def storage(self):
        return TenantAwareStorage(InMemoryStorage())

    def test_records_isolated_by_cooperative(self, storage):
        with tenant_context("coop-a"):
            storage.save("members", "MEM001", {"id": "MEM001", "name": "Ada"})
        with tenant_context("coop-b"):
            storage.save("members", "MEM001", {"id": "MEM001", "name": "Bola"})
            assert storage.load("members", "MEM001")["name"] == "Bola"
            assert len(storage.load_all("members")) == 1
        with tenant_context("coop-a"):
            assert storage.load("members", "MEM001")["_tenant_id"] == "coop-a"
            assert storage.load("members", "MEM001")["name"] == "Ada"

    def test_super_admin_sees_everything(self, storage):
        with tenant_context("coop-a"):
            storage.save("members", "MEM001", {"id": "MEM001"})
        with tenant_context("coop-b"):
            storage.save("members", "MEM001", {"id": "MEM001"})
        assert len(storage.load_all("members")) == 2

    def test_delete_cannot_cross_tenants(self, storage):
        with tenant_context("coop-a"):
            storage.save("members", "MEM001", {"id": "MEM001"})
        with tenant_context("coop-b"):
            assert storage.delete("members", "MEM001") is False
        with tenant_context("coop-a"):
            assert storage.delete("members", "MEM001") is True

    def test_clear_table_refused_inside_tenant(self, storage):
        with tenant_context("coop-a"):
            with pytest.raises(PermissionError):
                storage.clear_table("members")
        storage.clear_table("members")


class TestTenantServices:

    def test_member_ids_restart_per_cooperative(self, system):
        with tenant_context("coop-a"):
            ada = system.members.add_member("Ada Obi", "0803")
        with tenant_context("coop-b"):
            bola = system.members.add_member("Bola Ade", "0805")
            assert system.members.get_member("MEM001").name == "Bola Ade"
            assert [m.name for m in system.members.get_all_members()] == ["Bola Ade"]
        assert ada.id == bola.id == "MEM001"

    def test_guarantor_search_stays_inside_cooperative(self, system):
        with tenant_context("coop-a"):
            borrower = system.members.add_member("Ada Obi", "0803")
        with tenant_context("coop-b"):
            system.members.add_member("Adamu Bello", "0805")
        with tenant_context("coop-a"):
            assert system.members.search_guarantors(borrower.id, "adamu") == []

    def test_admin_log_chains_per_cooperative(self, system):
        for tenant in ("coop-a", "coop-b", "coop-a"):
            with tenant_context(tenant):
                system.admin_log.add_admin_log("ADMIN001", "Admin", AdminAction.BROADCAST_SENT, "AGM notice")

        with tenant_context("coop-a"):
            entries = system.admin_log.list_entries()
            assert [e.id for e in entries] == ["LOG001", "LOG002"]
            assert entries[1].previous_hash == entries[0].current_hash
            assert system.admin_log.verify_integrity() == {'valid': True, 'entries_checked': 2, 'broken_at': None}
        assert system.admin_log.verify_integrity() == {'valid': True, 'entries_checked': 3, 'broken_at': None}

    def test_super_admin_writes_start_their_own_sequence(self, system):
        with tenant_context("coop-a"):
            system.members.add_member("Ada Obi", "0803")
            system.members.add_member("Bola Ade", "0805")
        with tenant_context("coop-b"):
            system.members.add_member("Chidi Okafor", "0807")

        member = system.members.add_member("Dayo Ige", "0809")
        assert member.id == "MEM001"
        untenanted = [e for e in system.admin_log.list_entries() if e.target_member == member.id
                      and e.action == AdminAction.MEMBER_ADDED]
        assert untenanted[-1].previous_hash == GENESIS_HASH
        assert system.admin_log.verify_integrity()['valid']
