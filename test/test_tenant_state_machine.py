"""
Tests for the tenant provisioning state machine
"""

import pytest

from orgtenancy.exceptions import InvalidStatusTransitionError
from orgtenancy.models.tenant import ALLOWED_TRANSITIONS, ProvisioningStatus, Tenant, can_transition

ALL_STATUSES = list(ProvisioningStatus)

LEGAL = {
    ("pending", "provisioning"),
    ("provisioning", "provisioned"),
    ("provisioning", "failed"),
    ("provisioned", "suspended"),
    ("failed", "pending"),
}


def make_tenant(status: str = "pending", **kwargs) -> Tenant:
    return Tenant(id=7, name="Acme", subdomain="acme", provisioning_status=status, **kwargs)


class TestTransitionTable:
    @pytest.mark.parametrize("current", ALL_STATUSES)
    @pytest.mark.parametrize("target", ALL_STATUSES)
    def test_only_listed_transitions_are_allowed(self, current, target):
        expected = (current.value, target.value) in LEGAL
        assert can_transition(current.value, target.value) is expected

    @pytest.mark.parametrize("current", ALL_STATUSES)
    @pytest.mark.parametrize("target", ALL_STATUSES)
    def test_transition_to_enforces_table(self, current, target):
        tenant = make_tenant(current.value)
        if (current.value, target.value) in LEGAL:
            tenant.transition_to(target)
            assert tenant.provisioning_status == target.value
        else:
            with pytest.raises(InvalidStatusTransitionError) as exc_info:
                tenant.transition_to(target)
            assert tenant.provisioning_status == current.value
            assert exc_info.value.details["current_status"] == current.value
            assert exc_info.value.details["target_status"] == target.value

    def test_suspended_is_terminal(self):
        assert ALLOWED_TRANSITIONS[ProvisioningStatus.suspended] == frozenset()

    def test_unknown_status_is_never_allowed(self):
        assert can_transition("archived", "pending") is False
        assert can_transition("pending", "archived") is False


class TestLifecycleHelpers:
    def test_start_provisioning_from_pending(self):
        tenant = make_tenant("pending")
        tenant.start_provisioning()
        assert tenant.provisioning_status == "provisioning"

    def test_start_provisioning_requeues_failed_tenant(self):
        tenant = make_tenant("failed", provisioning_error="boom")
        tenant.start_provisioning()
        assert tenant.provisioning_status == "provisioning"
        assert tenant.provisioning_error is None

    @pytest.mark.parametrize("status", ["provisioning", "provisioned", "suspended"])
    def test_start_provisioning_rejected_from_other_states(self, status):
        tenant = make_tenant(status)
        with pytest.raises(InvalidStatusTransitionError):
            tenant.start_provisioning()
        assert tenant.provisioning_status == status

    def test_mark_provisioned_sets_timestamp_and_clears_error(self):
        tenant = make_tenant("provisioning", provisioning_error="old")
        tenant.mark_provisioned()
        assert tenant.is_active
        assert tenant.provisioned_at is not None
        assert tenant.provisioning_error is None

    def test_mark_failed_records_error(self):
        tenant = make_tenant("provisioning")
        tenant.mark_failed("migration exploded")
        assert tenant.provisioning_status == "failed"
        assert tenant.provisioning_error == "migration exploded"

    def test_mark_failed_on_failed_tenant_updates_error(self):
        tenant = make_tenant("failed", provisioning_error="first")
        tenant.mark_failed("Job failed after 3 attempts: first")
        assert tenant.provisioning_status == "failed"
        assert tenant.provisioning_error == "Job failed after 3 attempts: first"

    def test_mark_failed_rejected_for_provisioned_tenant(self):
        tenant = make_tenant("provisioned")
        with pytest.raises(InvalidStatusTransitionError):
            tenant.mark_failed("late failure")

    def test_suspend_records_reason(self):
        tenant = make_tenant("provisioned", data={"admin": {"email": "a@b.c"}})
        tenant.suspend("unpaid invoice")
        assert tenant.provisioning_status == "suspended"
        assert tenant.data["suspension_reason"] == "unpaid invoice"
        assert "suspended_at" in tenant.data
        assert tenant.admin_data == {"email": "a@b.c"}

    def test_only_provisioned_is_active(self):
        for status in ALL_STATUSES:
            assert make_tenant(status.value).is_active is (status is ProvisioningStatus.provisioned)


class TestNaming:
    def test_default_database_name(self):
        tenant = make_tenant()
        assert tenant.default_database_name() == "tenant_acme"
        assert tenant.default_database_name("org_", "_db") == "org_acme_db"

    def test_hyphens_are_replaced_in_identifiers(self):
        tenant = Tenant(id=3, name="Green Earth", subdomain="green-earth")
        assert tenant.default_database_name() == "tenant_green_earth"
        assert tenant.search_prefix == "tenant_green_earth_"

    def test_search_prefix_falls_back_to_id(self):
        tenant = Tenant(id=42, name="Nameless", subdomain=None)
        assert tenant.search_prefix == "tenant_org_42_"

    def test_progress_merges_into_data(self):
        tenant = make_tenant(data={"admin": {"id": 1}})
        tenant.set_provisioning_progress({"step": "seed", "percent": 70})
        assert tenant.data == {"admin": {"id": 1}, "provisioning": {"step": "seed", "percent": 70}}
