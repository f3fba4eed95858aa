"""
Tests for the tenant directory service (central database)
"""

import pytest

from orgtenancy.exceptions import (
    DuplicateTenantError,
    InvalidDomainError,
    InvalidStatusTransitionError,
    InvalidSubdomainError,
)
from orgtenancy.services.tenant_service import (
    count_domains,
    create_tenant,
    get_tenant_by_domain,
    get_tenant_by_id,
    get_tenant_by_subdomain,
    list_domains,
    list_tenants,
    register_domain,
    requeue_tenant,
    suspend_tenant,
)


async def _set_status(factory, tenant_id: int, status: str) -> None:
    async with factory() as db:
        tenant = await get_tenant_by_id(tenant_id, db)
        tenant.provisioning_status = status
        await db.commit()


class TestCreateTenant:
    async def test_new_tenant_is_pending(self, central_session_factory):
        async with central_session_factory() as db:
            tenant = await create_tenant(name="Acme Foundation", subdomain=" Acme ", db=db)

        assert tenant.id is not None
        assert tenant.subdomain == "acme"
        assert tenant.provisioning_status == "pending"
        assert tenant.database == "tenant_acme"
        assert tenant.database_username == "tenant_acme"
        assert tenant.database_user != "tenant_acme"
        assert tenant.database_password is None

    async def test_longest_subdomain_gets_bounded_names(self, central_session_factory):
        async with central_session_factory() as db:
            tenant = await create_tenant(name="Long", subdomain="a" * 63, db=db)

        assert len(tenant.database) == 63
        assert len(tenant.database_username) == 63
        assert tenant.database.startswith("tenant_aaaa")

    async def test_custom_domains_are_stored_with_tenant(self, central_session_factory):
        async with central_session_factory() as db:
            tenant = await create_tenant(
                name="Acme", subdomain="acme", db=db, custom_domains=["Donate.Acme.org:443", "donate.acme.org"]
            )
            assert await list_domains(tenant.id, db) == ["donate.acme.org"]

    async def test_taken_custom_domain_leaves_no_tenant(self, central_session_factory, make_tenant):
        owner = await make_tenant()
        async with central_session_factory() as db:
            await register_domain(owner, "give.acme.org", db)
            with pytest.raises(DuplicateTenantError):
                await create_tenant(name="Beta", subdomain="beta", db=db, custom_domains=["give.acme.org"])
            assert await get_tenant_by_subdomain("beta", db) is None

    @pytest.mark.parametrize("host", ["localhost", "bad_host.org", "csr.example.com"])
    async def test_invalid_custom_domain_is_rejected(self, central_session_factory, host):
        async with central_session_factory() as db:
            with pytest.raises(InvalidDomainError):
                await create_tenant(name="Beta", subdomain="beta", db=db, custom_domains=[host])
            assert await get_tenant_by_subdomain("beta", db) is None

    async def test_invalid_subdomain_is_rejected(self, central_session_factory):
        async with central_session_factory() as db:
            with pytest.raises(InvalidSubdomainError):
                await create_tenant(name="Bad", subdomain="bad_sub", db=db)

    async def test_duplicate_subdomain_is_rejected(self, central_session_factory, make_tenant):
        await make_tenant()
        async with central_session_factory() as db:
            with pytest.raises(DuplicateTenantError) as exc_info:
                await create_tenant(name="Other", subdomain="acme", db=db)
        assert exc_info.value.status_code == 409

    async def test_lookups(self, central_session_factory, make_tenant):
        created = await make_tenant()
        async with central_session_factory() as db:
            assert (await get_tenant_by_id(created.id, db)).subdomain == "acme"
            assert (await get_tenant_by_subdomain("acme", db)).id == created.id
            assert await get_tenant_by_subdomain("nobody", db) is None
            assert await get_tenant_by_id(999, db) is None


class TestDomains:
    async def test_register_domain_is_idempotent(self, central_session_factory, make_tenant):
        tenant = await make_tenant()
        async with central_session_factory() as db:
            _, created = await register_domain(tenant, "acme.csr.example.com", db)
            _, created_again = await register_domain(tenant, "ACME.csr.example.com:443", db)
            assert created is True
            assert created_again is False
            assert await count_domains(tenant.id, db) == 1
            assert await list_domains(tenant.id, db) == ["acme.csr.example.com"]

    async def test_domain_owned_by_other_tenant_is_rejected(self, central_session_factory, make_tenant):
        acme = await make_tenant()
        other = await make_tenant(name="Other", subdomain="other")
        async with central_session_factory() as db:
            await register_domain(acme, "donate.acme.org", db)
            with pytest.raises(DuplicateTenantError):
                await register_domain(other, "donate.acme.org", db)
            assert (await get_tenant_by_domain("donate.acme.org", db)).id == acme.id


class TestListTenants:
    async def test_pagination_and_status_filter(self, central_session_factory, make_tenant):
        first = await make_tenant(name="One", subdomain="one")
        await make_tenant(name="Two", subdomain="two")
        await make_tenant(name="Three", subdomain="three")
        await _set_status(central_session_factory, first.id, "failed")

        async with central_session_factory() as db:
            assert [t.subdomain for t in await list_tenants(db)] == ["one", "two", "three"]
            assert [t.subdomain for t in await list_tenants(db, skip=1, limit=1)] == ["two"]
            assert [t.subdomain for t in await list_tenants(db, status="failed")] == ["one"]


class TestRequeueAndSuspend:
    async def test_requeue_failed_tenant(self, central_session_factory, make_tenant):
        tenant = await make_tenant()
        await _set_status(central_session_factory, tenant.id, "failed")
        async with central_session_factory() as db:
            requeued = await requeue_tenant(tenant.id, db)
        assert requeued.provisioning_status == "pending"

    async def test_requeue_pending_tenant_is_rejected(self, central_session_factory, make_tenant):
        tenant = await make_tenant()
        async with central_session_factory() as db:
            with pytest.raises(InvalidStatusTransitionError):
                await requeue_tenant(tenant.id, db)

    async def test_requeue_missing_tenant(self, central_session_factory):
        async with central_session_factory() as db:
            assert await requeue_tenant(404, db) is None

    async def test_suspend_provisioned_tenant(self, central_session_factory, make_tenant):
        tenant = await make_tenant()
        await _set_status(central_session_factory, tenant.id, "provisioned")
        async with central_session_factory() as db:
            suspended = await suspend_tenant(tenant.id, db, reason="fraud review")
        assert suspended.provisioning_status == "suspended"
        assert suspended.data["suspension_reason"] == "fraud review"

    async def test_suspend_pending_tenant_is_rejected(self, central_session_factory, make_tenant):
        tenant = await make_tenant()
        async with central_session_factory() as db:
            with pytest.raises(InvalidStatusTransitionError):
                await suspend_tenant(tenant.id, db)
