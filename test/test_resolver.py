"""
Tests for host-based tenant resolution
"""

import pytest

from orgtenancy.exceptions import TenantInactiveError, TenantNotFoundError
from orgtenancy.middleware.tenant import ResolutionStrategy, TenantResolver
from orgtenancy.models.tenant import Tenant


class FakeDirectory:
    def __init__(self, tenants: list[Tenant], domains: dict[str, Tenant] | None = None):
        self.by_subdomain = {t.subdomain: t for t in tenants}
        self.by_domain = domains or {}
        self.lookups: list[tuple[str, str]] = []

    async def find_by_subdomain(self, subdomain):
        self.lookups.append(("subdomain", subdomain))
        return self.by_subdomain.get(subdomain)

    async def find_by_domain(self, host):
        self.lookups.append(("domain", host))
        return self.by_domain.get(host)


class FakeConnections:
    def __init__(self):
        self.connected: list[int] = []

    async def connect(self, tenant):
        self.connected.append(tenant.id)
        return f"connection:{tenant.subdomain}"


def tenant(id_: int, subdomain: str, status: str = "provisioned") -> Tenant:
    return Tenant(id=id_, name=subdomain.title(), subdomain=subdomain, provisioning_status=status)


@pytest.fixture
def acme():
    return tenant(1, "acme")


def make_resolver(tenants, domains=None, strategy="domain", central=None):
    directory = FakeDirectory(tenants, domains)
    connections = FakeConnections()
    resolver = TenantResolver(
        central_domains=central or ["csr.example.com", "localhost"],
        strategy=strategy,
        directory=directory,
        connections=connections,
    )
    return resolver, directory, connections


class TestCentralDomains:
    @pytest.mark.parametrize("host", ["csr.example.com", "CSR.example.com:443", "localhost:8000", "localhost."])
    async def test_central_hosts_are_central(self, host):
        resolver, directory, connections = make_resolver([])
        resolution = await resolver.resolve(host)
        assert resolution.is_central
        assert resolution.tenant is None
        assert directory.lookups == []
        assert connections.connected == []

    async def test_central_host_never_resolves_to_tenant(self):
        # A tenant whose subdomain and registered domain collide with the central domain.
        impostor = tenant(9, "csr")
        resolver, _, connections = make_resolver(
            [impostor],
            domains={"csr.example.com": impostor},
        )
        resolution = await resolver.resolve("csr.example.com")
        assert resolution.is_central
        assert connections.connected == []


class TestDomainStrategy:
    async def test_subdomain_of_central_domain(self, acme):
        resolver, _, connections = make_resolver([acme])
        resolution = await resolver.resolve("acme.csr.example.com")
        assert resolution.tenant is acme
        assert resolution.connection == "connection:acme"
        assert connections.connected == [1]

    async def test_subdomain_of_second_central_domain(self, acme):
        resolver, _, _ = make_resolver([acme])
        resolution = await resolver.resolve("acme.localhost:8000")
        assert resolution.tenant is acme

    async def test_custom_domain(self, acme):
        resolver, directory, _ = make_resolver([acme], domains={"donate.acme.org": acme})
        resolution = await resolver.resolve("Donate.Acme.org")
        assert resolution.tenant is acme
        assert ("domain", "donate.acme.org") in directory.lookups

    async def test_unknown_host_raises_not_found(self):
        resolver, _, connections = make_resolver([])
        with pytest.raises(TenantNotFoundError) as exc_info:
            await resolver.resolve("nobody.csr.example.com")
        assert exc_info.value.domain == "nobody.csr.example.com"
        assert exc_info.value.status_code == 404
        assert connections.connected == []

    async def test_missing_host_raises_not_found(self):
        resolver, _, _ = make_resolver([])
        with pytest.raises(TenantNotFoundError):
            await resolver.resolve("")

    @pytest.mark.parametrize("status", ["pending", "provisioning", "failed", "suspended"])
    async def test_inactive_tenant_raises_and_never_connects(self, status):
        resolver, _, connections = make_resolver([tenant(4, "sleepy", status)])
        with pytest.raises(TenantInactiveError) as exc_info:
            await resolver.resolve("sleepy.csr.example.com")
        assert exc_info.value.tenant_id == 4
        assert exc_info.value.tenant_status == status
        assert exc_info.value.status_code == 503
        assert connections.connected == []

    def test_retryable_only_while_being_set_up(self):
        assert TenantInactiveError(1, "pending").retryable
        assert TenantInactiveError(1, "provisioning").retryable
        assert not TenantInactiveError(1, "failed").retryable
        assert not TenantInactiveError(1, "suspended").retryable


class TestSubdomainStrategy:
    async def test_resolves_label(self, acme):
        resolver, _, _ = make_resolver([acme], strategy="subdomain")
        assert resolver.strategy is ResolutionStrategy.SUBDOMAIN
        resolution = await resolver.resolve("acme.csr.example.com")
        assert resolution.tenant is acme

    async def test_custom_domains_are_not_consulted(self, acme):
        resolver, directory, _ = make_resolver([acme], domains={"donate.acme.org": acme}, strategy="subdomain")
        with pytest.raises(TenantNotFoundError):
            await resolver.resolve("donate.acme.org")
        assert all(kind != "domain" for kind, _ in directory.lookups)

    async def test_invalid_label_is_not_looked_up(self, acme):
        resolver, directory, _ = make_resolver([acme], strategy="subdomain")
        with pytest.raises(TenantNotFoundError):
            await resolver.resolve("ac_me.csr.example.com")
        assert directory.lookups == []


class TestTenantDirectory:
    async def test_lookups_against_central_database(self, central_session_factory, make_tenant):
        from orgtenancy.services.tenant_service import TenantDirectory, register_domain

        created = await make_tenant()
        async with central_session_factory() as db:
            await register_domain(created, "donate.acme.org", db)

        directory = TenantDirectory()
        by_label = await directory.find_by_subdomain("acme")
        by_domain = await directory.find_by_domain("DONATE.acme.org:443")
        assert by_label.id == created.id
        assert by_domain.id == created.id
        assert await directory.find_by_subdomain("nobody") is None
