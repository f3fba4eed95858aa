from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from orgtenancy.database import AsyncSessionLocal
from orgtenancy.provisioning.admin import AdminSeed
from orgtenancy.provisioning.workflow import TenantProvisioningWorkflow
from orgtenancy.services.connection_manager import connection_manager
from orgtenancy.services.tenant_service import create_tenant, get_tenant_by_subdomain, requeue_tenant
from orgtenancy.workers.jobs import enqueue_tenant_provisioning


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create and/or provision a tenant")
    parser.add_argument("--subdomain", required=True, help="Tenant subdomain, e.g. acme")
    parser.add_argument("--name", default=None, help="Create the tenant with this name if it does not exist")
    parser.add_argument("--admin-email", default=None, help="Super admin email (default admin@{subdomain}.test)")
    parser.add_argument("--admin-name", default="Admin", help="Super admin display name")
    parser.add_argument("--admin-password", default=None, help="Super admin password (generated when omitted)")
    parser.add_argument(
        "--inline",
        action="store_true",
        help="Run the workflow in this process instead of enqueueing it for the worker",
    )
    return parser


async def _provision(args: argparse.Namespace) -> int:
    async with AsyncSessionLocal() as session:
        tenant = await get_tenant_by_subdomain(args.subdomain, session)
        if tenant is None:
            if not args.name:
                print(f"tenant '{args.subdomain}' not found; pass --name to create it", file=sys.stderr)
                return 2
            tenant = await create_tenant(name=args.name, subdomain=args.subdomain, db=session)
            print(f"created tenant id={tenant.id} subdomain={tenant.subdomain}")
        elif tenant.provisioning_status == "failed":
            tenant = await requeue_tenant(tenant.id, session)
            print(f"re-queued failed tenant id={tenant.id}")

    seed = AdminSeed(name=args.admin_name, email=args.admin_email, password=args.admin_password)
    if not args.inline:
        job_id = await enqueue_tenant_provisioning(tenant.id, tenant.subdomain, seed)
        print(f"enqueued job_id={job_id or '(already queued)'}")
        return 0

    workflow = TenantProvisioningWorkflow()
    try:
        result = await workflow.provision(tenant.id, seed)
    finally:
        await workflow.database_manager.dispose()
        await connection_manager.dispose_all()
    print(f"provisioned tenant id={result.tenant_id} database={result.database} domain={result.domain}")
    if result.admin:
        print(f"super admin id={result.admin.get('id')} email={result.admin.get('email')}")
    if result.generated_admin_password:
        print(f"generated admin password: {result.generated_admin_password}")
    return 0


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_provision(args))
    except Exception as exc:  # noqa: BLE001
        print(f"provision_tenant failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
