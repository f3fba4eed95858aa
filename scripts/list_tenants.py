from __future__ import annotations

import argparse
import asyncio
import sys

from orgtenancy.database import AsyncSessionLocal
from orgtenancy.models.tenant import ProvisioningStatus
from orgtenancy.services.tenant_service import list_domains, list_tenants


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="List tenants and their provisioning state")
    parser.add_argument(
        "--status",
        choices=[s.value for s in ProvisioningStatus],
        default=None,
        help="Only show tenants in this provisioning status",
    )
    parser.add_argument("--limit", type=int, default=100, help="Maximum number of tenants to show")
    return parser


async def _list(args: argparse.Namespace) -> int:
    async with AsyncSessionLocal() as session:
        tenants = await list_tenants(session, limit=args.limit, status=args.status)
        print("id\tsubdomain\tstatus\tdatabase\tprovisioned_at\tdomains\terror")
        for tenant in tenants:
            domains = await list_domains(tenant.id, session)
            print(
                f"{tenant.id}\t{tenant.subdomain}\t{tenant.provisioning_status}\t{tenant.database or ''}\t"
                f"{tenant.provisioned_at.isoformat() if tenant.provisioned_at else ''}\t"
                f"{','.join(domains)}\t{tenant.provisioning_error or ''}"
            )
    return 0


def main() -> int:
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_list(args))
    except Exception as exc:  # noqa: BLE001 - operator-facing error
        print(f"list_tenants failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
