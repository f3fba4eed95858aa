from __future__ import annotations

import asyncio
import logging
from typing import Any

from arq import Retry, create_pool
from arq.connections import ArqRedis, RedisSettings

from orgtenancy.config import settings
from orgtenancy.events import TenantProvisioningFailed, dispatcher
from orgtenancy.exceptions import ErrorCode, InvalidStatusTransitionError, TenancyError
from orgtenancy.provisioning.admin import AdminSeed
from orgtenancy.provisioning.workflow import TenantProvisioningWorkflow
from orgtenancy.services.tenant_service import get_tenant_by_id

logger = logging.getLogger(__name__)

PROVISION_JOB = "provision_tenant_job"


def job_id_for(tenant_id: int) -> str:
    return f"provision-tenant:{tenant_id}"


def job_tags(tenant_id: int, subdomain: str | None) -> list[str]:
    return ["tenant-provisioning", f"organization:{tenant_id}", f"subdomain:{subdomain}"]


def _session_factory(ctx: dict[str, Any]):
    factory = ctx.get("session_factory")
    if factory is not None:
        return factory
    from orgtenancy import database

    return database.AsyncSessionLocal


async def record_failure(ctx: dict[str, Any], tenant_id: int, error: str) -> None:
    """Store ``error`` on the tenant, moving it to failed when it is still provisioning."""
    async with _session_factory(ctx)() as db:
        tenant = await get_tenant_by_id(tenant_id, db)
        if tenant is None:
            return
        try:
            tenant.mark_failed(error)
        except InvalidStatusTransitionError:
            logger.warning("Not recording failure on tenant %s in status %s", tenant_id, tenant.provisioning_status)
            return
        await db.commit()


async def provision_tenant_job(
    ctx: dict[str, Any],
    tenant_id: int,
    subdomain: str | None = None,
    admin: dict | None = None,
) -> dict[str, Any]:
    """
    Run the provisioning workflow for one tenant.

    Step failures are retried with a linear backoff until
    ``provisioning_max_tries`` attempts have run; the last one records
    ``Job failed after N attempts: ...`` on the tenant. An invalid status
    transition or a missing tenant is never retried.
    """
    job_try = ctx.get("job_try", 1)
    max_tries = settings.provisioning_max_tries
    timeout = settings.provisioning_timeout_seconds
    tags = job_tags(tenant_id, subdomain)
    workflow: TenantProvisioningWorkflow = ctx.get("workflow") or TenantProvisioningWorkflow()

    logger.info("Provisioning job started: tags=%s try=%d/%d", tags, job_try, max_tries)
    try:
        result = await asyncio.wait_for(
            workflow.provision(tenant_id, AdminSeed.from_job_payload(admin), attempt=job_try),
            timeout=timeout,
        )
    except InvalidStatusTransitionError as e:
        logger.warning("Provisioning job rejected: tags=%s error=%s", tags, e.message)
        return {"ok": False, "tenant_id": tenant_id, "error": e.message, "retry": False}
    except TenancyError as e:
        if e.error_code is not ErrorCode.RESOURCE_NOT_FOUND:
            return await _retry_or_give_up(ctx, tenant_id, subdomain, tags, str(e), job_try, max_tries)
        logger.warning("Provisioning job rejected: tags=%s error=%s", tags, e.message)
        return {"ok": False, "tenant_id": tenant_id, "error": e.message, "retry": False}
    except asyncio.TimeoutError:
        error = f"Provisioning timed out after {timeout}s"
        logger.error("Provisioning job timed out: tags=%s", tags)
        # A cancelled workflow never reaches its own failure handler.
        await record_failure(ctx, tenant_id, error)
        return await _retry_or_give_up(ctx, tenant_id, subdomain, tags, error, job_try, max_tries)
    except Exception as e:
        return await _retry_or_give_up(ctx, tenant_id, subdomain, tags, str(e) or type(e).__name__, job_try, max_tries)

    logger.info("Provisioning job completed: tags=%s", tags)
    return {
        "ok": True,
        "tenant_id": result.tenant_id,
        "database": result.database,
        "domain": result.domain,
        "admin": result.admin,
        "error": None,
    }


async def _retry_or_give_up(
    ctx: dict[str, Any],
    tenant_id: int,
    subdomain: str | None,
    tags: list[str],
    error: str,
    job_try: int,
    max_tries: int,
) -> dict[str, Any]:
    if job_try < max_tries:
        defer = job_try * settings.provisioning_retry_backoff_seconds
        logger.warning("Provisioning attempt failed, retrying in %ds: tags=%s try=%d error=%s", defer, tags, job_try, error)
        raise Retry(defer=defer)

    final_error = f"Job failed after {max_tries} attempts: {error}"
    logger.error("Tenant provisioning job failed permanently: tags=%s error=%s", tags, error)
    await record_failure(ctx, tenant_id, final_error)
    await dispatcher.dispatch(
        TenantProvisioningFailed(tenant_id=tenant_id, subdomain=subdomain or "", error=final_error, final=True)
    )
    return {"ok": False, "tenant_id": tenant_id, "error": final_error, "retry": False}


async def enqueue_tenant_provisioning(
    tenant_id: int,
    subdomain: str,
    admin_seed: AdminSeed | None = None,
    redis: ArqRedis | None = None,
) -> str | None:
    """Queue provisioning; returns the job id, or None when one is already queued."""
    pool = redis or await create_pool(
        RedisSettings.from_dsn(settings.redis_url),
        default_queue_name=settings.provisioning_queue,
    )
    try:
        job = await pool.enqueue_job(
            PROVISION_JOB,
            tenant_id,
            subdomain,
            (admin_seed or AdminSeed()).to_job_payload(),
            _job_id=job_id_for(tenant_id),
            _queue_name=settings.provisioning_queue,
        )
    finally:
        if redis is None:
            await pool.aclose()

    if job is None:
        logger.info("Provisioning already queued: tags=%s", job_tags(tenant_id, subdomain))
        return None
    logger.info("Provisioning enqueued: tags=%s job_id=%s", job_tags(tenant_id, subdomain), job.job_id)
    return job.job_id
