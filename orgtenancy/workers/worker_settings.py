import logging
from typing import Any

from arq import func
from arq.connections import RedisSettings

from orgtenancy.config import settings
from orgtenancy.provisioning.workflow import TenantProvisioningWorkflow
from orgtenancy.services.connection_manager import connection_manager
from orgtenancy.workers.jobs import PROVISION_JOB, provision_tenant_job

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    ctx["workflow"] = TenantProvisioningWorkflow()
    logger.info("Provisioning worker started: queue=%s", settings.provisioning_queue)


async def shutdown(ctx: dict[str, Any]) -> None:
    workflow: TenantProvisioningWorkflow | None = ctx.get("workflow")
    if workflow is not None:
        await workflow.database_manager.dispose()
    await connection_manager.dispose_all()
    logger.info("Provisioning worker stopped")


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.provisioning_queue
    functions = [
        # The job enforces its own per-attempt timeout so it can retry; this is a backstop.
        func(
            provision_tenant_job,
            name=PROVISION_JOB,
            max_tries=settings.provisioning_max_tries,
            timeout=settings.provisioning_timeout_seconds + 60,
            keep_result=0,
        ),
    ]
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 4
