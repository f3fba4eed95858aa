"""
Tenant lifecycle events

Provisioning publishes these so notification and audit code (outside this
package) can react without the workflow knowing about delivery channels.
Subscriber failures are logged and never interrupt provisioning.
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TenantEvent:
    tenant_id: int
    subdomain: str
    occurred_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class TenantCreated(TenantEvent):
    pass


@dataclass(frozen=True)
class TenantProvisioned(TenantEvent):
    admin: dict[str, Any] | None = None


@dataclass(frozen=True)
class TenantProvisioningFailed(TenantEvent):
    error: str = ""
    final: bool = False


Handler = Callable[[TenantEvent], Awaitable[None]]


class EventDispatcher:
    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def clear(self) -> None:
        self._handlers.clear()

    async def dispatch(self, event: TenantEvent) -> None:
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in handlers:
                try:
                    await handler(event)
                except Exception:
                    logger.exception(
                        "Event handler %s failed for %s (tenant_id=%s)",
                        getattr(handler, "__name__", handler),
                        type(event).__name__,
                        event.tenant_id,
                    )


dispatcher = EventDispatcher()
