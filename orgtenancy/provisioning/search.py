"""
Tenant search indexes (Meilisearch HTTP API)

Every tenant gets its own set of indexes named ``{search_prefix}{index}``,
e.g. ``tenant_acme_campaigns``. Creation is idempotent: an index that already
exists only has its settings re-applied.
"""

import logging
from typing import Any

import httpx

from orgtenancy.config import settings
from orgtenancy.exceptions import SearchIndexError
from orgtenancy.models.tenant import Tenant

logger = logging.getLogger(__name__)

INDEX_SETTINGS: dict[str, dict[str, list[str]]] = {
    "campaigns": {
        "searchableAttributes": ["title", "description", "organization_name", "tags"],
        "filterableAttributes": ["status", "organization_id", "category", "created_at"],
        "sortableAttributes": ["created_at", "updated_at", "target_amount", "current_amount"],
    },
    "users": {
        "searchableAttributes": ["name", "email", "department", "job_title"],
        "filterableAttributes": ["status", "role", "department"],
        "sortableAttributes": ["created_at", "name"],
    },
    "donations": {
        "searchableAttributes": ["donor_name", "donor_email", "campaign_title", "transaction_id"],
        "filterableAttributes": ["status", "payment_method", "campaign_id", "created_at"],
        "sortableAttributes": ["amount", "created_at"],
    },
}


class TenantSearchIndexManager:
    def __init__(
        self,
        host: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self.host = (host or settings.meilisearch_host).rstrip("/")
        self.api_key = settings.meilisearch_key if api_key is None else api_key
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.host,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    @staticmethod
    def index_uid(tenant: Tenant, index: str) -> str:
        return f"{tenant.search_prefix}{index}"

    async def create_tenant_indexes(self, tenant: Tenant) -> list[str]:
        """Create (or update) every tenant index; returns the index uids."""
        uids = []
        async with self._client() as client:
            for index, index_settings in INDEX_SETTINGS.items():
                uid = self.index_uid(tenant, index)
                try:
                    await self._ensure_index(client, uid)
                    response = await client.patch(f"/indexes/{uid}/settings", json=index_settings)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    raise SearchIndexError(f"Failed to create search index {uid}: {e}", index=uid) from e
                uids.append(uid)
                logger.info("Search index ready: tenant_id=%s index=%s", tenant.id, uid)
        return uids

    async def _ensure_index(self, client: httpx.AsyncClient, uid: str) -> None:
        response = await client.get(f"/indexes/{uid}")
        if response.status_code == 200:
            return
        if response.status_code != 404:
            response.raise_for_status()
        response = await client.post("/indexes", json={"uid": uid, "primaryKey": "id"})
        response.raise_for_status()

    async def get_index_stats(self, tenant: Tenant) -> dict[str, Any]:
        """Document counts per tenant index; a missing index reports ``exists: False``."""
        stats: dict[str, Any] = {}
        async with self._client() as client:
            for index in INDEX_SETTINGS:
                uid = self.index_uid(tenant, index)
                response = await client.get(f"/indexes/{uid}/stats")
                if response.status_code == 404:
                    stats[index] = {"uid": uid, "exists": False, "number_of_documents": 0}
                    continue
                response.raise_for_status()
                body = response.json()
                stats[index] = {
                    "uid": uid,
                    "exists": True,
                    "number_of_documents": body.get("numberOfDocuments", 0),
                    "is_indexing": body.get("isIndexing", False),
                }
        return stats
