from typing import List
import logging

import httpx

from .base import PropertyStore, Interaction
from ..core.config import settings
from ..core.errors import StoreError
from ..core.logging import log_context

logger = logging.getLogger(__name__)

class MemoryStore(PropertyStore):
    """
    In-process store for local dev and tests. Seed it with listing dicts and
    interactions; writes land in plain lists/dicts you can inspect.
    """
    def __init__(self, properties: List[dict] | None = None, interactions: List[Interaction] | None = None):
        self.properties = list(properties or [])
        self.interactions = list(interactions or [])
        self.fraud_reports: List[dict] = []
        self.user_preferences: dict[str, dict] = {}

    async def count_landlord_listings(self, landlord_id: str) -> int:
        return sum(1 for p in self.properties if str(p.get("landlord_id")) == str(landlord_id))

    async def list_active_properties(self, limit: int) -> List[dict]:
        active = [p for p in self.properties if p.get("status", "active") == "active"]
        return active[:limit]

    async def list_user_interactions(self, user_id: str) -> List[Interaction]:
        return [i for i in self.interactions if i.user_id == user_id]

    async def insert_fraud_report(self, row: dict) -> None:
        self.fraud_reports.append(dict(row))

    async def upsert_user_preferences(self, user_id: str, preferences: dict) -> None:
        # Replace-on-write: latest preferences win
        self.user_preferences[user_id] = dict(preferences)

class HttpStore(PropertyStore):
    """
    PostgREST-style REST store (e.g. Supabase `/rest/v1`).
    Every non-2xx or transport failure becomes a StoreError; callers decide
    whether that is fatal.
    """
    def __init__(self, base_url: str, api_key: str | None = None, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["apikey"] = api_key
            self.headers["Authorization"] = f"Bearer {api_key}"

    async def _request(self, method: str, table: str, *, params: dict | None = None,
                       json: object = None, headers: dict | None = None) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        logger.debug("Store request", extra=log_context(method=method, table=table))
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers,
                                         transport=self.transport) as client:
                r = await client.request(method, url, params=params, json=json, headers=headers)
                logger.debug("Store response", extra=log_context(table=table, status=r.status_code))
                r.raise_for_status()
                return r
        except httpx.HTTPStatusError as exc:
            raise StoreError(
                f"{method} {table} failed with status {exc.response.status_code}",
                table=table, status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {table} failed: {exc}", table=table) from exc

    async def count_landlord_listings(self, landlord_id: str) -> int:
        r = await self._request(
            "GET", "properties",
            params={"select": "id", "landlord_id": f"eq.{landlord_id}", "status": "eq.active"},
            headers={"Prefer": "count=exact", "Range": "0-0"},
        )
        # Content-Range: 0-0/42  (or */0 when empty)
        content_range = r.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1]
        if total.isdigit():
            return int(total)
        return len(r.json())

    async def list_active_properties(self, limit: int) -> List[dict]:
        r = await self._request(
            "GET", "properties",
            params={"select": "*", "status": "eq.active", "limit": str(limit)},
        )
        return list(r.json())

    async def list_user_interactions(self, user_id: str) -> List[Interaction]:
        r = await self._request(
            "GET", "property_interactions",
            params={"select": "user_id,property_id,interaction_type", "user_id": f"eq.{user_id}"},
        )
        return [
            Interaction(
                user_id=str(i["user_id"]),
                property_id=str(i["property_id"]),
                interaction_type=i.get("interaction_type") or "view",
            ) for i in r.json()
        ]

    async def insert_fraud_report(self, row: dict) -> None:
        await self._request("POST", "fraud_reports", json=row, headers={"Prefer": "return=minimal"})

    async def upsert_user_preferences(self, user_id: str, preferences: dict) -> None:
        await self._request(
            "POST", "user_preferences",
            params={"on_conflict": "user_id"},
            json={"user_id": user_id, "preferences": preferences},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

def store_client(config=settings) -> PropertyStore:
    if config.STORE_PROVIDER == "http" and config.STORE_URL:
        return HttpStore(config.STORE_URL, config.STORE_KEY, config.STORE_TIMEOUT_SECONDS)
    if config.STORE_PROVIDER == "http":
        logger.warning("STORE_PROVIDER=http without STORE_URL; using in-memory store")
    return MemoryStore()
