"""
REST remote store for the Observation Tracker.

Talks to a PostgREST-compatible table API plus an object-storage bucket API
(the layout Supabase exposes):

- tables:  {base}/rest/v1/{table}
- objects: {base}/storage/v1/object/{bucket}/{path}
- public:  {base}/storage/v1/object/public/{bucket}/{path}
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from adapters.base import RemoteStoreError

logger = logging.getLogger(__name__)

_PROJECT_COLUMNS = "id,name,description,password_hash,created_at,updated_at"

# Gateway / rate-limit answers worth another attempt
RETRYABLE_STATUS = {429, 502, 503, 504}


class _RetryableResponse(Exception):
    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class RestRemoteStore:
    """
    Async httpx client over the table + storage API.

    One AsyncClient is kept for the lifetime of the store; call `aclose()`
    on shutdown. Idempotent calls are retried with exponential backoff on
    transport errors and gateway/rate-limit responses.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str = "project-images",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_attempts: int = 3,
        retry_wait: float = 1.0,
    ):
        if not base_url:
            raise ValueError("REST backend requires REST_URL")
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait = retry_wait
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        }
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ---------- low-level ----------

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        r = await self._client.request(method, url, **kwargs)
        if r.status_code in RETRYABLE_STATUS:
            raise _RetryableResponse(r)
        return r

    async def _request(self, method: str, url: str, *, idempotent: bool = True, **kwargs) -> httpx.Response:
        attempts = self.retry_attempts if idempotent else 1
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=self.retry_wait, min=0, max=10),
                retry=retry_if_exception_type((httpx.TransportError, _RetryableResponse)),
                reraise=True,
            ):
                with attempt:
                    r = await self._send(method, url, **kwargs)
        except _RetryableResponse as e:
            r = e.response
        except httpx.TimeoutException as e:
            logger.error(f"{method} {url} timed out")
            raise RemoteStoreError("Remote store timeout", status_code=504) from e
        except httpx.RequestError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise RemoteStoreError(f"Remote store unreachable: {e}") from e

        if r.status_code >= 400:
            detail = _error_detail(r)
            logger.error(f"{method} {url} -> HTTP {r.status_code}: {detail}")
            raise RemoteStoreError(detail, status_code=r.status_code)
        return r

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path.lstrip('/')}"

    # ---------- entries ----------

    async def select_rows(self, project_id: str) -> List[Dict[str, Any]]:
        r = await self._request(
            "GET",
            "/rest/v1/entries",
            params={
                "select": "*",
                "project_id": f"eq.{project_id}",
                "order": "created_at.desc",
            },
        )
        return r.json() or []

    async def upsert_rows(self, rows: List[Dict[str, Any]], on_conflict: str = "id") -> None:
        if not rows:
            return
        await self._request(
            "POST",
            "/rest/v1/entries",
            params={"on_conflict": on_conflict},
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def delete_row(self, row_id: str) -> None:
        await self._request("DELETE", "/rest/v1/entries", params={"id": f"eq.{row_id}"})

    # ---------- blobs ----------

    async def upload_blob(self, data: bytes, path: str, content_type: Optional[str] = None) -> str:
        path = path.lstrip("/")
        await self._request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{path}",
            content=data,
            # overwrite on retry instead of failing with "already exists"
            headers={"Content-Type": content_type or "application/octet-stream", "x-upsert": "true"},
        )
        return self.public_url(path)

    # ---------- projects ----------

    async def create_project(self, name: str, description: str, password_hash: str) -> Dict[str, Any]:
        r = await self._request(
            "POST",
            "/rest/v1/projects",
            params={"select": _PROJECT_COLUMNS},
            json=[{"name": name, "description": description or "", "password_hash": password_hash}],
            headers={"Prefer": "return=representation"},
            idempotent=False,
        )
        data = r.json() or []
        if not data:
            raise RemoteStoreError("Project insert returned no row")
        return data[0]

    async def list_projects(self) -> List[Dict[str, Any]]:
        r = await self._request(
            "GET",
            "/rest/v1/projects",
            params={"select": _PROJECT_COLUMNS, "order": "created_at.desc"},
        )
        return r.json() or []

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        r = await self._request(
            "GET",
            "/rest/v1/projects",
            params={"select": _PROJECT_COLUMNS, "id": f"eq.{project_id}", "limit": "1"},
        )
        data = r.json() or []
        return data[0] if data else None

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {k: v for k, v in updates.items() if k in {"name", "description", "password_hash"}}
        r = await self._request(
            "PATCH",
            "/rest/v1/projects",
            params={"select": _PROJECT_COLUMNS, "id": f"eq.{project_id}"},
            json=allowed,
            headers={"Prefer": "return=representation"},
        )
        data = r.json() or []
        if not data:
            raise RemoteStoreError("Project not found", status_code=404)
        return data[0]

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", "/rest/v1/projects", params={"id": f"eq.{project_id}"})

    # ---------- lifecycle ----------

    async def ping(self) -> None:
        await self._request("GET", "/rest/v1/projects", params={"select": "id", "limit": "1"})

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_detail(r: httpx.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text or f"HTTP {r.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
