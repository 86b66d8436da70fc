"""aiohttp wrapper around the HideSync documentation REST endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

from aiohttp import ClientError, ClientSession, ClientTimeout

from ..const import (
    DEFAULT_API_PREFIX,
    DEFAULT_RESOURCE_PATH,
    DEFAULT_SEARCH_RETRIES,
    DEFAULT_TIMEOUT,
    RETRYABLE_STATUSES,
)
from ..utils.logging import warn_once
from .errors import DocSyncError, NetworkError, ServerError, error_for_status
from .filters import ResourceFilters
from .models import Resource, ResourcePage

_LOGGER = logging.getLogger(__name__)


class DocumentationApiClient:
    """Remote service client for documentation resources.

    Every failure is raised as a :class:`~hidesync.docsync.errors.DocSyncError`
    subclass: transport problems become :class:`NetworkError`, HTTP errors are
    mapped by status.
    """

    def __init__(
        self,
        base_url: str,
        session: ClientSession | None = None,
        *,
        api_prefix: str = DEFAULT_API_PREFIX,
        resource_path: str = DEFAULT_RESOURCE_PATH,
        timeout: float = DEFAULT_TIMEOUT,
        search_retries: int = DEFAULT_SEARCH_RETRIES,
    ) -> None:
        self._origin = base_url.rstrip("/")
        self._root = f"{self._origin}/{api_prefix.strip('/')}" if api_prefix.strip("/") else self._origin
        self._collection = f"/{resource_path.strip('/')}"
        self._timeout = ClientTimeout(total=timeout)
        self._search_retries = max(int(search_retries), 0)
        self._session = session
        self._owns_session = session is None
        self.last_error: DocSyncError | None = None

    @property
    def origin(self) -> str:
        return self._origin

    def _get_session(self) -> ClientSession:
        if self._session is None:
            self._session = ClientSession()
        return self._session

    async def async_close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    async def list(self, filters: ResourceFilters | None = None) -> ResourcePage:
        filters = filters or ResourceFilters()
        data = await self._request("GET", f"{self._collection}/resources", params=filters.to_params())
        return ResourcePage.from_payload(data, page=filters.page, page_size=filters.page_size)

    async def get_by_id(self, resource_id: str) -> Resource:
        data = await self._request("GET", f"{self._collection}/resources/{resource_id}")
        return self._resource(data)

    async def create(self, body: Mapping[str, Any]) -> Resource:
        data = await self._request("POST", f"{self._collection}/resources", json_body=dict(body))
        return self._resource(data)

    async def update(self, resource_id: str, body: Mapping[str, Any]) -> Resource:
        data = await self._request("PUT", f"{self._collection}/resources/{resource_id}", json_body=dict(body))
        return self._resource(data)

    async def delete(self, resource_id: str) -> None:
        await self._request("DELETE", f"{self._collection}/resources/{resource_id}")

    async def list_categories(self) -> list[dict[str, Any]]:
        data = await self._request("GET", f"{self._collection}/categories")
        return self._resource_list(data)

    async def contextual_help(self, context_key: str) -> list[Resource]:
        data = await self._request("GET", f"{self._collection}/contextual-help", params={"key": context_key})
        return self._resource_list(data)

    async def search(self, query: str, *, max_retries: int | None = None) -> list[Resource]:
        """Search resources, retrying transient failures with exponential backoff."""

        retries = self._search_retries if max_retries is None else max(int(max_retries), 0)
        delay = 1.0
        for attempt in range(retries + 1):
            try:
                data = await self._request("GET", f"{self._collection}/search", params={"query": query})
            except NetworkError:
                if attempt == retries:
                    raise
            except ServerError as err:
                if err.status not in RETRYABLE_STATUSES or attempt == retries:
                    raise
            else:
                return self._resource_list(data)
            _LOGGER.debug("Search attempt %s for %r failed; retrying in %.1fs", attempt + 1, query, delay)
            await asyncio.sleep(delay)
            delay *= 2
        raise NetworkError(f"search for {query!r} failed")  # pragma: no cover - loop always returns or raises

    async def ping(self) -> bool:
        """Return ``True`` when the API health endpoint answers without a server error."""

        try:
            async with self._get_session().request("GET", f"{self._origin}/health", timeout=self._timeout) as resp:
                return resp.status < 500
        except (ClientError, TimeoutError) as err:
            _LOGGER.debug("Health check failed: %s", err)
            return False

    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
    ) -> Any:
        url = f"{self._root}{path}"
        try:
            async with self._get_session().request(
                method,
                url,
                params=params,
                json=json_body,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except (ClientError, TimeoutError) as err:
            warn_once(_LOGGER, "docsync_network", f"{method} {url} failed: {err}")
            self.last_error = NetworkError(f"{method} {url} failed: {err}")
            raise self.last_error from err

        data = self._decode(text, status)
        if status >= 400:
            self.last_error = error_for_status(status, data=data)
            _LOGGER.warning("%s %s returned HTTP %s: %s", method, url, status, self.last_error.message)
            raise self.last_error
        self.last_error = None
        return data

    def _decode(self, text: str, status: int) -> Any:
        if not text or not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as err:
            if status >= 400:
                return {"message": text.strip()}
            raise ServerError(f"invalid JSON in response: {err}", status=status, data=text) from err

    def _resource(self, data: Any) -> Resource:
        if isinstance(data, Mapping) and "id" not in data and isinstance(data.get("data"), Mapping):
            data = data["data"]
        if not isinstance(data, Mapping):
            raise ServerError("malformed resource response", data=data)
        return dict(data)

    def _resource_list(self, data: Any) -> list[dict[str, Any]]:
        if isinstance(data, Mapping):
            data = data.get("data", data.get("items", data.get("resources")))
        if data is None:
            return []
        if not isinstance(data, list):
            raise ServerError("malformed list response", data=data)
        return [dict(item) for item in data if isinstance(item, Mapping)]


__all__ = ["DocumentationApiClient"]
