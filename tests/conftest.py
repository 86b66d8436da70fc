from __future__ import annotations

import copy
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from hidesync.docsync import (
    ConnectivitySignal,
    DocSyncError,
    DocSyncStore,
    NotFoundError,
    ResourceFilters,
    ResourcePage,
    ResourceRepository,
)


def make_resource(resource_id: str, title: str = "Saddle stitching", **extra: Any) -> dict[str, Any]:
    resource: dict[str, Any] = {
        "id": resource_id,
        "title": title,
        "description": f"{title} guide",
        "content": "Use two needles and waxed thread.",
        "category": "techniques",
        "type": "guide",
        "skillLevel": "beginner",
        "tags": ["stitching"],
        "relatedResources": [],
        "author": "workshop",
        "lastUpdated": "2026-01-01T00:00:00Z",
    }
    resource.update(extra)
    return resource


class FakeRemote:
    """In-memory stand-in for the documentation API."""

    def __init__(self) -> None:
        self.resources: dict[str, dict[str, Any]] = {}
        self.categories: list[dict[str, Any]] = []
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, list[DocSyncError]] = {}
        self._counter = 0

    def seed(self, *resources: dict[str, Any]) -> None:
        for resource in resources:
            self.resources[resource["id"]] = copy.deepcopy(resource)

    def fail_next(self, method: str, error: DocSyncError) -> None:
        self.failures.setdefault(method, []).append(error)

    def methods(self) -> list[str]:
        return [name for name, _arg in self.calls]

    def _record(self, method: str, arg: Any = None) -> None:
        self.calls.append((method, copy.deepcopy(arg)))
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def _get(self, resource_id: str) -> dict[str, Any]:
        if resource_id not in self.resources:
            raise NotFoundError(f"resource {resource_id} not found", status=404)
        return self.resources[resource_id]

    async def list(self, filters: ResourceFilters) -> ResourcePage:
        self._record("list", filters)
        return filters.apply(copy.deepcopy(list(self.resources.values())))

    async def get_by_id(self, resource_id: str) -> dict[str, Any]:
        self._record("get_by_id", resource_id)
        return copy.deepcopy(self._get(resource_id))

    async def create(self, body: Mapping[str, Any]) -> dict[str, Any]:
        self._record("create", dict(body))
        self._counter += 1
        resource = {**dict(body), "id": f"srv-{self._counter}", "lastUpdated": "2026-02-01T00:00:00Z"}
        self.resources[resource["id"]] = resource
        return copy.deepcopy(resource)

    async def update(self, resource_id: str, body: Mapping[str, Any]) -> dict[str, Any]:
        self._record("update", (resource_id, dict(body)))
        current = self._get(resource_id)
        current.update(dict(body))
        current["lastUpdated"] = "2026-02-02T00:00:00Z"
        return copy.deepcopy(current)

    async def delete(self, resource_id: str) -> None:
        self._record("delete", resource_id)
        self._get(resource_id)
        del self.resources[resource_id]

    async def search(self, query: str) -> list[dict[str, Any]]:
        self._record("search", query)
        return ResourceFilters(search=query).select(copy.deepcopy(list(self.resources.values())))

    async def list_categories(self) -> list[dict[str, Any]]:
        self._record("list_categories")
        return copy.deepcopy(self.categories)

    async def contextual_help(self, context_key: str) -> list[dict[str, Any]]:
        self._record("contextual_help", context_key)
        return [
            copy.deepcopy(item)
            for item in self.resources.values()
            if context_key in (item.get("contextualHelpKeys") or ())
        ]


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def store(tmp_path: Path) -> DocSyncStore:
    return DocSyncStore(tmp_path / "docsync.db")


@pytest.fixture
def signal() -> ConnectivitySignal:
    return ConnectivitySignal(online=True)


@pytest.fixture
def repository(remote: FakeRemote, store: DocSyncStore, signal: ConnectivitySignal) -> ResourceRepository:
    return ResourceRepository(remote, store.mirror, store.queue, signal)
