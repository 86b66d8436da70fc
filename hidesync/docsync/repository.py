"""Offline-aware repository for documentation resources.

The repository is the single point of truth for reading and mutating
resources. Callers never branch on connectivity themselves:

* online, reads and writes go to the remote client and every result is
  mirrored locally before the in-memory state is updated;
* offline, reads come from the mirror and writes are applied optimistically to
  memory and the mirror, then appended to the pending operation queue;
* when the connectivity signal reports ``online`` again the queue is replayed
  in timestamp order.

Concurrent ``update()`` calls for the same id are not serialised here. The UI
is expected to allow a single writer per resource at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from ..const import CONTEXT_KEYS_FIELD, DEFAULT_PAGE_SIZE, DEFAULT_TEMP_ID_PREFIX, RELATED_FIELD
from .connectivity import EVENT_ONLINE, ConnectivitySignal
from .errors import ConflictError, DocSyncError, NotFoundError, StorageError
from .filters import ResourceFilters
from .lifecycle import OptimisticMutation, replace_entry
from .models import (
    OperationKind,
    PageMeta,
    PendingOperation,
    Resource,
    ResourcePage,
    SyncReport,
    is_temp_id,
    new_temp_id,
    resource_id,
    utc_now_iso,
)
from .store import LocalMirrorStore, PendingOperationQueue

_LOGGER = logging.getLogger(__name__)


class RemoteServiceClient(Protocol):
    async def list(self, filters: ResourceFilters) -> ResourcePage: ...

    async def get_by_id(self, resource_id: str) -> Resource: ...

    async def create(self, body: Mapping[str, Any]) -> Resource: ...

    async def update(self, resource_id: str, body: Mapping[str, Any]) -> Resource: ...

    async def delete(self, resource_id: str) -> None: ...

    async def search(self, query: str) -> list[Resource]: ...

    async def list_categories(self) -> list[dict[str, Any]]: ...

    async def contextual_help(self, context_key: str) -> list[Resource]: ...


def _without_id(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if key != "id"}


class ResourceRepository:
    """Sync orchestrator between the remote client, the mirror and the queue."""

    def __init__(
        self,
        remote: RemoteServiceClient,
        mirror: LocalMirrorStore,
        queue: PendingOperationQueue,
        connectivity: ConnectivitySignal,
        *,
        temp_id_prefix: str = DEFAULT_TEMP_ID_PREFIX,
        page_size: int = DEFAULT_PAGE_SIZE,
        auto_sync: bool = True,
    ) -> None:
        if not temp_id_prefix:
            raise ValueError("temp_id_prefix must not be empty")
        self._remote = remote
        self._mirror = mirror
        self._queue = queue
        self._connectivity = connectivity
        self.temp_id_prefix = temp_id_prefix
        self.resources: dict[str, Resource] = {}
        self.current: Resource | None = None
        self.meta: PageMeta | None = None
        self.last_filters = ResourceFilters(page_size=page_size)
        self.last_sync_at: datetime | None = None
        self.last_sync_report: SyncReport | None = None
        self._sync_lock = asyncio.Lock()
        self._prefetch_tasks: set[asyncio.Task] = set()
        self._unsubscribe = connectivity.subscribe(EVENT_ONLINE, self._handle_online) if auto_sync else None

    @property
    def offline(self) -> bool:
        return self._connectivity.is_offline()

    def _is_provisional(self, resource_id_: str) -> bool:
        return is_temp_id(resource_id_, self.temp_id_prefix)

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._prefetch_tasks):
            task.cancel()
        if self._prefetch_tasks:
            await asyncio.gather(*self._prefetch_tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Reads
    async def list(self, filters: ResourceFilters | Mapping[str, Any] | None = None) -> list[Resource]:
        """Return one page of resources and make it the in-memory list."""

        if filters is None:
            filters = self.last_filters
        elif not isinstance(filters, ResourceFilters):
            filters = ResourceFilters.from_mapping(filters)

        if self.offline:
            page = filters.apply(self._mirror.get_all())
        else:
            page = await self._remote.list(filters)
            self._mirror.put_many(page.data)

        self.resources = {resource_id(item): item for item in page.data}
        self.meta = page.meta
        self.last_filters = filters
        return [dict(item) for item in page.data]

    async def get_by_id(self, resource_id_: str) -> Resource:
        if self.offline:
            resource = self._mirror.get(resource_id_)
            if resource is None:
                raise NotFoundError(f"resource {resource_id_} is not available offline", status=404)
            self.current = resource
            return resource

        resource = await self._remote.get_by_id(resource_id_)
        self._mirror.put(resource)
        if resource_id_ in self.resources:
            self.resources[resource_id_] = resource
        self.current = resource
        self._schedule_prefetch(resource)
        return resource

    async def search(self, term: str) -> list[Resource]:
        if self.offline:
            return ResourceFilters(search=term).select(self._mirror.get_all())
        results = await self._remote.search(term)
        self._mirror.put_many(results)
        return results

    async def contextual_help(self, context_key: str) -> list[Resource]:
        if self.offline:
            return [
                item
                for item in self._mirror.get_all()
                if context_key in (item.get(CONTEXT_KEYS_FIELD) or ())
            ]
        results = await self._remote.contextual_help(context_key)
        self._mirror.put_many(results)
        return results

    async def categories(self) -> list[dict[str, Any]]:
        if self.offline:
            return self._mirror.get_categories()
        categories = await self._remote.list_categories()
        self._mirror.put_categories(categories)
        return categories

    def _schedule_prefetch(self, resource: Mapping[str, Any]) -> None:
        related = resource.get(RELATED_FIELD)
        if not isinstance(related, list | tuple):
            return
        own_id = str(resource.get("id"))
        ids = list(dict.fromkeys(str(item) for item in related if item and str(item) != own_id))
        ids = [item for item in ids if not self._is_provisional(item)]
        if not ids:
            return
        task = asyncio.get_running_loop().create_task(self._prefetch(ids))
        self._prefetch_tasks.add(task)
        task.add_done_callback(self._prefetch_tasks.discard)

    async def _prefetch(self, ids: list[str]) -> None:
        for related_id in ids:
            if self.offline:
                return
            try:
                related = await self._remote.get_by_id(related_id)
                self._mirror.put(related)
            except DocSyncError as err:
                _LOGGER.debug("Prefetch of related resource %s failed: %s", related_id, err)

    async def wait_for_prefetch(self) -> None:
        """Wait until every scheduled related-resource prefetch has finished."""

        while self._prefetch_tasks:
            await asyncio.gather(*list(self._prefetch_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Mutations
    async def create(self, partial: Mapping[str, Any]) -> Resource:
        temp_id = new_temp_id(self.temp_id_prefix)
        body = _without_id(partial)
        provisional = {**body, "id": temp_id, "lastUpdated": utc_now_iso()}
        mutation = OptimisticMutation.begin(self.resources, temp_id)
        self.resources[temp_id] = provisional

        if self.offline:
            try:
                self._mirror.put(provisional)
                self._enqueue(PendingOperation.create(temp_id, body))
            except StorageError:
                mutation.rollback(self.resources)
                self._discard_mirror(temp_id)
                raise
            _LOGGER.debug("Queued offline create %s", temp_id)
            return dict(provisional)

        try:
            created = await self._remote.create(body)
        except DocSyncError:
            mutation.rollback(self.resources)
            raise
        new_id = resource_id(created)
        try:
            self._mirror.put(created)
        except StorageError:
            mutation.rollback(self.resources)
            raise
        replace_entry(self.resources, temp_id, new_id, created)
        mutation.confirm()
        return created

    async def update(self, resource_id_: str, partial: Mapping[str, Any]) -> Resource:
        current = self.resources.get(resource_id_) or self._mirror.get(resource_id_)
        queue_locally = self.offline or self._is_provisional(resource_id_)
        if current is None and queue_locally:
            raise NotFoundError(f"resource {resource_id_} is not available offline", status=404)

        patch = _without_id(partial)
        mutation = OptimisticMutation.begin(self.resources, resource_id_)
        merged = {**(current or {}), **patch, "id": resource_id_, "lastUpdated": utc_now_iso()}
        self.resources[resource_id_] = merged

        if queue_locally:
            try:
                self._mirror.put(merged)
                self._enqueue(PendingOperation.update(resource_id_, patch))
            except StorageError:
                mutation.rollback(self.resources)
                self._restore_mirror(current)
                raise
            self._track_current(resource_id_, merged)
            return dict(merged)

        try:
            updated = await self._remote.update(resource_id_, patch)
        except DocSyncError:
            mutation.rollback(self.resources)
            self._restore_mirror(current)
            raise
        try:
            self._mirror.put(updated)
        except StorageError:
            mutation.rollback(self.resources)
            raise
        self.resources[resource_id_] = updated
        mutation.confirm()
        self._track_current(resource_id_, updated)
        return updated

    async def delete(self, resource_id_: str) -> None:
        current = self.resources.get(resource_id_) or self._mirror.get(resource_id_)
        queue_locally = self.offline or self._is_provisional(resource_id_)
        if current is None and queue_locally:
            raise NotFoundError(f"resource {resource_id_} is not available offline", status=404)

        mutation = OptimisticMutation.begin(self.resources, resource_id_)
        self.resources.pop(resource_id_, None)

        if queue_locally:
            try:
                self._mirror.delete(resource_id_)
                self._enqueue(PendingOperation.delete(resource_id_))
            except StorageError:
                mutation.rollback(self.resources)
                self._restore_mirror(current)
                raise
            self._track_current(resource_id_, None)
            return

        try:
            await self._remote.delete(resource_id_)
        except DocSyncError:
            mutation.rollback(self.resources)
            raise
        # memory follows the server; a failed mirror delete still raises
        mutation.confirm()
        self._track_current(resource_id_, None)
        self._mirror.delete(resource_id_)

    def _enqueue(self, operation: PendingOperation) -> None:
        latest = self._queue.latest_timestamp()
        if latest is not None and operation.timestamp < latest:
            # wall clock stepped back; keep replay order equal to enqueue order
            operation.timestamp = latest
        self._queue.add(operation)

    def _track_current(self, resource_id_: str, value: Resource | None) -> None:
        if self.current is not None and str(self.current.get("id")) == resource_id_:
            self.current = value

    def _restore_mirror(self, snapshot: Resource | None) -> None:
        if snapshot is None:
            return
        try:
            self._mirror.put(snapshot)
        except StorageError as err:
            _LOGGER.error("Could not restore mirror entry %s after rollback: %s", snapshot.get("id"), err)

    def _discard_mirror(self, resource_id_: str) -> None:
        try:
            self._mirror.delete(resource_id_)
        except StorageError as err:
            _LOGGER.error("Could not remove provisional mirror entry %s: %s", resource_id_, err)

    # ------------------------------------------------------------------
    # Replay
    async def _handle_online(self) -> None:
        report = await self.sync()
        if report is not None:
            _LOGGER.info(
                "Replayed %s queued operations after reconnect (%s failed)",
                len(report.applied),
                len(report.failed),
            )

    def pending_operations(self) -> list[PendingOperation]:
        return self._queue.get_all()

    async def sync(self) -> SyncReport | None:
        """Replay queued operations once; ``None`` when there was nothing to do."""

        if self.offline:
            return None
        async with self._sync_lock:
            operations = self._queue.get_all()
            if not operations:
                return None
            report = SyncReport()
            for index, operation in enumerate(operations):
                if self.offline:
                    report.skipped.extend(op.op_id for op in operations[index:])
                    _LOGGER.info("Connection lost during replay; %s operations stay queued", len(operations) - index)
                    break
                target = report.id_map.get(operation.target_id, operation.target_id)
                if operation.operation is not OperationKind.CREATE and self._is_provisional(target):
                    # the create for this resource has not reached the server yet
                    report.skipped.append(operation.op_id)
                    continue
                report.attempted += 1
                try:
                    await self._replay(operation, target, report)
                except DocSyncError as err:
                    if isinstance(err, ConflictError) and err.operation_id is None:
                        err.operation_id = operation.op_id
                    report.failed[operation.op_id] = err
                    _LOGGER.warning(
                        "Replay of %s %s for %s failed: %s",
                        operation.operation.value,
                        operation.op_id,
                        target,
                        err,
                    )
                    self._queue.mark_attempt(operation.op_id, str(err))
                else:
                    report.applied.append(operation.op_id)

            self.last_sync_report = report
            self.last_sync_at = datetime.now(tz=UTC)

        try:
            await self.list(self.last_filters)
        except DocSyncError as err:
            _LOGGER.warning("Refreshing resources after replay failed: %s", err)
        else:
            report.refreshed = True
        return report

    async def _replay(self, operation: PendingOperation, target: str, report: SyncReport) -> None:
        if operation.operation is OperationKind.CREATE:
            created = await self._remote.create(_without_id(operation.payload))
            new_id = resource_id(created)
            # followups must point at the server id before their create leaves the queue
            self._queue.retarget(operation.op_id, new_id)
            self._queue.remove(operation.op_id)
            report.id_map[operation.op_id] = new_id
            self._mirror.delete(operation.op_id)
            self._mirror.put(created)
            replace_entry(self.resources, operation.op_id, new_id, created)
            self._track_current(operation.op_id, created)
            return

        if operation.operation is OperationKind.UPDATE:
            try:
                updated = await self._remote.update(target, _without_id(operation.payload))
            except NotFoundError as err:
                raise ConflictError(
                    f"resource {target} was deleted remotely before the update was replayed",
                    operation_id=operation.op_id,
                    status=err.status,
                    data=err.data,
                ) from err
            self._queue.remove(operation.op_id)
            self._mirror.put(updated)
            if target in self.resources:
                self.resources[target] = updated
            self._track_current(target, updated)
            return

        try:
            await self._remote.delete(target)
        except NotFoundError as err:
            raise ConflictError(
                f"resource {target} was already deleted remotely",
                operation_id=operation.op_id,
                status=err.status,
                data=err.data,
            ) from err
        self._queue.remove(operation.op_id)
        self._mirror.delete(target)

    def discard_pending(self, op_id: str) -> bool:
        """Drop a queued operation that cannot be replayed.

        Discarding a queued create also drops its provisional resource.
        """

        operation = next((op for op in self._queue.get_all() if op.op_id == op_id), None)
        if operation is None:
            return False
        self._queue.remove(op_id)
        if operation.operation is OperationKind.CREATE:
            self._mirror.delete(op_id)
            self.resources.pop(op_id, None)
            self._track_current(op_id, None)
        _LOGGER.info("Discarded pending %s operation %s", operation.operation.value, op_id)
        return True

    # ------------------------------------------------------------------
    # Saved-for-offline guides
    async def save_offline(self, resource_id_: str) -> Resource:
        resource = self._mirror.get(resource_id_)
        if resource is None:
            if self.offline:
                raise NotFoundError(f"resource {resource_id_} is not available offline", status=404)
            resource = await self.get_by_id(resource_id_)
        self._mirror.pin(resource_id_)
        return resource

    def remove_offline(self, resource_id_: str) -> bool:
        return self._mirror.unpin(resource_id_)

    def is_saved_offline(self, resource_id_: str) -> bool:
        return self._mirror.is_pinned(resource_id_)

    def offline_resources(self) -> list[Resource]:
        return [item["resource"] for item in self._mirror.pinned()]

    def storage_usage(self) -> int:
        return self._mirror.storage_usage()


__all__ = ["RemoteServiceClient", "ResourceRepository"]
