"""Wire the documentation sync components together and manage their lifetime."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import UTC, datetime
from typing import Any

from aiohttp import ClientSession

from .client import DocumentationApiClient
from .config import DocSyncConfig
from .connectivity import ConnectivityProbe, ConnectivitySignal
from .errors import DocSyncError
from .models import SyncReport
from .repository import RemoteServiceClient, ResourceRepository
from .store import DocSyncStore

_LOGGER = logging.getLogger(__name__)


class DocSyncManager:
    """Owns the store, client, connectivity signal and repository for one process."""

    def __init__(
        self,
        config: DocSyncConfig,
        *,
        session: ClientSession | None = None,
        store: DocSyncStore | None = None,
        remote: RemoteServiceClient | None = None,
        signal: ConnectivitySignal | None = None,
    ) -> None:
        self.config = config
        self.store = store or DocSyncStore(config.store_path)
        self.signal = signal or ConnectivitySignal(online=True)
        self._client: DocumentationApiClient | None = None
        if remote is None:
            self._client = DocumentationApiClient(
                config.base_url,
                session,
                api_prefix=config.api_prefix,
                resource_path=config.resource_path,
                timeout=config.timeout,
                search_retries=config.search_retries,
            )
            remote = self._client
        self.remote = remote
        self.repository = ResourceRepository(
            remote,
            self.store.mirror,
            self.store.queue,
            self.signal,
            temp_id_prefix=config.temp_id_prefix,
            page_size=config.page_size,
        )
        self.probe = ConnectivityProbe(self._client, self.signal, interval_seconds=config.probe_interval) if (
            self._client is not None and config.probe_enabled
        ) else None
        self._probe_task: asyncio.Task | None = None
        self._last_manual_sync_at: datetime | None = None
        self._last_manual_sync_error: str | None = None

    @property
    def running(self) -> bool:
        return self._probe_task is not None and not self._probe_task.done()

    async def async_start(self) -> None:
        """Start polling connectivity when a probe is configured."""

        if self.probe is None or self.running:
            return
        self._probe_task = asyncio.get_running_loop().create_task(self.probe.run_forever())
        _LOGGER.debug("Connectivity probe started (every %ss)", self.probe.interval_seconds)

    async def async_stop(self) -> None:
        if self._probe_task:
            self._probe_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._probe_task
        self._probe_task = None
        await self.repository.close()
        if self._client is not None:
            await self._client.async_close()
        self.store.close()

    async def async_sync_now(self) -> SyncReport | None:
        """Replay queued operations immediately, regardless of the probe schedule."""

        self._last_manual_sync_at = datetime.now(tz=UTC)
        try:
            report = await self.repository.sync()
        except DocSyncError as err:
            self._last_manual_sync_error = str(err)
            raise
        self._last_manual_sync_error = None
        return report

    def status(self) -> dict[str, Any]:
        """Return runtime information for diagnostics."""

        repo = self.repository
        report = repo.last_sync_report
        status: dict[str, Any] = {
            "online": self.signal.online,
            "connectivity_changed_at": self.signal.changed_at.isoformat() if self.signal.changed_at else None,
            "pending_operations": self.store.queue.size(),
            "mirror_entries": self.store.mirror.count(),
            "saved_offline": len(self.store.mirror.pinned_ids()),
            "storage_usage_bytes": self.store.mirror.storage_usage(),
            "store_path": str(self.config.store_path),
            "last_sync_at": repo.last_sync_at.isoformat() if repo.last_sync_at else None,
            "last_sync": report.to_dict() if report else None,
            "manual_sync": {
                "last_run_at": self._last_manual_sync_at.isoformat() if self._last_manual_sync_at else None,
                "error": self._last_manual_sync_error,
            },
            "probe": self.probe.status() if self.probe else None,
        }
        if self._client is not None and self._client.last_error is not None:
            status["last_error"] = self._client.last_error.to_dict()
        else:
            status["last_error"] = None
        return status


__all__ = ["DocSyncManager"]
