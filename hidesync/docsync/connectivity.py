from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Protocol

_LOGGER = logging.getLogger(__name__)

EVENT_ONLINE = "online"
EVENT_OFFLINE = "offline"

Listener = Callable[[], Awaitable[None] | None]


class ConnectivitySignal:
    """Process-wide online/offline flag with transition events.

    Listeners run only on actual transitions: reporting ``online`` twice in a
    row notifies ``online`` listeners once.
    """

    def __init__(self, *, online: bool = True) -> None:
        self._online = online
        self._listeners: dict[str, list[Listener]] = {EVENT_ONLINE: [], EVENT_OFFLINE: []}
        self.changed_at: datetime | None = None

    @property
    def online(self) -> bool:
        return self._online

    def is_offline(self) -> bool:
        return not self._online

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event`` and return an unsubscribe callback."""

        if event not in self._listeners:
            raise ValueError(f"unknown connectivity event {event!r}")
        if listener not in self._listeners[event]:
            self._listeners[event].append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return _unsubscribe

    async def set_online(self, online: bool) -> bool:
        """Update the flag; return ``True`` when it changed and listeners ran."""

        online = bool(online)
        if online is self._online:
            return False
        self._online = online
        self.changed_at = datetime.now(tz=UTC)
        event = EVENT_ONLINE if online else EVENT_OFFLINE
        _LOGGER.info("Connectivity changed: %s", event)
        for listener in list(self._listeners[event]):
            try:
                result = listener()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                _LOGGER.exception("Connectivity listener for %s failed", event)
        return True


class _Pingable(Protocol):
    async def ping(self) -> bool: ...


class ConnectivityProbe:
    """Polls the API health endpoint and feeds the result into a signal."""

    def __init__(
        self,
        client: _Pingable,
        signal: ConnectivitySignal,
        *,
        interval_seconds: float = 30,
    ) -> None:
        self.client = client
        self.signal = signal
        self.interval_seconds = interval_seconds
        self.last_checked_at: datetime | None = None

    async def check_once(self) -> bool:
        reachable = await self.client.ping()
        self.last_checked_at = datetime.now(tz=UTC)
        await self.signal.set_online(reachable)
        return reachable

    async def run_forever(self) -> None:
        while True:
            try:
                await self.check_once()
            except asyncio.CancelledError:
                raise
            except Exception as err:  # pragma: no cover - logged and retried next interval
                _LOGGER.exception("Connectivity probe failed: %s", err)
            await asyncio.sleep(self.interval_seconds)

    def status(self) -> dict[str, Any]:
        return {
            "online": self.signal.online,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "interval_seconds": self.interval_seconds,
        }


__all__ = ["EVENT_OFFLINE", "EVENT_ONLINE", "ConnectivityProbe", "ConnectivitySignal"]
