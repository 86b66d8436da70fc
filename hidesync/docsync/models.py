from __future__ import annotations

import json
import math
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .errors import ConflictError, DocSyncError, ServerError

Resource = dict[str, Any]


class OperationKind(str, Enum):
    """Mutation intents recorded while offline."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def new_temp_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex}"


def is_temp_id(resource_id: str, prefix: str) -> bool:
    return bool(prefix) and str(resource_id).startswith(prefix)


def resource_id(resource: Mapping[str, Any]) -> str:
    raw = resource.get("id")
    if raw is None or str(raw).strip() == "":
        raise ServerError("resource payload missing id", data=dict(resource))
    return str(raw)


@dataclass(slots=True)
class PendingOperation:
    """A mutation queued for replay once the client is back online."""

    op_id: str
    operation: OperationKind
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)
    attempts: int = 0
    last_error: str | None = None

    @property
    def target_id(self) -> str:
        """Return the resource id the operation applies to."""

        if self.operation is OperationKind.CREATE:
            return self.op_id
        return str(self.payload.get("id") or "")

    @classmethod
    def create(cls, temp_id: str, payload: Mapping[str, Any]) -> PendingOperation:
        return cls(op_id=temp_id, operation=OperationKind.CREATE, payload=dict(payload))

    @classmethod
    def update(cls, target_id: str, patch: Mapping[str, Any]) -> PendingOperation:
        return cls(
            op_id=f"op-{uuid.uuid4().hex}",
            operation=OperationKind.UPDATE,
            payload={**dict(patch), "id": target_id},
        )

    @classmethod
    def delete(cls, target_id: str) -> PendingOperation:
        return cls(op_id=f"op-{uuid.uuid4().hex}", operation=OperationKind.DELETE, payload={"id": target_id})

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.op_id,
            "operation": self.operation.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }
        if self.attempts:
            payload["attempts"] = self.attempts
        if self.last_error is not None:
            payload["last_error"] = self.last_error
        return payload

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> PendingOperation:
        body = payload.get("payload")
        return cls(
            op_id=str(payload["id"]),
            operation=OperationKind(payload["operation"]),
            payload=dict(body) if isinstance(body, Mapping) else {},
            timestamp=float(payload.get("timestamp") or 0.0),
            attempts=int(payload.get("attempts") or 0),
            last_error=payload.get("last_error"),
        )

    @classmethod
    def from_json_line(cls, line: str) -> PendingOperation:
        return cls.from_dict(json.loads(line))


@dataclass(slots=True)
class PageMeta:
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @classmethod
    def compute(cls, total_items: int, page: int, page_size: int) -> PageMeta:
        size = max(int(page_size), 1)
        return cls(
            page=max(int(page), 1),
            page_size=size,
            total_items=int(total_items),
            total_pages=math.ceil(total_items / size) if total_items else 0,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
        }


@dataclass(slots=True)
class ResourcePage:
    """One page of resources together with its pagination metadata."""

    data: list[Resource]
    meta: PageMeta

    @classmethod
    def from_payload(cls, payload: Any, *, page: int = 1, page_size: int = 20) -> ResourcePage:
        """Normalise the list endpoint's response.

        Accepts ``{data, meta}``, the older ``{items, total, skip, limit}`` shape
        and a bare JSON array.
        """

        if isinstance(payload, Sequence) and not isinstance(payload, str | bytes | bytearray):
            items = [dict(item) for item in payload if isinstance(item, Mapping)]
            return cls(data=items, meta=PageMeta.compute(len(items), page, page_size))
        if not isinstance(payload, Mapping):
            raise ServerError("malformed list response", data=payload)

        if isinstance(payload.get("data"), list):
            items = [dict(item) for item in payload["data"] if isinstance(item, Mapping)]
            meta_raw = payload.get("meta") if isinstance(payload.get("meta"), Mapping) else {}
            try:
                current = int(meta_raw.get("page") or page)
                size = int(meta_raw.get("pageSize") or page_size)
                total = int(meta_raw.get("totalItems", len(items)))
            except (TypeError, ValueError) as err:
                raise ServerError("malformed pagination metadata", data=dict(meta_raw)) from err
            meta = PageMeta.compute(total, current, size)
            if meta_raw.get("totalPages") is not None:
                meta.total_pages = int(meta_raw["totalPages"])
            return cls(data=items, meta=meta)

        if isinstance(payload.get("items"), list):
            items = [dict(item) for item in payload["items"] if isinstance(item, Mapping)]
            try:
                limit = int(payload.get("limit") or page_size)
                skip = int(payload.get("skip") or 0)
                total = int(payload.get("total", len(items)))
            except (TypeError, ValueError) as err:
                raise ServerError("malformed pagination metadata", data=dict(payload)) from err
            limit = max(limit, 1)
            return cls(data=items, meta=PageMeta.compute(total, skip // limit + 1, limit))

        raise ServerError("malformed list response", data=dict(payload))

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "meta": self.meta.to_dict()}


@dataclass(slots=True)
class SyncReport:
    """Outcome of one replay pass over the pending operation queue."""

    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    attempted: int = 0
    applied: list[str] = field(default_factory=list)
    failed: dict[str, DocSyncError] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    id_map: dict[str, str] = field(default_factory=dict)
    refreshed: bool = False

    @property
    def conflicts(self) -> dict[str, ConflictError]:
        return {op_id: err for op_id, err in self.failed.items() if isinstance(err, ConflictError)}

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "attempted": self.attempted,
            "applied": list(self.applied),
            "failed": {op_id: err.to_dict() for op_id, err in self.failed.items()},
            "skipped": list(self.skipped),
            "id_map": dict(self.id_map),
            "refreshed": self.refreshed,
        }


__all__ = [
    "OperationKind",
    "PageMeta",
    "PendingOperation",
    "Resource",
    "ResourcePage",
    "SyncReport",
    "is_temp_id",
    "new_temp_id",
    "resource_id",
    "utc_now_iso",
]
