from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .models import Resource


class MutationState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class MutationSettledError(RuntimeError):
    """Raised when a settled mutation is confirmed or rolled back again."""


@dataclass(slots=True)
class OptimisticMutation:
    """Tracks one optimistic change to an ordered in-memory resource map.

    Created in ``pending`` with a snapshot of the entry (``None`` when the id
    was absent) and its position, then settled exactly once through
    :meth:`confirm` or :meth:`rollback`.
    """

    resource_id: str
    snapshot: Resource | None
    position: int | None
    state: MutationState = MutationState.PENDING
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def begin(cls, resources: dict[str, Resource], resource_id: str) -> OptimisticMutation:
        snapshot = resources.get(resource_id)
        position = list(resources).index(resource_id) if snapshot is not None else None
        return cls(
            resource_id=resource_id,
            snapshot=copy.deepcopy(snapshot) if snapshot is not None else None,
            position=position,
        )

    @property
    def pending(self) -> bool:
        return self.state is MutationState.PENDING

    def _settle(self, state: MutationState) -> None:
        if self.state is not MutationState.PENDING:
            raise MutationSettledError(f"mutation for {self.resource_id} already {self.state.value}")
        self.state = state

    def confirm(self) -> None:
        self._settle(MutationState.CONFIRMED)

    def rollback(self, resources: dict[str, Resource], *, current_id: str | None = None) -> None:
        """Restore the snapshot into ``resources`` in place.

        ``current_id`` names the key the optimistic entry lives under when it
        differs from :attr:`resource_id`.
        """

        self._settle(MutationState.ROLLED_BACK)
        resources.pop(current_id or self.resource_id, None)
        if self.snapshot is None:
            return
        items = [(key, value) for key, value in resources.items() if key != self.resource_id]
        index = len(items) if self.position is None else min(self.position, len(items))
        items.insert(index, (self.resource_id, copy.deepcopy(self.snapshot)))
        resources.clear()
        resources.update(items)


def replace_entry(resources: dict[str, Resource], old_id: str, new_id: str, value: Resource) -> None:
    """Swap ``old_id`` for ``new_id`` in ``resources`` keeping its position."""

    if old_id not in resources:
        resources[new_id] = value
        return
    items = [(new_id if key == old_id else key, value if key == old_id else item) for key, item in resources.items()]
    resources.clear()
    resources.update(items)


__all__ = ["MutationSettledError", "MutationState", "OptimisticMutation", "replace_entry"]
