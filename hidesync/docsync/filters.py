"""Filter structure shared by the online query and the offline mirror scan."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from ..const import DEFAULT_PAGE_SIZE, SEARCH_FIELDS
from .models import PageMeta, Resource, ResourcePage

# attribute name -> resource field / query parameter
_EXACT_FIELDS: tuple[tuple[str, str], ...] = (
    ("category", "category"),
    ("resource_type", "type"),
    ("skill_level", "skillLevel"),
    ("author", "author"),
)

_ALIASES = {
    "type": "resource_type",
    "skillLevel": "skill_level",
    "hasVideos": "has_videos",
    "pageSize": "page_size",
    "term": "search",
    "query": "search",
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    enum_value = getattr(value, "value", value)
    return str(enum_value)


@dataclass(slots=True, frozen=True)
class ResourceFilters:
    """Named optional filters for documentation resources.

    Matching semantics:

    * ``category``, ``resource_type``, ``skill_level`` and ``author`` match the
      resource field exactly.
    * ``tags`` requires every listed tag to be present (case-insensitive).
    * ``has_videos`` compares against whether the resource lists any videos.
    * ``search`` is a case-insensitive substring test across title,
      description and content.

    ``None`` (or an empty tuple) disables a filter.
    """

    category: str | None = None
    resource_type: str | None = None
    skill_level: str | None = None
    author: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    has_videos: bool | None = None
    search: str | None = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> ResourceFilters:
        """Build filters from snake_case or API camelCase keys."""

        if not payload:
            return cls()
        values: dict[str, Any] = {}
        for key, value in payload.items():
            name = _ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__ or value is None:
                continue
            values[name] = value
        tags = values.get("tags")
        if isinstance(tags, str):
            values["tags"] = (tags,)
        elif tags is not None:
            values["tags"] = tuple(str(tag) for tag in tags if tag)
        for name in ("page", "page_size"):
            if name in values:
                values[name] = int(values[name])
        for name, _resource_field in _EXACT_FIELDS:
            if name in values:
                values[name] = _text(values[name])
        return cls(**values)

    def with_page(self, page: int, page_size: int | None = None) -> ResourceFilters:
        return replace(self, page=page, page_size=page_size or self.page_size)

    # ------------------------------------------------------------------
    def matches(self, resource: Mapping[str, Any]) -> bool:
        for name, resource_field in _EXACT_FIELDS:
            expected = getattr(self, name)
            if expected is not None and _text(resource.get(resource_field)) != _text(expected):
                return False
        if self.tags:
            present = {str(tag).lower() for tag in resource.get("tags") or ()}
            if not all(tag.lower() in present for tag in self.tags):
                return False
        if self.has_videos is not None and bool(resource.get("videos")) is not self.has_videos:
            return False
        if self.search:
            term = self.search.strip().lower()
            if term and not any(term in str(resource.get(key) or "").lower() for key in SEARCH_FIELDS):
                return False
        return True

    def select(self, resources: Iterable[Resource]) -> list[Resource]:
        return [item for item in resources if self.matches(item)]

    def apply(self, resources: Iterable[Resource]) -> ResourcePage:
        """Filter ``resources`` and return the requested page."""

        return paginate(self.select(resources), self.page, self.page_size)

    def to_params(self) -> dict[str, str]:
        """Return the query string parameters understood by the list endpoint."""

        params: dict[str, str] = {}
        for name, resource_field in _EXACT_FIELDS:
            value = getattr(self, name)
            if value is not None:
                params[resource_field] = _text(value)
        if self.tags:
            params["tags"] = ",".join(self.tags)
        if self.has_videos is not None:
            params["hasVideos"] = "true" if self.has_videos else "false"
        if self.search:
            params["search"] = self.search
        params["page"] = str(self.page)
        params["pageSize"] = str(self.page_size)
        return params


def paginate(items: list[Resource], page: int, page_size: int) -> ResourcePage:
    meta = PageMeta.compute(len(items), page, page_size)
    start = (meta.page - 1) * meta.page_size
    return ResourcePage(data=items[start : start + meta.page_size], meta=meta)


__all__ = ["ResourceFilters", "paginate"]
