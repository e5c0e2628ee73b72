"""In-memory list transforms shared by the listing endpoints.

Search, multi-key sort, pinned-first ordering and page slicing over lists of
plain dicts. Query-string parsing lives here too so every listing endpoint
accepts the same ``q``, ``sort``, ``dir``, ``page`` and ``page_size``.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .formatting import clamp_int

Getter = Callable[[Dict[str, Any]], Any]


@dataclass
class SortKey:
    field: str
    descending: bool = False
    getter: Optional[Getter] = None

    def value(self, item: Dict[str, Any]) -> Any:
        if self.getter is not None:
            return self.getter(item)
        return item.get(self.field)


@dataclass
class Page:
    items: List[Dict[str, Any]]
    page: int
    page_size: int
    total: int
    pages: int

    @property
    def showing_label(self) -> str:
        if not self.total:
            return "Showing 0-0 from 0 data"
        start = (self.page - 1) * self.page_size + 1
        end = min(self.total, start + self.page_size - 1)
        return f"Showing {start}-{end} from {self.total} data"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "pages": self.pages,
            "showing": self.showing_label,
        }


@dataclass
class ListArgs:
    q: str = ""
    sort: List[SortKey] = field(default_factory=list)
    page: int = 1
    page_size: int = 10


def search(items: Iterable[Dict[str, Any]], query: str, fields: Sequence[str]) -> List[Dict[str, Any]]:
    q = (query or "").strip().lower()
    items = list(items)
    if not q:
        return items

    def haystack(item: Dict[str, Any]) -> str:
        return " ".join(str(item.get(f) or "") for f in fields).lower()

    return [it for it in items if q in haystack(it)]


def _is_missing(v: Any) -> bool:
    return v is None or (isinstance(v, float) and math.isnan(v)) or v == ""


def _normalize(v: Any) -> Any:
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, (int, float)):
        return v
    if isinstance(v, str):
        return v.casefold()
    return str(v).casefold()


def sort_items(items: Iterable[Dict[str, Any]], keys: Sequence[SortKey]) -> List[Dict[str, Any]]:
    """Stable multi-key sort; missing values always sort last."""
    out = list(items)
    # Python's sort is stable: apply the least significant key first.
    for key in reversed(keys):
        present = [it for it in out if not _is_missing(key.value(it))]
        missing = [it for it in out if _is_missing(key.value(it))]
        numeric = all(isinstance(key.value(it), (int, float)) for it in present)
        if numeric:
            present.sort(key=lambda it: _normalize(key.value(it)), reverse=key.descending)
        else:
            present.sort(key=lambda it: str(_normalize(key.value(it))), reverse=key.descending)
        out = present + missing
    return out


def pinned_first(items: Iterable[Dict[str, Any]], pinned_ids: Iterable[str], id_field: str = "id") -> List[Dict[str, Any]]:
    pinned_set = set(pinned_ids)
    items = list(items)
    if not pinned_set:
        return items
    pinned = [it for it in items if str(it.get(id_field)) in pinned_set]
    rest = [it for it in items if str(it.get(id_field)) not in pinned_set]
    return pinned + rest


def paginate(items: Sequence[Dict[str, Any]], page: int = 1, page_size: int = 10) -> Page:
    page_size = max(1, int(page_size))
    total = len(items)
    pages = max(1, math.ceil(total / page_size))
    page = max(1, min(int(page), pages))
    start = (page - 1) * page_size
    return Page(items=list(items[start:start + page_size]), page=page, page_size=page_size, total=total, pages=pages)


def parse_list_args(
    args: Mapping[str, str],
    sortable: Mapping[str, Optional[Getter]],
    default_sort: Sequence[str] = (),
    numeric_fields: Iterable[str] = (),
    tie_breakers: Sequence[str] = (),
    max_page_size: int = 100,
) -> ListArgs:
    """Read listing query parameters.

    ``sortable`` maps the accepted sort field names to an optional getter.
    ``default_sort`` is used when ``sort`` is missing or unknown. Numeric
    fields default to descending, everything else to ascending; ``dir``
    overrides the primary key only. ``tie_breakers`` are appended ascending.
    """
    numeric = set(numeric_fields)

    requested = (args.get("sort") or "").strip()
    fields = [requested] if requested in sortable else [f for f in default_sort if f in sortable]

    direction = (args.get("dir") or "").strip().lower()
    keys: List[SortKey] = []
    for i, name in enumerate(fields):
        desc = name in numeric
        if i == 0 and direction in ("asc", "desc"):
            desc = direction == "desc"
        keys.append(SortKey(name, desc, sortable[name]))
    for name in tie_breakers:
        if name not in fields:
            keys.append(SortKey(name, False, sortable.get(name)))

    return ListArgs(
        q=(args.get("q") or "").strip(),
        sort=keys,
        page=clamp_int(args.get("page") or 1, 1, 1_000_000),
        page_size=clamp_int(args.get("page_size") or 10, 1, max_page_size),
    )


def apply(items: Iterable[Dict[str, Any]], list_args: ListArgs, search_fields: Sequence[str]) -> Page:
    found = search(items, list_args.q, search_fields)
    ordered = sort_items(found, list_args.sort)
    return paginate(ordered, list_args.page, list_args.page_size)
