"""Query value types shared by the planner and the gateway adapters.

Ordering is always ``(sort field, id)``: records that tie on the sort field
are ordered by id ascending, whatever the sort direction. ``CursorKey``
captures a record's position under that ordering, so cursors stay valid
when the record they were taken from is later edited or deleted.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

Record = dict[str, Any]

HIGH_SENTINEL = "\uf8ff"

EQUALITY_OPS = frozenset({"=="})
RANGE_OPS = frozenset({"<", "<=", ">", ">="})


class Direction(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Ordering:
    field: str
    direction: Direction = Direction.ASC


ID_ORDERING = Ordering("id")


@dataclass(frozen=True)
class Predicate:
    field: str
    op: str
    value: Any

    @property
    def is_range(self) -> bool:
        return self.op in RANGE_OPS


@dataclass(frozen=True)
class CursorKey:
    value: Any
    id: str

    @classmethod
    def from_record(cls, record: Record, ordering: Ordering) -> CursorKey:
        return cls(field_value(record, ordering.field), str(record["id"]))


class CursorKind(StrEnum):
    START_AFTER = "start_after"
    START_AT = "start_at"
    END_BEFORE = "end_before"


@dataclass(frozen=True)
class Cursor:
    kind: CursorKind
    key: CursorKey

    @classmethod
    def start_after(cls, key: CursorKey) -> Cursor:
        return cls(CursorKind.START_AFTER, key)

    @classmethod
    def start_at(cls, key: CursorKey) -> Cursor:
        return cls(CursorKind.START_AT, key)

    @classmethod
    def end_before(cls, key: CursorKey) -> Cursor:
        return cls(CursorKind.END_BEFORE, key)


def field_value(record: Record, field: str) -> Any:
    if field == "id":
        return record.get("id")
    return record.get(field)


def _rank(value: Any) -> tuple[int, Any]:
    # Cross-type order: null < bool < number < timestamp < text.
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, int | float):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    if isinstance(value, date):
        return (4, value.isoformat())
    return (4, str(value))


def _cmp(a: Any, b: Any) -> int:
    ra, rb = _rank(a), _rank(b)
    return (ra > rb) - (ra < rb)


def compare_keys(a: CursorKey, b: CursorKey, ordering: Ordering) -> int:
    """Three-way comparison of two positions under ``ordering``."""
    primary = _cmp(a.value, b.value)
    if ordering.direction is Direction.DESC:
        primary = -primary
    if primary:
        return primary
    return (a.id > b.id) - (a.id < b.id)


def matches(record: Record, predicate: Predicate) -> bool:
    value = field_value(record, predicate.field)
    if predicate.op == "==":
        return bool(value == predicate.value)
    if predicate.op not in RANGE_OPS:
        raise ValueError(f"Unsupported operator {predicate.op!r}")
    ra, rb = _rank(value), _rank(predicate.value)
    if ra[0] != rb[0]:
        return False
    if predicate.op == "<":
        return ra < rb
    if predicate.op == "<=":
        return ra <= rb
    if predicate.op == ">":
        return ra > rb
    return ra >= rb


def sort_records(records: Iterable[Record], ordering: Ordering) -> list[Record]:
    def _key_cmp(a: Record, b: Record) -> int:
        return compare_keys(CursorKey.from_record(a, ordering), CursorKey.from_record(b, ordering), ordering)

    return sorted(records, key=functools.cmp_to_key(_key_cmp))


def apply_cursor(
    records: Sequence[Record],
    ordering: Ordering,
    limit: int | None,
    cursor: Cursor | None = None,
) -> list[Record]:
    """Slice a window out of ``records``, which must already be sorted by ``ordering``."""
    if cursor is None:
        return list(records if limit is None else records[:limit])

    anchor = cursor.key

    def _position(record: Record) -> int:
        return compare_keys(CursorKey.from_record(record, ordering), anchor, ordering)

    if cursor.kind is CursorKind.END_BEFORE:
        window = [r for r in records if _position(r) < 0]
        if limit is None:
            return window
        return window[-limit:] if limit > 0 else []

    if cursor.kind is CursorKind.START_AT:
        window = [r for r in records if _position(r) >= 0]
    else:
        window = [r for r in records if _position(r) > 0]
    return window if limit is None else window[:limit]
