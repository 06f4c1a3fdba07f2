"""Turns a filter set, an ordering and a page request into gateway calls.

Two strategies exist. ``NativeQuery`` hands every predicate to the gateway
and lets it filter, order, limit and count. ``ClientFiltered`` is the
fallback for filter combinations the gateway cannot evaluate in one query
(several prefix fields, substring matches, a range field that is not the
sort field): only equality predicates are pushed down, the whole ordered
result is fetched, and filtering plus page slicing happen in memory. The
fallback reads the full matching collection on every call.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from jobdesk.core.errors import QueryFailed
from jobdesk.core.filters import FilterField, MatchMode, field_for, fold
from jobdesk.core.ledger import LedgerEntry
from jobdesk.core.ports.gateway import CollectionGateway
from jobdesk.core.predicates import (
    HIGH_SENTINEL,
    Cursor,
    CursorKey,
    Ordering,
    Predicate,
    Record,
    apply_cursor,
    field_value,
    sort_records,
)

logger = logging.getLogger(__name__)


class CountStrategy(StrEnum):
    AGGREGATE = "aggregate"
    SCAN = "scan"


@dataclass(frozen=True)
class LocalFilter:
    field: str
    value: str
    mode: MatchMode
    fold: bool = False

    def accepts(self, record: Record) -> bool:
        raw = field_value(record, self.field)
        if self.mode is MatchMode.CONTAINS:
            text = "" if raw is None else str(raw)
            return self.value in (fold(text) if self.fold else text)
        # Same bounds as the native range predicates.
        if not isinstance(raw, str):
            return False
        text = fold(raw) if self.fold else raw
        return self.value <= text <= self.value + HIGH_SENTINEL


@dataclass(frozen=True)
class NativeQuery:
    predicates: tuple[Predicate, ...]
    ordering: Ordering


@dataclass(frozen=True)
class ClientFiltered:
    pushed_down: tuple[Predicate, ...]
    local: tuple[LocalFilter, ...]
    ordering: Ordering

    def select(self, records: Sequence[Record]) -> list[Record]:
        kept = [r for r in records if all(f.accepts(r) for f in self.local)]
        return sort_records(kept, self.ordering)


QueryPlan = NativeQuery | ClientFiltered


@dataclass(frozen=True)
class PageResult:
    records: list[Record]
    first_key: CursorKey | None
    last_key: CursorKey | None
    total_items: int | None
    strategy: str

    @property
    def entry(self) -> LedgerEntry | None:
        if self.first_key is None or self.last_key is None:
            return None
        return LedgerEntry(self.first_key, self.last_key)


class QueryPlanner:
    def __init__(
        self,
        gateway: CollectionGateway,
        collection: str,
        fields: Mapping[str, FilterField] | None = None,
        *,
        scope: Mapping[str, Any] | None = None,
        count_strategy: CountStrategy = CountStrategy.AGGREGATE,
    ) -> None:
        self._gateway = gateway
        self._collection = collection
        self._fields = fields
        self._scope = dict(scope or {})
        self._count_strategy = count_strategy

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def scope(self) -> dict[str, Any]:
        return dict(self._scope)

    def plan(self, filters: Mapping[str, str], ordering: Ordering) -> QueryPlan:
        """Pick a strategy for already-normalized ``filters``."""
        equality = [Predicate(name, "==", value) for name, value in self._scope.items()]
        ranged: list[Predicate] = []
        local: list[LocalFilter] = []
        needs_substring = False

        for name, value in filters.items():
            declared = field_for(name, self._fields)
            target = declared.target_for(name)
            if declared.mode is MatchMode.EQUALS:
                equality.append(Predicate(target, "==", value))
                continue
            local.append(LocalFilter(target, value, declared.mode, declared.fold))
            if declared.mode is MatchMode.CONTAINS:
                needs_substring = True
            else:
                ranged.append(Predicate(target, ">=", value))
                ranged.append(Predicate(target, "<=", value + HIGH_SENTINEL))

        if not local:
            return NativeQuery(tuple(equality), ordering)
        if not needs_substring and self._supports_natively(ranged, ordering):
            return NativeQuery(tuple(equality + ranged), ordering)

        logger.info(
            "Filtering %s client-side for fields %s",
            self._collection,
            ", ".join(sorted(f.field for f in local)),
        )
        return ClientFiltered(tuple(equality), tuple(local), ordering)

    def _supports_natively(self, ranged: Sequence[Predicate], ordering: Ordering) -> bool:
        capabilities = self._gateway.capabilities
        range_fields = {p.field for p in ranged}
        if capabilities.max_range_fields is not None and len(range_fields) > capabilities.max_range_fields:
            return False
        return not (capabilities.range_must_lead_order and range_fields and range_fields != {ordering.field})

    async def fetch_page(
        self,
        filters: Mapping[str, str],
        ordering: Ordering,
        page_size: int,
        cursor: Cursor | None = None,
        *,
        with_count: bool = True,
    ) -> PageResult:
        if page_size < 1:
            raise QueryFailed(f"Page size must be positive, got {page_size}")

        plan = self.plan(filters, ordering)
        total: int | None = None
        if isinstance(plan, NativeQuery):
            records = await self._gateway.query_page(
                self._collection, plan.predicates, plan.ordering, page_size, cursor
            )
            if with_count:
                total = await self._count_native(plan)
            strategy = "native"
        else:
            matched = await self._fetch_filtered(plan)
            records = apply_cursor(matched, ordering, page_size, cursor)
            if with_count:
                total = len(matched)
            strategy = "client"

        return PageResult(
            records=records,
            first_key=CursorKey.from_record(records[0], ordering) if records else None,
            last_key=CursorKey.from_record(records[-1], ordering) if records else None,
            total_items=total,
            strategy=strategy,
        )

    async def count(self, filters: Mapping[str, str], ordering: Ordering) -> int:
        plan = self.plan(filters, ordering)
        if isinstance(plan, NativeQuery):
            return await self._count_native(plan)
        return len(await self._fetch_filtered(plan))

    async def _count_native(self, plan: NativeQuery) -> int:
        if self._count_strategy is CountStrategy.SCAN:
            rows = await self._gateway.query_page(self._collection, plan.predicates, plan.ordering, None)
            return len(rows)
        return await self._gateway.approx_count(self._collection, plan.predicates)

    async def _fetch_filtered(self, plan: ClientFiltered) -> list[Record]:
        rows = await self._gateway.query_page(self._collection, plan.pushed_down, plan.ordering, None)
        return plan.select(rows)
