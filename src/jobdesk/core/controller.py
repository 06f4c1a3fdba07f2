"""State behind one paginated, filterable list view.

The controller is the only owner of its filters, page state, cursor ledger
and visible records. Reads are single-flight: every read takes a new
generation token, and a read whose token is no longer current when it
resolves is dropped without touching state, so the most recently started
read always wins. Writes go straight to the gateway and are followed by a
refresh of the visible page.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from jobdesk.core.errors import JobdeskError, NotFound, StaleOperation
from jobdesk.core.filters import FilterField, normalize_filters
from jobdesk.core.ledger import CursorLedger
from jobdesk.core.planner import CountStrategy, PageResult, QueryPlanner
from jobdesk.core.ports.gateway import CollectionGateway
from jobdesk.core.predicates import Cursor, Ordering, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")

Prepare = Callable[[Mapping[str, Any], bool], dict[str, Any]]
Guard = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class PageState:
    page_index: int = 0
    page_size: int = 10
    total_items: int = 0

    @property
    def total_pages(self) -> int:
        if self.total_items <= 0:
            return 0
        return math.ceil(self.total_items / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page_index < self.total_pages - 1

    @property
    def has_previous(self) -> bool:
        return self.page_index > 0


class PaginationController:
    def __init__(
        self,
        gateway: CollectionGateway,
        collection: str,
        *,
        ordering: Ordering,
        fields: Mapping[str, FilterField] | None = None,
        page_size: int = 10,
        scope: Mapping[str, Any] | None = None,
        prepare: Prepare | None = None,
        create_guard: Guard | None = None,
        count_strategy: CountStrategy = CountStrategy.AGGREGATE,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._gateway = gateway
        self._collection = collection
        self._fields = fields
        self._scope = dict(scope or {})
        self._prepare = prepare
        self._create_guard = create_guard
        self._planner = QueryPlanner(
            gateway, collection, fields, scope=self._scope, count_strategy=count_strategy
        )
        self._ordering = ordering
        self._filters: dict[str, str] = {}
        # Filters of a load still in flight; a refresh started meanwhile reads under these.
        self._pending_filters: dict[str, str] | None = None
        self._records: list[Record] = []
        self._page = PageState(page_size=page_size)
        self._ledger = CursorLedger()
        self._loading = False
        self._error: JobdeskError | None = None
        self._generation = 0
        self._closed = False

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def records(self) -> list[Record]:
        return list(self._records)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> JobdeskError | None:
        return self._error

    @property
    def error_kind(self) -> str | None:
        return self._error.kind if self._error is not None else None

    @property
    def page_state(self) -> PageState:
        return self._page

    @property
    def filters(self) -> dict[str, str]:
        return dict(self._filters)

    @property
    def ordering(self) -> Ordering:
        return self._ordering

    @property
    def ledger(self) -> CursorLedger:
        return self._ledger

    @property
    def closed(self) -> bool:
        return self._closed

    # -- reads ---------------------------------------------------------------

    async def load(self, filters: Mapping[str, str | None] | None = None) -> None:
        """Apply ``filters`` and show page 0."""
        if self._closed:
            return
        normalized = normalize_filters(filters, self._fields)
        token = self._begin_read()
        self._pending_filters = normalized
        try:
            page = await self._read(
                token, self._planner.fetch_page(normalized, self._ordering, self._page.page_size)
            )
        except StaleOperation:
            logger.debug("Discarded superseded load of %s", self._collection)
            return
        except JobdeskError:
            self._pending_filters = None
            raise

        self._filters = normalized
        self._pending_filters = None
        ledger = CursorLedger()
        if page.entry is not None:
            ledger = ledger.push(0, page.entry)
        self._commit(page.records, 0, ledger, page.total_items or 0)

    async def next(self) -> bool:
        if self._closed or self._loading or not self._page.has_next:
            return False
        entry = self._ledger.get(self._page.page_index)
        if entry is None:
            return False

        token = self._begin_read()
        try:
            page = await self._read(
                token,
                self._planner.fetch_page(
                    self._filters,
                    self._ordering,
                    self._page.page_size,
                    Cursor.start_after(entry.last_key),
                    with_count=False,
                ),
            )
        except StaleOperation:
            logger.debug("Discarded superseded next page of %s", self._collection)
            return False

        if page.entry is None:
            # Records past this page disappeared since the last count.
            await self.refresh()
            return False

        next_index = self._page.page_index + 1
        self._commit(page.records, next_index, self._ledger.push(next_index, page.entry), self._page.total_items)
        return True

    async def previous(self) -> bool:
        if self._closed or self._loading or not self._page.has_previous:
            return False

        target = self._page.page_index - 1
        token = self._begin_read()
        try:
            page = await self._fetch_at(token, target, self._filters, self._ledger)
        except StaleOperation:
            logger.debug("Discarded superseded previous page of %s", self._collection)
            return False

        if page.entry is None:
            await self.load(self._filters)
            return False

        ledger = self._ledger.pop().restate(page.entry)
        self._commit(page.records, target, ledger, self._page.total_items)
        return True

    async def first(self) -> None:
        await self.load(self._filters)

    async def clear_filters(self) -> None:
        await self.load({})

    async def refresh(self) -> None:
        """Recount, clamp the page index into range and re-read that page."""
        if self._closed:
            return
        # A refresh that overtakes a pending load shows page 0 of the pending filters.
        filters, ledger, page_index = self._filters, self._ledger, self._page.page_index
        if self._pending_filters is not None:
            filters, ledger, page_index = self._pending_filters, CursorLedger(), 0

        token = self._begin_read()
        try:
            total = await self._read(token, self._planner.count(filters, self._ordering))
            total_pages = replace(self._page, total_items=total).total_pages
            target = min(page_index, max(total_pages - 1, 0))
            page = await self._fetch_at(token, target, filters, ledger)
            while page.entry is None and target > 0:
                target -= 1
                page = await self._fetch_at(token, target, filters, ledger)
        except StaleOperation:
            logger.debug("Discarded superseded refresh of %s", self._collection)
            return

        self._filters = filters
        self._pending_filters = None
        ledger = ledger.truncate(target)
        if page.entry is not None:
            ledger = ledger.push(target, page.entry)
        self._commit(page.records, target, ledger, total)

    async def set_ordering(self, ordering: Ordering) -> None:
        self._ordering = ordering
        self._ledger = CursorLedger()
        await self.load(self._filters)

    async def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._page = PageState(page_size=page_size)
        self._ledger = CursorLedger()
        await self.load(self._filters)

    def close(self) -> None:
        """Detach from the view. Reads resolving after this never touch state."""
        self._closed = True
        self._generation += 1
        self._loading = False

    # -- writes --------------------------------------------------------------

    async def create(self, data: Mapping[str, Any]) -> Record:
        document = self._prepare_document(data, creating=True)
        document.update(self._scope)
        if self._create_guard is not None:
            await self._lookup(self._create_guard())
        record = await self._write(self._gateway.create_record(self._collection, document))
        await self.refresh()
        return record

    async def update(self, record_id: str, data: Mapping[str, Any]) -> Record:
        document = self._prepare_document(data, creating=False)
        for key in self._scope:
            document.pop(key, None)
        await self._ensure_in_scope(record_id)
        record = await self._write(self._gateway.update_record(self._collection, record_id, document))
        await self.refresh()
        return record

    async def remove(self, record_id: str) -> None:
        await self._ensure_in_scope(record_id)
        await self._write(self._gateway.delete_record(self._collection, record_id))
        await self.refresh()

    # -- internals -----------------------------------------------------------

    def _begin_read(self) -> int:
        self._generation += 1
        self._loading = True
        return self._generation

    def _is_current(self, token: int) -> bool:
        return not self._closed and token == self._generation

    async def _read(self, token: int, operation: Awaitable[T]) -> T:
        try:
            result = await operation
        except JobdeskError as exc:
            if not self._is_current(token):
                raise StaleOperation(f"{self._collection} read {token} superseded") from exc
            self._loading = False
            self._error = exc
            raise
        except BaseException:
            if self._is_current(token):
                self._loading = False
            raise
        if not self._is_current(token):
            raise StaleOperation(f"{self._collection} read {token} superseded")
        return result

    async def _fetch_at(
        self, token: int, page_index: int, filters: Mapping[str, str], ledger: CursorLedger
    ) -> PageResult:
        entry = ledger.get(page_index)
        cursor = Cursor.start_at(entry.first_key) if page_index > 0 and entry is not None else None
        return await self._read(
            token,
            self._planner.fetch_page(
                filters, self._ordering, self._page.page_size, cursor, with_count=False
            ),
        )

    def _commit(self, records: list[Record], page_index: int, ledger: CursorLedger, total_items: int) -> None:
        self._records = records
        self._ledger = ledger
        self._page = replace(self._page, page_index=page_index, total_items=total_items)
        self._loading = False
        self._error = None

    def _prepare_document(self, data: Mapping[str, Any], *, creating: bool) -> dict[str, Any]:
        try:
            document = self._prepare(data, creating) if self._prepare is not None else dict(data)
        except JobdeskError as exc:
            self._record_error(exc)
            raise
        document.pop("id", None)
        return document

    async def _write(self, operation: Awaitable[T]) -> T:
        try:
            result = await operation
        except JobdeskError as exc:
            self._record_error(exc)
            raise
        if not self._closed:
            self._error = None
        return result

    async def _ensure_in_scope(self, record_id: str) -> None:
        if not self._scope:
            return
        record = await self._lookup(self._gateway.get_record(self._collection, record_id))
        if any(record.get(key) != value for key, value in self._scope.items()):
            exc = NotFound(self._collection, record_id)
            self._record_error(exc)
            raise exc

    async def _lookup(self, operation: Awaitable[T]) -> T:
        """Read made on behalf of a write. Failures are stored, success leaves ``error`` alone."""
        try:
            return await operation
        except JobdeskError as exc:
            self._record_error(exc)
            raise

    def _record_error(self, exc: JobdeskError) -> None:
        if not self._closed:
            self._error = exc
