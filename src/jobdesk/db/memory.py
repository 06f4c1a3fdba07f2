import logging
from collections.abc import Mapping, Sequence
from typing import Any

from jobdesk.core.errors import NotFound, QueryFailed
from jobdesk.core.ports.gateway import GatewayCapabilities
from jobdesk.core.predicates import (
    EQUALITY_OPS,
    ID_ORDERING,
    RANGE_OPS,
    Cursor,
    Ordering,
    Predicate,
    Record,
    apply_cursor,
    matches,
    sort_records,
)
from jobdesk.db.helpers import new_record_id, utcnow

logger = logging.getLogger(__name__)


class InMemoryCollectionGateway:
    """Dict-backed document store with the query limits of a hosted document DB.

    By default a query may put range predicates on one field only, and that
    field must be the one it is ordered by.
    """

    def __init__(self, capabilities: GatewayCapabilities | None = None) -> None:
        self.collections: dict[str, dict[str, Record]] = {}
        self._capabilities = capabilities or GatewayCapabilities()
        self.query_count = 0
        self.count_calls = 0

    @property
    def capabilities(self) -> GatewayCapabilities:
        return self._capabilities

    async def query_page(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Ordering | None,
        limit: int | None,
        cursor: Cursor | None = None,
    ) -> list[Record]:
        ordering = order_by or ID_ORDERING
        self._validate(predicates, ordering)
        if limit is not None and limit < 0:
            raise QueryFailed(f"Limit must not be negative, got {limit}")
        self.query_count += 1

        rows = [r for r in self._rows(collection) if all(matches(r, p) for p in predicates)]
        page = apply_cursor(sort_records(rows, ordering), ordering, limit, cursor)
        return [dict(r) for r in page]

    async def approx_count(self, collection: str, predicates: Sequence[Predicate]) -> int:
        self._validate(predicates, None)
        self.count_calls += 1
        return sum(1 for r in self._rows(collection) if all(matches(r, p) for p in predicates))

    async def create_record(self, collection: str, data: Mapping[str, Any]) -> Record:
        record_id = new_record_id()
        now = utcnow()
        record = {**data, "id": record_id, "createdAt": now, "updatedAt": now}
        self.collections.setdefault(collection, {})[record_id] = record
        logger.debug("Created %s/%s", collection, record_id)
        return dict(record)

    async def get_record(self, collection: str, record_id: str) -> Record:
        return dict(self._get(collection, record_id))

    async def update_record(self, collection: str, record_id: str, data: Mapping[str, Any]) -> Record:
        record = self._get(collection, record_id)
        record.update(data)
        record["id"] = record_id
        record["updatedAt"] = utcnow()
        return dict(record)

    async def delete_record(self, collection: str, record_id: str) -> None:
        self._get(collection, record_id)
        del self.collections[collection][record_id]

    async def ensure_ready(self) -> None:
        pass

    async def ping(self) -> bool:
        return True

    async def dispose(self) -> None:
        pass

    def _rows(self, collection: str) -> list[Record]:
        return list(self.collections.get(collection, {}).values())

    def _get(self, collection: str, record_id: str) -> Record:
        record = self.collections.get(collection, {}).get(record_id)
        if record is None:
            raise NotFound(collection, record_id)
        return record

    def _validate(self, predicates: Sequence[Predicate], ordering: Ordering | None) -> None:
        unknown = [p.op for p in predicates if p.op not in EQUALITY_OPS | RANGE_OPS]
        if unknown:
            raise QueryFailed(f"Unsupported operators: {', '.join(unknown)}")

        range_fields = {p.field for p in predicates if p.is_range}
        limit = self._capabilities.max_range_fields
        if limit is not None and len(range_fields) > limit:
            raise QueryFailed(f"Range filters on more than {limit} field(s): {', '.join(sorted(range_fields))}")
        if (
            ordering is not None
            and self._capabilities.range_must_lead_order
            and range_fields
            and range_fields != {ordering.field}
        ):
            raise QueryFailed(f"Range field {', '.join(sorted(range_fields))} must be the first ordering")
