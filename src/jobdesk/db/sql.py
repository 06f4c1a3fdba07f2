"""PostgreSQL document store behind the collection gateway protocol.

Every record is one JSONB row in ``documents`` keyed by ``(collection, id)``.
Ordering sorts a field by JSON type first (null, boolean, number, string),
then numbers numerically and text under the "C" collation, which matches the
code point order used by the in-memory store. Range predicates compare
numbers as numbers and everything else as text.
"""

import logging
import operator
from collections.abc import Callable, Mapping, Sequence
from datetime import date, datetime
from typing import Any

import sqlalchemy as sa
from pydantic import TypeAdapter
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from jobdesk.core.errors import NotFound, QueryFailed, WriteFailed
from jobdesk.core.ports.gateway import GatewayCapabilities
from jobdesk.core.predicates import (
    ID_ORDERING,
    Cursor,
    CursorKind,
    Direction,
    Ordering,
    Predicate,
    Record,
)
from jobdesk.db.helpers import new_record_id, utcnow

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

documents = sa.Table(
    "documents",
    metadata,
    sa.Column("collection", sa.Text, primary_key=True),
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("data", postgresql.JSONB, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
)

_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_JSON_DOCUMENT = TypeAdapter(dict[str, Any])

_COLLATION = "C"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime | date):
        return value.isoformat()
    return str(value)


def _text_expr(field: str) -> sa.ColumnElement[Any]:
    if field == "id":
        return documents.c.id.collate(_COLLATION)
    return sa.func.coalesce(documents.c.data[field].as_string(), "").collate(_COLLATION)


def _predicate_clause(predicate: Predicate) -> sa.ColumnElement[bool]:
    compare = _OPERATORS.get(predicate.op)
    if compare is None:
        raise QueryFailed(f"Unsupported operator {predicate.op!r}")
    value = predicate.value
    if predicate.field != "id" and isinstance(value, bool):
        return compare(documents.c.data[predicate.field].as_boolean(), value)
    if predicate.field != "id" and isinstance(value, int | float):
        return compare(documents.c.data[predicate.field].as_float(), value)
    return compare(_text_expr(predicate.field), _as_text(value))


def _sort_key(field: str) -> list[sa.ColumnElement[Any]]:
    """Expressions ordering a field like the in-memory store: by type first, then numerically or as text."""
    if field == "id":
        return [_text_expr("id")]
    node = documents.c.data[field]
    kind = sa.func.jsonb_typeof(node)
    rank = sa.case((kind == "boolean", 1), (kind == "number", 2), (kind == "string", 4), else_=0)
    number = sa.case((kind == "number", node.as_float()), else_=0.0)
    text = sa.case((kind == "number", ""), else_=sa.func.coalesce(node.as_string(), "")).collate(_COLLATION)
    return [rank, number, text]


def _sort_values(field: str, value: Any) -> list[Any]:
    if field == "id":
        return [_as_text(value)]
    if value is None:
        return [0, 0.0, ""]
    if isinstance(value, bool):
        return [1, 0.0, "true" if value else "false"]
    if isinstance(value, int | float):
        return [2, float(value), ""]
    return [4, 0.0, _as_text(value)]


def _cursor_clause(cursor: Cursor, ordering: Ordering) -> sa.ColumnElement[bool]:
    ident = _text_expr("id")
    forward = ordering.direction is Direction.ASC

    if cursor.kind is CursorKind.END_BEFORE:
        forward = not forward
        clause = ident < cursor.key.id
    elif cursor.kind is CursorKind.START_AT:
        clause = ident >= cursor.key.id
    else:
        clause = ident > cursor.key.id

    # Lexicographic keyset over the sort key, innermost component first.
    parts = zip(_sort_key(ordering.field), _sort_values(ordering.field, cursor.key.value), strict=True)
    for expr, value in reversed(list(parts)):
        beyond = expr > value if forward else expr < value
        clause = sa.or_(beyond, sa.and_(expr == value, clause))
    return clause


def _to_record(row: Any) -> Record:
    record = dict(row.data)
    record["id"] = row.id
    return record


class SqlCollectionGateway:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def capabilities(self) -> GatewayCapabilities:
        return GatewayCapabilities(max_range_fields=None, range_must_lead_order=False)

    async def query_page(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Ordering | None,
        limit: int | None,
        cursor: Cursor | None = None,
    ) -> list[Record]:
        if limit is not None and limit < 0:
            raise QueryFailed(f"Limit must not be negative, got {limit}")
        ordering = order_by or ID_ORDERING
        clauses = [_predicate_clause(p) for p in predicates]
        if cursor is not None:
            clauses.append(_cursor_clause(cursor, ordering))

        # Pages ending before a cursor are read backwards and flipped afterwards.
        backwards = cursor is not None and cursor.kind is CursorKind.END_BEFORE
        descending = (ordering.direction is Direction.DESC) != backwards
        ident = _text_expr("id")
        order = [expr.desc() if descending else expr.asc() for expr in _sort_key(ordering.field)]
        order.append(ident.desc() if backwards else ident.asc())

        stmt = (
            sa.select(documents.c.id, documents.c.data)
            .where(documents.c.collection == collection, *clauses)
            .order_by(*order)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._engine.connect() as conn:
                rows = (await conn.execute(stmt)).fetchall()
        except SQLAlchemyError as exc:
            raise QueryFailed(f"Query on {collection} failed: {exc}") from exc

        records = [_to_record(row) for row in rows]
        if backwards:
            records.reverse()
        return records

    async def approx_count(self, collection: str, predicates: Sequence[Predicate]) -> int:
        stmt = (
            sa.select(sa.func.count())
            .select_from(documents)
            .where(documents.c.collection == collection, *(_predicate_clause(p) for p in predicates))
        )
        try:
            async with self._engine.connect() as conn:
                return int((await conn.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            raise QueryFailed(f"Count on {collection} failed: {exc}") from exc

    async def create_record(self, collection: str, data: Mapping[str, Any]) -> Record:
        record_id = new_record_id()
        now = utcnow()
        document = _JSON_DOCUMENT.dump_python(dict(data), mode="json")
        document.pop("id", None)
        document["createdAt"] = now.isoformat()
        document["updatedAt"] = now.isoformat()
        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    sa.insert(documents).values(
                        collection=collection, id=record_id, data=document, created_at=now, updated_at=now
                    )
                )
        except SQLAlchemyError as exc:
            raise WriteFailed(f"Create in {collection} failed: {exc}") from exc
        logger.debug("Created %s/%s", collection, record_id)
        return {**document, "id": record_id}

    async def get_record(self, collection: str, record_id: str) -> Record:
        stmt = sa.select(documents.c.id, documents.c.data).where(
            documents.c.collection == collection, documents.c.id == record_id
        )
        try:
            async with self._engine.connect() as conn:
                row = (await conn.execute(stmt)).first()
        except SQLAlchemyError as exc:
            raise QueryFailed(f"Read of {collection}/{record_id} failed: {exc}") from exc
        if row is None:
            raise NotFound(collection, record_id)
        return _to_record(row)

    async def update_record(self, collection: str, record_id: str, data: Mapping[str, Any]) -> Record:
        now = utcnow()
        changes = _JSON_DOCUMENT.dump_python(dict(data), mode="json")
        changes.pop("id", None)
        match = (documents.c.collection == collection) & (documents.c.id == record_id)
        try:
            async with self._engine.begin() as conn:
                row = (await conn.execute(sa.select(documents.c.data).where(match).with_for_update())).first()
                if row is None:
                    raise NotFound(collection, record_id)
                document = {**row.data, **changes, "updatedAt": now.isoformat()}
                await conn.execute(sa.update(documents).where(match).values(data=document, updated_at=now))
        except SQLAlchemyError as exc:
            raise WriteFailed(f"Update of {collection}/{record_id} failed: {exc}") from exc
        return {**document, "id": record_id}

    async def delete_record(self, collection: str, record_id: str) -> None:
        stmt = sa.delete(documents).where(documents.c.collection == collection, documents.c.id == record_id)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise WriteFailed(f"Delete of {collection}/{record_id} failed: {exc}") from exc
        if result.rowcount == 0:
            raise NotFound(collection, record_id)

    async def ensure_ready(self) -> None:
        """Create the documents table when migrations have not been run."""
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(sa.text("SELECT 1"))
            return True
        except Exception:
            return False

    async def dispose(self) -> None:
        await self._engine.dispose()
