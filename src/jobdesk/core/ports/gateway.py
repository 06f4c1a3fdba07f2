from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from jobdesk.core.predicates import Cursor, Ordering, Predicate, Record


@dataclass(frozen=True)
class GatewayCapabilities:
    """What a gateway can evaluate natively in a single query.

    ``max_range_fields`` is ``None`` when any number of fields may carry
    range predicates at once.
    """

    max_range_fields: int | None = 1
    range_must_lead_order: bool = True


class CollectionGateway(Protocol):
    @property
    def capabilities(self) -> GatewayCapabilities: ...

    async def query_page(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Ordering | None,
        limit: int | None,
        cursor: Cursor | None = None,
    ) -> list[Record]: ...

    async def approx_count(self, collection: str, predicates: Sequence[Predicate]) -> int: ...

    async def create_record(self, collection: str, data: Mapping[str, Any]) -> Record: ...

    async def get_record(self, collection: str, record_id: str) -> Record: ...

    async def update_record(self, collection: str, record_id: str, data: Mapping[str, Any]) -> Record: ...

    async def delete_record(self, collection: str, record_id: str) -> None: ...

    async def ensure_ready(self) -> None: ...

    async def ping(self) -> bool: ...

    async def dispose(self) -> None: ...
