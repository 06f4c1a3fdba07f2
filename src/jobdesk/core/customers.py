from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from jobdesk.core.controller import PaginationController
from jobdesk.core.errors import WriteFailed
from jobdesk.core.filters import FilterField, MatchMode, fold
from jobdesk.core.planner import CountStrategy
from jobdesk.core.ports.gateway import CollectionGateway
from jobdesk.core.predicates import Ordering
from jobdesk.models import Customer, CustomerFields

CUSTOMERS = "customers"

# ``name`` searches the folded copy kept in ``nameLower`` so prefix queries stay case-insensitive.
CUSTOMER_FILTER_FIELDS: dict[str, FilterField] = {
    "name": FilterField(target="nameLower", fold=True),
    "phone": FilterField(),
    "location": FilterField(mode=MatchMode.CONTAINS, fold=True),
    "postCode": FilterField(),
}

CUSTOMER_ORDERING = Ordering("nameLower")


def prepare_customer(data: Mapping[str, Any], creating: bool) -> dict[str, Any]:
    """Validate customer input and derive ``nameLower``.

    On update only the supplied fields are written, and ``nameLower`` is
    refreshed only when ``name`` is among them.
    """
    try:
        fields = CustomerFields.model_validate(dict(data))
    except ValidationError as exc:
        raise WriteFailed(f"Invalid customer: {exc.error_count()} validation error(s)") from exc

    document = fields.model_dump(by_alias=True, exclude_unset=not creating)
    if creating or "name" in document:
        document["nameLower"] = fold(fields.name)
    return document


def customer_listing(
    gateway: CollectionGateway,
    page_size: int = 10,
    count_strategy: CountStrategy = CountStrategy.AGGREGATE,
) -> PaginationController:
    return PaginationController(
        gateway,
        CUSTOMERS,
        ordering=CUSTOMER_ORDERING,
        fields=CUSTOMER_FILTER_FIELDS,
        page_size=page_size,
        prepare=prepare_customer,
        count_strategy=count_strategy,
    )


def _clean_id(customer_id: str) -> str:
    record_id = str(customer_id).strip()
    if not record_id:
        raise WriteFailed("Customer id is required")
    return record_id


async def get_customer(gateway: CollectionGateway, customer_id: str) -> Customer:
    record = await gateway.get_record(CUSTOMERS, _clean_id(customer_id))
    return Customer.model_validate(record)


async def create_customer(gateway: CollectionGateway, data: Mapping[str, Any]) -> Customer:
    record = await gateway.create_record(CUSTOMERS, prepare_customer(data, True))
    return Customer.model_validate(record)


async def update_customer(gateway: CollectionGateway, customer_id: str, data: Mapping[str, Any]) -> Customer:
    record = await gateway.update_record(CUSTOMERS, _clean_id(customer_id), prepare_customer(data, False))
    return Customer.model_validate(record)


async def delete_customer(gateway: CollectionGateway, customer_id: str) -> None:
    await gateway.delete_record(CUSTOMERS, _clean_id(customer_id))
