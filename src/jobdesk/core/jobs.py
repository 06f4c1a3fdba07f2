"""Site-visit jobs, stored in their own collection and linked to a customer by ``customerId``."""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from jobdesk.core.controller import PaginationController
from jobdesk.core.customers import CUSTOMERS
from jobdesk.core.errors import NotFound, WriteFailed
from jobdesk.core.filters import FilterField, MatchMode
from jobdesk.core.planner import CountStrategy
from jobdesk.core.ports.gateway import CollectionGateway
from jobdesk.core.predicates import Direction, Ordering
from jobdesk.models import Job, JobFields

JOBS = "jobs"

JOB_FILTER_FIELDS: dict[str, FilterField] = {
    "comments": FilterField(mode=MatchMode.CONTAINS, fold=True),
}

JOB_ORDERING = Ordering("date", Direction.DESC)


def prepare_job(data: Mapping[str, Any], creating: bool) -> dict[str, Any]:
    try:
        fields = JobFields.model_validate(dict(data))
    except ValidationError as exc:
        raise WriteFailed(f"Invalid job: {exc.error_count()} validation error(s)") from exc
    return fields.model_dump(mode="json", by_alias=True, exclude_unset=not creating)


def job_listing(
    gateway: CollectionGateway,
    customer_id: str,
    page_size: int = 10,
    count_strategy: CountStrategy = CountStrategy.AGGREGATE,
) -> PaginationController:
    """List view over one customer's jobs, newest first."""

    async def _customer_exists() -> None:
        await gateway.get_record(CUSTOMERS, customer_id)

    return PaginationController(
        gateway,
        JOBS,
        ordering=JOB_ORDERING,
        fields=JOB_FILTER_FIELDS,
        page_size=page_size,
        scope={"customerId": customer_id},
        prepare=prepare_job,
        create_guard=_customer_exists,
        count_strategy=count_strategy,
    )


async def get_job(gateway: CollectionGateway, customer_id: str, job_id: str) -> Job:
    record = await gateway.get_record(JOBS, job_id)
    if record.get("customerId") != customer_id:
        raise NotFound(JOBS, job_id)
    return Job.model_validate(record)


async def create_job(gateway: CollectionGateway, customer_id: str, data: Mapping[str, Any]) -> Job:
    await gateway.get_record(CUSTOMERS, customer_id)
    document = prepare_job(data, True)
    document["customerId"] = customer_id
    record = await gateway.create_record(JOBS, document)
    return Job.model_validate(record)


async def update_job(gateway: CollectionGateway, customer_id: str, job_id: str, data: Mapping[str, Any]) -> Job:
    await get_job(gateway, customer_id, job_id)
    record = await gateway.update_record(JOBS, job_id, prepare_job(data, False))
    return Job.model_validate(record)


async def delete_job(gateway: CollectionGateway, customer_id: str, job_id: str) -> None:
    await get_job(gateway, customer_id, job_id)
    await gateway.delete_record(JOBS, job_id)
