"""Integration tests for cursor-based pagination against a real PostgreSQL database."""

from __future__ import annotations

import pytest
import pytest_asyncio

from jobdesk.core.customers import CUSTOMER_FILTER_FIELDS, CUSTOMER_ORDERING, CUSTOMERS, customer_listing
from jobdesk.core.errors import NotFound
from jobdesk.core.jobs import job_listing
from jobdesk.core.planner import ClientFiltered, NativeQuery, QueryPlanner
from jobdesk.core.predicates import HIGH_SENTINEL, Cursor, CursorKey, Direction, Ordering, Predicate
from jobdesk.db import SqlCollectionGateway


@pytest_asyncio.fixture
async def customers(db: SqlCollectionGateway) -> list[str]:
    """Create 25 customers named Customer 01..25 and return their ids in name order."""
    ids: list[str] = []
    for i in range(1, 26):
        name = f"Customer {i:02d}"
        record = await db.create_record(
            CUSTOMERS,
            {"name": name, "nameLower": name.lower(), "postCode": "4000" if i % 2 else "4217"},
        )
        ids.append(record["id"])
    return ids


@pytest.mark.asyncio
async def test_query_page_orders_and_limits(db: SqlCollectionGateway, customers: list[str]) -> None:
    rows = await db.query_page(CUSTOMERS, [], Ordering("nameLower"), 3)
    assert [r["id"] for r in rows] == customers[:3]


@pytest.mark.asyncio
async def test_query_page_cursors(db: SqlCollectionGateway, customers: list[str]) -> None:
    ordering = Ordering("nameLower")
    anchor = CursorKey("customer 05", customers[4])
    after = await db.query_page(CUSTOMERS, [], ordering, 2, Cursor.start_after(anchor))
    at = await db.query_page(CUSTOMERS, [], ordering, 2, Cursor.start_at(anchor))
    before = await db.query_page(CUSTOMERS, [], ordering, 2, Cursor.end_before(anchor))
    assert [r["id"] for r in after] == customers[5:7]
    assert [r["id"] for r in at] == customers[4:6]
    assert [r["id"] for r in before] == customers[2:4]


@pytest.mark.asyncio
async def test_descending_order(db: SqlCollectionGateway, customers: list[str]) -> None:
    rows = await db.query_page(CUSTOMERS, [], Ordering("nameLower", Direction.DESC), 2)
    assert [r["id"] for r in rows] == customers[-1:-3:-1]


@pytest.mark.asyncio
async def test_prefix_predicates_and_count(db: SqlCollectionGateway, customers: list[str]) -> None:
    predicates = [
        Predicate("nameLower", ">=", "customer 1"),
        Predicate("nameLower", "<=", "customer 1" + HIGH_SENTINEL),
        Predicate("postCode", ">=", "42"),
        Predicate("postCode", "<=", "42" + HIGH_SENTINEL),
    ]
    rows = await db.query_page(CUSTOMERS, predicates, Ordering("nameLower"), None)
    assert [r["nameLower"] for r in rows] == [f"customer {i}" for i in (10, 12, 14, 16, 18)]
    assert await db.approx_count(CUSTOMERS, predicates) == 5


@pytest.mark.asyncio
async def test_sql_gateway_plans_multi_field_prefix_natively(db: SqlCollectionGateway) -> None:
    planner = QueryPlanner(db, CUSTOMERS)
    assert isinstance(planner.plan({"nameLower": "a", "postCode": "4"}, Ordering("nameLower")), NativeQuery)


@pytest.mark.asyncio
async def test_record_lifecycle(db: SqlCollectionGateway) -> None:
    created = await db.create_record(CUSTOMERS, {"name": "Jo", "phone": "1"})
    assert created["createdAt"] == created["updatedAt"]

    updated = await db.update_record(CUSTOMERS, created["id"], {"phone": "2"})
    assert updated["name"] == "Jo"
    assert updated["phone"] == "2"
    assert (await db.get_record(CUSTOMERS, created["id"]))["phone"] == "2"

    await db.delete_record(CUSTOMERS, created["id"])
    with pytest.raises(NotFound):
        await db.get_record(CUSTOMERS, created["id"])
    with pytest.raises(NotFound):
        await db.update_record(CUSTOMERS, created["id"], {"phone": "3"})
    with pytest.raises(NotFound):
        await db.delete_record(CUSTOMERS, created["id"])


@pytest.mark.asyncio
async def test_ping(db: SqlCollectionGateway) -> None:
    assert await db.ping() is True


@pytest.mark.asyncio
async def test_controller_walks_pages(db: SqlCollectionGateway, customers: list[str]) -> None:
    listing = customer_listing(db, page_size=10)
    await listing.load()
    assert listing.page_state.total_pages == 3
    await listing.next()
    await listing.next()
    assert [r["id"] for r in listing.records] == customers[20:]
    assert await listing.next() is False
    await listing.previous()
    assert [r["id"] for r in listing.records] == customers[10:20]


@pytest.mark.asyncio
async def test_controller_filters_on_two_prefix_fields(db: SqlCollectionGateway, customers: list[str]) -> None:
    listing = customer_listing(db, page_size=10)
    await listing.load({"name": "Customer 2", "postCode": "4217"})
    assert [r["nameLower"] for r in listing.records] == ["customer 20", "customer 22", "customer 24"]
    assert listing.page_state.total_items == 3


@pytest.mark.asyncio
async def test_substring_filter_runs_client_side(db: SqlCollectionGateway, customers: list[str]) -> None:
    planner = QueryPlanner(db, CUSTOMERS, CUSTOMER_FILTER_FIELDS)
    assert isinstance(planner.plan({"location": "x"}, CUSTOMER_ORDERING), ClientFiltered)
    await db.update_record(CUSTOMERS, customers[3], {"location": "North Brisbane"})
    listing = customer_listing(db, page_size=10)
    await listing.load({"location": "brisbane"})
    assert [r["id"] for r in listing.records] == [customers[3]]


@pytest.mark.asyncio
async def test_controller_delete_clamps_page(db: SqlCollectionGateway, customers: list[str]) -> None:
    listing = customer_listing(db, page_size=12)
    await listing.load()
    await listing.next()
    await listing.next()
    assert [r["id"] for r in listing.records] == [customers[24]]

    await listing.remove(customers[24])

    assert listing.page_state.total_pages == 2
    assert listing.page_state.page_index == 1
    assert [r["id"] for r in listing.records] == customers[12:24]


@pytest.mark.asyncio
async def test_job_listing_is_scoped(db: SqlCollectionGateway, customers: list[str]) -> None:
    mine = job_listing(db, customers[0], page_size=5)
    theirs = job_listing(db, customers[1], page_size=5)
    await mine.create({"date": "2026-01-01", "comments": "first"})
    await mine.create({"date": "2026-02-01", "comments": "second"})
    await theirs.create({"date": "2026-03-01"})

    await mine.load()
    assert [r["comments"] for r in mine.records] == ["second", "first"]
    assert mine.page_state.total_items == 2

    with pytest.raises(NotFound):
        await mine.remove(theirs.records[0]["id"])


@pytest.mark.asyncio
async def test_numeric_field_orders_and_pages_as_numbers(db: SqlCollectionGateway, customers: list[str]) -> None:
    listing = job_listing(db, customers[0], page_size=2)
    for doors in (9, 10, 2):
        await listing.create({"date": "2026-01-01", "doorsNeedCutting": doors})

    await listing.set_ordering(Ordering("doorsNeedCutting"))
    assert [r["doorsNeedCutting"] for r in listing.records] == [2, 9]
    assert await listing.next() is True
    assert [r["doorsNeedCutting"] for r in listing.records] == [10]
    assert await listing.previous() is True
    assert [r["doorsNeedCutting"] for r in listing.records] == [2, 9]

    descending = Ordering("doorsNeedCutting", Direction.DESC)
    top = (await db.query_page("jobs", [], descending, 1))[0]
    assert top["doorsNeedCutting"] == 10
    below = await db.query_page("jobs", [], descending, 5, Cursor.start_after(CursorKey(10, top["id"])))
    assert [r["doorsNeedCutting"] for r in below] == [9, 2]
