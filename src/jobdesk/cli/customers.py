import asyncio
from collections.abc import Sequence
from typing import Annotated, Any

import typer

from jobdesk.cli.render import console, render_fields, render_page, render_table
from jobdesk.config import load_settings
from jobdesk.core.controller import PaginationController
from jobdesk.core.customers import create_customer as _create_customer
from jobdesk.core.customers import customer_listing
from jobdesk.core.customers import delete_customer as _delete_customer
from jobdesk.core.customers import get_customer as _get_customer
from jobdesk.core.customers import update_customer as _update_customer
from jobdesk.core.errors import JobdeskError
from jobdesk.core.ports.gateway import CollectionGateway
from jobdesk.models import Customer

customers_app = typer.Typer(help="Browse and edit customers.")

_HEADERS = ["id", "name", "phone", "location", "postCode"]

NameOpt = Annotated[str | None, typer.Option("--name", help="Name prefix, case-insensitive.")]
PhoneOpt = Annotated[str | None, typer.Option("--phone", help="Phone prefix.")]
LocationOpt = Annotated[str | None, typer.Option("--location", help="Text contained in the location.")]
PostCodeOpt = Annotated[str | None, typer.Option("--post-code", help="Post code prefix.")]
PageSizeOpt = Annotated[int | None, typer.Option("--page-size", min=1, help="Rows per page.")]


def _get_gateway() -> "CollectionGateway":
    from jobdesk.db.engine import get_engine
    from jobdesk.db.sql import SqlCollectionGateway

    return SqlCollectionGateway(get_engine())


def _filters(name: str | None, phone: str | None, location: str | None, post_code: str | None) -> dict[str, str | None]:
    return {"name": name, "phone": phone, "location": location, "postCode": post_code}


def _rows(records: Sequence[dict[str, Any]]) -> list[tuple[Any, ...]]:
    customers = [Customer.model_validate(r) for r in records]
    return [(c.id, c.name, c.phone, c.location, c.post_code) for c in customers]


def _show_page(listing: PaginationController) -> None:
    render_table(_HEADERS, _rows(listing.records))
    render_page(listing.page_state, len(listing.records))


def _fail(exc: JobdeskError) -> typer.Exit:
    console.print(f"[red]{exc.kind}:[/red] {exc}")
    return typer.Exit(1)


@customers_app.command("list")
def list_customers(
    name: NameOpt = None,
    phone: PhoneOpt = None,
    location: LocationOpt = None,
    post_code: PostCodeOpt = None,
    page: Annotated[int, typer.Option(min=1, help="1-based page to show.")] = 1,
    page_size: PageSizeOpt = None,
) -> None:
    """List one page of customers ordered by name."""
    settings = load_settings()
    gateway = _get_gateway()

    async def _run() -> None:
        listing = customer_listing(gateway, page_size or settings.page_size, settings.count_strategy)
        try:
            await listing.load(_filters(name, phone, location, post_code))
            for _ in range(page - 1):
                if not await listing.next():
                    break
            _show_page(listing)
        except JobdeskError as exc:
            raise _fail(exc) from exc
        finally:
            listing.close()
            await gateway.dispose()

    asyncio.run(_run())


@customers_app.command("browse")
def browse(
    name: NameOpt = None,
    phone: PhoneOpt = None,
    location: LocationOpt = None,
    post_code: PostCodeOpt = None,
    page_size: PageSizeOpt = None,
) -> None:
    """Page through customers interactively."""
    settings = load_settings()
    gateway = _get_gateway()

    async def _run() -> None:
        listing = customer_listing(gateway, page_size or settings.page_size, settings.count_strategy)
        try:
            await listing.load(_filters(name, phone, location, post_code))
            while True:
                _show_page(listing)
                choice = typer.prompt("[n]ext, [p]revious, [f]ilter, [c]lear, [q]uit", default="q").strip().lower()
                if choice == "n":
                    if not await listing.next():
                        console.print("No next page.")
                elif choice == "p":
                    if not await listing.previous():
                        console.print("No previous page.")
                elif choice == "f":
                    field = typer.prompt("Field (name, phone, location, postCode)").strip()
                    value = typer.prompt("Value", default="")
                    await listing.load({**listing.filters, field: value})
                elif choice == "c":
                    await listing.clear_filters()
                elif choice == "q":
                    break
        except JobdeskError as exc:
            raise _fail(exc) from exc
        finally:
            listing.close()
            await gateway.dispose()

    asyncio.run(_run())


@customers_app.command("show")
def show(customer_id: Annotated[str, typer.Argument(help="Customer id.")]) -> None:
    """Show one customer."""
    gateway = _get_gateway()

    async def _run() -> None:
        try:
            customer = await _get_customer(gateway, customer_id)
            render_fields(customer.name, list(customer.model_dump(by_alias=True).items()))
        except JobdeskError as exc:
            raise _fail(exc) from exc
        finally:
            await gateway.dispose()

    asyncio.run(_run())


@customers_app.command("add")
def add(
    name: Annotated[str, typer.Option(help="Customer name.")],
    email: Annotated[str, typer.Option(help="Email address.")] = "",
    phone: Annotated[str, typer.Option(help="Phone number.")] = "",
    location: Annotated[str, typer.Option(help="Site location.")] = "",
    billing_address: Annotated[str, typer.Option(help="Billing address.")] = "",
    post_code: Annotated[str, typer.Option(help="Post code.")] = "",
) -> None:
    """Create a customer."""
    gateway = _get_gateway()
    data = {
        "name": name,
        "email": email,
        "phone": phone,
        "location": location,
        "billingAddress": billing_address,
        "postCode": post_code,
    }

    async def _run() -> None:
        try:
            customer = await _create_customer(gateway, data)
            console.print(f"[green]Created[/green] customer {customer.id}")
        except JobdeskError as exc:
            raise _fail(exc) from exc
        finally:
            await gateway.dispose()

    asyncio.run(_run())


@customers_app.command("update")
def update(
    customer_id: Annotated[str, typer.Argument(help="Customer id.")],
    name: Annotated[str | None, typer.Option(help="Customer name.")] = None,
    email: Annotated[str | None, typer.Option(help="Email address.")] = None,
    phone: Annotated[str | None, typer.Option(help="Phone number.")] = None,
    location: Annotated[str | None, typer.Option(help="Site location.")] = None,
    billing_address: Annotated[str | None, typer.Option(help="Billing address.")] = None,
    post_code: Annotated[str | None, typer.Option(help="Post code.")] = None,
) -> None:
    """Change the given fields of a customer."""
    gateway = _get_gateway()
    supplied = {
        "name": name,
        "email": email,
        "phone": phone,
        "location": location,
        "billingAddress": billing_address,
        "postCode": post_code,
    }
    data = {k: v for k, v in supplied.items() if v is not None}
    if not data:
        console.print("Nothing to update.")
        return

    async def _run() -> None:
        try:
            customer = await _update_customer(gateway, customer_id, data)
            console.print(f"[green]Updated[/green] customer {customer.id}")
        except JobdeskError as exc:
            raise _fail(exc) from exc
        finally:
            await gateway.dispose()

    asyncio.run(_run())


@customers_app.command("delete")
def delete(
    customer_id: Annotated[str, typer.Argument(help="Customer id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt.")] = False,
) -> None:
    """Delete a customer."""
    if not yes and not typer.confirm(f"Delete customer {customer_id}?"):
        raise typer.Abort()
    gateway = _get_gateway()

    async def _run() -> None:
        try:
            await _delete_customer(gateway, customer_id)
            console.print(f"[green]Deleted[/green] customer {customer_id}")
        except JobdeskError as exc:
            raise _fail(exc) from exc
        finally:
            await gateway.dispose()

    asyncio.run(_run())
