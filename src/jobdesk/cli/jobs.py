import asyncio
import datetime as dt
from typing import Annotated

import typer

from jobdesk.cli.render import console, render_page, render_table
from jobdesk.config import load_settings
from jobdesk.core.errors import JobdeskError
from jobdesk.core.jobs import create_job as _create_job
from jobdesk.core.jobs import delete_job as _delete_job
from jobdesk.core.jobs import job_listing
from jobdesk.core.ports.gateway import CollectionGateway
from jobdesk.models import Job

jobs_app = typer.Typer(help="Browse and record site-visit jobs for a customer.")

_HEADERS = ["id", "date", "underlay", "grippers", "doors to cut", "door plates", "comments"]

CustomerArg = Annotated[str, typer.Argument(help="Customer id.")]


def _get_gateway() -> "CollectionGateway":
    from jobdesk.db.engine import get_engine
    from jobdesk.db.sql import SqlCollectionGateway

    return SqlCollectionGateway(get_engine())


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


@jobs_app.command("list")
def list_jobs(
    customer_id: CustomerArg,
    comments: Annotated[str | None, typer.Option(help="Text contained in the comments.")] = None,
    page: Annotated[int, typer.Option(min=1, help="1-based page to show.")] = 1,
    page_size: Annotated[int | None, typer.Option("--page-size", min=1, help="Rows per page.")] = None,
) -> None:
    """List a customer's jobs, newest first."""
    settings = load_settings()
    gateway = _get_gateway()

    async def _run() -> None:
        listing = job_listing(gateway, customer_id, page_size or settings.page_size, settings.count_strategy)
        try:
            await listing.load({"comments": comments})
            for _ in range(page - 1):
                if not await listing.next():
                    break
            jobs = [Job.model_validate(r) for r in listing.records]
            rows = [
                (
                    j.id,
                    j.date.isoformat(),
                    _yes_no(j.has_underlay),
                    _yes_no(j.has_grippers),
                    j.doors_need_cutting,
                    j.number_of_door_plate_needed,
                    j.comments,
                )
                for j in jobs
            ]
            render_table(_HEADERS, rows)
            render_page(listing.page_state, len(rows))
        except JobdeskError as exc:
            console.print(f"[red]{exc.kind}:[/red] {exc}")
            raise typer.Exit(1) from exc
        finally:
            listing.close()
            await gateway.dispose()

    asyncio.run(_run())


@jobs_app.command("add")
def add(
    customer_id: CustomerArg,
    date: Annotated[dt.datetime | None, typer.Option(formats=["%Y-%m-%d"], help="Visit date, defaults to today.")] = None,
    has_underlay: Annotated[bool, typer.Option("--has-underlay/--no-underlay")] = False,
    has_grippers: Annotated[bool, typer.Option("--has-grippers/--no-grippers")] = False,
    floor_is_good: Annotated[bool, typer.Option("--floor-is-good/--floor-needs-work")] = False,
    old_flooring_removed: Annotated[bool, typer.Option("--old-flooring-removed/--old-flooring-kept")] = False,
    furniture_removal: Annotated[bool, typer.Option("--furniture-removal/--no-furniture-removal")] = False,
    concrete: Annotated[bool, typer.Option("--concrete/--no-concrete")] = False,
    doors_need_cutting: Annotated[int, typer.Option(min=0, help="Doors that need cutting.")] = 0,
    door_plates: Annotated[int, typer.Option(min=0, help="Door plates needed.")] = 0,
    comments: Annotated[str, typer.Option(help="Free-text notes.")] = "",
) -> None:
    """Record a job for a customer."""
    gateway = _get_gateway()
    data = {
        "date": (date.date() if date else dt.date.today()).isoformat(),
        "hasUnderlay": has_underlay,
        "hasGrippers": has_grippers,
        "floorIsGood": floor_is_good,
        "oldFlooringRemoved": old_flooring_removed,
        "furnitureRemoval": furniture_removal,
        "concrete": concrete,
        "doorsNeedCutting": doors_need_cutting,
        "numberOfDoorPlateNeeded": door_plates,
        "comments": comments,
    }

    async def _run() -> None:
        try:
            job = await _create_job(gateway, customer_id, data)
            console.print(f"[green]Created[/green] job {job.id}")
        except JobdeskError as exc:
            console.print(f"[red]{exc.kind}:[/red] {exc}")
            raise typer.Exit(1) from exc
        finally:
            await gateway.dispose()

    asyncio.run(_run())


@jobs_app.command("delete")
def delete(
    customer_id: CustomerArg,
    job_id: Annotated[str, typer.Argument(help="Job id.")],
) -> None:
    """Delete one of a customer's jobs."""
    gateway = _get_gateway()

    async def _run() -> None:
        try:
            await _delete_job(gateway, customer_id, job_id)
            console.print(f"[green]Deleted[/green] job {job_id}")
        except JobdeskError as exc:
            console.print(f"[red]{exc.kind}:[/red] {exc}")
            raise typer.Exit(1) from exc
        finally:
            await gateway.dispose()

    asyncio.run(_run())
