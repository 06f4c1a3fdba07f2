"""Local PostgreSQL container and schema commands."""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import time
from typing import TYPE_CHECKING, Annotated, Any

import typer

from jobdesk.cli.render import console, render_fields
from jobdesk.config import load_settings
from jobdesk.core.customers import CUSTOMERS
from jobdesk.core.errors import QueryFailed
from jobdesk.core.jobs import JOBS
from jobdesk.db.migrations import run_migrations

if TYPE_CHECKING:
    from jobdesk.core.ports.gateway import CollectionGateway

db_app = typer.Typer(help="Run the local jobdesk database and manage its schema.")

CONTAINER = "jobdesk-db"
IMAGE = "postgres:16-alpine"


def _docker(*args: str) -> subprocess.CompletedProcess[str]:
    if shutil.which("docker") is None:
        console.print("[red]Docker is not installed or not in PATH.[/red]")
        raise typer.Exit(1)
    return subprocess.run(["docker", *args], capture_output=True, text=True)


def container_state() -> str | None:
    """Docker status of the jobdesk container, or None when it does not exist."""
    result = _docker("inspect", "-f", "{{.State.Status}}", CONTAINER)
    return result.stdout.strip() if result.returncode == 0 else None


def wait_until_accepting(timeout: float = 30.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if _docker("exec", CONTAINER, "pg_isready", "-U", "postgres").returncode == 0:
            return True
        time.sleep(1)
    return False


def _get_gateway() -> CollectionGateway:
    from jobdesk.db.engine import get_engine
    from jobdesk.db.sql import SqlCollectionGateway

    return SqlCollectionGateway(get_engine())


async def schema_report(gateway: CollectionGateway) -> list[tuple[str, Any]]:
    """Reachability of the database and the number of stored customers and jobs."""
    try:
        if not await gateway.ping():
            return [("database", "unreachable")]
        rows: list[tuple[str, Any]] = [("database", "reachable")]
        for collection in (CUSTOMERS, JOBS):
            rows.append((collection, await gateway.approx_count(collection, [])))
        return rows
    except QueryFailed:
        return [("database", "reachable"), ("schema", "missing, run `jobdesk db migrate`")]
    finally:
        await gateway.dispose()


def _check(result: subprocess.CompletedProcess[str], action: str) -> None:
    if result.returncode != 0:
        console.print(f"[red]Could not {action} {CONTAINER}:[/red] {result.stderr.strip()}")
        raise typer.Exit(1)


@db_app.command("start")
def start(
    port: Annotated[int, typer.Option(help="Host port to map.")] = 5432,
    migrate: Annotated[bool, typer.Option("--migrate/--no-migrate", help="Upgrade the schema once up.")] = True,
) -> None:
    """Start the PostgreSQL container, creating it on first use."""
    state = container_state()
    if state == "running":
        console.print(f"[green]{CONTAINER} is already running.[/green]")
    else:
        if state is None:
            console.print(f"Creating {CONTAINER} from {IMAGE}...")
            result = _docker(
                "run", "-d", "--name", CONTAINER, "-p", f"{port}:5432", "-e", "POSTGRES_PASSWORD=postgres", IMAGE
            )
        else:
            console.print(f"Restarting {state} container {CONTAINER}...")
            result = _docker("start", CONTAINER)
        _check(result, "start")
        if not wait_until_accepting():
            console.print("[red]Database did not become ready in time.[/red]")
            raise typer.Exit(1)
        console.print(f"[green]Database ready on localhost:{port}[/green]")

    if migrate:
        run_migrations(load_settings().database_url)
        console.print("[green]Schema is up to date.[/green]")


@db_app.command("stop")
def stop(
    keep: Annotated[bool, typer.Option("--keep", help="Stop without removing the container and its data.")] = False,
) -> None:
    """Stop the database container and remove it unless --keep is given."""
    if container_state() is None:
        console.print(f"{CONTAINER} not found.")
        return
    _check(_docker("stop", CONTAINER), "stop")
    if keep:
        console.print(f"[green]{CONTAINER} stopped.[/green]")
        return
    _check(_docker("rm", CONTAINER), "remove")
    console.print(f"[green]{CONTAINER} stopped and removed.[/green]")


@db_app.command("status")
def status() -> None:
    """Show the container state, whether the schema exists, and record counts."""
    state = container_state()
    rows: list[tuple[str, Any]] = [("container", state or "not found")]
    if state == "running":
        rows.extend(asyncio.run(schema_report(_get_gateway())))
    render_fields(CONTAINER, rows)


@db_app.command("migrate")
def migrate(
    database_url: Annotated[str | None, typer.Option(help="Override DATABASE_URL.")] = None,
) -> None:
    """Upgrade the schema to the latest revision."""
    run_migrations(database_url or load_settings().database_url)
    console.print("[green]Schema is up to date.[/green]")
