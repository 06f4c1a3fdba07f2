import logging
from typing import Annotated

import typer

from jobdesk.cli.customers import customers_app
from jobdesk.cli.db import db_app
from jobdesk.cli.jobs import jobs_app
from jobdesk.config import load_settings

app = typer.Typer(
    name="jobdesk",
    help="Jobdesk CLI: browse, filter and edit customers and their jobs.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log at DEBUG level.")] = False,
) -> None:
    level = logging.DEBUG if verbose else load_settings().log_level
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


app.add_typer(db_app, name="db")
app.add_typer(customers_app, name="customers")
app.add_typer(jobs_app, name="jobs")


def main() -> None:
    app()
