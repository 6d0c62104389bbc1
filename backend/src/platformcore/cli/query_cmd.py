"""Query CLI commands - show the SQL a listing would run."""

from pathlib import Path

import click

from platformcore.cli.entities_cmd import load_entities, path_option, resolve_entities_path
from platformcore.dispatch.listing import status_clauses
from platformcore.query import QueryBuilder, SortDirection


@click.group()
def query():
    """Listing query commands."""
    pass


@query.command()
@click.argument("entity")
@path_option
@click.option("--search", default="", help="Global search text.")
@click.option("--status", "status_filter", default=None, help="Status filter value ('all' disables).")
@click.option("--order", "order_column", default=-1, type=int, help="Column index to order by.")
@click.option("--dir", "order_dir", default="asc", type=click.Choice(["asc", "desc"]))
@click.option("--start", default=0, type=int)
@click.option("--length", default=10, type=int, help="Page length (-1 for all).")
@click.option("--dialect", default="sqlite", type=click.Choice(["sqlite", "postgresql"]))
def explain(
    entity: str,
    entities_path: Path | None,
    search: str,
    status_filter: str | None,
    order_column: int,
    order_dir: str,
    start: int,
    length: int,
    dialect: str,
):
    """Print the select and count SQL for ENTITY, with bind names.

    Extension mutators and relation scoping are request-specific and are
    not applied.
    """
    loader = load_entities(resolve_entities_path(entities_path))
    descriptor = loader.entities.get(entity)
    if descriptor is None:
        click.echo(f"Error: Unknown entity '{entity}'", err=True)
        raise SystemExit(1)

    extra = {descriptor.status_filter_key: status_filter} if status_filter else {}
    builder = (
        QueryBuilder(descriptor, dialect=dialect)
        .add_filters(status_clauses(descriptor, extra))
        .set_search_value(search)
        .set_pagination(start, length)
    )
    if order_column >= 0:
        builder.set_ordering(order_column, SortDirection(order_dir))

    for name, (sql, binds) in builder.explain().items():
        click.echo(click.style(f"-- {name}", fg="cyan", bold=True))
        click.echo(sql)
        click.echo(f"-- binds: {', '.join(binds) if binds else '(none)'}\n")
