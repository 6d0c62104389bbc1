"""Platform core CLI entry point."""

import click


@click.group()
def cli():
    """Platform core - listing engine developer tooling."""
    pass


# Register subcommand groups
from platformcore.cli.entities_cmd import entities  # noqa: E402
from platformcore.cli.query_cmd import query  # noqa: E402

cli.add_command(entities)
cli.add_command(query)
