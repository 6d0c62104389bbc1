"""Entity CLI commands - list and validate descriptors."""

import os
from pathlib import Path

import click

from platformcore.entities import EntityLoader
from platformcore.errors import DescriptorError


def resolve_entities_path(path: Path | None) -> Path:
    """Resolve the descriptor directory from an option, env or cwd."""
    if path is not None:
        return path
    raw = os.environ.get("PLATFORMCORE_ENTITIES_PATH")
    if raw:
        return Path(raw)
    cwd = Path.cwd()
    base_path = cwd.parent if cwd.name == "backend" else cwd
    return base_path / "entities"


def load_entities(path: Path) -> EntityLoader:
    """Load descriptors or exit with an error message."""
    if not path.exists():
        click.echo(f"Error: Entities directory not found at {path}", err=True)
        raise SystemExit(1)
    loader = EntityLoader(path)
    try:
        loader.load_all()
    except DescriptorError as e:
        click.echo(click.style(f"Invalid descriptor: {e.message}", fg="red"), err=True)
        raise SystemExit(1)
    return loader


path_option = click.option(
    "--path",
    "entities_path",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory of entity descriptor YAML files.",
)


@click.group()
def entities():
    """Entity descriptor commands."""
    pass


@entities.command("list")
@path_option
def list_cmd(entities_path: Path | None):
    """List entity descriptors."""
    loader = load_entities(resolve_entities_path(entities_path))

    if not loader.entities:
        click.echo("No entities found.")
        return

    for name in sorted(loader.entities):
        descriptor = loader.entities[name]
        status = (
            f", status: {descriptor.status_column}={descriptor.active_value}"
            if descriptor.status_column
            else ""
        )
        click.echo(
            f"  {name} ({descriptor.table} {descriptor.alias}, "
            f"{len(descriptor.columns)} columns{status})"
        )


@entities.command()
@path_option
def validate(entities_path: Path | None):
    """Validate entity descriptor YAML files."""
    loader = load_entities(resolve_entities_path(entities_path))

    click.echo(f"Loaded {len(loader.entities)} entities:")
    for name in sorted(loader.entities):
        descriptor = loader.entities[name]
        click.echo(f"  ✓ {name} ({len(descriptor.columns)} columns)")

    click.echo(click.style("\nAll entity descriptors are valid.", fg="green", bold=True))
