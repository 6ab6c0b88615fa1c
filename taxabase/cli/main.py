"""Taxabase CLI: manage taxonomy models and their hierarchies from the command line."""

from __future__ import annotations

import json
from pathlib import Path

import click
from pydantic import ValidationError

from taxabase.client import Taxabase
from taxabase.engine.errors import MalformedModelIdError
from taxabase.engine.types import CoarseType, HierarchyDomain, ObjectType

DEFAULT_DB = "taxabase.db"


@click.group()
@click.option("--db", default=DEFAULT_DB, help="Path to the database file.")
@click.pass_context
def cli(ctx: click.Context, db: str) -> None:
    """Taxabase CLI: manage taxonomy models from the command line."""
    ctx.ensure_object(dict)
    ctx.obj["db"] = db


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize a new Taxabase database in the current directory."""
    db_path = ctx.obj["db"]
    if Path(db_path).exists():
        click.echo(f"Database already exists at {db_path}")
        return
    Taxabase(db_path).close()
    click.echo(f"Initialized Taxabase database at {db_path}")


# --- Models ---


@cli.group()
def model() -> None:
    """Manage the model directory."""


@model.command("create")
@click.argument("name")
@click.option("--locale", required=True, help="Locale of the model, e.g. 'en'.")
@click.option("--description", default="", help="Free-text description.")
@click.option("--version", "model_version", default="", help="Model version label.")
@click.pass_context
def model_create(
    ctx: click.Context, name: str, locale: str, description: str, model_version: str
) -> None:
    """Create a new, empty taxonomy model."""
    with Taxabase(ctx.obj["db"]) as tb:
        info = tb.create_model(
            name, locale=locale, description=description, version=model_version
        )
    click.echo(f"Model: {info.id} (name={info.name}, locale={info.locale})")


@model.command("list")
@click.pass_context
def model_list(ctx: click.Context) -> None:
    """List all models."""
    with Taxabase(ctx.obj["db"]) as tb:
        models = tb.models()
    if not models:
        click.echo("No models found.")
        return
    for m in models:
        click.echo(f"  {m.id}  name={m.name}  locale={m.locale}  released={m.released}")


# --- Entities ---


@cli.group()
def entity() -> None:
    """Manage the entities of a model."""


@entity.command("add")
@click.argument("model_id")
@click.argument("object_type", type=click.Choice([t.value for t in ObjectType]))
@click.argument("label")
@click.option("--code", default="", help="Hierarchical code of the entity.")
@click.option("--id", "entity_id", default=None, help="Keep this id instead of generating one.")
@click.pass_context
def entity_add(
    ctx: click.Context,
    model_id: str,
    object_type: str,
    label: str,
    code: str,
    entity_id: str | None,
) -> None:
    """Add an entity to a model."""
    with Taxabase(ctx.obj["db"]) as tb:
        try:
            result = tb.add_entity(model_id, object_type, label, code=code, id=entity_id)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Entity: {result.id} (type={result.object_type.value}, code={result.code})")


@entity.command("list")
@click.argument("model_id")
@click.option(
    "--type",
    "entity_type",
    default=None,
    help="Filter by coarse (e.g. Group) or fine (e.g. OccupationESCO) type.",
)
@click.pass_context
def entity_list(ctx: click.Context, model_id: str, entity_type: str | None) -> None:
    """List the entities of a model."""
    with Taxabase(ctx.obj["db"]) as tb:
        try:
            results = tb.entities(model_id, type=entity_type)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
    if not results:
        click.echo("No entities found.")
        return
    for e in results:
        click.echo(
            f"  {e.id}  type={e.object_type.value}  code={e.code}  label={e.preferred_label}"
        )


# --- Hierarchy ---


@cli.group()
def hierarchy() -> None:
    """Manage parent-child edges."""


@hierarchy.command("add")
@click.argument("model_id")
@click.argument("specs_file", type=click.Path(exists=True))
@click.pass_context
def hierarchy_add(ctx: click.Context, model_id: str, specs_file: str) -> None:
    """Create edges from a JSON file holding a list of edge specs.

    Each spec is an object with parent_id, parent_type, child_id and child_type.
    """
    raw = json.loads(Path(specs_file).read_text())
    if not isinstance(raw, list):
        raise click.ClickException("The specs file must contain a JSON list")
    with Taxabase(ctx.obj["db"]) as tb:
        try:
            created = tb.create_hierarchy(model_id, raw)
        except (MalformedModelIdError, ValidationError) as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Created {len(created)} of {len(raw)} edges.")


@hierarchy.command("list")
@click.argument("model_id")
@click.option(
    "--domain",
    type=click.Choice([d.value for d in HierarchyDomain]),
    default=HierarchyDomain.OCCUPATION.value,
    help="Which hierarchy to list.",
)
@click.pass_context
def hierarchy_list(ctx: click.Context, model_id: str, domain: str) -> None:
    """List the edges of one hierarchy."""
    with Taxabase(ctx.obj["db"]) as tb:
        try:
            count = 0
            for e in tb.hierarchy(model_id, domain):
                count += 1
                click.echo(
                    f"  {e.parent_type.value}:{e.parent_id} -> {e.child_type.value}:{e.child_id}"
                )
        except MalformedModelIdError as exc:
            raise click.ClickException(str(exc)) from exc
    if count == 0:
        click.echo("No edges found.")


def _echo_references(ctx: click.Context, model_id: str, entity_id: str, type: str, side: str):
    with Taxabase(ctx.obj["db"]) as tb:
        try:
            if side == "parents":
                refs = tb.parents(model_id, entity_id, type)
            else:
                refs = tb.children(model_id, entity_id, type)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
    if not refs:
        click.echo(f"No {side} found.")
        return
    for r in refs:
        click.echo(f"  {r.id}  type={r.object_type.value}  code={r.code}  label={r.label}")


_COARSE_CHOICE = click.Choice([c.value for c in CoarseType])


@hierarchy.command("parents")
@click.argument("model_id")
@click.argument("entity_id")
@click.argument("entity_type", type=_COARSE_CHOICE)
@click.pass_context
def hierarchy_parents(ctx: click.Context, model_id: str, entity_id: str, entity_type: str) -> None:
    """Show the parents of an entity."""
    _echo_references(ctx, model_id, entity_id, entity_type, "parents")


@hierarchy.command("children")
@click.argument("model_id")
@click.argument("entity_id")
@click.argument("entity_type", type=_COARSE_CHOICE)
@click.pass_context
def hierarchy_children(ctx: click.Context, model_id: str, entity_id: str, entity_type: str) -> None:
    """Show the children of an entity."""
    _echo_references(ctx, model_id, entity_id, entity_type, "children")


# --- Consistency ---


@cli.command()
@click.argument("model_id")
@click.pass_context
def stats(ctx: click.Context, model_id: str) -> None:
    """Show entity and edge counts for a model."""
    with Taxabase(ctx.obj["db"]) as tb:
        try:
            s = tb.stats(model_id)
        except MalformedModelIdError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Entities: {s.entity_count}  Edges: {s.edge_count}")
    if s.entities_by_type:
        click.echo("Entities by type:")
        for t, c in s.entities_by_type.items():
            click.echo(f"  {t}: {c}")
    click.echo("Edges by hierarchy:")
    for d, c in s.edges_by_domain.items():
        click.echo(f"  {d}: {c}")


@cli.command()
@click.argument("model_id")
@click.pass_context
def validate(ctx: click.Context, model_id: str) -> None:
    """Check the hierarchy of a model for broken links and code mismatches."""
    with Taxabase(ctx.obj["db"]) as tb:
        try:
            result = tb.validate(model_id)
        except MalformedModelIdError as exc:
            raise click.ClickException(str(exc)) from exc
    if result.valid:
        click.echo("Hierarchy is valid.")
    else:
        click.echo("Validation errors:")
        for err in result.errors:
            click.echo(f"  ERROR: {err}")
    for warn in result.warnings:
        click.echo(f"  WARNING: {warn}")


@cli.command()
@click.option("--db", default=None, help="Database path (overrides TAXABASE_DB_PATH).")
def mcp(db: str | None) -> None:
    """Start the MCP server for AI agent integration."""
    import os

    if db:
        os.environ["TAXABASE_DB_PATH"] = db
    from taxabase.mcp.server import run_server

    run_server()


if __name__ == "__main__":
    cli()
