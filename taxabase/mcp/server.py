"""Taxabase MCP server. Exposes model directory and hierarchy operations as tools for AI agents."""

from __future__ import annotations

import functools
import logging
import os
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from taxabase.client import Taxabase
from taxabase.engine.types import HierarchyDomain, ObjectType

# All logging goes to stderr; stdout is reserved for JSON-RPC
logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("taxabase.mcp")

# ---------------------------------------------------------------------------
# Client singleton, safe for single-process stdio MCP
# ---------------------------------------------------------------------------

_CLIENT: Taxabase | None = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    global _CLIENT
    db_path = os.environ.get("TAXABASE_DB_PATH", "taxabase.db")
    logger.info("Opening Taxabase database: %s", db_path)
    _CLIENT = Taxabase(db_path)
    try:
        yield {}
    finally:
        if _CLIENT is not None:
            _CLIENT.close()
            _CLIENT = None


mcp = FastMCP(
    "Taxabase",
    instructions=(
        "Taxabase is a directory of taxonomy models (occupations, occupation groups, "
        "skills, skill groups). Create a model first, then add entities to it. "
        "Hierarchy edges link a parent to a child inside one model. "
        "Occupation hierarchy pairs: Group->Group, Group->Occupation, Occupation->Occupation. "
        "Skill hierarchy pairs: SkillGroup->SkillGroup, SkillGroup->Skill, Skill->Skill. "
        "create_hierarchy silently skips invalid or duplicate edges and returns only "
        "the edges that were stored."
    ),
    lifespan=app_lifespan,
)


def _get_client() -> Taxabase:
    """Return the active Taxabase client."""
    if _CLIENT is None:
        raise RuntimeError("Taxabase client is not initialized")
    return _CLIENT


def _safe_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Tool %s failed", fn.__name__)
            return {"error": True, "message": f"{type(exc).__name__}: {exc}"}
    return wrapper


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _edge_dict(edge: Any) -> dict:
    return {
        "id": edge.id,
        "model_id": edge.model_id,
        "parent_id": edge.parent_id,
        "parent_type": edge.parent_type.value,
        "child_id": edge.child_id,
        "child_type": edge.child_type.value,
    }


def _entity_dict(entity: Any) -> dict:
    return {
        "id": entity.id,
        "model_id": entity.model_id,
        "object_type": entity.object_type.value,
        "code": entity.code,
        "preferred_label": entity.preferred_label,
    }


# ===================================================================
# Model tools (2)
# ===================================================================


@mcp.tool()
@_safe_tool
def create_model(name: str, locale: str, description: str = "") -> dict:
    """Create a new, empty taxonomy model.

    Args:
        name: Model name.
        locale: Locale code, e.g. "en" or "de-CH".
        description: Free-text description.
    """
    info = _get_client().create_model(name, locale=locale, description=description)
    return {"id": info.id, "name": info.name, "locale": info.locale}


@mcp.tool()
@_safe_tool
def list_models() -> dict:
    """List every model in the directory."""
    models = _get_client().models()
    return {
        "count": len(models),
        "models": [{"id": m.id, "name": m.name, "locale": m.locale} for m in models],
    }


# ===================================================================
# Entity tools (2)
# ===================================================================


@mcp.tool()
@_safe_tool
def add_entity(
    model_id: str,
    object_type: str,
    preferred_label: str,
    code: str = "",
) -> dict:
    """Add an entity to a model.

    Args:
        model_id: The model to add to.
        object_type: One of GroupISCO, GroupLocal, OccupationESCO, OccupationLocal,
            OccupationLocalized, SkillGroup, Skill.
        preferred_label: Display label.
        code: Hierarchical code (e.g. ISCO "2512" or ESCO "2512.4").
    """
    entity = _get_client().add_entity(
        model_id, ObjectType(object_type), preferred_label, code=code
    )
    return _entity_dict(entity)


@mcp.tool()
@_safe_tool
def list_entities(model_id: str, type: str | None = None) -> dict:
    """List the entities of a model, optionally filtered by coarse or fine type.

    Args:
        model_id: The model to list.
        type: e.g. "Group", "Occupation" or "OccupationLocal".
    """
    results = _get_client().entities(model_id, type=type)
    return {"count": len(results), "entities": [_entity_dict(e) for e in results]}


# ===================================================================
# Hierarchy tools (3)
# ===================================================================


@mcp.tool()
@_safe_tool
def create_hierarchy(model_id: str, edges: list[dict[str, str]]) -> dict:
    """Create parent-child edges in bulk.

    Args:
        model_id: The model the edges belong to.
        edges: Objects with parent_id, parent_type, child_id, child_type.
            Types are coarse: Group, Occupation, SkillGroup or Skill.
    """
    created = _get_client().create_hierarchy(model_id, edges)
    return {
        "requested": len(edges),
        "created": len(created),
        "edges": [_edge_dict(e) for e in created],
    }


@mcp.tool()
@_safe_tool
def list_hierarchy(model_id: str, domain: str = "occupation") -> dict:
    """List the edges of the occupation or skill hierarchy of a model.

    Args:
        model_id: The model to list.
        domain: "occupation" or "skill".
    """
    edges = [_edge_dict(e) for e in _get_client().hierarchy(model_id, HierarchyDomain(domain))]
    return {"count": len(edges), "edges": edges}


@mcp.tool()
@_safe_tool
def get_relatives(model_id: str, entity_id: str, type: str) -> dict:
    """Get the parents and children of an entity.

    Args:
        model_id: The model of the entity.
        entity_id: The entity id.
        type: Coarse type of the entity: Group, Occupation, SkillGroup or Skill.
    """
    client = _get_client()
    return {
        "parents": [r.model_dump(mode="json") for r in client.parents(model_id, entity_id, type)],
        "children": [
            r.model_dump(mode="json") for r in client.children(model_id, entity_id, type)
        ],
    }


# ===================================================================
# Resources (1)
# ===================================================================


@mcp.resource("taxabase://schema")
def schema_resource() -> str:
    """Taxabase data model reference."""
    return (
        "# Taxabase Data Model\n\n"
        "## Models\n"
        "A model is one taxonomy (e.g. ESCO for a locale). Every entity and edge "
        "belongs to exactly one model.\n\n"
        "## Entities\n"
        "- Occupation domain: GroupISCO, GroupLocal (coarse type Group); "
        "OccupationESCO, OccupationLocal, OccupationLocalized (coarse type Occupation)\n"
        "- Skill domain: SkillGroup, Skill\n\n"
        "## Hierarchy edges\n"
        "Parent -> child links within one domain and one model. "
        "A node cannot be its own parent, a Local occupation cannot parent an ESCO "
        "or Localized occupation, and each (parent, child) pair is stored once.\n"
    )


# ===================================================================
# Entry point
# ===================================================================


def run_server() -> None:
    """Run the Taxabase MCP server over stdio."""
    mcp.run(transport="stdio")
