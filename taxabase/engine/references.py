"""Projection of stored edges into parent/child references.

An edge stores only ids and doc kinds. To render "parent of X" or
"children of X" the linkage is resolved against the entity collections and
reduced to a ``NodeReference``. Linkage that points into another model is a
stale or cross-scope reference: it is logged and dropped, never returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from taxabase.engine.types import ObjectType, Side
from taxabase.models import HierarchyEdge, NodeReference

if TYPE_CHECKING:
    from taxabase.engine.storage import SQLiteStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedEdge:
    """An edge with its parent and child documents, ``None`` where dangling."""

    edge: HierarchyEdge
    parent: dict[str, Any] | None
    child: dict[str, Any] | None


def resolve(storage: SQLiteStorage, edge: HierarchyEdge) -> ResolvedEdge:
    """Resolve both ends of ``edge`` by doc kind and id.

    Resolution is deliberately not scoped by model, so that cross-model
    linkage is visible to ``project``.
    """
    return ResolvedEdge(
        edge=edge,
        parent=storage.find_by_id(edge.parent_doc_kind.collection, edge.parent_id),
        child=storage.find_by_id(edge.child_doc_kind.collection, edge.child_id),
    )


def project(resolved: ResolvedEdge, side: Side) -> NodeReference | None:
    """Reduce one end of a resolved edge to a ``NodeReference``.

    Returns ``None`` when that end did not resolve, or when it resolved to an
    entity of a different model than the edge.
    """
    doc = resolved.parent if side is Side.PARENT else resolved.child
    if doc is None:
        return None

    if doc.get("model_id") != resolved.edge.model_id:
        if side is Side.PARENT:
            logger.error(
                "Parent is not in the same model as the child (edge %s, parent %s)",
                resolved.edge.id,
                doc.get("id"),
            )
        else:
            logger.error(
                "Child is not in the same model as the parent (edge %s, child %s)",
                resolved.edge.id,
                doc.get("id"),
            )
        return None

    try:
        object_type = ObjectType(doc.get("object_type"))
    except ValueError:
        logger.error(
            "%s %s has unknown object type %r", side.value, doc.get("id"), doc.get("object_type")
        )
        return None

    return NodeReference(
        id=doc["id"],
        type=object_type.coarse,
        object_type=object_type,
        code=doc.get("code") or "",
        label=doc.get("preferred_label") or "",
    )
