"""Taxabase client: the primary interface to a directory of taxonomy models."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from taxabase.engine.errors import DuplicateKeyConflict
from taxabase.engine.references import ResolvedEdge, project, resolve
from taxabase.engine.storage import SQLiteStorage
from taxabase.engine.types import CoarseType, HierarchyDomain, ObjectType, Side
from taxabase.engine.validation import is_parent_child_code_consistent
from taxabase.engine.writer import HierarchyWriter, check_model_id
from taxabase.models import (
    HierarchyEdge,
    ModelInfo,
    ModelStats,
    NewEdgeSpec,
    NodeReference,
    TaxonomyEntity,
    ValidationResult,
)

logger = logging.getLogger(__name__)

_OBJECT_TYPE_VALUES = frozenset(t.value for t in ObjectType)


def _coerce_spec(spec: NewEdgeSpec | dict[str, Any]) -> NewEdgeSpec:
    if isinstance(spec, NewEdgeSpec):
        return spec
    return NewEdgeSpec.model_validate(spec)


def _resolve_type(type: CoarseType | ObjectType | str) -> tuple[CoarseType, ObjectType | None]:
    """Return the coarse type and, when a fine type was given, the fine type."""
    if isinstance(type, ObjectType):
        return type.coarse, type
    if isinstance(type, CoarseType):
        return type, None
    try:
        return CoarseType(type), None
    except ValueError:
        object_type = ObjectType(type)
        return object_type.coarse, object_type


class Taxabase:
    """A taxonomy model directory client.

    Creates models, adds entities to them and maintains the occupation and
    skill hierarchies between those entities.

    Constructor patterns:
        - ``Taxabase()``: in-memory, ephemeral (SQLite ``:memory:``)
        - ``Taxabase("file.db")``: local persistent SQLite file

    Example:
        ```python
        tb = Taxabase()
        model = tb.create_model("ESCO 1.1", locale="en")
        group = tb.add_entity(model.id, ObjectType.GROUP_ISCO, "Managers", code="1")
        occ = tb.add_entity(model.id, ObjectType.OCCUPATION_ESCO, "CEO", code="1120.1")
        tb.create_hierarchy(
            model.id,
            [{"parent_id": group.id, "parent_type": "Group",
              "child_id": occ.id, "child_type": "Occupation"}],
        )
        ```
    """

    def __init__(self, path: str | Path | None = None) -> None:
        path_str = str(path) if path else None
        if path_str and (path_str.startswith("http://") or path_str.startswith("https://")):
            raise NotImplementedError(
                "Remote backends are not supported. "
                "Use Taxabase() for in-memory or Taxabase('file.db') for local SQLite."
            )
        self._path = path_str
        self._storage = SQLiteStorage(path_str or ":memory:")
        self._writers = {
            domain: HierarchyWriter(self._storage, domain) for domain in HierarchyDomain
        }

    @property
    def storage(self) -> SQLiteStorage:
        return self._storage

    def close(self) -> None:
        """Release the SQLite connection."""
        self._storage.close()

    def __enter__(self) -> Taxabase:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # --- Model directory ---

    def create_model(
        self,
        name: str,
        *,
        locale: str,
        description: str = "",
        version: str = "",
        released: bool = False,
    ) -> ModelInfo:
        """Add a new, empty taxonomy model to the directory.

        Raises:
            ValueError: If ``name`` or ``locale`` is empty.
        """
        if not name or not name.strip():
            raise ValueError("Model name must be a non-empty string")
        if not locale or not locale.strip():
            raise ValueError("Model locale must be a non-empty string")
        record = self._storage.insert_one(
            "models",
            {
                "name": name,
                "locale": locale,
                "description": description,
                "version": version,
                "released": int(released),
            },
        )
        logger.info("Created model %s (%s)", record["id"], name)
        return ModelInfo.model_validate(record)

    def get_model(self, id: str) -> ModelInfo | None:
        record = self._storage.find_by_id("models", id)
        return ModelInfo.model_validate(record) if record else None

    def models(self) -> list[ModelInfo]:
        """List every model in the directory, oldest first."""
        return [ModelInfo.model_validate(r) for r in self._storage.list_models()]

    def delete_model(self, id: str) -> bool:
        """Delete a model with all of its entities and hierarchy edges.

        Returns:
            ``True`` if the model existed, ``False`` otherwise.
        """
        existed = self._storage.find_by_id("models", id) is not None
        self._storage.delete_model_data(id)
        return existed

    # --- Entities ---

    def add_entity(
        self,
        model_id: str,
        object_type: ObjectType | str,
        preferred_label: str,
        *,
        code: str = "",
        id: str | None = None,
    ) -> TaxonomyEntity:
        """Add an occupation group, occupation, skill group or skill to a model.

        Args:
            model_id: The model the entity belongs to.
            object_type: Fine entity type (e.g. ``ObjectType.OCCUPATION_ESCO``).
            preferred_label: Display label.
            code: Hierarchical code (ISCO / ESCO / local occupation code).
            id: Optional id to keep, e.g. when importing. Generated if omitted.

        Raises:
            MalformedModelIdError: If ``model_id`` is not a valid id.
            ValueError: If the model does not exist, the type is unknown,
                the label is empty or the id is already taken.
        """
        check_model_id(model_id)
        if self._storage.find_by_id("models", model_id) is None:
            raise ValueError(f"Model not found: {model_id}")
        object_type = ObjectType(object_type)
        if not preferred_label or not preferred_label.strip():
            raise ValueError("preferred_label must be a non-empty string")

        collection = object_type.coarse.doc_kind.collection
        record: dict[str, Any] = {
            "model_id": model_id,
            "object_type": object_type.value,
            "code": code,
            "preferred_label": preferred_label,
        }
        if id is not None:
            record["id"] = id
        try:
            stored = self._storage.insert_one(collection, record)
        except DuplicateKeyConflict:
            raise ValueError(f"An entity with id {id!r} already exists in {collection}") from None
        return TaxonomyEntity.model_validate(stored)

    def get_entity(self, id: str, type: CoarseType | ObjectType | str) -> TaxonomyEntity | None:
        """Look up an entity by id within the collection of ``type``."""
        coarse = _resolve_type(type)[0]
        record = self._storage.find_by_id(coarse.doc_kind.collection, id)
        return TaxonomyEntity.model_validate(record) if record else None

    def entities(
        self, model_id: str, *, type: CoarseType | ObjectType | str | None = None
    ) -> list[TaxonomyEntity]:
        """List a model's entities, optionally restricted to one coarse or fine type."""
        check_model_id(model_id)
        object_type: ObjectType | None = None
        if type is None:
            coarse_types: Iterable[CoarseType] = CoarseType
        else:
            coarse, object_type = _resolve_type(type)
            coarse_types = (coarse,)

        result: list[TaxonomyEntity] = []
        for coarse_type in coarse_types:
            filters = {"object_type": object_type.value} if object_type else {}
            for record in self._storage.find_where(
                coarse_type.doc_kind.collection, model_id, **filters
            ):
                result.append(TaxonomyEntity.model_validate(record))
        return result

    # --- Hierarchy ---

    def create_hierarchy(
        self,
        model_id: str,
        specs: Iterable[NewEdgeSpec | dict[str, Any]],
    ) -> list[HierarchyEdge]:
        """Create parent-child edges in bulk.

        Specs are routed to the occupation or skill hierarchy by the domain of
        their parent type. Specs that fail validation or duplicate an existing
        edge are skipped; the returned list holds exactly the edges that were
        stored.

        Raises:
            MalformedModelIdError: If ``model_id`` is not a valid id.
            StoreFaultError: If the store fails.
            pydantic.ValidationError: If a dict spec cannot be parsed.
        """
        check_model_id(model_id)
        by_domain: dict[HierarchyDomain, list[NewEdgeSpec]] = {}
        requested = 0
        for raw in specs:
            spec = _coerce_spec(raw)
            by_domain.setdefault(spec.parent_type.domain, []).append(spec)
            requested += 1

        created: list[HierarchyEdge] = []
        for domain, domain_specs in by_domain.items():
            created.extend(
                self._writers[domain].create_many(model_id, domain_specs, log_shortfall=False)
            )
        if len(created) < requested:
            logger.warning(
                "Taxabase.create_hierarchy: %d out of %d hierarchy edges were not created.",
                requested - len(created),
                requested,
            )
        return created

    def hierarchy(
        self, model_id: str, domain: HierarchyDomain | str = HierarchyDomain.OCCUPATION
    ) -> Iterator[HierarchyEdge]:
        """Stream every edge of one hierarchy of a model."""
        return self._writers[HierarchyDomain(domain)].find_all(model_id)

    def _linked_edges(
        self, model_id: str, entity_id: str, coarse: CoarseType, side: Side
    ) -> list[HierarchyEdge]:
        # Edges where the entity is the child point to its parents and vice versa.
        own = "child" if side is Side.PARENT else "parent"
        records = self._storage.find_where(
            coarse.domain.collection,
            model_id,
            **{f"{own}_id": entity_id, f"{own}_type": coarse.value},
        )
        return [HierarchyEdge.model_validate(r) for r in records]

    def _references(
        self, model_id: str, entity_id: str, type: CoarseType | ObjectType | str, side: Side
    ) -> list[NodeReference]:
        check_model_id(model_id)
        coarse = _resolve_type(type)[0]
        references = []
        for edge in self._linked_edges(model_id, entity_id, coarse, side):
            reference = project(resolve(self._storage, edge), side)
            if reference is not None:
                references.append(reference)
        return references

    def parents(
        self, model_id: str, entity_id: str, type: CoarseType | ObjectType | str
    ) -> list[NodeReference]:
        """References to the parents of an entity, dropping cross-model linkage."""
        return self._references(model_id, entity_id, type, Side.PARENT)

    def children(
        self, model_id: str, entity_id: str, type: CoarseType | ObjectType | str
    ) -> list[NodeReference]:
        """References to the children of an entity, dropping cross-model linkage."""
        return self._references(model_id, entity_id, type, Side.CHILD)

    # --- Consistency ---

    def validate(self, model_id: str) -> ValidationResult:
        """Check every hierarchy edge of a model.

        Dangling or cross-model linkage and entities with an unknown object
        type are errors. Codes that do not descend one step from the
        parent's code are warnings.
        """
        errors: list[str] = []
        warnings: list[str] = []
        for domain in HierarchyDomain:
            for edge in self.hierarchy(model_id, domain):
                resolved = resolve(self._storage, edge)
                problem = self._linkage_problem(resolved)
                if problem:
                    errors.append(f"Edge {edge.id}: {problem}")
                    continue
                assert resolved.parent is not None and resolved.child is not None
                parent_type = ObjectType(resolved.parent["object_type"])
                child_type = ObjectType(resolved.child["object_type"])
                if not is_parent_child_code_consistent(
                    parent_type, resolved.parent["code"], child_type, resolved.child["code"]
                ):
                    warnings.append(
                        f"Edge {edge.id}: code {resolved.child['code']!r} ({child_type.value})"
                        f" is not a child code of {resolved.parent['code']!r}"
                        f" ({parent_type.value})"
                    )
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def _linkage_problem(resolved: ResolvedEdge) -> str | None:
        edge = resolved.edge
        for side, doc, entity_id in (
            (Side.PARENT, resolved.parent, edge.parent_id),
            (Side.CHILD, resolved.child, edge.child_id),
        ):
            if doc is None:
                return f"{side.value} {entity_id} does not exist"
            if doc["model_id"] != edge.model_id:
                return f"{side.value} {entity_id} belongs to model {doc['model_id']}"
            if doc["object_type"] not in _OBJECT_TYPE_VALUES:
                return f"{side.value} {entity_id} has unknown object type {doc['object_type']!r}"
        return None

    # --- Stats ---

    def stats(self, model_id: str) -> ModelStats:
        """Entity counts by fine type and edge counts by hierarchy domain."""
        check_model_id(model_id)
        entities_by_type: dict[str, int] = {}
        for entity in self.entities(model_id):
            key = entity.object_type.value
            entities_by_type[key] = entities_by_type.get(key, 0) + 1
        edges_by_domain = {
            domain.value: self._storage.count(domain.collection, model_id)
            for domain in HierarchyDomain
        }
        return ModelStats(
            model_id=model_id,
            entities_by_type=entities_by_type,
            edges_by_domain=edges_by_domain,
        )
