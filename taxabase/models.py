"""Pydantic models for the Taxabase public API.

Engine-internal types (type index snapshots, insert outcomes) are plain
dataclasses in ``taxabase.engine``; these models are what callers see.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from taxabase.engine.types import CoarseType, DocKind, ObjectType, is_valid_object_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NewEdgeSpec(BaseModel):
    """A candidate parent-child edge submitted for creation."""

    model_config = ConfigDict(frozen=True)

    parent_id: str
    parent_type: CoarseType
    child_id: str
    child_type: CoarseType


class HierarchyEdge(BaseModel):
    """A persisted parent-child relationship within one model.

    ``parent_doc_kind`` and ``child_doc_kind`` name the collection each id
    resolves against, because ids are only unique per collection.
    """

    model_config = ConfigDict(protected_namespaces=())

    id: str | None = None
    model_id: str
    parent_id: str
    parent_type: CoarseType
    parent_doc_kind: DocKind
    child_id: str
    child_type: CoarseType
    child_doc_kind: DocKind
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("model_id", "parent_id", "child_id")
    @classmethod
    def _check_object_id(cls, value: str) -> str:
        if not is_valid_object_id(value):
            raise ValueError(f"not a valid object id: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_doc_kinds(self) -> HierarchyEdge:
        if self.parent_doc_kind is not self.parent_type.doc_kind:
            raise ValueError(
                f"parent_doc_kind {self.parent_doc_kind.value} does not match "
                f"parent_type {self.parent_type.value}"
            )
        if self.child_doc_kind is not self.child_type.doc_kind:
            raise ValueError(
                f"child_doc_kind {self.child_doc_kind.value} does not match "
                f"child_type {self.child_type.value}"
            )
        return self

    @classmethod
    def from_spec(cls, model_id: str, spec: NewEdgeSpec) -> HierarchyEdge:
        return cls(
            model_id=model_id,
            parent_id=spec.parent_id,
            parent_type=spec.parent_type,
            parent_doc_kind=spec.parent_type.doc_kind,
            child_id=spec.child_id,
            child_type=spec.child_type,
            child_doc_kind=spec.child_type.doc_kind,
        )

    def to_record(self) -> dict[str, Any]:
        """Flatten into a store row; unset id and timestamps are left to the store."""
        return self.model_dump(mode="json", exclude_none=True)

    def __repr__(self) -> str:
        return (
            f"HierarchyEdge({self.parent_type.value}:{self.parent_id} -> "
            f"{self.child_type.value}:{self.child_id}, model={self.model_id})"
        )


class NodeReference(BaseModel):
    """Lightweight reference to a taxonomy entity, used in parent/children views."""

    id: str
    type: CoarseType
    object_type: ObjectType
    code: str
    label: str


class TaxonomyEntity(BaseModel):
    """An occupation group, occupation, skill group or skill in one model."""

    model_config = ConfigDict(protected_namespaces=())

    id: str
    model_id: str
    object_type: ObjectType
    code: str = ""
    preferred_label: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def coarse_type(self) -> CoarseType:
        return self.object_type.coarse

    def __repr__(self) -> str:
        return f"TaxonomyEntity({self.object_type.value}:{self.code!r} {self.preferred_label!r})"


class ModelInfo(BaseModel):
    """An entry in the model directory."""

    id: str
    name: str
    locale: str
    description: str = ""
    released: bool = False
    version: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ValidationResult(BaseModel):
    """Result of a hierarchy consistency check.

    Errors are broken references (dangling or cross-model); warnings are
    parent/child code mismatches.
    """

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ModelStats(BaseModel):
    """Summary counts for one model."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    entities_by_type: dict[str, int]
    edges_by_domain: dict[str, int]

    @property
    def entity_count(self) -> int:
        return sum(self.entities_by_type.values())

    @property
    def edge_count(self) -> int:
        return sum(self.edges_by_domain.values())
