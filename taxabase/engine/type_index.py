"""Snapshot of the entity ids that exist in one model scope.

The index is rebuilt for every bulk write and handed to the validator by
reference; it is never cached between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from taxabase.engine.types import CoarseType, HierarchyDomain, ObjectType

if TYPE_CHECKING:
    from taxabase.engine.storage import SQLiteStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TypeIndex:
    """Immutable id -> type maps for one model and one hierarchy domain.

    Attributes:
        model_id: The model scope the index was built for
        coarse: Entity id -> coarse type
        fine: Entity id -> fine object type
    """

    model_id: str
    coarse: Mapping[str, CoarseType] = field(default_factory=dict)
    fine: Mapping[str, ObjectType] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "coarse", MappingProxyType(dict(self.coarse)))
        object.__setattr__(self, "fine", MappingProxyType(dict(self.fine)))

    def __len__(self) -> int:
        return len(self.coarse)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.coarse

    def get(self, entity_id: str) -> CoarseType | None:
        return self.coarse.get(entity_id)

    @classmethod
    def from_entities(
        cls, model_id: str, entities: list[tuple[str, ObjectType]]
    ) -> TypeIndex:
        """Build an index from ``(id, object_type)`` pairs; later entries win."""
        coarse: dict[str, CoarseType] = {}
        fine: dict[str, ObjectType] = {}
        for entity_id, object_type in entities:
            coarse[entity_id] = object_type.coarse
            fine[entity_id] = object_type
        return cls(model_id=model_id, coarse=coarse, fine=fine)

    @classmethod
    def load(
        cls, storage: SQLiteStorage, model_id: str, domain: HierarchyDomain
    ) -> TypeIndex:
        """Scan every collection of ``domain`` within ``model_id``.

        Cost is proportional to the size of the model and is paid once per
        bulk write, not once per candidate edge.
        """
        entities: list[tuple[str, ObjectType]] = []
        for coarse_type in domain.coarse_types:
            collection = coarse_type.doc_kind.collection
            for entity_id, raw_type in storage.find_ids(collection, model_id):
                try:
                    object_type = ObjectType(raw_type)
                except ValueError:
                    logger.warning(
                        "Skipping %s %s with unknown object type %r",
                        collection,
                        entity_id,
                        raw_type,
                    )
                    continue
                entities.append((entity_id, object_type))
        index = cls.from_entities(model_id, entities)
        logger.debug(
            "Loaded %s type index for model %s: %d entities", domain.value, model_id, len(index)
        )
        return index
