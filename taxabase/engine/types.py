"""Entity type tags and hierarchy domains.

Every taxonomy entity carries a fine-grained ``ObjectType``. For hierarchy
purposes the fine types collapse into a ``CoarseType`` per domain:

    Occupation domain: Group (ISCO | Local), Occupation (ESCO | Local | Localized)
    Skill domain:      SkillGroup, Skill

The two domains never mix. Each coarse type is stored in exactly one
collection, identified by its ``DocKind``.
"""

from __future__ import annotations

import re
from enum import Enum

# Store identifiers are 24 hexadecimal characters (12 bytes).
_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


def is_valid_object_id(value: object) -> bool:
    """Return True if ``value`` is a syntactically valid store identifier."""
    return isinstance(value, str) and _OBJECT_ID_RE.match(value) is not None


class CoarseType(str, Enum):
    """Broad entity family used for pair-compatibility checks."""

    GROUP = "Group"
    OCCUPATION = "Occupation"
    SKILL_GROUP = "SkillGroup"
    SKILL = "Skill"

    @property
    def doc_kind(self) -> DocKind:
        return _DOC_KIND_BY_COARSE[self]

    @property
    def domain(self) -> HierarchyDomain:
        return _DOMAIN_BY_COARSE[self]


class ObjectType(str, Enum):
    """Fine entity type tag."""

    GROUP_ISCO = "GroupISCO"
    GROUP_LOCAL = "GroupLocal"
    OCCUPATION_ESCO = "OccupationESCO"
    OCCUPATION_LOCAL = "OccupationLocal"
    OCCUPATION_LOCALIZED = "OccupationLocalized"
    SKILL_GROUP = "SkillGroup"
    SKILL = "Skill"

    @property
    def coarse(self) -> CoarseType:
        return _COARSE_BY_OBJECT[self]


class DocKind(str, Enum):
    """Collection discriminator for resolving an id without a typed foreign key."""

    GROUP = "Group"
    OCCUPATION = "Occupation"
    SKILL_GROUP = "SkillGroup"
    SKILL = "Skill"

    @property
    def collection(self) -> str:
        return _COLLECTION_BY_DOC_KIND[self]


class HierarchyDomain(str, Enum):
    """The two hierarchy kinds the engine supports."""

    OCCUPATION = "occupation"
    SKILL = "skill"

    @property
    def coarse_types(self) -> tuple[CoarseType, ...]:
        return tuple(c for c in CoarseType if _DOMAIN_BY_COARSE[c] is self)

    @property
    def collection(self) -> str:
        """Name of the edge collection for this domain."""
        return f"{self.value}_hierarchy"


class Side(str, Enum):
    PARENT = "parent"
    CHILD = "child"


_COARSE_BY_OBJECT: dict[ObjectType, CoarseType] = {
    ObjectType.GROUP_ISCO: CoarseType.GROUP,
    ObjectType.GROUP_LOCAL: CoarseType.GROUP,
    ObjectType.OCCUPATION_ESCO: CoarseType.OCCUPATION,
    ObjectType.OCCUPATION_LOCAL: CoarseType.OCCUPATION,
    ObjectType.OCCUPATION_LOCALIZED: CoarseType.OCCUPATION,
    ObjectType.SKILL_GROUP: CoarseType.SKILL_GROUP,
    ObjectType.SKILL: CoarseType.SKILL,
}

_DOMAIN_BY_COARSE: dict[CoarseType, HierarchyDomain] = {
    CoarseType.GROUP: HierarchyDomain.OCCUPATION,
    CoarseType.OCCUPATION: HierarchyDomain.OCCUPATION,
    CoarseType.SKILL_GROUP: HierarchyDomain.SKILL,
    CoarseType.SKILL: HierarchyDomain.SKILL,
}

_DOC_KIND_BY_COARSE: dict[CoarseType, DocKind] = {
    CoarseType.GROUP: DocKind.GROUP,
    CoarseType.OCCUPATION: DocKind.OCCUPATION,
    CoarseType.SKILL_GROUP: DocKind.SKILL_GROUP,
    CoarseType.SKILL: DocKind.SKILL,
}

_COLLECTION_BY_DOC_KIND: dict[DocKind, str] = {
    DocKind.GROUP: "occupation_groups",
    DocKind.OCCUPATION: "occupations",
    DocKind.SKILL_GROUP: "skill_groups",
    DocKind.SKILL: "skills",
}

# Every tag must be mapped; a new enum member without a mapping fails at import.
assert set(_COARSE_BY_OBJECT) == set(ObjectType)
assert set(_DOMAIN_BY_COARSE) == set(CoarseType)
assert set(_DOC_KIND_BY_COARSE) == set(CoarseType)
assert set(_COLLECTION_BY_DOC_KIND) == set(DocKind)
