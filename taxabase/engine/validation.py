"""Admissibility rules for hierarchy edges.

``is_valid`` is a pure, total decision function: every input maps to True or
False, nothing is raised and nothing is read from the store. The rules, in
the order they are applied:

1. a node cannot be its own parent;
2. the parent must exist in the model with the declared coarse type;
3. the child must exist in the model with the declared coarse type;
4. a Local occupation cannot parent an ESCO or Localized occupation;
5. the (parent, child) coarse type pair must be in the domain's allow-list.

Cyclic hierarchies are not detected.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any, Protocol, TypeVar

from taxabase.engine.type_index import TypeIndex
from taxabase.engine.types import CoarseType, HierarchyDomain, ObjectType

TypePair = tuple[CoarseType, CoarseType]

OCCUPATION_HIERARCHY_PAIRS: frozenset[TypePair] = frozenset(
    {
        (CoarseType.GROUP, CoarseType.GROUP),
        (CoarseType.GROUP, CoarseType.OCCUPATION),
        (CoarseType.OCCUPATION, CoarseType.OCCUPATION),
    }
)

SKILL_HIERARCHY_PAIRS: frozenset[TypePair] = frozenset(
    {
        (CoarseType.SKILL_GROUP, CoarseType.SKILL_GROUP),
        (CoarseType.SKILL_GROUP, CoarseType.SKILL),
        (CoarseType.SKILL, CoarseType.SKILL),
    }
)

_ALLOWED_PAIRS: dict[HierarchyDomain, frozenset[TypePair]] = {
    HierarchyDomain.OCCUPATION: OCCUPATION_HIERARCHY_PAIRS,
    HierarchyDomain.SKILL: SKILL_HIERARCHY_PAIRS,
}

# Every domain has a table, every coarse type appears in its own domain's
# table, and no table mixes domains.
assert set(_ALLOWED_PAIRS) == set(HierarchyDomain)
for _domain, _pairs in _ALLOWED_PAIRS.items():
    assert {t for pair in _pairs for t in pair} == set(_domain.coarse_types), _domain

_LOCAL_OCCUPATION_FORBIDDEN_CHILDREN = frozenset(
    {ObjectType.OCCUPATION_ESCO, ObjectType.OCCUPATION_LOCALIZED}
)


class EdgeSpec(Protocol):
    parent_id: str
    parent_type: CoarseType
    child_id: str
    child_type: CoarseType


SpecT = TypeVar("SpecT", bound=EdgeSpec)


def allowed_pairs_for(domain: HierarchyDomain) -> frozenset[TypePair]:
    return _ALLOWED_PAIRS[domain]


def _is_local_occupation_rule_violated(
    parent_id: str,
    parent_type: Any,
    child_id: str,
    child_type: Any,
    fine_types: Mapping[str, ObjectType],
) -> bool:
    if parent_type != CoarseType.OCCUPATION or child_type != CoarseType.OCCUPATION:
        return False
    if fine_types.get(parent_id) != ObjectType.OCCUPATION_LOCAL:
        return False
    return fine_types.get(child_id) in _LOCAL_OCCUPATION_FORBIDDEN_CHILDREN


def is_valid(
    spec: EdgeSpec,
    index: TypeIndex,
    allowed_pairs: frozenset[TypePair],
    fine_types: Mapping[str, ObjectType] | None = None,
) -> bool:
    """Decide whether a candidate edge may be written.

    Args:
        spec: Candidate edge (parent_id, parent_type, child_id, child_type)
        index: Snapshot of the entities that exist in the model
        allowed_pairs: Admissible (parent coarse type, child coarse type) pairs
        fine_types: Entity id -> fine type, used by the occupation rule.
            Defaults to ``index.fine``.

    Returns:
        True if the edge is admissible
    """
    parent_id = getattr(spec, "parent_id", None)
    child_id = getattr(spec, "child_id", None)
    parent_type = getattr(spec, "parent_type", None)
    child_type = getattr(spec, "child_type", None)
    if not isinstance(parent_id, str) or not isinstance(child_id, str):
        return False

    if parent_id == child_id:
        return False

    existing_parent_type = index.get(parent_id)
    if existing_parent_type is None or existing_parent_type != parent_type:
        return False

    existing_child_type = index.get(child_id)
    if existing_child_type is None or existing_child_type != child_type:
        return False

    if _is_local_occupation_rule_violated(
        parent_id,
        parent_type,
        child_id,
        child_type,
        index.fine if fine_types is None else fine_types,
    ):
        return False

    return (existing_parent_type, existing_child_type) in allowed_pairs


def filter_valid(
    specs: Iterable[SpecT], index: TypeIndex, domain: HierarchyDomain
) -> tuple[list[SpecT], int]:
    """Split candidates into the admissible ones and a count of rejects."""
    allowed = allowed_pairs_for(domain)
    accepted: list[SpecT] = []
    rejected = 0
    for spec in specs:
        if is_valid(spec, index, allowed):
            accepted.append(spec)
        else:
            rejected += 1
    return accepted, rejected


# --- Code consistency ---
#
# A child's code must extend its parent's code by exactly one hierarchy step.

_ONE_LOCAL_GROUP_UNDER_ISCO = re.compile(r"^[a-zA-Z]$")
_ONE_LOCAL_GROUP_UNDER_LOCAL = re.compile(r"^[a-zA-Z\d]$")
_ONE_ISCO_GROUP = re.compile(r"^\d$")
_ONE_ESCO_OCCUPATION = re.compile(r"^\.\d+$")
_ONE_LOCAL_OCCUPATION = re.compile(r"^_[a-zA-Z\d]*$")


def is_parent_child_code_consistent(
    parent_type: ObjectType,
    parent_code: str,
    child_type: ObjectType,
    child_code: str,
) -> bool:
    """Check that ``child_code`` is one hierarchy increment below ``parent_code``.

    Only occupation-domain entities carry hierarchical codes; any pair that
    involves a skill-domain type is considered consistent.
    """
    occupation_domain = HierarchyDomain.OCCUPATION
    if parent_type.coarse.domain is not occupation_domain:
        return True
    if child_type.coarse.domain is not occupation_domain:
        return True

    if not child_code.startswith(parent_code):
        return False
    increment = child_code[len(parent_code) :]

    if parent_type is ObjectType.GROUP_ISCO:
        if child_type is ObjectType.GROUP_LOCAL:
            return bool(_ONE_LOCAL_GROUP_UNDER_ISCO.match(increment))
        if child_type is ObjectType.GROUP_ISCO:
            return bool(_ONE_ISCO_GROUP.match(increment))
    if parent_type is ObjectType.GROUP_LOCAL and child_type is ObjectType.GROUP_LOCAL:
        return bool(_ONE_LOCAL_GROUP_UNDER_LOCAL.match(increment))

    if child_type is ObjectType.OCCUPATION_LOCAL:
        return bool(_ONE_LOCAL_OCCUPATION.match(increment))
    if child_type is ObjectType.OCCUPATION_ESCO:
        return bool(_ONE_ESCO_OCCUPATION.match(increment))
    return True
