"""Shared fixtures for Taxabase tests."""

from types import SimpleNamespace

import pytest

from taxabase import ObjectType, Taxabase
from taxabase.engine import CoarseType
from taxabase.models import NewEdgeSpec


def spec(parent_id: str, parent_type, child_id: str, child_type) -> NewEdgeSpec:
    """Shorthand for a NewEdgeSpec."""
    return NewEdgeSpec(
        parent_id=parent_id,
        parent_type=CoarseType(parent_type),
        child_id=child_id,
        child_type=CoarseType(child_type),
    )


@pytest.fixture()
def tb():
    """Fresh in-memory Taxabase instance."""
    client = Taxabase()
    yield client
    client.close()


@pytest.fixture()
def tmp_db_path(tmp_path):
    """Temporary database path with automatic cleanup."""
    return str(tmp_path / "test.db")


@pytest.fixture()
def occupation_model(tb):
    """A model holding one entity of every occupation-domain type.

    Entities:
        isco_1 (GroupISCO, "1"), isco_11 (GroupISCO, "11"),
        local_group (GroupLocal, "11a"),
        esco (OccupationESCO, "1120.1"), esco_child (OccupationESCO, "1120.1.2"),
        local (OccupationLocal, "1120.1_1"),
        localized (OccupationLocalized, "1120.1")
    """
    model = tb.create_model("ESCO", locale="en")
    m = model.id
    return SimpleNamespace(
        model_id=m,
        isco_1=tb.add_entity(m, ObjectType.GROUP_ISCO, "Managers", code="1").id,
        isco_11=tb.add_entity(m, ObjectType.GROUP_ISCO, "Chief executives", code="11").id,
        local_group=tb.add_entity(m, ObjectType.GROUP_LOCAL, "Local executives", code="11a").id,
        esco=tb.add_entity(m, ObjectType.OCCUPATION_ESCO, "chief executive", code="1120.1").id,
        esco_child=tb.add_entity(
            m, ObjectType.OCCUPATION_ESCO, "managing director", code="1120.1.2"
        ).id,
        local=tb.add_entity(m, ObjectType.OCCUPATION_LOCAL, "village chief", code="1120.1_1").id,
        localized=tb.add_entity(
            m, ObjectType.OCCUPATION_LOCALIZED, "chief executive (CH)", code="1120.1"
        ).id,
    )


@pytest.fixture()
def skill_model(tb):
    """A model holding two skill groups and two skills."""
    model = tb.create_model("ESCO skills", locale="en")
    m = model.id
    return SimpleNamespace(
        model_id=m,
        group=tb.add_entity(m, ObjectType.SKILL_GROUP, "communication", code="S1").id,
        subgroup=tb.add_entity(m, ObjectType.SKILL_GROUP, "presenting", code="S1.1").id,
        skill=tb.add_entity(m, ObjectType.SKILL, "public speaking").id,
        subskill=tb.add_entity(m, ObjectType.SKILL, "speech writing").id,
    )
