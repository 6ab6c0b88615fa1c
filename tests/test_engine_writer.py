"""Tests for HierarchyWriter: bulk creation and streaming of edges."""

import logging
import sqlite3
import threading

import pytest

from taxabase import ObjectType
from taxabase.engine import (
    DocKind,
    HierarchyDomain,
    HierarchyWriter,
    MalformedModelIdError,
    StoreFaultError,
)
from taxabase.engine.storage import new_object_id
from tests.conftest import spec


@pytest.fixture()
def writer(tb):
    return HierarchyWriter(tb.storage, HierarchyDomain.OCCUPATION)


@pytest.fixture()
def skill_writer(tb):
    return HierarchyWriter(tb.storage, HierarchyDomain.SKILL)


def pairs(edges):
    return {(e.parent_id, e.child_id) for e in edges}


class TestCreateMany:
    """Validation, persistence and the returned edge list."""

    def test_group_to_occupation(self, writer, occupation_model):
        """A valid edge is stored with doc kinds matching its types."""
        m = occupation_model
        [edge] = writer.create_many(m.model_id, [spec(m.isco_11, "Group", m.esco, "Occupation")])
        assert edge.parent_doc_kind is DocKind.GROUP
        assert edge.child_doc_kind is DocKind.OCCUPATION
        assert edge.model_id == m.model_id
        assert edge.id is not None
        assert edge.created_at is not None
        assert list(writer.find_all(m.model_id)) == [edge]

    def test_mixed_batch_returns_only_valid(self, writer, occupation_model):
        m = occupation_model
        specs = [
            spec(m.isco_1, "Group", m.isco_11, "Group"),
            spec(m.isco_11, "Group", m.isco_11, "Group"),
            spec(m.esco, "Occupation", m.isco_1, "Group"),
            spec(m.local, "Occupation", m.esco, "Occupation"),
            spec(m.isco_11, "Group", m.local_group, "Group"),
            spec(m.esco, "Occupation", m.local, "Occupation"),
        ]
        created = writer.create_many(m.model_id, specs)
        assert pairs(created) == {
            (m.isco_1, m.isco_11),
            (m.isco_11, m.local_group),
            (m.esco, m.local),
        }

    def test_local_occupation_cannot_parent_esco(self, writer, occupation_model):
        m = occupation_model
        created = writer.create_many(
            m.model_id,
            [
                spec(m.local, "Occupation", m.esco_child, "Occupation"),
                spec(m.local, "Occupation", m.localized, "Occupation"),
            ],
        )
        assert created == []
        assert list(writer.find_all(m.model_id)) == []

    def test_unknown_ids_rejected(self, writer, occupation_model):
        m = occupation_model
        created = writer.create_many(
            m.model_id, [spec(new_object_id(), "Group", m.esco, "Occupation")]
        )
        assert created == []

    def test_empty_input(self, writer, occupation_model):
        assert writer.create_many(occupation_model.model_id, []) == []

    def test_skill_hierarchy(self, skill_writer, skill_model):
        m = skill_model
        created = skill_writer.create_many(
            m.model_id,
            [
                spec(m.group, "SkillGroup", m.subgroup, "SkillGroup"),
                spec(m.subgroup, "SkillGroup", m.skill, "Skill"),
                spec(m.skill, "Skill", m.subskill, "Skill"),
                spec(m.skill, "Skill", m.group, "SkillGroup"),
            ],
        )
        assert pairs(created) == {
            (m.group, m.subgroup),
            (m.subgroup, m.skill),
            (m.skill, m.subskill),
        }

    def test_occupation_writer_ignores_skill_specs(self, writer, tb, skill_model):
        m = skill_model
        created = writer.create_many(
            m.model_id, [spec(m.group, "SkillGroup", m.skill, "Skill")]
        )
        assert created == []
        assert tb.storage.count("skill_hierarchy", m.model_id) == 0


class TestDuplicates:
    def test_resubmission_is_idempotent(self, writer, occupation_model):
        """Submitting the same edge twice leaves exactly one stored copy."""
        m = occupation_model
        s = spec(m.isco_11, "Group", m.esco, "Occupation")
        first = writer.create_many(m.model_id, [s])
        second = writer.create_many(m.model_id, [s])
        assert len(first) == 1
        assert second == []
        assert len(list(writer.find_all(m.model_id))) == 1

    def test_duplicates_within_one_batch(self, writer, occupation_model):
        m = occupation_model
        s = spec(m.isco_11, "Group", m.esco, "Occupation")
        other = spec(m.isco_1, "Group", m.isco_11, "Group")
        created = writer.create_many(m.model_id, [s, s, other])
        assert len(created) == 2
        assert pairs(created) == {(m.isco_11, m.esco), (m.isco_1, m.isco_11)}
        assert len(list(writer.find_all(m.model_id))) == 2

    def test_partial_batch_is_durable(self, writer, tb, occupation_model):
        """Malformed records and conflicts are dropped without losing the rest."""
        m = occupation_model
        legacy = tb.add_entity(m.model_id, ObjectType.GROUP_ISCO, "Legacy", id="legacy-1").id
        existing = spec(m.isco_1, "Group", m.isco_11, "Group")
        [pre] = writer.create_many(m.model_id, [existing])

        first = spec(m.isco_11, "Group", m.esco, "Occupation")
        malformed = spec(legacy, "Group", m.isco_11, "Group")
        last = spec(m.esco, "Occupation", m.local, "Occupation")
        created = writer.create_many(m.model_id, [first, malformed, existing, last])

        assert pairs(created) == {(m.isco_11, m.esco), (m.esco, m.local)}
        stored = list(writer.find_all(m.model_id))
        assert pairs(stored) == {(m.isco_1, m.isco_11), (m.isco_11, m.esco), (m.esco, m.local)}
        assert pre in stored

    def test_shortfall_logged_once(self, writer, occupation_model, caplog):
        m = occupation_model
        specs = [
            spec(m.isco_11, "Group", m.esco, "Occupation"),
            spec(m.esco, "Occupation", m.esco, "Occupation"),
        ]
        with caplog.at_level(logging.WARNING, logger="taxabase.engine.writer"):
            writer.create_many(m.model_id, specs)
        warnings = [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert len(warnings) == 1
        assert "1 out of 2 hierarchy edges were not created" in warnings[0].getMessage()
        assert "OccupationHierarchyWriter.create_many" in warnings[0].getMessage()

    def test_no_warning_when_all_created(self, writer, occupation_model, caplog):
        m = occupation_model
        with caplog.at_level(logging.WARNING, logger="taxabase.engine.writer"):
            writer.create_many(m.model_id, [spec(m.isco_11, "Group", m.esco, "Occupation")])
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_concurrent_submissions_store_one_copy(self, tb, occupation_model):
        """Threads racing on the same edge leave exactly one copy."""
        m = occupation_model
        s = spec(m.isco_11, "Group", m.esco, "Occupation")
        results: list[int] = []
        errors: list[Exception] = []

        def submit():
            try:
                w = HierarchyWriter(tb.storage, HierarchyDomain.OCCUPATION)
                results.append(len(w.create_many(m.model_id, [s])))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=submit) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Errors during concurrent create: {errors}"
        assert sum(results) == 1
        assert tb.storage.count("occupation_hierarchy", m.model_id) == 1


class TestModelScope:
    def test_entities_of_other_model_rejected(self, writer, tb, occupation_model):
        """Ids from another model are unknown to this model's index."""
        m = occupation_model
        other = tb.create_model("Other", locale="fr")
        foreign_group = tb.add_entity(other.id, ObjectType.GROUP_ISCO, "Dirigeants", code="1").id
        foreign_occ = tb.add_entity(other.id, ObjectType.OCCUPATION_ESCO, "PDG", code="1120.1").id

        attempts = [
            (m.model_id, spec(foreign_group, "Group", m.esco, "Occupation")),
            (m.model_id, spec(m.isco_11, "Group", foreign_occ, "Occupation")),
            (other.id, spec(m.isco_11, "Group", m.esco, "Occupation")),
        ]
        for model_id, s in attempts:
            assert writer.create_many(model_id, [s]) == []
        assert list(writer.find_all(m.model_id)) == []
        assert list(writer.find_all(other.id)) == []

    def test_find_all_is_model_scoped(self, writer, tb, occupation_model):
        m = occupation_model
        other = tb.create_model("Other", locale="fr")
        g = tb.add_entity(other.id, ObjectType.GROUP_ISCO, "Dirigeants", code="1").id
        o = tb.add_entity(other.id, ObjectType.OCCUPATION_ESCO, "PDG", code="1120.1").id
        writer.create_many(other.id, [spec(g, "Group", o, "Occupation")])
        writer.create_many(m.model_id, [spec(m.isco_11, "Group", m.esco, "Occupation")])
        assert pairs(writer.find_all(m.model_id)) == {(m.isco_11, m.esco)}
        assert pairs(writer.find_all(other.id)) == {(g, o)}


class TestMalformedModelId:
    @pytest.mark.parametrize("model_id", ["", "not-an-id", "0123456789abcdef0123456", None])
    def test_create_many_raises_before_store_access(self, writer, tb, monkeypatch, model_id):
        def untouchable(*args, **kwargs):
            raise AssertionError("store was accessed")

        monkeypatch.setattr(tb.storage, "find_ids", untouchable)
        monkeypatch.setattr(tb.storage, "bulk_insert", untouchable)
        with pytest.raises(MalformedModelIdError, match="Invalid modelId"):
            writer.create_many(model_id, [])

    def test_find_all_raises(self, writer, tb, monkeypatch):
        monkeypatch.setattr(tb.storage, "find", lambda *a, **kw: pytest.fail("store was accessed"))
        with pytest.raises(MalformedModelIdError):
            writer.find_all("nope")

    def test_malformed_id_is_a_value_error(self, writer):
        with pytest.raises(ValueError):
            writer.create_many("nope", [])

    def test_unknown_model_streams_empty(self, writer):
        assert list(writer.find_all(new_object_id())) == []


class TestStoreFaults:
    """Store failures other than duplicate keys surface as StoreFaultError."""

    def test_insert_failure(self, writer, tb, occupation_model, monkeypatch, caplog):
        m = occupation_model
        cause = sqlite3.OperationalError("disk I/O error")

        def fail(*args, **kwargs):
            raise cause

        monkeypatch.setattr(tb.storage, "bulk_insert", fail)
        with caplog.at_level(logging.ERROR, logger="taxabase.engine.writer"):
            with pytest.raises(StoreFaultError) as info:
                writer.create_many(m.model_id, [spec(m.isco_11, "Group", m.esco, "Occupation")])
        assert info.value.__cause__ is cause
        assert "none of the 1 hierarchy edges were inserted" in caplog.text

    def test_index_load_failure(self, writer, tb, occupation_model, monkeypatch):
        def fail(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(tb.storage, "find_ids", fail)
        with pytest.raises(StoreFaultError):
            writer.create_many(occupation_model.model_id, [])

    def test_find_all_cannot_start(self, writer, tb, occupation_model, monkeypatch):
        def fail(*args, **kwargs):
            raise sqlite3.OperationalError("no such table")

        monkeypatch.setattr(tb.storage, "find", fail)
        with pytest.raises(StoreFaultError):
            writer.find_all(occupation_model.model_id)


class TestStreaming:
    @pytest.fixture()
    def populated(self, writer, occupation_model):
        m = occupation_model
        writer.create_many(
            m.model_id,
            [
                spec(m.isco_1, "Group", m.isco_11, "Group"),
                spec(m.isco_11, "Group", m.esco, "Occupation"),
                spec(m.esco, "Occupation", m.local, "Occupation"),
            ],
        )
        return m

    @pytest.fixture()
    def opened(self, tb, monkeypatch):
        cursors = []
        real_find = tb.storage.find

        def spy(*args, **kwargs):
            cursor = real_find(*args, **kwargs)
            cursors.append(cursor)
            return cursor

        monkeypatch.setattr(tb.storage, "find", spy)
        return cursors

    def test_stream_is_lazy(self, writer, populated, opened):
        stream = writer.find_all(populated.model_id)
        assert len(opened) == 1
        assert not opened[0].closed
        assert len(list(stream)) == 3
        assert opened[0].closed

    def test_early_stop_closes_cursor(self, writer, populated, opened):
        stream = writer.find_all(populated.model_id)
        next(stream)
        stream.close()
        assert opened[0].closed

    def test_failure_mid_stream(self, writer, tb, populated, monkeypatch):
        real_fetch = tb.storage._fetch_batch
        calls = []

        def flaky(cursor, size):
            calls.append(size)
            if len(calls) > 1:
                raise sqlite3.OperationalError("disk I/O error")
            return real_fetch(cursor, size)

        monkeypatch.setattr(tb.storage, "_fetch_batch", flaky)
        stream = writer.find_all(populated.model_id)
        with pytest.raises(StoreFaultError):
            list(stream)

    def test_error_after_close_is_swallowed(self, writer, tb, populated, opened, monkeypatch):
        def closed_under_us(cursor, size):
            opened[0].close()
            raise sqlite3.ProgrammingError("Cannot operate on a closed cursor.")

        monkeypatch.setattr(tb.storage, "_fetch_batch", closed_under_us)
        assert list(writer.find_all(populated.model_id)) == []
        assert opened[0].closed
