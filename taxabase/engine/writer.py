"""Bulk creation and streaming of hierarchy edges.

One ``create_many`` call goes through these states:

    Start -> IndexLoaded -> Filtered -> Inserted | PartiallyInserted | Fault

``Inserted`` and ``PartiallyInserted`` both return the edges that are now
durably stored. An edge missing from the returned list was either rejected by
validation or lost to a unique-index conflict; it is not in the store.
``Fault`` raises ``StoreFaultError``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from taxabase.engine.errors import DuplicateKeyConflict, MalformedModelIdError, StoreFaultError
from taxabase.engine.storage import Cursor, SQLiteStorage
from taxabase.engine.type_index import TypeIndex
from taxabase.engine.types import HierarchyDomain, is_valid_object_id
from taxabase.engine.validation import filter_valid
from taxabase.models import HierarchyEdge, NewEdgeSpec

logger = logging.getLogger(__name__)


# --- Bulk insert outcomes ---


@dataclass(frozen=True)
class Inserted:
    """Every submitted record was stored."""

    records: list[dict[str, Any]]


@dataclass(frozen=True)
class PartiallyInserted:
    """Some records hit the unique index; ``records`` are the ones stored."""

    records: list[dict[str, Any]]
    conflicts: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class Fault:
    """The store failed for a reason other than a duplicate key."""

    error: Exception


InsertOutcome = Inserted | PartiallyInserted | Fault


def check_model_id(model_id: object) -> str:
    """Raise ``MalformedModelIdError`` unless ``model_id`` is a valid store id."""
    if not is_valid_object_id(model_id):
        raise MalformedModelIdError(model_id)
    return model_id  # type: ignore[return-value]


class HierarchyWriter:
    """Creates and streams the hierarchy edges of one domain.

    Holds no state between calls: the type index is loaded fresh for every
    ``create_many``, and uniqueness is left to the store's unique index.
    """

    def __init__(self, storage: SQLiteStorage, domain: HierarchyDomain) -> None:
        self._storage = storage
        self._domain = domain

    @property
    def domain(self) -> HierarchyDomain:
        return self._domain

    @property
    def collection(self) -> str:
        return self._domain.collection

    @property
    def _caller(self) -> str:
        return f"{self._domain.value.capitalize()}HierarchyWriter.create_many"

    def create_many(
        self,
        model_id: str,
        specs: Sequence[NewEdgeSpec],
        *,
        log_shortfall: bool = True,
    ) -> list[HierarchyEdge]:
        """Create the admissible edges among ``specs`` in ``model_id``.

        Args:
            model_id: The model the edges belong to
            specs: Candidate edges
            log_shortfall: Log the aggregated warning when fewer edges were
                created than requested. Callers that split one request
                across several writers log their own.

        Returns:
            The edges that are now persisted, with store-assigned id and timestamps.

        Raises:
            MalformedModelIdError: If ``model_id`` is not a valid id. Raised
                before the store is touched.
            StoreFaultError: If the store fails for any reason other than a
                duplicate key.
        """
        check_model_id(model_id)

        try:
            index = TypeIndex.load(self._storage, model_id, self._domain)
        except sqlite3.Error as exc:
            logger.error("%s: loading the type index failed", self._caller, exc_info=True)
            raise StoreFaultError(f"{self._caller}: loading the type index failed") from exc

        accepted, rejected = filter_valid(specs, index, self._domain)
        if rejected:
            logger.debug("%s: %d spec(s) failed validation", self._caller, rejected)

        records = self._build_records(model_id, accepted)

        outcome = self._submit(records)
        if isinstance(outcome, Fault):
            logger.error(
                "%s: none of the %d hierarchy edges were inserted.",
                self._caller,
                len(records),
                exc_info=outcome.error,
            )
            raise StoreFaultError(f"{self._caller}: batch create failed") from outcome.error

        if isinstance(outcome, PartiallyInserted):
            logger.debug(
                "%s: %d record(s) conflicted with existing edges",
                self._caller,
                len(outcome.conflicts),
            )

        created = [HierarchyEdge.model_validate(r) for r in outcome.records]
        if log_shortfall and len(created) < len(specs):
            logger.warning(
                "%s: %d out of %d hierarchy edges were not created.",
                self._caller,
                len(specs) - len(created),
                len(specs),
            )
        return created

    def _build_records(
        self, model_id: str, specs: Sequence[NewEdgeSpec]
    ) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for spec in specs:
            try:
                edge = HierarchyEdge.from_spec(model_id, spec)
            except ValidationError as exc:
                logger.debug("%s: dropping malformed edge record: %s", self._caller, exc)
                continue
            records.append(edge.to_record())
        return records

    def _submit(self, records: list[dict[str, Any]]) -> InsertOutcome:
        """Run one unordered bulk insert and classify the result."""
        if not records:
            return Inserted([])
        try:
            inserted = self._storage.bulk_insert(self.collection, records, ordered=False)
        except DuplicateKeyConflict as conflict:
            return PartiallyInserted(conflict.inserted, conflict.conflicts)
        except sqlite3.Error as exc:
            return Fault(exc)
        return Inserted(inserted)

    def find_all(self, model_id: str) -> Iterator[HierarchyEdge]:
        """Stream every edge of ``model_id``.

        Raises:
            MalformedModelIdError: If ``model_id`` is not a valid id.
            StoreFaultError: If the query cannot be started. Failures after
                that are raised from the iterator.
        """
        check_model_id(model_id)
        try:
            cursor = self._storage.find(self.collection, model_id)
        except sqlite3.Error as exc:
            raise StoreFaultError(
                f"{self._domain.value} hierarchy find_all: findAll failed"
            ) from exc
        return self._stream(cursor)

    def _stream(self, cursor: Cursor) -> Iterator[HierarchyEdge]:
        try:
            for record in cursor:
                yield HierarchyEdge.model_validate(record)
        except sqlite3.Error as exc:
            if cursor.closed:
                logger.debug("Ignoring store error after the stream was closed", exc_info=True)
                return
            logger.error("%s hierarchy stream failed", self._domain.value, exc_info=True)
            raise StoreFaultError(f"{self._domain.value} hierarchy stream failed") from exc
        finally:
            cursor.close()
