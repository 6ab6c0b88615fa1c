"""Exceptions raised by the hierarchy engine and its store adapter."""

from __future__ import annotations

from typing import Any


class MalformedModelIdError(ValueError):
    """The model id is not a syntactically valid store identifier."""

    def __init__(self, model_id: object) -> None:
        super().__init__(f"Invalid modelId: {model_id!r}")
        self.model_id = model_id


class DuplicateKeyConflict(Exception):
    """A bulk insert hit a unique index for one or more records.

    Raised by the store after every record of an unordered bulk insert has
    been attempted. ``inserted`` holds the records that were persisted,
    ``conflicts`` the ones rejected by the unique index.
    """

    def __init__(
        self,
        collection: str,
        inserted: list[dict[str, Any]],
        conflicts: list[dict[str, Any]],
    ) -> None:
        super().__init__(
            f"{len(conflicts)} record(s) violated a unique index on '{collection}'"
            f" ({len(inserted)} inserted)"
        )
        self.collection = collection
        self.inserted = inserted
        self.conflicts = conflicts


class StoreFaultError(RuntimeError):
    """A store operation failed for a reason other than a duplicate key."""
