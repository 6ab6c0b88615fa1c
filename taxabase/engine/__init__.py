from taxabase.engine.errors import DuplicateKeyConflict, MalformedModelIdError, StoreFaultError
from taxabase.engine.references import ResolvedEdge, project, resolve
from taxabase.engine.storage import SQLiteStorage
from taxabase.engine.type_index import TypeIndex
from taxabase.engine.types import CoarseType, DocKind, HierarchyDomain, ObjectType, Side
from taxabase.engine.validation import is_parent_child_code_consistent, is_valid
from taxabase.engine.writer import Fault, HierarchyWriter, Inserted, PartiallyInserted

__all__ = [
    "CoarseType",
    "DocKind",
    "DuplicateKeyConflict",
    "Fault",
    "HierarchyDomain",
    "HierarchyWriter",
    "Inserted",
    "MalformedModelIdError",
    "ObjectType",
    "PartiallyInserted",
    "ResolvedEdge",
    "SQLiteStorage",
    "Side",
    "StoreFaultError",
    "TypeIndex",
    "is_parent_child_code_consistent",
    "is_valid",
    "project",
    "resolve",
]
