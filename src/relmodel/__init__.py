"""Relational data models over tabular engines: keys, checks, filters and joins."""

from relmodel.core.errors import (
    AmbiguousRelationshipError,
    ColumnIsFkTargetError,
    ConstraintPrerequisiteError,
    DataModelError,
    DuplicateColumnError,
    DuplicateTableError,
    EngineExecutionError,
    FkNotSubsetError,
    ModeError,
    ModelIsFocusedError,
    ModelNotFocusedError,
    NoPkError,
    NoPkOnReferencedTableError,
    NoRelationshipError,
    NotAnFkError,
    PkAlreadySetError,
    PkCheckFailedError,
    RefTableHasNoPkError,
    RelationshipError,
    StructuralError,
    TableHasFiltersError,
    UnknownColumnError,
    UnknownTableError,
)
from relmodel.core.integrity import CheckResult, CheckStatus
from relmodel.core.key_graph import KeyGraph
from relmodel.core.model import DataModel
from relmodel.engine.duckdb_engine import DuckDBEngine
from relmodel.engine.polars_engine import PolarsEngine
from relmodel.logging_config import configure_logging

__version__ = "0.1.0"

__all__ = [
    "AmbiguousRelationshipError",
    "CheckResult",
    "CheckStatus",
    "ColumnIsFkTargetError",
    "configure_logging",
    "ConstraintPrerequisiteError",
    "DataModel",
    "DataModelError",
    "DuckDBEngine",
    "DuplicateColumnError",
    "DuplicateTableError",
    "EngineExecutionError",
    "FkNotSubsetError",
    "KeyGraph",
    "ModeError",
    "ModelIsFocusedError",
    "ModelNotFocusedError",
    "NoPkError",
    "NoPkOnReferencedTableError",
    "NoRelationshipError",
    "NotAnFkError",
    "PkAlreadySetError",
    "PkCheckFailedError",
    "PolarsEngine",
    "RefTableHasNoPkError",
    "RelationshipError",
    "StructuralError",
    "TableHasFiltersError",
    "UnknownColumnError",
    "UnknownTableError",
]
