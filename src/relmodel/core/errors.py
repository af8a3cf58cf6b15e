"""
Error taxonomy for the relational data model.

Categories:
- Structural errors: the request names tables/columns that don't fit the model
- Constraint-prerequisite errors: raised before any engine call is attempted
- Relationship errors: the navigator could not decide on a single FK edge
- Mode errors: the operation is not legal in the model's focus state
- Engine errors: wrapped collaborator failures, turned into check results

Only EngineExecutionError is ever caught inside the package; everything else
propagates to the caller.
"""

from collections.abc import Iterable


def _names(items: Iterable[str]) -> str:
    return ", ".join(f"`{item}`" for item in items)


class DataModelError(Exception):
    """Base class for all data model errors."""


# ---------------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------------


class StructuralError(DataModelError, ValueError):
    """Request does not match the structure of the model."""


class UnknownTableError(StructuralError):
    def __init__(self, tables: Iterable[str]):
        self.tables = tuple(tables)
        super().__init__(f"Table(s) {_names(self.tables)} not in data model")


class DuplicateTableError(StructuralError):
    def __init__(self, tables: Iterable[str]):
        self.tables = tuple(tables)
        super().__init__(f"Table(s) {_names(self.tables)} already in data model")


class UnknownColumnError(StructuralError):
    def __init__(self, table: str, columns: Iterable[str]):
        self.table = table
        self.columns = tuple(columns)
        super().__init__(f"Column(s) {_names(self.columns)} not in table `{table}`")


class DuplicateColumnError(StructuralError):
    def __init__(self, table: str, columns: Iterable[str]):
        self.table = table
        self.columns = tuple(columns)
        super().__init__(f"Column(s) {_names(self.columns)} appear more than once in selection for `{table}`")


class ColumnIsFkTargetError(StructuralError):
    """Removing a PK column that other tables still reference."""

    def __init__(self, table: str, column: str, referencing: Iterable[str]):
        self.table = table
        self.column = column
        self.referencing = tuple(referencing)
        super().__init__(
            f"Column `{table}${column}` is referenced by foreign keys of "
            f"{_names(self.referencing)}; remove those foreign keys first"
        )


class NotAnFkError(StructuralError):
    def __init__(self, table: str, columns: Iterable[str], ref_table: str, fk_columns: Iterable[str]):
        self.table = table
        self.columns = tuple(columns)
        self.ref_table = ref_table
        self.fk_columns = tuple(fk_columns)
        super().__init__(
            f"Column(s) {_names(self.columns)} of `{table}` not a foreign key to `{ref_table}`; "
            f"foreign key columns: {_names(self.fk_columns) or 'none'}"
        )


class TableHasFiltersError(StructuralError):
    """Renaming or dropping columns of a table whose filter predicates may refer to them."""

    def __init__(self, table: str, columns: Iterable[str]):
        self.table = table
        self.columns = tuple(columns)
        super().__init__(
            f"Column(s) {_names(self.columns)} of `{table}` cannot be renamed or removed while the table "
            "has filters; apply or remove the filters first"
        )


# ---------------------------------------------------------------------------
# Constraint-prerequisite errors
# ---------------------------------------------------------------------------


class ConstraintPrerequisiteError(DataModelError):
    """A key required for the operation is missing or invalid."""


class NoPkError(ConstraintPrerequisiteError):
    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Table `{table}` has no primary key")


class NoPkOnReferencedTableError(ConstraintPrerequisiteError):
    def __init__(self, ref_table: str):
        self.ref_table = ref_table
        super().__init__(f"Referenced table `{ref_table}` needs a primary key before a foreign key can point to it")


class RefTableHasNoPkError(ConstraintPrerequisiteError):
    def __init__(self, ref_table: str):
        self.ref_table = ref_table
        super().__init__(f"Reference table `{ref_table}` has no primary key; candidates cannot be scored")


class PkAlreadySetError(ConstraintPrerequisiteError):
    def __init__(self, table: str, pk: str):
        self.table = table
        self.pk = pk
        super().__init__(f"Table `{table}` already has primary key `{pk}`; use force=True to replace it")


class PkCheckFailedError(ConstraintPrerequisiteError):
    def __init__(self, table: str, column: str, detail: str):
        self.table = table
        self.column = column
        self.detail = detail
        super().__init__(f"`{table}${column}` is not a valid primary key: {detail}")


class FkNotSubsetError(ConstraintPrerequisiteError):
    def __init__(self, table: str, column: str, ref_table: str, ref_column: str, detail: str):
        self.table = table
        self.column = column
        self.ref_table = ref_table
        self.ref_column = ref_column
        self.detail = detail
        super().__init__(f"`{table}${column}` is not a subset of `{ref_table}${ref_column}`: {detail}")


# ---------------------------------------------------------------------------
# Relationship errors
# ---------------------------------------------------------------------------


class RelationshipError(DataModelError):
    """Navigator could not resolve a single FK edge."""


class NoRelationshipError(RelationshipError):
    def __init__(self, table_1: str, table_2: str):
        self.tables = (table_1, table_2)
        super().__init__(f"No foreign key relationship between `{table_1}` and `{table_2}`")


class AmbiguousRelationshipError(RelationshipError):
    def __init__(self, table_1: str, table_2: str, reason: str):
        self.tables = (table_1, table_2)
        super().__init__(f"Relationship between `{table_1}` and `{table_2}` is ambiguous: {reason}")


# ---------------------------------------------------------------------------
# Mode errors
# ---------------------------------------------------------------------------


class ModeError(DataModelError):
    """Operation not allowed in the current focus state."""


class ModelIsFocusedError(ModeError):
    def __init__(self, operation: str, focused_table: str):
        self.operation = operation
        self.focused_table = focused_table
        super().__init__(
            f"`{operation}` is not available while table `{focused_table}` is focused; call defocus() first"
        )


class ModelNotFocusedError(ModeError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"`{operation}` requires a focused table; call focus() first")


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------


class EngineExecutionError(DataModelError):
    """Failure inside the tabular engine (type mismatch, SQL error, ...)."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)
