"""
Key Graph - Immutable store of tables, primary keys, foreign keys and filters.

A KeyGraph is the single source of truth of a data model. It never mutates:
every edit returns a new KeyGraph and older values stay valid, so several
holders can keep independent snapshots without coordination.

Storage layout:
- Tables are kept in insertion order (order matters for display and replay)
- Each table has at most one primary key column (compound keys unsupported)
- Foreign keys are stored on the *referenced* table; each entry records the
  referencing table and column, the referenced column is always the PK
- Filters are opaque predicates stored on the table they were applied to

Invariants (checked on every edit):
- Table names are unique
- A PK is a column of its table
- Every FK's referencing table exists and has the referencing column
- No duplicate FK entries
"""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

import structlog

from relmodel.core.errors import (
    ColumnIsFkTargetError,
    DuplicateTableError,
    NoPkOnReferencedTableError,
    NotAnFkError,
    UnknownColumnError,
    UnknownTableError,
)

logger = structlog.get_logger(__name__)

# Table selection item: either a name, or a (new_name, old_name) pair
TableSelection = Mapping[str, str] | Sequence[str | tuple[str, str]]


@dataclass(frozen=True)
class ForeignKey:
    """Foreign key entry, stored on the referenced table."""

    table: str
    column: str


@dataclass(frozen=True, eq=False)
class FilterEntry:
    """
    Opaque row filter attached to a table.

    The predicate is never evaluated by the key graph; engines interpret it
    (polars expression for the local engine, SQL text for DuckDB).

    Attributes:
        predicate: Engine-specific predicate
        focused: True if the filter was applied while the table was focused
    """

    predicate: Any
    focused: bool = False


@dataclass(frozen=True)
class TableDef:
    """
    Definition of one table in the key graph.

    Attributes:
        name: Table name, unique within a graph
        data: Opaque handle to the rows (DataFrame, LazyFrame, SQL table name)
        columns: Ordered column names of the table
        pk: Primary key column, if any
        fks: Foreign keys *pointing to* this table
        filters: Active filters applied to this table
    """

    name: str
    data: Any = field(compare=False, repr=False)
    columns: tuple[str, ...]
    pk: str | None = None
    fks: tuple[ForeignKey, ...] = ()
    filters: tuple[FilterEntry, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class ForeignKeyInfo:
    """Flattened view of one FK edge: child.child_column -> parent.parent_column."""

    child_table: str
    child_column: str
    parent_table: str
    parent_column: str | None

    def __str__(self) -> str:
        return f"{self.child_table}.{self.child_column} -> {self.parent_table}.{self.parent_column}"


@dataclass(frozen=True, eq=False)
class FilterInfo:
    """Flattened view of one active filter."""

    table: str
    predicate: Any
    focused: bool


class KeyGraph:
    """
    Persistent mapping of table name -> TableDef.

    Example:
        >>> graph = (
        ...     KeyGraph()
        ...     .add_table("flights", flights_df, flights_df.columns)
        ...     .add_table("planes", planes_df, planes_df.columns)
        ...     .set_pk("planes", "tailnum")
        ...     .add_fk("planes", "flights", "tailnum")
        ... )
        >>> graph.all_fks()
        [ForeignKeyInfo(child_table='flights', child_column='tailnum', ...)]
    """

    __slots__ = ("_tables",)

    def __init__(self, tables: Iterable[TableDef] = ()):
        by_name: dict[str, TableDef] = {}
        for table in tables:
            if table.name in by_name:
                raise DuplicateTableError([table.name])
            by_name[table.name] = table
        self._tables = MappingProxyType(by_name)

    @classmethod
    def _from_dict(cls, tables: dict[str, TableDef]) -> "KeyGraph":
        graph = cls.__new__(cls)
        graph._tables = MappingProxyType(tables)
        return graph

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __getitem__(self, name: str) -> TableDef:
        self._require_tables([name])
        return self._tables[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[TableDef]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def __repr__(self) -> str:
        return f"KeyGraph(tables={list(self._tables)!r})"

    @property
    def table_names(self) -> list[str]:
        return list(self._tables)

    def get_pk(self, table: str) -> str | None:
        return self[table].pk

    def has_pk(self, table: str) -> bool:
        return self[table].pk is not None

    def all_pks(self) -> list[tuple[str, str]]:
        """(table, pk column) for every table with a PK, in table order."""
        return [(t.name, t.pk) for t in self._tables.values() if t.pk is not None]

    def all_fks(self) -> list[ForeignKeyInfo]:
        """All FK edges sorted by child table, then child column."""
        edges = [
            ForeignKeyInfo(fk.table, fk.column, parent.name, parent.pk)
            for parent in self._tables.values()
            for fk in parent.fks
        ]
        return sorted(edges, key=lambda e: (e.child_table, e.child_column, e.parent_table))

    def get_fk(self, table: str, ref_table: str) -> list[str]:
        """Columns of `table` that reference the PK of `ref_table`."""
        self._require_tables([table, ref_table])
        return [fk.column for fk in self._tables[ref_table].fks if fk.table == table]

    def has_fk(self, table: str, ref_table: str) -> bool:
        return bool(self.get_fk(table, ref_table))

    def is_referenced(self, table: str) -> bool:
        return bool(self[table].fks)

    def referencing_tables(self, table: str) -> list[str]:
        """Names of tables with an FK to `table`, first occurrence order."""
        return list(dict.fromkeys(fk.table for fk in self[table].fks))

    def filters(self) -> list[FilterInfo]:
        return [
            FilterInfo(t.name, entry.predicate, entry.focused) for t in self._tables.values() for entry in t.filters
        ]

    def has_filters(self) -> bool:
        return any(t.filters for t in self._tables.values())

    def key_signature(self) -> tuple[tuple[str, ...], tuple[tuple[str, str], ...], tuple[ForeignKeyInfo, ...]]:
        """Table names, PKs and FKs: everything needed to compare two models structurally."""
        return tuple(self._tables), tuple(self.all_pks()), tuple(self.all_fks())

    # ------------------------------------------------------------------
    # Table edits
    # ------------------------------------------------------------------

    def add_table(self, name: str, data: Any, columns: Iterable[str]) -> "KeyGraph":
        if name in self._tables:
            raise DuplicateTableError([name])
        tables = dict(self._tables)
        tables[name] = TableDef(name=name, data=data, columns=tuple(columns))
        logger.debug("table_added", table=name, n_columns=len(tables[name].columns))
        return self._from_dict(tables)

    def remove_table(self, name: str) -> "KeyGraph":
        """Remove a table, its stored FKs and every FK from it to other tables."""
        self._require_tables([name])
        tables = {}
        for table in self._tables.values():
            if table.name == name:
                continue
            kept = tuple(fk for fk in table.fks if fk.table != name)
            tables[table.name] = table if kept == table.fks else replace(table, fks=kept)
        logger.debug("table_removed", table=name)
        return self._from_dict(tables)

    def rename_table(self, old: str, new: str) -> "KeyGraph":
        self._require_tables([old])
        if old == new:
            return self
        if new in self._tables:
            raise DuplicateTableError([new])
        return self.select_tables([(new, old) if name == old else name for name in self._tables])

    def select_tables(self, selection: TableSelection) -> "KeyGraph":
        """
        Keep only the selected tables, in selection order, renaming as requested.

        FK entries whose referencing table is not selected are dropped; FK
        entries of dropped referenced tables disappear with the table.

        Args:
            selection: Mapping new -> old name, or a sequence of names and
                (new_name, old_name) pairs

        Raises:
            UnknownTableError: If a selected table is not in the graph
            DuplicateTableError: If a table is selected twice or two tables
                would end up with the same name
        """
        pairs = _normalize_selection(selection)
        self._require_tables([old for _, old in pairs])

        new_names = [new for new, _ in pairs]
        old_names = [old for _, old in pairs]
        duplicated = find_duplicates(new_names) + find_duplicates(old_names)
        if duplicated:
            raise DuplicateTableError(duplicated)

        recode = {old: new for new, old in pairs}
        tables = {}
        for new, old in pairs:
            table = self._tables[old]
            fks = tuple(ForeignKey(recode[fk.table], fk.column) for fk in table.fks if fk.table in recode)
            tables[new] = replace(table, name=new, fks=fks)

        logger.debug("tables_selected", selected=new_names, dropped=len(self._tables) - len(tables))
        return self._from_dict(tables)

    def update_table(self, name: str, data: Any, columns: Iterable[str]) -> "KeyGraph":
        """
        Replace the data handle and schema of a table.

        Keys must still be valid against the new columns; use the structural
        editor to drop or rewrite keys when columns go away.
        """
        table = self[name]
        columns = tuple(columns)
        missing = []
        if table.pk is not None and table.pk not in columns:
            missing.append(table.pk)
        missing.extend(c for c in self._outgoing_fk_columns(name) if c not in columns)
        if missing:
            raise UnknownColumnError(name, list(dict.fromkeys(missing)))
        return self._replace_table(replace(table, data=data, columns=columns))

    def with_filters(self, name: str, filters: Iterable[FilterEntry]) -> "KeyGraph":
        table = self[name]
        return self._replace_table(replace(table, filters=tuple(filters)))

    def add_filters(self, name: str, predicates: Iterable[Any], focused: bool = False) -> "KeyGraph":
        table = self[name]
        added = tuple(FilterEntry(p, focused) for p in predicates)
        return self._replace_table(replace(table, filters=table.filters + added))

    def clear_filters(self, name: str | None = None) -> "KeyGraph":
        """Drop the filters of one table, or of every table if `name` is None."""
        if name is not None:
            return self.with_filters(name, ())
        tables = {t.name: replace(t, filters=()) if t.filters else t for t in self._tables.values()}
        return self._from_dict(tables)

    # ------------------------------------------------------------------
    # Key edits
    # ------------------------------------------------------------------

    def set_pk(self, table: str, column: str) -> "KeyGraph":
        table_def = self[table]
        self._require_columns(table_def, [column])
        logger.debug("pk_set", table=table, column=column, previous=table_def.pk)
        return self._replace_table(replace(table_def, pk=column))

    def clear_pk(self, table: str, remove_referencing_fks: bool = False) -> "KeyGraph":
        """
        Drop the PK of a table.

        Raises:
            ColumnIsFkTargetError: If other tables reference this PK and
                `remove_referencing_fks` is False
        """
        table_def = self[table]
        if table_def.pk is None:
            return self
        if table_def.fks and not remove_referencing_fks:
            raise ColumnIsFkTargetError(table, table_def.pk, self.referencing_tables(table))
        return self._replace_table(replace(table_def, pk=None, fks=()))

    def add_fk(self, ref_table: str, table: str, column: str, require_pk: bool = False) -> "KeyGraph":
        """
        Declare `table.column` as a foreign key to the PK of `ref_table`.

        Containment is not verified here; see IntegrityValidator.check_fk.

        Args:
            ref_table: Referenced table (stores the FK entry)
            table: Referencing table
            column: Referencing column
            require_pk: Fail if `ref_table` has no PK yet

        Raises:
            UnknownTableError, UnknownColumnError, NoPkOnReferencedTableError
        """
        self._require_tables([ref_table, table])
        self._require_columns(self._tables[table], [column])
        ref = self._tables[ref_table]
        if require_pk and ref.pk is None:
            raise NoPkOnReferencedTableError(ref_table)

        fk = ForeignKey(table, column)
        if fk in ref.fks:
            logger.debug("fk_exists", table=table, column=column, ref_table=ref_table)
            return self

        logger.debug("fk_added", table=table, column=column, ref_table=ref_table)
        return self._replace_table(replace(ref, fks=ref.fks + (fk,)))

    def remove_fk(self, ref_table: str, table: str, column: str | Sequence[str] | None = None) -> "KeyGraph":
        """
        Remove FK entries from `table` to `ref_table`.

        Args:
            column: Column(s) to remove; None removes every FK between the two

        Raises:
            UnknownColumnError: If a named column is not in `table`
            NotAnFkError: If a named column is not an FK to `ref_table`
        """
        fk_columns = self.get_fk(table, ref_table)
        columns = None
        if column is not None:
            columns = [column] if isinstance(column, str) else list(column)
            self._require_columns(self._tables[table], columns)
        if not fk_columns:
            return self

        if columns is None:
            columns = fk_columns
        else:
            if not set(columns) <= set(fk_columns):
                raise NotAnFkError(table, columns, ref_table, fk_columns)

        ref = self._tables[ref_table]
        kept = tuple(fk for fk in ref.fks if fk.table != table or fk.column not in columns)
        logger.debug("fk_removed", table=table, columns=columns, ref_table=ref_table)
        return self._replace_table(replace(ref, fks=kept))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _outgoing_fk_columns(self, table: str) -> list[str]:
        return [fk.column for parent in self._tables.values() for fk in parent.fks if fk.table == table]

    def _replace_table(self, table: TableDef) -> "KeyGraph":
        tables = dict(self._tables)
        tables[table.name] = table
        return self._from_dict(tables)

    def _require_tables(self, names: Iterable[str]) -> None:
        missing = [name for name in names if name not in self._tables]
        if missing:
            raise UnknownTableError(list(dict.fromkeys(missing)))

    @staticmethod
    def _require_columns(table: TableDef, columns: Iterable[str]) -> None:
        missing = [c for c in columns if c not in table.columns]
        if missing:
            raise UnknownColumnError(table.name, missing)


def _normalize_selection(selection: TableSelection) -> list[tuple[str, str]]:
    if isinstance(selection, Mapping):
        return list(selection.items())
    pairs = []
    for item in selection:
        if isinstance(item, str):
            pairs.append((item, item))
        else:
            new, old = item
            pairs.append((new, old))
    return pairs


def find_duplicates(names: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    dups = []
    for name in names:
        if name in seen and name not in dups:
            dups.append(name)
        seen.add(name)
    return dups
