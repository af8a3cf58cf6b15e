"""
DataModel - immutable facade over a KeyGraph, a tabular engine and a focus state.

A DataModel is either in the *normal* state (the full editing and query
surface) or *focused* on one table. While focused, only row-level work on
that table is allowed: filtering it, replacing its data, selecting/renaming
its columns and scoring it against other tables. Everything else raises
ModelIsFocusedError until defocus() folds the changes back, or
discard_focus() drops them.

Every method returns a new DataModel; earlier models remain valid.

Example:
    >>> model = (
    ...     DataModel.from_tables({"flights": flights, "planes": planes}, PolarsEngine())
    ...     .add_pk("planes", "tailnum", check=True)
    ...     .add_fk("flights", "tailnum", "planes")
    ...     .filter("planes", pl.col("year") > 2000)
    ... )
    >>> model.get_table("flights")  # only flights with a post-2000 plane
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from relmodel.core import structural_editor
from relmodel.core.candidates import Candidate, CandidateRecommender
from relmodel.core.config_loader import RelModelConfig, get_config
from relmodel.core.errors import (
    FkNotSubsetError,
    ModelIsFocusedError,
    ModelNotFocusedError,
    NoPkOnReferencedTableError,
    PkAlreadySetError,
    PkCheckFailedError,
    UnknownTableError,
)
from relmodel.core.integrity import CheckResult, IntegrityValidator
from relmodel.core.key_graph import FilterInfo, ForeignKeyInfo, KeyGraph, TableSelection
from relmodel.core.navigator import (
    JoinPlan,
    JoinStep,
    Relationship,
    RowSet,
    join_plan,
    propagate_filters,
    resolve_direction,
)
from relmodel.core.structural_editor import ColumnSelection
from relmodel.engine.base import JoinHow, TabularEngine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FocusState:
    """
    Focused table plus the working graph its edits go to.

    The working graph starts as a copy of the model's graph; only the focused
    table is ever edited in it.
    """

    table: str
    graph: KeyGraph


class DataModel:
    """Relational data model: tables, keys and filters over a tabular engine."""

    __slots__ = ("engine", "graph", "config", "_focus")

    def __init__(
        self,
        engine: TabularEngine,
        graph: KeyGraph | None = None,
        config: RelModelConfig | None = None,
        focus: FocusState | None = None,
    ):
        self.engine = engine
        self.graph = graph if graph is not None else KeyGraph()
        self.config = config or get_config()
        self._focus = focus

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_tables(
        cls,
        tables: Mapping[str, Any],
        engine: TabularEngine,
        config: RelModelConfig | None = None,
    ) -> "DataModel":
        """Create a model from name -> data handle, without keys."""
        model = cls(engine, config=config)
        for name, data in tables.items():
            model = model.add_table(name, data)
        return model

    @classmethod
    def from_engine(cls, engine: TabularEngine, config: RelModelConfig | None = None) -> "DataModel":
        """Create a model from every table in the engine's catalog."""
        catalog = engine.list_tables()
        logger.info("model_from_engine", engine=engine.name, n_tables=len(catalog))
        return cls.from_tables(catalog, engine, config)

    def _evolve(self, graph: KeyGraph | None = None, focus: Any = ...) -> "DataModel":
        return DataModel(
            self.engine,
            self.graph if graph is None else graph,
            self.config,
            self._focus if focus is ... else focus,
        )

    def __repr__(self) -> str:
        focus = f", focused={self._focus.table!r}" if self._focus else ""
        return f"DataModel(tables={self.graph.table_names!r}, engine={self.engine.name!r}{focus})"

    # ------------------------------------------------------------------
    # Focus state machine
    # ------------------------------------------------------------------

    @property
    def is_focused(self) -> bool:
        return self._focus is not None

    @property
    def focused_table(self) -> str | None:
        return self._focus.table if self._focus else None

    def _require_normal(self, operation: str) -> None:
        if self._focus is not None:
            raise ModelIsFocusedError(operation, self._focus.table)

    def _require_focus(self, operation: str) -> FocusState:
        if self._focus is None:
            raise ModelNotFocusedError(operation)
        return self._focus

    def _working_graph(self, operation: str, table: str) -> KeyGraph:
        """Graph to edit for a row-level operation on `table` in either state."""
        if self._focus is None:
            return self.graph
        if table != self._focus.table:
            raise ModelIsFocusedError(f"{operation}({table!r})", self._focus.table)
        return self._focus.graph

    def _with_working_graph(self, graph: KeyGraph) -> "DataModel":
        if self._focus is None:
            return self._evolve(graph=graph)
        return self._evolve(focus=FocusState(self._focus.table, graph))

    def focus(self, table: str) -> "DataModel":
        """Enter the focused state on one table."""
        self._require_normal("focus")
        if table not in self.graph:
            raise UnknownTableError([table])
        logger.info("table_focused", table=table)
        return self._evolve(focus=FocusState(table, self.graph))

    def get_focused(self) -> Any:
        """Data of the focused table with its own filters applied."""
        focus = self._require_focus("get_focused")
        table_def = focus.graph[focus.table]
        if not table_def.filters:
            return table_def.data
        row_set = RowSet(focus.table, tuple(entry.predicate for entry in table_def.filters))
        return self.engine.materialize(row_set, focus.graph)

    def update_focused(self, data: Any) -> "DataModel":
        """
        Replace the focused table's data (e.g. after a computed column or a row edit).

        Keys on columns that disappeared follow the structural editor's drop policy.
        """
        focus = self._require_focus("update_focused")
        graph = structural_editor.replace_table_data(
            focus.graph, focus.table, data, self.engine.column_names(data)
        )
        return self._evolve(focus=FocusState(focus.table, graph))

    def defocus(self) -> "DataModel":
        """Fold the focused table's changes back and return to the normal state."""
        focus = self._require_focus("defocus")
        logger.info("table_defocused", table=focus.table)
        return self._evolve(graph=focus.graph, focus=None)

    def discard_focus(self) -> "DataModel":
        """Leave the focused state dropping all changes made while focused."""
        focus = self._require_focus("discard_focus")
        logger.info("focus_discarded", table=focus.table)
        return self._evolve(focus=None)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    @property
    def table_names(self) -> list[str]:
        self._require_normal("table_names")
        return self.graph.table_names

    def add_table(self, name: str, data: Any) -> "DataModel":
        self._require_normal("add_table")
        columns = self.engine.column_names(data)
        return self._evolve(graph=self.graph.add_table(name, data, columns))

    def remove_table(self, *names: str) -> "DataModel":
        self._require_normal("remove_table")
        graph = self.graph
        for name in names:
            graph = graph.remove_table(name)
        return self._evolve(graph=graph)

    def rename_tables(self, renames: Mapping[str, str]) -> "DataModel":
        """Rename tables (mapping new_name -> old_name), keeping all tables."""
        self._require_normal("rename_tables")
        graph = self.graph
        for new, old in renames.items():
            graph = graph.rename_table(old, new)
        return self._evolve(graph=graph)

    def select_tables(self, selection: TableSelection) -> "DataModel":
        """Keep (and optionally rename) tables in the given order."""
        self._require_normal("select_tables")
        return self._evolve(graph=self.graph.select_tables(selection))

    def get_table(self, name: str) -> Any:
        """Data of one table with all propagated filters applied."""
        self._require_normal("get_table")
        row_set = propagate_filters(self.graph).get(name)
        if row_set is None:
            return self.graph[name].data
        return self.engine.materialize(row_set, self.graph)

    @property
    def tables(self) -> dict[str, Any]:
        """Name -> data for every table, propagated filters applied."""
        self._require_normal("tables")
        row_sets = propagate_filters(self.graph)
        return {
            t.name: self.engine.materialize(row_sets[t.name], self.graph) if t.name in row_sets else t.data
            for t in self.graph
        }

    def nrow(self) -> dict[str, int]:
        """Row counts per table, after filters."""
        self._require_normal("nrow")
        row_sets = propagate_filters(self.graph)
        return {
            t.name: self.engine.count_row_set(row_sets[t.name], self.graph)
            if t.name in row_sets
            else self.engine.count_rows(t.data)
            for t in self.graph
        }

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def select_columns(self, table: str, selection: ColumnSelection) -> "DataModel":
        """Keep and optionally rename columns ((new_name, old_name) pairs) of one table."""
        graph = self._working_graph("select_columns", table)
        pairs = structural_editor.normalize_column_selection(graph, table, selection)
        edited = structural_editor.select_columns(graph, table, pairs)
        data = self.engine.select_columns(graph[table].data, pairs)
        return self._with_working_graph(edited.update_table(table, data, edited[table].columns))

    def rename_columns(self, table: str, renames: Mapping[str, str]) -> "DataModel":
        """Rename columns (mapping new_name -> old_name) of one table."""
        graph = self._working_graph("rename_columns", table)
        edited = structural_editor.rename_columns(graph, table, renames)
        pairs = list(zip(edited[table].columns, graph[table].columns))
        data = self.engine.select_columns(graph[table].data, pairs)
        return self._with_working_graph(edited.update_table(table, data, edited[table].columns))

    # ------------------------------------------------------------------
    # Primary keys
    # ------------------------------------------------------------------

    def add_pk(self, table: str, column: str, check: bool = False, force: bool = False) -> "DataModel":
        """
        Declare `column` as the primary key of `table`.

        Args:
            check: Verify uniqueness and absence of nulls first
            force: Replace an existing primary key

        Raises:
            PkAlreadySetError: If the table has a PK and `force` is False
            PkCheckFailedError: If `check` is True and the column is not a valid key
        """
        self._require_normal("add_pk")
        existing = self.graph.get_pk(table)
        if existing is not None and not force:
            raise PkAlreadySetError(table, existing)
        if check:
            result = self._validator().check_key(table, column)
            if not result.passed:
                raise PkCheckFailedError(table, column, result.detail)
        logger.info("pk_added", table=table, column=column, checked=check)
        return self._evolve(graph=self.graph.set_pk(table, column))

    def remove_pk(self, table: str, remove_referencing_fks: bool = False) -> "DataModel":
        self._require_normal("remove_pk")
        return self._evolve(graph=self.graph.clear_pk(table, remove_referencing_fks))

    def get_pk(self, table: str) -> str | None:
        self._require_normal("get_pk")
        return self.graph.get_pk(table)

    def has_pk(self, table: str) -> bool:
        self._require_normal("has_pk")
        return self.graph.has_pk(table)

    def all_pks(self) -> list[tuple[str, str]]:
        self._require_normal("all_pks")
        return self.graph.all_pks()

    # ------------------------------------------------------------------
    # Foreign keys
    # ------------------------------------------------------------------

    def add_fk(self, table: str, column: str, ref_table: str, check: bool = False) -> "DataModel":
        """
        Declare `table.column` as a foreign key to the primary key of `ref_table`.

        Without `check`, the FK is recorded unchecked (the referenced PK may be
        declared later); with `check`, the referenced PK must exist and every
        non-null value must be contained in it.

        Raises:
            NoPkOnReferencedTableError: If `check` is True and `ref_table` has no PK
            FkNotSubsetError: If `check` is True and the containment check fails
        """
        self._require_normal("add_fk")
        if check:
            if self.graph.get_pk(ref_table) is None:
                raise NoPkOnReferencedTableError(ref_table)
            result = self._validator().check_fk(table, column, ref_table)
            if not result.passed:
                raise FkNotSubsetError(table, column, ref_table, result.ref_column, result.detail)
        logger.info("fk_added", table=table, column=column, ref_table=ref_table, checked=check)
        return self._evolve(graph=self.graph.add_fk(ref_table, table, column, require_pk=check))

    def remove_fk(self, table: str, ref_table: str, column: str | Sequence[str] | None = None) -> "DataModel":
        self._require_normal("remove_fk")
        return self._evolve(graph=self.graph.remove_fk(ref_table, table, column))

    def get_fk(self, table: str, ref_table: str) -> list[str]:
        self._require_normal("get_fk")
        return self.graph.get_fk(table, ref_table)

    def has_fk(self, table: str, ref_table: str) -> bool:
        self._require_normal("has_fk")
        return self.graph.has_fk(table, ref_table)

    def all_fks(self) -> list[ForeignKeyInfo]:
        self._require_normal("all_fks")
        return self.graph.all_fks()

    def is_referenced(self, table: str) -> bool:
        self._require_normal("is_referenced")
        return self.graph.is_referenced(table)

    def referencing_tables(self, table: str) -> list[str]:
        self._require_normal("referencing_tables")
        return self.graph.referencing_tables(table)

    # ------------------------------------------------------------------
    # Validation and recommendation
    # ------------------------------------------------------------------

    def _validator(self) -> IntegrityValidator:
        return IntegrityValidator(self.graph, self.engine, self.config)

    def check_pk(self, table: str) -> CheckResult:
        self._require_normal("check_pk")
        return self._validator().check_pk(table)

    def check_fk(self, table: str, column: str, ref_table: str) -> CheckResult:
        self._require_normal("check_fk")
        return self._validator().check_fk(table, column, ref_table)

    def check_constraints(self) -> list[CheckResult]:
        self._require_normal("check_constraints")
        return self._validator().check_constraints()

    def enum_pk_candidates(self, table: str) -> list[Candidate]:
        graph = self._working_graph("enum_pk_candidates", table)
        return CandidateRecommender(graph, self.engine, self.config).enum_pk_candidates(table)

    def enum_fk_candidates(self, table: str, ref_table: str) -> list[Candidate]:
        graph = self._working_graph("enum_fk_candidates", table)
        return CandidateRecommender(graph, self.engine, self.config).enum_fk_candidates(table, ref_table)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def filter(self, table: str, *predicates: Any) -> "DataModel":
        """
        Attach filter predicates to a table.

        Predicates are opaque to the model (polars expressions for PolarsEngine,
        SQL boolean expressions for DuckDBEngine). They restrict connected tables
        when the model's tables are read or when apply_filters() is called.
        """
        graph = self._working_graph("filter", table)
        logger.info("filter_added", table=table, n_predicates=len(predicates), focused=self.is_focused)
        return self._with_working_graph(graph.add_filters(table, predicates, focused=self.is_focused))

    def get_filters(self) -> list[FilterInfo]:
        self._require_normal("get_filters")
        return self.graph.filters()

    def remove_filters(self, table: str | None = None) -> "DataModel":
        self._require_normal("remove_filters")
        return self._evolve(graph=self.graph.clear_filters(table))

    def restrictions(self) -> dict[str, RowSet]:
        """Propagated row sets, without executing them."""
        self._require_normal("restrictions")
        return propagate_filters(self.graph)

    def apply_filters(self) -> "DataModel":
        """Materialize all propagated restrictions and drop the filters."""
        self._require_normal("apply_filters")
        graph = self.graph
        for name, row_set in propagate_filters(self.graph).items():
            graph = graph.update_table(name, self.engine.materialize(row_set, self.graph), graph[name].columns)
        logger.info("filters_applied", n_tables=len(graph))
        return self._evolve(graph=graph.clear_filters())

    # ------------------------------------------------------------------
    # Navigation and joins
    # ------------------------------------------------------------------

    def parent_child(
        self, table_1: str, table_2: str, referencing: str | None = None, column: str | None = None
    ) -> Relationship:
        self._require_normal("parent_child")
        return resolve_direction(self.graph, table_1, table_2, referencing, column)

    def join_tables(
        self,
        table_1: str,
        table_2: str,
        how: JoinHow = "left",
        referencing: str | None = None,
        column: str | None = None,
    ) -> Any:
        """Join two directly related tables, child on the left."""
        self._require_normal("join_tables")
        rel = resolve_direction(self.graph, table_1, table_2, referencing, column)
        plan = JoinPlan(
            rel.child_table, (JoinStep(rel.child_table, rel.child_column, rel.parent_table, rel.parent_column),)
        )
        return self.engine.join(plan, self.apply_filters().graph, how)

    def flatten(self, start: str, tables: list[str] | None = None, how: JoinHow = "left") -> Any:
        """Join `start` with the tables it references, directly or transitively."""
        self._require_normal("flatten")
        plan = join_plan(self.graph, start, tables)
        logger.info("flatten", start=start, tables=plan.tables, how=how)
        return self.engine.join(plan, self.apply_filters().graph, how)
