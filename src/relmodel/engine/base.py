"""
TabularEngine - interface to the engine that owns and computes on rows.

The key graph never touches rows itself. Everything that needs row-level
computation (uniqueness, containment, filtering, joins) goes through an
engine implementing this interface:

- PolarsEngine: in-memory polars DataFrames/LazyFrames
- DuckDBEngine: tables and views inside a DuckDB connection

Engine-specific failures must surface as EngineExecutionError so that the
validator and recommender can turn them into data instead of crashes.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from relmodel.core.errors import EngineExecutionError

if TYPE_CHECKING:
    from relmodel.core.key_graph import KeyGraph
    from relmodel.core.navigator import JoinPlan, RowSet

JoinHow = Literal["left", "inner", "full"]


@dataclass(frozen=True)
class MismatchSummary:
    """
    Result of an anti-join of a column against a reference column.

    Attributes:
        mismatch_count: Rows whose non-null value has no partner in the reference
        total_count: Non-null rows in the checked column
        distinct_mismatch_count: Distinct mismatching values
        top_mismatches: Up to `max_examples` (value, occurrences), most frequent first
    """

    mismatch_count: int
    total_count: int
    distinct_mismatch_count: int = 0
    top_mismatches: tuple[tuple[Any, int], ...] = field(default=())

    @property
    def mismatch_percentage(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.mismatch_count / self.total_count * 100


@dataclass(frozen=True)
class DuplicateSummary:
    """
    Duplicate and null statistics of one column.

    Attributes:
        duplicate_count: Distinct values that occur more than once
        null_count: Null values in the column
        top_duplicates: Up to `max_examples` (value, occurrences), most frequent first
    """

    duplicate_count: int
    null_count: int
    top_duplicates: tuple[tuple[Any, int], ...] = field(default=())


class TabularEngine(ABC):
    """
    Abstract base class for tabular engines.

    Handles are opaque to the rest of the package; each engine decides what a
    handle is (DataFrame, view name, ...).
    """

    name: str = "engine"

    @abstractmethod
    def column_names(self, data: Any) -> list[str]:
        """Ordered column names of a handle."""

    @abstractmethod
    def read_column(self, data: Any, column: str) -> list[Any]:
        """All values of one column, in row order."""

    @abstractmethod
    def count_rows(self, data: Any) -> int:
        """Number of rows of a handle."""

    @abstractmethod
    def count_distinct_mismatch(
        self,
        data: Any,
        column: str,
        ref_data: Any,
        ref_column: str,
        max_examples: int,
    ) -> MismatchSummary:
        """
        Anti-join `data.column` against the distinct values of `ref_data.ref_column`.

        Nulls in `data.column` are excluded from both the mismatch and the total count.

        Raises:
            EngineExecutionError: If the comparison cannot be executed
        """

    @abstractmethod
    def count_duplicates_and_nulls(self, data: Any, column: str, max_examples: int) -> DuplicateSummary:
        """
        Duplicate values and nulls of one column.

        Raises:
            EngineExecutionError: If the computation cannot be executed
        """

    @abstractmethod
    def select_columns(self, data: Any, selection: list[tuple[str, str]]) -> Any:
        """Project a handle onto (new_name, old_name) pairs, in order."""

    @abstractmethod
    def materialize(self, row_set: "RowSet", graph: "KeyGraph") -> Any:
        """Apply a row set (filters and semi-joins) and return a new handle."""

    @abstractmethod
    def join(self, plan: "JoinPlan", graph: "KeyGraph", how: JoinHow = "left") -> Any:
        """Execute a join plan and return a single flattened handle."""

    def count_row_set(self, row_set: "RowSet", graph: "KeyGraph") -> int:
        """Row count of a row set; engines may override to avoid a materialized handle."""
        return self.count_rows(self.materialize(row_set, graph))

    def list_tables(self) -> dict[str, Any]:
        """Tables known to the engine, name -> handle (empty if there is no catalog)."""
        return {}

    @contextmanager
    def wrap_errors(self, operation: str) -> Iterator[None]:
        """Re-raise engine library errors as EngineExecutionError."""
        try:
            yield
        except EngineExecutionError:
            raise
        except self.error_types() as e:
            raise EngineExecutionError(f"{operation} failed: {type(e).__name__}: {e}", cause=e) from e

    def error_types(self) -> tuple[type[BaseException], ...]:
        """Exception types of the underlying library that mean 'execution failed'."""
        return ()
