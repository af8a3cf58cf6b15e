"""
PolarsEngine - local tabular engine over polars DataFrames and LazyFrames.

Handles are pl.DataFrame or pl.LazyFrame. Results keep the handle kind of
the input: eager in, eager out; lazy in, lazy out.

Filter predicates are polars expressions; plain strings are parsed as SQL
boolean expressions with pl.sql_expr, so the same predicates work for the
DuckDB engine.

Key comparisons:
- integer vs integer of different widths: both cast to Int64
- numeric vs numeric otherwise: both cast to Float64
- an all-null (Null dtype) side takes the other side's type
- anything else must match exactly; a mismatch is an execution failure
"""

from collections.abc import Mapping
from typing import Any

import polars as pl
import structlog

from relmodel.core.key_graph import KeyGraph
from relmodel.core.navigator import JoinPlan, RowSet
from relmodel.engine.base import DuplicateSummary, JoinHow, MismatchSummary, TabularEngine

logger = structlog.get_logger(__name__)

_VALUE = "value"
_COUNT = "n"
_KEY = "__relmodel_key__"


def _to_lazy(data: Any) -> pl.LazyFrame:
    if isinstance(data, pl.LazyFrame):
        return data
    if isinstance(data, pl.DataFrame):
        return data.lazy()
    raise TypeError(f"PolarsEngine handles DataFrame or LazyFrame, got {type(data).__name__}")


def _like(template: Any, result: pl.LazyFrame) -> pl.DataFrame | pl.LazyFrame:
    return result.collect() if isinstance(template, pl.DataFrame) else result


def _predicate(predicate: Any) -> pl.Expr:
    if isinstance(predicate, str):
        return pl.sql_expr(predicate)
    return predicate


def _align_key_types(left: pl.LazyFrame, right: pl.LazyFrame, column: str) -> tuple[pl.LazyFrame, pl.LazyFrame]:
    left_type = left.collect_schema()[column]
    right_type = right.collect_schema()[column]
    if left_type == right_type:
        return left, right
    if left_type == pl.Null or right_type == pl.Null:
        # all-null column: take the other side's type
        target = right_type if left_type == pl.Null else left_type
    elif left_type.is_integer() and right_type.is_integer():
        target = pl.Int64
    elif left_type.is_numeric() and right_type.is_numeric():
        target = pl.Float64
    else:
        return left, right
    logger.debug("key_types_aligned", left=str(left_type), right=str(right_type), target=str(target))
    return left.with_columns(pl.col(column).cast(target)), right.with_columns(pl.col(column).cast(target))


class PolarsEngine(TabularEngine):
    """
    In-memory engine backed by polars.

    Args:
        catalog: Optional name -> DataFrame/LazyFrame mapping exposed through
            list_tables() (used by DataModel.from_engine)
    """

    name = "polars"

    def __init__(self, catalog: Mapping[str, pl.DataFrame | pl.LazyFrame] | None = None):
        self.catalog = dict(catalog or {})

    def error_types(self) -> tuple[type[BaseException], ...]:
        return (pl.exceptions.PolarsError,)

    def list_tables(self) -> dict[str, Any]:
        return dict(self.catalog)

    def column_names(self, data: Any) -> list[str]:
        with self.wrap_errors("Schema lookup"):
            return _to_lazy(data).collect_schema().names()

    def read_column(self, data: Any, column: str) -> list[Any]:
        with self.wrap_errors("Read column"):
            return _to_lazy(data).select(column).collect().to_series().to_list()

    def count_rows(self, data: Any) -> int:
        with self.wrap_errors("Row count"):
            return int(_to_lazy(data).select(pl.len()).collect().item())

    def count_distinct_mismatch(
        self,
        data: Any,
        column: str,
        ref_data: Any,
        ref_column: str,
        max_examples: int,
    ) -> MismatchSummary:
        with self.wrap_errors("Anti-join"):
            values = _to_lazy(data).select(pl.col(column).alias(_VALUE)).drop_nulls()
            ref = _to_lazy(ref_data).select(pl.col(ref_column).alias(_VALUE)).drop_nulls().unique()
            values, ref = _align_key_types(values, ref, _VALUE)

            mismatches = (
                values.join(ref, on=_VALUE, how="anti")
                .group_by(_VALUE)
                .agg(pl.len().alias(_COUNT))
                .sort([_COUNT, _VALUE], descending=[True, False])
            )
            total_df, counts = pl.collect_all([values.select(pl.len()), mismatches])

        mismatch_count = int(counts[_COUNT].sum()) if counts.height else 0
        return MismatchSummary(
            mismatch_count=mismatch_count,
            total_count=int(total_df.item()),
            distinct_mismatch_count=counts.height,
            top_mismatches=tuple((value, int(n)) for value, n in counts.head(max_examples).iter_rows()),
        )

    def count_duplicates_and_nulls(self, data: Any, column: str, max_examples: int) -> DuplicateSummary:
        with self.wrap_errors("Duplicate count"):
            values = _to_lazy(data).select(pl.col(column).alias(_VALUE))
            duplicates = (
                values.drop_nulls()
                .group_by(_VALUE)
                .agg(pl.len().alias(_COUNT))
                .filter(pl.col(_COUNT) > 1)
                .sort([_COUNT, _VALUE], descending=[True, False])
            )
            nulls_df, dups = pl.collect_all([values.select(pl.col(_VALUE).null_count()), duplicates])

        return DuplicateSummary(
            duplicate_count=dups.height,
            null_count=int(nulls_df.item()),
            top_duplicates=tuple((value, int(n)) for value, n in dups.head(max_examples).iter_rows()),
        )

    def select_columns(self, data: Any, selection: list[tuple[str, str]]) -> Any:
        with self.wrap_errors("Column selection"):
            return _like(data, _to_lazy(data).select([pl.col(old).alias(new) for new, old in selection]))

    def _row_set_frame(self, row_set: RowSet, graph: KeyGraph) -> pl.LazyFrame:
        frame = _to_lazy(graph[row_set.table].data)
        for predicate in row_set.filters:
            frame = frame.filter(_predicate(predicate))
        for semi_join in row_set.semi_joins:
            partner = (
                self._row_set_frame(semi_join.partner, graph)
                .select(pl.col(semi_join.partner_column).alias(_KEY))
                .drop_nulls()
                .unique()
            )
            frame = frame.join(partner, left_on=semi_join.column, right_on=_KEY, how="semi")
        return frame

    def materialize(self, row_set: RowSet, graph: KeyGraph) -> Any:
        with self.wrap_errors("Filter"):
            result = _like(graph[row_set.table].data, self._row_set_frame(row_set, graph))
        logger.debug("row_set_materialized", table=row_set.table, depth=row_set.depth())
        return result

    def join(self, plan: JoinPlan, graph: KeyGraph, how: JoinHow = "left") -> Any:
        """
        Flatten a join plan into one frame.

        Right-hand key columns are merged into the left key; other right-hand
        columns that clash with existing names become "<table>.<column>".
        """
        start = graph[plan.start]
        with self.wrap_errors("Join"):
            result = _to_lazy(start.data)
            output_names = {plan.start: {c: c for c in start.columns}}
            taken = set(start.columns)

            for step in plan.steps:
                right = graph[step.right_table]
                left_key = output_names[step.left_table][step.left_column]
                renames = {}
                for column in right.columns:
                    if column == step.right_column:
                        continue
                    renames[column] = f"{step.right_table}.{column}" if column in taken else column

                right_frame = _to_lazy(right.data).select(
                    [pl.col(step.right_column).alias(_KEY)] + [pl.col(old).alias(new) for old, new in renames.items()]
                )
                result = result.join(right_frame, left_on=left_key, right_on=_KEY, how=how, coalesce=True)

                taken.update(renames.values())
                output_names[step.right_table] = {**renames, step.right_column: left_key}

            return _like(start.data, result)
