"""
DuckDBEngine - SQL engine over tables and views of a DuckDB connection.

Handles are table or view names in the connection. Derived results (filtered
row sets, projections, joins) are created as temporary views and their names
returned, so nothing is copied until a caller reads rows. The engine keeps
track of its views and drops them on drop_views() or close(); row counts run
as subqueries and create no view.

Filter predicates are SQL boolean expressions over the table's columns, e.g.
"a > 3" or "name LIKE 'A%'".
"""

import itertools
import re
from typing import Any

import duckdb
import polars as pl
import structlog

from relmodel.core.key_graph import KeyGraph
from relmodel.core.navigator import JoinPlan, RowSet
from relmodel.engine.base import DuplicateSummary, JoinHow, MismatchSummary, TabularEngine

logger = structlog.get_logger(__name__)

_JOIN_SQL = {"left": "LEFT JOIN", "inner": "INNER JOIN", "full": "FULL OUTER JOIN"}


def quote_identifier(name: str) -> str:
    """Quote an identifier for DuckDB SQL."""
    return '"' + name.replace('"', '""') + '"'


def _sanitize_table_name(name: str) -> str:
    """
    Sanitize a name to an SQL-safe identifier fragment.

    Replaces spaces, hyphens, and special characters with underscores and
    ensures the identifier starts with a letter or underscore.
    """
    sanitized = re.sub(r"[^0-9a-zA-Z_]+", "_", name).strip("_").lower()
    if not sanitized or sanitized[0].isdigit():
        sanitized = f"t_{sanitized}" if sanitized else "t"
    return sanitized


class DuckDBEngine(TabularEngine):
    """
    Engine executing everything as SQL in DuckDB.

    Args:
        conn: Existing connection; a new in-memory database is opened if None
    """

    name = "duckdb"

    def __init__(self, conn: duckdb.DuckDBPyConnection | None = None):
        self.conn = conn if conn is not None else duckdb.connect(":memory:")
        self._view_ids = itertools.count(1)
        self._views: list[str] = []

    def error_types(self) -> tuple[type[BaseException], ...]:
        return (duckdb.Error,)

    @property
    def views(self) -> list[str]:
        """Temporary views created by this engine and not yet dropped."""
        return list(self._views)

    def drop_views(self) -> None:
        """Drop every temporary view created by this engine."""
        with self.wrap_errors("Drop views"):
            # newest first: later views may select from earlier ones
            for view in reversed(self._views):
                self.conn.execute(f"DROP VIEW IF EXISTS {quote_identifier(view)}")
        logger.debug("duckdb_views_dropped", count=len(self._views))
        self._views.clear()

    def close(self) -> None:
        self.drop_views()
        self.conn.close()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def create_table(self, name: str, data: pl.DataFrame) -> str:
        """Copy a polars DataFrame into a new table and return its name."""
        with self.wrap_errors("Create table"):
            self.conn.register("__relmodel_import__", data)
            try:
                self.conn.execute(
                    f"CREATE OR REPLACE TABLE {quote_identifier(name)} AS SELECT * FROM __relmodel_import__"
                )
            finally:
                self.conn.unregister("__relmodel_import__")
        logger.info("duckdb_table_created", table=name, rows=data.height)
        return name

    def list_tables(self) -> dict[str, Any]:
        with self.wrap_errors("List tables"):
            rows = self.conn.execute(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_catalog = current_database() AND table_schema = 'main' "
                "ORDER BY table_name"
            ).fetchall()
        return {row[0]: row[0] for row in rows}

    def _new_view(self, base: str, sql: str) -> str:
        view = f"relmodel_{_sanitize_table_name(base)}_{next(self._view_ids)}"
        self.conn.execute(f"CREATE OR REPLACE TEMP VIEW {quote_identifier(view)} AS {sql}")
        self._views.append(view)
        return view

    def fetch(self, data: str) -> pl.DataFrame:
        """Read a table or view into a polars DataFrame."""
        with self.wrap_errors("Fetch"):
            return self.conn.execute(f"SELECT * FROM {quote_identifier(data)}").pl()

    # ------------------------------------------------------------------
    # TabularEngine
    # ------------------------------------------------------------------

    def column_names(self, data: Any) -> list[str]:
        with self.wrap_errors("Schema lookup"):
            cursor = self.conn.execute(f"SELECT * FROM {quote_identifier(data)} LIMIT 0")
            return [description[0] for description in cursor.description]

    def read_column(self, data: Any, column: str) -> list[Any]:
        with self.wrap_errors("Read column"):
            rows = self.conn.execute(f"SELECT {quote_identifier(column)} FROM {quote_identifier(data)}").fetchall()
        return [row[0] for row in rows]

    def count_rows(self, data: Any) -> int:
        with self.wrap_errors("Row count"):
            return int(self.conn.execute(f"SELECT COUNT(*) FROM {quote_identifier(data)}").fetchone()[0])

    def count_distinct_mismatch(
        self,
        data: Any,
        column: str,
        ref_data: Any,
        ref_column: str,
        max_examples: int,
    ) -> MismatchSummary:
        c, rc = quote_identifier(column), quote_identifier(ref_column)
        ctes = (
            f"WITH v AS (SELECT {c} AS value FROM {quote_identifier(data)} WHERE {c} IS NOT NULL), "
            f"r AS (SELECT DISTINCT {rc} AS value FROM {quote_identifier(ref_data)} WHERE {rc} IS NOT NULL), "
            "m AS (SELECT v.value AS value, COUNT(*) AS n FROM v "
            "WHERE NOT EXISTS (SELECT 1 FROM r WHERE r.value = v.value) GROUP BY v.value) "
        )
        with self.wrap_errors("Anti-join"):
            total, mismatches, distinct = self.conn.execute(
                ctes + "SELECT (SELECT COUNT(*) FROM v), (SELECT COALESCE(SUM(n), 0) FROM m), (SELECT COUNT(*) FROM m)"
            ).fetchone()
            top = self.conn.execute(
                ctes + f"SELECT value, n FROM m ORDER BY n DESC, value LIMIT {int(max_examples)}"
            ).fetchall()

        return MismatchSummary(
            mismatch_count=int(mismatches),
            total_count=int(total),
            distinct_mismatch_count=int(distinct),
            top_mismatches=tuple((value, int(n)) for value, n in top),
        )

    def count_duplicates_and_nulls(self, data: Any, column: str, max_examples: int) -> DuplicateSummary:
        c, t = quote_identifier(column), quote_identifier(data)
        cte = (
            f"WITH d AS (SELECT {c} AS value, COUNT(*) AS n FROM {t} "
            f"WHERE {c} IS NOT NULL GROUP BY {c} HAVING COUNT(*) > 1) "
        )
        with self.wrap_errors("Duplicate count"):
            nulls, duplicates = self.conn.execute(
                cte + f"SELECT (SELECT COUNT(*) - COUNT({c}) FROM {t}), (SELECT COUNT(*) FROM d)"
            ).fetchone()
            top = self.conn.execute(
                cte + f"SELECT value, n FROM d ORDER BY n DESC, value LIMIT {int(max_examples)}"
            ).fetchall()

        return DuplicateSummary(
            duplicate_count=int(duplicates),
            null_count=int(nulls),
            top_duplicates=tuple((value, int(n)) for value, n in top),
        )

    def select_columns(self, data: Any, selection: list[tuple[str, str]]) -> Any:
        columns = ", ".join(f"{quote_identifier(old)} AS {quote_identifier(new)}" for new, old in selection)
        with self.wrap_errors("Column selection"):
            return self._new_view(data, f"SELECT {columns} FROM {quote_identifier(data)}")

    def _row_set_sql(self, row_set: RowSet, graph: KeyGraph, aliases: itertools.count) -> str:
        conditions = []
        for predicate in row_set.filters:
            if not isinstance(predicate, str):
                raise TypeError(f"DuckDBEngine filters must be SQL strings, got {type(predicate).__name__}")
            conditions.append(f"({predicate})")
        for semi_join in row_set.semi_joins:
            partner_sql = self._row_set_sql(semi_join.partner, graph, aliases)
            pc = quote_identifier(semi_join.partner_column)
            conditions.append(
                f"{quote_identifier(semi_join.column)} IN "
                f"(SELECT {pc} FROM ({partner_sql}) AS p{next(aliases)} WHERE {pc} IS NOT NULL)"
            )
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        return f"SELECT * FROM {quote_identifier(graph[row_set.table].data)}{where}"

    def materialize(self, row_set: RowSet, graph: KeyGraph) -> Any:
        sql = self._row_set_sql(row_set, graph, itertools.count(1))
        with self.wrap_errors("Filter"):
            view = self._new_view(row_set.table, sql)
        logger.debug("row_set_materialized", table=row_set.table, view=view, depth=row_set.depth())
        return view

    def count_row_set(self, row_set: RowSet, graph: KeyGraph) -> int:
        sql = self._row_set_sql(row_set, graph, itertools.count(1))
        with self.wrap_errors("Row count"):
            return int(self.conn.execute(f"SELECT COUNT(*) FROM ({sql}) AS counted").fetchone()[0])

    def join(self, plan: JoinPlan, graph: KeyGraph, how: JoinHow = "left") -> Any:
        """
        Flatten a join plan into one view.

        Right-hand key columns are merged into the left key (COALESCE for full
        joins); other right-hand columns that clash become "<table>.<column>".
        """
        start = graph[plan.start]
        aliases = {plan.start: "t0"}
        select = {c: f"t0.{quote_identifier(c)}" for c in start.columns}
        output_names = {plan.start: {c: c for c in start.columns}}
        joins = []

        for i, step in enumerate(plan.steps, start=1):
            right = graph[step.right_table]
            alias = f"t{i}"
            aliases[step.right_table] = alias
            left_key = output_names[step.left_table][step.left_column]
            right_key = f"{alias}.{quote_identifier(step.right_column)}"
            left_expr = f"{aliases[step.left_table]}.{quote_identifier(step.left_column)}"
            joins.append(f"{_JOIN_SQL[how]} {quote_identifier(right.data)} AS {alias} ON {left_expr} = {right_key}")

            if how == "full":
                select[left_key] = f"COALESCE({select[left_key]}, {right_key})"

            renames = {}
            for column in right.columns:
                if column == step.right_column:
                    continue
                new = f"{step.right_table}.{column}" if column in select else column
                renames[column] = new
                select[new] = f"{alias}.{quote_identifier(column)}"
            output_names[step.right_table] = {**renames, step.right_column: left_key}

        columns = ", ".join(f"{expr} AS {quote_identifier(name)}" for name, expr in select.items())
        sql = f"SELECT {columns} FROM {quote_identifier(start.data)} AS t0 " + " ".join(joins)
        with self.wrap_errors("Join"):
            return self._new_view(plan.start + "_flat", sql)
