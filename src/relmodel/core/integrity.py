"""
Integrity Validator - PK uniqueness and FK containment checks.

Checks read the key graph and ask the engine for counts; they never modify
the graph. Every check returns a CheckResult:

- PASSED
- PK_NOT_UNIQUE: duplicate values with occurrence counts (capped sample)
- PK_HAS_NULLS: number of nulls in the key column
- FK_NOT_SUBSET: mismatch count, percentage of non-null rows, capped sample
- CHECK_EXECUTION_FAILED: engine error message (e.g. incompatible types)

Prerequisites (table/column existence, referenced PK) are validated before the
engine is called and raise instead of returning a result.

Checks always run against the tables' unfiltered data and are never cached.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

import structlog

from relmodel.core.config_loader import RelModelConfig, get_config
from relmodel.core.errors import EngineExecutionError, NoPkError, NoPkOnReferencedTableError, UnknownColumnError
from relmodel.core.key_graph import KeyGraph
from relmodel.engine.base import DuplicateSummary, MismatchSummary, TabularEngine

logger = structlog.get_logger(__name__)


class CheckStatus(Enum):
    PASSED = "passed"
    PK_NOT_UNIQUE = "pk_not_unique"
    PK_HAS_NULLS = "pk_has_nulls"
    FK_NOT_SUBSET = "fk_not_subset"
    CHECK_EXECUTION_FAILED = "check_execution_failed"


@dataclass(frozen=True)
class CheckResult:
    """
    Outcome of one constraint check.

    Attributes:
        kind: "pk" or "fk"
        table: Checked table
        column: Checked column
        status: Outcome
        detail: Human-readable explanation, empty when passed
        ref_table: Referenced table (FK checks)
        ref_column: Referenced PK column (FK checks)
        summary: Engine summary the detail was built from (None on execution failure)
    """

    kind: Literal["pk", "fk"]
    table: str
    column: str
    status: CheckStatus
    detail: str = ""
    ref_table: str | None = None
    ref_column: str | None = None
    summary: MismatchSummary | DuplicateSummary | None = None

    @property
    def passed(self) -> bool:
        return self.status is CheckStatus.PASSED


def format_examples(examples: Sequence[tuple[Any, int]], more: bool = False) -> str:
    """Render "value (count)" pairs, with a trailing ellipsis when truncated."""
    text = ", ".join(f"{value} ({count})" for value, count in examples)
    return f"{text}, ..." if more else text


def format_percentage(value: float, precision: int) -> str:
    rounded = round(value, precision)
    return f"{rounded:g}" if precision > 0 else str(int(rounded))


def describe_mismatch(
    summary: MismatchSummary,
    table: str,
    column: str,
    ref_table: str,
    ref_column: str,
    precision: int = 1,
) -> str:
    """
    Explanation for a failed containment test, empty if nothing mismatches.

    Example: "1 entries (33.3%) of `t$b` not in `r$a`: 99 (1)"
    """
    if summary.mismatch_count == 0:
        return ""
    more = summary.distinct_mismatch_count > len(summary.top_mismatches)
    return (
        f"{summary.mismatch_count} entries ({format_percentage(summary.mismatch_percentage, precision)}%) "
        f"of `{table}${column}` not in `{ref_table}${ref_column}`: "
        f"{format_examples(summary.top_mismatches, more)}"
    )


def describe_duplicates(summary: DuplicateSummary) -> str:
    """Explanation for a failed key test, empty if the column is a valid key."""
    if summary.duplicate_count:
        more = summary.duplicate_count > len(summary.top_duplicates)
        return f"has duplicate values: {format_examples(summary.top_duplicates, more)}"
    if summary.null_count:
        return f"has {summary.null_count} missing values"
    return ""


class IntegrityValidator:
    """
    Runs PK and FK checks for a key graph through a tabular engine.

    Example:
        >>> validator = IntegrityValidator(graph, PolarsEngine())
        >>> result = validator.check_fk("flights", "tailnum", "planes")
        >>> result.status, result.detail
        (CheckStatus.FK_NOT_SUBSET, "722 entries (0.2%) of `flights$tailnum` not in ...")
    """

    def __init__(self, graph: KeyGraph, engine: TabularEngine, config: RelModelConfig | None = None):
        self.graph = graph
        self.engine = engine
        self.config = config or get_config()

    # ------------------------------------------------------------------
    # Primary keys
    # ------------------------------------------------------------------

    def check_pk(self, table: str) -> CheckResult:
        """Check the declared PK of a table for uniqueness and nulls."""
        pk = self.graph.get_pk(table)
        if pk is None:
            raise NoPkError(table)
        return self.check_key(table, pk)

    def check_key(self, table: str, column: str) -> CheckResult:
        """Check any column for PK suitability (unique, no nulls)."""
        self._require_column(table, column)
        try:
            summary = self.engine.count_duplicates_and_nulls(
                self.graph[table].data, column, self.config.max_examples
            )
        except EngineExecutionError as e:
            logger.warning("pk_check_failed", table=table, column=column, error=str(e))
            return CheckResult("pk", table, column, CheckStatus.CHECK_EXECUTION_FAILED, detail=str(e))

        if summary.duplicate_count:
            status = CheckStatus.PK_NOT_UNIQUE
        elif summary.null_count:
            status = CheckStatus.PK_HAS_NULLS
        else:
            status = CheckStatus.PASSED

        result = CheckResult("pk", table, column, status, detail=describe_duplicates(summary), summary=summary)
        logger.info(
            "pk_checked",
            table=table,
            column=column,
            status=status.value,
            duplicate_count=summary.duplicate_count,
            null_count=summary.null_count,
        )
        return result

    def is_unique_key(self, table: str, column: str) -> bool:
        return self.check_key(table, column).passed

    # ------------------------------------------------------------------
    # Foreign keys
    # ------------------------------------------------------------------

    def check_fk(self, table: str, column: str, ref_table: str) -> CheckResult:
        """
        Check that every non-null value of `table.column` is in the PK of `ref_table`.

        Raises:
            UnknownTableError, UnknownColumnError: If the inputs don't exist
            NoPkOnReferencedTableError: If `ref_table` has no PK
        """
        self._require_column(table, column)
        ref_column = self.graph.get_pk(ref_table)
        if ref_column is None:
            raise NoPkOnReferencedTableError(ref_table)
        return self._run_fk_check(table, column, ref_table, ref_column)

    def is_subset(self, table: str, column: str, ref_table: str) -> bool:
        return self.check_fk(table, column, ref_table).passed

    def _run_fk_check(self, table: str, column: str, ref_table: str, ref_column: str) -> CheckResult:
        try:
            summary = self.engine.count_distinct_mismatch(
                self.graph[table].data,
                column,
                self.graph[ref_table].data,
                ref_column,
                self.config.max_examples,
            )
        except EngineExecutionError as e:
            logger.warning("fk_check_failed", table=table, column=column, ref_table=ref_table, error=str(e))
            return CheckResult(
                "fk",
                table,
                column,
                CheckStatus.CHECK_EXECUTION_FAILED,
                detail=str(e),
                ref_table=ref_table,
                ref_column=ref_column,
            )

        status = CheckStatus.FK_NOT_SUBSET if summary.mismatch_count else CheckStatus.PASSED
        detail = describe_mismatch(summary, table, column, ref_table, ref_column, self.config.percentage_precision)
        logger.info(
            "fk_checked",
            table=table,
            column=column,
            ref_table=ref_table,
            status=status.value,
            mismatch_count=summary.mismatch_count,
            total_count=summary.total_count,
        )
        return CheckResult(
            "fk",
            table,
            column,
            status,
            detail=detail,
            ref_table=ref_table,
            ref_column=ref_column,
            summary=summary,
        )

    # ------------------------------------------------------------------
    # Whole model
    # ------------------------------------------------------------------

    def check_constraints(self) -> list[CheckResult]:
        """
        Check every declared PK, then every declared FK.

        Raises:
            NoPkOnReferencedTableError: If any FK points to a table without PK
                (raised before any engine call)
        """
        fks = self.graph.all_fks()
        for fk in fks:
            if fk.parent_column is None:
                raise NoPkOnReferencedTableError(fk.parent_table)

        results = [self.check_key(table, pk) for table, pk in self.graph.all_pks()]
        results.extend(self._run_fk_check(fk.child_table, fk.child_column, fk.parent_table, fk.parent_column) for fk in fks)

        failed = [r for r in results if not r.passed]
        logger.info("constraints_checked", n_checks=len(results), n_failed=len(failed))
        return results

    def _require_column(self, table: str, column: str) -> None:
        if column not in self.graph[table].columns:
            raise UnknownColumnError(table, [column])
