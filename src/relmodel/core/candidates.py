"""
Candidate Recommender - which columns could serve as PK or FK?

Every column of the table is scored through the engine with the same
anti-join / duplicate computations the integrity validator uses, but the
result is a ranked exploration table instead of pass/fail:

    column   candidate  why
    a        True
    b        False      1 entries (33.3%) of `t$b` not in `r$a`: 99 (1)
    c        False      Anti-join failed: SchemaError: ...

Ranking: candidates first, then the leading mismatch count in `why`
(explanations without one, like engine errors, go last), then column name.

Scoring reads the stored table data (or the handle passed in) and ignores
filters, the same as the integrity checks; apply_filters() first to score
the filtered rows.
"""

import re
from dataclasses import dataclass
from typing import Any

import structlog

from relmodel.core.config_loader import RelModelConfig, get_config
from relmodel.core.errors import EngineExecutionError, RefTableHasNoPkError
from relmodel.core.integrity import describe_duplicates, describe_mismatch
from relmodel.core.key_graph import KeyGraph
from relmodel.engine.base import TabularEngine

logger = structlog.get_logger(__name__)

_LEADING_INT = re.compile(r"^(\d+)")


@dataclass(frozen=True)
class Candidate:
    """One scored column: `why` is empty for a clean candidate."""

    column: str
    candidate: bool
    why: str = ""


def _rank_key(candidate: Candidate) -> tuple[bool, bool, int, str]:
    match = _LEADING_INT.match(candidate.why)
    count = int(match.group(1)) if match else 0
    return (not candidate.candidate, match is None, count, candidate.column)


def rank_candidates(candidates: list[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=_rank_key)


class CandidateRecommender:
    """
    Scores columns of a table as PK candidates or FK candidates to a reference table.

    Example:
        >>> recommender = CandidateRecommender(graph, PolarsEngine())
        >>> for c in recommender.enum_fk_candidates("flights", "airports"):
        ...     print(c.column, c.candidate, c.why)
    """

    def __init__(self, graph: KeyGraph, engine: TabularEngine, config: RelModelConfig | None = None):
        self.graph = graph
        self.engine = engine
        self.config = config or get_config()

    def enum_fk_candidates(self, table: str, ref_table: str, data: Any = None) -> list[Candidate]:
        """
        Score every column of `table` as a foreign key to the PK of `ref_table`.

        Args:
            table: Table whose columns are scored
            ref_table: Table with a primary key
            data: Handle to score instead of the stored table data (e.g. a
                focused, modified table); filters are not applied

        Raises:
            UnknownTableError: If a table is missing
            RefTableHasNoPkError: If `ref_table` has no PK (before any engine call)
        """
        table_def = self.graph[table]
        ref_def = self.graph[ref_table]
        if ref_def.pk is None:
            raise RefTableHasNoPkError(ref_table)

        data = table_def.data if data is None else data
        columns = self.engine.column_names(data) if data is not table_def.data else list(table_def.columns)

        candidates = []
        for column in columns:
            try:
                summary = self.engine.count_distinct_mismatch(
                    data, column, ref_def.data, ref_def.pk, self.config.max_examples
                )
                why = describe_mismatch(summary, table, column, ref_table, ref_def.pk, self.config.percentage_precision)
            except EngineExecutionError as e:
                why = str(e)
            candidates.append(Candidate(column=column, candidate=why == "", why=why))

        ranked = rank_candidates(candidates)
        logger.info(
            "fk_candidates_enumerated",
            table=table,
            ref_table=ref_table,
            n_columns=len(ranked),
            n_candidates=sum(c.candidate for c in ranked),
        )
        return ranked

    def enum_pk_candidates(self, table: str, data: Any = None) -> list[Candidate]:
        """
        Score every column of `table` as a primary key (unique and non-null).

        Ranking: candidates first, then column name. Filters are not applied.
        """
        table_def = self.graph[table]
        data = table_def.data if data is None else data
        columns = self.engine.column_names(data) if data is not table_def.data else list(table_def.columns)

        candidates = []
        for column in columns:
            try:
                why = describe_duplicates(
                    self.engine.count_duplicates_and_nulls(data, column, self.config.max_examples)
                )
            except EngineExecutionError as e:
                why = str(e)
            candidates.append(Candidate(column=column, candidate=why == "", why=why))

        ranked = sorted(candidates, key=lambda c: (not c.candidate, c.column))
        logger.info(
            "pk_candidates_enumerated",
            table=table,
            n_columns=len(ranked),
            n_candidates=sum(c.candidate for c in ranked),
        )
        return ranked
