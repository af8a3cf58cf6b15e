"""Tabular engines that own and compute on the rows of a data model."""

from relmodel.engine.base import DuplicateSummary, MismatchSummary, TabularEngine
from relmodel.engine.duckdb_engine import DuckDBEngine
from relmodel.engine.polars_engine import PolarsEngine

__all__ = ["DuckDBEngine", "DuplicateSummary", "MismatchSummary", "PolarsEngine", "TabularEngine"]
