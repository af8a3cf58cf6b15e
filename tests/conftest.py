"""
Pytest configuration and fixtures for relmodel tests.
"""

import sys
from pathlib import Path

import polars as pl
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from relmodel.core.config_loader import RelModelConfig, clear_config_cache  # noqa: E402
from relmodel.core.key_graph import KeyGraph  # noqa: E402
from relmodel.core.model import DataModel  # noqa: E402
from relmodel.engine.duckdb_engine import DuckDBEngine  # noqa: E402
from relmodel.engine.polars_engine import PolarsEngine  # noqa: E402

# PKs and FKs of the six-table fixture model:
#   t2.d -> t1.a, t2.e -> t3.f, t4.j -> t3.f, t5.l -> t4.h, t5.m -> t6.n
FILTER_MODEL_PKS = [("t1", "a"), ("t2", "c"), ("t3", "f"), ("t4", "h"), ("t5", "k"), ("t6", "n")]
FILTER_MODEL_FKS = [("t2", "d", "t1"), ("t2", "e", "t3"), ("t4", "j", "t3"), ("t5", "l", "t4"), ("t5", "m", "t6")]


@pytest.fixture(scope="session")
def project_root():
    """Return project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point config loading at an empty location so a local config file or env never leaks into tests."""
    monkeypatch.setenv("RELMODEL_CONFIG", str(tmp_path / "missing.yaml"))
    for key in ("MAX_EXAMPLES", "PERCENTAGE_PRECISION", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(f"RELMODEL_{key}", raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def config():
    return RelModelConfig()


@pytest.fixture
def filter_tables():
    """Six small tables connected in a tree: t1 <- t2 -> t3 <- t4 <- t5 -> t6."""
    return {
        "t1": pl.DataFrame({"a": list(range(1, 11)), "b": list("ABCDEFGHIJ")}),
        "t2": pl.DataFrame(
            {
                "c": ["elephant", "lion", "seal", "worm", "dog", "cat"],
                "d": [2, 3, 4, 5, 6, 7],
                "e": ["D", "E", "F", "G", "E", "F"],
            }
        ),
        "t3": pl.DataFrame(
            {
                "f": list("BCDEFGHIJK"),
                "g": ["one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten"],
            }
        ),
        "t4": pl.DataFrame(
            {
                "h": list("abcde"),
                "i": ["three", "four", "five", "six", "seven"],
                "j": ["C", "D", "E", "F", "F"],
            }
        ),
        "t5": pl.DataFrame(
            {
                "k": [1, 2, 3, 4],
                "l": list("bcde"),
                "m": ["house", "tree", "streetlamp", "streetlamp"],
            }
        ),
        "t6": pl.DataFrame(
            {
                "n": ["house", "tree", "hill", "streetlamp", "garden"],
                "o": list("efghi"),
            }
        ),
    }


def add_filter_model_keys(model):
    for table, column in FILTER_MODEL_PKS:
        model = model.add_pk(table, column)
    for table, column, ref_table in FILTER_MODEL_FKS:
        model = model.add_fk(table, column, ref_table)
    return model


@pytest.fixture
def polars_engine():
    return PolarsEngine()


@pytest.fixture
def make_model(polars_engine, config):
    """Factory: DataModel over polars frames."""

    def _make(tables, engine=None):
        return DataModel.from_tables(tables, engine or polars_engine, config)

    return _make


@pytest.fixture
def dm_for_filter(filter_tables, make_model):
    """The six-table model with all keys declared."""
    return add_filter_model_keys(make_model(filter_tables))


@pytest.fixture
def filter_graph(filter_tables):
    """Key graph of the six-table model (data handles are the frames)."""
    graph = KeyGraph()
    for name, df in filter_tables.items():
        graph = graph.add_table(name, df, df.columns)
    for table, column in FILTER_MODEL_PKS:
        graph = graph.set_pk(table, column)
    for table, column, ref_table in FILTER_MODEL_FKS:
        graph = graph.add_fk(ref_table, table, column)
    return graph


@pytest.fixture
def cycle_tables():
    """Two tables referencing each other."""
    return {
        "a": pl.DataFrame({"id": [1, 2, 3], "b_id": [10, 20, 30]}),
        "b": pl.DataFrame({"id": [10, 20, 30], "a_id": [1, 2, 3]}),
    }


@pytest.fixture
def duckdb_engine():
    engine = DuckDBEngine()
    yield engine
    engine.close()


@pytest.fixture
def duckdb_filter_model(duckdb_engine, filter_tables, config):
    """The six-table model backed by DuckDB tables."""
    for name, df in filter_tables.items():
        duckdb_engine.create_table(name, df)
    return add_filter_model_keys(DataModel.from_engine(duckdb_engine, config))
