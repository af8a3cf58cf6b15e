"""
Tests for PolarsEngine.

Test name follows: test_unit_scenario_expectedBehavior
"""

import polars as pl
import pytest

from relmodel.core.errors import EngineExecutionError
from relmodel.core.key_graph import KeyGraph
from relmodel.core.navigator import JoinPlan, JoinStep, RowSet, SemiJoin


class TestCounts:
    def test_count_distinct_mismatch_orders_by_frequency(self, polars_engine):
        # Arrange
        data = pl.DataFrame({"x": [5, 5, 9, 7, 7, 7, 1, None]})
        ref = pl.DataFrame({"id": [1, 2]})

        # Act
        summary = polars_engine.count_distinct_mismatch(data, "x", ref, "id", max_examples=2)

        # Assert
        assert summary.mismatch_count == 6
        assert summary.total_count == 7
        assert summary.distinct_mismatch_count == 3
        assert summary.top_mismatches == ((7, 3), (5, 2))

    def test_count_distinct_mismatch_accepts_lazy_frames(self, polars_engine):
        summary = polars_engine.count_distinct_mismatch(
            pl.LazyFrame({"x": [1, 3]}), "x", pl.LazyFrame({"id": [1]}), "id", max_examples=6
        )

        assert summary.top_mismatches == ((3, 1),)

    def test_count_distinct_mismatch_null_typed_column(self, polars_engine):
        # Arrange
        data = pl.DataFrame({"x": [None, None]})
        ref = pl.DataFrame({"id": pl.Series([1, 2], dtype=pl.Int32)})

        # Act
        summary = polars_engine.count_distinct_mismatch(data, "x", ref, "id", max_examples=6)

        # Assert
        assert (summary.mismatch_count, summary.total_count, summary.distinct_mismatch_count) == (0, 0, 0)

    def test_count_duplicates_and_nulls(self, polars_engine):
        summary = polars_engine.count_duplicates_and_nulls(pl.DataFrame({"x": ["a", "a", "b", None]}), "x", 6)

        assert (summary.duplicate_count, summary.null_count, summary.top_duplicates) == (1, 1, (("a", 2),))

    def test_unknown_column_wrapped_as_engine_error(self, polars_engine):
        with pytest.raises(EngineExecutionError, match="Duplicate count failed"):
            polars_engine.count_duplicates_and_nulls(pl.DataFrame({"x": [1]}), "nope", 6)

    def test_non_frame_handle_rejected(self, polars_engine):
        with pytest.raises(TypeError):
            polars_engine.count_rows([1, 2, 3])


class TestMaterialize:
    def test_materialize_semi_join_keeps_handle_kind(self, polars_engine):
        # Arrange
        parent = pl.DataFrame({"id": [1, 2, 3]})
        child = pl.LazyFrame({"pid": [1, 1, 2, 3, None]})
        graph = KeyGraph().add_table("p", parent, ["id"]).add_table("c", child, ["pid"])
        row_set = RowSet("c", semi_joins=(SemiJoin("pid", RowSet("p", ("id >= 2",)), "id"),))

        # Act
        result = polars_engine.materialize(row_set, graph)

        # Assert
        assert isinstance(result, pl.LazyFrame)
        assert result.collect()["pid"].to_list() == [2, 3]

    def test_select_columns_renames(self, polars_engine):
        result = polars_engine.select_columns(pl.DataFrame({"a": [1], "b": [2]}), [("bee", "b")])

        assert result.columns == ["bee"]


class TestJoin:
    def test_full_join_coalesces_keys(self, polars_engine):
        # Arrange
        child = pl.DataFrame({"pid": [1, 4], "v": ["x", "y"]})
        parent = pl.DataFrame({"id": [1, 2], "v": ["p1", "p2"]})
        graph = KeyGraph().add_table("c", child, ["pid", "v"]).add_table("p", parent, ["id", "v"])
        plan = JoinPlan("c", (JoinStep("c", "pid", "p", "id"),))

        # Act
        result = polars_engine.join(plan, graph, how="full").sort("pid")

        # Assert
        assert result.columns == ["pid", "v", "p.v"]
        assert result["pid"].to_list() == [1, 2, 4]
        assert result["p.v"].to_list() == ["p1", "p2", None]
