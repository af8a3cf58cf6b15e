"""
Tests for the command-sequence view of a model.

Test name follows: test_unit_scenario_expectedBehavior
"""

import polars as pl
import pytest

from relmodel.core.errors import ModelIsFocusedError
from relmodel.core.serialization import AddFk, AddPk, AddTables, SelectColumns, format_commands, replay, to_commands


class TestToCommands:
    def test_to_commands_orders_tables_pks_fks(self, dm_for_filter):
        # Act
        commands = to_commands(dm_for_filter)

        # Assert
        assert commands[0] == AddTables(("t1", "t2", "t3", "t4", "t5", "t6"))
        assert all(isinstance(c, AddPk) for c in commands[1:7])
        assert commands[7:] == [
            AddFk("t2", "d", "t1"),
            AddFk("t2", "e", "t3"),
            AddFk("t4", "j", "t3"),
            AddFk("t5", "l", "t4"),
            AddFk("t5", "m", "t6"),
        ]

    def test_to_commands_with_select_lists_columns(self, dm_for_filter):
        commands = to_commands(dm_for_filter, select=True)

        assert commands[1] == SelectColumns("t1", ("a", "b"))
        assert sum(isinstance(c, SelectColumns) for c in commands) == 6

    def test_to_commands_refused_while_focused(self, dm_for_filter):
        with pytest.raises(ModelIsFocusedError):
            to_commands(dm_for_filter.focus("t1"))


class TestFormatCommands:
    def test_format_commands_chain(self):
        # Arrange
        commands = [AddTables(("t1", "t2")), AddPk("t1", "a"), AddFk("t2", "d", "t1")]

        # Act
        text = format_commands(commands)

        # Assert
        assert text == "add_tables(t1, t2) |>\n  add_pk(t1, a) |>\n  add_fk(t2, d, t1)"

    def test_format_commands_empty(self):
        assert format_commands([]) == "add_tables()"


class TestReplay:
    def test_replay_round_trip_preserves_keys(self, dm_for_filter, filter_tables, polars_engine):
        # Act
        rebuilt = replay(to_commands(dm_for_filter), filter_tables, polars_engine)

        # Assert
        assert rebuilt.graph.key_signature() == dm_for_filter.graph.key_signature()

    def test_replay_with_select_applies_projection(self, dm_for_filter, filter_tables, polars_engine):
        # Arrange
        model = dm_for_filter.select_columns("t1", ["a"])

        # Act
        rebuilt = replay(to_commands(model, select=True), filter_tables, polars_engine)

        # Assert
        assert rebuilt.get_table("t1").columns == ["a"]

    def test_replay_missing_data_raises(self, polars_engine):
        with pytest.raises(KeyError, match="t2"):
            replay([AddTables(("t1", "t2"))], {"t1": pl.DataFrame({"a": [1]})}, polars_engine)

    def test_replay_unknown_command_raises(self, polars_engine):
        with pytest.raises(TypeError):
            replay(["add_tables(t1)"], {}, polars_engine)
