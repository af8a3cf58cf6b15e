"""
Tests for KeyGraph.

Test name follows: test_unit_scenario_expectedBehavior
"""

import pytest

from relmodel.core.errors import (
    ColumnIsFkTargetError,
    DuplicateTableError,
    NoPkOnReferencedTableError,
    NotAnFkError,
    UnknownColumnError,
    UnknownTableError,
)
from relmodel.core.key_graph import ForeignKeyInfo, KeyGraph


def _graph(**tables):
    graph = KeyGraph()
    for name, columns in tables.items():
        graph = graph.add_table(name, None, columns)
    return graph


class TestTableEdits:
    """Test suite for adding, removing, renaming and selecting tables."""

    def test_add_table_duplicate_name_raises(self):
        # Arrange
        graph = _graph(t=["a"])

        # Act & Assert
        with pytest.raises(DuplicateTableError):
            graph.add_table("t", None, ["b"])

    def test_add_table_returns_new_graph_and_keeps_original(self):
        # Arrange
        graph = _graph(t=["a"])

        # Act
        extended = graph.add_table("u", None, ["b"])

        # Assert: Original snapshot unchanged
        assert graph.table_names == ["t"]
        assert extended.table_names == ["t", "u"]

    def test_getitem_unknown_table_raises(self):
        with pytest.raises(UnknownTableError, match="`nope`"):
            _graph(t=["a"])["nope"]

    def test_remove_table_drops_fks_in_both_directions(self, filter_graph):
        # Act: t3 is referenced by t2 and t4
        graph = filter_graph.remove_table("t3")

        # Assert
        assert "t3" not in graph
        assert [(fk.child_table, fk.child_column) for fk in graph.all_fks()] == [("t2", "d"), ("t5", "l"), ("t5", "m")]

    def test_remove_table_drops_fks_stored_on_parent(self, filter_graph):
        # Act: t2 references t1 and t3, entries stored on t1 and t3
        graph = filter_graph.remove_table("t2")

        # Assert
        assert not graph.is_referenced("t1")
        assert graph.referencing_tables("t3") == ["t4"]

    def test_rename_table_rewrites_referencing_fks(self, filter_graph):
        # Act
        graph = filter_graph.rename_table("t1", "first")

        # Assert
        assert graph.table_names[0] == "first"
        assert graph.get_fk("t2", "first") == ["d"]
        assert graph.get_pk("first") == "a"

    def test_rename_table_rewrites_fks_of_renamed_child(self, filter_graph):
        # Act
        graph = filter_graph.rename_table("t2", "second")

        # Assert
        assert graph.referencing_tables("t1") == ["second"]
        assert graph.get_fk("second", "t3") == ["e"]

    def test_rename_table_to_existing_name_raises(self, filter_graph):
        with pytest.raises(DuplicateTableError):
            filter_graph.rename_table("t1", "t2")

    def test_select_tables_drops_fks_of_unselected_children(self, filter_graph):
        # Act
        graph = filter_graph.select_tables(["t3", "t4"])

        # Assert
        assert graph.table_names == ["t3", "t4"]
        assert graph.all_fks() == [ForeignKeyInfo("t4", "j", "t3", "f")]

    def test_select_tables_with_rename_pairs(self, filter_graph):
        # Act
        graph = filter_graph.select_tables([("parent", "t1"), ("child", "t2")])

        # Assert
        assert graph.get_fk("child", "parent") == ["d"]

    def test_select_tables_same_table_twice_raises(self, filter_graph):
        with pytest.raises(DuplicateTableError):
            filter_graph.select_tables([("x", "t1"), ("y", "t1")])

    def test_select_tables_unknown_table_raises(self, filter_graph):
        with pytest.raises(UnknownTableError):
            filter_graph.select_tables(["t1", "t9"])


class TestPrimaryKeys:
    """Test suite for PK designation."""

    def test_set_pk_unknown_column_raises(self):
        with pytest.raises(UnknownColumnError):
            _graph(t=["a"]).set_pk("t", "b")

    def test_all_pks_in_table_order(self, filter_graph):
        assert filter_graph.all_pks()[:2] == [("t1", "a"), ("t2", "c")]

    def test_clear_pk_referenced_raises(self, filter_graph):
        with pytest.raises(ColumnIsFkTargetError) as exc_info:
            filter_graph.clear_pk("t3")

        assert exc_info.value.referencing == ("t2", "t4")

    def test_clear_pk_with_remove_referencing_fks_drops_fks(self, filter_graph):
        # Act
        graph = filter_graph.clear_pk("t3", remove_referencing_fks=True)

        # Assert
        assert not graph.has_pk("t3")
        assert not graph.is_referenced("t3")
        assert graph.has_fk("t2", "t1")

    def test_clear_pk_unreferenced_table(self, filter_graph):
        graph = filter_graph.clear_pk("t5")

        assert graph.get_pk("t5") is None


class TestForeignKeys:
    """Test suite for FK edges."""

    def test_all_fks_sorted_by_child(self, filter_graph):
        # Act
        fks = filter_graph.all_fks()

        # Assert
        assert [str(fk) for fk in fks] == [
            "t2.d -> t1.a",
            "t2.e -> t3.f",
            "t4.j -> t3.f",
            "t5.l -> t4.h",
            "t5.m -> t6.n",
        ]

    def test_add_fk_twice_is_noop(self, filter_graph):
        graph = filter_graph.add_fk("t1", "t2", "d")

        assert graph is filter_graph

    def test_add_fk_require_pk_without_pk_raises(self):
        # Arrange
        graph = _graph(parent=["id"], child=["parent_id"])

        # Act & Assert
        with pytest.raises(NoPkOnReferencedTableError):
            graph.add_fk("parent", "child", "parent_id", require_pk=True)

    def test_add_fk_without_pk_recorded_with_unknown_parent_column(self):
        # Act
        graph = _graph(parent=["id"], child=["parent_id"]).add_fk("parent", "child", "parent_id")

        # Assert
        assert graph.all_fks() == [ForeignKeyInfo("child", "parent_id", "parent", None)]

    def test_add_fk_unknown_column_raises(self, filter_graph):
        with pytest.raises(UnknownColumnError):
            filter_graph.add_fk("t1", "t2", "zzz")

    def test_remove_fk_all_columns(self):
        # Arrange: two FKs from flights to airports
        graph = (
            _graph(airports=["faa"], flights=["origin", "dest"])
            .set_pk("airports", "faa")
            .add_fk("airports", "flights", "origin")
            .add_fk("airports", "flights", "dest")
        )

        # Act
        removed = graph.remove_fk("airports", "flights")

        # Assert
        assert graph.get_fk("flights", "airports") == ["origin", "dest"]
        assert removed.get_fk("flights", "airports") == []

    def test_remove_fk_single_column(self):
        graph = (
            _graph(airports=["faa"], flights=["origin", "dest"])
            .set_pk("airports", "faa")
            .add_fk("airports", "flights", "origin")
            .add_fk("airports", "flights", "dest")
        )

        assert graph.remove_fk("airports", "flights", "dest").get_fk("flights", "airports") == ["origin"]

    def test_remove_fk_wrong_column_raises(self, filter_graph):
        with pytest.raises(NotAnFkError, match="`e`"):
            filter_graph.remove_fk("t1", "t2", "e")

    def test_remove_fk_unknown_column_without_fk_raises(self, filter_graph):
        # Arrange: t6 has no FK to t1
        assert filter_graph.get_fk("t6", "t1") == []

        # Act & Assert
        with pytest.raises(UnknownColumnError, match="`zzz`"):
            filter_graph.remove_fk("t1", "t6", "zzz")

    def test_remove_fk_known_column_without_fk_is_noop(self, filter_graph):
        assert filter_graph.remove_fk("t1", "t6", "n") is filter_graph

    def test_update_table_dropping_fk_column_raises(self, filter_graph):
        with pytest.raises(UnknownColumnError):
            filter_graph.update_table("t2", None, ["c", "e"])


class TestFilters:
    """Test suite for filter storage."""

    def test_add_filters_accumulate(self, filter_graph):
        # Act
        graph = filter_graph.add_filters("t1", ["a > 3"]).add_filters("t1", ["a < 8"], focused=True)

        # Assert
        infos = graph.filters()
        assert [(f.table, f.predicate, f.focused) for f in infos] == [("t1", "a > 3", False), ("t1", "a < 8", True)]
        assert not filter_graph.has_filters()

    def test_clear_filters_all_tables(self, filter_graph):
        graph = filter_graph.add_filters("t1", ["a > 3"]).add_filters("t6", ["n = 'tree'"])

        assert not graph.clear_filters().has_filters()
        assert len(graph.clear_filters("t1").filters()) == 1

    def test_filters_do_not_change_key_signature(self, filter_graph):
        graph = filter_graph.add_filters("t1", ["a > 3"])

        assert graph.key_signature() == filter_graph.key_signature()
