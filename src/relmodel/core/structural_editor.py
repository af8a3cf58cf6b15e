"""
Structural Editor - compound column edits on a KeyGraph.

Column selection/renaming touches keys in three ways:
- dropping the PK column silently drops the PK designation
- dropping an FK-referencing column silently drops that FK entry
- dropping a PK that other tables reference is refused (ColumnIsFkTargetError);
  remove the dependent FKs first
- renaming or dropping any column of a filtered table is refused
  (TableHasFiltersError); reordering and adding columns are allowed

Every function here is pure and is built from KeyGraph primitives, so the
key-graph invariants hold after each step.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from relmodel.core.errors import DuplicateColumnError, TableHasFiltersError, UnknownColumnError
from relmodel.core.key_graph import KeyGraph, find_duplicates

logger = structlog.get_logger(__name__)

# Column selection item: either a name, or a (new_name, old_name) pair
ColumnSelection = Sequence[str | tuple[str, str]]

_KEEP = object()


def normalize_column_selection(graph: KeyGraph, table: str, selection: ColumnSelection) -> list[tuple[str, str]]:
    """
    Resolve a column selection into (new_name, old_name) pairs.

    Raises:
        UnknownTableError: If `table` is not in the graph
        UnknownColumnError: If a selected column does not exist
        DuplicateColumnError: If a column is selected or produced twice
    """
    columns = graph[table].columns
    pairs = [(item, item) if isinstance(item, str) else (item[0], item[1]) for item in selection]

    missing = [old for _, old in pairs if old not in columns]
    if missing:
        raise UnknownColumnError(table, missing)

    duplicated = find_duplicates([new for new, _ in pairs])
    if duplicated:
        raise DuplicateColumnError(table, duplicated)
    return pairs


def select_columns(graph: KeyGraph, table: str, selection: ColumnSelection, data: Any = _KEEP) -> KeyGraph:
    """
    Keep and optionally rename columns of one table.

    Args:
        graph: Key graph to edit
        table: Table whose columns are selected
        selection: Ordered column names or (new_name, old_name) pairs
        data: New data handle reflecting the selection (engine-projected);
            keeps the current handle when omitted

    Returns:
        New KeyGraph with the table's columns and keys rewritten
    """
    pairs = normalize_column_selection(graph, table, selection)
    recode = {old: new for new, old in pairs}
    return _rewrite_table(graph, table, tuple(new for new, _ in pairs), recode, data)


def rename_columns(graph: KeyGraph, table: str, renames: Mapping[str, str], data: Any = _KEEP) -> KeyGraph:
    """Rename columns (mapping new_name -> old_name), keeping all others in place."""
    columns = graph[table].columns
    missing = [old for old in renames.values() if old not in columns]
    if missing:
        raise UnknownColumnError(table, missing)
    new_for_old = {old: new for new, old in renames.items()}
    selection = [(new_for_old.get(c, c), c) for c in columns]
    return select_columns(graph, table, selection, data)


def remove_columns(graph: KeyGraph, table: str, columns: Iterable[str], data: Any = _KEEP) -> KeyGraph:
    """Drop columns from a table, applying the key policy above."""
    columns = list(columns)
    existing = graph[table].columns
    missing = [c for c in columns if c not in existing]
    if missing:
        raise UnknownColumnError(table, missing)
    return select_columns(graph, table, [c for c in existing if c not in columns], data)


def replace_table_data(graph: KeyGraph, table: str, data: Any, columns: Iterable[str]) -> KeyGraph:
    """
    Swap in a new data handle whose schema may have gained or lost columns.

    Columns that survive keep their keys; keys on vanished columns follow the
    drop policy. Used when a focused table is folded back into the model.
    """
    new_columns = tuple(columns)
    recode = {c: c for c in graph[table].columns if c in new_columns}
    return _rewrite_table(graph, table, new_columns, recode, data)


def _rewrite_table(
    graph: KeyGraph,
    table: str,
    new_columns: tuple[str, ...],
    recode: dict[str, str],
    data: Any,
) -> KeyGraph:
    """
    Apply a column recode (old -> new, missing old names are dropped).

    Order of primitive edits:
    1. drop/detach outgoing FKs on dropped or renamed columns
    2. drop the PK if its column goes away (refused if referenced), or detach
       it if renamed, remembering the FKs pointing at it
    3. swap columns and data
    4. re-attach renamed PK, incoming FKs and renamed outgoing FKs
    """
    table_def = graph[table]
    renamed = {old: new for old, new in recode.items() if old != new}

    # filter predicates are opaque and may name any column
    touched = [c for c in table_def.columns if c not in recode or c in renamed]
    if table_def.filters and touched:
        raise TableHasFiltersError(table, touched)

    # 1. outgoing FKs (stored on the referenced tables)
    reattach_outgoing = []
    for fk in graph.all_fks():
        if fk.child_table != table:
            continue
        if fk.child_column not in recode:
            logger.info("fk_dropped_with_column", table=table, column=fk.child_column, ref_table=fk.parent_table)
            graph = graph.remove_fk(fk.parent_table, table, fk.child_column)
        elif fk.child_column in renamed:
            graph = graph.remove_fk(fk.parent_table, table, fk.child_column)
            reattach_outgoing.append((fk.parent_table, renamed[fk.child_column]))

    # 2. primary key
    new_pk = None
    incoming = ()
    pk = table_def.pk
    if pk is not None and pk not in recode:
        logger.info("pk_dropped_with_column", table=table, column=pk)
        graph = graph.clear_pk(table)
    elif pk is not None and pk in renamed:
        new_pk = renamed[pk]
        incoming = graph[table].fks
        graph = graph.clear_pk(table, remove_referencing_fks=True)

    # 3. schema swap
    graph = graph.update_table(table, table_def.data if data is _KEEP else data, new_columns)

    # 4. re-attach
    if new_pk is not None:
        graph = graph.set_pk(table, new_pk)
        for fk in incoming:
            graph = graph.add_fk(table, fk.table, fk.column)
    for parent, column in reattach_outgoing:
        graph = graph.add_fk(parent, table, column)

    logger.debug(
        "columns_rewritten",
        table=table,
        n_columns=len(new_columns),
        dropped=[c for c in table_def.columns if c not in recode],
        renamed=renamed,
    )
    return graph
