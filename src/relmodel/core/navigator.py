"""
Graph Navigator - direction resolution, filter propagation and join planning.

Nothing in here touches rows. The navigator reads the key graph and produces
plans (RowSet trees, JoinPlan step lists) that an engine executes.

Filter propagation:
    Filters attached to a table restrict every table reachable over FK edges
    to rows that still join to the filtered rows. Traversal is breadth-first
    from each filtered table with a visited-edge set, so cyclic and
    self-referencing graphs terminate. From the filtered table every incident
    edge is followed; after the first hop a path keeps its direction:
    descending (parent -> referencing child) keeps descending, ascending
    (child -> referenced parent) keeps ascending. A table reached along
    several paths accumulates all restrictions (intersection).

    Restrictions are snapshots: the partner of a semi-join is the partner's
    row set at the time the edge was traversed, so the result is a finite
    tree even when the FK graph has cycles.
"""

from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Literal

import structlog

from relmodel.core.errors import (
    AmbiguousRelationshipError,
    NoPkOnReferencedTableError,
    NoRelationshipError,
    NotAnFkError,
    UnknownTableError,
)
from relmodel.core.key_graph import ForeignKeyInfo, KeyGraph

logger = structlog.get_logger(__name__)

Direction = Literal["down", "up"]


@dataclass(frozen=True)
class Relationship:
    """Resolved FK edge: child.child_column references parent.parent_column."""

    child_table: str
    child_column: str
    parent_table: str
    parent_column: str


@dataclass(frozen=True, eq=False)
class SemiJoin:
    """Keep rows whose `column` value appears in `partner.partner_column`."""

    column: str
    partner: "RowSet"
    partner_column: str


@dataclass(frozen=True, eq=False)
class RowSet:
    """
    Effective rows of a table: own filters intersected with semi-joins.

    Attributes:
        table: Table name in the key graph
        filters: Opaque predicates, all must hold
        semi_joins: Restrictions from other tables, all must hold
    """

    table: str
    filters: tuple[Any, ...] = ()
    semi_joins: tuple[SemiJoin, ...] = ()

    @property
    def is_restricted(self) -> bool:
        return bool(self.filters or self.semi_joins)

    def with_semi_join(self, semi_join: SemiJoin) -> "RowSet":
        return replace(self, semi_joins=self.semi_joins + (semi_join,))

    def depth(self) -> int:
        """Longest chain of semi-joins below this row set."""
        return max((1 + sj.partner.depth() for sj in self.semi_joins), default=0)

    def __str__(self) -> str:
        parts = [self.table]
        if self.filters:
            parts.append(f"[{len(self.filters)} filter(s)]")
        for sj in self.semi_joins:
            parts.append(f"semi({sj.column} in {sj.partner}.{sj.partner_column})")
        return " ".join(parts)


@dataclass(frozen=True)
class JoinStep:
    """Join `right_table` on left_table.left_column = right_table.right_column."""

    left_table: str
    left_column: str
    right_table: str
    right_column: str


@dataclass(frozen=True)
class JoinPlan:
    start: str
    steps: tuple[JoinStep, ...] = ()

    @property
    def tables(self) -> list[str]:
        return [self.start] + [step.right_table for step in self.steps]


# ---------------------------------------------------------------------------
# Direction resolution
# ---------------------------------------------------------------------------


def resolve_direction(
    graph: KeyGraph,
    table_1: str,
    table_2: str,
    referencing: str | None = None,
    column: str | None = None,
) -> Relationship:
    """
    Determine which of two tables is the child (referencing side).

    Args:
        graph: Key graph
        table_1, table_2: The two tables, in any order
        referencing: Table to treat as the referencing side; required when
            FKs exist in both directions
        column: FK column to use when the child has several FKs to the parent

    Returns:
        Relationship with the resolved child and parent

    Raises:
        UnknownTableError: If a table is missing
        NoRelationshipError: If no FK connects the tables (in the requested direction)
        AmbiguousRelationshipError: If the direction or the column is not unique
    """
    one_to_two = graph.get_fk(table_1, table_2)
    two_to_one = graph.get_fk(table_2, table_1)

    if referencing is not None and referencing not in (table_1, table_2):
        raise UnknownTableError([referencing])

    if not one_to_two and not two_to_one:
        raise NoRelationshipError(table_1, table_2)

    if one_to_two and two_to_one and table_1 != table_2:
        if referencing is None:
            raise AmbiguousRelationshipError(
                table_1, table_2, "foreign keys exist in both directions; pass referencing= to choose"
            )
        child = referencing
    elif one_to_two:
        child = table_1
    else:
        child = table_2

    if referencing is not None and referencing != child:
        raise NoRelationshipError(referencing, table_2 if referencing == table_1 else table_1)

    parent = table_2 if child == table_1 else table_1
    if table_1 == table_2:
        parent = child
    columns = graph.get_fk(child, parent)

    if column is not None:
        if column not in columns:
            raise NotAnFkError(child, [column], parent, columns)
        chosen = column
    elif len(columns) > 1:
        raise AmbiguousRelationshipError(
            table_1, table_2, f"`{child}` has several foreign keys to `{parent}` ({', '.join(columns)}); pass column="
        )
    else:
        chosen = columns[0]

    parent_pk = graph.get_pk(parent)
    if parent_pk is None:
        raise NoPkOnReferencedTableError(parent)

    return Relationship(child, chosen, parent, parent_pk)


# ---------------------------------------------------------------------------
# Filter propagation
# ---------------------------------------------------------------------------


def propagate_filters(graph: KeyGraph) -> dict[str, RowSet]:
    """
    Compute the effective row set of every filtered or restricted table.

    Returns:
        Table name -> RowSet, in graph table order. Tables that are neither
        filtered nor reachable from a filtered table are absent.

    Raises:
        NoPkOnReferencedTableError: If propagation must cross an FK whose
            referenced table has no PK
    """
    edges = graph.all_fks()
    restrictions: dict[str, list[SemiJoin]] = {}

    for table in graph:
        if not table.filters:
            continue
        for target, semi_join in _propagate_from(graph, table.name, edges):
            restrictions.setdefault(target, []).append(semi_join)

    result = {}
    for table in graph:
        semi_joins = restrictions.get(table.name, [])
        if table.filters or semi_joins:
            result[table.name] = RowSet(
                table=table.name,
                filters=tuple(entry.predicate for entry in table.filters),
                semi_joins=tuple(semi_joins),
            )

    logger.debug("filters_propagated", restricted_tables=list(result))
    return result


def _own_row_set(graph: KeyGraph, table: str) -> RowSet:
    return RowSet(table=table, filters=tuple(entry.predicate for entry in graph[table].filters))


def _propagate_from(graph: KeyGraph, origin: str, edges: list[ForeignKeyInfo]) -> list[tuple[str, SemiJoin]]:
    """One BFS pass from a filtered table; returns (table, restriction) pairs."""
    snapshots = {origin: _own_row_set(graph, origin)}
    visited: set[ForeignKeyInfo] = set()
    queue: deque[tuple[str, Direction | None]] = deque([(origin, None)])
    restrictions = []

    while queue:
        current, direction = queue.popleft()
        for edge in edges:
            if edge in visited:
                continue
            if edge.child_table == edge.parent_table:
                # self-reference restricts nothing new
                visited.add(edge)
                continue

            if edge.parent_table == current and direction in (None, "down"):
                target, next_direction = edge.child_table, "down"
                target_column, partner_column = edge.child_column, edge.parent_column
            elif edge.child_table == current and direction in (None, "up"):
                target, next_direction = edge.parent_table, "up"
                target_column, partner_column = edge.parent_column, edge.child_column
            else:
                continue

            if edge.parent_column is None:
                raise NoPkOnReferencedTableError(edge.parent_table)

            visited.add(edge)
            semi_join = SemiJoin(column=target_column, partner=snapshots[current], partner_column=partner_column)
            snapshots[target] = snapshots.get(target, _own_row_set(graph, target)).with_semi_join(semi_join)
            restrictions.append((target, semi_join))
            queue.append((target, next_direction))

            logger.debug(
                "filter_edge_traversed",
                origin=origin,
                edge=str(edge),
                target=target,
                direction=next_direction,
            )

    return restrictions


# ---------------------------------------------------------------------------
# Join planning
# ---------------------------------------------------------------------------


def join_plan(graph: KeyGraph, start: str, tables: list[str] | None = None) -> JoinPlan:
    """
    Plan a flattening join starting at `start`.

    Follows FKs from child to parent (breadth-first, edges sorted by child
    table and column), so every join is many-to-one and the start table's
    rows are preserved. Tables already joined are not joined again, which
    also cuts cycles.

    Args:
        graph: Key graph
        start: Table to start from (the "fact" side)
        tables: Restrict the plan to the steps needed to reach these tables;
            None joins everything reachable

    Raises:
        UnknownTableError: If `start` or a requested table is missing
        NoRelationshipError: If a requested table is not reachable from `start`
    """
    missing = [t for t in [start, *(tables or [])] if t not in graph]
    if missing:
        raise UnknownTableError(missing)

    edges = graph.all_fks()
    reached = {start}
    via: dict[str, JoinStep] = {}
    order: list[JoinStep] = []
    queue = deque([start])

    while queue:
        current = queue.popleft()
        for edge in edges:
            if edge.child_table != current or edge.parent_table in reached:
                continue
            if edge.parent_column is None:
                raise NoPkOnReferencedTableError(edge.parent_table)
            step = JoinStep(current, edge.child_column, edge.parent_table, edge.parent_column)
            reached.add(edge.parent_table)
            via[edge.parent_table] = step
            order.append(step)
            queue.append(edge.parent_table)

    if tables is None:
        return JoinPlan(start, tuple(order))

    needed: set[str] = set()
    for table in tables:
        if table == start:
            continue
        if table not in via:
            raise NoRelationshipError(start, table)
        node = table
        while node != start:
            needed.add(node)
            node = via[node].left_table

    plan = JoinPlan(start, tuple(step for step in order if step.right_table in needed))
    logger.debug("join_planned", start=start, tables=plan.tables)
    return plan
