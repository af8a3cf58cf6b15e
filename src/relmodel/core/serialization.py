"""
Serialization view - a model as an ordered sequence of primitive edits.

The sequence is: tables -> (optional) column selections -> primary keys ->
foreign keys. Replaying it against the same table data rebuilds a model with
the same tables, PKs and FKs. PKs come before FKs so that every referenced
table already has its key when the FK is declared.

Filters and data are not part of the sequence; the caller supplies the data
when replaying.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

import structlog

from relmodel.core.model import DataModel
from relmodel.engine.base import TabularEngine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AddTables:
    tables: tuple[str, ...]

    def render(self) -> str:
        return f"add_tables({', '.join(self.tables)})"


@dataclass(frozen=True)
class SelectColumns:
    table: str
    columns: tuple[str, ...]

    def render(self) -> str:
        return f"select_columns({self.table}, {', '.join(self.columns)})"


@dataclass(frozen=True)
class AddPk:
    table: str
    column: str

    def render(self) -> str:
        return f"add_pk({self.table}, {self.column})"


@dataclass(frozen=True)
class AddFk:
    table: str
    column: str
    ref_table: str

    def render(self) -> str:
        return f"add_fk({self.table}, {self.column}, {self.ref_table})"


Command = Union[AddTables, SelectColumns, AddPk, AddFk]


def to_commands(model: DataModel, select: bool = False) -> list[Command]:
    """
    Describe a model as the edits that build it.

    Args:
        model: Model in the normal state
        select: Also emit one SelectColumns per table with its current columns

    Raises:
        ModelIsFocusedError: If the model is focused
    """
    names = model.table_names
    commands: list[Command] = [AddTables(tuple(names))]
    if select:
        commands.extend(SelectColumns(t.name, t.columns) for t in model.graph)
    commands.extend(AddPk(table, column) for table, column in model.all_pks())
    commands.extend(AddFk(fk.child_table, fk.child_column, fk.parent_table) for fk in model.all_fks())
    return commands


def format_commands(commands: Sequence[Command], tab_width: int = 2) -> str:
    """
    Render commands as a readable chain, one edit per line.

    Example:
        add_tables(t1, t2, t3) |>
          add_pk(t1, a) |>
          add_fk(t2, d, t1)
    """
    if not commands:
        return "add_tables()"
    indent = " " * tab_width
    lines = [commands[0].render()] + [f"{indent}{command.render()}" for command in commands[1:]]
    return " |>\n".join(lines)


def replay(
    commands: Sequence[Command],
    tables: Mapping[str, Any],
    engine: TabularEngine,
    model: DataModel | None = None,
) -> DataModel:
    """
    Apply commands to a model (a fresh, empty one by default).

    Args:
        commands: Output of to_commands()
        tables: Data handle per table name mentioned in AddTables
        engine: Engine that understands the handles

    Raises:
        KeyError: If a table in AddTables has no data in `tables`
        DataModelError: Whatever the individual edits raise
    """
    model = model if model is not None else DataModel(engine)
    for command in commands:
        if isinstance(command, AddTables):
            missing = [name for name in command.tables if name not in tables]
            if missing:
                raise KeyError(f"No data supplied for table(s): {', '.join(missing)}")
            for name in command.tables:
                model = model.add_table(name, tables[name])
        elif isinstance(command, SelectColumns):
            model = model.select_columns(command.table, list(command.columns))
        elif isinstance(command, AddPk):
            model = model.add_pk(command.table, command.column)
        elif isinstance(command, AddFk):
            model = model.add_fk(command.table, command.column, command.ref_table)
        else:
            raise TypeError(f"Unknown command: {command!r}")
    logger.info("commands_replayed", n_commands=len(commands), n_tables=len(model.graph))
    return model
