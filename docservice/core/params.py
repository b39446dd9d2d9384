"""
Positional parameter accumulation for hand-built SQL.

SQL text is assembled from fragments, and every value goes through
`ParameterBuilder.append` (or `add_sql_parameter`) which returns the
placeholder to splice into the text. Values never end up inside the SQL.

asyncpg numbers placeholders from 1: the value stored at index `i` of the
list is bound as `$<i+1>`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class OutBind:
    """
    Marker value: "give me `expression` back after the statement runs".

    Rendered into a RETURNING list instead of taking a positional slot.
    """

    expression: str


def add_sql_parameter(value: Any, values: list[Any]) -> str:
    values.append(value)
    return f"${len(values)}"


def concat_params(*parts: str) -> str:
    """
    SQL string concatenation of already-rendered fragments.

    `concat()` skips NULLs, unlike `||`, so an unset column does not wipe the
    appended text.
    """
    return f"concat({', '.join(parts)})"


@dataclass
class ParameterBuilder:
    values: list[Any] = field(default_factory=list)
    outputs: list[tuple[str, str]] = field(default_factory=list)

    def append(self, value: Any) -> str:
        if isinstance(value, OutBind):
            alias = f"out_{len(self.outputs)}"
            self.outputs.append((alias, value.expression))
            return f"{value.expression} AS {alias}"
        return add_sql_parameter(value, self.values)

    def __len__(self) -> int:
        return len(self.values)

    def out_values(self, records: list[Any]) -> list[Any]:
        """
        Output-bound values from the first returned record, in the order the
        OutBind markers were appended.
        """
        if not self.outputs or not records:
            return []
        first = records[0]
        return [first[alias] for alias, _ in self.outputs]
