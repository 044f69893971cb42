"""
Table schema snapshots produced by catalog introspection.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str = ""


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: tuple[ColumnInfo, ...] = field(default_factory=tuple)

    def column(self, name: str) -> ColumnInfo | None:
        for c in self.columns:
            if c.name == name:
                return c
        return None

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "columns": [{"name": c.name, "type": c.type} for c in self.columns],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "TableSchema":
        cols = tuple(
            ColumnInfo(name=str(c["name"]), type=str(c.get("type") or ""))
            for c in raw.get("columns") or []
        )
        return cls(name=str(raw["name"]), columns=cols)


def column_type(schemas: Iterable[TableSchema] | None, table: str, column: str) -> str:
    """Return the SQL type label of *table.column*, or "" when unknown."""
    for schema in schemas or ():
        if schema.name != table:
            continue
        col = schema.column(column)
        return col.type if col else ""
    return ""
