"""
Relationship graph -- table-to-table join edges between imported datasets.

Edges are undirected: (A.x, B.y) is the same relationship as (B.y, A.x), and
every membership test goes through ``edges_equal``.  Only *confirmed* edges
are used to build join paths; *suggested* edges come from name-matching
heuristics and wait for the user to accept them.

Joins are star-shaped: every table a widget touches must be directly joined
to the widget's base table.  Multi-hop paths are never attempted.
"""
from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable

from src.core.config import get_settings
from src.core.errors import MissingRelationshipError
from src.dashboard.coercion import quote_ident
from src.modeling.schema import TableSchema
from src.core.logging import get_logger

logger = get_logger(__name__)

SUGGESTED = "suggested"
CONFIRMED = "confirmed"
CARDINALITIES = ("one-to-one", "one-to-many", "many-to-many")


# ── Domain objects ──────────────────────────────────────


@dataclass(frozen=True)
class Relationship:
    table1: str
    col1: str
    table2: str
    col2: str
    type: str = CONFIRMED
    cardinality: str = "one-to-many"

    @property
    def is_confirmed(self) -> bool:
        return self.type == CONFIRMED

    def connects(self, left: str, right: str) -> bool:
        return (self.table1 == left and self.table2 == right) or (
            self.table1 == right and self.table2 == left
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "table1": self.table1,
            "col1": self.col1,
            "table2": self.table2,
            "col2": self.col2,
            "type": self.type,
            "cardinality": self.cardinality,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Relationship":
        return cls(
            table1=str(raw["table1"]),
            col1=str(raw["col1"]),
            table2=str(raw["table2"]),
            col2=str(raw["col2"]),
            type=raw.get("type") or CONFIRMED,
            cardinality=raw.get("cardinality") or "one-to-many",
        )


def edges_equal(a: Relationship, b: Relationship) -> bool:
    """True when *a* and *b* join the same two columns, in either orientation."""
    if a.table1 == b.table1 and a.col1 == b.col1 and a.table2 == b.table2 and a.col2 == b.col2:
        return True
    return a.table1 == b.table2 and a.col1 == b.col2 and a.table2 == b.table1 and a.col2 == b.col1


def _contains_edge(edges: Iterable[Relationship], edge: Relationship) -> bool:
    return any(edges_equal(existing, edge) for existing in edges)


# ── Field references ────────────────────────────────────


@dataclass(frozen=True)
class FieldRef:
    table: str
    column: str


def split_field(field_name: str | None, base_table: str) -> FieldRef:
    """Split ``"table.column"`` (or bare ``"column"``) into a FieldRef.

    A bare column resolves to *base_table*.
    """
    raw = (field_name or "").strip()
    if not raw:
        return FieldRef(table=base_table, column="")
    idx = raw.find(".")
    if idx == -1:
        return FieldRef(table=base_table, column=raw)
    return FieldRef(table=raw[:idx], column=raw[idx + 1:])


# ── Join paths ──────────────────────────────────────────


def related_tables(base: str, edges: Iterable[Relationship]) -> set[str]:
    """Base table plus every table directly joined to it by a confirmed edge."""
    out = {base}
    for e in edges:
        if not e.is_confirmed:
            continue
        if e.table1 == base:
            out.add(e.table2)
        elif e.table2 == base:
            out.add(e.table1)
    return out


@dataclass
class JoinPath:
    base: str
    aliases: dict[str, str]
    joins: list[tuple[str, Relationship]] = field(default_factory=list)

    @property
    def from_sql(self) -> str:
        base_alias = self.aliases[self.base]
        parts = [f"{quote_ident(self.base)} {base_alias}"]
        for table, edge in self.joins:
            base_col, other_col = (
                (edge.col1, edge.col2) if edge.table1 == self.base else (edge.col2, edge.col1)
            )
            alias = self.aliases[table]
            parts.append(
                f"JOIN {quote_ident(table)} {alias} "
                f"ON {base_alias}.{quote_ident(base_col)} = {alias}.{quote_ident(other_col)}"
            )
        return " ".join(parts)

    def ref(self, field_name: str) -> str:
        """Map ``"table.column"`` / ``"column"`` to its aliased SQL expression."""
        f = split_field(field_name, self.base)
        alias = self.aliases.get(f.table)
        if alias is None:
            raise MissingRelationshipError(self.base, f.table)
        return f"{alias}.{quote_ident(f.column)}"


def resolve_join_path(
    base: str,
    used_tables: Iterable[str],
    edges: Iterable[Relationship],
) -> JoinPath:
    """Build the star join from *base* to every table in *used_tables*.

    Raises
    ------
    MissingRelationshipError
        When a used table has no confirmed edge directly to *base*.
    """
    confirmed = [e for e in edges if e.is_confirmed]
    aliases: dict[str, str] = {base: "t0"}
    joins: list[tuple[str, Relationship]] = []

    for table in used_tables:
        if not table or table in aliases:
            continue
        edge = next((e for e in confirmed if e.connects(base, table)), None)
        if edge is None:
            raise MissingRelationshipError(base, table)
        aliases[table] = f"t{len(aliases)}"
        joins.append((table, edge))

    return JoinPath(base=base, aliases=aliases, joins=joins)


# ── Suggestion heuristics ───────────────────────────────

IdentifierMatcher = Callable[[str], bool]

_NAME_NOISE_RE = re.compile(r"[\s\-]")


def normalize_column_name(name: str) -> str:
    return _NAME_NOISE_RE.sub("", name.lower())


def make_identifier_matcher(
    suffixes: Iterable[str] | None = None,
    infixes: Iterable[str] | None = None,
) -> IdentifierMatcher:
    """Build the "looks like an identifier" predicate from settings."""
    settings = get_settings()
    sfx = tuple(suffixes if suffixes is not None else settings.identifier_suffixes)
    ifx = tuple(infixes if infixes is not None else settings.identifier_infixes)

    def _matches(normalized: str) -> bool:
        return normalized.endswith(sfx) or any(tok in normalized for tok in ifx)

    return _matches


def detect_suggested_relationships(
    schemas: list[TableSchema],
    edges: Iterable[Relationship],
    matcher: IdentifierMatcher | None = None,
) -> list[Relationship]:
    """Propose join edges between identically named identifier-like columns.

    Pairs already covered by a confirmed edge (either orientation) are
    excluded.  Pure: the same inputs always produce the same list.
    """
    matcher = matcher or make_identifier_matcher()
    confirmed = [e for e in edges if e.is_confirmed]
    found: list[Relationship] = []

    for i, t1 in enumerate(schemas):
        for t2 in schemas[i + 1:]:
            for c1 in t1.columns:
                n1 = normalize_column_name(c1.name)
                for c2 in t2.columns:
                    n2 = normalize_column_name(c2.name)
                    if n1 != n2 or not (matcher(n1) or matcher(n2)):
                        continue
                    candidate = Relationship(
                        table1=t1.name, col1=c1.name,
                        table2=t2.name, col2=c2.name,
                        type=SUGGESTED, cardinality="one-to-many",
                    )
                    if _contains_edge(found, candidate) or _contains_edge(confirmed, candidate):
                        continue
                    found.append(candidate)

    logger.debug("Detected %d suggested relationships across %d tables", len(found), len(schemas))
    return found


# ── Graph store ─────────────────────────────────────────


class RelationshipGraph:
    """Thread-safe in-memory set of confirmed and suggested relationships.

    Consumers only ever receive copies; all writes go through the methods
    below.
    """

    def __init__(self, edges: Iterable[Relationship] | None = None):
        self._lock = threading.Lock()
        self._edges: list[Relationship] = []
        for e in edges or ():
            self._upsert(e)

    # ── Reads ───────────────────────────────────────────

    def all(self) -> list[Relationship]:
        with self._lock:
            return list(self._edges)

    def confirmed(self) -> list[Relationship]:
        with self._lock:
            return [e for e in self._edges if e.is_confirmed]

    def suggested(self) -> list[Relationship]:
        with self._lock:
            return [e for e in self._edges if not e.is_confirmed]

    def related_tables(self, base: str) -> set[str]:
        return related_tables(base, self.confirmed())

    # ── Writes ──────────────────────────────────────────

    def add(self, edge: Relationship) -> None:
        with self._lock:
            self._upsert(edge)

    def confirm(self, edge: Relationship, cardinality: str | None = None) -> Relationship:
        """Store *edge* as confirmed, replacing any suggested twin."""
        confirmed = replace(edge, type=CONFIRMED, cardinality=cardinality or edge.cardinality)
        with self._lock:
            self._upsert(confirmed)
        logger.info("Relationship confirmed  %s.%s = %s.%s",
                    edge.table1, edge.col1, edge.table2, edge.col2)
        return confirmed

    def remove(self, edge: Relationship) -> bool:
        with self._lock:
            before = len(self._edges)
            self._edges = [e for e in self._edges if not edges_equal(e, edge)]
            return len(self._edges) != before

    def replace_all(self, edges: Iterable[Relationship]) -> None:
        with self._lock:
            self._edges = []
            for e in edges:
                self._upsert(e)

    def refresh_suggestions(
        self,
        schemas: list[TableSchema],
        matcher: IdentifierMatcher | None = None,
    ) -> list[Relationship]:
        """Recompute suggested edges for *schemas*; confirmed edges are kept."""
        with self._lock:
            confirmed = [e for e in self._edges if e.is_confirmed]
            suggestions = detect_suggested_relationships(schemas, confirmed, matcher)
            self._edges = confirmed + suggestions
        return list(suggestions)

    # ── Internals ───────────────────────────────────────

    def _upsert(self, edge: Relationship) -> None:
        for idx, existing in enumerate(self._edges):
            if edges_equal(existing, edge):
                # a suggestion never downgrades a confirmed edge
                if existing.is_confirmed and not edge.is_confirmed:
                    return
                self._edges[idx] = edge
                return
        self._edges.append(edge)


# ── Module-level singleton ──────────────────────────────

_graph = RelationshipGraph()


def get_relationship_graph() -> RelationshipGraph:
    """Return the process-wide relationship graph."""
    return _graph
