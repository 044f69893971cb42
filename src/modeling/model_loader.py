"""
Loads and saves the data model YAML -- the persisted set of join edges.

File layout (``model/relationships.yml``)::

    version: 1
    relationships:
      - table1: Orders
        col1: customer_id
        table2: Customers
        col2: id
        cardinality: one-to-many
        type: confirmed

Only confirmed edges are written back; suggestions are recomputed from the
catalog whenever they are needed.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from src.core.config import get_settings
from src.core.logging import get_logger
from src.modeling.relationships import (
    Relationship,
    RelationshipGraph,
    get_relationship_graph,
)

logger = get_logger(__name__)


# ── Parsing ──────────────────────────────────────────────

def _parse_model(raw_yaml: dict[str, Any] | None) -> list[Relationship]:
    if not raw_yaml:
        return []
    return [Relationship.from_dict(r) for r in raw_yaml.get("relationships") or []]


def _model_path(path: str | Path | None) -> Path:
    return Path(path) if path else Path(get_settings().relationships_path)


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_relationships(path: str | None = None) -> tuple[Relationship, ...]:
    """Load and cache the persisted relationships (empty when the file is absent)."""
    model_path = _model_path(path)
    if not model_path.exists():
        logger.info("No relationship model at %s", model_path)
        return ()
    with open(model_path) as f:
        raw = yaml.safe_load(f)
    edges = tuple(_parse_model(raw))
    logger.info("Loaded %d relationships from %s", len(edges), model_path)
    return edges


def save_relationships(edges: list[Relationship], path: str | Path | None = None) -> Path:
    """Write the confirmed subset of *edges* back to YAML."""
    model_path = _model_path(path)
    model_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "version": 1,
        "relationships": [e.to_dict() for e in edges if e.is_confirmed],
    }
    with open(model_path, "w") as f:
        yaml.safe_dump(payload, f, sort_keys=False)
    load_relationships.cache_clear()
    return model_path


def bootstrap_graph(
    path: str | None = None,
    graph: RelationshipGraph | None = None,
) -> RelationshipGraph:
    """Seed *graph* (default: the process-wide one) from the YAML model."""
    graph = graph or get_relationship_graph()
    graph.replace_all(load_relationships(path))
    return graph
