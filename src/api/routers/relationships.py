"""
/relationships -- list, add, remove and confirm join edges.

Confirmed edges are written back to the YAML model after every change.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.api.errors import to_http_error
from src.db.catalog import load_schemas
from src.modeling.model_loader import save_relationships
from src.modeling.relationships import CARDINALITIES, CONFIRMED, Relationship, get_relationship_graph

router = APIRouter()


class RelationshipItem(BaseModel):
    table1: str = Field(..., min_length=1)
    col1: str = Field(..., min_length=1)
    table2: str = Field(..., min_length=1)
    col2: str = Field(..., min_length=1)
    type: str = Field(CONFIRMED, description="suggested | confirmed")
    cardinality: str = Field("one-to-many", description=" | ".join(CARDINALITIES))

    def to_edge(self) -> Relationship:
        return Relationship.from_dict(self.model_dump())


class RelationshipList(BaseModel):
    relationships: list[RelationshipItem]


def _as_list(edges: list[Relationship]) -> RelationshipList:
    return RelationshipList(relationships=[RelationshipItem(**e.to_dict()) for e in edges])


def _persist() -> None:
    save_relationships(get_relationship_graph().confirmed())


@router.get("", response_model=RelationshipList)
def list_relationships() -> RelationshipList:
    return _as_list(get_relationship_graph().all())


@router.post("", response_model=RelationshipList)
def add_relationship(item: RelationshipItem) -> RelationshipList:
    graph = get_relationship_graph()
    graph.add(item.to_edge())
    _persist()
    return _as_list(graph.all())


@router.delete("", response_model=RelationshipList)
def remove_relationship(item: RelationshipItem) -> RelationshipList:
    graph = get_relationship_graph()
    if not graph.remove(item.to_edge()):
        raise HTTPException(status_code=404, detail="Relationship not found")
    _persist()
    return _as_list(graph.all())


@router.post("/confirm", response_model=RelationshipItem)
def confirm_relationship(item: RelationshipItem) -> RelationshipItem:
    confirmed = get_relationship_graph().confirm(item.to_edge(), item.cardinality)
    _persist()
    return RelationshipItem(**confirmed.to_dict())


@router.get("/suggested", response_model=RelationshipList)
def suggested_relationships() -> RelationshipList:
    """Recompute naming-convention suggestions from the current catalog."""
    try:
        schemas = load_schemas()
    except Exception as exc:
        raise to_http_error(exc, "Relationships.suggested")
    return _as_list(get_relationship_graph().refresh_suggestions(schemas))
