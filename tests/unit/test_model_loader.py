"""
Unit tests -- relationship model YAML loading / saving.
"""
from src.modeling.model_loader import bootstrap_graph, load_relationships, save_relationships
from src.modeling.relationships import SUGGESTED, Relationship, RelationshipGraph


def test_default_model_loads():
    edges = load_relationships()
    assert any(e.connects("Orders", "Customers") for e in edges)
    assert all(e.is_confirmed for e in edges)


def test_missing_file_is_empty(tmp_path):
    assert load_relationships(str(tmp_path / "absent.yml")) == ()


def test_save_writes_confirmed_only(tmp_path):
    path = tmp_path / "model" / "relationships.yml"
    edges = [
        Relationship("Orders", "customer_id", "Customers", "id", cardinality="one-to-one"),
        Relationship("Orders", "product_id", "Products", "product_id", type=SUGGESTED),
    ]
    save_relationships(edges, path)
    loaded = load_relationships(str(path))
    assert loaded == (edges[0],)


def test_save_invalidates_cache(tmp_path):
    path = tmp_path / "relationships.yml"
    save_relationships([], path)
    assert load_relationships(str(path)) == ()
    save_relationships([Relationship("A", "x", "B", "y")], path)
    assert len(load_relationships(str(path))) == 1


def test_bootstrap_graph_replaces_edges(tmp_path):
    path = tmp_path / "relationships.yml"
    save_relationships([Relationship("A", "x", "B", "y")], path)
    graph = RelationshipGraph([Relationship("C", "x", "D", "y")])
    bootstrap_graph(str(path), graph)
    assert [e.table1 for e in graph.all()] == ["A"]
