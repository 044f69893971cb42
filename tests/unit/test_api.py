"""
API tests -- FastAPI endpoints via TestClient (no live server needed).
Catalog, engine and model persistence are monkeypatched.
"""
import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.core.errors import QueryExecutionError
from src.dashboard.filters import get_filter_store
from src.modeling.relationships import SUGGESTED, Relationship, get_relationship_graph
from src.modeling.schema import ColumnInfo, TableSchema

client = TestClient(app)

SCHEMAS = [
    TableSchema("Orders", (
        ColumnInfo("customer_id", "INTEGER"),
        ColumnInfo("sales", "VARCHAR"),
        ColumnInfo("order_date", "DATE"),
    )),
    TableSchema("Customers", (ColumnInfo("customer_id", "INTEGER"), ColumnInfo("region", "VARCHAR"))),
]
EDGE = {"table1": "Orders", "col1": "customer_id", "table2": "Customers", "col2": "customer_id"}
BAR = {"tableName": "Orders", "xAxis": "Customers.region", "yAxis": "sales"}


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    saved = []
    monkeypatch.setattr("src.api.routers.relationships.save_relationships", lambda edges: saved.append(edges))
    for module in ("catalog", "relationships", "widgets", "filters"):
        monkeypatch.setattr(f"src.api.routers.{module}.load_schemas", lambda: SCHEMAS)
    get_relationship_graph().replace_all([Relationship.from_dict(EDGE)])
    get_filter_store().clear_all()
    client.delete("/filters")
    yield saved
    get_relationship_graph().replace_all([])
    get_filter_store().clear_all()


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_startup_loads_relationship_model(monkeypatch):
    calls = []
    monkeypatch.setattr("src.api.main.bootstrap_graph", lambda: calls.append(True))
    with TestClient(app) as started:
        assert started.get("/health").status_code == 200
    assert calls == [True]


# ── Catalog ─────────────────────────────────────────────

def test_catalog_tables():
    resp = client.get("/catalog/tables")
    assert resp.status_code == 200
    tables = resp.json()
    assert [t["name"] for t in tables] == ["Orders", "Customers"]
    assert tables[0]["columns"][1] == {"name": "sales", "type": "VARCHAR"}


def test_catalog_engine_error_is_400(monkeypatch):
    def boom():
        raise QueryExecutionError("DESCRIBE x", "Catalog Error")

    monkeypatch.setattr("src.api.routers.catalog.load_schemas", boom)
    resp = client.get("/catalog/tables")
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"] == "Catalog Error"


def test_date_table_bad_range_is_422():
    resp = client.post("/catalog/date-table", json={"start_year": 2025, "end_year": 2020})
    assert resp.status_code == 422


def test_date_table_created(monkeypatch):
    monkeypatch.setattr("src.api.routers.catalog.create_date_table", lambda start, end: "DimDate")
    resp = client.post("/catalog/date-table", json={"start_year": 2020, "end_year": 2021})
    assert resp.status_code == 200
    assert resp.json() == {"table": "DimDate"}


# ── Relationships ───────────────────────────────────────

def test_list_relationships():
    resp = client.get("/relationships")
    assert resp.status_code == 200
    assert resp.json()["relationships"][0]["table1"] == "Orders"


def test_add_and_remove_relationship(isolated_state):
    new = {"table1": "Orders", "col1": "product_id", "table2": "Products", "col2": "id"}
    resp = client.post("/relationships", json=new)
    assert resp.status_code == 200
    assert len(resp.json()["relationships"]) == 2
    assert len(isolated_state) == 1

    resp = client.request("DELETE", "/relationships", json=new)
    assert resp.status_code == 200
    assert len(resp.json()["relationships"]) == 1


def test_remove_unknown_relationship_is_404():
    resp = client.request("DELETE", "/relationships", json={"table1": "A", "col1": "x", "table2": "B", "col2": "y"})
    assert resp.status_code == 404


def test_confirm_relationship():
    graph = get_relationship_graph()
    graph.replace_all([Relationship("Orders", "customer_id", "Customers", "customer_id", type=SUGGESTED)])
    resp = client.post("/relationships/confirm", json={**EDGE, "type": SUGGESTED, "cardinality": "one-to-one"})
    assert resp.status_code == 200
    assert resp.json()["type"] == "confirmed"
    assert graph.confirmed()[0].cardinality == "one-to-one"


def test_suggested_relationships_exclude_confirmed():
    resp = client.get("/relationships/suggested")
    assert resp.status_code == 200
    assert resp.json()["relationships"] == []

    get_relationship_graph().replace_all([])
    resp = client.get("/relationships/suggested")
    assert len(resp.json()["relationships"]) == 1
    assert resp.json()["relationships"][0]["type"] == "suggested"


# ── Widgets ─────────────────────────────────────────────

def test_compile_widget():
    resp = client.post("/widgets/compile", json={"source": BAR})
    assert resp.status_code == 200
    data = resp.json()
    assert data["kind"] == "bar"
    assert 'JOIN "Customers" t1' in data["sql"]
    assert data["x_alias"] == "Customers.region"


def test_compile_invalid_widget_is_422():
    resp = client.post("/widgets/compile", json={"source": {"tableName": "Orders"}})
    assert resp.status_code == 422


def test_compile_missing_relationship_is_422():
    get_relationship_graph().replace_all([])
    resp = client.post("/widgets/compile", json={"source": BAR})
    assert resp.status_code == 422
    assert "Customers" in resp.json()["detail"]


def test_render_widget_with_active_filter(monkeypatch):
    monkeypatch.setattr(
        "src.dashboard.service.execute_query",
        lambda sql: [{"Customers.region": "West", "sales": 5}, {"Customers.region": "East", "sales": 7}],
    )
    get_filter_store().set_filter("Customers", "region", ["East"])
    resp = client.post("/widgets/render", json={"source": BAR, "dark": True})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["chart_config"]["xAxis"]["data"] == ["East"]
    assert data["figure"]["options"]["tooltipTheme"] == "dark"


def test_render_widget_ignoring_filters(monkeypatch):
    monkeypatch.setattr(
        "src.dashboard.service.execute_query",
        lambda sql: [{"Customers.region": "West", "sales": 5}, {"Customers.region": "East", "sales": 7}],
    )
    get_filter_store().set_filter("Customers", "region", ["East"])
    resp = client.post("/widgets/render", json={"source": BAR, "use_filters": False})
    assert resp.json()["chart_config"]["xAxis"]["data"] == ["West", "East"]


def test_figure_endpoint_normalizes():
    config = {"data": {"labels": ["a", "b"], "datasets": [{"label": "S", "data": [1, 2]}]}}
    resp = client.post("/widgets/figure", json={"config": config})
    assert resp.status_code == 200
    fig = resp.json()
    assert fig["categories"] == ["a", "b"]
    assert fig["fallback"] is False


def test_figure_endpoint_placeholder():
    resp = client.post("/widgets/figure", json={"config": "garbage"})
    assert resp.json()["fallback"] is True


def test_kpi_endpoint(monkeypatch):
    async def fake_execute(sql):
        return [{"current_value": 10, "previous_value": 5}]

    monkeypatch.setattr("src.dashboard.kpi.execute_query_async", fake_execute)
    get_filter_store().set_filter("Orders", "status", ["completed"])
    resp = client.post("/widgets/kpi", json={
        "widget_id": "k1",
        "source": {"tableName": "Orders", "yAxis": "sales", "chartType": "kpi"},
    })
    assert resp.status_code == 200
    assert resp.json()["kpi"]["value"] == 10.0


def test_kpi_endpoint_date_filter_matches_chart_labels(monkeypatch):
    executed = []

    async def fake_execute(sql):
        executed.append(sql)
        return [{"current_value": 5, "previous_value": 10}]

    monkeypatch.setattr("src.dashboard.kpi.execute_query_async", fake_execute)
    get_filter_store().set_filter("Orders", "order_date", ["2024/03"])
    resp = client.post("/widgets/kpi", json={
        "widget_id": "k2",
        "source": {
            "tableName": "Orders", "yAxis": "sales", "chartType": "kpi",
            "extraFields": {"kpiTimeColumn": "order_date", "kpiFilterXAxis": "order_date"},
        },
    })
    assert resp.status_code == 200
    assert resp.json()["kpi"]["deltaPct"] == -50.0
    assert "strftime(" in executed[0]
    assert "IN ('2024/03')" in executed[0]
    assert "\"order_date\" IN" not in executed[0]


# ── Filters ─────────────────────────────────────────────

def test_filter_select_apply_and_clear():
    resp = client.post("/filters/select", json={
        "widget_id": "w1", "table_name": "Orders", "column": "region",
        "value": "West", "options": ["West", "East"],
    })
    assert resp.status_code == 200
    assert resp.json()["draft"]["selected"] == ["West"]
    assert resp.json()["pending"] is True
    assert client.get("/filters").json()["filters"] == []

    resp = client.post("/filters/apply")
    assert resp.json()["changed"] is True
    assert resp.json()["filters"] == [{"tableName": "Orders", "column": "region", "values": ["West"]}]

    resp = client.post("/filters/apply")
    assert resp.json()["changed"] is False

    resp = client.delete("/filters", params={"table": "Orders", "column": "region"})
    assert resp.json()["filters"] == []


def test_filter_options(monkeypatch):
    monkeypatch.setattr("src.dashboard.filters.execute_query", lambda sql: [{"value": "a"}, {"value": "b"}])
    resp = client.get("/filters/options", params={"table": "Orders", "column": "region"})
    assert resp.status_code == 200
    assert resp.json()["values"] == ["a", "b"]


def test_filter_options_with_date_sibling_filter(monkeypatch):
    executed = []
    monkeypatch.setattr("src.dashboard.filters.execute_query", lambda sql: executed.append(sql) or [{"value": 1}])
    get_filter_store().set_filter("Orders", "order_date", ["2024/03"])
    resp = client.get("/filters/options", params={"table": "Orders", "column": "customer_id"})
    assert resp.status_code == 200
    assert resp.json()["values"] == [1]
    assert "strftime(" in executed[0]


# ── Assistant ───────────────────────────────────────────

def test_assistant_ask(monkeypatch):
    monkeypatch.setattr("src.assistant.service.load_schemas", lambda: SCHEMAS)
    monkeypatch.setattr("src.assistant.service.sample_rows", lambda table, limit=3: [])
    monkeypatch.setattr("src.assistant.service.call_llm", lambda prompt, provider=None, system=None: "All good.")
    resp = client.post("/assistant/ask", json={"question": "How are sales?"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["display_text"] == "All good."
    assert data["success"] is True


def test_assistant_bad_mode_is_422(monkeypatch):
    resp = client.post("/assistant/ask", json={"question": "How are sales?", "mode": "poem"})
    assert resp.status_code == 422


def test_assistant_question_too_short():
    resp = client.post("/assistant/ask", json={"question": "hi"})
    assert resp.status_code == 422
