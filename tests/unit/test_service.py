"""
Unit tests -- widget service: compile -> execute -> build -> figure.
The engine call is monkeypatched so no database is needed.
"""
import pytest

from src.core.errors import QueryExecutionError, ValidationError
from src.dashboard.figure_adapter import EMPTY_FILTER_KEY
from src.dashboard.filters import ActiveFilter
from src.dashboard.service import WidgetResult, generate_chart_config, render_widget
from src.dashboard.spec import WidgetDataSource
from src.modeling.relationships import Relationship

EDGES = [Relationship("Orders", "customer_id", "Customers", "id")]

BAR = {
    "tableName": "Orders",
    "xAxis": "Customers.region",
    "yAxis": "sales",
    "chartType": "bar",
}


@pytest.fixture
def rows(monkeypatch):
    result = [
        {"Customers.region": "West", "sales": 1234.56},
        {"Customers.region": "East", "sales": 99.0},
    ]
    captured = {}

    def fake_execute(sql):
        captured["sql"] = sql
        return result

    monkeypatch.setattr("src.dashboard.service.execute_query", fake_execute)
    return captured


def test_render_returns_widget_result(rows):
    result = render_widget(BAR, EDGES)
    assert isinstance(result, WidgetResult)
    assert result.success is True
    assert "JOIN \"Customers\"" in rows["sql"]
    assert result.chart_config["xAxis"]["data"] == ["West", "East"]
    assert result.figure.categories == ["West", "East"]
    assert result.latency_ms >= 0


def test_render_applies_theme_and_labels(rows):
    source = {**BAR, "extraFields": {"chartInternalTitle": "By region", "seriesAliasMap": "sales=Revenue"}}
    config = render_widget(source, EDGES, theme_name="nature").chart_config
    assert config["title"]["text"] == "By region"
    assert config["series"][0]["name"] == "Revenue"
    assert config["color"][0] == "#15803d"


def test_render_with_filters(rows):
    result = render_widget(BAR, EDGES, filters=[ActiveFilter("Customers", "region", ("East",))])
    assert result.chart_config["xAxis"]["data"] == ["East"]
    assert result.empty_filtered is False


def test_render_filter_excluding_everything(rows):
    result = render_widget(BAR, EDGES, filters=[ActiveFilter("Customers", "region", ("South",))])
    assert result.empty_filtered is True
    assert result.chart_config[EMPTY_FILTER_KEY] is True
    assert result.figure.title == "No data for current filter"


def test_render_missing_relationship_is_collected(rows):
    result = render_widget(BAR, [])
    assert result.success is False
    assert "Customers" in result.errors[0]
    assert result.figure.fallback is True
    assert "sql" not in rows


def test_render_validation_error_collected():
    result = render_widget({"tableName": "Orders", "chartType": "bar"}, EDGES)
    assert result.success is False
    assert result.sql == ""


def test_render_engine_error_collected(monkeypatch):
    def boom(sql):
        raise QueryExecutionError(sql, "Conversion Error: could not convert")

    monkeypatch.setattr("src.dashboard.service.execute_query", boom)
    result = render_widget(BAR, EDGES)
    assert result.errors == ["Conversion Error: could not convert"]
    assert result.sql.startswith("SELECT")


def test_render_no_rows(monkeypatch):
    monkeypatch.setattr("src.dashboard.service.execute_query", lambda sql: [])
    result = render_widget(BAR, EDGES)
    assert result.errors == ["No data"]
    assert result.chart_config is None


def test_render_kpi(monkeypatch):
    monkeypatch.setattr(
        "src.dashboard.service.execute_query",
        lambda sql: [{"current_value": 200, "previous_value": 100}],
    )
    source = {
        "tableName": "Orders", "yAxis": "sales", "chartType": "kpi",
        "extraFields": {"kpiTimeColumn": "order_date", "kpiLegend": "Revenue", "kpiWindowValue": 7},
    }
    result = render_widget(source, EDGES, filters=[ActiveFilter("Orders", "region", ("West",))])
    kpi = result.chart_config["kpi"]
    assert kpi["label"] == "Revenue"
    assert kpi["deltaPct"] == pytest.approx(100.0)
    assert kpi["window"] == {"value": 7, "unit": None, "column": "order_date"}
    assert result.figure.title == "KPI"


def test_result_to_dict(rows):
    payload = render_widget(BAR, EDGES).to_dict()
    assert payload["success"] is True
    assert payload["figure"]["type"] == "bar"


def test_generate_chart_config_raises_on_no_rows(monkeypatch):
    monkeypatch.setattr("src.dashboard.service.execute_query", lambda sql: [])
    with pytest.raises(ValidationError, match="No data"):
        generate_chart_config(WidgetDataSource.model_validate(BAR), EDGES)


def test_generate_chart_config_returns_parts(rows):
    compiled, result_rows, config = generate_chart_config(WidgetDataSource.model_validate(BAR), EDGES)
    assert compiled.x_alias == "Customers.region"
    assert len(result_rows) == 2
    assert config["series"][0]["data"] == [1234.56, 99.0]
