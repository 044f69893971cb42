"""
Unit tests -- WidgetDataSource parsing and tagged chart configs.
"""
import pytest
from pydantic import TypeAdapter

from src.core.errors import ValidationError
from src.dashboard.spec import (
    BarConfig,
    ChartConfig,
    KpiConfig,
    ScatterConfig,
    WidgetDataSource,
)


def test_camel_case_wire_names():
    source = WidgetDataSource.model_validate({
        "tableName": "Orders",
        "xAxis": "region",
        "yAxis": ["sales", " ", "qty"],
        "chartType": " Line ",
        "extraFields": {"seriesBy": "status", "timeGranularity": "MONTH", "aggregation": "avg"},
    })
    assert source.base_table == "Orders"
    assert source.kind == "line"
    assert source.y_fields == ["sales", "qty"]
    assert source.aggregation == "AVG"
    assert source.series_by == "status"
    assert source.time_granularity == "month"


def test_snake_case_names_accepted():
    source = WidgetDataSource(table_name="Orders", x_axis="a", y_axis="b")
    assert source.y_fields == ["b"]
    assert source.chart_type == "bar"


def test_defaults():
    source = WidgetDataSource()
    assert source.base_table == ""
    assert source.y_fields == []
    assert source.aggregation == "SUM"
    assert source.series_by is None
    assert source.time_granularity == "day"


def test_base_table_override():
    source = WidgetDataSource.model_validate({"tableName": "A", "extraFields": {"baseTable": " B "}})
    assert source.base_table == "B"


def test_unknown_granularity_defaults_to_day():
    source = WidgetDataSource.model_validate({"extraFields": {"timeGranularity": "week"}})
    assert source.time_granularity == "day"


def test_extra_fields_keep_unknown_keys():
    source = WidgetDataSource.model_validate({"extraFields": {"someUiFlag": True}})
    assert source.extra_fields.model_extra == {"someUiFlag": True}


def test_to_chart_config_axis():
    config = WidgetDataSource.model_validate({"tableName": "O", "xAxis": "a", "yAxis": "b"}).to_chart_config()
    assert isinstance(config, BarConfig)
    assert config.y_fields == ["b"]


def test_to_chart_config_kpi():
    config = WidgetDataSource.model_validate({
        "tableName": "O", "yAxis": "sales", "chartType": "kpi",
        "extraFields": {"kpiTimeColumn": "d", "kpiWindowValue": 7, "kpiWindowUnit": "day"},
    }).to_chart_config()
    assert isinstance(config, KpiConfig)
    assert config.time_column == "d"
    assert config.window_value == 7


def test_to_chart_config_scatter():
    config = WidgetDataSource.model_validate({
        "tableName": "O", "xAxis": "a", "yAxis": "b", "chartType": "scatter",
    }).to_chart_config()
    assert isinstance(config, ScatterConfig)


def test_to_chart_config_unknown_type():
    with pytest.raises(ValidationError):
        WidgetDataSource.model_validate({"tableName": "O", "chartType": "gauge"}).to_chart_config()


def test_chart_config_discriminated_union():
    adapter = TypeAdapter(ChartConfig)
    parsed = adapter.validate_python({"chart_type": "kpi", "base_table": "O", "y_field": "v"})
    assert isinstance(parsed, KpiConfig)
