"""
Tests for ComparisonEngine.
"""

import math

import pytest

from calcengine.analytics.comparison import (
    PLACEHOLDER,
    ComparisonEngine,
    coerce_numeric,
    export_to_excel,
    to_frame,
)
from tests.conftest import make_result


@pytest.fixture
def engine():
    return ComparisonEngine()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("8,450", 8450.0),
        ("11,850 W", 11850.0),
        ("-3.5", -3.5),
        (42, 42.0),
        ("1.2.3", 1.2),
    ],
)
def test_coerce_numeric(raw, expected):
    assert coerce_numeric(raw) == expected


def test_coerce_numeric_nan():
    assert math.isnan(coerce_numeric("n/a"))


class TestCompareValues:
    def test_scenario_b(self, engine):
        assert engine.compare_values(["8,450", "11,850"]) == ["lowest", "highest"]

    def test_symmetric(self, engine):
        assert engine.compare_values(["11,850", "8,450"]) == ["highest", "lowest"]

    def test_all_equal(self, engine):
        assert engine.compare_values(["5", "5.0", 5]) == ["equal", "equal", "equal"]

    def test_middle_value_is_equal(self, engine):
        assert engine.compare_values([1, 2, 3]) == ["lowest", "equal", "highest"]

    def test_ties_at_extremes(self, engine):
        assert engine.compare_values([3, 1, 3, 1]) == [
            "highest",
            "lowest",
            "highest",
            "lowest",
        ]

    @pytest.mark.parametrize("values", [[], ["8,450"]])
    def test_fewer_than_two(self, engine, values):
        assert engine.compare_values(values) == []

    def test_unparseable_value_makes_all_equal(self, engine):
        assert engine.compare_values(["10", "n/a", "30"]) == ["equal"] * 3


class TestComparisonTable:
    def test_union_of_keys_with_placeholders(self, engine):
        a = make_result(params={"area": 150, "voltage": 220})
        b = make_result(params={"area": 200, "special_loads": 4500})
        rows = engine.build_comparison_table([a, b], "parameters")

        assert [r.key for r in rows] == ["area", "voltage", "special_loads"]
        area, voltage, special = rows
        assert [c.tag for c in area.cells] == ["lowest", "highest"]
        assert voltage.cells[0].value == "220"
        assert voltage.cells[1].value == PLACEHOLDER
        assert not voltage.cells[1].present
        assert special.cells[0].value == PLACEHOLDER

    def test_tags_align_with_results_that_declare_the_metric(self, engine):
        a = make_result(params={"area": 100})
        b = make_result(params={"voltage": 220})
        c = make_result(params={"area": 300})
        area = engine.build_comparison_table([a, b, c], "parameters")[0]
        assert [cell.tag for cell in area.cells] == ["lowest", None, "highest"]

    def test_single_present_value_gets_no_tag(self, engine):
        a = make_result(params={"area": 100, "voltage": 220})
        b = make_result(params={"area": 120})
        voltage = engine.build_comparison_table([a, b], "parameters")[1]
        assert voltage.cells[0].tag is None

    def test_secondary_metrics_keep_units(self, engine):
        a = make_result(secondary=[("Connected load", "7,800", "W")])
        b = make_result(secondary=[("Connected load", "12,300", "W")])
        row = engine.build_comparison_table([a, b], "secondary")[0]
        assert row.label == "Connected load"
        assert [c.unit for c in row.cells] == ["W", "W"]
        assert [c.tag for c in row.cells] == ["lowest", "highest"]

    def test_single_result(self, engine):
        assert engine.build_comparison_table([make_result(params={"a": 1})]) == []

    def test_unknown_source(self, engine):
        with pytest.raises(ValueError):
            engine.build_comparison_table([make_result(), make_result()], "primary")


class TestPrimaryRanking:
    def test_same_unit_ranked(self, engine):
        ranking = engine.rank_primary(
            [make_result("8,450"), make_result("11,850")]
        )
        assert ranking.compatible
        assert ranking.unit == "W"
        assert ranking.tags == ["lowest", "highest"]

    def test_mixed_units_not_ranked(self, engine):
        results = [make_result("8,450", unit="W"), make_result("8.45", unit="kW")]
        assert not engine.check_unit_compatibility(results)
        ranking = engine.rank_primary(results)
        assert not ranking.compatible
        assert ranking.tags == []


def test_aggregate_compliance(engine):
    results = [
        make_result(status="compliant", execution_id="e1"),
        make_result(status="warning", execution_id="e2"),
        make_result(status="warning", execution_id="e3"),
    ]
    summary = engine.aggregate_compliance(results)
    assert summary.counts == {"compliant": 1, "warning": 2, "non-compliant": 0}
    assert [s["execution_id"] for s in summary.statuses] == ["e1", "e2", "e3"]


class TestCompare:
    def test_full_report(self, engine):
        report = engine.compare(
            [
                make_result("8,450", params={"area": 150}),
                make_result("11,850", params={"area": 250}),
            ]
        )
        assert report.primary.tags == ["lowest", "highest"]
        assert len(report.parameters) == 1
        assert report.compliance.counts["compliant"] == 2

    def test_too_many_results(self, engine):
        with pytest.raises(ValueError):
            engine.compare([make_result() for _ in range(5)])

    def test_too_few_results_is_empty(self, engine):
        report = engine.compare([make_result()])
        assert report.parameters == []
        assert report.secondary == []
        assert report.primary.tags == []
        assert report.compliance.statuses == []


def test_to_frame_and_export(engine, tmp_path):
    a = make_result(secondary=[("Connected load", "7,800", "W"), ("Service current", "35.5", "A")])
    b = make_result(secondary=[("Connected load", "12,300", "W")])
    rows = engine.build_comparison_table([a, b], "secondary")
    df = to_frame(rows, ["Option A", "Option B"])

    assert list(df.columns) == ["Option A", "Option B"]
    assert df.loc["Connected load", "Option B"] == "12,300 W"
    assert df.loc["Service current", "Option B"] == PLACEHOLDER

    path = tmp_path / "comparison.xlsx"
    export_to_excel(df, str(path))
    assert path.exists()


def test_to_frame_empty():
    assert to_frame([]).empty
