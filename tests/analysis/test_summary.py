"""Tests for dashboard and history summaries."""

from datetime import date

import pytest
from meter import db
from meter.analysis import summary
from meter.readings import add_reading


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "meter.db"
    db.init_db(path)
    return path


@pytest.fixture
def october(db_path):
    add_reading(date(2023, 10, 1), 10500, reading_id="1", db_path=db_path)
    add_reading(date(2023, 10, 15), 10620, reading_id="2", db_path=db_path)
    return db_path


def test_dashboard_empty(db_path):
    data = summary.get_dashboard_summary(date(2023, 10, 31), db_path)

    assert data["readings_count"] == 0
    assert data["projection"] is None
    assert "No readings yet" in summary.format_dashboard_text(data)


def test_dashboard_summary(october):
    data = summary.get_dashboard_summary(date(2023, 10, 31), october)

    assert data["readings_count"] == 2
    assert data["last_reading"] == {"id": "2", "date": "2023-10-15", "value": 10620}
    assert data["total_kwh"] == 120
    assert data["costs"] == {
        "tusd": 54.0,
        "te": 42.0,
        "flag": 0.0,
        "public_lighting": 15.0,
        "total": 111.0,
    }
    assert data["projection"] == {
        "daily_average_kwh": 8.571,
        "projected_kwh": 265.71,
        "projected_cost": 227.57,
    }
    assert data["flag"] == "Verde"
    assert data["warnings"] == []


def test_dashboard_text(october):
    text = summary.format_dashboard_text(summary.get_dashboard_summary(date(2023, 10, 31), october))

    assert "Last reading: 10.620 on 2023-10-15" in text
    assert "Partial cost: R$ 111,00" in text
    assert "Month projection: R$ 227,57" in text


def test_dashboard_reports_decreases(october):
    add_reading(date(2023, 10, 20), 10600, reading_id="3", db_path=october)
    data = summary.get_dashboard_summary(date(2023, 10, 31), october)

    assert data["total_kwh"] == 120
    assert data["warnings"] == [{"from": "2023-10-15", "to": "2023-10-20", "difference": -20}]
    assert "meter went down by 20" in summary.format_dashboard_text(data)


def test_dashboard_single_reading(db_path):
    add_reading(date(2023, 10, 1), 10500, db_path=db_path)
    data = summary.get_dashboard_summary(date(2023, 10, 31), db_path)

    assert data["projection"] is None
    assert "not enough data" in summary.format_dashboard_text(data)


def test_history(october):
    rows = summary.get_history(october)

    assert [row["id"] for row in rows] == ["1", "2"]
    assert rows[0]["is_initial"] is True
    assert rows[0]["cost"] == 0
    assert rows[1]["consumption_kwh"] == 120
    assert rows[1]["cost"] == 111.0

    text = summary.format_history_text(rows)
    assert text.splitlines()[0] == "2023-10-15  10.620  (+120 kWh, R$ 111,00)"
    assert text.splitlines()[1] == "2023-10-01  10.500  (initial reading)"


def test_projection(october):
    assert summary.get_projection(date(2023, 10, 31), october)["projected_kwh"] == 265.71
    assert summary.get_projection(date(2023, 2, 1), october)["projected_kwh"] == 240.0
