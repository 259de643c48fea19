"""
Daily trend tests
"""
from utils.trends import (
    calculate_change,
    calculate_daily_trends,
    calculate_period_summary,
    find_best_worst_days,
)

DAILY = [
    {"date": "2025-07-21", "spend": 30000, "impressions": 3000, "clicks": 60, "conversions": 3},
    {"date": "2025-07-20", "spend": 20000, "impressions": 2000, "clicks": 40, "conversions": 0},
]


class TestDailyTrends:
    def test_sorted_ascending(self):
        entries = calculate_daily_trends(DAILY)
        assert [e["date"] for e in entries] == ["2025-07-20", "2025-07-21"]

    def test_first_day_has_zero_trends(self):
        first = calculate_daily_trends(DAILY)[0]
        assert all(t == {"change": 0, "change_percent": 0} for t in first["trends"].values())

    def test_second_day_changes(self):
        second = calculate_daily_trends(DAILY)[1]
        assert second["trends"]["spend"] == {"change": 10000, "change_percent": 50.0}
        assert second["trends"]["clicks"]["change"] == 20
        assert second["derived_metrics"]["ctr"] == 2.0

    def test_zero_prior_has_no_percent(self):
        second = calculate_daily_trends(DAILY)[1]
        assert second["trends"]["conversions"]["change"] == 3
        assert second["trends"]["conversions"]["change_percent"] is None

    def test_empty(self):
        assert calculate_daily_trends([]) == []


def test_calculate_change():
    assert calculate_change(150, 100) == {"change": 50, "change_percent": 50.0}
    assert calculate_change(5, 0) == {"change": 5, "change_percent": None}


def test_period_summary():
    summary = calculate_period_summary(DAILY)
    assert summary["days"] == 2
    assert summary["totals"]["spend"] == 50000
    assert summary["averages"]["spend"] == 25000
    assert summary["averages"]["clicks"] == 50
    assert summary["derived_metrics"]["cpc"] == 500.0


def test_best_worst_days():
    result = find_best_worst_days(DAILY, "conversions")
    assert result["best"]["date"] == "2025-07-21"
    assert result["worst"]["date"] == "2025-07-20"
