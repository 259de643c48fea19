"""
Formatting and action parsing tests
"""
from utils.format_utils import (
    calculate_derived_metrics,
    format_krw,
    format_number,
    format_percent,
    format_trend,
    format_usd,
    parse_actions,
)


class TestParseActions:
    """Vendor actions array reduction"""

    def test_shorthand_entries(self):
        result = parse_actions([{"lead": 3}, {"purchase": 1}, {"link_click": 50}])
        assert result["lead"] == 3
        assert result["purchase"] == 1
        assert result["link_click"] == 50
        assert result["total_actions"] == 54
        assert result["total_conversions"] == 4

    def test_vendor_entries(self):
        result = parse_actions([
            {"action_type": "lead", "value": "12"},
            {"action_type": "landing_page_view", "value": "1,200"},
        ])
        assert result["lead"] == 12
        assert result["landing_page_view"] == 1200
        assert result["total_conversions"] == 12

    def test_custom_conversions_count(self):
        result = parse_actions([
            {"action_type": "offsite_conversion.fb_pixel_custom.Reservation", "value": "2"},
            {"action_type": "onsite_conversion.messaging_first_reply", "value": "5"},
            {"action_type": "post_engagement", "value": "99"},
        ])
        assert result["custom_conversions"] == 7
        assert result["total_conversions"] == 7
        assert result["total_actions"] == 106

    def test_invalid_values_are_ignored(self):
        result = parse_actions([
            {"action_type": "lead", "value": "-4"},
            {"action_type": "lead", "value": "abc"},
            {"action_type": "lead", "value": None},
            {"action_type": "purchase", "value": str(10 ** 13)},
            "garbage",
        ])
        assert result["lead"] == 0
        assert result["purchase"] == 0
        assert result["total_actions"] == 0

    def test_empty(self):
        result = parse_actions(None)
        assert result["total_conversions"] == 0
        assert "add_to_cart" in result


class TestFormatting:
    def test_number(self):
        assert format_number(1234567) == "1,234,567"
        assert format_number(None) == "0"

    def test_currency(self):
        assert format_krw(1234567.6) == "₩1,234,568"
        assert format_usd(1234.5) == "$1,234.50"

    def test_percent(self):
        assert format_percent(12.5) == "12.50%"
        assert format_percent(3.14159, decimals=1) == "3.1%"

    def test_derived_metrics(self):
        derived = calculate_derived_metrics(10000, 2000, 100, 5)
        assert derived == {
            "ctr": 5.0,
            "cpc": 100.0,
            "cpm": 5000.0,
            "conversion_rate": 5.0,
            "cost_per_conversion": 2000.0,
        }

    def test_derived_metrics_zero_denominators(self):
        derived = calculate_derived_metrics(500, 0, 0, 0)
        assert all(value == 0 for value in derived.values())


class TestFormatTrend:
    def test_increase(self):
        assert format_trend({"change": 1500, "change_percent": 15.0}) == "▲ +1,500 (+15.00%)"

    def test_decrease_currency(self):
        assert format_trend({"change": -20000, "change_percent": -10.5}, currency=True) == "▼ -₩20,000 (-10.50%)"

    def test_no_change(self):
        assert format_trend({"change": 0, "change_percent": 0}) == "변화없음"
        assert format_trend(None) == "변화없음"

    def test_undefined_percent(self):
        assert format_trend({"change": 50, "change_percent": None}) == "변화없음"
