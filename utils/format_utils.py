"""Number, currency and percent formatting plus vendor action parsing."""
import re
from typing import Any, Dict, List, Optional

# Action types that count as a conversion on the social network platform
CONVERSION_ACTIONS = [
    "lead",
    "purchase",
    "complete_registration",
    "submit_application",
    "subscribe",
    "start_trial",
]

CUSTOM_CONVERSION_PATTERNS = [
    re.compile(r"^offsite_conversion\.fb_pixel_custom\."),
    re.compile(r"^app_custom_event\."),
    re.compile(r"^onsite_conversion\."),
    re.compile(r"^custom_"),
]

# Keys always present in the parse_actions result
TRACKED_ACTIONS = [
    "lead",
    "link_click",
    "landing_page_view",
    "purchase",
    "add_to_cart",
    "complete_registration",
    "submit_application",
    "subscribe",
    "start_trial",
]

MAX_ACTION_VALUE = 10 ** 12


def is_custom_conversion(action_type: str) -> bool:
    return any(p.match(action_type) for p in CUSTOM_CONVERSION_PATTERNS)


def _parse_action_value(value: Any) -> Optional[int]:
    """Parse an action value into a non-negative bounded integer, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(float(str(value).replace(",", "").strip()))
    except (TypeError, ValueError, OverflowError):
        return None
    if number < 0 or number > MAX_ACTION_VALUE:
        return None
    return number


def parse_actions(actions: Optional[List[Dict[str, Any]]]) -> Dict[str, int]:
    """Reduce a vendor ``actions`` array to canonical counters.

    Args:
        actions: List of ``{"action_type": str, "value": str|int}`` entries.
            A ``{type: value}`` shorthand entry is accepted as well.

    Returns:
        Dict with one counter per tracked action type, plus ``total_actions``
        (every parsed value) and ``total_conversions`` (canonical conversion
        types and custom conversion patterns only).
    """
    result = {name: 0 for name in TRACKED_ACTIONS}
    result["custom_conversions"] = 0
    result["total_actions"] = 0
    result["total_conversions"] = 0

    for action in actions or []:
        if not isinstance(action, dict):
            continue
        if "action_type" in action:
            pairs = [(action.get("action_type"), action.get("value"))]
        else:
            pairs = list(action.items())

        for action_type, raw_value in pairs:
            if not isinstance(action_type, str):
                continue
            value = _parse_action_value(raw_value)
            if value is None:
                continue

            result["total_actions"] += value
            if action_type in TRACKED_ACTIONS:
                result[action_type] += value

            if action_type in CONVERSION_ACTIONS:
                result["total_conversions"] += value
            elif is_custom_conversion(action_type):
                result["custom_conversions"] += value
                result["total_conversions"] += value

    return result


def format_number(value: Any) -> str:
    """Integer with thousands separators."""
    try:
        return f"{int(round(float(value or 0))):,}"
    except (TypeError, ValueError):
        return "0"


def format_krw(value: Any) -> str:
    try:
        return f"₩{int(round(float(value or 0))):,}"
    except (TypeError, ValueError):
        return "₩0"


def format_usd(value: Any) -> str:
    try:
        return f"${float(value or 0):,.2f}"
    except (TypeError, ValueError):
        return "$0.00"


def format_percent(rate: Any, decimals: int = 2) -> str:
    """``rate`` is already a percentage (12.5 -> "12.50%")."""
    try:
        return f"{float(rate or 0):.{decimals}f}%"
    except (TypeError, ValueError):
        return f"{0:.{decimals}f}%"


def safe_divide(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator


def calculate_derived_metrics(spend: float, impressions: float, clicks: float,
                              conversions: float) -> Dict[str, float]:
    """CTR/CPC/CPM/conversion rate/cost per conversion. Division by zero yields 0."""
    return {
        "ctr": round(safe_divide(clicks, impressions) * 100, 2),
        "cpc": round(safe_divide(spend, clicks), 2),
        "cpm": round(safe_divide(spend, impressions) * 1000, 2),
        "conversion_rate": round(safe_divide(conversions, clicks) * 100, 2),
        "cost_per_conversion": round(safe_divide(spend, conversions), 2),
    }


def format_trend(trend: Optional[Dict[str, Any]], currency: bool = False,
                 decimals: int = 0) -> str:
    """Render a day-over-day change as ▲/▼ with absolute and percent delta.

    A zero change, a missing trend, or a change whose percent is undefined
    (prior value of zero) renders as 변화없음.
    """
    if not trend:
        return "변화없음"
    change = trend.get("change") or 0
    percent = trend.get("change_percent")
    if change == 0 or percent is None:
        return "변화없음"

    arrow = "▲" if change > 0 else "▼"
    sign = "+" if change > 0 else "-"
    magnitude = abs(change)
    if currency:
        amount = format_krw(magnitude)
    elif decimals:
        amount = f"{magnitude:,.{decimals}f}"
    else:
        amount = format_number(magnitude)
    return f"{arrow} {sign}{amount} ({'+' if percent > 0 else ''}{percent:.2f}%)"
