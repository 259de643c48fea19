"""Metric columns per report type and their display formatting."""
from typing import Any, Dict, List

from utils.format_utils import format_krw, format_number, format_percent

METRICS = [
    "spend",
    "impressions",
    "clicks",
    "ctr",
    "cpc",
    "cpm",
    "conversions",
    "conversion_rate",
    "cost_per_conversion",
]

LABELS = {
    "spend": "광고비",
    "impressions": "노출수",
    "clicks": "클릭수",
    "ctr": "CTR",
    "cpc": "CPC",
    "cpm": "CPM",
    "conversions": "전환수",
    "conversion_rate": "전환율",
    "cost_per_conversion": "전환단가",
}

COST_METRICS = {"spend", "cpc", "cpm", "cost_per_conversion"}
UNIT_COST_METRICS = {"cpc", "cpm", "cost_per_conversion"}
CURRENCY_METRICS = COST_METRICS


def visible_metrics(report_type: str) -> List[str]:
    """internal and A show everything, B hides unit costs, client hides all costs."""
    if report_type == "client":
        return [m for m in METRICS if m not in COST_METRICS]
    if report_type == "B":
        return [m for m in METRICS if m not in UNIT_COST_METRICS]
    return list(METRICS)


def format_conversions(value: Any) -> str:
    number = float(value or 0)
    if number.is_integer():
        return format_number(number)
    return f"{number:,.2f}"


def format_metric(metric: str, value: Any) -> str:
    if metric in CURRENCY_METRICS:
        return format_krw(value)
    if metric in ("ctr", "conversion_rate"):
        return format_percent(value)
    if metric == "conversions":
        return format_conversions(value)
    return format_number(value)


def metric_values(record) -> Dict[str, Any]:
    """Flat metric dict from a canonical record or a trend entry."""
    if isinstance(record, dict):
        values = dict(record)
        values.update(record.get("derived_metrics", {}))
        return values
    return record.metrics_dict()
