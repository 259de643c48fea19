"""Compact text rendering of a unified search result."""
from typing import List

from unified.columns import COST_METRICS, LABELS, format_metric, metric_values, visible_metrics
from unified.command_parser import format_command_summary
from utils.format_utils import format_trend
from utils.trends import calculate_daily_trends, calculate_period_summary, find_best_worst_days

TREND_METRICS = ["spend", "impressions", "clicks", "conversions"]


def _metric_line(record, metrics: List[str]) -> str:
    values = metric_values(record)
    return " | ".join(f"{LABELS[m]} {format_metric(m, values.get(m, 0))}" for m in metrics)


def _daily_lines(daily_data, metrics: List[str], prefix: str) -> List[str]:
    """Per-day lines with ▲/▼ deltas, followed by the period summary."""
    points = [p.to_dict() if hasattr(p, "to_dict") else p for p in daily_data]
    if len(points) <= 1:
        return []

    lines = [f"{prefix}📅 일별 추이"]
    for entry in calculate_daily_trends(points):
        parts = []
        for metric in TREND_METRICS:
            if metric not in metrics:
                continue
            trend = format_trend(entry["trends"][metric], currency=metric in COST_METRICS,
                                 decimals=2 if metric == "conversions" else 0)
            parts.append(f"{LABELS[metric]} {format_metric(metric, entry[metric])} ({trend})")
        lines.append(f"{prefix}- {entry['date']}: " + " | ".join(parts))

    summary = calculate_period_summary(points)
    averages = summary["averages"]
    avg_parts = [
        f"일평균 {LABELS[m]} {format_metric(m, averages[m])}"
        for m in TREND_METRICS if m in metrics
    ]
    lines.append(f"{prefix}📊 기간 요약 ({summary['days']}일): " + " | ".join(avg_parts))

    extremes = find_best_worst_days(points, "conversions")
    best, worst = extremes["best"], extremes["worst"]
    if "conversions" in metrics and best["conversions"] > worst["conversions"]:
        lines.append(f"{prefix}🏆 최고 전환일 {best['date']} ({format_metric('conversions', best['conversions'])})"
                     f" | 최저 전환일 {worst['date']} ({format_metric('conversions', worst['conversions'])})")
    return lines


def render_text(result) -> str:
    command = result.command
    metrics = visible_metrics(command.report_type)
    show_ads = command.display_unit == "ad"

    lines = []
    if command.custom_title:
        lines.append(f"# {command.custom_title}")
        lines.append("")
    lines.append(format_command_summary(command))
    lines.append("")

    if not result.results:
        lines.append("검색 조건에 맞는 캠페인이 없습니다.")
        lines.append("")

    for platform in result.results:
        if platform.error:
            # Campaigns survive when only the ad breakdown failed
            lines.append(f"## {platform.display_name}")
            lines.append(f"error: {platform.error}")
            lines.append("")
            if not platform.campaigns:
                continue
        else:
            header = f"## {platform.display_name} ({len(platform.campaigns)}개 캠페인"
            header += f", {len(platform.ads)}개 광고)" if show_ads else ")"
            lines.append(header)
            lines.append("")

        for campaign in platform.campaigns:
            lines.append(f"**캠페인**: {campaign.campaign_name}")
            lines.append(_metric_line(campaign, metrics))

            if not show_ads:
                lines.extend(_daily_lines(campaign.daily_data, metrics, ""))
                lines.append("")
                continue

            ads = platform.ads_for(campaign.campaign_id)
            for index, ad in enumerate(ads):
                last = index == len(ads) - 1
                branch = "└──" if last else "├──"
                indent = "    " if last else "│   "
                lines.append(f"{branch} **광고**: {ad.ad_name}")
                lines.append(f"{indent}{_metric_line(ad, metrics)}")
                lines.extend(_daily_lines(ad.daily_data, metrics, indent))
            lines.append("")

    summary = result.summary()
    lines.append("## 📊 전체 요약")
    lines.append(f"- 총 캠페인: {summary['total_campaigns']}개")
    if show_ads:
        lines.append(f"- 총 광고: {summary['total_ads']}개")
    if "spend" in metrics:
        lines.append(f"- 총 광고비: {format_metric('spend', summary['total_spend'])}")
    lines.append(f"- 총 노출수: {format_metric('impressions', summary['total_impressions'])}")
    lines.append(f"- 총 클릭수: {format_metric('clicks', summary['total_clicks'])}")
    lines.append(f"- 총 전환수: {format_metric('conversions', summary['total_conversions'])}")
    lines.append(f"- 전체 CTR: {format_metric('ctr', summary['overall_ctr'])}")
    for platform, error in summary["errors"].items():
        lines.append(f"- ⚠️ {platform} - Error: {error}")
    return "\n".join(lines).rstrip() + "\n"
