"""Self-contained interactive HTML report.

Everything the browser needs (CSS and the filter script) is embedded. The
server emits every row; the filter bar only toggles visibility of elements
tagged with ``data-platform``, ``data-campaign-name`` and ``data-date``.
"""
import html
from datetime import datetime
from typing import List, Optional

from unified.columns import COST_METRICS, LABELS, format_metric, metric_values, visible_metrics
from unified.command_parser import PLATFORM_DISPLAY_NAMES, REPORT_TYPE_LABELS
from utils.format_utils import format_trend
from utils.trends import calculate_daily_trends, calculate_period_summary

TREND_METRICS = ("spend", "impressions", "clicks", "conversions")

CSS = """
* { box-sizing: border-box; }
body { margin: 0; padding: 24px; background: #f4f6fa; color: #1f2933;
  font-family: -apple-system, BlinkMacSystemFont, 'Apple SD Gothic Neo', 'Malgun Gothic', sans-serif; }
.container { max-width: 1280px; margin: 0 auto; }
.report-header { background: linear-gradient(135deg, #3b5bdb, #5f3dc4); color: #fff;
  border-radius: 12px; padding: 24px 28px; margin-bottom: 20px; }
.report-header h1 { margin: 0 0 6px; font-size: 24px; }
.report-header .subtitle { margin: 0; opacity: .85; }
.conditions { background: #fff; border-radius: 10px; padding: 16px 20px; margin-bottom: 16px;
  box-shadow: 0 1px 3px rgba(0,0,0,.08); }
.conditions dl { display: grid; grid-template-columns: 80px 1fr; gap: 6px 12px; margin: 0; }
.conditions dt { font-weight: 600; color: #52606d; }
.conditions dd { margin: 0; }
.filter-bar { position: sticky; top: 0; z-index: 10; display: flex; flex-wrap: wrap; gap: 8px;
  background: #fff; border-radius: 10px; padding: 12px 16px; margin-bottom: 20px;
  box-shadow: 0 1px 3px rgba(0,0,0,.08); }
.filter-bar select, .filter-bar input { padding: 6px 10px; border: 1px solid #cbd2d9; border-radius: 6px; }
.filter-bar input { flex: 1; min-width: 160px; }
.filter-bar button { padding: 6px 14px; border: 0; border-radius: 6px; background: #3b5bdb; color: #fff;
  cursor: pointer; }
.platform-section { background: #fff; border-radius: 10px; padding: 18px 20px; margin-bottom: 20px;
  box-shadow: 0 1px 3px rgba(0,0,0,.08); }
.platform-section h2 { margin: 0 0 12px; font-size: 20px; }
.platform-section h2 .count { font-size: 14px; color: #7b8794; font-weight: normal; }
.platform-error { background: #fff5f5; color: #c92a2a; border: 1px solid #ffc9c9; border-radius: 6px;
  padding: 10px 12px; margin-bottom: 12px; }
.campaign-block { border-top: 1px solid #e4e7eb; padding-top: 14px; margin-top: 14px; }
.campaign-block h3 { margin: 0 0 10px; font-size: 16px; }
.campaign-block h4 { margin: 14px 0 6px; font-size: 14px; color: #52606d; }
table { width: 100%; border-collapse: collapse; font-size: 13px; margin-bottom: 8px; }
th, td { padding: 7px 9px; border-bottom: 1px solid #e4e7eb; text-align: right; white-space: nowrap; }
th { background: #f5f7fa; color: #52606d; font-weight: 600; }
th:first-child, td:first-child { text-align: left; }
td.name { white-space: normal; }
.trend { display: block; font-size: 11px; }
.trend.up { color: #2b8a3e; }
.trend.down { color: #c92a2a; }
.trend.flat { color: #9aa5b1; }
details.ad-daily { margin: 6px 0; }
details.ad-daily summary { cursor: pointer; color: #3b5bdb; }
.overall-summary { background: #fff; border-radius: 10px; padding: 18px 20px; margin-bottom: 16px;
  box-shadow: 0 1px 3px rgba(0,0,0,.08); }
.summary-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 12px; }
.summary-card { background: #f5f7fa; border-radius: 8px; padding: 12px; }
.summary-card .label { font-size: 12px; color: #7b8794; }
.summary-card .value { font-size: 18px; font-weight: 700; margin-top: 4px; }
.empty { color: #7b8794; }
.generated-at { text-align: center; color: #9aa5b1; font-size: 12px; }
"""

SCRIPT = """
(function () {
  var dateFilter = document.getElementById('dateFilter');
  var campaignSearch = document.getElementById('campaignSearch');
  var campaignFilter = document.getElementById('campaignFilter');
  var platformFilter = document.getElementById('platformFilter');
  var resetButton = document.getElementById('resetFilters');

  function applyFilters() {
    var day = dateFilter.value;
    var text = campaignSearch.value.trim().toLowerCase();
    var campaign = campaignFilter.value;
    var platform = platformFilter.value;

    document.querySelectorAll('.platform-section').forEach(function (section) {
      var platformMatch = platform === 'all' || section.getAttribute('data-platform') === platform;
      var blocks = section.querySelectorAll('.campaign-block');
      var shown = 0;
      blocks.forEach(function (block) {
        var name = block.getAttribute('data-campaign-name') || '';
        var match = platformMatch &&
          (campaign === 'all' || name === campaign) &&
          (!text || name.toLowerCase().indexOf(text) !== -1);
        block.style.display = match ? '' : 'none';
        if (match) { shown += 1; }
      });
      var visible = platformMatch && (shown > 0 || blocks.length === 0);
      section.style.display = visible ? '' : 'none';
    });

    document.querySelectorAll('tr[data-date]').forEach(function (row) {
      var match = day === 'all' || row.getAttribute('data-date') === day;
      row.style.display = match ? '' : 'none';
    });
  }

  [dateFilter, campaignFilter, platformFilter].forEach(function (el) {
    el.addEventListener('change', applyFilters);
  });
  campaignSearch.addEventListener('input', applyFilters);
  resetButton.addEventListener('click', function () {
    dateFilter.value = 'all';
    campaignSearch.value = '';
    campaignFilter.value = 'all';
    platformFilter.value = 'all';
    applyFilters();
  });
})();
"""


def _e(value) -> str:
    return html.escape(str(value if value is not None else ""), quote=True)


def _trend_span(trend, metric: str) -> str:
    text = format_trend(trend, currency=metric in COST_METRICS, decimals=2 if metric == "conversions" else 0)
    change = (trend or {}).get("change") or 0
    if text == "변화없음":
        css = "flat"
    else:
        css = "up" if change > 0 else "down"
    return f'<span class="trend {css}">{_e(text)}</span>'


def _header_row(first: str, metrics: List[str]) -> str:
    cells = "".join(f"<th>{LABELS[m]}</th>" for m in metrics)
    return f"<thead><tr><th>{_e(first)}</th>{cells}</tr></thead>"


def _value_cells(record, metrics: List[str]) -> str:
    values = metric_values(record)
    return "".join(f"<td>{_e(format_metric(m, values.get(m, 0)))}</td>" for m in metrics)


def _summary_table(record, metrics: List[str], label: str) -> str:
    return (
        '<table class="summary-table">'
        f"{_header_row('구분', metrics)}"
        f"<tbody><tr><td class=\"name\">{_e(label)}</td>{_value_cells(record, metrics)}</tr></tbody>"
        "</table>"
    )


def _daily_table(daily_data, metrics: List[str], css: str = "daily-table") -> str:
    points = [p.to_dict() for p in daily_data]
    if not points:
        return '<p class="empty">일별 데이터가 없습니다.</p>'

    rows = []
    for entry in calculate_daily_trends(points):
        values = metric_values(entry)
        cells = []
        for metric in metrics:
            cell = _e(format_metric(metric, values.get(metric, 0)))
            if metric in TREND_METRICS:
                cell += _trend_span(entry["trends"][metric], metric)
            cells.append(f"<td>{cell}</td>")
        rows.append(f'<tr data-date="{_e(entry["date"])}"><td>{_e(entry["date"])}</td>{"".join(cells)}</tr>')

    summary = calculate_period_summary(points)
    average_cells = "".join(
        f"<td>{_e(format_metric(m, summary['averages'][m]))}</td>" if m in summary["averages"] else "<td>-</td>"
        for m in metrics
    )
    rows.append(f'<tr class="average-row"><td>일평균 ({summary["days"]}일)</td>{average_cells}</tr>')
    return f'<table class="{css}">{_header_row("날짜", metrics)}<tbody>{"".join(rows)}</tbody></table>'


def _campaign_block(platform_result, campaign, metrics: List[str], show_ads: bool) -> str:
    parts = [
        f'<div class="campaign-block" data-campaign-name="{_e(campaign.campaign_name)}"'
        f' data-campaign-id="{_e(campaign.campaign_id)}">',
        f"<h3>{_e(campaign.campaign_name)}</h3>",
        _summary_table(campaign, metrics, "캠페인 합계"),
        "<h4>일별 성과</h4>",
        _daily_table(campaign.daily_data, metrics),
    ]

    if show_ads:
        ads = platform_result.ads_for(campaign.campaign_id)
        parts.append(f"<h4>광고별 성과 ({len(ads)}개)</h4>")
        if ads:
            rows = "".join(
                f'<tr class="ad-row" data-ad-id="{_e(ad.ad_id)}">'
                f'<td class="name">{_e(ad.ad_name)}</td>{_value_cells(ad, metrics)}</tr>'
                for ad in ads
            )
            parts.append(f'<table class="ad-table">{_header_row("광고", metrics)}<tbody>{rows}</tbody></table>')
            for ad in ads:
                parts.append(
                    f'<details class="ad-daily" data-ad-id="{_e(ad.ad_id)}">'
                    f"<summary>{_e(ad.ad_name)} 일별 성과</summary>"
                    f"{_daily_table(ad.daily_data, metrics, 'ad-daily-table')}"
                    "</details>"
                )
        else:
            parts.append('<p class="empty">광고 데이터가 없습니다.</p>')

    parts.append("</div>")
    return "\n".join(parts)


def _platform_section(platform_result, metrics: List[str], show_ads: bool) -> str:
    count = f"{len(platform_result.campaigns)}개 캠페인"
    if show_ads:
        count += f", {len(platform_result.ads)}개 광고"
    parts = [
        f'<section class="platform-section" data-platform="{_e(platform_result.platform)}">',
        f'<h2>{_e(platform_result.display_name)} <span class="count">({count})</span></h2>',
    ]
    if platform_result.error:
        parts.append(f'<div class="platform-error">error: {_e(platform_result.error)}</div>')
    for campaign in platform_result.campaigns:
        parts.append(_campaign_block(platform_result, campaign, metrics, show_ads))
    parts.append("</section>")
    return "\n".join(parts)


def _conditions(command) -> str:
    if command.start_date == command.end_date:
        period = command.start_date
    else:
        period = f"{command.start_date} ~ {command.end_date}"
    platforms = ", ".join(PLATFORM_DISPLAY_NAMES.get(p, p) for p in command.platforms)
    unit = "캠페인" if command.display_unit == "campaign" else "광고"
    return (
        '<section class="conditions"><dl>'
        f"<dt>키워드</dt><dd>{_e(command.keyword or '(전체)')}</dd>"
        f"<dt>기간</dt><dd>{_e(period)}</dd>"
        f"<dt>매체</dt><dd>{_e(platforms)}</dd>"
        f"<dt>리포트</dt><dd>{_e(REPORT_TYPE_LABELS.get(command.report_type, command.report_type))}</dd>"
        f"<dt>단위</dt><dd>{unit}</dd>"
        "</dl></section>"
    )


def _filter_bar(result) -> str:
    date_options = "".join(f'<option value="{_e(d)}">{_e(d)}</option>' for d in result.dates)
    names = []
    for platform_result in result.results:
        for campaign in platform_result.campaigns:
            if campaign.campaign_name not in names:
                names.append(campaign.campaign_name)
    campaign_options = "".join(f'<option value="{_e(n)}">{_e(n)}</option>' for n in names)
    platform_options = "".join(
        f'<option value="{_e(r.platform)}">{_e(r.display_name)}</option>' for r in result.results
    )
    return (
        '<div class="filter-bar">'
        f'<select id="dateFilter"><option value="all">전체 기간</option>{date_options}</select>'
        '<input id="campaignSearch" type="text" placeholder="캠페인명 검색">'
        f'<select id="campaignFilter"><option value="all">전체 캠페인</option>{campaign_options}</select>'
        f'<select id="platformFilter"><option value="all">전체 매체</option>{platform_options}</select>'
        '<button id="resetFilters" type="button">초기화</button>'
        "</div>"
    )


def _overall_summary(result, metrics: List[str]) -> str:
    summary = result.summary()
    values = {
        "spend": summary["total_spend"],
        "impressions": summary["total_impressions"],
        "clicks": summary["total_clicks"],
        "ctr": summary["overall_ctr"],
        "cpc": summary["overall_cpc"],
        "cpm": summary["overall_cpm"],
        "conversions": summary["total_conversions"],
        "conversion_rate": summary["overall_conversion_rate"],
        "cost_per_conversion": summary["overall_cost_per_conversion"],
    }
    cards = [
        f'<div class="summary-card"><div class="label">캠페인</div>'
        f'<div class="value">{summary["total_campaigns"]}개</div></div>'
    ]
    if result.command.display_unit == "ad":
        cards.append(
            f'<div class="summary-card"><div class="label">광고</div>'
            f'<div class="value">{summary["total_ads"]}개</div></div>'
        )
    for metric in metrics:
        cards.append(
            f'<div class="summary-card"><div class="label">{LABELS[metric]}</div>'
            f'<div class="value">{_e(format_metric(metric, values[metric]))}</div></div>'
        )
    return (
        '<section class="overall-summary"><h2>전체 요약</h2>'
        f'<div class="summary-grid">{"".join(cards)}</div></section>'
    )


def report_title(command) -> str:
    """Escaped title; custom titles are escaped at parse time."""
    if command.custom_title:
        return command.custom_title
    return _e(f"{command.keyword or '전체'} 광고 성과 리포트")


def render_html(result, generated_at: Optional[datetime] = None) -> str:
    command = result.command
    metrics = visible_metrics(command.report_type)
    show_ads = command.display_unit == "ad"
    title = report_title(command)
    generated_at = generated_at or result.generated_at

    if result.results:
        sections = "\n".join(_platform_section(r, metrics, show_ads) for r in result.results)
    else:
        sections = '<section class="platform-section"><p class="empty">검색 조건에 맞는 캠페인이 없습니다.</p></section>'

    audience = REPORT_TYPE_LABELS.get(command.report_type, command.report_type)
    return "\n".join([
        "<!DOCTYPE html>",
        '<html lang="ko">',
        "<head>",
        '<meta charset="UTF-8">',
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">',
        f"<title>{title}</title>",
        f"<style>{CSS}</style>",
        "</head>",
        "<body>",
        '<div class="container">',
        f'<header class="report-header"><h1>{title}</h1><p class="subtitle">{_e(audience)} 리포트</p></header>',
        _conditions(command),
        _filter_bar(result),
        sections,
        _overall_summary(result, metrics),
        f'<footer class="generated-at">생성 시각: {generated_at:%Y-%m-%d %H:%M:%S}</footer>',
        "</div>",
        f"<script>{SCRIPT}</script>",
        "</body>",
        "</html>",
    ])
