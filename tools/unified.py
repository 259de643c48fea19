"""Cross-platform search tools."""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastmcp import Context
from mcp_instance import mcp
from errors import CommandInvalid
from platforms.models import Ad, Campaign, DailyPoint
from unified.command_parser import SearchCommand, example_commands, parse_command, supported_platforms
from unified.html_files import get_report_store
from unified.report_html import render_html
from unified.search import PlatformResult, SearchResult, UnifiedSearchService

logger = logging.getLogger(__name__)

MAX_COMMAND_LENGTH = 1000

_service: Optional[UnifiedSearchService] = None


def get_search_service() -> UnifiedSearchService:
    global _service
    if _service is None:
        _service = UnifiedSearchService()
    return _service


def _check_command(command: str) -> str:
    command = (command or "").strip()
    if not command:
        raise ValueError("command is required.")
    if len(command) > MAX_COMMAND_LENGTH:
        raise ValueError(f"command must be at most {MAX_COMMAND_LENGTH} characters.")
    return command


@mcp.tool
async def structured_campaign_search(
    command: str,
    output_format: str = "text",
    ctx: Context = None,
) -> str:
    """Search campaigns across Facebook, Google Ads, TikTok and 당근마켓 with one command.

    Args:
        command: e.g. "키워드:치과 날짜:7일 매체:전체 리포트:내부 단위:광고"
        output_format: "text" for a compact tree, "html" for an interactive report.
    """
    command = _check_command(command)
    output_format = (output_format or "text").lower()
    if output_format not in ("text", "html"):
        raise ValueError("output_format must be 'text' or 'html'.")

    if ctx:
        await ctx.info(f"Running unified search: {command}")

    try:
        report = await asyncio.to_thread(get_search_service().run, command, output_format)
        if ctx:
            await ctx.info("Unified search completed.")
        return report
    except Exception as e:
        logger.exception("Unified search failed")
        if ctx:
            await ctx.error(f"Unified search failed: {e}")
        raise


@mcp.tool
def search_help() -> str:
    """Usage guide for structured_campaign_search."""
    platforms = "\n".join(f"  - {p['name']} ({p['code']})" for p in supported_platforms())
    examples = "\n".join(f"  - `{c}`" for c in example_commands())
    return f"""**통합 캠페인 검색 도움말**

**명령어 형식**
`키워드:[검색어] 날짜:[기간] 매체:[매체목록] 리포트:[광고주|내부] 타입:[A|B] 단위:[캠페인|광고] 제목:[리포트 제목]`

**키워드** (필수, 비워두면 전체 캠페인)
  - 캠페인명에 포함된 문자열 (대소문자 구분 없음)
  - 쉼표로 여러 개 지정하면 모두 포함된 캠페인만 검색 (예: 키워드:치과,임플란트)

**날짜** (기본값: 어제)
  - 20250720-20250721: 기간 지정
  - 20250720: 하루
  - 어제, 오늘
  - 7일: 어제까지 최근 7일
  - 최대 90일까지 조회 가능

**매체** (기본값: 전체)
{platforms}
  - 전체: 설정된 모든 매체
  - 쉼표로 여러 매체 지정 (예: 매체:구글,페이스북)

**리포트 / 타입** (기본값: 내부)
  - 내부: 광고비, CPC, CPM, 전환단가를 포함한 전체 지표
  - 광고주: 비용 지표를 제외한 리포트
  - A: 광고주용 전체 지표, B: 광고비만 포함하고 단가 지표 제외

**단위** (기본값: 광고)
  - 캠페인: 캠페인별 요약과 일별 추이
  - 광고: 캠페인 아래 광고별 성과와 일별 추이

**제목**: HTML 리포트 제목 (100자 이내, 다음 항목 전까지 공백 포함 가능)

**예시**
{examples}

HTML 파일로 저장하려면 `generate_html_file` 도구를 사용하세요."""


def _sample_result() -> SearchResult:
    command = SearchCommand(
        keyword="샘플",
        start_date="2025-07-20",
        end_date="2025-07-22",
        platforms=["facebook", "google"],
        report_type="internal",
        display_unit="ad",
    )
    days = ["2025-07-20", "2025-07-21", "2025-07-22"]

    def record(cls, values, **fields):
        item = cls(**fields)
        for day, (spend, impressions, clicks, conversions) in zip(days, values):
            item.daily_data.append(DailyPoint(day, spend, impressions, clicks, conversions))
        return item.finalize()

    fb_ad = record(Ad, [(130000, 12000, 240, 6), (145600, 13500, 250, 6), (98000, 9000, 180, 4)],
                   platform="facebook", ad_id="1001", ad_name="샘플 이미지 광고",
                   campaign_id="101", campaign_name="샘플 리드 캠페인")
    fb_campaign = record(Campaign, [(130000, 12000, 240, 6), (145600, 13500, 250, 6), (98000, 9000, 180, 4)],
                         platform="facebook", campaign_id="101", campaign_name="샘플 리드 캠페인")
    google_ad = record(Ad, [(52000, 3100, 95, 2), (0, 0, 0, 0), (61000, 3600, 120, 3)],
                       platform="google", ad_id="2001", ad_name="샘플 검색 광고",
                       campaign_id="201", campaign_name="샘플 검색 캠페인")
    google_campaign = record(Campaign, [(52000, 3100, 95, 2), (0, 0, 0, 0), (61000, 3600, 120, 3)],
                             platform="google", campaign_id="201", campaign_name="샘플 검색 캠페인")

    return SearchResult(
        command=command,
        results=[
            PlatformResult(platform="facebook", campaigns=[fb_campaign], ads=[fb_ad]),
            PlatformResult(platform="google", campaigns=[google_campaign], ads=[google_ad]),
        ],
        generated_at=datetime(2025, 7, 23, 9, 0, 0),
    )


@mcp.tool
def test_html_output() -> str:
    """Sample HTML report rendered from fixed data, for checking the client renders HTML."""
    return render_html(_sample_result())


@mcp.tool
async def generate_html_file(
    command: str,
    filename: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Run a unified search and save the HTML report; returns a download URL valid for 30 minutes.

    Args:
        command: Same format as structured_campaign_search.
        filename: Optional file name (letters, digits, 한글, '.', '_', '-'; ends with .html).
    """
    command = _check_command(command)
    parsed = parse_command(command)
    if not parsed.is_valid:
        raise CommandInvalid(parsed.errors)

    store = get_report_store()
    if filename:
        # Reject bad names before spending time on the search
        store.validate_filename(filename)

    if ctx:
        await ctx.info(f"Generating HTML report: {command}")

    try:
        result = await asyncio.to_thread(get_search_service().search, parsed)
        content = render_html(result)
        saved = await asyncio.to_thread(store.save, content, filename or None, parsed.keyword)
        summary = result.summary()
        if ctx:
            await ctx.info(f"HTML report saved: {saved['filename']}")
        return {
            **saved,
            "message": f"리포트가 생성되었습니다. 링크는 {saved['valid_minutes']}분 동안 유효합니다.",
            "summary": {
                "total_campaigns": summary["total_campaigns"],
                "total_ads": summary["total_ads"],
                "errors": summary["errors"],
            },
        }
    except Exception as e:
        if ctx:
            await ctx.error(f"HTML report generation failed: {e}")
        raise
