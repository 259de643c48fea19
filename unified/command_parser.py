"""Parser for the one-line structured search command.

Format::

    키워드:[검색어] 날짜:[시작일-종료일] 매체:[매체1,매체2,...] 리포트:[광고주|내부]

Examples:
    키워드:고병우 날짜:20250720-20250721 매체:구글,페이스북
    키워드:울산심플치과 날짜:어제 매체:전체
"""
import html
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

ALL_PLATFORMS = ["facebook", "google", "tiktok", "carrot"]

PLATFORM_MAP = {
    "페이스북": "facebook",
    "facebook": "facebook",
    "fb": "facebook",
    "메타": "facebook",
    "meta": "facebook",
    "구글": "google",
    "google": "google",
    "구글광고": "google",
    "틱톡": "tiktok",
    "tiktok": "tiktok",
    "당근마켓": "carrot",
    "당근": "carrot",
    "carrot": "carrot",
    "전체": "all",
    "all": "all",
}

PLATFORM_DISPLAY_NAMES = {
    "facebook": "Facebook",
    "google": "Google Ads",
    "tiktok": "TikTok Ads",
    "carrot": "당근마켓",
}

REPORT_TYPE_LABELS = {
    "internal": "내부용",
    "client": "광고주용",
    "A": "광고주용 (A타입)",
    "B": "광고주용 (B타입)",
}

KEY_ALIASES = {
    "키워드": "keyword",
    "keyword": "keyword",
    "날짜": "date",
    "date": "date",
    "매체": "platforms",
    "platforms": "platforms",
    "platform": "platforms",
    "리포트": "report",
    "report": "report",
    "타입": "type",
    "type": "type",
    "단위": "unit",
    "unit": "unit",
    "제목": "title",
    "title": "title",
}

UNIT_MAP = {
    "캠페인": "campaign",
    "campaign": "campaign",
    "광고": "ad",
    "ad": "ad",
}

MAX_RANGE_DAYS = 90
MAX_TITLE_LENGTH = 100

_KEY_PATTERN = re.compile(
    r"(?:^|(?<=\s))(" + "|".join(sorted(KEY_ALIASES, key=len, reverse=True)) + r")\s*:",
    re.IGNORECASE,
)
_RECENT_DAYS_PATTERN = re.compile(r"^(\d+)\s*(?:일|days?|d)$", re.IGNORECASE)


@dataclass
class SearchCommand:
    keyword: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    platforms: List[str] = field(default_factory=list)
    report_type: str = "internal"
    display_unit: str = "ad"
    custom_title: Optional[str] = None
    raw: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def keywords(self) -> List[str]:
        return [k.strip() for k in (self.keyword or "").split(",") if k.strip()]

    @property
    def is_client_report(self) -> bool:
        return self.report_type == "client"

    def to_dict(self) -> Dict:
        return {
            "keyword": self.keyword,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "platforms": list(self.platforms),
            "report_type": self.report_type,
            "display_unit": self.display_unit,
            "custom_title": self.custom_title,
            "errors": list(self.errors),
            "is_valid": self.is_valid,
        }


def _split_fields(text: str) -> List[Tuple[str, str]]:
    """Return ``(canonical_key, raw_value)`` pairs in input order."""
    matches = list(_KEY_PATTERN.finditer(text))
    fields = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        key = KEY_ALIASES[match.group(1).lower()]
        fields.append((key, text[match.end():end]))
    return fields


def _first_token(value: str) -> str:
    parts = value.split()
    return parts[0] if parts else ""


def _parse_day(value: str) -> date:
    value = value.strip()
    if re.fullmatch(r"\d{8}", value):
        return datetime.strptime(value, "%Y%m%d").date()
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return datetime.strptime(value, "%Y-%m-%d").date()
    raise ValueError(value)


def parse_date_value(value: str, today: date) -> Tuple[date, date]:
    """Resolve a date expression to an inclusive ``(start, end)`` range."""
    value = value.strip()
    lowered = value.lower()
    yesterday = today - timedelta(days=1)

    if lowered in ("어제", "yesterday"):
        return yesterday, yesterday
    if lowered in ("오늘", "today"):
        return today, today

    recent = _RECENT_DAYS_PATTERN.match(lowered)
    if recent:
        days = int(recent.group(1))
        if days < 1:
            raise ValueError(value)
        return yesterday - timedelta(days=days - 1), yesterday

    range_match = re.fullmatch(r"(\d{8})-(\d{8})", value)
    if range_match:
        return _parse_day(range_match.group(1)), _parse_day(range_match.group(2))

    single = _parse_day(value)
    return single, single


def parse_command(text: str, today: Optional[date] = None) -> SearchCommand:
    """Parse and validate a search command. Validation errors land in ``errors``."""
    today = today or date.today()
    yesterday = today - timedelta(days=1)
    command = SearchCommand(raw=text or "")
    text = (text or "").strip()

    values: Dict[str, str] = {}
    for key, raw_value in _split_fields(text):
        # First occurrence wins
        values.setdefault(key, raw_value)

    if "keyword" in values:
        command.keyword = _first_token(values["keyword"])
    else:
        command.errors.append("키워드가 지정되지 않았습니다")

    start, end = yesterday, yesterday
    if "date" in values:
        date_value = _first_token(values["date"])
        try:
            start, end = parse_date_value(date_value, today)
        except ValueError:
            command.errors.append(f"유효하지 않은 날짜 형식입니다: {date_value}")
            start, end = None, None
    if start and end:
        command.start_date = start.isoformat()
        command.end_date = end.isoformat()
        if start > end:
            command.errors.append("시작일이 종료일보다 늦습니다")
        elif (end - start).days > MAX_RANGE_DAYS:
            command.errors.append(f"조회 기간이 {MAX_RANGE_DAYS}일을 초과할 수 없습니다")

    if "platforms" in values:
        command.platforms = _parse_platforms(_first_token(values["platforms"]), command.errors)
    else:
        command.platforms = list(ALL_PLATFORMS)

    if "report" in values:
        report = _first_token(values["report"])
        lowered = report.lower()
        if lowered in ("광고주", "client"):
            command.report_type = "client"
        elif lowered in ("내부", "internal"):
            command.report_type = "internal"
        elif report.upper() in ("A", "B"):
            command.report_type = report.upper()
        else:
            command.errors.append("유효하지 않은 리포트 타입입니다 (광고주, 내부, A, B만 가능)")

    if "type" in values:
        type_value = _first_token(values["type"])
        upper = type_value.upper()
        if upper in ("A", "B"):
            command.report_type = upper
        elif upper == "CLIENT" or type_value == "광고주":
            command.report_type = "client"
        elif upper == "INTERNAL" or type_value == "내부":
            command.report_type = "internal"
        else:
            command.errors.append("유효하지 않은 타입입니다 (A, B, client만 가능)")

    if "unit" in values:
        unit = _first_token(values["unit"]).lower()
        if unit in UNIT_MAP:
            command.display_unit = UNIT_MAP[unit]
        else:
            command.errors.append("유효하지 않은 단위입니다 (캠페인 또는 광고만 가능)")

    if "title" in values:
        title = values["title"].strip()
        if len(title) > MAX_TITLE_LENGTH:
            command.errors.append(f"제목은 {MAX_TITLE_LENGTH}자를 초과할 수 없습니다")
        elif title:
            command.custom_title = html.escape(title, quote=True).replace("&#x27;", "&#39;")

    return command


def _parse_platforms(value: str, errors: List[str]) -> List[str]:
    aliases = [p.strip().lower() for p in value.split(",") if p.strip()]
    if not aliases:
        errors.append("유효하지 않은 매체가 지정되었습니다")
        return []

    platforms: List[str] = []
    invalid = []
    for alias in aliases:
        code = PLATFORM_MAP.get(alias)
        if code is None:
            invalid.append(alias)
        elif code == "all":
            platforms.extend(ALL_PLATFORMS)
        else:
            platforms.append(code)

    if invalid:
        errors.append(f"유효하지 않은 매체가 지정되었습니다: {', '.join(invalid)}")
        return []

    seen = set()
    return [p for p in platforms if not (p in seen or seen.add(p))]


def supported_platforms() -> List[Dict[str, str]]:
    return [{"code": code, "name": PLATFORM_DISPLAY_NAMES[code]} for code in ALL_PLATFORMS]


def format_command_summary(command: SearchCommand) -> str:
    """Human-readable block describing the parsed search conditions."""
    keyword = command.keyword or "(전체)"
    if command.start_date == command.end_date:
        period = command.start_date
    else:
        period = f"{command.start_date} ~ {command.end_date}"
    platforms = ", ".join(PLATFORM_DISPLAY_NAMES.get(p, p) for p in command.platforms)
    unit = "캠페인" if command.display_unit == "campaign" else "광고"

    lines = [
        "**검색 조건**",
        f"- 키워드: \"{keyword}\"",
        f"- 기간: {period}",
        f"- 매체: {platforms}",
        f"- 리포트: {REPORT_TYPE_LABELS.get(command.report_type, command.report_type)}",
        f"- 단위: {unit}",
    ]
    if command.custom_title:
        lines.append(f"- 제목: {command.custom_title}")
    return "\n".join(lines)


def example_commands() -> List[str]:
    return [
        "키워드:고병우 날짜:20250720-20250721 매체:구글,페이스북",
        "키워드:울산심플치과 날짜:어제 매체:전체",
        "키워드:치과,임플란트 날짜:7일 매체:페이스북 리포트:광고주",
        "키워드: 날짜:오늘 매체:틱톡,당근 단위:캠페인",
        "키워드:이벤트 날짜:20250701-20250731 매체:전체 타입:A 제목:7월 성과 보고서",
    ]
