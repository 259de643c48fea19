"""Marketplace ads adapter backed by a performance spreadsheet.

The marketplace has no reporting API; daily results are exported into a
Google Sheet with one row per ad per day:

    A date | B - | C campaign name | D campaign id | E ad set name | F ad set id
    G ad name | H ad id | I spend (KRW) | J impressions | K clicks | L VAT
    M leads collected
"""
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from errors import AuthFailed, VendorError
from platforms.models import Ad, Campaign, sort_by_spend, to_int, to_number

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]

COL_DATE = 0
COL_CAMPAIGN_NAME = 2
COL_CAMPAIGN_ID = 3
COL_ADSET_NAME = 4
COL_ADSET_ID = 5
COL_AD_NAME = 6
COL_AD_ID = 7
COL_SPEND = 8
COL_IMPRESSIONS = 9
COL_CLICKS = 10
COL_CONVERSIONS = 12

_DATE_PATTERN = re.compile(r"^(\d{4})[-./ ]?\s*(\d{1,2})[-./ ]?\s*(\d{1,2})\.?$")


def normalize_sheet_date(value: Any) -> Optional[str]:
    """``2025.07.20``, ``2025/7/20``, ``20250720`` and ``2025-07-20`` to ISO."""
    match = _DATE_PATTERN.match(str(value or "").strip())
    if not match:
        return None
    year, month, day = (int(g) for g in match.groups())
    return f"{year:04d}-{month:02d}-{day:02d}"


def _cell(row: List[Any], index: int) -> str:
    return str(row[index]).strip() if index < len(row) and row[index] is not None else ""


def _load_credentials(service_account_key: str):
    """Service account credentials from inline JSON or a key file path."""
    if os.path.exists(service_account_key):
        return service_account.Credentials.from_service_account_file(service_account_key, scopes=SCOPES)
    try:
        info = json.loads(service_account_key)
    except ValueError as e:
        raise AuthFailed("GOOGLE_SHEETS_SERVICE_ACCOUNT_KEY is neither a file nor valid JSON", "carrot") from e
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


class CarrotAdsClient:
    platform = "carrot"

    def __init__(self, service_account_key: str, spreadsheet_id: str, sheet_name: str = "성과데이터",
                 sheet_range: str = "A:M", sheets_service=None):
        self.service_account_key = service_account_key
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.sheet_range = sheet_range
        self._sheets = sheets_service

    def _service(self):
        if self._sheets is None:
            credentials = _load_credentials(self.service_account_key)
            self._sheets = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._sheets

    def read_rows(self) -> List[List[Any]]:
        """Data rows of the performance sheet, header row excluded."""
        range_name = f"'{self.sheet_name}'!{self.sheet_range}"
        try:
            result = self._service().spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id, range=range_name
            ).execute()
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            if status in (401, 403):
                raise AuthFailed(f"Spreadsheet access denied: {e}", self.platform) from e
            raise VendorError(f"Spreadsheet read failed: {e}", self.platform, code=status) from e

        values = result.get("values", [])
        logger.info(f"Carrot: read {max(len(values) - 1, 0)} rows from {range_name}")
        return values[1:]

    def _rows_in_range(self, start_date: str, end_date: str):
        for row in self.read_rows():
            day = normalize_sheet_date(_cell(row, COL_DATE))
            if day is None or not (start_date <= day <= end_date):
                continue
            yield day, row

    @staticmethod
    def _add_metrics(record, day: str, row: List[Any]) -> None:
        record.add_day(
            day,
            spend=to_number(_cell(row, COL_SPEND)),
            impressions=to_int(_cell(row, COL_IMPRESSIONS)),
            clicks=to_int(_cell(row, COL_CLICKS)),
            conversions=to_number(_cell(row, COL_CONVERSIONS)),
        )

    def list_campaigns_with_date_filter(self, start_date: str, end_date: str) -> List[Campaign]:
        campaigns: Dict[str, Campaign] = {}
        for day, row in self._rows_in_range(start_date, end_date):
            name = _cell(row, COL_CAMPAIGN_NAME)
            cid = _cell(row, COL_CAMPAIGN_ID) or name
            if not cid:
                continue
            campaign = campaigns.get(cid)
            if campaign is None:
                campaign = Campaign(platform=self.platform, campaign_id=cid, campaign_name=name)
                campaigns[cid] = campaign
            self._add_metrics(campaign, day, row)

        for campaign in campaigns.values():
            campaign.finalize(start_date, end_date)
        return sort_by_spend(c for c in campaigns.values() if c.spend > 0)

    def ad_level_performance(self, campaign_ids: List[str], start_date: str, end_date: str) -> List[Ad]:
        wanted = {str(c) for c in campaign_ids or []}
        if not wanted:
            return []
        ads: Dict[str, Ad] = {}
        for day, row in self._rows_in_range(start_date, end_date):
            campaign_name = _cell(row, COL_CAMPAIGN_NAME)
            cid = _cell(row, COL_CAMPAIGN_ID) or campaign_name
            if cid not in wanted:
                continue
            ad_name = _cell(row, COL_AD_NAME)
            ad_id = _cell(row, COL_AD_ID) or f"{cid}:{ad_name}"
            ad = ads.get(ad_id)
            if ad is None:
                ad = Ad(
                    platform=self.platform,
                    ad_id=ad_id,
                    ad_name=ad_name,
                    adset_id=_cell(row, COL_ADSET_ID) or None,
                    adset_name=_cell(row, COL_ADSET_NAME) or None,
                    campaign_id=cid,
                    campaign_name=campaign_name,
                )
                ads[ad_id] = ad
            self._add_metrics(ad, day, row)

        for ad in ads.values():
            ad.finalize(start_date, end_date)
        return sort_by_spend(ads.values())

    def test_connection(self) -> Dict[str, Any]:
        rows = self.read_rows()
        return {
            "platform": self.platform,
            "connected": True,
            "spreadsheet_id": self.spreadsheet_id,
            "sheet_name": self.sheet_name,
            "rows": len(rows),
        }
