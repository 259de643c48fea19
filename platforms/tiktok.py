"""TikTok Business API adapter."""
import json
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import requests

from errors import AuthFailed, RateLimited, VendorError
from platforms.models import (
    Ad, Campaign, PerformanceRecord, convert_daily_to_krw, sort_by_spend, summary_row, to_int, to_number,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://business-api.tiktok.com/open_api/v1.3"
REQUEST_TIMEOUT = 30
PAGE_SIZE = 1000
# Daily breakdown reports accept at most 30 days per request
MAX_REPORT_DAYS = 30

ERROR_MESSAGES = {
    40001: "액세스 토큰이 유효하지 않습니다",
    40002: "권한이 없습니다",
    40003: "광고주 ID가 유효하지 않습니다",
    40004: "요청 파라미터가 올바르지 않습니다",
    40100: "요청 한도를 초과했습니다",
}
AUTH_CODES = {40001, 40002, 40104, 40105}
RATE_LIMIT_CODES = {40100, 40133}

VALID_STATUSES = ("ENABLE", "DISABLE")


def date_chunks(start_date: str, end_date: str, size: int = MAX_REPORT_DAYS) -> List[Tuple[str, str]]:
    """Split an inclusive range into windows of at most ``size`` days."""
    start = date.fromisoformat(start_date)
    end = date.fromisoformat(end_date)
    chunks = []
    while start <= end:
        chunk_end = min(start + timedelta(days=size - 1), end)
        chunks.append((start.isoformat(), chunk_end.isoformat()))
        start = chunk_end + timedelta(days=1)
    return chunks


class TikTokAdsClient:
    platform = "tiktok"

    def __init__(self, access_token: str, advertiser_id: str, rate_service=None):
        self.access_token = access_token
        self.advertiser_id = str(advertiser_id)
        self.rate_service = rate_service
        self._advertiser: Optional[Dict[str, Any]] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {"Access-Token": self.access_token, "Content-Type": "application/json"}

    def _handle(self, resp) -> Dict[str, Any]:
        if resp.status_code == 429:
            raise RateLimited("TikTok API rate limit exceeded", self.platform, code=429)
        try:
            payload = resp.json()
        except ValueError:
            raise VendorError(f"TikTok API error: {resp.status_code} {resp.reason}", self.platform)

        code = payload.get("code")
        if code == 0:
            return payload.get("data") or {}

        message = f"{ERROR_MESSAGES.get(code, 'TikTok API 오류')}: {payload.get('message', '')}".rstrip(": ")
        if code in RATE_LIMIT_CODES:
            raise RateLimited(message, self.platform, code=code)
        if code in AUTH_CODES or resp.status_code == 401:
            raise AuthFailed(message, self.platform)
        raise VendorError(message, self.platform, code=code)

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {k: json.dumps(v) if isinstance(v, (list, dict)) else v for k, v in params.items()}
        try:
            resp = requests.get(f"{BASE_URL}{path}", headers=self.headers, params=query, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise VendorError(f"TikTok API request failed: {e}", self.platform) from e
        return self._handle(resp)

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = requests.post(f"{BASE_URL}{path}", headers=self.headers, json=body, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise VendorError(f"TikTok API request failed: {e}", self.platform) from e
        return self._handle(resp)

    def _get_all_pages(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = self._get(path, {**params, "page": page, "page_size": PAGE_SIZE})
            rows.extend(data.get("list", []))
            total_page = (data.get("page_info") or {}).get("total_page", 1) or 1
            if page >= total_page:
                break
            page += 1
        return rows

    def get_advertiser_info(self) -> Dict[str, Any]:
        if self._advertiser is None:
            data = self._get("/advertiser/info/", {
                "advertiser_ids": [self.advertiser_id],
                "fields": ["advertiser_id", "name", "currency", "status", "timezone"],
            })
            rows = data.get("list") or [{}]
            self._advertiser = rows[0]
        return self._advertiser

    def _currency(self) -> str:
        return self.get_advertiser_info().get("currency") or "USD"

    def _rate_lookup(self, day: str) -> float:
        return self.rate_service.rate_for_date(day)

    def _report(self, data_level: str, dimensions: List[str], metrics: List[str], start_date: str,
                end_date: str, filtering: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        rows = []
        for chunk_start, chunk_end in date_chunks(start_date, end_date):
            params = {
                "advertiser_id": self.advertiser_id,
                "report_type": "BASIC",
                "data_level": data_level,
                "dimensions": dimensions,
                "metrics": metrics,
                "start_date": chunk_start,
                "end_date": chunk_end,
            }
            if filtering:
                params["filtering"] = filtering
            rows.extend(self._get_all_pages("/report/integrated/get/", params))
        return rows

    @staticmethod
    def _add_metrics(record, row: Dict[str, Any], start_date: str) -> None:
        metrics = row.get("metrics", {})
        day = str(row.get("dimensions", {}).get("stat_time_day", start_date))[:10]
        record.add_day(
            day,
            spend=to_number(metrics.get("spend")),
            impressions=to_int(metrics.get("impressions")),
            clicks=to_int(metrics.get("clicks")),
            conversions=to_number(metrics.get("conversion")),
        )

    # ------------------------------------------------------------------
    # Core capabilities
    # ------------------------------------------------------------------
    def list_campaigns_with_date_filter(self, start_date: str, end_date: str) -> List[Campaign]:
        currency = self._currency()
        rows = self._report(
            "AUCTION_CAMPAIGN",
            ["campaign_id", "stat_time_day"],
            ["campaign_name", "spend", "impressions", "clicks", "conversion"],
            start_date, end_date,
        )
        campaigns: Dict[str, Campaign] = {}
        for row in rows:
            cid = str(row.get("dimensions", {}).get("campaign_id", ""))
            campaign = campaigns.get(cid)
            if campaign is None:
                campaign = Campaign(
                    platform=self.platform,
                    campaign_id=cid,
                    campaign_name=row.get("metrics", {}).get("campaign_name", ""),
                    account_id=self.advertiser_id,
                )
                campaigns[cid] = campaign
            self._add_metrics(campaign, row, start_date)

        for campaign in campaigns.values():
            convert_daily_to_krw(campaign, currency, self._rate_lookup)
            campaign.finalize(start_date, end_date)
        return sort_by_spend(c for c in campaigns.values() if c.spend > 0)

    def ad_level_performance(self, campaign_ids: List[str], start_date: str, end_date: str) -> List[Ad]:
        campaign_ids = [str(c) for c in campaign_ids or []]
        if not campaign_ids:
            return []
        wanted = set(campaign_ids)
        currency = self._currency()
        rows = self._report(
            "AUCTION_AD",
            ["ad_id", "stat_time_day"],
            ["ad_name", "campaign_id", "campaign_name", "adgroup_id", "adgroup_name",
             "spend", "impressions", "clicks", "conversion"],
            start_date, end_date,
            filtering=[{
                "field_name": "campaign_ids",
                "filter_type": "IN",
                "filter_value": json.dumps(campaign_ids),
            }],
        )
        ads: Dict[str, Ad] = {}
        for row in rows:
            metrics = row.get("metrics", {})
            if str(metrics.get("campaign_id", "")) not in wanted:
                continue
            ad_id = str(row.get("dimensions", {}).get("ad_id", ""))
            ad = ads.get(ad_id)
            if ad is None:
                ad = Ad(
                    platform=self.platform,
                    ad_id=ad_id,
                    ad_name=metrics.get("ad_name", ""),
                    adset_id=metrics.get("adgroup_id"),
                    adset_name=metrics.get("adgroup_name"),
                    campaign_id=str(metrics.get("campaign_id", "")),
                    campaign_name=metrics.get("campaign_name", ""),
                    account_id=self.advertiser_id,
                )
                ads[ad_id] = ad
            self._add_metrics(ad, row, start_date)

        for ad in ads.values():
            convert_daily_to_krw(ad, currency, self._rate_lookup)
            ad.finalize(start_date, end_date)
        return sort_by_spend(a for a in ads.values() if a.spend > 0 or a.impressions > 0)

    # ------------------------------------------------------------------
    # Performance reports
    # ------------------------------------------------------------------
    def _level_performance(self, data_level: str, key: str, labels: List[str], start_date: str, end_date: str,
                           filter_name: str = "", ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Totals per ``key`` over the window, spend in KRW, sorted by spend."""
        ids = [str(i) for i in ids or [] if str(i).strip()]
        filtering = None
        if ids:
            filtering = [{"field_name": filter_name, "filter_type": "IN", "filter_value": json.dumps(ids)}]
        currency = self._currency()
        rows = self._report(
            data_level,
            [key, "stat_time_day"],
            labels + ["spend", "impressions", "clicks", "conversion"],
            start_date, end_date,
            filtering=filtering,
        )

        records: Dict[str, PerformanceRecord] = {}
        names: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            row_id = str(row.get("dimensions", {}).get(key, ""))
            record = records.get(row_id)
            if record is None:
                metrics = row.get("metrics", {})
                record = PerformanceRecord(
                    platform=self.platform,
                    campaign_id=str(metrics.get("campaign_id", row_id if key == "campaign_id" else "")),
                    campaign_name=metrics.get("campaign_name", ""),
                    account_id=self.advertiser_id,
                )
                records[row_id] = record
                names[row_id] = {key: row_id, **{label: metrics.get(label) for label in labels}}
            self._add_metrics(record, row, start_date)

        results = []
        for row_id, record in records.items():
            convert_daily_to_krw(record, currency, self._rate_lookup)
            record.finalize(start_date, end_date)
            results.append(summary_row(record, **names[row_id]))
        return sorted(results, key=lambda r: r["spend"], reverse=True)

    def get_campaign_performance(self, start_date: str, end_date: str,
                                 campaign_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        return self._level_performance(
            "AUCTION_CAMPAIGN", "campaign_id", ["campaign_name"],
            start_date, end_date, "campaign_ids", campaign_ids,
        )

    def get_ad_group_performance(self, start_date: str, end_date: str, campaign_id: str = "") -> List[Dict[str, Any]]:
        return self._level_performance(
            "AUCTION_ADGROUP", "adgroup_id", ["adgroup_name", "campaign_id", "campaign_name"],
            start_date, end_date, "campaign_ids", [campaign_id] if campaign_id else None,
        )

    def get_creative_performance(self, start_date: str, end_date: str, ad_group_id: str = "") -> List[Dict[str, Any]]:
        """Per-ad (creative) totals, optionally within one ad group."""
        return self._level_performance(
            "AUCTION_AD", "ad_id", ["ad_name", "adgroup_id", "adgroup_name", "campaign_id", "campaign_name"],
            start_date, end_date, "adgroup_ids", [ad_group_id] if ad_group_id else None,
        )

    # ------------------------------------------------------------------
    # Administrative operations
    # ------------------------------------------------------------------
    def get_campaign_list(self, status_filter: str = "ALL") -> List[Dict[str, Any]]:
        status_filter = (status_filter or "ALL").upper()
        rows = self._get_all_pages("/campaign/get/", {
            "advertiser_id": self.advertiser_id,
            "fields": ["campaign_id", "campaign_name", "operation_status", "objective_type",
                       "budget", "budget_mode", "create_time"],
        })
        if status_filter in VALID_STATUSES:
            rows = [r for r in rows if r.get("operation_status") == status_filter]
        return rows

    def toggle_campaign_status(self, campaign_id: str, status: str) -> Dict[str, Any]:
        status = (status or "").upper()
        if status not in VALID_STATUSES:
            raise ValueError(f"status must be one of {', '.join(VALID_STATUSES)}")
        data = self._post("/campaign/status/update/", {
            "advertiser_id": self.advertiser_id,
            "campaign_ids": [str(campaign_id)],
            "operation_status": status,
        })
        return {"campaign_id": str(campaign_id), "status": status, "result": data}

    def get_ad_group_list(self, campaign_id: str = "") -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "advertiser_id": self.advertiser_id,
            "fields": ["adgroup_id", "adgroup_name", "campaign_id", "operation_status",
                       "budget", "optimization_goal", "placement_type"],
        }
        if campaign_id:
            params["filtering"] = {"campaign_ids": [str(campaign_id)]}
        return self._get_all_pages("/adgroup/get/", params)

    def test_connection(self) -> Dict[str, Any]:
        self._advertiser = None
        info = self.get_advertiser_info()
        return {"platform": self.platform, "connected": True, "advertiser": info}
