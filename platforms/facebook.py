"""Meta Graph API adapter."""
import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

import requests

from errors import AuthFailed, RateLimited, VendorError
from platforms.models import (
    Ad, Campaign, PerformanceRecord, convert_daily_to_krw, sort_by_spend, summary_row, to_int, to_number,
)
from utils.format_utils import parse_actions

logger = logging.getLogger(__name__)

GRAPH_API_VERSION = "v22.0"
BASE_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}"
REQUEST_TIMEOUT = 30
PAGE_LIMIT = 500

# Graph API error codes for throttling
RATE_LIMIT_CODES = {4, 17, 32, 613, 80000, 80004}
AUTH_ERROR_CODES = {102, 190}

VALID_STATUSES = ("ACTIVE", "PAUSED")
STATUS_FILTERS = ("ACTIVE", "PAUSED", "ALL")

# Identifying insight fields per reporting level; the first is the row key
LEVEL_FIELDS = {
    "campaign": ("campaign_id", "campaign_name"),
    "adset": ("adset_id", "adset_name", "campaign_id", "campaign_name"),
    "ad": ("ad_id", "ad_name", "adset_id", "adset_name", "campaign_id", "campaign_name"),
}


def _account_id(account_id: str) -> str:
    return str(account_id or "").replace("act_", "").strip()


def _check_status(status: str) -> str:
    status = (status or "").upper()
    if status not in VALID_STATUSES:
        raise ValueError(f"status must be one of {', '.join(VALID_STATUSES)}")
    return status


def _check_status_filter(status_filter: str) -> str:
    status_filter = (status_filter or "ALL").upper()
    if status_filter not in STATUS_FILTERS:
        raise ValueError(f"status_filter must be one of {', '.join(STATUS_FILTERS)}")
    return status_filter


class FacebookAdsClient:
    """Campaign/ad performance and status management for Meta ad accounts."""

    platform = "facebook"

    def __init__(self, access_token: str, ad_account_id: Optional[str] = None, rate_service=None):
        self.access_token = access_token
        self.ad_account_id = _account_id(ad_account_id) if ad_account_id else None
        self.rate_service = rate_service

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    def _raise_for_error(self, resp) -> None:
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        error = payload.get("error") if isinstance(payload, dict) else None
        if resp.ok and not error:
            return

        error = error or {}
        code = error.get("code")
        message = error.get("error_user_msg") or error.get("message") or f"{resp.status_code} {resp.reason}"
        if resp.status_code == 429 or code in RATE_LIMIT_CODES:
            raise RateLimited(f"Facebook API rate limit: {message}", self.platform, code=code)
        if resp.status_code == 401 or code in AUTH_ERROR_CODES:
            raise AuthFailed(f"Facebook access token rejected: {message}", self.platform)
        raise VendorError(f"Facebook API error: {message}", self.platform, code=code)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = path if path.startswith("http") else f"{BASE_URL}/{path.lstrip('/')}"
        query = dict(params or {})
        if "access_token" not in query and not path.startswith("http"):
            query["access_token"] = self.access_token
        try:
            resp = requests.get(url, params=query, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise VendorError(f"Facebook API request failed: {e}", self.platform) from e
        self._raise_for_error(resp)
        return resp.json()

    def _post(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(data)
        body["access_token"] = self.access_token
        try:
            resp = requests.post(f"{BASE_URL}/{path.lstrip('/')}", data=body, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise VendorError(f"Facebook API request failed: {e}", self.platform) from e
        self._raise_for_error(resp)
        return resp.json()

    def _paginate(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Follow ``paging.next`` until the cursor is exhausted."""
        rows: List[Dict[str, Any]] = []
        payload = self._get(path, params)
        while True:
            rows.extend(payload.get("data", []))
            next_url = (payload.get("paging") or {}).get("next")
            if not next_url:
                break
            payload = self._get(next_url)
        return rows

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def get_ad_accounts(self) -> List[Dict[str, Any]]:
        """Active ad accounts for this token (or just the configured one)."""
        if self.ad_account_id:
            info = self._get(f"act_{self.ad_account_id}", {"fields": "account_id,name,account_status,currency"})
            return [{
                "account_id": self.ad_account_id,
                "name": info.get("name", ""),
                "currency": info.get("currency", "USD"),
                "account_status": info.get("account_status", 1),
            }]

        accounts = self._paginate("me/adaccounts", {
            "fields": "account_id,name,account_status,currency",
            "limit": PAGE_LIMIT,
        })
        active = [a for a in accounts if a.get("account_status") == 1]
        logger.info(f"Facebook: {len(active)} active of {len(accounts)} ad accounts")
        return [{
            "account_id": _account_id(a.get("account_id") or a.get("id")),
            "name": a.get("name", ""),
            "currency": a.get("currency", "USD"),
            "account_status": a.get("account_status"),
        } for a in active]

    def _for_each_account(self, fetch) -> List[Any]:
        """Run ``fetch(account)`` on every account in parallel and union the results.

        A failing account is logged and skipped; if every account fails the
        last error is raised.
        """
        accounts = self.get_ad_accounts()
        if not accounts:
            return []

        results: List[Any] = []
        errors: List[Exception] = []
        with ThreadPoolExecutor(max_workers=min(5, len(accounts))) as executor:
            futures = {executor.submit(fetch, account): account for account in accounts}
            for future in as_completed(futures):
                account = futures[future]
                try:
                    results.extend(future.result())
                except Exception as e:
                    logger.warning(f"Facebook account {account['account_id']} failed: {e}")
                    errors.append(e)

        if errors and len(errors) == len(accounts):
            raise errors[-1]
        return results

    def _rate_lookup(self, day: str) -> float:
        return self.rate_service.rate_for_date(day)

    # ------------------------------------------------------------------
    # Core capabilities
    # ------------------------------------------------------------------
    def list_campaigns_with_date_filter(self, start_date: str, end_date: str) -> List[Campaign]:
        """Campaigns with spend in the window, KRW, sorted by spend."""
        time_range = json.dumps({"since": start_date, "until": end_date})

        def fetch(account):
            rows = self._paginate(f"act_{account['account_id']}/insights", {
                "level": "campaign",
                "fields": "campaign_id,campaign_name,spend,impressions,clicks,actions",
                "time_range": time_range,
                "time_increment": 1,
                "limit": PAGE_LIMIT,
            })
            campaigns: Dict[str, Campaign] = {}
            for row in rows:
                cid = str(row.get("campaign_id", ""))
                campaign = campaigns.get(cid)
                if campaign is None:
                    campaign = Campaign(
                        platform=self.platform,
                        campaign_id=cid,
                        campaign_name=row.get("campaign_name", ""),
                        account_id=account["account_id"],
                        account_name=account["name"],
                    )
                    campaigns[cid] = campaign
                campaign.add_day(
                    row.get("date_start", start_date),
                    spend=to_number(row.get("spend")),
                    impressions=to_int(row.get("impressions")),
                    clicks=to_int(row.get("clicks")),
                    conversions=parse_actions(row.get("actions"))["total_conversions"],
                )
            for campaign in campaigns.values():
                convert_daily_to_krw(campaign, account["currency"], self._rate_lookup)
                campaign.finalize(start_date, end_date)
            return [c for c in campaigns.values() if c.spend > 0]

        return sort_by_spend(self._for_each_account(fetch))

    def ad_level_performance(self, campaign_ids: List[str], start_date: str, end_date: str) -> List[Ad]:
        """Per-ad daily performance for the given campaigns, KRW, sorted by spend."""
        campaign_ids = [str(c) for c in campaign_ids or []]
        if not campaign_ids:
            return []
        wanted = set(campaign_ids)
        time_range = json.dumps({"since": start_date, "until": end_date})
        filtering = json.dumps([{"field": "campaign.id", "operator": "IN", "value": campaign_ids}])

        def fetch(account):
            rows = self._paginate(f"act_{account['account_id']}/insights", {
                "level": "ad",
                "fields": "ad_id,ad_name,adset_id,adset_name,campaign_id,campaign_name,"
                          "spend,impressions,clicks,actions",
                "time_range": time_range,
                "time_increment": 1,
                "filtering": filtering,
                "limit": PAGE_LIMIT,
            })
            ads: Dict[str, Ad] = {}
            for row in rows:
                if str(row.get("campaign_id", "")) not in wanted:
                    continue
                ad_id = str(row.get("ad_id", ""))
                ad = ads.get(ad_id)
                if ad is None:
                    ad = Ad(
                        platform=self.platform,
                        ad_id=ad_id,
                        ad_name=row.get("ad_name", ""),
                        adset_id=row.get("adset_id"),
                        adset_name=row.get("adset_name"),
                        campaign_id=str(row.get("campaign_id", "")),
                        campaign_name=row.get("campaign_name", ""),
                        account_id=account["account_id"],
                        account_name=account["name"],
                    )
                    ads[ad_id] = ad
                ad.add_day(
                    row.get("date_start", start_date),
                    spend=to_number(row.get("spend")),
                    impressions=to_int(row.get("impressions")),
                    clicks=to_int(row.get("clicks")),
                    conversions=parse_actions(row.get("actions"))["total_conversions"],
                )
            for ad in ads.values():
                convert_daily_to_krw(ad, account["currency"], self._rate_lookup)
                ad.finalize(start_date, end_date)
            return list(ads.values())

        return sort_by_spend(self._for_each_account(fetch))

    # ------------------------------------------------------------------
    # Performance reports
    # ------------------------------------------------------------------
    def _level_performance(self, level: str, start_date: str, end_date: str,
                           filter_field: str = "", ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Totals per ``level`` object (campaign, adset or ad) over the window.

        Days are fetched separately so USD spend is converted at each day's
        rate before summing.
        """
        labels = LEVEL_FIELDS[level]
        params = {
            "level": level,
            "fields": ",".join(labels + ("spend", "impressions", "clicks", "actions")),
            "time_range": json.dumps({"since": start_date, "until": end_date}),
            "time_increment": 1,
            "limit": PAGE_LIMIT,
        }
        ids = [str(i) for i in ids or [] if str(i).strip()]
        if ids:
            params["filtering"] = json.dumps([{"field": f"{filter_field}.id", "operator": "IN", "value": ids}])

        def fetch(account):
            rows = self._paginate(f"act_{account['account_id']}/insights", params)
            records: Dict[str, PerformanceRecord] = {}
            names: Dict[str, Dict[str, Any]] = {}
            for row in rows:
                key = str(row.get(labels[0], ""))
                record = records.get(key)
                if record is None:
                    record = PerformanceRecord(
                        platform=self.platform,
                        campaign_id=str(row.get("campaign_id", "")),
                        campaign_name=row.get("campaign_name", ""),
                        account_id=account["account_id"],
                        account_name=account["name"],
                    )
                    records[key] = record
                    names[key] = {label: row.get(label) for label in labels}
                record.add_day(
                    row.get("date_start", start_date),
                    spend=to_number(row.get("spend")),
                    impressions=to_int(row.get("impressions")),
                    clicks=to_int(row.get("clicks")),
                    conversions=parse_actions(row.get("actions"))["total_conversions"],
                )
            results = []
            for key, record in records.items():
                convert_daily_to_krw(record, account["currency"], self._rate_lookup)
                record.finalize(start_date, end_date)
                results.append(summary_row(record, **names[key]))
            return results

        rows = self._for_each_account(fetch)
        logger.info(f"Facebook {level} performance: {len(rows)} rows for {start_date} ~ {end_date}")
        return sorted(rows, key=lambda r: r["spend"], reverse=True)

    def get_campaign_performance(self, start_date: str, end_date: str,
                                 campaign_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        return self._level_performance("campaign", start_date, end_date, "campaign", campaign_ids)

    def get_adset_performance(self, start_date: str, end_date: str, adset_ids: Optional[List[str]] = None,
                              campaign_id: str = "") -> List[Dict[str, Any]]:
        if adset_ids:
            return self._level_performance("adset", start_date, end_date, "adset", adset_ids)
        return self._level_performance("adset", start_date, end_date, "campaign", [campaign_id] if campaign_id else None)

    def get_ad_performance(self, start_date: str, end_date: str, ad_ids: Optional[List[str]] = None,
                           campaign_id: str = "", adset_id: str = "") -> List[Dict[str, Any]]:
        """Per-ad totals. The narrowest given filter wins: ad IDs, then ad set, then campaign."""
        if ad_ids:
            return self._level_performance("ad", start_date, end_date, "ad", ad_ids)
        if adset_id:
            return self._level_performance("ad", start_date, end_date, "adset", [adset_id])
        return self._level_performance("ad", start_date, end_date, "campaign", [campaign_id] if campaign_id else None)

    def exchange_info(self) -> Dict[str, Any]:
        return self.rate_service.info()

    # ------------------------------------------------------------------
    # Administrative operations
    # ------------------------------------------------------------------
    def get_campaign_list(self, status_filter: str = "ALL") -> List[Dict[str, Any]]:
        status_filter = _check_status_filter(status_filter)

        def fetch(account):
            params = {
                "fields": "id,name,status,objective,daily_budget,lifetime_budget,created_time,updated_time",
                "limit": PAGE_LIMIT,
            }
            if status_filter != "ALL":
                params["effective_status"] = json.dumps([status_filter])
            rows = self._paginate(f"act_{account['account_id']}/campaigns", params)
            for row in rows:
                row["account_id"] = account["account_id"]
                row["account_name"] = account["name"]
            return rows

        return self._for_each_account(fetch)

    def _toggle(self, object_id: str, status: str) -> Dict[str, Any]:
        status = _check_status(status)
        result = self._post(str(object_id), {"status": status})
        return {"id": str(object_id), "status": status, "success": bool(result.get("success", True))}

    def _bulk_toggle(self, object_ids: List[str], status: str) -> Dict[str, Any]:
        status = _check_status(status)
        results = []
        failures = []
        with ThreadPoolExecutor(max_workers=5) as executor:
            futures = {executor.submit(self._toggle, oid, status): oid for oid in object_ids}
            for future in as_completed(futures):
                oid = futures[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.warning(f"Facebook status change for {oid} failed: {e}")
                    failures.append({"id": str(oid), "error": str(e)})
        return {"status": status, "updated": results, "failed": failures}

    def toggle_campaign_status(self, campaign_id: str, status: str) -> Dict[str, Any]:
        return self._toggle(campaign_id, status)

    def bulk_toggle_campaigns(self, campaign_ids: List[str], status: str) -> Dict[str, Any]:
        return self._bulk_toggle(campaign_ids, status)

    def toggle_adset_status(self, adset_id: str, status: str) -> Dict[str, Any]:
        return self._toggle(adset_id, status)

    def bulk_toggle_adsets(self, adset_ids: List[str], status: str) -> Dict[str, Any]:
        return self._bulk_toggle(adset_ids, status)

    def toggle_ad_status(self, ad_id: str, status: str) -> Dict[str, Any]:
        return self._toggle(ad_id, status)

    def bulk_toggle_ads(self, ad_ids: List[str], status: str) -> Dict[str, Any]:
        return self._bulk_toggle(ad_ids, status)

    def get_adset_list(self, campaign_id: str = "", status_filter: str = "ALL") -> List[Dict[str, Any]]:
        status_filter = _check_status_filter(status_filter)
        params = {
            "fields": "id,name,status,campaign_id,campaign{name},optimization_goal,billing_event,"
                      "daily_budget,created_time",
            "limit": PAGE_LIMIT,
        }
        if status_filter != "ALL":
            params["effective_status"] = json.dumps([status_filter])

        if campaign_id:
            return self._paginate(f"{campaign_id}/adsets", params)
        return self._for_each_account(
            lambda account: self._paginate(f"act_{account['account_id']}/adsets", params)
        )

    def get_ad_list(self, campaign_id: str = "", adset_id: str = "",
                    status_filter: str = "ALL") -> List[Dict[str, Any]]:
        status_filter = _check_status_filter(status_filter)
        params = {
            "fields": "id,name,status,campaign_id,adset_id,campaign{name},adset{name},"
                      "creative{title,body},created_time",
            "limit": PAGE_LIMIT,
        }
        if status_filter != "ALL":
            params["effective_status"] = json.dumps([status_filter])

        if adset_id:
            return self._paginate(f"{adset_id}/ads", params)
        if campaign_id:
            return self._paginate(f"{campaign_id}/ads", params)
        return self._for_each_account(
            lambda account: self._paginate(f"act_{account['account_id']}/ads", params)
        )

    def get_ad_creative_details(self, ad_id: str) -> Dict[str, Any]:
        return self._get(str(ad_id), {
            "fields": "id,name,account_id,creative{id,name,title,body,image_url,thumbnail_url,"
                      "image_hash,object_story_spec,call_to_action_type}",
        })

    def get_ad_images(self, ad_ids: List[str]) -> List[Dict[str, Any]]:
        """Image URLs behind each ad's creative, resolved through the ad image library."""
        results = []
        for ad_id in ad_ids:
            try:
                ad = self.get_ad_creative_details(ad_id)
            except VendorError as e:
                results.append({"ad_id": str(ad_id), "error": str(e), "images": []})
                continue

            creative = ad.get("creative") or {}
            hashes = _collect_image_hashes(creative)
            images = []
            if hashes and ad.get("account_id"):
                payload = self._get(f"act_{_account_id(ad['account_id'])}/adimages", {
                    "hashes": json.dumps(hashes),
                    "fields": "hash,url,permalink_url,width,height,name",
                })
                images = payload.get("data", [])
            elif creative.get("image_url"):
                images = [{"url": creative["image_url"]}]

            results.append({
                "ad_id": str(ad_id),
                "ad_name": ad.get("name", ""),
                "thumbnail_url": creative.get("thumbnail_url"),
                "images": images,
            })
        return results

    def test_connection(self) -> Dict[str, Any]:
        accounts = self.get_ad_accounts()
        return {
            "platform": self.platform,
            "connected": True,
            "accounts": accounts,
            "total_accounts": len(accounts),
        }


def _collect_image_hashes(creative: Dict[str, Any]) -> List[str]:
    hashes = []
    if creative.get("image_hash"):
        hashes.append(creative["image_hash"])
    spec = creative.get("object_story_spec") or {}
    for key in ("link_data", "video_data", "photo_data"):
        data = spec.get(key) or {}
        if data.get("image_hash"):
            hashes.append(data["image_hash"])
        for child in data.get("child_attachments", []) or []:
            if child.get("image_hash"):
                hashes.append(child["image_hash"])
    return list(dict.fromkeys(hashes))
