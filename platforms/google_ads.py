"""Google Ads REST adapter built on the GAQL helpers in ``oauth.google_auth``."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from errors import VendorError
from oauth.google_auth import (
    GOOGLE_ADS_BASE_URL, GoogleAdsAuth, _make_request, execute_gaql,
    format_customer_id, get_headers_with_auto_token,
)
from platforms.models import (
    Ad, Campaign, PerformanceRecord, convert_daily_to_krw, sort_by_spend, summary_row, to_int, to_number,
)

logger = logging.getLogger(__name__)

MICROS = 1_000_000
VALID_STATUSES = ("ENABLED", "PAUSED")
STATUS_FILTERS = ("ENABLED", "PAUSED", "ALL")


def _quote_ids(ids: List[str]) -> str:
    return ", ".join(str(int(i)) for i in ids if str(i).isdigit())


def _check_dates(*values: str) -> None:
    """GAQL date literals must be plain YYYY-MM-DD."""
    for value in values:
        text = str(value)
        try:
            parsed = datetime.strptime(text, "%Y-%m-%d").strftime("%Y-%m-%d")
        except ValueError:
            parsed = None
        if parsed != text:
            raise ValueError(f"Invalid date {value!r}: expected YYYY-MM-DD")


class GoogleAdsClient:
    """Campaign and ad performance for one or more Google Ads customers."""

    platform = "google"

    def __init__(self, auth: GoogleAdsAuth, customer_ids: str, login_customer_id: Optional[str] = None,
                 rate_service=None):
        self.auth = auth
        self.customer_ids = [format_customer_id(c) for c in str(customer_ids or "").split(",") if c.strip()]
        self.login_customer_id = format_customer_id(login_customer_id) if login_customer_id else ""
        self.rate_service = rate_service
        self._customers: Dict[str, Dict[str, str]] = {}

    def _query(self, customer_id: str, query: str) -> List[Dict[str, Any]]:
        return execute_gaql(customer_id, query, self.login_customer_id, auth=self.auth).get("results", [])

    def get_customer_info(self, customer_id: str) -> Dict[str, str]:
        """Descriptive name and currency for a customer, cached per instance."""
        if customer_id not in self._customers:
            rows = self._query(customer_id, "SELECT customer.descriptive_name, customer.currency_code FROM customer")
            customer = rows[0].get("customer", {}) if rows else {}
            self._customers[customer_id] = {
                "customer_id": customer_id,
                "name": customer.get("descriptiveName", f"Customer {customer_id}"),
                "currency": customer.get("currencyCode", "KRW"),
            }
        return self._customers[customer_id]

    def _for_each_customer(self, fetch) -> List[Any]:
        results: List[Any] = []
        errors: List[Exception] = []
        with ThreadPoolExecutor(max_workers=min(5, max(len(self.customer_ids), 1))) as executor:
            futures = {executor.submit(fetch, cid): cid for cid in self.customer_ids}
            for future in as_completed(futures):
                cid = futures[future]
                try:
                    results.extend(future.result())
                except Exception as e:
                    logger.warning(f"Google Ads customer {cid} failed: {e}")
                    errors.append(e)
        if errors and len(errors) == len(self.customer_ids):
            raise errors[-1]
        return results

    def _rate_lookup(self, day: str) -> float:
        return self.rate_service.rate_for_date(day)

    @staticmethod
    def _add_metrics(record, row: Dict[str, Any], start_date: str) -> None:
        metrics = row.get("metrics", {})
        record.add_day(
            row.get("segments", {}).get("date", start_date),
            spend=to_number(metrics.get("costMicros")) / MICROS,
            impressions=to_int(metrics.get("impressions")),
            clicks=to_int(metrics.get("clicks")),
            conversions=to_number(metrics.get("conversions")),
        )

    # ------------------------------------------------------------------
    # Core capabilities
    # ------------------------------------------------------------------
    def list_campaigns_with_date_filter(self, start_date: str, end_date: str) -> List[Campaign]:
        _check_dates(start_date, end_date)
        query = f"""
            SELECT
                campaign.id,
                campaign.name,
                campaign.status,
                segments.date,
                metrics.cost_micros,
                metrics.impressions,
                metrics.clicks,
                metrics.conversions
            FROM campaign
            WHERE segments.date BETWEEN '{start_date}' AND '{end_date}'
                AND metrics.cost_micros > 0
        """

        def fetch(customer_id):
            info = self.get_customer_info(customer_id)
            campaigns: Dict[str, Campaign] = {}
            for row in self._query(customer_id, query):
                c = row.get("campaign", {})
                cid = str(c.get("id", ""))
                campaign = campaigns.get(cid)
                if campaign is None:
                    campaign = Campaign(
                        platform=self.platform,
                        campaign_id=cid,
                        campaign_name=c.get("name", ""),
                        status=c.get("status"),
                        account_id=customer_id,
                        account_name=info["name"],
                    )
                    campaigns[cid] = campaign
                self._add_metrics(campaign, row, start_date)
            for campaign in campaigns.values():
                convert_daily_to_krw(campaign, info["currency"], self._rate_lookup)
                campaign.finalize(start_date, end_date)
            return [c for c in campaigns.values() if c.spend > 0]

        return sort_by_spend(self._for_each_customer(fetch))

    def ad_level_performance(self, campaign_ids: List[str], start_date: str, end_date: str) -> List[Ad]:
        _check_dates(start_date, end_date)
        ids = _quote_ids(campaign_ids or [])
        if not ids:
            return []
        wanted = {str(c) for c in campaign_ids}
        query = f"""
            SELECT
                ad_group_ad.ad.id,
                ad_group_ad.ad.name,
                ad_group.id,
                ad_group.name,
                campaign.id,
                campaign.name,
                segments.date,
                metrics.cost_micros,
                metrics.impressions,
                metrics.clicks,
                metrics.conversions
            FROM ad_group_ad
            WHERE segments.date BETWEEN '{start_date}' AND '{end_date}'
                AND campaign.id IN ({ids})
        """

        def fetch(customer_id):
            info = self.get_customer_info(customer_id)
            ads: Dict[str, Ad] = {}
            for row in self._query(customer_id, query):
                c = row.get("campaign", {})
                if str(c.get("id", "")) not in wanted:
                    continue
                ad_info = row.get("adGroupAd", {}).get("ad", {})
                ad_group = row.get("adGroup", {})
                ad_id = str(ad_info.get("id", ""))
                ad = ads.get(ad_id)
                if ad is None:
                    ad = Ad(
                        platform=self.platform,
                        ad_id=ad_id,
                        ad_name=ad_info.get("name") or f"{ad_group.get('name', '광고')} #{ad_id}",
                        adset_id=str(ad_group.get("id", "")) or None,
                        adset_name=ad_group.get("name"),
                        campaign_id=str(c.get("id", "")),
                        campaign_name=c.get("name", ""),
                        account_id=customer_id,
                        account_name=info["name"],
                    )
                    ads[ad_id] = ad
                self._add_metrics(ad, row, start_date)
            for ad in ads.values():
                convert_daily_to_krw(ad, info["currency"], self._rate_lookup)
                ad.finalize(start_date, end_date)
            return [a for a in ads.values() if a.spend > 0 or a.impressions > 0]

        return sort_by_spend(self._for_each_customer(fetch))

    # ------------------------------------------------------------------
    # Administrative operations
    # ------------------------------------------------------------------
    def get_campaign_list(self, status_filter: str = "ALL") -> List[Dict[str, Any]]:
        status_filter = (status_filter or "ALL").upper()
        if status_filter not in STATUS_FILTERS:
            raise ValueError(f"status_filter must be one of {', '.join(STATUS_FILTERS)}")
        where = f"WHERE campaign.status = '{status_filter}'" if status_filter != "ALL" \
            else "WHERE campaign.status != 'REMOVED'"
        query = f"""
            SELECT
                campaign.id,
                campaign.name,
                campaign.status,
                campaign.advertising_channel_type,
                campaign_budget.amount_micros
            FROM campaign
            {where}
            ORDER BY campaign.name
        """

        def fetch(customer_id):
            campaigns = []
            for row in self._query(customer_id, query):
                c = row.get("campaign", {})
                budget = row.get("campaignBudget", {})
                campaigns.append({
                    "customer_id": customer_id,
                    "campaign_id": str(c.get("id", "")),
                    "name": c.get("name", ""),
                    "status": c.get("status", ""),
                    "channel_type": c.get("advertisingChannelType", ""),
                    "daily_budget": to_number(budget.get("amountMicros")) / MICROS,
                })
            return campaigns

        return self._for_each_customer(fetch)

    def toggle_campaign_status(self, campaign_id: str, status: str, customer_id: str = "") -> Dict[str, Any]:
        status = (status or "").upper()
        if status not in VALID_STATUSES:
            raise ValueError(f"status must be one of {', '.join(VALID_STATUSES)}")
        cid = format_customer_id(customer_id) if customer_id else self.customer_ids[0]
        url = f"{GOOGLE_ADS_BASE_URL}/customers/{cid}/campaigns:mutate"
        body = {
            "operations": [{
                "update": {
                    "resourceName": f"customers/{cid}/campaigns/{campaign_id}",
                    "status": status,
                },
                "updateMask": "status",
            }]
        }
        headers = get_headers_with_auto_token(self.auth, self.login_customer_id)
        resp = _make_request(requests.post, url, headers, body)
        if not resp.ok:
            raise VendorError(
                f"Google Ads campaign status update failed: {resp.status_code} {resp.text}",
                self.platform, code=resp.status_code,
            )
        return {"campaign_id": str(campaign_id), "customer_id": cid, "status": status, "result": resp.json()}

    def get_keyword_performance(self, start_date: str, end_date: str, campaign_id: str = "") -> List[Dict[str, Any]]:
        _check_dates(start_date, end_date)
        campaign_filter = f"AND campaign.id = {int(campaign_id)}" if str(campaign_id).isdigit() else ""
        query = f"""
            SELECT
                campaign.id,
                campaign.name,
                ad_group.name,
                ad_group_criterion.keyword.text,
                ad_group_criterion.keyword.match_type,
                metrics.impressions,
                metrics.clicks,
                metrics.cost_micros,
                metrics.conversions
            FROM keyword_view
            WHERE segments.date BETWEEN '{start_date}' AND '{end_date}'
                {campaign_filter}
            ORDER BY metrics.cost_micros DESC
            LIMIT 500
        """

        def fetch(customer_id):
            info = self.get_customer_info(customer_id)
            keywords = []
            for row in self._query(customer_id, query):
                metrics = row.get("metrics", {})
                keyword = row.get("adGroupCriterion", {}).get("keyword", {})
                cost = to_number(metrics.get("costMicros")) / MICROS
                keywords.append({
                    "customer_id": customer_id,
                    "campaign_id": str(row.get("campaign", {}).get("id", "")),
                    "campaign_name": row.get("campaign", {}).get("name", ""),
                    "ad_group_name": row.get("adGroup", {}).get("name", ""),
                    "keyword": keyword.get("text", ""),
                    "match_type": keyword.get("matchType", ""),
                    "impressions": to_int(metrics.get("impressions")),
                    "clicks": to_int(metrics.get("clicks")),
                    "cost": cost,
                    "currency": info["currency"],
                    "conversions": to_number(metrics.get("conversions")),
                })
            return keywords

        return self._for_each_customer(fetch)

    def get_campaign_performance(self, start_date: str, end_date: str,
                                 campaign_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Per-campaign totals over the window, including campaigns without cost, spend in KRW."""
        _check_dates(start_date, end_date)
        ids = _quote_ids(campaign_ids or [])
        campaign_filter = f"AND campaign.id IN ({ids})" if ids else ""
        query = f"""
            SELECT
                campaign.id,
                campaign.name,
                campaign.status,
                segments.date,
                metrics.cost_micros,
                metrics.impressions,
                metrics.clicks,
                metrics.conversions
            FROM campaign
            WHERE segments.date BETWEEN '{start_date}' AND '{end_date}'
                AND campaign.status != 'REMOVED'
                {campaign_filter}
        """

        def fetch(customer_id):
            info = self.get_customer_info(customer_id)
            records: Dict[str, PerformanceRecord] = {}
            statuses: Dict[str, str] = {}
            for row in self._query(customer_id, query):
                c = row.get("campaign", {})
                cid = str(c.get("id", ""))
                if cid not in records:
                    records[cid] = PerformanceRecord(
                        platform=self.platform,
                        campaign_id=cid,
                        campaign_name=c.get("name", ""),
                        account_id=customer_id,
                        account_name=info["name"],
                    )
                    statuses[cid] = c.get("status", "")
                self._add_metrics(records[cid], row, start_date)
            rows = []
            for cid, record in records.items():
                convert_daily_to_krw(record, info["currency"], self._rate_lookup)
                record.finalize(start_date, end_date)
                rows.append(summary_row(record, campaign_id=cid, campaign_name=record.campaign_name,
                                        status=statuses[cid]))
            return rows

        return sorted(self._for_each_customer(fetch), key=lambda r: r["spend"], reverse=True)

    def get_search_terms(self, start_date: str, end_date: str, campaign_id: str = "",
                         min_impressions: int = 10) -> List[Dict[str, Any]]:
        """Search queries that triggered ads, with at least ``min_impressions`` impressions."""
        _check_dates(start_date, end_date)
        campaign_filter = f"AND campaign.id = {int(campaign_id)}" if str(campaign_id).isdigit() else ""
        query = f"""
            SELECT
                search_term_view.search_term,
                search_term_view.status,
                campaign.id,
                campaign.name,
                ad_group.name,
                metrics.impressions,
                metrics.clicks,
                metrics.cost_micros,
                metrics.conversions
            FROM search_term_view
            WHERE segments.date BETWEEN '{start_date}' AND '{end_date}'
                AND metrics.impressions >= {int(min_impressions or 0)}
                {campaign_filter}
            ORDER BY metrics.impressions DESC
            LIMIT 500
        """

        def fetch(customer_id):
            info = self.get_customer_info(customer_id)
            terms = []
            for row in self._query(customer_id, query):
                metrics = row.get("metrics", {})
                view = row.get("searchTermView", {})
                impressions = to_int(metrics.get("impressions"))
                clicks = to_int(metrics.get("clicks"))
                terms.append({
                    "customer_id": customer_id,
                    "search_term": view.get("searchTerm", ""),
                    "status": view.get("status", ""),
                    "campaign_id": str(row.get("campaign", {}).get("id", "")),
                    "campaign_name": row.get("campaign", {}).get("name", ""),
                    "ad_group_name": row.get("adGroup", {}).get("name", ""),
                    "impressions": impressions,
                    "clicks": clicks,
                    "ctr": round(clicks / impressions * 100, 2) if impressions else 0.0,
                    "cost": to_number(metrics.get("costMicros")) / MICROS,
                    "currency": info["currency"],
                    "conversions": to_number(metrics.get("conversions")),
                })
            return terms

        return sorted(self._for_each_customer(fetch), key=lambda t: t["impressions"], reverse=True)

    def test_connection(self) -> Dict[str, Any]:
        self.auth.get_access_token()
        customers = [self.get_customer_info(cid) for cid in self.customer_ids]
        return {"platform": self.platform, "connected": True, "customers": customers}
