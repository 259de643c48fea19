"""Google Ads tools."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastmcp import Context
from mcp_instance import mcp
from config import settings
from platforms import registry
from platforms.google_ads import GoogleAdsClient

logger = logging.getLogger(__name__)


def _client() -> GoogleAdsClient:
    if not settings.google_ads_developer_token:
        raise ValueError("Google Ads Developer Token is not set in environment variables.")
    if not settings.google_configured:
        raise ValueError("Google Ads OAuth credentials or customer ID are not set in environment variables.")
    return registry.get("google")


@mcp.tool
async def google_get_campaign_list_with_date_filter(
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Campaigns with cost between start_date and end_date (YYYY-MM-DD), spend in KRW."""
    client = _client()
    if ctx:
        await ctx.info(f"Fetching Google Ads campaigns for {start_date} ~ {end_date}...")
    try:
        campaigns = await asyncio.to_thread(client.list_campaigns_with_date_filter, start_date, end_date)
        if ctx:
            await ctx.info(f"Found {len(campaigns)} campaigns with spend.")
        return {"campaigns": [c.to_dict() for c in campaigns], "total_campaigns": len(campaigns)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching Google Ads campaigns: {e}")
        raise


@mcp.tool
async def google_get_ad_level_performance(
    campaign_ids: List[str],
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-ad daily performance for the given campaign IDs, spend in KRW."""
    client = _client()
    if ctx:
        await ctx.info(f"Fetching ad performance for {len(campaign_ids)} campaigns...")
    try:
        ads = await asyncio.to_thread(client.ad_level_performance, campaign_ids, start_date, end_date)
        return {"ads": [a.to_dict() for a in ads], "total_ads": len(ads)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching Google Ads ad performance: {e}")
        raise


@mcp.tool
async def google_get_campaign_performance(
    start_date: str,
    end_date: str,
    campaign_ids: Optional[List[str]] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-campaign totals and CTR/CPC/CPM for the window, spend in KRW. campaign_ids narrows the result."""
    client = _client()
    if ctx:
        await ctx.info(f"Fetching Google Ads campaign performance for {start_date} ~ {end_date}...")
    try:
        campaigns = await asyncio.to_thread(client.get_campaign_performance, start_date, end_date, campaign_ids)
        return {"campaigns": campaigns, "total_campaigns": len(campaigns)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching Google Ads campaign performance: {e}")
        raise


@mcp.tool
async def google_get_campaign_list(status_filter: str = "ALL", ctx: Context = None) -> Dict[str, Any]:
    """List campaigns. status_filter: ENABLED, PAUSED or ALL (removed campaigns excluded)."""
    client = _client()
    try:
        campaigns = await asyncio.to_thread(client.get_campaign_list, status_filter)
        return {"campaigns": campaigns, "total_campaigns": len(campaigns)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error listing Google Ads campaigns: {e}")
        raise


@mcp.tool
async def google_toggle_campaign_status(
    campaign_id: str,
    status: str,
    customer_id: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Set a campaign to ENABLED or PAUSED."""
    client = _client()
    if ctx:
        await ctx.info(f"Setting Google Ads campaign {campaign_id} to {status}...")
    try:
        return await asyncio.to_thread(client.toggle_campaign_status, campaign_id, status, customer_id)
    except Exception as e:
        if ctx:
            await ctx.error(f"Error updating campaign {campaign_id}: {e}")
        raise


@mcp.tool
async def google_get_keyword_performance(
    start_date: str,
    end_date: str,
    campaign_id: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Keyword-level impressions, clicks, cost and conversions (cost in account currency)."""
    client = _client()
    try:
        keywords = await asyncio.to_thread(client.get_keyword_performance, start_date, end_date, campaign_id)
        return {"keywords": keywords, "total_keywords": len(keywords)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching keyword performance: {e}")
        raise


@mcp.tool
async def google_get_search_terms(
    start_date: str,
    end_date: str,
    campaign_id: str = "",
    min_impressions: int = 10,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Search terms report: queries with at least min_impressions impressions (cost in account currency)."""
    client = _client()
    try:
        terms = await asyncio.to_thread(client.get_search_terms, start_date, end_date, campaign_id, min_impressions)
        return {"search_terms": terms, "total_search_terms": len(terms)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching search terms: {e}")
        raise


@mcp.tool
async def google_test_connection(ctx: Context = None) -> Dict[str, Any]:
    """Refresh the OAuth token and read each configured customer."""
    client = _client()
    try:
        return await asyncio.to_thread(client.test_connection)
    except Exception as e:
        if ctx:
            await ctx.error(f"Google Ads connection test failed: {e}")
        raise
