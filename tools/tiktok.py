"""TikTok Ads tools."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastmcp import Context
from mcp_instance import mcp
from config import settings
from platforms import registry
from platforms.tiktok import TikTokAdsClient

logger = logging.getLogger(__name__)


def _client() -> TikTokAdsClient:
    if not settings.tiktok_configured:
        raise ValueError("TIKTOK_ACCESS_TOKEN and TIKTOK_ADVERTISER_ID must be set in environment variables.")
    return registry.get("tiktok")


@mcp.tool
async def tiktok_get_campaign_list_with_date_filter(
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Campaigns with spend between start_date and end_date (YYYY-MM-DD), spend in KRW."""
    client = _client()
    if ctx:
        await ctx.info(f"Fetching TikTok campaigns for {start_date} ~ {end_date}...")
    try:
        campaigns = await asyncio.to_thread(client.list_campaigns_with_date_filter, start_date, end_date)
        return {"campaigns": [c.to_dict() for c in campaigns], "total_campaigns": len(campaigns)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching TikTok campaigns: {e}")
        raise


@mcp.tool
async def tiktok_get_ad_level_performance(
    campaign_ids: List[str],
    start_date: str,
    end_date: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-ad daily performance for the given campaign IDs, spend in KRW."""
    client = _client()
    try:
        ads = await asyncio.to_thread(client.ad_level_performance, campaign_ids, start_date, end_date)
        return {"ads": [a.to_dict() for a in ads], "total_ads": len(ads)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching TikTok ad performance: {e}")
        raise


@mcp.tool
async def tiktok_get_campaign_performance(
    start_date: str,
    end_date: str,
    campaign_ids: Optional[List[str]] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-campaign totals for the window, spend in KRW. campaign_ids narrows the result."""
    client = _client()
    if ctx:
        await ctx.info(f"Fetching TikTok campaign performance for {start_date} ~ {end_date}...")
    try:
        campaigns = await asyncio.to_thread(client.get_campaign_performance, start_date, end_date, campaign_ids)
        return {"campaigns": campaigns, "total_campaigns": len(campaigns)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching TikTok campaign performance: {e}")
        raise


@mcp.tool
async def tiktok_get_ad_group_performance(
    start_date: str,
    end_date: str,
    campaign_id: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-ad-group totals, optionally within one campaign."""
    client = _client()
    try:
        ad_groups = await asyncio.to_thread(client.get_ad_group_performance, start_date, end_date, campaign_id)
        return {"ad_groups": ad_groups, "total_ad_groups": len(ad_groups)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching TikTok ad group performance: {e}")
        raise


@mcp.tool
async def tiktok_get_creative_performance(
    start_date: str,
    end_date: str,
    ad_group_id: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Per-creative (ad) totals, optionally within one ad group."""
    client = _client()
    try:
        creatives = await asyncio.to_thread(client.get_creative_performance, start_date, end_date, ad_group_id)
        return {"creatives": creatives, "total_creatives": len(creatives)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error fetching TikTok creative performance: {e}")
        raise


@mcp.tool
async def tiktok_get_campaign_list(status_filter: str = "ALL", ctx: Context = None) -> Dict[str, Any]:
    """List campaigns. status_filter: ENABLE, DISABLE or ALL."""
    client = _client()
    try:
        campaigns = await asyncio.to_thread(client.get_campaign_list, status_filter)
        return {"campaigns": campaigns, "total_campaigns": len(campaigns)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error listing TikTok campaigns: {e}")
        raise


@mcp.tool
async def tiktok_toggle_campaign_status(campaign_id: str, status: str, ctx: Context = None) -> Dict[str, Any]:
    """Set a campaign to ENABLE or DISABLE."""
    client = _client()
    if ctx:
        await ctx.info(f"Setting TikTok campaign {campaign_id} to {status}...")
    try:
        return await asyncio.to_thread(client.toggle_campaign_status, campaign_id, status)
    except Exception as e:
        if ctx:
            await ctx.error(f"Error updating TikTok campaign {campaign_id}: {e}")
        raise


@mcp.tool
async def tiktok_get_ad_group_list(campaign_id: str = "", ctx: Context = None) -> Dict[str, Any]:
    """List ad groups, optionally within one campaign."""
    client = _client()
    try:
        ad_groups = await asyncio.to_thread(client.get_ad_group_list, campaign_id)
        return {"ad_groups": ad_groups, "total_ad_groups": len(ad_groups)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Error listing TikTok ad groups: {e}")
        raise


@mcp.tool
async def tiktok_test_connection(ctx: Context = None) -> Dict[str, Any]:
    """Read advertiser info to verify the access token."""
    client = _client()
    try:
        return await asyncio.to_thread(client.test_connection)
    except Exception as e:
        if ctx:
            await ctx.error(f"TikTok connection test failed: {e}")
        raise
