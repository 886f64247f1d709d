"""Fallback values used when a pipeline step fails.

Each function receives the step context and returns a well-typed value for
the step's artifact slot, so later steps never see a missing input.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List
from urllib.parse import quote

from .constants import META_ADS_LIBRARY_URL
from .contracts import AdCreative, Competitor, DownloadedVideo, Synthesis, VideoInsight

if TYPE_CHECKING:
    from .pipeline import StepContext

MAX_FALLBACK_AD_ANALYSES = 5


def ads_library_search_url(query: str) -> str:
    return META_ADS_LIBRARY_URL.format(query=quote(query, safe=""))


def synthetic_competitors(ctx: "StepContext") -> List[Competitor]:
    """A single competitor derived from the brand name."""
    return [
        Competitor(
            name=f"{ctx.input.brand_name} Competitor",
            meta_ads_library_url=ads_library_search_url(ctx.input.competitor_query),
        )
    ]


def no_ads(ctx: "StepContext") -> List[AdCreative]:
    return []


def no_videos(ctx: "StepContext") -> List[DownloadedVideo]:
    return []


def no_insights(ctx: "StepContext") -> List[VideoInsight]:
    return []


def local_synthesis(ctx: "StepContext") -> Synthesis:
    """Deterministic synthesis assembled from the input and the artifact so far."""
    data = ctx.input
    artifact = ctx.artifact
    category = data.product_category or "product"
    key_message = data.key_messages[0] if data.key_messages else "we care about quality"

    ad_analyses = [
        {
            "adId": ad.ad_archive_id or f"ad_{i}",
            "advertiser": ad.page_name,
            "hookAnalysis": (ad.body_text or "")[:100] or "Hook analysis unavailable",
            "ctaEffectiveness": "Analysis unavailable",
        }
        for i, ad in enumerate(artifact.ads[:MAX_FALLBACK_AD_ANALYSES])
    ]
    return Synthesis(
        executive_summary=(
            f"Analysis for {data.brand_name} based on {len(artifact.competitors)} "
            f"competitors, {len(artifact.ads)} ads and "
            f"{len(artifact.insights)} analyzed videos."
        ),
        ad_analyses=ad_analyses,
        suggested_scripts=[
            {
                "title": f"{data.brand_name} UGC Script",
                "hook": f"Looking for the best {category}?",
                "problem": f"Most {category} options don't deliver.",
                "solution": f"{data.brand_name} is different because {key_message}.",
                "cta": "Try it today!",
                "duration": "30s",
            }
        ],
        source="fallback",
    )
