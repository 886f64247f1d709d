"""Step table for the ad intelligence workflow."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from . import fallbacks
from .collaborators import AdIntelligenceTools
from .config import PipelineConfig
from .contracts import (
    AdCreative,
    Competitor,
    DownloadedVideo,
    Synthesis,
    VideoInsight,
    WorkflowArtifact,
    WorkflowInput,
)
from .errors import CollaboratorError, describe_error

logger = logging.getLogger(__name__)

# Lets per-video timeouts fire before the step-level bound.
ANALYSIS_STEP_SLACK_SECONDS = 5.0


@dataclass
class StepContext:
    """Everything a step can read while it runs."""

    session_id: str
    input: WorkflowInput
    artifact: WorkflowArtifact
    tools: AdIntelligenceTools
    config: PipelineConfig = field(default_factory=PipelineConfig)


@dataclass(frozen=True)
class StepDefinition:
    """One row of the pipeline table.

    ``run`` performs the remote work and returns the value for ``slot``.
    ``fallback`` supplies the slot value when the step fails; a step that is
    not ``tolerable`` and has no fallback aborts the run. ``nothing_to_do``
    returns a reason when the step has no input to process. ``timeout``
    returns the total bound in seconds; without it the pipeline-wide
    ``step_timeout_seconds`` applies.
    """

    key: str
    name: str
    tool: str
    slot: str
    start_progress: int
    end_progress: int
    run: Callable[[StepContext], Awaitable[Any]]
    tolerable: bool = True
    fallback: Optional[Callable[[StepContext], Any]] = None
    nothing_to_do: Optional[Callable[[StepContext], Optional[str]]] = None
    start_note: Optional[Callable[[StepContext], str]] = None
    input_summary: Optional[Callable[[StepContext], dict[str, Any]]] = None
    summarize: Optional[Callable[[Any], dict[str, Any]]] = None
    describe: Optional[Callable[[Any], str]] = None
    timeout: Optional[Callable[[StepContext], float]] = None


# ----------------------------------------------------------------------
# Deep research
def research_query(data: WorkflowInput) -> str:
    return " ".join(
        part for part in (data.competitor_query, data.product_category) if part
    ) + " competitors meta ads"


async def research_competitors(ctx: StepContext) -> List[Competitor]:
    max_results = ctx.input.max_competitors or ctx.config.max_competitors
    competitors = await ctx.tools.research_competitors(
        research_query(ctx.input), max_results, ctx.session_id
    )
    if not competitors:
        logger.info("Research returned no competitors, using synthetic competitor")
        return fallbacks.synthetic_competitors(ctx)
    return competitors


# ----------------------------------------------------------------------
# Meta ads extraction
def ads_library_urls(ctx: StepContext) -> List[str]:
    """Ads library URLs from attached links first, then from competitors."""
    urls = [a.url for a in ctx.input.attached_urls if "facebook.com" in a.url]
    for competitor in ctx.artifact.competitors:
        url = competitor.meta_ads_library_url
        if url and "facebook.com" in url:
            urls.append(url)
    return list(dict.fromkeys(urls))


async def extract_ads(ctx: StepContext) -> List[AdCreative]:
    return await ctx.tools.extract_ads(ads_library_urls(ctx), ctx.session_id)


# ----------------------------------------------------------------------
# Video download
async def download_videos(ctx: StepContext) -> List[DownloadedVideo]:
    urls = [ad.video_url for ad in ctx.artifact.video_ads]
    urls = urls[: ctx.config.max_videos_to_download]
    downloaded = await ctx.tools.download_videos(urls, ctx.session_id)
    if urls and not downloaded:
        raise CollaboratorError("download", f"none of {len(urls)} videos downloaded")
    return downloaded


# ----------------------------------------------------------------------
# Video analysis
async def analyze_videos(ctx: StepContext) -> List[VideoInsight]:
    """Analyze downloaded videos with bounded concurrency.

    Individual failures are dropped; the step fails only when every video
    failed.
    """
    videos = ctx.artifact.videos[: ctx.config.max_videos_to_analyze]
    semaphore = asyncio.Semaphore(ctx.config.analysis_concurrency)
    timeout = ctx.config.analysis_timeout_seconds

    async def _analyze(index: int, video: DownloadedVideo) -> Optional[VideoInsight]:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    ctx.tools.analyze_video(video, ctx.session_id), timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Video {index + 1}/{len(videos)} analysis timed out after {timeout}s"
                )
            except Exception as exc:
                logger.warning(
                    f"Video {index + 1}/{len(videos)} analysis failed: {describe_error(exc)}"
                )
            return None

    results = await asyncio.gather(*(_analyze(i, v) for i, v in enumerate(videos)))
    insights = [r for r in results if r is not None]
    if videos and not insights:
        raise CollaboratorError("azure", f"all {len(videos)} video analyses failed")
    return insights


def analysis_step_timeout(ctx: StepContext) -> float:
    """Per-video bound times the number of batches the semaphore allows."""
    count = min(len(ctx.artifact.videos), ctx.config.max_videos_to_analyze)
    batches = max(1, math.ceil(count / ctx.config.analysis_concurrency))
    return ctx.config.analysis_timeout_seconds * batches + ANALYSIS_STEP_SLACK_SECONDS


# ----------------------------------------------------------------------
# Synthesis
def synthesis_request(ctx: StepContext) -> dict[str, Any]:
    data = ctx.input
    artifact = ctx.artifact
    return {
        "brandMemory": {
            "brandName": data.brand_name,
            "productCategory": data.product_category,
            "targetAudience": data.target_audience,
            "brandVoice": data.brand_voice,
            "keyMessages": data.key_messages,
        },
        "competitorData": {
            "searchQuery": data.competitor_query,
            "competitors": [c.model_dump(mode="json", by_alias=True) for c in artifact.competitors],
        },
        "metaAds": [ad.model_dump(mode="json", by_alias=True) for ad in artifact.ads],
        "videoInsights": [
            i.model_dump(mode="json", by_alias=True) for i in artifact.insights
        ],
    }


async def synthesize(ctx: StepContext) -> Synthesis:
    return await ctx.tools.synthesize(synthesis_request(ctx), ctx.session_id)


def _summarize_synthesis(result: Synthesis) -> dict[str, Any]:
    return {
        "hasAnalysis": True,
        "scriptsCount": len(result.suggested_scripts),
        "adAnalysesCount": len(result.ad_analyses),
    }


def build_ad_intelligence_pipeline() -> List[StepDefinition]:
    """Return the ordered step table of the ad intelligence workflow."""
    return [
        StepDefinition(
            key="deep_research",
            name="Deep Research",
            tool="firecrawl",
            slot="competitors",
            start_progress=10,
            end_progress=25,
            run=research_competitors,
            fallback=fallbacks.synthetic_competitors,
            start_note=lambda ctx: "Searching for competitors...",
            input_summary=lambda ctx: {"query": ctx.input.competitor_query},
            summarize=lambda c: {
                "competitorsFound": len(c),
                "competitors": [x.model_dump(mode="json", by_alias=True) for x in c],
            },
            describe=lambda c: f"Found {len(c)} competitors",
        ),
        StepDefinition(
            key="meta_ads_extraction",
            name="Meta Ads Extraction",
            tool="meta-ads",
            slot="ads",
            start_progress=30,
            end_progress=45,
            run=extract_ads,
            fallback=fallbacks.no_ads,
            nothing_to_do=lambda ctx: (
                None if ads_library_urls(ctx) else "No ads library URLs to scrape"
            ),
            start_note=lambda ctx: "Extracting ad creatives...",
            input_summary=lambda ctx: {
                "competitorCount": len(ctx.artifact.competitors),
                "urls": len(ads_library_urls(ctx)),
            },
            summarize=lambda ads: {"adsExtracted": len(ads)},
            describe=lambda ads: f"Extracted {len(ads)} ads",
        ),
        StepDefinition(
            key="video_download",
            name="Video Download",
            tool="download",
            slot="videos",
            start_progress=50,
            end_progress=60,
            run=download_videos,
            fallback=fallbacks.no_videos,
            nothing_to_do=lambda ctx: (
                None if ctx.artifact.video_ads else "No video ads found"
            ),
            start_note=lambda ctx: f"Downloading {len(ctx.artifact.video_ads)} videos...",
            input_summary=lambda ctx: {"videoCount": len(ctx.artifact.video_ads)},
            summarize=lambda v: {"downloaded": len(v)},
            describe=lambda v: f"Downloaded {len(v)} videos",
        ),
        StepDefinition(
            key="video_analysis",
            name="Video Analysis",
            tool="azure",
            slot="insights",
            start_progress=65,
            end_progress=80,
            run=analyze_videos,
            fallback=fallbacks.no_insights,
            nothing_to_do=lambda ctx: (
                None if ctx.artifact.videos else "Skipped - no videos"
            ),
            start_note=lambda ctx: "Analyzing video content...",
            input_summary=lambda ctx: {"videoCount": len(ctx.artifact.videos)},
            summarize=lambda i: {"analyzedCount": len(i)},
            describe=lambda i: f"Analyzed {len(i)} videos",
            timeout=analysis_step_timeout,
        ),
        StepDefinition(
            key="llm_synthesis",
            name="AI Synthesis",
            tool="llm",
            slot="synthesis",
            start_progress=85,
            end_progress=100,
            run=synthesize,
            tolerable=False,
            fallback=fallbacks.local_synthesis,
            start_note=lambda ctx: "Generating insights and recommendations...",
            input_summary=lambda ctx: {
                "dataPoints": len(ctx.artifact.competitors)
                + len(ctx.artifact.ads)
                + len(ctx.artifact.insights)
            },
            summarize=_summarize_synthesis,
            describe=lambda s: "Analysis complete",
        ),
    ]
