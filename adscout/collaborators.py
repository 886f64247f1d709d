"""Remote collaborators used by the ad intelligence pipeline.

Every collaborator accepts a small JSON request and answers
``{"success": bool, ...payload}``. A non-success answer is raised as
:class:`~adscout.errors.CollaboratorError`, the same as a transport failure.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol
from urllib.parse import urlparse

import httpx

from .config import FunctionsConfig
from .constants import DEFAULT_ANALYSIS_TIMEOUT_SECONDS
from .contracts import AdCreative, Competitor, DownloadedVideo, Synthesis, VideoInsight
from .errors import CollaboratorError

logger = logging.getLogger(__name__)

RESEARCH_FUNCTION = "mcp-firecrawl-tool"
ADS_SCRAPER_FUNCTION = "firecrawl-meta-ads-scraper"
VIDEO_DOWNLOAD_FUNCTION = "video-download-service"
VIDEO_ANALYZER_FUNCTION = "azure-video-analyzer"
SYNTHESIS_FUNCTION = "llm-synthesis-engine"


class AdIntelligenceTools(Protocol):
    """Remote operations the pipeline depends on."""

    async def research_competitors(
        self, query: str, max_results: int, session_id: str
    ) -> list[Competitor]:
        """Search the web for competitors matching ``query``."""

    async def extract_ads(self, urls: list[str], session_id: str) -> list[AdCreative]:
        """Scrape ad creatives from ads library pages."""

    async def download_videos(
        self, video_urls: list[str], session_id: str
    ) -> list[DownloadedVideo]:
        """Copy ad videos to storage, returning the successful downloads."""

    async def analyze_video(self, video: DownloadedVideo, session_id: str) -> VideoInsight:
        """Run video indexing on one downloaded video."""

    async def synthesize(self, request: dict[str, Any], session_id: str) -> Synthesis:
        """Produce the final recommendation from all gathered data."""


class FunctionsClient:
    """Thin async client for hosted serverless functions."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            headers["apikey"] = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: FunctionsConfig, **kwargs: Any) -> "FunctionsClient":
        if not config.base_url:
            raise ValueError("functions.base_url is not configured")
        return cls(
            config.base_url,
            api_key=config.api_key,
            timeout=config.timeout_seconds,
            **kwargs,
        )

    async def invoke(
        self, name: str, body: dict[str, Any], timeout: Optional[float] = None
    ) -> dict[str, Any]:
        """POST ``body`` to function ``name`` and return its JSON payload."""
        kwargs: dict[str, Any] = {"json": body}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.post(name, **kwargs)
        except httpx.HTTPError as exc:
            raise CollaboratorError(name, f"request failed: {exc!r}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            detail = data.get("error") if isinstance(data, dict) else response.text
            raise CollaboratorError(name, f"HTTP {response.status_code}: {detail}")
        if not isinstance(data, dict):
            raise CollaboratorError(name, "response is not a JSON object")
        if data.get("success") is False:
            raise CollaboratorError(name, str(data.get("error") or "unsuccessful response"))
        return data

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "FunctionsClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class FunctionsToolSuite(AdIntelligenceTools):
    """``AdIntelligenceTools`` backed by hosted functions."""

    def __init__(
        self,
        client: FunctionsClient,
        analysis_timeout: float = DEFAULT_ANALYSIS_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._analysis_timeout = analysis_timeout

    async def research_competitors(
        self, query: str, max_results: int, session_id: str
    ) -> list[Competitor]:
        data = await self._client.invoke(
            RESEARCH_FUNCTION,
            {"query": query, "max_results": max_results, "session_id": session_id},
        )
        return [Competitor.model_validate(c) for c in data.get("competitors") or []]

    async def extract_ads(self, urls: list[str], session_id: str) -> list[AdCreative]:
        data = await self._client.invoke(
            ADS_SCRAPER_FUNCTION, {"urls": urls, "sessionId": session_id}
        )
        return [AdCreative.model_validate(ad) for ad in data.get("ads") or []]

    async def download_videos(
        self, video_urls: list[str], session_id: str
    ) -> list[DownloadedVideo]:
        data = await self._client.invoke(
            VIDEO_DOWNLOAD_FUNCTION, {"videoUrls": video_urls, "sessionId": session_id}
        )
        results = data.get("results") or []
        failed = [r for r in results if not r.get("success")]
        for item in failed:
            logger.warning(
                f"Download of {item.get('originalUrl')} failed: {item.get('error')}"
            )
        return [
            DownloadedVideo.model_validate(
                {k: v for k, v in r.items() if k not in ("success", "error")}
            )
            for r in results
            if r.get("success")
        ]

    async def analyze_video(self, video: DownloadedVideo, session_id: str) -> VideoInsight:
        video_name = urlparse(video.url).path.rsplit("/", 1)[-1] or "ad-video"
        data = await self._client.invoke(
            VIDEO_ANALYZER_FUNCTION,
            {
                "videoUrl": video.url,
                "videoName": video_name,
                "sessionId": session_id,
                "waitForCompletion": True,
            },
            timeout=self._analysis_timeout,
        )
        data.pop("success", None)
        return VideoInsight(video_url=video.url, analysis=data)

    async def synthesize(self, request: dict[str, Any], session_id: str) -> Synthesis:
        data = await self._client.invoke(
            SYNTHESIS_FUNCTION, {**request, "session_id": session_id}
        )
        payload = data.get("synthesis") or data
        if isinstance(payload, dict):
            payload = {k: v for k, v in payload.items() if k != "success"}
        return Synthesis.model_validate(payload)
