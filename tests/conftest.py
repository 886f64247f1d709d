"""Shared fixtures: a scripted tool suite and sample workflow input."""

import asyncio

import pytest

from adscout.contracts import (
    AdCreative,
    Competitor,
    DownloadedVideo,
    Synthesis,
    VideoInsight,
)
from adscout.persistence import InMemorySessionRepository


class FakeTools:
    """In-process stand-in for the hosted functions.

    Set ``failures[<operation>]`` to an exception to make that call raise.
    """

    def __init__(self):
        self.competitors = [
            Competitor(
                name="Rival Skincare",
                website="https://rival.example",
                meta_ads_library_url="https://www.facebook.com/ads/library/?q=rival",
            )
        ]
        self.ads = [
            AdCreative(
                ad_archive_id="101",
                page_name="Rival Skincare",
                body_text="Glow in 7 days",
                media_type="video",
                video_url="https://video.example/101.mp4",
            ),
            AdCreative(
                ad_archive_id="102",
                page_name="Rival Skincare",
                body_text="Static offer",
                media_type="image",
                image_url="https://img.example/102.jpg",
            ),
        ]
        self.synthesis = Synthesis(
            executive_summary="Rivals lean on UGC testimonials.",
            suggested_scripts=[{"title": "Morning routine"}],
        )
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.extract_urls: list[str] = []
        self.synthesis_request: dict | None = None
        self.analysis_delay = 0.0
        self.active_analyses = 0
        self.max_active_analyses = 0

    def _call(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    async def research_competitors(self, query, max_results, session_id):
        self._call("research")
        return list(self.competitors)

    async def extract_ads(self, urls, session_id):
        self._call("extract")
        self.extract_urls = list(urls)
        return list(self.ads)

    async def download_videos(self, video_urls, session_id):
        self._call("download")
        return [
            DownloadedVideo(
                original_url=url,
                public_url=url.replace("video.example", "storage.example"),
            )
            for url in video_urls
        ]

    async def analyze_video(self, video, session_id):
        self._call("analyze")
        self.active_analyses += 1
        self.max_active_analyses = max(self.max_active_analyses, self.active_analyses)
        try:
            await asyncio.sleep(self.analysis_delay)
        finally:
            self.active_analyses -= 1
        return VideoInsight(video_url=video.url, analysis={"summary": "talking head"})

    async def synthesize(self, request, session_id):
        self._call("synthesize")
        self.synthesis_request = request
        return self.synthesis


@pytest.fixture
def fake_tools():
    return FakeTools()


@pytest.fixture
def repo():
    return InMemorySessionRepository()


@pytest.fixture
def workflow_input():
    return {
        "brandName": "Glow Co",
        "productCategory": "skincare",
        "targetAudience": "women 25-40",
        "brandVoice": "warm",
        "keyMessages": ["it is fully vegan"],
        "competitorQuery": "vegan skincare",
        "userId": "user-1",
    }
