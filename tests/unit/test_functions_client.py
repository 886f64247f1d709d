import json

import httpx
import pytest

from adscout.collaborators import FunctionsClient, FunctionsToolSuite
from adscout.config import FunctionsConfig
from adscout.contracts import DownloadedVideo
from adscout.errors import CollaboratorError


def _client(handler, api_key=None):
    return FunctionsClient(
        "https://functions.example/v1",
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_invoke_posts_json_with_auth_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "competitors": []})

    async with _client(handler, api_key="secret") as client:
        data = await client.invoke("mcp-firecrawl-tool", {"query": "vegan"})

    assert data == {"success": True, "competitors": []}
    assert seen["url"] == "https://functions.example/v1/mcp-firecrawl-tool"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"query": "vegan"}


@pytest.mark.asyncio
async def test_invoke_raises_on_unsuccessful_payload():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "quota exceeded"})

    async with _client(handler) as client:
        with pytest.raises(CollaboratorError) as excinfo:
            await client.invoke("firecrawl-meta-ads-scraper", {})
    assert excinfo.value.tool == "firecrawl-meta-ads-scraper"
    assert "quota exceeded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_invoke_raises_on_http_error():
    def handler(request):
        return httpx.Response(500, json={"error": "internal"})

    async with _client(handler) as client:
        with pytest.raises(CollaboratorError, match="HTTP 500: internal"):
            await client.invoke("llm-synthesis-engine", {})


@pytest.mark.asyncio
async def test_invoke_raises_on_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(CollaboratorError, match="request failed"):
            await client.invoke("video-download-service", {})


def test_from_config_requires_base_url():
    with pytest.raises(ValueError):
        FunctionsClient.from_config(FunctionsConfig())


@pytest.mark.asyncio
async def test_tool_suite_maps_responses():
    def handler(request):
        name = request.url.path.rsplit("/", 1)[-1]
        if name == "mcp-firecrawl-tool":
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "competitors": [
                        {"name": "Rival", "metaAdsUrl": "https://www.facebook.com/ads/library/?q=r"}
                    ],
                },
            )
        if name == "firecrawl-meta-ads-scraper":
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "ads": [
                        {"adArchiveId": "1", "adCopy": "Hi", "video_hd_url": "https://v/1.mp4"},
                        {"adArchiveId": "2", "mediaType": "image"},
                    ],
                },
            )
        if name == "video-download-service":
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "results": [
                        {"success": True, "originalUrl": "https://v/1.mp4", "publicUrl": "https://s/1.mp4"},
                        {"success": False, "originalUrl": "https://v/2.mp4", "error": "404"},
                    ],
                },
            )
        if name == "azure-video-analyzer":
            body = json.loads(request.content)
            assert body["waitForCompletion"] is True
            assert body["videoName"] == "1.mp4"
            return httpx.Response(200, json={"success": True, "transcript": "hello"})
        return httpx.Response(
            200,
            json={"success": True, "synthesis": {"executiveSummary": "Summary", "suggestedScripts": []}},
        )

    async with _client(handler) as client:
        suite = FunctionsToolSuite(client, analysis_timeout=5)
        competitors = await suite.research_competitors("vegan", 3, "s1")
        ads = await suite.extract_ads(["https://www.facebook.com/ads/library/?q=r"], "s1")
        videos = await suite.download_videos(["https://v/1.mp4", "https://v/2.mp4"], "s1")
        insight = await suite.analyze_video(videos[0], "s1")
        synthesis = await suite.synthesize({"brandMemory": {}}, "s1")

    assert competitors[0].meta_ads_library_url == "https://www.facebook.com/ads/library/?q=r"
    assert ads[0].body_text == "Hi"
    assert ads[0].has_video and not ads[1].has_video
    assert videos == [DownloadedVideo(original_url="https://v/1.mp4", public_url="https://s/1.mp4")]
    assert insight.video_url == "https://s/1.mp4"
    assert insight.analysis == {"transcript": "hello"}
    assert synthesis.executive_summary == "Summary"
    assert synthesis.source == "llm"
