"""Shared constants for the ad intelligence workflow."""

TOOL_ICONS: dict[str, str] = {
    "firecrawl": "🔥",
    "meta-ads": "📱",
    "azure": "📹",
    "llm": "🧠",
    "download": "⬇️",
    "workflow": "⚙️",
}

WORKFLOW_TOOL = "workflow"

DEFAULT_MAX_COMPETITORS = 3
DEFAULT_MAX_VIDEOS_TO_DOWNLOAD = 5
DEFAULT_MAX_VIDEOS_TO_ANALYZE = 3
DEFAULT_ANALYSIS_CONCURRENCY = 3
# Remote video indexing polls for up to ten minutes.
DEFAULT_ANALYSIS_TIMEOUT_SECONDS = 600.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 120.0
DEFAULT_STEP_TIMEOUT_SECONDS = 300.0

META_ADS_LIBRARY_URL = (
    "https://www.facebook.com/ads/library/"
    "?active_status=active&ad_type=all&country=ALL&q={query}"
)
