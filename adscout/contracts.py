"""Typed contracts for workflow input, artifact slots and result envelopes."""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model accepting snake_case or camelCase and dumping camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


class AttachedUrl(WireModel):
    url: str
    title: Optional[str] = None


class WorkflowInput(WireModel):
    """Caller-supplied input for one ad intelligence run."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    brand_name: str
    product_category: str = ""
    target_audience: str = ""
    brand_voice: str = ""
    key_messages: List[str] = Field(default_factory=list)
    competitor_query: str
    max_competitors: Optional[int] = Field(default=None, ge=1)
    session_id: Optional[str] = None
    user_id: str
    attached_urls: List[AttachedUrl] = Field(default_factory=list)

    @field_validator("brand_name", "competitor_query", "user_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class Competitor(WireModel):
    name: str
    website: Optional[str] = None
    meta_ads_library_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "meta_ads_library_url", "metaAdsLibraryUrl", "metaAdsUrl"
        ),
    )


class AdCreative(WireModel):
    """One ad scraped from an ads library page."""

    ad_archive_id: Optional[str] = None
    page_name: Optional[str] = None
    body_text: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("body_text", "bodyText", "adCopy", "ad_copy"),
    )
    cta_text: Optional[str] = None
    media_type: str = "unknown"
    image_url: Optional[str] = None
    video_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "video_url", "videoUrl", "video_hd_url", "video_sd_url"
        ),
    )

    @property
    def has_video(self) -> bool:
        return bool(self.video_url)


class DownloadedVideo(WireModel):
    original_url: str
    public_url: Optional[str] = None
    storage_path: Optional[str] = None
    file_size: Optional[int] = None
    content_type: Optional[str] = None

    @property
    def url(self) -> str:
        return self.public_url or self.original_url


class VideoInsight(WireModel):
    video_url: str
    analysis: dict[str, Any] = Field(default_factory=dict)


class Synthesis(WireModel):
    """Final recommendation object produced by the synthesis step."""

    executive_summary: Optional[str] = None
    ad_analyses: List[dict[str, Any]] = Field(default_factory=list)
    suggested_scripts: List[dict[str, Any]] = Field(default_factory=list)
    source: Literal["llm", "fallback"] = "llm"


class WorkflowArtifact(WireModel):
    """Accumulated result of the pipeline, one slot per step."""

    competitors: List[Competitor] = Field(default_factory=list)
    ads: List[AdCreative] = Field(default_factory=list)
    videos: List[DownloadedVideo] = Field(default_factory=list)
    insights: List[VideoInsight] = Field(default_factory=list)
    synthesis: Optional[Synthesis] = None

    @property
    def video_ads(self) -> List[AdCreative]:
        return [ad for ad in self.ads if ad.has_video]


class RunMetadata(WireModel):
    competitors_found: int
    ads_extracted: int
    videos_downloaded: int
    videos_analyzed: int
    total_duration_ms: int
    degraded_steps: List[str] = Field(default_factory=list)

    @classmethod
    def from_artifact(
        cls,
        artifact: WorkflowArtifact,
        total_duration_ms: int,
        degraded_steps: Optional[List[str]] = None,
    ) -> "RunMetadata":
        return cls(
            competitors_found=len(artifact.competitors),
            ads_extracted=len(artifact.ads),
            videos_downloaded=len(artifact.videos),
            videos_analyzed=len(artifact.insights),
            total_duration_ms=total_duration_ms,
            degraded_steps=list(degraded_steps or []),
        )


class WorkflowResult(WireModel):
    """Success envelope returned to the caller."""

    success: Literal[True] = True
    session_id: str
    synthesis: Synthesis
    metadata: RunMetadata
    artifact: WorkflowArtifact


class WorkflowFailure(WireModel):
    """Failure envelope returned to the caller."""

    success: Literal[False] = False
    session_id: Optional[str] = None
    error: str
