"""
Shared Pydantic schemas for the outfit analysis gateway.

This module defines all data models used across packages for:
- Gateway operation requests (tagged union on ``type``)
- Persisted records (analysis results, feedback entries)
- Vision collaborator response shapes
- Configuration validation
"""

import random
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    field_validator,
    model_validator,
)


def to_camel(name: str) -> str:
    """Convert a snake_case field name to its camelCase wire name."""
    head, *tail = name.split("_")
    return head + "".join(part.title() for part in tail)


class CamelModel(BaseModel):
    """Base model whose fields travel as camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ENUMS
# =============================================================================


class AnalysisType(str, Enum):
    """Closed set of analysis kinds."""

    OUTFIT = "outfit"
    DETAILED = "detailed"
    OCCASION = "occasion"
    SUGGESTION = "suggestion"


class AnalysisStatus(str, Enum):
    """Outcome of an analysis request."""

    SUCCESS = "success"
    ERROR = "error"
    PROCESSING = "processing"


class FeedbackValue(str, Enum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


class SortField(str, Enum):
    TIMESTAMP = "timestamp"
    ANALYSIS_TYPE = "analysisType"
    STATUS = "status"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# PERSISTED RECORDS
# =============================================================================


def generate_analysis_id(now_ms: Optional[int] = None) -> str:
    """Generate an analysis id of the form ``analysis_<ms>_<7 chars>``."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"analysis_{now_ms}_{suffix}"


class AnalysisRecord(CamelModel):
    """Persisted outcome of one analysis request, success or error."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    image_id: str
    timestamp: int
    analysis_type: AnalysisType
    status: AnalysisStatus
    result: Any = None
    error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    query_tags: list[str] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        data = super().to_wire()
        if data.get("error") is None:
            data.pop("error", None)
        return data


class FeedbackEntry(CamelModel):
    """User feedback on one analysis; one entry per analysis id."""

    image_id: str
    analysis_id: str
    feedback: FeedbackValue
    timestamp: int


class AnalysisStats(CamelModel):
    total_analyses: int = 0
    successful_analyses: int = 0
    failed_analyses: int = 0
    processing_analyses: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    average_processing_time: float = 0.0


class AnalysisFilters(CamelModel):
    """Filters accepted by FETCH_ANALYSES."""

    analysis_type: Optional[AnalysisType] = None
    status: Optional[AnalysisStatus] = None
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    tag: Optional[str] = None
    sort_by: Optional[SortField] = None
    sort_direction: Optional[SortDirection] = None
    limit: Optional[int] = Field(default=None, ge=0)
    offset: Optional[int] = Field(default=None, ge=0)


# =============================================================================
# GATEWAY OPERATIONS
# =============================================================================


class _ImageOperation(CamelModel):
    image_data: str = Field(..., min_length=1)
    image_id: Optional[str] = None


class InitStorageOperation(CamelModel):
    type: Literal["INIT_STORAGE"]


class SaveImageOperation(_ImageOperation):
    type: Literal["SAVE_IMAGE"]


class AnalyzeOutfitOperation(_ImageOperation):
    type: Literal["ANALYZE_OUTFIT"]


class AnalyzeDetailsOperation(_ImageOperation):
    type: Literal["ANALYZE_DETAILS"]


class MatchOccasionOperation(_ImageOperation):
    type: Literal["MATCH_OCCASION"]
    occasion: str = Field(..., min_length=1)


class GetSuggestionsOperation(_ImageOperation):
    type: Literal["GET_SUGGESTIONS"]
    occasion: str = Field(..., min_length=1)


class FetchAnalysesOperation(CamelModel):
    type: Literal["FETCH_ANALYSES"]
    filters: Optional[AnalysisFilters] = None


class GetAnalysisOperation(CamelModel):
    type: Literal["GET_ANALYSIS"]
    id: str = Field(..., min_length=1)


class DeleteAnalysisOperation(CamelModel):
    type: Literal["DELETE_ANALYSIS"]
    id: str = Field(..., min_length=1)


class ClearAnalysesOperation(CamelModel):
    type: Literal["CLEAR_ANALYSES"]


class SearchAnalysesOperation(CamelModel):
    type: Literal["SEARCH_ANALYSES"]
    query: str


class GetStatsOperation(CamelModel):
    type: Literal["GET_STATS"]


class SaveFeedbackOperation(CamelModel):
    type: Literal["SAVE_FEEDBACK"]
    image_id: str = Field(..., min_length=1)
    analysis_id: str = Field(..., min_length=1)
    feedback: FeedbackValue


class RemoveFeedbackOperation(CamelModel):
    type: Literal["REMOVE_FEEDBACK"]
    analysis_id: str = Field(..., min_length=1)


class GetFeedbackOperation(CamelModel):
    type: Literal["GET_FEEDBACK"]


class ClearFeedbackOperation(CamelModel):
    type: Literal["CLEAR_FEEDBACK"]


Operation = Annotated[
    Union[
        InitStorageOperation,
        SaveImageOperation,
        AnalyzeOutfitOperation,
        AnalyzeDetailsOperation,
        MatchOccasionOperation,
        GetSuggestionsOperation,
        FetchAnalysesOperation,
        GetAnalysisOperation,
        DeleteAnalysisOperation,
        ClearAnalysesOperation,
        SearchAnalysesOperation,
        GetStatsOperation,
        SaveFeedbackOperation,
        RemoveFeedbackOperation,
        GetFeedbackOperation,
        ClearFeedbackOperation,
    ],
    Field(discriminator="type"),
]


# =============================================================================
# VISION COLLABORATOR RESPONSE SHAPES
# =============================================================================

Number = Union[StrictInt, StrictFloat]


class BasicScores(CamelModel):
    """Basic outfit scores; every field is required and strictly typed."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    categories: dict[str, Any]
    style_attributes: dict[str, Any]
    color_analysis: dict[str, Any]
    comfort: Number
    fit_confidence: Number
    color_harmony: Number


class _LenientModel(CamelModel):
    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data):
        if not isinstance(data, dict):
            return data
        cleaned = {k: v for k, v in data.items() if v is not None}
        confidence = cleaned.get("confidence")
        if confidence is not None and not isinstance(confidence, (int, float)):
            try:
                cleaned["confidence"] = float(confidence)
            except (TypeError, ValueError):
                cleaned.pop("confidence")
        return cleaned


class ClothingItem(_LenientModel):
    type: str = "unknown"
    color: str = "unknown"
    pattern: str = "solid"
    material: Optional[str] = None
    fit: Optional[str] = None
    confidence: float = 0.0


class AccessoryItem(_LenientModel):
    type: str = "unknown"
    color: Optional[str] = None
    material: Optional[str] = None
    position: Optional[str] = None
    confidence: float = 0.0


class OutfitDetails(_LenientModel):
    """Itemized outfit analysis combined with the basic scores.

    Missing fields fall back to safe defaults; only container types are
    enforced.
    """

    comfort: float = 50
    fit_confidence: float = 50
    color_harmony: float = 50
    style: dict[str, float] = Field(default_factory=dict)
    clothing_items: list[ClothingItem] = Field(default_factory=list)
    accessories: list[AccessoryItem] = Field(default_factory=list)
    dominant_colors: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    season: str = "Unknown"
    occasions: list[str] = Field(default_factory=list)
    has_bottom_garment: bool = False

    @field_validator("style", mode="before")
    @classmethod
    def numeric_styles_only(cls, v):
        if not isinstance(v, dict):
            return v
        return {
            k: s for k, s in v.items()
            if isinstance(s, (int, float)) and not isinstance(s, bool)
        }

    @field_validator("has_bottom_garment", mode="before")
    @classmethod
    def only_true_counts(cls, v):
        return v is True


class StyleSuggestions(BaseModel):
    """A non-empty list of short suggestion strings."""

    suggestions: list[Annotated[str, Field(strict=True)]] = Field(..., min_length=1)


# =============================================================================
# HEALTH CHECK MODELS
# =============================================================================


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthCheck(BaseModel):
    """Health check response model."""

    service: str
    status: HealthStatus
    version: str = "1.0.0"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: dict[str, Any] = {}


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================


class ServiceConfig(BaseModel):
    """Service configuration."""

    host: str = "0.0.0.0"
    port: int


class StorageConfig(BaseModel):
    """Record store configuration."""

    data_dir: str
    images_dirname: str = "images"
    analysis_dirname: str = "analysis"
    feedback_dirname: str = "feedback"


class CollaboratorConfig(BaseModel):
    """Vision collaborator configuration."""

    api_key: Optional[str] = None
    base_url: str = "https://api.x.ai/v1"
    model: str = "grok-2-vision"
    timeout_seconds: int = 30
    detailed_timeout_seconds: int = 45


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "text"

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()
