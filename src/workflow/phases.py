"""Workflow phase names, per-phase result models and the run context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field


PHASE_CONTENT = "phase_1_content"
PHASE_IMAGES = "phase_2_images"
PHASE_ENHANCEMENT = "phase_3_enhancement"
PHASE_INTERLINKING = "interlinking"
PHASE_PUBLISHING_PREPARATION = "publishing_preparation"
PHASE_COMPLETED = "completed"
PHASE_FAILED = "failed"

WORKFLOW_PHASES: Tuple[str, ...] = (
    PHASE_CONTENT,
    PHASE_IMAGES,
    PHASE_ENHANCEMENT,
    PHASE_INTERLINKING,
    PHASE_PUBLISHING_PREPARATION,
)

PHASE_PROGRESS: Dict[str, int] = {
    PHASE_CONTENT: 20,
    PHASE_IMAGES: 40,
    PHASE_ENHANCEMENT: 60,
    PHASE_INTERLINKING: 80,
    PHASE_PUBLISHING_PREPARATION: 95,
    PHASE_COMPLETED: 100,
}


class PhaseResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    phase: ClassVar[str]
    metadata_key: ClassVar[str]
    column: ClassVar[str]


class ContentResult(PhaseResult):
    phase: ClassVar[str] = PHASE_CONTENT
    metadata_key: ClassVar[str] = "content"
    column: ClassVar[str] = "content_result_json"

    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    excerpt: str = ""
    word_count: int = 0
    seo_data: Dict[str, Any] = Field(default_factory=dict)
    provider: str = "unknown"


class ImageAsset(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Optional[str] = None
    storage_path: Optional[str] = None
    aspect_ratio: str
    width: Optional[int] = None
    height: Optional[int] = None
    quality_score: Optional[float] = None
    provider: str


class ImagesResult(PhaseResult):
    phase: ClassVar[str] = PHASE_IMAGES
    metadata_key: ClassVar[str] = "images"
    column: ClassVar[str] = "images_result_json"

    featured_image: Optional[ImageAsset] = None
    thumbnail_image: Optional[ImageAsset] = None
    image_generated: bool = False
    degraded_reason: Optional[str] = None


class EnhancementResult(PhaseResult):
    phase: ClassVar[str] = PHASE_ENHANCEMENT
    metadata_key: ClassVar[str] = "enhancement"
    column: ClassVar[str] = "enhancement_result_json"

    slug: str
    seo_title: str
    meta_description: str
    structured_data: Dict[str, Any] = Field(default_factory=dict)
    scores: Dict[str, float] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
    enhancement_applied: bool = True
    degraded_reason: Optional[str] = None


class InterlinkingResult(PhaseResult):
    phase: ClassVar[str] = PHASE_INTERLINKING
    metadata_key: ClassVar[str] = "interlinking"
    column: ClassVar[str] = "interlinking_result_json"

    topics: List[str] = Field(default_factory=list)
    internal_links: List[Dict[str, Any]] = Field(default_factory=list)
    degraded_reason: Optional[str] = None


class PublishingPreparationResult(PhaseResult):
    phase: ClassVar[str] = PHASE_PUBLISHING_PREPARATION
    metadata_key: ClassVar[str] = "publishing_preparation"
    column: ClassVar[str] = "publishing_preparation_result_json"

    mapped_fields: Dict[str, Any] = Field(default_factory=dict)
    field_validation: Dict[str, Any] = Field(default_factory=dict)
    content_score: float = 0.0
    readiness: Dict[str, Any] = Field(default_factory=dict)
    degraded_reason: Optional[str] = None


RESULT_TYPES: Dict[str, Type[PhaseResult]] = {
    result_type.phase: result_type
    for result_type in (
        ContentResult,
        ImagesResult,
        EnhancementResult,
        InterlinkingResult,
        PublishingPreparationResult,
    )
}


def phase_index(phase: str) -> int:
    try:
        return WORKFLOW_PHASES.index(phase)
    except ValueError as exc:
        raise ValueError(f"Unknown workflow phase: {phase}") from exc


@dataclass(frozen=True)
class WorkflowOptions:
    generate_images: bool = True
    image_style: str = "photographic"
    image_timeout_seconds: float = 30.0
    max_internal_links: int = 5
    brand_voice: Optional[str] = None
    content_goal_prompt: Optional[str] = None


@dataclass
class WorkflowContext:
    """Server-side state carried through every phase of one run."""

    queue_id: str
    org_id: str
    actor_id: Optional[str]
    options: WorkflowOptions = field(default_factory=WorkflowOptions)
    results: Dict[str, PhaseResult] = field(default_factory=dict)

    @property
    def content(self) -> Optional[ContentResult]:
        return self.results.get(PHASE_CONTENT)  # type: ignore[return-value]

    @property
    def images(self) -> Optional[ImagesResult]:
        return self.results.get(PHASE_IMAGES)  # type: ignore[return-value]

    @property
    def enhancement(self) -> Optional[EnhancementResult]:
        return self.results.get(PHASE_ENHANCEMENT)  # type: ignore[return-value]

    @property
    def interlinking(self) -> Optional[InterlinkingResult]:
        return self.results.get(PHASE_INTERLINKING)  # type: ignore[return-value]
