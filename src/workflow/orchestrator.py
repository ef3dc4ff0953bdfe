"""Multi-phase generation workflow: content, images, enhancement, interlinking, publishing preparation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.config import get_settings
from src.core.errors import InvalidTransition, PersistenceFailure, PhaseDependencyError, QueueError
from src.core.logger import bind_queue_context, get_logger
from src.core.metrics import record_workflow_phase
from src.core.observability import capture_exception
from src.generation.client import ContentGenerator, ContentRequest, get_content_generator
from src.media.providers import ImageProvider
from src.media.service import generate_blog_images
from src.progress.reporter import ProgressReporter
from src.queue.service import (
    get_queue_item,
    item_generation_metadata,
    item_keywords,
    transition_status,
)
from src.queue.states import (
    QUEUE_STATUS_FAILED,
    QUEUE_STATUS_GENERATED,
    QUEUE_STATUS_GENERATING,
    QUEUE_STATUS_IN_REVIEW,
    QUEUE_STATUS_QUEUED,
    QUEUE_STATUS_REJECTED,
    normalize_status,
)
from src.storage.models import BlogPost, Org, QueueItem, WorkflowPhaseState
from src.workflow import enhancement
from src.workflow.phases import (
    PHASE_COMPLETED,
    PHASE_CONTENT,
    PHASE_ENHANCEMENT,
    PHASE_FAILED,
    PHASE_IMAGES,
    PHASE_INTERLINKING,
    PHASE_PROGRESS,
    PHASE_PUBLISHING_PREPARATION,
    RESULT_TYPES,
    WORKFLOW_PHASES,
    ContentResult,
    EnhancementResult,
    ImagesResult,
    InterlinkingResult,
    PhaseResult,
    PublishingPreparationResult,
    WorkflowContext,
    WorkflowOptions,
    phase_index,
)


logger = get_logger("content_queue.workflow")

RUNNABLE_STATUSES = frozenset(
    {QUEUE_STATUS_QUEUED, QUEUE_STATUS_REJECTED, QUEUE_STATUS_GENERATED, QUEUE_STATUS_IN_REVIEW}
)
RESULT_ACCEPTING_STATUSES = frozenset({QUEUE_STATUS_GENERATED, QUEUE_STATUS_IN_REVIEW})
INTERLINK_CANDIDATE_LIMIT = 200

OUTCOME_COMPLETED = "completed"
OUTCOME_STORED = "stored"
OUTCOME_DEGRADED = "degraded"
OUTCOME_FAILED = "failed"
OUTCOME_CANCELLED = "cancelled"


@dataclass(frozen=True)
class PhaseOutcome:
    phase: str
    outcome: str
    detail: Optional[str] = None


@dataclass(frozen=True)
class WorkflowRunResult:
    queue_id: str
    outcome: str
    phase: str
    item_status: str
    phases: List[PhaseOutcome] = field(default_factory=list)
    results: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error: Optional[str] = None


def _json_dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def default_workflow_options(**overrides: Any) -> WorkflowOptions:
    settings = get_settings()
    values: Dict[str, Any] = {
        "generate_images": settings.image_generation_enabled,
        "image_style": settings.image_default_style,
        "image_timeout_seconds": float(settings.image_generation_timeout_seconds),
        "max_internal_links": settings.interlinking_max_internal_links,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return WorkflowOptions(**values)


def load_stored_results(state: WorkflowPhaseState) -> Dict[str, PhaseResult]:
    results: Dict[str, PhaseResult] = {}
    for phase, result_type in RESULT_TYPES.items():
        raw = getattr(state, result_type.column)
        if not raw:
            continue
        try:
            results[phase] = result_type.model_validate_json(raw)
        except ValidationError:
            logger.warning("workflow_stored_result_invalid", queue_id=state.queue_id, phase=phase)
    return results


def get_or_create_phase_state(session: Session, item: QueueItem) -> WorkflowPhaseState:
    state = session.scalar(select(WorkflowPhaseState).where(WorkflowPhaseState.queue_id == item.id))
    if state is not None:
        return state
    state = WorkflowPhaseState(org_id=item.org_id, queue_id=item.id, phase=PHASE_CONTENT, resumable=True)
    session.add(state)
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("Failed to create workflow state", queue_id=item.id) from exc
    return state


class WorkflowOrchestrator:
    """Runs the phases of one queue item in order, persisting each result.

    Phase 1 is critical: its failure fails the item. Later phases degrade
    instead of failing. A phase whose result is already stored is not
    re-executed.
    """

    def __init__(
        self,
        session: Session,
        *,
        content_generator: Optional[ContentGenerator] = None,
        image_provider: Optional[ImageProvider] = None,
        reporter: Optional[ProgressReporter] = None,
    ) -> None:
        self.session = session
        self.content_generator = content_generator or get_content_generator()
        self.image_provider = image_provider
        self._reporter = reporter

    def _progress(self, org_id: str) -> ProgressReporter:
        if self._reporter is None or self._reporter.org_id != org_id:
            self._reporter = ProgressReporter(self.session, org_id=org_id)
        return self._reporter

    def run(self, context: WorkflowContext, *, from_phase: Optional[str] = None) -> WorkflowRunResult:
        bind_queue_context(context.queue_id)
        item = get_queue_item(self.session, org_id=context.org_id, queue_id=context.queue_id)
        status = normalize_status(item.status)
        if status not in RUNNABLE_STATUSES:
            raise InvalidTransition(
                status,
                QUEUE_STATUS_GENERATING,
                message=f"Workflow cannot run for item in status {status}",
            )

        state = get_or_create_phase_state(self.session, item)
        if status == QUEUE_STATUS_REJECTED:
            self._clear_results(state)
        context.results.update(load_stored_results(state))
        start_index = self._start_index(context, from_phase)

        outcomes: List[PhaseOutcome] = []
        runners: Dict[str, Callable[[WorkflowContext, QueueItem], PhaseResult]] = {
            PHASE_IMAGES: self._run_images,
            PHASE_ENHANCEMENT: self._run_enhancement,
            PHASE_INTERLINKING: self._run_interlinking,
            PHASE_PUBLISHING_PREPARATION: self._run_publishing_preparation,
        }

        for index, phase in enumerate(WORKFLOW_PHASES):
            if index < start_index:
                continue
            if phase in context.results:
                outcomes.append(PhaseOutcome(phase=phase, outcome=OUTCOME_STORED))
                continue

            if phase == PHASE_CONTENT:
                outcome = self._run_content(context, item, state)
                outcomes.append(outcome)
                if outcome.outcome != OUTCOME_COMPLETED:
                    return self._finish(context, item, state, outcomes, outcome.outcome, error=outcome.detail)
                continue

            try:
                result = runners[phase](context, item)
            except QueueError:
                raise
            except Exception as exc:
                logger.error("workflow_phase_crashed", queue_id=item.id, phase=phase, error=str(exc))
                capture_exception(exc)
                result = self._degraded_result(context, item, phase, reason=f"{phase}_error")

            if not self._accepts_result(item):
                logger.info("workflow_result_discarded", queue_id=item.id, phase=phase, status=item.status)
                outcomes.append(PhaseOutcome(phase=phase, outcome=OUTCOME_CANCELLED))
                return self._finish(context, item, state, outcomes, OUTCOME_CANCELLED)

            reason = getattr(result, "degraded_reason", None)
            self._store_result(context, item, state, result)
            outcome_name = OUTCOME_DEGRADED if reason else OUTCOME_COMPLETED
            record_workflow_phase(phase=phase, outcome=outcome_name)
            self._progress(context.org_id).append(
                item.id,
                {
                    "stage": phase,
                    "stage_number": index + 1,
                    "total_stages": len(WORKFLOW_PHASES),
                    "progress_percentage": PHASE_PROGRESS[phase],
                    "status": outcome_name,
                    "details": reason,
                },
            )
            if reason:
                logger.warning("phase_degraded", queue_id=item.id, phase=phase, reason=reason)
            outcomes.append(PhaseOutcome(phase=phase, outcome=outcome_name, detail=reason))

        self._mark_phase(state, PHASE_COMPLETED, resumable=False)
        self._progress(context.org_id).append(
            item.id,
            {"stage": PHASE_COMPLETED, "progress_percentage": PHASE_PROGRESS[PHASE_COMPLETED], "status": "completed"},
        )
        logger.info("workflow_completed", queue_id=item.id, org_id=context.org_id)
        return self._finish(context, item, state, outcomes, OUTCOME_COMPLETED)

    def _start_index(self, context: WorkflowContext, from_phase: Optional[str]) -> int:
        if not from_phase:
            return 0
        try:
            start_index = phase_index(from_phase)
        except ValueError as exc:
            raise PhaseDependencyError(str(exc), from_phase=from_phase) from exc
        missing = [phase for phase in WORKFLOW_PHASES[:start_index] if phase not in context.results]
        if missing:
            raise PhaseDependencyError(
                f"Cannot start at {from_phase}: earlier phases are incomplete",
                from_phase=from_phase,
                missing_phases=missing,
            )
        return start_index

    def _accepts_result(self, item: QueueItem) -> bool:
        observed = self.session.scalar(select(QueueItem.status).where(QueueItem.id == item.id))
        return normalize_status(observed) in RESULT_ACCEPTING_STATUSES

    def _commit(self, queue_id: str, message: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceFailure(message, queue_id=queue_id) from exc

    def _clear_results(self, state: WorkflowPhaseState) -> None:
        for result_type in RESULT_TYPES.values():
            setattr(state, result_type.column, None)
        state.phase = PHASE_CONTENT
        state.resumable = True
        state.last_error = None
        state.updated_at = _now_utc()
        self._commit(state.queue_id, "Failed to reset workflow state")

    def _mark_phase(self, state: WorkflowPhaseState, phase: str, *, resumable: bool, error: Optional[str] = None) -> None:
        state.phase = phase
        state.resumable = resumable
        state.last_error = error
        state.updated_at = _now_utc()
        self._commit(state.queue_id, "Failed to update workflow state")

    def _next_phase(self, phase: str) -> str:
        index = WORKFLOW_PHASES.index(phase)
        if index + 1 < len(WORKFLOW_PHASES):
            return WORKFLOW_PHASES[index + 1]
        return PHASE_COMPLETED

    def _metadata_entries(self, result: PhaseResult) -> Dict[str, Any]:
        entries: Dict[str, Any] = {result.metadata_key: result.model_dump(mode="json")}
        if isinstance(result, ImagesResult):
            entries["image_generated"] = result.image_generated
        elif isinstance(result, EnhancementResult):
            entries["enhancement_applied"] = result.enhancement_applied
        return entries

    def _store_result(self, context: WorkflowContext, item: QueueItem, state: WorkflowPhaseState, result: PhaseResult) -> None:
        setattr(state, result.column, result.model_dump_json())
        state.phase = self._next_phase(result.phase)
        state.resumable = True
        state.last_error = None
        state.updated_at = _now_utc()

        metadata = item_generation_metadata(item)
        metadata.update(self._metadata_entries(result))
        item.generation_metadata_json = _json_dumps(metadata)
        item.updated_at = _now_utc()
        self._commit(item.id, "Failed to store workflow phase result")
        context.results[result.phase] = result

    def _run_content(self, context: WorkflowContext, item: QueueItem, state: WorkflowPhaseState) -> PhaseOutcome:
        status = normalize_status(item.status)
        if status in RESULT_ACCEPTING_STATUSES:
            return self._adopt_existing_content(context, item, state)
        if status in {QUEUE_STATUS_QUEUED, QUEUE_STATUS_REJECTED}:
            transition_status(self.session, item, QUEUE_STATUS_GENERATING)

        self._progress(context.org_id).append(
            item.id,
            {
                "stage": "content_generation",
                "stage_number": 1,
                "total_stages": len(WORKFLOW_PHASES),
                "progress_percentage": 10,
                "status": "in_progress",
            },
        )

        brand_voice = context.options.brand_voice
        if brand_voice is None:
            brand_voice = self.session.scalar(select(Org.brand_voice).where(Org.id == item.org_id))
        request = ContentRequest(
            topic=item.topic,
            keywords=item_keywords(item),
            target_audience=item.target_audience,
            tone=item.tone,
            word_count=item.word_count,
            quality_level=item.quality_level,
            brand_voice=brand_voice,
            content_goal_prompt=context.options.content_goal_prompt or item.custom_instructions,
        )

        try:
            generated = self.content_generator.generate(request)
            result = ContentResult(
                title=generated.title,
                content=generated.content,
                excerpt=generated.excerpt,
                word_count=int(generated.metadata.get("word_count") or len(generated.content.split())),
                seo_data=dict(generated.metadata.get("seo_data") or {}),
                provider=self.content_generator.provider_name,
            )
        except Exception as exc:
            if not isinstance(exc, QueueError):
                capture_exception(exc)
            return self._fail_content(context, item, state, exc)

        metadata = item_generation_metadata(item)
        metadata.update(self._metadata_entries(result))
        try:
            transition_status(
                self.session,
                item,
                QUEUE_STATUS_GENERATED,
                fields={
                    "generated_title": result.title,
                    "generated_content": result.content,
                    "generation_error": None,
                    "generation_metadata_json": _json_dumps(metadata),
                },
            )
        except InvalidTransition as exc:
            logger.info("workflow_result_discarded", queue_id=item.id, phase=PHASE_CONTENT, status=exc.current_status)
            return PhaseOutcome(phase=PHASE_CONTENT, outcome=OUTCOME_CANCELLED, detail=exc.current_status)

        setattr(state, ContentResult.column, result.model_dump_json())
        state.phase = PHASE_IMAGES
        state.resumable = True
        state.last_error = None
        state.updated_at = _now_utc()
        self._commit(item.id, "Failed to store workflow phase result")
        context.results[PHASE_CONTENT] = result

        record_workflow_phase(phase=PHASE_CONTENT, outcome=OUTCOME_COMPLETED)
        self._progress(context.org_id).append(
            item.id,
            {
                "stage": PHASE_CONTENT,
                "stage_number": 1,
                "total_stages": len(WORKFLOW_PHASES),
                "progress_percentage": PHASE_PROGRESS[PHASE_CONTENT],
                "status": OUTCOME_COMPLETED,
            },
        )
        return PhaseOutcome(phase=PHASE_CONTENT, outcome=OUTCOME_COMPLETED)

    def _adopt_existing_content(self, context: WorkflowContext, item: QueueItem, state: WorkflowPhaseState) -> PhaseOutcome:
        """Items that reached ``generated`` outside the workflow keep their content."""

        try:
            result = ContentResult(
                title=item.generated_title or "",
                content=item.generated_content or "",
                word_count=len((item.generated_content or "").split()),
                provider="existing",
            )
        except ValidationError:
            return PhaseOutcome(phase=PHASE_CONTENT, outcome=OUTCOME_FAILED, detail="generated_content_missing")
        self._store_result(context, item, state, result)
        record_workflow_phase(phase=PHASE_CONTENT, outcome=OUTCOME_STORED)
        return PhaseOutcome(phase=PHASE_CONTENT, outcome=OUTCOME_COMPLETED, detail="existing_content")

    def _fail_content(
        self,
        context: WorkflowContext,
        item: QueueItem,
        state: WorkflowPhaseState,
        exc: Exception,
    ) -> PhaseOutcome:
        message = str(exc) or exc.__class__.__name__
        logger.error("content_generation_failed", queue_id=item.id, error=message)
        record_workflow_phase(phase=PHASE_CONTENT, outcome=OUTCOME_FAILED)
        try:
            transition_status(self.session, item, QUEUE_STATUS_FAILED, fields={"generation_error": message})
        except InvalidTransition as conflict:
            logger.info("workflow_result_discarded", queue_id=item.id, phase=PHASE_CONTENT, status=conflict.current_status)
            return PhaseOutcome(phase=PHASE_CONTENT, outcome=OUTCOME_CANCELLED, detail=conflict.current_status)

        self._mark_phase(state, PHASE_FAILED, resumable=True, error=message)
        self._progress(context.org_id).append(
            item.id,
            {
                "stage": PHASE_FAILED,
                "stage_number": 1,
                "total_stages": len(WORKFLOW_PHASES),
                "progress_percentage": item.progress_percentage,
                "status": OUTCOME_FAILED,
                "details": message,
            },
        )
        return PhaseOutcome(phase=PHASE_CONTENT, outcome=OUTCOME_FAILED, detail=message)

    def _run_images(self, context: WorkflowContext, item: QueueItem) -> ImagesResult:
        if not context.options.generate_images:
            return ImagesResult(image_generated=False, degraded_reason="image_generation_skipped")
        content = context.content
        return generate_blog_images(
            org_id=context.org_id,
            queue_id=item.id,
            title=content.title if content else item.topic,
            excerpt=content.excerpt if content else "",
            keywords=item_keywords(item),
            style=context.options.image_style,
            timeout_seconds=context.options.image_timeout_seconds,
            provider=self.image_provider,
        )

    def _run_enhancement(self, context: WorkflowContext, item: QueueItem) -> EnhancementResult:
        content = context.content
        title = content.title if content else (item.generated_title or item.topic)
        body = content.content if content else (item.generated_content or "")
        excerpt = content.excerpt if content else ""
        keywords = item_keywords(item)

        seo_title = enhancement.build_seo_title(title, keywords)
        meta_description = enhancement.build_meta_description(excerpt, body, keywords)
        featured = context.images.featured_image if context.images else None
        org_name = self.session.scalar(select(Org.name).where(Org.id == item.org_id))

        degraded_reason = None
        scores: Dict[str, float] = {}
        try:
            scores = self.content_generator.analyze(title=title, content=body, keywords=keywords)
        except QueueError as exc:
            degraded_reason = "content_analysis_unavailable"
            logger.warning("content_analysis_failed", queue_id=item.id, error=str(exc))

        return EnhancementResult(
            slug=enhancement.slugify(title),
            seo_title=seo_title,
            meta_description=meta_description,
            structured_data=enhancement.build_structured_data(
                title=seo_title,
                description=meta_description,
                keywords=keywords,
                image_url=featured.url if featured else None,
                author=org_name,
            ),
            scores=scores,
            recommendations=enhancement.seo_recommendations(
                title=title,
                meta_description=meta_description,
                keywords=keywords,
                content=body,
            ),
            enhancement_applied=True,
            degraded_reason=degraded_reason,
        )

    def _run_interlinking(self, context: WorkflowContext, item: QueueItem) -> InterlinkingResult:
        content = context.content
        text = f"{content.title} {content.content}" if content else f"{item.generated_title or ''} {item.generated_content or ''}"
        topics = enhancement.extract_topics(text)

        statement = (
            select(BlogPost.id, BlogPost.title, BlogPost.slug)
            .where(BlogPost.org_id == item.org_id, BlogPost.status.in_(("draft", "published")))
            .order_by(BlogPost.created_at.desc())
            .limit(INTERLINK_CANDIDATE_LIMIT)
        )
        candidates = [
            {"id": post_id, "title": title, "slug": slug}
            for post_id, title, slug in self.session.execute(statement).all()
            if post_id != item.post_id
        ]
        links = enhancement.propose_internal_links(
            topics,
            candidates,
            max_links=context.options.max_internal_links,
        )
        return InterlinkingResult(topics=topics, internal_links=links)

    def _run_publishing_preparation(self, context: WorkflowContext, item: QueueItem) -> PublishingPreparationResult:
        content = context.content
        enhanced = context.enhancement
        images = context.images
        links = context.interlinking.internal_links if context.interlinking else []
        featured = images.featured_image if images else None
        thumbnail = images.thumbnail_image if images else None

        mapped_fields: Dict[str, Any] = {
            "title": content.title if content else item.generated_title,
            "content": content.content if content else item.generated_content,
            "slug": enhanced.slug if enhanced else None,
            "seo_title": enhanced.seo_title if enhanced else None,
            "meta_description": enhanced.meta_description if enhanced else None,
            "excerpt": content.excerpt if content else None,
            "featured_image": featured.url if featured else None,
            "thumbnail_image": thumbnail.url if thumbnail else None,
            "keywords": item_keywords(item),
        }
        validation = enhancement.validate_field_mapping(mapped_fields)

        scores = enhanced.scores if enhanced else {}
        score = enhancement.calculate_content_score(
            {
                "readability": scores.get("readability"),
                "seo": scores.get("seo"),
                "quality": scores.get("quality"),
                "interlinking": enhancement.interlinking_score(len(links)),
                "images": featured.quality_score if featured else None,
            }
        )
        return PublishingPreparationResult(
            mapped_fields=mapped_fields,
            field_validation=validation,
            content_score=score,
            readiness=enhancement.assess_readiness(validation, score),
        )

    def _degraded_result(self, context: WorkflowContext, item: QueueItem, phase: str, *, reason: str) -> PhaseResult:
        if phase == PHASE_IMAGES:
            return ImagesResult(image_generated=False, degraded_reason=reason)
        if phase == PHASE_ENHANCEMENT:
            title = context.content.title if context.content else item.topic
            return EnhancementResult(
                slug=enhancement.slugify(title),
                seo_title=title[: enhancement.SEO_TITLE_MAX_LENGTH],
                meta_description="",
                enhancement_applied=False,
                degraded_reason=reason,
            )
        if phase == PHASE_INTERLINKING:
            return InterlinkingResult(degraded_reason=reason)
        return PublishingPreparationResult(
            readiness={"is_ready": False, "issues": [reason], "warnings": [], "suggestions": []},
            degraded_reason=reason,
        )

    def _finish(
        self,
        context: WorkflowContext,
        item: QueueItem,
        state: WorkflowPhaseState,
        outcomes: List[PhaseOutcome],
        outcome: str,
        *,
        error: Optional[str] = None,
    ) -> WorkflowRunResult:
        self.session.refresh(item)
        return WorkflowRunResult(
            queue_id=item.id,
            outcome=outcome,
            phase=state.phase,
            item_status=item.status,
            phases=outcomes,
            results={phase: result.model_dump(mode="json") for phase, result in context.results.items()},
            error=error,
        )


def get_workflow_state(session: Session, *, org_id: str, queue_id: str) -> Dict[str, Any]:
    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    state = session.scalar(select(WorkflowPhaseState).where(WorkflowPhaseState.queue_id == item.id))
    if state is None:
        return {
            "queue_id": item.id,
            "phase": PHASE_CONTENT,
            "resumable": True,
            "completed_phases": [],
            "results": {},
            "last_error": None,
        }
    results = load_stored_results(state)
    return {
        "queue_id": item.id,
        "phase": state.phase,
        "resumable": state.resumable,
        "completed_phases": [phase for phase in WORKFLOW_PHASES if phase in results],
        "results": {phase: result.model_dump(mode="json") for phase, result in results.items()},
        "last_error": state.last_error,
    }
