"""
Content Pipeline
================

Drives one content idea through every generation stage and returns a
publishable Article with its quality, risk and reasoning metadata.

Pipeline stages (in order):
    1. RULES           -- Load the active content rules (TTL cached, defaults on failure)
    2. CONTRIBUTOR     -- Score-based byline assignment from approved authors
    3. DRAFT           -- Structured draft + truncation/placeholder gate (one regeneration)
    4. HUMANIZE        -- Chunked rewrite with provider fallback chain
    5. INTERNAL_LINKS  -- Catalog ranking and anchor insertion
    6. MONETIZATION    -- Category match, program slots and shortcode insertion
    7. VALIDATION      -- Full content validation (publish gate)
    8. QUALITY         -- Structural scoring and bounded auto-fix loop
    9. RISK            -- Risk classification and auto-publish eligibility

Stages run strictly in sequence.  A CancellationToken is checked between
stages; nothing is interrupted mid-call.

Failure handling:
    DraftValidationFailed / BlockingValidationError   propagate, no article
    PipelineCancelled                                 propagates
    anything else                                     stub article flagged for manual completion

Usage:
    from article_pipeline.content_pipeline import get_pipeline

    pipeline = get_pipeline()
    article = await pipeline.generate(
        ContentIdea(title="Best Online MBA Programs", keywords=("online mba", "affordable")),
        GenerationOptions(content_type="ranking", target_word_count=1800),
    )

CLI:
    python -m article_pipeline.content_pipeline generate --title "Best Online MBA Programs" \\
        --keywords "online mba,affordable" --type ranking --words 1800
    python -m article_pipeline.content_pipeline generate --title "..." --json
    python -m article_pipeline.content_pipeline validate --file article.html
    python -m article_pipeline.content_pipeline stages
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional, Sequence, Union

from article_pipeline.anthropic_client import (
    ClaudeAnchorProvider,
    ClaudeClient,
    ClaudeDraftProvider,
    ClaudeRepairProvider,
    ClaudeRewriteProvider,
)
from article_pipeline.auto_fix import AutoFixLoop, AutoFixResult
from article_pipeline.cache import TTLCache
from article_pipeline.circuit_breaker import BreakerRegistry, RetryPolicy
from article_pipeline.config import (
    RULES_CACHE_TTL_SECONDS,
    ConfigLoadError,
    PipelineSettings,
    RulesConfig,
    VoiceContext,
    get_settings,
)
from article_pipeline.content_validator import BlockingValidationError, ContentValidator, ValidationOptions
from article_pipeline.contributors import StaticContributorAssigner
from article_pipeline.draft_generator import DraftGenerator
from article_pipeline.html_utils import count_words, generate_slug, truncate
from article_pipeline.humanizer import HumanizationFailed, HumanizeOptions, Humanizer, HumanizeResult, ScoreConvention
from article_pipeline.internal_linker import MIN_CANDIDATES, InternalLinker, LinkingResult
from article_pipeline.models import (
    Article,
    ArticleDraft,
    ArticleStatus,
    ContentIdea,
    ContributorProfile,
    GenerationOptions,
    QualityMetrics,
    RiskLevel,
    RiskAssessment,
    ValidationIssue,
    ValidationResult,
)
from article_pipeline.monetization_engine import (
    MonetizationContext,
    MonetizationEngine,
    MonetizationResult,
    MonetizationValidator,
)
from article_pipeline.providers import (
    AnchorProvider,
    CatalogLookup,
    ContributorAssigner,
    DraftContext,
    DraftProvider,
    InstitutionLookup,
    JsonRulesConfigStore,
    PricingLookup,
    RepairProvider,
    RewriteProvider,
    RulesConfigStore,
    StaticCatalog,
    StaticRulesStore,
)
from article_pipeline.quality_scorer import QualityScorer
from article_pipeline.reasoning_log import ReasoningLog
from article_pipeline.risk_assessor import (
    AutoPublishSettings,
    RiskAssessor,
    auto_publish_deadline,
    check_auto_publish_eligibility,
)
from article_pipeline.stealth_client import StealthGPTProvider

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("content_pipeline")

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(_handler)
    logger.setLevel(logging.INFO)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CATALOG_CANDIDATE_LIMIT = 20


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def _now_iso() -> str:
    """Return the current UTC timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


def _calc_duration(started: str, completed: str) -> float:
    """Calculate duration in seconds between two ISO timestamps."""
    try:
        s = datetime.fromisoformat(started)
        e = datetime.fromisoformat(completed)
        return max(0.0, (e - s).total_seconds())
    except (ValueError, TypeError):
        return 0.0


def _run_sync(coro: Coroutine) -> Any:
    """Run an async coroutine synchronously, handling nested event loops."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PipelineStage(str, Enum):
    """Ordered stages of the article pipeline."""
    RULES = "rules"
    CONTRIBUTOR = "contributor"
    DRAFT = "draft"
    HUMANIZE = "humanize"
    INTERNAL_LINKS = "internal_links"
    MONETIZATION = "monetization"
    VALIDATION = "validation"
    QUALITY = "quality"
    RISK = "risk"


# Canonical ordered list (execution order)
STAGE_ORDER: List[PipelineStage] = list(PipelineStage)

STAGE_DESCRIPTIONS: Dict[PipelineStage, str] = {
    PipelineStage.RULES: "Load active content rules (5 min cache, defaults on failure)",
    PipelineStage.CONTRIBUTOR: "Assign an approved author by expertise and title keywords",
    PipelineStage.DRAFT: "Generate draft, gate on truncation/placeholders, regenerate once",
    PipelineStage.HUMANIZE: "Chunked rewrite via StealthGPT, whole-document Claude fallback",
    PipelineStage.INTERNAL_LINKS: "Rank catalog articles and insert up to 5 internal links",
    PipelineStage.MONETIZATION: "Match degree category and insert program shortcodes",
    PipelineStage.VALIDATION: "Full validation: truncation, placeholders, stats, laws, schools, links",
    PipelineStage.QUALITY: "Structural quality score with bounded auto-fix loop",
    PipelineStage.RISK: "Risk level, review routing and auto-publish eligibility",
}


class PipelineStatus(str, Enum):
    """Overall status of a pipeline run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StageStatus(str, Enum):
    """Status of an individual stage within a pipeline run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class PipelineCancelled(Exception):
    """The run was cancelled before *stage* started."""

    def __init__(self, stage: str) -> None:
        self.stage = stage
        super().__init__(f"Pipeline cancelled before stage '{stage}'")


class CancellationToken:
    """Cooperative cancellation flag checked between stages."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason = ""

    def cancel(self, reason: str = "") -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, stage: str) -> None:
        if self._cancelled:
            raise PipelineCancelled(stage)


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class StageResult:
    """Result of executing a single pipeline stage."""
    stage: str
    status: str = StageStatus.PENDING.value
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: float = 0.0
    output: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StageResult:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


@dataclass
class PipelineRun:
    """Complete state record for a single pipeline execution."""
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    idea_title: str = ""
    content_type: str = ""
    status: str = PipelineStatus.PENDING.value
    current_stage: Optional[str] = None
    stages: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)

    # Populated as stages complete
    word_count: int = 0
    quality_score: int = 0
    risk_level: str = ""
    internal_links_added: int = 0
    humanizer_provider: str = ""
    contributor_name: str = ""
    error: Optional[str] = None
    article: Optional[Article] = None

    # Timestamps
    created_at: str = field(default_factory=_now_iso)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    total_duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def get_stage_result(self, stage: PipelineStage) -> StageResult:
        """Get or create a StageResult for the given stage."""
        if stage.value in self.stages:
            return StageResult.from_dict(self.stages[stage.value])
        return StageResult(stage=stage.value)

    def set_stage_result(self, result: StageResult) -> None:
        self.stages[result.stage] = result.to_dict()

    def last_completed_stage(self) -> Optional[PipelineStage]:
        """Return the last stage that completed successfully, or None."""
        last = None
        for stage in STAGE_ORDER:
            if self.stages.get(stage.value, {}).get("status") == StageStatus.COMPLETED.value:
                last = stage
        return last

    def finish(self, status: PipelineStatus) -> None:
        self.status = status.value
        self.current_stage = None
        self.completed_at = _now_iso()
        if self.started_at:
            self.total_duration_seconds = _calc_duration(self.started_at, self.completed_at)


@dataclass
class _RunState:
    """Working state handed from stage to stage within one run."""
    idea: ContentIdea
    options: GenerationOptions
    token: CancellationToken
    reasoning: ReasoningLog
    registry: BreakerRegistry = field(default_factory=BreakerRegistry)
    rules: RulesConfig = field(default_factory=RulesConfig.default)
    contributor: Optional[ContributorProfile] = None
    voice: Optional[VoiceContext] = None
    draft: Optional[ArticleDraft] = None
    humanized: Optional[HumanizeResult] = None
    linking: Optional[LinkingResult] = None
    monetization: Optional[MonetizationResult] = None
    monetization_issues: List[ValidationIssue] = field(default_factory=list)
    expect_shortcode: bool = False
    validation: Optional[ValidationResult] = None
    metrics: Optional[QualityMetrics] = None
    fix_result: Optional[AutoFixResult] = None
    risk_flags: List[str] = field(default_factory=list)
    assessment: Optional[RiskAssessment] = None
    auto_publish: Dict[str, Any] = field(default_factory=dict)
    review_reasons: List[str] = field(default_factory=list)


BatchResult = Union[Article, BaseException]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ArticlePipeline:
    """
    Nine-stage article generation pipeline.

    Every collaborator is injected so tests can run the whole pipeline with
    in-memory fakes; ``from_settings`` wires the production providers.

    Usage::

        pipeline = ArticlePipeline(draft_provider=drafts, rewrite_providers=[stealth, claude])
        article = await pipeline.generate(idea, GenerationOptions(content_type="ranking"))
    """

    def __init__(
        self,
        draft_provider: DraftProvider,
        rewrite_providers: Sequence[RewriteProvider] = (),
        repair_provider: Optional[RepairProvider] = None,
        anchor_provider: Optional[AnchorProvider] = None,
        catalog: Optional[CatalogLookup] = None,
        institutions: Optional[InstitutionLookup] = None,
        rules_store: Optional[RulesConfigStore] = None,
        contributors: Optional[ContributorAssigner] = None,
        pricing: Optional[PricingLookup] = None,
        monetization: Optional[MonetizationEngine] = None,
        settings: Optional[PipelineSettings] = None,
        rules_cache: Optional[TTLCache] = None,
        institution_cache: Optional[TTLCache] = None,
        humanize_options: Optional[HumanizeOptions] = None,
        link_seed: Optional[int] = None,
    ) -> None:
        self.settings = settings or get_settings()
        timeout = self.settings.call_timeout

        self.draft_provider = draft_provider
        self.rewrite_providers = list(rewrite_providers)
        self.repair_provider = repair_provider
        self.anchor_provider = anchor_provider
        self.catalog = catalog
        self.contributors = contributors
        self.pricing = pricing
        self.monetization = monetization
        self.rules_store = rules_store or StaticRulesStore()
        self.rules_cache = rules_cache or TTLCache(
            "rules_config", self.rules_store.active, ttl_seconds=RULES_CACHE_TTL_SECONDS,
        )

        self.validator = ContentValidator(
            institutions=institutions,
            catalog=catalog,
            site_domain=self.settings.site_domain,
            institution_cache=institution_cache,
        )
        self.draft_generator = DraftGenerator(
            draft_provider,
            self.validator,
            retry_policy=RetryPolicy(max_retries=2, timeout=timeout, module_name=f"draft:{draft_provider.name}"),
        )
        self.humanize_options = humanize_options or HumanizeOptions(
            score_convention=ScoreConvention(self.settings.score_convention),
        )
        self.humanizer = Humanizer(
            self.rewrite_providers,
            self.humanize_options,
            retry_policy=RetryPolicy(max_retries=1, timeout=timeout, module_name="humanizer"),
        )
        self.linker = InternalLinker(
            anchor_provider=anchor_provider,
            seed=link_seed,
            retry_policy=RetryPolicy(max_retries=1, timeout=timeout, module_name="anchors"),
        )
        self.repair_policy = RetryPolicy(max_retries=2, timeout=timeout, module_name="repair")

        self._stage_map: Dict[PipelineStage, Callable[[_RunState], Awaitable[Dict[str, Any]]]] = {
            PipelineStage.RULES: self._stage_rules,
            PipelineStage.CONTRIBUTOR: self._stage_contributor,
            PipelineStage.DRAFT: self._stage_draft,
            PipelineStage.HUMANIZE: self._stage_humanize,
            PipelineStage.INTERNAL_LINKS: self._stage_internal_links,
            PipelineStage.MONETIZATION: self._stage_monetization,
            PipelineStage.VALIDATION: self._stage_validation,
            PipelineStage.QUALITY: self._stage_quality,
            PipelineStage.RISK: self._stage_risk,
        }

    @classmethod
    def from_settings(cls, settings: Optional[PipelineSettings] = None, **overrides: Any) -> ArticlePipeline:
        """Build a pipeline wired to Claude and StealthGPT from environment settings."""
        settings = settings or get_settings()
        client = ClaudeClient(
            api_key=settings.anthropic_api_key,
            model=settings.model_content,
            fast_model=settings.model_fast,
        )
        rules_store: RulesConfigStore = (
            JsonRulesConfigStore(Path(settings.rules_path)) if settings.rules_path else StaticRulesStore()
        )
        kwargs: Dict[str, Any] = {
            "draft_provider": ClaudeDraftProvider(client),
            "rewrite_providers": [
                StealthGPTProvider(
                    api_key=settings.stealthgpt_api_key,
                    base_url=settings.stealthgpt_base_url,
                ),
                ClaudeRewriteProvider(client),
            ],
            "repair_provider": ClaudeRepairProvider(client),
            "anchor_provider": ClaudeAnchorProvider(client),
            "rules_store": rules_store,
            "contributors": StaticContributorAssigner.default(),
            "settings": settings,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    async def close(self) -> None:
        """Close provider sessions that hold network resources."""
        for provider in self.rewrite_providers:
            closer = getattr(provider, "close", None)
            if closer is not None:
                await closer()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        idea: ContentIdea,
        options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Article:
        """
        Generate one article from *idea*.

        Parameters
        ----------
        idea : ContentIdea
            Source idea; never modified.
        options : GenerationOptions, optional
            Defaults to ``GenerationOptions()``.
        cancel_token : CancellationToken, optional
            Checked before every stage.

        Returns
        -------
        Article
            The finished article, or a stub with
            ``status="needs_manual_completion"`` when a non-validation error
            stopped the run.

        Raises
        ------
        DraftValidationFailed
            Every draft attempt was blocked.
        BlockingValidationError
            The final content failed a blocking check.
        PipelineCancelled
            The token was cancelled before a stage started.
        """
        run = await self.execute(idea, options, cancel_token)
        assert run.article is not None
        return run.article

    async def execute(
        self,
        idea: ContentIdea,
        options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PipelineRun:
        """Like ``generate`` but returns the full PipelineRun record."""
        options = options or GenerationOptions()
        state = _RunState(
            idea=idea,
            options=options,
            token=cancel_token or CancellationToken(),
            reasoning=ReasoningLog(model_used=self.settings.model_content),
        )
        run = PipelineRun(
            idea_title=idea.title,
            content_type=options.content_type,
            status=PipelineStatus.RUNNING.value,
            options=options.to_dict(),
            started_at=_now_iso(),
        )
        for stage in STAGE_ORDER:
            run.stages[stage.value] = StageResult(stage=stage.value).to_dict()

        logger.info(
            "Pipeline %s started: '%s' (%s, %d words)",
            run.run_id[:8], truncate(idea.title, 60), options.content_type, options.target_word_count,
        )

        try:
            await self._execute_stages(run, state)
        except PipelineCancelled:
            run.finish(PipelineStatus.CANCELLED)
            logger.warning("Pipeline %s CANCELLED at %s", run.run_id[:8], run.last_completed_stage())
            raise
        except BlockingValidationError as exc:
            run.error = str(exc)
            run.finish(PipelineStatus.FAILED)
            logger.error("Pipeline %s BLOCKED: %s", run.run_id[:8], truncate(str(exc), 200))
            raise
        except Exception as exc:
            run.error = f"{type(exc).__name__}: {exc}"
            run.article = self._build_stub(state, exc)
            run.finish(PipelineStatus.FAILED)
            logger.error(
                "Pipeline %s FAILED at stage %s: %s -- stub article created",
                run.run_id[:8], self._failed_stage(run), run.error,
            )
            return run

        run.article = self._build_article(state)
        run.word_count = run.article.word_count
        run.quality_score = run.article.quality_score
        run.risk_level = run.article.risk_level
        run.finish(PipelineStatus.COMPLETED)
        logger.info(
            "Pipeline %s COMPLETED '%s' in %.1fs (%d words, quality=%d, risk=%s)",
            run.run_id[:8], truncate(run.article.title, 40), run.total_duration_seconds,
            run.word_count, run.quality_score, run.risk_level,
        )
        return run

    async def generate_batch(
        self,
        ideas: Sequence[ContentIdea],
        options: Optional[GenerationOptions] = None,
        max_concurrent: Optional[int] = None,
    ) -> List[BatchResult]:
        """
        Generate many articles with at most *max_concurrent* runs in flight.

        Returns one entry per idea, in input order: the Article, or the
        exception that stopped that idea (blocked draft, cancellation).
        """
        limit = max_concurrent or self.settings.max_concurrent
        semaphore = asyncio.Semaphore(max(1, limit))

        async def _run_one(index: int, idea: ContentIdea) -> Article:
            async with semaphore:
                logger.info("Batch: starting #%d '%s'", index + 1, truncate(idea.title, 60))
                return await self.generate(idea, options)

        results = await asyncio.gather(
            *(_run_one(i, idea) for i, idea in enumerate(ideas)),
            return_exceptions=True,
        )
        ok = sum(1 for r in results if isinstance(r, Article) and r.status == ArticleStatus.DRAFTING.value)
        for idea, result in zip(ideas, results):
            if isinstance(result, BaseException):
                logger.error("Batch: '%s' failed: %s", truncate(idea.title, 60), result)
        logger.info("Batch complete: %d/%d articles generated", ok, len(ideas))
        return list(results)

    # ------------------------------------------------------------------
    # Stage loop
    # ------------------------------------------------------------------

    async def _execute_stages(self, run: PipelineRun, state: _RunState) -> None:
        for stage in STAGE_ORDER:
            state.token.raise_if_cancelled(stage.value)

            skip_reason = self._skip_reason(stage, state)
            if skip_reason:
                run.set_stage_result(StageResult(
                    stage=stage.value,
                    status=StageStatus.SKIPPED.value,
                    output={"reason": skip_reason},
                ))
                state.reasoning.log_decision(stage.value, "skipped", rationale=skip_reason)
                logger.info("Pipeline %s | Stage %s skipped: %s", run.run_id[:8], stage.value, skip_reason)
                continue

            run.current_stage = stage.value
            result = StageResult(stage=stage.value, status=StageStatus.RUNNING.value, started_at=_now_iso())
            logger.info("Pipeline %s | Stage %s", run.run_id[:8], stage.value)
            try:
                result.output = await self._stage_map[stage](state)
            except Exception as exc:
                result.status = StageStatus.FAILED.value
                result.error = f"{type(exc).__name__}: {exc}"
                result.completed_at = _now_iso()
                result.duration_seconds = _calc_duration(result.started_at, result.completed_at)
                run.set_stage_result(result)
                raise

            result.status = StageStatus.COMPLETED.value
            result.completed_at = _now_iso()
            result.duration_seconds = _calc_duration(result.started_at, result.completed_at)
            run.set_stage_result(result)
            self._update_run(run, state)

    def _skip_reason(self, stage: PipelineStage, state: _RunState) -> Optional[str]:
        opts = state.options
        rules = state.rules
        if stage == PipelineStage.CONTRIBUTOR:
            if not opts.auto_assign_contributor:
                return "Contributor assignment disabled in options"
            if self.contributors is None:
                return "No contributor assigner configured"
        elif stage == PipelineStage.HUMANIZE:
            if not opts.humanize:
                return "Humanization disabled in options"
            if not rules.is_step_enabled("humanize"):
                return "Humanization disabled by content rules"
            if not self.rewrite_providers:
                return "No rewrite providers configured"
        elif stage == PipelineStage.INTERNAL_LINKS:
            if not opts.add_internal_links:
                return "Internal linking disabled in options"
            if not rules.is_step_enabled("internal_links"):
                return "Internal linking disabled by content rules"
            if self.catalog is None:
                return "No catalog configured"
        elif stage == PipelineStage.MONETIZATION:
            if not opts.add_monetization:
                return "Monetization disabled in options"
            if not rules.is_step_enabled("monetization"):
                return "Monetization disabled by content rules"
            if self.monetization is None:
                return "No monetization engine configured"
        return None

    @staticmethod
    def _update_run(run: PipelineRun, state: _RunState) -> None:
        if state.draft is not None:
            run.word_count = count_words(state.draft.content)
        if state.contributor is not None:
            run.contributor_name = state.contributor.name
        if state.humanized is not None:
            run.humanizer_provider = state.humanized.provider
        if state.linking is not None:
            run.internal_links_added = state.linking.links_added
        if state.metrics is not None:
            run.quality_score = state.metrics.score
        if state.assessment is not None:
            run.risk_level = state.assessment.risk_level

    @staticmethod
    def _failed_stage(run: PipelineRun) -> str:
        for stage in STAGE_ORDER:
            if run.stages.get(stage.value, {}).get("status") == StageStatus.FAILED.value:
                return stage.value
        return "unknown"

    # ------------------------------------------------------------------
    # Stage 1: RULES
    # ------------------------------------------------------------------

    async def _stage_rules(self, state: _RunState) -> Dict[str, Any]:
        try:
            rules: RulesConfig = await self.rules_cache.get()
            fallback = False
        except ConfigLoadError as exc:
            logger.warning("Content rules unavailable, using defaults: %s", exc)
            state.reasoning.log_warning("config_defaults", f"Content rules could not be loaded: {exc}")
            rules = RulesConfig.default()
            self.rules_cache.put(rules)
            fallback = True

        state.rules = rules
        state.reasoning.log_data_source(
            "content_rules", version=rules.version, is_default=rules.is_default or fallback,
        )
        if not rules.is_step_enabled("draft"):
            state.reasoning.log_warning(
                "draft_step_required", "Content rules disable the draft step; drafting always runs",
            )
        state.reasoning.log_decision(
            PipelineStage.RULES.value,
            f"Using content rules version {rules.version}" + (" (defaults)" if fallback else ""),
            inputs={"approved_authors": rules.approved_authors},
            rationale="Rules cached for 5 minutes; defaults used when the store fails",
        )
        return {"version": rules.version, "is_default": rules.is_default or fallback}

    # ------------------------------------------------------------------
    # Stage 2: CONTRIBUTOR
    # ------------------------------------------------------------------

    async def _stage_contributor(self, state: _RunState) -> Dict[str, Any]:
        assert self.contributors is not None
        assignment = await self.contributors.assign(state.idea, state.options.content_type)
        if assignment is None:
            state.reasoning.log_warning("no_contributor", "No approved contributor could be assigned")
            state.reasoning.log_decision(
                PipelineStage.CONTRIBUTOR.value, "No contributor assigned",
                rationale="Assigner returned no candidate",
            )
            state.voice = state.rules.voice_context()
            return {"assigned": False}

        contributor = assignment.contributor
        state.contributor = contributor
        state.voice = state.rules.voice_context(contributor.writing_style_profile)
        if contributor.name not in state.rules.approved_authors:
            state.reasoning.log_warning(
                "unapproved_author", f"Assigned contributor {contributor.name} is not an approved author",
            )
        state.reasoning.log_decision(
            PipelineStage.CONTRIBUTOR.value,
            f"Assigned {contributor.name} (score {assignment.score})",
            inputs={
                "title": state.idea.title,
                "content_type": state.options.content_type,
                "alternatives": assignment.alternatives,
            },
            rationale="; ".join(assignment.reasons),
        )
        return {"contributor": contributor.name, "score": assignment.score}

    # ------------------------------------------------------------------
    # Stage 3: DRAFT
    # ------------------------------------------------------------------

    async def _stage_draft(self, state: _RunState) -> Dict[str, Any]:
        pricing_facts = ""
        if self.pricing is not None:
            pricing_facts = await self.pricing.facts(state.idea)
            state.reasoning.log_data_source("pricing", has_data=bool(pricing_facts))

        if state.voice is None:
            state.voice = state.rules.voice_context()
        context = DraftContext(
            content_type=state.options.content_type,
            target_word_count=state.options.target_word_count,
            pricing_facts=pricing_facts,
            author_profile=state.contributor.writing_style_profile if state.contributor else "",
            rules_prompt=state.rules.build_prompt_section(),
            contributor_name=state.contributor.name if state.contributor else "",
        )
        outcome = await self.draft_generator.generate(state.idea, state.options, context)
        state.draft = outcome.draft
        words = count_words(outcome.draft.content)
        state.reasoning.log_decision(
            PipelineStage.DRAFT.value,
            f"Draft accepted after {len(outcome.attempts)} attempt(s) ({words} words)",
            inputs={
                "provider": self.draft_provider.name,
                "attempts": [a.to_dict() for a in outcome.attempts],
                "has_pricing_facts": bool(pricing_facts),
            },
            rationale="Truncation and placeholder gate passed",
        )
        if outcome.retried:
            state.reasoning.log_warning(
                "draft_regenerated", "First draft was blocked and regenerated with a larger word target",
            )
        return {"word_count": words, "attempts": len(outcome.attempts), "faqs": len(outcome.draft.faqs)}

    # ------------------------------------------------------------------
    # Stage 4: HUMANIZE
    # ------------------------------------------------------------------

    async def _stage_humanize(self, state: _RunState) -> Dict[str, Any]:
        assert state.draft is not None
        options = replace(self.humanize_options, voice=state.voice)
        try:
            result = await self.humanizer.humanize(state.draft.content, options, registry=state.registry)
        except HumanizationFailed as exc:
            logger.warning("Humanization failed for every provider, keeping draft text: %s", exc)
            state.reasoning.log_warning("humanization_failed", str(exc))
            state.reasoning.log_decision(
                PipelineStage.HUMANIZE.value, "Kept original draft text",
                inputs={"failures": exc.failures},
                rationale="No rewrite provider succeeded",
            )
            state.review_reasons.append("Humanization failed; content is unrewritten draft text")
            return {"provider": None, "failures": exc.failures}

        state.draft.content = result.content
        state.humanized = result
        if result.fallback_used:
            state.reasoning.log_warning(
                "humanizer_fallback",
                f"Primary rewrite provider failed, used {result.provider}: "
                + "; ".join(f"{k}: {v}" for k, v in result.failures.items()),
            )
        state.reasoning.log_decision(
            PipelineStage.HUMANIZE.value,
            f"Humanized with {result.provider}",
            inputs={
                "chunks": len(result.chunks),
                "average_score": result.average_score,
                "score_convention": options.score_convention.value,
                "failures": result.failures,
            },
            rationale=f"Iterate each chunk until naturalness >= {options.threshold:g}",
        )
        return {
            "provider": result.provider,
            "chunks": len(result.chunks),
            "average_score": result.average_score,
            "fallback_used": result.fallback_used,
        }

    # ------------------------------------------------------------------
    # Stage 5: INTERNAL_LINKS
    # ------------------------------------------------------------------

    async def _stage_internal_links(self, state: _RunState) -> Dict[str, Any]:
        assert state.draft is not None and self.catalog is not None
        candidates = await self.catalog.relevant(
            state.draft.title or state.idea.title, state.idea.keywords, limit=CATALOG_CANDIDATE_LIMIT,
        )
        state.reasoning.log_data_source("catalog", candidates=len(candidates))
        if len(candidates) < MIN_CANDIDATES:
            message = f"Only {len(candidates)} related catalog article(s); at least {MIN_CANDIDATES} needed to link"
            logger.warning(message)
            state.reasoning.log_warning("insufficient_catalog", message)
            state.reasoning.log_decision(
                PipelineStage.INTERNAL_LINKS.value, "No internal links inserted",
                inputs={"candidates": len(candidates)}, rationale=message,
            )
            return {"links_added": 0, "candidates": len(candidates), "skipped": 0}

        result = await self.linker.link(
            state.draft.content,
            state.draft.title or state.idea.title,
            state.idea.keywords,
            candidates,
            max_links=state.options.max_internal_links,
        )
        state.draft.content = result.content
        state.linking = result
        state.reasoning.log_decision(
            PipelineStage.INTERNAL_LINKS.value,
            f"Inserted {result.links_added} internal link(s)",
            inputs={
                "candidates": len(candidates),
                "inserted": [link.to_dict() for link in result.inserted],
                "skipped": result.skipped,
                "anchor_source": result.anchor_source,
            },
            rationale="Top-ranked catalog entries linked on phrases already in the text",
        )
        return {"links_added": result.links_added, "candidates": len(candidates), "skipped": len(result.skipped)}

    # ------------------------------------------------------------------
    # Stage 6: MONETIZATION
    # ------------------------------------------------------------------

    async def _stage_monetization(self, state: _RunState) -> Dict[str, Any]:
        assert state.draft is not None and self.monetization is not None
        state.expect_shortcode = bool(
            state.rules.hard_rules.get("monetization", {}).get("require_monetization_shortcode", False)
        )
        topic = state.idea.subject or state.idea.title
        try:
            match = await self.monetization.match_topic_to_category(topic, state.idea.degree_level)
            result = None
            if match.matched:
                result = await self.monetization.generate_monetization(MonetizationContext(
                    category_id=match.category_id,
                    concentration_id=match.concentration_id,
                    degree_level_code=match.degree_level_code,
                    content_type=state.options.content_type,
                    category=match.category,
                ))
        except Exception as exc:
            # Monetization never fails the article
            message = f"Monetization lookup failed for '{topic}': {type(exc).__name__}: {exc}"
            logger.warning(message)
            state.reasoning.log_warning("monetization_failed", message)
            state.reasoning.log_decision(
                PipelineStage.MONETIZATION.value, "No monetization added",
                inputs={"topic": topic}, rationale=message,
            )
            return {"matched": False}

        if not match.matched:
            message = f"No monetization category matched '{topic}': {match.error}"
            logger.warning(message)
            state.reasoning.log_warning("monetization_unmatched", message)
            state.reasoning.log_decision(
                PipelineStage.MONETIZATION.value, "No monetization added",
                inputs={"topic": topic}, rationale=match.error or "",
            )
            return {"matched": False}

        if not result.success:
            state.reasoning.log_warning("monetization_failed", result.error or "Monetization failed")
            state.reasoning.log_decision(
                PipelineStage.MONETIZATION.value, "No monetization added",
                inputs={"category_id": match.category_id}, rationale=result.error or "",
            )
            return {"matched": True, "success": False}

        state.draft.content = MonetizationEngine.apply(state.draft.content, result)
        state.monetization = result
        state.monetization_issues = MonetizationValidator(state.rules).validate(state.draft.content, result.slots)
        state.reasoning.log_data_source(
            "monetization_catalog", category_id=match.category_id, programs=result.total_programs_selected,
        )
        state.reasoning.log_decision(
            PipelineStage.MONETIZATION.value,
            f"Inserted {len(result.slots)} monetization slot(s)",
            inputs={
                "category_id": match.category_id,
                "concentration_id": match.concentration_id,
                "confidence": match.confidence,
                "sponsored_count": result.sponsored_count,
            },
            rationale=f"Category matched with {match.confidence} confidence (score {match.score})",
        )
        return {
            "matched": True,
            "slots": len(result.slots),
            "programs": result.total_programs_selected,
            "issues": [i.type for i in state.monetization_issues],
        }

    # ------------------------------------------------------------------
    # Stage 7: VALIDATION
    # ------------------------------------------------------------------

    async def _validate(self, state: _RunState, stage: str) -> ValidationResult:
        assert state.draft is not None
        result = await self.validator.validate(
            state.draft.content,
            ValidationOptions(faqs=list(state.draft.faqs), target_word_count=state.options.target_word_count),
        )
        state.reasoning.log_decision(
            stage,
            "Blocked" if result.is_blocked else f"Passed with risk {result.risk_level}",
            inputs={"issues": result.issue_types(), "metrics": result.metrics.to_dict()},
            rationale="Blocking checks gate publication; warnings route to review",
        )
        if result.is_blocked:
            raise BlockingValidationError(result.blocking_issues)
        state.validation = result
        return result

    async def _stage_validation(self, state: _RunState) -> Dict[str, Any]:
        result = await self._validate(state, PipelineStage.VALIDATION.value)
        return {
            "risk_level": result.risk_level,
            "requires_review": result.requires_review,
            "warnings": [i.type for i in result.warnings],
        }

    # ------------------------------------------------------------------
    # Stage 8: QUALITY
    # ------------------------------------------------------------------

    async def _stage_quality(self, state: _RunState) -> Dict[str, Any]:
        assert state.draft is not None
        scorer = QualityScorer(state.rules.quality_thresholds(), site_domain=self.settings.site_domain)
        repair_enabled = state.options.auto_fix and state.rules.is_step_enabled("quality_check")

        if not repair_enabled:
            metrics = scorer.score(state.draft.content, state.draft.faqs)
            state.metrics = metrics
            state.risk_flags = metrics.issue_types()
            state.reasoning.log_decision(
                PipelineStage.QUALITY.value,
                f"Scored {metrics.score}/100 without auto-fix",
                inputs={"issues": metrics.issue_types()},
                rationale="Auto-fix disabled; all structural issues become risk flags",
            )
            return {"score": metrics.score, "risk_flags": state.risk_flags, "attempts": 0}

        loop = AutoFixLoop(scorer, self.repair_provider, retry_policy=self.repair_policy)
        before = state.draft.content
        fixed = await loop.run(before, state.draft.faqs, max_attempts=state.options.max_fix_attempts)
        state.fix_result = fixed
        state.metrics = fixed.metrics
        state.risk_flags = list(fixed.risk_flags)
        state.reasoning.log_decision(
            PipelineStage.QUALITY.value,
            f"Quality {fixed.metrics.score}/100 after {fixed.attempts} repair(s) ({fixed.stopped_reason})",
            inputs=fixed.to_dict(),
            rationale="Repairs stop when issues clear, the score stops improving or attempts run out",
        )

        if fixed.content != before:
            state.draft.content = fixed.content
            # Repaired text goes through the publish gate again
            await self._validate(state, PipelineStage.VALIDATION.value)
        return {
            "score": fixed.metrics.score,
            "attempts": fixed.attempts,
            "stopped_reason": fixed.stopped_reason,
            "risk_flags": state.risk_flags,
        }

    # ------------------------------------------------------------------
    # Stage 9: RISK
    # ------------------------------------------------------------------

    async def _stage_risk(self, state: _RunState) -> Dict[str, Any]:
        assert state.draft is not None and state.metrics is not None
        assessor = RiskAssessor(state.rules, site_domain=self.settings.site_domain)
        assessment = assessor.assess(
            state.draft.content,
            state.metrics.score,
            risk_flags=state.risk_flags,
            validation=state.validation,
            contributor_name=state.contributor.name if state.contributor else None,
            extra_issues=state.monetization_issues,
            expect_shortcode=state.expect_shortcode,
        )
        state.assessment = assessment

        settings = AutoPublishSettings.from_rules(state.rules)
        eligible, reason = check_auto_publish_eligibility(assessment, settings)
        state.auto_publish = {
            "eligible": eligible,
            "reason": reason,
            "deadline": auto_publish_deadline(days=settings.days_until_auto_publish).isoformat() if eligible else None,
        }
        state.reasoning.log_decision(
            PipelineStage.RISK.value,
            f"Risk {assessment.risk_level} (score {assessment.risk_score})",
            inputs={
                "quality_score": state.metrics.score,
                "blocking": [i.type for i in assessment.blocking_issues],
                "warnings": [i.type for i in assessment.warnings],
                "auto_publish": state.auto_publish,
            },
            rationale=assessment.summary,
        )
        return {
            "risk_level": assessment.risk_level,
            "risk_score": assessment.risk_score,
            "can_auto_publish": assessment.can_auto_publish,
            "auto_publish_eligible": eligible,
        }

    # ------------------------------------------------------------------
    # Article assembly
    # ------------------------------------------------------------------

    def _build_article(self, state: _RunState) -> Article:
        draft = state.draft
        assert draft is not None and state.validation is not None and state.assessment is not None
        validation = state.validation
        assessment = state.assessment

        reasons = list(state.review_reasons)
        reasons += [f"Validation: {i.message}" for i in validation.warnings]
        reasons += [f"Quality: {flag}" for flag in state.risk_flags]
        reasons += [f"Risk: {i.message}" for i in assessment.blocking_issues]
        if assessment.risk_level != RiskLevel.LOW.value:
            reasons.append(f"Risk level {assessment.risk_level}")

        contributor = state.contributor
        return Article(
            title=draft.title or state.idea.title,
            content=draft.content,
            excerpt=draft.excerpt,
            faqs=list(draft.faqs),
            meta_title=draft.meta_title or truncate(draft.title, 60),
            meta_description=draft.meta_description or draft.excerpt,
            focus_keyword=draft.focus_keyword or (state.idea.keywords[0] if state.idea.keywords else ""),
            slug=generate_slug(draft.title or state.idea.title),
            content_type=state.options.content_type,
            status=ArticleStatus.DRAFTING.value,
            word_count=count_words(draft.content),
            quality_score=state.metrics.score if state.metrics else 0,
            risk_flags=list(state.risk_flags),
            validation_flags=validation.all_issues,
            requires_human_review=bool(
                validation.requires_review or assessment.requires_review or state.risk_flags or state.review_reasons
            ),
            review_reasons=reasons,
            validation_risk_level=validation.risk_level,
            risk_level=assessment.risk_level,
            risk_assessment=assessment,
            contributor_id=contributor.id if contributor else None,
            contributor_name=contributor.name if contributor else None,
            monetization_slots=[s.to_dict() for s in state.monetization.slots] if state.monetization else [],
            reasoning=state.reasoning.to_dict(),
            idea_id=state.idea.id,
        )

    def _build_stub(self, state: _RunState, exc: BaseException) -> Article:
        """Minimal article that keeps the idea for manual completion."""
        state.reasoning.log_warning("pipeline_error", f"{type(exc).__name__}: {exc}", severity="critical")
        draft = state.draft
        contributor = state.contributor
        title = (draft.title if draft and draft.title else state.idea.title)
        content = draft.content if draft else ""
        return Article(
            title=title,
            content=content,
            excerpt=draft.excerpt if draft else state.idea.description,
            faqs=list(draft.faqs) if draft else [],
            slug=generate_slug(title),
            content_type=state.options.content_type,
            status=ArticleStatus.NEEDS_MANUAL_COMPLETION.value,
            word_count=count_words(content),
            requires_human_review=True,
            review_reasons=[f"Generation failed: {type(exc).__name__}: {exc}"],
            contributor_id=contributor.id if contributor else None,
            contributor_name=contributor.name if contributor else None,
            reasoning=state.reasoning.to_dict(),
            idea_id=state.idea.id,
            error=str(exc),
        )


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_instance: Optional[ArticlePipeline] = None


def get_pipeline() -> ArticlePipeline:
    """Get or create the singleton ArticlePipeline instance."""
    global _instance
    if _instance is None:
        _instance = ArticlePipeline.from_settings()
    return _instance


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _format_run_summary(run: PipelineRun) -> str:
    """Format a pipeline run for CLI display."""
    article = run.article
    lines = [
        f"Run ID:    {run.run_id}",
        f"Title:     {article.title if article else run.idea_title}",
        f"Type:      {run.content_type}",
        f"Status:    {run.status.upper()}",
    ]
    if run.total_duration_seconds > 0:
        lines.append(f"Duration:  {run.total_duration_seconds:.1f}s")
    if run.contributor_name:
        lines.append(f"Author:    {run.contributor_name}")
    if run.word_count:
        lines.append(f"Words:     {run.word_count}")
    if run.quality_score:
        lines.append(f"Quality:   {run.quality_score}/100")
    if run.risk_level:
        lines.append(f"Risk:      {run.risk_level}")
    if run.humanizer_provider:
        lines.append(f"Humanizer: {run.humanizer_provider}")
    if run.internal_links_added:
        lines.append(f"Internal:  {run.internal_links_added} links")
    if article is not None:
        lines.append(f"Review:    {'yes' if article.requires_human_review else 'no'}")
        if article.risk_flags:
            lines.append(f"Flags:     {', '.join(article.risk_flags)}")
    if run.error:
        lines.append(f"Error:     {truncate(run.error, 120)}")

    lines.append("")
    lines.append("Stages:")
    for stage in STAGE_ORDER:
        data = run.stages.get(stage.value, {})
        status = data.get("status", "pending")
        duration = data.get("duration_seconds", 0)
        error = data.get("error", "")
        icon = {
            "completed": "[OK]",
            "failed": "[FAIL]",
            "skipped": "[SKIP]",
            "running": "[...]",
            "pending": "[  ]",
        }.get(status, "[??]")
        line = f"  {icon} {stage.value:<16s}"
        if duration > 0:
            line += f" ({duration:.1f}s)"
        if error:
            line += f" -- {truncate(error, 80)}"
        elif status == "skipped":
            line += f" -- {data.get('output', {}).get('reason', '')}"
        lines.append(line)
    return "\n".join(lines)


async def _validate_file(path: Path, settings: PipelineSettings) -> Dict[str, Any]:
    html = path.read_text(encoding="utf-8")
    rules = RulesConfig.default()
    if settings.rules_path:
        rules = await JsonRulesConfigStore(Path(settings.rules_path)).active()
    validator = ContentValidator(catalog=StaticCatalog([]), site_domain=settings.site_domain)
    validation = await validator.validate(html)
    metrics = QualityScorer(rules.quality_thresholds(), site_domain=settings.site_domain).score(html)
    assessment = RiskAssessor(rules, site_domain=settings.site_domain).assess(
        html, metrics.score, risk_flags=metrics.issue_types(), validation=validation,
    )
    return {
        "validation": validation.to_dict(),
        "quality": metrics.to_dict(),
        "risk": assessment.to_dict(),
    }


def main() -> None:
    """CLI entry point for the article pipeline."""
    parser = argparse.ArgumentParser(
        prog="content_pipeline",
        description="Article generation pipeline: draft, humanize, link, monetize, validate, score",
    )
    subparsers = parser.add_subparsers(dest="command", help="Pipeline commands")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Generate one article")
    p_gen.add_argument("--title", required=True, help="Article title")
    p_gen.add_argument("--description", default="", help="Idea description")
    p_gen.add_argument("--keywords", default="", help="Comma-separated keywords")
    p_gen.add_argument("--topics", default="", help="Comma-separated seed topics")
    p_gen.add_argument("--degree-level", default=None, help="Degree level (e.g. Master)")
    p_gen.add_argument("--type", default="guide", help="ranking/career_guide/listicle/guide/faq")
    p_gen.add_argument("--words", type=int, default=2000, help="Target word count")
    p_gen.add_argument("--catalog", default=None, help="JSON file of catalog entries for internal links")
    p_gen.add_argument("--no-humanize", action="store_true", help="Skip humanization")
    p_gen.add_argument("--no-links", action="store_true", help="Skip internal linking")
    p_gen.add_argument("--no-fix", action="store_true", help="Skip the auto-fix loop")
    p_gen.add_argument("--json", action="store_true", help="Print the article as JSON")
    p_gen.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # --- validate ---
    p_val = subparsers.add_parser("validate", help="Validate and score an HTML file")
    p_val.add_argument("--file", required=True, help="HTML file to check")
    p_val.add_argument("--json", action="store_true", help="Print results as JSON")

    # --- stages ---
    subparsers.add_parser("stages", help="List all pipeline stages")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if getattr(args, "verbose", False):
        logger.setLevel(logging.DEBUG)

    settings = get_settings()

    # ---- generate ----
    if args.command == "generate":
        overrides: Dict[str, Any] = {}
        if args.catalog:
            overrides["catalog"] = StaticCatalog.from_json(Path(args.catalog))
        pipeline = ArticlePipeline.from_settings(settings, **overrides)
        idea = ContentIdea(
            title=args.title,
            description=args.description,
            keywords=tuple(k.strip() for k in args.keywords.split(",") if k.strip()),
            seed_topics=tuple(t.strip() for t in args.topics.split(",") if t.strip()),
            degree_level=args.degree_level,
        )
        options = GenerationOptions(
            content_type=args.type,
            target_word_count=args.words,
            humanize=not args.no_humanize,
            add_internal_links=not args.no_links,
            auto_fix=not args.no_fix,
        )

        async def _generate() -> PipelineRun:
            try:
                return await pipeline.execute(idea, options)
            finally:
                await pipeline.close()

        try:
            run = _run_sync(_generate())
        except BlockingValidationError as exc:
            print(f"Blocked: {exc}")
            for issue in exc.issues:
                print(f"  - [{issue.type}] {issue.message}")
            sys.exit(2)

        if args.json:
            print(json.dumps(run.article.to_dict() if run.article else {}, indent=2, default=str))
        else:
            print(_format_run_summary(run))

    # ---- validate ----
    elif args.command == "validate":
        path = Path(args.file)
        if not path.exists():
            print(f"File not found: {path}")
            sys.exit(1)
        report = _run_sync(_validate_file(path, settings))
        if args.json:
            print(json.dumps(report, indent=2, default=str))
        else:
            validation = report["validation"]
            risk = report["risk"]
            print(f"Blocked:   {'yes' if validation['is_blocked'] else 'no'}")
            print(f"Words:     {validation['metrics']['word_count']}")
            print(f"Quality:   {report['quality']['score']}/100")
            print(f"Risk:      {risk['risk_level']} (score {risk['risk_score']})")
            issues = validation["blocking_issues"] + validation["warnings"] + report["quality"]["issues"]
            if issues:
                print("Issues:")
                for issue in issues:
                    print(f"  - [{issue['severity']}] {issue['type']}: {truncate(issue['message'], 90)}")
            print(f"Summary:   {risk['summary']}")

    # ---- stages ----
    elif args.command == "stages":
        print(f"Article Pipeline Stages ({len(STAGE_ORDER)} total):")
        print("=" * 60)
        for i, stage in enumerate(STAGE_ORDER, 1):
            print(f"  {i:>2}. {stage.value:<16s} -- {STAGE_DESCRIPTIONS.get(stage, '')}")


if __name__ == "__main__":
    main()
