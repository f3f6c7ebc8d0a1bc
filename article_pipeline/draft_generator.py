"""
Draft Generator
===============

Produces the first structured draft for an idea and gates it on the blocking
checks (truncation and placeholder text).  A blocked draft is regenerated
once with a larger word target; a second block is fatal.

State machine:

    PENDING -> GENERATING -> VALIDATING -> SUCCESS
                                 |
                                 +-> BLOCKED -> GENERATING (retry, +200 words)
                                 |
                                 +-> EXHAUSTED_RETRIES  (raises DraftValidationFailed)

Usage:
    from article_pipeline.draft_generator import DraftGenerator

    generator = DraftGenerator(provider, validator)
    outcome = await generator.generate(idea, options, context)
    draft = outcome.draft
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from article_pipeline.circuit_breaker import RetryPolicy
from article_pipeline.content_validator import BlockingValidationError, ContentValidator
from article_pipeline.html_utils import count_words, ensure_proper_html_formatting
from article_pipeline.models import ArticleDraft, ContentIdea, GenerationOptions, ValidationIssue
from article_pipeline.providers import DraftContext, DraftProvider

logger = logging.getLogger("draft_generator")

MAX_DRAFT_ATTEMPTS = 2
RETRY_WORD_BUMP = 200


class DraftState(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    SUCCESS = "success"
    EXHAUSTED_RETRIES = "exhausted_retries"


class DraftValidationFailed(BlockingValidationError):
    """Every draft attempt was blocked by truncation or placeholder checks."""

    def __init__(self, issues: Sequence[ValidationIssue], attempts: int) -> None:
        self.attempts = attempts
        detail = "; ".join(i.message for i in issues) or "blocking validation failure"
        super().__init__(issues, f"Draft blocked after {attempts} attempt(s): {detail}")


@dataclass
class DraftAttempt:
    attempt: int
    target_word_count: int
    word_count: int = 0
    blocked: bool = False
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt,
            "target_word_count": self.target_word_count,
            "word_count": self.word_count,
            "blocked": self.blocked,
            "issues": list(self.issues),
        }


@dataclass
class DraftOutcome:
    draft: ArticleDraft
    attempts: List[DraftAttempt] = field(default_factory=list)
    state: str = DraftState.SUCCESS.value

    @property
    def retried(self) -> bool:
        return len(self.attempts) > 1


class DraftGenerator:
    """Generate -> normalise -> gate, with one regeneration on a blocked draft."""

    def __init__(
        self,
        provider: DraftProvider,
        validator: ContentValidator,
        retry_policy: Optional[RetryPolicy] = None,
        max_attempts: int = MAX_DRAFT_ATTEMPTS,
    ) -> None:
        self.provider = provider
        self.validator = validator
        self.retry_policy = retry_policy or RetryPolicy(max_retries=2, module_name=f"draft:{provider.name}")
        self.max_attempts = max_attempts
        self.state = DraftState.PENDING

    def _transition(self, new_state: DraftState) -> None:
        logger.debug("Draft state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    async def generate(
        self,
        idea: ContentIdea,
        options: GenerationOptions,
        context: DraftContext,
    ) -> DraftOutcome:
        """Run the draft state machine.

        Parameters
        ----------
        idea : ContentIdea
            Source idea; never modified.
        options : GenerationOptions
            ``target_word_count`` seeds the first attempt.
        context : DraftContext
            Pricing facts, voice profile and rules prompt for the provider.

        Returns
        -------
        DraftOutcome
            The accepted draft plus a record of each attempt.

        Raises
        ------
        DraftValidationFailed
            When every attempt is blocked.
        ProviderError
            When the provider fails after the retry policy gives up.
        """
        self.state = DraftState.PENDING
        attempts: List[DraftAttempt] = []
        target = options.target_word_count
        last_issues: List[ValidationIssue] = []

        while len(attempts) < self.max_attempts:
            self._transition(DraftState.GENERATING)
            attempt_ctx = replace(context, target_word_count=target)
            logger.info(
                "Generating draft for '%s' (attempt %d/%d, target %d words)",
                idea.title, len(attempts) + 1, self.max_attempts, target,
            )
            draft = await self.retry_policy.execute(self.provider.generate_draft, idea, attempt_ctx)
            draft.content = ensure_proper_html_formatting(draft.content)

            self._transition(DraftState.VALIDATING)
            result = await self.validator.validate_draft(draft.content, draft.faqs)
            record = DraftAttempt(
                attempt=len(attempts) + 1,
                target_word_count=target,
                word_count=count_words(draft.content),
                blocked=result.is_blocked,
                issues=[i.type for i in result.blocking_issues],
            )
            attempts.append(record)

            if not result.is_blocked:
                self._transition(DraftState.SUCCESS)
                return DraftOutcome(draft=draft, attempts=attempts, state=self.state.value)

            self._transition(DraftState.BLOCKED)
            last_issues = result.blocking_issues
            logger.warning(
                "Draft attempt %d blocked: %s",
                record.attempt, ", ".join(record.issues),
            )
            target += RETRY_WORD_BUMP

        self._transition(DraftState.EXHAUSTED_RETRIES)
        raise DraftValidationFailed(last_issues, attempts=len(attempts))
