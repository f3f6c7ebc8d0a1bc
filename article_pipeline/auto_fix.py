"""
Auto-fix loop: repair -> re-score until the structural issues are gone.

The loop stops on the first of:
    * no issues left                  -> risk_flags = []
    * a repair that does not raise the score
                                      -> keep the pre-repair content and flag
                                         its issues
    * ``max_attempts`` repairs made    -> flag the remaining issues

Repair provider errors propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from article_pipeline.circuit_breaker import RetryPolicy
from article_pipeline.html_utils import ensure_proper_html_formatting
from article_pipeline.models import FAQ, QualityMetrics
from article_pipeline.providers import RepairProvider
from article_pipeline.quality_scorer import QualityScorer

logger = logging.getLogger("auto_fix")


@dataclass
class AutoFixResult:
    content: str
    metrics: QualityMetrics
    risk_flags: List[str] = field(default_factory=list)
    attempts: int = 0
    stopped_reason: str = ""
    score_history: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempts": self.attempts,
            "stopped_reason": self.stopped_reason,
            "score_history": list(self.score_history),
            "risk_flags": list(self.risk_flags),
            "final_score": self.metrics.score,
        }


class AutoFixLoop:
    def __init__(
        self,
        scorer: QualityScorer,
        repair: Optional[RepairProvider] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.scorer = scorer
        self.repair = repair
        self.retry_policy = retry_policy or RetryPolicy(max_retries=2, module_name="repair")

    async def run(
        self,
        content: str,
        faqs: Optional[Sequence[FAQ]] = None,
        max_attempts: int = 3,
    ) -> AutoFixResult:
        """Score *content* and repair it while each repair improves the score."""
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        current = content
        metrics = self.scorer.score(current, faqs)
        history = [metrics.score]
        attempts = 0

        while True:
            if not metrics.issues:
                return AutoFixResult(
                    content=current, metrics=metrics, risk_flags=[],
                    attempts=attempts,
                    stopped_reason="no_issues", score_history=history,
                )
            if attempts >= max_attempts or self.repair is None:
                reason = "max_attempts" if self.repair is not None else "no_repair_provider"
                logger.info(
                    "Auto-fix stopped (%s) at score %d with %d issue(s)",
                    reason, metrics.score, len(metrics.issues),
                )
                return AutoFixResult(
                    content=current, metrics=metrics, risk_flags=metrics.issue_types(),
                    attempts=attempts,
                    stopped_reason=reason, score_history=history,
                )

            logger.info(
                "Auto-fix attempt %d/%d: score %d, issues %s",
                attempts + 1, max_attempts, metrics.score, metrics.issue_types(),
            )
            repaired = await self.retry_policy.execute(self.repair.fix, current, metrics.issues)
            attempts += 1
            repaired = ensure_proper_html_formatting(repaired or "")
            new_metrics = self.scorer.score(repaired, faqs)
            history.append(new_metrics.score)

            if new_metrics.score <= metrics.score:
                logger.warning(
                    "Repair did not improve score (%d -> %d); keeping previous content",
                    metrics.score, new_metrics.score,
                )
                return AutoFixResult(
                    content=current, metrics=metrics, risk_flags=metrics.issue_types(),
                    attempts=attempts,
                    stopped_reason="no_improvement", score_history=history,
                )

            current, metrics = repaired, new_metrics
