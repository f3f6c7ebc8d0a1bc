"""
Pipeline Configuration
======================

Environment settings and the versioned content-rules document that every
pipeline stage reads from.

Environment (loaded from ``.env`` via python-dotenv):
    ANTHROPIC_API_KEY              Claude draft / repair / fallback rewrite
    STEALTHGPT_API_KEY             primary rewrite provider
    STEALTHGPT_BASE_URL            default https://stealthgpt.ai/api
    ARTICLE_PIPELINE_MODEL         content model (Sonnet)
    ARTICLE_PIPELINE_FAST_MODEL    classification model (Haiku)
    ARTICLE_SITE_DOMAIN            domain treated as internal (geteducated.com)
    ARTICLE_PIPELINE_TIMEOUT       per-call timeout in seconds (120)
    ARTICLE_PIPELINE_MAX_CONCURRENT  batch worker count (3)
    HUMANIZER_SCORE_CONVENTION     higher_is_human | higher_is_detectable
    ARTICLE_RULES_PATH             optional JSON rules document

The rules document mirrors what the editorial team manages: hard rules
(approved authors, blocked domains, allowed citation sources), soft
guidelines (word counts, heading / FAQ / link minimums, quality gates),
tone and voice, and which pipeline steps are enabled.  When no document can
be loaded ``RulesConfig.default()`` is used and a ConfigLoadError is logged.

Usage:
    from article_pipeline.config import get_settings, RulesConfig

    settings = get_settings()
    rules = RulesConfig.default()
    thresholds = rules.quality_thresholds()
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger("config")

# ---------------------------------------------------------------------------
# Paths & environment
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

load_dotenv(ENV_PATH)

MODEL_SONNET = "claude-sonnet-4-20250514"
MODEL_HAIKU = "claude-haiku-4-5-20251001"

DEFAULT_SITE_DOMAIN = "geteducated.com"
DEFAULT_STEALTHGPT_BASE_URL = "https://stealthgpt.ai/api"
DEFAULT_CALL_TIMEOUT = 120.0
DEFAULT_MAX_CONCURRENT = 3
RULES_CACHE_TTL_SECONDS = 300


class ConfigLoadError(Exception):
    """Raised when the active rules document cannot be loaded or parsed."""


# ---------------------------------------------------------------------------
# Environment settings
# ---------------------------------------------------------------------------


@dataclass
class PipelineSettings:
    """Process-level settings resolved from the environment."""
    anthropic_api_key: str = ""
    stealthgpt_api_key: str = ""
    stealthgpt_base_url: str = DEFAULT_STEALTHGPT_BASE_URL
    model_content: str = MODEL_SONNET
    model_fast: str = MODEL_HAIKU
    site_domain: str = DEFAULT_SITE_DOMAIN
    call_timeout: float = DEFAULT_CALL_TIMEOUT
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    score_convention: str = "higher_is_human"
    rules_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> PipelineSettings:
        return cls(
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            stealthgpt_api_key=os.environ.get("STEALTHGPT_API_KEY", ""),
            stealthgpt_base_url=os.environ.get("STEALTHGPT_BASE_URL", DEFAULT_STEALTHGPT_BASE_URL),
            model_content=os.environ.get("ARTICLE_PIPELINE_MODEL", MODEL_SONNET),
            model_fast=os.environ.get("ARTICLE_PIPELINE_FAST_MODEL", MODEL_HAIKU),
            site_domain=os.environ.get("ARTICLE_SITE_DOMAIN", DEFAULT_SITE_DOMAIN),
            call_timeout=float(os.environ.get("ARTICLE_PIPELINE_TIMEOUT", DEFAULT_CALL_TIMEOUT)),
            max_concurrent=int(os.environ.get("ARTICLE_PIPELINE_MAX_CONCURRENT", DEFAULT_MAX_CONCURRENT)),
            score_convention=os.environ.get("HUMANIZER_SCORE_CONVENTION", "higher_is_human"),
            rules_path=os.environ.get("ARTICLE_RULES_PATH") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        # Never leak credentials into logs or reasoning output
        d["anthropic_api_key"] = "***" if self.anthropic_api_key else ""
        d["stealthgpt_api_key"] = "***" if self.stealthgpt_api_key else ""
        return d


_settings: Optional[PipelineSettings] = None


def get_settings() -> PipelineSettings:
    """Get or create the singleton PipelineSettings instance."""
    global _settings
    if _settings is None:
        _settings = PipelineSettings.from_env()
    return _settings


# ---------------------------------------------------------------------------
# Quality thresholds
# ---------------------------------------------------------------------------


@dataclass
class QualityThresholds:
    """Structural targets the QualityScorer measures against."""
    min_word_count: int = 1500
    max_word_count: int = 2500
    target_word_count: int = 2000
    min_internal_links: int = 3
    min_external_links: int = 2
    min_faqs: int = 3
    min_h2_headings: int = 3
    max_avg_sentence_length: float = 25.0
    min_score_to_publish: int = 70
    min_score_auto_publish: int = 80
    target_score: int = 85

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> QualityThresholds:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


@dataclass
class VoiceContext:
    """Tone and voice guidance handed to whole-document rewrite providers."""
    tone: str = "conversational"
    formality: str = "professional"
    banned_phrases: List[str] = field(default_factory=list)
    preferred_phrases: List[str] = field(default_factory=list)
    sentence_variety: Dict[str, Any] = field(default_factory=dict)
    author_profile: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Rules document
# ---------------------------------------------------------------------------

_DEFAULT_RULES: Dict[str, Any] = {
    "version": 0,
    "hard_rules": {
        "authors": {
            "approved_authors": ["Tony Huffman", "Kayleigh Gilbert", "Sara", "Charity"],
            "require_author_assignment": True,
            "enforce_approved_only": True,
        },
        "links": {
            "blocked_domains": [
                "onlineu.com", "usnews.com", "affordablecollegesonline.com",
                "toponlinecollegesusa.com", "bestcolleges.com", "niche.com",
                "collegeconfidential.com", "cappex.com", "collegeraptor.com",
                "collegesimply.com", "graduateguide.com", "gradschools.com",
                "petersons.com", "princetonreview.com", "collegexpress.com",
            ],
            "block_edu_links": True,
            "block_competitor_links": True,
        },
        "external_sources": {
            "allowed_domains": [
                "bls.gov", "stats.bls.gov", "ed.gov", "nces.ed.gov",
                "studentaid.gov", "fafsa.gov", "collegescorecard.ed.gov",
                "chea.org", "aacsb.edu", "abet.org", "cacrep.org",
                "ccne-accreditation.org", "cswe.org", "ncate.org", "teac.org",
                "collegeboard.org", "acenet.edu", "aacn.nche.edu", "naspa.org",
                "apa.org", "nasw.org", "nursingworld.org",
            ],
            "require_whitelist": True,
        },
        "monetization": {
            "require_monetization_shortcode": True,
        },
        "publishing": {
            "require_human_review": True,
            "block_high_risk": True,
            "block_critical_risk": True,
            "days_until_auto_publish": 5,
        },
    },
    "guidelines": {
        "word_count": {"minimum": 1500, "target": 2000, "maximum": 2500},
        "structure": {"min_h2_headings": 3, "max_h2_headings": 8},
        "faqs": {"minimum": 3, "target": 5},
        "links": {"internal_links_min": 3, "internal_links_target": 5, "external_citations_min": 2},
        "quality": {"minimum_score_to_publish": 70, "minimum_score_auto_publish": 80, "target_score": 85},
        "readability": {"target_flesch_score": 60, "max_avg_sentence_length": 25},
    },
    "tone_voice": {
        "overall_style": {"tone": "conversational", "formality": "professional but approachable"},
        "banned_phrases": ["utilize", "in order to", "at the end of the day", "synergy", "leverage"],
        "preferred_phrases": ["use", "to", "ultimately", "work together", "apply"],
        "sentence_variety": {"vary_length": True, "avoid_starting_with_same_word": True},
        "anti_hallucination": {"require_citations_for_statistics": True, "no_invented_data": True},
    },
    "pipeline_steps": [
        {"id": "draft", "name": "Draft Generation", "enabled": True},
        {"id": "humanize", "name": "Humanization", "enabled": True},
        {"id": "internal_links", "name": "Internal Linking", "enabled": True},
        {"id": "monetization", "name": "Monetization", "enabled": True},
        {"id": "quality_check", "name": "Quality Check", "enabled": True},
    ],
}


@dataclass
class RulesConfig:
    """Versioned content-rules document.

    Sections are kept as plain dicts so editors can add keys without a code
    change; typed views (``quality_thresholds``, ``voice_context``, ...) read
    from them with defaults.
    """
    version: int = 0
    hard_rules: Dict[str, Any] = field(default_factory=dict)
    guidelines: Dict[str, Any] = field(default_factory=dict)
    tone_voice: Dict[str, Any] = field(default_factory=dict)
    pipeline_steps: List[Dict[str, Any]] = field(default_factory=list)
    is_default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RulesConfig:
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Rules document must be an object, got {type(data).__name__}")
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        try:
            filtered["version"] = int(filtered.get("version", 0))
        except (TypeError, ValueError) as exc:
            raise ConfigLoadError(f"Invalid rules version: {filtered.get('version')!r}") from exc
        return cls(**filtered)

    @classmethod
    def default(cls) -> RulesConfig:
        rules = cls.from_dict(copy.deepcopy(_DEFAULT_RULES))
        rules.is_default = True
        return rules

    # ------------------------------------------------------------------
    # Typed views
    # ------------------------------------------------------------------

    @property
    def approved_authors(self) -> List[str]:
        return list(self.hard_rules.get("authors", {}).get("approved_authors", []))

    @property
    def blocked_domains(self) -> List[str]:
        return list(self.hard_rules.get("links", {}).get("blocked_domains", []))

    @property
    def allowed_external_domains(self) -> List[str]:
        return list(self.hard_rules.get("external_sources", {}).get("allowed_domains", []))

    @property
    def block_edu_links(self) -> bool:
        return bool(self.hard_rules.get("links", {}).get("block_edu_links", True))

    @property
    def days_until_auto_publish(self) -> int:
        return int(self.hard_rules.get("publishing", {}).get("days_until_auto_publish", 5))

    def quality_thresholds(self) -> QualityThresholds:
        """Flatten the guideline sections into a QualityThresholds struct."""
        gl = self.guidelines or {}
        wc = gl.get("word_count", {})
        links = gl.get("links", {})
        quality = gl.get("quality", {})
        defaults = QualityThresholds()
        return QualityThresholds(
            min_word_count=wc.get("minimum", defaults.min_word_count),
            max_word_count=wc.get("maximum", defaults.max_word_count),
            target_word_count=wc.get("target", defaults.target_word_count),
            min_internal_links=links.get("internal_links_min", defaults.min_internal_links),
            min_external_links=links.get("external_citations_min", defaults.min_external_links),
            min_faqs=gl.get("faqs", {}).get("minimum", defaults.min_faqs),
            min_h2_headings=gl.get("structure", {}).get("min_h2_headings", defaults.min_h2_headings),
            max_avg_sentence_length=gl.get("readability", {}).get(
                "max_avg_sentence_length", defaults.max_avg_sentence_length
            ),
            min_score_to_publish=quality.get("minimum_score_to_publish", defaults.min_score_to_publish),
            min_score_auto_publish=quality.get("minimum_score_auto_publish", defaults.min_score_auto_publish),
            target_score=quality.get("target_score", defaults.target_score),
        )

    def is_step_enabled(self, step_id: str) -> bool:
        """Steps absent from the document are treated as enabled."""
        for step in self.pipeline_steps:
            if step.get("id") == step_id:
                return bool(step.get("enabled", True))
        return True

    def voice_context(self, author_profile: str = "") -> VoiceContext:
        tv = self.tone_voice or {}
        style = tv.get("overall_style", {})
        return VoiceContext(
            tone=style.get("tone", "conversational"),
            formality=style.get("formality", "professional"),
            banned_phrases=list(tv.get("banned_phrases", [])),
            preferred_phrases=list(tv.get("preferred_phrases", [])),
            sentence_variety=dict(tv.get("sentence_variety", {})),
            author_profile=author_profile,
        )

    def build_prompt_section(self) -> str:
        """Render hard rules and guidelines as a prompt block for generation models."""
        lines: List[str] = ["", "=== CONTENT RULES (MUST FOLLOW) ==="]

        if self.approved_authors:
            lines.append(f"APPROVED AUTHORS ONLY: {', '.join(self.approved_authors)}")

        link_rules = self.hard_rules.get("links", {})
        if link_rules:
            lines.append("LINK RULES:")
            if link_rules.get("block_edu_links"):
                lines.append("- NEVER link directly to .edu domains (link to our school pages instead)")
            if link_rules.get("block_competitor_links") and self.blocked_domains:
                lines.append(f"- NEVER link to competitors: {', '.join(self.blocked_domains)}")

        if self.allowed_external_domains:
            lines.append(f"ALLOWED EXTERNAL SOURCES: {', '.join(self.allowed_external_domains)}")
            lines.append("- Only cite these domains for external data")

        t = self.quality_thresholds()
        max_h2 = self.guidelines.get("structure", {}).get("max_h2_headings", 8)
        target_faqs = self.guidelines.get("faqs", {}).get("target", 5)
        target_links = self.guidelines.get("links", {}).get("internal_links_target", 5)
        lines.append("CONTENT GUIDELINES:")
        lines.append(f"- Word count: {t.min_word_count}-{t.max_word_count} words (target: {t.target_word_count})")
        lines.append(f"- Use {t.min_h2_headings}-{max_h2} H2 headings")
        lines.append(f"- Include {t.min_faqs}-{target_faqs} FAQs")
        lines.append(f"- Include {t.min_internal_links}-{target_links} internal links")
        lines.append(f"- Include at least {t.min_external_links} external citations")

        voice = self.voice_context()
        lines.append(f"WRITING STYLE: {voice.tone}, {voice.formality}")
        if voice.banned_phrases:
            lines.append(f"BANNED PHRASES (never use): {', '.join(voice.banned_phrases[:10])}")
        if voice.preferred_phrases:
            lines.append(f"PREFERRED PHRASES: {', '.join(voice.preferred_phrases[:10])}")
        if self.tone_voice.get("anti_hallucination", {}).get("require_citations_for_statistics"):
            lines.append("- Cite sources for all statistics and data")
            lines.append("- Do NOT invent or estimate data points")

        lines.append("=== END CONTENT RULES ===")
        return "\n".join(lines) + "\n"
