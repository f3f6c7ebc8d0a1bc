"""
Per-run decision log attached to every generated article for audit.

Entries are append-only: logging the same stage twice keeps both, the
second under ``"<stage>#2"``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _now_iso() -> str:
    """Return the current UTC timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ReasoningEntry:
    decision: str
    inputs: Dict[str, Any] = field(default_factory=dict)
    rationale: str = ""
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReasoningWarning:
    type: str
    message: str
    severity: str = "warning"
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ReasoningLog:
    """Ordered stage -> decision map plus warnings and data sources."""

    def __init__(self, model_used: str = "", temperature: Optional[float] = None) -> None:
        self.generated_at = _now_iso()
        self.model_used = model_used
        self.temperature = temperature
        self._entries: Dict[str, ReasoningEntry] = {}
        self._warnings: List[ReasoningWarning] = []
        self._data_sources: List[Dict[str, Any]] = []

    def log_decision(
        self,
        stage: str,
        decision: str,
        inputs: Optional[Dict[str, Any]] = None,
        rationale: str = "",
    ) -> ReasoningEntry:
        key = stage
        n = 2
        while key in self._entries:
            key = f"{stage}#{n}"
            n += 1
        entry = ReasoningEntry(decision=decision, inputs=dict(inputs or {}), rationale=rationale)
        self._entries[key] = entry
        return entry

    def log_warning(self, warning_type: str, message: str, severity: str = "warning") -> None:
        self._warnings.append(ReasoningWarning(type=warning_type, message=message, severity=severity))

    def log_data_source(self, source: str, **metadata: Any) -> None:
        record = {"source": source, **metadata, "logged_at": _now_iso()}
        self._data_sources.append(record)

    @property
    def entries(self) -> Dict[str, ReasoningEntry]:
        return dict(self._entries)

    @property
    def warnings(self) -> List[ReasoningWarning]:
        return list(self._warnings)

    @property
    def data_sources(self) -> List[Dict[str, Any]]:
        return list(self._data_sources)

    def stages(self) -> List[str]:
        return list(self._entries.keys())

    def to_dict(self, finalize: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "generated_at": self.generated_at,
            "model_used": self.model_used,
            "temperature": self.temperature,
            "decisions": {k: v.to_dict() for k, v in self._entries.items()},
            "warnings": [w.to_dict() for w in self._warnings],
            "data_sources": list(self._data_sources),
        }
        if finalize:
            out["finalized_at"] = _now_iso()
        return out
