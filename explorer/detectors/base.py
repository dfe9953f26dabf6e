"""
Detector Base: shared result types and helpers for all detectors.

A detector is stateless per run. It reads an ExecutionResult, applies its own
thresholds and returns a DetectorOk. The aggregator turns a raising detector
into a DetectorErr, so both shapes are consumed the same way downstream.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from explorer.state import ExecutionResult, Issue, StepRecord

logger = logging.getLogger(__name__)

DETECTOR_ICONS = {
    "console": "📟",
    "network": "🌐",
    "visual": "👁️",
    "performance": "⚡",
}

SEVERITY_EMOJI = {
    "critical": "🔴",
    "error": "🔴",
    "major": "🟡",
    "warning": "🟡",
    "minor": "🔵",
    "info": "⚪",
}


# ── Result variants ──

@dataclass
class DetectorOk:
    issues: list[Issue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)

    ok = True
    error = None


@dataclass
class DetectorErr:
    message: str

    ok = False

    @property
    def error(self) -> str:
        return self.message

    @property
    def issues(self) -> list[Issue]:
        return []

    @property
    def recommendations(self) -> list[str]:
        return []


DetectorResult = Union[DetectorOk, DetectorErr]


# ── Base detector ──

class Detector:
    """
    Base class for the built-in detectors.

    Subclasses set `name`, accept their thresholds block and implement
    `analyze(execution) -> DetectorOk`.
    """

    name = "detector"

    def __init__(self, thresholds):
        self.thresholds = thresholds

    def analyze(self, execution: ExecutionResult) -> DetectorOk:
        raise NotImplementedError

    def update_thresholds(self, **changes: Any):
        """Replace individual threshold values. Only call between runs."""
        self.thresholds = dataclasses.replace(self.thresholds, **changes)

    def get_configuration(self) -> dict[str, Any]:
        return {"name": self.name, "thresholds": dataclasses.asdict(self.thresholds)}

    # ── Helpers ──

    def issue(
        self,
        issue_type: str,
        severity: str,
        message: str,
        *,
        location: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> Issue:
        """Build an issue tagged with this detector's category. Ids are set by `finish`."""
        return Issue(
            id="",
            severity=severity,
            type=issue_type,
            category=self.name,
            message=message,
            location=location,
            details=details,
            suggestion=suggestion,
        )

    def finish(self, issues: list[Issue], recommendations: list[str], summary: dict[str, Any]) -> DetectorOk:
        """Number the issues and wrap everything in a DetectorOk."""
        for i, issue in enumerate(issues, 1):
            issue.id = f"{self.name}-{i}-{issue.type}"
        logger.info(f"{self.name} analysis completed: {len(issues)} issues found")
        return DetectorOk(issues=issues, recommendations=recommendations, summary=summary)


def step_location(step: Optional[StepRecord]) -> Optional[str]:
    if step is None:
        return None
    return step.description or f"step {step.step_id}"


def as_number(value: Any) -> Optional[float]:
    """Return a positive number or None. Zero and junk count as missing."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value > 0:
        return value
    return None
