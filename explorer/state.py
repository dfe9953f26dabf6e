"""
Exploration State: the entities handed from one pipeline stage to the next.

Each entity is produced by exactly one stage and read by its downstream
neighbours only:

    ChangeSet        <- code host client
    ScopeDescriptor  <- ScopeInference
    Plan             <- PlanGenerator
    ExecutionResult  <- external Executor
    Analysis         <- DetectorAggregator
    Report           <- ReportSynthesizer
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ── Enums ──

class RiskLevel(str, Enum):
    """Change-set risk hint produced by scope inference."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Verdict(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class ArtifactKind(str, Enum):
    CONSOLE = "console"
    NETWORK = "network"
    VISUAL = "visual"
    SCREENSHOT = "screenshot"
    PERFORMANCE = "performance"
    DOM = "dom"


# Two severity vocabularies coexist. Scoring only counts the first,
# verdicts only look at the second.
SCORING_SEVERITIES = ("critical", "major", "minor")
VERDICT_SEVERITIES = ("error", "warning", "info")


# ── Change set ──

@dataclass(frozen=True)
class FileChange:
    path: str
    status: str                     # added | modified | removed (renamed etc. kept verbatim)
    added_lines: int = 0
    removed_lines: int = 0
    patch: Optional[str] = None


@dataclass(frozen=True)
class ChangeSet:
    """Immutable snapshot of one pull request."""
    repository: str
    number: int
    title: str
    author: str = ""
    description: str = ""
    labels: frozenset[str] = frozenset()
    files: tuple[FileChange, ...] = ()
    head_ref: str = ""
    url: str = ""

    @property
    def meta(self) -> dict[str, Any]:
        """The slice of PR identity copied into plans and reports."""
        return {
            "number": self.number,
            "title": self.title,
            "author": self.author,
            "repository": self.repository,
        }


# ── Scope ──

@dataclass
class Route:
    path: str
    name: str
    root_selector: str = 'main, [data-testid="app"], body'
    confidence: str = Confidence.MEDIUM.value
    source: str = "default"
    actions: list[Any] = field(default_factory=list)


@dataclass
class Component:
    name: str
    selector: str
    likely_routes: list[str] = field(default_factory=list)
    interactions: list[dict[str, Any]] = field(default_factory=list)
    source: str = "file-analysis"


@dataclass
class ScopeDescriptor:
    """
    Bounded description of what a change set touches.

    Invariant: `routes` is never empty once inference returns.
    """
    routes: list[Route] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    key_features: set[str] = field(default_factory=set)
    risk_level: RiskLevel = RiskLevel.LOW
    source: str = "fallback"           # "model" or "fallback"


# ── Plan ──

@dataclass(frozen=True)
class Step:
    id: int
    type: str
    action: str
    description: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    timeout_ms: Optional[int] = None
    artifacts: frozenset[ArtifactKind] = frozenset()


@dataclass(frozen=True)
class Plan:
    id: str
    app_url: str
    max_steps: int
    steps: tuple[Step, ...]
    created_at: str
    change_set_meta: dict[str, Any] = field(default_factory=dict)
    mode: str = "deterministic"        # "model-driven" or "deterministic"

    @property
    def over_budget(self) -> bool:
        return len(self.steps) > self.max_steps


# ── Execution (produced by the external Executor) ──

@dataclass
class Artifact:
    type: str
    data: Any = None


@dataclass
class StepRecord:
    step_id: int
    description: str = ""
    type: str = ""
    action: str = ""
    status: str = "completed"
    execution_time_ms: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    artifacts: list[Artifact] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ExecutionResult:
    steps: list[StepRecord] = field(default_factory=list)
    completed_steps: int = 0
    total_steps: int = 0
    success_rate: float = 0.0          # percent, 0-100
    duration: float = 0.0
    url: str = ""

    def iter_artifacts(self, *kinds: str):
        """Yield (step, artifact) pairs, optionally filtered by artifact type."""
        for step in self.steps:
            for artifact in step.artifacts:
                if not kinds or artifact.type in kinds:
                    yield step, artifact


# ── Issues and analysis ──

@dataclass
class Issue:
    id: str
    severity: str
    type: str
    category: str
    message: str
    location: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    suggestion: Optional[str] = None


@dataclass
class OverallSummary:
    total_issues: int = 0
    critical_issues: int = 0
    major_issues: int = 0
    minor_issues: int = 0
    risk_score: int = 0
    risk_level: str = "low"


@dataclass
class Analysis:
    overall_summary: OverallSummary
    detector_results: dict[str, Any]   # name -> DetectorOk | DetectorErr
    recommendations: list[str] = field(default_factory=list)
    artifact_summary: dict[str, int] = field(default_factory=dict)
    timestamp: str = ""
    plan_id: Optional[str] = None

    @property
    def all_issues(self) -> list[Issue]:
        issues: list[Issue] = []
        for result in self.detector_results.values():
            issues.extend(getattr(result, "issues", ()))
        return issues


# ── Report ──

@dataclass
class TopIssue:
    title: str
    severity: str
    description: str = ""
    fix: str = ""


@dataclass
class PerformanceInsight:
    function: str
    issue: str
    suggestion: str = "Consider optimizing this function"


@dataclass
class RiskAssessment:
    score: int
    level: str
    factors: list[str] = field(default_factory=list)


@dataclass
class Report:
    summary: str
    verdict: Verdict
    top_issues: list[TopIssue] = field(default_factory=list)
    performance_insights: list[PerformanceInsight] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: Confidence = Confidence.MEDIUM
    stats: dict[str, Any] = field(default_factory=dict)
    risk_assessment: Optional[RiskAssessment] = None
    source: str = "template"           # "model" or "template"
    pr: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""

    def summary_line(self) -> str:
        risk = self.risk_assessment.level if self.risk_assessment else "unknown"
        return f"{self.verdict.value} ({risk} risk, {len(self.top_issues)} top issues, via {self.source})"
