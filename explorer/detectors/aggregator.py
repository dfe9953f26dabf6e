"""
Detector Aggregator: runs the enabled detectors and scores the run.

Responsibilities:
1. Run each enabled detector in order. A raising detector is captured as a
   DetectorErr in its own slot and never aborts the others.
2. Count issues on the {critical, major, minor} scale and derive the risk
   score and risk level.
3. Tally the Executor's artifacts by kind.
4. Optionally post one findings comment per detector with issues.

Scoring (exact integer arithmetic):
    risk_score = critical * 10 + major * 5 + minor

Risk level, first match wins:
    critical  critical > 0  or score >= 20
    high      major >= 3    or score >= 10
    medium    major > 0     or score >= 5
    low       otherwise
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Protocol

from explorer.config import DetectorThresholds, ExplorerConfig
from explorer.detectors.base import Detector, DetectorErr, DetectorOk, DetectorResult
from explorer.detectors.console import ConsoleDetector
from explorer.detectors.network import NetworkDetector
from explorer.detectors.performance import PerformanceDetector
from explorer.detectors.visual import VisualDetector
from explorer.errors import DetectorError, NotificationError
from explorer.reporting.notifier import format_findings_comment
from explorer.state import Analysis, ExecutionResult, Issue, OverallSummary

if TYPE_CHECKING:
    from explorer.core.console import RunConsole

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"critical": 3, "major": 2, "minor": 1}

ARTIFACT_BUCKETS = {
    "screenshot": "screenshots",
    "visual": "screenshots",
    "network": "network_data",
    "console": "console_data",
    "performance": "performance_data",
    "dom": "dom_snapshots",
}


class CommentPoster(Protocol):
    async def post_comment(self, repository: str, number: int, body: str) -> Any: ...


# ── Scoring ──

def compute_risk_score(critical: int, major: int, minor: int) -> int:
    return critical * 10 + major * 5 + minor


def classify_risk(critical: int, major: int, score: int) -> str:
    if critical > 0 or score >= 20:
        return "critical"
    if major >= 3 or score >= 10:
        return "high"
    if major > 0 or score >= 5:
        return "medium"
    return "low"


def summarize_issues(issues: list[Issue]) -> OverallSummary:
    """Build the overall summary. Issues outside the scoring vocabulary count only toward the total."""
    critical = sum(1 for i in issues if i.severity == "critical")
    major = sum(1 for i in issues if i.severity == "major")
    minor = sum(1 for i in issues if i.severity == "minor")
    score = compute_risk_score(critical, major, minor)
    return OverallSummary(
        total_issues=len(issues),
        critical_issues=critical,
        major_issues=major,
        minor_issues=minor,
        risk_score=score,
        risk_level=classify_risk(critical, major, score),
    )


def prioritize(issues: list[Issue]) -> list[Issue]:
    """Stable sort, highest severity first. Unranked severities sink to the end."""
    return sorted(issues, key=lambda i: SEVERITY_RANK.get(i.severity, 0), reverse=True)


def build_detectors(thresholds: DetectorThresholds) -> dict[str, Detector]:
    return {
        "console": ConsoleDetector(thresholds.console),
        "network": NetworkDetector(thresholds.network),
        "visual": VisualDetector(thresholds.visual),
        "performance": PerformanceDetector(thresholds.performance),
    }


# ── Aggregator ──

class DetectorAggregator:
    """
    Usage:
        aggregator = DetectorAggregator(config, code_host=github)
        aggregator.set_pr_context("acme/web", 42)
        analysis = await aggregator.analyze(execution)
        report = aggregator.generate_report(analysis)
    """

    def __init__(
        self,
        config: Optional[ExplorerConfig] = None,
        *,
        detectors: Optional[dict[str, Detector]] = None,
        code_host: Optional[CommentPoster] = None,
        console: Optional["RunConsole"] = None,
    ):
        config = config or ExplorerConfig()
        self.detectors = detectors if detectors is not None else build_detectors(config.thresholds)
        self.enabled: set[str] = {name for name in config.enabled_detectors if name in self.detectors}
        self.enable_comments = config.enable_pr_comments
        self.code_host = code_host
        self.console = console
        self.pr_context: Optional[tuple[str, int]] = None

    def set_pr_context(self, repository: Optional[str], number: Optional[int]):
        self.pr_context = (repository, number) if repository and number else None

    async def analyze(self, execution: ExecutionResult, plan_id: Optional[str] = None) -> Analysis:
        logger.info(f"Running {len(self.enabled)} detectors")
        results: dict[str, DetectorResult] = {}

        for name, detector in self.detectors.items():
            if name not in self.enabled:
                continue
            results[name] = self._run_detector(name, detector, execution)
            if self.console:
                self.console.render_findings(name, results[name])

        issues = [issue for result in results.values() for issue in result.issues]
        summary = summarize_issues(issues)

        recommendations: list[str] = []
        for result in results.values():
            for rec in result.recommendations:
                if rec not in recommendations:
                    recommendations.append(rec)

        analysis = Analysis(
            overall_summary=summary,
            detector_results=results,
            recommendations=recommendations,
            artifact_summary=self._artifact_summary(execution),
            timestamp=datetime.now(timezone.utc).isoformat(),
            plan_id=plan_id,
        )
        logger.info(
            f"Analysis complete: {summary.total_issues} issues, "
            f"risk {summary.risk_level} (score {summary.risk_score})"
        )

        await self._post_findings(results)
        return analysis

    def _run_detector(self, name: str, detector: Detector, execution: ExecutionResult) -> DetectorResult:
        try:
            result = detector.analyze(execution)
            if not isinstance(result, DetectorOk):
                raise DetectorError(f"{name} returned {type(result).__name__}, expected DetectorOk")
            return result
        except Exception as e:
            logger.warning(f"Detector '{name}' failed: {e}")
            return DetectorErr(message=str(e))

    @staticmethod
    def _artifact_summary(execution: ExecutionResult) -> dict[str, int]:
        summary = {bucket: 0 for bucket in ARTIFACT_BUCKETS.values()}
        for _, artifact in execution.iter_artifacts():
            bucket = ARTIFACT_BUCKETS.get(artifact.type)
            if bucket:
                summary[bucket] += 1
        return summary

    async def _post_findings(self, results: dict[str, DetectorResult]):
        if not (self.enable_comments and self.pr_context and self.code_host):
            return
        repository, number = self.pr_context
        for name, result in results.items():
            if not isinstance(result, DetectorOk) or not result.issues:
                continue
            try:
                body = format_findings_comment(name, result)
                await self.code_host.post_comment(repository, number, body)
                logger.info(f"Posted {name} findings to {repository}#{number}")
            except NotificationError as e:
                logger.error(f"Failed to post {name} findings comment: {e}")
            except Exception as e:
                logger.error(f"Unexpected error posting {name} findings comment: {e}")

    # ── Report derivation ──

    def generate_report(self, analysis: Analysis) -> dict[str, Any]:
        detector_summary = {}
        for name, result in analysis.detector_results.items():
            detector_summary[name] = {
                "issues_found": len(result.issues),
                "status": "error" if isinstance(result, DetectorErr) else "completed",
                "error": result.error,
            }

        s = analysis.overall_summary
        return {
            "timestamp": analysis.timestamp,
            "plan_id": analysis.plan_id,
            "overall_summary": s,
            "detector_summary": detector_summary,
            "prioritized_issues": prioritize(analysis.all_issues),
            "issue_breakdown": {
                "critical": s.critical_issues,
                "major": s.major_issues,
                "minor": s.minor_issues,
            },
            "recommendations": list(analysis.recommendations),
            "artifact_summary": dict(analysis.artifact_summary),
        }

    # ── Configuration (between runs only) ──

    def toggle_detector(self, name: str, enabled: bool) -> bool:
        if name not in self.detectors:
            logger.warning(f"Unknown detector: {name}")
            return False
        if enabled:
            self.enabled.add(name)
        else:
            self.enabled.discard(name)
        return True

    def update_thresholds(self, name: str, **changes: Any) -> bool:
        detector = self.detectors.get(name)
        if detector is None:
            logger.warning(f"Unknown detector: {name}")
            return False
        try:
            detector.update_thresholds(**changes)
        except TypeError as e:
            logger.warning(f"Invalid thresholds for {name}: {e}")
            return False
        return True

    def get_detector(self, name: str) -> Optional[Detector]:
        return self.detectors.get(name)

    def get_configuration(self) -> dict[str, Any]:
        return {
            "enabled": [name for name in self.detectors if name in self.enabled],
            "comments": self.enable_comments,
            "detectors": {name: d.get_configuration() for name, d in self.detectors.items()},
        }
