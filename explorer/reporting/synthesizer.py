"""
Report Synthesizer: turns detected issues and run statistics into a verdict.

Strategy:
    1. Ask the model backend to write the report as fixed-shape JSON.
    2. On any backend or parse failure, build the report from templates.

Both paths get the same risk assessment overlay and the optional webhook.
Never raises.

Verdicts and the risk overlay read the {error, warning, info} vocabulary only.
Issues graded {critical, major, minor} do not move the verdict; that scale is
scored by the detector aggregator.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from explorer.config import ModelConfig
from explorer.core.model_client import OllamaClient
from explorer.core.result import Err, Result
from explorer.core.schemas import ReportResponse
from explorer.reporting.notifier import WebhookNotifier
from explorer.state import (
    Confidence,
    ExecutionResult,
    Issue,
    PerformanceInsight,
    Report,
    RiskAssessment,
    ScopeDescriptor,
    TopIssue,
    Verdict,
)

logger = logging.getLogger(__name__)

REPORT_PREAMBLE = (
    "You are an expert QA engineer writing concise exploration reports. "
    "Keep summaries under 180 words. Be specific about issues and fixes."
)

# Used for ordering only; the vocabularies are never merged into one scale.
ISSUE_RANK = {
    "critical": 3, "error": 3,
    "major": 2, "warning": 2,
    "minor": 1, "info": 1,
}

GENERIC_FIXES = {
    "console": "Remove console.error() or add proper error handling",
    "network": "Check API endpoint and add retry logic",
    "visual": "Review CSS styling and layout constraints",
    "performance": "Profile function execution and optimize bottlenecks",
    "timeout": "Increase timeout or optimize loading performance",
}
DEFAULT_FIX = "Review the issue and implement appropriate fix"

URGENT_TITLE_WORDS = ("urgent", "hotfix", "critical", "emergency")

TOP_ISSUE_LIMIT = 3


# ── Deterministic pieces ──

def determine_verdict(issues: list[Issue]) -> Verdict:
    if any(i.severity == "error" for i in issues):
        return Verdict.FAIL
    if any(i.severity == "warning" for i in issues):
        return Verdict.WARN
    return Verdict.PASS


def assess_risk(issues: list[Issue], pr_meta: dict[str, Any], execution: Optional[ExecutionResult]) -> RiskAssessment:
    errors = sum(1 for i in issues if i.severity == "error")
    warnings = sum(1 for i in issues if i.severity == "warning")
    score = errors * 10 + warnings * 5
    factors = []
    if errors > 0:
        factors.append(f"{errors} critical errors")
    if warnings > 3:
        factors.append(f"High warning count ({warnings})")

    success_rate = execution.success_rate if execution else 0
    if success_rate < 50:
        score += 15
        factors.append("Low execution success rate")

    title = str(pr_meta.get("title") or "").lower()
    if any(word in title for word in URGENT_TITLE_WORDS):
        score += 10
        factors.append("Urgent PR characteristics")

    if score >= 20:
        level = "high"
    elif score >= 10:
        level = "medium"
    else:
        level = "low"
    return RiskAssessment(score=score, level=level, factors=factors)


def generic_fix(issue: Issue) -> str:
    if issue.type in GENERIC_FIXES:
        return GENERIC_FIXES[issue.type]
    if "timeout" in (issue.type or ""):
        return GENERIC_FIXES["timeout"]
    return GENERIC_FIXES.get(issue.category, DEFAULT_FIX)


def top_issues(issues: list[Issue]) -> list[TopIssue]:
    ranked = sorted(issues, key=lambda i: ISSUE_RANK.get(i.severity, 0), reverse=True)
    return [
        TopIssue(
            title=issue.type or "Unknown Issue",
            severity=issue.severity,
            description=issue.message,
            fix=issue.suggestion or generic_fix(issue),
        )
        for issue in ranked[:TOP_ISSUE_LIMIT]
    ]


def performance_insights(issues: list[Issue]) -> list[PerformanceInsight]:
    return [
        PerformanceInsight(
            function=(issue.details or {}).get("function") or "Unknown Function",
            issue=issue.message,
            suggestion=issue.suggestion or "Consider optimizing this function",
        )
        for issue in issues
        if issue.category == "performance"
    ]


def verdict_recommendations(verdict: Verdict, errors: int) -> list[str]:
    if verdict == Verdict.FAIL:
        recs = ["Fix critical errors before merging", "Run manual testing on affected features"]
    elif verdict == Verdict.WARN:
        recs = ["Review warnings and assess impact", "Consider additional testing for edge cases"]
    else:
        recs = ["PR appears stable for merge", "Monitor production metrics after deployment"]
    if errors > 2:
        recs.append("Consider breaking changes into smaller PRs")
    return recs


def template_summary(pr_meta: dict[str, Any], scope: Optional[ScopeDescriptor],
                     execution: Optional[ExecutionResult], errors: int, warnings: int) -> str:
    routes = len(scope.routes) if scope else 0
    components = len(scope.components) if scope else 0
    completed = execution.completed_steps if execution else 0
    total = execution.total_steps if execution else 0
    if errors > 0:
        outlook = "introduce critical issues"
    elif warnings > 0:
        outlook = "have minor issues"
    else:
        outlook = "be stable"
    return (
        f'Automated exploration of PR #{pr_meta.get("number")} "{pr_meta.get("title")}" completed. '
        f"Tested {routes} routes and {components} components. "
        f"Executed {completed} of {total} planned steps. "
        f"Found {errors} errors and {warnings} warnings. "
        f"The changes appear to {outlook} based on automated testing."
    )


# ── Prompt ──

REPORT_JSON_EXAMPLE = """{
  "summary": "Brief executive summary...",
  "verdict": "PASS|WARN|FAIL",
  "topIssues": [
    {
      "title": "Issue title",
      "severity": "error|warning",
      "description": "What happened",
      "fix": "Specific fix suggestion"
    }
  ],
  "performanceInsights": [
    {
      "function": "functionName",
      "issue": "Description",
      "suggestion": "Optimization suggestion"
    }
  ],
  "recommendations": ["Action item 1", "Action item 2"],
  "confidence": "high|medium|low"
}"""


def build_report_prompt(pr_meta: dict[str, Any], scope: Optional[ScopeDescriptor],
                        execution: Optional[ExecutionResult], issues: list[Issue]) -> str:
    issue_lines = "\n".join(f"- {i.severity.upper()}: {i.type} - {i.message}" for i in issues)
    perf = [i for i in issues if i.category == "performance"]
    perf_lines = "\n".join(
        f"- {(i.details or {}).get('function') or 'Unknown'}: {(i.details or {}).get('duration') or 'N/A'}ms"
        for i in perf
    ) or "No performance issues detected"

    return f"""{REPORT_PREAMBLE}

Generate a concise PR exploration report based on this data:

**PR Information:**
- Title: {pr_meta.get("title")}
- Author: {pr_meta.get("author")}
- Repository: {pr_meta.get("repository") or "Unknown"}

**Exploration Scope:**
- Routes tested: {len(scope.routes) if scope else 0}
- Components tested: {len(scope.components) if scope else 0}
- Risk level: {scope.risk_level.value if scope else "Unknown"}

**Execution Results:**
- Steps completed: {execution.completed_steps if execution else 0}/{execution.total_steps if execution else 0}
- Duration: {execution.duration if execution else "Unknown"}
- Success rate: {execution.success_rate if execution else 0}%

**Issues Detected ({len(issues)} total):**
{issue_lines or "No issues detected"}

**Performance Analysis:**
{perf_lines}

Generate a report with:
1. **Executive Summary** (max 180 words)
2. **Verdict** (PASS/WARN/FAIL)
3. **Top 3 Issues** with specific fixes
4. **Performance Insights** (if available)

Use this exact JSON format:
{REPORT_JSON_EXAMPLE}"""


# ── Synthesizer ──

class ReportSynthesizer:
    """
    Usage:
        synthesizer = ReportSynthesizer(config.model, client, WebhookNotifier(config.webhook_url))
        report = await synthesizer.synthesize(change_set.meta, scope, execution, issues)
    """

    def __init__(
        self,
        config: Optional[ModelConfig] = None,
        client: Optional[OllamaClient] = None,
        notifier: Optional[WebhookNotifier] = None,
        use_model: bool = True,
    ):
        self.config = config or ModelConfig()
        self.client = client
        self.notifier = notifier
        self.use_model = use_model

    async def synthesize(
        self,
        pr_meta: dict[str, Any],
        scope: Optional[ScopeDescriptor],
        execution: Optional[ExecutionResult],
        issues: Optional[list[Issue]],
    ) -> Report:
        issues = list(issues or [])
        pr_meta = dict(pr_meta or {})
        logger.info(f"Synthesizing report for PR #{pr_meta.get('number')} ({len(issues)} issues)")

        result = await self._write_with_model(pr_meta, scope, execution, issues)
        report = result.map(
            lambda response: self._from_response(response, pr_meta, execution, issues)
        ).or_else(
            lambda err: self._fallback(err, pr_meta, scope, execution, issues)
        )

        report.risk_assessment = assess_risk(issues, pr_meta, execution)
        if self.notifier is not None:
            await self.notifier.notify(report, len(issues))

        logger.info(f"Report: {report.summary_line()}")
        return report

    async def _write_with_model(self, pr_meta, scope, execution, issues) -> Result[ReportResponse]:
        if not self.use_model or self.client is None:
            return Err(RuntimeError("model report writing disabled"))
        try:
            return await self.client.generate_json(
                build_report_prompt(pr_meta, scope, execution, issues),
                ReportResponse,
                self.config.report_options,
            )
        except Exception as e:
            return Err(e)

    def _fallback(self, err: Exception, pr_meta, scope, execution, issues) -> Report:
        logger.warning(f"Model report generation failed ({err}), using template")
        return self.template_report(pr_meta, scope, execution, issues)

    @staticmethod
    def _stats(execution: Optional[ExecutionResult], issues: list[Issue]) -> dict[str, Any]:
        return {
            "total_steps": execution.total_steps if execution else 0,
            "completed_steps": execution.completed_steps if execution else 0,
            "success_rate": execution.success_rate if execution else 0,
            "issues_found": len(issues),
            "duration": execution.duration if execution else None,
        }

    def _from_response(self, response: ReportResponse, pr_meta, execution, issues) -> Report:
        verdict = Verdict(response.verdict) if response.verdict else determine_verdict(issues)
        return Report(
            summary=response.summary or "Report generated successfully",
            verdict=verdict,
            top_issues=[
                TopIssue(title=t.title, severity=t.severity, description=t.description, fix=t.fix)
                for t in response.top_issues[:TOP_ISSUE_LIMIT]
            ],
            performance_insights=[
                PerformanceInsight(function=p.function, issue=p.issue, suggestion=p.suggestion)
                for p in response.performance_insights
            ],
            recommendations=list(response.recommendations),
            confidence=Confidence(response.confidence),
            stats=self._stats(execution, issues),
            source="model",
            pr=pr_meta,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def template_report(self, pr_meta, scope, execution, issues) -> Report:
        """Deterministic report. Same inputs give the same report apart from the timestamp."""
        verdict = determine_verdict(issues)
        errors = sum(1 for i in issues if i.severity == "error")
        warnings = sum(1 for i in issues if i.severity == "warning")
        if errors > 0:
            confidence = Confidence.HIGH
        elif warnings > 0:
            confidence = Confidence.MEDIUM
        else:
            confidence = Confidence.HIGH

        return Report(
            summary=template_summary(pr_meta, scope, execution, errors, warnings),
            verdict=verdict,
            top_issues=top_issues(issues),
            performance_insights=performance_insights(issues),
            recommendations=verdict_recommendations(verdict, errors),
            confidence=confidence,
            stats=self._stats(execution, issues),
            source="template",
            pr=pr_meta,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
