"""
Console Detector: classifies browser console output.

Counts log levels against the error/warning limits and scans every message
against three pattern families (critical, major, minor).
"""

from __future__ import annotations

import re
from typing import Any

from explorer.config import ConsoleThresholds
from explorer.detectors.base import Detector, DetectorOk, step_location
from explorer.state import ExecutionResult, Issue

PATTERNS = {
    "critical": [
        re.compile(r"uncaught\s+error", re.I),
        re.compile(r"typeerror.*cannot\s+read\s+propert", re.I),
        re.compile(r"referenceerror.*not\s+defined", re.I),
        re.compile(r"syntaxerror", re.I),
        re.compile(r"networkerror", re.I),
        re.compile(r"out\s+of\s+memory", re.I),
        re.compile(r"maximum\s+call\s+stack", re.I),
    ],
    "major": [
        re.compile(r"failed\s+to\s+load", re.I),
        re.compile(r"404.*not\s+found", re.I),
        re.compile(r"cors.*blocked", re.I),
        re.compile(r"permission\s+denied", re.I),
        re.compile(r"security\s+error", re.I),
        re.compile(r"content\s+security\s+policy", re.I),
        re.compile(r"mixed\s+content", re.I),
    ],
    "minor": [
        re.compile(r"deprecated", re.I),
        re.compile(r"warning", re.I),
        re.compile(r"performance.*slow", re.I),
        re.compile(r"memory.*leak", re.I),
        re.compile(r"accessibility", re.I),
        re.compile(r"a11y", re.I),
    ],
}

SECURITY_HINT = re.compile(r"security|permission|cors", re.I)

MINOR_PATTERN_LIMIT = 3
DEBUG_NOISE_LIMIT = 50


class ConsoleDetector(Detector):
    name = "console"

    def __init__(self, thresholds: ConsoleThresholds = ConsoleThresholds()):
        super().__init__(thresholds)

    def analyze(self, execution: ExecutionResult) -> DetectorOk:
        counts = {"total": 0, "errors": 0, "warnings": 0, "infos": 0, "debugs": 0}
        hits: dict[str, list[dict[str, Any]]] = {"critical": [], "major": [], "minor": []}

        for step, artifact in execution.iter_artifacts("console"):
            for entry in artifact.data or []:
                if not isinstance(entry, dict):
                    continue
                counts["total"] += 1
                self._count_level(entry.get("level"), counts)

                text = str(entry.get("text") or "")
                for family, patterns in PATTERNS.items():
                    for pattern in patterns:
                        if pattern.search(text):
                            hits[family].append({
                                "pattern": pattern.pattern,
                                "message": text,
                                "step_id": step.step_id,
                                "location": step_location(step),
                            })

        issues = self._issues(counts, hits)
        recommendations = self._recommendations(counts, hits)
        summary = dict(counts, **{f"{k}_patterns": len(v) for k, v in hits.items()})
        return self.finish(issues, recommendations, summary)

    @staticmethod
    def _count_level(level: Any, counts: dict[str, int]):
        level = str(level or "").lower()
        if level == "error":
            counts["errors"] += 1
        elif level in ("warn", "warning"):
            counts["warnings"] += 1
        elif level == "info":
            counts["infos"] += 1
        elif level == "debug":
            counts["debugs"] += 1

    def _issues(self, counts: dict[str, int], hits: dict[str, list]) -> list[Issue]:
        t = self.thresholds
        issues: list[Issue] = []

        if counts["errors"] > t.error_limit:
            issues.append(self.issue(
                "console_errors", "critical",
                f"Found {counts['errors']} console errors, exceeding limit of {t.error_limit}",
                details={"error_count": counts["errors"], "threshold": t.error_limit},
                suggestion="Fix all JavaScript errors before deployment",
            ))

        if counts["warnings"] > t.warning_limit:
            issues.append(self.issue(
                "console_warnings", "major",
                f"Found {counts['warnings']} console warnings, exceeding limit of {t.warning_limit}",
                details={"warning_count": counts["warnings"], "threshold": t.warning_limit},
                suggestion="Review and address console warnings",
            ))

        for hit in hits["critical"]:
            issues.append(self.issue(
                "critical_console_pattern", "critical",
                f'Critical error pattern detected: "{hit["message"]}"',
                location=hit["location"],
                details={"pattern": hit["pattern"], "step_id": hit["step_id"]},
                suggestion="Immediately investigate and fix this critical error",
            ))

        for hit in hits["major"]:
            issues.append(self.issue(
                "major_console_pattern", "major",
                f'Major issue pattern detected: "{hit["message"]}"',
                location=hit["location"],
                details={"pattern": hit["pattern"], "step_id": hit["step_id"]},
                suggestion="Investigate and resolve this console issue",
            ))

        if len(hits["minor"]) > MINOR_PATTERN_LIMIT:
            issues.append(self.issue(
                "minor_console_patterns", "minor",
                f"Found {len(hits['minor'])} warning patterns in console logs",
                details={
                    "pattern_count": len(hits["minor"]),
                    "samples": [h["message"] for h in hits["minor"][:5]],
                },
                suggestion="Review console warnings and improve code quality",
            ))

        return issues

    @staticmethod
    def _recommendations(counts: dict[str, int], hits: dict[str, list]) -> list[str]:
        recs = []
        if counts["errors"] > 0:
            recs.append("Implement better error handling: add try/catch blocks and error boundaries")
        if counts["warnings"] > 5:
            recs.append("Address console warnings to reduce technical debt")
        if hits["critical"]:
            recs.append("Fix critical console errors that could break functionality")
        if counts["debugs"] > DEBUG_NOISE_LIMIT:
            recs.append("Remove debug logging in production builds")
        if any(SECURITY_HINT.search(h["message"]) for h in hits["major"]):
            recs.append("Review security-related console messages")
        return recs
