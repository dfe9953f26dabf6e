"""
Performance Detector: Core Web Vitals estimated from navigation timings.

Timings come from `performance` artifacts and from `step.data["performance"]`.
FCP is approximated by the fastest DOMContentLoaded, LCP by the slowest load.
Severity escalates when a metric exceeds twice its threshold.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from explorer.config import PerformanceThresholds
from explorer.detectors.base import Detector, DetectorOk, as_number
from explorer.state import ExecutionResult, Issue

CONSISTENCY_FLOOR = 0.8
SLOW_STEP_LIMIT = 3


def consistency_score(values: list[float]) -> float:
    """1 - coefficient of variation, floored at 0. Fewer than two samples is perfectly consistent."""
    if len(values) < 2:
        return 1.0
    mean = sum(values) / len(values)
    if mean == 0:
        return 1.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return max(0.0, 1 - math.sqrt(variance) / mean)


class PerformanceDetector(Detector):
    name = "performance"

    def __init__(self, thresholds: PerformanceThresholds = PerformanceThresholds()):
        super().__init__(thresholds)

    def analyze(self, execution: ExecutionResult) -> DetectorOk:
        samples: list[dict[str, Any]] = []
        for step in execution.steps:
            perf = step.data.get("performance") if isinstance(step.data, dict) else None
            if isinstance(perf, dict):
                samples.append(perf)
            for artifact in step.artifacts:
                if artifact.type == "performance" and isinstance(artifact.data, dict):
                    samples.append(artifact.data)

        vitals = self._vitals(samples)
        load_times = [v for v in (as_number(s.get("loadTime")) for s in samples) if v]
        consistency = consistency_score(load_times)
        slow_steps = self._slow_steps(execution) if samples else []

        summary = {
            "total_measurements": len(samples),
            "vitals": vitals,
            "average_load_time_ms": sum(load_times) / len(load_times) if load_times else 0.0,
            "consistency_score": consistency,
            "slow_steps": len(slow_steps),
        }

        issues = self._issues(vitals, consistency, load_times, slow_steps)
        return self.finish(issues, self._recommendations(vitals, summary), summary)

    @staticmethod
    def _vitals(samples: list[dict[str, Any]]) -> dict[str, Optional[float]]:
        fcp = lcp = ttfb = cls = dom_complete = None
        for data in samples:
            dcl = as_number(data.get("domContentLoaded"))
            load = as_number(data.get("loadTime"))
            first_byte = as_number(data.get("ttfb"))
            complete = as_number(data.get("domComplete"))

            if dcl and (fcp is None or dcl < fcp):
                fcp = dcl
            if load and (lcp is None or load > lcp):
                lcp = load
            if first_byte and (ttfb is None or first_byte < ttfb):
                ttfb = first_byte
            if complete and load:
                estimate = min(abs(complete - load) / 10000, 0.5)
                if cls is None or estimate > cls:
                    cls = estimate
            if complete and (dom_complete is None or complete > dom_complete):
                dom_complete = complete
        return {"fcp": fcp, "lcp": lcp, "ttfb": ttfb, "cls": cls, "dom_complete": dom_complete}

    @staticmethod
    def _slow_steps(execution: ExecutionResult) -> list[dict[str, Any]]:
        timed = [s for s in execution.steps if s.execution_time_ms > 0]
        if not timed:
            return []
        average = sum(s.execution_time_ms for s in timed) / len(timed)
        return [
            {"step_id": s.step_id, "description": s.description, "execution_time_ms": s.execution_time_ms}
            for s in timed
            if s.execution_time_ms > average * 2
        ]

    def _issues(self, vitals, consistency, load_times, slow_steps) -> list[Issue]:
        t = self.thresholds
        issues: list[Issue] = []

        def check(metric, value, threshold, issue_type, label, high, low, suggestion, unit="ms"):
            if value is None or value <= threshold:
                return
            shown = f"{value:.3f}" if unit == "" else f"{value:g}{unit}"
            issues.append(self.issue(
                issue_type, high if value > threshold * 2 else low,
                f"{label} of {shown} exceeds threshold of {threshold:g}{unit}",
                details={metric: value, "threshold": threshold, "exceeds_by": value - threshold},
                suggestion=suggestion,
            ))

        check("fcp", vitals["fcp"], t.fcp_ms, "slow_first_contentful_paint",
              "First Contentful Paint", "critical", "major",
              "Optimize critical rendering path and reduce render-blocking resources")
        check("lcp", vitals["lcp"], t.lcp_ms, "slow_largest_contentful_paint",
              "Largest Contentful Paint", "critical", "major",
              "Optimize images, fonts, and critical resources for faster loading")
        check("ttfb", vitals["ttfb"], t.ttfb_ms, "slow_time_to_first_byte",
              "Time to First Byte", "major", "minor",
              "Optimize server response time, use CDN, or implement caching")
        check("cls", vitals["cls"], t.cls_score, "high_cumulative_layout_shift",
              "Cumulative Layout Shift score", "major", "minor",
              "Ensure elements have reserved space and avoid inserting content above existing elements",
              unit="")
        check("dom_complete", vitals["dom_complete"], t.dom_complete_ms, "slow_dom_complete",
              "DOM complete time", "major", "minor",
              "Optimize DOM structure and reduce JavaScript processing time")

        if consistency < CONSISTENCY_FLOOR:
            issues.append(self.issue(
                "inconsistent_performance", "minor",
                f"Performance consistency score of {consistency:.2f} indicates variable loading times",
                details={
                    "consistency_score": consistency,
                    "load_time_variation": max(load_times) - min(load_times),
                },
                suggestion="Investigate and fix sources of performance variability",
            ))

        if len(slow_steps) > SLOW_STEP_LIMIT:
            issues.append(self.issue(
                "slow_test_steps", "minor",
                f"{len(slow_steps)} test steps executed slower than average",
                location=slow_steps[0]["description"] or f"step {slow_steps[0]['step_id']}",
                details={"slow_steps": slow_steps[:5]},
                suggestion="Optimize slow operations or add appropriate wait strategies",
            ))

        return issues

    @staticmethod
    def _recommendations(vitals, summary) -> list[str]:
        recs = []
        if (vitals["fcp"] or 0) > 1500 or (vitals["lcp"] or 0) > 2000:
            recs.append("Optimize Core Web Vitals (FCP and LCP)")
        if (vitals["ttfb"] or 0) > 400:
            recs.append("Reduce server response time with caching or a CDN")
        if (vitals["cls"] or 0) > 0.05:
            recs.append("Improve layout stability: avoid layout shifts")
        if summary["average_load_time_ms"] > 3000:
            recs.append("Apply performance best practices: compress, minify and lazy-load resources")
        if (vitals["fcp"] or 0) > 2000:
            recs.append("Use progressive loading to show content faster")
        recs.append("Set up real user monitoring to track performance in production")
        return recs
