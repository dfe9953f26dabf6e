"""
Visual Detector: rendering stability and visual test coverage.

Works only from what the Executor recorded (screenshot artifacts, step
timings, resize steps). No pixel comparison happens here.
"""

from __future__ import annotations

from typing import Any

from explorer.config import VisualThresholds
from explorer.detectors.base import Detector, DetectorOk, as_number
from explorer.state import ExecutionResult, Issue

SCREENSHOT_KINDS = ("screenshot", "visual")


class VisualDetector(Detector):
    name = "visual"

    def __init__(self, thresholds: VisualThresholds = VisualThresholds()):
        super().__init__(thresholds)

    def analyze(self, execution: ExecutionResult) -> DetectorOk:
        t = self.thresholds
        screenshots = sum(1 for _ in execution.iter_artifacts(*SCREENSHOT_KINDS))
        estimated_cls = 0.0
        slow_renders = 0
        last_dom_complete = None

        for step in execution.steps:
            perf = step.data.get("performance") if isinstance(step.data, dict) else None
            if not isinstance(perf, dict):
                continue
            load, dcl = as_number(perf.get("loadTime")), as_number(perf.get("domContentLoaded"))
            if load and dcl:
                # Rough CLS proxy: 0.1 per second between DOMContentLoaded and load.
                estimated_cls = max(estimated_cls, min(abs(load - dcl) / 1000 * 0.1, 1.0))
            dom_complete = as_number(perf.get("domComplete"))
            if dom_complete:
                last_dom_complete = dom_complete
                if dom_complete > t.render_time_ms:
                    slow_renders += 1

        resize_steps = [s for s in execution.steps if s.action == "resize"]

        issues: list[Issue] = []
        if estimated_cls > t.cls_threshold:
            issues.append(self.issue(
                "high_cumulative_layout_shift", "major",
                f"Estimated CLS of {estimated_cls:.3f} exceeds threshold of {t.cls_threshold}",
                details={"estimated_cls": estimated_cls, "threshold": t.cls_threshold},
                suggestion="Optimize layout stability by reserving space for dynamic content",
            ))

        if slow_renders:
            issues.append(self.issue(
                "slow_rendering", "minor",
                f"Found {slow_renders} instances of slow rendering exceeding {t.render_time_ms}ms",
                details={
                    "slow_render_instances": slow_renders,
                    "threshold": t.render_time_ms,
                    "last_dom_complete": last_dom_complete,
                },
                suggestion="Optimize rendering performance by reducing DOM complexity and optimizing CSS",
            ))

        if not resize_steps:
            issues.append(self.issue(
                "missing_viewport_tests", "minor",
                "No viewport resize tests were performed to check responsive design",
                details={"resize_steps": 0},
                suggestion="Add viewport resize tests to ensure responsive design compatibility",
            ))

        for step in resize_steps:
            if step.status == "failed":
                width, height = step.data.get("width"), step.data.get("height")
                issues.append(self.issue(
                    "resize_failure", "major",
                    f"Viewport resize to {width}x{height} failed",
                    location=step.description or f"step {step.step_id}",
                    details={"target_width": width, "target_height": height, "error": step.error},
                    suggestion="Investigate and fix responsive design issues",
                ))

        if screenshots < t.min_screenshots:
            issues.append(self.issue(
                "insufficient_visual_testing", "minor",
                f"Only {screenshots} screenshots captured during testing",
                details={"screenshot_count": screenshots, "recommended": t.min_screenshots * 2},
                suggestion="Increase visual testing coverage by capturing more screenshots",
            ))

        summary: dict[str, Any] = {
            "total_screenshots": screenshots,
            "estimated_cls": estimated_cls,
            "render_issues": slow_renders,
            "viewport_tests": len(resize_steps),
        }
        recs = []
        if estimated_cls > 0.05:
            recs.append("Improve layout stability: reserve space for dynamic content")
        if not resize_steps:
            recs.append("Add responsive design testing across viewport sizes")
        if last_dom_complete and last_dom_complete > 2000:
            recs.append("Optimize rendering performance and minimize layout recalculations")
        if screenshots:
            recs.append("Use captured screenshots as a baseline for visual regression testing")
        return self.finish(issues, recs, summary)
