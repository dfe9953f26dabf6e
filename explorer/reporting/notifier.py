"""
Notifications: PR findings comments and the completion webhook.

Both are side channels. Delivery failures are logged and swallowed; they
never change a verdict or abort a run.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from explorer.detectors.base import DETECTOR_ICONS, SEVERITY_EMOJI, DetectorOk
from explorer.errors import NotificationError
from explorer.state import Report

logger = logging.getLogger(__name__)

WEBHOOK_SUMMARY_CHARS = 200


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── PR comment ──

def format_findings_comment(name: str, result: DetectorOk, timestamp: Optional[str] = None) -> str:
    """Render one detector's findings as a markdown PR comment."""
    icon = DETECTOR_ICONS.get(name, "🔍")
    issues = result.issues
    lines = [
        f"## {icon} **{name.upper()} Detector Findings**",
        "",
        f"Found **{len(issues)}** issue(s) during automated testing:",
        "",
    ]

    for i, issue in enumerate(issues, 1):
        emoji = SEVERITY_EMOJI.get(issue.severity, "⚪")
        lines.append(f"### {i}. {emoji} {issue.message}")
        lines.append("")
        lines.append(f"- **Severity:** {issue.severity}")
        if issue.location:
            lines.append(f"- **Location:** `{issue.location}`")
        if issue.details:
            lines.append("- **Details:**")
            lines.append("```json")
            lines.append(json.dumps(issue.details, indent=2, default=str))
            lines.append("```")
        if issue.suggestion:
            lines.append(f"- **💡 Suggested Fix:** {issue.suggestion}")
        lines.append("")
        lines.append("---")
        lines.append("")

    if result.recommendations:
        lines.append("## 🔧 Recommendations")
        lines.append("")
        lines.extend(f"- {rec}" for rec in result.recommendations)
        lines.append("")

    lines.append(f"_Generated by PR Risk Explorer at {timestamp or _now_iso()}_")
    return "\n".join(lines)


# ── Webhook ──

def build_webhook_payload(report: Report, issues_found: int, timestamp: Optional[str] = None) -> dict[str, Any]:
    pr = report.pr or {}
    return {
        "type": "pr_exploration_complete",
        "timestamp": timestamp or _now_iso(),
        "pr": {
            "number": pr.get("number"),
            "title": pr.get("title"),
            "author": pr.get("author"),
            "repository": pr.get("repository"),
        },
        "verdict": report.verdict.value,
        "riskLevel": report.risk_assessment.level if report.risk_assessment else "unknown",
        "issuesFound": issues_found,
        "summary": report.summary[:WEBHOOK_SUMMARY_CHARS] + "...",
    }


class WebhookNotifier:
    """POSTs the condensed report to a configured URL. A None URL disables it."""

    def __init__(
        self,
        url: Optional[str],
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def notify(self, report: Report, issues_found: int) -> bool:
        """Send the webhook. Returns True on a 2xx response, False otherwise."""
        if not self.enabled:
            return False
        payload = build_webhook_payload(report, issues_found)
        try:
            await self._post(payload)
        except NotificationError as e:
            logger.error(f"Webhook notification failed: {e}")
            return False
        logger.info("Webhook notification sent")
        return True

    async def _post(self, payload: dict[str, Any]):
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook request failed: {e}") from e
        if resp.status_code >= 400:
            raise NotificationError(f"Webhook returned {resp.status_code}")
