"""
Terminal rendering for exploration runs.

Plain-text diagnostics go through `logging`. This module is the human-facing
side: phase banners, per-detector findings tables and the final verdict.
"""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from explorer.detectors.base import DETECTOR_ICONS, SEVERITY_EMOJI, DetectorErr, DetectorResult
from explorer.state import Report, Verdict

EXPLORER_THEME = Theme({
    "phase": "bold cyan",
    "action": "bold green",
    "error": "bold red",
    "warning": "bold yellow",
    "info": "blue",
    "time": "dim white",
    "critical": "bold red",
    "major": "yellow",
    "minor": "cyan",
})

VERDICT_STYLES = {
    Verdict.PASS: "bold green",
    Verdict.WARN: "bold yellow",
    Verdict.FAIL: "bold red",
}


class RunConsole:
    """
    Rich console for one exploration run.

    Pass a Console built with `file=io.StringIO()` to capture output in tests.
    """
    PHASES = ["FETCH", "SCOPE", "PLAN", "EXECUTE", "ANALYZE", "REPORT"]

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(theme=EXPLORER_THEME)
        self.current_phase: Optional[str] = None

    def set_phase(self, phase: str):
        """Transition to a new pipeline phase."""
        if phase not in self.PHASES:
            phase = "UNKNOWN"
        self.current_phase = phase
        self.console.print(Panel(
            Text(f"Phase: {phase}", style="phase"),
            border_style="cyan",
            expand=False,
        ))

    def log_action(self, action: str, details: Optional[str] = None):
        self.console.print(f"  [action]⚡ {escape(action)}[/action]")
        if details:
            self.console.print(f"     [time]{escape(details)}[/time]")

    def log_warning(self, message: str):
        self.console.print(f"  [warning]⚠️  {escape(message)}[/warning]")

    def log_error(self, error: str):
        self.console.print(f"  [error]❌ ERROR: {escape(error)}[/error]")

    def log_success(self, message: str):
        self.console.print(f"  [action]✅ {escape(message)}[/action]")

    # ── Findings ──

    def render_findings(self, name: str, result: DetectorResult):
        """Print one detector's issues as a table."""
        icon = DETECTOR_ICONS.get(name, "🔍")
        if isinstance(result, DetectorErr):
            self.log_error(f"{icon} {name} detector failed: {result.message}")
            return
        if not result.issues:
            self.log_success(f"{icon} {name}: no issues")
            return

        table = Table(title=f"{icon} {name.upper()} Detector Findings", show_lines=False)
        table.add_column("#", justify="right", style="time")
        table.add_column("Severity")
        table.add_column("Issue")
        table.add_column("Location", style="time")
        for i, issue in enumerate(result.issues, 1):
            emoji = SEVERITY_EMOJI.get(issue.severity, "⚪")
            style = issue.severity if issue.severity in ("critical", "major", "minor") else "info"
            table.add_row(
                str(i),
                Text(f"{emoji} {issue.severity}", style=style),
                Text(issue.message),
                Text(issue.location or "-"),
            )
        self.console.print(table)

    def render_report(self, report: Report):
        """Print the verdict panel and the top issues."""
        style = VERDICT_STYLES.get(report.verdict, "bold")
        body = Text()
        body.append(f"{report.verdict.value}\n", style=style)
        body.append(report.summary)
        if report.risk_assessment:
            body.append(
                f"\n\nRisk: {report.risk_assessment.level} (score {report.risk_assessment.score})",
                style="time",
            )
        self.console.print(Panel(body, title="Exploration Report", border_style=style.split()[-1]))

        for issue in report.top_issues:
            emoji = SEVERITY_EMOJI.get(issue.severity, "⚪")
            self.console.print(f"  {emoji} [bold]{escape(issue.title)}[/bold]")
            if issue.fix:
                self.console.print(f"     [time]💡 {escape(issue.fix)}[/time]")
