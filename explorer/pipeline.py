"""
Exploration Pipeline: wires the stages into one run.

    validate -> fetch change set -> label check -> infer scope -> plan
      -> (dry run stops here) -> execute -> analyze -> synthesize

Only ValidationError and AuthoritativeSourceError escape `run()`. Every other
failure is absorbed by the stage that owns it.
"""

from __future__ import annotations

import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from explorer.config import ExplorerConfig
from explorer.core.console import RunConsole
from explorer.core.model_client import OllamaClient
from explorer.detectors.aggregator import DetectorAggregator
from explorer.integrations.github import GitHubClient, has_required_labels, parse_pr_url, validate_pr_parameters
from explorer.planning.plan_generator import PlanGenerator
from explorer.planning.scope_inference import ScopeInference
from explorer.reporting.notifier import WebhookNotifier
from explorer.reporting.synthesizer import ReportSynthesizer
from explorer.state import Analysis, ChangeSet, ExecutionResult, Plan, Report, ScopeDescriptor

logger = logging.getLogger(__name__)


class Executor(Protocol):
    """Drives the running application through a plan. Supplied by the caller."""

    async def execute(self, plan: Plan) -> ExecutionResult: ...


class Stage(Enum):
    FETCH = "FETCH"
    SCOPE = "SCOPE"
    PLAN = "PLAN"
    EXECUTE = "EXECUTE"
    ANALYZE = "ANALYZE"
    REPORT = "REPORT"


@dataclass
class PipelineOutcome:
    """Everything one run produced. Later fields stay None when the run stops early."""
    change_set: Optional[ChangeSet] = None
    scope: Optional[ScopeDescriptor] = None
    plan: Optional[Plan] = None
    execution: Optional[ExecutionResult] = None
    analysis: Optional[Analysis] = None
    report: Optional[Report] = None
    skipped_reason: Optional[str] = None
    stage_durations_ms: dict[str, float] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.report is not None

    def summary(self) -> str:
        if self.skipped_reason:
            return f"Exploration stopped: {self.skipped_reason}"
        if self.report is None:
            return "Exploration incomplete"
        timings = ", ".join(f"{k} {v:.0f}ms" for k, v in self.stage_durations_ms.items())
        return f"Exploration: {self.report.summary_line()} [{timings}]"


class ExplorationPipeline:
    """
    Usage:
        pipeline = ExplorationPipeline(ExplorerConfig.from_env(), executor=my_executor)
        outcome = await pipeline.run(pr_url="https://github.com/acme/web/pull/42",
                                     app_url="http://localhost:3000")
        print(outcome.summary())
    """

    def __init__(
        self,
        config: Optional[ExplorerConfig] = None,
        *,
        executor: Optional[Executor] = None,
        code_host: Optional[GitHubClient] = None,
        model_client: Optional[OllamaClient] = None,
        console: Optional[RunConsole] = None,
    ):
        self.config = config or ExplorerConfig()
        self.executor = executor
        self.code_host = code_host
        self.model_client = model_client
        self.console = console or RunConsole()

    async def run(
        self,
        repository: Optional[str] = None,
        number: Optional[int] = None,
        *,
        pr_url: Optional[str] = None,
        app_url: str,
        dry_run: bool = False,
    ) -> PipelineOutcome:
        if pr_url:
            repository, number = parse_pr_url(pr_url)
        repository, number = validate_pr_parameters(repository, number)

        outcome = PipelineOutcome()
        async with AsyncExitStack() as stack:
            code_host = self.code_host
            if code_host is None:
                code_host = await stack.enter_async_context(GitHubClient(self.config.code_host))
            model_client = self.model_client
            if model_client is None:
                model_client = await stack.enter_async_context(OllamaClient(self.config.model))

            await self._run_stages(outcome, code_host, model_client, repository, number, app_url, dry_run)

        logger.info(outcome.summary())
        return outcome

    async def _run_stages(self, outcome, code_host, model_client, repository, number, app_url, dry_run):
        cfg = self.config

        with self._stage(outcome, Stage.FETCH):
            change_set = await code_host.fetch_change_set(repository, number)
        outcome.change_set = change_set
        self.console.log_action(f"PR #{change_set.number}: {change_set.title}",
                                f"{len(change_set.files)} files by {change_set.author}")

        if not has_required_labels(change_set.labels, cfg.required_labels):
            outcome.skipped_reason = (
                f"PR lacks required labels ({', '.join(cfg.required_labels)})"
            )
            self.console.log_warning(outcome.skipped_reason)
            return

        with self._stage(outcome, Stage.SCOPE):
            outcome.scope = await ScopeInference(cfg.model, model_client).infer_scope(change_set)

        with self._stage(outcome, Stage.PLAN):
            generator = PlanGenerator(use_model_discovery=cfg.use_model_discovery,
                                      default_max_steps=cfg.max_steps)
            outcome.plan = generator.generate_plan(outcome.scope, app_url, cfg.max_steps, change_set.meta)
        self.console.log_action(f"Plan {outcome.plan.id}", f"{len(outcome.plan.steps)} steps ({outcome.plan.mode})")

        if dry_run or self.executor is None:
            outcome.skipped_reason = "dry run" if dry_run else "no executor configured"
            self.console.log_warning(f"Stopping after planning: {outcome.skipped_reason}")
            return

        with self._stage(outcome, Stage.EXECUTE):
            outcome.execution = await self.executor.execute(outcome.plan)

        with self._stage(outcome, Stage.ANALYZE):
            aggregator = DetectorAggregator(cfg, code_host=code_host, console=self.console)
            aggregator.set_pr_context(change_set.repository, change_set.number)
            outcome.analysis = await aggregator.analyze(outcome.execution, plan_id=outcome.plan.id)

        with self._stage(outcome, Stage.REPORT):
            synthesizer = ReportSynthesizer(cfg.model, model_client, WebhookNotifier(cfg.webhook_url))
            outcome.report = await synthesizer.synthesize(
                change_set.meta, outcome.scope, outcome.execution, outcome.analysis.all_issues
            )
        self.console.render_report(outcome.report)

    def _stage(self, outcome: PipelineOutcome, stage: Stage) -> "_StageTimer":
        self.console.set_phase(stage.value)
        return _StageTimer(outcome, stage)


class _StageTimer:
    def __init__(self, outcome: PipelineOutcome, stage: Stage):
        self.outcome = outcome
        self.stage = stage
        self._start = 0.0

    def __enter__(self):
        self._start = time.time()
        return self

    def __exit__(self, *exc):
        self.outcome.stage_durations_ms[self.stage.value.lower()] = (time.time() - self._start) * 1000
        return False
