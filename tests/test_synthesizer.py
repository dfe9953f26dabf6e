"""
Tests for report synthesis: verdicts, the risk overlay, the template path,
the model path and the completion webhook.
"""

import json
import unittest
from unittest.mock import AsyncMock, MagicMock

import httpx

from explorer.config import ModelConfig
from explorer.core.model_client import OllamaClient
from explorer.core.result import Err, Ok
from explorer.core.schemas import ReportResponse
from explorer.errors import ModelBackendError
from explorer.reporting.notifier import WebhookNotifier, build_webhook_payload
from explorer.reporting.synthesizer import (
    ReportSynthesizer,
    assess_risk,
    build_report_prompt,
    determine_verdict,
    generic_fix,
    top_issues,
)
from explorer.state import Confidence, ExecutionResult, Issue, Report, Route, ScopeDescriptor, Verdict

PR = {"number": 42, "title": "Add settings modal", "author": "dev", "repository": "acme/web"}


def _issue(severity, issue_type="thing", category="console", **kwargs) -> Issue:
    return Issue(id=f"{category}-{issue_type}", severity=severity, type=issue_type, category=category,
                 message=f"{severity} {issue_type}", **kwargs)


def _execution(success_rate=100.0) -> ExecutionResult:
    return ExecutionResult(completed_steps=8, total_steps=10, success_rate=success_rate, duration=12.5)


def _scope() -> ScopeDescriptor:
    return ScopeDescriptor(routes=[Route(path="/settings", name="Settings")])


class TestVerdict(unittest.TestCase):

    def test_verdicts(self):
        self.assertEqual(determine_verdict([]), Verdict.PASS)
        self.assertEqual(determine_verdict([_issue("warning")]), Verdict.WARN)
        self.assertEqual(determine_verdict([_issue("error"), _issue("warning")]), Verdict.FAIL)

    def test_scoring_vocabulary_does_not_move_verdict(self):
        self.assertEqual(determine_verdict([_issue("critical"), _issue("major")]), Verdict.PASS)


class TestRiskAssessment(unittest.TestCase):

    def test_clean_run_is_low(self):
        risk = assess_risk([], PR, _execution())
        self.assertEqual((risk.score, risk.level, risk.factors), (0, "low", []))

    def test_errors_and_warnings(self):
        issues = [_issue("error")] + [_issue("warning")] * 4
        risk = assess_risk(issues, PR, _execution())
        self.assertEqual(risk.score, 30)
        self.assertEqual(risk.level, "high")
        self.assertEqual(risk.factors, ["1 critical errors", "High warning count (4)"])

    def test_low_success_rate_and_urgent_title(self):
        risk = assess_risk([], {"title": "HOTFIX: login"}, _execution(success_rate=40))
        self.assertEqual(risk.score, 25)
        self.assertIn("Low execution success rate", risk.factors)
        self.assertIn("Urgent PR characteristics", risk.factors)

    def test_missing_execution_counts_as_zero_success(self):
        risk = assess_risk([], PR, None)
        self.assertEqual((risk.score, risk.level), (15, "medium"))


class TestTemplatePieces(unittest.TestCase):

    def test_generic_fix_lookup(self):
        self.assertEqual(generic_fix(_issue("error", "network")), "Check API endpoint and add retry logic")
        self.assertEqual(generic_fix(_issue("error", "page_load_timeout", category="x")),
                         "Increase timeout or optimize loading performance")
        self.assertEqual(generic_fix(_issue("error", "odd", category="visual")),
                         "Review CSS styling and layout constraints")
        self.assertEqual(generic_fix(_issue("error", "odd", category="x")),
                         "Review the issue and implement appropriate fix")

    def test_top_issues_are_ranked_and_capped(self):
        issues = [_issue("info", "a"), _issue("warning", "b"), _issue("error", "c"), _issue("minor", "d"),
                  _issue("critical", "e", suggestion="do e")]
        top = top_issues(issues)
        self.assertEqual([t.title for t in top], ["c", "e", "b"])
        self.assertEqual(top[1].fix, "do e")

    def test_prompt_mentions_pr_and_issues(self):
        prompt = build_report_prompt(PR, _scope(), _execution(), [_issue("error", "boom")])
        self.assertIn("Add settings modal", prompt)
        self.assertIn("ERROR: boom", prompt)
        self.assertIn("Steps completed: 8/10", prompt)
        self.assertIn('"topIssues"', prompt)


class TestReportSynthesizer(unittest.IsolatedAsyncioTestCase):

    def _client(self, result):
        client = MagicMock()
        client.generate_json = AsyncMock(return_value=result)
        return client

    async def test_template_report_when_model_fails(self):
        synth = ReportSynthesizer(client=self._client(Err(ModelBackendError("down"))))
        issues = [_issue("warning", "slow"), _issue("minor", "x", category="performance",
                                                    details={"function": "render"})]
        report = await synth.synthesize(PR, _scope(), _execution(), issues)

        self.assertEqual(report.source, "template")
        self.assertEqual(report.verdict, Verdict.WARN)
        self.assertEqual(report.confidence, Confidence.MEDIUM)
        self.assertIn('PR #42 "Add settings modal"', report.summary)
        self.assertIn("Tested 1 routes and 0 components", report.summary)
        self.assertEqual(report.recommendations[0], "Review warnings and assess impact")
        self.assertEqual(report.performance_insights[0].function, "render")
        self.assertEqual(report.stats["issues_found"], 2)
        self.assertEqual(report.risk_assessment.score, 5)

    async def test_template_report_is_deterministic(self):
        synth = ReportSynthesizer(use_model=False)
        issues = [_issue("error", "a"), _issue("error", "b"), _issue("error", "c")]
        first = synth.template_report(PR, _scope(), _execution(), issues)
        second = synth.template_report(PR, _scope(), _execution(), issues)
        first.timestamp = second.timestamp = ""
        self.assertEqual(first, second)
        self.assertEqual(first.verdict, Verdict.FAIL)
        self.assertEqual(first.confidence, Confidence.HIGH)
        self.assertIn("Consider breaking changes into smaller PRs", first.recommendations)

    async def test_model_report(self):
        response = ReportResponse.model_validate({
            "summary": "Looks risky",
            "verdict": "fail",
            "topIssues": [{"title": f"t{i}", "severity": "error"} for i in range(5)],
            "recommendations": ["fix it"],
            "confidence": "low",
        })
        synth = ReportSynthesizer(client=self._client(Ok(response)))
        report = await synth.synthesize(PR, _scope(), _execution(), [])

        self.assertEqual(report.source, "model")
        self.assertEqual(report.verdict, Verdict.FAIL)
        self.assertEqual(len(report.top_issues), 3)
        self.assertEqual(report.confidence, Confidence.LOW)
        self.assertEqual(report.pr, PR)
        self.assertIsNotNone(report.risk_assessment)

    async def test_model_report_without_verdict_uses_issues(self):
        synth = ReportSynthesizer(client=self._client(Ok(ReportResponse())))
        report = await synth.synthesize(PR, _scope(), _execution(), [_issue("warning")])
        self.assertEqual(report.verdict, Verdict.WARN)
        self.assertEqual(report.summary, "Report generated successfully")

    async def test_truncated_model_output_uses_template(self):
        config = ModelConfig()
        text = '{"summary": "Risky", "verdict": "fail", "topIssues": [{"title": "a", "severity": "error"'

        def handler(request):
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": [{"name": config.model}]})
            return httpx.Response(200, content=json.dumps({"response": text}).encode() + b"\n")

        async with OllamaClient(config, transport=httpx.MockTransport(handler)) as client:
            synth = ReportSynthesizer(client=client)
            report = await synth.synthesize(PR, _scope(), _execution(), [_issue("warning")])

        self.assertEqual(report.source, "template")
        self.assertEqual(report.verdict, Verdict.WARN)
        self.assertEqual(report.top_issues[0].severity, "warning")

    async def test_client_exception_falls_back(self):
        client = MagicMock()
        client.generate_json = AsyncMock(side_effect=RuntimeError("boom"))
        report = await ReportSynthesizer(client=client).synthesize(PR, None, None, None)
        self.assertEqual(report.source, "template")
        self.assertEqual(report.verdict, Verdict.PASS)
        self.assertEqual(report.stats["total_steps"], 0)

    async def test_notifier_called_on_both_paths(self):
        notifier = MagicMock()
        notifier.notify = AsyncMock(return_value=True)
        await ReportSynthesizer(use_model=False, notifier=notifier).synthesize(PR, None, None, [_issue("error")])
        await ReportSynthesizer(client=self._client(Ok(ReportResponse())), notifier=notifier).synthesize(
            PR, None, None, []
        )
        self.assertEqual(notifier.notify.await_count, 2)
        self.assertEqual(notifier.notify.await_args_list[0].args[1], 1)


class TestWebhook(unittest.IsolatedAsyncioTestCase):

    def _report(self) -> Report:
        report = ReportSynthesizer(use_model=False).template_report(PR, None, None, [])
        report.summary = "s" * 300
        return report

    def test_payload_shape(self):
        payload = build_webhook_payload(self._report(), 3, timestamp="2024-01-01T00:00:00Z")
        self.assertEqual(payload["type"], "pr_exploration_complete")
        self.assertEqual(payload["pr"], PR)
        self.assertEqual(payload["verdict"], "PASS")
        self.assertEqual(payload["riskLevel"], "unknown")
        self.assertEqual(payload["issuesFound"], 3)
        self.assertEqual(payload["summary"], "s" * 200 + "...")

    async def test_posts_payload(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(204)

        notifier = WebhookNotifier("https://hooks.example.com/x", transport=httpx.MockTransport(handler))
        self.assertTrue(await notifier.notify(self._report(), 0))
        self.assertEqual(seen[0]["pr"]["number"], 42)

    async def test_failures_are_swallowed(self):
        notifier = WebhookNotifier(
            "https://hooks.example.com/x", transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )
        self.assertFalse(await notifier.notify(self._report(), 0))

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        notifier = WebhookNotifier("https://hooks.example.com/x", transport=httpx.MockTransport(refuse))
        self.assertFalse(await notifier.notify(self._report(), 0))

    async def test_disabled_without_url(self):
        notifier = WebhookNotifier(None)
        self.assertFalse(notifier.enabled)
        self.assertFalse(await notifier.notify(self._report(), 0))


if __name__ == "__main__":
    unittest.main()
