"""
Network Detector: request/response health across the whole run.

Each `network` artifact carries `{"requests": [...], "responses": [...]}`.
Responses may include `timing.requestStart` / `timing.responseEnd` in ms.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import Any
from urllib.parse import urlparse

from explorer.config import NetworkThresholds
from explorer.detectors.base import Detector, DetectorOk
from explorer.state import ExecutionResult, Issue

DOMAIN_FAILURE_RATE = 0.3
NOT_FOUND_LIMIT = 5


class NetworkDetector(Detector):
    name = "network"

    def __init__(self, thresholds: NetworkThresholds = NetworkThresholds()):
        super().__init__(thresholds)

    def analyze(self, execution: ExecutionResult) -> DetectorOk:
        total_requests = 0
        successful = 0
        failed = 0
        slow: list[dict[str, Any]] = []
        response_times: list[float] = []
        status_codes: Counter = Counter()
        failures_by_status: dict[int, list[str]] = defaultdict(list)
        domains: dict[str, dict[str, int]] = defaultdict(lambda: {"requests": 0, "failed": 0})
        insecure: set[str] = set()

        for _, artifact in execution.iter_artifacts("network"):
            data = artifact.data if isinstance(artifact.data, dict) else {}

            for request in data.get("requests") or []:
                url = str(request.get("url", ""))
                total_requests += 1
                domains[_domain(url)]["requests"] += 1
                if url.startswith("http://") and "localhost" not in url:
                    insecure.add(url)

            for response in data.get("responses") or []:
                url = str(response.get("url", ""))
                status = _status(response.get("status"))
                status_codes[status] += 1
                if 200 <= status < 400:
                    successful += 1
                elif status >= 400:
                    failed += 1
                    failures_by_status[status].append(url)
                    if _domain(url) in domains:
                        domains[_domain(url)]["failed"] += 1

                elapsed = _elapsed(response.get("timing"))
                if elapsed is not None:
                    response_times.append(elapsed)
                    if elapsed > self.thresholds.slow_request_ms:
                        slow.append({"url": url, "response_time_ms": elapsed})

        failure_rate = failed / total_requests if total_requests else 0.0
        average = sum(response_times) / len(response_times) if response_times else 0.0
        summary = {
            "total_requests": total_requests,
            "successful_requests": successful,
            "failed_requests": failed,
            "slow_requests": len(slow),
            "failure_rate": failure_rate,
            "average_response_time_ms": average,
            "status_codes": dict(status_codes),
        }

        issues = self._issues(summary, slow, status_codes, failures_by_status, domains)
        recommendations = self._recommendations(summary, insecure)
        return self.finish(issues, recommendations, summary)

    def _issues(self, summary, slow, status_codes, failures_by_status, domains) -> list[Issue]:
        t = self.thresholds
        issues: list[Issue] = []

        if summary["failure_rate"] > t.failure_rate:
            issues.append(self.issue(
                "high_failure_rate", "major",
                f"Network failure rate of {summary['failure_rate'] * 100:.1f}% exceeds "
                f"threshold of {t.failure_rate * 100:.1f}%",
                details={
                    "failure_rate": summary["failure_rate"],
                    "threshold": t.failure_rate,
                    "failed_requests": summary["failed_requests"],
                    "total_requests": summary["total_requests"],
                },
                suggestion="Investigate and fix failing network requests",
            ))

        if slow:
            total = summary["total_requests"] or len(slow)
            slow_pct = len(slow) / total * 100
            issues.append(self.issue(
                "slow_requests", "major" if slow_pct > 20 else "minor",
                f"Found {len(slow)} requests slower than {t.slow_request_ms}ms",
                location=slow[0]["url"],
                details={"slow_percentage": slow_pct, "threshold": t.slow_request_ms, "requests": slow[:5]},
                suggestion="Optimize slow network requests or implement caching",
            ))

        for status, count in sorted(status_codes.items()):
            if status >= 500 and count > 1:
                issues.append(self.issue(
                    "server_errors", "critical",
                    f"Found {count} requests with {status} server errors",
                    location=failures_by_status[status][0] if failures_by_status[status] else None,
                    details={"status_code": status, "count": count, "urls": failures_by_status[status][:5]},
                    suggestion="Investigate server-side issues causing these errors",
                ))
            if status == 404 and count > NOT_FOUND_LIMIT:
                issues.append(self.issue(
                    "missing_resources", "minor",
                    f"Found {count} requests returning 404 errors",
                    details={"count": count, "urls": failures_by_status[404][:5]},
                    suggestion="Review and fix broken resource references",
                ))

        for domain, stats in sorted(domains.items()):
            if stats["requests"] <= 2:
                continue
            rate = stats["failed"] / stats["requests"]
            if rate > DOMAIN_FAILURE_RATE:
                issues.append(self.issue(
                    "domain_reliability", "major",
                    f"Domain {domain} has {rate * 100:.1f}% failure rate",
                    location=domain,
                    details={
                        "domain": domain,
                        "failure_rate": rate,
                        "failed_requests": stats["failed"],
                        "total_requests": stats["requests"],
                    },
                    suggestion=f"Investigate issues with {domain} or implement retry logic",
                ))

        return issues

    @staticmethod
    def _recommendations(summary: dict[str, Any], insecure: set[str]) -> list[str]:
        recs = []
        if summary["average_response_time_ms"] > 2000:
            recs.append("Optimize network performance with caching, a CDN or request batching")
        if summary["failure_rate"] > 0.01:
            recs.append("Add retry logic and graceful error handling for network requests")
        if summary["total_requests"] > 50:
            recs.append("Reduce the number of network requests by bundling resources")
        if insecure:
            recs.append("Use HTTPS for all external requests")
        if summary["failed_requests"] > 0:
            recs.append("Add logging and monitoring for network requests")
        return recs


def _domain(url: str) -> str:
    return urlparse(url).hostname or ""


def _status(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _elapsed(timing: Any):
    if not isinstance(timing, dict):
        return None
    start, end = timing.get("requestStart"), timing.get("responseEnd")
    if isinstance(start, (int, float)) and isinstance(end, (int, float)) and end > start:
        return end - start
    return None
