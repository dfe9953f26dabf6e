"""Tests for the markdown findings comment."""

import unittest

from explorer.detectors.base import DetectorOk
from explorer.reporting.notifier import format_findings_comment
from explorer.state import Issue


class TestFindingsComment(unittest.TestCase):

    def test_full_comment(self):
        result = DetectorOk(
            issues=[
                Issue(id="network-1-server_errors", severity="critical", type="server_errors", category="network",
                      message="Found 3 requests with 503 server errors", location="https://api.example.com/x",
                      details={"status_code": 503}, suggestion="Investigate server-side issues"),
                Issue(id="network-2-missing_resources", severity="minor", type="missing_resources",
                      category="network", message="Found 6 requests returning 404 errors"),
            ],
            recommendations=["Add retry logic"],
        )
        body = format_findings_comment("network", result, timestamp="2024-01-01T00:00:00+00:00")

        self.assertTrue(body.startswith("## 🌐 **NETWORK Detector Findings**"))
        self.assertIn("Found **2** issue(s) during automated testing:", body)
        self.assertIn("### 1. 🔴 Found 3 requests with 503 server errors", body)
        self.assertIn("- **Severity:** critical", body)
        self.assertIn("- **Location:** `https://api.example.com/x`", body)
        self.assertIn('```json\n{\n  "status_code": 503\n}\n```', body)
        self.assertIn("- **💡 Suggested Fix:** Investigate server-side issues", body)
        self.assertIn("### 2. 🔵 Found 6 requests returning 404 errors", body)
        self.assertIn("## 🔧 Recommendations\n\n- Add retry logic", body)
        self.assertTrue(body.endswith("_Generated by PR Risk Explorer at 2024-01-01T00:00:00+00:00_"))

    def test_optional_fields_are_omitted(self):
        result = DetectorOk(issues=[
            Issue(id="x", severity="info", type="t", category="custom", message="just so you know"),
        ])
        body = format_findings_comment("custom", result)
        self.assertIn("## 🔍 **CUSTOM Detector Findings**", body)
        self.assertNotIn("Location", body)
        self.assertNotIn("Details", body)
        self.assertNotIn("Recommendations", body)


if __name__ == "__main__":
    unittest.main()
