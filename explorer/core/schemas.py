"""
Schemas for the JSON the model backend is asked to return.

Field aliases are the exact camelCase keys named in the prompts. Anything the
model leaves out is defaulted here, so downstream code never sees a partial
object.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ModelJSON(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Scope inference ──

class RouteSchema(_ModelJSON):
    path: str
    name: str = ""
    root_selector: str = Field(default='main, [data-testid="app"], body', alias="rootSelector")
    actions: List[Any] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def _coerce_actions(cls, v: Any) -> Any:
        # Models sometimes send a single action instead of a list.
        if isinstance(v, (str, dict)):
            return [v]
        return v or []


class ComponentSchema(_ModelJSON):
    name: str
    selector: str = ""
    interactions: List[Any] = Field(default_factory=list)


class ScopeResponse(_ModelJSON):
    routes: List[RouteSchema] = Field(default_factory=list)
    components: List[ComponentSchema] = Field(default_factory=list)
    key_features: List[str] = Field(default_factory=list, alias="keyFeatures")
    risk_level: str = Field(default="medium", alias="riskLevel")

    @field_validator("risk_level", mode="before")
    @classmethod
    def _normalize_risk(cls, v: Any) -> str:
        level = str(v or "medium").lower()
        return level if level in ("low", "medium", "high") else "medium"


# ── Report synthesis ──

class TopIssueSchema(_ModelJSON):
    title: str = "Issue"
    severity: str = "info"
    description: str = ""
    fix: str = ""


class PerformanceInsightSchema(_ModelJSON):
    function: str = "Unknown Function"
    issue: str = ""
    suggestion: str = "Consider optimizing this function"


class ReportResponse(_ModelJSON):
    summary: str = ""
    verdict: Optional[str] = None
    top_issues: List[TopIssueSchema] = Field(default_factory=list, alias="topIssues")
    performance_insights: List[PerformanceInsightSchema] = Field(
        default_factory=list, alias="performanceInsights"
    )
    recommendations: List[str] = Field(default_factory=list)
    confidence: str = "medium"

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        verdict = str(v).upper()
        return verdict if verdict in ("PASS", "WARN", "FAIL") else None

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: Any) -> str:
        level = str(v or "medium").lower()
        return level if level in ("low", "medium", "high") else "medium"
