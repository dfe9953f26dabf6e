"""
Scope Inference: maps a change set to the routes and components worth probing.

Strategy:
    1. Ask the model backend for a fixed-shape JSON scope.
    2. On any backend or parse failure, derive the scope from file paths,
       patch text and a static component map.

Never raises. The returned scope always holds at least one route.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from explorer.config import ModelConfig
from explorer.core.model_client import OllamaClient
from explorer.core.result import Err, Result
from explorer.core.schemas import ScopeResponse
from explorer.state import ChangeSet, Component, FileChange, RiskLevel, Route, ScopeDescriptor

logger = logging.getLogger(__name__)

MAX_PATCHES = 5
MAX_PATCH_CHARS = 1000
MAX_DESCRIPTION_CHARS = 500

DEFAULT_ROOT_SELECTOR = 'main, [data-testid="app"], body'


# ── Fallback rule tables ──

# (pattern on lower-cased path, route path, route name), checked in order
PATH_ROUTE_RULES = [
    (re.compile(r"reports?"), "/projects/*/reports", "Reports"),
    (re.compile(r"test.*run"), "/projects/*/test-runs", "Test Runs"),
    (re.compile(r"dashboard"), "/dashboard", "Dashboard"),
    (re.compile(r"projects?"), "/projects", "Projects"),
    (re.compile(r"settings?"), "/settings", "Settings"),
]

APP_DIR = re.compile(r"apps/([^/]+)", re.I)

CONTENT_ROUTE_PATTERNS = [
    re.compile(r"""Route.*path=["']([^"']+)["']""", re.I),
    re.compile(r"""path:\s*["']([^"']+)["']""", re.I),
    re.compile(r"""route.*["']([^"']+)["']""", re.I),
    re.compile(r"""navigate.*["']([^"']+)["']""", re.I),
]

COMPONENT_ROUTE_MAP = {
    "TestRunDetailedReport": ["/projects/*/reports/*", "/test-runs/*/details"],
    "TestRunSummaryReport": ["/projects/*/reports/summary", "/test-runs/*/summary"],
    "RenderReportByType": ["/projects/*/reports", "/reports"],
    "TestRunDetailedCharts": ["/projects/*/reports/*/charts", "/test-runs/*/charts"],
    "TestRunDetailedTables": ["/projects/*/reports/*/tables", "/test-runs/*/tables"],
    "ProjectDashboard": ["/projects/*", "/dashboard"],
    "UserSettings": ["/settings", "/profile"],
}

# (keywords in lower-cased component name, likely routes)
COMPONENT_KEYWORD_ROUTES = [
    (("report",), ["/projects/*/reports", "/reports"]),
    (("testrun", "test-run"), ["/projects/*/test-runs", "/test-runs"]),
    (("dashboard",), ["/dashboard", "/"]),
    (("chart", "graph"), ["/projects/*/reports/*/charts", "/analytics"]),
    (("table", "list"), ["/projects/*/reports/*/tables", "/data"]),
    (("settings", "profile"), ["/settings", "/profile"]),
]

IGNORED_DIR_SEGMENTS = {"src", "components", "features"}

COMPONENT_MARKERS = re.compile(r"component|modal|form", re.I)
PASCAL_CASE_JS = re.compile(r"^[A-Z][a-zA-Z]*\.js$")

HIGH_RISK_MARKERS = ("delete", "remove")
MEDIUM_RISK_MARKERS = ("api", "service")


# ── Fallback helpers ──

def path_to_name(path: str) -> str:
    """'/projects/*/reports' -> 'Projects   Reports'; '/' -> 'Home'."""
    name = path.strip("/")
    name = re.sub(r"[/*]", " ", name)
    name = re.sub(r"\b\w", lambda m: m.group(0).upper(), name)
    return name.strip() or "Home"


def default_route() -> Route:
    return Route(
        path="/",
        name="Home",
        root_selector=DEFAULT_ROOT_SELECTOR,
        confidence="low",
        source="default",
    )


def routes_from_path(path: str) -> list[Route]:
    routes = []
    lower = path.lower()
    for pattern, route_path, name in PATH_ROUTE_RULES:
        if pattern.search(lower):
            routes.append(Route(
                path=route_path,
                name=name,
                root_selector=f'main, [data-testid="app"], [data-testid="{name.lower()}"]',
                confidence="medium",
                source="file-path",
            ))

    app = APP_DIR.search(path)
    if app:
        routes.append(Route(
            path="/",
            name=f"{app.group(1)} Home",
            root_selector=DEFAULT_ROOT_SELECTOR,
            confidence="high",
            source="app-detection",
        ))
    return routes


def routes_from_patch(patch: str) -> list[Route]:
    routes = []
    for pattern in CONTENT_ROUTE_PATTERNS:
        for match in pattern.finditer(patch):
            route_path = match.group(1)
            if route_path == "*" or "undefined" in route_path:
                continue
            routes.append(Route(
                path=route_path,
                name=path_to_name(route_path),
                root_selector=DEFAULT_ROOT_SELECTOR,
                confidence="high",
                source="content-analysis",
            ))
    return routes


def routes_from_component_map(files: Iterable[FileChange]) -> list[Route]:
    routes = []
    for f in files:
        for component, route_paths in COMPONENT_ROUTE_MAP.items():
            if component in f.path:
                routes.extend(
                    Route(
                        path=route_path,
                        name=path_to_name(route_path),
                        root_selector=DEFAULT_ROOT_SELECTOR,
                        confidence="medium",
                        source="component-mapping",
                    )
                    for route_path in route_paths
                )
    return routes


def is_component_file(path: str) -> bool:
    filename = path.rsplit("/", 1)[-1]
    lower = path.lower()
    return (
        "component" in lower
        or "modal" in lower
        or "form" in lower
        or lower.endswith((".jsx", ".tsx"))
        or bool(PASCAL_CASE_JS.match(filename))
    )


def component_name(path: str) -> str:
    """'src/components/UserSettingsModal.jsx' -> 'UserSettings'."""
    stem = path.rsplit("/", 1)[-1].split(".")[0]
    name = COMPONENT_MARKERS.sub("", stem)
    name = re.sub(r"[^a-zA-Z0-9]", "", name)
    if not name:
        return "UnknownComponent"
    return name[0].upper() + name[1:]


def likely_routes_for(name: str, path: str) -> list[str]:
    routes: list[str] = []
    lower = name.lower()
    for keywords, candidates in COMPONENT_KEYWORD_ROUTES:
        if any(k in lower for k in keywords):
            routes.extend(candidates)

    for segment in path.split("/")[:-1]:
        segment = segment.lower()
        if segment and segment not in IGNORED_DIR_SEGMENTS:
            routes.append(f"/{segment}")
    return routes or ["/"]


def component_from_file(f: FileChange) -> Component:
    name = component_name(f.path)
    return Component(
        name=name,
        selector=f'[data-testid="{name.lower()}"]',
        likely_routes=likely_routes_for(name, f.path),
        interactions=[{
            "action": "click",
            "selector": "button",
            "description": f"Test {name} interactions",
        }],
        source="file-analysis",
    )


def file_risk(f: FileChange) -> RiskLevel:
    lower = f.path.lower()
    if f.status in ("added", "removed") or any(m in lower for m in HIGH_RISK_MARKERS):
        return RiskLevel.HIGH
    if any(m in lower for m in MEDIUM_RISK_MARKERS):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def fallback_scope(change_set: ChangeSet) -> ScopeDescriptor:
    """Deterministic scope from file paths and patches alone. Pure and idempotent."""
    routes: list[Route] = []
    seen: set[str] = set()

    def add(candidates: Iterable[Route]):
        for route in candidates:
            if route.path not in seen:
                seen.add(route.path)
                routes.append(route)

    for f in change_set.files:
        add(routes_from_path(f.path))
        if f.patch:
            add(routes_from_patch(f.patch))
    add(routes_from_component_map(change_set.files))

    components = [component_from_file(f) for f in change_set.files if is_component_file(f.path)]

    risk = RiskLevel.LOW
    for f in change_set.files:
        level = file_risk(f)
        if level.rank > risk.rank:
            risk = level

    if not routes:
        routes = [default_route()]

    return ScopeDescriptor(
        routes=routes,
        components=components,
        key_features={r.name.lower() for r in routes if r.source != "default"},
        risk_level=risk,
        source="fallback",
    )


# ── Prompt ──

SCOPE_JSON_EXAMPLE = """{
  "routes": [
    {
      "path": "/dashboard",
      "name": "Dashboard",
      "rootSelector": "[data-testid='dashboard']",
      "actions": [
        {"type": "click", "selector": "[data-testid='refresh-btn']", "description": "Refresh dashboard"}
      ]
    }
  ],
  "components": [
    {
      "name": "UserProfile",
      "selector": "[data-testid='user-profile']",
      "interactions": [
        {"action": "click", "selector": "[data-testid='edit-btn']", "description": "Edit profile"}
      ]
    }
  ],
  "keyFeatures": ["user-management", "dashboard-widgets"],
  "riskLevel": "medium"
}"""


def build_scope_prompt(change_set: ChangeSet) -> str:
    changed = "\n".join(f.path for f in change_set.files)
    patches = "\n\n".join(
        f"File: {f.path}\nStatus: {f.status}\nPatch:\n"
        f"{(f.patch or '')[:MAX_PATCH_CHARS] or 'No patch available'}"
        for f in change_set.files[:MAX_PATCHES]
    )
    description = (change_set.description or "")[:MAX_DESCRIPTION_CHARS] or "No description"

    return f"""Analyze this GitHub PR to determine what parts of the web application should be tested:

**PR Details:**
- Repository: {change_set.repository}
- Title: {change_set.title}
- Author: {change_set.author}
- Description: {description}

**Changed Files:**
{changed}

**Code Changes (first {MAX_PATCHES} files):**
{patches}

Based on these changes, determine:
1. **Routes** that should be tested (URL paths like /dashboard, /settings)
2. **Components** that were modified and need testing
3. **Actions** users should perform (click, type, navigate)

Return ONLY a JSON object in this exact format:
{SCOPE_JSON_EXAMPLE}"""


def scope_from_response(response: ScopeResponse) -> ScopeDescriptor:
    routes = [
        Route(
            path=r.path,
            name=r.name or path_to_name(r.path),
            root_selector=r.root_selector,
            confidence="high",
            source="model",
            actions=list(r.actions),
        )
        for r in response.routes
    ]
    components = [
        Component(
            name=c.name,
            selector=c.selector or f'[data-testid="{c.name.lower()}"]',
            interactions=list(c.interactions),
            source="model",
        )
        for c in response.components
    ]
    return ScopeDescriptor(
        routes=routes or [default_route()],
        components=components,
        key_features=set(response.key_features),
        risk_level=RiskLevel(response.risk_level),
        source="model",
    )


# ── Service ──

class ScopeInference:
    """
    Usage:
        inference = ScopeInference(config.model)
        scope = await inference.infer_scope(change_set)
    """

    def __init__(self, config: Optional[ModelConfig] = None, client: Optional[OllamaClient] = None,
                 use_model: bool = True):
        self.config = config or ModelConfig()
        self.client = client
        self.use_model = use_model

    async def infer_scope(self, change_set: ChangeSet) -> ScopeDescriptor:
        logger.info(f"Inferring scope for {change_set.repository}#{change_set.number} "
                    f"({len(change_set.files)} files)")
        result = await self._infer_with_model(change_set)
        scope = result.map(scope_from_response).or_else(
            lambda err: self._fallback(change_set, err)
        )
        logger.info(f"Scope ({scope.source}): {len(scope.routes)} routes, "
                    f"{len(scope.components)} components, risk {scope.risk_level.value}")
        return scope

    async def _infer_with_model(self, change_set: ChangeSet) -> Result[ScopeResponse]:
        if not self.use_model or self.client is None:
            return Err(RuntimeError("model inference disabled"))
        try:
            return await self.client.generate_json(
                build_scope_prompt(change_set), ScopeResponse, self.config.scope_options
            )
        except Exception as e:
            return Err(e)

    @staticmethod
    def _fallback(change_set: ChangeSet, err: Exception) -> ScopeDescriptor:
        logger.warning(f"Model scope inference failed, falling back to rules: {err}")
        return fallback_scope(change_set)
