"""
Plan Generator: turns a scope into an ordered, bounded list of Executor steps.

Phases, each appending steps and returning the next free id:
    1. Initial navigation      navigate + wait (always)
    2. Context navigation      enter an existing project, advisory (always)
    3. Route acquisition       one model-driven discovery step, or the
                               deterministic discovery trio
    4. Component phase         four steps per component (deterministic only)
    5. Closing phase           interaction sweep + final screenshot, only if
                               more than two steps of budget remain

`max_steps` is a soft budget. Phases 1-4 are always emitted; only the closing
phase consults what is left. Step ids start at 1 with no gaps.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from explorer.state import ArtifactKind, Component, Plan, ScopeDescriptor, Step

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 20

PROJECT_LINK_SELECTORS = [
    'a[href*="project"]',
    'tr[data-testid*="project"] a',
    ".project-card a",
    '[data-testid*="project-link"]',
]

INTERACTION_PATTERNS = ["buttons", "links", "forms", "dropdowns"]


class PlanGenerator:
    """
    Usage:
        generator = PlanGenerator(use_model_discovery=config.use_model_discovery)
        plan = generator.generate_plan(scope, "http://localhost:3000", 20, change_set.meta)
    """

    def __init__(
        self,
        use_model_discovery: bool = True,
        default_max_steps: int = DEFAULT_MAX_STEPS,
        clock: Callable[[], float] = time.time,
    ):
        self.use_model_discovery = use_model_discovery
        self.default_max_steps = default_max_steps
        self._clock = clock

    def generate_plan(
        self,
        scope: Optional[ScopeDescriptor],
        app_url: str,
        max_steps: Optional[int] = None,
        change_set_meta: Optional[dict[str, Any]] = None,
    ) -> Plan:
        max_steps = max_steps if max_steps and max_steps > 0 else self.default_max_steps
        components: list[Component] = list(getattr(scope, "components", None) or [])
        steps: list[Step] = []

        next_id = self._add_initial_navigation(steps, 1, app_url)
        next_id = self._add_context_navigation(steps, next_id)

        if self.use_model_discovery:
            next_id = self._add_model_discovery(steps, next_id, components, max_steps)
        else:
            next_id = self._add_route_discovery(steps, next_id, components)
            next_id = self._add_component_steps(steps, next_id, components)
            next_id = self._add_closing_steps(steps, next_id, max_steps)

        now = self._clock()
        plan = Plan(
            id=f"plan-{int(now * 1000)}",
            app_url=app_url,
            max_steps=max_steps,
            steps=tuple(steps),
            created_at=datetime.fromtimestamp(now, timezone.utc).isoformat(),
            change_set_meta=dict(change_set_meta or {}),
            mode="model-driven" if self.use_model_discovery else "deterministic",
        )
        if plan.over_budget:
            logger.info(f"Plan {plan.id} has {len(steps)} steps, over the soft budget of {max_steps}")
        logger.info(f"Generated {plan.mode} plan {plan.id} with {len(steps)} steps")
        return plan

    # ── Phases ──

    def _add_initial_navigation(self, steps: list[Step], next_id: int, app_url: str) -> int:
        steps.append(Step(
            id=next_id,
            type="navigate",
            action="navigate",
            description="Navigate to application home page",
            params={"url": app_url},
            timeout_ms=30000,
        ))
        steps.append(Step(
            id=next_id + 1,
            type="wait",
            action="wait",
            description="Wait for application to load",
            params={"selector": "body"},
            timeout_ms=10000,
        ))
        return next_id + 2

    def _add_context_navigation(self, steps: list[Step], next_id: int) -> int:
        steps.append(Step(
            id=next_id,
            type="navigate-to-project",
            action="navigate-to-project",
            description="Navigate to existing project for testing",
            params={"strategy": "find-existing-project", "required": False},
            timeout_ms=15000,
        ))
        return next_id + 1

    def _add_model_discovery(self, steps: list[Step], next_id: int,
                             components: list[Component], max_steps: int) -> int:
        steps.append(Step(
            id=next_id,
            type="ai-discovery",
            action="ai-route-discovery",
            description="AI-powered route discovery and navigation mapping",
            params={
                "target_components": [c.name for c in components],
                "base_url": None,
                "max_sub_steps": max(max_steps - len(steps), 0),
            },
            timeout_ms=30000,
            artifacts=frozenset({ArtifactKind.SCREENSHOT, ArtifactKind.PERFORMANCE}),
        ))
        return next_id + 1

    def _add_route_discovery(self, steps: list[Step], next_id: int, components: list[Component]) -> int:
        steps.append(Step(
            id=next_id,
            type="discover-navigation",
            action="discover",
            description="Analyze page for navigation elements and project links",
            params={"strategy": "landing-page-analysis"},
            timeout_ms=5000,
        ))
        steps.append(Step(
            id=next_id + 1,
            type="navigate-to-projects",
            action="navigate-to-projects",
            description="Navigate to projects section",
            params={"strategy": "project-discovery", "selectors": list(PROJECT_LINK_SELECTORS)},
            timeout_ms=15000,
        ))
        steps.append(Step(
            id=next_id + 2,
            type="discover-sidebar",
            action="discover",
            description="Analyze sidebar/navigation for relevant routes",
            params={"strategy": "sidebar-analysis", "target_components": [c.name for c in components]},
            timeout_ms=5000,
        ))
        return next_id + 3

    def _add_component_steps(self, steps: list[Step], next_id: int, components: list[Component]) -> int:
        for component in components:
            target = dataclasses.asdict(component)
            steps.append(Step(
                id=next_id,
                type="navigate-for-component",
                action="navigate-for-component",
                description=f"Navigate to route containing {component.name}",
                params={"component": target, "strategy": "component-route-mapping"},
                timeout_ms=15000,
            ))
            steps.append(Step(
                id=next_id + 1,
                type="discover-component",
                action="discover",
                description=f"Discover {component.name} component on page",
                params={"component": target, "strategy": "dynamic-component-discovery"},
                timeout_ms=10000,
            ))
            steps.append(Step(
                id=next_id + 2,
                type="screenshot",
                action="screenshot",
                description=f"Capture page state for {component.name}",
                params={"context": component.name},
                artifacts=frozenset({ArtifactKind.SCREENSHOT}),
            ))
            steps.append(Step(
                id=next_id + 3,
                type="test-dynamic-interactions",
                action="test",
                description=f"Test interactions related to {component.name}",
                params={"component": target, "strategy": "dynamic-interaction-testing"},
                timeout_ms=10000,
            ))
            next_id += 4
        return next_id

    def _add_closing_steps(self, steps: list[Step], next_id: int, max_steps: int) -> int:
        if max_steps - len(steps) <= 2:
            return next_id
        steps.append(Step(
            id=next_id,
            type="test-interactions",
            action="test",
            description="Test common UI interactions",
            params={"patterns": list(INTERACTION_PATTERNS)},
            timeout_ms=10000,
        ))
        steps.append(Step(
            id=next_id + 1,
            type="screenshot",
            action="screenshot",
            description="Final application state capture",
            artifacts=frozenset({ArtifactKind.SCREENSHOT}),
        ))
        return next_id + 2
