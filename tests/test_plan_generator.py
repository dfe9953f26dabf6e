"""
Tests for plan generation.

A fixed clock keeps plan ids deterministic.
"""

import unittest

from explorer.planning.plan_generator import PlanGenerator
from explorer.state import ArtifactKind, Component, Route, ScopeDescriptor


def _scope(n_components: int = 0) -> ScopeDescriptor:
    return ScopeDescriptor(
        routes=[Route(path="/", name="Home")],
        components=[
            Component(name=f"Widget{i}", selector=f'[data-testid="widget{i}"]', likely_routes=["/"])
            for i in range(n_components)
        ],
    )


def _generator(model: bool) -> PlanGenerator:
    return PlanGenerator(use_model_discovery=model, clock=lambda: 1700000000.5)


class TestPlanGenerator(unittest.TestCase):

    def test_ids_are_contiguous_from_one(self):
        for model in (True, False):
            for n in (0, 1, 3, 6):
                plan = _generator(model).generate_plan(_scope(n), "http://localhost:3000", 20)
                self.assertEqual([s.id for s in plan.steps], list(range(1, len(plan.steps) + 1)))

    def test_plan_identity(self):
        plan = _generator(True).generate_plan(_scope(), "http://app", 20, {"number": 3})
        self.assertEqual(plan.id, "plan-1700000000500")
        self.assertEqual(plan.app_url, "http://app")
        self.assertEqual(plan.change_set_meta, {"number": 3})
        self.assertTrue(plan.created_at.startswith("2023-11-14"))

    def test_initial_and_context_navigation_always_present(self):
        plan = _generator(False).generate_plan(_scope(), "http://app", 20)
        first = plan.steps[:3]
        self.assertEqual([s.type for s in first], ["navigate", "wait", "navigate-to-project"])
        self.assertEqual(first[0].params, {"url": "http://app"})
        self.assertEqual(first[0].timeout_ms, 30000)
        self.assertEqual(first[1].params, {"selector": "body"})
        self.assertFalse(first[2].params["required"])

    def test_model_driven_plan(self):
        plan = _generator(True).generate_plan(_scope(2), "http://app", 20)
        self.assertEqual(plan.mode, "model-driven")
        self.assertEqual(len(plan.steps), 4)
        discovery = plan.steps[3]
        self.assertEqual(discovery.action, "ai-route-discovery")
        self.assertEqual(discovery.params["target_components"], ["Widget0", "Widget1"])
        self.assertEqual(discovery.params["max_sub_steps"], 17)
        self.assertEqual(discovery.artifacts, frozenset({ArtifactKind.SCREENSHOT, ArtifactKind.PERFORMANCE}))

    def test_deterministic_plan_with_closing_phase(self):
        plan = _generator(False).generate_plan(_scope(1), "http://app", 20)
        self.assertEqual(plan.mode, "deterministic")
        types = [s.type for s in plan.steps]
        self.assertEqual(types, [
            "navigate", "wait", "navigate-to-project",
            "discover-navigation", "navigate-to-projects", "discover-sidebar",
            "navigate-for-component", "discover-component", "screenshot", "test-dynamic-interactions",
            "test-interactions", "screenshot",
        ])
        self.assertEqual(plan.steps[-1].description, "Final application state capture")
        self.assertEqual(plan.steps[6].params["component"]["name"], "Widget0")

    def test_closing_phase_needs_more_than_two_remaining(self):
        # 6 fixed + 4 per component; 10 steps with a budget of 12 leaves exactly 2
        plan = _generator(False).generate_plan(_scope(1), "http://app", 12)
        self.assertEqual(len(plan.steps), 10)
        plan = _generator(False).generate_plan(_scope(1), "http://app", 13)
        self.assertEqual(len(plan.steps), 12)

    def test_budget_is_soft(self):
        plan = _generator(False).generate_plan(_scope(5), "http://app", 10)
        self.assertEqual(len(plan.steps), 6 + 4 * 5)
        self.assertTrue(plan.over_budget)

    def test_missing_budget_uses_default(self):
        plan = PlanGenerator(use_model_discovery=False, default_max_steps=7).generate_plan(_scope(), "http://app")
        self.assertEqual(plan.max_steps, 7)

    def test_none_scope_is_tolerated(self):
        plan = _generator(True).generate_plan(None, "http://app", 20)
        self.assertEqual(plan.steps[-1].params["target_components"], [])


if __name__ == "__main__":
    unittest.main()
