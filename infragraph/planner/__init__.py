"""Plan Evaluator: ordered create / update / delete / no-op actions."""

from infragraph.planner.evaluator import PlanEvaluator, render_attributes, unknown_marker

__all__ = ["PlanEvaluator", "render_attributes", "unknown_marker"]
