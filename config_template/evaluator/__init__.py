"""Expression evaluation and pending-result aggregation."""

from config_template.evaluator.expression_evaluator import ExpressionEvaluator
from config_template.evaluator.pending import Pending, PendingSet

__all__ = ["ExpressionEvaluator", "Pending", "PendingSet"]
