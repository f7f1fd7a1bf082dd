"""
约束求解引擎
约束评估、聚合、组合搜索与自然语言约束解析
"""

from constraints.aggregator import aggregate, total_value
from constraints.combination import find_order_combinations, is_constraint_met
from constraints.evaluator import (
    calculate_order_value,
    evaluate_constraint,
    filter_orders,
    order_meets_constraint,
)
from constraints.parser import parse_constraints, parse_date_range
from constraints.service import ConstraintSatisfactionService

__all__ = [
    "aggregate",
    "total_value",
    "find_order_combinations",
    "is_constraint_met",
    "calculate_order_value",
    "evaluate_constraint",
    "filter_orders",
    "order_meets_constraint",
    "parse_constraints",
    "parse_date_range",
    "ConstraintSatisfactionService",
]
