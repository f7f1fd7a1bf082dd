"""
约束求解服务 (ConstraintSatisfactionService)

流程：按约束过滤 -> 有目标金额时做组合搜索 -> 计算约束满足情况 -> 生成英文摘要。
process_constraint_query 不抛出异常，意外错误以 success=False 的结果返回。

作者: Tom
创建时间: 2025-11-14T10:27:19+08:00 (Asia/Shanghai)
"""

from datetime import datetime
from typing import List, Optional

from loguru import logger

from canonical.models import (
    AggregationRequest, AggregationType, Constraint, ConstraintDetails,
    ConstraintOperator, ConstraintSatisfactionResult, ConstraintType, Order,
)
from config.settings import get_settings
from constraints.aggregator import aggregate
from constraints.combination import DEFAULT_MAX_COMBINATIONS, find_order_combinations, is_constraint_met
from constraints.evaluator import calculate_order_value, coerce_datetime, filter_orders


def format_money(amount: float) -> str:
    return f"${amount:,.2f}"


def format_date(value) -> str:
    dt = coerce_datetime(value)
    if dt is None:
        return str(value)
    return f"{dt.month}/{dt.day}/{dt.year}"


def format_date_constraint(constraint: Constraint) -> str:
    """日期约束的英文描述"""
    if constraint.operator == ConstraintOperator.BETWEEN:
        upper = constraint.secondary_value if constraint.secondary_value is not None else constraint.value
        return f"between {format_date(constraint.value)} and {format_date(upper)}"

    day = format_date(constraint.value)
    phrases = {
        ConstraintOperator.GREATER_THAN: "after",
        ConstraintOperator.LESS_THAN: "before",
        ConstraintOperator.GREATER_EQUAL: "on or after",
        ConstraintOperator.LESS_EQUAL: "on or before",
    }
    return f"{phrases.get(constraint.operator, 'on')} {day}"


def _plural(count: int) -> str:
    return f"{count} order{'s' if count != 1 else ''}"


def _date_clause(constraints: Optional[List[Constraint]]) -> str:
    for c in constraints or []:
        if c.type == ConstraintType.DATE:
            return f" due {format_date_constraint(c)}"
    return ""


def _target_clause(total: float, target_value: float, met: bool) -> str:
    if met:
        return f", which meets your requirement of {format_money(target_value)}"
    shortfall = target_value - total
    return f". This is {format_money(shortfall)} short of your {format_money(target_value)} requirement"


def build_combination_summary(
    orders: List[Order],
    total: float,
    target_value: float,
    met: bool,
    constraints: Optional[List[Constraint]] = None,
    combinations_found: int = 0,
) -> str:
    summary = f"Found {_plural(len(orders))} that add up to {format_money(total)}"
    summary += _date_clause(constraints)
    summary += _target_clause(total, target_value, met)
    if combinations_found > 1:
        summary += f". Found {combinations_found} different combinations, showing the best match"
    return summary + "."


def build_summary(
    orders: List[Order],
    total: Optional[float] = None,
    target_value: Optional[float] = None,
    met: bool = True,
    constraints: Optional[List[Constraint]] = None,
) -> str:
    summary = f"Found {_plural(len(orders))}"
    summary += _date_clause(constraints)
    if total is not None:
        summary += f" with a total value of {format_money(total)}"
        if target_value is not None:
            summary += _target_clause(total, target_value, met)
    return summary + "."


class ConstraintSatisfactionService:
    """约束求解服务"""

    def __init__(self, max_combinations: int = DEFAULT_MAX_COMBINATIONS, max_candidates: Optional[int] = None):
        self.max_combinations = max_combinations
        self.max_candidates = max_candidates if max_candidates is not None else get_settings().combination_max_candidates

    def process_constraint_query(
        self,
        orders: List[Order],
        constraints: Optional[List[Constraint]] = None,
        target_value: Optional[float] = None,
        aggregation: Optional[AggregationRequest] = None,
    ) -> ConstraintSatisfactionResult:
        """
        约束求解入口

        Args:
            orders: 待求解的订单
            constraints: 约束（AND 语义）
            target_value: 目标金额；提供时进行组合搜索
            aggregation: 无目标金额时的聚合请求，field 为 "value" 时计算金额合计

        Returns:
            ConstraintSatisfactionResult，不抛出异常
        """
        start = datetime.now()
        constraints = list(constraints or [])
        try:
            filtered = filter_orders(orders, constraints)
            if target_value is not None:
                result = self._solve_target(filtered, constraints, float(target_value))
            else:
                result = self._solve_plain(filtered, constraints, aggregation)
        except Exception as e:
            logger.exception(f"约束求解失败: {e}")
            return ConstraintSatisfactionResult(
                success=False,
                order_count=0,
                orders=[],
                constraint_met=False,
                summary=f"Constraint evaluation failed: {e}",
            )

        elapsed_ms = (datetime.now() - start).total_seconds() * 1000
        logger.info(
            f"约束求解完成: 输入={len(orders)}, 过滤后={len(filtered)}, 结果订单={result.order_count}, "
            f"满足={result.constraint_met}, 用时 {elapsed_ms:.2f}ms"
        )
        return result

    def _solve_target(
        self, filtered: List[Order], constraints: List[Constraint], target_value: float
    ) -> ConstraintSatisfactionResult:
        combinations = find_order_combinations(
            filtered,
            target_value,
            max_combinations=self.max_combinations,
            max_candidates=self.max_candidates,
        )

        if combinations:
            best = combinations[0]
            total = sum(calculate_order_value(o) for o in best)
            met = is_constraint_met(total, target_value)
            return ConstraintSatisfactionResult(
                success=True,
                total_value=total,
                order_count=len(best),
                orders=best,
                constraint_met=met,
                constraint_details=ConstraintDetails(
                    requested_value=target_value,
                    actual_value=total,
                    difference=total - target_value,
                    percentage=(total / target_value) * 100 if target_value else 0.0,
                    combinations_found=len(combinations),
                ),
                summary=build_combination_summary(best, total, target_value, met, constraints, len(combinations)),
            )

        # 未找到组合：退回到全部过滤后订单的金额合计，约束视为未满足
        total = aggregate(filtered, AggregationRequest(type=AggregationType.SUM, field="value"))
        logger.info(f"未找到满足目标 {target_value} 的组合，退回全量合计 {total}")
        return ConstraintSatisfactionResult(
            success=True,
            total_value=total,
            order_count=len(filtered),
            orders=filtered,
            constraint_met=False,
            constraint_details=ConstraintDetails(
                requested_value=target_value,
                actual_value=total,
                difference=total - target_value,
                percentage=(total / target_value) * 100 if total and target_value else 0.0,
                combinations_found=0,
            ),
            summary=build_summary(filtered, total, target_value, False, constraints),
        )

    def _solve_plain(
        self,
        filtered: List[Order],
        constraints: List[Constraint],
        aggregation: Optional[AggregationRequest],
    ) -> ConstraintSatisfactionResult:
        total = None
        if aggregation is not None and aggregation.field == "value":
            total = aggregate(
                filtered,
                AggregationRequest(type=AggregationType.SUM, field="value", filter=aggregation.filter),
            )
        return ConstraintSatisfactionResult(
            success=True,
            total_value=total,
            order_count=len(filtered),
            orders=filtered,
            constraint_met=True,
            constraint_details=ConstraintDetails(),
            summary=build_summary(filtered, total, None, True, constraints),
        )


__all__ = [
    "ConstraintSatisfactionService",
    "build_summary",
    "build_combination_summary",
    "format_date_constraint",
    "format_money",
]
