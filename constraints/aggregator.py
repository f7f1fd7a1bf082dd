"""
订单聚合
sum / count / average / min / max，空集合的 average/min/max 返回 0

作者: Tom
创建时间: 2025-11-12T14:20:08+08:00 (Asia/Shanghai)
"""

from typing import Any, Callable, Dict, Iterable, List

from loguru import logger

from canonical.models import AggregationRequest, AggregationType, Order
from constraints.evaluator import calculate_order_value, filter_orders


def _numeric(value: Any) -> float:
    """非数值（含 None/bool）视为 0"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


# 可聚合字段 -> 读取函数；"value" 为计算后的订单金额，其余字段读取原始值
NUMERIC_FIELDS: Dict[str, Callable[[Order], Any]] = {
    "value": calculate_order_value,
    "jobQuantity": lambda o: o.job_quantity,
    "job_quantity": lambda o: o.job_quantity,
    "quantity": lambda o: o.job_quantity,
    "daysToDueDate": lambda o: o.dates.days_to_due_date,
    "days_to_due_date": lambda o: o.dates.days_to_due_date,
    "pricingTotal": lambda o: o.pricing.total if o.pricing else None,
}


def field_value(order: Order, field: str) -> float:
    reader = NUMERIC_FIELDS.get(field)
    if reader is None:
        logger.debug(f"未知聚合字段，按 0 处理: {field}")
        return 0.0
    return _numeric(reader(order))


def aggregate(orders: Iterable[Order], request: AggregationRequest) -> float:
    """
    对订单集合做聚合

    Args:
        orders: 订单集合
        request: 聚合请求；request.filter 存在时先按约束过滤

    Returns:
        聚合结果；未知聚合类型返回 0
    """
    selected: List[Order] = filter_orders(orders, request.filter) if request.filter else list(orders)
    values = [field_value(o, request.field) for o in selected]

    agg_type = request.type
    if agg_type == AggregationType.SUM:
        return sum(values)
    if agg_type == AggregationType.COUNT:
        return float(len(selected))
    if agg_type == AggregationType.AVERAGE:
        return sum(values) / len(values) if values else 0.0
    if agg_type == AggregationType.MIN:
        return min(values) if values else 0.0
    if agg_type == AggregationType.MAX:
        return max(values) if values else 0.0

    logger.warning(f"未知聚合类型，返回 0: {agg_type!r}")
    return 0.0


def total_value(orders: Iterable[Order]) -> float:
    """订单金额合计"""
    return sum(calculate_order_value(o) for o in orders)


__all__ = ["NUMERIC_FIELDS", "field_value", "aggregate", "total_value"]
