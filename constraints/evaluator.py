"""
约束评估器

职责：
- 计算订单金额（pricing.total 优先，其次按行项目累加）。
- 按约束类型读取订单字段（类型到访问器的映射表），按运算符比较。
- 多约束 AND 过滤，保持输入顺序。

评估是全函数：任何畸形约束（未知类型/运算符、不可比较的值）都返回 False，不抛出异常。

作者: Tom
创建时间: 2025-11-12T10:05:37+08:00 (Asia/Shanghai)
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from dateutil.parser import isoparse
from loguru import logger

from canonical.models import Constraint, ConstraintOperator, ConstraintType, Order, strip_timezone


def calculate_order_value(order: Order) -> float:
    """订单金额：pricing.total 存在时直接使用，否则累加行项目（totalPrice 优先，否则 数量*单价）"""
    pricing = getattr(order, "pricing", None)
    if pricing is not None and pricing.total is not None:
        return float(pricing.total)

    total = 0.0
    for item in getattr(order, "line_items", None) or []:
        if item.total_price is not None:
            total += float(item.total_price)
        else:
            total += float(item.quantity or 0) * float(item.unit_price or 0)
    return total


# 约束类型 -> 订单字段访问器
CONSTRAINT_ACCESSORS: Dict[ConstraintType, Callable[[Order], Any]] = {
    ConstraintType.VALUE: calculate_order_value,
    ConstraintType.DATE: lambda order: order.dates.date_due,
    ConstraintType.STATUS: lambda order: order.status.master,
    ConstraintType.CUSTOMER: lambda order: order.customer.company,
    ConstraintType.QUANTITY: lambda order: order.job_quantity or 0,
}


def _raw(value: Any) -> Any:
    """枚举取值，其它原样返回"""
    return value.value if isinstance(value, Enum) else value


def coerce_datetime(value: Any, end_of_day: bool = False) -> Optional[datetime]:
    """
    将约束中的日期操作数统一为去时区的 datetime；无法解析返回 None

    end_of_day 为 True 时，仅含日期的取值（date 或 YYYY-MM-DD）取当天 23:59:59.999999
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return strip_timezone(value)
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    if isinstance(value, str):
        try:
            parsed = strip_timezone(isoparse(value))
        except ValueError:
            return None
        if end_of_day and len(value.strip()) <= 10:
            parsed = datetime.combine(parsed.date(), time.max)
        return parsed
    return None


def _coerce_date_operand(value: Any, end_of_day: bool = False) -> Any:
    if isinstance(value, (list, tuple, set)):
        return [coerce_datetime(v, end_of_day) for v in value]
    return coerce_datetime(value, end_of_day)


def evaluate_constraint(value: Any, constraint: Constraint) -> bool:
    """
    按运算符比较单个值

    - equals: 严格相等
    - greater_than/less_than/greater_equal/less_equal: 常规比较
    - between: 两端闭区间；未提供 secondary_value 时退化为点检查
    - in/not_in: value 需为列表；否则退化为 相等/不相等
    - 未知运算符或不可比较的值: False
    """
    operator = _raw(getattr(constraint, "operator", None))
    target = getattr(constraint, "value", None)

    try:
        if operator == ConstraintOperator.EQUALS.value:
            return value == target
        if operator == ConstraintOperator.GREATER_THAN.value:
            return value > target
        if operator == ConstraintOperator.LESS_THAN.value:
            return value < target
        if operator == ConstraintOperator.GREATER_EQUAL.value:
            return value >= target
        if operator == ConstraintOperator.LESS_EQUAL.value:
            return value <= target
        if operator == ConstraintOperator.BETWEEN.value:
            upper = getattr(constraint, "secondary_value", None)
            if upper is None:
                upper = target
            return target <= value <= upper
        if operator == ConstraintOperator.IN.value:
            if isinstance(target, (list, tuple, set, frozenset)):
                return value in target
            return value == target
        if operator == ConstraintOperator.NOT_IN.value:
            if isinstance(target, (list, tuple, set, frozenset)):
                return value not in target
            return value != target
    except TypeError as e:
        logger.debug(f"约束比较失败，视为不满足: operator={operator}, value={value!r}, target={target!r}, error={e}")
        return False

    logger.debug(f"未知约束运算符，视为不满足: {operator!r}")
    return False


def order_meets_constraint(order: Order, constraint: Constraint) -> bool:
    """按约束类型读取订单字段并评估"""
    try:
        constraint_type = ConstraintType(_raw(getattr(constraint, "type", None)))
    except ValueError:
        logger.warning(f"未知约束类型，订单排除: {getattr(constraint, 'type', None)!r}")
        return False

    try:
        value = CONSTRAINT_ACCESSORS[constraint_type](order)
    except AttributeError as e:
        logger.warning(f"订单缺少约束字段，订单排除: job={getattr(order, 'job_number', None)}, error={e}")
        return False

    if constraint_type == ConstraintType.DATE:
        if value is None:
            return False
        constraint = Constraint.model_construct(
            type=constraint_type,
            operator=getattr(constraint, "operator", None),
            field=getattr(constraint, "field", ""),
            value=_coerce_date_operand(getattr(constraint, "value", None)),
            secondary_value=_coerce_date_operand(getattr(constraint, "secondary_value", None), end_of_day=True),
        )

    return evaluate_constraint(value, constraint)


def filter_orders(orders: Iterable[Order], constraints: Optional[Sequence[Constraint]]) -> List[Order]:
    """AND 语义过滤：每条约束都需满足；空约束列表为恒等过滤，不改变顺序"""
    orders = list(orders)
    if not constraints:
        return orders
    return [o for o in orders if all(order_meets_constraint(o, c) for c in constraints)]


__all__ = [
    "calculate_order_value",
    "CONSTRAINT_ACCESSORS",
    "coerce_datetime",
    "evaluate_constraint",
    "order_meets_constraint",
    "filter_orders",
]
