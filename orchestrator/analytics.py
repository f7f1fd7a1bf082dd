"""
订单汇总分析
用于 hybrid 策略下 search 意图的结果概览

作者: Tom
创建时间: 2025-11-19T10:12:40+08:00 (Asia/Shanghai)
"""

from collections import Counter
from typing import List

from canonical.models import Order, OrderAnalytics
from constraints.evaluator import calculate_order_value


def _is_completed(order: Order) -> bool:
    status = order.status.master.lower()
    return "complete" in status or "shipped" in status


def generate_analytics(orders: List[Order]) -> OrderAnalytics:
    """状态/客户/工序分布、加急与逾期数量、已完成订单的平均周期（天）、金额合计"""
    status_counts = Counter(o.status.master for o in orders)
    customer_counts = Counter(o.customer.company for o in orders)
    process_counts = Counter(p for o in orders for p in o.production.processes)

    spans = [
        abs((o.dates.date_due - o.dates.date_entered).total_seconds()) / 86400
        for o in orders
        if _is_completed(o) and o.dates.date_due is not None and o.dates.date_entered is not None
    ]

    return OrderAnalytics(
        total_orders=len(orders),
        total_value=sum(calculate_order_value(o) for o in orders),
        status_breakdown=dict(status_counts),
        customer_breakdown=dict(customer_counts),
        process_breakdown=dict(process_counts),
        average_days_to_completion=sum(spans) / len(spans) if spans else 0.0,
        urgent_orders=sum(1 for o in orders if o.production.time_sensitive),
        late_orders=sum(
            1 for o in orders
            if o.dates.days_to_due_date is not None and o.dates.days_to_due_date < 0
        ),
    )


__all__ = ["generate_analytics"]
