"""
声明式过滤

职责：
- 将查询意图中抽取的实体转换为过滤条件 (FilterCriteria)。
- 在已拉取的订单集合上一次性应用过滤，不重复拉取数据。
- 状态、标签、关键词、客户按大小写不敏感的部分匹配；排除标签优先于包含标签。

作者: Tom
创建时间: 2025-11-17T11:08:52+08:00 (Asia/Shanghai)
"""

import re
from datetime import datetime, time
from typing import List, Optional

from dateutil.parser import isoparse
from loguru import logger
from pydantic import BaseModel

from canonical.models import Order, QueryIntent, strip_timezone

# 状态术语 -> 订单状态中可能出现的写法
STATUS_MAPPINGS = {
    "overdue": ["overdue", "late", "past due"],
    "urgent": ["urgent", "priority", "high priority"],
    "approved": ["approved", "approval"],
    "completed": ["completed", "done", "finished"],
    "on time": ["on time", "ontime"],
    "unapproved": ["unapproved", "pending"],
}

OVERDUE_TERMS = {"overdue", "late", "past due"}


class DueDateRange(BaseModel):
    """到期日闭区间"""
    start: datetime
    end: datetime


class FilterCriteria(BaseModel):
    """过滤条件，None 表示不过滤该维度"""
    include_statuses: Optional[List[str]] = None
    exclude_statuses: Optional[List[str]] = None
    include_tags: Optional[List[str]] = None
    exclude_tags: Optional[List[str]] = None
    include_keywords: Optional[List[str]] = None
    date_range: Optional[DueDateRange] = None
    customers: Optional[List[str]] = None

    def is_empty(self) -> bool:
        return not any(
            [
                self.include_statuses,
                self.exclude_statuses,
                self.include_tags,
                self.exclude_tags,
                self.include_keywords,
                self.date_range,
                self.customers,
            ]
        )

    def describe(self) -> str:
        parts = []
        if self.include_statuses:
            parts.append(f"statuses: {', '.join(self.include_statuses)}")
        if self.include_tags:
            parts.append(f"tags: {', '.join(self.include_tags)}")
        if self.exclude_tags:
            parts.append(f"excluding tags: {', '.join(self.exclude_tags)}")
        if self.customers:
            parts.append(f"customers: {', '.join(self.customers)}")
        if self.date_range:
            parts.append(f"date range: {self.date_range.start.date()} to {self.date_range.end.date()}")
        if self.include_keywords:
            parts.append(f"keywords: {', '.join(self.include_keywords)}")
        return ", ".join(parts) or "no filters"


def _parse_bound(value: str, end_of_day: bool) -> Optional[datetime]:
    """解析区间端点；仅含日期的结束端点取当天 23:59:59.999999"""
    try:
        parsed = isoparse(value)
    except ValueError:
        logger.warning(f"无法解析日期区间端点: {value}")
        return None
    parsed = strip_timezone(parsed)
    if end_of_day and len(value.strip()) <= 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return parsed


def criteria_from_intent(intent: QueryIntent) -> FilterCriteria:
    """由意图实体构造过滤条件"""
    entities = intent.extracted_entities
    criteria = FilterCriteria()

    if entities.statuses:
        mapped: List[str] = []
        for status in entities.statuses:
            mapped.extend(STATUS_MAPPINGS.get(status.lower(), [status]))
        criteria.include_statuses = mapped
    if entities.tags:
        criteria.include_tags = list(entities.tags)
    if entities.exclude_tags:
        criteria.exclude_tags = list(entities.exclude_tags)
    if entities.customers:
        criteria.customers = list(entities.customers)
    if entities.keywords:
        criteria.include_keywords = list(entities.keywords)
    if entities.date_ranges:
        first = entities.date_ranges[0]
        start = _parse_bound(first.start, end_of_day=False)
        end = _parse_bound(first.end, end_of_day=True)
        if start is not None and end is not None:
            criteria.date_range = DueDateRange(start=start, end=end)

    return criteria


def is_overdue(order: Order, now: Optional[datetime] = None) -> bool:
    """逾期：优先使用 days_to_due_date < 0，否则比较到期日与当前时间"""
    if order.dates.days_to_due_date is not None:
        return order.dates.days_to_due_date < 0
    if order.dates.date_due is not None:
        return order.dates.date_due < (now or datetime.now())
    return False


def tag_variations(tag: str) -> List[str]:
    tag_lower = tag.lower().strip()
    return [
        tag_lower,
        tag_lower[1:] if tag_lower.startswith("@") else f"@{tag_lower}",
        re.sub(r"[^a-z0-9]", "", tag_lower),
        re.sub(r"\s+", "-", tag_lower),
        re.sub(r"\s+", "", tag_lower),
    ]


def order_has_tag(order: Order, tag: str) -> bool:
    """
    标签匹配（大小写不敏感）

    依次尝试：完全匹配、变体匹配（@前缀、去符号、连字符）、多词标签末词部分匹配、
    urgent 与 priority 互通、双向子串包含
    """
    if not order.tags:
        return False

    tag_lower = tag.lower().strip()
    if not tag_lower:
        return False
    variations = tag_variations(tag)
    last_word = tag_lower.split()[-1] if " " in tag_lower else None

    for name in order.tag_names():
        order_tag = name.lower().strip()
        if not order_tag:
            continue
        if order_tag in variations:
            return True
        if last_word and last_word in order_tag:
            return True
        if tag_lower == "urgent" and ("urgent" in order_tag or "priority" in order_tag):
            return True
        if tag_lower in order_tag or order_tag in tag_lower:
            return True
    return False


def order_contains_keyword(order: Order, keyword: str) -> bool:
    """在描述、备注、客户、标签与行项目描述中查找关键词"""
    kw = keyword.lower()
    fields = [order.description, order.comments, order.customer.company]
    fields.extend(order.tag_names())
    fields.extend(item.description for item in order.line_items)
    return any(kw in (f or "").lower() for f in fields)


def apply_filters(orders: List[Order], criteria: FilterCriteria) -> List[Order]:
    """按过滤条件过滤订单，保持输入顺序"""
    result = list(orders)
    before = len(result)

    if criteria.include_statuses:
        wants_overdue = any(s.lower() in OVERDUE_TERMS for s in criteria.include_statuses)
        if wants_overdue:
            now = datetime.now()
            result = [o for o in result if is_overdue(o, now)]
        else:
            statuses = [s.lower() for s in criteria.include_statuses]
            result = [o for o in result if any(s in o.status.master.lower() for s in statuses)]

    if criteria.exclude_statuses:
        statuses = [s.lower() for s in criteria.exclude_statuses]
        result = [o for o in result if not any(s in o.status.master.lower() for s in statuses)]

    if criteria.include_tags:
        result = [o for o in result if any(order_has_tag(o, t) for t in criteria.include_tags)]

    if criteria.exclude_tags:
        result = [o for o in result if not any(order_has_tag(o, t) for t in criteria.exclude_tags)]

    if criteria.include_keywords:
        result = [o for o in result if any(order_contains_keyword(o, k) for k in criteria.include_keywords)]

    if criteria.date_range:
        start, end = criteria.date_range.start, criteria.date_range.end
        result = [o for o in result if o.dates.date_due is not None and start <= o.dates.date_due <= end]

    if criteria.customers:
        customers = [c.lower() for c in criteria.customers]
        result = [o for o in result if any(c in o.customer.company.lower() for c in customers)]

    logger.debug(f"Filters: {criteria.describe()} -> {len(result)}/{before}")
    return result


def apply_limit(orders: List[Order], limit: Optional[int]) -> List[Order]:
    """截断到 limit，保持顺序；limit 缺失或非正数时不截断"""
    if limit and limit > 0:
        return orders[:limit]
    return orders


__all__ = [
    "STATUS_MAPPINGS",
    "DueDateRange",
    "FilterCriteria",
    "criteria_from_intent",
    "is_overdue",
    "tag_variations",
    "order_has_tag",
    "order_contains_keyword",
    "apply_filters",
    "apply_limit",
]
