"""
声明式过滤测试

作者: Tom
创建时间: 2025-11-17T14:36:09+08:00 (Asia/Shanghai)
"""

from datetime import datetime, timedelta

from canonical.models import DateRange, ExtractedEntities, IntentType, LineItem, QueryIntent, Strategy
from orchestrator.filters import (
    FilterCriteria, apply_filters, apply_limit, criteria_from_intent,
    is_overdue, order_contains_keyword, order_has_tag,
)
from tests.conftest import make_order


def _intent(**entities) -> QueryIntent:
    return QueryIntent(
        type=IntentType.FILTER,
        strategy=Strategy.API,
        confidence=0.8,
        extracted_entities=ExtractedEntities(**entities),
    )


def test_criteria_from_intent():
    """状态映射、日期区间（仅日期的结束端点包含当天）"""
    criteria = criteria_from_intent(
        _intent(
            statuses=["Approved"],
            tags=["@laser"],
            customers=["Acme"],
            date_ranges=[DateRange(start="2025-11-17", end="2025-11-23", description="next week")],
        )
    )
    assert criteria.include_statuses == ["approved", "approval"]
    assert criteria.include_tags == ["@laser"]
    assert criteria.date_range.start == datetime(2025, 11, 17)
    assert criteria.date_range.end == datetime(2025, 11, 23, 23, 59, 59, 999999)
    assert not criteria.is_empty()
    assert "customers: Acme" in criteria.describe()
    assert criteria_from_intent(_intent()).is_empty()


def test_tag_variations_match():
    """@前缀、大小写、去符号与多词标签"""
    laser = make_order("1", tags=["@Laser"])
    ps_done = make_order("2", tags=["ps-done"])
    priority = make_order("3", tags=["High Priority"])

    assert order_has_tag(laser, "laser")
    assert order_has_tag(laser, "@LASER")
    assert order_has_tag(ps_done, "ps done")
    assert order_has_tag(priority, "urgent")
    assert not order_has_tag(make_order("4"), "laser")
    assert not order_has_tag(laser, "gamma")


def test_exclude_tags_win_over_include():
    """同时命中包含与排除标签时排除"""
    orders = [
        make_order("1", tags=["@laser"]),
        make_order("2", tags=["@laser", "gamma"]),
        make_order("3", tags=["production"]),
    ]
    criteria = FilterCriteria(include_tags=["laser"], exclude_tags=["gamma"])
    assert [o.job_number for o in apply_filters(orders, criteria)] == ["1"]


def test_overdue_status_filter():
    """overdue 按到期情况判断而不是状态文本"""
    now = datetime.now()
    late = make_order("1", days_to_due=-3, status="In Production")
    on_time = make_order("2", days_to_due=4, status="Overdue review")
    past_due = make_order("3", due=now - timedelta(days=1))
    undated = make_order("4")

    assert is_overdue(late)
    assert not is_overdue(on_time)
    assert is_overdue(past_due, now)
    assert not is_overdue(undated)

    criteria = criteria_from_intent(_intent(statuses=["overdue"]))
    result = apply_filters([late, on_time, past_due, undated], criteria)
    assert [o.job_number for o in result] == ["1", "3"]


def test_status_keyword_customer_and_date_filters():
    """状态部分匹配、关键词、客户与到期日区间"""
    due = datetime(2025, 11, 18, 10, 0)
    orders = [
        make_order("1", status="Approved", company="Acme Apparel", description="Embroidered polo", due=due),
        make_order("2", status="Unapproved", company="Acme Apparel", description="Screen printed tee", due=due),
        make_order("3", status="Approved", company="Delta Athletics", description="Embroidered cap", due=due),
        make_order("4", status="Approved", company="Acme Apparel", comments="embroidered sample"),
    ]
    criteria = FilterCriteria(
        include_statuses=["approved"],
        exclude_statuses=["unapproved"],
        include_keywords=["embroidered"],
        customers=["acme"],
    )
    assert [o.job_number for o in apply_filters(orders, criteria)] == ["1", "4"]

    dated = criteria.model_copy(
        update={"date_range": criteria_from_intent(
            _intent(date_ranges=[DateRange(start="2025-11-17", end="2025-11-18")])
        ).date_range}
    )
    assert [o.job_number for o in apply_filters(orders, dated)] == ["1"]


def test_keyword_searches_line_items_and_tags():
    """关键词同时搜索标签与行项目描述"""
    order = make_order("1", tags=["rush"], line_items=[LineItem(description="Laser engraved tumbler")])
    assert order_contains_keyword(order, "TUMBLER")
    assert order_contains_keyword(order, "rush")
    assert not order_contains_keyword(order, "hoodie")


def test_apply_limit():
    """limit 缺失或非正数不截断"""
    orders = [make_order(str(i)) for i in range(5)]
    assert len(apply_limit(orders, 2)) == 2
    assert apply_limit(orders, None) == orders
    assert apply_limit(orders, 0) == orders
