"""
测试公共夹具

作者: Tom
创建时间: 2025-11-20T09:12:35+08:00 (Asia/Shanghai)

说明：
- 内存版订单后端与向量检索服务，记录调用并可模拟失败
- 默认屏蔽真实 LLM 调用，测试通过 monkeypatch LLMProxy._call_llm 控制解析路径
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import pytest

from agents.base import DataSourceError, OrderStore, VectorSearchService
from canonical.models import (
    CustomerRef, LineItem, Order, OrderDates, OrderStatus, OrderTag,
    Pricing, ProductionInfo, ScoredResult,
)
from data.order_data_generator import OrderDataGenerator
from orchestrator.llm_proxy import LLMProxy


def make_order(
    job_number: str,
    total: Optional[float] = None,
    due: Optional[datetime] = None,
    status: str = "Approved",
    company: str = "Acme Apparel",
    tags: Iterable[str] = (),
    description: str = "",
    comments: str = "",
    days_to_due: Optional[int] = None,
    line_items: Optional[List[LineItem]] = None,
    processes: Iterable[str] = (),
    time_sensitive: bool = False,
    entered: Optional[datetime] = None,
    job_quantity: Optional[float] = None,
) -> Order:
    return Order(
        job_number=job_number,
        customer=CustomerRef(company=company),
        description=description,
        comments=comments,
        job_quantity=job_quantity,
        status=OrderStatus(master=status),
        dates=OrderDates(date_entered=entered, date_due=due, days_to_due_date=days_to_due),
        production=ProductionInfo(processes=list(processes), time_sensitive=time_sensitive),
        line_items=line_items or [],
        tags=[OrderTag(tag=t) for t in tags],
        pricing=Pricing(total=total) if total is not None else None,
    )


def hit_for(order: Order, score: float = 0.9) -> ScoredResult:
    return ScoredResult(score=score, metadata=OrderDataGenerator.to_vector_metadata(order))


def next_week_monday(today: Optional[date] = None) -> datetime:
    today = today or date.today()
    monday = today - timedelta(days=today.weekday()) + timedelta(days=7)
    return datetime(monday.year, monday.month, monday.day)


class FakeOrderStore(OrderStore):
    """内存订单后端"""

    def __init__(self, orders: Iterable[Order] = (), fail: bool = False, healthy: bool = True):
        super().__init__(system_name="测试订单后端")
        self.orders: Dict[str, Order] = {o.job_number: o for o in orders}
        self.fail = fail
        self.healthy = healthy
        self.calls: List[tuple] = []

    async def ping(self) -> None:
        if not self.healthy:
            raise DataSourceError("订单后端不可用")

    async def get_order_by_job_number(self, job_number: str) -> Optional[Order]:
        self.calls.append(("get", job_number))
        if self.fail:
            raise DataSourceError("订单后端请求失败")
        return self.orders.get(job_number)

    async def get_all_orders(self, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append(("all", options))
        if self.fail:
            raise DataSourceError("订单后端请求失败")
        orders = list(self.orders.values())
        return {"orders": orders, "summary": {"totalOrders": len(orders)}}

    async def search_orders_by_query(self, text: str, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        data = await self.get_all_orders(filters)
        return [o for o in data["orders"] if text.lower() in o.description.lower()]


class FakeVectorSearch(VectorSearchService):
    """内存向量检索；responses 按调用顺序依次返回，用尽后返回 results"""

    def __init__(
        self,
        results: Optional[List[ScoredResult]] = None,
        responses: Optional[List[List[ScoredResult]]] = None,
        fail: bool = False,
        healthy: bool = True,
    ):
        super().__init__(system_name="测试向量检索")
        self.results = list(results or [])
        self.responses = list(responses or [])
        self.fail = fail
        self.healthy = healthy
        self.calls: List[Dict[str, Any]] = []

    async def ping(self) -> None:
        if not self.healthy:
            raise DataSourceError("向量检索不可用")

    async def search_similar_orders(
        self,
        query: str,
        top_k: int = 10,
        filters: Optional[Dict[str, Any]] = None,
        include_highlights: bool = False,
    ) -> List[ScoredResult]:
        self.calls.append({"query": query, "top_k": top_k, "filters": dict(filters or {})})
        if self.fail:
            raise DataSourceError("向量检索请求失败")
        if self.responses:
            return self.responses.pop(0)
        return list(self.results)


@pytest.fixture(autouse=True)
def _no_real_llm(monkeypatch):
    """默认 LLM 不可用，分类走规则降级"""

    async def _degraded(self, prompt: str):
        return None, None

    monkeypatch.setattr(LLMProxy, "_call_llm", _degraded, raising=True)


@pytest.fixture
def five_orders() -> List[Order]:
    """五个订单：四个下周到期，一个三周后到期"""
    monday = next_week_monday()
    return [
        make_order("50001", total=4000.0, due=monday + timedelta(days=1, hours=12), company="Acme Apparel"),
        make_order("50002", total=5800.0, due=monday + timedelta(days=2, hours=12), company="Blue Ridge Outfitters"),
        make_order("50003", total=3000.0, due=monday + timedelta(days=3, hours=12), company="Coastal Promotions"),
        make_order("50004", total=12000.0, due=monday + timedelta(days=4, hours=12), company="Delta Athletics"),
        make_order("50005", total=4500.0, due=monday + timedelta(days=15, hours=12), company="Evergreen Schools"),
    ]
