"""
结果缓存测试

作者: Tom
创建时间: 2025-11-18T11:47:20+08:00 (Asia/Shanghai)

说明：
- 通过注入时钟控制 TTL，不依赖真实时间
"""

import asyncio

import pytest

from canonical.models import (
    DataFreshness, HealthStatus, IntentType, QueryContext, QueryIntent,
    QueryResults, RoutedQueryResult, Strategy, SystemState,
)
from orchestrator.cache import CacheStore, CacheSweeper, ResultCache, is_complex_query, normalize_query
from tests.conftest import make_order


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _result(confidence: float = 0.9, orders=()) -> RoutedQueryResult:
    return RoutedQueryResult(
        strategy=Strategy.API,
        confidence=confidence,
        sources=["api"],
        results=QueryResults(orders=list(orders)),
    )


def _intent(intent_type: IntentType = IntentType.SPECIFIC) -> QueryIntent:
    return QueryIntent(type=intent_type, strategy=Strategy.API, confidence=0.9)


def test_store_ttl_expiry():
    """条目在 TTL 到达时过期"""
    clock = FakeClock()
    store = CacheStore(max_entries=10, clock=clock)
    store.set("a", 1, ttl_s=60)

    clock.now += 59
    assert store.get("a") == 1
    clock.now += 1
    assert store.get("a") is None
    assert len(store) == 0


def test_store_eviction_oldest_first():
    """超出容量时淘汰最早写入的条目"""
    store = CacheStore(max_entries=2, clock=FakeClock())
    store.set("a", 1, 60)
    store.set("b", 2, 60)
    store.set("c", 3, 60)

    assert "a" not in store
    assert "b" in store and "c" in store


def test_store_sweep_and_stats():
    """清理过期条目；统计信息截断键名"""
    clock = FakeClock()
    store = CacheStore(max_entries=10, clock=clock)
    store.set("short-lived", 1, 10)
    store.set("x" * 80, 2, 100)

    clock.now += 20
    assert store.sweep() == 1

    stats = store.stats()
    assert stats["size"] == 1
    entry = stats["entries"][0]
    assert entry["key"] == "x" * 50 + "..."
    assert entry["age_ms"] == 20000
    assert entry["ttl_ms"] == 100000


def test_complex_query_detection():
    """数值目标类查询识别"""
    assert is_complex_query("orders that add up to 10k")
    assert is_complex_query("jobs worth 5 grand")
    assert is_complex_query("total order value this month")
    assert is_complex_query("best combination of jobs")
    assert not is_complex_query("show me order 50194")
    assert normalize_query("  Show   ME order ") == "show me order"


def test_cache_key_format():
    """键签名包含规范化查询、新鲜度偏好、复杂度与健康快照"""
    cache = ResultCache(CacheStore(clock=FakeClock()))
    state = SystemState(vector_health=HealthStatus.DEGRADED)

    assert cache.build_key(" Show Me order 50194 ", QueryContext(), state) == (
        "query:show me order 50194:default:simple:healthy-degraded"
    )
    assert cache.build_key("add up to 10k", QueryContext(prefer_fresh_data=True), None) == (
        "query:add up to 10k:fresh:complex:unknown"
    )


def test_should_cache():
    """复杂查询、低置信度与无订单结果不缓存"""
    cache = ResultCache(CacheStore(clock=FakeClock()))
    assert cache.should_cache("show me order 1", _result(0.9))
    assert not cache.should_cache("show me order 1", _result(0.3))
    assert not cache.should_cache("orders that add up to 10k", _result(0.9))

    no_orders = _result(0.9)
    no_orders.results.orders = None
    assert not cache.should_cache("show me order 1", no_orders)


def test_get_returns_marked_copy():
    """命中返回副本，命中次数加一，不影响已存储的条目"""
    clock = FakeClock()
    cache = ResultCache(CacheStore(clock=clock), ttls={"specific": 120, "default": 300})
    stored = _result(orders=[make_order("50194", total=10.0)])
    cache.put("k", stored, _intent())

    stored.results.orders.clear()
    hit = cache.get("k")
    again = cache.get("k")

    assert hit.data_freshness == DataFreshness.CACHED
    assert hit.performance_metrics.cache_hits == 1
    assert again.performance_metrics.cache_hits == 1
    assert [o.job_number for o in hit.results.orders] == ["50194"]

    hit.results.orders.clear()
    assert len(cache.get("k").results.orders) == 1

    clock.now += 120
    assert cache.get("k") is None


def test_ttl_by_intent_type():
    """按意图类型选择 TTL"""
    cache = ResultCache(CacheStore(), ttls={"specific": 120, "filter": 300, "search": 600, "default": 300})
    assert cache.ttl_for(_intent(IntentType.SPECIFIC)) == 120
    assert cache.ttl_for(_intent(IntentType.SEARCH)) == 600

    partial = ResultCache(CacheStore(), ttls={"default": 42})
    assert partial.ttl_for(_intent(IntentType.FILTER)) == 42


@pytest.mark.asyncio
async def test_sweeper_start_and_stop():
    """后台清理任务定期清理过期条目"""
    clock = FakeClock()
    store = CacheStore(clock=clock)
    store.set("a", 1, 1)
    clock.now += 5

    sweeper = CacheSweeper([store], interval_s=0.01)
    sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0.05)
    await sweeper.stop()

    assert not sweeper.running
    assert len(store) == 0
