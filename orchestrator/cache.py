"""
结果缓存

职责：
- CacheStore：带 TTL 的进程内键值存储，支持过期清理、容量上限（最早写入者先淘汰）与统计。
- ResultCache：路由结果缓存的键签名（规范化查询 + 新鲜度偏好 + 复杂度 + 健康快照）、
  复杂查询识别、可缓存判断与按意图类型的 TTL。
- CacheSweeper：后台定期清理过期条目的 asyncio 任务。

缓存为单进程共享可变状态，不加锁；并发的相同查询最多重复计算一次，不会读到写了一半的条目。

作者: Tom
创建时间: 2025-11-18T09:55:03+08:00 (Asia/Shanghai)
"""

import asyncio
import re
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from canonical.models import (
    DataFreshness, QueryContext, QueryIntent, RoutedQueryResult, SystemState,
)
from config.settings import get_cache_ttls, get_settings

# 数值目标类查询：永不缓存，避免不同目标金额的查询相互污染
COMPLEX_PATTERNS = [
    re.compile(r"\d+\s*(k|thousand|grand)", re.IGNORECASE),
    re.compile(r"add\s+up\s+to", re.IGNORECASE),
    re.compile(r"total.*value", re.IGNORECASE),
    re.compile(r"combination", re.IGNORECASE),
    re.compile(r"between.*and", re.IGNORECASE),
]

# 可缓存的最低置信度（严格大于）
MIN_CACHE_CONFIDENCE = 0.3


class CacheEntry:
    __slots__ = ("value", "timestamp", "ttl")

    def __init__(self, value: Any, timestamp: float, ttl: float):
        self.value = value
        self.timestamp = timestamp
        self.ttl = ttl

    def expired(self, now: float) -> bool:
        return now - self.timestamp >= self.ttl


class CacheStore:
    """
    带 TTL 的内存缓存

    Args:
        max_entries: 条目上限，超出时淘汰最早写入的条目
        clock: 时间函数（秒），便于测试注入
    """

    def __init__(self, max_entries: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.max_entries = max_entries or get_settings().cache_max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_s: float) -> None:
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = CacheEntry(value, self._clock(), ttl_s)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache: 超出容量上限，淘汰 {evicted[:50]}")

    def sweep(self) -> int:
        """清理过期条目，返回清理数量"""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "size": len(self._entries),
            "entries": [
                {
                    "key": key[:50] + "...",
                    "age_ms": int((now - e.timestamp) * 1000),
                    "ttl_ms": int(e.ttl * 1000),
                }
                for key, e in self._entries.items()
            ],
        }


def normalize_query(query: str) -> str:
    """小写、去首尾空白、压缩连续空白"""
    return re.sub(r"\s+", " ", query.lower().strip())


def is_complex_query(query: str) -> bool:
    return any(p.search(query) for p in COMPLEX_PATTERNS)


class ResultCache:
    """路由结果缓存"""

    def __init__(self, store: Optional[CacheStore] = None, ttls: Optional[Dict[str, int]] = None):
        self.store = store or CacheStore()
        self.ttls = ttls or get_cache_ttls()

    def build_key(self, query: str, context: Optional[QueryContext], system_state: Optional[SystemState]) -> str:
        normalized = normalize_query(query)
        freshness = "fresh" if context is not None and context.prefer_fresh_data else "default"
        complexity = "complex" if is_complex_query(normalized) else "simple"
        health = (
            f"{system_state.api_health.value}-{system_state.vector_health.value}"
            if system_state is not None
            else "unknown"
        )
        return f"query:{normalized}:{freshness}:{complexity}:{health}"

    def ttl_for(self, intent: QueryIntent) -> int:
        return self.ttls.get(intent.type.value, self.ttls["default"])

    def should_cache(self, query: str, result: RoutedQueryResult) -> bool:
        if is_complex_query(query):
            logger.info("Cache: 复杂查询不缓存")
            return False
        return result.confidence > MIN_CACHE_CONFIDENCE and result.results.orders is not None

    def get(self, key: str) -> Optional[RoutedQueryResult]:
        """命中时返回副本：cache_hits + 1，数据新鲜度标记为 cached"""
        cached: Optional[RoutedQueryResult] = self.store.get(key)
        if cached is None:
            return None
        hit = cached.model_copy(deep=True)
        hit.data_freshness = DataFreshness.CACHED
        hit.performance_metrics.cache_hits = cached.performance_metrics.cache_hits + 1
        return hit

    def put(self, key: str, result: RoutedQueryResult, intent: QueryIntent) -> None:
        ttl = self.ttl_for(intent)
        self.store.set(key, result.model_copy(deep=True), ttl)
        logger.debug(f"Cache: 写入 key={key[:80]} ttl={ttl}s")

    def stats(self) -> Dict[str, Any]:
        self.store.sweep()
        return self.store.stats()

    def clear(self) -> None:
        self.store.clear()


class CacheSweeper:
    """后台定期清理过期条目"""

    def __init__(self, stores: Iterable[CacheStore], interval_s: Optional[float] = None):
        self.stores: List[CacheStore] = list(stores)
        self.interval_s = interval_s or get_settings().cache_sweep_interval_s
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Cache: 后台清理任务启动，间隔 {self.interval_s}s")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            removed = sum(store.sweep() for store in self.stores)
            if removed:
                logger.debug(f"Cache: 清理过期条目 {removed} 个")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache: 后台清理任务停止")


__all__ = [
    "COMPLEX_PATTERNS",
    "MIN_CACHE_CONFIDENCE",
    "CacheStore",
    "ResultCache",
    "CacheSweeper",
    "normalize_query",
    "is_complex_query",
]
