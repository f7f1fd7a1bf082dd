"""
编排层路由器（QueryRouter）

职责：
- 单次查询的状态流转：意图分类 -> 健康快照 -> 结果缓存 -> 策略执行（含降级级联）-> 约束后处理 -> 写缓存。
- 维护查询历史、性能统计与缓存统计，供监控接口使用。
- 任何阶段的意外异常都转换为低置信度的兜底结果，不向调用方抛出。

作者：Tom
创建时间（Asia/Shanghai）：2025-11-07T23:56:50+08:00
"""

import asyncio
import time
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from loguru import logger

from agents.base import OrderStore, VectorSearchService
from canonical.mapper import OrderMapper
from canonical.models import (
    DataFreshness, HealthStatus, PerformanceMetrics, QueryContext, QueryIntent,
    QueryResults, RoutedQueryResult, Strategy, SystemState,
)
from config.settings import get_settings
from constraints.parser import parse_constraints
from constraints.service import ConstraintSatisfactionService
from orchestrator.cache import CacheStore, CacheSweeper, ResultCache
from orchestrator.classifier import IntentClassifier
from orchestrator.executor import StrategyExecutor

# 慢查询告警阈值（毫秒）
SLOW_QUERY_WARNING_MS = 5000
SLOW_QUERY_ERROR_MS = 20000


class QueryRouter:
    """查询路由器。

    用法示例：
        router = QueryRouter(order_store=OrderAPIAgent(), vector_service=VectorSearchAgent())
        result = await router.route_query("orders due next week that add up to 10k in value")
        result.results.constraint_result.constraint_met
    """

    def __init__(
        self,
        order_store: OrderStore,
        vector_service: VectorSearchService,
        classifier: Optional[IntentClassifier] = None,
        result_cache: Optional[ResultCache] = None,
        constraint_service: Optional[ConstraintSatisfactionService] = None,
        executor: Optional[StrategyExecutor] = None,
    ) -> None:
        settings = get_settings()
        self.order_store = order_store
        self.vector_service = vector_service
        self.classifier = classifier or IntentClassifier(cache=CacheStore())
        self.result_cache = result_cache or ResultCache(CacheStore())
        self.constraint_service = constraint_service or ConstraintSatisfactionService()
        self.executor = executor or StrategyExecutor(order_store, vector_service)
        self.mapper = OrderMapper()
        self.sweeper = CacheSweeper([self.result_cache.store, self.classifier.cache])

        self.query_history: Deque[Dict[str, Any]] = deque(maxlen=settings.query_history_size)
        self.performance_stats: Dict[str, Any] = {
            "total_queries": 0,
            "api_queries": 0,
            "vector_queries": 0,
            "hybrid_queries": 0,
            "cache_hits": 0,
            "successful_queries": 0,
            "average_response_time": 0.0,
            "cache_hit_rate": 0.0,
            "success_rate": 0.0,
        }
        logger.debug("Router: 初始化完成")

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def start(self) -> None:
        """启动后台缓存清理（需在事件循环中调用）"""
        self.sweeper.start()

    async def aclose(self) -> None:
        await self.sweeper.stop()
        for collaborator in (self.order_store, self.vector_service, self.classifier.llm):
            close = getattr(collaborator, "aclose", None)
            if close is not None:
                await close()

    # ------------------------------------------------------------------
    # 路由
    # ------------------------------------------------------------------

    async def get_system_state(self) -> SystemState:
        """并发探测协作方健康；探测失败为 degraded，快照本身失败则全部 offline"""
        try:
            api_health, vector_health = await asyncio.gather(
                self.order_store.health_check(),
                self.vector_service.health_check(),
                return_exceptions=True,
            )
        except Exception as e:
            logger.error(f"Router: 健康快照失败: {e}")
            return SystemState(
                api_health=HealthStatus.OFFLINE,
                vector_health=HealthStatus.OFFLINE,
                cache_health=HealthStatus.OFFLINE,
            )

        def status(result: Any) -> HealthStatus:
            if isinstance(result, dict) and result.get("healthy"):
                return HealthStatus.HEALTHY
            return HealthStatus.DEGRADED

        return SystemState(api_health=status(api_health), vector_health=status(vector_health))

    async def route_query(self, query: str, context: Optional[QueryContext] = None) -> RoutedQueryResult:
        """
        路由单次查询

        Args:
            query: 自然语言查询
            context: 路由上下文（新鲜度偏好、可选的健康快照）

        Returns:
            RoutedQueryResult，不抛出异常
        """
        start = time.perf_counter()
        self.performance_stats["total_queries"] += 1
        context = context or QueryContext()
        logger.info(f"Router: 收到查询 query='{query}'")

        try:
            intent = await self.classifier.classify(query)
            self._add_to_history(query, intent)

            system_state = context.system_state or await self.get_system_state()
            cache_key = self.result_cache.build_key(query, context, system_state)

            cached = self.result_cache.get(cache_key)
            if cached is not None:
                cached.processing_time = self._elapsed_ms(start)
                self.performance_stats["cache_hits"] += 1
                self.performance_stats["successful_queries"] += 1
                self._update_performance_stats(cached.processing_time)
                logger.info(f"Router: 缓存命中 query='{query}' cache_hits={cached.performance_metrics.cache_hits}")
                return cached

            routed_context = context.model_copy(update={"system_state": system_state})
            result = await self.executor.execute(query, intent, routed_context)
            self._count_strategy(intent.strategy)

            self._apply_constraints(query, result)
            result.recommendations = self._generate_recommendations(result, intent)
            result.processing_time = self._elapsed_ms(start)

            if self.result_cache.should_cache(query, result):
                self.result_cache.put(cache_key, result, intent)

            self.performance_stats["successful_queries"] += 1
            self._update_performance_stats(result.processing_time)
            self._log_timing(query, result)
            return result
        except Exception as e:
            logger.exception(f"Router: 查询路由失败 query='{query}': {e}")
            processing_time = self._elapsed_ms(start)
            self._update_performance_stats(processing_time)
            return self._error_fallback(str(e), processing_time)

    def _apply_constraints(self, query: str, result: RoutedQueryResult) -> None:
        """查询含日期/金额目标/状态约束时，对路由得到的订单做约束求解"""
        parsed = parse_constraints(query)
        if not parsed.has_goal():
            return

        orders = result.results.orders
        if orders is None:
            orders = []
            for hit in result.results.vector_results or []:
                try:
                    orders.append(self.mapper.from_vector_metadata(hit.metadata))
                except ValueError as e:
                    logger.warning(f"Router: 向量命中无法还原为订单: {e}")

        logger.info(
            f"Router: 约束后处理 constraints={len(parsed.constraints)} target={parsed.target_value} orders={len(orders)}"
        )
        solved = self.constraint_service.process_constraint_query(
            orders, parsed.constraints, parsed.target_value
        )
        result.results.constraint_result = solved
        result.results.orders = solved.orders
        result.results.summary = solved.summary

    def _error_fallback(self, message: str, processing_time: float) -> RoutedQueryResult:
        return RoutedQueryResult(
            strategy=Strategy.VECTOR,
            processing_time=processing_time,
            data_freshness=DataFreshness.STALE,
            confidence=0.1,
            sources=["fallback"],
            results=QueryResults(orders=[], summary=f"Query failed: {message}"),
            performance_metrics=PerformanceMetrics(cache_misses=1),
            fallbacks_used=["error-fallback"],
            recommendations=["Please try a simpler query or check system health"],
        )

    # ------------------------------------------------------------------
    # 统计与历史
    # ------------------------------------------------------------------

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * 1000, 2)

    def _count_strategy(self, strategy: Strategy) -> None:
        self.performance_stats[f"{strategy.value}_queries"] += 1

    def _update_performance_stats(self, processing_time: float) -> None:
        stats = self.performance_stats
        total = stats["total_queries"]
        stats["average_response_time"] = (stats["average_response_time"] * (total - 1) + processing_time) / total
        stats["cache_hit_rate"] = stats["cache_hits"] / total
        stats["success_rate"] = stats["successful_queries"] / total

    def _log_timing(self, query: str, result: RoutedQueryResult) -> None:
        elapsed = result.processing_time
        metrics = result.performance_metrics
        summary = (
            f"apiCalls={metrics.api_calls} vectorQueries={metrics.vector_queries} "
            f"cacheHits={metrics.cache_hits} cacheMisses={metrics.cache_misses}"
        )
        if elapsed > SLOW_QUERY_ERROR_MS:
            logger.error(f"Router: 慢查询 {elapsed}ms (>20s) query='{query}' {summary}")
        elif elapsed > SLOW_QUERY_WARNING_MS:
            logger.warning(f"Router: 慢查询 {elapsed}ms (>5s) query='{query}' {summary}")
        else:
            logger.info(f"Router: 查询完成 strategy={result.strategy.value} 用时 {elapsed}ms query='{query}' {summary}")

    def _add_to_history(self, query: str, intent: QueryIntent) -> None:
        self.query_history.append(
            {
                "query": query,
                "intent": intent.model_dump(mode="json", by_alias=True),
                "timestamp": datetime.now().isoformat(),
            }
        )

    def _generate_recommendations(self, result: RoutedQueryResult, intent: QueryIntent) -> List[str]:
        recommendations: List[str] = []
        if result.confidence < 0.5:
            recommendations.append("Try rephrasing your query with more specific terms")
        if result.strategy == Strategy.VECTOR and intent.extracted_entities.job_numbers:
            recommendations.append("For specific job numbers, try searching by exact job number for fresh data")
        if result.results.orders is not None and len(result.results.orders) == 0:
            recommendations.append("Try broadening your search terms or check for typos")
        if result.fallbacks_used:
            recommendations.append("Some services were unavailable, results may be incomplete")
        return recommendations

    # ------------------------------------------------------------------
    # 监控接口
    # ------------------------------------------------------------------

    def get_performance_stats(self) -> Dict[str, Any]:
        return dict(self.performance_stats)

    def get_query_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        if limit <= 0:
            return []
        return list(self.query_history)[-limit:]

    def get_cache_stats(self) -> Dict[str, Any]:
        self.classifier.cache.sweep()
        return {
            "main_cache": self.result_cache.stats(),
            "intent_cache": self.classifier.cache.stats(),
        }

    def clear_cache(self) -> None:
        self.result_cache.clear()
        self.classifier.cache.clear()
        logger.info("Router: 缓存已清空")


__all__ = ["QueryRouter", "SLOW_QUERY_WARNING_MS", "SLOW_QUERY_ERROR_MS"]
