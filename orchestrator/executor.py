"""
编排层执行器（StrategyExecutor）

职责：
- API 策略：按作业号逐个拉取，或一次拉取全量订单后应用声明式过滤与数量上限。
- Vector 策略：动态 topK 的相似度检索；零结果时依次放宽过滤、去掉过滤重试；按得分映射置信度。
- Hybrid 策略：API 与 Vector 并发执行、互不影响；按作业号合并（API 为准），补全前若干向量命中。
- 错误降级：API 失败降级为 Vector；Vector 失败在 API 可用时降级为 Hybrid；全部失败抛出 StrategyExhaustedError，
  由路由器生成兜底结果。

作者: Tom
创建时间: 2025-11-08T15:08:21+08:00 (Asia/Shanghai)
"""

import asyncio
import re
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from agents.base import OrderStore, VectorSearchService
from canonical.mapper import OrderMapper
from canonical.models import (
    DataFreshness, HealthStatus, IntentType, Order, PerformanceMetrics, QueryContext,
    QueryIntent, QueryResults, RoutedQueryResult, ScoredResult, Strategy,
)
from config.settings import get_settings
from orchestrator.analytics import generate_analytics
from orchestrator.filters import apply_filters, apply_limit, criteria_from_intent
from orchestrator.outcome import FetchOutcome, OutcomeStatus, fetch

# 放宽检索时移除的过滤项
RESTRICTIVE_FILTER_KEYS = [
    "customerCompany",
    "status",
    "processes",
    "materials",
    "timeSensitive",
    "mustDate",
    "isReprint",
]

BASE_TOP_K = {
    IntentType.SPECIFIC: 10,
    IntentType.SEARCH: 15,
    IntentType.FILTER: 20,
}

# (关键词, 下限)，按顺序匹配，先匹配先返回
TOP_K_RULES: List[Tuple[Tuple[str, ...], int]] = [
    (("all", "every", "complete"), 50),
    (("recent", "latest", "new"), 20),
    (("top", "best", "priority"), 15),
    (("urgent", "overdue", "late"), 25),
    (("this week", "next week", "month"), 30),
    (("customer", "client"), 25),
    (("process", "material"), 20),
    (("status", "progress"), 25),
]


class StrategyExhaustedError(Exception):
    """所有可用策略均失败"""
    pass


def calculate_dynamic_top_k(query: str, intent: QueryIntent) -> int:
    """根据意图类型与查询关键词计算 topK"""
    text = query.lower()
    base = BASE_TOP_K.get(intent.type, 10)

    for words, floor in TOP_K_RULES:
        if any(w in text for w in words):
            return max(base, floor)

    match = re.search(r"\d+", text)
    if match:
        requested = int(match.group(0))
        if 0 < requested <= 100:
            return max(base, requested + 5)
    return base


def build_vector_filters(intent: QueryIntent) -> Dict[str, Any]:
    entities = intent.extracted_entities
    filters: Dict[str, Any] = {}
    if entities.customers:
        filters["customerCompany"] = entities.customers[0]
    if entities.statuses:
        filters["status"] = entities.statuses[0]
    if entities.keywords:
        filters["keywords"] = list(entities.keywords)
    return filters


def broaden_filters(filters: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in filters.items() if k not in RESTRICTIVE_FILTER_KEYS}


def vector_confidence(hits: List[ScoredResult]) -> float:
    """取前 5 个命中的平均得分映射为置信度；无命中为 0.1"""
    if not hits:
        return 0.1
    top = hits[:5]
    avg = sum(h.score for h in top) / len(top)
    if avg >= 0.8:
        return 0.95
    if avg >= 0.6:
        return 0.85
    if avg >= 0.4:
        return 0.65
    if avg >= 0.2:
        return 0.45
    return 0.25


class StrategyExecutor:
    """负责三种检索策略的执行、降级与结果合并。"""

    def __init__(
        self,
        order_store: OrderStore,
        vector_service: VectorSearchService,
        max_enrichment: Optional[int] = None,
    ) -> None:
        self.settings = get_settings()
        self.order_store = order_store
        self.vector_service = vector_service
        self.max_enrichment = self.settings.hybrid_max_enrichment if max_enrichment is None else max_enrichment
        self.mapper = OrderMapper()
        logger.debug("Executor: 初始化完成")

    async def execute(self, query: str, intent: QueryIntent, context: QueryContext) -> RoutedQueryResult:
        if intent.strategy == Strategy.API:
            return await self.execute_api(query, intent, context)
        if intent.strategy == Strategy.HYBRID:
            return await self.execute_hybrid(query, intent, context)
        return await self.execute_vector(query, intent, context)

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    async def _api_orders(
        self, intent: QueryIntent, metrics: PerformanceMetrics, refine: bool = True
    ) -> FetchOutcome[List[Order]]:
        """拉取订单；refine 为 True 时应用声明式过滤与数量上限"""
        entities = intent.extracted_entities
        orders: List[Order] = []

        if entities.job_numbers:
            for job_number in entities.job_numbers:
                metrics.api_calls += 1
                outcome = await fetch(f"订单后端 作业 {job_number}", self.order_store.get_order_by_job_number(job_number))
                if outcome.failed:
                    return outcome
                if outcome.ok:
                    orders.append(outcome.value)
        else:
            metrics.api_calls += 1
            outcome = await fetch(
                "订单后端 全量订单",
                self.order_store.get_all_orders(
                    {"pageSize": self.settings.order_api_page_size, "includeLineItems": True}
                ),
            )
            if outcome.failed:
                return outcome
            orders = list((outcome.value or {}).get("orders") or [])

            if refine:
                criteria = criteria_from_intent(intent)
                if not criteria.is_empty():
                    logger.info(f"Executor: 应用过滤 {criteria.describe()}")
                    orders = apply_filters(orders, criteria)

        if refine:
            orders = apply_limit(orders, entities.limit)
        return FetchOutcome(OutcomeStatus.OK if orders else OutcomeStatus.EMPTY, value=orders)

    async def execute_api(self, query: str, intent: QueryIntent, context: QueryContext) -> RoutedQueryResult:
        logger.info(f"Executor: API 策略 query='{query}'")
        metrics = PerformanceMetrics(cache_misses=1)
        outcome = await self._api_orders(intent, metrics)

        if outcome.failed:
            logger.warning(f"Executor: API 策略失败，降级为 Vector: {outcome.error}")
            result = await self.execute_vector(query, intent, context, allow_hybrid=False)
            result.fallbacks_used = ["api-to-vector"] + (result.fallbacks_used or [])
            result.performance_metrics.api_calls += metrics.api_calls
            return result

        orders = outcome.value or []
        return RoutedQueryResult(
            strategy=Strategy.API,
            data_freshness=DataFreshness.FRESH,
            confidence=intent.confidence,
            sources=["api"],
            results=QueryResults(orders=orders, summary=f"Found {len(orders)} orders using API data"),
            performance_metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Vector
    # ------------------------------------------------------------------

    async def _vector_search(
        self, query: str, intent: QueryIntent, metrics: PerformanceMetrics
    ) -> Tuple[FetchOutcome[List[ScoredResult]], List[str]]:
        """检索并在零结果时按 放宽过滤 -> 去掉过滤 的顺序重试"""
        filters = build_vector_filters(intent)
        top_k = calculate_dynamic_top_k(query, intent)
        fallbacks: List[str] = []

        metrics.vector_queries += 1
        outcome = await fetch(
            "向量检索",
            self.vector_service.search_similar_orders(query, top_k=top_k, filters=filters),
        )
        if outcome.status != OutcomeStatus.EMPTY or not filters:
            return outcome, fallbacks

        logger.info("Executor: 严格过滤无结果，放宽过滤重试")
        fallbacks.append("broader-filters")
        metrics.vector_queries += 1
        outcome = await fetch(
            "向量检索(放宽过滤)",
            self.vector_service.search_similar_orders(
                query, top_k=min(top_k * 2, 50), filters=broaden_filters(filters)
            ),
        )
        if outcome.status != OutcomeStatus.EMPTY:
            return outcome, fallbacks

        logger.info("Executor: 放宽过滤仍无结果，去掉过滤重试")
        fallbacks.append("unfiltered-search")
        metrics.vector_queries += 1
        outcome = await fetch(
            "向量检索(无过滤)",
            self.vector_service.search_similar_orders(query, top_k=min(top_k * 3, 75), filters={}),
        )
        return outcome, fallbacks

    def _orders_from_hits(self, hits: List[ScoredResult]) -> List[Order]:
        orders: List[Order] = []
        for hit in hits:
            try:
                orders.append(self.mapper.from_vector_metadata(hit.metadata))
            except ValueError as e:
                logger.warning(f"Executor: 向量命中无法还原为订单: {e}")
        return orders

    async def execute_vector(
        self, query: str, intent: QueryIntent, context: QueryContext, allow_hybrid: bool = True
    ) -> RoutedQueryResult:
        logger.info(f"Executor: Vector 策略 query='{query}'")
        metrics = PerformanceMetrics(cache_misses=1)
        outcome, fallbacks = await self._vector_search(query, intent, metrics)

        if outcome.failed:
            api_health = context.system_state.api_health if context.system_state else HealthStatus.HEALTHY
            if allow_hybrid and api_health != HealthStatus.OFFLINE:
                logger.warning(f"Executor: Vector 策略失败，降级为 Hybrid: {outcome.error}")
                result = await self.execute_hybrid(query, intent, context)
                result.fallbacks_used = ["vector-to-hybrid"] + (result.fallbacks_used or [])
                return result
            raise StrategyExhaustedError(f"向量检索失败且无可用降级: {outcome.error}")

        hits = outcome.value or []
        confidence = vector_confidence(hits)
        logger.info(f"Executor: 向量置信度 intent={intent.confidence}, hits={len(hits)}, final={confidence}")

        hits = hits[: intent.extracted_entities.limit] if intent.extracted_entities.limit and intent.extracted_entities.limit > 0 else hits
        return RoutedQueryResult(
            strategy=Strategy.VECTOR,
            data_freshness=DataFreshness.CACHED,
            confidence=confidence,
            sources=["vector-db"],
            results=QueryResults(
                orders=self._orders_from_hits(hits),
                vector_results=hits,
                summary=f"Found {len(hits)} similar orders using semantic search",
            ),
            performance_metrics=metrics,
            fallbacks_used=fallbacks,
        )

    # ------------------------------------------------------------------
    # Hybrid
    # ------------------------------------------------------------------

    async def _enrich(self, hits: List[ScoredResult], api_available: bool, metrics: PerformanceMetrics) -> List[Order]:
        """前 max_enrichment 个仅向量命中按作业号补全，其余保留元数据还原"""
        to_enrich = hits[: self.max_enrichment] if api_available else []
        rest = hits[len(to_enrich):]

        metrics.api_calls += len(to_enrich)
        outcomes = await asyncio.gather(
            *(fetch(f"订单后端 补全作业 {h.job_number}", self.order_store.get_order_by_job_number(h.job_number)) for h in to_enrich)
        )

        orders: List[Order] = []
        for hit, outcome in zip(to_enrich, outcomes):
            if outcome.ok:
                orders.append(outcome.value)
            else:
                orders.extend(self._orders_from_hits([hit]))
        orders.extend(self._orders_from_hits(rest))
        return orders

    async def execute_hybrid(self, query: str, intent: QueryIntent, context: QueryContext) -> RoutedQueryResult:
        logger.info(f"Executor: Hybrid 策略 query='{query}'")
        api_metrics = PerformanceMetrics()
        vector_metrics = PerformanceMetrics()

        api_res, vector_res = await asyncio.gather(
            self._api_orders(intent, api_metrics, refine=False),
            self._vector_search(query, intent, vector_metrics),
            return_exceptions=True,
        )

        sources = ["hybrid"]
        fallbacks: List[str] = []
        api_orders: List[Order] = []
        hits: List[ScoredResult] = []

        api_ok = isinstance(api_res, FetchOutcome) and not api_res.failed
        if api_ok:
            api_orders = list(api_res.value or [])
            sources.append("api")
        else:
            logger.warning(f"Executor: Hybrid API 分支失败: {getattr(api_res, 'error', api_res)}")
            fallbacks.append("hybrid-api-unavailable")

        vector_ok = isinstance(vector_res, tuple) and not vector_res[0].failed
        if vector_ok:
            hits = list(vector_res[0].value or [])
            fallbacks.extend(vector_res[1])
            sources.append("vector-db")
        else:
            error = vector_res[0].error if isinstance(vector_res, tuple) else vector_res
            logger.warning(f"Executor: Hybrid Vector 分支失败: {error}")
            fallbacks.append("hybrid-vector-unavailable")

        if not api_ok and not vector_ok:
            raise StrategyExhaustedError("Hybrid 策略的 API 与 Vector 分支均失败")

        seen = {o.job_number for o in api_orders}
        vector_only: List[ScoredResult] = []
        for hit in hits:
            job_number = hit.job_number
            if job_number and job_number not in seen:
                seen.add(job_number)
                vector_only.append(hit)

        metrics = PerformanceMetrics(
            api_calls=api_metrics.api_calls,
            vector_queries=vector_metrics.vector_queries,
            cache_misses=1,
        )
        merged = api_orders + await self._enrich(vector_only, api_ok, metrics)

        criteria = criteria_from_intent(intent)
        if not criteria.is_empty():
            merged = apply_filters(merged, criteria)
        merged = apply_limit(merged, intent.extracted_entities.limit)

        analytics = None
        if intent.type == IntentType.SEARCH and merged:
            analytics = generate_analytics(merged)

        logger.info(
            f"Executor: Hybrid 合并完成 api={len(api_orders)} vector={len(hits)} 结果={len(merged)}"
        )
        return RoutedQueryResult(
            strategy=Strategy.HYBRID,
            data_freshness=DataFreshness.FRESH,
            confidence=max(intent.confidence, 0.8),
            sources=sources,
            results=QueryResults(
                orders=merged,
                vector_results=hits,
                analytics=analytics,
                summary=f"Combined API ({len(api_orders)} orders) and vector search ({len(hits)} similar orders)",
            ),
            performance_metrics=metrics,
            fallbacks_used=fallbacks or None,
        )


__all__ = [
    "StrategyExecutor",
    "StrategyExhaustedError",
    "calculate_dynamic_top_k",
    "build_vector_filters",
    "broaden_filters",
    "vector_confidence",
]
