"""
编排层模块
包含意图分类、策略执行、结果缓存、查询路由和LLM代理

作者: Tom
创建时间: 2025-11-10T16:17:02+08:00 (Asia/Shanghai)
"""

from typing import List, Optional

from loguru import logger

from canonical.models import (
    AggregationRequest, Constraint, ConstraintSatisfactionResult, Order,
    QueryContext, RoutedQueryResult,
)
from constraints.service import ConstraintSatisfactionService
from .cache import CacheStore, ResultCache
from .classifier import IntentClassifier
from .executor import StrategyExecutor
from .llm_proxy import LLMProxy
from .router import QueryRouter

__version__ = "1.0.0"

_default_router: Optional[QueryRouter] = None


def get_router() -> QueryRouter:
    """获取默认路由器（首次调用时基于 HTTP 协作方创建）"""
    global _default_router
    if _default_router is None:
        from agents.order_api import OrderAPIAgent
        from agents.vector import VectorSearchAgent

        _default_router = QueryRouter(order_store=OrderAPIAgent(), vector_service=VectorSearchAgent())
        logger.info("Orchestrator: 默认路由器已创建")
    return _default_router


def set_router(router: Optional[QueryRouter]) -> None:
    """替换默认路由器（测试或自定义协作方时使用）"""
    global _default_router
    _default_router = router


async def route_query(query: str, context: Optional[QueryContext] = None) -> RoutedQueryResult:
    """
    高层入口：自然语言订单查询。

    - 分类：LLM 语义分类，失败时规则降级。
    - 执行：API / Vector / Hybrid 策略及其降级级联。
    - 后处理：查询含金额目标或日期/状态约束时进行约束求解。

    Returns:
        RoutedQueryResult，不抛出异常
    """
    logger.info("Orchestrator: 查询路由入口调用")
    return await get_router().route_query(query, context)


def solve_constraints(
    orders: List[Order],
    constraints: Optional[List[Constraint]] = None,
    target_value: Optional[float] = None,
    aggregation: Optional[AggregationRequest] = None,
) -> ConstraintSatisfactionResult:
    """
    高层入口：对给定订单做约束求解。

    Returns:
        ConstraintSatisfactionResult，不抛出异常
    """
    logger.info("Orchestrator: 约束求解入口调用")
    return ConstraintSatisfactionService().process_constraint_query(orders, constraints, target_value, aggregation)


__all__ = [
    "route_query",
    "solve_constraints",
    "get_router",
    "set_router",
    "QueryRouter",
    "StrategyExecutor",
    "IntentClassifier",
    "ResultCache",
    "CacheStore",
    "LLMProxy",
    "__version__",
]
