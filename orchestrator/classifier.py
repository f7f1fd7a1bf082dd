"""
意图分类器 (IntentClassifier)

主路径：LLM 语义分类，输出经 QueryIntent 结构校验；
任何调用失败、超时、JSON 或结构不合法都走确定性的规则降级，不抛出异常。
LLM 分类结果按规范化查询缓存数分钟。

作者: Tom
创建时间: 2025-11-18T14:31:26+08:00 (Asia/Shanghai)
"""

import re
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from canonical.models import ExtractedEntities, IntentType, QueryIntent, Strategy
from config.settings import get_settings
from orchestrator.cache import CacheStore, normalize_query
from orchestrator.llm_proxy import LLMProxy

# 明确的单个订单请求
SPECIFIC_ORDER_PATTERNS = [
    re.compile(r"show\s+me\s+(?:order|job)\s+(\d+)", re.IGNORECASE),
    re.compile(r"(?:order|job)\s+details?\s+for\s+(\d+)", re.IGNORECASE),
    re.compile(r"more\s+(?:on|about)\s+(?:order|job)\s+(\d+)", re.IGNORECASE),
    re.compile(r"get\s+(?:order|job)\s+(\d+)", re.IGNORECASE),
    re.compile(r"find\s+(?:order|job)\s+(\d+)", re.IGNORECASE),
]

JOB_NUMBER_PATTERN = re.compile(r"\b\d{5,}\b")
KEYWORD_PATTERN = re.compile(r"gamma|ps done|@laser|embroidery|hardware", re.IGNORECASE)


def fallback_pattern_analysis(query: str) -> QueryIntent:
    """规则降级，按顺序匹配，先匹配先返回"""
    for pattern in SPECIFIC_ORDER_PATTERNS:
        match = pattern.search(query)
        if match:
            return QueryIntent(
                type=IntentType.SPECIFIC,
                strategy=Strategy.API,
                confidence=0.9,
                explanation="Fallback: Specific order detail request detected",
                extracted_entities=ExtractedEntities(job_numbers=[match.group(1)]),
            )

    job_numbers = JOB_NUMBER_PATTERN.findall(query)
    if job_numbers:
        return QueryIntent(
            type=IntentType.SPECIFIC,
            strategy=Strategy.API,
            confidence=0.8,
            explanation="Fallback: Job number detected",
            extracted_entities=ExtractedEntities(job_numbers=job_numbers),
        )

    keywords = [k.lower() for k in KEYWORD_PATTERN.findall(query)]
    if keywords:
        return QueryIntent(
            type=IntentType.FILTER,
            strategy=Strategy.HYBRID,
            confidence=0.6,
            explanation="Fallback: Keywords detected",
            extracted_entities=ExtractedEntities(keywords=keywords),
        )

    return QueryIntent(
        type=IntentType.SEARCH,
        strategy=Strategy.VECTOR,
        confidence=0.5,
        explanation="Fallback: Default semantic search",
    )


class IntentClassifier:
    """查询意图分类器"""

    def __init__(
        self,
        llm_proxy: Optional[LLMProxy] = None,
        cache: Optional[CacheStore] = None,
        ttl_s: Optional[int] = None,
    ):
        self.llm = llm_proxy or LLMProxy()
        self.cache = cache or CacheStore()
        self.ttl_s = ttl_s if ttl_s is not None else get_settings().intent_cache_ttl_s

    @staticmethod
    def cache_key(query: str) -> str:
        return f"intent:{normalize_query(query)}"

    async def classify(self, query: str) -> QueryIntent:
        """分类查询意图，不抛出异常"""
        key = self.cache_key(query)
        cached: Optional[QueryIntent] = self.cache.get(key)
        if cached is not None:
            logger.info(f"Classifier: 意图缓存命中 query='{query}'")
            return cached.model_copy(deep=True)

        try:
            parsed, metrics = await self.llm.infer_intent(query)
        except Exception as e:
            logger.error(f"Classifier: LLM 分类异常，走降级: {e}")
            parsed, metrics = None, {}

        if parsed is not None:
            try:
                intent = QueryIntent.model_validate(parsed)
            except ValidationError as e:
                logger.warning(f"Classifier: LLM 输出不符合 QueryIntent 结构，走降级: {e.error_count()} 处错误")
            else:
                self.cache.set(key, intent.model_copy(deep=True), self.ttl_s)
                logger.info(
                    f"Classifier: LLM 分类完成 type={intent.type.value} strategy={intent.strategy.value} "
                    f"confidence={intent.confidence}，用时 {metrics.get('latency_ms', 0)}ms"
                )
                return intent

        intent = fallback_pattern_analysis(query)
        logger.info(
            f"Classifier: 规则降级 type={intent.type.value} strategy={intent.strategy.value} "
            f"explanation='{intent.explanation}'"
        )
        return intent


__all__ = ["IntentClassifier", "fallback_pattern_analysis", "SPECIFIC_ORDER_PATTERNS"]
