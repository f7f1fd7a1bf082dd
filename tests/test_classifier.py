"""
意图分类器测试

作者: Tom
创建时间: 2025-11-18T17:02:31+08:00 (Asia/Shanghai)

说明：
- 通过 monkeypatch LLMProxy._call_llm 构造不同的 LLM 返回
- LLM 不可用、结构不合法、调用异常都走规则降级
"""

import pytest

from canonical.models import IntentType, Strategy
from orchestrator.cache import CacheStore
from orchestrator.classifier import IntentClassifier, fallback_pattern_analysis
from orchestrator.llm_proxy import LLMProxy


def _fake_llm(payload, calls=None):
    async def fake(self, prompt):
        if calls is not None:
            calls.append(prompt)
        return payload, "{mock_json}"

    return fake


def test_fallback_specific_order_request():
    """明确的单个订单请求 -> specific/api，置信度 0.9"""
    intent = fallback_pattern_analysis("Show me order 50194")
    assert intent.type == IntentType.SPECIFIC
    assert intent.strategy == Strategy.API
    assert intent.confidence == 0.9
    assert intent.extracted_entities.job_numbers == ["50194"]
    assert intent.explanation.startswith("Fallback:")


def test_fallback_job_number_detected():
    """文本中出现 5 位以上数字 -> specific/api，置信度 0.8"""
    intent = fallback_pattern_analysis("status of 50194 and 50195 please")
    assert intent.confidence == 0.8
    assert intent.extracted_entities.job_numbers == ["50194", "50195"]


def test_fallback_keywords():
    """业务关键词 -> filter/hybrid，关键词小写"""
    intent = fallback_pattern_analysis("Embroidery jobs tagged GAMMA")
    assert intent.type == IntentType.FILTER
    assert intent.strategy == Strategy.HYBRID
    assert intent.confidence == 0.6
    assert intent.extracted_entities.keywords == ["embroidery", "gamma"]


def test_fallback_default_search():
    """其余查询 -> search/vector，置信度 0.5"""
    intent = fallback_pattern_analysis("polo shirts for schools")
    assert intent.type == IntentType.SEARCH
    assert intent.strategy == Strategy.VECTOR
    assert intent.confidence == 0.5


@pytest.mark.asyncio
async def test_llm_intent_is_used_and_cached(monkeypatch):
    """LLM 返回合法意图时直接使用，并按规范化查询缓存"""
    calls = []
    payload = {
        "type": "filter",
        "strategy": "hybrid",
        "confidence": 0.85,
        "extractedEntities": {"tags": ["@laser"], "excludeTags": ["gamma"], "limit": 5},
        "explanation": "tag filters",
    }
    monkeypatch.setattr(LLMProxy, "_call_llm", _fake_llm(payload, calls), raising=True)

    classifier = IntentClassifier(cache=CacheStore())
    first = await classifier.classify("Laser jobs not tagged gamma")
    second = await classifier.classify("  laser   jobs not\ttagged GAMMA ")

    assert first.type == IntentType.FILTER
    assert first.extracted_entities.exclude_tags == ["gamma"]
    assert first.extracted_entities.limit == 5
    assert second == first
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_invalid_llm_output_falls_back(monkeypatch):
    """LLM 输出不符合结构时走降级，且不缓存"""
    calls = []
    monkeypatch.setattr(
        LLMProxy, "_call_llm", _fake_llm({"type": "lookup", "confidence": 3}, calls), raising=True
    )

    classifier = IntentClassifier(cache=CacheStore())
    intent = await classifier.classify("show me job 12345")
    await classifier.classify("show me job 12345")

    assert intent.explanation.startswith("Fallback:")
    assert intent.extracted_entities.job_numbers == ["12345"]
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_llm_exception_falls_back(monkeypatch):
    """LLM 调用异常不向外传播"""

    async def boom(self, prompt):
        raise RuntimeError("network down")

    monkeypatch.setattr(LLMProxy, "_call_llm", boom, raising=True)
    intent = await IntentClassifier(cache=CacheStore()).classify("rush hoodies")
    assert intent.strategy == Strategy.VECTOR


@pytest.mark.asyncio
async def test_llm_unavailable_uses_fallback():
    """默认夹具下 LLM 不可用"""
    intent = await IntentClassifier(cache=CacheStore()).classify("find order 777")
    assert intent.type == IntentType.SPECIFIC
    assert intent.extracted_entities.job_numbers == ["777"]
