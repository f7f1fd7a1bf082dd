"""
LLM 代理模块（OpenAI 兼容接口）

职责：
- 固化意图分类的系统提示词（实体抽取、日期归一、标签规则、策略选择、输出 JSON 结构）。
- 构造请求并调用模型；在失败或超时情况下返回空结果并记录日志，由上层走降级规则。
- 从模型原始文本中提取 JSON 对象。

作者: Tom
创建时间: 2025-11-11T15:11:07+08:00 (Asia/Shanghai)
"""

from __future__ import annotations

import json
import re
import time
from datetime import date
from typing import Any, Dict, Optional, Tuple

import httpx
from loguru import logger

from config.settings import get_model_config, settings, validate_api_key

# 模型需要输出的 QueryIntent JSON 结构
INTENT_JSON_SHAPE = """{
  "type": "search|filter|specific",
  "strategy": "api|vector|hybrid",
  "confidence": 0.0-1.0,
  "extractedEntities": {
    "jobNumbers": ["12345", "67890"],
    "customers": ["customer name"],
    "dateRanges": [{"start": "2025-07-01", "end": "2025-07-07", "description": "next week"}],
    "statuses": ["approved", "overdue", "urgent"],
    "tags": ["@laser", "production"],
    "excludeTags": ["gamma", "ps-done"],
    "keywords": ["embroidery", "screen printing"],
    "limit": 5
  },
  "explanation": "Brief explanation of why this strategy was chosen"
}"""


def extract_json_object(raw_text: Optional[str]) -> Optional[Dict[str, Any]]:
    """解析模型输出：先整体按 JSON 解析，失败时提取第一个 {...} 片段"""
    if not isinstance(raw_text, str) or not raw_text.strip():
        return None
    try:
        parsed = json.loads(raw_text)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        match = re.search(r"\{[\s\S]*\}", raw_text)
        if match:
            try:
                parsed = json.loads(match.group(0))
                if isinstance(parsed, dict):
                    return parsed
            except ValueError:
                pass
    return None


class LLMProxy:
    """OpenAI 兼容 Chat Completions 代理。

    注意：
    - 依赖 `config.settings` 中的 `openai_api_key`、`openai_base_url` 与模型配置。
    - 未配置 API Key、请求失败、超时或响应不可解析时返回 (None, raw_text|None)，不抛出异常。
    """

    def __init__(self, timeout_ms: Optional[int] = None, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.timeout_ms = timeout_ms or settings.classification_timeout_ms
        self._client = http_client

    def _system_prompt(self, today: Optional[date] = None) -> str:
        """构造系统提示词，日期规则以当天为锚点"""
        today = today or date.today()
        return (
            "You are an expert query analyzer for an Order Management System. "
            "Analyze the user's query and determine the best strategy for retrieving order data.\n\n"
            f"Current Date Context: {today.isoformat()} ({today.strftime('%A')})\n\n"
            "SPECIFIC ORDER DETECTION:\n"
            "- When users ask for specific order details, set type to \"specific\" and strategy to \"api\"\n"
            "- Patterns: \"show me order 50194\", \"show me job 12345\", \"order details for 67890\", \"more on order 12345\"\n"
            "- Extract the job numbers so the API strategy can return complete order details including line items\n\n"
            "DATE RULES (weeks run Monday-Sunday, resolve to concrete YYYY-MM-DD dates):\n"
            "- \"this week\" = Monday-Sunday of the current week\n"
            "- \"next week\" = Monday-Sunday of the following week\n"
            "- \"last week\" = Monday-Sunday of the previous week\n"
            "- \"today\" = current date, \"tomorrow\" = current date + 1 day, \"yesterday\" = current date - 1 day\n\n"
            "TAG RULES:\n"
            "- Tags may be prefixed with \"@\" (\"@laser\") or plain text (\"production\")\n"
            "- \"tagged X\" -> tags: [\"X\"]; \"not tagged X\" -> excludeTags: [\"X\"]\n"
            "- \"tagged in production\" -> tags: [\"production\"]\n"
            "- Tag matching is case-insensitive and partial\n\n"
            "BUSINESS RULES:\n"
            "- \"overdue\" = due date before today and status is not completed\n"
            "- \"urgent\" / \"high priority\" = tags containing urgent or priority, or due within 2 days\n\n"
            "STRATEGY SELECTION:\n"
            "- \"api\": specific job numbers, simple filters, exact matches\n"
            "- \"vector\": semantic searches, descriptive queries, similar orders\n"
            "- \"hybrid\": multiple filters, date ranges, combining API precision with vector recall\n\n"
            "QUANTITY LIMIT:\n"
            "- \"show me 5 jobs\", \"top 5\", \"first 10\" -> limit is that number\n"
            "- \"a few\" -> 3, \"several\" -> 5, otherwise null\n\n"
            "Return only a JSON object with this exact structure:\n" + INTENT_JSON_SHAPE
        )

    def _compose_prompt(self, query: str) -> str:
        """构造用户消息"""
        return f'Analyze this query: "{query}"'

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_ms / 1000.0)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call_llm(self, prompt: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """调用 Chat Completions 接口。

        返回 (parsed_json, raw_text)。解析失败时 parsed_json 为 None，raw_text 保留原始文本。"""
        if not validate_api_key():
            logger.warning("LLMProxy: 未配置 API Key，跳过 LLM 调用，走降级")
            return None, None

        model_config = get_model_config()
        payload = {
            "model": model_config["model"],
            "messages": [
                {"role": "system", "content": self._system_prompt()},
                {"role": "user", "content": prompt},
            ],
            "temperature": model_config["temperature"],
            "max_tokens": model_config["max_tokens"],
        }
        headers = {
            "Authorization": f"Bearer {settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        url = f"{settings.openai_base_url.rstrip('/')}/chat/completions"

        try:
            start = time.time()
            resp = await self._get_client().post(url, headers=headers, json=payload, timeout=self.timeout_ms / 1000.0)
            latency_ms = int((time.time() - start) * 1000)
            logger.info(f"LLMProxy: LLM 调用完成，耗时 {latency_ms}ms，status={resp.status_code}")

            if resp.status_code != 200:
                logger.warning(f"LLMProxy: 非 200 响应，body={resp.text[:200]}")
                return None, None

            data = resp.json()
            raw_text = ((data.get("choices") or [{}])[0].get("message") or {}).get("content")
        except (httpx.HTTPError, ValueError, AttributeError, IndexError) as e:
            logger.error(f"LLMProxy: 调用失败/超时：{e}")
            return None, None

        return extract_json_object(raw_text), raw_text if isinstance(raw_text, str) else None

    async def infer_intent(self, query: str) -> Tuple[Optional[Dict[str, Any]], Dict[str, Any]]:
        """推断查询意图原始 JSON。

        Returns:
            (parsed_json | None, metrics)；metrics 含 latency_ms 与 llm_used
        """
        start = time.time()
        parsed, raw_text = await self._call_llm(self._compose_prompt(query))
        latency_ms = int((time.time() - start) * 1000)

        if parsed is None and raw_text:
            parsed = extract_json_object(raw_text)
            if parsed is None:
                logger.warning(f"LLMProxy: 响应不可解析，raw={raw_text[:200]}")

        return parsed, {"latency_ms": latency_ms, "llm_used": parsed is not None}


__all__ = ["LLMProxy", "INTENT_JSON_SHAPE", "extract_json_object"]
