"""
VectorSearchAgent实现
通过 HTTP 访问相似度检索服务，返回带得分的订单元数据

作者: Tom
创建时间: 2025-11-06T10:42:31+08:00
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from agents.base import DataMappingError, DataSourceError, VectorSearchService
from canonical.models import ScoredResult


class VectorSearchAgent(VectorSearchService):
    """
    向量检索Agent
    - 检索: POST {base}/search  {"query","topK","filters","includeHighlights"}
    - 健康检查: GET {base}/health
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(system_name="向量检索")
        self.base_url = self.settings.vector_service_url.rstrip("/")
        self.timeout = self.settings.vector_timeout_ms / 1000.0
        self._client = http_client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.vector_service_api_key:
            headers["Api-Key"] = self.settings.vector_service_api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> None:
        try:
            resp = await self._get_client().get(f"{self.base_url}/health", headers=self._headers())
        except httpx.HTTPError as e:
            raise DataSourceError(f"{self.system_name} 不可达: {e}") from e
        if resp.status_code != 200:
            raise DataSourceError(f"{self.system_name} 健康检查返回 {resp.status_code}")

    async def search_similar_orders(
        self,
        query: str,
        top_k: int = 10,
        filters: Optional[Dict[str, Any]] = None,
        include_highlights: bool = False,
    ) -> List[ScoredResult]:
        payload = {
            "query": query,
            "topK": top_k,
            "filters": filters or {},
            "includeHighlights": include_highlights,
        }
        url = f"{self.base_url}/search"
        try:
            resp = await self._get_client().post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"{self.system_name} 请求失败: POST {url} -> {e}")
            raise DataSourceError(f"{self.system_name} 请求失败: {e}") from e

        if resp.status_code != 200:
            logger.warning(f"{self.system_name} 非 200 响应: status={resp.status_code} body={resp.text[:200]}")
            raise DataSourceError(f"{self.system_name} 返回状态码 {resp.status_code}")

        try:
            matches = resp.json().get("results") or []
            results = [ScoredResult.model_validate(m) for m in matches]
        except (ValueError, ValidationError, AttributeError) as e:
            raise DataMappingError(f"{self.system_name} 响应结构非法: {e}") from e

        results.sort(key=lambda r: r.score, reverse=True)
        logger.info(f"{self.system_name} 检索完成: topK={top_k}, 过滤={list((filters or {}).keys())}, 命中={len(results)}")
        return results


__all__ = ["VectorSearchAgent"]
