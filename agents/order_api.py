"""
OrderAPIAgent实现
通过 HTTP 访问订单管理后端，映射为 Canonical 订单模型

作者: Tom
创建时间: 2025-11-05T23:21:13+08:00
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from agents.base import DataMappingError, DataSourceError, OrderStore
from canonical.models import Order

# 文本检索时忽略的停用词
_STOP_WORDS = {
    "what", "where", "when", "who", "how", "show", "me", "find", "get", "the",
    "a", "an", "for", "of", "and", "or", "with", "all", "orders", "order",
    "jobs", "job", "please", "list",
}


class OrderAPIAgent(OrderStore):
    """
    订单后端Agent
    - 作业详情: GET {base}/jobs/{jobNumber}
    - 作业列表: GET {base}/jobs?page=&pageSize=
    - 健康检查: GET {base}/health
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(system_name="订单后端")
        self.base_url = self.settings.order_api_base_url.rstrip("/")
        self.timeout = self.settings.order_api_timeout_ms / 1000.0
        self._client = http_client

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.order_api_key:
            headers["Authorization"] = f"Bearer {self.settings.order_api_key}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self._headers())
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """发起 GET 请求；404 返回 None，其它失败抛出 DataSourceError"""
        url = f"{self.base_url}{path}"
        try:
            resp = await self._get_client().get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"{self.system_name} 请求失败: GET {url} -> {e}")
            raise DataSourceError(f"{self.system_name} 请求失败: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            logger.warning(f"{self.system_name} 非 200 响应: GET {url} status={resp.status_code} body={resp.text[:200]}")
            raise DataSourceError(f"{self.system_name} 返回状态码 {resp.status_code}")

        try:
            return resp.json()
        except ValueError as e:
            raise DataSourceError(f"{self.system_name} 响应不是合法 JSON") from e

    async def ping(self) -> None:
        data = await self._get_json("/health")
        if data is None:
            raise DataSourceError(f"{self.system_name} 健康检查端点不存在")

    async def get_order_by_job_number(self, job_number: str) -> Optional[Order]:
        logger.info(f"{self.system_name} 获取作业 {job_number}")
        data = await self._get_json(f"/jobs/{job_number}")
        if not data:
            logger.warning(f"{self.system_name} 作业 {job_number} 不存在")
            return None

        job = data.get("Job", data)
        try:
            return self.mapper.to_order(job)
        except ValueError as e:
            logger.error(f"{self.system_name} 作业映射失败: {e}")
            raise DataMappingError(f"{self.system_name} 作业映射失败: {e}") from e

    async def get_all_orders(self, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = dict(options or {})
        params = {
            "page": options.get("page", 1),
            "pageSize": options.get("pageSize", self.settings.order_api_page_size),
            "includeLineItems": str(bool(options.get("includeLineItems", True))).lower(),
        }
        data = await self._get_json("/jobs", params=params) or {}

        orders: List[Order] = []
        skipped = 0
        for job in data.get("Entities") or []:
            try:
                orders.append(self.mapper.to_order(job))
            except ValueError as e:
                skipped += 1
                logger.warning(f"{self.system_name} 跳过无法映射的作业: {e}")

        logger.info(f"{self.system_name} 拉取订单完成: 映射={len(orders)}, 跳过={skipped}")

        return {
            "orders": orders,
            "summary": {
                "totalOrders": len(orders),
                "totalResults": data.get("TotalResults", len(orders)),
                "currentPage": params["page"],
                "lastUpdated": datetime.now().isoformat(),
            },
        }

    async def search_orders_by_query(self, text: str, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        terms = [
            t for t in re.findall(r"[@\w-]+", text.lower())
            if t not in _STOP_WORDS and len(t) > 1
        ]
        data = await self.get_all_orders(filters)
        if not terms:
            return data["orders"]

        def haystack(order: Order) -> str:
            parts = [
                order.job_number,
                order.description,
                order.comments,
                order.customer.company,
                order.status.master,
                *order.tag_names(),
                *(li.description for li in order.line_items),
            ]
            return " ".join(parts).lower()

        return [o for o in data["orders"] if all(t in haystack(o) for t in terms)]


__all__ = ["OrderAPIAgent"]
