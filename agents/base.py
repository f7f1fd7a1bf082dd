"""
外部协作方抽象
定义订单后端与向量检索服务的统一异步接口，路由引擎只依赖这里的抽象

作者: Tom
创建时间: 2025-11-04T10:11:46+08:00
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from canonical.mapper import OrderMapper
from canonical.models import Order, ScoredResult
from config.settings import get_settings


class AgentError(Exception):
    """Agent相关异常基类"""
    pass


class DataSourceError(AgentError):
    """数据源访问异常（网络、超时、非 2xx 响应）"""
    pass


class DataMappingError(AgentError):
    """数据映射异常（载荷无法映射为订单）"""
    pass


class BaseAgent(ABC):
    """
    Agent抽象基类

    提供：
    1. 统一的系统名称与健康状态
    2. 订单映射器
    3. 健康检查（不抛出异常）
    """

    def __init__(self, system_name: str):
        """
        初始化Agent

        Args:
            system_name: 系统名称 (如: "订单后端", "向量检索")
        """
        self.system_name = system_name
        self.settings = get_settings()
        self.mapper = OrderMapper()

        # 健康状态
        self.health_status = "healthy"
        self.last_health_check = datetime.now()

        logger.debug(f"{self.system_name} Agent初始化完成")

    @abstractmethod
    async def ping(self) -> None:
        """
        探测数据源可用性

        Raises:
            DataSourceError: 数据源不可用
        """

    async def health_check(self) -> Dict[str, Any]:
        """
        健康检查

        Returns:
            健康状态信息，含 healthy 布尔字段
        """
        try:
            await self.ping()
            self.health_status = "healthy"
            self.last_health_check = datetime.now()
            return {
                "system_name": self.system_name,
                "status": self.health_status,
                "healthy": True,
                "last_check": self.last_health_check.isoformat(),
            }
        except Exception as e:
            self.health_status = "unhealthy"
            self.last_health_check = datetime.now()
            logger.error(f"{self.system_name} 健康检查失败: {str(e)}")
            return {
                "system_name": self.system_name,
                "status": self.health_status,
                "healthy": False,
                "last_check": self.last_health_check.isoformat(),
                "error": str(e),
            }

    def __str__(self) -> str:
        return f"{self.system_name}Agent"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(system_name='{self.system_name}', status='{self.health_status}')>"


class OrderStore(BaseAgent):
    """订单后端接口"""

    @abstractmethod
    async def get_order_by_job_number(self, job_number: str) -> Optional[Order]:
        """
        按作业号获取单个订单（含行项目）

        Returns:
            订单；不存在时返回 None

        Raises:
            DataSourceError: 数据源访问失败
        """

    @abstractmethod
    async def get_all_orders(self, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        获取当前订单全集

        Returns:
            {"orders": List[Order], "summary": Dict[str, Any]}

        Raises:
            DataSourceError: 数据源访问失败
        """

    @abstractmethod
    async def search_orders_by_query(self, text: str, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """按文本检索订单"""


class VectorSearchService(BaseAgent):
    """向量检索服务接口"""

    @abstractmethod
    async def search_similar_orders(
        self,
        query: str,
        top_k: int = 10,
        filters: Optional[Dict[str, Any]] = None,
        include_highlights: bool = False,
    ) -> List[ScoredResult]:
        """
        相似度检索

        Returns:
            按得分降序排列的命中列表

        Raises:
            DataSourceError: 服务访问失败
        """


__all__ = [
    "BaseAgent",
    "OrderStore",
    "VectorSearchService",
    "AgentError",
    "DataSourceError",
    "DataMappingError",
]
