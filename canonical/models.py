"""
Canonical数据模型定义
订单查询路由与约束求解引擎使用的统一数据模型，对外输出时统一使用 camelCase 字段名

作者: Tom
创建时间: 2025-10-31T11:36:48+08:00
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def strip_timezone(value: Optional[datetime]) -> Optional[datetime]:
    """将带时区的时间统一换算为 UTC 后去掉时区信息，保证时间可以相互比较"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CanonicalModel(BaseModel):
    """所有模型的基类：内部使用 snake_case，序列化时使用 camelCase 别名"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class IntentType(str, Enum):
    """查询意图类型枚举"""
    SEARCH = "search"
    FILTER = "filter"
    SPECIFIC = "specific"


class Strategy(str, Enum):
    """检索策略枚举"""
    API = "api"
    VECTOR = "vector"
    HYBRID = "hybrid"


class DataFreshness(str, Enum):
    """数据新鲜度枚举"""
    FRESH = "fresh"
    CACHED = "cached"
    STALE = "stale"


class HealthStatus(str, Enum):
    """外部协作方健康状态枚举"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    OFFLINE = "offline"


class ConstraintType(str, Enum):
    """约束类型枚举"""
    VALUE = "value"
    DATE = "date"
    STATUS = "status"
    CUSTOMER = "customer"
    QUANTITY = "quantity"


class ConstraintOperator(str, Enum):
    """约束运算符枚举"""
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "not_in"


class AggregationType(str, Enum):
    """聚合类型枚举"""
    SUM = "sum"
    COUNT = "count"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"


# ---------------------------------------------------------------------------
# 订单
# ---------------------------------------------------------------------------


class CustomerRef(CanonicalModel):
    """订单上的客户引用"""
    id: Optional[int] = None
    company: str = ""


class OrderDates(CanonicalModel):
    """订单日期信息，均为去时区后的 UTC 时间"""
    date_entered: Optional[datetime] = None
    date_due: Optional[datetime] = None
    days_to_due_date: Optional[int] = None

    @field_validator("date_entered", "date_due")
    @classmethod
    def _naive_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return strip_timezone(v)


class OrderStatus(CanonicalModel):
    """订单状态信息"""
    master: str = ""
    master_status_id: Optional[int] = None
    stock: Optional[str] = None
    status_line: Optional[str] = None


class ProductionInfo(CanonicalModel):
    """生产相关信息"""
    processes: List[str] = Field(default_factory=list)
    time_sensitive: bool = False
    must_date: bool = False
    is_reprint: bool = False


class LineItem(CanonicalModel):
    """订单行项目"""
    description: str = ""
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    materials: List[str] = Field(default_factory=list)


class OrderTag(CanonicalModel):
    """订单标签"""
    tag: str
    entered_by: Optional[str] = None
    date_entered: Optional[str] = None


class Pricing(CanonicalModel):
    """订单定价信息，total 存在时为订单金额的权威来源"""
    total: Optional[float] = None


class Order(CanonicalModel):
    """
    订单统一模型

    订单是从订单后端或向量检索服务拉取的只读快照，引擎内部不会修改或持久化订单
    """

    job_number: str = Field(..., min_length=1, description="作业号，订单唯一标识")
    order_number: str = Field(default="", description="订单号")
    customer: CustomerRef = Field(default_factory=CustomerRef)
    description: str = ""
    comments: str = ""
    job_quantity: Optional[float] = None
    status: OrderStatus = Field(default_factory=OrderStatus)
    dates: OrderDates = Field(default_factory=OrderDates)
    production: ProductionInfo = Field(default_factory=ProductionInfo)
    line_items: List[LineItem] = Field(default_factory=list)
    tags: List[OrderTag] = Field(default_factory=list)
    pricing: Optional[Pricing] = None
    data_source: str = Field(default="api", description="数据来源: api/vector")

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v: Any) -> Any:
        """兼容纯字符串形式的标签"""
        if isinstance(v, list):
            return [{"tag": t} if isinstance(t, str) else t for t in v]
        return v

    def tag_names(self) -> List[str]:
        return [t.tag for t in self.tags]


# ---------------------------------------------------------------------------
# 约束与聚合
# ---------------------------------------------------------------------------


class Constraint(CanonicalModel):
    """声明式约束：type 决定读取订单的哪个字段，operator 决定比较方式"""
    type: ConstraintType
    operator: ConstraintOperator
    field: str = ""
    value: Any = None
    secondary_value: Any = None


class AggregationRequest(CanonicalModel):
    """聚合请求"""
    type: AggregationType
    field: str = "value"
    filter: Optional[List[Constraint]] = None


class ConstraintDetails(CanonicalModel):
    """约束满足情况明细"""
    requested_value: Optional[float] = None
    actual_value: Optional[float] = None
    difference: Optional[float] = None
    percentage: Optional[float] = None
    combinations_found: Optional[int] = None


class ConstraintSatisfactionResult(CanonicalModel):
    """约束求解结果"""
    success: bool
    total_value: Optional[float] = None
    order_count: int = 0
    orders: List[Order] = Field(default_factory=list)
    constraint_met: bool = False
    constraint_details: ConstraintDetails = Field(default_factory=ConstraintDetails)
    summary: str = ""


class ParsedConstraints(CanonicalModel):
    """从自然语言中解析出的约束集合与目标金额"""
    constraints: List[Constraint] = Field(default_factory=list)
    target_value: Optional[float] = None

    def has_goal(self) -> bool:
        return self.target_value is not None or bool(self.constraints)


# ---------------------------------------------------------------------------
# 查询意图
# ---------------------------------------------------------------------------


class DateRange(CanonicalModel):
    """日期区间（ISO 日期字符串）"""
    start: str
    end: str
    description: Optional[str] = None


class ExtractedEntities(CanonicalModel):
    """从查询文本中抽取的实体"""
    job_numbers: Optional[List[str]] = None
    customers: Optional[List[str]] = None
    statuses: Optional[List[str]] = None
    date_ranges: Optional[List[DateRange]] = None
    tags: Optional[List[str]] = None
    exclude_tags: Optional[List[str]] = None
    keywords: Optional[List[str]] = None
    limit: Optional[int] = None

    @field_validator("job_numbers", mode="before")
    @classmethod
    def _stringify_job_numbers(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(x) for x in v]
        return v


class QueryIntent(CanonicalModel):
    """结构化查询意图"""
    type: IntentType
    strategy: Strategy
    confidence: float = Field(..., ge=0.0, le=1.0)
    explanation: str = ""
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)


# ---------------------------------------------------------------------------
# 路由结果
# ---------------------------------------------------------------------------


class ScoredResult(CanonicalModel):
    """向量检索命中"""
    score: float = Field(..., ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def job_number(self) -> Optional[str]:
        value = self.metadata.get("jobNumber", self.metadata.get("job_number"))
        return str(value) if value is not None else None


class PerformanceMetrics(CanonicalModel):
    """单次路由的调用统计"""
    api_calls: int = 0
    vector_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


class OrderAnalytics(CanonicalModel):
    """订单集合的汇总分析"""
    total_orders: int = 0
    total_value: float = 0.0
    status_breakdown: Dict[str, int] = Field(default_factory=dict)
    customer_breakdown: Dict[str, int] = Field(default_factory=dict)
    process_breakdown: Dict[str, int] = Field(default_factory=dict)
    average_days_to_completion: float = 0.0
    urgent_orders: int = 0
    late_orders: int = 0


class QueryResults(CanonicalModel):
    """路由结果载荷"""
    orders: Optional[List[Order]] = None
    vector_results: Optional[List[ScoredResult]] = None
    analytics: Optional[OrderAnalytics] = None
    summary: Optional[str] = None
    constraint_result: Optional[ConstraintSatisfactionResult] = None


class RoutedQueryResult(CanonicalModel):
    """路由器对外返回的统一结果"""
    strategy: Strategy
    processing_time: float = 0.0
    data_freshness: DataFreshness = DataFreshness.FRESH
    confidence: float = 0.0
    sources: List[str] = Field(default_factory=list)
    results: QueryResults = Field(default_factory=QueryResults)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    fallbacks_used: Optional[List[str]] = None
    recommendations: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# 路由上下文
# ---------------------------------------------------------------------------


class SystemState(CanonicalModel):
    """外部协作方健康快照"""
    api_health: HealthStatus = HealthStatus.HEALTHY
    vector_health: HealthStatus = HealthStatus.HEALTHY
    cache_health: HealthStatus = HealthStatus.HEALTHY


class QueryContext(CanonicalModel):
    """调用方提供的路由上下文"""
    prefer_fresh_data: bool = False
    include_analytics: bool = False
    system_state: Optional[SystemState] = None


__all__ = [
    "strip_timezone",
    "IntentType",
    "Strategy",
    "DataFreshness",
    "HealthStatus",
    "ConstraintType",
    "ConstraintOperator",
    "AggregationType",
    "CustomerRef",
    "OrderDates",
    "OrderStatus",
    "ProductionInfo",
    "LineItem",
    "OrderTag",
    "Pricing",
    "Order",
    "Constraint",
    "AggregationRequest",
    "ConstraintDetails",
    "ConstraintSatisfactionResult",
    "ParsedConstraints",
    "DateRange",
    "ExtractedEntities",
    "QueryIntent",
    "ScoredResult",
    "PerformanceMetrics",
    "OrderAnalytics",
    "QueryResults",
    "RoutedQueryResult",
    "SystemState",
    "QueryContext",
]
