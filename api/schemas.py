from typing import Any, List, Optional

from pydantic import Field

from canonical.models import AggregationRequest, CanonicalModel, Constraint, Order


class QueryRequest(CanonicalModel):
    query: str = Field(..., min_length=1)
    prefer_fresh_data: bool = False
    include_analytics: bool = False


class ConstraintRequest(CanonicalModel):
    orders: List[Order] = Field(default_factory=list)
    constraints: List[Constraint] = Field(default_factory=list)
    target_value: Optional[float] = Field(default=None, gt=0)
    aggregation: Optional[AggregationRequest] = None


class ApiResponse(CanonicalModel):
    code: int = 0
    message: str = "OK"
    success: bool = True
    data: Optional[Any] = None
