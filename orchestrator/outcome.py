"""
协作方调用结果封装

执行器对每次外部调用的结果按状态分支（ok / empty / failed），而不是在流程中散落 try/except，
使降级级联成为显式的状态序列。

作者: Tom
创建时间: 2025-11-17T15:40:11+08:00 (Asia/Shanghai)
"""

import time
from enum import Enum
from typing import Any, Awaitable, Generic, Optional, TypeVar

from loguru import logger

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


class FetchOutcome(Generic[T]):
    """一次外部调用的结果"""

    __slots__ = ("status", "value", "error", "elapsed_ms")

    def __init__(
        self,
        status: OutcomeStatus,
        value: Optional[T] = None,
        error: Optional[BaseException] = None,
        elapsed_ms: int = 0,
    ):
        self.status = status
        self.value = value
        self.error = error
        self.elapsed_ms = elapsed_ms

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED

    def __repr__(self) -> str:
        return f"<FetchOutcome(status='{self.status.value}', elapsed_ms={self.elapsed_ms}, error={self.error!r})>"


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


async def fetch(label: str, awaitable: Awaitable[T]) -> FetchOutcome[T]:
    """
    等待一次外部调用并封装结果

    Args:
        label: 日志中的调用名称
        awaitable: 外部调用

    Returns:
        FetchOutcome；异常不会向外传播
    """
    start = time.time()
    try:
        value = await awaitable
    except Exception as e:
        elapsed = int((time.time() - start) * 1000)
        logger.error(f"Executor: {label} 调用失败，用时 {elapsed}ms: {e}")
        return FetchOutcome(OutcomeStatus.FAILED, error=e, elapsed_ms=elapsed)

    elapsed = int((time.time() - start) * 1000)
    status = OutcomeStatus.EMPTY if _is_empty(value) else OutcomeStatus.OK
    logger.debug(f"Executor: {label} 调用完成 status={status.value}，用时 {elapsed}ms")
    return FetchOutcome(status, value=value, elapsed_ms=elapsed)


__all__ = ["OutcomeStatus", "FetchOutcome", "fetch"]
