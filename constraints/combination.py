"""
组合搜索（有界近似子集和）

在已过滤的订单中寻找 1~3 个订单的组合，使金额合计落在目标金额 ±10% 之内。
依次尝试单个、两两、三三组合，累计找到 max_combinations 个即停止；
最终按与目标的差距升序返回前 max_combinations 个组合。

作者: Tom
创建时间: 2025-11-13T09:41:55+08:00 (Asia/Shanghai)
"""

from typing import List, Optional, Tuple

from loguru import logger

from canonical.models import Order
from constraints.evaluator import calculate_order_value

# 组合接受窗口（相对目标金额）
COMBINATION_TOLERANCE = 0.1
# 约束满足阈值：合计 >= 目标 * 0.9 即视为满足（不设上限）
CONSTRAINT_MET_RATIO = 0.9
DEFAULT_MAX_COMBINATIONS = 5

Candidate = Tuple[Order, float]


def within_tolerance(total: float, target_value: float) -> bool:
    return abs(total - target_value) <= target_value * COMBINATION_TOLERANCE


def is_constraint_met(total: float, target_value: float) -> bool:
    return total >= target_value * CONSTRAINT_MET_RATIO


def _search_singles(candidates: List[Candidate], target_value: float, limit: int) -> List[List[Candidate]]:
    found: List[List[Candidate]] = []
    for cand in candidates:
        if within_tolerance(cand[1], target_value):
            found.append([cand])
            if len(found) >= limit:
                break
    return found


def _search_pairs(candidates: List[Candidate], target_value: float, limit: int) -> List[List[Candidate]]:
    found: List[List[Candidate]] = []
    n = len(candidates)
    for i in range(n):
        for j in range(i + 1, n):
            if within_tolerance(candidates[i][1] + candidates[j][1], target_value):
                found.append([candidates[i], candidates[j]])
                if len(found) >= limit:
                    return found
    return found


def _search_triples(candidates: List[Candidate], target_value: float, limit: int) -> List[List[Candidate]]:
    # O(n^3)，候选集规模由 max_candidates 控制
    found: List[List[Candidate]] = []
    n = len(candidates)
    for i in range(n):
        for j in range(i + 1, n):
            for k in range(j + 1, n):
                total = candidates[i][1] + candidates[j][1] + candidates[k][1]
                if within_tolerance(total, target_value):
                    found.append([candidates[i], candidates[j], candidates[k]])
                    if len(found) >= limit:
                        return found
    return found


def find_order_combinations(
    orders: List[Order],
    target_value: float,
    max_combinations: int = DEFAULT_MAX_COMBINATIONS,
    max_candidates: Optional[int] = None,
) -> List[List[Order]]:
    """
    寻找金额合计接近目标的订单组合

    Args:
        orders: 已按约束过滤的订单
        target_value: 目标金额
        max_combinations: 最多返回的组合数
        max_candidates: 候选订单上限；None 表示不限制

    Returns:
        组合列表（每个组合为订单列表），按 |合计 - 目标| 升序
    """
    if target_value is None or target_value <= 0 or max_combinations <= 0:
        return []

    candidates: List[Candidate] = []
    for order in orders:
        value = calculate_order_value(order)
        if 0 < value <= target_value:
            candidates.append((order, value))

    if max_candidates is not None and len(candidates) > max_candidates:
        logger.warning(f"组合搜索候选订单过多，截断: {len(candidates)} -> {max_candidates}")
        candidates = candidates[:max_candidates]

    combinations = _search_singles(candidates, target_value, max_combinations)
    if len(combinations) < max_combinations:
        combinations += _search_pairs(candidates, target_value, max_combinations - len(combinations))
    if len(combinations) < max_combinations:
        combinations += _search_triples(candidates, target_value, max_combinations - len(combinations))

    combinations.sort(key=lambda combo: abs(sum(v for _, v in combo) - target_value))

    logger.debug(
        f"组合搜索完成: 候选={len(candidates)}, 目标={target_value}, 组合={len(combinations)}"
    )
    return [[order for order, _ in combo] for combo in combinations[:max_combinations]]


__all__ = [
    "COMBINATION_TOLERANCE",
    "CONSTRAINT_MET_RATIO",
    "DEFAULT_MAX_COMBINATIONS",
    "within_tolerance",
    "is_constraint_met",
    "find_order_combinations",
]
