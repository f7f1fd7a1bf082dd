"""
自然语言约束解析
从查询文本中识别到期日期区间、目标金额与审批状态约束

作者: Tom
创建时间: 2025-11-13T16:02:44+08:00 (Asia/Shanghai)
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta
from loguru import logger

from canonical.models import Constraint, ConstraintOperator, ConstraintType, ParsedConstraints

DATE_PATTERN = re.compile(
    r"(?:due|by|on)\s+(next\s+week|this\s+week|next\s+month|today|tomorrow|(\d{1,2}/\d{1,2}|\d{4}-\d{2}-\d{2}))",
    re.IGNORECASE,
)

VALUE_PATTERN = re.compile(
    r"(?:add\s+up\s+to|total|value\s+of)\s+(\$?[\d,]+(?:\.\d{2})?)(?:\s*(k|thousand)\b)?",
    re.IGNORECASE,
)

APPROVED_PATTERN = re.compile(r"(?<!not\s)\bapproved\b", re.IGNORECASE)


def _day_span(start: date, end: date) -> Tuple[datetime, datetime]:
    """闭区间：起始日 00:00 至结束日 23:59:59.999999"""
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def parse_date_range(text: str, today: Optional[date] = None) -> Optional[Tuple[datetime, datetime]]:
    """
    解析日期短语为闭区间；一周按周一至周日计算

    支持: next week / this week / next month / today / tomorrow / M/D / YYYY-MM-DD

    Returns:
        (start, end)，无法解析时返回 None
    """
    today = today or date.today()
    phrase = re.sub(r"\s+", " ", text.strip().lower())

    week_start = today - timedelta(days=today.weekday())
    if phrase == "this week":
        return _day_span(week_start, week_start + timedelta(days=6))
    if phrase == "next week":
        start = week_start + timedelta(days=7)
        return _day_span(start, start + timedelta(days=6))
    if phrase == "next month":
        start = today.replace(day=1) + relativedelta(months=1)
        return _day_span(start, start + relativedelta(months=1) - timedelta(days=1))
    if phrase == "today":
        return _day_span(today, today)
    if phrase == "tomorrow":
        tomorrow = today + timedelta(days=1)
        return _day_span(tomorrow, tomorrow)

    try:
        if "/" in phrase:
            month, day = (int(p) for p in phrase.split("/"))
            day_value = date(today.year, month, day)
        else:
            day_value = date.fromisoformat(phrase)
    except ValueError:
        logger.warning(f"无法解析日期短语: {text}")
        return None
    return _day_span(day_value, day_value)


def parse_constraints(query: str, today: Optional[date] = None) -> ParsedConstraints:
    """
    从查询文本解析约束与目标金额

    - due/by/on + 日期短语 -> 到期日 between 约束
    - add up to / total / value of + 金额（支持 $、千分位、k/thousand）-> target_value
    - 含独立单词 "approved"（不含 unapproved / not approved）-> 状态等于 "Approved"
    """
    constraints = []
    target_value: Optional[float] = None

    date_match = DATE_PATTERN.search(query)
    if date_match:
        date_range = parse_date_range(date_match.group(1), today=today)
        if date_range:
            constraints.append(
                Constraint(
                    type=ConstraintType.DATE,
                    operator=ConstraintOperator.BETWEEN,
                    field="dueDate",
                    value=date_range[0],
                    secondary_value=date_range[1],
                )
            )

    value_match = VALUE_PATTERN.search(query)
    if value_match:
        amount = value_match.group(1).replace("$", "").replace(",", "")
        try:
            target_value = float(amount)
        except ValueError:
            logger.warning(f"无法解析目标金额: {value_match.group(1)}")
        else:
            if value_match.group(2):
                target_value *= 1000

    if APPROVED_PATTERN.search(query):
        constraints.append(
            Constraint(
                type=ConstraintType.STATUS,
                operator=ConstraintOperator.EQUALS,
                field="status",
                value="Approved",
            )
        )

    logger.debug(f"约束解析: query='{query}', 约束={len(constraints)}, 目标金额={target_value}")
    return ParsedConstraints(constraints=constraints, target_value=target_value)


__all__ = ["DATE_PATTERN", "VALUE_PATTERN", "APPROVED_PATTERN", "parse_date_range", "parse_constraints"]
