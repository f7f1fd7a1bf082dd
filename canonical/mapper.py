"""
数据转换工具 (OrderMapper)
将订单后端返回的作业载荷、向量检索命中的元数据转换为 Canonical 订单模型

作者: Tom
创建时间: 2025-10-31T11:36:48+08:00
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from loguru import logger

from canonical.models import (
    CustomerRef, LineItem, Order, OrderDates, OrderStatus,
    OrderTag, Pricing, ProductionInfo, strip_timezone,
)


class OrderMapper:
    """
    订单转换映射器

    提供统一的数据转换方法，将订单后端（PascalCase 作业结构）与向量库元数据
    （camelCase 扁平结构）标准化为 Order
    """

    # 金额中允许出现的货币符号
    CURRENCY_SYMBOLS = ["$", "¥", "￥", "€", "£"]

    @staticmethod
    def clean_text(value: Any) -> str:
        """清理文本：None 转空串，压缩空白"""
        if value is None:
            return ""
        return re.sub(r"\s+", " ", str(value)).strip()

    @staticmethod
    def normalize_date(date_value: Any) -> Optional[datetime]:
        """
        标准化日期

        Args:
            date_value: 日期值（ISO 字符串、datetime 或其它可解析格式）

        Returns:
            去时区后的 datetime，无法解析时返回 None
        """
        if not date_value:
            return None

        if isinstance(date_value, datetime):
            return strip_timezone(date_value)

        date_str = str(date_value).strip()
        if not date_str or date_str.lower() in ["none", "null"]:
            return None

        try:
            return strip_timezone(date_parser.parse(date_str))
        except (ValueError, OverflowError):
            logger.warning(f"无法解析日期格式: {date_value}")
            return None

    @staticmethod
    def normalize_amount(amount_value: Any) -> Optional[float]:
        """
        标准化金额：去除货币符号与千分位分隔符

        Returns:
            金额浮点数；缺失或无法解析时返回 None，由调用方决定默认值
        """
        if amount_value is None or isinstance(amount_value, bool):
            return None
        if isinstance(amount_value, (int, float)):
            return float(amount_value)

        amount_str = str(amount_value).strip()
        if not amount_str or amount_str.lower() in ["none", "null"]:
            return None
        for symbol in OrderMapper.CURRENCY_SYMBOLS:
            amount_str = amount_str.replace(symbol, "")
        amount_str = amount_str.replace(",", "").strip()
        try:
            return float(amount_str)
        except ValueError:
            logger.warning(f"无法解析金额格式: {amount_value}")
            return None

    @staticmethod
    def normalize_int(value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def split_list(value: Any) -> List[str]:
        """兼容列表与逗号分隔字符串两种形式"""
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if str(v).strip()]
        return [s.strip() for s in str(value).split(",") if s.strip()]

    def to_order(self, job: Dict[str, Any]) -> Order:
        """
        将订单后端的作业载荷映射为 Order

        Args:
            job: 后端作业字典，字段如 JobNumber/Client/DateDue/JobLines/JobTags

        Returns:
            Order

        Raises:
            ValueError: 缺失作业号等必填字段
        """
        job_number = job.get("JobNumber")
        if job_number in (None, ""):
            raise ValueError("作业载荷缺少 JobNumber")

        line_items = [
            LineItem(
                description=self.clean_text(line.get("Description")),
                quantity=self.normalize_amount(line.get("Qty", line.get("Quantity"))),
                unit_price=self.normalize_amount(line.get("UnitPrice")),
                total_price=self.normalize_amount(line.get("TotalPrice")),
                materials=self.split_list(line.get("Materials")),
            )
            for line in job.get("JobLines") or []
        ]

        tags = [
            OrderTag(
                tag=self.clean_text(tag.get("Tag")),
                entered_by=tag.get("WhoEnteredUsername"),
                date_entered=tag.get("WhenEnteredUtc"),
            )
            for tag in job.get("JobTags") or []
            if tag.get("Tag")
        ]

        pricing_raw = job.get("Pricing")
        pricing = None
        if isinstance(pricing_raw, dict) and pricing_raw.get("Total") is not None:
            pricing = Pricing(total=self.normalize_amount(pricing_raw.get("Total")))

        processes = [
            self.clean_text(pq.get("DisplayCode") or pq.get("Code"))
            for pq in job.get("ProcessQuantities") or []
            if pq.get("DisplayCode") or pq.get("Code")
        ]

        return Order(
            job_number=str(job_number),
            order_number=self.clean_text(job.get("OrderNumber")),
            customer=CustomerRef(
                id=self.normalize_int(job.get("CustomerId")),
                company=self.clean_text(job.get("Client")),
            ),
            description=self.clean_text(job.get("Description")),
            comments=self.clean_text(job.get("Comments")),
            job_quantity=self.normalize_amount(job.get("JobQuantity")),
            status=OrderStatus(
                master=self.clean_text(job.get("MasterJobStatus")),
                master_status_id=self.normalize_int(job.get("MasterJobStatusId")),
                stock=job.get("StockCompleteStatus"),
                status_line=job.get("StatusLine"),
            ),
            dates=OrderDates(
                date_entered=self.normalize_date(job.get("DateIn")),
                date_due=self.normalize_date(job.get("DateDue")),
                days_to_due_date=self.normalize_int(job.get("DaysToDueDate")),
            ),
            production=ProductionInfo(
                processes=processes,
                time_sensitive=bool(job.get("TimeSensitive")),
                must_date=bool(job.get("MustDate")),
                is_reprint=bool(job.get("IsReprint")),
            ),
            line_items=line_items,
            tags=tags,
            pricing=pricing,
            data_source="api",
        )

    def from_vector_metadata(self, metadata: Dict[str, Any]) -> Order:
        """
        将向量检索命中的元数据还原为仅含元数据的 Order（无行项目明细）

        Raises:
            ValueError: 元数据缺少作业号
        """
        job_number = metadata.get("jobNumber", metadata.get("job_number"))
        if job_number in (None, ""):
            raise ValueError("向量元数据缺少 jobNumber")

        total = metadata.get("pricingTotal", metadata.get("totalValue"))
        pricing = Pricing(total=self.normalize_amount(total)) if total is not None else None

        return Order(
            job_number=str(job_number),
            order_number=self.clean_text(metadata.get("orderNumber")),
            customer=CustomerRef(
                id=self.normalize_int(metadata.get("customerId")),
                company=self.clean_text(metadata.get("customerCompany", metadata.get("customer"))),
            ),
            description=self.clean_text(metadata.get("description")),
            comments=self.clean_text(metadata.get("comments")),
            job_quantity=self.normalize_amount(metadata.get("jobQuantity")),
            status=OrderStatus(master=self.clean_text(metadata.get("status"))),
            dates=OrderDates(
                date_entered=self.normalize_date(metadata.get("dateEntered")),
                date_due=self.normalize_date(metadata.get("dateDue")),
                days_to_due_date=self.normalize_int(metadata.get("daysToDueDate")),
            ),
            production=ProductionInfo(
                processes=self.split_list(metadata.get("processes")),
                time_sensitive=bool(metadata.get("timeSensitive")),
                must_date=bool(metadata.get("mustDate")),
                is_reprint=bool(metadata.get("isReprint")),
            ),
            tags=self.split_list(metadata.get("tags")),
            pricing=pricing,
            data_source="vector",
        )


__all__ = ["OrderMapper"]
