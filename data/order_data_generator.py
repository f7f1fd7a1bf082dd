"""
订单模拟数据生成器
生成订单后端格式（PascalCase 作业载荷）的样例订单，并可转换为向量检索元数据，
用于演示与较大规模的测试数据
"""

import json
import random
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from canonical.mapper import OrderMapper
from canonical.models import Order


class OrderDataGenerator:
    """订单数据生成器（固定种子可复现）"""

    def __init__(self, seed: int = 42, today: Optional[datetime] = None):
        self.random = random.Random(seed)
        self.today = (today or datetime.now()).replace(hour=0, minute=0, second=0, microsecond=0)
        self.mapper = OrderMapper()
        self.clients = [
            "Acme Apparel", "Blue Ridge Outfitters", "Coastal Promotions", "Delta Athletics",
            "Evergreen Schools", "Foxtrot Brewing", "Granite Construction", "Harbor Hospital",
        ]
        self.statuses = ["Approved", "Unapproved", "In Production", "Completed", "Shipped", "On Hold"]
        self.processes = ["EM", "SP", "HW", "DTG", "LASER", "HT"]
        self.tags = ["@laser", "production", "urgent", "gamma", "ps-done", "priority", "reprint"]
        self.products = [
            ("Embroidered polo", 18.5), ("Screen printed tee", 7.25), ("Laser engraved tumbler", 14.0),
            ("Hardware kit", 22.0), ("Heat transfer hoodie", 26.75), ("Embroidered cap", 11.5),
        ]

    def _job(self, sequence: int) -> Dict[str, Any]:
        rnd = self.random
        entered = self.today - timedelta(days=rnd.randint(1, 45))
        due = self.today + timedelta(days=rnd.randint(-10, 40))

        lines = []
        for _ in range(rnd.randint(1, 3)):
            description, unit_price = rnd.choice(self.products)
            qty = rnd.choice([12, 24, 48, 72, 144, 288])
            lines.append(
                {
                    "Description": description,
                    "Qty": qty,
                    "UnitPrice": unit_price,
                    "TotalPrice": round(qty * unit_price, 2),
                    "Materials": rnd.sample(["cotton", "polyester", "steel", "thread", "vinyl"], 2),
                }
            )

        job = {
            "JobNumber": str(50000 + sequence),
            "OrderNumber": f"SO-{10000 + sequence}",
            "CustomerId": rnd.randint(100, 999),
            "Client": rnd.choice(self.clients),
            "Description": " / ".join(line["Description"] for line in lines),
            "Comments": rnd.choice(["", "Rush if possible", "Customer supplied artwork", "Split shipment"]),
            "JobQuantity": sum(line["Qty"] for line in lines),
            "MasterJobStatus": rnd.choice(self.statuses),
            "DateIn": entered.isoformat(),
            "DateDue": due.isoformat(),
            "DaysToDueDate": (due - self.today).days,
            "ProcessQuantities": [{"DisplayCode": p} for p in rnd.sample(self.processes, rnd.randint(1, 2))],
            "TimeSensitive": rnd.random() < 0.2,
            "MustDate": rnd.random() < 0.1,
            "IsReprint": rnd.random() < 0.05,
            "JobLines": lines,
            "JobTags": [{"Tag": t, "WhoEnteredUsername": "csr"} for t in rnd.sample(self.tags, rnd.randint(0, 2))],
        }
        if rnd.random() < 0.7:
            job["Pricing"] = {"Total": round(sum(line["TotalPrice"] for line in lines), 2)}
        return job

    def generate_jobs(self, count: int = 50) -> List[Dict[str, Any]]:
        """生成后端格式的作业载荷"""
        return [self._job(i + 1) for i in range(count)]

    def generate_orders(self, count: int = 50) -> List[Order]:
        """生成 Canonical 订单"""
        return [self.mapper.to_order(job) for job in self.generate_jobs(count)]

    @staticmethod
    def to_vector_metadata(order: Order) -> Dict[str, Any]:
        """订单 -> 向量检索元数据（扁平 camelCase）"""
        return {
            "jobNumber": order.job_number,
            "orderNumber": order.order_number,
            "customerId": order.customer.id,
            "customerCompany": order.customer.company,
            "description": order.description,
            "comments": order.comments,
            "jobQuantity": order.job_quantity,
            "status": order.status.master,
            "dateEntered": order.dates.date_entered.isoformat() if order.dates.date_entered else None,
            "dateDue": order.dates.date_due.isoformat() if order.dates.date_due else None,
            "daysToDueDate": order.dates.days_to_due_date,
            "processes": list(order.production.processes),
            "timeSensitive": order.production.time_sensitive,
            "mustDate": order.production.must_date,
            "isReprint": order.production.is_reprint,
            "tags": order.tag_names(),
            "pricingTotal": order.pricing.total if order.pricing else None,
        }

    def save_to_json(self, path: str, count: int = 50) -> int:
        """将作业载荷写入 JSON 文件（{"Entities": [...]}，与后端列表接口一致）"""
        jobs = self.generate_jobs(count)
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"Entities": jobs, "TotalResults": len(jobs)}, indent=2), encoding="utf-8")
        logger.info(f"订单样例数据已写入 {target}，共 {len(jobs)} 条")
        return len(jobs)


def main():
    OrderDataGenerator().save_to_json("./data/sample_jobs.json")


if __name__ == "__main__":
    main()
