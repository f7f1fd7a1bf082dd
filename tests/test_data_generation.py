"""
数据生成测试脚本
测试订单样例数据生成与向量元数据转换
"""

import json
import os
import tempfile
import unittest
from datetime import datetime

from canonical.mapper import OrderMapper
from data.order_data_generator import OrderDataGenerator


class TestOrderDataGeneration(unittest.TestCase):
    """订单数据生成测试类"""

    def setUp(self):
        """测试前准备"""
        self.today = datetime(2025, 11, 12)
        self.generator = OrderDataGenerator(seed=7, today=self.today)

    def test_generate_jobs_is_reproducible(self):
        """测试固定种子生成结果可复现"""
        first = self.generator.generate_jobs(10)
        second = OrderDataGenerator(seed=7, today=self.today).generate_jobs(10)

        self.assertEqual(first, second)
        self.assertEqual([j["JobNumber"] for j in first][:3], ["50001", "50002", "50003"])

    def test_generated_orders_are_valid(self):
        """测试生成的作业均可映射为订单"""
        orders = self.generator.generate_orders(30)

        self.assertEqual(len(orders), 30)
        self.assertEqual(len({o.job_number for o in orders}), 30)
        for order in orders:
            self.assertTrue(order.line_items)
            self.assertIsNotNone(order.dates.date_due)
            self.assertEqual(order.dates.days_to_due_date, (order.dates.date_due - self.today).days)
            if order.pricing is not None:
                line_total = sum(li.total_price for li in order.line_items)
                self.assertAlmostEqual(order.pricing.total, line_total, places=2)

    def test_vector_metadata_round_trip(self):
        """测试订单 -> 向量元数据 -> 订单 保留关键字段"""
        order = self.generator.generate_orders(1)[0]
        metadata = OrderDataGenerator.to_vector_metadata(order)
        restored = OrderMapper().from_vector_metadata(metadata)

        self.assertEqual(restored.job_number, order.job_number)
        self.assertEqual(restored.customer.company, order.customer.company)
        self.assertEqual(restored.dates.date_due, order.dates.date_due)
        self.assertEqual(restored.tag_names(), order.tag_names())
        self.assertEqual(restored.data_source, "vector")

    def test_save_to_json(self):
        """测试写入 JSON 文件"""
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "jobs.json")
            count = self.generator.save_to_json(path, count=5)

            with open(path, encoding="utf-8") as f:
                data = json.load(f)

        self.assertEqual(count, 5)
        self.assertEqual(data["TotalResults"], 5)
        self.assertEqual(len(data["Entities"]), 5)


if __name__ == "__main__":
    unittest.main()
