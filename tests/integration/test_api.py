"""
HTTP 接口集成测试

作者: Tom
创建时间: 2025-11-20T14:05:46+08:00 (Asia/Shanghai)

说明：
- 通过 set_router 注入内存版协作方，使用 FastAPI TestClient 调用接口
- 统一响应包装：{"code", "message", "success", "data"}
"""

import pytest
from fastapi.testclient import TestClient

import orchestrator
from api.main import app
from orchestrator.cache import CacheStore, ResultCache
from orchestrator.classifier import IntentClassifier
from orchestrator.router import QueryRouter
from tests.conftest import FakeOrderStore, FakeVectorSearch, hit_for


@pytest.fixture
def client(five_orders):
    router = QueryRouter(
        order_store=FakeOrderStore(five_orders),
        vector_service=FakeVectorSearch(results=[hit_for(o) for o in five_orders]),
        classifier=IntentClassifier(cache=CacheStore()),
        result_cache=ResultCache(CacheStore()),
    )
    orchestrator.set_router(router)
    yield TestClient(app)
    orchestrator.set_router(None)


def test_query_endpoint(client):
    """自然语言查询返回 camelCase 路由结果"""
    resp = client.post("/api/query", json={"query": "show me order 50001"})
    body = resp.json()

    assert resp.status_code == 200
    assert body["code"] == 0
    assert body["success"] is True
    assert body["data"]["strategy"] == "api"
    assert body["data"]["dataFreshness"] == "fresh"
    assert body["data"]["results"]["orders"][0]["jobNumber"] == "50001"


def test_query_endpoint_accepts_camel_case_flags(client):
    resp = client.post("/api/query", json={"query": "show me order 50002", "preferFreshData": True})
    assert resp.status_code == 200
    assert resp.json()["data"]["results"]["orders"][0]["jobNumber"] == "50002"


def test_query_validation_error(client):
    """空查询返回 422 与业务码 1001"""
    resp = client.post("/api/query", json={"query": ""})
    body = resp.json()

    assert resp.status_code == 422
    assert body["code"] == 1001
    assert body["success"] is False
    assert body["data"]["errors"]


def test_constraints_endpoint(client, five_orders):
    """约束求解接口"""
    payload = {
        "orders": [o.model_dump(mode="json", by_alias=True) for o in five_orders],
        "targetValue": 10000,
    }
    resp = client.post("/api/constraints", json=payload)
    data = resp.json()["data"]

    assert resp.status_code == 200
    assert data["success"] is True
    assert data["constraintMet"] is True
    assert data["totalValue"] == 9800.0
    assert data["constraintDetails"]["combinationsFound"] == 2
    assert "Found 2 different combinations" in data["summary"]


def test_constraints_endpoint_with_filter(client, five_orders):
    """约束 + 无目标金额"""
    payload = {
        "orders": [o.model_dump(mode="json", by_alias=True) for o in five_orders],
        "constraints": [{"type": "customer", "operator": "in", "value": ["Acme Apparel", "Delta Athletics"]}],
        "aggregation": {"type": "sum", "field": "value"},
    }
    data = client.post("/api/constraints", json=payload).json()["data"]

    assert data["orderCount"] == 2
    assert data["totalValue"] == 16000.0


def test_constraints_target_must_be_positive(client):
    resp = client.post("/api/constraints", json={"orders": [], "targetValue": 0})
    assert resp.status_code == 422
    assert resp.json()["code"] == 1001


def test_router_monitoring_endpoints(client):
    """统计、历史、清空缓存"""
    client.post("/api/query", json={"query": "show me order 50001"})
    client.post("/api/query", json={"query": "show me order 50001"})

    stats = client.get("/api/router/stats").json()["data"]
    assert stats["performance"]["total_queries"] == 2
    assert stats["performance"]["cache_hits"] == 1
    assert stats["cache"]["main_cache"]["size"] == 1

    history = client.get("/api/router/history", params={"limit": 1}).json()["data"]["history"]
    assert len(history) == 1
    assert history[0]["query"] == "show me order 50001"
    assert client.get("/api/router/history", params={"limit": 0}).status_code == 422

    cleared = client.delete("/api/router/cache").json()
    assert cleared["message"] == "Cache cleared"
    stats = client.get("/api/router/stats").json()["data"]
    assert stats["cache"]["main_cache"]["size"] == 0


def test_health_endpoint(client):
    data = client.get("/api/health").json()["data"]
    assert data == {"apiHealth": "healthy", "vectorHealth": "healthy", "cacheHealth": "healthy"}
