"""
配置管理模块
负责加载和管理查询路由与约束求解引擎的所有配置项
"""

import os
from typing import Dict, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv
from pathlib import Path

# 项目根目录（确保无论从何处运行，都定位到项目根的 .env）
_ROOT_DIR = Path(__file__).resolve().parents[1]

# 加载环境变量（显式指定项目根 .env，避免因工作目录变化导致加载错误）
load_dotenv(dotenv_path=_ROOT_DIR / ".env")


class Settings(BaseSettings):
    """应用程序配置类"""

    model_config = SettingsConfigDict(
        env_file=str(_ROOT_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 应用基础配置
    app_name: str = Field(default="OMS-Query-Router")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=True)

    # 语义分类 LLM 配置（OpenAI 兼容接口）
    openai_api_key: str = Field(default="")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    default_model: str = Field(default="gpt-4o-mini")
    max_tokens: int = Field(default=1000)
    temperature: float = Field(default=0.1)
    classification_timeout_ms: int = Field(default=10000, ge=100)

    # 订单管理后端配置
    order_api_base_url: str = Field(default="http://localhost:8080/api")
    order_api_key: str = Field(default="")
    order_api_timeout_ms: int = Field(default=15000, ge=100)
    order_api_page_size: int = Field(default=500, ge=1)

    # 向量检索服务配置
    vector_service_url: str = Field(default="http://localhost:8090")
    vector_service_api_key: str = Field(default="")
    vector_timeout_ms: int = Field(default=10000, ge=100)

    # 结果缓存配置（秒）
    cache_ttl_specific_s: int = Field(default=120, ge=0)
    cache_ttl_filter_s: int = Field(default=300, ge=0)
    cache_ttl_search_s: int = Field(default=600, ge=0)
    cache_ttl_default_s: int = Field(default=300, ge=0)
    intent_cache_ttl_s: int = Field(default=300, ge=0)
    cache_max_entries: int = Field(default=500, ge=1)
    cache_sweep_interval_s: int = Field(default=600, ge=1)

    # 路由行为配置
    query_history_size: int = Field(default=100, ge=1)
    hybrid_max_enrichment: int = Field(default=10, ge=0)
    combination_max_candidates: Optional[int] = Field(default=None, ge=1)

    # 日志配置
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="./logs/app.log")

    def get_log_dir(self) -> str:
        """获取日志目录路径"""
        return os.path.dirname(self.log_file)

    def ensure_directories(self) -> None:
        """确保必要的目录存在"""
        directory = self.get_log_dir()
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)


# 全局配置实例
settings = Settings()


def get_settings() -> Settings:
    """获取配置实例"""
    return settings


def validate_api_key() -> bool:
    """验证 LLM API 密钥是否配置"""
    return bool(settings.openai_api_key and settings.openai_api_key != "your_openai_api_key_here")


def get_model_config() -> dict:
    """获取模型配置"""
    return {
        "model": settings.default_model,
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature
    }


def get_cache_ttls() -> Dict[str, int]:
    """按意图类型返回结果缓存 TTL（秒）"""
    return {
        "specific": settings.cache_ttl_specific_s,
        "filter": settings.cache_ttl_filter_s,
        "search": settings.cache_ttl_search_s,
        "default": settings.cache_ttl_default_s,
    }
