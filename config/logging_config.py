"""
日志配置模块
为路由引擎注册统一的 loguru 文件输出（按天滚动，保留 7 天）
"""

from loguru import logger

from config.settings import get_settings

_configured = False


def setup_logging() -> None:
    """注册文件日志输出，重复调用只生效一次"""
    global _configured
    if _configured:
        return

    settings = get_settings()
    settings.ensure_directories()
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
    )
    _configured = True
    logger.info(f"日志输出已注册: {settings.log_file} (level={settings.log_level})")
