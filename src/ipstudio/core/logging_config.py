"""structlog 配置

CLI 启动时调用 setup_logging()：
- IPSTUDIO_LOG_FORMAT: "dev"（默认，控制台可读输出）或 "json"
- IPSTUDIO_LOG_LEVEL: debug / info / warning / error，低于该级别的事件在绑定层直接丢弃

拒绝访问事件只保留操作、实体类型与调用方身份，记录内容不会进入日志。
"""

import logging
import os
from collections.abc import MutableMapping
from typing import Any

import structlog

# 不得携带记录内容的事件 -> 允许输出的字段
_REDACTED_EVENTS: dict[str, frozenset[str]] = {
    "access_denied": frozenset({"event", "operation", "entity_type", "user_id", "role"}),
    "asset_access_denied": frozenset(
        {"event", "operation", "bucket", "owner", "user_id", "role"}
    ),
}

# 每次 SQL 调用都会输出 debug 日志的第三方 logger
_NOISY_LOGGERS = ("aiosqlite",)


def drop_record_contents(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """拒绝访问事件去掉白名单以外的字段"""
    allowed = _REDACTED_EVENTS.get(event_dict.get("event", ""))
    if allowed is None:
        return event_dict
    # 以下划线开头的是 ProcessorFormatter 内部字段
    return {
        key: value
        for key, value in event_dict.items()
        if key in allowed or key.startswith("_")
    }


def resolve_level(name: str | None) -> int:
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> None:
    """初始化 structlog 与标准库 logging"""
    log_format = os.environ.get("IPSTUDIO_LOG_FORMAT", "dev")
    level = resolve_level(os.environ.get("IPSTUDIO_LOG_LEVEL"))

    shared_processors: list[structlog.types.Processor] = [
        drop_record_contents,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
