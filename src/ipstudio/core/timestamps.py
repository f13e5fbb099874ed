"""updated_at 维护钩子

每次成功更新 GenerationTask 时由 TaskLifecycleStore 调用一次：
在校验之后、提交之前执行，无条件覆盖调用方传入的 updated_at。
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)


def utc_now() -> datetime:
    return datetime.now(UTC)


def touch_updated_at(
    record: ModelT,
    clock: Callable[[], datetime] = utc_now,
) -> ModelT:
    """返回 updated_at 刷新为当前时间的副本

    时钟回拨时保持原值，保证 updated_at 单调不减。

    Args:
        record: 带 updated_at 字段的记录
        clock: 时间来源（测试可注入）

    Returns:
        新的记录副本
    """
    now = as_utc(clock())
    previous = getattr(record, "updated_at", None)
    if previous is not None and as_utc(previous) > now:
        now = as_utc(previous)
    return record.model_copy(update={"updated_at": now})


def as_utc(value: datetime) -> datetime:
    """统一为 UTC 时区；naive 时间按 UTC 解释"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
