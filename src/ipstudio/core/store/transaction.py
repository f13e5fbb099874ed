"""原子事务封装

- atomic(): 串行化同一连接上的写事务，成功提交、任何异常（含取消）回滚
- compare_and_set_task_status(): 读-校验-写中的条件写入，竞争失败抛出冲突
- run_with_timeout(): 存储操作超时转换为可重试的 StoreTimeoutError
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import TypeVar

import aiosqlite
import structlog

from ..exceptions import StoreTimeoutError, TaskStatusConflictError
from ..models.task import GenerationTask
from .protocols import TaskStore

log = structlog.get_logger()

T = TypeVar("T")


@asynccontextmanager
async def atomic(
    conn: aiosqlite.Connection,
    write_lock: asyncio.Lock,
) -> AsyncIterator[aiosqlite.Connection]:
    """在同一事务内执行写操作

    Args:
        conn: 数据库连接
        write_lock: 同一连接共享的写锁

    Raises:
        Exception: 事务内任何异常都会先回滚再向上抛出
    """
    async with write_lock:
        try:
            yield conn
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise


async def compare_and_set_task_status(
    task_store: TaskStore,
    task: GenerationTask,
    expected_status: str,
) -> None:
    """仅当库中状态仍为 expected_status 时写入新状态

    Raises:
        TaskStatusConflictError: 状态已被其他写入方改变（或记录已删除）
    """
    changed = await task_store.update_task_status(task, expected_status)
    if changed == 0:
        current = await task_store.get_task(task.id)
        raise TaskStatusConflictError(
            task.id,
            expected_status,
            current.status.value if current else None,
        )


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout: float | None,
    operation: str,
) -> T:
    """为存储操作设置超时

    Args:
        awaitable: 存储操作
        timeout: 超时秒数，None 表示不限
        operation: 操作名（日志与异常使用）

    Raises:
        StoreTimeoutError: 超时，事务已回滚
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TimeoutError:
        log.warning("store_operation_timeout", operation=operation, timeout=timeout)
        raise StoreTimeoutError(operation, timeout) from None
