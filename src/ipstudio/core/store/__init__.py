"""IPStudio Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from .character_store import SqliteCharacterStore
from .protocols import CharacterStore, TaskStore, UserStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import atomic, compare_and_set_task_status, run_with_timeout
from .user_store import SqliteUserStore

T = TypeVar("T")


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接和写锁"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.task_store: TaskStore = SqliteTaskStore(conn)
        self.character_store: CharacterStore = SqliteCharacterStore(conn)
        self.user_store: UserStore = SqliteUserStore(conn)

    def transaction(self) -> AbstractAsyncContextManager[aiosqlite.Connection]:
        """在共享连接上开启原子写事务"""
        return atomic(self.conn, self.write_lock)

    async def read(self, query: Callable[..., Awaitable[T]], *args: Any) -> T:
        """在写锁内执行只读查询

        共享连接能看到其他协程尚未提交的写入；持锁期间不存在进行中的事务，
        因此只会读到已提交的状态。
        """
        async with self.write_lock:
            return await query(*args)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteCharacterStore",
    "SqliteUserStore",
    "init_db",
    "atomic",
    "compare_and_set_task_status",
    "run_with_timeout",
]
