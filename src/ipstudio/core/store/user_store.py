"""UserStore SQLite 实现

users 表是外部认证目录的本地镜像；删除用户会级联删除其任务和角色。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.account import UserAccount

_COLUMNS = "id, email, raw_user_meta_data, created_at, updated_at, last_sign_in_at"


class SqliteUserStore:
    """UserStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_user(self, account: UserAccount) -> None:
        """创建用户记录"""
        await self._conn.execute(
            f"INSERT INTO users ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
            (
                account.id,
                account.email,
                json.dumps(account.raw_user_meta_data, ensure_ascii=False),
                account.created_at.isoformat(),
                account.updated_at.isoformat(),
                account.last_sign_in_at.isoformat() if account.last_sign_in_at else None,
            ),
        )

    async def get_user(self, user_id: str) -> UserAccount | None:
        """根据 id 查询用户"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM users WHERE id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    async def record_sign_in(self, user_id: str, signed_in_at: str) -> int:
        """更新最近登录时间，返回受影响行数"""
        cursor = await self._conn.execute(
            "UPDATE users SET last_sign_in_at = ?, updated_at = ? WHERE id = ?",
            (signed_in_at, signed_in_at, user_id),
        )
        return cursor.rowcount

    async def delete_user(self, user_id: str) -> int:
        """删除用户（外键级联删除任务与角色），返回受影响行数"""
        cursor = await self._conn.execute(
            "DELETE FROM users WHERE id = ?",
            (user_id,),
        )
        return cursor.rowcount

    @staticmethod
    def _row_to_account(row: aiosqlite.Row) -> UserAccount:
        """将数据库行转换为 UserAccount 模型"""
        return UserAccount(
            id=row[0],
            email=row[1],
            raw_user_meta_data=json.loads(row[2]) if row[2] else {},
            created_at=datetime.fromisoformat(row[3]),
            updated_at=datetime.fromisoformat(row[4]),
            last_sign_in_at=datetime.fromisoformat(row[5]) if row[5] else None,
        )
