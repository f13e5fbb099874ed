"""TaskStore SQLite 实现

仅负责 generation_tasks 表的行读写，不做授权、不提交事务。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.task import GenerationTask

_COLUMNS = (
    "id, owner_id, status, task_type, prompt, input_image_ref, result_image_ref, "
    "result_data, error_message, batch_id, parent_character_id, created_at, updated_at"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: GenerationTask) -> None:
        """创建任务记录"""
        await self._conn.execute(
            f"""
            INSERT INTO generation_tasks ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.owner_id,
                task.status.value,
                task.task_type,
                task.prompt,
                task.input_image_ref,
                task.result_image_ref,
                _dump_json(task.result_data),
                task.error_message,
                task.batch_id,
                task.parent_character_id,
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
            ),
        )

    async def get_task(self, task_id: str) -> GenerationTask | None:
        """根据 id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM generation_tasks WHERE id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks_by_owner(
        self,
        owner_id: str | None,
        limit: int,
        offset: int = 0,
    ) -> list[GenerationTask]:
        """按归属用户分页查询，created_at 倒序，同一时间按 id 倒序

        owner_id 为 None 时查询匿名任务。
        """
        if owner_id is None:
            where, params = "owner_id IS NULL", ()
        else:
            where, params = "owner_id = ?", (owner_id,)
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM generation_tasks
            WHERE {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, offset),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_tasks_by_batch(self, batch_id: str) -> list[GenerationTask]:
        """查询同一批次的所有任务，按提交顺序"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM generation_tasks
            WHERE batch_id = ?
            ORDER BY created_at ASC, id ASC
            """,
            (batch_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_tasks_by_parent_character(self, character_id: str) -> list[GenerationTask]:
        """查询从指定角色派生的任务"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM generation_tasks
            WHERE parent_character_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (character_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_task_status(
        self,
        task: GenerationTask,
        expected_status: str,
    ) -> int:
        """条件更新任务状态及结果字段

        仅当库中状态仍为 expected_status 时写入，返回受影响行数（0 或 1）。
        """
        cursor = await self._conn.execute(
            """
            UPDATE generation_tasks
            SET status = ?, result_image_ref = ?, result_data = ?,
                error_message = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (
                task.status.value,
                task.result_image_ref,
                _dump_json(task.result_data),
                task.error_message,
                task.updated_at.isoformat(),
                task.id,
                expected_status,
            ),
        )
        return cursor.rowcount

    async def count_tasks_by_owner(self, owner_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM generation_tasks WHERE owner_id = ?",
            (owner_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> GenerationTask:
        """将数据库行转换为 GenerationTask 模型"""
        return GenerationTask(
            id=row[0],
            owner_id=row[1],
            status=row[2],
            task_type=row[3],
            prompt=row[4],
            input_image_ref=row[5],
            result_image_ref=row[6],
            result_data=json.loads(row[7]) if row[7] else None,
            error_message=row[8],
            batch_id=row[9],
            parent_character_id=row[10],
            created_at=datetime.fromisoformat(row[11]),
            updated_at=datetime.fromisoformat(row[12]),
        )


def _dump_json(value: dict | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)
