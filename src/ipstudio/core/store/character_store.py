"""CharacterStore SQLite 实现

仅负责 user_ip_characters 表的行读写，不做授权、不提交事务。
"""

import json
from datetime import datetime
from typing import Any

import aiosqlite

from ..exceptions import ValidationError
from ..models.character import UserIpCharacter

_COLUMNS = (
    "id, owner_id, name, description, main_image_ref, left_view_ref, back_view_ref, "
    "model_3d_ref, merchandise_refs, merchandise_status, created_at"
)

# 允许更新的列（id、owner_id、created_at 不可变）
_MUTABLE_COLUMNS = frozenset(
    {
        "name",
        "description",
        "main_image_ref",
        "left_view_ref",
        "back_view_ref",
        "model_3d_ref",
        "merchandise_refs",
        "merchandise_status",
    }
)


class SqliteCharacterStore:
    """CharacterStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_character(self, character: UserIpCharacter) -> None:
        """创建角色记录"""
        await self._conn.execute(
            f"""
            INSERT INTO user_ip_characters ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                character.id,
                character.owner_id,
                character.name,
                character.description,
                character.main_image_ref,
                character.left_view_ref,
                character.back_view_ref,
                character.model_3d_ref,
                _dump_json(character.merchandise_refs),
                character.merchandise_status.value if character.merchandise_status else None,
                character.created_at.isoformat(),
            ),
        )

    async def get_character(self, character_id: str) -> UserIpCharacter | None:
        """根据 id 查询角色"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM user_ip_characters WHERE id = ?",
            (character_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_character(row)

    async def list_characters_by_owner(
        self,
        owner_id: str,
        limit: int,
        offset: int = 0,
    ) -> list[UserIpCharacter]:
        """按归属用户分页查询，created_at 倒序，同一时间按 id 倒序"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM user_ip_characters
            WHERE owner_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (owner_id, limit, offset),
        )
        rows = await cursor.fetchall()
        return [self._row_to_character(row) for row in rows]

    async def update_character(self, character_id: str, changes: dict[str, Any]) -> int:
        """更新指定列，返回受影响行数"""
        unknown = set(changes) - _MUTABLE_COLUMNS
        if unknown:
            raise ValidationError(",".join(sorted(unknown)), "immutable or unknown column")
        if not changes:
            return 0

        assignments = ", ".join(f"{column} = ?" for column in changes)
        values = [_to_column_value(column, value) for column, value in changes.items()]
        cursor = await self._conn.execute(
            f"UPDATE user_ip_characters SET {assignments} WHERE id = ?",
            (*values, character_id),
        )
        return cursor.rowcount

    async def delete_character(self, character_id: str) -> int:
        """删除角色，返回受影响行数"""
        cursor = await self._conn.execute(
            "DELETE FROM user_ip_characters WHERE id = ?",
            (character_id,),
        )
        return cursor.rowcount

    async def count_characters_by_owner(self, owner_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM user_ip_characters WHERE owner_id = ?",
            (owner_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_character(row: aiosqlite.Row) -> UserIpCharacter:
        """将数据库行转换为 UserIpCharacter 模型"""
        return UserIpCharacter(
            id=row[0],
            owner_id=row[1],
            name=row[2],
            description=row[3],
            main_image_ref=row[4],
            left_view_ref=row[5],
            back_view_ref=row[6],
            model_3d_ref=row[7],
            merchandise_refs=json.loads(row[8]) if row[8] else None,
            merchandise_status=row[9],
            created_at=datetime.fromisoformat(row[10]),
        )


def _to_column_value(column: str, value: Any) -> Any:
    if column == "merchandise_refs":
        return _dump_json(value)
    if column == "merchandise_status" and value is not None:
        return str(value)
    return value


def _dump_json(value: dict | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)
