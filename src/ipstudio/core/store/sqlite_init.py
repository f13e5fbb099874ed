"""SQLite 数据库初始化

PRAGMA 配置 + 三张表 DDL + 索引创建。
users 表代替外部认证目录，任务与角色随用户级联删除。
"""

import aiosqlite

from ..config import BUSY_TIMEOUT_MS

_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    id                  TEXT PRIMARY KEY,
    email               TEXT,
    raw_user_meta_data  TEXT NOT NULL DEFAULT '{}',
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    last_sign_in_at     TEXT
);
"""

_GENERATION_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS generation_tasks (
    id                   TEXT PRIMARY KEY,
    owner_id             TEXT REFERENCES users(id) ON DELETE CASCADE,
    status               TEXT NOT NULL
                         CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    task_type            TEXT NOT NULL,
    prompt               TEXT NOT NULL,
    input_image_ref      TEXT,
    result_image_ref     TEXT,
    result_data          TEXT,
    error_message        TEXT,
    batch_id             TEXT,
    parent_character_id  TEXT,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL
);
"""

_GENERATION_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_generation_tasks_owner_id ON generation_tasks(owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_generation_tasks_status ON generation_tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_generation_tasks_task_type ON generation_tasks(task_type);",
    "CREATE INDEX IF NOT EXISTS idx_generation_tasks_created_at ON generation_tasks(created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_generation_tasks_batch_id ON generation_tasks(batch_id);",
    (
        "CREATE INDEX IF NOT EXISTS idx_generation_tasks_parent_character_id "
        "ON generation_tasks(parent_character_id);"
    ),
]

_USER_IP_CHARACTERS_DDL = """
CREATE TABLE IF NOT EXISTS user_ip_characters (
    id                  TEXT PRIMARY KEY,
    owner_id            TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name                TEXT NOT NULL,
    description         TEXT,
    main_image_ref      TEXT NOT NULL,
    left_view_ref       TEXT,
    back_view_ref       TEXT,
    model_3d_ref        TEXT,
    merchandise_refs    TEXT,
    merchandise_status  TEXT
                        CHECK (merchandise_status IN ('pending', 'processing', 'completed', 'failed')),
    created_at          TEXT NOT NULL
);
"""

_USER_IP_CHARACTERS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_user_ip_characters_owner_id ON user_ip_characters(owner_id);",
    (
        "CREATE INDEX IF NOT EXISTS idx_user_ip_characters_created_at "
        "ON user_ip_characters(created_at DESC);"
    ),
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute(f"PRAGMA busy_timeout = {int(BUSY_TIMEOUT_MS)};")

    await conn.execute(_USERS_DDL)
    await conn.execute(_GENERATION_TASKS_DDL)
    await conn.execute(_USER_IP_CHARACTERS_DDL)

    for idx_sql in _GENERATION_TASKS_INDEXES + _USER_IP_CHARACTERS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_foreign_keys(conn: aiosqlite.Connection) -> bool:
    """验证外键约束是否生效（级联删除依赖此项）"""
    cursor = await conn.execute("PRAGMA foreign_keys;")
    row = await cursor.fetchone()
    return row is not None and row[0] == 1
