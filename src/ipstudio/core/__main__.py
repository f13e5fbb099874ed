"""CLI 入口模块 -- python -m ipstudio.core <command>

支持的命令：
  init-db               创建数据库表结构
  delete-user <user_id> 注销用户并级联删除其任务与角色
"""

import asyncio
import sys

from .config import get_db_path
from .logging_config import setup_logging

_USAGE = """用法: python -m ipstudio.core <command>
命令:
  init-db               创建数据库表结构
  delete-user <user_id> 注销用户并级联删除其任务与角色"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "delete-user" and len(sys.argv) == 3:
        asyncio.run(delete_user(sys.argv[2]))
    else:
        print(f"未知命令: {' '.join(sys.argv[1:])}")
        print(_USAGE)
        sys.exit(1)


async def init_database() -> None:
    """创建数据库表结构"""
    from .store import create_store_group

    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    await store_group.close()
    print(f"数据库已初始化: {db_path}")


async def delete_user(user_id: str) -> None:
    """以 service 身份注销用户"""
    from .exceptions import NotFoundError
    from .models import IdentityContext
    from .services import AccountDirectory
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        summary = await AccountDirectory(store_group).delete_user(
            IdentityContext.service(), user_id
        )
    except NotFoundError:
        print(f"用户不存在: {user_id}")
        sys.exit(1)
    finally:
        await store_group.close()

    print(
        f"已注销 {user_id}：删除 {summary.tasks_deleted} 个任务，"
        f"{summary.characters_deleted} 个角色"
    )


if __name__ == "__main__":
    main()
