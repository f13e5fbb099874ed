"""Store Protocol 接口定义

定义 TaskStore、CharacterStore、UserStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Any, Protocol

from ..models.account import UserAccount
from ..models.character import UserIpCharacter
from ..models.task import GenerationTask


class TaskStore(Protocol):
    """GenerationTask 存储接口"""

    async def create_task(self, task: GenerationTask) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str) -> GenerationTask | None:
        """根据 id 查询任务"""
        ...

    async def list_tasks_by_owner(
        self,
        owner_id: str | None,
        limit: int,
        offset: int = 0,
    ) -> list[GenerationTask]:
        """按归属用户分页查询"""
        ...

    async def list_tasks_by_batch(self, batch_id: str) -> list[GenerationTask]:
        """查询同一批次的所有任务"""
        ...

    async def list_tasks_by_parent_character(self, character_id: str) -> list[GenerationTask]:
        """查询从指定角色派生的任务"""
        ...

    async def update_task_status(self, task: GenerationTask, expected_status: str) -> int:
        """条件更新任务状态，返回受影响行数"""
        ...

    async def count_tasks_by_owner(self, owner_id: str) -> int:
        ...


class CharacterStore(Protocol):
    """UserIpCharacter 存储接口"""

    async def create_character(self, character: UserIpCharacter) -> None:
        ...

    async def get_character(self, character_id: str) -> UserIpCharacter | None:
        ...

    async def list_characters_by_owner(
        self,
        owner_id: str,
        limit: int,
        offset: int = 0,
    ) -> list[UserIpCharacter]:
        ...

    async def update_character(self, character_id: str, changes: dict[str, Any]) -> int:
        ...

    async def delete_character(self, character_id: str) -> int:
        ...

    async def count_characters_by_owner(self, owner_id: str) -> int:
        ...


class UserStore(Protocol):
    """用户目录存储接口"""

    async def create_user(self, account: UserAccount) -> None:
        ...

    async def get_user(self, user_id: str) -> UserAccount | None:
        ...

    async def record_sign_in(self, user_id: str, signed_in_at: str) -> int:
        ...

    async def delete_user(self, user_id: str) -> int:
        """删除用户并级联删除其拥有的记录"""
        ...
