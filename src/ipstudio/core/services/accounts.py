"""AccountDirectory -- 用户目录维护

外部认证组件负责签发凭证；此处只维护本地用户记录：
注册、记录登录时间、注销（级联删除该用户的任务与角色）。
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiosqlite
import structlog
from pydantic import BaseModel, Field

from ..config import STORE_TIMEOUT_S
from ..exceptions import NotFoundError, ValidationError
from ..models import EntityType, IdentityContext, Operation, UserAccount
from ..policy.access_control import authorize, require
from ..store import StoreGroup, run_with_timeout
from ..timestamps import utc_now

log = structlog.get_logger()

_ENTITY = EntityType.USER_ACCOUNT


class AccountDeletion(BaseModel):
    """注销结果：级联删除的记录数"""

    user_id: str
    tasks_deleted: int = Field(default=0, description="级联删除的任务数")
    characters_deleted: int = Field(default=0, description="级联删除的角色数")


class AccountDirectory:
    """用户目录服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        clock: Callable[[], datetime] = utc_now,
        timeout: float | None = STORE_TIMEOUT_S,
    ) -> None:
        self._stores = store_group
        self._clock = clock
        self._timeout = timeout

    async def register_user(
        self,
        user_id: str,
        email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UserAccount:
        """登记认证组件创建的用户

        Raises:
            ValidationError: user_id 为空或已存在
        """
        if not user_id or not user_id.strip():
            raise ValidationError("id", "must not be empty")
        now = self._clock()
        account = UserAccount(
            id=user_id,
            email=email,
            raw_user_meta_data=metadata or {},
            created_at=now,
            updated_at=now,
        )
        await run_with_timeout(self._insert(account), self._timeout, "register_user")
        log.info("user_registered", user_id=user_id)
        return account

    async def record_sign_in(self, user_id: str) -> None:
        """记录登录时间

        Raises:
            NotFoundError: 用户不存在
        """
        signed_in_at = self._clock().isoformat()

        async def _update() -> int:
            async with self._stores.transaction():
                return await self._stores.user_store.record_sign_in(user_id, signed_in_at)

        changed = await run_with_timeout(_update(), self._timeout, "record_sign_in")
        if changed == 0:
            raise NotFoundError(_ENTITY.value, user_id)

    async def delete_user(self, identity: IdentityContext, user_id: str) -> AccountDeletion:
        """注销用户，级联删除其全部任务与角色

        Raises:
            NotFoundError: 用户不存在或调用方无权查看
            UnauthorizedError: 调用方无权注销该用户
        """
        summary = await run_with_timeout(
            self._apply_delete(identity, user_id),
            self._timeout,
            "delete_user",
        )
        log.info(
            "user_deleted",
            user_id=user_id,
            tasks_deleted=summary.tasks_deleted,
            characters_deleted=summary.characters_deleted,
        )
        return summary

    async def _insert(self, account: UserAccount) -> None:
        async with self._stores.transaction():
            try:
                await self._stores.user_store.create_user(account)
            except aiosqlite.IntegrityError as e:
                raise ValidationError("id", f"user {account.id} already exists") from e

    async def _apply_delete(self, identity: IdentityContext, user_id: str) -> AccountDeletion:
        async with self._stores.transaction():
            account = await self._stores.user_store.get_user(user_id)
            if account is None or not authorize(identity, Operation.READ, _ENTITY, account):
                raise NotFoundError(_ENTITY.value, user_id)
            require(identity, Operation.DELETE, _ENTITY, account)

            summary = AccountDeletion(
                user_id=user_id,
                tasks_deleted=await self._stores.task_store.count_tasks_by_owner(user_id),
                characters_deleted=await self._stores.character_store.count_characters_by_owner(
                    user_id
                ),
            )
            await self._stores.user_store.delete_user(user_id)
            return summary
