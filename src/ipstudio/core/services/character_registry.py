"""CharacterRegistry -- 用户 IP 角色增删改查

所有操作都按 owner_id 严格隔离：无匿名角色，service 角色也不能越权。
角色创建时只要求主图，视图、3D 模型、周边资源可后续逐步补全。
merchandise_status 没有流转约束，只保存最近一次的值。
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiosqlite
import structlog
from ulid import ULID

from ..config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, STORE_TIMEOUT_S
from ..exceptions import NotFoundError, ValidationError
from ..models import (
    CharacterPatch,
    EntityType,
    IdentityContext,
    NewCharacter,
    Operation,
    TaskStatus,
    UserIpCharacter,
)
from ..policy.access_control import authorize, require
from ..store import StoreGroup, run_with_timeout
from ..timestamps import utc_now

log = structlog.get_logger()

_ENTITY = EntityType.USER_IP_CHARACTER

# 不允许清空的字段
_REQUIRED_FIELDS = ("name", "main_image_ref")


class CharacterRegistry:
    """用户 IP 角色服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        clock: Callable[[], datetime] = utc_now,
        timeout: float | None = STORE_TIMEOUT_S,
    ) -> None:
        self._stores = store_group
        self._clock = clock
        self._timeout = timeout

    async def create_character(
        self,
        identity: IdentityContext,
        draft: NewCharacter,
        timeout: float | None = None,
    ) -> UserIpCharacter:
        """创建角色

        Raises:
            ValidationError: owner_id/name/main_image_ref 缺失
            UnauthorizedError: owner_id 不是调用方本人
        """
        if not draft.owner_id:
            raise ValidationError("owner_id", "characters must have an owner")
        for field in _REQUIRED_FIELDS:
            _require_text(field, getattr(draft, field))

        character = UserIpCharacter(
            id=str(ULID()),
            created_at=self._clock(),
            **draft.model_dump(),
        )
        require(identity, Operation.INSERT, _ENTITY, character)

        await run_with_timeout(self._insert(character), self._effective(timeout), "create_character")
        log.info("character_created", character_id=character.id, owner_id=character.owner_id)
        return character

    async def get_character(
        self,
        identity: IdentityContext,
        character_id: str,
        timeout: float | None = None,
    ) -> UserIpCharacter:
        """查询角色

        Raises:
            NotFoundError: 角色不存在或不属于调用方
        """
        character = await run_with_timeout(
            self._stores.read(self._stores.character_store.get_character, character_id),
            self._effective(timeout),
            "get_character",
        )
        if character is None or not authorize(identity, Operation.READ, _ENTITY, character):
            raise NotFoundError(_ENTITY.value, character_id)
        return character

    async def list_characters(
        self,
        identity: IdentityContext,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        timeout: float | None = None,
    ) -> list[UserIpCharacter]:
        """分页列出调用方自己的角色（created_at 倒序）"""
        if identity.user_id is None:
            return []
        if offset < 0:
            raise ValidationError("offset", "must be >= 0")
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        return await run_with_timeout(
            self._stores.read(
                self._stores.character_store.list_characters_by_owner,
                identity.user_id,
                limit,
                offset,
            ),
            self._effective(timeout),
            "list_characters",
        )

    async def update_character(
        self,
        identity: IdentityContext,
        character_id: str,
        patch: CharacterPatch,
        timeout: float | None = None,
    ) -> UserIpCharacter:
        """更新显式设置的字段（渐进补全）

        Raises:
            NotFoundError: 角色不存在或不属于调用方
            ValidationError: 试图清空 name/main_image_ref
        """
        changes = patch.changes()
        for field in _REQUIRED_FIELDS:
            if field in changes:
                _require_text(field, changes[field])

        updated = await run_with_timeout(
            self._apply_update(identity, character_id, changes),
            self._effective(timeout),
            "update_character",
        )
        if changes:
            log.info("character_updated", character_id=character_id, fields=sorted(changes))
        return updated

    async def set_merchandise_status(
        self,
        identity: IdentityContext,
        character_id: str,
        status: TaskStatus | str,
        merchandise_refs: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> UserIpCharacter:
        """记录周边生成子任务的最新状态（可同时写入周边资源引用）"""
        fields: dict[str, Any] = {"merchandise_status": status}
        if merchandise_refs is not None:
            fields["merchandise_refs"] = merchandise_refs
        try:
            patch = CharacterPatch(**fields)
        except ValueError as e:
            raise ValidationError("merchandise_status", str(e)) from None
        return await self.update_character(identity, character_id, patch, timeout=timeout)

    async def delete_character(
        self,
        identity: IdentityContext,
        character_id: str,
        timeout: float | None = None,
    ) -> None:
        """删除角色

        Raises:
            NotFoundError: 角色不存在或不属于调用方
        """
        await run_with_timeout(
            self._apply_delete(identity, character_id),
            self._effective(timeout),
            "delete_character",
        )
        log.info("character_deleted", character_id=character_id)

    async def _insert(self, character: UserIpCharacter) -> None:
        async with self._stores.transaction():
            try:
                await self._stores.character_store.create_character(character)
            except aiosqlite.IntegrityError as e:
                if "FOREIGN KEY" in str(e):
                    raise ValidationError("owner_id", f"unknown user {character.owner_id}") from e
                raise

    async def _load_for_write(
        self,
        identity: IdentityContext,
        character_id: str,
        operation: Operation,
    ) -> UserIpCharacter:
        current = await self._stores.character_store.get_character(character_id)
        if current is None or not authorize(identity, Operation.READ, _ENTITY, current):
            raise NotFoundError(_ENTITY.value, character_id)
        require(identity, operation, _ENTITY, current)
        return current

    async def _apply_update(
        self,
        identity: IdentityContext,
        character_id: str,
        changes: dict[str, Any],
    ) -> UserIpCharacter:
        async with self._stores.transaction():
            current = await self._load_for_write(identity, character_id, Operation.UPDATE)
            if changes:
                await self._stores.character_store.update_character(character_id, changes)
            return current.model_copy(update=changes)

    async def _apply_delete(self, identity: IdentityContext, character_id: str) -> None:
        async with self._stores.transaction():
            await self._load_for_write(identity, character_id, Operation.DELETE)
            await self._stores.character_store.delete_character(character_id)

    def _effective(self, timeout: float | None) -> float | None:
        return self._timeout if timeout is None else timeout


def _require_text(field: str, value: str | None) -> None:
    if value is None or not value.strip():
        raise ValidationError(field, "must not be empty")
