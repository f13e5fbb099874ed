"""记录级访问控制

authorize() 是 (身份, 操作, 实体类型, 记录) 的纯函数，不访问存储。
每个实体类型一张 操作 -> 谓词 表；表中缺失的操作一律拒绝。

- GenerationTask: 本人或匿名任务可 read/insert/update；service 角色全部放行
- UserIpCharacter: 所有操作都要求 owner_id 与调用方一致，无匿名、无 service 放行
- UserProfile: 仅可读取本人
- UserAccount: 本人可读取/注销；service 角色可管理所有账户
"""

from collections.abc import Callable
from typing import Any

import structlog

from ..exceptions import UnauthorizedError
from ..models.enums import EntityType, Operation
from ..models.identity import IdentityContext

log = structlog.get_logger()

Predicate = Callable[[IdentityContext, Any], bool]


def _is_owner(identity: IdentityContext, owner_id: str | None) -> bool:
    # 匿名调用方不匹配任何归属，包括 owner_id 为 None 的记录
    return identity.user_id is not None and owner_id == identity.user_id


def _task_owned_or_public(identity: IdentityContext, record: Any) -> bool:
    return record.owner_id is None or _is_owner(identity, record.owner_id)


def _character_owned(identity: IdentityContext, record: Any) -> bool:
    return _is_owner(identity, record.owner_id)


def _own_profile(identity: IdentityContext, record: Any) -> bool:
    return _is_owner(identity, record.id)


_POLICIES: dict[EntityType, dict[Operation, Predicate]] = {
    # 任务没有 delete 谓词，只会随用户级联删除
    EntityType.GENERATION_TASK: {
        Operation.READ: _task_owned_or_public,
        Operation.INSERT: _task_owned_or_public,
        Operation.UPDATE: _task_owned_or_public,
    },
    EntityType.USER_IP_CHARACTER: {
        Operation.READ: _character_owned,
        Operation.INSERT: _character_owned,
        Operation.UPDATE: _character_owned,
        Operation.DELETE: _character_owned,
    },
    EntityType.USER_PROFILE: {
        Operation.READ: _own_profile,
    },
    # 账户删除：本人注销
    EntityType.USER_ACCOUNT: {
        Operation.READ: _own_profile,
        Operation.DELETE: _own_profile,
    },
}

# service 角色可绕过归属检查的实体
_SERVICE_BYPASS: frozenset[EntityType] = frozenset(
    {EntityType.GENERATION_TASK, EntityType.USER_ACCOUNT}
)


def authorize(
    identity: IdentityContext,
    operation: Operation,
    entity_type: EntityType,
    record: Any,
) -> bool:
    """判断身份是否可对记录执行操作

    Args:
        identity: 调用方身份
        operation: 操作类型
        entity_type: 实体类型
        record: 目标记录（insert 时为待写入的新记录），需带 owner_id 或 id 字段

    Returns:
        True 表示允许，False 表示拒绝
    """
    if identity.is_service and entity_type in _SERVICE_BYPASS:
        return True
    predicate = _POLICIES.get(entity_type, {}).get(operation)
    if predicate is None:
        return False
    return predicate(identity, record)


def require(
    identity: IdentityContext,
    operation: Operation,
    entity_type: EntityType,
    record: Any,
) -> None:
    """authorize() 的断言版本

    Raises:
        UnauthorizedError: 授权谓词不成立
    """
    if not authorize(identity, operation, entity_type, record):
        log.debug(
            "access_denied",
            operation=operation.value,
            entity_type=entity_type.value,
            user_id=identity.user_id,
            role=identity.role.value,
        )
        raise UnauthorizedError(operation.value, entity_type.value)
