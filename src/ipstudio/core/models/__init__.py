"""IPStudio Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .account import UserAccount, UserProfile
from .character import CharacterPatch, NewCharacter, UserIpCharacter
from .enums import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    BucketVisibility,
    EntityType,
    Operation,
    Role,
    TaskStatus,
    validate_transition,
)
from .identity import IdentityContext
from .task import GenerationTask, NewGenerationTask, TaskResult

__all__ = [
    # 枚举
    "TaskStatus",
    "Role",
    "Operation",
    "EntityType",
    "BucketVisibility",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    # 身份
    "IdentityContext",
    # Task
    "GenerationTask",
    "NewGenerationTask",
    "TaskResult",
    # Character
    "UserIpCharacter",
    "NewCharacter",
    "CharacterPatch",
    # Account
    "UserAccount",
    "UserProfile",
]
