"""Core 服务层：所有读写先经过访问控制，再进入存储"""

from .accounts import AccountDeletion, AccountDirectory
from .character_registry import CharacterRegistry
from .profile_view import ProfileView
from .task_lifecycle import TaskLifecycleStore

__all__ = [
    "TaskLifecycleStore",
    "CharacterRegistry",
    "ProfileView",
    "AccountDirectory",
    "AccountDeletion",
]
