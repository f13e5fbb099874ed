"""用户账户与 Profile 投影模型

UserAccount 对应外部认证目录中的用户记录；
UserProfile 是其只读投影，username 取自元数据。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class UserAccount(BaseModel):
    """认证目录中的用户记录"""

    id: str = Field(description="用户 ID")
    email: str | None = Field(default=None, description="邮箱")
    raw_user_meta_data: dict[str, Any] = Field(default_factory=dict, description="用户元数据")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    last_sign_in_at: datetime | None = Field(default=None, description="最近登录时间")


class UserProfile(BaseModel):
    """用户 Profile 只读投影"""

    id: str
    email: str | None = None
    username: str | None = None
    created_at: datetime
    updated_at: datetime
    last_sign_in_at: datetime | None = None

    @classmethod
    def from_account(cls, account: UserAccount) -> "UserProfile":
        username = account.raw_user_meta_data.get("username")
        return cls(
            id=account.id,
            email=account.email,
            username=str(username) if username is not None else None,
            created_at=account.created_at,
            updated_at=account.updated_at,
            last_sign_in_at=account.last_sign_in_at,
        )
