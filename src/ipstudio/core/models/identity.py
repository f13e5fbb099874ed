"""调用方身份模型

身份由外部认证组件提供，本核心只消费已认证的结果。
"""

from pydantic import BaseModel, ConfigDict, Field

from .enums import Role


class IdentityContext(BaseModel):
    """调用方身份：user_id（匿名时为 None）+ 角色"""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = Field(default=None, description="调用方用户 ID，匿名为 None")
    role: Role = Field(default=Role.STANDARD, description="调用方角色")

    @classmethod
    def anonymous(cls) -> "IdentityContext":
        return cls()

    @classmethod
    def user(cls, user_id: str) -> "IdentityContext":
        return cls(user_id=user_id)

    @classmethod
    def service(cls, user_id: str | None = None) -> "IdentityContext":
        """后台 worker 身份"""
        return cls(user_id=user_id, role=Role.SERVICE)

    @property
    def is_service(self) -> bool:
        return self.role == Role.SERVICE

    @property
    def is_authenticated(self) -> bool:
        """已登录用户或 service 角色"""
        return self.user_id is not None or self.is_service
