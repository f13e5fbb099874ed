"""UserIpCharacter Domain Model

角色必须有归属用户，归属不可转移。
除 main_image_ref 外的资源引用都可以在创建后逐步补全。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import TaskStatus


class UserIpCharacter(BaseModel):
    """用户 IP 角色记录"""

    id: str = Field(description="唯一标识，ULID 格式")
    owner_id: str = Field(description="所属用户 ID")
    name: str = Field(description="角色名")
    description: str | None = Field(default=None, description="角色描述")
    main_image_ref: str = Field(description="主图引用")
    left_view_ref: str | None = Field(default=None, description="左视图引用")
    back_view_ref: str | None = Field(default=None, description="背视图引用")
    model_3d_ref: str | None = Field(default=None, description="3D 模型引用")
    merchandise_refs: dict[str, Any] | None = Field(default=None, description="周边资源引用")
    merchandise_status: TaskStatus | None = Field(default=None, description="周边生成子任务状态")
    created_at: datetime = Field(description="创建时间，不可变")


class NewCharacter(BaseModel):
    """创建角色的输入"""

    owner_id: str | None = Field(default=None, description="所属用户 ID")
    name: str = Field(default="", description="角色名")
    description: str | None = Field(default=None, description="角色描述")
    main_image_ref: str = Field(default="", description="主图引用")
    left_view_ref: str | None = None
    back_view_ref: str | None = None
    model_3d_ref: str | None = None
    merchandise_refs: dict[str, Any] | None = None
    merchandise_status: TaskStatus | None = None


class CharacterPatch(BaseModel):
    """角色渐进补全：只有显式设置的字段会被更新"""

    name: str | None = None
    description: str | None = None
    main_image_ref: str | None = None
    left_view_ref: str | None = None
    back_view_ref: str | None = None
    model_3d_ref: str | None = None
    merchandise_refs: dict[str, Any] | None = None
    merchandise_status: TaskStatus | None = None

    def changes(self) -> dict[str, Any]:
        """返回显式设置的字段"""
        return self.model_dump(exclude_unset=True)
