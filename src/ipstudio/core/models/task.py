"""GenerationTask Domain Model

owner_id 为 None 的任务是匿名任务，对所有调用方可读可写。
error_message 仅在 failed 时有意义；result_* 仅在 completed 时有意义。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import TaskStatus


class GenerationTask(BaseModel):
    """生成任务记录"""

    id: str = Field(description="唯一标识，ULID 格式，创建后不可变")
    owner_id: str | None = Field(default=None, description="所属用户 ID，None 表示匿名任务")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    task_type: str = Field(description="任务分类")
    prompt: str = Field(description="生成提示词")
    input_image_ref: str | None = Field(default=None, description="输入图片引用")
    result_image_ref: str | None = Field(default=None, description="结果图片引用")
    result_data: dict[str, Any] | None = Field(default=None, description="结构化结果")
    error_message: str | None = Field(default=None, description="失败原因")
    batch_id: str | None = Field(default=None, description="批次标识")
    parent_character_id: str | None = Field(default=None, description="来源角色 ID")
    created_at: datetime = Field(description="创建时间，不可变")
    updated_at: datetime = Field(description="最近一次变更时间")

    @property
    def is_public(self) -> bool:
        return self.owner_id is None


class NewGenerationTask(BaseModel):
    """创建任务的输入

    字段完整性由 TaskLifecycleStore 校验（ValidationError），此处不做约束。
    """

    owner_id: str | None = Field(default=None, description="所属用户 ID，None 表示匿名提交")
    task_type: str = Field(default="", description="任务分类")
    prompt: str = Field(default="", description="生成提示词")
    input_image_ref: str | None = Field(default=None, description="输入图片引用")
    batch_id: str | None = Field(default=None, description="批次标识")
    parent_character_id: str | None = Field(default=None, description="来源角色 ID")


class TaskResult(BaseModel):
    """任务完成时写入的结果"""

    result_image_ref: str | None = Field(default=None, description="结果图片引用")
    result_data: dict[str, Any] | None = Field(default=None, description="结构化结果")
