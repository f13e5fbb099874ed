"""枚举定义

包含 TaskStatus 状态机、Role、Operation、EntityType、BucketVisibility 枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """生成任务状态机（角色周边子任务共用同一取值域）"""

    PENDING = "pending"
    PROCESSING = "processing"

    # 终态
    COMPLETED = "completed"
    FAILED = "failed"


# 合法状态流转
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.PROCESSING},
    TaskStatus.PROCESSING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}

TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
}


class Role(StrEnum):
    """调用方角色"""

    STANDARD = "standard"
    # 后台 worker 使用，绕过任务归属检查
    SERVICE = "service"


class Operation(StrEnum):
    """记录/资源操作类型"""

    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(StrEnum):
    """受访问控制的实体类型"""

    GENERATION_TASK = "generation_task"
    USER_IP_CHARACTER = "user_ip_character"
    USER_PROFILE = "user_profile"
    USER_ACCOUNT = "user_account"


class BucketVisibility(StrEnum):
    """存储桶可见性"""

    PUBLIC = "public"
    PRIVATE = "private"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
