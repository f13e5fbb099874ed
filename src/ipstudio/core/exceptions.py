"""Core 异常体系

所有异常都是单次请求级别的，调用方可恢复；recoverable 表示重试是否可能成功。
"""


class CoreError(Exception):
    """Core 包基础异常"""

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class UnauthorizedError(CoreError):
    """授权谓词不成立"""

    def __init__(self, operation: str, entity_type: str) -> None:
        super().__init__(f"Not allowed to {operation} {entity_type}")
        self.operation = operation
        self.entity_type = entity_type


class NotFoundError(CoreError):
    """记录不存在，或调用方无权读取（两者对调用方不可区分）"""

    def __init__(self, entity_type: str, record_id: str) -> None:
        super().__init__(f"{entity_type} not found: {record_id}")
        self.entity_type = entity_type
        self.record_id = record_id


class InvalidTransitionError(CoreError):
    """状态机拒绝请求的流转"""

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class ValidationError(CoreError, ValueError):
    """必填字段缺失或取值不合法"""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class TaskStatusConflictError(CoreError):
    """并发流转竞争失败：记录当前状态与调用方期望不一致

    调用方重新读取后可重试。
    """

    def __init__(
        self,
        task_id: str,
        expected_status: str,
        actual_status: str | None,
    ) -> None:
        super().__init__(
            f"Task {task_id} status is {actual_status}, expected {expected_status}",
            recoverable=True,
        )
        self.task_id = task_id
        self.expected_status = expected_status
        self.actual_status = actual_status


class StoreTimeoutError(CoreError):
    """存储操作超时，不会产生状态变更"""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(
            f"Store operation {operation} timed out after {timeout}s",
            recoverable=True,
        )
        self.operation = operation
        self.timeout = timeout
