"""TaskLifecycleStore -- 生成任务创建/流转/查询

状态机：pending -> processing -> completed | failed，终态不可再流转。
每次流转在同一事务内完成 读取当前状态 -> 授权 -> 校验 -> 刷新 updated_at -> 条件写入，
任一步失败都不会落盘。
"""

from collections.abc import Callable, Sequence
from datetime import datetime

import aiosqlite
import structlog
from ulid import ULID

from ..config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, STORE_TIMEOUT_S
from ..exceptions import (
    InvalidTransitionError,
    NotFoundError,
    TaskStatusConflictError,
    ValidationError,
)
from ..models import (
    EntityType,
    GenerationTask,
    IdentityContext,
    NewGenerationTask,
    Operation,
    TaskResult,
    TaskStatus,
    validate_transition,
)
from ..policy.access_control import authorize, require
from ..store import StoreGroup, compare_and_set_task_status, run_with_timeout
from ..timestamps import touch_updated_at, utc_now

log = structlog.get_logger()

_ENTITY = EntityType.GENERATION_TASK


class TaskLifecycleStore:
    """生成任务生命周期服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        clock: Callable[[], datetime] = utc_now,
        timeout: float | None = STORE_TIMEOUT_S,
    ) -> None:
        self._stores = store_group
        self._clock = clock
        self._timeout = timeout

    # ---- 创建 ----

    async def create_task(
        self,
        identity: IdentityContext,
        draft: NewGenerationTask,
        timeout: float | None = None,
    ) -> GenerationTask:
        """创建 pending 任务

        Raises:
            ValidationError: prompt/task_type 为空，或 owner_id 不存在
            UnauthorizedError: 不能以他人名义创建任务
        """
        task = self._build_task(draft)
        require(identity, Operation.INSERT, _ENTITY, task)

        await run_with_timeout(self._insert_tasks([task]), self._effective(timeout), "create_task")
        log.info(
            "task_created",
            task_id=task.id,
            owner_id=task.owner_id,
            task_type=task.task_type,
            batch_id=task.batch_id,
        )
        return task

    async def create_batch(
        self,
        identity: IdentityContext,
        drafts: Sequence[NewGenerationTask],
        batch_id: str | None = None,
        timeout: float | None = None,
    ) -> list[GenerationTask]:
        """在同一事务内提交一组共享 batch_id 的任务

        任意一个任务校验或授权失败，整批都不会写入。
        """
        if not drafts:
            raise ValidationError("drafts", "batch must contain at least one task")
        batch_id = batch_id or str(ULID())

        tasks = [self._build_task(d.model_copy(update={"batch_id": batch_id})) for d in drafts]
        for task in tasks:
            require(identity, Operation.INSERT, _ENTITY, task)

        await run_with_timeout(self._insert_tasks(tasks), self._effective(timeout), "create_batch")
        log.info("task_batch_created", batch_id=batch_id, task_count=len(tasks))
        return tasks

    # ---- 查询 ----

    async def get_task(
        self,
        identity: IdentityContext,
        task_id: str,
        timeout: float | None = None,
    ) -> GenerationTask:
        """查询任务详情

        Raises:
            NotFoundError: 任务不存在或调用方无权读取
        """
        task = await run_with_timeout(
            self._stores.read(self._stores.task_store.get_task, task_id),
            self._effective(timeout),
            "get_task",
        )
        if task is None or not authorize(identity, Operation.READ, _ENTITY, task):
            raise NotFoundError(_ENTITY.value, task_id)
        return task

    async def list_tasks_for_owner(
        self,
        identity: IdentityContext,
        owner_id: str | None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        timeout: float | None = None,
    ) -> list[GenerationTask]:
        """按归属用户分页查询（created_at 倒序，同一时间按 id 倒序）

        owner_id 为 None 时列出匿名任务。调用方无权读取的记录不会出现在结果中。
        """
        if offset < 0:
            raise ValidationError("offset", "must be >= 0")
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        tasks = await run_with_timeout(
            self._stores.read(
                self._stores.task_store.list_tasks_by_owner, owner_id, limit, offset
            ),
            self._effective(timeout),
            "list_tasks_for_owner",
        )
        return self._readable(identity, tasks)

    async def list_tasks_by_batch(
        self,
        identity: IdentityContext,
        batch_id: str,
        timeout: float | None = None,
    ) -> list[GenerationTask]:
        """查询同一批次的所有兄弟任务（created_at 正序）"""
        if not batch_id:
            raise ValidationError("batch_id", "must not be empty")
        tasks = await run_with_timeout(
            self._stores.read(self._stores.task_store.list_tasks_by_batch, batch_id),
            self._effective(timeout),
            "list_tasks_by_batch",
        )
        return self._readable(identity, tasks)

    async def list_tasks_for_character(
        self,
        identity: IdentityContext,
        character_id: str,
        timeout: float | None = None,
    ) -> list[GenerationTask]:
        """查询从指定角色派生的任务"""
        tasks = await run_with_timeout(
            self._stores.read(
                self._stores.task_store.list_tasks_by_parent_character, character_id
            ),
            self._effective(timeout),
            "list_tasks_for_character",
        )
        return self._readable(identity, tasks)

    # ---- 状态流转 ----

    async def start_task(
        self,
        identity: IdentityContext,
        task_id: str,
        timeout: float | None = None,
    ) -> GenerationTask:
        """pending -> processing"""
        return await self.transition_task(
            identity,
            task_id,
            TaskStatus.PROCESSING,
            timeout=timeout,
        )

    async def complete_task(
        self,
        identity: IdentityContext,
        task_id: str,
        result: TaskResult | None = None,
        timeout: float | None = None,
    ) -> GenerationTask:
        """processing -> completed，写入结果"""
        return await self.transition_task(
            identity,
            task_id,
            TaskStatus.COMPLETED,
            result=result,
            timeout=timeout,
        )

    async def fail_task(
        self,
        identity: IdentityContext,
        task_id: str,
        error_message: str,
        timeout: float | None = None,
    ) -> GenerationTask:
        """processing -> failed，记录失败原因"""
        return await self.transition_task(
            identity,
            task_id,
            TaskStatus.FAILED,
            error_message=error_message,
            timeout=timeout,
        )

    async def transition_task(
        self,
        identity: IdentityContext,
        task_id: str,
        to_status: TaskStatus | str,
        *,
        result: TaskResult | None = None,
        error_message: str | None = None,
        expected_status: TaskStatus | str | None = None,
        timeout: float | None = None,
    ) -> GenerationTask:
        """原子执行一次状态流转

        Args:
            identity: 调用方身份
            task_id: 任务 ID
            to_status: 目标状态
            result: 结果（仅 completed 接受）
            error_message: 失败原因（仅 failed 接受，且必填）
            expected_status: 调用方认定的当前状态，不一致时抛出冲突

        Raises:
            NotFoundError: 任务不存在或调用方无权读取
            InvalidTransitionError: 状态机不允许该流转
            TaskStatusConflictError: 当前状态与 expected_status 不一致
            ValidationError: 结果字段与目标状态不匹配
        """
        try:
            to_status = TaskStatus(to_status)
            if expected_status is not None:
                expected_status = TaskStatus(expected_status)
        except ValueError as e:
            raise ValidationError("status", str(e)) from None
        self._check_outcome(to_status, result, error_message)

        updated = await run_with_timeout(
            self._apply_transition(identity, task_id, to_status, result, error_message, expected_status),
            self._effective(timeout),
            "transition_task",
        )
        log.info(
            "task_transitioned",
            task_id=task_id,
            to_status=to_status.value,
            actor_role=identity.role.value,
        )
        return updated

    async def _apply_transition(
        self,
        identity: IdentityContext,
        task_id: str,
        to_status: TaskStatus,
        result: TaskResult | None,
        error_message: str | None,
        expected_status: TaskStatus | None,
    ) -> GenerationTask:
        task_store = self._stores.task_store
        async with self._stores.transaction():
            current = await task_store.get_task(task_id)
            if current is None or not authorize(identity, Operation.READ, _ENTITY, current):
                raise NotFoundError(_ENTITY.value, task_id)
            require(identity, Operation.UPDATE, _ENTITY, current)

            if expected_status is not None and current.status != expected_status:
                raise TaskStatusConflictError(task_id, expected_status.value, current.status.value)

            if not validate_transition(current.status, to_status):
                log.warning(
                    "task_transition_rejected",
                    task_id=task_id,
                    from_status=current.status.value,
                    to_status=to_status.value,
                )
                raise InvalidTransitionError(current.status.value, to_status.value)

            updated = current.model_copy(
                update={
                    "status": to_status,
                    "result_image_ref": result.result_image_ref if result else None,
                    "result_data": result.result_data if result else None,
                    "error_message": error_message,
                }
            )
            updated = touch_updated_at(updated, self._clock)
            await compare_and_set_task_status(task_store, updated, current.status.value)
            return updated

    # ---- 内部工具 ----

    def _build_task(self, draft: NewGenerationTask) -> GenerationTask:
        if not draft.prompt or not draft.prompt.strip():
            raise ValidationError("prompt", "must not be empty")
        if not draft.task_type or not draft.task_type.strip():
            raise ValidationError("task_type", "must not be empty")

        now = self._clock()
        return GenerationTask(
            id=str(ULID()),
            owner_id=draft.owner_id,
            status=TaskStatus.PENDING,
            task_type=draft.task_type,
            prompt=draft.prompt,
            input_image_ref=draft.input_image_ref,
            batch_id=draft.batch_id,
            parent_character_id=draft.parent_character_id,
            created_at=now,
            updated_at=now,
        )

    async def _insert_tasks(self, tasks: list[GenerationTask]) -> None:
        async with self._stores.transaction():
            for task in tasks:
                try:
                    await self._stores.task_store.create_task(task)
                except aiosqlite.IntegrityError as e:
                    if "FOREIGN KEY" in str(e):
                        raise ValidationError("owner_id", f"unknown user {task.owner_id}") from e
                    raise

    @staticmethod
    def _check_outcome(
        to_status: TaskStatus,
        result: TaskResult | None,
        error_message: str | None,
    ) -> None:
        """结果字段只能随 completed 写入，失败原因只能随 failed 写入"""
        if result is not None and to_status != TaskStatus.COMPLETED:
            raise ValidationError("result", f"not accepted when moving to {to_status.value}")
        if to_status == TaskStatus.FAILED:
            if not error_message or not error_message.strip():
                raise ValidationError("error_message", "required when moving to failed")
        elif error_message is not None:
            raise ValidationError("error_message", f"not accepted when moving to {to_status.value}")

    @staticmethod
    def _readable(identity: IdentityContext, tasks: list[GenerationTask]) -> list[GenerationTask]:
        return [t for t in tasks if authorize(identity, Operation.READ, _ENTITY, t)]

    def _effective(self, timeout: float | None) -> float | None:
        return self._timeout if timeout is None else timeout
