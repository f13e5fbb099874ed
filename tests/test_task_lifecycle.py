"""TaskLifecycleStore 测试

测试内容：
1. 完整生命周期与非法流转
2. 归属隔离 / 匿名任务 / service 角色
3. 时间戳维护
4. 批次、分页、派生任务查询
5. 并发、超时与跨连接冲突
"""

import asyncio
from datetime import timedelta

import pytest
from ipstudio.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    StoreTimeoutError,
    TaskStatusConflictError,
    UnauthorizedError,
    ValidationError,
)
from ipstudio.core.models import GenerationTask, NewGenerationTask, TaskResult, TaskStatus
from ipstudio.core.services import AccountDirectory, TaskLifecycleStore
from ipstudio.core.store import SqliteTaskStore, create_store_group, run_with_timeout


def _draft(owner_id: str | None = "u1", prompt: str = "a fox", **kwargs) -> NewGenerationTask:
    return NewGenerationTask(owner_id=owner_id, task_type="ip_generation", prompt=prompt, **kwargs)


class TestLifecycle:
    """pending -> processing -> completed | failed"""

    async def test_fox_scenario(self, lifecycle, u1):
        """创建 -> processing -> completed，之后再回到 processing 被拒绝"""
        task = await lifecycle.create_task(u1, _draft())
        assert task.status == TaskStatus.PENDING
        assert task.owner_id == "u1"

        task = await lifecycle.start_task(u1, task.id)
        assert task.status == TaskStatus.PROCESSING

        task = await lifecycle.complete_task(
            u1, task.id, TaskResult(result_image_ref="u1/fox.png", result_data={"seed": 42})
        )
        assert task.status == TaskStatus.COMPLETED
        assert task.result_image_ref == "u1/fox.png"

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.transition_task(u1, task.id, TaskStatus.PROCESSING)
        assert exc_info.value.from_status == "completed"
        assert exc_info.value.to_status == "processing"

        stored = await lifecycle.get_task(u1, task.id)
        assert stored == task

    async def test_failed_path_records_error(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        await lifecycle.start_task(u1, task.id)
        failed = await lifecycle.fail_task(u1, task.id, "model timeout")
        assert failed.status == TaskStatus.FAILED
        assert failed.error_message == "model timeout"
        assert failed.result_image_ref is None

    @pytest.mark.parametrize("target", [TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.PENDING])
    async def test_cannot_skip_processing(self, lifecycle, u1, target):
        task = await lifecycle.create_task(u1, _draft())
        kwargs = {"error_message": "boom"} if target == TaskStatus.FAILED else {}
        with pytest.raises(InvalidTransitionError):
            await lifecycle.transition_task(u1, task.id, target, **kwargs)
        assert (await lifecycle.get_task(u1, task.id)).status == TaskStatus.PENDING

    async def test_terminal_state_never_resurrected(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        await lifecycle.start_task(u1, task.id)
        await lifecycle.fail_task(u1, task.id, "boom")
        for target in TaskStatus:
            kwargs = {"error_message": "again"} if target == TaskStatus.FAILED else {}
            with pytest.raises(InvalidTransitionError):
                await lifecycle.transition_task(u1, task.id, target, **kwargs)
        assert (await lifecycle.get_task(u1, task.id)).status == TaskStatus.FAILED

    async def test_unknown_status_rejected(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        with pytest.raises(ValidationError):
            await lifecycle.transition_task(u1, task.id, "cancelled")


class TestOutcomeFields:
    """结果字段与目标状态匹配"""

    async def test_fail_requires_error_message(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        await lifecycle.start_task(u1, task.id)
        with pytest.raises(ValidationError) as exc_info:
            await lifecycle.fail_task(u1, task.id, "  ")
        assert exc_info.value.field == "error_message"
        assert (await lifecycle.get_task(u1, task.id)).status == TaskStatus.PROCESSING

    async def test_error_message_only_with_failed(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        await lifecycle.start_task(u1, task.id)
        with pytest.raises(ValidationError):
            await lifecycle.transition_task(
                u1, task.id, TaskStatus.COMPLETED, error_message="not an error"
            )

    async def test_result_only_with_completed(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        with pytest.raises(ValidationError):
            await lifecycle.transition_task(
                u1, task.id, TaskStatus.PROCESSING, result=TaskResult(result_image_ref="x.png")
            )


class TestCreateValidation:
    @pytest.mark.parametrize("prompt", ["", "   "])
    async def test_prompt_required(self, lifecycle, u1, prompt):
        with pytest.raises(ValidationError) as exc_info:
            await lifecycle.create_task(u1, _draft(prompt=prompt))
        assert exc_info.value.field == "prompt"

    async def test_task_type_required(self, lifecycle, u1):
        with pytest.raises(ValidationError):
            await lifecycle.create_task(u1, NewGenerationTask(owner_id="u1", prompt="a fox"))

    async def test_unknown_owner_rejected(self, lifecycle, worker):
        with pytest.raises(ValidationError) as exc_info:
            await lifecycle.create_task(worker, _draft(owner_id="ghost"))
        assert exc_info.value.field == "owner_id"

    async def test_cannot_create_for_other_user(self, lifecycle, u2):
        with pytest.raises(UnauthorizedError):
            await lifecycle.create_task(u2, _draft(owner_id="u1"))


class TestOwnership:
    """归属隔离"""

    async def test_other_user_sees_not_found(self, lifecycle, u1, u2):
        """u2 读取 u1 的任务：NotFound，与不存在的任务不可区分"""
        task = await lifecycle.create_task(u1, _draft())

        with pytest.raises(NotFoundError) as hidden:
            await lifecycle.get_task(u2, task.id)
        with pytest.raises(NotFoundError) as missing:
            await lifecycle.get_task(u2, "no-such-task")
        assert type(hidden.value) is type(missing.value)
        assert await lifecycle.list_tasks_for_owner(u2, "u1") == []

    async def test_other_user_cannot_transition(self, lifecycle, u1, u2, anon):
        task = await lifecycle.create_task(u1, _draft())
        for identity in (u2, anon):
            with pytest.raises(NotFoundError):
                await lifecycle.start_task(identity, task.id)
        assert (await lifecycle.get_task(u1, task.id)).status == TaskStatus.PENDING

    async def test_service_role_drives_any_task(self, lifecycle, u1, worker):
        task = await lifecycle.create_task(u1, _draft())
        await lifecycle.start_task(worker, task.id)
        done = await lifecycle.complete_task(worker, task.id, TaskResult(result_image_ref="u1/r.png"))
        assert done.status == TaskStatus.COMPLETED
        assert (await lifecycle.get_task(u1, task.id)).result_image_ref == "u1/r.png"

    async def test_anonymous_task_open_to_everyone(self, lifecycle, anon, u1, u2):
        """匿名任务对所有调用方可读可写 -- 有意保留的公开模式"""
        task = await lifecycle.create_task(anon, _draft(owner_id=None))
        assert task.is_public

        assert (await lifecycle.get_task(u2, task.id)).id == task.id
        await lifecycle.start_task(u2, task.id)
        done = await lifecycle.complete_task(u1, task.id)
        assert done.status == TaskStatus.COMPLETED
        assert [t.id for t in await lifecycle.list_tasks_for_owner(anon, None)] == [task.id]

    async def test_anonymous_caller_cannot_claim_owner(self, lifecycle, anon):
        with pytest.raises(UnauthorizedError):
            await lifecycle.create_task(anon, _draft(owner_id="u1"))


class TestTimestamps:
    """created_at 不可变，updated_at 每次成功更新都刷新"""

    async def test_updated_at_advances_on_each_transition(self, lifecycle, u1):
        created = await lifecycle.create_task(u1, _draft())
        assert created.created_at == created.updated_at

        started = await lifecycle.start_task(u1, created.id)
        completed = await lifecycle.complete_task(u1, created.id)

        assert created.updated_at < started.updated_at < completed.updated_at
        assert completed.created_at == started.created_at == created.created_at

    async def test_reads_do_not_touch_updated_at(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        first = await lifecycle.get_task(u1, task.id)
        second = await lifecycle.get_task(u1, task.id)
        assert first.updated_at == second.updated_at == task.updated_at

    async def test_rejected_transition_keeps_updated_at(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        with pytest.raises(InvalidTransitionError):
            await lifecycle.transition_task(u1, task.id, TaskStatus.COMPLETED)
        assert (await lifecycle.get_task(u1, task.id)).updated_at == task.updated_at

    async def test_clock_going_backwards_never_decreases(self, lifecycle, u1, clock):
        task = await lifecycle.create_task(u1, _draft())
        clock.rewind(timedelta(hours=1))
        started = await lifecycle.start_task(u1, task.id)
        assert started.updated_at == task.updated_at


class TestBatch:
    async def test_batch_lookup_regardless_of_owner_mix(self, lifecycle, worker, u1):
        """3 个共享 batch_id 的任务，按批次查询恰好返回这 3 个"""
        tasks = await lifecycle.create_batch(
            worker,
            [_draft(owner_id="u1"), _draft(owner_id="u2"), _draft(owner_id=None)],
            batch_id="b1",
        )
        await lifecycle.create_task(u1, _draft(batch_id="b2"))

        siblings = await lifecycle.list_tasks_by_batch(worker, "b1")
        assert {t.id for t in siblings} == {t.id for t in tasks}
        assert all(t.batch_id == "b1" for t in siblings)

    async def test_batch_lookup_hides_unreadable_siblings(self, lifecycle, worker, u1):
        await lifecycle.create_batch(
            worker,
            [_draft(owner_id="u1"), _draft(owner_id="u2"), _draft(owner_id=None)],
            batch_id="b1",
        )
        visible = await lifecycle.list_tasks_by_batch(u1, "b1")
        assert sorted(t.owner_id or "" for t in visible) == ["", "u1"]

    async def test_separately_submitted_siblings(self, lifecycle, u1):
        for _ in range(3):
            await lifecycle.create_task(u1, _draft(batch_id="b1"))
        assert len(await lifecycle.list_tasks_by_batch(u1, "b1")) == 3

    async def test_generated_batch_id(self, lifecycle, u1):
        tasks = await lifecycle.create_batch(u1, [_draft(), _draft()])
        batch_id = tasks[0].batch_id
        assert batch_id
        assert len(await lifecycle.list_tasks_by_batch(u1, batch_id)) == 2

    async def test_batch_is_all_or_nothing(self, lifecycle, u1):
        with pytest.raises(UnauthorizedError):
            await lifecycle.create_batch(u1, [_draft(), _draft(owner_id="u2")], batch_id="b3")
        assert await lifecycle.list_tasks_by_batch(u1, "b3") == []

    async def test_empty_batch_rejected(self, lifecycle, u1):
        with pytest.raises(ValidationError):
            await lifecycle.create_batch(u1, [])


class TestListing:
    async def test_owner_pagination_newest_first(self, lifecycle, u1):
        created = [await lifecycle.create_task(u1, _draft(prompt=f"fox {i}")) for i in range(5)]
        newest_first = [t.id for t in reversed(created)]

        page_1 = await lifecycle.list_tasks_for_owner(u1, "u1", limit=2)
        page_2 = await lifecycle.list_tasks_for_owner(u1, "u1", limit=2, offset=2)
        page_3 = await lifecycle.list_tasks_for_owner(u1, "u1", limit=2, offset=4)

        assert [t.id for t in page_1 + page_2 + page_3] == newest_first

    async def test_limit_is_clamped(self, lifecycle, u1):
        await lifecycle.create_task(u1, _draft())
        assert len(await lifecycle.list_tasks_for_owner(u1, "u1", limit=0)) == 1

    async def test_negative_offset_rejected(self, lifecycle, u1):
        with pytest.raises(ValidationError):
            await lifecycle.list_tasks_for_owner(u1, "u1", offset=-1)

    async def test_tasks_for_character(self, lifecycle, u1, u2):
        derived = await lifecycle.create_task(u1, _draft(parent_character_id="c1"))
        await lifecycle.create_task(u1, _draft())
        await lifecycle.create_task(u2, _draft(owner_id="u2", parent_character_id="c1"))

        assert [t.id for t in await lifecycle.list_tasks_for_character(u1, "c1")] == [derived.id]


class TestConcurrency:
    async def test_concurrent_transitions_only_one_wins(self, lifecycle, u1):
        """同一状态发起的两个流转只有一个成功"""
        task = await lifecycle.create_task(u1, _draft())
        results = await asyncio.gather(
            lifecycle.start_task(u1, task.id),
            lifecycle.start_task(u1, task.id),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], InvalidTransitionError | TaskStatusConflictError)

    async def test_stale_expected_status_conflicts(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        await lifecycle.start_task(u1, task.id)

        with pytest.raises(TaskStatusConflictError) as exc_info:
            await lifecycle.transition_task(
                u1, task.id, TaskStatus.PROCESSING, expected_status=TaskStatus.PENDING
            )
        assert exc_info.value.recoverable is True
        assert exc_info.value.actual_status == "processing"

    async def test_matching_expected_status_succeeds(self, lifecycle, u1):
        task = await lifecycle.create_task(u1, _draft())
        started = await lifecycle.transition_task(
            u1, task.id, "processing", expected_status="pending"
        )
        assert started.status == TaskStatus.PROCESSING

    async def test_timeout_is_retryable(self):
        with pytest.raises(StoreTimeoutError) as exc_info:
            await run_with_timeout(asyncio.sleep(1), 0.01, "slow_read")
        assert exc_info.value.recoverable is True
        assert exc_info.value.operation == "slow_read"

    async def test_reader_never_sees_rolled_back_batch(self, lifecycle, worker):
        """批次写入过程中的并发读取看不到未提交的兄弟任务"""
        seen: list = []

        async def reader():
            await asyncio.sleep(0)
            seen.extend(await lifecycle.list_tasks_by_batch(worker, "bx"))

        drafts = [_draft(), _draft(), _draft(owner_id="ghost")]
        results = await asyncio.gather(
            lifecycle.create_batch(worker, drafts, batch_id="bx"),
            reader(),
            return_exceptions=True,
        )

        assert isinstance(results[0], ValidationError)
        assert seen == []
        assert await lifecycle.list_tasks_by_batch(worker, "bx") == []


class _HangingUpdateTaskStore(SqliteTaskStore):
    """状态写入后挂起，事务停留在未提交状态"""

    async def update_task_status(self, task, expected_status):
        changed = await super().update_task_status(task, expected_status)
        await asyncio.Event().wait()
        return changed


class _HangingInsertTaskStore(SqliteTaskStore):
    """插入一行后挂起"""

    async def create_task(self, task):
        await super().create_task(task)
        await asyncio.Event().wait()


class TestTimeout:
    """超时回滚事务并释放写锁，不留下任何状态变化"""

    async def test_timed_out_transition_rolls_back(self, lifecycle, stores, u1, monkeypatch):
        task = await lifecycle.create_task(u1, _draft())
        monkeypatch.setattr(stores, "task_store", _HangingUpdateTaskStore(stores.conn))

        results = await asyncio.gather(
            lifecycle.start_task(u1, task.id, timeout=0.05),
            lifecycle.get_task(u1, task.id),
            return_exceptions=True,
        )
        assert isinstance(results[0], StoreTimeoutError)
        assert results[0].recoverable is True
        assert results[0].operation == "transition_task"
        # 并发读取等到回滚之后才执行
        assert results[1].status == TaskStatus.PENDING

        monkeypatch.undo()
        assert not stores.write_lock.locked()
        assert (await lifecycle.get_task(u1, task.id)).updated_at == task.updated_at
        started = await lifecycle.start_task(u1, task.id)
        assert started.status == TaskStatus.PROCESSING

    async def test_timed_out_batch_writes_nothing(self, lifecycle, stores, u1, monkeypatch):
        monkeypatch.setattr(stores, "task_store", _HangingInsertTaskStore(stores.conn))

        with pytest.raises(StoreTimeoutError):
            await lifecycle.create_batch(u1, [_draft(), _draft()], batch_id="slow", timeout=0.05)

        monkeypatch.undo()
        assert not stores.write_lock.locked()
        assert await lifecycle.list_tasks_by_batch(u1, "slow") == []
        assert await lifecycle.list_tasks_for_owner(u1, "u1") == []


class _StaleReadTaskStore(SqliteTaskStore):
    """第一次 get_task 返回给定的旧快照，之后正常查询"""

    def __init__(self, conn, snapshot: GenerationTask) -> None:
        super().__init__(conn)
        self._snapshot: GenerationTask | None = snapshot

    async def get_task(self, task_id):
        if self._snapshot is not None and self._snapshot.id == task_id:
            snapshot, self._snapshot = self._snapshot, None
            return snapshot
        return await super().get_task(task_id)


class TestCrossConnection:
    """两个 StoreGroup 打开同一个数据库文件"""

    async def test_losing_writer_gets_conflict(self, tmp_path, u1):
        db_path = str(tmp_path / "shared" / "ipstudio.db")
        group_a = await create_store_group(db_path)
        group_b = await create_store_group(db_path)
        try:
            await AccountDirectory(group_b).register_user("u1")
            lifecycle_b = TaskLifecycleStore(group_b)
            stale = await lifecycle_b.create_task(u1, _draft())

            # A 读到 pending 之后，B 抢先完成 pending -> processing
            group_a.task_store = _StaleReadTaskStore(group_a.conn, stale)
            await lifecycle_b.start_task(u1, stale.id)

            with pytest.raises(TaskStatusConflictError) as exc_info:
                await TaskLifecycleStore(group_a).start_task(u1, stale.id)
            assert exc_info.value.expected_status == "pending"
            assert exc_info.value.actual_status == "processing"

            assert not group_a.write_lock.locked()
            stored = await lifecycle_b.get_task(u1, stale.id)
            assert stored.status == TaskStatus.PROCESSING
        finally:
            await group_a.close()
            await group_b.close()
