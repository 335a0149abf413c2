"""测试定时任务."""

from unittest.mock import AsyncMock, MagicMock

from feedrelay.config import Settings
from feedrelay.scheduler import (
    create_scheduler,
    get_scheduler,
    shutdown_scheduler,
    update_task,
)


class TestUpdateTask:
    """测试 update_task."""

    async def test_runs_pass(self) -> None:
        """调用引擎执行一轮更新."""
        engine = MagicMock()
        engine.run_pass = AsyncMock()

        await update_task(engine)

        engine.run_pass.assert_awaited_once()

    async def test_exception_does_not_propagate(self) -> None:
        """单轮异常不影响调度."""
        engine = MagicMock()
        engine.run_pass = AsyncMock(side_effect=RuntimeError("boom"))

        await update_task(engine)


class TestScheduler:
    """测试调度器创建与关闭."""

    async def test_create_and_shutdown(self) -> None:
        """注册定时任务和启动任务."""
        settings = Settings(update_interval_minutes=15, update_on_startup=True)
        engine = MagicMock()

        scheduler = create_scheduler(settings, engine)
        try:
            assert get_scheduler() is scheduler
            job = scheduler.get_job("update_task")
            assert job is not None
            assert job.max_instances == 1
            assert job.coalesce is True
            assert scheduler.get_job("update_task_initial") is not None
        finally:
            await shutdown_scheduler()

        assert get_scheduler() is None

    async def test_no_startup_job(self) -> None:
        """关闭启动时更新."""
        settings = Settings(update_on_startup=False)

        scheduler = create_scheduler(settings, MagicMock())
        try:
            assert scheduler.get_job("update_task_initial") is None
        finally:
            await shutdown_scheduler()

    def test_allowed_owner_ids(self) -> None:
        """白名单按逗号解析."""
        settings = Settings(allowed_owners="1, 22,,333")

        assert settings.allowed_owner_ids == frozenset({1, 22, 333})
