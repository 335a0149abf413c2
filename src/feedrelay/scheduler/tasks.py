"""定时任务定义."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feedrelay.config import Settings
from feedrelay.core.updater import UpdateEngine

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def update_task(engine: UpdateEngine) -> None:
    """定时更新任务：拉取所有 Feed 并投递新条目."""
    try:
        await engine.run_pass()
    except Exception as e:
        # 单轮失败不影响后续调度
        logger.exception(f"更新任务失败: {e}")


def create_scheduler(settings: Settings, engine: UpdateEngine) -> AsyncIOScheduler:
    """创建并启动定时任务调度器."""
    global _scheduler

    _scheduler = AsyncIOScheduler()

    # 上一轮未结束时跳过本次触发，下一次触发时间不受本轮耗时影响
    _scheduler.add_job(
        update_task,
        "interval",
        minutes=settings.update_interval_minutes,
        args=[engine],
        id="update_task",
        name="Feed 定时更新",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if settings.update_on_startup:
        _scheduler.add_job(
            update_task,
            "date",  # 一次性任务
            args=[engine],
            id="update_task_initial",
            name="启动时更新",
        )

    _scheduler.start()
    logger.info(
        f"定时任务调度器已启动，更新间隔: {settings.update_interval_minutes} 分钟"
    )

    return _scheduler


def get_scheduler() -> AsyncIOScheduler | None:
    """获取调度器实例."""
    return _scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
        _scheduler = None
