"""定时任务."""

from feedrelay.scheduler.tasks import (
    create_scheduler,
    get_scheduler,
    shutdown_scheduler,
    update_task,
)

__all__ = [
    "create_scheduler",
    "get_scheduler",
    "shutdown_scheduler",
    "update_task",
]
