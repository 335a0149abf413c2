"""隔离策略 - 持续抓取失败的 Feed 自动下线."""

import asyncio
import logging
from datetime import timedelta

from feedrelay.core.store import FeedInfo, SubscriptionStore
from feedrelay.notifier.base import Notifier, SendError
from feedrelay.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=12)
DEFAULT_THRESHOLD = 9


def should_drop(recent_failures: int, threshold: int) -> bool:
    """窗口内失败次数达到阈值时下线；阈值为 0 表示不启用."""
    return threshold > 0 and recent_failures >= threshold


def removal_notice(feed: FeedInfo) -> str:
    """Feed 被下线时发给订阅者的通知."""
    name = feed.title or feed.url
    return f"Feed \"{name}\" 多次抓取失败，已被移除。\n{feed.url}"


class QuarantinePolicy:
    """抓取失败计数与下线处理."""

    def __init__(
        self,
        store: SubscriptionStore,
        notifier: Notifier,
        window: timedelta = DEFAULT_WINDOW,
        threshold: int = DEFAULT_THRESHOLD,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.window = window
        self.threshold = threshold
        self._tasks: set[asyncio.Task[None]] = set()

    async def record_failure(self, feed: FeedInfo, reason: str = "") -> bool:
        """
        记录一次抓取失败，必要时下线 Feed.

        Returns:
            Feed 是否被下线
        """
        await self.store.record_fetch_failure(feed.id, reason)
        failures = await self.store.count_recent_fetch_failures(
            feed.id, since=utcnow() - self.window
        )
        logger.warning(
            f"Feed #{feed.id} 抓取失败 ({failures}/{self.threshold}): {reason}"
        )

        if not should_drop(failures, self.threshold):
            return False

        destinations = await self.store.drop_feed(feed.id)
        logger.warning(
            f"Feed #{feed.id} 在 {self.window} 内失败 {failures} 次，已下线，"
            f"通知 {len(destinations)} 个订阅者"
        )

        if destinations:
            task = asyncio.create_task(self._notify_removed(feed, destinations))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return True

    async def _notify_removed(self, feed: FeedInfo, destinations: list[int]) -> None:
        """尽力通知所有原订阅者，发送失败不影响下线结果."""
        text = removal_notice(feed)
        for destination_id in destinations:
            try:
                await self.notifier.send(destination_id, text)
            except SendError as e:
                logger.warning(f"下线通知发送失败 (目标 {destination_id}): {e}")

    async def drain(self) -> None:
        """等待所有未完成的通知."""
        if not self._tasks:
            return
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"下线通知任务异常: {result!r}")
