"""更新引擎 - 定时拉取所有 Feed 并向订阅者投递新条目."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from feedrelay.core.errors import StoreError
from feedrelay.core.quarantine import QuarantinePolicy
from feedrelay.core.store import FeedInfo, Subscriber, SubscriptionStore
from feedrelay.fetcher.source import Document, FeedItem, FeedSource, FetchError
from feedrelay.notifier.base import Notifier, SendError
from feedrelay.utils.html_parser import clip_text, html_to_text
from feedrelay.utils.timeutil import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

# Telegram 单条消息长度上限
MESSAGE_LIMIT = 4096


class PassStatus:
    """单轮更新的结果状态."""

    COMPLETED = "completed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PassResult:
    """单轮更新结果."""

    status: str = PassStatus.COMPLETED
    feeds_total: int = 0
    feeds_failed: int = 0
    feeds_dropped: int = 0
    messages_sent: int = 0
    send_failures: int = 0
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None


class _DeadlineExceeded(Exception):
    """本轮时间用尽."""


def format_item(item: FeedItem) -> str:
    """把条目格式化为一条消息."""
    title = item.title.strip()
    description = html_to_text(item.description)
    link = item.link.strip()

    tail = f"\n\nLink: {link}" if link else ""
    body = "\n".join(part for part in (title, description) if part)
    return clip_text(body, MESSAGE_LIMIT - len(tail)) + tail


def new_items_since(
    document: Document, last_update: datetime
) -> list[tuple[datetime, FeedItem]]:
    """发布时间晚于 last_update 的条目及其发布时间，按发布时间升序."""
    last_update = to_naive_utc(last_update)
    items = [
        (item.published, item)
        for item in document.items
        if item.published is not None and item.published > last_update
    ]
    items.sort(key=lambda pair: pair[0])
    return items


class UpdateEngine:
    """更新引擎."""

    def __init__(
        self,
        store: SubscriptionStore,
        source: FeedSource,
        notifier: Notifier,
        quarantine: QuarantinePolicy,
        pass_timeout: float = 60.0,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.store = store
        self.source = source
        self.notifier = notifier
        self.quarantine = quarantine
        self.pass_timeout = pass_timeout
        self.stop_event = stop_event or asyncio.Event()
        self.last_result: PassResult | None = None
        self._running = False
        self._deadline = 0.0
        self._pass_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_running(self) -> bool:
        """是否有更新正在进行."""
        return self._running

    def stop(self) -> None:
        """停止引擎，正在进行的更新在当前等待点被取消."""
        self.stop_event.set()
        if self._pass_task is not None and not self._pass_task.done():
            self._pass_task.cancel()
        logger.info("更新引擎停止")

    async def wait_idle(self) -> None:
        """等待正在进行的更新结束（关闭资源前调用）."""
        await self._idle.wait()

    def _remaining(self) -> float:
        return self._deadline - asyncio.get_running_loop().time()

    def _check_deadline(self) -> None:
        if self._remaining() <= 0 or self.stop_event.is_set():
            raise _DeadlineExceeded

    async def run_pass(self) -> PassResult:
        """执行一轮更新；同一时间只允许一轮."""
        if self._running:
            logger.info("已有更新在运行，跳过本次调度")
            return PassResult(status=PassStatus.SKIPPED, finished_at=utcnow())

        self._running = True
        self._idle.clear()
        result = PassResult()
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self.pass_timeout
        logger.info("定时更新开始")

        try:
            # 在独立任务中执行，stop() 可以直接取消正在等待的抓取或发送
            self._pass_task = asyncio.create_task(self._run(result))
            async with asyncio.timeout_at(self._deadline):
                await self._pass_task
        except (TimeoutError, _DeadlineExceeded):
            result.status = PassStatus.DEADLINE_EXCEEDED
            logger.warning(f"更新超时 ({self.pass_timeout} 秒)，本轮提前结束")
        except StoreError as e:
            result.status = PassStatus.FAILED
            result.error = str(e)
            logger.error(f"更新失败: {e}")
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not self.stop_event.is_set() or (current and current.cancelling()):
                raise
            result.status = PassStatus.DEADLINE_EXCEEDED
            logger.warning("更新引擎已停止，本轮提前结束")
        finally:
            self._pass_task = None
            self._running = False
            self._idle.set()
            result.finished_at = utcnow()
            self.last_result = result

        logger.info(
            f"定时更新结束: 状态={result.status}, Feed={result.feeds_total}, "
            f"失败={result.feeds_failed}, 下线={result.feeds_dropped}, "
            f"发送={result.messages_sent}"
        )
        return result

    async def _run(self, result: PassResult) -> None:
        """遍历所有 Feed."""
        await self.store.prune_fetch_failures(utcnow() - self.quarantine.window)

        feeds = await self.store.list_all_feeds(cancel=self.stop_event)
        async with feeds:
            async for feed in feeds:
                result.feeds_total += 1
                await self._update_feed(feed, result)

        # 停止信号会让游标提前结束
        self._check_deadline()

    async def _update_feed(self, feed: FeedInfo, result: PassResult) -> None:
        """更新单个 Feed."""
        logger.info(f"加载 Feed #{feed.id}: {feed.url}")

        try:
            document = await self.source.fetch(feed.url, timeout=self._remaining())
        except FetchError as e:
            self._check_deadline()
            await self._handle_failure(feed, str(e), result)
            return

        freshness = document.freshness()
        if freshness is None:
            await self._handle_failure(feed, "Feed 没有可用的时间戳", result)
            return

        try:
            subscribers = await self.store.list_subscribers(
                feed.id, not_after=freshness, cancel=self.stop_event
            )
        except StoreError as e:
            logger.warning(f"获取 Feed #{feed.id} 的订阅者失败: {e}")
            return

        async with subscribers:
            async for subscriber in subscribers:
                await self._deliver(feed, document, subscriber, result)

        logger.info(f"Feed #{feed.id}: {subscribers.count} 个订阅者需要更新")

    async def _handle_failure(
        self, feed: FeedInfo, reason: str, result: PassResult
    ) -> None:
        result.feeds_failed += 1
        try:
            if await self.quarantine.record_failure(feed, reason):
                result.feeds_dropped += 1
        except StoreError as e:
            logger.warning(f"记录 Feed #{feed.id} 失败信息出错: {e}")

    async def _deliver(
        self,
        feed: FeedInfo,
        document: Document,
        subscriber: Subscriber,
        result: PassResult,
    ) -> None:
        """按发布时间顺序逐条投递，每条成功后推进进度."""
        items = new_items_since(document, subscriber.last_update)
        if not items:
            return

        logger.info(
            f"目标 {subscriber.destination_id}: {len(items)} 条新条目 "
            f"(上次更新 {subscriber.last_update})"
        )

        for published, item in items:
            try:
                await self.notifier.send(subscriber.destination_id, format_item(item))
            except SendError as e:
                # 本轮不再给该目标发送，下轮从这一条重试
                result.send_failures += 1
                logger.warning(f"发送失败 (目标 {subscriber.destination_id}): {e}")
                break

            result.messages_sent += 1

            try:
                advanced = await self.store.advance_subscription(
                    subscriber.destination_id, feed.id, published
                )
            except StoreError as e:
                logger.warning(
                    f"更新进度失败 (目标 {subscriber.destination_id}, "
                    f"Feed #{feed.id}): {e}"
                )
                break

            if not advanced:
                logger.info(
                    f"目标 {subscriber.destination_id} 已取消订阅 Feed #{feed.id}，停止投递"
                )
                break

            self._check_deadline()
