"""命令处理 - 订阅、列表、取消订阅."""

import logging
from collections.abc import Iterable
from datetime import timedelta
from urllib.parse import urlsplit

from feedrelay.core.store import FeedInfo, SubscriptionStore
from feedrelay.fetcher.source import FeedSource
from feedrelay.models.feed import Feed
from feedrelay.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

HELP_TEXT = """可用命令:

/addfeed <url> ... 为当前聊天添加 RSS/Atom 订阅
/feeds ... 列出当前聊天的订阅
/removefeed <序号> ... 删除订阅（序号见 /feeds）
"""


class CommandError(Exception):
    """命令被拒绝."""


class PermissionDenied(CommandError):
    """用户不在白名单中."""


class RateLimited(CommandError):
    """请求过于频繁."""


class InvalidURL(CommandError):
    """URL 不合法."""


class CommandService:
    """面向用户的命令处理."""

    def __init__(
        self,
        store: SubscriptionStore,
        source: FeedSource,
        allowed_owners: Iterable[int] = (),
        request_limit: int = 0,
        request_window: timedelta = timedelta(hours=1),
    ) -> None:
        self.store = store
        self.source = source
        self.allowed_owners = frozenset(allowed_owners)
        self.request_limit = request_limit
        self.request_window = request_window

    def is_allowed(self, owner_id: int) -> bool:
        """白名单为空时所有人可用."""
        return not self.allowed_owners or owner_id in self.allowed_owners

    async def _throttle(self, owner_id: int, name: str, text: str) -> None:
        """记录请求并检查频率."""
        await self.store.record_request(owner_id, name, text)
        if not self.request_limit:
            return

        count = await self.store.count_recent_requests(
            owner_id, since=utcnow() - self.request_window
        )
        if count > self.request_limit:
            logger.warning(f"用户 {owner_id} 请求过于频繁 ({count}/{self.request_limit})")
            msg = "请求过于频繁，请稍后再试"
            raise RateLimited(msg)

    async def subscribe(self, owner_id: int, destination_id: int, url: str) -> Feed:
        """
        为目标添加订阅.

        新 URL 会先抓取一次以获取标题，抓取失败时抛出 FetchError。

        Raises:
            PermissionDenied, RateLimited, InvalidURL: 命令被拒绝
            FetchError: 无法抓取新 Feed
            QuotaExceeded, AlreadySubscribed, StoreError: 见 SubscriptionStore
        """
        if not self.is_allowed(owner_id):
            msg = "没有权限"
            raise PermissionDenied(msg)

        url = url.strip()
        await self._throttle(owner_id, "addfeed", url)
        validate_url(url)

        existing = await self.store.lookup_feed_by_url(url)
        if existing is not None:
            title = existing.title
        else:
            document = await self.source.fetch(url)
            title = document.title

        return await self.store.add_subscription(owner_id, destination_id, url, title)

    async def list_subscriptions(self, destination_id: int) -> list[FeedInfo]:
        """按序号列出目标的订阅."""
        feeds = await self.store.list_subscriptions(destination_id)
        return await feeds.to_list()

    async def unsubscribe(self, destination_id: int, position: int) -> bool:
        """按序号取消订阅."""
        return await self.store.remove_subscription(destination_id, position)

    def help_text(self) -> str:
        """帮助文本."""
        return HELP_TEXT


def validate_url(url: str) -> None:
    """只接受 http/https 地址."""
    if not url:
        msg = "请在命令后附上 Feed 的 URL"
        raise InvalidURL(msg)

    parts = urlsplit(url)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        msg = f"不支持的 URL: {url}"
        raise InvalidURL(msg)


def format_feed_list(feeds: list[FeedInfo]) -> str:
    """格式化订阅列表."""
    if not feeds:
        return "当前聊天没有订阅。"

    lines = ["当前聊天的订阅:"]
    for feed in feeds:
        lines.append(f"[{feed.position}] {feed.title or '(无标题)'} ({feed.url})")
    return "\n".join(lines)
