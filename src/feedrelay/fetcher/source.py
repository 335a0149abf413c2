"""Feed 抓取与解析."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import feedparser
import httpx
from pydantic import BaseModel, Field, field_validator

from feedrelay.utils.timeutil import from_struct_time, to_naive_utc

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; FeedRelay/0.1; +https://github.com/feedrelay)"


class FetchError(Exception):
    """Feed 抓取或解析失败."""


class FeedItem(BaseModel):
    """Feed 条目."""

    title: str = ""
    description: str = ""
    link: str = ""
    published: datetime | None = None  # naive UTC

    @field_validator("published")
    @classmethod
    def _naive_published(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None


class Document(BaseModel):
    """解析后的 Feed 文档."""

    title: str = ""
    updated: datetime | None = None  # Feed 级别的更新时间（naive UTC）
    items: list[FeedItem] = Field(default_factory=list)

    @field_validator("updated")
    @classmethod
    def _naive_updated(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None

    def freshness(self) -> datetime | None:
        """
        文档的新鲜度时间.

        优先使用 Feed 级别的更新时间，否则取条目发布时间的最大值；
        两者都没有时返回 None。
        """
        if self.updated is not None:
            return self.updated
        published = [item.published for item in self.items if item.published]
        return max(published) if published else None


class FeedSource(ABC):
    """Feed 来源抽象."""

    @abstractmethod
    async def fetch(self, url: str, timeout: float | None = None) -> Document:
        """抓取并解析 Feed，失败时抛出 FetchError."""
        ...

    async def close(self) -> None:
        """释放资源."""
        return None


class HttpFeedSource(FeedSource):
    """通过 HTTP 下载并用 feedparser 解析."""

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def fetch(self, url: str, timeout: float | None = None) -> Document:
        """下载 Feed；timeout 为本次请求可用的剩余时间."""
        request_timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        if request_timeout <= 0:
            msg = f"没有剩余时间抓取 {url}"
            raise FetchError(msg)

        try:
            response = await self._client.get(url, timeout=request_timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"下载 {url} 失败: {e}"
            raise FetchError(msg) from e

        # feedparser 是同步库，放到线程中解析
        return await asyncio.to_thread(parse_document, response.content, url)


def parse_document(content: bytes | str, url: str = "") -> Document:
    """解析 Feed 内容."""
    parsed = feedparser.parse(content)

    if parsed.get("bozo") and not parsed.entries and not parsed.feed:
        error = parsed.get("bozo_exception")
        msg = f"解析 {url} 失败: {error}"
        raise FetchError(msg)

    feed_info: Any = parsed.feed
    updated = from_struct_time(
        feed_info.get("updated_parsed") or feed_info.get("published_parsed")
    )

    items = [
        FeedItem(
            title=entry.get("title", ""),
            description=entry.get("summary", ""),
            link=entry.get("link", ""),
            published=from_struct_time(
                entry.get("published_parsed") or entry.get("updated_parsed")
            ),
        )
        for entry in parsed.entries
    ]

    return Document(title=feed_info.get("title", ""), updated=updated, items=items)
