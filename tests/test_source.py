"""测试 Feed 解析与 HTTP 客户端."""

import json
from datetime import UTC, datetime, timedelta, timezone

import httpx
import pytest

from feedrelay.fetcher.source import (
    Document,
    FeedItem,
    FetchError,
    HttpFeedSource,
    parse_document,
)
from feedrelay.notifier.base import SendError
from feedrelay.notifier.telegram import TelegramNotifier

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <link>https://example.com/</link>
    <description>News</description>
    <lastBuildDate>Tue, 10 Mar 2026 12:00:00 GMT</lastBuildDate>
    <item>
      <title>Second</title>
      <link>https://example.com/2</link>
      <description>&lt;p&gt;Second post&lt;/p&gt;</description>
      <pubDate>Tue, 10 Mar 2026 11:00:00 +0100</pubDate>
    </item>
    <item>
      <title>Undated</title>
      <link>https://example.com/0</link>
    </item>
  </channel>
</rss>
"""

ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <id>urn:example</id>
  <entry>
    <title>One</title>
    <id>urn:example:1</id>
    <link href="https://example.com/atom/1"/>
    <updated>2026-03-01T08:00:00Z</updated>
    <summary>First entry</summary>
  </entry>
  <entry>
    <title>Two</title>
    <id>urn:example:2</id>
    <link href="https://example.com/atom/2"/>
    <published>2026-03-02T08:00:00Z</published>
    <updated>2026-03-05T08:00:00Z</updated>
  </entry>
</feed>
"""


class TestParseDocument:
    """测试 parse_document."""

    def test_rss_with_feed_level_time(self) -> None:
        """RSS 的 lastBuildDate 作为新鲜度，时区统一转为 UTC."""
        document = parse_document(RSS, "https://example.com/rss")

        assert document.title == "Example News"
        assert document.updated == datetime(2026, 3, 10, 12, 0)
        assert document.freshness() == datetime(2026, 3, 10, 12, 0)
        assert [item.title for item in document.items] == ["Second", "Undated"]
        assert document.items[0].published == datetime(2026, 3, 10, 10, 0)
        assert document.items[0].link == "https://example.com/2"
        assert document.items[1].published is None

    def test_atom_falls_back_to_item_times(self) -> None:
        """没有 Feed 级别时间时取条目时间的最大值."""
        document = parse_document(ATOM)

        assert document.updated is None
        assert document.items[0].published == datetime(2026, 3, 1, 8, 0)
        assert document.items[1].published == datetime(2026, 3, 2, 8, 0)
        assert document.freshness() == datetime(2026, 3, 2, 8, 0)

    def test_aware_times_become_naive_utc(self) -> None:
        """带时区的时间转换为不带时区的 UTC."""
        shanghai = timezone(timedelta(hours=8))
        document = Document(
            updated=datetime(2026, 3, 10, 20, 0, tzinfo=shanghai),
            items=[FeedItem(published=datetime(2026, 3, 10, 9, 30, tzinfo=UTC))],
        )

        assert document.updated == datetime(2026, 3, 10, 12, 0)
        assert document.items[0].published == datetime(2026, 3, 10, 9, 30)
        assert document.freshness().tzinfo is None

    def test_invalid_content_raises(self) -> None:
        """无法解析的内容抛出 FetchError."""
        with pytest.raises(FetchError):
            parse_document(b"this is not a feed", "https://example.com/bad")


class TestHttpFeedSource:
    """测试 HttpFeedSource."""

    async def test_fetch_and_parse(self) -> None:
        """下载并解析."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["User-Agent"].startswith("Mozilla/5.0")
            return httpx.Response(200, content=RSS)

        source = HttpFeedSource(transport=httpx.MockTransport(handler))
        try:
            document = await source.fetch("https://example.com/rss")
        finally:
            await source.close()

        assert document.title == "Example News"

    async def test_http_error_raises_fetch_error(self) -> None:
        """HTTP 错误状态转为 FetchError."""
        source = HttpFeedSource(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        try:
            with pytest.raises(FetchError):
                await source.fetch("https://example.com/rss")
        finally:
            await source.close()

    async def test_no_time_left(self) -> None:
        """没有剩余时间时不发请求."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, content=RSS)

        source = HttpFeedSource(transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(FetchError):
                await source.fetch("https://example.com/rss", timeout=0)
        finally:
            await source.close()

        assert calls == []


class TestTelegramNotifier:
    """测试 TelegramNotifier."""

    async def test_send_message(self) -> None:
        """调用 sendMessage."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "result": {}})

        notifier = TelegramNotifier(
            "TOKEN",
            api_base="https://telegram.test/",
            transport=httpx.MockTransport(handler),
        )
        try:
            await notifier.send(-100, "hello")
        finally:
            await notifier.close()

        [request] = requests
        assert request.url == "https://telegram.test/botTOKEN/sendMessage"
        body = json.loads(request.content)
        assert body["chat_id"] == -100
        assert body["text"] == "hello"

    async def test_api_error_raises_send_error(self) -> None:
        """ok=false 转为 SendError."""
        notifier = TelegramNotifier(
            "TOKEN",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(
                    200, json={"ok": False, "description": "chat not found"}
                )
            ),
        )
        try:
            with pytest.raises(SendError, match="chat not found"):
                await notifier.send(1, "hello")
        finally:
            await notifier.close()

    async def test_http_status_raises_send_error(self) -> None:
        """非 200 状态转为 SendError."""
        notifier = TelegramNotifier(
            "TOKEN",
            transport=httpx.MockTransport(lambda request: httpx.Response(403)),
        )
        try:
            with pytest.raises(SendError):
                await notifier.send(1, "hello")
        finally:
            await notifier.close()
