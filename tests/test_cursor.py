"""测试流式游标."""

import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from feedrelay.core.cursor import RowStream
from feedrelay.core.errors import StoreError
from feedrelay.core.store import SubscriptionStore
from feedrelay.models.feed import Feed


async def add_feeds(store: SubscriptionStore, count: int) -> None:
    for index in range(count):
        await store.add_subscription(
            1, -100, f"https://example.com/{index}.xml", f"feed-{index}"
        )


class TestRowStream:
    """测试 RowStream."""

    async def test_drained_stream_is_closed(self, store: SubscriptionStore) -> None:
        """读完后自动释放."""
        await add_feeds(store, 3)

        stream = await store.list_all_feeds()
        titles = [feed.title async for feed in stream]

        assert titles == ["feed-0", "feed-1", "feed-2"]
        assert stream.closed
        assert stream.count == 3

    async def test_early_exit_closes_stream(self, store: SubscriptionStore) -> None:
        """提前退出 async with 时释放."""
        await add_feeds(store, 5)

        stream = await store.list_all_feeds()
        async with stream:
            async for _feed in stream:
                break

        assert stream.closed
        assert stream.count == 1
        # 关闭后继续迭代直接结束
        assert [feed async for feed in stream] == []

    async def test_aclose_is_idempotent(self, store: SubscriptionStore) -> None:
        """重复关闭不报错."""
        stream = await store.list_all_feeds()
        await stream.aclose()
        await stream.aclose()

        assert stream.closed

    async def test_cancel_event_stops_iteration(
        self, store: SubscriptionStore
    ) -> None:
        """取消信号触发后停止产出."""
        await add_feeds(store, 5)
        cancel = asyncio.Event()

        stream = await store.list_all_feeds(cancel=cancel)
        received = []
        async for feed in stream:
            received.append(feed)
            if len(received) == 2:
                cancel.set()

        assert len(received) == 2
        assert stream.closed

    async def test_open_failure_raises_store_error(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """查询本身失败时抛出 StoreError."""
        with pytest.raises(StoreError):
            await RowStream.open(
                session_factory,
                text("SELECT * FROM missing_table"),
                lambda row: row,
            )

    async def test_mapper_error_ends_with_partial_results(
        self,
        store: SubscriptionStore,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """读取中途出错时提前结束，已产出的记录保留."""
        await add_feeds(store, 4)

        def mapper(row) -> str:
            if row[1] == "feed-2":
                msg = "bad row"
                raise ValueError(msg)
            return row[1]

        stream = await RowStream.open(
            session_factory,
            select(Feed.id, Feed.title).order_by(Feed.id),
            mapper,
        )
        titles = await stream.to_list()

        assert titles == ["feed-0", "feed-1"]
        assert stream.closed

    async def test_writes_proceed_while_stream_open(
        self, store: SubscriptionStore
    ) -> None:
        """游标打开期间写入不被阻塞."""
        await add_feeds(store, 3)

        stream = await store.list_all_feeds()
        async with stream:
            first = await anext(stream)
            await store.record_fetch_failure(first.id, "timeout")
            rest = [feed async for feed in stream]

        assert len(rest) == 2
