"""测试配置和 fixtures."""

import asyncio
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedrelay.core.quarantine import QuarantinePolicy
from feedrelay.core.store import QuotaLimits, SubscriptionStore
from feedrelay.core.updater import UpdateEngine
from feedrelay.fetcher.source import Document, FeedItem, FeedSource, FetchError
from feedrelay.models.database import (
    create_engine,
    create_session_factory,
    create_tables,
)
from feedrelay.models.subscription import Subscription
from feedrelay.notifier.base import Notifier, SendError
from feedrelay.utils.timeutil import utcnow


class FakeFeedSource(FeedSource):
    """按 URL 返回预设文档或错误的 Feed 来源."""

    def __init__(self) -> None:
        self.documents: dict[str, Document | Exception] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[str] = []

    async def fetch(self, url: str, timeout: float | None = None) -> Document:
        self.calls.append(url)
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        outcome = self.documents.get(url)
        if outcome is None:
            msg = f"无法访问 {url}"
            raise FetchError(msg)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeNotifier(Notifier):
    """记录所有发送的消息."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []
        self.failing: set[int] = set()

    async def send(self, destination_id: int, text: str) -> None:
        if destination_id in self.failing:
            msg = f"目标 {destination_id} 不可达"
            raise SendError(msg)
        self.sent.append((destination_id, text))

    def texts_for(self, destination_id: int) -> list[str]:
        return [text for dest, text in self.sent if dest == destination_id]


def make_document(
    *published: datetime | None,
    updated: datetime | None = None,
    title: str = "Test Feed",
) -> Document:
    """按发布时间构造文档，条目标题为 item-<序号>."""
    items = [
        FeedItem(
            title=f"item-{index}",
            description=f"<p>description {index}</p>",
            link=f"https://example.com/items/{index}",
            published=when,
        )
        for index, when in enumerate(published, 1)
    ]
    return Document(title=title, updated=updated, items=items)


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """创建测试用的文件数据库."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)

    yield create_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SubscriptionStore:
    """不限配额的存储."""
    return SubscriptionStore(session_factory, QuotaLimits())


@pytest.fixture
def source() -> FakeFeedSource:
    return FakeFeedSource()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def quarantine(
    store: SubscriptionStore, notifier: FakeNotifier
) -> QuarantinePolicy:
    return QuarantinePolicy(store, notifier, window=timedelta(hours=12), threshold=9)


@pytest.fixture
def engine(
    store: SubscriptionStore,
    source: FakeFeedSource,
    notifier: FakeNotifier,
    quarantine: QuarantinePolicy,
) -> UpdateEngine:
    return UpdateEngine(store, source, notifier, quarantine, pass_timeout=10.0)


@pytest.fixture
def set_last_update(session_factory: async_sessionmaker[AsyncSession]):
    """直接改写订阅进度（绕过只前进的限制）."""

    async def _set(destination_id: int, feed_id: int, when: datetime) -> None:
        async with session_factory() as session:
            await session.execute(
                update(Subscription)
                .where(
                    Subscription.destination_id == destination_id,
                    Subscription.feed_id == feed_id,
                )
                .values(last_update=when)
            )
            await session.commit()

    return _set


@pytest.fixture
def base_time() -> datetime:
    """测试用的基准时间（早于订阅创建时间）."""
    return utcnow() - timedelta(days=2)
