"""订阅存储 - Feed、订阅关系、失败记录的持久化."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlsplit

from sqlalchemy import delete, func, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from feedrelay.core.cursor import RowStream
from feedrelay.core.errors import (
    AlreadySubscribed,
    ChatLimitExceeded,
    OwnerActiveLimitExceeded,
    OwnerTotalLimitExceeded,
    QuotaExceeded,
    StoreError,
)
from feedrelay.models.feed import Feed
from feedrelay.models.feed_error import FeedError
from feedrelay.models.request_log import RequestLog
from feedrelay.models.subscription import Subscription
from feedrelay.utils.timeutil import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

# pg_advisory_xact_lock 使用的锁 ID
_ADMISSION_LOCK_KEY = 0x46454544


@dataclass(frozen=True)
class QuotaLimits:
    """订阅配额（0 表示不限制）."""

    max_feeds_per_destination: int = 0
    max_total_feeds_by_owner: int = 0
    max_active_feeds_by_owner: int = 0


@dataclass(frozen=True)
class FeedInfo:
    """流式查询返回的 Feed 记录."""

    id: int
    url: str
    title: str = ""
    position: int | None = None


@dataclass(frozen=True)
class Subscriber:
    """待更新的订阅者."""

    destination_id: int
    last_update: datetime


def normalize_url(url: str) -> str:
    """
    规范化 Feed URL.

    去掉 scheme（http 和 https 视为同一来源），host 转小写，去掉末尾的斜杠。
    """
    url = url.strip()
    parts = urlsplit(url if "://" in url else f"//{url}")
    key = parts.netloc.lower() + parts.path
    if parts.query:
        key += f"?{parts.query}"
    return key.rstrip("/")


class SubscriptionStore:
    """订阅存储."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        limits: QuotaLimits | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.limits = limits or QuotaLimits()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """开启事务，存储异常统一转换为 StoreError."""
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    # ---- 订阅准入 ----

    async def add_subscription(
        self,
        owner_id: int,
        destination_id: int,
        feed_url: str,
        feed_title: str,
    ) -> Feed:
        """
        为目标添加订阅.

        配额检查、Feed 查找或创建、订阅插入在同一个事务中完成，
        任何一步失败都会整体回滚。

        Raises:
            QuotaExceeded: 配额超限（按目标、用户总数、用户有效数的优先级）
            AlreadySubscribed: 目标已订阅该 Feed
            StoreError: 存储失败
        """
        url_key = normalize_url(feed_url)

        async with self._transaction() as session:
            await self._lock_admission(session)
            await self._check_quota(session, owner_id, destination_id)

            result = await session.execute(select(Feed).where(Feed.url_key == url_key))
            feed = result.scalar_one_or_none()
            if feed is None:
                feed = Feed(
                    url=feed_url.strip(),
                    url_key=url_key,
                    title=feed_title,
                    owner_id=owner_id,
                )
                session.add(feed)
                await session.flush()
                logger.info(f"新建 Feed #{feed.id}: {feed.url}")
            else:
                existing = await session.execute(
                    select(Subscription.id).where(
                        Subscription.destination_id == destination_id,
                        Subscription.feed_id == feed.id,
                    )
                )
                if existing.first() is not None:
                    msg = f"目标 {destination_id} 已订阅 Feed #{feed.id}"
                    raise AlreadySubscribed(msg)

            if feed.id is None:
                msg = f"Feed 未分配 ID: {feed.url}"
                raise StoreError(msg)
            session.add(
                Subscription(
                    destination_id=destination_id,
                    feed_id=feed.id,
                    owner_id=owner_id,
                    last_update=utcnow(),
                )
            )

        logger.info(f"目标 {destination_id} 订阅了 Feed #{feed.id}（用户 {owner_id}）")
        return feed

    async def _lock_admission(self, session: AsyncSession) -> None:
        """串行化准入事务，保证配额检查与插入看到同一快照."""
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            # 立即获取写锁，并发的准入事务在这里排队
            await session.execute(text("BEGIN IMMEDIATE"))
        elif dialect == "postgresql":
            await session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": _ADMISSION_LOCK_KEY},
            )
        else:
            logger.warning(f"{dialect} 不支持准入锁，配额检查可能不是原子的")

    async def _check_quota(
        self, session: AsyncSession, owner_id: int, destination_id: int
    ) -> None:
        """一次查询同时取三项计数，按优先级报告第一个超限的配额."""
        in_destination = (
            select(func.count())
            .select_from(Subscription)
            .where(Subscription.destination_id == destination_id)
            .scalar_subquery()
        )
        owned_feeds = (
            select(func.count())
            .select_from(Feed)
            .where(Feed.owner_id == owner_id)
            .scalar_subquery()
        )
        owner_active = (
            select(func.count())
            .select_from(Subscription)
            .where(Subscription.owner_id == owner_id)
            .scalar_subquery()
        )
        result = await session.execute(
            select(in_destination, owned_feeds, owner_active)
        )
        counts = result.one()

        checks: list[tuple[type[QuotaExceeded], int, int]] = [
            (ChatLimitExceeded, self.limits.max_feeds_per_destination, counts[0]),
            (OwnerTotalLimitExceeded, self.limits.max_total_feeds_by_owner, counts[1]),
            (
                OwnerActiveLimitExceeded,
                self.limits.max_active_feeds_by_owner,
                counts[2],
            ),
        ]
        for error_cls, limit, current in checks:
            if limit and current >= limit:
                raise error_cls(limit=limit, current=current)

    # ---- 订阅查询与删除 ----

    async def remove_subscription(self, destination_id: int, position: int) -> bool:
        """按 1 开始的序号删除订阅，序号越界时返回 False."""
        if position < 1:
            return False

        async with self._transaction() as session:
            result = await session.execute(
                select(Subscription.feed_id)
                .where(Subscription.destination_id == destination_id)
                .order_by(Subscription.id)
                .offset(position - 1)
                .limit(1)
            )
            feed_id = result.scalar_one_or_none()
            if feed_id is None:
                return False

            await session.execute(
                delete(Subscription).where(
                    Subscription.destination_id == destination_id,
                    Subscription.feed_id == feed_id,
                )
            )

        logger.info(f"目标 {destination_id} 取消订阅第 {position} 个 Feed #{feed_id}")
        return True

    async def list_subscriptions(
        self, destination_id: int, cancel: asyncio.Event | None = None
    ) -> RowStream[FeedInfo]:
        """按插入顺序列出目标的订阅，附带序号."""
        stmt = (
            select(
                Feed.id,
                Feed.url,
                Feed.title,
                func.row_number().over(order_by=Subscription.id),
            )
            .join(Subscription, Subscription.feed_id == Feed.id)
            .where(Subscription.destination_id == destination_id)
            .order_by(Subscription.id)
        )
        return await RowStream.open(
            self._session_factory,
            stmt,
            lambda row: FeedInfo(
                id=row[0], url=row[1], title=row[2], position=int(row[3])
            ),
            cancel=cancel,
            name=f"subscriptions[{destination_id}]",
        )

    async def list_all_feeds(
        self, cancel: asyncio.Event | None = None
    ) -> RowStream[FeedInfo]:
        """列出所有 Feed."""
        stmt = select(Feed.id, Feed.url, Feed.title).order_by(Feed.id)
        return await RowStream.open(
            self._session_factory,
            stmt,
            lambda row: FeedInfo(id=row[0], url=row[1], title=row[2]),
            cancel=cancel,
            name="feeds",
        )

    async def list_subscribers(
        self,
        feed_id: int,
        not_after: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RowStream[Subscriber]:
        """
        列出 Feed 的订阅者.

        Args:
            feed_id: Feed ID
            not_after: 只返回 last_update 早于该时间的订阅者；None 表示全部
            cancel: 取消信号
        """
        stmt = (
            select(Subscription.destination_id, Subscription.last_update)
            .where(Subscription.feed_id == feed_id)
            .order_by(Subscription.id)
        )
        if not_after is not None:
            stmt = stmt.where(Subscription.last_update < to_naive_utc(not_after))

        return await RowStream.open(
            self._session_factory,
            stmt,
            lambda row: Subscriber(destination_id=row[0], last_update=row[1]),
            cancel=cancel,
            name=f"subscribers[{feed_id}]",
        )

    async def advance_subscription(
        self, destination_id: int, feed_id: int, timestamp: datetime
    ) -> bool:
        """
        推进订阅进度.

        进度只会前进；订阅已被删除时返回 False（调用方记录后忽略即可）。
        """
        timestamp = to_naive_utc(timestamp)
        async with self._transaction() as session:
            result = await session.execute(
                update(Subscription)
                .where(
                    Subscription.destination_id == destination_id,
                    Subscription.feed_id == feed_id,
                    Subscription.last_update <= timestamp,
                )
                .values(last_update=timestamp)
            )
            return bool(result.rowcount)

    async def lookup_feed_by_url(self, url: str) -> Feed | None:
        """按规范化 URL 查找 Feed."""
        async with self._transaction() as session:
            result = await session.execute(
                select(Feed).where(Feed.url_key == normalize_url(url))
            )
            return result.scalar_one_or_none()

    # ---- 抓取失败记录 ----

    async def record_fetch_failure(self, feed_id: int, error: str = "") -> None:
        """追加一条抓取失败记录."""
        async with self._transaction() as session:
            session.add(FeedError(feed_id=feed_id, error=error[:500]))

    async def count_recent_fetch_failures(self, feed_id: int, since: datetime) -> int:
        """统计 since 之后的失败次数."""
        async with self._transaction() as session:
            result = await session.execute(
                select(func.count())
                .select_from(FeedError)
                .where(
                    FeedError.feed_id == feed_id,
                    FeedError.created_at >= to_naive_utc(since),
                )
            )
            return int(result.scalar_one())

    async def prune_fetch_failures(self, before: datetime) -> int:
        """删除 before 之前的失败记录."""
        async with self._transaction() as session:
            result = await session.execute(
                delete(FeedError).where(FeedError.created_at < to_naive_utc(before))
            )
            return int(result.rowcount or 0)

    async def drop_feed(self, feed_id: int) -> list[int]:
        """
        删除 Feed 及其全部订阅和失败记录.

        Returns:
            被删除订阅的目标 ID 列表
        """
        async with self._transaction() as session:
            result = await session.execute(
                select(Subscription.destination_id)
                .where(Subscription.feed_id == feed_id)
                .order_by(Subscription.id)
            )
            destinations = list(result.scalars().all())

            await session.execute(
                delete(Subscription).where(Subscription.feed_id == feed_id)
            )
            await session.execute(delete(FeedError).where(FeedError.feed_id == feed_id))
            await session.execute(delete(Feed).where(Feed.id == feed_id))

        logger.info(f"已删除 Feed #{feed_id}，影响 {len(destinations)} 个订阅")
        return destinations

    # ---- 请求日志 ----

    async def record_request(self, owner_id: int, name: str, text: str = "") -> None:
        """记录一次用户请求."""
        async with self._transaction() as session:
            session.add(RequestLog(owner_id=owner_id, name=name, text=text[:500]))

    async def count_recent_requests(self, owner_id: int, since: datetime) -> int:
        """统计用户在 since 之后的请求数."""
        async with self._transaction() as session:
            result = await session.execute(
                select(func.count())
                .select_from(RequestLog)
                .where(
                    RequestLog.owner_id == owner_id,
                    RequestLog.created_at >= to_naive_utc(since),
                )
            )
            return int(result.scalar_one())
