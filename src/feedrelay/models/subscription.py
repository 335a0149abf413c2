"""Subscription 订阅关系模型."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel

from feedrelay.utils.timeutil import utcnow


class Subscription(SQLModel, table=True):
    """目标对 Feed 的订阅及投递进度.

    自增 id 即稳定的插入顺序，用于计算序号，删除时不重新编号。
    """

    __tablename__ = "subscriptions"  # type: ignore[assignment]
    __table_args__ = (
        UniqueConstraint("destination_id", "feed_id", name="uq_subscription"),
    )

    id: int | None = Field(default=None, primary_key=True)
    destination_id: int = Field(
        sa_column=Column(BigInteger, nullable=False, index=True),
        description="投递目标（聊天 ID）",
    )
    feed_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("feeds.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    owner_id: int = Field(
        sa_column=Column(BigInteger, nullable=False, index=True),
        description="发起订阅的用户",
    )
    last_update: datetime = Field(
        sa_column=Column(DateTime(timezone=False), nullable=False),
        description="已投递到的时间点（naive UTC）",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=False), nullable=False),
    )
