"""FeedError 抓取失败记录."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlmodel import Field, SQLModel

from feedrelay.utils.timeutil import utcnow


class FeedError(SQLModel, table=True):
    """抓取失败日志（只追加）."""

    __tablename__ = "feed_errors"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    feed_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("feeds.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    error: str = Field(default="", description="错误信息")
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=False), nullable=False, index=True),
    )
