"""Feed 订阅源模型."""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime
from sqlmodel import Field, SQLModel

from feedrelay.utils.timeutil import utcnow


class Feed(SQLModel, table=True):
    """RSS/Atom 订阅源，以规范化 URL 作为身份."""

    __tablename__ = "feeds"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    url: str = Field(description="首次订阅时提交的 URL（保留 scheme 用于抓取）")
    url_key: str = Field(unique=True, index=True, description="规范化 URL")
    title: str = Field(default="", description="Feed 标题")
    owner_id: int | None = Field(
        default=None,
        sa_column=Column(BigInteger, nullable=True, index=True),
        description="创建者",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=False), nullable=False),
    )
