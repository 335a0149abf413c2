"""RequestLog 请求日志模型."""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime
from sqlmodel import Field, SQLModel

from feedrelay.utils.timeutil import utcnow


class RequestLog(SQLModel, table=True):
    """用户命令日志，用于限流."""

    __tablename__ = "requests"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    owner_id: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))
    name: str = Field(description="命令名")
    text: str = Field(default="", description="命令参数")
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=False), nullable=False, index=True),
    )
