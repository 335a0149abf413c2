"""数据模型."""

from feedrelay.models.database import async_session_maker, close_db, init_db
from feedrelay.models.feed import Feed
from feedrelay.models.feed_error import FeedError
from feedrelay.models.request_log import RequestLog
from feedrelay.models.subscription import Subscription

__all__ = [
    "Feed",
    "FeedError",
    "RequestLog",
    "Subscription",
    "async_session_maker",
    "close_db",
    "init_db",
]
