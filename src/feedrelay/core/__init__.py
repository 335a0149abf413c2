"""核心业务逻辑."""

from feedrelay.core.commands import CommandService
from feedrelay.core.cursor import RowStream
from feedrelay.core.quarantine import QuarantinePolicy
from feedrelay.core.store import FeedInfo, QuotaLimits, Subscriber, SubscriptionStore
from feedrelay.core.updater import PassResult, PassStatus, UpdateEngine

__all__ = [
    "CommandService",
    "FeedInfo",
    "PassResult",
    "PassStatus",
    "QuarantinePolicy",
    "QuotaLimits",
    "RowStream",
    "Subscriber",
    "SubscriptionStore",
    "UpdateEngine",
]
