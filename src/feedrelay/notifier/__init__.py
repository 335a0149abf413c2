"""消息通知模块."""

from feedrelay.notifier.base import Notifier, SendError
from feedrelay.notifier.telegram import TelegramNotifier

__all__ = [
    "Notifier",
    "SendError",
    "TelegramNotifier",
]
