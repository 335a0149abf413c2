"""消息通知抽象基类."""

from abc import ABC, abstractmethod


class SendError(Exception):
    """消息发送失败."""


class Notifier(ABC):
    """消息通知抽象基类."""

    @abstractmethod
    async def send(self, destination_id: int, text: str) -> None:
        """发送消息，失败时抛出 SendError."""
        ...

    async def close(self) -> None:
        """释放资源."""
        return None
