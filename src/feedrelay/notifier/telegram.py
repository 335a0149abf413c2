"""Telegram Bot API 通知."""

import logging

import httpx

from feedrelay.notifier.base import Notifier, SendError

logger = logging.getLogger(__name__)


class TelegramNotifier(Notifier):
    """通过 Telegram Bot API 发送消息."""

    def __init__(
        self,
        token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = f"{api_base.rstrip('/')}/bot{token}"
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def send(self, destination_id: int, text: str) -> None:
        """发送文本消息."""
        try:
            response = await self._client.post(
                f"{self._base_url}/sendMessage",
                json={
                    "chat_id": destination_id,
                    "text": text,
                    "disable_web_page_preview": False,
                },
            )
        except httpx.HTTPError as e:
            msg = f"发送到 {destination_id} 失败: {e}"
            raise SendError(msg) from e

        if response.status_code != 200:
            msg = f"发送到 {destination_id} 失败: HTTP {response.status_code}"
            raise SendError(msg)

        try:
            data = response.json()
        except ValueError as e:
            msg = f"发送到 {destination_id} 失败: 响应格式错误"
            raise SendError(msg) from e

        if not data.get("ok"):
            msg = f"发送到 {destination_id} 失败: {data.get('description', '未知错误')}"
            raise SendError(msg)
