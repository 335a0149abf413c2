"""订阅 API."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel

from feedrelay.api.deps import get_commands
from feedrelay.core.commands import (
    CommandService,
    InvalidURL,
    PermissionDenied,
    RateLimited,
    format_feed_list,
)
from feedrelay.core.errors import AlreadySubscribed, QuotaExceeded, StoreError
from feedrelay.fetcher.source import FetchError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/destinations", tags=["subscriptions"])


class SubscribeRequest(BaseModel):
    """订阅请求."""

    owner_id: int
    url: str


@router.post("/{destination_id}/subscriptions", status_code=201)
async def subscribe(
    body: SubscribeRequest,
    destination_id: int = Path(..., description="投递目标 ID"),
    commands: CommandService = Depends(get_commands),
) -> dict:
    """为目标添加订阅."""
    try:
        feed = await commands.subscribe(body.owner_id, destination_id, body.url)
    except PermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    except RateLimited as e:
        raise HTTPException(status_code=429, detail=str(e)) from e
    except InvalidURL as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except QuotaExceeded as e:
        logger.warning(f"用户 {body.owner_id} 配额超限: {e}")
        raise HTTPException(
            status_code=429,
            detail={"message": "订阅数量已达上限", "which": e.which},
        ) from e
    except AlreadySubscribed as e:
        raise HTTPException(status_code=409, detail="已订阅该 Feed") from e
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"抓取 Feed 失败: {e}") from e
    except StoreError as e:
        logger.error(f"添加订阅失败 (用户 {body.owner_id}): {e}")
        raise HTTPException(status_code=503, detail="后端错误") from e

    return {
        "id": feed.id,
        "title": feed.title,
        "url": feed.url,
        "message": f'Feed "{feed.title}" 已添加到当前聊天。',
    }


@router.get("/{destination_id}/subscriptions")
async def list_subscriptions(
    destination_id: int,
    commands: CommandService = Depends(get_commands),
) -> dict:
    """按序号列出目标的订阅."""
    try:
        feeds = await commands.list_subscriptions(destination_id)
    except StoreError as e:
        logger.error(f"列出订阅失败: {e}")
        raise HTTPException(status_code=503, detail="后端错误") from e

    return {
        "total": len(feeds),
        "items": [
            {
                "position": feed.position,
                "id": feed.id,
                "title": feed.title,
                "url": feed.url,
            }
            for feed in feeds
        ],
        "text": format_feed_list(feeds),
    }


@router.delete("/{destination_id}/subscriptions/{position}")
async def unsubscribe(
    destination_id: int,
    position: int,
    commands: CommandService = Depends(get_commands),
) -> dict:
    """按序号取消订阅."""
    try:
        removed = await commands.unsubscribe(destination_id, position)
    except StoreError as e:
        logger.error(f"取消订阅失败: {e}")
        raise HTTPException(status_code=503, detail="后端错误") from e

    if not removed:
        raise HTTPException(status_code=404, detail="订阅不存在")

    return {"position": position, "removed": True}

