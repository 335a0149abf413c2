"""FeedRelay 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import Depends, FastAPI

from feedrelay import __version__
from feedrelay.api import subscriptions, updates
from feedrelay.api.deps import get_commands
from feedrelay.config import Settings, get_settings
from feedrelay.core.commands import CommandService
from feedrelay.core.quarantine import QuarantinePolicy
from feedrelay.core.store import QuotaLimits, SubscriptionStore
from feedrelay.core.updater import UpdateEngine
from feedrelay.fetcher.source import HttpFeedSource
from feedrelay.models.database import async_session_maker, close_db, init_db
from feedrelay.notifier.telegram import TelegramNotifier
from feedrelay.scheduler import create_scheduler, get_scheduler, shutdown_scheduler

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """组装存储、抓取、通知、更新引擎并挂到 app.state."""
    store = SubscriptionStore(
        async_session_maker(),
        QuotaLimits(
            max_feeds_per_destination=settings.max_feeds_per_destination,
            max_total_feeds_by_owner=settings.max_total_feeds_by_owner,
            max_active_feeds_by_owner=settings.max_active_feeds_by_owner,
        ),
    )
    source = HttpFeedSource(timeout=settings.fetch_timeout_seconds)
    notifier = TelegramNotifier(
        token=settings.bot_token,
        api_base=settings.telegram_api_base,
    )
    quarantine = QuarantinePolicy(
        store,
        notifier,
        window=timedelta(hours=settings.failure_window_hours),
        threshold=settings.failure_threshold,
    )

    app.state.source = source
    app.state.notifier = notifier
    app.state.quarantine = quarantine
    app.state.engine = UpdateEngine(
        store,
        source,
        notifier,
        quarantine,
        pass_timeout=settings.update_pass_timeout_seconds,
    )
    app.state.commands = CommandService(
        store,
        source,
        allowed_owners=settings.allowed_owner_ids,
        request_limit=settings.request_limit,
        request_window=timedelta(minutes=settings.request_window_minutes),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    logger.info("正在初始化数据库...")
    await init_db(app_settings.database_url)

    build_services(app, app_settings)

    if not app_settings.bot_token:
        logger.warning("未配置 bot_token，消息将无法发送")

    logger.info("正在启动定时任务...")
    create_scheduler(app_settings, app.state.engine)

    logger.info("FeedRelay 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    app.state.engine.stop()
    await shutdown_scheduler()
    # 正在进行的更新结束后再关闭抓取、通知和数据库
    await app.state.engine.wait_idle()
    await app.state.quarantine.drain()
    await app.state.source.close()
    await app.state.notifier.close()
    await close_db()
    logger.info("FeedRelay 已关闭")


app = FastAPI(
    title="FeedRelay",
    description="RSS/Atom 订阅推送服务",
    version=__version__,
    lifespan=lifespan,
)

# 注册路由
app.include_router(subscriptions.router)
app.include_router(updates.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "FeedRelay",
        "version": __version__,
        "description": "RSS/Atom 订阅推送服务",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    scheduler = get_scheduler()
    return {
        "status": "ok",
        "scheduler": bool(scheduler and scheduler.running),
    }


@app.get("/api/help")
async def help_text(commands: CommandService = Depends(get_commands)) -> dict:
    """命令帮助."""
    return {"text": commands.help_text()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feedrelay.main:app",
        host="0.0.0.0",
        port=8000,
    )
