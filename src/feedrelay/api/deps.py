"""API 依赖注入."""

from fastapi import HTTPException, Request

from feedrelay.core.commands import CommandService
from feedrelay.core.updater import UpdateEngine


def get_commands(request: Request) -> CommandService:
    """获取命令处理服务."""
    commands = getattr(request.app.state, "commands", None)
    if commands is None:
        raise HTTPException(status_code=503, detail="服务未初始化")
    return commands


def get_engine(request: Request) -> UpdateEngine:
    """获取更新引擎."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="服务未初始化")
    return engine
