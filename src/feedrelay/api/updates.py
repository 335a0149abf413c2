"""更新任务 API."""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from feedrelay.api.deps import get_engine
from feedrelay.core.updater import PassResult, UpdateEngine

router = APIRouter(prefix="/api/updates", tags=["updates"])


def _result_to_dict(result: PassResult) -> dict:
    data = asdict(result)
    data["started_at"] = result.started_at.isoformat()
    data["finished_at"] = result.finished_at.isoformat() if result.finished_at else None
    return data


@router.post("")
async def trigger_update(engine: UpdateEngine = Depends(get_engine)) -> dict:
    """立即执行一轮更新."""
    result = await engine.run_pass()
    return _result_to_dict(result)


@router.get("/status")
async def get_update_status(engine: UpdateEngine = Depends(get_engine)) -> dict:
    """获取最近一轮更新结果."""
    return {
        "running": engine.is_running,
        "last": _result_to_dict(engine.last_result) if engine.last_result else None,
    }
