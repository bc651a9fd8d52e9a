from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def health_check(request: Request) -> Dict[str, Any]:
    """Liveness plus which delivery mode is active"""
    runtime = getattr(request.app.state, "runtime", None)
    poller = runtime.poller if runtime else None
    return {
        "status": "healthy" if runtime else "starting",
        "polling": bool(poller and poller.is_running),
        "active_flows": len(runtime.bot.flows) if runtime else 0,
    }
