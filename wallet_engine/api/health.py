"""Liveness endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    registry = getattr(request.app.state, "registry", None)
    return {
        "status": "ok",
        "providers": registry.names if registry is not None else [],
        "scheduler": "running" if scheduler is not None and scheduler.running else "stopped",
    }
