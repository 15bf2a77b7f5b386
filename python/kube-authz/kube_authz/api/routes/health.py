"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from kube_authz.api.state import get_holder

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, object]:
    """Basic health check with loaded policy counts."""
    return {
        "status": "ok",
        "service": "kube-authz",
        "policies": get_holder().store.summary(),
    }
