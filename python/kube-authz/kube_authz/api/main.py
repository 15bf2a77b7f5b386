"""kube-authz API application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from kube_authz.api.routes import access, health
from kube_authz.api.state import init_policies
from kube_authz.config import settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load policies on startup."""
    logging.getLogger("kube_authz").setLevel(settings.api_log_level.upper())
    init_policies()
    yield


app = FastAPI(
    title="kube-authz",
    description="Offline Kubernetes RBAC policy evaluator",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(access.router)
