# src/corpdao/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from corpdao.api.routes_public_parts.corporations import router as corporations_router
from corpdao.api.routes_public_parts.health import router as health_router
from corpdao.api.routes_public_parts.metrics import router as metrics_router
from corpdao.api.routes_public_parts.proposals import router as proposals_router
from corpdao.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
public_router.include_router(corporations_router, prefix="/v1", tags=["corporations"])
public_router.include_router(proposals_router, prefix="/v1", tags=["proposals"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
