from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def health() -> Json:
    """Liveness. Never touches the ledger."""
    return {"ok": True, "ts_ms": _now_ms()}


@router.get("/ready")
def ready(request: Request) -> Json:
    """Readiness: executor attached and genesis config present."""
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return {"ok": False, "ready": False, "reason": "executor_not_attached"}

    st = ex.state()
    cfg = st.config_json()
    denom = str(cfg.get("denom") or "")
    return {
        "ok": True,
        "ready": bool(cfg),
        "mode": (os.environ.get("CORPDAO_MODE") or "prod").strip().lower(),
        "db_path": ex.db_path or ":memory:",
        "tracked_funds": st.tracked_funds(),
        "custodied_balance": ex.bank.custodied_balance(denom) if denom else 0,
        "ts_ms": _now_ms(),
    }
