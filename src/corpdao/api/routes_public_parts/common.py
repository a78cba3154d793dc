from __future__ import annotations

import time
from typing import Any, Dict, Optional

from fastapi import Request

from corpdao.api.errors import ApiError
from corpdao.ledger.tables import DaoState

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _state(request: Request) -> DaoState:
    return _executor(request).state()


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        s = str(v).strip()
        if s == "":
            return int(default)
        return int(s)
    except ValueError:
        return int(default)


def _opt_int_param(v: Any) -> Optional[int]:
    if v is None or str(v).strip() == "":
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        raise ApiError.bad_request("bad_request", "query param must be an integer", {"value": str(v)})


def _opt_str_param(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _now_s() -> int:
    return int(time.time())
