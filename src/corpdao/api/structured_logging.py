# src/corpdao/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from corpdao.runtime.runtime_logging import log_event

Json = Dict[str, Any]

# Path params worth surfacing on every request line.
_ID_PARAMS = ("corp_id", "proposal_id", "address", "voter")

# Set by route handlers on request.state; copied onto the request line.
_STATE_FIELDS = ("tx_type", "signer", "tx_seq", "tx_code")

_QUIET_PATHS = {"/v1/health", "/v1/ready", "/v1/metrics"}


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def configure_structured_logging() -> None:
    """JSONL logging to stdout at CORPDAO_LOG_LEVEL (default INFO). Idempotent."""
    level_name = (os.environ.get("CORPDAO_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_corpdao_configured", False):  # type: ignore[attr-defined]
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_corpdao_configured", True)  # type: ignore[attr-defined]


def request_fields(request: Request) -> Json:
    """Ids and tx outcome for one request, from its path params and request.state."""
    out: Json = {}
    params = request.scope.get("path_params") or {}
    for k in _ID_PARAMS:
        if k in params:
            out[k] = params[k]
    for k in _STATE_FIELDS:
        v = getattr(request.state, k, None)
        if v is not None:
            out[k] = v
    return out


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per API call.

    Tx submissions carry tx_type, signer, tx_seq and the rejection code (if
    any); corporation and proposal routes carry their ids.

    Controls:
      - CORPDAO_LOG_REQUESTS=0 disables the middleware (default on)
      - CORPDAO_LOG_PROBES=1 also logs health, ready and metrics polls
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = _flag("CORPDAO_LOG_REQUESTS", True)
        self._log_probes = _flag("CORPDAO_LOG_PROBES", False)
        self._logger = logging.getLogger("corpdao.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        path = str(request.url.path or "")
        if path in _QUIET_PATHS and not self._log_probes:
            response = await call_next(request)
            response.headers.setdefault("x-request-id", request_id)
            return response

        started = time.monotonic()
        status = 500
        err: Optional[str] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = str(e)
            raise
        finally:
            log_event(
                self._logger,
                "http_request",
                level=logging.WARNING if status >= 500 else logging.INFO,
                request_id=request_id,
                method=request.method,
                path=path,
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=err,
                **request_fields(request),
            )
