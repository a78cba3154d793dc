from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from corpdao.api.errors import ApiError, status_for_code
from corpdao.api.routes_public_parts.common import _executor, _int_param
from corpdao.api.schemas import TxSubmitRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
def tx_submit(request: Request, body: TxSubmitRequest) -> Json:
    """Submit one tx envelope and apply it immediately.

    Returns:
      { ok, tx_seq, result, effect, delivered } on success.
      A rejected tx maps its error code to an HTTP status and carries
      {code, message, details} under "error".
    """
    request.state.tx_type = body.tx_type
    request.state.signer = body.signer

    ex = _executor(request)
    res = ex.submit(body.to_envelope_json())
    request.state.tx_seq = res.tx_seq
    request.state.tx_code = res.code
    if not res.ok:
        details = res.details if isinstance(res.details, dict) else {}
        raise ApiError(status_for_code(res.code), res.code, res.reason, {**details, "tx_seq": res.tx_seq})

    return {
        "ok": True,
        "tx_seq": res.tx_seq,
        "result": res.result,
        "effect": res.effect,
        "delivered": res.delivered,
    }


@router.get("/tx/recent")
def tx_recent(request: Request) -> Json:
    limit = max(1, min(200, _int_param(request.query_params.get("limit"), 50)))
    return {"ok": True, "items": _executor(request).recent_txs(limit=limit)}


@router.get("/outbox")
def outbox(request: Request) -> Json:
    limit = max(1, min(500, _int_param(request.query_params.get("limit"), 100)))
    return {"ok": True, "items": _executor(request).outbox(limit=limit)}
