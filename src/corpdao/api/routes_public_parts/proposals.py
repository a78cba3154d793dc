# src/corpdao/api/routes_public_parts/proposals.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from corpdao.api.routes_public_parts.common import _int_param, _now_s, _opt_int_param, _state
from corpdao.runtime import queries

router = APIRouter()

Json = Dict[str, Any]


@router.get("/corporations/{corp_id}/proposals")
def proposals_list(request: Request, corp_id: int) -> Json:
    qp = request.query_params
    page = queries.list_proposals(
        _state(request),
        corp_id,
        start_after=_opt_int_param(qp.get("cursor")),
        limit=_int_param(qp.get("limit"), queries.DEFAULT_LIMIT),
    )
    return {"ok": True, **page}


@router.get("/proposals/{proposal_id}")
def proposal_get(request: Request, proposal_id: int) -> Json:
    return {"ok": True, "proposal": queries.get_proposal(_state(request), proposal_id)}


@router.get("/proposals/{proposal_id}/status")
def proposal_status(request: Request, proposal_id: int) -> Json:
    """Tally and projected outcome. `now` defaults to wall-clock seconds."""
    now = _int_param(request.query_params.get("now"), _now_s())
    return {"ok": True, "status": queries.get_vote_status(_state(request), proposal_id, now=now)}


@router.get("/proposals/{proposal_id}/votes/{voter}")
def vote_get(request: Request, proposal_id: int, voter: str) -> Json:
    return {"ok": True, "vote": queries.get_vote(_state(request), proposal_id, voter)}
