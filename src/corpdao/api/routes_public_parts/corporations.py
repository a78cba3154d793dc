# src/corpdao/api/routes_public_parts/corporations.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from corpdao.api.routes_public_parts.common import _int_param, _opt_int_param, _opt_str_param, _state
from corpdao.runtime import queries

router = APIRouter()

Json = Dict[str, Any]


@router.get("/config")
def dao_config(request: Request) -> Json:
    return {"ok": True, **queries.get_config(_state(request))}


@router.get("/owner/pending")
def pending_owner(request: Request) -> Json:
    return {"ok": True, **queries.get_pending_owner(_state(request))}


@router.get("/corporations")
def corporations_list(request: Request) -> Json:
    qp = request.query_params
    page = queries.list_corporations(
        _state(request),
        start_after=_opt_int_param(qp.get("cursor")),
        limit=_int_param(qp.get("limit"), queries.DEFAULT_LIMIT),
    )
    return {"ok": True, **page}


@router.get("/corporations/{corp_id}")
def corporation_get(request: Request, corp_id: int) -> Json:
    return {"ok": True, "corporation": queries.get_corporation(_state(request), corp_id)}


@router.get("/corporations/{corp_id}/members")
def members_list(request: Request, corp_id: int) -> Json:
    qp = request.query_params
    page = queries.list_members(
        _state(request),
        corp_id,
        start_after=_opt_str_param(qp.get("cursor")),
        limit=_int_param(qp.get("limit"), queries.DEFAULT_LIMIT),
    )
    return {"ok": True, **page}


@router.get("/corporations/{corp_id}/members/{address}")
def member_get(request: Request, corp_id: int, address: str) -> Json:
    return {"ok": True, "member": queries.get_member(_state(request), corp_id, address)}


@router.get("/corporations/{corp_id}/invites/{address}")
def invite_get(request: Request, corp_id: int, address: str) -> Json:
    return {"ok": True, "invite": queries.get_invite(_state(request), corp_id, address)}


@router.get("/corporations/{corp_id}/claims/{address}")
def claim_get(request: Request, corp_id: int, address: str) -> Json:
    return {"ok": True, "claim": queries.get_dissolution_claim(_state(request), corp_id, address)}


@router.get("/refunds/{address}")
def refund_get(request: Request, address: str) -> Json:
    return {"ok": True, **queries.get_refund(_state(request), address)}
