# src/corpdao/runtime/queries.py
"""Read-only queries over DaoState.

Single-entity lookups raise ApplyError("not_found") when the entity is
missing. List queries page by cursor (the last id or address seen) and return
{"items": [...], "next_cursor": ...}; next_cursor is None on the last page.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from corpdao.ledger.tables import DaoState
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.gov_engine import vote_status

Json = Dict[str, Any]

DEFAULT_LIMIT = 30
MAX_LIMIT = 100


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(int(limit), MAX_LIMIT))


def _page(items: List[Any], limit: int, cursor_of: Callable[[Any], Any]) -> Json:
    # One extra row was fetched to learn whether another page exists.
    more = len(items) > limit
    items = items[:limit]
    next_cursor = cursor_of(items[-1]) if (more and items) else None
    return {"items": [i.to_json() for i in items], "next_cursor": next_cursor}


def get_config(st: DaoState) -> Json:
    cfg = load_dao_config(st)
    return {"config": cfg.to_json(), "pending_owner": st.pending_owner()}


def get_pending_owner(st: DaoState) -> Json:
    return {"pending_owner": st.pending_owner()}


def get_corporation(st: DaoState, corp_id: int) -> Json:
    corp = st.corp(corp_id)
    if corp is None:
        raise ApplyError("not_found", "corporation_not_found", {"corp_id": int(corp_id)})
    return corp.to_json()


def list_corporations(st: DaoState, *, start_after: Optional[int] = None, limit: Optional[int] = None) -> Json:
    n = clamp_limit(limit)
    rows = st.list_corps(start_after=start_after, limit=n + 1)
    return _page(rows, n, lambda c: c.id)


def get_member(st: DaoState, corp_id: int, address: str) -> Json:
    m = st.member(corp_id, address)
    if m is None:
        raise ApplyError("not_found", "member_not_found", {"corp_id": int(corp_id), "address": address})
    return m.to_json()


def list_members(
    st: DaoState, corp_id: int, *, start_after: Optional[str] = None, limit: Optional[int] = None
) -> Json:
    get_corporation(st, corp_id)
    n = clamp_limit(limit)
    rows = st.list_members(corp_id, start_after=start_after, limit=n + 1)
    return _page(rows, n, lambda m: m.address)


def get_proposal(st: DaoState, proposal_id: int) -> Json:
    p = st.proposal(proposal_id)
    if p is None:
        raise ApplyError("not_found", "proposal_not_found", {"proposal_id": int(proposal_id)})
    return p.to_json()


def list_proposals(
    st: DaoState, corp_id: int, *, start_after: Optional[int] = None, limit: Optional[int] = None
) -> Json:
    get_corporation(st, corp_id)
    n = clamp_limit(limit)
    ids = st.list_proposal_ids(corp_id, start_after=start_after, limit=n + 1)
    props = [p for p in (st.proposal(i) for i in ids) if p is not None]
    return _page(props, n, lambda p: p.id)


def get_vote_status(st: DaoState, proposal_id: int, *, now: int) -> Json:
    p = st.proposal(proposal_id)
    if p is None:
        raise ApplyError("not_found", "proposal_not_found", {"proposal_id": int(proposal_id)})
    corp = st.corp(p.corp_id)
    if corp is None:
        raise ApplyError("not_found", "corporation_not_found", {"corp_id": p.corp_id})
    return vote_status(p, corp, load_dao_config(st), now)


def get_vote(st: DaoState, proposal_id: int, voter: str) -> Json:
    v = st.vote(proposal_id, voter)
    if v is None:
        raise ApplyError("not_found", "vote_not_found", {"proposal_id": int(proposal_id), "voter": voter})
    return v.to_json()


def get_dissolution_claim(st: DaoState, corp_id: int, address: str) -> Json:
    c = st.claim(corp_id, address)
    if c is None:
        raise ApplyError("not_found", "claim_not_found", {"corp_id": int(corp_id), "member": address})
    return c.to_json()


def get_invite(st: DaoState, corp_id: int, invitee: str) -> Json:
    inv = st.invite(corp_id, invitee)
    if inv is None:
        raise ApplyError("not_found", "invite_not_found", {"corp_id": int(corp_id), "invitee": invitee})
    return inv.to_json()


def get_refund(st: DaoState, address: str) -> Json:
    r = st.refund(address)
    return {"address": address, "amount": int(r.amount) if r else 0}


__all__ = [
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "clamp_limit",
    "get_config",
    "get_corporation",
    "get_dissolution_claim",
    "get_invite",
    "get_member",
    "get_pending_owner",
    "get_proposal",
    "get_refund",
    "get_vote",
    "get_vote_status",
    "list_corporations",
    "list_members",
    "list_proposals",
]
