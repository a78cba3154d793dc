# src/corpdao/runtime/apply/membership.py
"""Membership: open join, invite/accept, leave.

member_count on the Corporation record is authoritative and moves in lockstep
with Member rows. Roles change only through executed proposals; there is no
admin promote/demote path here.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import Corporation, CorpStatus, Invite, JoinPolicy, MemberInfo, Role
from corpdao.runtime.apply.dissolution import begin_dissolution
from corpdao.runtime.apply.registry import require_active, require_corp
from corpdao.runtime.apply.treasury import require_no_funds
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def _require_capacity(corp: Corporation) -> None:
    if int(corp.member_count) >= int(corp.max_members):
        raise ApplyError(
            "invalid_state",
            "corporation_full",
            {"corp_id": corp.id, "member_count": corp.member_count, "max_members": corp.max_members},
        )


def _require_not_member(st: DaoState, corp_id: int, address: str) -> None:
    if st.member(corp_id, address) is not None:
        raise ApplyError("already_exists", "already_member", {"corp_id": corp_id, "address": address})


def add_member(st: DaoState, corp: Corporation, address: str, *, role: str, now: int) -> MemberInfo:
    m = MemberInfo(corp_id=corp.id, address=address, role=role, joined_at=int(now))
    st.save_member(m)
    corp.member_count = int(corp.member_count) + 1
    st.save_corp(corp)
    return m


def remove_member(st: DaoState, corp: Corporation, address: str) -> None:
    st.remove_member(corp.id, address)
    corp.member_count = max(0, int(corp.member_count) - 1)
    st.save_corp(corp)


def _apply_join(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    corp = require_corp(st, p.corp_id)
    require_active(corp)

    if corp.join_policy != JoinPolicy.OPEN:
        raise ApplyError("unauthorized", "invite_only", {"corp_id": corp.id})
    _require_not_member(st, corp.id, env.signer)
    _require_capacity(corp)

    add_member(st, corp, env.signer, role=Role.MEMBER, now=env.timestamp)
    st.remove_invite(corp.id, env.signer)
    return {"applied": "CORP_JOIN", "corp_id": corp.id, "address": env.signer, "member_count": corp.member_count}


def _apply_invite(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    cfg = load_dao_config(st)
    corp = require_corp(st, p.corp_id)
    require_active(corp)
    _require_not_member(st, corp.id, p.invitee)

    inv = Invite(
        corp_id=corp.id,
        invitee=p.invitee,
        invited_by=env.signer,
        created_at=int(env.timestamp),
        expires_at=int(env.timestamp) + int(cfg.invite_ttl),
    )
    st.save_invite(inv)
    return {"applied": "CORP_INVITE", "corp_id": corp.id, "invitee": p.invitee, "expires_at": inv.expires_at}


def _apply_invite_accept(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    corp = require_corp(st, p.corp_id)
    require_active(corp)

    inv = st.invite(corp.id, env.signer)
    if inv is None:
        raise ApplyError("not_found", "invite_not_found", {"corp_id": corp.id, "invitee": env.signer})
    if int(env.timestamp) >= int(inv.expires_at):
        raise ApplyError("expired", "invite_expired", {"corp_id": corp.id, "expires_at": inv.expires_at})
    _require_not_member(st, corp.id, env.signer)
    _require_capacity(corp)

    st.remove_invite(corp.id, env.signer)
    add_member(st, corp, env.signer, role=Role.MEMBER, now=env.timestamp)
    return {
        "applied": "CORP_INVITE_ACCEPT",
        "corp_id": corp.id,
        "address": env.signer,
        "member_count": corp.member_count,
    }


def _apply_leave(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    corp = require_corp(st, p.corp_id)
    if corp.status == CorpStatus.DISSOLVED:
        raise ApplyError("invalid_state", "corporation_dissolved", {"corp_id": corp.id})

    m = st.member(corp.id, env.signer)
    if m is None:
        raise ApplyError("not_found", "member_not_found", {"corp_id": corp.id, "address": env.signer})

    out: Json = {"applied": "CORP_LEAVE", "corp_id": corp.id, "address": env.signer}

    if m.role == Role.FOUNDER:
        if int(corp.member_count) != 1:
            raise ApplyError(
                "invalid_state",
                "founder_cannot_leave",
                {"corp_id": corp.id, "member_count": corp.member_count},
            )
        if corp.status == CorpStatus.ACTIVE:
            # Last member out: pay the treasury to the founder as a claim.
            out["dissolution"] = begin_dissolution(st, corp, [m])
            corp = require_corp(st, corp.id)

    remove_member(st, corp, env.signer)
    out["member_count"] = corp.member_count
    out["status"] = corp.status
    return out


MEMBERSHIP_TX_TYPES = {"CORP_JOIN", "CORP_INVITE", "CORP_INVITE_ACCEPT", "CORP_LEAVE"}

_MEMBERSHIP_HANDLERS = {
    "CORP_JOIN": _apply_join,
    "CORP_INVITE": _apply_invite,
    "CORP_INVITE_ACCEPT": _apply_invite_accept,
    "CORP_LEAVE": _apply_leave,
}


def apply_membership(st: DaoState, env: TxEnvelope) -> Optional[Json]:
    fn = _MEMBERSHIP_HANDLERS.get(env.tx_type)
    if fn is None:
        return None
    return fn(st, env)


__all__ = ["MEMBERSHIP_TX_TYPES", "add_member", "apply_membership", "remove_member"]
