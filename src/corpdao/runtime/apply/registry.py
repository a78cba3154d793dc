# src/corpdao/runtime/apply/registry.py
from __future__ import annotations

from typing import Any, Dict, Optional

from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import Corporation, CorpStatus, MemberInfo, Role
from corpdao.runtime.apply.treasury import credit_treasury, require_exact_funds, require_no_funds
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def require_corp(st: DaoState, corp_id: int) -> Corporation:
    corp = st.corp(corp_id)
    if corp is None:
        raise ApplyError("not_found", "corporation_not_found", {"corp_id": int(corp_id)})
    return corp


def require_active(corp: Corporation) -> None:
    if corp.status != CorpStatus.ACTIVE:
        raise ApplyError("invalid_state", "corporation_not_active", {"corp_id": corp.id, "status": corp.status})


def _apply_corp_create(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    cfg = load_dao_config(st)

    # The fee goes into the new treasury, so it must be exact.
    require_exact_funds(env, cfg.creation_fee, what="creation_fee")

    corp_id = st.next_corp_id()
    corp = Corporation(
        id=corp_id,
        name=p.name.strip(),
        description=p.description,
        founder=env.signer,
        created_at=int(env.timestamp),
        quorum_bps=cfg.default_quorum_bps,
        voting_period=cfg.default_voting_period,
        max_members=cfg.default_max_members,
        join_policy=p.join_policy,
        member_count=1,
    )
    credit_treasury(corp, env.funds)
    st.save_corp(corp)
    st.save_member(MemberInfo(corp_id=corp_id, address=env.signer, role=Role.FOUNDER, joined_at=int(env.timestamp)))
    st.track_inflow(env.funds)

    return {
        "applied": "CORP_CREATE",
        "corp_id": corp_id,
        "founder": env.signer,
        "treasury_balance": corp.treasury_balance,
    }


def _apply_corp_description_update(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    corp = require_corp(st, p.corp_id)
    require_active(corp)

    corp.description = p.description
    st.save_corp(corp)
    return {"applied": "CORP_DESCRIPTION_UPDATE", "corp_id": corp.id}


REGISTRY_TX_TYPES = {"CORP_CREATE", "CORP_DESCRIPTION_UPDATE"}

_REGISTRY_HANDLERS = {
    "CORP_CREATE": _apply_corp_create,
    "CORP_DESCRIPTION_UPDATE": _apply_corp_description_update,
}


def apply_registry(st: DaoState, env: TxEnvelope) -> Optional[Json]:
    fn = _REGISTRY_HANDLERS.get(env.tx_type)
    if fn is None:
        return None
    return fn(st, env)


__all__ = ["REGISTRY_TX_TYPES", "apply_registry", "require_active", "require_corp"]
