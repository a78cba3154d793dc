# src/corpdao/runtime/apply/dissolution.py
"""Dissolution payout generation and pull-based claims.

When a corporation dissolves, its treasury is split into one claim per current
member. The integer-division remainder goes to the founder's claim so that the
claims always sum to the pre-dissolution treasury. Members then pull their
share with CORP_DISSOLUTION_CLAIM; the last claim moves the corporation from
dissolving to dissolved.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import Corporation, CorpStatus, DissolutionClaim, MemberInfo
from corpdao.runtime.apply.registry import require_corp
from corpdao.runtime.apply.treasury import require_no_funds, transfer
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def split_treasury(total: int, members: List[MemberInfo], founder: str) -> Dict[str, int]:
    """Return address -> amount, summing to `total` exactly."""
    if not members:
        raise ApplyError("invalid_state", "no_members_to_pay", None)
    n = len(members)
    share = int(total) // n
    remainder = int(total) - share * n

    out = {m.address: share for m in members}
    if founder in out:
        out[founder] += remainder
    else:
        # No founder membership: remainder goes to the lowest address.
        first = members[0].address
        out[first] += remainder
    return out


def begin_dissolution(st: DaoState, corp: Corporation, members: Optional[List[MemberInfo]] = None) -> Json:
    """Zero the treasury into claims and mark the corporation dissolving.

    With an empty treasury the corporation goes straight to dissolved and no
    claims are written. Caller saves nothing; this saves corp and claims.
    """
    if corp.status != CorpStatus.ACTIVE:
        raise ApplyError("invalid_state", "corporation_not_active", {"corp_id": corp.id, "status": corp.status})

    total = int(corp.treasury_balance)
    if total == 0:
        corp.status = CorpStatus.DISSOLVED
        corp.claims_outstanding = 0
        st.save_corp(corp)
        return {"status": corp.status, "claims": 0, "distributed": 0}

    if members is None:
        members = st.list_members(corp.id)
    amounts = split_treasury(total, members, corp.founder)

    for addr, amount in amounts.items():
        st.save_claim(DissolutionClaim(corp_id=corp.id, member=addr, amount=int(amount), claimed=False))

    corp.treasury_balance = 0
    corp.claims_outstanding = len(amounts)
    corp.status = CorpStatus.DISSOLVING
    st.save_corp(corp)
    return {"status": corp.status, "claims": len(amounts), "distributed": total}


def _apply_dissolution_claim(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    cfg = load_dao_config(st)

    corp = require_corp(st, p.corp_id)
    if corp.status == CorpStatus.ACTIVE:
        raise ApplyError("invalid_state", "corporation_not_dissolving", {"corp_id": corp.id})

    claim = st.claim(corp.id, env.signer)
    if claim is None:
        raise ApplyError("not_found", "claim_not_found", {"corp_id": corp.id, "member": env.signer})
    if claim.claimed:
        raise ApplyError("already_claimed", "claim_already_paid", {"corp_id": corp.id, "member": env.signer})

    claim.claimed = True
    st.save_claim(claim)

    corp.claims_outstanding = max(0, int(corp.claims_outstanding) - 1)
    if corp.claims_outstanding == 0:
        corp.status = CorpStatus.DISSOLVED
    st.save_corp(corp)

    out: Json = {
        "applied": "CORP_DISSOLUTION_CLAIM",
        "corp_id": corp.id,
        "member": env.signer,
        "amount": claim.amount,
        "status": corp.status,
    }
    if claim.amount > 0:
        st.track_outflow(claim.amount)
        out["effect"] = transfer(cfg, env.signer, claim.amount).to_json()
    return out


DISSOLUTION_TX_TYPES = {"CORP_DISSOLUTION_CLAIM"}


def apply_dissolution(st: DaoState, env: TxEnvelope) -> Optional[Json]:
    if env.tx_type == "CORP_DISSOLUTION_CLAIM":
        return _apply_dissolution_claim(st, env)
    return None


__all__ = ["DISSOLUTION_TX_TYPES", "apply_dissolution", "begin_dissolution", "split_treasury"]
