# src/corpdao/runtime/gates.py
"""Authorization gates.

Every tx type declares who may send it as a gate expression over terms:

    Anyone          no restriction (eligibility is checked by the handler)
    Member          signer is a member of payload.corp_id
    Officer         signer holds the officer role in payload.corp_id
    Founder         signer is the founder of payload.corp_id
    Owner           signer is the configured owner
    PendingOwner    signer is the proposed next owner

Terms combine with '&' and '|' (and parentheses); '&' binds tighter.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import Role
from corpdao.runtime.dao_config import DaoConfig
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

TX_GATES: Dict[str, str] = {
    "CORP_CREATE": "Anyone",
    "CORP_DESCRIPTION_UPDATE": "Founder",
    "CORP_JOIN": "Anyone",
    "CORP_INVITE": "Officer|Founder",
    "CORP_INVITE_ACCEPT": "Anyone",
    "CORP_LEAVE": "Member",
    "CORP_DONATE": "Anyone",
    "CORP_PROPOSAL_CREATE": "Officer|Founder",
    "CORP_VOTE": "Anyone",
    # Execution is permissionless: outcomes are fixed by the tally, not the caller.
    "CORP_PROPOSAL_EXECUTE": "Anyone",
    "CORP_DISSOLUTION_CLAIM": "Anyone",
    "CORP_REFUND_CLAIM": "Anyone",
    "DAO_CONFIG_UPDATE": "Owner",
    "DAO_OWNER_PROPOSE": "Owner",
    "DAO_OWNER_ACCEPT": "PendingOwner",
    "DAO_OWNER_CANCEL": "Owner",
    "DAO_SURPLUS_WITHDRAW": "Owner",
}

_CORP_TERMS = {"Member", "Officer", "Founder"}


def load_dao_config(st: DaoState) -> DaoConfig:
    raw = st.config_json()
    if not raw:
        raise ApplyError("invalid_state", "dao_not_initialized", None)
    return DaoConfig.from_json(raw)


def _corp_scope(payload: Optional[dict]) -> Optional[int]:
    p = payload or {}
    v = p.get("corp_id")
    if isinstance(v, bool) or not isinstance(v, int):
        return None
    return v


def _term_eval(st: DaoState, signer: str, term: str, payload: Optional[dict]) -> Tuple[bool, Optional[Json]]:
    term = term.strip()

    if term == "Anyone":
        return True, None

    if term == "Owner":
        if signer == load_dao_config(st).owner:
            return True, None
        return False, {"reason": "owner_required"}

    if term == "PendingOwner":
        pending = st.pending_owner()
        if pending is None:
            return False, {"reason": "no_pending_owner"}
        if signer == pending:
            return True, None
        return False, {"reason": "pending_owner_required"}

    if term in _CORP_TERMS:
        corp_id = _corp_scope(payload)
        if corp_id is None:
            return False, {"reason": "missing_corp_scope"}
        m = st.member(corp_id, signer)
        if m is None:
            return False, {"reason": "member_required", "corp_id": corp_id}
        if term == "Member":
            return True, None
        want = Role.OFFICER if term == "Officer" else Role.FOUNDER
        if m.role == want:
            return True, None
        return False, {"reason": f"{want}_required", "corp_id": corp_id}

    # Unknown term -> deny
    return False, {"reason": "unknown_gate_term", "term": term}


def _tokenize(expr: str) -> List[str]:
    out: List[str] = []
    buf = ""
    for ch in expr:
        if ch in ("&", "|", "(", ")"):
            if buf.strip():
                out.append(buf.strip())
            buf = ""
            out.append(ch)
        else:
            buf += ch
    if buf.strip():
        out.append(buf.strip())
    return [t for t in out if t.strip()]


def _to_rpn(tokens: List[str]) -> List[str]:
    # Shunting-yard with precedence: & > |
    prec = {"&": 2, "|": 1}
    out: List[str] = []
    ops: List[str] = []
    for t in tokens:
        if t in ("&", "|"):
            while ops and ops[-1] in prec and prec[ops[-1]] >= prec[t]:
                out.append(ops.pop())
            ops.append(t)
        elif t == "(":
            ops.append(t)
        elif t == ")":
            while ops and ops[-1] != "(":
                out.append(ops.pop())
            if ops and ops[-1] == "(":
                ops.pop()
        else:
            out.append(t)
    while ops:
        out.append(ops.pop())
    return out


def resolve_signer_authz(
    *,
    st: DaoState,
    signer: str,
    gate_expr: str,
    payload: Optional[dict] = None,
) -> Tuple[bool, Json]:
    """Returns (ok, meta). On deny, meta carries a stable 'reason'."""
    expr = gate_expr.strip()
    if not expr:
        return False, {"reason": "empty_gate_expr"}

    stack: List[Tuple[bool, Optional[Json]]] = []
    last_meta: Optional[Json] = None

    for t in _to_rpn(_tokenize(expr)):
        if t in ("&", "|"):
            if len(stack) < 2:
                return False, {"reason": "bad_gate_expr"}
            b2, m2 = stack.pop()
            b1, m1 = stack.pop()
            if t == "&":
                ok = b1 and b2
                meta = None if ok else (m1 if not b1 else m2)
            else:
                ok = b1 or b2
                meta = None if ok else (m1 or m2)
            stack.append((ok, meta))
        else:
            ok, meta = _term_eval(st, signer, t, payload)
            stack.append((ok, meta))
        if stack[-1][1] is not None:
            last_meta = stack[-1][1]

    if len(stack) != 1:
        return False, {"reason": "bad_gate_expr"}

    ok, meta = stack[0]
    if ok:
        return True, {}
    return False, (meta or last_meta or {"reason": "gate_denied"})


def enforce_gate(st: DaoState, env: TxEnvelope) -> None:
    """Raise ApplyError unless env.signer passes the gate for env.tx_type.

    A corp-scoped gate on a corporation that does not exist reports not_found,
    not unauthorized.
    """
    expr = TX_GATES.get(env.tx_type)
    if expr is None:
        raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": env.tx_type})

    corp_id = _corp_scope(env.payload)
    if corp_id is not None and any(term in expr for term in _CORP_TERMS):
        if st.corp(corp_id) is None:
            raise ApplyError("not_found", "corporation_not_found", {"corp_id": corp_id})

    ok, meta = resolve_signer_authz(st=st, signer=env.signer, gate_expr=expr, payload=env.payload)
    if not ok:
        reason = str(meta.get("reason") or "gate_denied")
        raise ApplyError("unauthorized", reason, {"tx_type": env.tx_type, "gate": expr, **meta})


__all__ = ["TX_GATES", "enforce_gate", "load_dao_config", "resolve_signer_authz"]
