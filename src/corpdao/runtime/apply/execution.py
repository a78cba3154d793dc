# src/corpdao/runtime/apply/execution.py
"""Proposal execution.

CORP_PROPOSAL_EXECUTE is permissionless and only valid once voting has ended.
It settles an active proposal into exactly one of:

  expired   the execution window closed; deposit forfeited to the treasury
  failed    quorum or majority missed; deposit forfeited to the treasury
  executed  passed and the kind-specific effect applied; deposit credited to
            the proposer's refund balance

If a passed proposal's effect fails its own checks the whole tx is rejected
and the proposal stays active, so it can be retried until the window closes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import (
    Corporation,
    Effect,
    ForwardInstruction,
    Proposal,
    ProposalKind,
    ProposalStatus,
    Role,
)
from corpdao.runtime.apply.dissolution import begin_dissolution
from corpdao.runtime.apply.governance import require_proposal
from corpdao.runtime.apply.membership import remove_member
from corpdao.runtime.apply.registry import require_corp
from corpdao.runtime.apply.treasury import credit_treasury, debit_treasury, require_no_funds, spend_cap, transfer
from corpdao.runtime.dao_config import DaoConfig, validate_quorum_bps, validate_voting_period
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.gov_engine import Outcome, evaluate_outcome
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

Json = Dict[str, Any]

EffectResult = Tuple[Json, Optional[Effect]]


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------


def _effect_treasury_spend(st: DaoState, corp: Corporation, prop: Proposal, cfg: DaoConfig) -> EffectResult:
    recipient = str(prop.payload.get("recipient") or "")
    amount = int(prop.payload.get("amount") or 0)

    cap = spend_cap(corp, cfg)
    if amount > cap:
        raise ApplyError(
            "insufficient_funds",
            "spend_cap_exceeded",
            {"amount": amount, "cap": cap, "treasury_balance": corp.treasury_balance, "spend_cap_bps": cfg.spend_cap_bps},
        )
    debit_treasury(corp, amount)
    st.save_corp(corp)
    st.track_outflow(amount)
    return {"recipient": recipient, "amount": amount}, transfer(cfg, recipient, amount)


def _effect_change_settings(st: DaoState, corp: Corporation, prop: Proposal, cfg: DaoConfig) -> EffectResult:
    pl = prop.payload
    quorum_bps = pl.get("quorum_bps")
    voting_period = pl.get("voting_period")

    # Validate everything before touching the record.
    try:
        if quorum_bps is not None:
            validate_quorum_bps(int(quorum_bps))
        if voting_period is not None:
            validate_voting_period(int(voting_period), cfg)
    except ValueError as e:
        raise ApplyError("out_of_bounds", "settings_out_of_bounds", {"err": str(e)})

    changed: Json = {}
    if pl.get("name") is not None:
        corp.name = str(pl["name"]).strip()
        changed["name"] = corp.name
    if pl.get("description") is not None:
        corp.description = str(pl["description"])
        changed["description"] = corp.description
    if pl.get("join_policy") is not None:
        corp.join_policy = str(pl["join_policy"])
        changed["join_policy"] = corp.join_policy
    if quorum_bps is not None:
        corp.quorum_bps = int(quorum_bps)
        changed["quorum_bps"] = corp.quorum_bps
    if voting_period is not None:
        corp.voting_period = int(voting_period)
        changed["voting_period"] = corp.voting_period
    st.save_corp(corp)
    return {"changed": changed}, None


def _effect_kick_member(st: DaoState, corp: Corporation, prop: Proposal, cfg: DaoConfig) -> EffectResult:
    target = str(prop.payload.get("member") or "")
    m = st.member(corp.id, target)
    if m is None:
        raise ApplyError("not_found", "member_not_found", {"corp_id": corp.id, "member": target})
    if m.role == Role.FOUNDER:
        raise ApplyError("invalid_state", "cannot_kick_founder", {"corp_id": corp.id, "member": target})
    if int(corp.member_count) <= 1:
        raise ApplyError("invalid_state", "cannot_kick_last_member", {"corp_id": corp.id})

    # Votes already cast by the member stay counted.
    remove_member(st, corp, target)
    return {"member": target, "member_count": corp.member_count}, None


def _effect_promote_member(st: DaoState, corp: Corporation, prop: Proposal, cfg: DaoConfig) -> EffectResult:
    target = str(prop.payload.get("member") or "")
    new_role = str(prop.payload.get("new_role") or "")
    if new_role == Role.FOUNDER:
        raise ApplyError("duplicate_founder", "cannot_promote_to_founder", {"member": target})
    if new_role not in Role.ALL:
        raise ApplyError("invalid_payload", "unknown_role", {"new_role": new_role})

    m = st.member(corp.id, target)
    if m is None:
        raise ApplyError("not_found", "member_not_found", {"corp_id": corp.id, "member": target})
    if m.role == Role.FOUNDER:
        raise ApplyError("invalid_state", "cannot_change_founder_role", {"corp_id": corp.id, "member": target})

    m.role = new_role
    st.save_member(m)
    return {"member": target, "role": new_role}, None


def _effect_dissolution(st: DaoState, corp: Corporation, prop: Proposal, cfg: DaoConfig) -> EffectResult:
    return begin_dissolution(st, corp), None


def _effect_custom(st: DaoState, corp: Corporation, prop: Proposal, cfg: DaoConfig) -> EffectResult:
    target = str(prop.payload.get("target") or "")
    instruction = prop.payload.get("instruction")
    fwd = ForwardInstruction(target=target, instruction=dict(instruction or {}))
    return {"target": target}, fwd


_EFFECTS = {
    ProposalKind.TREASURY_SPEND: _effect_treasury_spend,
    ProposalKind.CHANGE_SETTINGS: _effect_change_settings,
    ProposalKind.KICK_MEMBER: _effect_kick_member,
    ProposalKind.PROMOTE_MEMBER: _effect_promote_member,
    ProposalKind.DISSOLUTION: _effect_dissolution,
    ProposalKind.CUSTOM: _effect_custom,
}


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def _close(st: DaoState, corp: Corporation, prop: Proposal, status: str, now: int) -> None:
    """Settle a proposal that did not execute.

    The deposit is forfeited into the treasury while the corporation is
    active. Once it is dissolving the treasury has been paid out, so the
    deposit goes back to the proposer instead.
    """
    if corp.is_active():
        credit_treasury(corp, prop.deposit)
        st.save_corp(corp)
    elif prop.deposit > 0:
        st.credit_refund(prop.proposer, prop.deposit)
    prop.status = status
    prop.executed_at = int(now)
    st.save_proposal(prop)


def _apply_proposal_execute(st: DaoState, env: TxEnvelope) -> Json:
    payload = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    cfg = load_dao_config(st)

    prop = require_proposal(st, payload.proposal_id)
    if prop.status == ProposalStatus.EXECUTED:
        raise ApplyError("invalid_state", "already_executed", {"proposal_id": prop.id})
    if prop.status != ProposalStatus.ACTIVE:
        raise ApplyError("invalid_state", "proposal_closed", {"proposal_id": prop.id, "status": prop.status})

    now = int(env.timestamp)
    if now < int(prop.voting_deadline):
        raise ApplyError(
            "invalid_state",
            "voting_not_ended",
            {"proposal_id": prop.id, "voting_deadline": prop.voting_deadline, "now": now},
        )

    corp = require_corp(st, prop.corp_id)
    out: Json = {"applied": "CORP_PROPOSAL_EXECUTE", "proposal_id": prop.id, "corp_id": corp.id, "kind": prop.kind}

    if not corp.is_active():
        _close(st, corp, prop, ProposalStatus.FAILED, now)
        out.update({"status": prop.status, "reason": "corporation_not_active"})
        return out

    outcome = evaluate_outcome(prop, corp, cfg, now)
    if outcome != Outcome.PASSED:
        status = ProposalStatus.EXPIRED if outcome == Outcome.EXPIRED else ProposalStatus.FAILED
        _close(st, corp, prop, status, now)
        out.update({"status": prop.status, "deposit_forfeited": prop.deposit})
        return out

    fn = _EFFECTS.get(prop.kind)
    if fn is None:
        raise ApplyError("invalid_state", "unknown_proposal_kind", {"kind": prop.kind})

    result, effect = fn(st, corp, prop, cfg)

    if prop.deposit > 0:
        st.credit_refund(prop.proposer, prop.deposit)
    prop.status = ProposalStatus.EXECUTED
    prop.executed_at = now
    st.save_proposal(prop)

    out.update({"status": prop.status, "result": result, "deposit_refunded": prop.deposit})
    if effect is not None:
        out["effect"] = effect.to_json()
    return out


EXECUTION_TX_TYPES = {"CORP_PROPOSAL_EXECUTE"}


def apply_execution(st: DaoState, env: TxEnvelope) -> Optional[Json]:
    if env.tx_type == "CORP_PROPOSAL_EXECUTE":
        return _apply_proposal_execute(st, env)
    return None


__all__ = ["EXECUTION_TX_TYPES", "apply_execution"]
