# src/corpdao/runtime/apply/governance.py
"""Proposal creation and vote casting.

Voting only records the vote and bumps the running tally. Whether a proposal
passed is decided lazily by CORP_PROPOSAL_EXECUTE (see runtime.apply.execution
and runtime.gov_engine).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import Proposal, ProposalKind, ProposalStatus, Role, Vote, VoteChoice
from corpdao.runtime.apply.registry import require_active, require_corp
from corpdao.runtime.apply.treasury import require_exact_funds, require_no_funds
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def require_proposal(st: DaoState, proposal_id: int) -> Proposal:
    p = st.proposal(proposal_id)
    if p is None:
        raise ApplyError("not_found", "proposal_not_found", {"proposal_id": int(proposal_id)})
    return p


def _apply_proposal_create(st: DaoState, env: TxEnvelope) -> Json:
    payload = parse_payload(env.tx_type, env.payload)
    cfg = load_dao_config(st)
    corp = require_corp(st, payload.corp_id)
    require_active(corp)

    action = payload.action
    if action.kind == ProposalKind.PROMOTE_MEMBER and action.new_role == Role.FOUNDER:
        raise ApplyError("duplicate_founder", "cannot_promote_to_founder", {"member": action.member})

    require_exact_funds(env, cfg.proposal_deposit, what="proposal_deposit")

    now = int(env.timestamp)
    pid = st.next_proposal_id()
    prop = Proposal(
        id=pid,
        corp_id=corp.id,
        proposer=env.signer,
        kind=action.kind,
        payload=action.model_dump(),
        deposit=int(env.funds),
        created_at=now,
        voting_deadline=now + int(corp.voting_period),
        member_count_snapshot=int(corp.member_count),
        title=payload.title,
    )
    st.save_proposal(prop)
    st.track_inflow(env.funds)

    return {
        "applied": "CORP_PROPOSAL_CREATE",
        "proposal_id": pid,
        "corp_id": corp.id,
        "kind": prop.kind,
        "member_count_snapshot": prop.member_count_snapshot,
        "voting_deadline": prop.voting_deadline,
    }


def _apply_vote(st: DaoState, env: TxEnvelope) -> Json:
    payload = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    prop = require_proposal(st, payload.proposal_id)
    corp = require_corp(st, prop.corp_id)
    require_active(corp)

    now = int(env.timestamp)
    if prop.status != ProposalStatus.ACTIVE:
        raise ApplyError("invalid_state", "proposal_not_active", {"proposal_id": prop.id, "status": prop.status})
    if now >= int(prop.voting_deadline):
        raise ApplyError("expired", "voting_closed", {"proposal_id": prop.id, "voting_deadline": prop.voting_deadline})

    m = st.member(corp.id, env.signer)
    if m is None:
        raise ApplyError("not_eligible", "not_a_member", {"proposal_id": prop.id, "voter": env.signer})
    if int(m.joined_at) >= int(prop.created_at):
        # Flash-join: membership must predate the proposal.
        raise ApplyError(
            "not_eligible",
            "joined_after_proposal",
            {"proposal_id": prop.id, "joined_at": m.joined_at, "created_at": prop.created_at},
        )
    if st.vote(prop.id, env.signer) is not None:
        raise ApplyError("already_voted", "duplicate_vote", {"proposal_id": prop.id, "voter": env.signer})

    st.save_vote(Vote(proposal_id=prop.id, voter=env.signer, choice=payload.choice, cast_at=now))
    if payload.choice == VoteChoice.YES:
        prop.yes_votes += 1
    else:
        prop.no_votes += 1
    st.save_proposal(prop)

    return {
        "applied": "CORP_VOTE",
        "proposal_id": prop.id,
        "voter": env.signer,
        "choice": payload.choice,
        "yes_votes": prop.yes_votes,
        "no_votes": prop.no_votes,
    }


GOVERNANCE_TX_TYPES = {"CORP_PROPOSAL_CREATE", "CORP_VOTE"}

_GOV_HANDLERS = {
    "CORP_PROPOSAL_CREATE": _apply_proposal_create,
    "CORP_VOTE": _apply_vote,
}


def apply_governance(st: DaoState, env: TxEnvelope) -> Optional[Json]:
    fn = _GOV_HANDLERS.get(env.tx_type)
    if fn is None:
        return None
    return fn(st, env)


__all__ = ["GOVERNANCE_TX_TYPES", "apply_governance", "require_proposal"]
