# src/corpdao/runtime/gov_engine.py
"""Proposal tally and outcome rules.

Everything here is a pure function of stored records and a timestamp. Votes
only move counters; outcomes are decided when someone executes the proposal.
The quorum denominator is always the proposal's member_count_snapshot, never
the corporation's live member_count.
"""

from __future__ import annotations

from typing import Any, Dict

from corpdao.ledger.types import BPS_DENOM, Corporation, Proposal, ProposalKind, ProposalStatus
from corpdao.runtime.dao_config import DaoConfig

Json = Dict[str, Any]


class Outcome:
    PASSED = "passed"
    FAILED = "failed"
    EXPIRED = "expired"


def quorum_reached(*, yes: int, no: int, snapshot: int, quorum_bps: int) -> bool:
    total = int(yes) + int(no)
    return total * BPS_DENOM >= int(snapshot) * int(quorum_bps)


def standard_passed(*, yes: int, no: int, snapshot: int, quorum_bps: int) -> bool:
    return quorum_reached(yes=yes, no=no, snapshot=snapshot, quorum_bps=quorum_bps) and int(yes) > int(no)


def dissolution_passed(*, yes: int, no: int, snapshot: int, dissolution_bps: int) -> bool:
    # Supermajority of the snapshot must vote yes, not just of those voting.
    return int(yes) * BPS_DENOM >= int(snapshot) * int(dissolution_bps) and int(yes) > int(no)


def proposal_passed(p: Proposal, corp: Corporation, cfg: DaoConfig) -> bool:
    if p.kind == ProposalKind.DISSOLUTION:
        return dissolution_passed(
            yes=p.yes_votes,
            no=p.no_votes,
            snapshot=p.member_count_snapshot,
            dissolution_bps=cfg.dissolution_bps,
        )
    return standard_passed(
        yes=p.yes_votes,
        no=p.no_votes,
        snapshot=p.member_count_snapshot,
        quorum_bps=corp.quorum_bps,
    )


def voting_open(p: Proposal, now: int) -> bool:
    return p.status == ProposalStatus.ACTIVE and int(now) < int(p.voting_deadline)


def execution_deadline(p: Proposal, cfg: DaoConfig) -> int:
    return int(p.voting_deadline) + int(cfg.execution_window)


def evaluate_outcome(p: Proposal, corp: Corporation, cfg: DaoConfig, now: int) -> str:
    """Outcome of an active proposal whose voting has ended."""
    if int(now) >= execution_deadline(p, cfg):
        return Outcome.EXPIRED
    if proposal_passed(p, corp, cfg):
        return Outcome.PASSED
    return Outcome.FAILED


def vote_status(p: Proposal, corp: Corporation, cfg: DaoConfig, now: int) -> Json:
    is_dissolution = p.kind == ProposalKind.DISSOLUTION
    threshold_bps = int(cfg.dissolution_bps) if is_dissolution else int(corp.quorum_bps)
    return {
        "proposal_id": p.id,
        "status": p.status,
        "yes_votes": p.yes_votes,
        "no_votes": p.no_votes,
        "total_votes": p.yes_votes + p.no_votes,
        "member_count_snapshot": p.member_count_snapshot,
        "threshold_bps": threshold_bps,
        "threshold": "yes_of_snapshot" if is_dissolution else "turnout_of_snapshot",
        "quorum_reached": quorum_reached(
            yes=p.yes_votes, no=p.no_votes, snapshot=p.member_count_snapshot, quorum_bps=corp.quorum_bps
        ),
        "passing": proposal_passed(p, corp, cfg),
        "voting_open": voting_open(p, now),
        "voting_deadline": p.voting_deadline,
        "execution_deadline": execution_deadline(p, cfg),
    }


__all__ = [
    "Outcome",
    "dissolution_passed",
    "evaluate_outcome",
    "execution_deadline",
    "proposal_passed",
    "quorum_reached",
    "standard_passed",
    "vote_status",
    "voting_open",
]
