from __future__ import annotations

from corpdao.ledger.types import Corporation, Proposal
from corpdao.runtime.dao_config import default_dao_config
from corpdao.runtime.gov_engine import (
    Outcome,
    dissolution_passed,
    evaluate_outcome,
    quorum_reached,
    standard_passed,
    vote_status,
)


def _corp() -> Corporation:
    return Corporation(id=1, name="Acme", founder="alice", created_at=0, quorum_bps=5100, voting_period=100, max_members=50)


def _prop(kind: str = "treasury_spend", *, yes: int = 0, no: int = 0, snapshot: int = 10) -> Proposal:
    return Proposal(
        id=1,
        corp_id=1,
        proposer="alice",
        kind=kind,
        payload={},
        deposit=100,
        created_at=0,
        voting_deadline=100,
        member_count_snapshot=snapshot,
        yes_votes=yes,
        no_votes=no,
    )


def test_quorum_is_inclusive_in_integer_math() -> None:
    # 51 of 100 is exactly 51%.
    assert quorum_reached(yes=51, no=0, snapshot=100, quorum_bps=5100)
    assert not quorum_reached(yes=50, no=0, snapshot=100, quorum_bps=5100)


def test_standard_needs_strict_majority() -> None:
    assert standard_passed(yes=4, no=3, snapshot=10, quorum_bps=5100)
    assert not standard_passed(yes=3, no=3, snapshot=10, quorum_bps=5100)
    assert not standard_passed(yes=5, no=0, snapshot=10, quorum_bps=5100)


def test_dissolution_threshold_counts_yes_against_snapshot() -> None:
    assert dissolution_passed(yes=3, no=0, snapshot=4, dissolution_bps=7500)
    assert not dissolution_passed(yes=2, no=0, snapshot=4, dissolution_bps=7500)


def test_outcomes_over_time() -> None:
    cfg = default_dao_config()
    corp = _corp()
    p = _prop(yes=6, no=1)
    assert evaluate_outcome(p, corp, cfg, 100) == Outcome.PASSED
    assert evaluate_outcome(_prop(yes=1), corp, cfg, 100) == Outcome.FAILED
    assert evaluate_outcome(p, corp, cfg, 100 + cfg.execution_window) == Outcome.EXPIRED


def test_vote_status_reports_threshold_kind() -> None:
    cfg = default_dao_config()
    s = vote_status(_prop("dissolution", yes=8, snapshot=10), _corp(), cfg, 50)
    assert s["threshold_bps"] == cfg.dissolution_bps
    assert s["passing"] is True
    assert s["voting_open"] is True
    assert s["execution_deadline"] == 100 + cfg.execution_window
