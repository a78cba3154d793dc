from __future__ import annotations

import pytest

from corpdao.ledger.types import MemberInfo
from corpdao.runtime.apply.dissolution import split_treasury
from corpdao.runtime.errors import ApplyError


def _members(*addrs: str):
    return [MemberInfo(corp_id=1, address=a, role="member", joined_at=0) for a in addrs]


def _dissolvable(dao, fee: int) -> int:
    dao.ok("DAO_CONFIG_UPDATE", "corpdao-admin", {"creation_fee": fee})
    cid = dao.create_corp("alice")
    dao.now += 1
    dao.join(cid, "bob", "carol")
    dao.now += 100
    return cid


def _run_dissolution(dao, cid: int, voters=("alice", "bob", "carol")):
    pid = dao.propose(cid, "alice", {"kind": "dissolution"})
    for v in voters:
        dao.vote(pid, v, "yes", at=dao.now + 1)
    return pid, dao.execute(pid, at=dao.st.proposal(pid).voting_deadline)


def test_split_remainder_goes_to_founder() -> None:
    assert split_treasury(100, _members("alice", "bob", "carol"), "alice") == {"alice": 34, "bob": 33, "carol": 33}
    assert split_treasury(7, _members("a", "b"), "b") == {"a": 3, "b": 4}
    assert split_treasury(0, _members("a", "b"), "a") == {"a": 0, "b": 0}


@pytest.mark.parametrize("total,n", [(1, 3), (99, 4), (1000, 7), (12345, 50)])
def test_split_sums_to_treasury(total: int, n: int) -> None:
    addrs = [f"m{i:02d}" for i in range(n)]
    out = split_treasury(total, _members(*addrs), addrs[-1])
    assert sum(out.values()) == total


def test_split_without_members() -> None:
    with pytest.raises(ApplyError):
        split_treasury(10, [], "alice")


def test_dissolution_creates_claims(dao) -> None:
    cid = _dissolvable(dao, 100)
    pid, res = _run_dissolution(dao, cid)
    assert res.ok
    assert res.result["result"] == {"status": "dissolving", "claims": 3, "distributed": 100}

    corp = dao.st.corp(cid)
    assert corp.status == "dissolving"
    assert corp.treasury_balance == 0
    assert corp.claims_outstanding == 3
    assert {a: dao.st.claim(cid, a).amount for a in ("alice", "bob", "carol")} == {"alice": 34, "bob": 33, "carol": 33}


def test_claims_pay_once_then_close_the_corp(dao) -> None:
    cid = _dissolvable(dao, 100)
    _run_dissolution(dao, cid)

    res = dao.submit("CORP_DISSOLUTION_CLAIM", "bob", {"corp_id": cid})
    assert res.ok
    assert res.effect["amount"] == 33
    assert dao.bank.balances["bob"] == 33

    res = dao.err("CORP_DISSOLUTION_CLAIM", "bob", {"corp_id": cid})
    assert res.code == "already_claimed"
    assert dao.bank.balances["bob"] == 33

    res = dao.err("CORP_DISSOLUTION_CLAIM", "mallory", {"corp_id": cid})
    assert res.code == "not_found"

    dao.ok("CORP_DISSOLUTION_CLAIM", "carol", {"corp_id": cid})
    assert dao.st.corp(cid).status == "dissolving"
    out = dao.ok("CORP_DISSOLUTION_CLAIM", "alice", {"corp_id": cid})
    assert out["amount"] == 34
    assert out["status"] == "dissolved"
    assert dao.st.corp(cid).claims_outstanding == 0


def test_dissolution_needs_supermajority_of_snapshot(dao) -> None:
    cid = _dissolvable(dao, 100)
    pid, res = _run_dissolution(dao, cid, voters=("alice", "bob"))
    assert res.ok
    assert res.result["status"] == "failed"
    assert dao.st.corp(cid).status == "active"
    assert dao.st.corp(cid).treasury_balance == 200


def test_claim_on_active_corp(dao) -> None:
    cid = _dissolvable(dao, 100)
    res = dao.err("CORP_DISSOLUTION_CLAIM", "bob", {"corp_id": cid})
    assert res.code == "invalid_state"


def test_dissolving_corp_rejects_governance(dao) -> None:
    cid = _dissolvable(dao, 100)
    _run_dissolution(dao, cid)

    res = dao.err(
        "CORP_PROPOSAL_CREATE",
        "alice",
        {"corp_id": cid, "action": {"kind": "dissolution"}},
        funds=100,
    )
    assert res.code == "invalid_state"
    res = dao.err("CORP_DONATE", "patron", {"corp_id": cid}, funds=5)
    assert res.code == "invalid_state"


def test_empty_treasury_dissolves_immediately(dao) -> None:
    cid = _dissolvable(dao, 0)
    _, res = _run_dissolution(dao, cid)
    assert res.ok
    corp = dao.st.corp(cid)
    assert corp.status == "dissolved"
    assert dao.st.claim(cid, "alice") is None
