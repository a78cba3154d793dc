from __future__ import annotations

from corpdao.ledger.types import Effect
from corpdao.runtime.bank import BankError, MemoryBank

DAY = 86_400


def _corp3(dao) -> int:
    cid = dao.create_corp("alice")
    dao.now += 1
    dao.join(cid, "bob", "carol")
    dao.now += 100
    return cid


def _pass(dao, pid: int, voters=("alice", "bob")) -> int:
    """Vote yes with `voters` and return the voting deadline."""
    for v in voters:
        dao.vote(pid, v, "yes", at=dao.now + 1)
    return dao.st.proposal(pid).voting_deadline


def test_treasury_spend_executes_and_refunds_deposit(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 250})
    deadline = _pass(dao, pid)

    res = dao.execute(pid, at=deadline)
    assert res.ok
    assert res.result["status"] == "executed"
    assert res.effect == {"kind": "transfer", "to": "dave", "amount": 250, "denom": "ucredit"}
    assert res.delivered
    assert dao.bank.balances["dave"] == 250

    assert dao.st.corp(cid).treasury_balance == 750
    assert dao.st.proposal(pid).status == "executed"
    assert dao.st.proposal(pid).executed_at == deadline
    assert dao.st.refund("alice").amount == 100

    out = dao.ok("CORP_REFUND_CLAIM", "alice")
    assert out["amount"] == 100
    assert dao.bank.balances["alice"] == 100
    assert dao.st.refund("alice") is None
    assert dao.st.tracked_funds() == dao.bank.custodied_balance("ucredit") == 750

    res = dao.err("CORP_REFUND_CLAIM", "alice")
    assert res.code == "not_found"


def test_execute_before_deadline_is_rejected(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 10})
    deadline = _pass(dao, pid)

    res = dao.execute(pid, at=deadline - 1)
    assert (res.code, res.reason) == ("invalid_state", "voting_not_ended")


def test_executed_proposal_cannot_run_twice(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 10})
    deadline = _pass(dao, pid)
    assert dao.execute(pid, at=deadline).ok

    res = dao.execute(pid, at=deadline + 1)
    assert (res.code, res.reason) == ("invalid_state", "already_executed")
    assert dao.bank.balances["dave"] == 10


def test_spend_cap_rejects_without_side_effects(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 251})
    deadline = _pass(dao, pid)

    before = dao.st.kv.dump()
    res = dao.execute(pid, at=deadline)
    assert (res.code, res.reason) == ("insufficient_funds", "spend_cap_exceeded")
    assert res.effect is None
    assert dao.st.kv.dump() == before
    assert dao.st.proposal(pid).status == "active"
    assert "dave" not in dao.bank.balances


def test_unexecuted_proposal_expires_and_forfeits_deposit(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 10})
    deadline = _pass(dao, pid)

    res = dao.execute(pid, at=deadline + 30 * DAY)
    assert res.ok
    assert res.result["status"] == "expired"
    assert dao.st.proposal(pid).status == "expired"
    assert dao.st.corp(cid).treasury_balance == 1100
    assert dao.st.refund("alice") is None

    res = dao.execute(pid, at=deadline + 31 * DAY)
    assert (res.code, res.reason) == ("invalid_state", "proposal_closed")


def test_tie_fails(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 10})
    dao.vote(pid, "alice", "yes", at=dao.now + 1)
    dao.vote(pid, "bob", "no", at=dao.now + 1)

    res = dao.execute(pid, at=dao.st.proposal(pid).voting_deadline)
    assert res.result["status"] == "failed"


def test_change_settings(dao) -> None:
    cid = _corp3(dao)
    action = {"kind": "change_settings", "quorum_bps": 6000, "voting_period": 7200, "name": "Acme Two"}
    pid = dao.propose(cid, "alice", action)
    res = dao.execute(pid, at=_pass(dao, pid))
    assert res.ok

    corp = dao.st.corp(cid)
    assert (corp.quorum_bps, corp.voting_period, corp.name) == (6000, 7200, "Acme Two")


def test_change_settings_out_of_bounds_applies_nothing(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "change_settings", "quorum_bps": 0, "name": "Renamed"})
    res = dao.execute(pid, at=_pass(dao, pid))
    assert res.code == "out_of_bounds"

    corp = dao.st.corp(cid)
    assert corp.quorum_bps == 5100
    assert corp.name == "Acme"
    assert dao.st.proposal(pid).status == "active"

    pid2 = dao.propose(cid, "alice", {"kind": "change_settings", "voting_period": 60})
    res = dao.execute(pid2, at=_pass(dao, pid2))
    assert res.code == "out_of_bounds"


def test_kick_member(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "kick_member", "member": "carol"})
    res = dao.execute(pid, at=_pass(dao, pid))
    assert res.ok
    assert dao.st.member(cid, "carol") is None
    assert dao.st.corp(cid).member_count == 2


def test_founder_cannot_be_kicked(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "kick_member", "member": "alice"})
    res = dao.execute(pid, at=_pass(dao, pid))
    assert (res.code, res.reason) == ("invalid_state", "cannot_kick_founder")


def test_promote_member_to_officer(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "promote_member", "member": "bob", "new_role": "officer"})
    assert dao.execute(pid, at=_pass(dao, pid)).ok
    assert dao.st.member(cid, "bob").role == "officer"

    # Officers may propose and invite.
    dao.now = dao.st.proposal(pid).voting_deadline + 10
    dao.propose(cid, "bob", {"kind": "custom", "target": "registry", "instruction": {"ping": 1}})
    dao.ok("CORP_INVITE", "bob", {"corp_id": cid, "invitee": "erin"})


def test_promote_to_founder_is_rejected_at_creation(dao) -> None:
    cid = _corp3(dao)
    res = dao.err(
        "CORP_PROPOSAL_CREATE",
        "alice",
        {"corp_id": cid, "action": {"kind": "promote_member", "member": "bob", "new_role": "founder"}},
        funds=100,
    )
    assert res.code == "duplicate_founder"
    assert dao.st.proposal(1) is None


def test_founder_role_cannot_be_changed(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "promote_member", "member": "alice", "new_role": "member"})
    res = dao.execute(pid, at=_pass(dao, pid))
    assert res.code == "invalid_state"
    assert dao.st.member(cid, "alice").role == "founder"


def test_custom_action_forwards_instruction(dao) -> None:
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "custom", "target": "registry", "instruction": {"set": {"k": "v"}}})
    res = dao.execute(pid, at=_pass(dao, pid))
    assert res.ok
    assert res.effect == {"kind": "forward", "target": "registry", "instruction": {"set": {"k": "v"}}}
    assert dao.bank.forwarded == [res.effect]


def test_proposal_on_dissolving_corp_fails_and_refunds(dao) -> None:
    cid = _corp3(dao)
    p_dissolve = dao.propose(cid, "alice", {"kind": "dissolution"})
    p_spend = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 10})
    _pass(dao, p_dissolve, voters=("alice", "bob", "carol"))
    deadline = _pass(dao, p_spend)

    assert dao.execute(p_dissolve, at=deadline).ok
    assert dao.st.corp(cid).status == "dissolving"

    res = dao.execute(p_spend, at=deadline)
    assert res.ok
    assert res.result["status"] == "failed"
    assert res.result["reason"] == "corporation_not_active"
    # One deposit back from the executed dissolution, one from the failed spend.
    assert dao.st.refund("alice").amount == 200


def test_kicked_members_votes_stay_counted_on_other_proposals(dao) -> None:
    cid = _corp3(dao)
    p_kick = dao.propose(cid, "alice", {"kind": "kick_member", "member": "carol"})
    p_spend = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "dave", "amount": 200})
    _pass(dao, p_kick)
    deadline = _pass(dao, p_spend, voters=("alice", "carol"))

    assert dao.execute(p_kick, at=deadline).ok
    assert dao.st.member(cid, "carol") is None

    res = dao.execute(p_spend, at=deadline)
    assert res.ok
    assert res.result["status"] == "executed"
    prop = dao.st.proposal(p_spend)
    assert (prop.yes_votes, prop.no_votes, prop.member_count_snapshot) == (2, 0, 3)
    assert dao.bank.balances["dave"] == 200


def test_blank_rename_is_rejected_at_proposal_time(dao) -> None:
    cid = _corp3(dao)
    res = dao.err(
        "CORP_PROPOSAL_CREATE",
        "alice",
        {"corp_id": cid, "title": "rename", "action": {"kind": "change_settings", "name": "   "}},
        funds=dao.cfg.proposal_deposit,
    )
    assert res.code == "invalid_payload"
    assert dao.st.corp(cid).name == "Acme"
    assert dao.st.corp(cid).treasury_balance == 1000


class _OfflineBank(MemoryBank):
    def __init__(self) -> None:
        super().__init__()
        self.fail = True

    def deliver(self, effect: Effect) -> None:
        if self.fail:
            raise BankError("bank offline")
        super().deliver(effect)


def test_failed_delivery_in_memory_mode_can_be_retried(make_dao) -> None:
    dao = make_dao(bank=_OfflineBank())
    cid = _corp3(dao)
    pid = dao.propose(cid, "alice", {"kind": "treasury_spend", "recipient": "zed", "amount": 200})
    res = dao.execute(pid, at=_pass(dao, pid))
    assert res.ok
    assert res.delivered is False
    assert dao.st.corp(cid).treasury_balance == 800
    assert dao.st.proposal(pid).status == "executed"

    box = dao.ex.outbox()
    assert len(box) == 1
    assert box[0]["status"] == "failed"
    assert box[0]["error"] == "bank offline"
    assert box[0]["tx_seq"] == res.tx_seq

    # Already executed; a second run cannot pay twice.
    assert dao.execute(pid, at=dao.st.proposal(pid).voting_deadline).code == "invalid_state"

    dao.bank.fail = False
    assert dao.ex.redeliver_pending() == 1
    assert dao.ex.outbox()[0]["status"] == "delivered"
    assert dao.bank.balances["zed"] == 200
    assert dao.ex.redeliver_pending() == 0
