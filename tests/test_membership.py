from __future__ import annotations

DAY = 86_400


def test_open_join_and_duplicate(dao) -> None:
    cid = dao.create_corp("alice")
    out = dao.ok("CORP_JOIN", "bob", {"corp_id": cid})
    assert out["member_count"] == 2
    assert dao.st.member(cid, "bob").role == "member"

    res = dao.err("CORP_JOIN", "bob", {"corp_id": cid})
    assert res.code == "already_exists"
    assert dao.st.corp(cid).member_count == 2


def test_join_missing_corp(dao) -> None:
    res = dao.err("CORP_JOIN", "bob", {"corp_id": 9})
    assert res.code == "not_found"


def test_invite_only_requires_invite(dao) -> None:
    cid = dao.create_corp("alice", join_policy="invite_only")
    res = dao.err("CORP_JOIN", "bob", {"corp_id": cid})
    assert res.code == "unauthorized"

    dao.ok("CORP_INVITE", "alice", {"corp_id": cid, "invitee": "bob"})
    out = dao.ok("CORP_INVITE_ACCEPT", "bob", {"corp_id": cid}, at=dao.now + DAY)
    assert out["member_count"] == 2
    assert dao.st.invite(cid, "bob") is None


def test_invite_expires(dao) -> None:
    cid = dao.create_corp("alice", join_policy="invite_only")
    out = dao.ok("CORP_INVITE", "alice", {"corp_id": cid, "invitee": "bob"})
    assert out["expires_at"] == dao.now + 7 * DAY

    res = dao.err("CORP_INVITE_ACCEPT", "bob", {"corp_id": cid}, at=out["expires_at"])
    assert res.code == "expired"
    assert dao.st.member(cid, "bob") is None


def test_accept_without_invite(dao) -> None:
    cid = dao.create_corp("alice", join_policy="invite_only")
    res = dao.err("CORP_INVITE_ACCEPT", "bob", {"corp_id": cid})
    assert res.code == "not_found"


def test_plain_member_cannot_invite(dao) -> None:
    cid = dao.create_corp("alice")
    dao.join(cid, "bob")
    res = dao.err("CORP_INVITE", "bob", {"corp_id": cid, "invitee": "carol"})
    assert res.code == "unauthorized"


def test_invite_existing_member(dao) -> None:
    cid = dao.create_corp("alice")
    dao.join(cid, "bob")
    res = dao.err("CORP_INVITE", "alice", {"corp_id": cid, "invitee": "bob"})
    assert res.code == "already_exists"


def test_capacity_is_enforced(dao) -> None:
    dao.ok("DAO_CONFIG_UPDATE", "corpdao-admin", {"default_max_members": 2})
    cid = dao.create_corp("alice")
    dao.join(cid, "bob")

    res = dao.err("CORP_JOIN", "carol", {"corp_id": cid})
    assert res.code == "invalid_state"
    assert res.reason == "corporation_full"

    dao.ok("CORP_INVITE", "alice", {"corp_id": cid, "invitee": "carol"})
    res = dao.err("CORP_INVITE_ACCEPT", "carol", {"corp_id": cid})
    assert res.reason == "corporation_full"


def test_member_leaves(dao) -> None:
    cid = dao.create_corp("alice")
    dao.join(cid, "bob", "carol")
    out = dao.ok("CORP_LEAVE", "bob", {"corp_id": cid})
    assert out["member_count"] == 2
    assert dao.st.member(cid, "bob") is None


def test_non_member_cannot_leave(dao) -> None:
    cid = dao.create_corp("alice")
    res = dao.err("CORP_LEAVE", "bob", {"corp_id": cid})
    assert res.code == "unauthorized"


def test_founder_cannot_leave_while_others_remain(dao) -> None:
    cid = dao.create_corp("alice")
    dao.join(cid, "bob")
    res = dao.err("CORP_LEAVE", "alice", {"corp_id": cid})
    assert res.code == "invalid_state"
    assert res.reason == "founder_cannot_leave"


def test_sole_founder_leaving_dissolves_to_founder(dao) -> None:
    cid = dao.create_corp("alice")
    out = dao.ok("CORP_LEAVE", "alice", {"corp_id": cid})
    assert out["status"] == "dissolving"
    assert out["dissolution"]["distributed"] == 1000

    corp = dao.st.corp(cid)
    assert corp.member_count == 0
    assert corp.treasury_balance == 0
    assert dao.st.claim(cid, "alice").amount == 1000

    res = dao.submit("CORP_DISSOLUTION_CLAIM", "alice", {"corp_id": cid})
    assert res.ok
    assert res.effect == {"kind": "transfer", "to": "alice", "amount": 1000, "denom": "ucredit"}
    assert res.delivered
    assert dao.st.corp(cid).status == "dissolved"
    assert dao.bank.balances["alice"] == 1000


def test_no_joins_after_dissolution_starts(dao) -> None:
    cid = dao.create_corp("alice")
    dao.ok("CORP_LEAVE", "alice", {"corp_id": cid})
    res = dao.err("CORP_JOIN", "bob", {"corp_id": cid})
    assert res.code == "invalid_state"
