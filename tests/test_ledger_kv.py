from __future__ import annotations

import pytest

from corpdao.ledger.kv import MemoryKV, StagedKV
from corpdao.ledger.tables import DaoState, encode_part
from corpdao.ledger.types import Corporation, MemberInfo, Role


def _corp(i: int) -> Corporation:
    return Corporation(id=i, name=f"c{i}", founder="alice", created_at=0, quorum_bps=5100, voting_period=3600, max_members=5)


def test_int_key_parts_sort_numerically() -> None:
    assert encode_part(9) < encode_part(10) < encode_part(100)
    with pytest.raises(TypeError):
        encode_part(True)
    with pytest.raises(ValueError):
        encode_part(-1)


def test_string_key_parts_cannot_escape_their_segment() -> None:
    assert "/" not in encode_part("evil/../key")


def test_memory_kv_range_pages_by_exclusive_start() -> None:
    kv = MemoryKV()
    st = DaoState(kv)
    for i in range(1, 13):
        st.save_corp(_corp(i))

    first = st.list_corps(limit=5)
    assert [c.id for c in first] == [1, 2, 3, 4, 5]

    second = st.list_corps(start_after=5, limit=5)
    assert [c.id for c in second] == [6, 7, 8, 9, 10]

    tail = st.list_corps(start_after=10)
    assert [c.id for c in tail] == [11, 12]


def test_staged_kv_buffers_until_commit() -> None:
    base = MemoryKV()
    DaoState(base).save_corp(_corp(1))

    staged = StagedKV(base)
    st = DaoState(staged)
    c = st.corp(1)
    assert c is not None
    c.treasury_balance = 500
    st.save_corp(c)
    st.save_member(MemberInfo(corp_id=1, address="bob", role=Role.MEMBER, joined_at=1))

    # Base untouched until commit.
    assert DaoState(base).corp(1).treasury_balance == 0
    assert DaoState(base).member(1, "bob") is None
    assert [m.address for m in st.list_members(1)] == ["bob"]

    staged.commit()
    assert DaoState(base).corp(1).treasury_balance == 500
    assert DaoState(base).member(1, "bob") is not None


def test_staged_delete_hides_base_row_and_discard_drops_it() -> None:
    base = MemoryKV()
    DaoState(base).save_member(MemberInfo(corp_id=1, address="bob", role=Role.MEMBER, joined_at=1))

    staged = StagedKV(base)
    DaoState(staged).remove_member(1, "bob")
    assert DaoState(staged).member(1, "bob") is None
    assert DaoState(staged).list_members(1) == []

    staged.discard()
    assert DaoState(staged).member(1, "bob") is not None


def test_tracked_funds_never_negative() -> None:
    st = DaoState(MemoryKV())
    st.track_inflow(100)
    st.track_outflow(40)
    assert st.tracked_funds() == 60
    with pytest.raises(ValueError):
        st.track_outflow(61)


def test_refunds_accumulate() -> None:
    st = DaoState(MemoryKV())
    st.credit_refund("alice", 100)
    st.credit_refund("alice", 50)
    assert st.refund("alice").amount == 150
    st.remove_refund("alice")
    assert st.refund("alice") is None


def test_atomic_apply_leaves_kv_untouched_on_reject() -> None:
    from corpdao.runtime.dao_config import default_dao_config
    from corpdao.runtime.domain_apply import apply_tx_atomic
    from corpdao.runtime.errors import ApplyError

    kv = MemoryKV()
    DaoState(kv).save_config_json(default_dao_config().to_json())
    before = kv.dump()

    tx = {"tx_type": "CORP_CREATE", "signer": "alice", "nonce": 1, "payload": {"name": "Acme"}, "funds": 1}
    with pytest.raises(ApplyError):
        apply_tx_atomic(kv, tx)
    assert kv.dump() == before

    staged = apply_tx_atomic(kv, {**tx, "funds": 1000})
    assert staged.result["corp_id"] == 1
    assert kv.has("corp/" + encode_part(1))
