from __future__ import annotations

from typing import List

from corpdao.ledger.types import Effect
from corpdao.runtime.bank import BankError, MemoryBank
from corpdao.runtime.executor import DaoExecutor


class _FlakyBank(MemoryBank):
    def __init__(self) -> None:
        super().__init__()
        self.fail = True
        self.attempts: List[Effect] = []

    def deliver(self, effect: Effect) -> None:
        self.attempts.append(effect)
        if self.fail:
            raise BankError("bank offline")
        super().deliver(effect)


def _tx(nonce: int, tx_type: str, signer: str, payload, *, funds: int = 0, ts: int = 1_000) -> dict:
    return {"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": payload, "funds": funds, "timestamp": ts}


def test_state_survives_restart(tmp_path) -> None:
    db = str(tmp_path / "corpdao.db")
    ex = DaoExecutor(db_path=db, bank=MemoryBank())
    assert ex.submit(_tx(1, "CORP_CREATE", "alice", {"name": "Acme"}, funds=1000)).ok
    assert ex.submit(_tx(2, "CORP_JOIN", "bob", {"corp_id": 1})).ok
    assert ex.submit(_tx(3, "DAO_CONFIG_UPDATE", "corpdao-admin", {"creation_fee": 5})).ok

    ex2 = DaoExecutor(db_path=db, bank=MemoryBank())
    st = ex2.state()
    assert st.kv.count() > 0
    assert st.corp(1).member_count == 2
    assert st.member(1, "bob") is not None
    assert st.tracked_funds() == 1000
    # Persisted config wins over the constructor default.
    assert ex2.dao_config().creation_fee == 5


def test_tx_log_records_rejections(tmp_path) -> None:
    ex = DaoExecutor(db_path=str(tmp_path / "log.db"), bank=MemoryBank())
    ok = ex.submit(_tx(1, "CORP_CREATE", "alice", {"name": "Acme"}, funds=1000))
    bad = ex.submit(_tx(2, "CORP_JOIN", "alice", {"corp_id": 1}))
    assert ok.ok and not bad.ok
    assert bad.code == "already_exists"

    rows = ex.recent_txs()
    assert [r["ok"] for r in rows] == [False, True]
    assert rows[0]["code"] == "already_exists"
    assert rows[0]["seq"] == bad.tx_seq
    assert ex.state().corp(1).member_count == 1


def test_effects_go_through_the_outbox(tmp_path) -> None:
    ex = DaoExecutor(db_path=str(tmp_path / "outbox.db"), bank=MemoryBank())
    ex.submit(_tx(1, "CORP_CREATE", "alice", {"name": "Acme"}, funds=1000))
    res = ex.submit(_tx(2, "CORP_LEAVE", "alice", {"corp_id": 1}))
    assert res.ok
    res = ex.submit(_tx(3, "CORP_DISSOLUTION_CLAIM", "alice", {"corp_id": 1}))
    assert res.ok and res.delivered

    box = ex.outbox()
    assert len(box) == 1
    assert box[0]["status"] == "delivered"
    assert box[0]["tx_seq"] == res.tx_seq
    assert box[0]["effect"] == {"kind": "transfer", "to": "alice", "amount": 1000, "denom": "ucredit"}


def test_failed_delivery_keeps_state_and_can_be_retried(tmp_path) -> None:
    bank = _FlakyBank()
    ex = DaoExecutor(db_path=str(tmp_path / "retry.db"), bank=bank)
    ex.submit(_tx(1, "CORP_CREATE", "alice", {"name": "Acme"}, funds=1000))
    ex.submit(_tx(2, "CORP_LEAVE", "alice", {"corp_id": 1}))

    res = ex.submit(_tx(3, "CORP_DISSOLUTION_CLAIM", "alice", {"corp_id": 1}))
    assert res.ok
    assert res.delivered is False
    assert ex.state().claim(1, "alice").claimed is True
    assert ex.outbox()[0]["status"] == "failed"

    # The claim is spent; asking again does not double pay.
    assert ex.submit(_tx(4, "CORP_DISSOLUTION_CLAIM", "alice", {"corp_id": 1})).code == "already_claimed"

    bank.fail = False
    assert ex.redeliver_pending() == 1
    assert ex.outbox()[0]["status"] == "delivered"
    assert bank.balances["alice"] == 1000
    assert ex.redeliver_pending() == 0


def test_memory_executor_log() -> None:
    ex = DaoExecutor(bank=MemoryBank())
    ex.submit(_tx(1, "CORP_CREATE", "alice", {"name": "Acme"}, funds=1000))
    ex.submit(_tx(2, "CORP_CREATE", "alice", {"name": "Acme"}, funds=1))
    rows = ex.recent_txs()
    assert [r["ok"] for r in rows] == [False, True]
    assert ex.redeliver_pending() == 0
