# src/corpdao/runtime/executor.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from corpdao.ledger.kv import KVStore, MemoryKV
from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import effect_from_json
from corpdao.runtime.bank import Bank, BankError, MemoryBank
from corpdao.runtime.dao_config import DaoConfig, default_dao_config, validate_dao_config
from corpdao.runtime.domain_apply import StagedTx, commit_writes, stage_tx
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.metrics import inc_counter, set_gauge
from corpdao.runtime.runtime_logging import log_event
from corpdao.runtime.sqlite_db import SqliteDB, SqliteKV, SqliteTxLog
from corpdao.runtime.tx_admission import admit_tx
from corpdao.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

_log = logging.getLogger("corpdao.executor")


@dataclass
class SubmitResult:
    ok: bool
    code: str = "ok"
    reason: str = ""
    details: Any = None
    result: Json = field(default_factory=dict)
    effect: Optional[Json] = None
    tx_seq: int = 0
    delivered: bool = False

    def to_json(self) -> Json:
        return {
            "ok": self.ok,
            "code": self.code,
            "reason": self.reason,
            "details": self.details,
            "result": self.result,
            "effect": self.effect,
            "tx_seq": self.tx_seq,
            "delivered": self.delivered,
        }


class DaoExecutor:
    """Processes txs one at a time against the ledger.

    With db_path the ledger, the tx log and the effect outbox live in SQLite,
    and a tx's state writes and its outbox row commit in one write
    transaction. Effects are handed to the bank only after that commit.
    Without db_path everything is in memory (tests, dev), the outbox included,
    so redeliver_pending() works the same way in both modes.
    """

    def __init__(
        self,
        *,
        db_path: Optional[str] = None,
        dao_config: Optional[DaoConfig] = None,
        bank: Optional[Bank] = None,
    ) -> None:
        self._lock = threading.RLock()
        self.db_path = str(db_path) if db_path else ""

        self._db: Optional[SqliteDB] = None
        self._txlog: Optional[SqliteTxLog] = None
        self._kv: KVStore
        if self.db_path:
            self._db = SqliteDB(path=self.db_path)
            self._db.init_schema()
            self._txlog = SqliteTxLog(db=self._db)
            self._kv = SqliteKV(self._db)
        else:
            self._kv = MemoryKV()

        self._mem_log: List[Json] = []
        self._mem_outbox: List[Json] = []
        self._seq = 0

        cfg = dao_config or default_dao_config()
        validate_dao_config(cfg)
        self.bank: Bank = bank or MemoryBank(denom=cfg.denom)

        st = DaoState(self._kv)
        if not st.config_json():
            st.save_config_json(cfg.to_json())
            log_event(_log, "dao_genesis", owner=cfg.owner, denom=cfg.denom, db_path=self.db_path or ":memory:")
        else:
            log_event(_log, "dao_loaded", db_path=self.db_path or ":memory:")

    # ----------------------------
    # Read access
    # ----------------------------

    def state(self) -> DaoState:
        """Read-only view of committed state."""
        return DaoState(self._kv, bank=self.bank)

    def dao_config(self) -> DaoConfig:
        return DaoConfig.from_json(self.state().config_json())

    def recent_txs(self, *, limit: int = 50) -> List[Json]:
        if self._txlog is not None:
            return self._txlog.recent(limit=limit)
        return list(reversed(self._mem_log[-int(limit):]))

    def outbox(self, *, limit: int = 100) -> List[Json]:
        if self._txlog is not None:
            return self._txlog.outbox(limit=limit)
        return [dict(row) for row in self._mem_outbox[: int(limit)]]

    # ----------------------------
    # Write path
    # ----------------------------

    def submit(self, tx: Any) -> SubmitResult:
        """Admit, apply, commit and deliver one tx. Never raises ApplyError."""
        inc_counter("tx_submitted_total")
        raw = tx.to_json() if isinstance(tx, TxEnvelope) else tx

        verdict = admit_tx(raw)
        if not verdict.ok:
            return self._rejected(raw, verdict.code, verdict.reason, verdict.details, tx_seq=0)

        env = TxEnvelope.from_json(raw)
        with self._lock:
            if self._db is not None:
                return self._submit_sqlite(env)
            return self._submit_memory(env)

    def _submit_memory(self, env: TxEnvelope) -> SubmitResult:
        self._seq += 1
        seq = self._seq
        try:
            staged = stage_tx(self._kv, env, bank=self.bank)
        except ApplyError as e:
            self._mem_log.append({"seq": seq, **env.to_json(), "ok": False, "code": e.code, "effect": None})
            return self._rejected(env.to_json(), e.code, e.reason, e.details, tx_seq=seq)

        commit_writes(self._kv, staged.writes)
        self._mem_log.append({"seq": seq, **env.to_json(), "ok": True, "code": "ok", "effect": _effect_json(staged)})
        outbox_id: Optional[int] = None
        if staged.effect is not None:
            outbox_id = len(self._mem_outbox) + 1
            self._mem_outbox.append(
                {"id": outbox_id, "tx_seq": seq, "effect": staged.effect.to_json(), "status": "pending", "error": None}
            )
        return self._applied(staged, tx_seq=seq, outbox_id=outbox_id)

    def _submit_sqlite(self, env: TxEnvelope) -> SubmitResult:
        assert self._db is not None and self._txlog is not None
        staged: Optional[StagedTx] = None
        err: Optional[ApplyError] = None
        outbox_id: Optional[int] = None

        with self._db.write_tx() as con:
            kv = SqliteKV(self._db, con=con)
            try:
                staged = stage_tx(kv, env, bank=self.bank)
            except ApplyError as e:
                err = e

            if staged is not None:
                commit_writes(kv, staged.writes)
                seq = SqliteTxLog.append(con, env=env.to_json(), ok=True, code="ok", result=staged.result)
                if staged.effect is not None:
                    outbox_id = SqliteTxLog.enqueue_effect(con, tx_seq=seq, effect=staged.effect.to_json())
            else:
                assert err is not None
                seq = SqliteTxLog.append(con, env=env.to_json(), ok=False, code=err.code, result=err.to_json())

        if err is not None:
            return self._rejected(env.to_json(), err.code, err.reason, err.details, tx_seq=seq)
        assert staged is not None
        return self._applied(staged, tx_seq=seq, outbox_id=outbox_id)

    def _applied(self, staged: StagedTx, *, tx_seq: int, outbox_id: Optional[int]) -> SubmitResult:
        env = staged.env
        if int(env.funds) > 0:
            self.bank.receive(env.signer, env.funds, self.dao_config().denom)

        delivered = False
        if staged.effect is not None:
            delivered = self._deliver(staged.effect.to_json(), outbox_id=outbox_id, tx_seq=tx_seq)

        inc_counter("tx_applied_total")
        set_gauge("last_tx_seq", tx_seq)
        log_event(
            _log,
            "tx_applied",
            tx_seq=tx_seq,
            tx_type=env.tx_type,
            signer=env.signer,
            nonce=env.nonce,
            effect=staged.effect.kind if staged.effect is not None else None,
        )
        return SubmitResult(
            ok=True,
            result=staged.result,
            effect=_effect_json(staged),
            tx_seq=tx_seq,
            delivered=delivered,
        )

    def _rejected(self, env: Json, code: str, reason: str, details: Any, *, tx_seq: int) -> SubmitResult:
        inc_counter("tx_rejected_total")
        inc_counter(f"tx_rejected_{code}_total")
        log_event(
            _log,
            "tx_rejected",
            tx_seq=tx_seq,
            tx_type=str(env.get("tx_type") or "") if isinstance(env, dict) else "",
            signer=str(env.get("signer") or "") if isinstance(env, dict) else "",
            code=code,
            reason=reason,
        )
        return SubmitResult(ok=False, code=code, reason=reason, details=details, tx_seq=tx_seq)

    def _deliver(self, effect: Json, *, outbox_id: Optional[int], tx_seq: int) -> bool:
        try:
            self.bank.deliver(effect_from_json(effect))
        except BankError as e:
            inc_counter("effect_delivery_failed_total")
            log_event(_log, "effect_delivery_failed", level=logging.WARNING, tx_seq=tx_seq, error=str(e))
            self._mark_outbox(outbox_id, "failed", str(e))
            return False

        inc_counter("effect_delivered_total")
        self._mark_outbox(outbox_id, "delivered", None)
        return True

    def _mark_outbox(self, outbox_id: Optional[int], status: str, error: Optional[str]) -> None:
        if outbox_id is None:
            return
        if self._txlog is not None:
            if status == "delivered":
                self._txlog.mark_delivered(outbox_id)
            else:
                self._txlog.mark_failed(outbox_id, error or "")
            return
        row = self._mem_outbox[outbox_id - 1]
        row["status"] = status
        row["error"] = error

    def _pending_effects(self) -> List[Tuple[int, Json]]:
        if self._txlog is not None:
            return self._txlog.pending_effects()
        return [(int(r["id"]), r["effect"]) for r in self._mem_outbox if r["status"] != "delivered"]

    def redeliver_pending(self) -> int:
        """Retry outbox effects that were committed but not delivered."""
        n = 0
        with self._lock:
            for outbox_id, effect in self._pending_effects():
                if self._deliver(effect, outbox_id=outbox_id, tx_seq=0):
                    n += 1
        return n


def _effect_json(staged: StagedTx) -> Optional[Json]:
    return staged.effect.to_json() if staged.effect is not None else None


__all__ = ["DaoExecutor", "SubmitResult"]
