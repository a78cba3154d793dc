# src/corpdao/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from corpdao.ledger.kv import KVStore, StagedKV
from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import Effect, effect_from_json
from corpdao.runtime.domain_dispatch import apply_tx
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass(frozen=True)
class StagedTx:
    """A tx that applied cleanly but has not been committed yet."""

    env: TxEnvelope
    result: Json
    effect: Optional[Effect]
    writes: List[Tuple[str, Optional[Any]]] = field(default_factory=list)


def stage_tx(kv: KVStore, env: Any, *, bank: Any = None) -> StagedTx:
    """Run a tx against a write buffer over `kv`.

    `kv` is never written. On ApplyError the buffer is dropped and the error
    propagates, so a rejected tx leaves no trace and emits no effect.
    """
    env_norm = env if isinstance(env, TxEnvelope) else TxEnvelope.from_json(env)

    staged = StagedKV(kv)
    st = DaoState(staged, bank=bank)
    try:
        result = apply_tx(st, env_norm)
    except ApplyError:
        staged.discard()
        raise

    effect: Optional[Effect] = None
    eff_json = result.get("effect")
    if isinstance(eff_json, dict):
        effect = effect_from_json(eff_json)

    return StagedTx(env=env_norm, result=result, effect=effect, writes=staged.pending())


def commit_writes(kv: KVStore, writes: List[Tuple[str, Optional[Any]]]) -> int:
    n = 0
    for k, v in writes:
        if v is None:
            kv.delete(k)
        else:
            kv.put(k, v)
        n += 1
    return n


def apply_tx_atomic(kv: KVStore, env: Any, *, bank: Any = None) -> StagedTx:
    """Apply a tx with fail-atomic semantics.

    On success every write lands in `kv`. On ApplyError `kv` is unchanged.
    """
    staged = stage_tx(kv, env, bank=bank)
    commit_writes(kv, staged.writes)
    return staged


__all__ = ["ApplyError", "StagedTx", "apply_tx", "apply_tx_atomic", "commit_writes", "stage_tx"]
