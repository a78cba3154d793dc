# src/corpdao/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from corpdao.ledger.tables import DaoState
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import enforce_gate
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from corpdao.runtime.apply.admin import apply_admin
from corpdao.runtime.apply.dissolution import apply_dissolution
from corpdao.runtime.apply.execution import apply_execution
from corpdao.runtime.apply.governance import apply_governance
from corpdao.runtime.apply.membership import apply_membership
from corpdao.runtime.apply.registry import apply_registry
from corpdao.runtime.apply.treasury import apply_treasury

Json = Dict[str, Any]
ApplyFn = Callable[[DaoState, TxEnvelope], Optional[Json]]


def _tx_type(env: Any) -> str:
    if isinstance(env, dict):
        return str(env.get("tx_type", "") or "").strip().upper()
    return str(getattr(env, "tx_type", "") or "").strip().upper()


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_registry,
    apply_membership,
    apply_treasury,
    apply_governance,
    apply_execution,
    apply_dissolution,
    apply_admin,
)


def apply_tx(st: DaoState, env: Any) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it.

    Order of checks: tx type, payload shape, authorization gate, then the
    domain handler. Mutations happen only inside the handler, and only through
    `st`; callers that need atomicity pass a DaoState over a StagedKV.
    """
    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    t = _tx_type(env_norm)
    if not t:
        raise ApplyError("invalid_tx", "missing_tx_type", {"tx_type": t})
    if t != env_norm.tx_type:
        env_norm = TxEnvelope(
            tx_type=t,
            signer=env_norm.signer,
            nonce=env_norm.nonce,
            payload=env_norm.payload,
            funds=env_norm.funds,
            timestamp=env_norm.timestamp,
        )
    if not str(env_norm.signer or "").strip():
        raise ApplyError("invalid_tx", "missing_signer", None)
    if int(env_norm.funds) < 0:
        raise ApplyError("invalid_funds", "funds_must_be_nonnegative", {"funds": int(env_norm.funds)})

    parse_payload(t, env_norm.payload)
    enforce_gate(st, env_norm)

    for fn in _APPLIERS:
        try:
            out = fn(st, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})


__all__ = ["apply_tx"]
