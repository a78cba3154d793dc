# src/corpdao/runtime/apply/treasury.py
"""Treasury ledger and custody accounting.

treasury_balance on the Corporation record is the only source of truth for a
corporation's funds. Credits come from the creation fee, donations and
forfeited deposits; debits only from a passed TreasurySpend or dissolution.

Every unit the engine custodies is also counted in the tracked-funds total
(treasuries, escrowed deposits, refunds, unclaimed dissolution claims), which
is what lets the owner withdraw surplus without touching anyone's money.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from corpdao.ledger.tables import DaoState
from corpdao.ledger.types import BPS_DENOM, Corporation, TransferInstruction
from corpdao.runtime.dao_config import DaoConfig
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


# ---------------------------------------------------------------------------
# Attached funds
# ---------------------------------------------------------------------------


def require_no_funds(env: TxEnvelope) -> None:
    if int(env.funds) != 0:
        raise ApplyError("invalid_funds", "unexpected_funds", {"tx_type": env.tx_type, "funds": int(env.funds)})


def require_exact_funds(env: TxEnvelope, expected: int, *, what: str) -> None:
    got = int(env.funds)
    if got < int(expected):
        raise ApplyError("insufficient_funds", f"{what}_underpaid", {"expected": int(expected), "got": got})
    if got > int(expected):
        raise ApplyError("invalid_funds", f"{what}_overpaid", {"expected": int(expected), "got": got})


# ---------------------------------------------------------------------------
# Balance helpers
# ---------------------------------------------------------------------------


def credit_treasury(corp: Corporation, amount: int) -> None:
    if int(amount) < 0:
        raise ApplyError("invalid_funds", "negative_credit", {"amount": int(amount)})
    corp.treasury_balance = int(corp.treasury_balance) + int(amount)


def debit_treasury(corp: Corporation, amount: int) -> None:
    if int(amount) > int(corp.treasury_balance):
        raise ApplyError(
            "insufficient_funds",
            "treasury_insufficient",
            {"corp_id": corp.id, "balance": corp.treasury_balance, "amount": int(amount)},
        )
    corp.treasury_balance = int(corp.treasury_balance) - int(amount)


def spend_cap(corp: Corporation, cfg: DaoConfig) -> int:
    """Largest single spend allowed right now."""
    return int(corp.treasury_balance) * int(cfg.spend_cap_bps) // BPS_DENOM


def transfer(cfg: DaoConfig, to: str, amount: int) -> TransferInstruction:
    return TransferInstruction(to=to, amount=int(amount), denom=cfg.denom)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _apply_donate(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    corp = st.corp(p.corp_id)
    if corp is None:
        raise ApplyError("not_found", "corporation_not_found", {"corp_id": p.corp_id})
    if not corp.is_active():
        raise ApplyError("invalid_state", "corporation_not_active", {"corp_id": corp.id, "status": corp.status})
    if int(env.funds) <= 0:
        raise ApplyError("invalid_funds", "donation_required", {"funds": int(env.funds)})

    credit_treasury(corp, env.funds)
    st.save_corp(corp)
    st.track_inflow(env.funds)
    return {
        "applied": "CORP_DONATE",
        "corp_id": corp.id,
        "amount": int(env.funds),
        "treasury_balance": corp.treasury_balance,
    }


def _apply_refund_claim(st: DaoState, env: TxEnvelope) -> Json:
    parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    cfg = load_dao_config(st)

    r = st.refund(env.signer)
    if r is None or int(r.amount) <= 0:
        raise ApplyError("not_found", "no_refund_owed", {"address": env.signer})

    st.remove_refund(env.signer)
    st.track_outflow(r.amount)
    eff = transfer(cfg, env.signer, r.amount)
    return {"applied": "CORP_REFUND_CLAIM", "address": env.signer, "amount": r.amount, "effect": eff.to_json()}


TREASURY_TX_TYPES = {"CORP_DONATE", "CORP_REFUND_CLAIM"}

_TREASURY_HANDLERS = {
    "CORP_DONATE": _apply_donate,
    "CORP_REFUND_CLAIM": _apply_refund_claim,
}


def apply_treasury(st: DaoState, env: TxEnvelope) -> Optional[Json]:
    """Apply treasury txs. Returns None when tx_type is not handled here."""
    fn = _TREASURY_HANDLERS.get(env.tx_type)
    if fn is None:
        return None
    return fn(st, env)


__all__ = [
    "TREASURY_TX_TYPES",
    "apply_treasury",
    "credit_treasury",
    "debit_treasury",
    "require_exact_funds",
    "require_no_funds",
    "spend_cap",
    "transfer",
]
