# src/corpdao/runtime/apply/admin.py
"""Owner-managed configuration.

The owner can tune governance params, hand ownership over in two steps
(propose, then accept by the new owner) and withdraw custodied funds that no
ledger accounts for. The owner has no path to corporation treasuries,
memberships or proposals.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from corpdao.ledger.tables import DaoState
from corpdao.runtime.apply.treasury import require_no_funds, transfer
from corpdao.runtime.dao_config import updated_dao_config
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.gates import load_dao_config
from corpdao.runtime.tx_admission_types import TxEnvelope
from corpdao.runtime.tx_schema import parse_payload

Json = Dict[str, Any]


def _apply_config_update(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    cfg = load_dao_config(st)

    updates = p.updates()
    if not updates:
        raise ApplyError("invalid_payload", "no_updates_supplied", None)
    try:
        new_cfg = updated_dao_config(cfg, updates)
    except (KeyError, TypeError) as e:
        raise ApplyError("invalid_payload", "bad_config_update", {"err": str(e)})
    except ValueError as e:
        raise ApplyError("out_of_bounds", "config_out_of_bounds", {"err": str(e)})

    st.save_config_json(new_cfg.to_json())
    return {"applied": "DAO_CONFIG_UPDATE", "updated": sorted(updates)}


def _apply_owner_propose(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    st.set_pending_owner(p.new_owner)
    return {"applied": "DAO_OWNER_PROPOSE", "pending_owner": p.new_owner}


def _apply_owner_accept(st: DaoState, env: TxEnvelope) -> Json:
    parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    cfg = load_dao_config(st)
    pending = st.pending_owner()
    if pending is None or pending != env.signer:
        raise ApplyError("unauthorized", "pending_owner_required", None)

    cfg_json = cfg.to_json()
    previous = cfg_json["owner"]
    cfg_json["owner"] = env.signer
    st.save_config_json(cfg_json)
    st.set_pending_owner(None)
    return {"applied": "DAO_OWNER_ACCEPT", "owner": env.signer, "previous_owner": previous}


def _apply_owner_cancel(st: DaoState, env: TxEnvelope) -> Json:
    parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    if st.pending_owner() is None:
        raise ApplyError("not_found", "no_pending_owner", None)
    st.set_pending_owner(None)
    return {"applied": "DAO_OWNER_CANCEL"}


def _apply_surplus_withdraw(st: DaoState, env: TxEnvelope) -> Json:
    p = parse_payload(env.tx_type, env.payload)
    require_no_funds(env)
    cfg = load_dao_config(st)

    if st.bank is None:
        raise ApplyError("invalid_state", "balance_query_unavailable", None)
    custodied = int(st.bank.custodied_balance(cfg.denom))
    tracked = st.tracked_funds()
    surplus = max(0, custodied - tracked)
    if int(p.amount) > surplus:
        raise ApplyError(
            "insufficient_funds",
            "surplus_insufficient",
            {"amount": int(p.amount), "surplus": surplus, "custodied": custodied, "tracked": tracked},
        )

    recipient = p.recipient or env.signer
    eff = transfer(cfg, recipient, p.amount)
    return {
        "applied": "DAO_SURPLUS_WITHDRAW",
        "recipient": recipient,
        "amount": int(p.amount),
        "surplus_before": surplus,
        "effect": eff.to_json(),
    }


ADMIN_TX_TYPES = {
    "DAO_CONFIG_UPDATE",
    "DAO_OWNER_PROPOSE",
    "DAO_OWNER_ACCEPT",
    "DAO_OWNER_CANCEL",
    "DAO_SURPLUS_WITHDRAW",
}

_ADMIN_HANDLERS = {
    "DAO_CONFIG_UPDATE": _apply_config_update,
    "DAO_OWNER_PROPOSE": _apply_owner_propose,
    "DAO_OWNER_ACCEPT": _apply_owner_accept,
    "DAO_OWNER_CANCEL": _apply_owner_cancel,
    "DAO_SURPLUS_WITHDRAW": _apply_surplus_withdraw,
}


def apply_admin(st: DaoState, env: TxEnvelope) -> Optional[Json]:
    fn = _ADMIN_HANDLERS.get(env.tx_type)
    if fn is None:
        return None
    return fn(st, env)


__all__ = ["ADMIN_TX_TYPES", "apply_admin"]
