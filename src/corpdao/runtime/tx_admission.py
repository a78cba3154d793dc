from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional, Tuple

from corpdao.runtime.tx_admission_types import TxEnvelope, TxReject, TxVerdict
from corpdao.runtime.tx_schema import validate_payload


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except Exception:
        return int(default)


def _normalize_jsonable(obj: Any) -> Any:
    """Return a JSON-serializable representation of obj where possible."""
    if obj is None:
        return None
    if isinstance(obj, (dict, list, str, int, float, bool)):
        return obj
    to_json = getattr(obj, "to_json", None)
    if callable(to_json):
        return to_json()
    return obj


def _json_size_bytes(obj: Any) -> int:
    """Compute JSON byte size. If not serializable, return -1 (unknown)."""
    try:
        norm = _normalize_jsonable(obj)
        return len(json.dumps(norm, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _validate_payload_limits(payload: Any) -> Optional[TxVerdict]:
    """Generic payload validation (shape + size caps)."""
    if payload is None:
        return None
    if not isinstance(payload, dict):
        return TxVerdict.reject("invalid_payload", "payload_must_be_object", {"type": type(payload).__name__})

    max_payload_bytes = _env_int("CORPDAO_MAX_TX_PAYLOAD_BYTES", 32 * 1024)
    max_payload_keys = _env_int("CORPDAO_MAX_TX_PAYLOAD_KEYS", 64)
    max_string_bytes = _env_int("CORPDAO_MAX_TX_STRING_BYTES", 8 * 1024)
    max_list_len = _env_int("CORPDAO_MAX_TX_LIST_LEN", 1_000)
    max_depth = _env_int("CORPDAO_MAX_TX_NESTING", 8)

    if len(payload) > int(max_payload_keys):
        return TxVerdict.reject(
            "invalid_payload",
            "payload_too_many_keys",
            {"keys": len(payload), "max_keys": int(max_payload_keys)},
        )

    payload_bytes = _json_size_bytes(payload)
    if payload_bytes > int(max_payload_bytes):
        return TxVerdict.reject(
            "invalid_payload",
            "payload_exceeds_size_limit",
            {"bytes": int(payload_bytes), "max_bytes": int(max_payload_bytes)},
        )

    def walk(v: Any, depth: int) -> Optional[Tuple[str, Dict[str, Any]]]:
        if depth > int(max_depth):
            return "payload_too_deep", {"max_depth": int(max_depth)}

        if v is None or isinstance(v, (bool, int, float)):
            return None

        if isinstance(v, str):
            b = len(v.encode("utf-8", errors="ignore"))
            if b > int(max_string_bytes):
                return "string_too_large", {"bytes": int(b), "max_bytes": int(max_string_bytes)}
            return None

        if isinstance(v, list):
            if len(v) > int(max_list_len):
                return "list_too_long", {"len": len(v), "max_len": int(max_list_len)}
            for it in v:
                err = walk(it, depth + 1)
                if err:
                    return err
            return None

        if isinstance(v, dict):
            if len(v) > int(max_payload_keys):
                return "object_too_many_keys", {"keys": len(v), "max_keys": int(max_payload_keys)}
            for kk, vv in v.items():
                if not isinstance(kk, str):
                    return "invalid_key_type", {"key_type": type(kk).__name__}
                err = walk(vv, depth + 1)
                if err:
                    return err
            return None

        return "invalid_value_type", {"type": type(v).__name__}

    err = walk(payload, 0)
    if err:
        reason, details = err
        return TxVerdict.reject("invalid_payload", reason, details)

    return None


def admit_tx(tx: Any) -> TxVerdict:
    """Stateless admission: envelope shape, payload caps, payload schema.

    Nothing here reads the ledger. A tx that is admitted can still be rejected
    by the apply layer.
    """
    if not isinstance(tx, (dict, TxEnvelope)):
        return TxVerdict.reject("invalid_tx", "tx_must_be_object", {"type": type(tx).__name__})

    max_tx_bytes = _env_int("CORPDAO_MAX_TX_ENVELOPE_BYTES", 48 * 1024)
    env_size = _json_size_bytes(tx)
    if env_size > int(max_tx_bytes):
        return TxVerdict.reject(
            "invalid_tx",
            "tx_envelope_exceeds_size_limit",
            {"bytes": int(env_size), "max_bytes": int(max_tx_bytes)},
        )

    if isinstance(tx, dict):
        limits = _validate_payload_limits(tx.get("payload"))
        if limits is not None:
            return limits

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError) as e:
        return TxVerdict.reject("invalid_tx", "bad_envelope", {"err": str(e)})

    if not env.tx_type.strip():
        return TxVerdict.reject("invalid_tx", "missing_tx_type", None)
    if not env.signer.strip():
        return TxVerdict.reject("invalid_tx", "missing_signer", None)
    if int(env.nonce) < 0:
        return TxVerdict.reject("invalid_tx", "nonce_must_be_nonnegative", {"nonce": int(env.nonce)})
    if int(env.funds) < 0:
        return TxVerdict.reject("invalid_funds", "funds_must_be_nonnegative", {"funds": int(env.funds)})
    if int(env.timestamp) < 0:
        return TxVerdict.reject("invalid_tx", "timestamp_must_be_nonnegative", {"timestamp": int(env.timestamp)})

    ok, code, reason, details = validate_payload(tx_type=env.tx_type, payload=env.payload)
    if not ok:
        return TxVerdict.reject(code, reason, details)

    return TxVerdict.admit()


__all__ = ["TxEnvelope", "TxReject", "TxVerdict", "admit_tx"]
