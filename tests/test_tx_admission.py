from __future__ import annotations

import pytest

from corpdao.runtime.errors import ApplyError
from corpdao.runtime.tx_admission import admit_tx
from corpdao.runtime.tx_schema import known_tx_types, parse_payload, validate_payload


def _tx(tx_type: str, payload, **kw):
    out = {"tx_type": tx_type, "signer": "alice", "nonce": 1, "payload": payload}
    out.update(kw)
    return out


def test_admits_well_formed_tx() -> None:
    ok, rej = admit_tx(_tx("CORP_CREATE", {"name": "Acme"}, funds=1000))
    assert ok is True
    assert rej is None


def test_rejects_unknown_keys() -> None:
    v = admit_tx(_tx("CORP_JOIN", {"corp_id": 1, "extra": True}))
    assert not v.ok
    assert v.code == "invalid_payload"
    assert v.reason == "payload_schema_mismatch"


def test_rejects_unknown_tx_type() -> None:
    v = admit_tx(_tx("CORP_TELEPORT", {}))
    assert not v.ok
    assert v.code == "tx_unimplemented"


def test_rejects_missing_signer_and_negative_funds() -> None:
    v = admit_tx({"tx_type": "CORP_JOIN", "signer": " ", "nonce": 1, "payload": {"corp_id": 1}})
    assert (v.ok, v.code, v.reason) == (False, "invalid_tx", "missing_signer")

    v = admit_tx(_tx("CORP_DONATE", {"corp_id": 1}, funds=-5))
    assert (v.ok, v.code) == (False, "invalid_funds")


def test_payload_string_cap(monkeypatch) -> None:
    monkeypatch.setenv("CORPDAO_MAX_TX_STRING_BYTES", "16")
    v = admit_tx(_tx("CORP_CREATE", {"name": "x" * 17}))
    assert not v.ok
    assert v.reason == "string_too_large"


def test_payload_nesting_cap(monkeypatch) -> None:
    monkeypatch.setenv("CORPDAO_MAX_TX_NESTING", "2")
    action = {"kind": "custom", "target": "bridge", "instruction": {"a": {"b": {"c": 1}}}}
    v = admit_tx(_tx("CORP_PROPOSAL_CREATE", {"corp_id": 1, "action": action}))
    assert not v.ok
    assert v.reason == "payload_too_deep"


def test_proposal_actions_are_discriminated_by_kind() -> None:
    p = parse_payload(
        "CORP_PROPOSAL_CREATE",
        {"corp_id": 1, "action": {"kind": "treasury_spend", "recipient": "bob", "amount": 5}},
    )
    assert p.action.kind == "treasury_spend"
    assert p.action.amount == 5

    ok, code, _, _ = validate_payload(
        tx_type="CORP_PROPOSAL_CREATE",
        payload={"corp_id": 1, "action": {"kind": "treasury_spend", "recipient": "bob", "amount": 0}},
    )
    assert (ok, code) == (False, "invalid_payload")


def test_change_settings_needs_at_least_one_field() -> None:
    with pytest.raises(ApplyError) as e:
        parse_payload("CORP_PROPOSAL_CREATE", {"corp_id": 1, "action": {"kind": "change_settings"}})
    assert e.value.code == "invalid_payload"


def test_every_tx_type_has_a_schema() -> None:
    assert len(known_tx_types()) == 17
    assert "CORP_DISSOLUTION_CLAIM" in known_tx_types()
