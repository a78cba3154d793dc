from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional


@dataclass(frozen=True)
class TxReject:
    code: str
    reason: str
    details: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TxVerdict:
    ok: bool
    code: str
    reason: str
    details: Optional[Dict[str, Any]] = None

    def __iter__(self) -> Iterator[Any]:
        """Allow `ok, rej = admit_tx(...)` unpacking for tests."""
        if self.ok:
            yield True
            yield None
        else:
            yield False
            yield TxReject(self.code, self.reason, self.details)

    @staticmethod
    def admit() -> "TxVerdict":
        return TxVerdict(True, "ok", "admitted", None)

    @staticmethod
    def reject(code: str, reason: str, details: Optional[Dict[str, Any]] = None) -> "TxVerdict":
        return TxVerdict(False, code, reason, details)


@dataclass(frozen=True)
class TxEnvelope:
    """One inbound message.

    signer is authenticated by the surrounding environment, nonce is the
    environment's sequence number, funds is the value attached to the message
    and timestamp is the logical clock every deadline is compared against.
    """

    tx_type: str
    signer: str
    nonce: int
    payload: Dict[str, Any] = field(default_factory=dict)
    funds: int = 0
    timestamp: int = 0

    @staticmethod
    def from_json(j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return TxEnvelope(
            tx_type=str(j.get("tx_type", "")),
            signer=str(j.get("signer", "")),
            nonce=int(j.get("nonce", 0) or 0),
            payload=dict(j.get("payload", {}) or {}),
            funds=int(j.get("funds", 0) or 0),
            timestamp=int(j.get("timestamp", 0) or 0),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "tx_type": self.tx_type,
            "signer": self.signer,
            "nonce": self.nonce,
            "payload": self.payload,
            "funds": self.funds,
            "timestamp": self.timestamp,
        }
