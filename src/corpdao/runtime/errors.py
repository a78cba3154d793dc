from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class ErrorCode:
    """Rejection kinds surfaced to callers. Every rejected tx carries exactly one."""

    UNAUTHORIZED = "unauthorized"
    INVALID_STATE = "invalid_state"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    OUT_OF_BOUNDS = "out_of_bounds"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NOT_ELIGIBLE = "not_eligible"
    ALREADY_VOTED = "already_voted"
    EXPIRED = "expired"
    DUPLICATE_FOUNDER = "duplicate_founder"
    ALREADY_CLAIMED = "already_claimed"

    # Malformed input (payload shape, attached funds) and routing failures.
    INVALID_PAYLOAD = "invalid_payload"
    INVALID_FUNDS = "invalid_funds"
    INVALID_TX = "invalid_tx"
    TX_UNIMPLEMENTED = "tx_unimplemented"
    DOMAIN_ERROR = "domain_error"


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"

    def to_json(self) -> dict:
        return {"code": self.code, "reason": self.reason, "details": self.details}


__all__ = ["ApplyError", "ErrorCode"]
