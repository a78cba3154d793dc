from __future__ import annotations

"""Pydantic request schemas for the public API.

Tx payloads are validated by corpdao.runtime.tx_schema once the envelope
reaches the executor. These models only check the envelope shape at the HTTP
boundary.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., description="Tx type, e.g. CORP_CREATE")
    signer: str = Field(..., description="Authenticated sender address")
    nonce: int = Field(default=0, ge=0)
    payload: Dict[str, Any] = Field(default_factory=dict)
    funds: int = Field(default=0, ge=0, description="Native denom attached to the tx")
    timestamp: int = Field(default=0, ge=0, description="Block time in seconds")

    model_config = {"extra": "forbid"}

    def to_envelope_json(self) -> Dict[str, Any]:
        return self.model_dump()
