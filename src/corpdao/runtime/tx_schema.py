from __future__ import annotations

"""Transaction payload schemas.

Every tx type has a strict pydantic model: unknown keys are rejected and
required keys must be present with the right type. Admission runs
validate_payload() before a tx reaches the apply layer, and handlers call
parse_payload() to get the typed model they work from.

Schemas check shape only. Anything that depends on ledger state (membership,
balances, bounds that config can move) is enforced by the apply layer.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from corpdao.runtime.errors import ApplyError

Json = Dict[str, Any]


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid")


class _EmptyPayload(_StrictModel):
    pass


Address = Annotated[str, Field(min_length=1, max_length=256)]
CorpId = Annotated[int, Field(ge=1)]


# ---------------------------------------------------------------------------
# Registry / membership / treasury
# ---------------------------------------------------------------------------


class CorpCreatePayload(_StrictModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str = Field(default="", max_length=4096)
    join_policy: Literal["open", "invite_only"] = "open"

    @model_validator(mode="after")
    def _name_not_blank(self) -> "CorpCreatePayload":
        if not self.name.strip():
            raise ValueError("name_blank")
        return self


class CorpDescriptionUpdatePayload(_StrictModel):
    corp_id: CorpId
    description: str = Field(..., max_length=4096)


class CorpIdPayload(_StrictModel):
    corp_id: CorpId


class CorpInvitePayload(_StrictModel):
    corp_id: CorpId
    invitee: Address


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


class TreasurySpendAction(_StrictModel):
    kind: Literal["treasury_spend"]
    recipient: Address
    amount: int = Field(..., gt=0)
    reason: str = Field(default="", max_length=1024)


class ChangeSettingsAction(_StrictModel):
    kind: Literal["change_settings"]
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    description: Optional[str] = Field(default=None, max_length=4096)
    join_policy: Optional[Literal["open", "invite_only"]] = None
    quorum_bps: Optional[int] = None
    voting_period: Optional[int] = None

    @model_validator(mode="after")
    def _check_settings(self) -> "ChangeSettingsAction":
        vals = [self.name, self.description, self.join_policy, self.quorum_bps, self.voting_period]
        if all(v is None for v in vals):
            raise ValueError("no_settings_supplied")
        if self.name is not None and not self.name.strip():
            raise ValueError("name_blank")
        return self


class KickMemberAction(_StrictModel):
    kind: Literal["kick_member"]
    member: Address


class PromoteMemberAction(_StrictModel):
    kind: Literal["promote_member"]
    member: Address
    new_role: Literal["founder", "officer", "member"]


class DissolutionAction(_StrictModel):
    kind: Literal["dissolution"]


class CustomAction(_StrictModel):
    kind: Literal["custom"]
    target: Address
    instruction: Dict[str, Any] = Field(default_factory=dict)


ProposalAction = Annotated[
    Union[
        TreasurySpendAction,
        ChangeSettingsAction,
        KickMemberAction,
        PromoteMemberAction,
        DissolutionAction,
        CustomAction,
    ],
    Field(discriminator="kind"),
]


class CorpProposalCreatePayload(_StrictModel):
    corp_id: CorpId
    title: str = Field(default="", max_length=256)
    action: ProposalAction


class CorpVotePayload(_StrictModel):
    proposal_id: int = Field(..., ge=1)
    choice: Literal["yes", "no"]


class ProposalIdPayload(_StrictModel):
    proposal_id: int = Field(..., ge=1)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class DaoConfigUpdatePayload(_StrictModel):
    denom: Optional[str] = Field(default=None, min_length=1)
    creation_fee: Optional[int] = Field(default=None, ge=0)
    proposal_deposit: Optional[int] = Field(default=None, ge=0)
    default_max_members: Optional[int] = None
    default_quorum_bps: Optional[int] = None
    default_voting_period: Optional[int] = None
    min_voting_period: Optional[int] = None
    max_voting_period: Optional[int] = None
    spend_cap_bps: Optional[int] = None
    dissolution_bps: Optional[int] = None
    invite_ttl: Optional[int] = None
    execution_window: Optional[int] = None

    def updates(self) -> Json:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class DaoOwnerProposePayload(_StrictModel):
    new_owner: Address


class DaoSurplusWithdrawPayload(_StrictModel):
    amount: int = Field(..., gt=0)
    recipient: Optional[Address] = None


Schema = Type[BaseModel]

_SCHEMA_BY_TX_TYPE: Dict[str, Schema] = {
    "CORP_CREATE": CorpCreatePayload,
    "CORP_DESCRIPTION_UPDATE": CorpDescriptionUpdatePayload,
    "CORP_JOIN": CorpIdPayload,
    "CORP_INVITE": CorpInvitePayload,
    "CORP_INVITE_ACCEPT": CorpIdPayload,
    "CORP_LEAVE": CorpIdPayload,
    "CORP_DONATE": CorpIdPayload,
    "CORP_PROPOSAL_CREATE": CorpProposalCreatePayload,
    "CORP_VOTE": CorpVotePayload,
    "CORP_PROPOSAL_EXECUTE": ProposalIdPayload,
    "CORP_DISSOLUTION_CLAIM": CorpIdPayload,
    "CORP_REFUND_CLAIM": _EmptyPayload,
    "DAO_CONFIG_UPDATE": DaoConfigUpdatePayload,
    "DAO_OWNER_PROPOSE": DaoOwnerProposePayload,
    "DAO_OWNER_ACCEPT": _EmptyPayload,
    "DAO_OWNER_CANCEL": _EmptyPayload,
    "DAO_SURPLUS_WITHDRAW": DaoSurplusWithdrawPayload,
}


def known_tx_types() -> Tuple[str, ...]:
    return tuple(sorted(_SCHEMA_BY_TX_TYPE))


def _schema_for(tx_type: str) -> Optional[Schema]:
    t = str(tx_type or "").strip().upper()
    if not t:
        return None
    return _SCHEMA_BY_TX_TYPE.get(t)


def _errors_json(ve: ValidationError) -> list:
    # ctx may hold exception objects; keep only the JSON-safe parts.
    return [
        {"loc": [str(x) for x in e.get("loc", ())], "msg": str(e.get("msg", "")), "type": str(e.get("type", ""))}
        for e in ve.errors()
    ]


def validate_payload(*, tx_type: str, payload: Any) -> Tuple[bool, str, str, Optional[Dict[str, Any]]]:
    """Validate payload against its schema.

    Returns: (ok, code, reason, details)
    """
    sch = _schema_for(tx_type)
    if sch is None:
        return False, "tx_unimplemented", "tx_type_not_implemented", {"tx_type": tx_type}

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return False, "invalid_payload", "payload_must_be_object", {"type": type(payload).__name__}

    try:
        sch.model_validate(payload)
        return True, "", "", None
    except ValidationError as ve:
        return False, "invalid_payload", "payload_schema_mismatch", {"errors": _errors_json(ve)}


def parse_payload(tx_type: str, payload: Any) -> Any:
    """Return the typed payload model or raise ApplyError(invalid_payload)."""
    sch = _schema_for(tx_type)
    if sch is None:
        raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": tx_type})
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ApplyError("invalid_payload", "payload_must_be_object", {"type": type(payload).__name__})
    try:
        return sch.model_validate(payload)
    except ValidationError as ve:
        raise ApplyError("invalid_payload", "payload_schema_mismatch", {"errors": _errors_json(ve)})


__all__ = [
    "ChangeSettingsAction",
    "CorpProposalCreatePayload",
    "CustomAction",
    "DissolutionAction",
    "KickMemberAction",
    "PromoteMemberAction",
    "TreasurySpendAction",
    "known_tx_types",
    "parse_payload",
    "validate_payload",
]
