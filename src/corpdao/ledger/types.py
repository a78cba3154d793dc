"""corpdao.ledger.types

Entity records stored in the ledger tables plus the outbound effect types.

Records are plain dataclasses with to_json()/from_json() so the same value can
live in MemoryKV, SQLite (as canonical JSON) and API responses. Enumerations
are string constants; the stored form is the lowercase string.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Union

Json = Dict[str, Any]

BPS_DENOM = 10_000


class CorpStatus:
    ACTIVE = "active"
    DISSOLVING = "dissolving"
    DISSOLVED = "dissolved"


class JoinPolicy:
    OPEN = "open"
    INVITE_ONLY = "invite_only"

    ALL = (OPEN, INVITE_ONLY)


class Role:
    FOUNDER = "founder"
    OFFICER = "officer"
    MEMBER = "member"

    ALL = (FOUNDER, OFFICER, MEMBER)


class ProposalKind:
    TREASURY_SPEND = "treasury_spend"
    CHANGE_SETTINGS = "change_settings"
    KICK_MEMBER = "kick_member"
    PROMOTE_MEMBER = "promote_member"
    DISSOLUTION = "dissolution"
    CUSTOM = "custom"


class ProposalStatus:
    ACTIVE = "active"
    PASSED = "passed"
    FAILED = "failed"
    EXECUTED = "executed"
    EXPIRED = "expired"


class VoteChoice:
    YES = "yes"
    NO = "no"


def _coerce_int(v: Any, *, field: str) -> int:
    if isinstance(v, bool):
        raise ValueError(f"record field '{field}' must be int (got bool)")
    try:
        return int(v)
    except Exception as e:
        raise ValueError(f"record field '{field}' must be int-coercible (got {type(v).__name__})") from e


@dataclass
class Corporation:
    id: int
    name: str
    founder: str
    created_at: int
    quorum_bps: int
    voting_period: int
    max_members: int
    description: str = ""
    status: str = CorpStatus.ACTIVE
    join_policy: str = JoinPolicy.OPEN
    member_count: int = 0
    treasury_balance: int = 0
    claims_outstanding: int = 0

    def is_active(self) -> bool:
        return self.status == CorpStatus.ACTIVE

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(j: Json) -> "Corporation":
        return Corporation(
            id=_coerce_int(j.get("id"), field="id"),
            name=str(j.get("name") or ""),
            founder=str(j.get("founder") or ""),
            created_at=_coerce_int(j.get("created_at", 0), field="created_at"),
            quorum_bps=_coerce_int(j.get("quorum_bps", 0), field="quorum_bps"),
            voting_period=_coerce_int(j.get("voting_period", 0), field="voting_period"),
            max_members=_coerce_int(j.get("max_members", 0), field="max_members"),
            description=str(j.get("description") or ""),
            status=str(j.get("status") or CorpStatus.ACTIVE),
            join_policy=str(j.get("join_policy") or JoinPolicy.OPEN),
            member_count=_coerce_int(j.get("member_count", 0), field="member_count"),
            treasury_balance=_coerce_int(j.get("treasury_balance", 0), field="treasury_balance"),
            claims_outstanding=_coerce_int(j.get("claims_outstanding", 0), field="claims_outstanding"),
        )


@dataclass
class MemberInfo:
    corp_id: int
    address: str
    role: str
    joined_at: int

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(j: Json) -> "MemberInfo":
        return MemberInfo(
            corp_id=_coerce_int(j.get("corp_id"), field="corp_id"),
            address=str(j.get("address") or ""),
            role=str(j.get("role") or Role.MEMBER),
            joined_at=_coerce_int(j.get("joined_at", 0), field="joined_at"),
        )


@dataclass
class Invite:
    corp_id: int
    invitee: str
    invited_by: str
    created_at: int
    expires_at: int

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(j: Json) -> "Invite":
        return Invite(
            corp_id=_coerce_int(j.get("corp_id"), field="corp_id"),
            invitee=str(j.get("invitee") or ""),
            invited_by=str(j.get("invited_by") or ""),
            created_at=_coerce_int(j.get("created_at", 0), field="created_at"),
            expires_at=_coerce_int(j.get("expires_at", 0), field="expires_at"),
        )


@dataclass
class Proposal:
    id: int
    corp_id: int
    proposer: str
    kind: str
    payload: Json
    deposit: int
    created_at: int
    voting_deadline: int
    member_count_snapshot: int
    title: str = ""
    yes_votes: int = 0
    no_votes: int = 0
    status: str = ProposalStatus.ACTIVE
    executed_at: Optional[int] = None

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(j: Json) -> "Proposal":
        executed_at = j.get("executed_at")
        return Proposal(
            id=_coerce_int(j.get("id"), field="id"),
            corp_id=_coerce_int(j.get("corp_id"), field="corp_id"),
            proposer=str(j.get("proposer") or ""),
            kind=str(j.get("kind") or ""),
            payload=dict(j.get("payload") or {}),
            deposit=_coerce_int(j.get("deposit", 0), field="deposit"),
            created_at=_coerce_int(j.get("created_at", 0), field="created_at"),
            voting_deadline=_coerce_int(j.get("voting_deadline", 0), field="voting_deadline"),
            member_count_snapshot=_coerce_int(j.get("member_count_snapshot", 0), field="member_count_snapshot"),
            title=str(j.get("title") or ""),
            yes_votes=_coerce_int(j.get("yes_votes", 0), field="yes_votes"),
            no_votes=_coerce_int(j.get("no_votes", 0), field="no_votes"),
            status=str(j.get("status") or ProposalStatus.ACTIVE),
            executed_at=None if executed_at is None else _coerce_int(executed_at, field="executed_at"),
        )


@dataclass
class Vote:
    proposal_id: int
    voter: str
    choice: str
    cast_at: int

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(j: Json) -> "Vote":
        return Vote(
            proposal_id=_coerce_int(j.get("proposal_id"), field="proposal_id"),
            voter=str(j.get("voter") or ""),
            choice=str(j.get("choice") or ""),
            cast_at=_coerce_int(j.get("cast_at", 0), field="cast_at"),
        )


@dataclass
class DissolutionClaim:
    corp_id: int
    member: str
    amount: int
    claimed: bool = False

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(j: Json) -> "DissolutionClaim":
        return DissolutionClaim(
            corp_id=_coerce_int(j.get("corp_id"), field="corp_id"),
            member=str(j.get("member") or ""),
            amount=_coerce_int(j.get("amount", 0), field="amount"),
            claimed=bool(j.get("claimed", False)),
        )


@dataclass
class Refund:
    address: str
    amount: int

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(j: Json) -> "Refund":
        return Refund(address=str(j.get("address") or ""), amount=_coerce_int(j.get("amount", 0), field="amount"))


# ---------------------------------------------------------------------------
# Outbound effects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferInstruction:
    to: str
    amount: int
    denom: str
    kind: str = field(default="transfer", init=False)

    def to_json(self) -> Json:
        return {"kind": self.kind, "to": self.to, "amount": int(self.amount), "denom": self.denom}


@dataclass(frozen=True)
class ForwardInstruction:
    target: str
    instruction: Json
    kind: str = field(default="forward", init=False)

    def to_json(self) -> Json:
        return {"kind": self.kind, "target": self.target, "instruction": dict(self.instruction)}


Effect = Union[TransferInstruction, ForwardInstruction]


def effect_from_json(j: Json) -> Effect:
    kind = str(j.get("kind") or "")
    if kind == "transfer":
        return TransferInstruction(to=str(j["to"]), amount=int(j["amount"]), denom=str(j["denom"]))
    if kind == "forward":
        return ForwardInstruction(target=str(j["target"]), instruction=dict(j.get("instruction") or {}))
    raise ValueError(f"unknown effect kind: {kind!r}")


__all__ = [
    "BPS_DENOM",
    "CorpStatus",
    "Corporation",
    "DissolutionClaim",
    "Effect",
    "ForwardInstruction",
    "Invite",
    "JoinPolicy",
    "MemberInfo",
    "Proposal",
    "ProposalKind",
    "ProposalStatus",
    "Refund",
    "Role",
    "TransferInstruction",
    "Vote",
    "VoteChoice",
    "effect_from_json",
]
