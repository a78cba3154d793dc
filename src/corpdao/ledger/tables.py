"""corpdao.ledger.tables

Typed tables over the ordered KV store, and DaoState, the view every handler
reads and writes through.

Physical layout (one row per key, values are JSON):

    cfg                                  DaoConfig governance params
    owner/pending                        pending owner address
    seq/corp, seq/proposal               last issued ids
    custody/tracked                      funds accounted to some ledger
    corp/<corp_id>                       Corporation
    member/<corp_id>/<address>           MemberInfo
    invite/<corp_id>/<invitee>           Invite
    proposal/<proposal_id>               Proposal
    corp_proposal/<corp_id>/<proposal_id>  secondary index (value: 1)
    vote/<proposal_id>/<voter>           Vote
    claim/<corp_id>/<member>             DissolutionClaim
    refund/<address>                     Refund

Integer key parts are zero padded so string order matches numeric order.
String key parts are percent-encoded so a '/' inside an address cannot
escape its prefix.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union
from urllib.parse import quote

from corpdao.ledger.kv import KVStore
from corpdao.ledger.types import (
    Corporation,
    DissolutionClaim,
    Invite,
    MemberInfo,
    Proposal,
    Refund,
    Vote,
)

Json = Dict[str, Any]
KeyPart = Union[int, str]
T = TypeVar("T")

_INT_WIDTH = 20


def encode_part(p: KeyPart) -> str:
    if isinstance(p, bool):
        raise TypeError("bool is not a valid key part")
    if isinstance(p, int):
        if p < 0:
            raise ValueError("negative int key part")
        return str(p).zfill(_INT_WIDTH)
    return quote(str(p), safe="")


def decode_int_part(s: str) -> int:
    return int(s)


class Item(Generic[T]):
    """A single-row table."""

    def __init__(self, key: str, load: Callable[[Any], T], dump: Callable[[T], Any]) -> None:
        self.key = key
        self._load = load
        self._dump = dump

    def may_load(self, kv: KVStore) -> Optional[T]:
        raw = kv.get(self.key)
        return None if raw is None else self._load(raw)

    def save(self, kv: KVStore, value: T) -> None:
        kv.put(self.key, self._dump(value))

    def remove(self, kv: KVStore) -> None:
        kv.delete(self.key)


class Map(Generic[T]):
    """A table keyed by a tuple of key parts under one namespace."""

    def __init__(self, namespace: str, load: Callable[[Any], T], dump: Callable[[T], Any]) -> None:
        self.namespace = namespace
        self._load = load
        self._dump = dump

    def key(self, *parts: KeyPart) -> str:
        return "/".join([self.namespace] + [encode_part(p) for p in parts])

    def prefix(self, *parts: KeyPart) -> str:
        return self.key(*parts) + "/"

    def may_load(self, kv: KVStore, *parts: KeyPart) -> Optional[T]:
        raw = kv.get(self.key(*parts))
        return None if raw is None else self._load(raw)

    def save(self, kv: KVStore, value: T, *parts: KeyPart) -> None:
        kv.put(self.key(*parts), self._dump(value))

    def remove(self, kv: KVStore, *parts: KeyPart) -> None:
        kv.delete(self.key(*parts))

    def range(
        self,
        kv: KVStore,
        *prefix_parts: KeyPart,
        start_after: Optional[KeyPart] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, T]]:
        """Rows under prefix_parts in key order, as (last key segment, value)."""
        prefix = self.prefix(*prefix_parts) if prefix_parts else self.namespace + "/"
        after = prefix + encode_part(start_after) if start_after is not None else ""
        out: List[Tuple[str, T]] = []
        for k, v in kv.range(prefix, start_after=after, limit=limit):
            out.append((k[len(prefix):], self._load(v)))
        return out


def _as_int(v: Any) -> int:
    return int(v or 0)


CONFIG: Item[Json] = Item("cfg", dict, dict)
PENDING_OWNER: Item[str] = Item("owner/pending", str, str)
CORP_SEQ: Item[int] = Item("seq/corp", _as_int, int)
PROPOSAL_SEQ: Item[int] = Item("seq/proposal", _as_int, int)
TRACKED_FUNDS: Item[int] = Item("custody/tracked", _as_int, int)

CORPORATIONS: Map[Corporation] = Map("corp", Corporation.from_json, Corporation.to_json)
MEMBERS: Map[MemberInfo] = Map("member", MemberInfo.from_json, MemberInfo.to_json)
INVITES: Map[Invite] = Map("invite", Invite.from_json, Invite.to_json)
PROPOSALS: Map[Proposal] = Map("proposal", Proposal.from_json, Proposal.to_json)
CORP_PROPOSALS: Map[int] = Map("corp_proposal", _as_int, int)
VOTES: Map[Vote] = Map("vote", Vote.from_json, Vote.to_json)
CLAIMS: Map[DissolutionClaim] = Map("claim", DissolutionClaim.from_json, DissolutionClaim.to_json)
REFUNDS: Map[Refund] = Map("refund", Refund.from_json, Refund.to_json)


class DaoState:
    """Typed access to every table through one KV store.

    Handlers receive a DaoState built over a StagedKV, so every save() here is
    buffered until the surrounding apply commits.
    """

    def __init__(self, kv: KVStore, *, bank: Any = None) -> None:
        self.kv = kv
        # Read-only view of the asset collaborator (custodied_balance()).
        self.bank = bank

    # ---- config / owner ----

    def config_json(self) -> Json:
        return CONFIG.may_load(self.kv) or {}

    def save_config_json(self, cfg: Json) -> None:
        CONFIG.save(self.kv, cfg)

    def pending_owner(self) -> Optional[str]:
        v = PENDING_OWNER.may_load(self.kv)
        return v or None

    def set_pending_owner(self, addr: Optional[str]) -> None:
        if addr:
            PENDING_OWNER.save(self.kv, addr)
        else:
            PENDING_OWNER.remove(self.kv)

    # ---- sequences ----

    def next_corp_id(self) -> int:
        n = (CORP_SEQ.may_load(self.kv) or 0) + 1
        CORP_SEQ.save(self.kv, n)
        return n

    def next_proposal_id(self) -> int:
        n = (PROPOSAL_SEQ.may_load(self.kv) or 0) + 1
        PROPOSAL_SEQ.save(self.kv, n)
        return n

    # ---- custody accounting ----

    def tracked_funds(self) -> int:
        return TRACKED_FUNDS.may_load(self.kv) or 0

    def track_inflow(self, amount: int) -> None:
        TRACKED_FUNDS.save(self.kv, self.tracked_funds() + int(amount))

    def track_outflow(self, amount: int) -> None:
        cur = self.tracked_funds()
        if int(amount) > cur:
            raise ValueError("tracked funds would go negative")
        TRACKED_FUNDS.save(self.kv, cur - int(amount))

    # ---- corporations ----

    def corp(self, corp_id: int) -> Optional[Corporation]:
        return CORPORATIONS.may_load(self.kv, int(corp_id))

    def save_corp(self, c: Corporation) -> None:
        CORPORATIONS.save(self.kv, c, int(c.id))

    def list_corps(self, *, start_after: Optional[int] = None, limit: Optional[int] = None) -> List[Corporation]:
        return [c for _, c in CORPORATIONS.range(self.kv, start_after=start_after, limit=limit)]

    # ---- members ----

    def member(self, corp_id: int, address: str) -> Optional[MemberInfo]:
        return MEMBERS.may_load(self.kv, int(corp_id), address)

    def save_member(self, m: MemberInfo) -> None:
        MEMBERS.save(self.kv, m, int(m.corp_id), m.address)

    def remove_member(self, corp_id: int, address: str) -> None:
        MEMBERS.remove(self.kv, int(corp_id), address)

    def list_members(
        self, corp_id: int, *, start_after: Optional[str] = None, limit: Optional[int] = None
    ) -> List[MemberInfo]:
        return [m for _, m in MEMBERS.range(self.kv, int(corp_id), start_after=start_after, limit=limit)]

    # ---- invites ----

    def invite(self, corp_id: int, invitee: str) -> Optional[Invite]:
        return INVITES.may_load(self.kv, int(corp_id), invitee)

    def save_invite(self, inv: Invite) -> None:
        INVITES.save(self.kv, inv, int(inv.corp_id), inv.invitee)

    def remove_invite(self, corp_id: int, invitee: str) -> None:
        INVITES.remove(self.kv, int(corp_id), invitee)

    # ---- proposals ----

    def proposal(self, proposal_id: int) -> Optional[Proposal]:
        return PROPOSALS.may_load(self.kv, int(proposal_id))

    def save_proposal(self, p: Proposal) -> None:
        PROPOSALS.save(self.kv, p, int(p.id))
        CORP_PROPOSALS.save(self.kv, 1, int(p.corp_id), int(p.id))

    def list_proposal_ids(
        self, corp_id: int, *, start_after: Optional[int] = None, limit: Optional[int] = None
    ) -> List[int]:
        rows = CORP_PROPOSALS.range(self.kv, int(corp_id), start_after=start_after, limit=limit)
        return [decode_int_part(k) for k, _ in rows]

    # ---- votes ----

    def vote(self, proposal_id: int, voter: str) -> Optional[Vote]:
        return VOTES.may_load(self.kv, int(proposal_id), voter)

    def save_vote(self, v: Vote) -> None:
        VOTES.save(self.kv, v, int(v.proposal_id), v.voter)

    # ---- dissolution claims ----

    def claim(self, corp_id: int, member: str) -> Optional[DissolutionClaim]:
        return CLAIMS.may_load(self.kv, int(corp_id), member)

    def save_claim(self, c: DissolutionClaim) -> None:
        CLAIMS.save(self.kv, c, int(c.corp_id), c.member)

    # ---- refunds ----

    def refund(self, address: str) -> Optional[Refund]:
        return REFUNDS.may_load(self.kv, address)

    def credit_refund(self, address: str, amount: int) -> Refund:
        cur = self.refund(address)
        r = Refund(address=address, amount=(cur.amount if cur else 0) + int(amount))
        REFUNDS.save(self.kv, r, address)
        return r

    def remove_refund(self, address: str) -> None:
        REFUNDS.remove(self.kv, address)


__all__ = [
    "CLAIMS",
    "CONFIG",
    "CORPORATIONS",
    "CORP_PROPOSALS",
    "DaoState",
    "INVITES",
    "Item",
    "MEMBERS",
    "Map",
    "PROPOSALS",
    "REFUNDS",
    "VOTES",
    "decode_int_part",
    "encode_part",
]
