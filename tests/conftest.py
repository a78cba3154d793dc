from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

# Ensure local "src/" takes precedence over any globally-installed "corpdao" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from corpdao.runtime import metrics  # noqa: E402
from corpdao.runtime.bank import MemoryBank  # noqa: E402
from corpdao.runtime.executor import DaoExecutor  # noqa: E402

T0 = 1_700_000_000
DAY = 86_400
OWNER = "corpdao-admin"


class Dao:
    """Drives a DaoExecutor with auto-incrementing nonces and a settable clock."""

    def __init__(self, ex: DaoExecutor) -> None:
        self.ex = ex
        self.now = T0
        self._nonce = 0

    @property
    def st(self):
        return self.ex.state()

    @property
    def cfg(self):
        return self.ex.dao_config()

    @property
    def bank(self) -> MemoryBank:
        return self.ex.bank  # type: ignore[return-value]

    def submit(
        self,
        tx_type: str,
        signer: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        funds: int = 0,
        at: Optional[int] = None,
    ):
        self._nonce += 1
        return self.ex.submit(
            {
                "tx_type": tx_type,
                "signer": signer,
                "nonce": self._nonce,
                "payload": payload or {},
                "funds": int(funds),
                "timestamp": int(self.now if at is None else at),
            }
        )

    def ok(self, tx_type: str, signer: str, payload: Optional[Dict[str, Any]] = None, **kw: Any) -> Dict[str, Any]:
        res = self.submit(tx_type, signer, payload, **kw)
        assert res.ok, (res.code, res.reason, res.details)
        return res.result

    def err(self, tx_type: str, signer: str, payload: Optional[Dict[str, Any]] = None, **kw: Any):
        res = self.submit(tx_type, signer, payload, **kw)
        assert not res.ok, res.result
        return res

    # ---- common flows ----

    def create_corp(self, founder: str = "alice", *, name: str = "Acme", join_policy: str = "open", at=None) -> int:
        out = self.ok(
            "CORP_CREATE",
            founder,
            {"name": name, "join_policy": join_policy},
            funds=self.cfg.creation_fee,
            at=at,
        )
        return int(out["corp_id"])

    def join(self, corp_id: int, *addrs: str) -> None:
        for i, a in enumerate(addrs):
            self.ok("CORP_JOIN", a, {"corp_id": corp_id}, at=self.now + i)

    def propose(self, corp_id: int, proposer: str, action: Dict[str, Any], *, at=None) -> int:
        out = self.ok(
            "CORP_PROPOSAL_CREATE",
            proposer,
            {"corp_id": corp_id, "title": action["kind"], "action": action},
            funds=self.cfg.proposal_deposit,
            at=at,
        )
        return int(out["proposal_id"])

    def vote(self, proposal_id: int, voter: str, choice: str = "yes", *, at=None) -> Dict[str, Any]:
        return self.ok("CORP_VOTE", voter, {"proposal_id": proposal_id, "choice": choice}, at=at)

    def execute(self, proposal_id: int, *, at: int, signer: str = "keeper"):
        return self.submit("CORP_PROPOSAL_EXECUTE", signer, {"proposal_id": proposal_id}, at=at)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def dao() -> Dao:
    return Dao(DaoExecutor(bank=MemoryBank()))


@pytest.fixture
def make_dao():
    def _make(**kw: Any) -> Dao:
        kw.setdefault("bank", MemoryBank())
        return Dao(DaoExecutor(**kw))

    return _make
