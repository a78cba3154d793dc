# src/corpdao/runtime/bank.py
"""Boundary to the asset-transfer collaborator.

The engine never moves value itself. It hands each committed effect to a
Bank, and asks the Bank (read-only) how much it currently custodies.
MemoryBank is the in-process implementation used by tests and dev mode.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List

from corpdao.ledger.types import Effect, ForwardInstruction, TransferInstruction

Json = Dict[str, Any]


class BankError(RuntimeError):
    pass


class Bank:
    def custodied_balance(self, denom: str) -> int:
        raise NotImplementedError

    def receive(self, sender: str, amount: int, denom: str) -> None:
        """Record value attached to an accepted tx entering custody."""
        raise NotImplementedError

    def deliver(self, effect: Effect) -> None:
        raise NotImplementedError


class MemoryBank(Bank):
    def __init__(self, *, denom: str = "ucredit") -> None:
        self.denom = denom
        self._lock = threading.Lock()
        self._custody: Dict[str, int] = {}
        self.balances: Dict[str, int] = {}
        self.forwarded: List[Json] = []

    def custodied_balance(self, denom: str) -> int:
        with self._lock:
            return int(self._custody.get(denom, 0))

    def receive(self, sender: str, amount: int, denom: str) -> None:
        if int(amount) <= 0:
            return
        with self._lock:
            self._custody[denom] = int(self._custody.get(denom, 0)) + int(amount)

    def seed_custody(self, amount: int, denom: str) -> None:
        """Funds sent to custody outside any tx (surplus)."""
        self.receive("external", amount, denom)

    def deliver(self, effect: Effect) -> None:
        if isinstance(effect, TransferInstruction):
            with self._lock:
                have = int(self._custody.get(effect.denom, 0))
                if int(effect.amount) > have:
                    raise BankError(f"custody short: have={have} need={effect.amount} denom={effect.denom}")
                self._custody[effect.denom] = have - int(effect.amount)
                self.balances[effect.to] = int(self.balances.get(effect.to, 0)) + int(effect.amount)
            return
        if isinstance(effect, ForwardInstruction):
            with self._lock:
                self.forwarded.append(effect.to_json())
            return
        raise BankError(f"unknown effect type: {type(effect).__name__}")


__all__ = ["Bank", "BankError", "MemoryBank"]
