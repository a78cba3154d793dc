# src/corpdao/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module owns a subset of tx types and exposes apply_<domain>(st, env),
which returns a result dict, or None when the tx type belongs elsewhere.
Handlers read and write only through the DaoState they are given.
"""

from __future__ import annotations

__all__ = [
    "admin",
    "dissolution",
    "execution",
    "governance",
    "membership",
    "registry",
    "treasury",
]
