# src/corpdao/ledger/kv.py
"""Ordered key-value storage used by every ledger table.

Keys are str, values are JSON-compatible objects. Ordering is plain string
ordering of keys; tables encode numeric key parts so that string order and
numeric order agree (see corpdao.ledger.tables).

Backends:
  - MemoryKV: in-process dict, used by tests and by the API when no DB exists
  - SqliteKV: see corpdao.runtime.sqlite_db
  - StagedKV: write buffer over any backend; this is what makes a tx atomic
"""

from __future__ import annotations

import bisect
import copy
from typing import Any, Dict, Iterator, List, Optional, Tuple

Json = Dict[str, Any]

# Sentinel marking a staged delete.
_DELETED = object()


def prefix_end(prefix: str) -> str:
    """Smallest string that sorts after every key starting with `prefix`."""
    return prefix + "￿"


class KVStore:
    """Abstract ordered KV interface."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def put(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def scan(self, start: str, end: str) -> Iterator[Tuple[str, Any]]:
        """Yield (key, value) with start < key < end in ascending order.

        `start` is exclusive so callers can page with the last seen key.
        """
        raise NotImplementedError

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def range(self, prefix: str, *, start_after: str = "", limit: Optional[int] = None) -> List[Tuple[str, Any]]:
        start = start_after if start_after and start_after > prefix else prefix
        out: List[Tuple[str, Any]] = []
        for k, v in self.scan(start, prefix_end(prefix)):
            if not k.startswith(prefix):
                continue
            out.append((k, v))
            if limit is not None and len(out) >= int(limit):
                break
        return out


class MemoryKV(KVStore):
    def __init__(self, data: Optional[Json] = None) -> None:
        self._data: Json = {}
        self._keys: List[str] = []
        for k, v in (data or {}).items():
            self.put(str(k), v)

    def get(self, key: str) -> Optional[Any]:
        v = self._data.get(key)
        return copy.deepcopy(v) if v is not None else None

    def put(self, key: str, value: Any) -> None:
        if key not in self._data:
            bisect.insort(self._keys, key)
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        if key not in self._data:
            return
        self._data.pop(key, None)
        i = bisect.bisect_left(self._keys, key)
        if i < len(self._keys) and self._keys[i] == key:
            self._keys.pop(i)

    def scan(self, start: str, end: str) -> Iterator[Tuple[str, Any]]:
        i = bisect.bisect_right(self._keys, start)
        for k in list(self._keys[i:]):
            if k >= end:
                break
            yield k, copy.deepcopy(self._data[k])

    def dump(self) -> Json:
        return {k: copy.deepcopy(self._data[k]) for k in self._keys}


class StagedKV(KVStore):
    """Buffers writes over a base store until commit().

    Reads see staged writes first. Nothing reaches the base store unless
    commit() is called, so discarding the object discards the tx.
    """

    def __init__(self, base: KVStore) -> None:
        self._base = base
        self._writes: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        if key in self._writes:
            v = self._writes[key]
            return None if v is _DELETED else copy.deepcopy(v)
        return self._base.get(key)

    def put(self, key: str, value: Any) -> None:
        self._writes[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._writes[key] = _DELETED

    def scan(self, start: str, end: str) -> Iterator[Tuple[str, Any]]:
        merged: Dict[str, Any] = {}
        for k, v in self._base.scan(start, end):
            merged[k] = v
        for k, v in self._writes.items():
            if start < k < end:
                merged[k] = v
        for k in sorted(merged):
            v = merged[k]
            if v is _DELETED:
                continue
            yield k, copy.deepcopy(v)

    def pending(self) -> List[Tuple[str, Optional[Any]]]:
        """Staged writes in key order; None marks a delete."""
        out: List[Tuple[str, Optional[Any]]] = []
        for k in sorted(self._writes):
            v = self._writes[k]
            out.append((k, None if v is _DELETED else copy.deepcopy(v)))
        return out

    def commit(self) -> int:
        n = 0
        for k, v in self.pending():
            if v is None:
                self._base.delete(k)
            else:
                self._base.put(k, v)
            n += 1
        self._writes.clear()
        return n

    def discard(self) -> None:
        self._writes.clear()


__all__ = ["KVStore", "MemoryKV", "StagedKV", "prefix_end"]
