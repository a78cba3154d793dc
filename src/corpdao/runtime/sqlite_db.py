# src/corpdao/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from corpdao.ledger.kv import KVStore

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted values.

    Unknown types are not coerced: a non-JSON value reaching storage is a bug
    and must fail loudly.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite manager for the corpdao runtime.

    One DB file holds the ledger KV rows, the tx log and the effect outbox.
    Connections are never shared across threads; every call opens its own.

    SQLite allows only one writer at a time, so BEGIN IMMEDIATE can fail
    transiently with "database is locked". write_tx() retries with bounded
    backoff.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod       -> FULL
          - dev/test   -> NORMAL

        Override with CORPDAO_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("CORPDAO_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("CORPDAO_SQLITE_SYNCHRONOUS") or default).strip().upper()

        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if raw not in allowed:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        p = Path(self.path)
        p.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("CORPDAO_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("CORPDAO_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(1, _env_int("CORPDAO_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        cache_kib = max(0, _env_int("CORPDAO_SQLITE_CACHE_SIZE_KIB", 16 * 1024))
        con.execute(f"PRAGMA cache_size={-cache_kib};")

        busy_ms = max(0, _env_int("CORPDAO_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                ) WITHOUT ROWID;
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS tx_log (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  nonce INTEGER NOT NULL,
                  tx_type TEXT NOT NULL,
                  signer TEXT NOT NULL,
                  ok INTEGER NOT NULL,
                  code TEXT NOT NULL,
                  result_json TEXT NOT NULL,
                  logical_ts INTEGER NOT NULL,
                  received_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_tx_log_signer ON tx_log(signer);")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS outbox (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  tx_seq INTEGER NOT NULL REFERENCES tx_log(seq),
                  effect_json TEXT NOT NULL,
                  status TEXT NOT NULL,
                  error TEXT,
                  created_ms INTEGER NOT NULL,
                  delivered_ms INTEGER
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_outbox_status ON outbox(status);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg) or ("locked" in msg and "database" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise if the lock cannot be acquired within the deadline
        """
        deadline_ms = max(250, _env_int("CORPDAO_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("CORPDAO_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("CORPDAO_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        def _backoff(attempt: int) -> None:
            sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
            time.sleep(sleep_s * (0.5 + random.random()))

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    _backoff(attempt)
                    attempt += 1

            try:
                yield con

                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        _backoff(c_attempt)
                        c_attempt += 1
            except BaseException:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise


class SqliteKV(KVStore):
    """Ordered KV over the `kv` table.

    With `con` the store works inside that connection's open transaction
    (this is how the executor makes state writes and the outbox row commit
    together). Without it every call opens a short-lived connection.
    """

    def __init__(self, db: SqliteDB, *, con: Optional[sqlite3.Connection] = None) -> None:
        self._db = db
        self._con = con

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        if self._con is not None:
            yield self._con
            return
        with self._db.connection() as con:
            yield con

    def get(self, key: str) -> Optional[Any]:
        with self._conn() as con:
            row = con.execute("SELECT value FROM kv WHERE key=?;", (key,)).fetchone()
        if row is None:
            return None
        return json.loads(str(row["value"]))

    def put(self, key: str, value: Any) -> None:
        payload = _canon_json(value)
        if self._con is not None:
            self._put(self._con, key, payload)
            return
        with self._db.write_tx() as con:
            self._put(con, key, payload)

    @staticmethod
    def _put(con: sqlite3.Connection, key: str, payload: str) -> None:
        con.execute(
            "INSERT INTO kv(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, payload),
        )

    def delete(self, key: str) -> None:
        if self._con is not None:
            self._con.execute("DELETE FROM kv WHERE key=?;", (key,))
            return
        with self._db.write_tx() as con:
            con.execute("DELETE FROM kv WHERE key=?;", (key,))

    def scan(self, start: str, end: str) -> Iterator[Tuple[str, Any]]:
        with self._conn() as con:
            rows = con.execute(
                "SELECT key, value FROM kv WHERE key > ? AND key < ? ORDER BY key ASC;",
                (start, end),
            ).fetchall()
        for r in rows:
            yield str(r["key"]), json.loads(str(r["value"]))

    def count(self) -> int:
        with self._conn() as con:
            row = con.execute("SELECT COUNT(*) AS n FROM kv;").fetchone()
        return int(row["n"]) if row is not None else 0


class SqliteTxLog:
    """Append-only record of every processed tx, and the effect outbox."""

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db

    @staticmethod
    def append(
        con: sqlite3.Connection,
        *,
        env: Json,
        ok: bool,
        code: str,
        result: Json,
    ) -> int:
        cur = con.execute(
            """
            INSERT INTO tx_log(nonce, tx_type, signer, ok, code, result_json, logical_ts, received_ms)
            VALUES(?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                int(env.get("nonce") or 0),
                str(env.get("tx_type") or ""),
                str(env.get("signer") or ""),
                1 if ok else 0,
                str(code),
                _canon_json(result),
                int(env.get("timestamp") or 0),
                _now_ms(),
            ),
        )
        return int(cur.lastrowid)

    @staticmethod
    def enqueue_effect(con: sqlite3.Connection, *, tx_seq: int, effect: Json) -> int:
        cur = con.execute(
            "INSERT INTO outbox(tx_seq, effect_json, status, created_ms) VALUES(?, ?, 'pending', ?);",
            (int(tx_seq), _canon_json(effect), _now_ms()),
        )
        return int(cur.lastrowid)

    def mark_delivered(self, outbox_id: int) -> None:
        with self._db.write_tx() as con:
            con.execute(
                "UPDATE outbox SET status='delivered', delivered_ms=?, error=NULL WHERE id=?;",
                (_now_ms(), int(outbox_id)),
            )

    def mark_failed(self, outbox_id: int, error: str) -> None:
        with self._db.write_tx() as con:
            con.execute("UPDATE outbox SET status='failed', error=? WHERE id=?;", (str(error)[:512], int(outbox_id)))

    def pending_effects(self, *, limit: int = 100) -> List[Tuple[int, Json]]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT id, effect_json FROM outbox WHERE status != 'delivered' ORDER BY id ASC LIMIT ?;",
                (int(limit),),
            ).fetchall()
        return [(int(r["id"]), json.loads(str(r["effect_json"]))) for r in rows]

    def outbox(self, *, limit: int = 100) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT id, tx_seq, effect_json, status, error FROM outbox ORDER BY id ASC LIMIT ?;",
                (int(limit),),
            ).fetchall()
        return [
            {
                "id": int(r["id"]),
                "tx_seq": int(r["tx_seq"]),
                "effect": json.loads(str(r["effect_json"])),
                "status": str(r["status"]),
                "error": r["error"],
            }
            for r in rows
        ]

    def recent(self, *, limit: int = 50) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT seq, nonce, tx_type, signer, ok, code, result_json FROM tx_log ORDER BY seq DESC LIMIT ?;",
                (int(limit),),
            ).fetchall()
        return [
            {
                "seq": int(r["seq"]),
                "nonce": int(r["nonce"]),
                "tx_type": str(r["tx_type"]),
                "signer": str(r["signer"]),
                "ok": bool(r["ok"]),
                "code": str(r["code"]),
                "result": json.loads(str(r["result_json"])),
            }
            for r in rows
        ]


__all__ = ["SqliteDB", "SqliteKV", "SqliteTxLog"]
