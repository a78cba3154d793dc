# src/corpdao/runtime/dao_config.py
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]

DAY = 86_400

# Hard bounds on governance params. Config may narrow the voting period range
# but never widen it past these.
QUORUM_BPS_MIN = 1
QUORUM_BPS_MAX = 10_000
VOTING_PERIOD_FLOOR = 3_600
VOTING_PERIOD_CEIL = 2_592_000


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class DaoConfig:
    """Governance parameters, managed by the owner through DAO_CONFIG_UPDATE."""

    owner: str
    denom: str
    creation_fee: int
    proposal_deposit: int
    default_max_members: int
    default_quorum_bps: int
    default_voting_period: int
    min_voting_period: int
    max_voting_period: int
    spend_cap_bps: int
    dissolution_bps: int
    invite_ttl: int
    execution_window: int

    def to_json(self) -> Json:
        return asdict(self)

    @staticmethod
    def from_json(raw: Json, *, base: Optional["DaoConfig"] = None) -> "DaoConfig":
        d = base or default_dao_config()
        return DaoConfig(
            owner=_as_str(raw.get("owner"), d.owner),
            denom=_as_str(raw.get("denom"), d.denom),
            creation_fee=_as_int(raw.get("creation_fee"), d.creation_fee),
            proposal_deposit=_as_int(raw.get("proposal_deposit"), d.proposal_deposit),
            default_max_members=_as_int(raw.get("default_max_members"), d.default_max_members),
            default_quorum_bps=_as_int(raw.get("default_quorum_bps"), d.default_quorum_bps),
            default_voting_period=_as_int(raw.get("default_voting_period"), d.default_voting_period),
            min_voting_period=_as_int(raw.get("min_voting_period"), d.min_voting_period),
            max_voting_period=_as_int(raw.get("max_voting_period"), d.max_voting_period),
            spend_cap_bps=_as_int(raw.get("spend_cap_bps"), d.spend_cap_bps),
            dissolution_bps=_as_int(raw.get("dissolution_bps"), d.dissolution_bps),
            invite_ttl=_as_int(raw.get("invite_ttl"), d.invite_ttl),
            execution_window=_as_int(raw.get("execution_window"), d.execution_window),
        )


DAO_CONFIG_FIELDS = frozenset(f.name for f in fields(DaoConfig))


def default_dao_config() -> DaoConfig:
    return DaoConfig(
        owner="corpdao-admin",
        denom="ucredit",
        creation_fee=1_000,
        proposal_deposit=100,
        default_max_members=50,
        default_quorum_bps=5_100,
        default_voting_period=3 * DAY,
        min_voting_period=VOTING_PERIOD_FLOOR,
        max_voting_period=VOTING_PERIOD_CEIL,
        spend_cap_bps=2_500,
        dissolution_bps=7_500,
        invite_ttl=7 * DAY,
        execution_window=30 * DAY,
    )


def validate_quorum_bps(bps: int) -> None:
    if int(bps) < QUORUM_BPS_MIN or int(bps) > QUORUM_BPS_MAX:
        raise ValueError(f"quorum_bps must be {QUORUM_BPS_MIN}..{QUORUM_BPS_MAX}; got: {bps}")


def validate_voting_period(period: int, cfg: DaoConfig) -> None:
    if int(period) < int(cfg.min_voting_period) or int(period) > int(cfg.max_voting_period):
        raise ValueError(
            f"voting_period must be {cfg.min_voting_period}..{cfg.max_voting_period}; got: {period}"
        )


def validate_dao_config(cfg: DaoConfig) -> None:
    """Fail-fast validation for governance params."""

    if not isinstance(cfg.owner, str) or not cfg.owner.strip():
        raise ValueError("owner must be a non-empty string")
    if not isinstance(cfg.denom, str) or not cfg.denom.strip():
        raise ValueError("denom must be a non-empty string")

    for name in ("creation_fee", "proposal_deposit"):
        if int(getattr(cfg, name)) < 0:
            raise ValueError(f"{name} must be >= 0; got: {getattr(cfg, name)}")

    if int(cfg.default_max_members) < 1:
        raise ValueError(f"default_max_members must be >= 1; got: {cfg.default_max_members}")

    if int(cfg.min_voting_period) < VOTING_PERIOD_FLOOR or int(cfg.max_voting_period) > VOTING_PERIOD_CEIL:
        raise ValueError(
            f"voting period bounds must lie within {VOTING_PERIOD_FLOOR}..{VOTING_PERIOD_CEIL}; "
            f"got: {cfg.min_voting_period}..{cfg.max_voting_period}"
        )
    if int(cfg.min_voting_period) > int(cfg.max_voting_period):
        raise ValueError("min_voting_period must be <= max_voting_period")

    validate_quorum_bps(cfg.default_quorum_bps)
    validate_voting_period(cfg.default_voting_period, cfg)

    if int(cfg.spend_cap_bps) < 1 or int(cfg.spend_cap_bps) > QUORUM_BPS_MAX:
        raise ValueError(f"spend_cap_bps must be 1..{QUORUM_BPS_MAX}; got: {cfg.spend_cap_bps}")
    if int(cfg.dissolution_bps) < 1 or int(cfg.dissolution_bps) > QUORUM_BPS_MAX:
        raise ValueError(f"dissolution_bps must be 1..{QUORUM_BPS_MAX}; got: {cfg.dissolution_bps}")

    if int(cfg.invite_ttl) <= 0:
        raise ValueError(f"invite_ttl must be > 0; got: {cfg.invite_ttl}")
    if int(cfg.execution_window) <= 0:
        raise ValueError(f"execution_window must be > 0; got: {cfg.execution_window}")


def updated_dao_config(cfg: DaoConfig, updates: Json) -> DaoConfig:
    """Return cfg with `updates` applied, validated as a whole.

    Unknown keys raise KeyError; an invalid result raises ValueError. Either
    way nothing is applied.
    """
    unknown = sorted(set(updates) - DAO_CONFIG_FIELDS)
    if unknown:
        raise KeyError(",".join(unknown))
    clean: Json = {}
    for k, v in updates.items():
        if v is None:
            continue
        cur = getattr(cfg, k)
        clean[k] = str(v) if isinstance(cur, str) else int(v)
    new = replace(cfg, **clean)
    validate_dao_config(new)
    return new


# ---------------------------------------------------------------------------
# Node (process) config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NodeConfig:
    mode: str  # "dev" | "test" | "prod"
    db_path: str
    api_host: str
    api_port: int
    log_level: str


_ALLOWED_MODES = {"dev", "test", "prod"}


def validate_node_config(cfg: NodeConfig) -> None:
    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if str(cfg.log_level or "").strip().upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ValueError(f"log_level is not a logging level name: {cfg.log_level!r}")


def default_node_config() -> NodeConfig:
    return NodeConfig(
        mode="prod",
        db_path="./data/corpdao.db",
        api_host="127.0.0.1",
        api_port=8000,
        log_level="INFO",
    )


@dataclass(frozen=True)
class FullConfig:
    dao: DaoConfig
    node: NodeConfig


def read_config_file(path: str) -> FullConfig:
    """Read {"dao": {...}, "node": {...}}; missing keys fall back to defaults."""
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("config must be a JSON object")

    dao_raw = raw.get("dao") if isinstance(raw.get("dao"), dict) else {}
    node_raw = raw.get("node") if isinstance(raw.get("node"), dict) else {}

    dao = DaoConfig.from_json(dao_raw)
    dn = default_node_config()
    node = NodeConfig(
        mode=_as_str(node_raw.get("mode"), dn.mode).strip().lower(),
        db_path=_as_str(node_raw.get("db_path"), dn.db_path),
        api_host=_as_str(node_raw.get("api_host"), dn.api_host),
        api_port=_as_int(node_raw.get("api_port"), dn.api_port),
        log_level=_as_str(node_raw.get("log_level"), dn.log_level).upper(),
    )

    validate_dao_config(dao)
    validate_node_config(node)
    return FullConfig(dao=dao, node=node)


def load_config(*, config_path: Optional[str] = None) -> FullConfig:
    p = config_path or os.environ.get("CORPDAO_CONFIG_PATH")
    if p:
        return read_config_file(p)

    dao = default_dao_config()
    node = default_node_config()
    validate_dao_config(dao)
    validate_node_config(node)
    return FullConfig(dao=dao, node=node)


def apply_node_config_to_env(cfg: NodeConfig) -> None:
    """Export node settings as CORPDAO_* env. Variables already set win."""
    validate_node_config(cfg)
    os.environ.setdefault("CORPDAO_MODE", (cfg.mode or "prod").strip().lower())
    os.environ.setdefault("CORPDAO_DB_PATH", cfg.db_path)
    os.environ.setdefault("CORPDAO_LOG_LEVEL", cfg.log_level)


__all__ = [
    "DAO_CONFIG_FIELDS",
    "DaoConfig",
    "FullConfig",
    "NodeConfig",
    "QUORUM_BPS_MAX",
    "QUORUM_BPS_MIN",
    "apply_node_config_to_env",
    "default_dao_config",
    "default_node_config",
    "load_config",
    "read_config_file",
    "updated_dao_config",
    "validate_dao_config",
    "validate_node_config",
    "validate_quorum_bps",
    "validate_voting_period",
]
