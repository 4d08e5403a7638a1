"""
Engine configuration and YAML loading.

A configuration file has up to three sections::

    engine:
      program_id: "0x5a5a..."
      chain_id: "lststake-local"
      require_signatures: true
    global:
      protocol_fee_rate: 500
      min_stake_amount: 1
      max_pools: 10
    pools:
      - pool_id: 1
        reward_rate_per_second: 1000000
        slash_type: DOWN_TIME        # name or wire ordinal

Parsing is fail-closed: unknown keys, non-int numerics and booleans given as
numbers are rejected with ``ValueError``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from ..core.errors import InvalidArgument, UnknownDiscriminant
from ..state.addresses import DEFAULT_PROGRAM_ID
from ..state.canonical import ADDRESS_NBYTES, hex_to_bytes
from ..state.enums import SlashType
from ..state.global_config import GlobalConfigParams
from ..state.pool import PoolParams
from ..state.positions import MAX_HISTORY, MAX_POSITIONS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    # Program id every record address is derived under.
    program_id: str = DEFAULT_PROGRAM_ID

    # Signature policy:
    # - If `require_signatures` is True, every instruction must carry a BLS signature by its signer.
    # - If False, the caller is trusted to have authenticated the signer (tests, embedded use).
    require_signatures: bool = True

    # Signature replay protection: bind signatures to a specific deployment.
    chain_id: str = "lststake-local"

    # Bound on raw instruction size (applied before signature verification).
    max_instruction_bytes: int = 1024


@dataclass(frozen=True)
class LoadedConfig:
    engine: EngineConfig
    global_params: Optional[GlobalConfigParams] = None
    pools: Tuple[PoolParams, ...] = ()


def _require_int(value: Any, *, name: str, non_negative: bool = False) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an int")
    if non_negative and value < 0:
        raise ValueError(f"{name} must be non-negative")
    return int(value)


def _require_bool(value: Any, *, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be a bool")
    return value


def _require_str(value: Any, *, name: str, non_empty: bool = True, max_len: int = 256) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    if non_empty and not value:
        raise ValueError(f"{name} must be non-empty")
    if max_len > 0 and len(value) > max_len:
        raise ValueError(f"{name} too large")
    return value


def _require_mapping(value: Any, *, name: str, allowed: frozenset) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{name} must be a mapping")
    unknown = sorted(str(k) for k in value.keys() if k not in allowed)
    if unknown:
        raise ValueError(f"{name}: unknown keys {unknown}")
    return dict(value)


_ENGINE_KEYS = frozenset(
    {"program_id", "chain_id", "require_signatures", "max_instruction_bytes", "max_positions", "max_history"}
)
_GLOBAL_KEYS = frozenset({"protocol_fee_rate", "min_stake_amount", "max_pools"})
_POOL_INT_KEYS = (
    "pool_id",
    "reward_rate_per_second",
    "lock_duration",
    "reward_multiplier",
    "early_withdraw_penalty",
    "slash_percentage",
    "min_evidence",
    "slash_cooldown",
    "max_stake_limit",
    "min_stake_amount",
)
_POOL_BOOL_KEYS = ("lock_enabled", "slashing_enabled")
_POOL_KEYS = frozenset(_POOL_INT_KEYS + _POOL_BOOL_KEYS + ("slash_type",))
_TOP_KEYS = frozenset({"engine", "global", "pools"})


def engine_config_from_dict(data: Any) -> EngineConfig:
    d = _require_mapping(data, name="engine", allowed=_ENGINE_KEYS)
    # Capacities are part of the record layout; a file may restate them but not change them.
    for key, fixed in (("max_positions", MAX_POSITIONS), ("max_history", MAX_HISTORY)):
        if key in d and _require_int(d[key], name=f"engine.{key}") != fixed:
            raise ValueError(f"engine.{key} is fixed at {fixed}")
    kwargs: Dict[str, Any] = {}
    if "program_id" in d:
        program_id = _require_str(d["program_id"], name="engine.program_id")
        hex_to_bytes(program_id, name="engine.program_id", expected_nbytes=ADDRESS_NBYTES)
        kwargs["program_id"] = program_id
    if "chain_id" in d:
        kwargs["chain_id"] = _require_str(d["chain_id"], name="engine.chain_id")
    if "require_signatures" in d:
        kwargs["require_signatures"] = _require_bool(d["require_signatures"], name="engine.require_signatures")
    if "max_instruction_bytes" in d:
        n = _require_int(d["max_instruction_bytes"], name="engine.max_instruction_bytes", non_negative=True)
        if n == 0:
            raise ValueError("engine.max_instruction_bytes must be positive")
        kwargs["max_instruction_bytes"] = n
    return EngineConfig(**kwargs)


def global_params_from_dict(data: Any) -> GlobalConfigParams:
    d = _require_mapping(data, name="global", allowed=_GLOBAL_KEYS)
    missing = sorted(_GLOBAL_KEYS - d.keys())
    if missing:
        raise ValueError(f"global: missing keys {missing}")
    params = GlobalConfigParams(
        protocol_fee_rate=_require_int(d["protocol_fee_rate"], name="global.protocol_fee_rate", non_negative=True),
        min_stake_amount=_require_int(d["min_stake_amount"], name="global.min_stake_amount", non_negative=True),
        max_pools=_require_int(d["max_pools"], name="global.max_pools", non_negative=True),
    )
    try:
        params.validate()
    except InvalidArgument as exc:
        raise ValueError(f"global: {exc.message}") from exc
    return params


def _slash_type(value: Any, *, name: str) -> SlashType:
    if isinstance(value, str):
        try:
            return SlashType[value.upper()]
        except KeyError:
            raise ValueError(f"{name}: unknown slash type {value!r}") from None
    try:
        return SlashType.from_wire(_require_int(value, name=name))
    except UnknownDiscriminant as exc:
        raise ValueError(f"{name}: {exc.message}") from exc


def pool_params_from_dict(data: Any, *, name: str = "pool") -> PoolParams:
    d = _require_mapping(data, name=name, allowed=_POOL_KEYS)
    for key in ("pool_id", "reward_rate_per_second"):
        if key not in d:
            raise ValueError(f"{name}: missing key {key!r}")
    kwargs: Dict[str, Any] = {}
    for key in _POOL_INT_KEYS:
        if key in d:
            kwargs[key] = _require_int(d[key], name=f"{name}.{key}")
    for key in _POOL_BOOL_KEYS:
        if key in d:
            kwargs[key] = _require_bool(d[key], name=f"{name}.{key}")
    if "slash_type" in d:
        kwargs["slash_type"] = _slash_type(d["slash_type"], name=f"{name}.slash_type")
    params = PoolParams(**kwargs)
    try:
        params.validate()
    except InvalidArgument as exc:
        raise ValueError(f"{name}: {exc.message}") from exc
    return params


def config_from_dict(data: Any) -> LoadedConfig:
    if data is None:
        return LoadedConfig(engine=EngineConfig())
    d = _require_mapping(data, name="config", allowed=_TOP_KEYS)
    engine = engine_config_from_dict(d.get("engine") or {})
    global_params = global_params_from_dict(d["global"]) if "global" in d else None
    pools_raw = d.get("pools") or []
    if not isinstance(pools_raw, list):
        raise ValueError("pools must be a list")
    pools = tuple(pool_params_from_dict(p, name=f"pools[{i}]") for i, p in enumerate(pools_raw))
    ids = [p.pool_id for p in pools]
    if len(ids) != len(set(ids)):
        raise ValueError("pools: duplicate pool_id")
    return LoadedConfig(engine=engine, global_params=global_params, pools=pools)


def load_config(path: Union[str, Path]) -> LoadedConfig:
    """Load and validate a YAML configuration file."""
    text = Path(path).read_text(encoding="utf-8")
    loaded = config_from_dict(yaml.safe_load(text))
    logger.info(
        "loaded config from %s: chain_id=%s require_signatures=%s pools=%d",
        path,
        loaded.engine.chain_id,
        loaded.engine.require_signatures,
        len(loaded.pools),
    )
    return loaded
