"""Data types for the staking operation engine.

All types are frozen dataclasses (immutable). Handlers never move tokens
themselves: they return ``TokenEffect`` values that the imperative shell
applies to the token ledger in order, all-or-nothing.

Units/conventions:
- amounts are unsigned 64-bit token units,
- `*_rate` values are basis points (1/10_000),
- timestamps are signed 64-bit unix seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Mapping, Optional, Tuple, Union

from ...state.addresses import DEFAULT_PROGRAM_ID
from ...state.balances import BalanceView
from ...state.enums import PoolConfigField, PoolStatus, SlashType
from ...state.global_config import GlobalConfig
from ...state.ledger import UserLedger
from ...state.pool import PoolAccumulator, PoolParams
from ..errors import StakingError
from ..oracle import OracleRecord


@unique
class Operation(Enum):
    """One member per engine operation."""
    # Administration
    INIT_GLOBAL_CONFIG = "init_global_config"
    UPDATE_AUTHORITY = "update_authority"
    UPDATE_PROTOCOL_FEE = "update_protocol_fee"
    SET_GLOBAL_EMERGENCY_PAUSE = "set_global_emergency_pause"
    CREATE_STAKING_POOL = "create_staking_pool"
    UPDATE_POOL_CONFIG = "update_pool_config"
    PAUSE_POOL = "pause_pool"
    RESUME_POOL = "resume_pool"
    FUND_REWARD_VAULT = "fund_reward_vault"
    # Oracle
    INIT_ORACLE = "init_oracle"
    UPDATE_ORACLE_PRICE = "update_oracle_price"
    GET_ORACLE_PRICE = "get_oracle_price"
    # User
    INIT_USER_LEDGER = "init_user_ledger"
    STAKE = "stake"
    INCREASE_STAKE = "increase_stake"
    UNSTAKE = "unstake"
    CLAIM_REWARDS = "claim_rewards"
    CLAIM_ALL_REWARDS = "claim_all_rewards"
    EXECUTE_AUTO_COMPOUND = "execute_auto_compound"
    ENABLE_AUTO_COMPOUND = "enable_auto_compound"
    DISABLE_AUTO_COMPOUND = "disable_auto_compound"
    EMERGENCY_WITHDRAW = "emergency_withdraw"


@unique
class EffectKind(Enum):
    TRANSFER = "transfer"
    MINT = "mint"
    BURN = "burn"


@dataclass(frozen=True)
class TokenEffect:
    """One token movement. ``source`` is empty for MINT, ``destination`` for BURN."""

    kind: EffectKind
    asset: str
    amount: int
    source: str = ""
    destination: str = ""


def transfer(asset: str, source: str, destination: str, amount: int) -> TokenEffect:
    return TokenEffect(EffectKind.TRANSFER, asset, amount, source=source, destination=destination)


def mint(asset: str, destination: str, amount: int) -> TokenEffect:
    return TokenEffect(EffectKind.MINT, asset, amount, destination=destination)


def burn(asset: str, source: str, amount: int) -> TokenEffect:
    return TokenEffect(EffectKind.BURN, asset, amount, source=source)


ConfigValue = Union[int, bool, str, PoolStatus, SlashType]


@dataclass(frozen=True)
class OperationParams:
    """Parameters for an operation. Unused fields default to 0/None.

    ``signer`` is the key that authorized the operation; ``user`` is the
    ledger owner the operation targets (defaults to the signer, and differs
    only for keeper-executed auto-compounds).
    """

    operation: Operation
    signer: str = ""
    user: str = ""
    pool_id: int = 0                       # pool-scoped operations
    amount: int = 0                        # stake / increase / unstake (lst) / fund
    frequency_hours: int = 0               # enable_auto_compound
    min_compound_amount: int = 0           # enable_auto_compound
    protocol_fee_rate: int = 0             # init_global_config / update_protocol_fee
    min_stake_amount: int = 0              # init_global_config
    max_pools: int = 0                     # init_global_config
    new_authority: str = ""                # update_authority
    flag: bool = False                     # set_global_emergency_pause
    config_field: Optional[PoolConfigField] = None  # update_pool_config
    config_value: Optional[ConfigValue] = None      # update_pool_config
    pool_params: Optional[PoolParams] = None        # create_staking_pool
    stake_asset: str = ""                  # create_staking_pool
    reward_asset: str = ""                 # create_staking_pool
    update_frequency_seconds: int = 0      # init_oracle
    price: int = 0                         # init_oracle / update_oracle_price

    @property
    def target_user(self) -> str:
        return self.user or self.signer


@dataclass(frozen=True)
class Accounts:
    """The records an operation reads and writes. Absent records are None."""

    global_config: Optional[GlobalConfig] = None
    pool: Optional[PoolAccumulator] = None
    ledger: Optional[UserLedger] = None
    oracle: Optional[OracleRecord] = None


@dataclass(frozen=True)
class Env:
    """Read-only context: clock value, balance view and program id."""

    now: int
    balances: BalanceView
    program_id: str = DEFAULT_PROGRAM_ID

    def balance(self, owner: str, asset: str) -> int:
        return self.balances.get(owner, asset)


@dataclass(frozen=True)
class Outcome:
    """What a handler produced: new records, token effects, observables."""

    accounts: Accounts
    effects: Tuple[TokenEffect, ...] = ()
    outputs: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StepResult:
    """Result of a single engine step."""

    accepted: bool
    accounts: Optional[Accounts] = None
    effects: Tuple[TokenEffect, ...] = ()
    outputs: Mapping[str, Any] = field(default_factory=dict)
    rejection: Optional[str] = None
    error_code: Optional[int] = None
    error: Optional[StakingError] = None
