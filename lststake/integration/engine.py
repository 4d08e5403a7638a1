"""
Staking execution adapter.

This is an imperative-shell wrapper around the functional core:
- Decodes the instruction bytes and verifies the signer's BLS signature (optional).
- Loads the referenced records from their fixed-size encodings and re-derives
  every address before trusting a record.
- Runs the pure `step()` and applies its token effects to a staged copy of the
  token ledger.
- Commits records and balances together, only when every stage succeeded.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from ..core.errors import (
    AddressMismatch,
    InvalidInstructionData,
    InvalidArgument,
    MissingSignature,
    StakingError,
)
from ..core.oracle import OracleRecord
from ..core.staking import Accounts, EffectKind, Env, Operation, OperationParams, TokenEffect, step
from ..state.addresses import (
    derive_address,
    global_config_seeds,
    oracle_seeds,
    reward_vault_seeds,
    stake_vault_seeds,
    staking_pool_seeds,
    user_ledger_seeds,
    verify_address,
)
from ..state.balances import TokenLedger
from ..state.canonical import ADDRESS_NBYTES, hex_to_bytes, is_pubkey_hex
from ..state.global_config import GlobalConfig
from ..state.layout import (
    decode_global_config,
    decode_oracle,
    decode_pool,
    decode_user_ledger,
    encode_global_config,
    encode_oracle,
    encode_pool,
    encode_user_ledger,
)
from ..state.ledger import UserLedger
from ..state.pool import PoolAccumulator
from .config import EngineConfig, LoadedConfig
from .instructions import bind_signer, decode_instruction, encode_instruction
from .signing import verify_instruction_signature

logger = logging.getLogger(__name__)

Instruction = Union[bytes, bytearray, OperationParams]


@dataclass(frozen=True)
class AccountRefs:
    """Addresses of the records an instruction reads or writes ("" = not supplied).

    ``stake_asset``/``reward_asset`` are only read by pool creation.
    """

    global_config: str = ""
    pool: str = ""
    user_ledger: str = ""
    oracle: str = ""
    stake_asset: str = ""
    reward_asset: str = ""

    def normalized(self) -> "AccountRefs":
        """Lower-case every supplied address; malformed hex raises ``InvalidArgument``."""
        out = {}
        for name in ("global_config", "pool", "user_ledger", "oracle", "stake_asset", "reward_asset"):
            value = getattr(self, name)
            if value:
                try:
                    hex_to_bytes(value, name=name, expected_nbytes=ADDRESS_NBYTES)
                except (TypeError, ValueError) as exc:
                    raise InvalidArgument(str(exc)) from exc
                value = value.lower()
            out[name] = value
        return AccountRefs(**out)


@dataclass(frozen=True)
class ExecutionResult:
    ok: bool
    operation: Optional[Operation] = None
    outputs: Mapping[str, Any] = field(default_factory=dict)
    effects: Tuple[TokenEffect, ...] = ()
    error: Optional[str] = None
    error_code: Optional[int] = None


def apply_effect(tokens: TokenLedger, effect: TokenEffect) -> None:
    if effect.kind is EffectKind.TRANSFER:
        tokens.transfer(effect.asset, effect.source, effect.destination, effect.amount)
    elif effect.kind is EffectKind.MINT:
        tokens.mint(effect.asset, effect.destination, effect.amount)
    elif effect.kind is EffectKind.BURN:
        tokens.burn(effect.asset, effect.source, effect.amount)
    else:  # pragma: no cover - enum is exhaustive
        raise InvalidArgument(f"unknown effect kind: {effect.kind}")


def ledger_address(ledger: UserLedger, program_id: str) -> str:
    return derive_address(user_ledger_seeds(ledger.owner, ledger.global_config), program_id)[0]


class StakingEngine:
    """Owns the encoded records and the token ledger; executes one instruction at a time."""

    def __init__(
        self,
        config: EngineConfig = EngineConfig(),
        tokens: Optional[TokenLedger] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = config
        self._tokens = tokens if tokens is not None else TokenLedger()
        self._clock = clock if clock is not None else (lambda: int(time.time()))
        self._records: Dict[str, bytes] = {}

    # -- read access ---------------------------------------------------------------

    @property
    def tokens(self) -> TokenLedger:
        return self._tokens

    def record_bytes(self, address: str) -> Optional[bytes]:
        return self._records.get(address)

    def global_config(self, address: str) -> Optional[GlobalConfig]:
        data = self._records.get(address)
        return decode_global_config(data) if data is not None else None

    def pool(self, address: str) -> Optional[PoolAccumulator]:
        data = self._records.get(address)
        return decode_pool(data) if data is not None else None

    def user_ledger(self, address: str) -> Optional[UserLedger]:
        data = self._records.get(address)
        return decode_user_ledger(data) if data is not None else None

    def oracle(self, address: str) -> Optional[OracleRecord]:
        data = self._records.get(address)
        return decode_oracle(data) if data is not None else None

    def global_config_address(self, authority: str) -> str:
        return derive_address(global_config_seeds(authority), self.config.program_id)[0]

    def pool_address(self, creator: str, pool_id: int) -> str:
        return derive_address(staking_pool_seeds(creator, pool_id), self.config.program_id)[0]

    def user_ledger_address(self, user: str, global_config: str) -> str:
        return derive_address(user_ledger_seeds(user, global_config), self.config.program_id)[0]

    def oracle_address(self, oracle_authority: str) -> str:
        return derive_address(oracle_seeds(oracle_authority), self.config.program_id)[0]

    # -- record loading --------------------------------------------------------------

    def _load_global_config(self, ref: str, params: OperationParams) -> Optional[GlobalConfig]:
        program = self.config.program_id
        if not ref:
            return None
        data = self._records.get(ref)
        if data is None:
            if params.operation is Operation.INIT_GLOBAL_CONFIG:
                verify_address(ref, global_config_seeds(params.signer), program)
            return None
        cfg = decode_global_config(data)
        if cfg.address != ref:
            raise AddressMismatch(f"global config stored at {ref} claims address {cfg.address}")
        return cfg

    def _load_pool(self, ref: str, params: OperationParams, cfg: Optional[GlobalConfig]) -> Optional[PoolAccumulator]:
        program = self.config.program_id
        if not ref:
            return None
        data = self._records.get(ref)
        if data is None:
            if params.operation is Operation.CREATE_STAKING_POOL and params.pool_params is not None:
                verify_address(ref, staking_pool_seeds(params.signer, params.pool_params.pool_id), program)
            return None
        pool = decode_pool(data)
        verify_address(ref, staking_pool_seeds(pool.authority, pool.pool_id), program)
        if cfg is not None:
            # Vaults are scoped to the global config the pool was created under.
            if pool.stake_vault != derive_address(stake_vault_seeds(pool.stake_asset, cfg.address), program)[0]:
                raise AddressMismatch("stake vault does not belong to the supplied global config")
            if pool.reward_vault != derive_address(reward_vault_seeds(pool.reward_asset, cfg.address), program)[0]:
                raise AddressMismatch("reward vault does not belong to the supplied global config")
        return pool

    def _load_ledger(self, ref: str, params: OperationParams, cfg: Optional[GlobalConfig]) -> Optional[UserLedger]:
        program = self.config.program_id
        if not ref:
            return None
        data = self._records.get(ref)
        if data is None:
            if cfg is not None:
                verify_address(ref, user_ledger_seeds(params.target_user, cfg.address), program)
            return None
        ledger = decode_user_ledger(data)
        verify_address(ref, user_ledger_seeds(ledger.owner, ledger.global_config), program)
        if cfg is not None and ledger.global_config != cfg.address:
            raise AddressMismatch("user ledger belongs to a different global config")
        return ledger

    def _load_oracle(self, ref: str, params: OperationParams) -> Optional[OracleRecord]:
        program = self.config.program_id
        if not ref:
            return None
        data = self._records.get(ref)
        if data is None:
            if params.operation is Operation.INIT_ORACLE:
                verify_address(ref, oracle_seeds(params.signer), program)
            return None
        record = decode_oracle(data)
        verify_address(ref, oracle_seeds(record.oracle_authority), program)
        return record

    def _default_refs(self, refs: AccountRefs, params: OperationParams) -> AccountRefs:
        """Fill in the address of the record an initializing operation creates."""
        op, signer = params.operation, params.signer
        if op is Operation.INIT_GLOBAL_CONFIG and not refs.global_config:
            return replace(refs, global_config=self.global_config_address(signer))
        if op is Operation.CREATE_STAKING_POOL and not refs.pool and params.pool_params is not None:
            return replace(refs, pool=self.pool_address(signer, params.pool_params.pool_id))
        if op is Operation.INIT_ORACLE and not refs.oracle:
            return replace(refs, oracle=self.oracle_address(signer))
        if op is Operation.INIT_USER_LEDGER and not refs.user_ledger and refs.global_config:
            return replace(refs, user_ledger=self.user_ledger_address(signer, refs.global_config))
        return refs

    def _load(self, refs: AccountRefs, params: OperationParams) -> Accounts:
        refs = self._default_refs(refs, params)
        cfg = self._load_global_config(refs.global_config, params)
        return Accounts(
            global_config=cfg,
            pool=self._load_pool(refs.pool, params, cfg),
            ledger=self._load_ledger(refs.user_ledger, params, cfg),
            oracle=self._load_oracle(refs.oracle, params),
        )

    # -- decoding and authentication ---------------------------------------------------

    def _decode(self, ix: Instruction) -> Tuple[OperationParams, bytes]:
        if isinstance(ix, OperationParams):
            try:
                raw = encode_instruction(ix)
            except (TypeError, ValueError) as exc:
                raise InvalidInstructionData(str(exc)) from exc
            return decode_instruction(raw), raw
        if not isinstance(ix, (bytes, bytearray)):
            raise InvalidInstructionData("instruction must be bytes or OperationParams")
        raw = bytes(ix)
        if len(raw) > self.config.max_instruction_bytes:
            raise InvalidInstructionData(
                f"instruction too large: {len(raw)} > {self.config.max_instruction_bytes}"
            )
        return decode_instruction(raw), raw

    def _authenticate(self, signer: str, signature: Optional[str], raw: bytes) -> None:
        if not self.config.require_signatures:
            return
        if not signature:
            raise MissingSignature(f"instruction requires a signature from {signer}")
        ok, err = verify_instruction_signature(
            signer_pubkey_hex=signer,
            signature_hex=signature,
            instruction_bytes=raw,
            chain_id=self.config.chain_id,
        )
        if not ok:
            raise MissingSignature(err or "invalid instruction signature")

    # -- commit ------------------------------------------------------------------------------

    def _encode_records(self, accounts: Accounts) -> Dict[str, bytes]:
        out: Dict[str, bytes] = {}
        if accounts.global_config is not None:
            out[accounts.global_config.address] = encode_global_config(accounts.global_config)
        if accounts.pool is not None:
            out[accounts.pool.address] = encode_pool(accounts.pool)
        if accounts.ledger is not None:
            out[ledger_address(accounts.ledger, self.config.program_id)] = encode_user_ledger(accounts.ledger)
        if accounts.oracle is not None:
            out[accounts.oracle.price_feed] = encode_oracle(accounts.oracle)
        return out

    def _reject(self, op: Optional[Operation], signer: str, exc: StakingError) -> ExecutionResult:
        logger.warning(
            "rejected %s signer=%s code=%s: %s",
            op.value if op is not None else "<undecoded>",
            signer,
            exc.code,
            exc.message,
        )
        return ExecutionResult(
            ok=False,
            operation=op,
            error=f"{type(exc).__name__}:{exc.message}",
            error_code=exc.code,
        )

    def execute(
        self,
        ix: Instruction,
        signer: str,
        *,
        signature: Optional[str] = None,
        accounts: AccountRefs = AccountRefs(),
        user: str = "",
    ) -> ExecutionResult:
        """
        Execute one instruction on behalf of ``signer``.

        ``user`` names the ledger owner for keeper-executed auto-compounds and
        defaults to the signer. Nothing is committed unless decoding,
        authentication, address checks, the core step and every token effect
        succeed.
        """
        op: Optional[Operation] = None
        try:
            if not is_pubkey_hex(signer):
                raise InvalidArgument("signer must be a 48-byte key")
            if user and not is_pubkey_hex(user):
                raise InvalidArgument("user must be a 48-byte key")
            signer, user = signer.lower(), user.lower()
            refs = accounts.normalized()
            params, raw = self._decode(ix)
            op = params.operation
            self._authenticate(signer, signature, raw)
            params = bind_signer(params, signer, user)
            if op is Operation.CREATE_STAKING_POOL:
                params = replace(params, stake_asset=refs.stake_asset, reward_asset=refs.reward_asset)
            loaded = self._load(refs, params)
            now = self._clock()
            result = step(loaded, params, Env(now=now, balances=self._tokens, program_id=self.config.program_id))
            if not result.accepted:
                if result.error is not None:
                    raise result.error
                logger.error("%s rejected by invariant check: %s", op.value, result.rejection)
                return ExecutionResult(ok=False, operation=op, error=result.rejection)

            staged = self._tokens.copy()
            for effect in result.effects:
                apply_effect(staged, effect)
            records = self._encode_records(result.accounts)
        except StakingError as exc:
            return self._reject(op, signer, exc)

        self._records.update(records)
        self._tokens = staged

        outputs = dict(result.outputs)
        pool = result.accounts.pool
        logger.info(
            "accepted %s signer=%s pool=%s outputs=%s",
            op.value,
            signer,
            pool.pool_id if pool is not None else "-",
            outputs,
        )
        if outputs.get("unapplied_penalty", 0) > 0:
            logger.warning(
                "early-withdraw penalty of %s computed but not applied (pool=%s user=%s)",
                outputs["unapplied_penalty"],
                pool.pool_id if pool is not None else "-",
                signer,
            )
        return ExecutionResult(ok=True, operation=op, outputs=outputs, effects=result.effects)

    # -- bootstrap --------------------------------------------------------------------------

    def bootstrap(
        self,
        loaded: LoadedConfig,
        *,
        authority: str,
        stake_asset: str,
        reward_asset: str,
        sign: Optional[Callable[[bytes], str]] = None,
    ) -> Tuple[ExecutionResult, ...]:
        """
        Create the global config and every configured pool as ``authority``.

        ``sign`` produces the signature for each encoded instruction when the
        engine requires signatures. Stops at the first rejection.
        """
        if loaded.global_params is None:
            raise ValueError("configuration has no global section")
        gp = loaded.global_params
        cfg_address = self.global_config_address(authority)
        plan = [
            (
                OperationParams(
                    operation=Operation.INIT_GLOBAL_CONFIG,
                    protocol_fee_rate=gp.protocol_fee_rate,
                    min_stake_amount=gp.min_stake_amount,
                    max_pools=gp.max_pools,
                ),
                AccountRefs(global_config=cfg_address),
            )
        ]
        for pool_params in loaded.pools:
            plan.append(
                (
                    OperationParams(
                        operation=Operation.CREATE_STAKING_POOL,
                        pool_id=pool_params.pool_id,
                        pool_params=pool_params,
                    ),
                    AccountRefs(
                        global_config=cfg_address,
                        pool=self.pool_address(authority, pool_params.pool_id),
                        stake_asset=stake_asset,
                        reward_asset=reward_asset,
                    ),
                )
            )

        results = []
        for params, refs in plan:
            raw = encode_instruction(params)
            signature = sign(raw) if sign is not None else None
            res = self.execute(raw, authority, signature=signature, accounts=refs)
            results.append(res)
            if not res.ok:
                break
        return tuple(results)
