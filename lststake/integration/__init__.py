"""
Imperative shell for the liquid-staking engine
"""

from .config import EngineConfig, LoadedConfig, load_config
from .engine import AccountRefs, ExecutionResult, StakingEngine
from .instructions import bind_signer, decode_instruction, encode_instruction

__all__ = [
    "EngineConfig",
    "LoadedConfig",
    "load_config",
    "AccountRefs",
    "ExecutionResult",
    "StakingEngine",
    "bind_signer",
    "decode_instruction",
    "encode_instruction",
]
