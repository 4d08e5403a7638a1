"""Saturating fixed-width integers for the staking kernels.

Every quantity in the engine is an unsigned 64-bit amount, a 128-bit
accumulator, or a signed 64-bit timestamp. Python ints are unbounded, so the
width is carried by an explicit wrapper type and every arithmetic call site
names its saturating operation:

    U128(rate).sat_mul(elapsed).sat_mul(REWARD_SCALE).sat_div(total).value

Rules:
- results clamp to ``[MIN, MAX]`` of the receiver's width (never wrap, never raise),
- division truncates toward zero; division by zero yields 0,
- ``widen()`` moves into the 128-bit domain, ``narrow(cls)`` clamps back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Type, TypeVar, Union

# Domain constants
REWARD_SCALE: int = 1_000_000_000_000  # 1e12 fixed point for accumulated reward per share
BPS_DENOM: int = 10_000
MULTIPLIER_NEUTRAL: int = 100
SECONDS_PER_HOUR: int = 3_600

T = TypeVar("T", bound="SaturatingInt")
IntLike = Union[int, "SaturatingInt"]


def _raw(x: IntLike) -> int:
    if isinstance(x, SaturatingInt):
        return x.value
    if not isinstance(x, int) or isinstance(x, bool):
        raise TypeError(f"expected int, got {type(x).__name__}")
    return x


def _trunc_div(a: int, b: int) -> int:
    if b == 0:
        return 0
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


@dataclass(frozen=True)
class SaturatingInt:
    """Base class; concrete widths set MIN/MAX."""

    value: int

    MIN: ClassVar[int] = 0
    MAX: ClassVar[int] = 0

    def __post_init__(self) -> None:
        v = _raw(self.value)
        object.__setattr__(self, "value", self.clamp(v))

    @classmethod
    def clamp(cls, v: int) -> int:
        if v < cls.MIN:
            return cls.MIN
        if v > cls.MAX:
            return cls.MAX
        return v

    def sat_add(self: T, other: IntLike) -> T:
        return type(self)(self.clamp(self.value + _raw(other)))

    def sat_sub(self: T, other: IntLike) -> T:
        return type(self)(self.clamp(self.value - _raw(other)))

    def sat_mul(self: T, other: IntLike) -> T:
        return type(self)(self.clamp(self.value * _raw(other)))

    def sat_div(self: T, other: IntLike) -> T:
        return type(self)(self.clamp(_trunc_div(self.value, _raw(other))))

    def min(self: T, other: IntLike) -> T:
        return type(self)(min(self.value, _raw(other)))

    def widen(self) -> "U128":
        return U128(self.value)

    def narrow(self, cls: Type[T]) -> T:
        return cls(cls.clamp(self.value))

    def __int__(self) -> int:
        return self.value


class U8(SaturatingInt):
    MIN = 0
    MAX = (1 << 8) - 1


class U16(SaturatingInt):
    MIN = 0
    MAX = (1 << 16) - 1


class U32(SaturatingInt):
    MIN = 0
    MAX = (1 << 32) - 1


class U64(SaturatingInt):
    MIN = 0
    MAX = (1 << 64) - 1


class U128(SaturatingInt):
    MIN = 0
    MAX = (1 << 128) - 1


class I64(SaturatingInt):
    MIN = -(1 << 63)
    MAX = (1 << 63) - 1


U64_MAX: int = U64.MAX
U128_MAX: int = U128.MAX
I64_MAX: int = I64.MAX


def require_width(value: object, cls: Type[SaturatingInt], *, name: str) -> int:
    """Record-field check: ``value`` must be a plain int inside ``cls``'s range."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an int")
    if value < cls.MIN or value > cls.MAX:
        raise ValueError(f"{name} out of {cls.__name__} range: {value}")
    return value


def elapsed_seconds(now: int, since: int) -> int:
    """Saturating ``now - since`` floored at zero (clock regressions read as no time)."""
    d = I64(now).sat_sub(since).value
    return d if d > 0 else 0
