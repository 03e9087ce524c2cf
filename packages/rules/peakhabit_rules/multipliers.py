from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Literal


RewardKind = Literal["xp", "gold"]

ONE = Fraction(1)


def as_factor(value: str | int | Fraction) -> Fraction:
    # Decimal strings ("1.10") keep factors exact; floats are rejected.
    if isinstance(value, float):
        raise TypeError("use a decimal string, int or Fraction for multipliers")
    return Fraction(value)


@dataclass(frozen=True)
class Multiplier:
    companion: Fraction = ONE
    guild: Fraction = ONE

    @property
    def total(self) -> Fraction:
        return compose(self.companion, self.guild)

    def apply(self, base: int) -> int:
        return apply_multiplier(base, self.total)


def compose(*factors: Fraction) -> Fraction:
    out = ONE
    for f in factors:
        out *= as_factor(f)
    return out


def apply_multiplier(base: int, multiplier: Fraction) -> int:
    """floor(base * multiplier): the only rounding step for a reward."""
    if int(base) <= 0:
        return 0
    return math.floor(Fraction(int(base)) * as_factor(multiplier))
