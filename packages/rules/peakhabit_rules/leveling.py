from __future__ import annotations

from dataclasses import dataclass


BASE_LEVEL_XP = 100


def xp_needed(level: int) -> int:
    """floor(100 * 1.1 ** (level - 1)), computed exactly in integers."""
    n = max(1, int(level)) - 1
    return (BASE_LEVEL_XP * 11**n) // 10**n


@dataclass(frozen=True)
class LevelState:
    level: int = 1
    xp_in_level: int = 0
    total_xp: int = 0

    @property
    def xp_to_next(self) -> int:
        return xp_needed(self.level)


@dataclass(frozen=True)
class LevelResult:
    state: LevelState
    xp_gained: int
    levels_gained: int

    @property
    def level_up(self) -> bool:
        return self.levels_gained > 0


def apply_xp_gain(state: LevelState, gain: int) -> LevelResult:
    gain = int(gain)
    if gain < 0:
        raise ValueError("xp gain must be non-negative")

    level = max(1, int(state.level))
    xp_in_level = int(state.xp_in_level) + gain
    total_xp = int(state.total_xp) + gain

    start_level = level
    while xp_in_level >= xp_needed(level):
        xp_in_level -= xp_needed(level)
        level += 1

    return LevelResult(
        state=LevelState(level=level, xp_in_level=xp_in_level, total_xp=total_xp),
        xp_gained=gain,
        levels_gained=level - start_level,
    )


def companion_xp_needed(level: int) -> int:
    return max(1, int(level)) * BASE_LEVEL_XP


def apply_companion_xp(*, level: int, experience: int, gain: int) -> tuple[int, int]:
    """Returns (level, experience) after crediting `gain` to a companion."""
    if int(gain) < 0:
        raise ValueError("companion xp gain must be non-negative")
    lvl = max(1, int(level))
    exp = int(experience) + int(gain)
    while exp >= companion_xp_needed(lvl):
        exp -= companion_xp_needed(lvl)
        lvl += 1
    return lvl, exp
