__all__ = [
    "WINDOW_EVER",
    "DayClock",
    "LevelState",
    "Multiplier",
    "apply_multiplier",
    "apply_xp_gain",
    "next_streak",
    "xp_needed",
]

from peakhabit_rules.clock import WINDOW_EVER, DayClock
from peakhabit_rules.leveling import LevelState, apply_xp_gain, xp_needed
from peakhabit_rules.multipliers import Multiplier, apply_multiplier
from peakhabit_rules.streaks import next_streak
