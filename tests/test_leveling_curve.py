from __future__ import annotations

import math
from fractions import Fraction

import pytest


def test_xp_needed_matches_curve() -> None:
    from peakhabit_rules.leveling import xp_needed

    assert [xp_needed(lvl) for lvl in (1, 2, 3, 4, 5)] == [100, 110, 121, 133, 146]
    assert xp_needed(10) == 235
    for lvl in range(1, 80):
        expected = math.floor(Fraction(100) * Fraction(11, 10) ** (lvl - 1))
        assert xp_needed(lvl) == expected


def test_single_reward_can_jump_several_levels() -> None:
    from peakhabit_rules.leveling import LevelState, apply_xp_gain

    res = apply_xp_gain(LevelState(), 331)
    assert res.state.level == 4
    assert res.state.xp_in_level == 0
    assert res.state.total_xp == 331
    assert res.levels_gained == 3
    assert res.level_up is True

    res2 = apply_xp_gain(LevelState(), 5000)
    assert res2.state.xp_in_level < res2.state.xp_to_next
    assert res2.state.total_xp == 5000


def test_xp_in_level_stays_below_threshold() -> None:
    from peakhabit_rules.leveling import LevelState, apply_xp_gain, xp_needed

    state = LevelState()
    for gain in (0, 1, 99, 10, 250, 7, 1000, 3, 12345, 50):
        before_total = state.total_xp
        state = apply_xp_gain(state, gain).state
        assert state.total_xp == before_total + gain
        assert 0 <= state.xp_in_level < xp_needed(state.level)


def test_zero_gain_is_a_no_op() -> None:
    from peakhabit_rules.leveling import LevelState, apply_xp_gain

    start = LevelState(level=3, xp_in_level=40, total_xp=250)
    res = apply_xp_gain(start, 0)
    assert res.state == start
    assert res.level_up is False


def test_negative_gain_rejected() -> None:
    from peakhabit_rules.leveling import LevelState, apply_xp_gain

    with pytest.raises(ValueError):
        apply_xp_gain(LevelState(), -5)


def test_companion_curve() -> None:
    from peakhabit_rules.leveling import apply_companion_xp, companion_xp_needed

    assert companion_xp_needed(1) == 100
    assert companion_xp_needed(4) == 400
    assert apply_companion_xp(level=1, experience=90, gain=20) == (2, 10)
    assert apply_companion_xp(level=1, experience=0, gain=300) == (3, 0)
