from __future__ import annotations

from fractions import Fraction

import pytest


def test_floor_happens_once_after_composition() -> None:
    from peakhabit_rules.multipliers import Multiplier, apply_multiplier

    m = Multiplier(companion=Fraction("1.10"), guild=Fraction("1.20"))
    assert m.total == Fraction("1.32")
    assert m.apply(7) == 9
    # Flooring after each factor would lose a point here.
    assert apply_multiplier(apply_multiplier(7, Fraction("1.10")), Fraction("1.20")) == 8
    assert m.apply(10) == 13


def test_identity_and_non_positive_base() -> None:
    from peakhabit_rules.multipliers import Multiplier, apply_multiplier, compose

    assert compose() == 1
    assert Multiplier().apply(25) == 25
    assert apply_multiplier(0, Fraction("1.5")) == 0
    assert apply_multiplier(-4, Fraction("1.5")) == 0


def test_float_factors_rejected() -> None:
    from peakhabit_rules.multipliers import as_factor

    assert as_factor("1.15") == Fraction(23, 20)
    with pytest.raises(TypeError):
        as_factor(1.15)


def test_catalog_bonuses() -> None:
    from peakhabit_rules.catalog import GUILD_UPGRADES, PETS, rank_for_level

    assert [PETS[p].xp_bonus for p in ("slime-blue", "fox-fire", "dragon-void", "phoenix-gold")] == [
        Fraction("1.05"),
        Fraction("1.10"),
        Fraction("1.15"),
        Fraction("1.20"),
    ]
    assert all(p.gold_bonus == 1 for p in PETS.values())
    assert GUILD_UPGRADES["banner-xp"].xp_bonus == Fraction("1.20")
    assert GUILD_UPGRADES["chalice-gold"].gold_bonus == Fraction("1.15")
    assert GUILD_UPGRADES["shield-protection"].raid_penalty_factor == Fraction(1, 2)
    assert rank_for_level(1) == "Iron"
    assert rank_for_level(26) == "Gold"
    assert rank_for_level(101) == "Thorium"
