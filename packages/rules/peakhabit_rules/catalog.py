from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import Literal


Difficulty = Literal["easy", "medium", "hard"]
RepeatType = Literal["daily", "weekly", "none"]
Rarity = Literal["common", "rare", "epic", "legendary"]


TASK_XP_REWARD: dict[str, int] = {"easy": 10, "medium": 25, "hard": 50}
TASK_XP_PENALTY: dict[str, int] = {"easy": 5, "medium": 12, "hard": 25}

RAID_XP_REWARD: dict[str, int] = {"easy": 300, "medium": 500, "hard": 1000}

MAX_HP = 100


@dataclass(frozen=True)
class PetDef:
    id: str
    name: str
    rarity: Rarity
    description: str
    xp_bonus: Fraction = Fraction(1)
    gold_bonus: Fraction = Fraction(1)


RARITY_XP_BONUS: dict[str, Fraction] = {
    "common": Fraction("1.05"),
    "rare": Fraction("1.10"),
    "epic": Fraction("1.15"),
    "legendary": Fraction("1.20"),
}


PETS: dict[str, PetDef] = {
    "slime-blue": PetDef(
        id="slime-blue",
        name="Blue Slime",
        rarity="common",
        description="A small, friendly gelatinous companion.",
        xp_bonus=RARITY_XP_BONUS["common"],
    ),
    "fox-fire": PetDef(
        id="fox-fire",
        name="Fire Fox",
        rarity="rare",
        description="A mystic fox radiating warmth and resolve.",
        xp_bonus=RARITY_XP_BONUS["rare"],
    ),
    "dragon-void": PetDef(
        id="dragon-void",
        name="Void Dragon",
        rarity="epic",
        description="An ancient dragon that bends reality.",
        xp_bonus=RARITY_XP_BONUS["epic"],
    ),
    "phoenix-gold": PetDef(
        id="phoenix-gold",
        name="Golden Phoenix",
        rarity="legendary",
        description="A legendary bird reborn from the ashes of failure.",
        xp_bonus=RARITY_XP_BONUS["legendary"],
    ),
}


@dataclass(frozen=True)
class GuildUpgradeDef:
    id: str
    name: str
    price: int
    duration_hours: int
    xp_bonus: Fraction = Fraction(1)
    gold_bonus: Fraction = Fraction(1)
    raid_penalty_factor: Fraction = Fraction(1)


GUILD_UPGRADES: dict[str, GuildUpgradeDef] = {
    "banner-xp": GuildUpgradeDef(
        id="banner-xp",
        name="Battle Banner",
        price=1000,
        duration_hours=24,
        xp_bonus=Fraction("1.20"),
    ),
    "chalice-gold": GuildUpgradeDef(
        id="chalice-gold",
        name="Chalice of Prosperity",
        price=1500,
        duration_hours=48,
        gold_bonus=Fraction("1.15"),
    ),
    "shield-protection": GuildUpgradeDef(
        id="shield-protection",
        name="Guardian Shield",
        price=2000,
        duration_hours=72,
        raid_penalty_factor=Fraction(1, 2),
    ),
}


@dataclass(frozen=True)
class DailyChallengeDef:
    title: str
    description: str
    emoji: str
    xp_reward: int
    gold_reward: int
    category: str


DEFAULT_DAILY_CHALLENGES: tuple[DailyChallengeDef, ...] = (
    DailyChallengeDef("Drink 3 liters of water", "Hydration fuels body and mind.", "💧", 50, 25, "health"),
    DailyChallengeDef("Do 10 push-ups", "Build strength with one simple exercise.", "💪", 60, 30, "fitness"),
    DailyChallengeDef("Walk for 20 minutes", "A daily walk lifts mood and health.", "🚶", 70, 35, "fitness"),
    DailyChallengeDef("Read for 15 minutes", "Feed your mind.", "📖", 50, 25, "mind"),
    DailyChallengeDef("Breathe mindfully for 5 minutes", "Lower stress with a short meditation.", "🧘", 40, 20, "mind"),
    DailyChallengeDef("Eat a healthy meal", "Nutrition is the base of progress.", "🥗", 50, 25, "health"),
    DailyChallengeDef("Sleep before midnight", "Sleep is your best ally.", "😴", 80, 40, "health"),
)


# (max level inclusive, rank name); anything above the last bound is Thorium.
RANKS: tuple[tuple[int, str], ...] = (
    (10, "Iron"),
    (25, "Silver"),
    (50, "Gold"),
    (75, "Platinum"),
    (100, "Diamond"),
)


def rank_for_level(level: int) -> str:
    for bound, name in RANKS:
        if int(level) <= bound:
            return name
    return "Thorium"
