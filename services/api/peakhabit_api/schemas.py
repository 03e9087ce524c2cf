from __future__ import annotations

from pydantic import BaseModel

from peakhabit_api.progression import RewardResult


class ProgressOut(BaseModel):
    user_id: str | None = None
    level: int
    total_xp: int
    xp_in_level: int
    xp_to_next: int
    hp: int
    gold: int
    streak: int
    rank: str
    equipped_theme_id: str = "default"
    degraded: bool = False


class PetGrowthOut(BaseModel):
    pet_id: str
    xp_gained: int
    level: int
    experience: int
    level_up: bool


class RewardOut(BaseModel):
    xp_reward: int
    gold_reward: int
    base_xp: int
    base_gold: int
    xp_multiplier: str
    gold_multiplier: str
    level: int
    level_up: bool
    total_xp: int
    xp_in_level: int
    xp_to_next: int
    gold: int
    streak: int
    streak_extended: bool
    pet: PetGrowthOut | None = None


def reward_out(r: RewardResult) -> RewardOut:
    return RewardOut(
        xp_reward=r.xp_awarded,
        gold_reward=r.gold_awarded,
        base_xp=r.base_xp,
        base_gold=r.base_gold,
        xp_multiplier=r.xp_multiplier,
        gold_multiplier=r.gold_multiplier,
        level=r.level,
        level_up=r.level_up,
        total_xp=r.total_xp,
        xp_in_level=r.xp_in_level,
        xp_to_next=r.xp_to_next,
        gold=r.gold,
        streak=r.streak,
        streak_extended=r.streak_extended,
        pet=(
            PetGrowthOut(
                pet_id=r.pet.pet_id,
                xp_gained=r.pet.xp_gained,
                level=r.pet.level,
                experience=r.pet.experience,
                level_up=r.pet.level_up,
            )
            if r.pet is not None
            else None
        ),
    )


class SuccessOut(BaseModel):
    success: bool = True
