"""
Streak Scoring

Two streak representations live side by side and must not be merged:

- ``bonus_points``: the additive streak bonus that counts toward totals.
- ``display_tier``: a multiplicative tier shown on breakdown labels only.
  It never touches a stored total.
"""

from dataclasses import dataclass


STREAK_POINTS_PER_DAY = 2
STREAK_BONUS_CAP = 15

# (minimum days, tier name, display multiplier), longest first
STREAK_TIERS: tuple[tuple[int, str, float], ...] = (
    (21, "God Mode", 3.0),
    (14, "Legendary", 2.0),
    (7, "Unstoppable", 1.5),
    (4, "On Fire", 1.25),
    (2, "Hot Streak", 1.1),
)


@dataclass(frozen=True)
class StreakTier:
    """Display-only streak tier."""

    name: str
    multiplier: float
    flames: int

    @property
    def label(self) -> str:
        if self.flames == 0:
            return self.name
        return f"{'🔥' * self.flames} {self.name}"


NO_STREAK = StreakTier(name="No Streak", multiplier=1.0, flames=0)


def calculate_streak_bonus(streak_days: int) -> int:
    """Additive streak bonus: 2 points per consecutive top-10 day, capped at 15."""
    return min(STREAK_BONUS_CAP, streak_days * STREAK_POINTS_PER_DAY)


def streak_display_tier(streak_days: int) -> StreakTier:
    """Label tier for a streak length (2-3 days Hot Streak ... 21+ God Mode)."""
    for position, (min_days, name, multiplier) in enumerate(STREAK_TIERS):
        if streak_days >= min_days:
            return StreakTier(
                name=name,
                multiplier=multiplier,
                flames=len(STREAK_TIERS) - position,
            )
    return NO_STREAK


@dataclass(frozen=True)
class StreakScore:
    """Streak value object exposing the additive bonus and the display tier separately."""

    streak_days: int
    bonus_points: int
    display_tier: StreakTier

    @classmethod
    def from_days(cls, streak_days: int) -> "StreakScore":
        return cls(
            streak_days=streak_days,
            bonus_points=calculate_streak_bonus(streak_days),
            display_tier=streak_display_tier(streak_days),
        )
