"""
Reward thresholds for the loyalty card.

Coffees recur every 10 points and meals every 25. A threshold is
*available* once the balance reaches it and it has not been redeemed; it is
*just earned* only when the balance sits exactly on it, which is what the
pass shows after the purchase that crossed it.
"""

from app.domain.schemas import (
    AvailableTiers,
    RedeemedRewards,
    RewardStatus,
    RewardType,
    coerce_points,
)

POINTS_PER_PURCHASE = 1
POINTS_FOR_COFFEE = 10
POINTS_FOR_MEAL = 25

REWARD_UNITS: dict[RewardType, int] = {
    "coffee": POINTS_FOR_COFFEE,
    "meal": POINTS_FOR_MEAL,
}

MESSAGE_BOTH = "🎉 You earned BOTH a FREE MEAL and FREE COFFEE! 🍽️☕️"
MESSAGE_MEAL = "🎉 You earned a FREE MEAL! 🍽️"
MESSAGE_COFFEE = "🎉 You earned a FREE COFFEE! ☕️"
MESSAGE_NONE = "No reward yet! Keep shopping, you are almost there!"

LABEL_REWARDS = "You just earned rewards!"
LABEL_REWARD = "You just earned a reward!"
LABEL_NONE = "KEEP GOING"

REWARD_STRUCTURE = f"{POINTS_FOR_MEAL} stamps = meal, {POINTS_FOR_COFFEE} stamps = coffee"


def _just_earned(points: int, unit: int, redeemed: set[int]) -> bool:
    return points >= unit and points % unit == 0 and points not in redeemed


def evaluate(points_balance, redeemed=None) -> RewardStatus:
    """Report the reward(s) earned by landing exactly on a threshold.

    When both fire (multiples of 50), ``reward_type`` is "meal".
    """
    points = coerce_points(points_balance)
    rewards = RedeemedRewards.from_raw(redeemed)

    earned_meal = _just_earned(points, POINTS_FOR_MEAL, rewards.meals)
    earned_coffee = _just_earned(points, POINTS_FOR_COFFEE, rewards.coffees)

    if earned_meal and earned_coffee:
        message, label = MESSAGE_BOTH, LABEL_REWARDS
    elif earned_meal:
        message, label = MESSAGE_MEAL, LABEL_REWARD
    elif earned_coffee:
        message, label = MESSAGE_COFFEE, LABEL_REWARD
    else:
        message, label = MESSAGE_NONE, LABEL_NONE

    reward_type: RewardType | None = None
    if earned_meal:
        reward_type = "meal"
    elif earned_coffee:
        reward_type = "coffee"

    return RewardStatus(
        earned_coffee=earned_coffee,
        earned_meal=earned_meal,
        reward_type=reward_type,
        message=message,
        label=label,
    )


def _tiers(points: int, unit: int, redeemed: set[int]) -> list[int]:
    return [t for t in range(unit, points + 1, unit) if t not in redeemed]


def available_tiers(points_balance, redeemed=None) -> AvailableTiers:
    """List every reached, unredeemed threshold for each reward type."""
    points = coerce_points(points_balance)
    rewards = RedeemedRewards.from_raw(redeemed)
    return AvailableTiers(
        coffees=_tiers(points, POINTS_FOR_COFFEE, rewards.coffees),
        meals=_tiers(points, POINTS_FOR_MEAL, rewards.meals),
    )


def is_valid_threshold(reward_type: RewardType, threshold: int) -> bool:
    unit = REWARD_UNITS[reward_type]
    return threshold > 0 and threshold % unit == 0
