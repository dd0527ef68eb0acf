from vaxledger.rewards.engine import (
    REWARD_FOR_FULL_COMPLETION,
    AwardResult,
    RewardEligibility,
    RewardEngine,
)

__all__ = ["REWARD_FOR_FULL_COMPLETION", "AwardResult", "RewardEligibility", "RewardEngine"]
