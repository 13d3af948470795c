from __future__ import annotations

from .crud_service import (
    ChallengeCreateService,
    ChallengeDeleteService,
    ChallengePublishService,
    ChallengeUpdateService,
)
from .hint_service import (
    HintAlreadyUsed,
    HintEconomyService,
    HintNotFound,
    HintUnlocked,
)
from .flags import FlagVerifier

__all__ = [
    "ChallengeCreateService",
    "ChallengeUpdateService",
    "ChallengePublishService",
    "ChallengeDeleteService",
    "HintEconomyService",
    "HintUnlocked",
    "HintAlreadyUsed",
    "HintNotFound",
    "FlagVerifier",
]
