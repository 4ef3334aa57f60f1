from __future__ import annotations

import enum
from typing import Optional

from ..core.config import settings
from .matcher import Candidate


class MatchOutcome(enum.Enum):
    REGISTERED_MATCH = "registered_match"
    OBSERVED_UPDATE = "observed_update"
    NEW_OBSERVED = "new_observed"


def similarity_from_distance(distance: float) -> float:
    """Display score: maps L2 distance [0, 2] of normalized embeddings onto [1, 0]"""
    return 1 - (distance / 2)


class MatchClassifier:
    """Two-threshold decision between registered, observed and new identities"""

    def __init__(
        self,
        registered_threshold: Optional[float] = None,
        observed_threshold: Optional[float] = None,
    ):
        self.registered_threshold = (
            settings.registered_match_threshold if registered_threshold is None else registered_threshold
        )
        self.observed_threshold = (
            settings.observed_update_threshold if observed_threshold is None else observed_threshold
        )

    def is_registered_match(self, candidate: Optional[Candidate]) -> bool:
        return candidate is not None and candidate.distance <= self.registered_threshold

    def is_observed_match(self, candidate: Optional[Candidate]) -> bool:
        return candidate is not None and candidate.distance <= self.observed_threshold

    def classify(
        self,
        registered: Optional[Candidate],
        observed: Optional[Candidate] = None,
    ) -> MatchOutcome:
        if self.is_registered_match(registered):
            return MatchOutcome.REGISTERED_MATCH
        if self.is_observed_match(observed):
            return MatchOutcome.OBSERVED_UPDATE
        return MatchOutcome.NEW_OBSERVED
