from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class FaceScorer(Protocol):
    def score(self, reference_url: str, candidate_url: str) -> float:
        """Similarity of the two faces as a percentage (0-100)."""

        raise NotImplementedError


@dataclass(frozen=True)
class FaceMatch:
    confidence: Optional[float] = None

    @property
    def available(self) -> bool:
        return self.confidence is not None

    def is_below(self, threshold: float) -> bool:
        return self.confidence is not None and self.confidence < threshold


class FaceVerifier:
    """Best-effort face verification: any scorer failure means "no confidence"."""

    def __init__(self, scorer: Optional[FaceScorer] = None):
        self._scorer = scorer

    def verify(self, reference_url: Optional[str], candidate_url: str) -> FaceMatch:
        if self._scorer is None or not reference_url:
            return FaceMatch()

        try:
            confidence = float(self._scorer.score(reference_url, candidate_url))
        except Exception:
            logger.warning("Face comparison failed for %s", candidate_url, exc_info=True)
            return FaceMatch()

        return FaceMatch(confidence=min(max(confidence, 0.0), 100.0))
