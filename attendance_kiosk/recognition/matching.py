"""
Embedding matching module.

Matches the faces of one frame against a snapshot of enrolled identities
using Euclidean (L2) distance.
"""

from typing import Sequence, Union

import numpy as np

from ..exceptions import EmbeddingDimensionError
from .types import DetectionSample, EnrolledIdentity, MatchOutcome, MatchResult

DEFAULT_THRESHOLD = 0.6


def l2_distances(query: np.ndarray, candidates: np.ndarray) -> np.ndarray:
    """
    Compute L2 distances between a query and stacked candidates.

    Args:
        query: Embedding of shape (D,)
        candidates: Embeddings of shape (K, D)

    Returns:
        Distances of shape (K,)
    """
    diff = candidates.astype(np.float64) - query.astype(np.float64)
    return np.sqrt(np.einsum('ij,ij->i', diff, diff))


class Matcher:
    """
    Nearest-neighbour matcher with a fixed acceptance threshold.

    ``resolve`` has no side effects: repeated calls with the same samples
    and snapshot return the same result.
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        if threshold < 0:
            raise ValueError('threshold must be non-negative')
        self.threshold = float(threshold)

    def resolve(
        self,
        samples: Union[DetectionSample, Sequence[DetectionSample]],
        snapshot: Sequence[EnrolledIdentity],
    ) -> MatchResult:
        """
        Resolve the faces of one frame to an identity.

        Outcomes, in order of precedence:
        - more than one face: AMBIGUOUS, whatever the faces look like
        - empty snapshot: EMPTY
        - nearest distance <= threshold: MATCHED (earliest candidate wins ties)
        - otherwise: NO_MATCH

        Args:
            samples: Face samples of one frame (or a single sample)
            snapshot: Insertion-ordered identities to compare against

        Returns:
            MatchResult

        Raises:
            ValueError: If no sample is given
            EmbeddingDimensionError: If query and candidates differ in dimension
        """
        if isinstance(samples, DetectionSample):
            samples = [samples]
        if len(samples) == 0:
            raise ValueError('resolve() needs at least one face sample')

        if len(samples) > 1:
            return MatchResult(outcome=MatchOutcome.AMBIGUOUS)

        if len(snapshot) == 0:
            return MatchResult(outcome=MatchOutcome.EMPTY)

        query = np.asarray(samples[0].embedding).reshape(-1)
        candidates = np.stack([np.asarray(i.embedding).reshape(-1) for i in snapshot])
        if candidates.shape[1] != query.shape[0]:
            raise EmbeddingDimensionError(
                f'Query dimension {query.shape[0]} does not match '
                f'enrolled dimension {candidates.shape[1]}'
            )

        distances = l2_distances(query, candidates)

        # argmin returns the first index on ties
        best_idx = int(np.argmin(distances))
        best_distance = float(distances[best_idx])

        if best_distance <= self.threshold:
            best = snapshot[best_idx]
            return MatchResult(
                outcome=MatchOutcome.MATCHED,
                distance=best_distance,
                identity_id=best.id,
                display_name=best.display_name,
            )

        return MatchResult(outcome=MatchOutcome.NO_MATCH, distance=best_distance)
