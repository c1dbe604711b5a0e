"""
Value types shared by the store, matcher and coordinator.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import numpy as np

from ..exceptions import EmbeddingDimensionError
from ..utils.timing import utcnow


def as_embedding(values: Iterable[float], dimension: int) -> np.ndarray:
    """
    Convert values to a read-only float32 embedding of the given dimension.

    Args:
        values: Sequence or array of floats
        dimension: Expected embedding dimension D

    Returns:
        1-D read-only float32 array (always a copy)

    Raises:
        EmbeddingDimensionError: If the shape is not (D,)
        ValueError: If the embedding contains NaN or infinity
    """
    embedding = np.array(values, dtype=np.float32)
    if embedding.ndim != 1 or embedding.shape[0] != dimension:
        raise EmbeddingDimensionError(
            f'Expected embedding of dimension {dimension}, got shape {embedding.shape}'
        )
    if not np.all(np.isfinite(embedding)):
        raise ValueError('Embedding contains non-finite values')
    embedding.setflags(write=False)
    return embedding


@dataclass(frozen=True, eq=False)
class EnrolledIdentity:
    """An enrolled person and the embedding used to recognise them."""

    id: str
    display_name: str
    embedding: np.ndarray = field(repr=False)
    email: Optional[str] = None
    raw_image_path: Optional[str] = None
    registered_at: datetime = field(default_factory=utcnow)

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'embedding': self.embedding.tolist(),
            'email': self.email,
            'raw_image_path': self.raw_image_path,
            'registered_at': self.registered_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], dimension: int) -> 'EnrolledIdentity':
        registered_at = record.get('registered_at')
        return cls(
            id=str(record['id']),
            display_name=record['display_name'],
            embedding=as_embedding(record['embedding'], dimension),
            email=record.get('email'),
            raw_image_path=record.get('raw_image_path'),
            registered_at=datetime.fromisoformat(registered_at) if registered_at else utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Public representation (without the embedding)."""
        return {
            'id': self.id,
            'name': self.display_name,
            'email': self.email,
            'raw_image_path': self.raw_image_path,
            'registeredAt': self.registered_at.isoformat(),
        }


@dataclass(frozen=True, eq=False)
class DetectionSample:
    """One face embedding extracted from a frame."""

    embedding: np.ndarray = field(repr=False)
    captured_at: datetime = field(default_factory=utcnow)


class MatchOutcome(enum.Enum):
    MATCHED = 'matched'
    NO_MATCH = 'no_match'
    AMBIGUOUS = 'ambiguous'
    EMPTY = 'empty'


@dataclass(frozen=True)
class MatchResult:
    """
    Result of resolving one frame against a snapshot.

    ``distance`` is the minimum L2 distance found, or ``inf`` when no
    distance was computed (ambiguous or empty).
    """

    outcome: MatchOutcome
    distance: float = float('inf')
    identity_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.outcome is MatchOutcome.MATCHED
