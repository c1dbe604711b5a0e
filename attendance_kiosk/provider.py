"""
Embedding provider contract.

The coordinator only talks to this interface; the InsightFace
implementation lives in ``face_app``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import numpy as np

from .recognition.types import DetectionSample
from .utils.timing import utcnow


@dataclass(frozen=True, eq=False)
class DetectedFace:
    """A face found in a frame: bounding box [x1, y1, x2, y2] and embedding."""

    bbox: np.ndarray
    embedding: np.ndarray = field(repr=False)
    det_score: float = 1.0

    def to_sample(self, captured_at: Optional[datetime] = None) -> DetectionSample:
        """Sample stamped with the capture time of its frame."""
        return DetectionSample(embedding=self.embedding, captured_at=captured_at or utcnow())


class EmbeddingProvider(ABC):
    """Extracts face embeddings from frames."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once the models are loaded."""

    @abstractmethod
    def prepare(self) -> None:
        """
        Load the models.

        Raises:
            ModelInitFailure: If the models cannot be loaded
        """

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[np.ndarray]:
        """
        Cheap presence check: bounding boxes only, no embeddings.

        Raises:
            ModelNotReady: If called before ``prepare``
            ExtractionFailed: If detection fails
        """

    @abstractmethod
    def extract(self, frame: np.ndarray) -> List[DetectedFace]:
        """
        Detect every face in the frame and compute its embedding.

        Returns an empty list when the frame contains no face.

        Raises:
            ModelNotReady: If called before ``prepare``
            ExtractionFailed: If detection or embedding fails
        """
