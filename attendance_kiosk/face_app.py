"""
InsightFace embedding provider.

Provides face detection and recognition using InsightFace models.
"""

from typing import List

import numpy as np
from insightface.app import FaceAnalysis

from .config import Config
from .exceptions import ExtractionFailed, ModelInitFailure, ModelNotReady
from .logging_config import get_logger
from .provider import DetectedFace, EmbeddingProvider

logger = get_logger(__name__)


class InsightFaceProvider(EmbeddingProvider):
    """Embedding provider backed by InsightFace ``FaceAnalysis``."""

    def __init__(self, config: Config):
        self.config = config
        self._face_app = None

    @property
    def is_ready(self) -> bool:
        return self._face_app is not None

    def prepare(self) -> None:
        """
        Initialize InsightFace FaceAnalysis.

        Raises:
            ModelInitFailure: If the models cannot be downloaded or loaded
        """
        logger.info('Initializing InsightFace models...')

        try:
            face_app = FaceAnalysis(providers=['CPUExecutionProvider'])
            face_app.prepare(ctx_id=0, det_size=self.config.insightface_det_size)
        except Exception as e:
            logger.error(f'InsightFace initialization failed: {e}')
            raise ModelInitFailure() from e

        self._face_app = face_app
        logger.info(f'✅ InsightFace initialized (det_size={self.config.insightface_det_size})')

    def detect(self, frame: np.ndarray) -> List[np.ndarray]:
        face_app = self._require_ready()
        try:
            bboxes, _ = face_app.det_model.detect(frame, max_num=0, metric='default')
        except Exception as e:
            raise ExtractionFailed(f'Face detection failed: {e}') from e
        return [np.asarray(b[:4], dtype=np.float32) for b in bboxes]

    def extract(self, frame: np.ndarray) -> List[DetectedFace]:
        face_app = self._require_ready()
        try:
            faces = face_app.get(frame)
        except Exception as e:
            raise ExtractionFailed(f'Embedding extraction failed: {e}') from e

        return [
            DetectedFace(
                bbox=np.asarray(face.bbox, dtype=np.float32),
                embedding=np.asarray(face.normed_embedding, dtype=np.float32),
                det_score=float(face.det_score),
            )
            for face in faces
        ]

    def _require_ready(self) -> FaceAnalysis:
        if self._face_app is None:
            raise ModelNotReady()
        return self._face_app
