"""
Recognition core package.

Contains modules for:
- Enrolled identity storage
- Embedding matching
- Enrollment photo quality
- Detection state machine (``coordinator``, imported directly since it
  depends on the provider and attendance modules)
"""

from .types import DetectionSample, EnrolledIdentity, MatchOutcome, MatchResult
from .store import EmbeddingStore
from .matching import Matcher
from .quality import compute_blur_score, is_face_acceptable

__all__ = [
    'DetectionSample',
    'EnrolledIdentity',
    'MatchOutcome',
    'MatchResult',
    'EmbeddingStore',
    'Matcher',
    'compute_blur_score',
    'is_face_acceptable',
]
