"""
Enrollment module.

Builds an enrollment embedding from a stored photo.
"""

import cv2
import numpy as np

from .config import Config
from .exceptions import ExtractionFailed, MultipleFacesDetected, NoFaceDetected
from .logging_config import get_logger
from .provider import EmbeddingProvider
from .recognition.quality import is_face_acceptable

logger = get_logger(__name__)


def embedding_from_image(
    image_path: str,
    provider: EmbeddingProvider,
    config: Config
) -> np.ndarray:
    """
    Extract the embedding of the single face in a photo.

    Args:
        image_path: Path to the photo
        provider: Prepared embedding provider
        config: Service configuration

    Returns:
        Face embedding

    Raises:
        ExtractionFailed: If the photo cannot be read or the face is too small/blurry
        NoFaceDetected: If the photo has no face
        MultipleFacesDetected: If the photo has more than one face
        ModelNotReady: If the provider is not prepared
    """
    logger.info(f'Processing enrollment photo {image_path}...')

    image = cv2.imread(image_path, cv2.IMREAD_COLOR)
    if image is None:
        raise ExtractionFailed(f'Failed to read image {image_path}')

    faces = provider.extract(image)
    if not faces:
        raise NoFaceDetected()
    if len(faces) > 1:
        raise MultipleFacesDetected()

    face = faces[0]
    acceptable, quality = is_face_acceptable(image, face.bbox, config)
    if not acceptable:
        raise ExtractionFailed(
            f"Face quality too low: height={quality['height']:.0f}px, "
            f"blur={quality['blur_score']:.1f}"
        )

    logger.info(
        f"✅ Enrollment embedding created "
        f"(quality: h={quality['height']:.0f}px, blur={quality['blur_score']:.1f})"
    )
    return face.embedding
