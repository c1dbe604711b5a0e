"""
Face quality assessment module.

Gates enrollment photos on:
- Size (height in pixels)
- Sharpness (Laplacian variance)
"""

import cv2
import numpy as np
from typing import Dict, Tuple
from ..config import Config


def compute_blur_score(gray_face: np.ndarray) -> float:
    """
    Compute blur score using Laplacian variance.

    Higher values indicate sharper images.
    """
    return float(cv2.Laplacian(gray_face, cv2.CV_64F).var())


def is_face_acceptable(
    image_bgr: np.ndarray,
    bbox: np.ndarray,
    config: Config
) -> Tuple[bool, Dict[str, float]]:
    """
    Check if a face is good enough to enroll.

    Args:
        image_bgr: Full image in BGR format
        bbox: Bounding box [x1, y1, x2, y2]
        config: Service configuration

    Returns:
        Tuple of (acceptable, metrics) where metrics holds
        'height' and 'blur_score'
    """
    h_img, w_img = image_bgr.shape[:2]
    x1, y1, x2, y2 = [int(v) for v in bbox[:4]]
    x1, y1 = max(0, x1), max(0, y1)
    x2, y2 = min(w_img, x2), min(h_img, y2)

    height = max(0, y2 - y1)
    metrics: Dict[str, float] = {'height': float(height), 'blur_score': 0.0}

    if height < config.min_face_height_pixels or x2 <= x1:
        return False, metrics

    face = image_bgr[y1:y2, x1:x2]
    gray = cv2.cvtColor(face, cv2.COLOR_BGR2GRAY) if face.ndim == 3 else face
    metrics['blur_score'] = compute_blur_score(gray)

    return metrics['blur_score'] >= config.min_blur_variance, metrics
