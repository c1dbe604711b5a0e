"""
Error taxonomy for the Attendance Kiosk.

Detection failures carry the message shown on the kiosk screen as their
default text, so the coordinator can surface ``str(error)`` directly.
"""


class KioskError(Exception):
    """Base exception for the attendance kiosk."""

    default_message = 'Attendance kiosk error'

    def __init__(self, message: str = ''):
        super().__init__(message or self.default_message)


# Detection outcomes

class NoFaceDetected(KioskError):
    """Raised when the provider finds no face in the frame."""

    default_message = 'No face detected'


class MultipleFacesDetected(KioskError):
    """Raised when more than one face is presented in a single request."""

    default_message = 'Multiple faces detected. Please ensure only one person is in view.'


class NoEnrolledIdentities(KioskError):
    """Raised when matching runs against an empty store."""

    default_message = 'No identities enrolled'


class FaceNotRecognized(KioskError):
    """Raised when the nearest identity is farther than the threshold."""

    default_message = 'Face not recognized'


class EmbeddingDimensionError(KioskError, ValueError):
    """Raised when an embedding does not have the configured dimension."""

    default_message = 'Embedding has the wrong dimension'


# Embedding provider

class ModelInitFailure(KioskError):
    """Raised when the face models cannot be loaded."""

    default_message = 'Failed to load face recognition models. Please retry.'


class ProviderFailure(KioskError):
    """Raised when the embedding provider fails on a frame."""

    default_message = 'Error processing face recognition'


class ModelNotReady(ProviderFailure):
    """Raised when extraction is requested before the models are loaded."""

    default_message = 'Face recognition not initialized'


class ExtractionFailed(ProviderFailure):
    """Raised when detection or embedding extraction fails."""


# Storage

class DuplicateIdentity(KioskError):
    """Raised when enrolling an id that already exists."""

    default_message = 'Identity already exists'


class IdentityNotFound(KioskError):
    """Raised when updating or removing an unknown id."""

    default_message = 'Identity not found'


class StorageFailure(KioskError):
    """Raised when a repository read or write fails."""

    default_message = 'Storage failure'


class CameraError(KioskError):
    """Raised when the camera cannot be opened."""

    default_message = 'Failed to access camera'
