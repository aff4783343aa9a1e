class CollaboratorError(Exception):
    """Raised when an external analysis service cannot be used."""


class PayloadTooLargeError(CollaboratorError):
    """Raised when a service refuses the image because of its size."""


class ScoringServiceError(CollaboratorError):
    """Raised when the generative scoring call fails or returns unusable output."""


class CollaboratorNotConfiguredError(CollaboratorError):
    """Raised when a service is built without the credentials it needs."""
