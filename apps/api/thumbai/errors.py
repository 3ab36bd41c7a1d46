"""Error taxonomy shared by the API and the job subsystem.

Every error carries the HTTP status it maps to and a public message that is
safe to return to callers. Internal detail goes to the server log only.
"""

from __future__ import annotations


class ThumbAIError(Exception):
    """Base class for all application errors."""

    status_code: int = 500
    public_message: str = "Internal server error"
    # When False, callers only ever see public_message
    expose_message: bool = True

    def __init__(self, message: str | None = None):
        self.message = message or self.public_message
        super().__init__(self.message)


class NonRetriableError(ThumbAIError):
    """Marker base: the queue runner must not retry a job that raised this."""


class ConfigurationError(NonRetriableError):
    """A required external credential or client is missing."""

    status_code = 503
    public_message = "Service unavailable"
    expose_message = False


class UnauthorizedError(ThumbAIError):
    """The request carries no valid principal."""

    status_code = 401
    public_message = "Unauthorized"


class NotFoundError(ThumbAIError):
    """Target row is absent or owned by another user."""

    status_code = 404
    public_message = "Not found"


class DatastoreError(ThumbAIError):
    """The relational datastore failed. Detail is never exposed."""

    status_code = 500


class ProviderError(ThumbAIError):
    """The image-generation provider failed."""

    status_code = 502
    public_message = "Image provider error"


class TransientProviderError(ProviderError):
    """Provider failure worth retrying (timeouts, 429, 5xx)."""


class ProviderRejectedError(ProviderError, NonRetriableError):
    """Provider refused the request (bad prompt, invalid parameters)."""


class MailDeliveryError(ThumbAIError):
    """The transactional email API refused or failed a send."""

    status_code = 502
    public_message = "Failed to send email"


class ConflictError(ThumbAIError):
    """The target identifier is already taken."""

    status_code = 409
    public_message = "Conflict"
