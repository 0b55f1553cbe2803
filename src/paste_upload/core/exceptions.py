"""Exception hierarchy for the paste-upload pipeline.

Every error raised by the package derives from `PasteUploadError` so hosts can
catch the family in one place. The orchestrator converts all of them into
user-visible messages; none escape a single editor interaction.
"""


class PasteUploadError(Exception):
    """Base exception for paste-upload errors."""


class ConfigurationError(PasteUploadError):
    """Raised when required destination settings are missing or invalid."""


class ValidationError(PasteUploadError):
    """Raised when user-supplied values (e.g. client overrides) are rejected."""


class DeliveryError(PasteUploadError):
    """Raised when a sink or remote endpoint cannot be reached or rejects a request."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        """Initialize with a message and the underlying transport error."""
        super().__init__(message)
        self.cause = cause


class CancellationError(PasteUploadError):
    """Raised when the user aborts a long-running transfer.

    Distinct from `DeliveryError`: a cancelled operation must not be retried.
    """


class UserDeclinedError(PasteUploadError):
    """Raised internally when the user answers "no" to a policy prompt."""
