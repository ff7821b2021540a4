from typing import Optional


class VoiceBenchError(Exception):
    """Base class for engine errors."""


class ConfigurationError(VoiceBenchError):
    """Vendor or template configuration is unusable (missing URL, auth material, bad body template)."""


class VendorError(VoiceBenchError):
    """Vendor answered with a non-success status or reported a business error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ExtractionError(VoiceBenchError):
    """Vendor response did not contain the expected text or audio."""


class ConflictError(VoiceBenchError):
    """Id collides with a built-in template or an existing vendor."""


class NotEditableError(VoiceBenchError):
    """Target is built-in or system-provisioned and cannot be changed."""


class NotFoundError(VoiceBenchError):
    """Referenced template, vendor or job does not exist."""
