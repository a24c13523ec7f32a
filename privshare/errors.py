# privshare/errors.py
"""
Exception hierarchy for PrivShare.

Every failure surfaced to a caller derives from PrivShareError so host
applications can catch the whole family in one place.
"""

from typing import Optional


class PrivShareError(Exception):
    """Base class for all PrivShare errors."""


class ValidationError(PrivShareError, ValueError):
    """Malformed share code, key or content id. Raised before any network call."""


class DecodeError(PrivShareError, ValueError):
    """Transport text could not be decoded back to bytes."""


class ConfigurationError(PrivShareError):
    """Required collaborator credentials are missing."""


class EncryptionError(PrivShareError):
    """Payload encryption failed."""


class DecryptionError(PrivShareError):
    """Payload decryption failed (wrong key/IV or corrupted data)."""

    def __init__(self, message: str = "File decryption failed, please check if the key is correct"):
        super().__init__(message)


class MissingKeyError(PrivShareError):
    """The record is encrypted and no key was supplied."""

    def __init__(self, message: str = "This file is encrypted. Please provide the decryption key."):
        super().__init__(message)


class ProviderSelectionError(PrivShareError):
    """
    Both the auto-selected and the fallback storage provider failed.

    `reason` is one of TRANSIENT_NETWORK, TRANSACTION_FAILED, ACCESS_DENIED
    or UNKNOWN and drives the guidance shown to the user.
    """

    TRANSIENT_NETWORK = "transient_network"
    TRANSACTION_FAILED = "transaction_failed"
    ACCESS_DENIED = "access_denied"
    UNKNOWN = "unknown"

    def __init__(
        self,
        message: str,
        reason: str = UNKNOWN,
        primary_error: Optional[BaseException] = None,
        fallback_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class StorageUploadError(PrivShareError):
    """The selected provider did not accept the payload."""


class PublishError(PrivShareError):
    """The record store rejected the write or was unreachable."""


class RecordLookupError(PrivShareError):
    """The record store could not be queried."""


class RecordNotFoundError(RecordLookupError):
    """No record is published under the share code."""

    def __init__(
        self,
        message: str = "File not found. The share code may be invalid or the file may have been deleted.",
    ):
        super().__init__(message)


class AllProvidersExhausted(PrivShareError):
    """Every provider and gateway endpoint failed to return the content."""

    def __init__(self, last_error: Optional[str] = None, attempts: int = 0):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Failed to download file from any provider. Last error: {last_error or 'Unknown error'}"
        )
