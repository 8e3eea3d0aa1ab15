"""Error taxonomy for the backup engine."""

from __future__ import annotations


class BackupError(Exception):
    """Base class for all backup, export and restore failures."""


class AuthRequiredError(BackupError):
    """The backend needs an interactive sign-in before it can be used."""


class AvailabilityError(BackupError):
    """The platform or remote service is unreachable or unsupported."""


class FormatError(BackupError):
    """A snapshot could not be parsed or has an unknown schema version."""


class IncompleteManifestError(BackupError):
    """A chunk manifest is missing at least one chunk."""

    def __init__(self, message: str, missing: list[int] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class NetworkError(BackupError):
    """Transport-level failure talking to a backend."""


class BackupTimeoutError(NetworkError):
    """A backend call did not finish within its timeout."""


class PartialImportError(BackupError):
    """An import failed partway through a category; earlier writes are kept."""

    def __init__(self, category: str, cause: Exception) -> None:
        super().__init__(f"Import of {category} failed: {cause}")
        self.category = category
        self.cause = cause
