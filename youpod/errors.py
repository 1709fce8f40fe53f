"""Error types raised by youpod."""

from typing import Optional


class YouPodError(Exception):
    """Base class for youpod errors."""


class ConfigError(YouPodError, ValueError):
    """The configuration file is missing or invalid."""


class StorageUnavailable(YouPodError):
    """The ledger directory or backing file cannot be created or opened."""


class StorageWriteFailed(YouPodError):
    """A ledger record could not be durably written.

    The in-memory view is left as it was before the failed call.
    """


class MalformedRecord(YouPodError, ValueError):
    """A single ledger line could not be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class UnknownSourceReference(YouPodError, LookupError):
    """A ledger entry refers to a source that is not configured."""

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"No configured source matches {source_id!r}")


class AcquisitionFailed(YouPodError):
    """Content acquisition gave up on an item after its retries."""

    def __init__(self, item_id: str, attempts: int, reason: str = ""):
        self.item_id = item_id
        self.attempts = attempts
        message = f"Failed to acquire {item_id} after {attempts} attempt(s)"
        if reason:
            message += f": {reason}"
        super().__init__(message)
