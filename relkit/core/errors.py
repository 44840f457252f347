"""Process exit codes.

Every relkit command exits with one of these values. A handled failure
(validation failed, release not resumable, publish partially failed ...)
is always ``FAILURE``; the error itself is reported on the console.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    FAILURE = 1

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
