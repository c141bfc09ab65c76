"""
Ticket domain errors.

Raised inside lifecycle transactions so the enclosing atomic block rolls
back, then returned to callers wrapped in `Err`.
"""

from __future__ import annotations

from apps.common.types import BusinessError


class TicketError(BusinessError):
    """Base class for ticket core errors"""


class TicketValidationError(TicketError):
    """Missing or malformed input - message is shown to the caller verbatim"""


class NotFoundError(TicketError):
    """Referenced ticket, employee, provider or device type does not exist"""


class InvalidStatusError(TicketError):
    """Status value or transition not allowed"""


class InvalidRatingError(TicketError):
    """Rating score outside the allowed range"""


class TooManyFilesError(TicketError):
    """Attachment batch larger than the policy allows"""


class InvalidFileError(TicketError):
    """One or more attachments violated the upload policy"""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DuplicateRatingError(TicketError):
    """Ticket already carries a rating"""


class OperationTimeoutError(TicketError):
    """Storage did not answer in time"""

    public_message = "The operation timed out, please try again"


class StorageError(TicketError):
    """Infrastructure failure - internals are logged, never surfaced"""

    public_message = "The operation could not be completed, please try again later"
