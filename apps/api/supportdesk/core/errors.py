"""Error taxonomy shared by the API service and the client library.

Every failure that reaches a caller is one of these kinds. Store and
transport errors are converted at the boundary of the operation that
started them.
"""


class SupportDeskError(Exception):
    """Base exception for support desk errors."""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class ValidationError(SupportDeskError):
    """Required field empty or attachment rejected."""

    status_code = 422


class AuthError(SupportDeskError):
    """No authenticated session or insufficient role."""

    status_code = 401

    def __init__(self, message: str = "", *, authenticated: bool = False):
        super().__init__(message)
        self.authenticated = authenticated
        if authenticated:
            self.status_code = 403


class NotFoundError(SupportDeskError):
    """Requested ticket or profile does not exist."""

    status_code = 404


class TicketClosedError(SupportDeskError):
    """Ticket is closed; no further messages can be sent."""

    status_code = 409


class ChannelDisruptionError(SupportDeskError):
    """Realtime subscription dropped and could not be re-established."""

    status_code = 503


class ClassificationServiceError(SupportDeskError):
    """Triage or reply-draft call failed."""

    status_code = 502


class AttachmentUploadError(SupportDeskError):
    """Attachment could not be stored."""

    status_code = 502
