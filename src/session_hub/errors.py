"""Error types raised by the session and trash stores."""


class SessionHubError(Exception):
    """Base class for every reportable session-hub failure."""

    code = "session_hub_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code


class NotFoundError(SessionHubError):
    code = "not_found"


class InvalidTransition(SessionHubError):
    code = "invalid_transition"


class DestinationExists(SessionHubError):
    code = "destination_exists"


class OutOfBoundsPath(SessionHubError):
    code = "out_of_bounds_path"


class UnparsableLocation(SessionHubError):
    code = "unparsable_location"


class MalformedToken(SessionHubError):
    code = "malformed_token"


class UnclassifiableError(SessionHubError):
    code = "unclassifiable"


class UnsupportedOperation(SessionHubError):
    code = "unsupported_operation"
