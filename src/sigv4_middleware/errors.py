"""Error definitions for the SigV4 signing middleware."""


class SigV4Error(Exception):
    """A signing error with code, message, and HTTP status.

    Attributes:
        code: Short error code string (e.g. "IncompleteBody").
        message: Human-readable error description.
        http_status: The HTTP status code to answer with when the error
            surfaces at the request level.
    """

    def __init__(self, code: str, message: str, http_status: int = 400) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status code (default 400).
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


# -- Pre-defined errors --------------------------------------------------------


class BodyReadError(SigV4Error):
    """The request body could not be read completely."""

    def __init__(
        self, message: str = "The client disconnected before the request body was fully read."
    ) -> None:
        super().__init__(code="IncompleteBody", message=message, http_status=400)


class ConfigurationError(SigV4Error):
    """Signing configuration is missing a required value."""

    def __init__(self, message: str = "Invalid signing configuration.") -> None:
        super().__init__(code="InvalidConfiguration", message=message, http_status=500)


class MalformedAuthorizationHeader(SigV4Error):
    """An Authorization header is not a well-formed SigV4 header."""

    def __init__(self, message: str = "Invalid Authorization header format.") -> None:
        super().__init__(code="MalformedAuthorizationHeader", message=message, http_status=400)
