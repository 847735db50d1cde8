"""FTP-specific exceptions for FTPLink.

Custom exception hierarchy shared by the client engine and the server
dispatcher, so callers can tell connection failures, malformed replies
and unexpected status codes apart.
"""

from typing import Optional


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Failed to establish a control or data connection."""

    def __init__(self, host: str, port: int, original_error: Exception = None):
        self.host = host
        self.port = port
        message = f"Failed to connect to {host}:{port}"
        super().__init__(message, original_error)


class FTPTimeoutError(FTPConnectionError):
    """Connection establishment timed out."""

    def __init__(self, host: str, port: int, timeout: Optional[float]):
        self.timeout = timeout
        super().__init__(host, port)
        self.message = f"Connection to {host}:{port} timed out after {timeout} seconds"


class FTPConnectionClosedError(FTPError):
    """Control connection closed while a reply was expected."""

    def __init__(self, operation: str = "Reading reply"):
        message = f"{operation} failed: control connection closed by peer"
        super().__init__(message)


class FTPNotConnectedError(FTPError):
    """Operation attempted without active FTP connection."""

    def __init__(self, operation: str = "Operation"):
        message = f"{operation} requires an active FTP connection"
        super().__init__(message)


class FTPProtocolError(FTPError):
    """Reply text did not follow the expected format."""


class FTPListingError(FTPProtocolError):
    """A directory listing line could not be parsed."""

    def __init__(self, line: str, reason: str, original_error: Exception = None):
        self.line = line
        self.reason = reason
        message = f"Unsupported LIST line ({reason}): {line!r}"
        super().__init__(message, original_error)


class FTPReplyError(FTPError):
    """Server answered with an unexpected status code."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.reply_message = message
        super().__init__(f"{code} {message}")


class FTPAuthenticationError(FTPError):
    """FTP authentication (login) failed."""

    def __init__(self, username: str, original_error: Exception = None):
        self.username = username
        message = f"Authentication failed for user '{username}'"
        super().__init__(message, original_error)

    @property
    def code(self) -> Optional[int]:
        """Status code of the rejecting reply, if the server sent one."""
        if isinstance(self.original_error, FTPReplyError):
            return self.original_error.code
        return None

    @property
    def reply_message(self) -> Optional[str]:
        """Message of the rejecting reply, if the server sent one."""
        if isinstance(self.original_error, FTPReplyError):
            return self.original_error.reply_message
        return None
