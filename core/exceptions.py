"""Custom exceptions for the relay."""


class RelayError(Exception):
    """Base exception for relay errors."""
    pass


class JoinRejectedError(RelayError):
    """
    Raised when a connection may not join a room.

    `notice` is sent to the client as an error event before the
    connection is closed with `close_reason`.
    """

    def __init__(self, message: str, close_reason: str, notice: str = None):
        super().__init__(message)
        self.close_reason = close_reason
        self.notice = notice


class PayloadRejectedError(RelayError):
    """Exception raised for inbound payloads that are refused but not fatal."""
    pass


class TransportError(RelayError):
    """Exception raised when the underlying transport fails."""
    pass
