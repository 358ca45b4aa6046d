"""Exception types for dp800-scpi.

All exceptions raised by the protocol layer inherit from :class:`Dp800Error`,
so callers can catch every library error with a single except clause.

Exception hierarchy:
    Dp800Error (base)
    +-- TransportError: stream failures, always fatal to the connection
    |   +-- TransportTimeoutError: deadline elapsed before a terminator
    |   +-- TransportClosedError: peer closed the stream
    |   +-- TransportIoError: any other socket failure
    +-- DecodeError: malformed reply, the connection stays usable
    |   +-- NotANumberError
    |   +-- UnrecognizedTokenError
    |   +-- EmptyReplyError
    +-- ClientError: what :class:`InstrumentClient` raises to its callers
        +-- NotConnectedError
        +-- ConnectionLostError
        +-- ProtocolError
        +-- InvalidChannelError
        +-- InvalidParameterError
"""

from __future__ import annotations


class Dp800Error(Exception):
    """Base exception for all dp800 errors."""


# -- Transport ----------------------------------------------------------------


class TransportError(Dp800Error):
    """Raised when the instrument stream fails.

    Every transport error leaves the connection closed. The transport never
    reconnects on its own; the owner must build a new one.
    """


class TransportTimeoutError(TransportError):
    """Raised when a read or write does not finish before its deadline."""


class TransportClosedError(TransportError):
    """Raised when the peer ends the stream before a reply is complete."""


class TransportIoError(TransportError):
    """Raised for socket errors and misbehaving peers (e.g. overlong replies)."""


# -- Decoding -----------------------------------------------------------------


class DecodeError(Dp800Error):
    """Raised when reply bytes do not match the operation's result type.

    Attributes:
        reply: The offending reply text.
    """

    def __init__(self, message: str, reply: str = "") -> None:
        self.reply = reply
        super().__init__(message)


class NotANumberError(DecodeError):
    """Raised when a numeric reply cannot be parsed."""


class UnrecognizedTokenError(DecodeError):
    """Raised when a boolean reply is not one of the known tokens."""


class EmptyReplyError(DecodeError):
    """Raised when the instrument answered with an empty line."""


# -- Client -------------------------------------------------------------------


class ClientError(Dp800Error):
    """Base exception for errors surfaced by :class:`InstrumentClient`."""


class NotConnectedError(ClientError):
    """Raised when an operation is attempted without a live connection."""


class ConnectionLostError(ClientError):
    """Raised when the connection failed during an exchange.

    The client is disconnected afterwards and must be reconnected explicitly.

    Attributes:
        reason: The transport error that ended the connection.
    """

    def __init__(self, reason: TransportError) -> None:
        self.reason = reason
        super().__init__(f"Connection lost: {reason}")


class ProtocolError(ClientError):
    """Raised when a reply could not be decoded.

    The wire exchange completed, so the connection remains usable.

    Attributes:
        decode_error: The underlying decode failure.
    """

    def __init__(self, decode_error: DecodeError) -> None:
        self.decode_error = decode_error
        super().__init__(f"Protocol error: {decode_error}")


class InvalidChannelError(ClientError):
    """Raised when an operation addresses a channel the supply does not have.

    Attributes:
        channel: The requested channel number.
        channel_count: Number of channels on the supply.
    """

    def __init__(self, channel: int, channel_count: int) -> None:
        self.channel = channel
        self.channel_count = channel_count
        super().__init__(f"Channel {channel} out of range (1-{channel_count})")


class InvalidParameterError(ClientError):
    """Raised when an operation carries a parameter the instrument cannot accept."""
