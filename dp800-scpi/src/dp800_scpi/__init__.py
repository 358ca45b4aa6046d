"""SCPI protocol layer for Rigol DP800-series power supplies.

This package turns typed operations into framed SCPI command lines on a
persistent TCP connection and decodes the replies. It includes:

- Typed operations with static reply metadata
- Command encoder and response decoder
- TCP stream transport tolerant of partial I/O
- A serialized instrument client with explicit reconnection
- A high-level :class:`Dp800` driver
- Exception types separating connection loss from malformed replies

Typical usage::

    from dp800_scpi import create_instrument

    psu = create_instrument("192.168.1.50:5555")
    psu.set_voltage(1, 5.0)
    psu.set_output_enabled(1, True)
    print(psu.measure(1))
    psu.close()
"""

from dp800_scpi.client import InstrumentClient, PendingExchange, open_tcp_transport
from dp800_scpi.config import DEFAULT_PORT, ClientConfig, parse_address
from dp800_scpi.decoder import decode, parse_idn_response
from dp800_scpi.encoder import encode
from dp800_scpi.errors import (
    ClientError,
    ConnectionLostError,
    DecodeError,
    Dp800Error,
    EmptyReplyError,
    InvalidChannelError,
    InvalidParameterError,
    NotANumberError,
    NotConnectedError,
    ProtocolError,
    TransportClosedError,
    TransportError,
    TransportIoError,
    TransportTimeoutError,
    UnrecognizedTokenError,
)
from dp800_scpi.psu import Dp800, create_instrument
from dp800_scpi.transport import TcpTransport, Transport
from dp800_scpi.types import (
    ClientState,
    ConnectionState,
    EncodedCommand,
    InstrumentIdentity,
    Measurement,
    RawReply,
)

__all__ = [
    # Client
    "InstrumentClient",
    "PendingExchange",
    "open_tcp_transport",
    # Config
    "DEFAULT_PORT",
    "ClientConfig",
    "parse_address",
    # Codec
    "decode",
    "encode",
    "parse_idn_response",
    # Errors
    "ClientError",
    "ConnectionLostError",
    "DecodeError",
    "Dp800Error",
    "EmptyReplyError",
    "InvalidChannelError",
    "InvalidParameterError",
    "NotANumberError",
    "NotConnectedError",
    "ProtocolError",
    "TransportClosedError",
    "TransportError",
    "TransportIoError",
    "TransportTimeoutError",
    "UnrecognizedTokenError",
    # Driver
    "Dp800",
    "create_instrument",
    # Transport
    "TcpTransport",
    "Transport",
    # Types
    "ClientState",
    "ConnectionState",
    "EncodedCommand",
    "InstrumentIdentity",
    "Measurement",
    "RawReply",
]
