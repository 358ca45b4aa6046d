"""Instrument client: serialized command/reply exchanges.

This module provides :class:`InstrumentClient`, the public entry point of
the protocol layer. It validates and encodes operations, runs them through
the transport one exchange at a time, decodes replies, and classifies
failures:

* transport failures end the connection and raise
  :class:`ConnectionLostError`; the client never reconnects by itself,
* decode failures raise :class:`ProtocolError` and leave the connection up,
* operations on a disconnected client raise :class:`NotConnectedError`
  without touching the wire.

Typical usage::

    from dp800_scpi import InstrumentClient
    from dp800_scpi.operations import MeasureVoltage, SetVoltage

    with InstrumentClient.connect("192.168.1.50:5555") as client:
        client.execute(SetVoltage(channel=1, volts=3.3))
        volts = client.execute(MeasureVoltage(channel=1), timeout=0.5)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from dp800_scpi.config import ClientConfig
from dp800_scpi.decoder import OperationResult, decode
from dp800_scpi.encoder import encode
from dp800_scpi.errors import (
    ConnectionLostError,
    DecodeError,
    NotConnectedError,
    ProtocolError,
    TransportError,
    TransportIoError,
)
from dp800_scpi.operations import Operation
from dp800_scpi.transport import TcpTransport, Transport
from dp800_scpi.types import ClientState, ConnectionState, EncodedCommand, RawReply

logger = logging.getLogger(__name__)

TransportFactory = Callable[[ClientConfig], Transport]


def open_tcp_transport(config: ClientConfig) -> Transport:
    """Open a :class:`TcpTransport` as described by *config*."""
    return TcpTransport.open(
        config.host,
        config.port,
        connect_timeout=config.connect_timeout,
        write_timeout=config.write_timeout,
        max_reply_length=config.max_reply_length,
    )


@dataclass
class PendingExchange:
    """The single command currently on the wire, and its reply once read."""

    command: EncodedCommand
    reply: RawReply | None = None


class InstrumentClient:
    """Serialized, typed access to one instrument.

    Any number of threads may call :meth:`execute` concurrently; exchanges
    are run one at a time behind a lock, so a command is never written while
    another one is awaiting its reply.

    The client starts disconnected. :meth:`connect` builds and connects one
    in a single step.

    Args:
        config: Connection configuration.
        transport_factory: Callable opening a transport for *config*.
            Defaults to a TCP connection.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport_factory: TransportFactory = open_tcp_transport,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory
        self._transport: Transport | None = None
        self._pending: PendingExchange | None = None
        self._lock = threading.Lock()

    @classmethod
    def connect(
        cls,
        address: str,
        *,
        transport_factory: TransportFactory = open_tcp_transport,
        **options: Any,
    ) -> InstrumentClient:
        """Create a client and connect it to *address*.

        Args:
            address: Instrument address (``host`` or ``host:port``).
            transport_factory: Callable opening the transport.
            **options: Further :class:`ClientConfig` fields.

        Returns:
            A connected client.

        Raises:
            ValueError: If the address or options are invalid.
            NotConnectedError: If the connection cannot be established.
        """
        client = cls(ClientConfig.from_address(address, **options), transport_factory=transport_factory)
        client.reconnect()
        return client

    # -- Properties ----------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        """Return the configuration."""
        return self._config

    @property
    def state(self) -> ClientState:
        """Return the exchange state."""
        if self._pending is None:
            return ClientState.IDLE
        return ClientState.AWAITING_REPLY

    def is_connected(self) -> bool:
        """Return True if the client holds a live connection."""
        transport = self._transport
        return transport is not None and transport.state is ConnectionState.CONNECTED

    # -- Lifecycle -----------------------------------------------------------

    def reconnect(self) -> None:
        """Replace the connection with a freshly opened one.

        Any existing connection is closed first, whether or not it is still
        alive.

        Raises:
            NotConnectedError: If the new connection cannot be established.
        """
        with self._lock:
            self._drop_transport()
            try:
                self._transport = self._transport_factory(self._config)
            except TransportError as exc:
                logger.warning("Failed to connect to %s: %s", self._config.address, exc)
                raise NotConnectedError(f"Failed to connect to {self._config.address}: {exc}") from exc
        logger.info("Connected to %s", self._config.address)

    def close(self) -> None:
        """Close the connection. Safe to call multiple times."""
        with self._lock:
            if self._transport is not None:
                logger.info("Closing connection to %s", self._config.address)
            self._drop_transport()

    def __enter__(self) -> InstrumentClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    # -- Exchanges -----------------------------------------------------------

    def execute(self, operation: Operation, timeout: float | None = None) -> OperationResult:
        """Run one operation against the instrument.

        Args:
            operation: The operation to perform.
            timeout: Seconds to wait for the reply. Defaults to
                ``config.default_timeout``. Ignored for operations without a
                reply.

        Returns:
            ``None`` for operations without a reply, otherwise the decoded
            result (see :func:`dp800_scpi.decoder.decode`).

        Raises:
            InvalidChannelError: If the operation addresses a missing channel.
            InvalidParameterError: If a parameter cannot be sent.
            NotConnectedError: If there is no live connection.
            ConnectionLostError: If the connection failed or timed out during
                the exchange. The client is disconnected afterwards.
            ProtocolError: If the reply could not be decoded. The connection
                stays usable.
        """
        operation.validate(self._config.channel_count)
        if timeout is None:
            timeout = self._config.default_timeout
        elif timeout <= 0:
            raise ValueError("timeout must be positive")

        with self._lock:
            transport = self._transport
            if transport is None or transport.state is not ConnectionState.CONNECTED:
                self._drop_transport()
                raise NotConnectedError(f"Not connected to {self._config.address}")
            reply = self._exchange(transport, encode(operation), timeout)

        if reply is None:
            return None
        try:
            return decode(operation, reply)
        except DecodeError as exc:
            logger.warning("Undecodable reply to %s: %s", type(operation).__name__, exc)
            raise ProtocolError(exc) from exc

    # -- Private helpers -----------------------------------------------------

    def _exchange(self, transport: Transport, command: EncodedCommand, timeout: float) -> RawReply | None:
        """Write *command* and read its reply, if any. Caller holds the lock."""
        self._pending = PendingExchange(command)
        try:
            if transport.has_pending_input():
                transport.close()
                raise TransportIoError("Unsolicited data waiting on the connection")
            logger.debug("-> %s", command.text)
            transport.write(command)
            if not command.expects_reply:
                return None
            reply = transport.read_until_terminator(time.monotonic() + timeout)
            self._pending.reply = reply
            logger.debug("<- %s", reply.text)
            return reply
        except TransportError as exc:
            logger.warning("Connection to %s lost during %r: %s", self._config.address, command.text, exc)
            self._drop_transport()
            raise ConnectionLostError(exc) from exc
        finally:
            self._pending = None

    def _drop_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
