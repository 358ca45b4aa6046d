"""Stream transport for the instrument's SCPI socket.

This module defines the :class:`Transport` protocol, the interface the
client needs from a connection, and :class:`TcpTransport`, its socket
implementation.

A transport owns exactly one stream. Any failure closes that stream and
leaves the transport in :attr:`ConnectionState.DISCONNECTED`; transports are
never reopened in place, the owner builds a new one instead.
"""

from __future__ import annotations

import logging
import socket
import time
from typing import NoReturn, Protocol

from dp800_scpi.errors import (
    TransportClosedError,
    TransportError,
    TransportIoError,
    TransportTimeoutError,
)
from dp800_scpi.types import TERMINATOR, ConnectionState, EncodedCommand, RawReply

logger = logging.getLogger(__name__)

DEFAULT_MAX_REPLY_LENGTH = 4096
_RECV_SIZE = 4096


class Transport(Protocol):
    """Protocol for a command/reply stream to one instrument.

    This is a structural subtyping protocol. Any class that implements these
    members is a valid transport, which lets tests substitute in-memory fakes.
    """

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        ...

    def write(self, command: EncodedCommand) -> None:
        """Send every byte of *command*.

        Raises:
            TransportError: On any failure; the transport is closed afterwards.
        """
        ...

    def has_pending_input(self) -> bool:
        """Return True if input has arrived that no exchange asked for."""
        ...

    def read_until_terminator(self, deadline: float) -> RawReply:
        """Read one reply line.

        Args:
            deadline: Absolute :func:`time.monotonic` instant to give up at.

        Raises:
            TransportError: On any failure; the transport is closed afterwards.
        """
        ...

    def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        ...


class TcpTransport:
    """Transport over a connected TCP socket.

    Use :meth:`open` to connect to an instrument, or pass an already
    connected socket (e.g. one end of :func:`socket.socketpair`).

    Args:
        sock: A connected stream socket. Ownership passes to the transport.
        write_timeout: Seconds a write may stall before failing.
        max_reply_length: Largest reply accepted, in bytes, before the peer
            is considered broken.
    """

    def __init__(
        self,
        sock: socket.socket,
        *,
        write_timeout: float = 5.0,
        max_reply_length: int = DEFAULT_MAX_REPLY_LENGTH,
    ) -> None:
        self._sock: socket.socket | None = sock
        self._write_timeout = write_timeout
        self._max_reply_length = max_reply_length
        self._buffer = bytearray()

    @classmethod
    def open(
        cls,
        host: str,
        port: int,
        *,
        connect_timeout: float = 5.0,
        write_timeout: float = 5.0,
        max_reply_length: int = DEFAULT_MAX_REPLY_LENGTH,
    ) -> TcpTransport:
        """Connect to ``host:port``.

        Raises:
            TransportTimeoutError: If the connection attempt times out.
            TransportIoError: If the connection cannot be established.
        """
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout)
        except socket.timeout as exc:
            raise TransportTimeoutError(f"Timed out connecting to {host}:{port}") from exc
        except OSError as exc:
            raise TransportIoError(f"Failed to connect to {host}:{port}: {exc}") from exc
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        logger.debug("Opened TCP stream to %s:%d", host, port)
        return cls(sock, write_timeout=write_timeout, max_reply_length=max_reply_length)

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        if self._sock is None:
            return ConnectionState.DISCONNECTED
        return ConnectionState.CONNECTED

    def has_pending_input(self) -> bool:
        """Return True if unread bytes are buffered or waiting on the socket.

        End of stream also counts as pending input.
        """
        if self._buffer:
            return True
        sock = self._sock
        if sock is None:
            return False
        try:
            sock.settimeout(0)
            sock.recv(1, socket.MSG_PEEK)
        except BlockingIOError:
            return False
        except OSError:
            return True
        return True

    def write(self, command: EncodedCommand) -> None:
        """Send every byte of *command*, resuming after partial sends.

        Raises:
            TransportTimeoutError: If the peer stops accepting data.
            TransportClosedError: If the stream is closed.
            TransportIoError: On any other socket error.
        """
        sock = self._require_open()
        view = memoryview(command.payload)
        sent_total = 0
        try:
            sock.settimeout(self._write_timeout)
            while sent_total < len(view):
                sent = sock.send(view[sent_total:])
                if sent == 0:
                    self._fail(TransportClosedError("Stream closed during write"))
                sent_total += sent
        except socket.timeout as exc:
            self._fail(TransportTimeoutError("Timed out writing command"), exc)
        except OSError as exc:
            self._fail(TransportIoError(f"Write failed: {exc}"), exc)

    def read_until_terminator(self, deadline: float) -> RawReply:
        """Read until a line terminator, across as many receives as needed.

        A carriage return before the terminator is dropped. Bytes following
        the terminator belong to no outstanding command, so they close the
        stream.

        Args:
            deadline: Absolute :func:`time.monotonic` instant to give up at.

        Raises:
            TransportTimeoutError: If *deadline* passes without a terminator.
            TransportClosedError: If the peer ends the stream first.
            TransportIoError: On socket errors, an overlong reply, or data
                after the terminator.
        """
        sock = self._require_open()
        while True:
            index = self._buffer.find(TERMINATOR)
            if index >= 0:
                line = bytes(self._buffer[:index])
                del self._buffer[: index + len(TERMINATOR)]
                if self._buffer:
                    self._fail(
                        TransportIoError(f"{len(self._buffer)} unexpected bytes after reply terminator")
                    )
                if line.endswith(b"\r"):
                    line = line[:-1]
                return RawReply(line)
            if len(self._buffer) > self._max_reply_length:
                self._fail(
                    TransportIoError(
                        f"Reply exceeded {self._max_reply_length} bytes without a terminator"
                    )
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._fail(TransportTimeoutError("Timed out waiting for reply"))
            try:
                sock.settimeout(remaining)
                chunk = sock.recv(_RECV_SIZE)
            except socket.timeout as exc:
                self._fail(TransportTimeoutError("Timed out waiting for reply"), exc)
            except OSError as exc:
                self._fail(TransportIoError(f"Read failed: {exc}"), exc)
            if not chunk:
                self._fail(TransportClosedError("Stream closed before reply terminator"))
            self._buffer.extend(chunk)

    def close(self) -> None:
        """Close the socket. Safe to call multiple times."""
        sock, self._sock = self._sock, None
        self._buffer.clear()
        if sock is None:
            return
        try:
            sock.close()
        except OSError:
            logger.debug("Error while closing socket", exc_info=True)

    def _require_open(self) -> socket.socket:
        if self._sock is None:
            raise TransportClosedError("Transport is closed")
        return self._sock

    def _fail(self, error: TransportError, cause: BaseException | None = None) -> NoReturn:
        """Close the stream and raise *error*."""
        self.close()
        raise error from cause
