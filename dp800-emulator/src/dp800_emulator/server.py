"""TCP server exposing a DP800 emulator on a raw SCPI socket.

Serves a :class:`Dp800Emulator` over TCP so that :class:`InstrumentClient`,
telnet or netcat can talk to it exactly as to a real supply's LAN port.

Example:
    Start an emulator server on an ephemeral port::

        from dp800_emulator import EmulatorServer, make_dp832_emulator

        server = EmulatorServer(make_dp832_emulator(), port=0)
        server.start()

        host, port = server.address
        # telnet localhost {port}
        # > *IDN?
        # < RIGOL TECHNOLOGIES,DP832,DP8C000000001,00.01.16

        server.stop()
"""

from __future__ import annotations

import logging
import socketserver
import threading
from typing import Any

from dp800_emulator.emulator import Dp800Emulator

logger = logging.getLogger(__name__)


class _ScpiRequestHandler(socketserver.StreamRequestHandler):
    """Handle one TCP connection, forwarding lines to the emulator.

    Each line is one command or query. Queries (lines containing ``?``) are
    answered with one ``\\n``-terminated line unless the server is muted.
    """

    server: _ScpiTcpServer

    def handle(self) -> None:
        logger.info("Client connected from %s:%d", *self.client_address[:2])
        for raw_line in self.rfile:
            line = raw_line.decode("ascii", errors="replace").strip()
            if not line:
                continue
            is_query = "?" in line
            if is_query and self.server.hang_up_on_query:
                logger.info("Hanging up on query %r", line)
                return
            with self.server.lock:
                self.server.emulator.write(line)
                response = self.server.emulator.read() if is_query else None
            if response is None or self.server.muted:
                continue
            self.wfile.write((response + "\n").encode("ascii"))
            self.wfile.flush()
        logger.info("Client disconnected")


class _ScpiTcpServer(socketserver.ThreadingTCPServer):
    """TCP server holding the emulator and fault-injection switches."""

    allow_reuse_address = True
    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        emulator: Dp800Emulator,
        **kwargs: Any,
    ) -> None:
        self.emulator = emulator
        self.lock = threading.Lock()
        self.muted = False
        self.hang_up_on_query = False
        super().__init__(server_address, _ScpiRequestHandler, **kwargs)


class EmulatorServer:
    """TCP server wrapping a :class:`Dp800Emulator`.

    Runs in a background daemon thread. Each client connection gets its own
    handler thread; emulator access is serialized.

    Args:
        emulator: The emulator to serve.
        host: Bind address (default ``"127.0.0.1"``).
        port: Bind port (default ``5555``). Use ``0`` for an OS-assigned
            ephemeral port.
    """

    def __init__(
        self,
        emulator: Dp800Emulator,
        host: str = "127.0.0.1",
        port: int = 5555,
    ) -> None:
        self._server = _ScpiTcpServer((host, port), emulator)
        self._thread: threading.Thread | None = None

    @property
    def emulator(self) -> Dp800Emulator:
        """The served emulator."""
        return self._server.emulator

    @property
    def muted(self) -> bool:
        """When True, queries are processed but never answered."""
        return self._server.muted

    @muted.setter
    def muted(self, value: bool) -> None:
        self._server.muted = value

    @property
    def hang_up_on_query(self) -> bool:
        """When True, the connection is closed as soon as a query arrives."""
        return self._server.hang_up_on_query

    @hang_up_on_query.setter
    def hang_up_on_query(self, value: bool) -> None:
        self._server.hang_up_on_query = value

    def start(self) -> None:
        """Start serving in a daemon thread."""
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info("Emulator listening on %s:%d", *self.address)

    def stop(self) -> None:
        """Shut down the server and wait for the thread to exit."""
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join()
        self._server.server_close()

    def serve_forever(self) -> None:
        """Serve in the calling thread until interrupted."""
        logger.info("Emulator listening on %s:%d", *self.address)
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()

    @property
    def address(self) -> tuple[str, int]:
        """Return the actual bound ``(host, port)`` address.

        Useful when binding to port 0 to get an ephemeral port assigned
        by the operating system.
        """
        addr = self._server.server_address
        return (str(addr[0]), int(addr[1]))

    def __enter__(self) -> EmulatorServer:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()
