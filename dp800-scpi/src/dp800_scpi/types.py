"""Value types shared by the dp800-scpi modules.

Classes:
    EncodedCommand: One framed command ready for the wire.
    RawReply: One reply line as received, without its terminator.
    Measurement: Combined voltage/current/power reading of a channel.
    InstrumentIdentity: Parsed ``*IDN?`` response.
    ConnectionState: Whether a transport holds a live stream.
    ClientState: Exchange state of an :class:`InstrumentClient`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

TERMINATOR = b"\n"
"""Line terminator written after every command. Reads also accept ``\\r\\n``."""


@dataclass(frozen=True)
class EncodedCommand:
    """An encoded command, terminator included.

    Attributes:
        payload: ASCII bytes to send, ending with :data:`TERMINATOR`.
        expects_reply: Whether the instrument answers this command with a line.
    """

    payload: bytes
    expects_reply: bool

    @property
    def text(self) -> str:
        """The command without its terminator, for logging."""
        return self.payload.rstrip(b"\r\n").decode("ascii")


@dataclass(frozen=True)
class RawReply:
    """A reply line received from the instrument.

    Attributes:
        payload: Bytes up to, and excluding, the terminator.
    """

    payload: bytes

    @property
    def text(self) -> str:
        """The reply decoded as ASCII; undecodable bytes become U+FFFD."""
        return self.payload.decode("ascii", errors="replace")


@dataclass(frozen=True)
class Measurement:
    """A combined measurement of one channel.

    Attributes:
        voltage: Measured voltage in volts.
        current: Measured current in amps.
        power: Measured power in watts.
    """

    voltage: float
    current: float
    power: float


@dataclass(frozen=True)
class InstrumentIdentity:
    """Instrument identification metadata.

    Attributes:
        manufacturer: Instrument manufacturer name.
        model: Instrument model number.
        serial: Instrument serial number.
        firmware: Firmware version string.
    """

    manufacturer: str
    model: str
    serial: str
    firmware: str

    def __str__(self) -> str:
        return f"{self.manufacturer} {self.model} (S/N {self.serial}, FW {self.firmware})"


class ConnectionState(Enum):
    """State of a transport's stream."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ClientState(Enum):
    """Exchange state of an instrument client.

    Attributes:
        IDLE: No command is outstanding.
        AWAITING_REPLY: A command was written and its reply is being read.
    """

    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
