"""Configuration for instrument connections."""

from __future__ import annotations

from dataclasses import dataclass

from dp800_scpi.transport import DEFAULT_MAX_REPLY_LENGTH

DEFAULT_PORT = 5555
"""Raw SCPI socket port of DP800-series supplies."""

DEFAULT_CHANNEL_COUNT = 3


def parse_address(address: str, default_port: int = DEFAULT_PORT) -> tuple[str, int]:
    """Split an instrument address into host and port.

    Accepts ``host``, ``host:port`` and ``[ipv6]:port`` (a bare IPv6 address
    without brackets uses *default_port*).

    Args:
        address: The address string, e.g. ``"192.168.1.50:5555"``.
        default_port: Port used when *address* does not name one.

    Returns:
        ``(host, port)`` tuple.

    Raises:
        ValueError: If the address is empty or the port is not a valid number.
    """
    text = address.strip()
    if not text:
        raise ValueError("Instrument address must be non-empty")

    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or not host:
            raise ValueError(f"Malformed IPv6 address: {address!r}")
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise ValueError(f"Malformed IPv6 address: {address!r}")
        port_text = rest[1:]
    elif text.count(":") == 1:
        host, _, port_text = text.partition(":")
        if not host:
            raise ValueError(f"Missing host in address: {address!r}")
    else:
        return text, default_port

    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port in address: {address!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in address: {address!r}")
    return host, port


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for an :class:`InstrumentClient`.

    Attributes:
        host: Instrument host name or IP address.
        port: Instrument SCPI socket port.
        channel_count: Number of output channels on the supply.
        connect_timeout: Connection timeout in seconds.
        write_timeout: Seconds a command write may stall.
        default_timeout: Reply timeout in seconds when ``execute`` is not
            given one.
        max_reply_length: Largest accepted reply in bytes.
    """

    host: str
    port: int = DEFAULT_PORT
    channel_count: int = DEFAULT_CHANNEL_COUNT
    connect_timeout: float = 5.0
    write_timeout: float = 5.0
    default_timeout: float = 1.0
    max_reply_length: int = DEFAULT_MAX_REPLY_LENGTH

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.host:
            raise ValueError("host must be non-empty")
        if not 0 < self.port < 65536:
            raise ValueError("port must be in 1-65535")
        if self.channel_count < 1:
            raise ValueError("channel_count must be >= 1")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.write_timeout <= 0:
            raise ValueError("write_timeout must be positive")
        if self.default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        if self.max_reply_length < 1:
            raise ValueError("max_reply_length must be >= 1")

    @classmethod
    def from_address(cls, address: str, **kwargs: object) -> ClientConfig:
        """Create config from an address string such as ``"10.0.0.5:5555"``.

        Args:
            address: Instrument address, see :func:`parse_address`.
            **kwargs: Additional configuration options.

        Returns:
            ClientConfig instance.
        """
        host, port = parse_address(address)
        return cls(host=host, port=port, **kwargs)  # type: ignore[arg-type]

    @property
    def address(self) -> str:
        """The address as ``host:port`` (IPv6 hosts bracketed)."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"
