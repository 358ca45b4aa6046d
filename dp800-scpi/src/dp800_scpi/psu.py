"""Rigol DP800-series DC power supply driver.

Wraps an :class:`InstrumentClient` with typed methods for the DP800 family
(DP831, DP832, DP821, DP811). Channels are 1-indexed.
"""

from __future__ import annotations

from typing import Any, cast

from dp800_scpi import operations as ops
from dp800_scpi.client import InstrumentClient
from dp800_scpi.decoder import parse_idn_response
from dp800_scpi.types import InstrumentIdentity, Measurement


class Dp800:
    """High-level driver for DP800 power supplies.

    Every method runs one exchange through the client and raises the
    client's errors unchanged.

    Args:
        client: The client used for all exchanges.
        timeout: Reply timeout in seconds for queries, or None for the
            client's default.
    """

    def __init__(self, client: InstrumentClient, *, timeout: float | None = None) -> None:
        self._client = client
        self._timeout = timeout

    @property
    def client(self) -> InstrumentClient:
        """Return the underlying client."""
        return self._client

    @property
    def channel_count(self) -> int:
        """Number of output channels."""
        return self._client.config.channel_count

    def _run(self, operation: ops.Operation) -> Any:
        return self._client.execute(operation, self._timeout)

    # -- Identity / lifecycle -----------------------------------------------

    def identify(self) -> str:
        """Query instrument identification string (``*IDN?``)."""
        return cast(str, self._run(ops.QueryIdentity()))

    def get_identity(self) -> InstrumentIdentity:
        """Query and parse instrument identification (``*IDN?``).

        Raises:
            ValueError: If the identity string is not in ``*IDN?`` format.
        """
        return parse_idn_response(self.identify())

    def close(self) -> None:
        """Close the underlying client."""
        self._client.close()

    # -- Voltage ------------------------------------------------------------

    def set_voltage(self, channel: int, volts: float) -> None:
        """Set the voltage setpoint in volts."""
        self._run(ops.SetVoltage(channel, volts))

    def get_voltage(self, channel: int) -> float:
        """Query the voltage setpoint."""
        return cast(float, self._run(ops.QueryVoltageSetpoint(channel)))

    def measure_voltage(self, channel: int) -> float:
        """Measure the actual output voltage."""
        return cast(float, self._run(ops.MeasureVoltage(channel)))

    # -- Current ------------------------------------------------------------

    def set_current(self, channel: int, amps: float) -> None:
        """Set the current setpoint in amps."""
        self._run(ops.SetCurrent(channel, amps))

    def get_current(self, channel: int) -> float:
        """Query the current setpoint."""
        return cast(float, self._run(ops.QueryCurrentSetpoint(channel)))

    def measure_current(self, channel: int) -> float:
        """Measure the actual output current."""
        return cast(float, self._run(ops.MeasureCurrent(channel)))

    # -- Power --------------------------------------------------------------

    def measure_power(self, channel: int) -> float:
        """Measure the actual output power."""
        return cast(float, self._run(ops.MeasurePower(channel)))

    def measure(self, channel: int) -> Measurement:
        """Measure voltage, current and power in one exchange."""
        return cast(Measurement, self._run(ops.MeasureAll(channel)))

    # -- Output -------------------------------------------------------------

    def set_output_enabled(self, channel: int, enabled: bool) -> None:
        """Switch the output of *channel* on or off."""
        self._run(ops.SetOutputEnabled(channel, enabled))

    def is_output_enabled(self, channel: int) -> bool:
        """Query whether the output of *channel* is on."""
        return cast(bool, self._run(ops.QueryOutputEnabled(channel)))

    # -- OVP ----------------------------------------------------------------

    def set_ovp(self, channel: int, volts: float) -> None:
        """Set the over-voltage protection level in volts."""
        self._run(ops.SetOvpLevel(channel, volts))

    def get_ovp(self, channel: int) -> float:
        """Query the over-voltage protection level."""
        return cast(float, self._run(ops.QueryOvpLevel(channel)))

    def set_ovp_enabled(self, channel: int, enabled: bool) -> None:
        """Enable or disable over-voltage protection."""
        self._run(ops.SetOvpEnabled(channel, enabled))

    def is_ovp_enabled(self, channel: int) -> bool:
        """Query whether over-voltage protection is enabled."""
        return cast(bool, self._run(ops.QueryOvpEnabled(channel)))

    # -- OCP ----------------------------------------------------------------

    def set_ocp(self, channel: int, amps: float) -> None:
        """Set the over-current protection level in amps."""
        self._run(ops.SetOcpLevel(channel, amps))

    def get_ocp(self, channel: int) -> float:
        """Query the over-current protection level."""
        return cast(float, self._run(ops.QueryOcpLevel(channel)))

    def set_ocp_enabled(self, channel: int, enabled: bool) -> None:
        """Enable or disable over-current protection."""
        self._run(ops.SetOcpEnabled(channel, enabled))

    def is_ocp_enabled(self, channel: int) -> bool:
        """Query whether over-current protection is enabled."""
        return cast(bool, self._run(ops.QueryOcpEnabled(channel)))

    # -- Channel selection --------------------------------------------------

    def select_channel(self, channel: int) -> None:
        """Select the channel shown on the front panel."""
        self._run(ops.SelectChannel(channel))

    def get_selected_channel(self) -> int:
        """Query the currently selected channel number."""
        return cast(int, self._run(ops.QuerySelectedChannel()))


def create_instrument(address: str, **options: Any) -> Dp800:
    """Connect to a DP800 supply and return a ready-to-use driver.

    Args:
        address: Instrument address (e.g. ``"192.168.1.50:5555"``).
        **options: :class:`ClientConfig` fields such as ``channel_count``.

    Returns:
        Connected driver instance.

    Raises:
        NotConnectedError: If the instrument cannot be reached.
    """
    return Dp800(InstrumentClient.connect(address, **options))
