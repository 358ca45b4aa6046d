"""Typed instrument operations.

Each operation is a frozen dataclass. Whether the instrument replies, and what
the reply means, is fixed per operation type through the ``expects_reply``
and ``result_kind`` class attributes; nothing about it is inferred from the
wire at runtime.

Typical usage::

    from dp800_scpi.operations import MeasureCurrent, SetVoltage

    client.execute(SetVoltage(channel=2, volts=5.0))
    amps = client.execute(MeasureCurrent(channel=1), timeout=0.5)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from dp800_scpi.errors import InvalidChannelError, InvalidParameterError


class ResultKind(Enum):
    """Semantic type of an operation's reply."""

    NONE = "none"
    NUMBER = "number"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    IDENTITY = "identity"
    MEASUREMENT = "measurement"


def _require_finite(value: float, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParameterError(f"{name} must be a finite number, got {value!r}")
    try:
        finite = math.isfinite(value)
    except OverflowError as exc:
        raise InvalidParameterError(f"{name} is out of range") from exc
    if not finite:
        raise InvalidParameterError(f"{name} must be a finite number, got {value!r}")


def _require_bool(value: bool, name: str) -> None:
    if not isinstance(value, bool):
        raise InvalidParameterError(f"{name} must be a bool, got {value!r}")


@dataclass(frozen=True)
class Operation:
    """Base class for every instrument operation."""

    expects_reply: ClassVar[bool] = False
    result_kind: ClassVar[ResultKind] = ResultKind.NONE

    def validate(self, channel_count: int) -> None:
        """Check the operation's parameters against the instrument.

        Args:
            channel_count: Number of output channels on the supply.

        Raises:
            InvalidChannelError: If the channel is outside ``1..channel_count``.
            InvalidParameterError: If a numeric or boolean parameter is invalid.
        """


@dataclass(frozen=True)
class ChannelOperation(Operation):
    """An operation addressed to one output channel (1-based)."""

    channel: int

    def validate(self, channel_count: int) -> None:
        channel = self.channel
        if isinstance(channel, bool) or not isinstance(channel, int):
            raise InvalidChannelError(channel, channel_count)
        if not 1 <= channel <= channel_count:
            raise InvalidChannelError(channel, channel_count)


@dataclass(frozen=True)
class _Query(ChannelOperation):
    expects_reply: ClassVar[bool] = True
    result_kind: ClassVar[ResultKind] = ResultKind.NUMBER


@dataclass(frozen=True)
class _StateQuery(ChannelOperation):
    expects_reply: ClassVar[bool] = True
    result_kind: ClassVar[ResultKind] = ResultKind.BOOLEAN


@dataclass(frozen=True)
class _SetState(ChannelOperation):
    enabled: bool

    def validate(self, channel_count: int) -> None:
        super().validate(channel_count)
        _require_bool(self.enabled, "enabled")


# -- Setpoints ----------------------------------------------------------------


@dataclass(frozen=True)
class SetVoltage(ChannelOperation):
    """Set the voltage setpoint of a channel in volts."""

    volts: float

    def validate(self, channel_count: int) -> None:
        super().validate(channel_count)
        _require_finite(self.volts, "volts")


@dataclass(frozen=True)
class SetCurrent(ChannelOperation):
    """Set the current setpoint of a channel in amps."""

    amps: float

    def validate(self, channel_count: int) -> None:
        super().validate(channel_count)
        _require_finite(self.amps, "amps")


@dataclass(frozen=True)
class SetOutputEnabled(_SetState):
    """Switch a channel's output on or off."""


@dataclass(frozen=True)
class QueryVoltageSetpoint(_Query):
    """Read back the voltage setpoint of a channel."""


@dataclass(frozen=True)
class QueryCurrentSetpoint(_Query):
    """Read back the current setpoint of a channel."""


@dataclass(frozen=True)
class QueryOutputEnabled(_StateQuery):
    """Query whether a channel's output is on."""


# -- Measurements -------------------------------------------------------------


@dataclass(frozen=True)
class MeasureVoltage(_Query):
    """Measure the output voltage of a channel."""


@dataclass(frozen=True)
class MeasureCurrent(_Query):
    """Measure the output current of a channel."""


@dataclass(frozen=True)
class MeasurePower(_Query):
    """Measure the output power of a channel."""


@dataclass(frozen=True)
class MeasureAll(ChannelOperation):
    """Measure voltage, current and power of a channel in one exchange."""

    expects_reply: ClassVar[bool] = True
    result_kind: ClassVar[ResultKind] = ResultKind.MEASUREMENT


# -- Protection ---------------------------------------------------------------


@dataclass(frozen=True)
class SetOvpLevel(ChannelOperation):
    """Set the over-voltage protection level of a channel in volts."""

    volts: float

    def validate(self, channel_count: int) -> None:
        super().validate(channel_count)
        _require_finite(self.volts, "volts")


@dataclass(frozen=True)
class QueryOvpLevel(_Query):
    """Read the over-voltage protection level of a channel."""


@dataclass(frozen=True)
class SetOvpEnabled(_SetState):
    """Enable or disable over-voltage protection on a channel."""


@dataclass(frozen=True)
class QueryOvpEnabled(_StateQuery):
    """Query whether over-voltage protection is enabled on a channel."""


@dataclass(frozen=True)
class SetOcpLevel(ChannelOperation):
    """Set the over-current protection level of a channel in amps."""

    amps: float

    def validate(self, channel_count: int) -> None:
        super().validate(channel_count)
        _require_finite(self.amps, "amps")


@dataclass(frozen=True)
class QueryOcpLevel(_Query):
    """Read the over-current protection level of a channel."""


@dataclass(frozen=True)
class SetOcpEnabled(_SetState):
    """Enable or disable over-current protection on a channel."""


@dataclass(frozen=True)
class QueryOcpEnabled(_StateQuery):
    """Query whether over-current protection is enabled on a channel."""


# -- Instrument ---------------------------------------------------------------


@dataclass(frozen=True)
class SelectChannel(ChannelOperation):
    """Select the channel shown on the instrument's front panel."""


@dataclass(frozen=True)
class QuerySelectedChannel(Operation):
    """Query the channel currently selected on the front panel."""

    expects_reply: ClassVar[bool] = True
    result_kind: ClassVar[ResultKind] = ResultKind.INTEGER


@dataclass(frozen=True)
class QueryIdentity(Operation):
    """Query the instrument identification string (``*IDN?``)."""

    expects_reply: ClassVar[bool] = True
    result_kind: ClassVar[ResultKind] = ResultKind.IDENTITY
