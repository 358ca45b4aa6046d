"""Command encoder: typed operations to framed SCPI command lines.

Every operation type maps to one fixed command template. Numeric parameters
are rendered with three decimals and booleans as ``ON``/``OFF``. The encoder
assumes a validated operation; channel bounds are checked by the client.
"""

from __future__ import annotations

from typing import Callable

from dp800_scpi import operations as ops
from dp800_scpi.number import format_bool, format_fixed
from dp800_scpi.types import TERMINATOR, EncodedCommand

_DECIMALS = 3

_TEMPLATES: dict[type[ops.Operation], Callable[..., str]] = {
    ops.SetVoltage: lambda op: f"SOURCE{op.channel}:VOLT {format_fixed(op.volts, _DECIMALS)}",
    ops.SetCurrent: lambda op: f"SOURCE{op.channel}:CURR {format_fixed(op.amps, _DECIMALS)}",
    ops.SetOutputEnabled: lambda op: f"OUTPUT{op.channel}:STATE {format_bool(op.enabled)}",
    ops.QueryVoltageSetpoint: lambda op: f"SOURCE{op.channel}:VOLT?",
    ops.QueryCurrentSetpoint: lambda op: f"SOURCE{op.channel}:CURR?",
    ops.QueryOutputEnabled: lambda op: f"OUTPUT{op.channel}:STATE?",
    ops.MeasureVoltage: lambda op: f"MEASURE{op.channel}:VOLT?",
    ops.MeasureCurrent: lambda op: f"MEASURE{op.channel}:CURR?",
    ops.MeasurePower: lambda op: f"MEASURE{op.channel}:POWER?",
    ops.MeasureAll: lambda op: f"MEASURE{op.channel}:ALL?",
    ops.SetOvpLevel: lambda op: f"OUTPUT{op.channel}:OVP:VAL {format_fixed(op.volts, _DECIMALS)}",
    ops.QueryOvpLevel: lambda op: f"OUTPUT{op.channel}:OVP:VAL?",
    ops.SetOvpEnabled: lambda op: f"OUTPUT{op.channel}:OVP:STATE {format_bool(op.enabled)}",
    ops.QueryOvpEnabled: lambda op: f"OUTPUT{op.channel}:OVP:STATE?",
    ops.SetOcpLevel: lambda op: f"OUTPUT{op.channel}:OCP:VAL {format_fixed(op.amps, _DECIMALS)}",
    ops.QueryOcpLevel: lambda op: f"OUTPUT{op.channel}:OCP:VAL?",
    ops.SetOcpEnabled: lambda op: f"OUTPUT{op.channel}:OCP:STATE {format_bool(op.enabled)}",
    ops.QueryOcpEnabled: lambda op: f"OUTPUT{op.channel}:OCP:STATE?",
    ops.SelectChannel: lambda op: f"INST:NSEL {op.channel}",
    ops.QuerySelectedChannel: lambda op: "INST:NSEL?",
    ops.QueryIdentity: lambda op: "*IDN?",
}


def command_text(operation: ops.Operation) -> str:
    """Return the SCPI command line for *operation*, without terminator.

    Raises:
        TypeError: If *operation* is not a known operation type.
    """
    template = _TEMPLATES.get(type(operation))
    if template is None:
        raise TypeError(f"No command template for {type(operation).__name__}")
    return template(operation)


def encode(operation: ops.Operation) -> EncodedCommand:
    """Encode *operation* into a terminated command.

    Args:
        operation: A validated operation.

    Returns:
        The framed command, flagged with whether a reply will follow.

    Example:
        >>> encode(SetVoltage(channel=2, volts=5.0))
        EncodedCommand(payload=b'SOURCE2:VOLT 5.000\\n', expects_reply=False)
    """
    payload = command_text(operation).encode("ascii") + TERMINATOR
    return EncodedCommand(payload=payload, expects_reply=operation.expects_reply)
