"""Response decoder: raw reply lines to typed results.

The expected shape of a reply comes from the operation's ``result_kind``,
never from the reply bytes themselves.
"""

from __future__ import annotations

from typing import Union

from dp800_scpi.errors import EmptyReplyError, NotANumberError
from dp800_scpi.number import parse_bool, parse_int, parse_number, parse_numbers
from dp800_scpi.operations import Operation, ResultKind
from dp800_scpi.types import InstrumentIdentity, Measurement, RawReply

OperationResult = Union[None, float, bool, int, str, Measurement]


def _decode_identity(text: str) -> str:
    identity = text.strip()
    if not identity:
        raise EmptyReplyError("Empty identity reply", text)
    return identity


def _decode_measurement(text: str) -> Measurement:
    values = parse_numbers(text)
    if len(values) != 3:
        raise NotANumberError(
            f"Expected voltage,current,power in measurement reply, got {len(values)} values: {text!r}",
            text,
        )
    return Measurement(voltage=values[0], current=values[1], power=values[2])


_DECODERS = {
    ResultKind.NUMBER: parse_number,
    ResultKind.BOOLEAN: parse_bool,
    ResultKind.INTEGER: parse_int,
    ResultKind.IDENTITY: _decode_identity,
    ResultKind.MEASUREMENT: _decode_measurement,
}


def decode(operation: Operation, reply: RawReply) -> OperationResult:
    """Decode *reply* into the result type of *operation*.

    Args:
        operation: The operation whose command produced *reply*.
        reply: The reply line without terminator.

    Returns:
        ``float`` for measurements and levels, ``bool`` for state queries,
        ``int`` for the selected channel, ``str`` for the identity and
        :class:`Measurement` for combined measurements.

    Raises:
        ValueError: If *operation* does not expect a reply.
        EmptyReplyError: If the reply is blank.
        NotANumberError: If a numeric reply cannot be parsed.
        UnrecognizedTokenError: If a boolean reply is not a known token.
    """
    if not operation.expects_reply:
        raise ValueError(f"{type(operation).__name__} does not produce a reply")
    return _DECODERS[operation.result_kind](reply.text)


def parse_idn_response(response: str) -> InstrumentIdentity:
    """Parse a SCPI ``*IDN?`` response into an :class:`InstrumentIdentity`.

    The standard ``*IDN?`` response format is four comma-separated fields::

        manufacturer,model,serial_number,firmware_version

    Extra fields are joined into the firmware string.

    Raises:
        ValueError: If the response has fewer than four fields.
    """
    parts = [p.strip() for p in response.split(",")]
    if len(parts) < 4:
        raise ValueError(
            f"Expected at least 4 comma-separated fields in *IDN? response, "
            f"got {len(parts)}: {response!r}"
        )
    return InstrumentIdentity(
        manufacturer=parts[0],
        model=parts[1],
        serial=parts[2],
        firmware=",".join(parts[3:]),
    )
