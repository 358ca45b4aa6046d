"""SCPI number parsing and formatting utilities.

Handles NR1 (integer), NR2 (fixed-point) and NR3 (scientific notation)
numeric formats plus the special values NAN, INF and NINF.

Parsing and formatting never consult the process locale: numbers always use
``.`` as the decimal separator and never carry grouping separators.
"""

from __future__ import annotations

import math
import re

from dp800_scpi.errors import EmptyReplyError, NotANumberError, UnrecognizedTokenError

_SPECIAL_FLOAT_MAP: dict[str, float] = {
    "NAN": float("nan"),
    "INF": float("inf"),
    "+INF": float("inf"),
    "NINF": float("-inf"),
    "-INF": float("-inf"),
}

# NR1 | NR2 | NR3. Python's float() is more lenient (underscores, "infinity").
_NRF_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_NR1_RE = re.compile(r"^[+-]?\d+$")

_TRUE_TOKENS = frozenset({"1", "ON"})
_FALSE_TOKENS = frozenset({"0", "OFF"})


def _token(text: str) -> str:
    token = text.strip()
    if not token:
        raise EmptyReplyError("Empty reply", text)
    return token


def parse_number(text: str) -> float:
    """Parse a SCPI numeric response into a float.

    Accepts NR1 (``"42"``), NR2 (``"1.23"``), NR3 (``"1.23E+4"``), and the
    special tokens ``NAN``, ``INF``, ``NINF`` and ``-INF``. Instrument
    sentinels such as ``9.91E+37`` are ordinary NR3 values and pass through.

    Args:
        text: The raw response string (surrounding whitespace is ignored).

    Returns:
        The parsed float value.

    Raises:
        EmptyReplyError: If *text* is blank.
        NotANumberError: If *text* is not a SCPI number.
    """
    token = _token(text).upper()
    special = _SPECIAL_FLOAT_MAP.get(token)
    if special is not None:
        return special
    if _NRF_RE.match(token) is None:
        raise NotANumberError(f"Invalid SCPI number: {text!r}", text)
    return float(token)


def parse_numbers(text: str) -> tuple[float, ...]:
    """Parse a comma-separated list of SCPI numbers.

    Args:
        text: Comma-separated numeric values (e.g. ``"1.0,2.0,3.0"``).

    Returns:
        A tuple of parsed float values.

    Raises:
        EmptyReplyError: If *text* is blank.
        NotANumberError: If any element cannot be parsed.
    """
    _token(text)
    values = []
    for part in text.split(","):
        try:
            values.append(parse_number(part))
        except EmptyReplyError:
            raise NotANumberError(f"Empty element in SCPI number list: {text!r}", text) from None
    return tuple(values)


def parse_int(text: str) -> int:
    """Parse a SCPI NR1 (integer) response.

    Raises:
        EmptyReplyError: If *text* is blank.
        NotANumberError: If *text* is not a valid integer.
    """
    token = _token(text)
    if _NR1_RE.match(token) is None:
        raise NotANumberError(f"Invalid SCPI integer: {text!r}", text)
    return int(token)


def parse_bool(text: str) -> bool:
    """Parse a SCPI boolean response.

    Accepts ``"1"`` / ``"0"`` and ``"ON"`` / ``"OFF"`` (case-insensitive).

    Raises:
        EmptyReplyError: If *text* is blank.
        UnrecognizedTokenError: If *text* is not a recognized boolean token.
    """
    token = _token(text).upper()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    raise UnrecognizedTokenError(f"Invalid SCPI boolean: {text!r}", text)


def format_fixed(value: float, decimals: int = 3) -> str:
    """Format a float as a fixed-point SCPI parameter.

    Args:
        value: The numeric value to format. Must be finite.
        decimals: Number of digits after the decimal point.

    Returns:
        The value with exactly *decimals* fractional digits, e.g. ``"5.000"``.

    Raises:
        ValueError: If *value* is NaN or infinite.
    """
    if not math.isfinite(value):
        raise ValueError(f"Cannot format non-finite value {value!r}")
    text = f"{value:.{decimals}f}"
    if text.startswith("-") and float(text) == 0:
        text = text[1:]
    return text


def format_bool(value: bool) -> str:
    """Format a boolean for use in a SCPI command.

    Returns:
        ``"ON"`` for True, ``"OFF"`` for False.
    """
    return "ON" if value else "OFF"
