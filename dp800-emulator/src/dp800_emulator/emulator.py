"""Rigol DP800 power supply emulator.

Provides an in-process emulator for the SCPI dialect spoken by
:mod:`dp800_scpi`. Lines go in through :meth:`Dp800Emulator.write`; the reply
to the last query is collected with :meth:`Dp800Emulator.read`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Long-form → short-form SCPI keyword map
# ---------------------------------------------------------------------------

_LONG_TO_SHORT: dict[str, str] = {
    "SOURCE": "SOUR",
    "MEASURE": "MEAS",
    "OUTPUT": "OUTP",
    "VOLTAGE": "VOLT",
    "CURRENT": "CURR",
    "POWER": "POW",
    "STATE": "STAT",
    "VALUE": "VAL",
    "INSTRUMENT": "INST",
    "NSELECT": "NSEL",
    "SYSTEM": "SYST",
    "ERROR": "ERR",
}


def _split_suffix(segment: str) -> tuple[str, int | None]:
    """Split a numeric suffix off a header segment (``SOUR2`` -> ``SOUR``, 2)."""
    stem = segment.rstrip("0123456789")
    suffix = segment[len(stem) :]
    return stem, (int(suffix) if suffix else None)


def _normalize_header(header: str) -> tuple[str, int | None]:
    """Normalize a SCPI header to canonical short form.

    1. Uppercase
    2. Strip leading colon
    3. Split on ``:``
    4. Take the channel suffix off the first segment
    5. Map long forms to short forms
    6. Rejoin with ``:``

    Returns:
        ``(header, channel)``; channel is None when the header carries no
        suffix.
    """
    upper = header.upper()
    if upper.startswith(":"):
        upper = upper[1:]
    segments = upper.split(":")
    segments[0], channel = _split_suffix(segments[0])
    short_segments = [_LONG_TO_SHORT.get(seg, seg) for seg in segments]
    return ":".join(short_segments), channel


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmulatorConfig:
    """Configuration for a DP800 emulator instance.

    Args:
        identity: ``*IDN?`` response string.
        max_voltages: Maximum voltage of each channel in volts.
        max_currents: Maximum current of each channel in amps.
    """

    identity: str
    max_voltages: tuple[float, ...]
    max_currents: tuple[float, ...]

    def __post_init__(self) -> None:
        if not self.identity:
            raise ValueError("identity must be non-empty")
        if not self.max_voltages:
            raise ValueError("at least one channel is required")
        if len(self.max_voltages) != len(self.max_currents):
            raise ValueError("max_voltages and max_currents must have the same length")
        if any(v <= 0 for v in self.max_voltages):
            raise ValueError("max_voltages must be > 0")
        if any(i <= 0 for i in self.max_currents):
            raise ValueError("max_currents must be > 0")

    @property
    def num_channels(self) -> int:
        """Number of output channels."""
        return len(self.max_voltages)


# ---------------------------------------------------------------------------
# Internal channel state
# ---------------------------------------------------------------------------


@dataclass
class _ChannelState:
    max_voltage: float
    max_current: float
    voltage_setpoint: float = 0.0
    current_setpoint: float = 0.0
    output_enabled: bool = False
    ovp_level: float = 0.0
    ovp_enabled: bool = False
    ocp_level: float = 0.0
    ocp_enabled: bool = False
    measured_voltage: float | None = None
    measured_current: float | None = None

    def reset(self) -> None:
        self.voltage_setpoint = 0.0
        self.current_setpoint = 0.0
        self.output_enabled = False
        self.ovp_level = self.max_voltage * 1.1
        self.ovp_enabled = False
        self.ocp_level = self.max_current * 1.1
        self.ocp_enabled = False
        self.measured_voltage = None
        self.measured_current = None

    def voltage(self) -> float:
        if self.measured_voltage is not None:
            return self.measured_voltage
        return self.voltage_setpoint if self.output_enabled else 0.0

    def current(self) -> float:
        if self.measured_current is not None:
            return self.measured_current
        return 0.0


class _ParameterError(Exception):
    def __init__(self, value: object, code: int = -224, message: str = "Illegal parameter value") -> None:
        self.code = code
        self.message = message
        super().__init__(value)


def _parse_float(args: str) -> float:
    try:
        value = float(args.strip())
    except ValueError:
        raise _ParameterError(args) from None
    if not math.isfinite(value):
        raise _ParameterError(args)
    return value


def _parse_state(args: str) -> bool:
    token = args.strip().upper()
    if token in ("ON", "1"):
        return True
    if token in ("OFF", "0"):
        return False
    raise _ParameterError(args)


def _fmt(value: float) -> str:
    return f"{value:.4f}"


def _fmt_state(value: bool) -> str:
    return "ON" if value else "OFF"


# ---------------------------------------------------------------------------
# Emulator
# ---------------------------------------------------------------------------


class Dp800Emulator:
    """In-process DP800 emulator.

    Channel-addressed headers take the channel from their first segment
    (``SOURCE2:VOLT``); without a suffix the front-panel selected channel is
    used.

    Args:
        config: Emulator configuration specifying model characteristics.
    """

    def __init__(self, config: EmulatorConfig) -> None:
        self._config = config
        self._channels: list[_ChannelState] = [
            _ChannelState(max_voltage=v, max_current=i)
            for v, i in zip(config.max_voltages, config.max_currents)
        ]
        self._selected_channel: int = 1
        self._response_buffer: str = ""
        self._error_queue: list[tuple[int, str]] = []
        self._raw_responses: dict[str, str] = {}
        self._reset()

        # Build dispatch tables
        self._set_handlers: dict[str, Callable[[_ChannelState, str], None]] = {
            "SOUR:VOLT": self._set_voltage,
            "SOUR:CURR": self._set_current,
            "OUTP:STAT": self._set_output,
            "OUTP:OVP:VAL": self._set_ovp_level,
            "OUTP:OVP:STAT": self._set_ovp_state,
            "OUTP:OCP:VAL": self._set_ocp_level,
            "OUTP:OCP:STAT": self._set_ocp_state,
        }

        self._query_handlers: dict[str, Callable[[_ChannelState], str]] = {
            "SOUR:VOLT?": lambda ch: _fmt(ch.voltage_setpoint),
            "SOUR:CURR?": lambda ch: _fmt(ch.current_setpoint),
            "OUTP:STAT?": lambda ch: _fmt_state(ch.output_enabled),
            "OUTP:OVP:VAL?": lambda ch: _fmt(ch.ovp_level),
            "OUTP:OVP:STAT?": lambda ch: _fmt_state(ch.ovp_enabled),
            "OUTP:OCP:VAL?": lambda ch: _fmt(ch.ocp_level),
            "OUTP:OCP:STAT?": lambda ch: _fmt_state(ch.ocp_enabled),
            "MEAS:VOLT?": lambda ch: _fmt(ch.voltage()),
            "MEAS:CURR?": lambda ch: _fmt(ch.current()),
            "MEAS:POW?": lambda ch: _fmt(ch.voltage() * ch.current()),
            "MEAS:ALL?": lambda ch: ",".join(
                _fmt(v) for v in (ch.voltage(), ch.current(), ch.voltage() * ch.current())
            ),
        }

    @property
    def config(self) -> EmulatorConfig:
        """Return the emulator configuration."""
        return self._config

    # -- Line interface -----------------------------------------------------

    def write(self, message: str) -> None:
        """Process a SCPI command or query line."""
        line = message.strip()
        if not line:
            return
        logger.debug("emulator <- %s", line)

        is_query, header, args = self._parse_line(line)
        if is_query:
            raw = self._raw_responses.get(line.upper())
            if raw is not None:
                self._response_buffer = raw
                return

        if self._handle_common_command(header, is_query, args):
            return

        self._dispatch(header, args, is_query)

    def read(self) -> str:
        """Return and clear the buffered response."""
        resp = self._response_buffer
        self._response_buffer = ""
        return resp

    def close(self) -> None:
        """Close the emulator (no-op for the in-process emulator)."""

    # -- Test helpers -------------------------------------------------------

    def set_measured_voltage(self, value: float, channel: int = 1) -> None:
        """Set a fixed measured voltage override for testing.

        Args:
            value: Voltage reading to return from ``MEAS:VOLT?``.
            channel: Channel number (1-based).
        """
        self._get_channel_state(channel).measured_voltage = value

    def set_measured_current(self, value: float, channel: int = 1) -> None:
        """Set a fixed measured current override for testing.

        Args:
            value: Current reading to return from ``MEAS:CURR?``.
            channel: Channel number (1-based).
        """
        self._get_channel_state(channel).measured_current = value

    def set_raw_response(self, query: str, response: str) -> None:
        """Answer *query* with *response* verbatim, e.g. to inject sentinels.

        Args:
            query: The exact query line (case-insensitive), e.g. ``"MEASURE1:CURR?"``.
            response: The reply text to send.
        """
        self._raw_responses[query.strip().upper()] = response

    def pop_errors(self) -> list[tuple[int, str]]:
        """Drain and return the error queue."""
        errors, self._error_queue = self._error_queue, []
        return errors

    # -- Private helpers ----------------------------------------------------

    def _parse_line(self, line: str) -> tuple[bool, str, str]:
        """Parse a SCPI line into (is_query, header, args)."""
        is_query = "?" in line
        if is_query:
            qmark_idx = line.index("?")
            header = line[: qmark_idx + 1]
            args = line[qmark_idx + 1 :].strip()
        else:
            parts = line.split(None, 1)
            header = parts[0]
            args = parts[1] if len(parts) > 1 else ""
        return is_query, header, args

    def _handle_common_command(self, header: str, is_query: bool, args: str) -> bool:
        """Handle IEEE 488.2, SYST:ERR? and INST:NSEL. Returns True if handled."""
        upper_header = header.upper()
        ieee_handlers: dict[str, str] = {
            "*IDN?": self._config.identity,
            "*OPC?": "1",
        }
        if upper_header in ieee_handlers:
            self._response_buffer = ieee_handlers[upper_header]
            return True
        if upper_header == "*RST":
            self._reset()
            return True
        if upper_header == "*CLS":
            self._error_queue.clear()
            return True

        norm_header, _ = _normalize_header(header.rstrip("?"))
        if is_query and norm_header == "SYST:ERR":
            self._response_buffer = self._pop_error()
            return True
        if norm_header == "INST:NSEL":
            if is_query:
                self._response_buffer = str(self._selected_channel)
            else:
                self._select_channel(args)
            return True
        return False

    def _dispatch(self, header: str, args: str, is_query: bool) -> None:
        """Dispatch a normalized command or query to handler tables."""
        norm_header, channel = _normalize_header(header.rstrip("?"))
        if channel is None:
            channel = self._selected_channel
        if not 1 <= channel <= self._config.num_channels:
            self._error_queue.append((-114, "Header suffix out of range"))
            return
        state = self._channels[channel - 1]

        if is_query:
            handler = self._query_handlers.get(norm_header + "?")
            if handler is None:
                self._error_queue.append((-113, "Undefined header"))
                return
            self._response_buffer = handler(state)
            return

        handler_set = self._set_handlers.get(norm_header)
        if handler_set is None:
            self._error_queue.append((-113, "Undefined header"))
            return
        try:
            handler_set(state, args)
        except _ParameterError as exc:
            self._error_queue.append((exc.code, exc.message))

    def _get_channel_state(self, channel: int) -> _ChannelState:
        if channel < 1 or channel > self._config.num_channels:
            raise ValueError(f"Channel {channel} out of range (1-{self._config.num_channels})")
        return self._channels[channel - 1]

    def _reset(self) -> None:
        """Reset all channels to defaults."""
        for ch in self._channels:
            ch.reset()
        self._selected_channel = 1

    def _pop_error(self) -> str:
        if self._error_queue:
            code, msg = self._error_queue.pop(0)
            return f'{code},"{msg}"'
        return '0,"No error"'

    def _select_channel(self, args: str) -> None:
        try:
            ch_num = int(args.strip())
        except ValueError:
            self._error_queue.append((-224, "Illegal parameter value"))
            return
        if ch_num < 1 or ch_num > self._config.num_channels:
            self._error_queue.append((-224, "Illegal parameter value"))
            return
        self._selected_channel = ch_num

    @staticmethod
    def _check_range(value: float, limit: float) -> None:
        if value < 0 or value > limit:
            raise _ParameterError(value, -222, "Data out of range")

    # -- Set handlers -------------------------------------------------------

    def _set_voltage(self, ch: _ChannelState, args: str) -> None:
        value = _parse_float(args)
        self._check_range(value, ch.max_voltage)
        ch.voltage_setpoint = value

    def _set_current(self, ch: _ChannelState, args: str) -> None:
        value = _parse_float(args)
        self._check_range(value, ch.max_current)
        ch.current_setpoint = value

    def _set_output(self, ch: _ChannelState, args: str) -> None:
        ch.output_enabled = _parse_state(args)

    def _set_ovp_level(self, ch: _ChannelState, args: str) -> None:
        value = _parse_float(args)
        self._check_range(value, ch.max_voltage * 1.1)
        ch.ovp_level = value

    def _set_ovp_state(self, ch: _ChannelState, args: str) -> None:
        ch.ovp_enabled = _parse_state(args)

    def _set_ocp_level(self, ch: _ChannelState, args: str) -> None:
        value = _parse_float(args)
        self._check_range(value, ch.max_current * 1.1)
        ch.ocp_level = value

    def _set_ocp_state(self, ch: _ChannelState, args: str) -> None:
        ch.ocp_enabled = _parse_state(args)


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def make_dp832_emulator(serial: str = "DP8C000000001") -> Dp800Emulator:
    """Create a triple-channel DP832 emulator (30 V/3 A, 30 V/3 A, 5 V/3 A)."""
    return Dp800Emulator(
        EmulatorConfig(
            identity=f"RIGOL TECHNOLOGIES,DP832,{serial},00.01.16",
            max_voltages=(30.0, 30.0, 5.0),
            max_currents=(3.0, 3.0, 3.0),
        )
    )


def make_dp811_emulator(serial: str = "DP8A000000001") -> Dp800Emulator:
    """Create a single-channel DP811 emulator (20 V/10 A range)."""
    return Dp800Emulator(
        EmulatorConfig(
            identity=f"RIGOL TECHNOLOGIES,DP811,{serial},00.01.14",
            max_voltages=(20.0,),
            max_currents=(10.0,),
        )
    )
