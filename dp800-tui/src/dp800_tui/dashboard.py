"""Live dashboard for a DP800 power supply.

The :class:`Dashboard` keeps the latest readings of every channel, turns key
presses into setpoint changes, and renders itself as a rich renderable. It
talks to the instrument only through :class:`dp800_scpi.Dp800`, so every
poll and every operator command shares the client's single exchange lock.

Readings that come back malformed are shown as ``--`` and the connection is
kept. Connection loss shows a banner; the dashboard retries
``reconnect()`` every ``reconnect_interval`` seconds, or immediately on ``r``.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, fields
from enum import Enum
from typing import Callable, TypeVar

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dp800_scpi import ClientError, ConnectionLostError, Dp800, Measurement, NotConnectedError, ProtocolError

logger = logging.getLogger(__name__)

T = TypeVar("T")

HELP_TEXT = "Navigate [←↓↑→] Select [⏎] Discard Input [Esc] Reconnect [r] Quit [q]"


class Selection(Enum):
    """Row of the channel panel the cursor is on."""

    MEASURE = "measure"
    SET_VOLT = "set_volt"
    SET_AMP = "set_amp"
    OVP = "ovp"
    OCP = "ocp"
    OVP_ON = "ovp_on"
    OCP_ON = "ocp_on"

    def next(self) -> Selection:
        members = list(Selection)
        return members[(members.index(self) + 1) % len(members)]

    def prev(self) -> Selection:
        members = list(Selection)
        return members[(members.index(self) - 1) % len(members)]

    @property
    def list_index(self) -> int | None:
        """Position within the "Set" or "Limit" list, None for the header."""
        return _LIST_INDEX[self]

    @property
    def prompt(self) -> str | None:
        """Title of the numeric input box, None if Enter toggles instead."""
        return _PROMPTS.get(self)


_LIST_INDEX: dict[Selection, int | None] = {
    Selection.MEASURE: None,
    Selection.SET_VOLT: 0,
    Selection.SET_AMP: 1,
    Selection.OVP: 0,
    Selection.OCP: 1,
    Selection.OVP_ON: 2,
    Selection.OCP_ON: 3,
}

_PROMPTS: dict[Selection, str] = {
    Selection.SET_VOLT: "Voltage Setpoint (V)",
    Selection.SET_AMP: "Current Setpoint (A)",
    Selection.OVP: "Over Voltage Protection (V)",
    Selection.OCP: "Over Current Protection (A)",
}

_SET_ROWS = (Selection.SET_VOLT, Selection.SET_AMP)
_LIMIT_ROWS = (Selection.OVP, Selection.OCP, Selection.OVP_ON, Selection.OCP_ON)


@dataclass
class ChannelData:
    """Latest readings of one channel. None means unavailable."""

    output_enabled: bool | None = None
    measurement: Measurement | None = None
    voltage_setpoint: float | None = None
    current_setpoint: float | None = None
    ovp_level: float | None = None
    ocp_level: float | None = None
    ovp_enabled: bool | None = None
    ocp_enabled: bool | None = None


@dataclass(frozen=True)
class DashboardConfig:
    """Configuration for the dashboard.

    Attributes:
        tick_rate: Seconds between polls of the instrument.
        timeout: Reply timeout in seconds for each poll query.
        reconnect_interval: Seconds between automatic reconnect attempts.
        channel_switch_delay: Pause after selecting a channel; the supply
            rejects commands that follow a channel switch too quickly.
        max_input_length: Longest numeric input accepted.
    """

    tick_rate: float = 0.25
    timeout: float = 0.25
    reconnect_interval: float = 2.0
    channel_switch_delay: float = 0.05
    max_input_length: int = 16

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.tick_rate <= 0:
            raise ValueError("tick_rate must be positive")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.reconnect_interval < 0:
            raise ValueError("reconnect_interval must be >= 0")
        if self.channel_switch_delay < 0:
            raise ValueError("channel_switch_delay must be >= 0")
        if self.max_input_length < 1:
            raise ValueError("max_input_length must be >= 1")


# Instruments report overflowed readings as 9.91E+37.
OVERLOAD_THRESHOLD = 9.9e37


def _fmt(value: float | None, unit: str) -> str:
    if value is None or math.isnan(value):
        return f"{'--':>6} {unit}"
    if abs(value) >= OVERLOAD_THRESHOLD:
        return f"{'OVLD':>6} {unit}"
    return f"{value:>6.3f} {unit}"


def _on_off(value: bool | None) -> str:
    if value is None:
        return "--"
    return "On" if value else "Off"


class Dashboard:
    """Dashboard state, key dispatch and rendering.

    Args:
        psu: Driver for the supply.
        config: Dashboard configuration.
        clock: Monotonic clock, replaceable in tests.
        sleep: Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        psu: Dp800,
        config: DashboardConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._psu = psu
        self._config = config or DashboardConfig()
        self._clock = clock
        self._sleep = sleep
        self.data = [ChannelData() for _ in range(psu.channel_count)]
        self.channel = 1
        self.selection = Selection.MEASURE
        self.input_title = ""
        self.input = ""
        self.status = ""
        self._last_reconnect_attempt: float | None = None

    @property
    def config(self) -> DashboardConfig:
        """Return the configuration."""
        return self._config

    @property
    def connected(self) -> bool:
        """Return True if the client holds a live connection."""
        return self._psu.client.is_connected()

    @property
    def channel_data(self) -> ChannelData:
        """Readings of the selected channel."""
        return self.data[self.channel - 1]

    # -- Polling ------------------------------------------------------------

    def sync_selected_channel(self) -> None:
        """Adopt the channel currently selected on the front panel."""
        channel = self._query(self._psu.get_selected_channel)
        if channel is not None and 1 <= channel <= len(self.data):
            self.channel = channel

    def refresh(self) -> None:
        """Poll every channel once, reconnecting first if needed."""
        if not self.connected and not self._maybe_reconnect():
            return
        for index, data in enumerate(self.data):
            if not self._poll_channel(index + 1, data):
                return

    def _poll_channel(self, channel: int, data: ChannelData) -> bool:
        """Refresh *data* in place. Returns False if the connection dropped."""
        psu = self._psu
        readers: dict[str, Callable[[], object]] = {
            "output_enabled": lambda: psu.is_output_enabled(channel),
            "measurement": lambda: psu.measure(channel),
            "voltage_setpoint": lambda: psu.get_voltage(channel),
            "current_setpoint": lambda: psu.get_current(channel),
            "ovp_level": lambda: psu.get_ovp(channel),
            "ocp_level": lambda: psu.get_ocp(channel),
            "ovp_enabled": lambda: psu.is_ovp_enabled(channel),
            "ocp_enabled": lambda: psu.is_ocp_enabled(channel),
        }
        for field in fields(data):
            value = self._query(readers[field.name])
            if not self.connected:
                return False
            setattr(data, field.name, value)
        return True

    def _query(self, reader: Callable[[], T]) -> T | None:
        """Run one read. Malformed replies and connection loss yield None."""
        try:
            return reader()
        except ProtocolError as exc:
            logger.warning("Reading unavailable: %s", exc)
            return None
        except (ConnectionLostError, NotConnectedError) as exc:
            self._on_disconnect(exc)
            return None

    def _command(self, action: Callable[[], None]) -> None:
        """Run one write, reporting failures in the status line."""
        try:
            action()
        except (ConnectionLostError, NotConnectedError) as exc:
            self._on_disconnect(exc)
        except ClientError as exc:
            self.status = str(exc)
            logger.warning("Command failed: %s", exc)

    def _on_disconnect(self, exc: ClientError) -> None:
        self.status = f"Disconnected ({exc}). Press [r] to reconnect."
        logger.warning("Instrument disconnected: %s", exc)

    def _maybe_reconnect(self) -> bool:
        now = self._clock()
        last = self._last_reconnect_attempt
        if last is not None and now - last < self._config.reconnect_interval:
            return False
        return self.reconnect()

    def reconnect(self) -> bool:
        """Try to re-establish the connection. Returns True on success."""
        self._last_reconnect_attempt = self._clock()
        try:
            self._psu.client.reconnect()
        except NotConnectedError as exc:
            self.status = f"Reconnect failed ({exc}). Press [r] to retry."
            return False
        self.status = ""
        self.sync_selected_channel()
        return True

    # -- Key dispatch -------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """Process one key press.

        Args:
            key: A printable character or one of ``"up"``, ``"down"``,
                ``"left"``, ``"right"``, ``"enter"``, ``"esc"``,
                ``"backspace"``.

        Returns:
            False if the operator asked to quit, True otherwise.
        """
        if key == "q":
            return False
        if self.input_title:
            self._handle_input_key(key)
        else:
            self._handle_navigation_key(key)
        return True

    def _handle_input_key(self, key: str) -> None:
        if key == "enter":
            self._submit_input()
        elif key == "esc":
            self.input_title = ""
            self.input = ""
        elif key == "backspace":
            self.input = self.input[:-1]
        elif len(key) == 1 and (key.isdigit() or key == "."):
            if len(self.input) < self._config.max_input_length:
                self.input += key

    def _submit_input(self) -> None:
        text = self.input
        self.input_title = ""
        self.input = ""
        try:
            value = float(text)
        except ValueError:
            self.status = f"Invalid number: {text!r}"
            return
        psu, channel = self._psu, self.channel
        setters: dict[Selection, Callable[[], None]] = {
            Selection.SET_VOLT: lambda: psu.set_voltage(channel, value),
            Selection.SET_AMP: lambda: psu.set_current(channel, value),
            Selection.OVP: lambda: psu.set_ovp(channel, value),
            Selection.OCP: lambda: psu.set_ocp(channel, value),
        }
        self.status = ""
        self._command(setters[self.selection])

    def _handle_navigation_key(self, key: str) -> None:
        if key in ("right", "l"):
            self._switch_channel(self.channel % len(self.data) + 1)
        elif key in ("left", "h"):
            self._switch_channel((self.channel - 2) % len(self.data) + 1)
        elif key in ("up", "k"):
            self.selection = self.selection.prev()
        elif key in ("down", "j"):
            self.selection = self.selection.next()
        elif key == "r":
            self.reconnect()
        elif key == "enter":
            self._activate()

    def _switch_channel(self, channel: int) -> None:
        self.channel = channel
        self._command(lambda: self._psu.select_channel(channel))
        if self._config.channel_switch_delay:
            self._sleep(self._config.channel_switch_delay)

    def _activate(self) -> None:
        prompt = self.selection.prompt
        if prompt is not None:
            self.input_title = prompt
            return
        psu, channel, data = self._psu, self.channel, self.channel_data
        toggles: dict[Selection, tuple[bool | None, Callable[[bool], None]]] = {
            Selection.MEASURE: (data.output_enabled, lambda on: psu.set_output_enabled(channel, on)),
            Selection.OVP_ON: (data.ovp_enabled, lambda on: psu.set_ovp_enabled(channel, on)),
            Selection.OCP_ON: (data.ocp_enabled, lambda on: psu.set_ocp_enabled(channel, on)),
        }
        current, setter = toggles[self.selection]
        if current is None:
            self.status = "State unknown; waiting for a reading"
            return
        self._command(lambda: setter(not current))

    # -- Rendering ----------------------------------------------------------

    def render(self) -> RenderableType:
        """Build the full-screen renderable."""
        grid = Table.grid(expand=True)
        for _ in self.data:
            grid.add_column(ratio=1)
        grid.add_row(*(self._render_channel(index + 1, data) for index, data in enumerate(self.data)))

        parts: list[RenderableType] = [grid]
        if self.input_title:
            parts.append(
                Panel(
                    Text(self.input),
                    title=Text(self.input_title, style="bold white"),
                    title_align="left",
                    border_style="yellow",
                )
            )
        if self.status:
            parts.append(Text(self.status, style="yellow" if self.connected else "bold red"))
        parts.append(Text(HELP_TEXT))
        return Group(*parts)

    def _render_channel(self, channel: int, data: ChannelData) -> RenderableType:
        selected = channel == self.channel
        title_style = "bold green" if data.output_enabled else "bold white"

        def border(rows: tuple[Selection, ...]) -> str:
            return "white" if selected and self.selection in rows else "bright_black"

        def items(values: list[tuple[str, str]], rows: tuple[Selection, ...]) -> Text:
            text = Text()
            for index, (line, style) in enumerate(values):
                cursor = ">" if selected and self.selection in rows and self.selection.list_index == index else " "
                text.append(f"{cursor}{line}\n", style=style)
            text.rstrip()
            return text

        measurement = data.measurement
        readings = "\n".join(
            (
                _fmt(measurement.voltage if measurement else None, "V"),
                _fmt(measurement.current if measurement else None, "A"),
                _fmt(measurement.power if measurement else None, "W"),
            )
        )
        measure_panel = Panel(
            Text(readings, style="bold white" if data.output_enabled else "bold dim"),
            title=Text(f"CH{channel} - {_on_off(data.output_enabled)}", style=title_style),
            title_align="left",
            border_style=border((Selection.MEASURE,)),
        )
        set_panel = Panel(
            items(
                [(_fmt(data.voltage_setpoint, "V"), ""), (_fmt(data.current_setpoint, "A"), "")],
                _SET_ROWS,
            ),
            title=Text("Set", style=title_style),
            title_align="left",
            border_style=border(_SET_ROWS),
        )
        limit_panel = Panel(
            items(
                [
                    (_fmt(data.ovp_level, "V"), "" if data.ovp_enabled else "dim"),
                    (_fmt(data.ocp_level, "A"), "" if data.ocp_enabled else "dim"),
                    (f"OVP: {_on_off(data.ovp_enabled)}", ""),
                    (f"OCP: {_on_off(data.ocp_enabled)}", ""),
                ],
                _LIMIT_ROWS,
            ),
            title=Text("Limit", style=title_style),
            title_align="left",
            border_style=border(_LIMIT_ROWS),
        )
        return Group(measure_panel, set_panel, limit_panel)
