"""Tests for the dashboard state machine and rendering."""

from __future__ import annotations

import io
from collections.abc import Iterator
from typing import Any

import pytest
from rich.console import Console

from dp800_emulator import EmulatorServer, make_dp832_emulator
from dp800_scpi import (
    ConnectionLostError,
    Dp800,
    InstrumentClient,
    InvalidParameterError,
    Measurement,
    NotANumberError,
    NotConnectedError,
    ProtocolError,
    TransportTimeoutError,
)
from dp800_tui.dashboard import HELP_TEXT, ChannelData, Dashboard, DashboardConfig, Selection, _fmt

# ---------------------------------------------------------------------------
# Fake driver
# ---------------------------------------------------------------------------


class FakeClient:
    """Stands in for InstrumentClient's connection handling."""

    def __init__(self) -> None:
        self.connected = True
        self.reconnect_calls = 0
        self.fail_reconnect = False

    def is_connected(self) -> bool:
        return self.connected

    def reconnect(self) -> None:
        self.reconnect_calls += 1
        if self.fail_reconnect:
            raise NotConnectedError("refused")
        self.connected = True


class FakePsu:
    """In-memory Dp800 look-alike recording every call.

    ``failures`` maps a method name to the exception it raises.
    """

    channel_count = 3

    def __init__(self) -> None:
        self.client = FakeClient()
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, Exception] = {}
        self.selected = 1
        self.output = {1: False, 2: True, 3: False}
        self.ovp_on = {1: False, 2: False, 3: False}
        self.ocp_on = {1: False, 2: False, 3: False}

    def _call(self, name: str, *args: Any) -> None:
        if not self.client.connected:
            raise NotConnectedError("Not connected")
        self.calls.append((name, *args))
        exc = self.failures.get(name)
        if exc is not None:
            if isinstance(exc, ConnectionLostError):
                self.client.connected = False
            raise exc

    def get_selected_channel(self) -> int:
        self._call("get_selected_channel")
        return self.selected

    def select_channel(self, channel: int) -> None:
        self._call("select_channel", channel)
        self.selected = channel

    def is_output_enabled(self, channel: int) -> bool:
        self._call("is_output_enabled", channel)
        return self.output[channel]

    def set_output_enabled(self, channel: int, enabled: bool) -> None:
        self._call("set_output_enabled", channel, enabled)
        self.output[channel] = enabled

    def measure(self, channel: int) -> Measurement:
        self._call("measure", channel)
        return Measurement(voltage=float(channel), current=0.1, power=0.1 * channel)

    def get_voltage(self, channel: int) -> float:
        self._call("get_voltage", channel)
        return 5.0

    def set_voltage(self, channel: int, volts: float) -> None:
        self._call("set_voltage", channel, volts)

    def get_current(self, channel: int) -> float:
        self._call("get_current", channel)
        return 1.0

    def set_current(self, channel: int, amps: float) -> None:
        self._call("set_current", channel, amps)

    def get_ovp(self, channel: int) -> float:
        self._call("get_ovp", channel)
        return 33.0

    def set_ovp(self, channel: int, volts: float) -> None:
        self._call("set_ovp", channel, volts)

    def get_ocp(self, channel: int) -> float:
        self._call("get_ocp", channel)
        return 3.3

    def set_ocp(self, channel: int, amps: float) -> None:
        self._call("set_ocp", channel, amps)

    def is_ovp_enabled(self, channel: int) -> bool:
        self._call("is_ovp_enabled", channel)
        return self.ovp_on[channel]

    def set_ovp_enabled(self, channel: int, enabled: bool) -> None:
        self._call("set_ovp_enabled", channel, enabled)
        self.ovp_on[channel] = enabled

    def is_ocp_enabled(self, channel: int) -> bool:
        self._call("is_ocp_enabled", channel)
        return self.ocp_on[channel]

    def set_ocp_enabled(self, channel: int, enabled: bool) -> None:
        self._call("set_ocp_enabled", channel, enabled)
        self.ocp_on[channel] = enabled


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def psu() -> FakePsu:
    return FakePsu()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def dashboard(psu: FakePsu, clock: FakeClock, sleeps: list[float]) -> Dashboard:
    return Dashboard(psu, clock=clock, sleep=sleeps.append)  # type: ignore[arg-type]


def _lost() -> ConnectionLostError:
    return ConnectionLostError(TransportTimeoutError("Timed out waiting for reply"))


def _type(dashboard: Dashboard, keys: str) -> None:
    for key in keys:
        dashboard.handle_key(key)


def _render_text(dashboard: Dashboard) -> str:
    console = Console(file=io.StringIO(), record=True, width=140, color_system=None)
    console.print(dashboard.render())
    return console.export_text()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestDashboardConfig:
    """Tests for DashboardConfig validation."""

    def test_defaults(self) -> None:
        config = DashboardConfig()
        assert config.tick_rate == 0.25
        assert config.reconnect_interval == 2.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tick_rate": 0},
            {"timeout": -1.0},
            {"reconnect_interval": -1.0},
            {"channel_switch_delay": -0.1},
            {"max_input_length": 0},
        ],
    )
    def test_invalid(self, kwargs: dict[str, Any]) -> None:
        with pytest.raises(ValueError):
            DashboardConfig(**kwargs)


class TestSelection:
    """Tests for Selection cycling."""

    def test_next_wraps(self) -> None:
        assert Selection.OCP_ON.next() is Selection.MEASURE

    def test_prev_wraps(self) -> None:
        assert Selection.MEASURE.prev() is Selection.OCP_ON

    def test_prompts(self) -> None:
        assert Selection.SET_VOLT.prompt == "Voltage Setpoint (V)"
        assert Selection.OCP.prompt == "Over Current Protection (A)"
        assert Selection.OVP_ON.prompt is None


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class TestRefresh:
    """Tests for refresh and connection handling."""

    def test_initial_data_unavailable(self, dashboard: Dashboard) -> None:
        assert dashboard.data == [ChannelData(), ChannelData(), ChannelData()]

    def test_refresh_fills_every_channel(self, dashboard: Dashboard) -> None:
        dashboard.refresh()
        second = dashboard.data[1]
        assert second.output_enabled is True
        assert second.measurement == Measurement(2.0, 0.1, 0.2)
        assert second.voltage_setpoint == 5.0
        assert second.current_setpoint == 1.0
        assert second.ovp_level == 33.0
        assert second.ocp_level == 3.3
        assert second.ovp_enabled is False
        assert second.ocp_enabled is False
        assert dashboard.data[2].measurement == Measurement(3.0, 0.1, pytest.approx(0.3))

    def test_malformed_reading_shown_unavailable(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.failures["measure"] = ProtocolError(NotANumberError("Invalid SCPI number: 'x'", "x"))
        dashboard.refresh()
        assert dashboard.data[0].measurement is None
        assert dashboard.data[0].voltage_setpoint == 5.0
        assert dashboard.connected
        assert dashboard.status == ""

    def test_connection_loss_stops_polling(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.failures["is_output_enabled"] = _lost()
        dashboard.refresh()
        assert len(psu.calls) == 1
        assert not dashboard.connected
        assert dashboard.status.startswith("Disconnected (")
        assert "Press [r] to reconnect." in dashboard.status

    def test_previous_reading_kept_on_loss(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.refresh()
        psu.failures["get_voltage"] = _lost()
        dashboard.refresh()
        assert dashboard.data[0].voltage_setpoint == 5.0

    def test_auto_reconnect(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.client.connected = False
        dashboard.refresh()
        assert psu.client.reconnect_calls == 1
        assert dashboard.connected
        assert dashboard.data[0].voltage_setpoint == 5.0

    def test_auto_reconnect_throttled(self, dashboard: Dashboard, psu: FakePsu, clock: FakeClock) -> None:
        psu.client.connected = False
        psu.client.fail_reconnect = True
        dashboard.refresh()
        assert dashboard.status.startswith("Reconnect failed (")
        clock.now += 1.0
        dashboard.refresh()
        assert psu.client.reconnect_calls == 1
        clock.now += 1.0
        dashboard.refresh()
        assert psu.client.reconnect_calls == 2

    def test_reconnect_key(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.client.connected = False
        psu.selected = 3
        assert dashboard.handle_key("r") is True
        assert psu.client.reconnect_calls == 1
        assert dashboard.status == ""
        assert dashboard.channel == 3

    def test_sync_selected_channel(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.selected = 2
        dashboard.sync_selected_channel()
        assert dashboard.channel == 2

    def test_sync_ignores_out_of_range_channel(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.selected = 7
        dashboard.sync_selected_channel()
        assert dashboard.channel == 1


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


class TestNavigation:
    """Tests for cursor movement and channel switching."""

    def test_quit(self, dashboard: Dashboard) -> None:
        assert dashboard.handle_key("q") is False

    def test_right_selects_next_channel(self, dashboard: Dashboard, psu: FakePsu, sleeps: list[float]) -> None:
        dashboard.handle_key("right")
        assert dashboard.channel == 2
        assert psu.calls == [("select_channel", 2)]
        assert sleeps == [0.05]

    def test_right_wraps(self, dashboard: Dashboard) -> None:
        _type(dashboard, "lll")
        assert dashboard.channel == 1

    def test_left_wraps(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.handle_key("left")
        assert dashboard.channel == 3
        assert psu.calls == [("select_channel", 3)]

    def test_down_and_up(self, dashboard: Dashboard) -> None:
        dashboard.handle_key("down")
        assert dashboard.selection is Selection.SET_VOLT
        dashboard.handle_key("k")
        dashboard.handle_key("k")
        assert dashboard.selection is Selection.OCP_ON

    def test_unknown_key_ignored(self, dashboard: Dashboard, psu: FakePsu) -> None:
        assert dashboard.handle_key("x") is True
        assert psu.calls == []


# ---------------------------------------------------------------------------
# Numeric input
# ---------------------------------------------------------------------------


class TestInput:
    """Tests for the numeric input box."""

    def test_enter_opens_input(self, dashboard: Dashboard) -> None:
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        assert dashboard.input_title == "Voltage Setpoint (V)"

    def test_submit_sets_voltage(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "5.5")
        dashboard.handle_key("enter")
        assert psu.calls == [("set_voltage", 1, 5.5)]
        assert dashboard.input_title == ""
        assert dashboard.input == ""

    @pytest.mark.parametrize(
        ("selection", "method"),
        [
            (Selection.SET_AMP, "set_current"),
            (Selection.OVP, "set_ovp"),
            (Selection.OCP, "set_ocp"),
        ],
    )
    def test_submit_targets_selected_row(
        self, dashboard: Dashboard, psu: FakePsu, selection: Selection, method: str
    ) -> None:
        dashboard.channel = 2
        dashboard.selection = selection
        dashboard.handle_key("enter")
        _type(dashboard, "1.25")
        dashboard.handle_key("enter")
        assert psu.calls == [(method, 2, 1.25)]

    def test_only_digits_and_dot_accepted(self, dashboard: Dashboard) -> None:
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "1a-2.b3")
        assert dashboard.input == "12.3"

    def test_q_quits_while_typing(self, dashboard: Dashboard) -> None:
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        assert dashboard.handle_key("q") is False

    def test_length_capped(self, psu: FakePsu) -> None:
        dashboard = Dashboard(psu, DashboardConfig(max_input_length=4), sleep=lambda s: None)  # type: ignore[arg-type]
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "123456")
        assert dashboard.input == "1234"

    def test_backspace(self, dashboard: Dashboard) -> None:
        dashboard.selection = Selection.SET_AMP
        dashboard.handle_key("enter")
        _type(dashboard, "12")
        dashboard.handle_key("backspace")
        assert dashboard.input == "1"

    def test_esc_discards(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "9")
        dashboard.handle_key("esc")
        assert dashboard.input_title == ""
        assert dashboard.input == ""
        assert psu.calls == []

    def test_invalid_number(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "..")
        dashboard.handle_key("enter")
        assert dashboard.status == "Invalid number: '..'"
        assert psu.calls == []

    def test_rejected_parameter_reported(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.failures["set_voltage"] = InvalidParameterError("volts must be a finite number")
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "1")
        dashboard.handle_key("enter")
        assert dashboard.status == "volts must be a finite number"
        assert dashboard.connected

    def test_command_while_disconnected(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.client.connected = False
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "1")
        dashboard.handle_key("enter")
        assert dashboard.status.startswith("Disconnected (")


# ---------------------------------------------------------------------------
# Toggles
# ---------------------------------------------------------------------------


class TestToggles:
    """Tests for Enter on toggle rows."""

    def test_output_toggle(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.refresh()
        psu.calls.clear()
        dashboard.handle_key("enter")
        assert psu.calls == [("set_output_enabled", 1, True)]

    def test_output_toggle_off(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.refresh()
        psu.calls.clear()
        dashboard.channel = 2
        dashboard.handle_key("enter")
        assert psu.calls == [("set_output_enabled", 2, False)]

    def test_ovp_toggle(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.refresh()
        psu.calls.clear()
        dashboard.selection = Selection.OVP_ON
        dashboard.handle_key("enter")
        assert psu.calls == [("set_ovp_enabled", 1, True)]

    def test_ocp_toggle(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.refresh()
        psu.calls.clear()
        dashboard.selection = Selection.OCP_ON
        dashboard.handle_key("enter")
        assert psu.calls == [("set_ocp_enabled", 1, True)]

    def test_unknown_state_not_toggled(self, dashboard: Dashboard, psu: FakePsu) -> None:
        dashboard.handle_key("enter")
        assert psu.calls == []
        assert dashboard.status == "State unknown; waiting for a reading"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestFormat:
    """Tests for reading formatting."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "    -- V"),
            (float("nan"), "    -- V"),
            (9.91e37, "  OVLD V"),
            (-9.91e37, "  OVLD V"),
            (float("inf"), "  OVLD V"),
            (4.998, " 4.998 V"),
        ],
    )
    def test_fmt(self, value: float | None, expected: str) -> None:
        assert _fmt(value, "V") == expected


class TestRender:
    """Tests for render."""

    def test_placeholders_before_first_poll(self, dashboard: Dashboard) -> None:
        text = _render_text(dashboard)
        assert "CH1 - --" in text
        assert "--" in text
        assert HELP_TEXT in text

    def test_readings(self, dashboard: Dashboard) -> None:
        dashboard.refresh()
        text = _render_text(dashboard)
        assert "CH2 - On" in text
        assert "CH3 - Off" in text
        assert "33.000 V" in text
        assert "OVP: Off" in text

    def test_overflowed_reading_shown_as_overload(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.measure = lambda channel: Measurement(9.91e37, float("nan"), 9.91e37)  # type: ignore[method-assign]
        dashboard.refresh()
        text = _render_text(dashboard)
        assert "  OVLD V" in text
        assert "    -- A" in text
        assert "E+37" not in text
        assert "99100000" not in text

    def test_cursor_marks_selected_row(self, dashboard: Dashboard) -> None:
        dashboard.refresh()
        dashboard.selection = Selection.SET_AMP
        assert ">" + " 1.000 A" in _render_text(dashboard)

    def test_input_box(self, dashboard: Dashboard) -> None:
        dashboard.selection = Selection.OVP
        dashboard.handle_key("enter")
        _type(dashboard, "12")
        text = _render_text(dashboard)
        assert "Over Voltage Protection (V)" in text
        assert "12" in text

    def test_status_line(self, dashboard: Dashboard, psu: FakePsu) -> None:
        psu.failures["is_output_enabled"] = _lost()
        dashboard.refresh()
        assert "Press [r] to reconnect." in _render_text(dashboard)


# ---------------------------------------------------------------------------
# Against the emulator
# ---------------------------------------------------------------------------


@pytest.fixture
def served_psu() -> Iterator[tuple[Dp800, EmulatorServer]]:
    with EmulatorServer(make_dp832_emulator(), port=0) as server:
        host, port = server.address
        client = InstrumentClient.connect(f"{host}:{port}", default_timeout=2.0)
        try:
            yield Dp800(client), server
        finally:
            client.close()


@pytest.mark.integration
class TestEmulatorDashboard:
    """Dashboard driving a served emulator."""

    def test_refresh_and_set(self, served_psu: tuple[Dp800, EmulatorServer]) -> None:
        psu, server = served_psu
        dashboard = Dashboard(psu, sleep=lambda s: None)
        dashboard.selection = Selection.SET_VOLT
        dashboard.handle_key("enter")
        _type(dashboard, "12")
        dashboard.handle_key("enter")
        dashboard.selection = Selection.MEASURE
        dashboard.refresh()
        dashboard.handle_key("enter")
        dashboard.refresh()
        data = dashboard.data[0]
        assert data.voltage_setpoint == 12.0
        assert data.output_enabled is True
        assert data.measurement == Measurement(12.0, 0.0, 0.0)
        assert data.ovp_level == 33.0

    def test_channel_switch_reaches_instrument(self, served_psu: tuple[Dp800, EmulatorServer]) -> None:
        psu, _ = served_psu
        dashboard = Dashboard(psu, sleep=lambda s: None)
        dashboard.handle_key("right")
        assert psu.get_selected_channel() == 2

    def test_muted_instrument_disconnects(self, served_psu: tuple[Dp800, EmulatorServer]) -> None:
        psu, server = served_psu
        dashboard = Dashboard(Dp800(psu.client, timeout=0.1), sleep=lambda s: None)
        server.muted = True
        dashboard.refresh()
        assert not dashboard.connected
        assert dashboard.status.startswith("Disconnected (")
