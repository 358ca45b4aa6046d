"""Rigol DP800 power supply emulator for dp800.

This package provides an in-process emulator of the SCPI dialect used by
:mod:`dp800_scpi`, and a TCP server exposing it on a raw socket the way the
real supply's LAN port does.

Modules:
    emulator: In-process DP800 emulator with per-channel state.
    server: TCP server for clients, telnet and netcat.

Example:
    Serve an emulated DP832 and drive it through the protocol layer::

        from dp800_emulator import EmulatorServer, make_dp832_emulator
        from dp800_scpi import create_instrument

        with EmulatorServer(make_dp832_emulator(), port=0) as server:
            host, port = server.address
            psu = create_instrument(f"{host}:{port}")
            psu.set_voltage(1, 12.0)
"""

from dp800_emulator.emulator import (
    Dp800Emulator,
    EmulatorConfig,
    make_dp811_emulator,
    make_dp832_emulator,
)
from dp800_emulator.server import EmulatorServer

__all__ = [
    # Emulator
    "Dp800Emulator",
    "EmulatorConfig",
    "make_dp811_emulator",
    "make_dp832_emulator",
    # Server
    "EmulatorServer",
]
