"""Command-line interface for dp800-tui.

Usage:
    # Open the dashboard for a supply
    dp800-tui --address 192.168.1.50:5555

    # Address from the environment
    DP800_ADDRESS=192.168.1.50 dp800-tui

    # Serve an emulated DP832 for offline use
    dp800-tui emulate --port 5555
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

from rich.console import Console
from rich.live import Live

from dp800_emulator import EmulatorServer, make_dp811_emulator, make_dp832_emulator
from dp800_scpi import DEFAULT_PORT, Dp800, InstrumentClient, NotConnectedError
from dp800_tui.dashboard import Dashboard, DashboardConfig
from dp800_tui.terminal import KeyReader

logger = logging.getLogger(__name__)

ADDRESS_ENV_VAR = "DP800_ADDRESS"

_EMULATORS = {
    "dp832": make_dp832_emulator,
    "dp811": make_dp811_emulator,
}


def setup_logging(debug: bool = False, log_file: str | None = None, owns_screen: bool = False) -> None:
    """Configure logging.

    When the dashboard owns the screen and no log file is given, only errors
    reach stderr.
    """
    level = logging.DEBUG if debug else logging.INFO
    if owns_screen and log_file is None:
        level = logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        filename=log_file,
    )


def run_dashboard(dashboard: Dashboard, console: Console | None = None) -> None:
    """Drive *dashboard* until the operator quits.

    Keys are handled as they arrive; the instrument is polled every
    ``tick_rate`` seconds.
    """
    tick_rate = dashboard.config.tick_rate
    dashboard.refresh()
    last_tick = time.monotonic()
    with KeyReader() as keys, Live(
        dashboard.render(), console=console, screen=True, auto_refresh=False
    ) as live:
        while True:
            timeout = max(0.0, tick_rate - (time.monotonic() - last_tick))
            for key in keys.read_keys(timeout):
                if not dashboard.handle_key(key):
                    return
            if time.monotonic() - last_tick >= tick_rate:
                dashboard.refresh()
                last_tick = time.monotonic()
            live.update(dashboard.render(), refresh=True)


def cmd_dashboard(args: argparse.Namespace) -> int:
    """Connect to the supply and run the dashboard."""
    address = args.address or os.environ.get(ADDRESS_ENV_VAR)
    if not address:
        print(f"Error: supply address not provided (use --address or set {ADDRESS_ENV_VAR})", file=sys.stderr)
        return 2

    try:
        config = DashboardConfig(tick_rate=args.tick, timeout=args.timeout)
        logger.debug("Connecting to %s", address)
        client = InstrumentClient.connect(address, channel_count=args.channels, default_timeout=args.timeout)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except NotConnectedError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    logger.debug("Connected")

    with client:
        dashboard = Dashboard(Dp800(client, timeout=args.timeout), config)
        dashboard.sync_selected_channel()
        try:
            run_dashboard(dashboard)
        except KeyboardInterrupt:
            pass
    return 0


def cmd_emulate(args: argparse.Namespace) -> int:
    """Serve an emulated supply until interrupted."""
    server = EmulatorServer(_EMULATORS[args.model](), host=args.host, port=args.port)
    host, port = server.address
    print(f"Emulated {args.model.upper()} listening on {host}:{port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dp800-tui",
        description="Terminal dashboard for Rigol DP800 power supplies",
    )
    parser.add_argument(
        "-a",
        "--address",
        help=f"Supply address as HOST[:PORT] (default port {DEFAULT_PORT}); overrides ${ADDRESS_ENV_VAR}",
    )
    parser.add_argument("--channels", type=int, default=3, help="Number of output channels (default: 3)")
    parser.add_argument("--tick", type=float, default=0.25, help="Seconds between polls (default: 0.25)")
    parser.add_argument("--timeout", type=float, default=0.25, help="Reply timeout in seconds (default: 0.25)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Write logs to this file instead of stderr")

    subparsers = parser.add_subparsers(dest="command", help="Command to run (default: dashboard)")
    emulate = subparsers.add_parser("emulate", help="Serve an emulated supply over TCP")
    emulate.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    emulate.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Bind port (default: {DEFAULT_PORT})")
    emulate.add_argument("--model", choices=sorted(_EMULATORS), default="dp832", help="Emulated model")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug, args.log_file, owns_screen=args.command != "emulate")
    if args.command == "emulate":
        return cmd_emulate(args)
    return cmd_dashboard(args)


if __name__ == "__main__":
    sys.exit(main())
