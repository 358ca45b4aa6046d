"""Terminal dashboard for Rigol DP800 power supplies.

Modules:
    dashboard: Dashboard state, key dispatch and rich rendering.
    terminal: Raw-mode keyboard input.
    cli: ``dp800-tui`` command-line entry point.
"""

from dp800_tui.dashboard import ChannelData, Dashboard, DashboardConfig, Selection

__all__ = [
    "ChannelData",
    "Dashboard",
    "DashboardConfig",
    "Selection",
]
