"""Command-line interface for refgraph.

Example:
    $ refgraph discover ghcr.io/acme/app:v1.0.0

Exit Codes:
    0: Success (including no referrers found)
    1: General error
    2: Invalid reference or platform selector
    3: Subject not found
    4: Authentication error
    5: Registry or layout unavailable
    6: Referrer graph too deep or too large
    130: Cancelled
"""

from __future__ import annotations

from refgraph.cli.main import cli, main
from refgraph.cli.utils import ExitCode, error, error_exit, warn

__all__: list[str] = [
    # Entry points
    "main",
    "cli",
    # Utilities
    "ExitCode",
    "error",
    "error_exit",
    "warn",
]
