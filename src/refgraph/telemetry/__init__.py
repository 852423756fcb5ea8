"""Logging and trace correlation for refgraph."""

from __future__ import annotations

from refgraph.telemetry.logging import LOG_LEVELS, add_trace_context, configure_logging

__all__ = ["LOG_LEVELS", "add_trace_context", "configure_logging"]
