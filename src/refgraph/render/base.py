"""Renderer interface and output formats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from refgraph.oci.discovery import DiscoveryResult


class OutputFormat(str, Enum):
    """Output formats of ``refgraph discover``."""

    TREE = "tree"
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"

    @property
    def recursive(self) -> bool:
        """Check if the format shows the whole referrer tree.

        Structured and table output list direct referrers only.
        """
        return self is OutputFormat.TREE


class Renderer(ABC):
    """Turns a discovery result into text for stdout.

    Attributes:
        verbose: Include annotations.
    """

    format: OutputFormat

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose

    @abstractmethod
    def render(self, result: DiscoveryResult) -> str:
        """Render ``result``; the text has no trailing newline."""


__all__ = ["OutputFormat", "Renderer"]
