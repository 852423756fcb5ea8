"""Table renderer for direct referrers.

    Subject: registry.test/acme/app:v1
    Digest:  sha256:9f86...

    ARTIFACT TYPE                      DIGEST           SIZE
    application/vnd.example.sbom+json  sha256:2c26...   1024

Columns are padded to their widest cell; digests are never truncated. In
verbose mode an ANNOTATIONS column lists ``key=value`` pairs sorted by key.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from refgraph.render.base import OutputFormat, Renderer

if TYPE_CHECKING:
    from refgraph.oci.discovery import DiscoveryResult
    from refgraph.schemas.oci import Descriptor

HEADERS = ("ARTIFACT TYPE", "DIGEST", "SIZE")
ANNOTATIONS_HEADER = "ANNOTATIONS"
COLUMN_GAP = "  "


def format_annotations(annotations: dict[str, str] | None) -> str:
    """Format annotations as ``k=v`` pairs sorted by key."""
    if not annotations:
        return ""
    return ", ".join(f"{key}={annotations[key]}" for key in sorted(annotations))


class TableRenderer(Renderer):
    """Direct referrers as a padded text table."""

    format = OutputFormat.TABLE

    def render(self, result: DiscoveryResult) -> str:
        lines = [
            f"Subject: {result.reference.raw}",
            f"Digest:  {result.subject.digest}",
            "",
        ]
        headers = list(HEADERS)
        if self.verbose:
            headers.append(ANNOTATIONS_HEADER)
        rows = [self._row(desc) for desc in result.referrers]

        widths = [len(header) for header in headers]
        for row in rows:
            widths = [max(width, len(cell)) for width, cell in zip(widths, row, strict=True)]

        lines.append(self._format_row(headers, widths))
        lines.extend(self._format_row(row, widths) for row in rows)
        return "\n".join(lines)

    def _row(self, descriptor: Descriptor) -> list[str]:
        row = [descriptor.artifact_type or "", descriptor.digest, str(descriptor.size)]
        if self.verbose:
            row.append(format_annotations(descriptor.annotations))
        return row

    @staticmethod
    def _format_row(cells: list[str], widths: list[int]) -> str:
        padded = [f"{cell:<{width}}" for cell, width in zip(cells, widths, strict=True)]
        return COLUMN_GAP.join(padded).rstrip()


__all__ = ["TableRenderer", "format_annotations"]
