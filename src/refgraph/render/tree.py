"""Tree renderer.

Renders the filtered referrer tree with box-drawing connectors:

    registry.test/acme/app@sha256:9f86...
    ├── sha256:2c26... application/vnd.example.sbom+json
    │   └── sha256:fcde... application/vnd.example.signature
    └── sha256:b5bb... application/vnd.example.signature

In verbose mode every annotation of a node is listed under it, one
``key: value`` line per annotation (YAML-encoded, sorted by key), ahead of
the node's referrers.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING

import yaml

from refgraph.render.base import OutputFormat, Renderer

if TYPE_CHECKING:
    from refgraph.oci.discovery import DiscoveryResult
    from refgraph.oci.graph import ReferrerNode
    from refgraph.schemas.oci import Descriptor

BRANCH = "├── "
LAST_BRANCH = "└── "
PIPE = "│   "
SPACE = "    "

_STR_TAG = "tag:yaml.org,2002:str"


class _AnnotationDumper(yaml.SafeDumper):
    """SafeDumper that double-quotes strings a YAML loader would not read back as strings."""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    style = None
    if dumper.resolve(yaml.ScalarNode, value, (True, False)) != _STR_TAG:
        # Timestamps, booleans, numbers and nulls
        style = '"'
    return dumper.represent_scalar(_STR_TAG, value, style=style)


_AnnotationDumper.add_representer(str, _represent_str)


def annotation_line(key: str, value: str) -> str:
    """Encode one annotation as a single YAML ``key: value`` line.

    Values that would otherwise load as another type are double-quoted.

    Examples:
        >>> annotation_line("org.opencontainers.image.created", "2024-01-01")
        'org.opencontainers.image.created: "2024-01-01"'
    """
    line = yaml.dump(
        {key: value},
        Dumper=_AnnotationDumper,
        default_flow_style=False,
        allow_unicode=True,
        width=sys.maxsize,
    )
    line = line.strip()
    if "\n" in line:
        # Multi-line values; a JSON string is also a YAML double-quoted scalar.
        return f"{key}: {json.dumps(value, ensure_ascii=False)}"
    return line


def node_label(descriptor: Descriptor) -> str:
    """Return ``<digest> <artifactType>`` for a referrer node."""
    if descriptor.artifact_type:
        return f"{descriptor.digest} {descriptor.artifact_type}"
    return descriptor.digest


class TreeRenderer(Renderer):
    """Referrer tree with box-drawing connectors."""

    format = OutputFormat.TREE

    def render(self, result: DiscoveryResult) -> str:
        lines = [result.canonical_reference]
        self._render_children(result.tree, "", lines)
        return "\n".join(lines)

    def _render_children(self, node: ReferrerNode, prefix: str, lines: list[str]) -> None:
        entries: list[str | ReferrerNode] = []
        if self.verbose and node.depth > 0 and node.descriptor.annotations:
            annotations = node.descriptor.annotations
            entries.extend(annotation_line(key, annotations[key]) for key in sorted(annotations))
        entries.extend(node.children)

        for i, entry in enumerate(entries):
            is_last = i == len(entries) - 1
            connector = LAST_BRANCH if is_last else BRANCH
            if isinstance(entry, str):
                lines.append(prefix + connector + entry)
                continue
            lines.append(prefix + connector + node_label(entry.descriptor))
            self._render_children(entry, prefix + (SPACE if is_last else PIPE), lines)


__all__ = ["TreeRenderer", "annotation_line", "node_label"]
