"""JSON and YAML renderers.

Both emit the filtered direct referrers as an OCI image index:

    {"schemaVersion": 2,
     "mediaType": "application/vnd.oci.image.index.v1+json",
     "manifests": [...]}

Descriptors keep their OCI field names and carry no computed fields, so the
output can be fed back to OCI tooling. No referrers renders
``"manifests": []``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import yaml

from refgraph.render.base import OutputFormat, Renderer

if TYPE_CHECKING:
    from refgraph.oci.discovery import DiscoveryResult


class JSONRenderer(Renderer):
    """Image index as indented JSON."""

    format = OutputFormat.JSON

    def render(self, result: DiscoveryResult) -> str:
        return json.dumps(result.index.to_dict(), indent=2)


class YAMLRenderer(Renderer):
    """Image index as block-style YAML."""

    format = OutputFormat.YAML

    def render(self, result: DiscoveryResult) -> str:
        data = result.index.to_dict()
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False).rstrip("\n")


__all__ = ["JSONRenderer", "YAMLRenderer"]
