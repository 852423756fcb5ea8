"""Output renderers for discovery results.

Key Components:
- OutputFormat: tree (default), json, yaml, table
- JSONRenderer / YAMLRenderer: Filtered direct referrers as an image index
- TreeRenderer: Whole filtered referrer tree
- TableRenderer: Filtered direct referrers as a text table

Example:
    >>> renderer = get_renderer(OutputFormat.TREE, verbose=True)
    >>> print(renderer.render(result))
"""

from __future__ import annotations

from refgraph.render.base import OutputFormat, Renderer
from refgraph.render.structured import JSONRenderer, YAMLRenderer
from refgraph.render.table import TableRenderer
from refgraph.render.tree import TreeRenderer

_RENDERERS: dict[OutputFormat, type[Renderer]] = {
    OutputFormat.TREE: TreeRenderer,
    OutputFormat.JSON: JSONRenderer,
    OutputFormat.YAML: YAMLRenderer,
    OutputFormat.TABLE: TableRenderer,
}


def get_renderer(output_format: OutputFormat | str, *, verbose: bool = False) -> Renderer:
    """Return the renderer for an output format.

    Raises:
        ValueError: If the format is unknown.
    """
    return _RENDERERS[OutputFormat(output_format)](verbose=verbose)


__all__ = [
    "JSONRenderer",
    "OutputFormat",
    "Renderer",
    "TableRenderer",
    "TreeRenderer",
    "YAMLRenderer",
    "get_renderer",
]
