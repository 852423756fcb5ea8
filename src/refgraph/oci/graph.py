"""Referrer graph construction.

The graph builder expands a resolved subject into a tree of referrers, one
level at a time:

    level 0: subject
    level 1: referrers of the subject
    level 2: referrers of each level-1 referrer
    ...

Each level is fetched through BatchFetcher, so siblings are listed in
parallel while their children are attached in sibling order. Traversal stops
when a level comes back empty or when the requested depth is reached.

Two budgets guard against pathological registries (for example a referrer
cycle served by a misbehaving registry): ``recursion_limit`` caps the number
of levels and ``node_limit`` the total number of referrers. Exceeding either
raises RecursionLimitExceededError; the tree is never silently truncated.

Example:
    >>> builder = GraphBuilder(ReferrerFetcher(store))
    >>> graph = builder.build(subject, reference="ghcr.io/acme/app@sha256:...")
    >>> [node.descriptor.digest for node in graph.root.children]
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from refgraph.errors import RecursionLimitExceededError
from refgraph.oci.batch_fetcher import BatchFetcher
from refgraph.oci.referrers import ReferrerFetcher
from refgraph.schemas.oci import Descriptor

if TYPE_CHECKING:
    from refgraph.oci.metrics import DiscoveryMetrics

logger = structlog.get_logger(__name__)

DEFAULT_RECURSION_LIMIT = 32
"""Maximum referrer tree depth before discovery fails."""

DEFAULT_NODE_LIMIT = 10_000
"""Maximum number of referrers in one tree before discovery fails."""


@dataclass
class ReferrerNode:
    """One node of the referrer tree.

    Attributes:
        descriptor: Descriptor of the subject (depth 0) or of a referrer.
        depth: Distance from the root; the root is 0.
        children: Direct referrers of this node, in sibling order.
    """

    descriptor: Descriptor
    depth: int = 0
    children: list[ReferrerNode] = field(default_factory=list)

    @property
    def digest(self) -> str:
        return self.descriptor.digest

    def walk(self) -> Iterator[ReferrerNode]:
        """Yield this node and its descendants, depth first in sibling order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass
class ReferrerGraph:
    """Referrer tree rooted at a resolved subject.

    Attributes:
        reference: Canonical ``<locator>@<digest>`` reference of the subject.
        root: Root node holding the subject descriptor.
        max_depth: Depth the graph was built to; None when unbounded.
    """

    reference: str
    root: ReferrerNode
    max_depth: int | None = None

    @property
    def subject(self) -> Descriptor:
        return self.root.descriptor

    @property
    def referrers(self) -> list[Descriptor]:
        """Return the direct referrers of the subject."""
        return [child.descriptor for child in self.root.children]

    @property
    def node_count(self) -> int:
        """Return the number of referrer nodes, excluding the root."""
        return sum(1 for _ in self.root.walk()) - 1

    @property
    def depth(self) -> int:
        """Return the depth of the deepest node."""
        return max(node.depth for node in self.root.walk())


class GraphBuilder:
    """Builds referrer trees level by level.

    Attributes:
        fetcher: Lists the direct referrers of one subject.
        batch_fetcher: Runs the fetches of one level in parallel.
        recursion_limit: Maximum tree depth.
        node_limit: Maximum number of referrer nodes.
        sort_siblings: Sort siblings by digest instead of keeping store
            order. Defaults to True for stores without a stable order.
    """

    def __init__(
        self,
        fetcher: ReferrerFetcher,
        *,
        batch_fetcher: BatchFetcher | None = None,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
        node_limit: int = DEFAULT_NODE_LIMIT,
        sort_siblings: bool | None = None,
        metrics: DiscoveryMetrics | None = None,
    ) -> None:
        """Initialize GraphBuilder.

        Args:
            fetcher: Referrer fetcher bound to the store.
            batch_fetcher: Parallel level fetcher; a default one is created
                when omitted.
            recursion_limit: Maximum tree depth (>= 1).
            node_limit: Maximum number of referrer nodes (>= 1).
            sort_siblings: Override sibling sorting. None derives it from
                the store's ``ordered_referrers`` flag.
            metrics: Optional metrics collector for per-level spans.

        Raises:
            ValueError: If a limit is less than 1.
        """
        if recursion_limit < 1:
            raise ValueError(f"recursion_limit must be >= 1, got {recursion_limit}")
        if node_limit < 1:
            raise ValueError(f"node_limit must be >= 1, got {node_limit}")
        self.fetcher = fetcher
        self.batch_fetcher = batch_fetcher or BatchFetcher()
        self.recursion_limit = recursion_limit
        self.node_limit = node_limit
        if sort_siblings is None:
            sort_siblings = not fetcher.store.ordered_referrers
        self.sort_siblings = sort_siblings
        self._metrics = metrics

    def build(
        self,
        subject: Descriptor,
        *,
        reference: str = "",
        max_depth: int | None = None,
    ) -> ReferrerGraph:
        """Build the referrer tree of ``subject``.

        Args:
            subject: Resolved subject descriptor.
            reference: Canonical subject reference, used for the graph label
                and in error messages.
            max_depth: Number of referrer levels to fetch. 1 lists direct
                referrers only; None recurses until no referrers remain.

        Returns:
            The complete ReferrerGraph.

        Raises:
            ValueError: If ``max_depth`` is less than 1.
            RecursionLimitExceededError: If the tree is deeper than
                ``recursion_limit`` or larger than ``node_limit``.
            DiscoveryCancelledError: If the cancellation token is set.
            DiscoveryError: Any store error raised while fetching.
        """
        if max_depth is not None and max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")

        label = reference or subject.digest
        log = logger.bind(reference=label, max_depth=max_depth)
        log.debug("graph_build_started")

        root = ReferrerNode(descriptor=subject, depth=0)
        level = [root]
        depth = 0
        total = 0

        while level and (max_depth is None or depth < max_depth):
            depth += 1
            children = self._fetch_level(level, depth)
            found = sum(len(group) for group in children)
            if found and depth > self.recursion_limit:
                log.warning("graph_recursion_limit_exceeded", limit=self.recursion_limit)
                raise RecursionLimitExceededError(label, self.recursion_limit, kind="depth")
            total += found
            if total > self.node_limit:
                log.warning("graph_node_limit_exceeded", limit=self.node_limit)
                raise RecursionLimitExceededError(label, self.node_limit, kind="nodes")

            next_level: list[ReferrerNode] = []
            for parent, group in zip(level, children, strict=True):
                if self.sort_siblings:
                    group = sorted(group, key=lambda desc: desc.digest)
                parent.children = [ReferrerNode(descriptor=desc, depth=depth) for desc in group]
                next_level.extend(parent.children)
            log.debug("graph_level_fetched", depth=depth, subjects=len(level), referrers=found)
            level = next_level

        log.debug("graph_build_completed", nodes=total)
        return ReferrerGraph(reference=label, root=root, max_depth=max_depth)

    def _fetch_level(self, level: list[ReferrerNode], depth: int) -> list[list[Descriptor]]:
        subjects = [node.descriptor for node in level]
        if self._metrics is None:
            return self.batch_fetcher.fetch_level(self.fetcher.fetch, subjects)
        attributes = {"refgraph.depth": depth, "refgraph.subjects": len(subjects)}
        with self._metrics.create_span(self._metrics.SPAN_REFERRERS, attributes) as span:
            children = self.batch_fetcher.fetch_level(self.fetcher.fetch, subjects)
            found = sum(len(group) for group in children)
            span.set_attribute("refgraph.referrers", found)
            self._metrics.record_referrers(self.fetcher.store.locator, found)
            return children


def build_graph(
    subject: Descriptor,
    fetcher: ReferrerFetcher,
    *,
    reference: str = "",
    max_depth: int | None = None,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    node_limit: int = DEFAULT_NODE_LIMIT,
    batch_fetcher: BatchFetcher | None = None,
) -> ReferrerGraph:
    """Build a referrer tree with a one-off GraphBuilder."""
    builder = GraphBuilder(
        fetcher,
        batch_fetcher=batch_fetcher,
        recursion_limit=recursion_limit,
        node_limit=node_limit,
    )
    return builder.build(subject, reference=reference, max_depth=max_depth)


__all__ = [
    "DEFAULT_NODE_LIMIT",
    "DEFAULT_RECURSION_LIMIT",
    "GraphBuilder",
    "ReferrerGraph",
    "ReferrerNode",
    "build_graph",
]
