"""Referrer discovery for one subject reference.

DiscoveryService wires the pieces of a discovery together:

    parse_reference -> open store -> resolve_reference
        -> ReferrerFetcher + GraphBuilder -> FilterCriteria -> DiscoveryResult

Every discovery owns its store handle, fetcher and graph. The service holds
only configuration, so one instance can run several discoveries.

Example:
    >>> service = DiscoveryService(DiscoveryConfig.from_env())
    >>> result = service.discover("ghcr.io/acme/app:v1", max_depth=None)
    >>> result.index.to_dict()["manifests"]
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from refgraph.oci.batch_fetcher import BatchFetcher, CancellationToken
from refgraph.oci.filters import FilterCriteria, filter_descriptors, filter_tree
from refgraph.oci.graph import GraphBuilder, ReferrerGraph, ReferrerNode
from refgraph.oci.layout import OCILayoutStore
from refgraph.oci.metrics import DiscoveryMetrics, get_discovery_metrics
from refgraph.oci.reference import SubjectReference, parse_reference, resolve_reference
from refgraph.oci.referrers import ReferrerFetcher
from refgraph.oci.remote import RemoteRegistryStore
from refgraph.oci.store import ContentStore
from refgraph.schemas.config import DiscoveryConfig
from refgraph.schemas.oci import Descriptor, ImageIndex

logger = structlog.get_logger(__name__)

StoreFactory = Callable[[SubjectReference, DiscoveryConfig], ContentStore]


def open_store(reference: SubjectReference, config: DiscoveryConfig) -> ContentStore:
    """Open the content store a parsed reference points into.

    Raises:
        RegistryUnavailableError: If a layout directory is missing.
        AuthenticationError: If registry login fails.
    """
    if reference.layout:
        return OCILayoutStore(reference.locator)
    return RemoteRegistryStore.from_config(reference.locator, config.registry)


@dataclass
class DiscoveryResult:
    """Outcome of one discovery.

    Attributes:
        reference: The parsed subject reference.
        graph: The unfiltered referrer graph.
        criteria: Emission filter applied by ``referrers`` and ``tree``.
    """

    reference: SubjectReference
    graph: ReferrerGraph
    criteria: FilterCriteria = field(default_factory=FilterCriteria)

    @property
    def subject(self) -> Descriptor:
        return self.graph.subject

    @property
    def canonical_reference(self) -> str:
        """Return ``<locator>@<digest>`` of the resolved subject."""
        return self.reference.canonical(self.subject.digest)

    @property
    def referrers(self) -> list[Descriptor]:
        """Return the direct referrers that pass the filter."""
        return filter_descriptors(self.graph.referrers, self.criteria)

    @property
    def index(self) -> ImageIndex:
        """Return the filtered direct referrers as an image index."""
        return ImageIndex(manifests=self.referrers)

    @property
    def tree(self) -> ReferrerNode:
        """Return the filtered referrer tree."""
        return filter_tree(self.graph.root, self.criteria)


class DiscoveryService:
    """Runs referrer discoveries with shared configuration.

    Attributes:
        config: Registry settings and traversal budgets.
    """

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        *,
        metrics: DiscoveryMetrics | None = None,
        store_factory: StoreFactory | None = None,
    ) -> None:
        """Initialize DiscoveryService.

        Args:
            config: Configuration; defaults to environment credentials and
                default budgets.
            metrics: Metrics collector; defaults to the module singleton.
            store_factory: Opens a store for a parsed reference; defaults to
                open_store().
        """
        self.config = config or DiscoveryConfig.from_env()
        self._metrics = metrics or get_discovery_metrics()
        self._store_factory = store_factory or open_store

    def discover(
        self,
        reference: str,
        *,
        layout: bool = False,
        max_depth: int | None = 1,
        criteria: FilterCriteria | None = None,
        store: ContentStore | None = None,
        cancellation: CancellationToken | None = None,
    ) -> DiscoveryResult:
        """Discover the referrers of ``reference``.

        Args:
            reference: Subject reference string.
            layout: Treat ``reference`` as an OCI image layout reference.
            max_depth: Referrer levels to fetch; None recurses fully.
            criteria: Emission filter; never prunes traversal.
            store: Pre-opened store to use instead of the store factory.
            cancellation: Token that aborts the discovery when set.

        Returns:
            DiscoveryResult with the complete graph.

        Raises:
            InvalidReferenceError: If the reference cannot be parsed.
            ArtifactNotFoundError: If the subject does not exist.
            AuthenticationError: If the registry rejects the credentials.
            RegistryUnavailableError: If the store cannot be read.
            RecursionLimitExceededError: If a traversal budget is exceeded.
            DiscoveryCancelledError: If ``cancellation`` is set.
        """
        criteria = criteria or FilterCriteria()
        token = cancellation or CancellationToken()
        settings = self.config.discovery

        parsed = parse_reference(reference, layout=layout)
        log = logger.bind(reference=reference, locator=parsed.locator)
        log.info("discovery_started", max_depth=max_depth)

        span_attributes = {
            "refgraph.reference": reference,
            "refgraph.layout": layout,
            "refgraph.max_depth": max_depth if max_depth is not None else -1,
        }
        timer = self._metrics.operation_timer("discover", parsed.locator)
        with self._metrics.create_span(self._metrics.SPAN_DISCOVER, span_attributes) as span, timer:
            token.raise_if_cancelled(reference)
            if store is None:
                store = self._store_factory(parsed, self.config)

            with self._metrics.create_span(
                self._metrics.SPAN_RESOLVE, {"refgraph.identifier": parsed.identifier}
            ) as resolve_span:
                subject = resolve_reference(parsed, store)
                resolve_span.set_attribute("refgraph.digest", subject.digest)

            fetcher = ReferrerFetcher(store, distribution_spec=settings.distribution_spec)
            builder = GraphBuilder(
                fetcher,
                batch_fetcher=BatchFetcher(settings.max_workers, cancellation=token),
                recursion_limit=settings.recursion_limit,
                node_limit=settings.node_limit,
                metrics=self._metrics,
            )
            graph = builder.build(
                subject,
                reference=parsed.canonical(subject.digest),
                max_depth=max_depth,
            )
            span.set_attribute("refgraph.digest", subject.digest)
            span.set_attribute("refgraph.referrers", graph.node_count)

        log.info(
            "discovery_completed",
            digest=subject.digest,
            referrers=graph.node_count,
            strategy=fetcher.strategy.name,
        )
        return DiscoveryResult(reference=parsed, graph=graph, criteria=criteria)


__all__ = [
    "DiscoveryResult",
    "DiscoveryService",
    "StoreFactory",
    "open_store",
]
