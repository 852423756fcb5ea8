"""OCI referrer discovery engine.

This package discovers the artifacts that refer to an OCI subject (an image,
artifact or any manifest named by tag or digest) in a remote registry or a
local OCI image layout, and builds the referrer tree for rendering.

Referrers are listed through the distribution-spec Referrers API; registries
without the API are read through the referrers tag schema instead. Both
backends are reached through the ContentStore protocol, so the engine runs
unchanged against the in-memory MemoryStore in tests.

Key Components:
- DiscoveryService: Resolve, fetch, build and filter for one reference
- ReferrerFetcher: Referrers API / referrers tag schema strategies
- GraphBuilder: Level-by-level tree construction with depth and node budgets
- FilterCriteria: Artifact type and platform emission filter
- RemoteRegistryStore: Registry store over the ORAS Python SDK
- OCILayoutStore: Store over an OCI image layout directory

Example:
    >>> from refgraph.oci import DiscoveryService, FilterCriteria
    >>>
    >>> service = DiscoveryService()
    >>> result = service.discover(
    ...     "ghcr.io/acme/app:v1.0.0",
    ...     criteria=FilterCriteria.create(artifact_type="application/spdx+json"),
    ... )
    >>> for desc in result.referrers:
    ...     print(desc.digest, desc.artifact_type)
"""

from __future__ import annotations

from refgraph.errors import (
    ArtifactNotFoundError,
    AuthenticationError,
    DiscoveryCancelledError,
    DiscoveryError,
    InvalidPlatformError,
    InvalidReferenceError,
    RecursionLimitExceededError,
    ReferrersUnsupportedError,
    RegistryUnavailableError,
)
from refgraph.oci.batch_fetcher import BatchFetcher, CancellationToken
from refgraph.oci.discovery import DiscoveryResult, DiscoveryService, open_store
from refgraph.oci.filters import FilterCriteria, PlatformSelector, filter_descriptors, filter_tree
from refgraph.oci.graph import GraphBuilder, ReferrerGraph, ReferrerNode, build_graph
from refgraph.oci.layout import OCILayoutStore
from refgraph.oci.memory import MemoryStore
from refgraph.oci.metrics import DiscoveryMetrics, get_discovery_metrics, set_discovery_metrics
from refgraph.oci.reference import SubjectReference, parse_reference, resolve_reference
from refgraph.oci.referrers import (
    ReferrerFetcher,
    ReferrersAPIStrategy,
    ReferrersTagStrategy,
    referrers_tag,
)
from refgraph.oci.remote import RemoteRegistryStore
from refgraph.oci.store import ContentStore

__all__: list[str] = [
    # Errors
    "ArtifactNotFoundError",
    "AuthenticationError",
    "DiscoveryCancelledError",
    "DiscoveryError",
    "InvalidPlatformError",
    "InvalidReferenceError",
    "RecursionLimitExceededError",
    "ReferrersUnsupportedError",
    "RegistryUnavailableError",
    # Discovery
    "DiscoveryResult",
    "DiscoveryService",
    "open_store",
    # Stores
    "ContentStore",
    "MemoryStore",
    "OCILayoutStore",
    "RemoteRegistryStore",
    # References
    "SubjectReference",
    "parse_reference",
    "resolve_reference",
    # Referrers
    "ReferrerFetcher",
    "ReferrersAPIStrategy",
    "ReferrersTagStrategy",
    "referrers_tag",
    # Graph
    "BatchFetcher",
    "CancellationToken",
    "GraphBuilder",
    "ReferrerGraph",
    "ReferrerNode",
    "build_graph",
    # Filters
    "FilterCriteria",
    "PlatformSelector",
    "filter_descriptors",
    "filter_tree",
    # Metrics
    "DiscoveryMetrics",
    "get_discovery_metrics",
    "set_discovery_metrics",
]
