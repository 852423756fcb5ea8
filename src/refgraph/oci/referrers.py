"""Referrer fetching with Referrers API / referrers tag schema fallback.

OCI distribution-spec v1.1 lists referrers of a manifest through
``GET /v2/<name>/referrers/<digest>``. Registries that predate the API store
the same information in an image index tagged with a digest-derived tag
(the *referrers tag schema*). This module models both protocols as
strategies and picks one at the fetcher entry point:

    ReferrerFetcher.fetch(subject)
        ├── ReferrersAPIStrategy   store.referrers(subject)
        └── ReferrersTagStrategy   store.resolve_tag(referrers_tag(digest))
                                   store.fetch_index(...)

With ``DistributionSpec.AUTO`` the fetcher starts with the API strategy and
switches to the tag strategy for the rest of the discovery the first time the
store raises ReferrersUnsupportedError.

Example:
    >>> fetcher = ReferrerFetcher(store)
    >>> for desc in fetcher.fetch(subject):
    ...     print(desc.digest, desc.artifact_type)
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

import structlog

from refgraph.errors import ArtifactNotFoundError, ReferrersUnsupportedError
from refgraph.oci.store import ContentStore
from refgraph.schemas.config import DistributionSpec
from refgraph.schemas.oci import Descriptor

logger = structlog.get_logger(__name__)

_TAG_ALGORITHM_LIMIT = 32
_TAG_ENCODED_LIMIT = 64


def referrers_tag(digest: str) -> str:
    """Return the referrers tag schema tag for a digest.

    The algorithm is truncated to 32 characters and the encoded part to 64,
    joined with ``-``.

    Example:
        >>> referrers_tag("sha256:" + "ab" * 32) == "sha256-" + "ab" * 32
        True
    """
    algorithm, _, encoded = digest.partition(":")
    return f"{algorithm[:_TAG_ALGORITHM_LIMIT]}-{encoded[:_TAG_ENCODED_LIMIT]}"


def dedupe_by_digest(descriptors: list[Descriptor]) -> list[Descriptor]:
    """Drop repeated digests, keeping the first occurrence and its position."""
    seen: set[str] = set()
    result: list[Descriptor] = []
    for desc in descriptors:
        if desc.digest in seen:
            continue
        seen.add(desc.digest)
        result.append(desc)
    return result


# =============================================================================
# Strategies
# =============================================================================


class ReferrersStrategy(ABC):
    """One way of listing the referrers of a subject."""

    name: str = ""

    @abstractmethod
    def list_referrers(self, store: ContentStore, subject: Descriptor) -> list[Descriptor]:
        """List referrers of ``subject`` in ``store``."""


class ReferrersAPIStrategy(ReferrersStrategy):
    """Native listing via the store's Referrers API (or layout scan)."""

    name = "referrers-api"

    def list_referrers(self, store: ContentStore, subject: Descriptor) -> list[Descriptor]:
        return store.referrers(subject)


class ReferrersTagStrategy(ReferrersStrategy):
    """Fallback listing via the referrers tag schema.

    A missing referrers tag means the subject has no referrers.
    """

    name = "referrers-tag"

    def list_referrers(self, store: ContentStore, subject: Descriptor) -> list[Descriptor]:
        tag = referrers_tag(subject.digest)
        try:
            index = store.resolve_tag(tag)
        except ArtifactNotFoundError:
            logger.debug("referrers_tag_missing", subject=subject.digest, tag=tag)
            return []
        return store.fetch_index(index)


# =============================================================================
# Fetcher
# =============================================================================


class ReferrerFetcher:
    """Lists direct referrers of a subject, deduplicated by digest.

    The fetcher is safe to share between the worker threads of one
    discovery: the capability check result is guarded by a lock.

    Attributes:
        store: The content store being queried.
        distribution_spec: Protocol selection (auto, API only, tag only).
    """

    def __init__(
        self,
        store: ContentStore,
        *,
        distribution_spec: DistributionSpec = DistributionSpec.AUTO,
    ) -> None:
        """Initialize ReferrerFetcher.

        Args:
            store: The content store being queried.
            distribution_spec: Protocol selection. REFERRERS_API surfaces
                ReferrersUnsupportedError instead of falling back;
                REFERRERS_TAG never calls the API.
        """
        self.store = store
        self.distribution_spec = distribution_spec
        self._api = ReferrersAPIStrategy()
        self._tag = ReferrersTagStrategy()
        self._lock = threading.Lock()
        self._api_unsupported = distribution_spec == DistributionSpec.REFERRERS_TAG

    @property
    def strategy(self) -> ReferrersStrategy:
        """Return the strategy the next fetch will start with."""
        with self._lock:
            return self._tag if self._api_unsupported else self._api

    def fetch(self, subject: Descriptor) -> list[Descriptor]:
        """Return the direct referrers of ``subject``.

        Args:
            subject: Descriptor of the subject manifest.

        Returns:
            Referrer descriptors in store order, first occurrence of each
            digest only. Empty when the subject has no referrers.

        Raises:
            ReferrersUnsupportedError: Only when the API strategy is forced.
            RegistryUnavailableError: If the store cannot be read.
        """
        strategy = self.strategy
        log = logger.bind(subject=subject.digest, locator=self.store.locator)
        try:
            found = strategy.list_referrers(self.store, subject)
        except ReferrersUnsupportedError:
            if self.distribution_spec == DistributionSpec.REFERRERS_API:
                raise
            with self._lock:
                if not self._api_unsupported:
                    log.info("referrers_api_unsupported", fallback=self._tag.name)
                self._api_unsupported = True
            strategy = self._tag
            found = strategy.list_referrers(self.store, subject)

        referrers = dedupe_by_digest(found)
        log.debug(
            "referrers_fetched",
            strategy=strategy.name,
            count=len(referrers),
            duplicates=len(found) - len(referrers),
        )
        return referrers


__all__ = [
    "ReferrerFetcher",
    "ReferrersAPIStrategy",
    "ReferrersStrategy",
    "ReferrersTagStrategy",
    "dedupe_by_digest",
    "referrers_tag",
]
