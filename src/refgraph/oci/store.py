"""Content store protocol consumed by the discovery engine.

Both the remote registry store and the local OCI layout store implement this
protocol. The discovery engine only ever talks to a store through it, which
keeps it testable against the in-memory store in ``refgraph.oci.memory``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from refgraph.schemas.oci import Descriptor


@runtime_checkable
class ContentStore(Protocol):
    """Read-only access to manifests and their referrers.

    Attributes:
        locator: Human readable store location, e.g. ``ghcr.io/acme/app`` or
            the layout directory path. Used in canonical references.
        ordered_referrers: True when ``referrers()`` returns a stable order
            for an unchanged store. When False, the graph builder sorts
            siblings by digest.
    """

    locator: str
    ordered_referrers: bool

    def resolve(self, identifier: str) -> Descriptor:
        """Resolve a tag or digest to the descriptor of its manifest.

        Raises:
            ArtifactNotFoundError: If no manifest matches.
            RegistryUnavailableError: If the store cannot be read.
        """
        ...

    def resolve_tag(self, tag: str) -> Descriptor:
        """Resolve a tag to the descriptor of its manifest.

        Raises:
            ArtifactNotFoundError: If the tag does not exist.
        """
        ...

    def referrers(self, subject: Descriptor) -> list[Descriptor]:
        """List manifests whose ``subject`` is the given descriptor.

        Raises:
            ReferrersUnsupportedError: If the store has no native referrers
                listing. Callers fall back to the referrers tag schema.
            RegistryUnavailableError: If the store cannot be read.
        """
        ...

    def fetch_index(self, descriptor: Descriptor) -> list[Descriptor]:
        """Return the ``manifests`` entries of an image index.

        Raises:
            RegistryUnavailableError: If the index cannot be read or parsed.
        """
        ...


__all__ = ["ContentStore"]
