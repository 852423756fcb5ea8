"""Artifact type and platform filters for discovered referrers.

Filters decide which nodes are emitted by a renderer. They never prune the
traversal: a referrer that is filtered out still has its own referrers
fetched, and in tree output those are re-attached to the nearest emitted
ancestor.

Example:
    >>> criteria = FilterCriteria.create(
    ...     artifact_type="application/vnd.example.sbom+json",
    ...     platform="linux/amd64",
    ... )
    >>> criteria.matches(descriptor)
"""

from __future__ import annotations

from dataclasses import dataclass

from refgraph.errors import InvalidPlatformError
from refgraph.oci.graph import ReferrerNode
from refgraph.schemas.oci import Descriptor

_PLATFORM_SEPARATOR = "/"
_MAX_PLATFORM_FIELDS = 3


@dataclass(frozen=True)
class PlatformSelector:
    """Platform selector of the form ``os[/arch[/variant]]``.

    Omitted fields act as wildcards.

    Attributes:
        os: Required operating system, e.g. ``linux``.
        architecture: Optional CPU architecture, e.g. ``arm64``.
        variant: Optional CPU variant, e.g. ``v8``.
    """

    os: str
    architecture: str = ""
    variant: str = ""

    @classmethod
    def parse(cls, selector: str) -> PlatformSelector:
        """Parse a selector string.

        Args:
            selector: Selector such as ``linux``, ``linux/amd64`` or
                ``linux/arm64/v8``.

        Returns:
            Parsed PlatformSelector.

        Raises:
            InvalidPlatformError: If the selector is empty, has more than
                three fields, or has an empty field.

        Examples:
            >>> PlatformSelector.parse("linux/arm64/v8").variant
            'v8'
        """
        parts = selector.split(_PLATFORM_SEPARATOR)
        if len(parts) > _MAX_PLATFORM_FIELDS or any(not part.strip() for part in parts):
            raise InvalidPlatformError(selector)
        parts = [part.strip() for part in parts]
        parts.extend([""] * (_MAX_PLATFORM_FIELDS - len(parts)))
        return cls(os=parts[0], architecture=parts[1], variant=parts[2])

    def matches(self, descriptor: Descriptor) -> bool:
        """Check a descriptor's platform against this selector.

        Descriptors without a platform never match.
        """
        platform = descriptor.platform
        if platform is None:
            return False
        if platform.os != self.os:
            return False
        if self.architecture and platform.architecture != self.architecture:
            return False
        if self.variant and (platform.variant or "") != self.variant:
            return False
        return True

    def __str__(self) -> str:
        return _PLATFORM_SEPARATOR.join(
            part for part in (self.os, self.architecture, self.variant) if part
        )


@dataclass(frozen=True)
class FilterCriteria:
    """Emission filter applied to every discovered referrer.

    Attributes:
        artifact_type: Exact artifact type to keep; None keeps all.
        platform: Platform selector to keep; None keeps all.
    """

    artifact_type: str | None = None
    platform: PlatformSelector | None = None

    @classmethod
    def create(
        cls,
        *,
        artifact_type: str | None = None,
        platform: str | None = None,
    ) -> FilterCriteria:
        """Build criteria from raw CLI values.

        Raises:
            InvalidPlatformError: If ``platform`` is given but malformed.
        """
        selector = PlatformSelector.parse(platform) if platform is not None else None
        return cls(artifact_type=artifact_type or None, platform=selector)

    @property
    def is_empty(self) -> bool:
        """Check if the criteria keep every descriptor."""
        return self.artifact_type is None and self.platform is None

    def matches(self, descriptor: Descriptor) -> bool:
        """Return True if ``descriptor`` passes every set criterion."""
        if self.artifact_type is not None and descriptor.artifact_type != self.artifact_type:
            return False
        if self.platform is not None and not self.platform.matches(descriptor):
            return False
        return True


def filter_descriptors(
    descriptors: list[Descriptor],
    criteria: FilterCriteria,
) -> list[Descriptor]:
    """Keep the descriptors that match ``criteria``, preserving order."""
    if criteria.is_empty:
        return list(descriptors)
    return [desc for desc in descriptors if criteria.matches(desc)]


def filter_tree(root: ReferrerNode, criteria: FilterCriteria) -> ReferrerNode:
    """Return a copy of the tree holding only the nodes that match ``criteria``.

    The root is always kept. The children of an excluded node take its place
    under the nearest kept ancestor, in sibling order.

    Args:
        root: Root of a built referrer tree.
        criteria: Emission filter.

    Returns:
        New root node; the input tree is not modified.
    """

    def kept_children(node: ReferrerNode) -> list[ReferrerNode]:
        kept: list[ReferrerNode] = []
        for child in node.children:
            grandchildren = kept_children(child)
            if criteria.matches(child.descriptor):
                kept.append(
                    ReferrerNode(
                        descriptor=child.descriptor, depth=child.depth, children=grandchildren
                    )
                )
            else:
                kept.extend(grandchildren)
        return kept

    return ReferrerNode(descriptor=root.descriptor, depth=root.depth, children=kept_children(root))


__all__ = ["FilterCriteria", "PlatformSelector", "filter_descriptors", "filter_tree"]
