"""Subject reference parsing and resolution.

A subject reference names a store location plus a tag or digest:

    Remote registry:  <registry>[:port]/<repository>(:<tag>|@<digest>)
    OCI image layout: <path>(:<tag>|@<digest>)

When a reference carries both a tag and a digest, the digest is used.

Example:
    >>> ref = parse_reference("ghcr.io/acme/app:v1.0.0")
    >>> ref.locator, ref.identifier
    ('ghcr.io/acme/app', 'v1.0.0')
    >>> ref = parse_reference("./layout@sha256:" + "a" * 64, layout=True)
    >>> ref.locator
    './layout'
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from refgraph.errors import InvalidReferenceError
from refgraph.oci.store import ContentStore
from refgraph.schemas.oci import Descriptor

logger = structlog.get_logger(__name__)


# =============================================================================
# Grammar
# =============================================================================

TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,127}$")
"""OCI distribution-spec tag grammar."""

DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")
"""OCI image-spec digest grammar (algorithm:encoded)."""

REPOSITORY_PATTERN = re.compile(
    r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
    r"(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$"
)
"""OCI distribution-spec repository name grammar."""

REGISTRY_PATTERN = re.compile(
    r"^(?:[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*|\[[0-9a-fA-F:]+\])"
    r"(?::[0-9]+)?$"
)
"""Registry host with optional port."""

_DIGEST_HEX_LENGTHS = {"sha256": 64, "sha512": 128}
_HEX = re.compile(r"^[a-f0-9]+$")

OCI_URI_PREFIX = "oci://"


def is_digest(value: str) -> bool:
    """Check if a string is a well-formed content digest.

    Registered algorithms (sha256, sha512) must carry lowercase hex of the
    right length.

    Example:
        >>> is_digest("sha256:" + "0" * 64)
        True
        >>> is_digest("sha256:abc")
        False
    """
    if not DIGEST_PATTERN.match(value):
        return False
    algorithm, encoded = value.split(":", 1)
    expected = _DIGEST_HEX_LENGTHS.get(algorithm)
    if expected is None:
        return True
    return len(encoded) == expected and bool(_HEX.match(encoded))


# =============================================================================
# Subject Reference
# =============================================================================


@dataclass(frozen=True)
class SubjectReference:
    """A parsed subject reference.

    Attributes:
        raw: The reference string as given.
        locator: Registry repository (``host/repo``) or layout directory.
        tag: Tag component, if any.
        digest: Digest component, if any.
        layout: True for OCI image layout references.
    """

    raw: str
    locator: str
    tag: str | None = None
    digest: str | None = None
    layout: bool = False

    @property
    def identifier(self) -> str:
        """Return the tag or digest to resolve; the digest wins when both are set."""
        if self.digest:
            return self.digest
        if self.tag:
            return self.tag
        raise InvalidReferenceError(self.raw, "no tag or digest specified")

    @property
    def registry_host(self) -> str:
        """Return the registry host (empty for layout references)."""
        if self.layout:
            return ""
        return self.locator.split("/", 1)[0]

    @property
    def repository(self) -> str:
        """Return the repository path (empty for layout references)."""
        if self.layout:
            return ""
        return self.locator.split("/", 1)[1]

    def canonical(self, digest: str) -> str:
        """Return ``<locator>@<digest>`` for a resolved subject."""
        return f"{self.locator}@{digest}"

    def __str__(self) -> str:
        return self.raw


def _split_tag(name: str) -> tuple[str, str | None]:
    """Split ``name[:tag]`` where the colon is after the last slash."""
    slash = name.rfind("/")
    colon = name.rfind(":")
    if colon > slash:
        return name[:colon], name[colon + 1 :]
    return name, None


def _split_digest(reference: str) -> tuple[str, str | None]:
    if "@" not in reference:
        return reference, None
    name, digest = reference.rsplit("@", 1)
    return name, digest


def _validate_identifiers(raw: str, tag: str | None, digest: str | None) -> None:
    if digest is not None and not is_digest(digest):
        raise InvalidReferenceError(raw, f"invalid digest {digest!r}")
    if tag is not None and not TAG_PATTERN.match(tag):
        raise InvalidReferenceError(raw, f"invalid tag {tag!r}")
    if not tag and not digest:
        raise InvalidReferenceError(raw, "no tag or digest specified")


def parse_registry_reference(reference: str) -> SubjectReference:
    """Parse a remote registry reference.

    Args:
        reference: e.g. ``localhost:5000/acme/app:v1`` or
            ``ghcr.io/acme/app@sha256:...``. An ``oci://`` prefix is accepted.

    Returns:
        Parsed SubjectReference.

    Raises:
        InvalidReferenceError: If the registry, repository, tag or digest
            is missing or malformed.
    """
    raw = reference
    if reference.startswith(OCI_URI_PREFIX):
        reference = reference[len(OCI_URI_PREFIX) :]
    if not reference:
        raise InvalidReferenceError(raw, "empty reference")

    name, digest = _split_digest(reference)
    name, tag = _split_tag(name)

    if "/" not in name:
        raise InvalidReferenceError(raw, "missing registry or repository")
    registry, repository = name.split("/", 1)
    if not REGISTRY_PATTERN.match(registry):
        raise InvalidReferenceError(raw, f"invalid registry {registry!r}")
    if not REPOSITORY_PATTERN.match(repository):
        raise InvalidReferenceError(raw, f"invalid repository {repository!r}")

    _validate_identifiers(raw, tag, digest)
    return SubjectReference(raw=raw, locator=name, tag=tag, digest=digest)


def parse_layout_reference(reference: str) -> SubjectReference:
    """Parse an OCI image layout reference.

    Args:
        reference: e.g. ``/tmp/layout:v1`` or ``./layout@sha256:...``.

    Returns:
        Parsed SubjectReference with ``layout=True``.

    Raises:
        InvalidReferenceError: If the path, tag or digest is missing or
            malformed.
    """
    path, digest = _split_digest(reference)
    path, tag = _split_tag(path)
    if not path:
        raise InvalidReferenceError(reference, "missing layout path")
    _validate_identifiers(reference, tag, digest)
    return SubjectReference(raw=reference, locator=path, tag=tag, digest=digest, layout=True)


def parse_reference(reference: str, *, layout: bool = False) -> SubjectReference:
    """Parse a subject reference for the selected store kind."""
    if layout:
        return parse_layout_reference(reference)
    return parse_registry_reference(reference)


def resolve_reference(reference: SubjectReference, store: ContentStore) -> Descriptor:
    """Resolve a parsed reference to its manifest descriptor.

    Args:
        reference: Parsed subject reference.
        store: Store the reference points into.

    Returns:
        Descriptor of the subject manifest.

    Raises:
        ArtifactNotFoundError: If the store has no such manifest.
    """
    log = logger.bind(reference=reference.raw, identifier=reference.identifier)
    log.debug("resolve_started")
    descriptor = store.resolve(reference.identifier)
    if reference.digest and descriptor.digest != reference.digest:
        # Stores resolve digests verbatim; a mismatch means a corrupt store.
        log.warning("resolve_digest_mismatch", resolved=descriptor.digest)
    log.debug("resolve_completed", digest=descriptor.digest, media_type=descriptor.media_type)
    return descriptor


__all__ = [
    "DIGEST_PATTERN",
    "TAG_PATTERN",
    "SubjectReference",
    "is_digest",
    "parse_layout_reference",
    "parse_reference",
    "parse_registry_reference",
    "resolve_reference",
]
