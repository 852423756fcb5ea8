"""In-memory content store.

Holds manifests keyed by digest and answers the ContentStore protocol
without any I/O. It mirrors how a registry behaves on push: a manifest with a
``subject`` is listed by ``referrers()`` and, when the store emulates a
registry without the Referrers API, is also appended to the subject's
referrers tag index.

Example:
    >>> store = MemoryStore("registry.test/acme/app")
    >>> image = store.add_manifest({"mediaType": OCI_IMAGE_MANIFEST}, tag="v1")
    >>> sbom = store.add_referrer(image, "application/vnd.example.sbom+json")
    >>> [d.digest for d in store.referrers(image)] == [sbom.digest]
    True
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from refgraph.errors import ArtifactNotFoundError, ReferrersUnsupportedError
from refgraph.oci.reference import is_digest
from refgraph.oci.referrers import referrers_tag
from refgraph.schemas.oci import (
    OCI_EMPTY_CONFIG_TYPE,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    Descriptor,
    Platform,
)

EMPTY_CONFIG: dict[str, Any] = {
    "mediaType": OCI_EMPTY_CONFIG_TYPE,
    "digest": "sha256:44136fa355b3678a1146ad16f7e8649e94fb4fc21fe77e8310c060f61caaff8a",
    "size": 2,
}


def encode_manifest(manifest: dict[str, Any]) -> bytes:
    """Encode a manifest deterministically."""
    return json.dumps(manifest, sort_keys=True, separators=(",", ":")).encode("utf-8")


def digest_of(content: bytes) -> str:
    """Return the sha256 digest string for raw bytes."""
    return f"sha256:{hashlib.sha256(content).hexdigest()}"


class MemoryStore:
    """ContentStore backed by dictionaries.

    Attributes:
        locator: Store location used in canonical references.
        supports_referrers_api: When False, ``referrers()`` raises
            ReferrersUnsupportedError and referrers are tracked in
            referrers tag indexes instead.
        ordered_referrers: Referrers are listed in insertion order.
    """

    def __init__(
        self,
        locator: str = "registry.test/repo",
        *,
        supports_referrers_api: bool = True,
        ordered_referrers: bool = True,
    ) -> None:
        self.locator = locator
        self.supports_referrers_api = supports_referrers_api
        self.ordered_referrers = ordered_referrers
        self._blobs: dict[str, bytes] = {}
        self._descriptors: dict[str, Descriptor] = {}
        self._tags: dict[str, str] = {}
        self.referrer_calls: list[str] = []

    # -------------------------------------------------------------------------
    # Population helpers
    # -------------------------------------------------------------------------

    def add_manifest(
        self,
        manifest: dict[str, Any],
        *,
        tag: str | None = None,
        platform: dict[str, Any] | None = None,
    ) -> Descriptor:
        """Store a manifest and return its descriptor.

        Args:
            manifest: Manifest JSON object.
            tag: Optional tag to point at the manifest.
            platform: Optional platform recorded on the descriptor that
                ``referrers()`` reports.
        """
        content = encode_manifest(manifest)
        digest = digest_of(content)
        descriptor = Descriptor.from_manifest(manifest, digest=digest, size=len(content))
        if platform is not None:
            descriptor = descriptor.model_copy(
                update={"platform": Platform.model_validate(platform)}
            )
        self._blobs[digest] = content
        self._descriptors[digest] = descriptor
        if tag:
            self._tags[tag] = digest

        subject = manifest.get("subject")
        if subject and not self.supports_referrers_api:
            self._append_to_referrers_index(subject["digest"], descriptor)
        return descriptor

    def add_referrer(
        self,
        subject: Descriptor,
        artifact_type: str,
        *,
        annotations: dict[str, str] | None = None,
        platform: dict[str, Any] | None = None,
    ) -> Descriptor:
        """Store an artifact manifest that refers to ``subject``."""
        manifest: dict[str, Any] = {
            "schemaVersion": 2,
            "mediaType": OCI_IMAGE_MANIFEST,
            "artifactType": artifact_type,
            "config": EMPTY_CONFIG,
            "layers": [],
            "subject": {
                "mediaType": subject.media_type,
                "digest": subject.digest,
                "size": subject.size,
            },
        }
        if annotations:
            manifest["annotations"] = dict(annotations)
        return self.add_manifest(manifest, platform=platform)

    def tag(self, tag: str, digest: str) -> None:
        """Point ``tag`` at an existing manifest."""
        if digest not in self._blobs:
            raise ArtifactNotFoundError(digest, self.locator)
        self._tags[tag] = digest

    def _append_to_referrers_index(self, subject_digest: str, descriptor: Descriptor) -> None:
        tag = referrers_tag(subject_digest)
        manifests: list[dict[str, Any]] = []
        if tag in self._tags:
            existing = json.loads(self._blobs[self._tags[tag]])
            manifests = list(existing.get("manifests", []))
        manifests.append(descriptor.to_dict())
        index = {"schemaVersion": 2, "mediaType": OCI_IMAGE_INDEX, "manifests": manifests}
        content = encode_manifest(index)
        digest = digest_of(content)
        self._blobs[digest] = content
        self._descriptors[digest] = Descriptor.from_manifest(
            index, digest=digest, size=len(content), media_type=OCI_IMAGE_INDEX
        )
        self._tags[tag] = digest

    # -------------------------------------------------------------------------
    # ContentStore protocol
    # -------------------------------------------------------------------------

    def resolve(self, identifier: str) -> Descriptor:
        if is_digest(identifier):
            if identifier not in self._descriptors:
                raise ArtifactNotFoundError(identifier, self.locator)
            return self._descriptors[identifier]
        return self.resolve_tag(identifier)

    def resolve_tag(self, tag: str) -> Descriptor:
        digest = self._tags.get(tag)
        if digest is None:
            raise ArtifactNotFoundError(tag, self.locator)
        return self._descriptors[digest]

    def referrers(self, subject: Descriptor) -> list[Descriptor]:
        self.referrer_calls.append(subject.digest)
        if not self.supports_referrers_api:
            raise ReferrersUnsupportedError(self.locator)
        found = []
        for digest, content in self._blobs.items():
            manifest = json.loads(content)
            manifest_subject = manifest.get("subject") or {}
            if manifest_subject.get("digest") == subject.digest:
                found.append(self._descriptors[digest])
        return found

    def fetch_index(self, descriptor: Descriptor) -> list[Descriptor]:
        content = self._blobs.get(descriptor.digest)
        if content is None:
            raise ArtifactNotFoundError(descriptor.digest, self.locator)
        manifest = json.loads(content)
        return [Descriptor.model_validate(entry) for entry in manifest.get("manifests", [])]


__all__ = ["EMPTY_CONFIG", "MemoryStore", "digest_of", "encode_manifest"]
