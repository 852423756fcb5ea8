"""Root-level test configuration for refgraph.

Shared fixtures build referrer graphs in the in-memory MemoryStore, so most
tests run the real discovery engine without a registry or filesystem.

Key Fixtures:
- sample_digest: A valid sha256 digest
- memory_store: Empty store with Referrers API support
- fallback_store: Empty store that only supports the referrers tag schema
- subject: An image manifest tagged ``v1`` in memory_store
- oci_layout: LayoutBuilder over an empty OCI image layout directory
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from refgraph.oci.memory import EMPTY_CONFIG, MemoryStore, digest_of, encode_manifest
from refgraph.schemas.oci import OCI_IMAGE_INDEX, OCI_IMAGE_MANIFEST, Descriptor, Platform


def _image_manifest(name: str = "app") -> dict[str, Any]:
    return {
        "schemaVersion": 2,
        "mediaType": OCI_IMAGE_MANIFEST,
        "config": EMPTY_CONFIG,
        "layers": [],
        "annotations": {"org.opencontainers.image.title": name},
    }


@pytest.fixture
def image_manifest() -> Callable[..., dict[str, Any]]:
    """Return a factory for minimal image manifests, distinct per name."""
    return _image_manifest


@pytest.fixture
def sample_digest() -> str:
    """Return a valid SHA256 digest for testing."""
    return "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


@pytest.fixture
def memory_store() -> MemoryStore:
    """Return an empty MemoryStore that supports the Referrers API."""
    return MemoryStore("registry.test/acme/app")


@pytest.fixture
def fallback_store() -> MemoryStore:
    """Return an empty MemoryStore without the Referrers API."""
    return MemoryStore("registry.test/acme/app", supports_referrers_api=False)


@pytest.fixture
def subject(memory_store: MemoryStore) -> Descriptor:
    """Store an image manifest tagged ``v1`` in memory_store."""
    return memory_store.add_manifest(_image_manifest(), tag="v1")


class LayoutBuilder:
    """Writes an OCI image layout directory for tests.

    Every manifest is written as a blob and listed in index.json, the way
    ``oras copy --to-oci-layout`` stores an image with its referrers.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.entries: list[dict[str, Any]] = []
        (root / "blobs" / "sha256").mkdir(parents=True, exist_ok=True)
        (root / "oci-layout").write_text(json.dumps({"imageLayoutVersion": "1.0.0"}))
        self._write_index()

    def write_blob(self, content: bytes) -> str:
        digest = digest_of(content)
        (self.root / "blobs" / "sha256" / digest.split(":", 1)[1]).write_bytes(content)
        return digest

    def add_manifest(
        self,
        manifest: dict[str, Any],
        *,
        tag: str | None = None,
        platform: dict[str, Any] | None = None,
        in_index: bool = True,
    ) -> Descriptor:
        content = encode_manifest(manifest)
        digest = self.write_blob(content)
        descriptor = Descriptor.from_manifest(manifest, digest=digest, size=len(content))
        if in_index:
            entry: dict[str, Any] = {
                "mediaType": descriptor.media_type,
                "digest": digest,
                "size": len(content),
            }
            if tag:
                entry["annotations"] = {"org.opencontainers.image.ref.name": tag}
            if platform:
                entry["platform"] = platform
            self.entries.append(entry)
            self._write_index()
        if platform:
            descriptor = descriptor.model_copy(
                update={"platform": Platform.model_validate(platform)}
            )
        return descriptor

    def add_referrer(
        self,
        subject: Descriptor,
        artifact_type: str,
        *,
        annotations: dict[str, str] | None = None,
        platform: dict[str, Any] | None = None,
        in_index: bool = True,
    ) -> Descriptor:
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
        return self.add_manifest(manifest, platform=platform, in_index=in_index)

    def _write_index(self) -> None:
        index = {"schemaVersion": 2, "mediaType": OCI_IMAGE_INDEX, "manifests": self.entries}
        (self.root / "index.json").write_text(json.dumps(index, indent=2))


@pytest.fixture
def oci_layout(tmp_path: Path) -> LayoutBuilder:
    """Return a LayoutBuilder writing into an empty layout directory."""
    return LayoutBuilder(tmp_path / "layout")
