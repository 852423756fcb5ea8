"""OCI image layout content store.

Reads a local directory in the OCI image layout format:

    <root>/
    ├── oci-layout          {"imageLayoutVersion": "1.0.0"}
    ├── index.json          entry point; tags in org.opencontainers.image.ref.name
    └── blobs/<alg>/<encoded>

Referrers are found natively by scanning every manifest reachable from
``index.json`` (including manifests listed by nested image indexes) for a
``subject`` that names the requested digest. The scan happens once per store
and is cached; results follow ``index.json`` order, so the sibling order is
stable.

Example:
    >>> store = OCILayoutStore("./oci-layout")
    >>> subject = store.resolve("v1")
    >>> [d.artifact_type for d in store.referrers(subject)]
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import structlog

from refgraph.errors import ArtifactNotFoundError, RegistryUnavailableError
from refgraph.oci.reference import is_digest
from refgraph.schemas.oci import INDEX_MEDIA_TYPES, Descriptor, Platform

logger = structlog.get_logger(__name__)

INDEX_FILE = "index.json"
LAYOUT_FILE = "oci-layout"
BLOBS_DIR = "blobs"

REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"
"""Annotation holding the tag of an index.json entry."""


class OCILayoutStore:
    """ContentStore over an OCI image layout directory.

    Attributes:
        locator: Layout directory path as given by the caller.
        ordered_referrers: Always True; referrers follow index.json order.
    """

    ordered_referrers = True

    def __init__(self, path: str | Path) -> None:
        """Initialize OCILayoutStore.

        Args:
            path: Layout root directory.

        Raises:
            RegistryUnavailableError: If the directory or its index.json is
                missing.
        """
        self.locator = str(path)
        self.root = Path(path).expanduser()
        if not self.root.is_dir():
            raise RegistryUnavailableError(self.locator, "OCI layout directory does not exist")
        if not (self.root / INDEX_FILE).is_file():
            raise RegistryUnavailableError(self.locator, f"missing {INDEX_FILE}")
        if not (self.root / LAYOUT_FILE).is_file():
            logger.debug("layout_marker_missing", locator=self.locator)
        self._lock = threading.Lock()
        self._catalog: dict[str, tuple[Descriptor, dict[str, Any]]] | None = None

    # -------------------------------------------------------------------------
    # Raw access
    # -------------------------------------------------------------------------

    def _blob_path(self, digest: str) -> Path:
        if not is_digest(digest):
            raise ArtifactNotFoundError(digest, self.locator)
        algorithm, encoded = digest.split(":", 1)
        return self.root / BLOBS_DIR / algorithm / encoded

    def _read_json(self, path: Path, what: str) -> dict[str, Any]:
        try:
            data = json.loads(path.read_bytes())
        except OSError as e:
            raise RegistryUnavailableError(self.locator, f"cannot read {what}: {e}") from e
        except ValueError as e:
            raise RegistryUnavailableError(self.locator, f"corrupt {what}: {e}") from e
        if not isinstance(data, dict):
            raise RegistryUnavailableError(self.locator, f"corrupt {what}: expected an object")
        return data

    def _read_blob(self, digest: str) -> bytes:
        path = self._blob_path(digest)
        if not path.is_file():
            raise ArtifactNotFoundError(digest, self.locator)
        try:
            return path.read_bytes()
        except OSError as e:
            raise RegistryUnavailableError(self.locator, f"cannot read blob {digest}: {e}") from e

    def _load_manifest(self, digest: str) -> tuple[bytes, dict[str, Any]]:
        content = self._read_blob(digest)
        try:
            manifest = json.loads(content)
        except ValueError as e:
            raise RegistryUnavailableError(self.locator, f"corrupt manifest {digest}: {e}") from e
        if not isinstance(manifest, dict):
            raise RegistryUnavailableError(self.locator, f"corrupt manifest {digest}")
        return content, manifest

    def _index_entries(self) -> list[Descriptor]:
        index = self._read_json(self.root / INDEX_FILE, INDEX_FILE)
        try:
            return [Descriptor.model_validate(entry) for entry in index.get("manifests") or []]
        except ValueError as e:
            raise RegistryUnavailableError(self.locator, f"corrupt {INDEX_FILE}: {e}") from e

    def _describe(
        self, digest: str, *, media_type: str | None = None, platform: Platform | None = None
    ) -> tuple[Descriptor, dict[str, Any]]:
        """Build the descriptor of a manifest from its blob.

        The platform comes from the referencing entry; annotations and
        artifact type come from the manifest itself.
        """
        content, manifest = self._load_manifest(digest)
        try:
            descriptor = Descriptor.from_manifest(
                manifest,
                digest=digest,
                size=len(content),
                media_type=manifest.get("mediaType") or media_type,
            )
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            raise RegistryUnavailableError(self.locator, f"corrupt manifest {digest}: {e}") from e
        if platform is not None:
            descriptor = descriptor.model_copy(update={"platform": platform})
        return descriptor, manifest

    # -------------------------------------------------------------------------
    # Manifest catalog
    # -------------------------------------------------------------------------

    def _build_catalog(self) -> dict[str, tuple[Descriptor, dict[str, Any]]]:
        """Collect every manifest reachable from index.json, in index order."""
        catalog: dict[str, tuple[Descriptor, dict[str, Any]]] = {}
        pending = list(self._index_entries())
        while pending:
            entry = pending.pop(0)
            if entry.digest in catalog:
                continue
            try:
                descriptor, manifest = self._describe(
                    entry.digest, media_type=entry.media_type, platform=entry.platform
                )
            except ArtifactNotFoundError:
                # Layouts may omit content that was never copied locally.
                logger.debug("layout_blob_missing", locator=self.locator, digest=entry.digest)
                continue
            catalog[entry.digest] = (descriptor, manifest)
            if descriptor.media_type in INDEX_MEDIA_TYPES:
                for child in manifest.get("manifests") or []:
                    try:
                        pending.append(Descriptor.model_validate(child))
                    except ValueError:
                        logger.debug("layout_entry_invalid", locator=self.locator, entry=child)
        logger.debug("layout_catalog_built", locator=self.locator, manifests=len(catalog))
        return catalog

    def _get_catalog(self) -> dict[str, tuple[Descriptor, dict[str, Any]]]:
        with self._lock:
            if self._catalog is None:
                self._catalog = self._build_catalog()
            return self._catalog

    # -------------------------------------------------------------------------
    # ContentStore protocol
    # -------------------------------------------------------------------------

    def resolve(self, identifier: str) -> Descriptor:
        if not is_digest(identifier):
            return self.resolve_tag(identifier)
        catalog = self._get_catalog()
        if identifier in catalog:
            return catalog[identifier][0]
        # Digest of a manifest not reachable from index.json
        return self._describe(identifier)[0]

    def resolve_tag(self, tag: str) -> Descriptor:
        """Resolve a tag recorded in index.json.

        When several entries carry the same tag, the last one wins.
        """
        match: Descriptor | None = None
        for entry in self._index_entries():
            if (entry.annotations or {}).get(REF_NAME_ANNOTATION) == tag:
                match = entry
        if match is None:
            raise ArtifactNotFoundError(tag, self.locator)
        descriptor, _ = self._describe(
            match.digest, media_type=match.media_type, platform=match.platform
        )
        return descriptor

    def referrers(self, subject: Descriptor) -> list[Descriptor]:
        found = []
        for descriptor, manifest in self._get_catalog().values():
            manifest_subject = manifest.get("subject")
            if not isinstance(manifest_subject, dict):
                continue
            if manifest_subject.get("digest") == subject.digest:
                found.append(descriptor)
        return found

    def fetch_index(self, descriptor: Descriptor) -> list[Descriptor]:
        _, manifest = self._load_manifest(descriptor.digest)
        try:
            return [Descriptor.model_validate(entry) for entry in manifest.get("manifests") or []]
        except ValueError as e:
            raise RegistryUnavailableError(
                self.locator, f"corrupt image index {descriptor.digest}: {e}"
            ) from e


__all__ = ["REF_NAME_ANNOTATION", "OCILayoutStore"]
