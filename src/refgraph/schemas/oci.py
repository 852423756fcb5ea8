"""OCI content descriptor schemas for referrer discovery.

This module defines the Pydantic v2 models for the OCI objects the discovery
engine reads and emits: descriptors, platforms, and image indexes.

Models serialize with the OCI JSON field names (``mediaType``,
``artifactType``, ...) and omit unset optional fields, so a descriptor read
from a registry round-trips to the same JSON object.

Key Components:
    Platform: Target platform of a manifest (os/architecture/variant)
    Descriptor: Identity and metadata record for a content-addressed object
    ImageIndex: The ``application/vnd.oci.image.index.v1+json`` envelope

See Also:
    - https://github.com/opencontainers/image-spec/blob/main/descriptor.md
    - https://github.com/opencontainers/distribution-spec/blob/main/spec.md#listing-referrers
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Constants
# =============================================================================

OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
"""Media type for OCI image indexes (also the Referrers API response type)."""

OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
"""Media type for OCI image manifests."""

DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
"""Media type for Docker manifest lists."""

DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
"""Media type for Docker image manifests."""

OCI_EMPTY_CONFIG_TYPE = "application/vnd.oci.empty.v1+json"
"""Media type for the OCI empty config blob."""

MANIFEST_MEDIA_TYPES: tuple[str, ...] = (
    OCI_IMAGE_MANIFEST,
    OCI_IMAGE_INDEX,
    DOCKER_MANIFEST,
    DOCKER_MANIFEST_LIST,
)
"""Manifest media types accepted when resolving a reference."""

INDEX_MEDIA_TYPES: frozenset[str] = frozenset({OCI_IMAGE_INDEX, DOCKER_MANIFEST_LIST})
"""Media types whose ``manifests`` field lists child descriptors."""


# =============================================================================
# Descriptor Schemas
# =============================================================================


class Platform(BaseModel):
    """Platform a manifest was built for.

    Examples:
        >>> Platform(os="linux", architecture="arm64", variant="v8").variant
        'v8'
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    architecture: str = Field(..., description="CPU architecture (GOARCH values)")
    os: str = Field(..., description="Operating system (GOOS values)")
    os_version: str | None = Field(default=None, alias="os.version")
    os_features: list[str] | None = Field(default=None, alias="os.features")
    variant: str | None = Field(default=None, description="CPU variant, e.g. v7 or v8")


class Descriptor(BaseModel):
    """Identity and metadata record for a content-addressed object.

    The digest is the identity key. Instances are immutable once fetched, and
    ``artifact_type`` and ``annotations`` are always carried verbatim from the
    store that produced them.

    Examples:
        >>> desc = Descriptor.model_validate({
        ...     "mediaType": "application/vnd.oci.image.manifest.v1+json",
        ...     "digest": "sha256:" + "a" * 64,
        ...     "size": 512,
        ...     "artifactType": "application/vnd.example.sbom+json",
        ... })
        >>> desc.to_dict()["artifactType"]
        'application/vnd.example.sbom+json'
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    media_type: str = Field(..., alias="mediaType", min_length=1)
    digest: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    artifact_type: str | None = Field(default=None, alias="artifactType")
    platform: Platform | None = Field(default=None)
    annotations: dict[str, str] | None = Field(default=None)

    @property
    def is_index(self) -> bool:
        """Check if the descriptor points at an image index."""
        return self.media_type in INDEX_MEDIA_TYPES

    def to_dict(self) -> dict[str, Any]:
        """Return the OCI JSON form of this descriptor."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_manifest(
        cls,
        manifest: dict[str, Any],
        *,
        digest: str,
        size: int,
        media_type: str | None = None,
    ) -> Descriptor:
        """Build the descriptor of a manifest from its parsed body.

        The artifact type is the manifest's ``artifactType`` or, for image
        manifests without one, the config media type, matching what the
        Referrers API reports.

        Args:
            manifest: Parsed manifest JSON.
            digest: Digest of the raw manifest bytes.
            size: Length of the raw manifest bytes.
            media_type: Media type reported by the store, if any.

        Returns:
            Descriptor for the manifest.
        """
        artifact_type = manifest.get("artifactType")
        if not artifact_type:
            config = manifest.get("config")
            if isinstance(config, dict):
                artifact_type = config.get("mediaType")
        return cls(
            media_type=media_type or manifest.get("mediaType") or OCI_IMAGE_MANIFEST,
            digest=digest,
            size=size,
            artifact_type=artifact_type or None,
            annotations=manifest.get("annotations"),
        )


class ImageIndex(BaseModel):
    """OCI image index, the shape of every structured discovery result.

    Examples:
        >>> ImageIndex().to_dict()["manifests"]
        []
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=OCI_IMAGE_INDEX, alias="mediaType")
    manifests: list[Descriptor] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the OCI JSON form; ``manifests`` is always present."""
        return {
            "schemaVersion": self.schema_version,
            "mediaType": self.media_type,
            "manifests": [desc.to_dict() for desc in self.manifests],
        }


__all__ = [
    "DOCKER_MANIFEST",
    "DOCKER_MANIFEST_LIST",
    "INDEX_MEDIA_TYPES",
    "MANIFEST_MEDIA_TYPES",
    "OCI_EMPTY_CONFIG_TYPE",
    "OCI_IMAGE_INDEX",
    "OCI_IMAGE_MANIFEST",
    "Descriptor",
    "ImageIndex",
    "Platform",
]
