"""Pydantic schemas for OCI content and refgraph configuration."""

from __future__ import annotations

from refgraph.schemas.config import (
    AuthType,
    DiscoveryConfig,
    DiscoverySettings,
    DistributionSpec,
    RegistryAuth,
    RegistryConfig,
)
from refgraph.schemas.oci import (
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    Descriptor,
    ImageIndex,
    Platform,
)

__all__: list[str] = [
    "OCI_IMAGE_INDEX",
    "OCI_IMAGE_MANIFEST",
    "AuthType",
    "Descriptor",
    "DiscoveryConfig",
    "DiscoverySettings",
    "DistributionSpec",
    "ImageIndex",
    "Platform",
    "RegistryAuth",
    "RegistryConfig",
]
