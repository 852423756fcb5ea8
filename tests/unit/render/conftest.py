"""Fixtures for renderer tests.

Renderers are fed real DiscoveryResults built from the shared MemoryStore.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from refgraph.oci.discovery import DiscoveryResult, DiscoveryService
from refgraph.oci.filters import FilterCriteria
from refgraph.oci.memory import MemoryStore
from refgraph.oci.metrics import DiscoveryMetrics
from refgraph.schemas.config import DiscoveryConfig

SBOM = "application/vnd.example.sbom+json"
SIGNATURE = "application/vnd.example.signature"
REFERENCE = "registry.test/acme/app:v1"


@pytest.fixture
def discover(memory_store: MemoryStore) -> Callable[..., DiscoveryResult]:
    """Return a function running a discovery of ``REFERENCE`` on memory_store."""
    service = DiscoveryService(DiscoveryConfig(), metrics=MagicMock(spec=DiscoveryMetrics))

    def _discover(
        *,
        max_depth: int | None = 1,
        artifact_type: str | None = None,
        platform: str | None = None,
    ) -> DiscoveryResult:
        return service.discover(
            REFERENCE,
            store=memory_store,
            max_depth=max_depth,
            criteria=FilterCriteria.create(artifact_type=artifact_type, platform=platform),
        )

    return _discover


@pytest.fixture
def referrers(memory_store: MemoryStore, subject: Any) -> dict[str, Any]:
    """Subject with an annotated SBOM (itself signed) and a direct signature."""
    sbom = memory_store.add_referrer(
        subject,
        SBOM,
        annotations={
            "org.opencontainers.image.created": "2024-05-01T00:00:00Z",
            "org.example.tool": "syft",
        },
    )
    sbom_signature = memory_store.add_referrer(sbom, SIGNATURE)
    signature = memory_store.add_referrer(subject, SIGNATURE)
    return {
        "subject": subject,
        "sbom": sbom,
        "sbom_signature": sbom_signature,
        "signature": signature,
    }
