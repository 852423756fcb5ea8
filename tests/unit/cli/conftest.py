"""Unit test fixtures for the CLI module.

CLI tests run ``refgraph discover`` against OCI image layouts written to
tmp_path, so no registry is needed. Registry references are served from a
MemoryStore by patching the store factory.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from click.testing import CliRunner

SBOM = "application/vnd.example.sbom+json"
SIGNATURE = "application/vnd.example.signature"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner.

    Returns:
        CliRunner instance for testing Click commands.
    """
    return CliRunner()


@pytest.fixture
def layout_graph(oci_layout: Any, image_manifest: Callable[..., dict[str, Any]]) -> dict[str, Any]:
    """Write a subject tagged ``v1`` with a signed, annotated SBOM.

    Returns:
        Mapping with the ``reference`` string for ``--oci-layout`` and the
        ``subject``, ``sbom`` and ``signature`` descriptors.
    """
    subject = oci_layout.add_manifest(image_manifest(), tag="v1")
    sbom = oci_layout.add_referrer(subject, SBOM, annotations={"org.example.tool": "syft"})
    signature = oci_layout.add_referrer(sbom, SIGNATURE)
    return {
        "reference": f"{oci_layout.root}:v1",
        "root": oci_layout.root,
        "subject": subject,
        "sbom": sbom,
        "signature": signature,
    }
