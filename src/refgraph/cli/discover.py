"""Discover CLI command.

This module provides the ``refgraph discover`` command, which lists the
artifacts referring to a subject in a registry or OCI image layout.

Example:
    $ refgraph discover ghcr.io/acme/app:v1.0.0
    $ refgraph discover ghcr.io/acme/app:v1.0.0 -o json --artifact-type application/spdx+json
    $ refgraph discover --oci-layout ./layout:v1 -o table -v
"""

from __future__ import annotations

from pathlib import Path

import click
import structlog

from refgraph.cli.utils import ExitCode, error_exit, exit_code_for, warn
from refgraph.errors import DiscoveryCancelledError, DiscoveryError
from refgraph.oci.batch_fetcher import CancellationToken
from refgraph.oci.discovery import DiscoveryService
from refgraph.oci.filters import FilterCriteria
from refgraph.render import OutputFormat, get_renderer
from refgraph.schemas.config import (
    AuthType,
    DiscoveryConfig,
    DistributionSpec,
    RegistryAuth,
)
from refgraph.telemetry.logging import LOG_LEVELS, configure_logging

logger = structlog.get_logger(__name__)


@click.command(
    name="discover",
    help="""\b
Discover the artifacts referring to a subject.

Lists referrers (signatures, SBOMs, attestations, ...) of an image,
artifact or manifest in a registry or an OCI image layout. Registries
without the Referrers API are read through the referrers tag schema.

The tree format (default) shows the whole referrer tree; json, yaml and
table list the direct referrers of the subject.

Examples:
    # Referrer tree of a tagged image
    $ refgraph discover ghcr.io/acme/app:v1.0.0

    # Direct SBOM referrers as JSON
    $ refgraph discover ghcr.io/acme/app:v1.0.0 -o json \\
        --artifact-type application/spdx+json

    # Referrers in a local OCI image layout, with annotations
    $ refgraph discover --oci-layout ./layout:v1 -o table -v
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument("reference", type=str)
@click.option(
    "--artifact-type",
    type=str,
    default=None,
    help="Only show referrers with this exact artifact type.",
)
@click.option(
    "--platform",
    type=str,
    default=None,
    help="Only show referrers for this platform, os[/arch[/variant]] (e.g., linux/arm64/v8).",
)
@click.option(
    "--format",
    "-o",
    "output_format",
    type=click.Choice([fmt.value for fmt in OutputFormat]),
    default=OutputFormat.TREE.value,
    show_default=True,
    help="Output format.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show annotations.",
)
@click.option(
    "--oci-layout",
    is_flag=True,
    help="Read from an OCI image layout directory instead of a registry.",
)
@click.option(
    "--depth",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum referrer tree depth for tree output (default: unlimited).",
)
@click.option(
    "--distribution-spec",
    type=click.Choice([spec.value for spec in DistributionSpec]),
    default=None,
    help="Referrers listing: auto tries the Referrers API and falls back to the tag schema.",
)
@click.option(
    "--plain-http",
    is_flag=True,
    help="Use plain HTTP instead of HTTPS.",
)
@click.option(
    "--insecure",
    is_flag=True,
    help="Skip TLS certificate verification.",
)
@click.option(
    "--username",
    "-u",
    type=str,
    default=None,
    help="Registry username.",
)
@click.option(
    "--password",
    "-p",
    type=str,
    default=None,
    help="Registry password or identity token.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a refgraph YAML config file.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="REFGRAPH_LOG_LEVEL",
    help="Log level for stderr diagnostics.",
)
def discover_command(
    reference: str,
    artifact_type: str | None,
    platform: str | None,
    output_format: str,
    verbose: bool,
    oci_layout: bool,
    depth: int | None,
    distribution_spec: str | None,
    plain_http: bool,
    insecure: bool,
    username: str | None,
    password: str | None,
    config_path: Path | None,
    log_level: str,
) -> None:
    """Discover the artifacts referring to a subject."""
    configure_logging(log_level=log_level)

    fmt = OutputFormat(output_format)
    if depth is not None and not fmt.recursive:
        warn(f"--depth only applies to tree output, ignored for {fmt.value}")
    max_depth = depth if fmt.recursive else 1

    try:
        criteria = FilterCriteria.create(artifact_type=artifact_type, platform=platform)
        config = _load_config(
            config_path,
            plain_http=plain_http,
            insecure=insecure,
            username=username,
            password=password,
            distribution_spec=distribution_spec,
        )
    except DiscoveryError as e:
        error_exit(str(e), exit_code=exit_code_for(e))

    token = CancellationToken()
    service = DiscoveryService(config)
    try:
        result = service.discover(
            reference,
            layout=oci_layout,
            max_depth=max_depth,
            criteria=criteria,
            cancellation=token,
        )
    except KeyboardInterrupt:
        token.cancel()
        error_exit(str(DiscoveryCancelledError(reference)), exit_code=ExitCode.CANCELLED)
    except DiscoveryError as e:
        logger.debug("discover_failed", reference=reference, error=str(e))
        error_exit(str(e), exit_code=exit_code_for(e))

    click.echo(get_renderer(fmt, verbose=verbose).render(result))


def _load_config(
    config_path: Path | None,
    *,
    plain_http: bool,
    insecure: bool,
    username: str | None,
    password: str | None,
    distribution_spec: str | None,
) -> DiscoveryConfig:
    """Build the effective configuration.

    CLI flags override the config file; the file overrides environment
    credentials.

    Raises:
        ConfigError: If the config file is invalid.
    """
    if config_path is not None:
        config = DiscoveryConfig.from_yaml(config_path)
    else:
        config = DiscoveryConfig.from_env()

    if password and not username:
        error_exit("--password requires --username", exit_code=ExitCode.USAGE_ERROR)
    auth = None
    if username:
        if not password:
            error_exit("--username requires --password", exit_code=ExitCode.USAGE_ERROR)
        auth = RegistryAuth(type=AuthType.BASIC, username=username, password=password)

    return config.with_overrides(
        plain_http=True if plain_http else None,
        insecure=True if insecure else None,
        auth=auth,
        distribution_spec=DistributionSpec(distribution_spec) if distribution_spec else None,
    )


__all__ = ["discover_command"]
