"""Configuration schemas for referrer discovery.

Configuration is read from an optional YAML file (top-level ``refgraph:``
section), from ``REFGRAPH_REGISTRY_*`` environment variables for
credentials, and from CLI flags. CLI flags override the file.

Example config file:

    refgraph:
      registry:
        plain_http: false
        insecure: false
        auth:
          type: basic
          username: ci-bot
          password: s3cret
      discovery:
        max_workers: 8
        recursion_limit: 32
        node_limit: 10000
        distribution_spec: auto
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from refgraph.errors import ConfigError

ENV_USERNAME = "REFGRAPH_REGISTRY_USERNAME"
ENV_PASSWORD = "REFGRAPH_REGISTRY_PASSWORD"
ENV_TOKEN = "REFGRAPH_REGISTRY_TOKEN"

CONFIG_SECTION = "refgraph"
"""Top-level key holding refgraph settings in a config file."""


class AuthType(str, Enum):
    """Authentication types for OCI registries."""

    ANONYMOUS = "anonymous"
    BASIC = "basic"
    TOKEN = "token"


class DistributionSpec(str, Enum):
    """How referrers are listed on a remote registry.

    AUTO tries the Referrers API and falls back to the referrers tag schema
    when the registry does not support it.
    """

    AUTO = "auto"
    REFERRERS_API = "v1.1-referrers-api"
    REFERRERS_TAG = "v1.1-referrers-tag"


class RegistryAuth(BaseModel):
    """Authentication configuration for a remote registry.

    Examples:
        >>> RegistryAuth(type=AuthType.BASIC, username="bot", password="pw").type
        <AuthType.BASIC: 'basic'>
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: AuthType = Field(default=AuthType.ANONYMOUS)
    username: str | None = Field(default=None)
    password: str | None = Field(default=None, repr=False)
    token: str | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def validate_credentials(self) -> RegistryAuth:
        """Require the credentials that match the auth type."""
        if self.type == AuthType.BASIC and not (self.username and self.password):
            raise ValueError("username and password required for auth type 'basic'")
        if self.type == AuthType.TOKEN and not self.token:
            raise ValueError("token required for auth type 'token'")
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> RegistryAuth:
        """Build auth from REFGRAPH_REGISTRY_* environment variables.

        A token takes precedence over username/password. Anonymous access is
        used when neither is set.
        """
        env = os.environ if environ is None else environ
        token = env.get(ENV_TOKEN, "")
        username = env.get(ENV_USERNAME, "")
        password = env.get(ENV_PASSWORD, "")
        if token:
            return cls(type=AuthType.TOKEN, token=token)
        if username and password:
            return cls(type=AuthType.BASIC, username=username, password=password)
        return cls()


class RegistryConfig(BaseModel):
    """Remote registry connection settings.

    Examples:
        >>> RegistryConfig().plain_http
        False
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    plain_http: bool = Field(
        default=False,
        description="Talk to the registry over plain HTTP instead of HTTPS",
    )
    insecure: bool = Field(
        default=False,
        description="Skip TLS certificate verification (local testing only)",
    )
    auth: RegistryAuth = Field(default_factory=RegistryAuth)


class DiscoverySettings(BaseModel):
    """Traversal budgets and protocol selection.

    Examples:
        >>> DiscoverySettings().recursion_limit
        32
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_workers: int = Field(
        default=8,
        ge=1,
        le=20,
        description="Parallel referrer fetches per tree level",
    )
    recursion_limit: int = Field(
        default=32,
        ge=1,
        le=256,
        description="Maximum referrer tree depth before discovery fails",
    )
    node_limit: int = Field(
        default=10_000,
        ge=1,
        description="Maximum number of referrers in one tree before discovery fails",
    )
    distribution_spec: DistributionSpec = Field(default=DistributionSpec.AUTO)


class DiscoveryConfig(BaseModel):
    """Complete refgraph configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)

    @classmethod
    def from_env(cls) -> DiscoveryConfig:
        """Create a default config with credentials from the environment."""
        return cls(registry=RegistryConfig(auth=RegistryAuth.from_env()))

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> DiscoveryConfig:
        """Load configuration from a YAML file.

        Credentials missing from the file fall back to the environment.

        Args:
            config_path: Path to the YAML file.

        Returns:
            Validated DiscoveryConfig.

        Raises:
            ConfigError: If the file is missing, unparseable or invalid.
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            with path.open() as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config YAML: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        section: Any = data.get(CONFIG_SECTION, {})
        if section is None:
            section = {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{CONFIG_SECTION}' section must be a mapping: {path}")

        registry_data = section.get("registry") or {}
        if isinstance(registry_data, dict) and "auth" not in registry_data:
            registry_data = {
                **registry_data,
                "auth": RegistryAuth.from_env().model_dump(),
            }
            section = {**section, "registry": registry_data}

        try:
            return cls.model_validate(section)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    def with_overrides(
        self,
        *,
        plain_http: bool | None = None,
        insecure: bool | None = None,
        auth: RegistryAuth | None = None,
        distribution_spec: DistributionSpec | None = None,
    ) -> DiscoveryConfig:
        """Return a copy with the given CLI overrides applied."""
        registry_updates: dict[str, Any] = {}
        if plain_http is not None:
            registry_updates["plain_http"] = plain_http
        if insecure is not None:
            registry_updates["insecure"] = insecure
        if auth is not None:
            registry_updates["auth"] = auth

        discovery_updates: dict[str, Any] = {}
        if distribution_spec is not None:
            discovery_updates["distribution_spec"] = distribution_spec

        return self.model_copy(
            update={
                "registry": self.registry.model_copy(update=registry_updates),
                "discovery": self.discovery.model_copy(update=discovery_updates),
            }
        )


__all__ = [
    "CONFIG_SECTION",
    "ENV_PASSWORD",
    "ENV_TOKEN",
    "ENV_USERNAME",
    "AuthType",
    "DiscoveryConfig",
    "DiscoverySettings",
    "DistributionSpec",
    "RegistryAuth",
    "RegistryConfig",
]
