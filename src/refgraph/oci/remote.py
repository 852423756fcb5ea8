"""Remote registry content store backed by the ORAS Python SDK.

Uses ``oras.client.OrasClient`` for transport: authentication negotiation
(basic or bearer token), TLS settings and request retries all belong to
ORAS. This module only builds distribution-spec URLs and maps responses to
descriptors and discovery errors.

Endpoints used:
    GET /v2/<repository>/manifests/<tag-or-digest>
    GET /v2/<repository>/referrers/<digest>

Example:
    >>> store = RemoteRegistryStore.from_config(
    ...     "ghcr.io/acme/app", DiscoveryConfig.from_env().registry
    ... )
    >>> subject = store.resolve("v1.0.0")
    >>> store.referrers(subject)
"""

from __future__ import annotations

import hashlib
import json
from typing import Any
from urllib.parse import urljoin

import structlog
from oras.client import OrasClient

from refgraph.errors import (
    ArtifactNotFoundError,
    AuthenticationError,
    ReferrersUnsupportedError,
    RegistryUnavailableError,
)
from refgraph.oci.reference import is_digest
from refgraph.schemas.config import AuthType, RegistryAuth, RegistryConfig
from refgraph.schemas.oci import MANIFEST_MEDIA_TYPES, OCI_IMAGE_INDEX, Descriptor

logger = structlog.get_logger(__name__)

DIGEST_HEADER = "Docker-Content-Digest"
"""Response header carrying the manifest digest."""

MAX_REFERRER_PAGES = 1000
"""Upper bound on followed ``Link: rel="next"`` pages for one subject."""

_ERROR_NAME_UNKNOWN = "NAME_UNKNOWN"


def _error_codes(body: bytes) -> set[str]:
    """Extract distribution-spec error codes from a response body."""
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        return set()
    if not isinstance(payload, dict):
        return set()
    errors = payload.get("errors") or []
    return {str(error.get("code", "")) for error in errors if isinstance(error, dict)}


def _media_type(response: Any) -> str:
    """Return the response Content-Type without parameters."""
    content_type = response.headers.get("Content-Type", "") or ""
    return content_type.split(";", 1)[0].strip()


class RemoteRegistryStore:
    """ContentStore for one repository of a remote OCI registry.

    Attributes:
        locator: ``<registry>/<repository>``.
        ordered_referrers: Always False; registries give no ordering
            guarantee for referrers, so siblings are sorted by digest.
    """

    ordered_referrers = False

    def __init__(
        self,
        registry: str,
        repository: str,
        *,
        client: OrasClient,
        plain_http: bool = False,
        bearer_token: str | None = None,
    ) -> None:
        """Initialize RemoteRegistryStore.

        Args:
            registry: Registry host with optional port.
            repository: Repository path within the registry.
            client: Configured (and logged in, for basic auth) OrasClient.
            plain_http: Use http:// instead of https://.
            bearer_token: Token sent as ``Authorization: Bearer`` on every
                request, for token auth.
        """
        self.registry = registry
        self.repository = repository
        self.locator = f"{registry}/{repository}"
        self._client = client
        self._scheme = "http" if plain_http else "https"
        self._bearer_token = bearer_token

    @classmethod
    def from_config(cls, locator: str, config: RegistryConfig) -> RemoteRegistryStore:
        """Create a store for ``<registry>/<repository>`` from registry settings.

        Args:
            locator: Registry host and repository, e.g. ``ghcr.io/acme/app``.
            config: Registry connection settings.

        Returns:
            RemoteRegistryStore with an authenticated OrasClient.

        Raises:
            AuthenticationError: If basic auth login fails.
        """
        registry, repository = locator.split("/", 1)
        auth = config.auth
        return cls(
            registry,
            repository,
            client=create_oras_client(registry, config),
            plain_http=config.plain_http,
            bearer_token=auth.token if auth.type == AuthType.TOKEN else None,
        )

    # -------------------------------------------------------------------------
    # ContentStore protocol
    # -------------------------------------------------------------------------

    def resolve(self, identifier: str) -> Descriptor:
        """Resolve a tag or digest to its manifest descriptor.

        The digest comes from the ``Docker-Content-Digest`` header or, when
        the registry omits it, from the sha256 of the manifest bytes.
        """
        response = self._get(
            self._url(f"manifests/{identifier}"),
            accept=", ".join(MANIFEST_MEDIA_TYPES),
        )
        if response.status_code == 404:
            raise ArtifactNotFoundError(identifier, self.locator)
        self._check_response(response, f"resolve {identifier}")

        body: bytes = response.content
        try:
            manifest = json.loads(body)
        except ValueError as e:
            raise RegistryUnavailableError(
                self.locator, f"invalid manifest JSON for {identifier}: {e}"
            ) from e
        if not isinstance(manifest, dict):
            raise RegistryUnavailableError(self.locator, f"invalid manifest for {identifier}")

        digest = response.headers.get(DIGEST_HEADER) or ""
        if not digest:
            digest = identifier if is_digest(identifier) else ""
        if not digest:
            digest = f"sha256:{hashlib.sha256(body).hexdigest()}"

        try:
            descriptor = Descriptor.from_manifest(
                manifest,
                digest=digest,
                size=len(body),
                media_type=manifest.get("mediaType") or _media_type(response) or None,
            )
        except ValueError as e:
            raise RegistryUnavailableError(
                self.locator, f"invalid manifest for {identifier}: {e}"
            ) from e
        logger.debug(
            "manifest_resolved",
            locator=self.locator,
            identifier=identifier,
            digest=descriptor.digest,
        )
        return descriptor

    def resolve_tag(self, tag: str) -> Descriptor:
        return self.resolve(tag)

    def referrers(self, subject: Descriptor) -> list[Descriptor]:
        """List referrers via the Referrers API, following pagination.

        Raises:
            ReferrersUnsupportedError: On 404 without NAME_UNKNOWN, or a
                response that is not an image index.
            ArtifactNotFoundError: If the repository does not exist.
            RegistryUnavailableError: On transport failures or bad responses.
        """
        url: str | None = self._url(f"referrers/{subject.digest}")
        referrers: list[Descriptor] = []
        pages = 0
        while url:
            pages += 1
            if pages > MAX_REFERRER_PAGES:
                raise RegistryUnavailableError(
                    self.locator,
                    f"referrers of {subject.digest} exceed {MAX_REFERRER_PAGES} pages",
                )
            response = self._get(url, accept=OCI_IMAGE_INDEX)
            if response.status_code == 404:
                if _ERROR_NAME_UNKNOWN in _error_codes(response.content):
                    raise ArtifactNotFoundError(subject.digest, self.locator)
                raise ReferrersUnsupportedError(self.locator)
            self._check_response(response, f"list referrers of {subject.digest}")
            if _media_type(response) != OCI_IMAGE_INDEX:
                raise ReferrersUnsupportedError(self.locator)

            referrers.extend(self._parse_index(response.content, subject.digest))
            url = self._next_page(url, response)

        logger.debug(
            "referrers_listed",
            locator=self.locator,
            subject=subject.digest,
            count=len(referrers),
            pages=pages,
        )
        return referrers

    def fetch_index(self, descriptor: Descriptor) -> list[Descriptor]:
        response = self._get(
            self._url(f"manifests/{descriptor.digest}"),
            accept=", ".join(MANIFEST_MEDIA_TYPES),
        )
        if response.status_code == 404:
            raise ArtifactNotFoundError(descriptor.digest, self.locator)
        self._check_response(response, f"fetch index {descriptor.digest}")
        return self._parse_index(response.content, descriptor.digest)

    # -------------------------------------------------------------------------
    # Transport helpers
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._scheme}://{self.registry}/v2/{self.repository}/{path}"

    def _get(self, url: str, *, accept: str) -> Any:
        headers = {"Accept": accept}
        if self._bearer_token:
            headers["Authorization"] = f"Bearer {self._bearer_token}"
        try:
            return self._client.do_request(url, "GET", headers=headers)
        except OSError as e:
            # requests exceptions derive from OSError; ORAS has already retried.
            logger.warning("registry_request_failed", url=url, error=str(e))
            raise RegistryUnavailableError(self.locator, f"request to {url} failed: {e}") from e

    def _check_response(self, response: Any, operation: str) -> None:
        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(self.registry, f"{operation}: HTTP {status}")
        if status == 404:
            raise ArtifactNotFoundError(operation, self.locator)
        if status != 200:
            raise RegistryUnavailableError(self.locator, f"{operation}: HTTP {status}")

    def _parse_index(self, body: bytes, digest: str) -> list[Descriptor]:
        try:
            payload = json.loads(body)
            manifests = payload.get("manifests") or []
            return [Descriptor.model_validate(entry) for entry in manifests]
        except (ValueError, AttributeError) as e:
            # pydantic.ValidationError is a ValueError
            raise RegistryUnavailableError(
                self.locator, f"invalid image index for {digest}: {e}"
            ) from e

    def _next_page(self, current: str, response: Any) -> str | None:
        link = (response.links or {}).get("next") or {}
        target = link.get("url")
        if not target:
            return None
        return urljoin(current, target)


def create_oras_client(registry: str, config: RegistryConfig) -> OrasClient:
    """Create an OrasClient and log in when basic credentials are set.

    Args:
        registry: Registry host with optional port.
        config: Registry connection settings.

    Returns:
        Configured OrasClient instance.

    Raises:
        AuthenticationError: If login fails.
    """
    auth: RegistryAuth = config.auth
    # Basic auth needs the 'basic' backend, otherwise use the default 'token'
    auth_backend = "basic" if auth.type == AuthType.BASIC else "token"

    oras_client = OrasClient(
        hostname=registry,
        insecure=config.plain_http,
        tls_verify=not config.insecure,
        auth_backend=auth_backend,
    )

    if auth.type == AuthType.BASIC and auth.username and auth.password:
        try:
            oras_client.login(
                hostname=registry,
                username=auth.username,
                password=auth.password,
                tls_verify=not config.insecure,
            )
        except Exception as e:
            raise AuthenticationError(
                registry,
                f"Failed to authenticate with registry: {e}",
            ) from e
        logger.debug("registry_login_succeeded", registry=registry, username=auth.username)

    return oras_client


__all__ = ["DIGEST_HEADER", "RemoteRegistryStore", "create_oras_client"]
