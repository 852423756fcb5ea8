"""Referrer discovery exception hierarchy.

All exceptions inherit from DiscoveryError, the base exception class.

Exception Hierarchy:
    DiscoveryError (base)
    ├── ConfigError                  # Configuration file invalid or unreadable
    ├── InvalidReferenceError        # Subject reference cannot be parsed
    ├── InvalidPlatformError         # Platform selector cannot be parsed
    ├── ArtifactNotFoundError        # Subject/tag does not resolve to a manifest
    ├── AuthenticationError          # Registry rejected the credentials
    ├── RegistryUnavailableError     # Store I/O or transport failure
    ├── ReferrersUnsupportedError    # Store lacks the native Referrers API
    ├── RecursionLimitExceededError  # Referrer graph too deep or too large
    └── DiscoveryCancelledError      # Discovery cancelled by the caller

Exit Codes:
    0 - Success (including "no referrers found")
    1 - General error (DiscoveryError)
    2 - Invalid reference or platform selector
    3 - Subject not found (ArtifactNotFoundError)
    4 - Authentication error (AuthenticationError)
    5 - Store unreachable (RegistryUnavailableError)
    6 - Recursion limit exceeded (RecursionLimitExceededError)
    130 - Cancelled (DiscoveryCancelledError)

Example:
    >>> from refgraph.errors import ArtifactNotFoundError
    >>> raise ArtifactNotFoundError("v1.0.0", "ghcr.io/acme/app")
    Traceback (most recent call last):
        ...
    ArtifactNotFoundError: Artifact not found: v1.0.0 in ghcr.io/acme/app
"""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base exception for all referrer discovery errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1


class ConfigError(DiscoveryError):
    """Raised when a configuration file cannot be loaded or validated."""


class InvalidReferenceError(DiscoveryError):
    """Raised when a subject reference cannot be parsed.

    A reference must name a store locator and a tag or digest, e.g.
    ``ghcr.io/acme/app:v1`` or ``./layout@sha256:...``.

    Attributes:
        reference: The offending reference string.
        reason: Why the reference was rejected.
        exit_code: CLI exit code (2).
    """

    exit_code: int = 2

    def __init__(self, reference: str, reason: str) -> None:
        """Initialize InvalidReferenceError.

        Args:
            reference: The offending reference string.
            reason: Why the reference was rejected.
        """
        self.reference = reference
        self.reason = reason
        super().__init__(f"invalid image reference {reference!r}: {reason}")


class InvalidPlatformError(DiscoveryError):
    """Raised when a platform selector is not of the form os[/arch[/variant]].

    Attributes:
        selector: The offending selector string.
        exit_code: CLI exit code (2).
    """

    exit_code: int = 2

    def __init__(self, selector: str) -> None:
        self.selector = selector
        super().__init__(
            f"invalid platform {selector!r}: expected os[/arch[/variant]], e.g. linux/amd64"
        )


class ArtifactNotFoundError(DiscoveryError):
    """Raised when a tag or digest does not resolve to a manifest.

    Attributes:
        identifier: The tag or digest that was not found.
        locator: The registry repository or layout path searched.
        exit_code: CLI exit code (3).

    Example:
        >>> raise ArtifactNotFoundError("sha256:abc...", "./oci-layout")
        Traceback (most recent call last):
            ...
        ArtifactNotFoundError: Artifact not found: sha256:abc... in ./oci-layout
    """

    exit_code: int = 3

    def __init__(self, identifier: str, locator: str) -> None:
        """Initialize ArtifactNotFoundError.

        Args:
            identifier: The tag or digest that was not found.
            locator: The registry repository or layout path searched.
        """
        self.identifier = identifier
        self.locator = locator
        super().__init__(f"Artifact not found: {identifier} in {locator}")


class AuthenticationError(DiscoveryError):
    """Raised when registry authentication fails.

    Attributes:
        registry: The registry host where authentication failed.
        reason: Description of why authentication failed.
        exit_code: CLI exit code (4).
    """

    exit_code: int = 4

    def __init__(self, registry: str, reason: str) -> None:
        """Initialize AuthenticationError.

        Args:
            registry: The registry host where authentication failed.
            reason: Description of why authentication failed.
        """
        self.registry = registry
        self.reason = reason
        super().__init__(f"Authentication failed for {registry}: {reason}")


class RegistryUnavailableError(DiscoveryError):
    """Raised when the store cannot be read.

    Covers network failures against a remote registry, unexpected HTTP
    status codes, and unreadable or corrupt OCI layout directories.

    Attributes:
        locator: The registry host or layout path that failed.
        reason: Description of the failure.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(self, locator: str, reason: str) -> None:
        """Initialize RegistryUnavailableError.

        Args:
            locator: The registry host or layout path that failed.
            reason: Description of the failure.
        """
        self.locator = locator
        self.reason = reason
        super().__init__(f"Store unavailable: {locator}: {reason}")


class ReferrersUnsupportedError(DiscoveryError):
    """Raised by a store that does not implement the Referrers API.

    The referrer fetcher recovers from this error by switching to the
    referrers tag schema. It only reaches the caller when the API strategy
    was explicitly forced.

    Attributes:
        locator: The registry repository that lacks the API.
    """

    def __init__(self, locator: str) -> None:
        self.locator = locator
        super().__init__(f"Referrers API is not supported by {locator}")


class RecursionLimitExceededError(DiscoveryError):
    """Raised when the referrer graph exceeds its depth or node budget.

    Distinguishes a pathological (too deep or self-referential) referrer
    graph from a transport failure.

    Attributes:
        subject: Canonical reference of the discovery root.
        limit: The budget that was exceeded.
        kind: Which budget was exceeded ("depth" or "nodes").
        exit_code: CLI exit code (6).
    """

    exit_code: int = 6

    def __init__(self, subject: str, limit: int, kind: str = "depth") -> None:
        """Initialize RecursionLimitExceededError.

        Args:
            subject: Canonical reference of the discovery root.
            limit: The budget that was exceeded.
            kind: Which budget was exceeded ("depth" or "nodes").
        """
        self.subject = subject
        self.limit = limit
        self.kind = kind
        if kind == "nodes":
            detail = f"more than {limit} referrers"
        else:
            detail = f"more than {limit} levels of referrers"
        super().__init__(
            f"Referrer graph of {subject} has {detail}; "
            "the registry may contain a referrer cycle"
        )


class DiscoveryCancelledError(DiscoveryError):
    """Raised when a discovery is cancelled before it completes.

    Attributes:
        exit_code: CLI exit code (130).
    """

    exit_code: int = 130

    def __init__(self, reference: str = "") -> None:
        self.reference = reference
        msg = "Discovery cancelled"
        if reference:
            msg += f" for {reference}"
        super().__init__(msg)


__all__ = [
    "ArtifactNotFoundError",
    "AuthenticationError",
    "ConfigError",
    "DiscoveryCancelledError",
    "DiscoveryError",
    "InvalidPlatformError",
    "InvalidReferenceError",
    "RecursionLimitExceededError",
    "ReferrersUnsupportedError",
    "RegistryUnavailableError",
]
