"""Unit tests for RemoteRegistryStore.

The ORAS client is replaced by an autospec of OrasClient, so calls outside its
real API fail. Responses are MagicMocks with the ``requests.Response``
attributes the store reads (status_code, headers, content, links).
"""

from __future__ import annotations

import hashlib
import json
from typing import Any
from unittest.mock import MagicMock, create_autospec, patch

import pytest
from oras.client import OrasClient

from refgraph.errors import (
    ArtifactNotFoundError,
    AuthenticationError,
    ReferrersUnsupportedError,
    RegistryUnavailableError,
)
from refgraph.oci.referrers import ReferrerFetcher, referrers_tag
from refgraph.oci.remote import (
    DIGEST_HEADER,
    MAX_REFERRER_PAGES,
    RemoteRegistryStore,
    create_oras_client,
)
from refgraph.schemas.config import AuthType, RegistryAuth, RegistryConfig
from refgraph.schemas.oci import OCI_IMAGE_INDEX, OCI_IMAGE_MANIFEST, Descriptor

SBOM = "application/vnd.example.sbom+json"


def _response(
    status_code: int = 200,
    body: Any = None,
    *,
    content_type: str = OCI_IMAGE_INDEX,
    headers: dict[str, str] | None = None,
    links: dict[str, Any] | None = None,
) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if isinstance(body, bytes):
        response.content = body
    else:
        response.content = json.dumps(body if body is not None else {}).encode()
    response.headers = {"Content-Type": content_type, **(headers or {})}
    response.links = links or {}
    return response


def _descriptor(index: int, artifact_type: str | None = SBOM) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "mediaType": OCI_IMAGE_MANIFEST,
        "digest": f"sha256:{index:064x}",
        "size": 100 + index,
    }
    if artifact_type:
        entry["artifactType"] = artifact_type
    return entry


def _index(*entries: dict[str, Any]) -> dict[str, Any]:
    return {"schemaVersion": 2, "mediaType": OCI_IMAGE_INDEX, "manifests": list(entries)}


@pytest.fixture
def client() -> MagicMock:
    """Return a mock OrasClient that only accepts its real methods."""
    return create_autospec(OrasClient, instance=True)


@pytest.fixture
def store(client: MagicMock) -> RemoteRegistryStore:
    """Return a store for ghcr.io/acme/app backed by the mock client."""
    return RemoteRegistryStore("ghcr.io", "acme/app", client=client)


@pytest.fixture
def subject() -> Descriptor:
    """Return a subject descriptor."""
    return Descriptor.model_validate(_descriptor(0, artifact_type=None))


def _requested_urls(client: MagicMock) -> list[str]:
    return [call.args[0] for call in client.do_request.call_args_list]


class TestResolve:
    """Tests for RemoteRegistryStore.resolve()."""

    def test_resolve_tag(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test resolving a tag uses the Docker-Content-Digest header."""
        manifest = {"schemaVersion": 2, "mediaType": OCI_IMAGE_MANIFEST, "layers": []}
        digest = "sha256:" + "c" * 64
        client.do_request.return_value = _response(
            body=manifest, content_type=OCI_IMAGE_MANIFEST, headers={DIGEST_HEADER: digest}
        )

        desc = store.resolve("v1.0.0")

        assert desc.digest == digest
        assert desc.media_type == OCI_IMAGE_MANIFEST
        assert _requested_urls(client) == ["https://ghcr.io/v2/acme/app/manifests/v1.0.0"]
        headers = client.do_request.call_args.kwargs["headers"]
        assert OCI_IMAGE_MANIFEST in headers["Accept"]
        assert "Authorization" not in headers

    def test_digest_computed_without_header(
        self, store: RemoteRegistryStore, client: MagicMock
    ) -> None:
        """Test the digest falls back to the sha256 of the manifest bytes."""
        body = json.dumps({"schemaVersion": 2, "mediaType": OCI_IMAGE_MANIFEST}).encode()
        client.do_request.return_value = _response(body=body)

        desc = store.resolve("v1")

        assert desc.digest == f"sha256:{hashlib.sha256(body).hexdigest()}"
        assert desc.size == len(body)

    def test_resolve_digest_without_header(
        self, store: RemoteRegistryStore, client: MagicMock
    ) -> None:
        """Test a digest identifier is trusted when the header is absent."""
        digest = "sha256:" + "d" * 64
        client.do_request.return_value = _response(body={"schemaVersion": 2})

        assert store.resolve(digest).digest == digest

    def test_media_type_from_content_type(
        self, store: RemoteRegistryStore, client: MagicMock
    ) -> None:
        """Test a manifest without mediaType takes the Content-Type."""
        client.do_request.return_value = _response(
            body={"schemaVersion": 2, "manifests": []},
            content_type=OCI_IMAGE_INDEX + "; charset=utf-8",
        )

        assert store.resolve("v1").media_type == OCI_IMAGE_INDEX

    def test_artifact_type_from_manifest(
        self, store: RemoteRegistryStore, client: MagicMock
    ) -> None:
        """Test resolve() carries the manifest artifactType."""
        client.do_request.return_value = _response(
            body={"mediaType": OCI_IMAGE_MANIFEST, "artifactType": SBOM}
        )

        assert store.resolve("v1").artifact_type == SBOM

    def test_not_found(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test a 404 maps to ArtifactNotFoundError."""
        client.do_request.return_value = _response(404)

        with pytest.raises(ArtifactNotFoundError, match="missing"):
            store.resolve("missing")

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_failure(
        self, store: RemoteRegistryStore, client: MagicMock, status_code: int
    ) -> None:
        """Test 401/403 map to AuthenticationError."""
        client.do_request.return_value = _response(status_code)

        with pytest.raises(AuthenticationError, match="ghcr.io"):
            store.resolve("v1")

    def test_server_error(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test other statuses map to RegistryUnavailableError."""
        client.do_request.return_value = _response(503)

        with pytest.raises(RegistryUnavailableError, match="HTTP 503"):
            store.resolve("v1")

    def test_invalid_json(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test an unparseable manifest is a store failure."""
        client.do_request.return_value = _response(body=b"<html>")

        with pytest.raises(RegistryUnavailableError, match="invalid manifest JSON"):
            store.resolve("v1")

    def test_invalid_annotations(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test a manifest with non-string annotation values is a store failure."""
        client.do_request.return_value = _response(
            body={"mediaType": OCI_IMAGE_MANIFEST, "annotations": {"org.example.count": 3}}
        )

        with pytest.raises(RegistryUnavailableError, match="invalid manifest for v1"):
            store.resolve("v1")

    def test_connection_error(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test transport errors map to RegistryUnavailableError."""
        client.do_request.side_effect = ConnectionError("connection refused")

        with pytest.raises(RegistryUnavailableError, match="connection refused"):
            store.resolve("v1")

    def test_plain_http_and_token(self, client: MagicMock) -> None:
        """Test plain HTTP URLs and bearer token headers."""
        store = RemoteRegistryStore(
            "localhost:5000", "hello", client=client, plain_http=True, bearer_token="tkn"
        )
        client.do_request.return_value = _response(body={"schemaVersion": 2})

        store.resolve("latest")

        assert _requested_urls(client) == ["http://localhost:5000/v2/hello/manifests/latest"]
        headers = client.do_request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tkn"


class TestReferrers:
    """Tests for RemoteRegistryStore.referrers()."""

    def test_single_page(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test a single referrers page."""
        client.do_request.return_value = _response(body=_index(_descriptor(1)))

        found = store.referrers(subject)

        assert [d.digest for d in found] == [_descriptor(1)["digest"]]
        assert found[0].artifact_type == SBOM
        assert _requested_urls(client) == [
            f"https://ghcr.io/v2/acme/app/referrers/{subject.digest}"
        ]

    def test_empty_index(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test an empty index means no referrers."""
        client.do_request.return_value = _response(body=_index())

        assert store.referrers(subject) == []

    def test_follows_pagination(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test Link rel=next pages are followed and concatenated."""
        next_path = f"/v2/acme/app/referrers/{subject.digest}?last=abc"
        client.do_request.side_effect = [
            _response(body=_index(_descriptor(1)), links={"next": {"url": next_path}}),
            _response(body=_index(_descriptor(2))),
        ]

        found = store.referrers(subject)

        assert [d.size for d in found] == [101, 102]
        assert _requested_urls(client)[1] == "https://ghcr.io" + next_path

    def test_page_limit(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test a registry that never stops paginating fails."""
        client.do_request.return_value = _response(
            body=_index(), links={"next": {"url": "/v2/acme/app/referrers/x?n=1"}}
        )

        with pytest.raises(RegistryUnavailableError, match="pages"):
            store.referrers(subject)

        assert client.do_request.call_count == MAX_REFERRER_PAGES

    def test_404_is_unsupported(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test a plain 404 means the API is not implemented."""
        client.do_request.return_value = _response(404, body=b"404 page not found")

        with pytest.raises(ReferrersUnsupportedError):
            store.referrers(subject)

    def test_name_unknown_is_not_found(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test NAME_UNKNOWN means the repository does not exist."""
        body = {"errors": [{"code": "NAME_UNKNOWN", "message": "repository name not known"}]}
        client.do_request.return_value = _response(404, body=body)

        with pytest.raises(ArtifactNotFoundError):
            store.referrers(subject)

    def test_wrong_content_type_is_unsupported(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test a 200 that is not an image index means the API is not implemented."""
        client.do_request.return_value = _response(
            body={"repositories": []}, content_type="application/json"
        )

        with pytest.raises(ReferrersUnsupportedError):
            store.referrers(subject)

    def test_invalid_index(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test malformed index entries are a store failure."""
        client.do_request.return_value = _response(body=_index({"digest": "sha256:x"}))

        with pytest.raises(RegistryUnavailableError, match="invalid image index"):
            store.referrers(subject)

    def test_unauthorized(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test 401 maps to AuthenticationError."""
        client.do_request.return_value = _response(401)

        with pytest.raises(AuthenticationError):
            store.referrers(subject)


class TestFetchIndex:
    """Tests for RemoteRegistryStore.fetch_index()."""

    def test_fetch_index(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test the referrers tag index is parsed into descriptors."""
        index_desc = Descriptor.model_validate(
            {"mediaType": OCI_IMAGE_INDEX, "digest": "sha256:" + "e" * 64, "size": 10}
        )
        client.do_request.return_value = _response(
            body=_index(_descriptor(1), _descriptor(2, artifact_type=None))
        )

        found = store.fetch_index(index_desc)

        assert [d.size for d in found] == [101, 102]
        assert found[1].artifact_type is None
        assert _requested_urls(client) == [
            f"https://ghcr.io/v2/acme/app/manifests/{index_desc.digest}"
        ]

    def test_missing_index(self, store: RemoteRegistryStore, client: MagicMock) -> None:
        """Test a missing index blob raises ArtifactNotFoundError."""
        client.do_request.return_value = _response(404)
        index_desc = Descriptor.model_validate(
            {"mediaType": OCI_IMAGE_INDEX, "digest": "sha256:" + "e" * 64, "size": 10}
        )

        with pytest.raises(ArtifactNotFoundError):
            store.fetch_index(index_desc)


class TestFromConfig:
    """Tests for RemoteRegistryStore.from_config() and create_oras_client()."""

    def test_from_config_anonymous(self) -> None:
        """Test anonymous config builds a token-backend client without login."""
        with patch("refgraph.oci.remote.OrasClient", autospec=True) as mock_cls:
            store = RemoteRegistryStore.from_config("ghcr.io/acme/app", RegistryConfig())

        assert store.registry == "ghcr.io"
        assert store.repository == "acme/app"
        assert store.locator == "ghcr.io/acme/app"
        mock_cls.assert_called_once_with(
            hostname="ghcr.io", insecure=False, tls_verify=True, auth_backend="token"
        )
        mock_cls.return_value.login.assert_not_called()

    def test_basic_auth_logs_in(self) -> None:
        """Test basic credentials log in through the basic backend."""
        config = RegistryConfig(
            plain_http=True,
            insecure=True,
            auth=RegistryAuth(type=AuthType.BASIC, username="bot", password="pw"),
        )

        with patch("refgraph.oci.remote.OrasClient", autospec=True) as mock_cls:
            create_oras_client("localhost:5000", config)

        mock_cls.assert_called_once_with(
            hostname="localhost:5000", insecure=True, tls_verify=False, auth_backend="basic"
        )
        mock_cls.return_value.login.assert_called_once_with(
            hostname="localhost:5000",
            username="bot",
            password="pw",
            tls_verify=False,
        )

    def test_login_failure(self) -> None:
        """Test a failed login raises AuthenticationError."""
        config = RegistryConfig(
            auth=RegistryAuth(type=AuthType.BASIC, username="bot", password="wrong")
        )

        with patch("refgraph.oci.remote.OrasClient", autospec=True) as mock_cls:
            mock_cls.return_value.login.side_effect = RuntimeError("401 Unauthorized")
            with pytest.raises(AuthenticationError, match="401 Unauthorized"):
                create_oras_client("ghcr.io", config)

    def test_token_auth_sets_bearer(self) -> None:
        """Test token auth is sent as a bearer header."""
        config = RegistryConfig(auth=RegistryAuth(type=AuthType.TOKEN, token="tkn"))

        with patch("refgraph.oci.remote.OrasClient", autospec=True) as mock_cls:
            store = RemoteRegistryStore.from_config("ghcr.io/acme/app", config)
            mock_cls.return_value.do_request.return_value = _response(
                body={"schemaVersion": 2}
            )
            store.resolve("v1")

        headers = mock_cls.return_value.do_request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tkn"


class TestReferrersTagFallback:
    """Tests for ReferrerFetcher over a registry without the Referrers API."""

    def test_fallback_to_referrers_tag(
        self, store: RemoteRegistryStore, client: MagicMock, subject: Descriptor
    ) -> None:
        """Test a 404 on the referrers endpoint switches to the referrers tag index."""
        base = "https://ghcr.io/v2/acme/app"
        index_digest = "sha256:" + "f" * 64
        index_body = _index(_descriptor(1))
        other = Descriptor.model_validate(_descriptor(5, artifact_type=None))
        routes = {
            f"{base}/referrers/{subject.digest}": _response(404, body=b"404 page not found"),
            f"{base}/manifests/{referrers_tag(subject.digest)}": _response(
                body=index_body, headers={DIGEST_HEADER: index_digest}
            ),
            f"{base}/manifests/{index_digest}": _response(body=index_body),
        }

        def transport(url: str, *args: Any, **kwargs: Any) -> MagicMock:
            return routes.get(url) or _response(404)

        client.do_request.side_effect = transport
        fetcher = ReferrerFetcher(store)

        found = fetcher.fetch(subject)

        assert [d.digest for d in found] == [_descriptor(1)["digest"]]
        assert found[0].artifact_type == SBOM
        assert fetcher.strategy.name == "referrers-tag"
        assert _requested_urls(client) == [
            f"{base}/referrers/{subject.digest}",
            f"{base}/manifests/{referrers_tag(subject.digest)}",
            f"{base}/manifests/{index_digest}",
        ]

        client.do_request.reset_mock()
        assert fetcher.fetch(other) == []
        assert _requested_urls(client) == [f"{base}/manifests/{referrers_tag(other.digest)}"]
