"""Tests for the local and Pinata content stores."""

from pathlib import Path
from typing import Optional

import pytest
import requests

from vaxledger.certificates import content_store as content_store_module
from vaxledger.certificates.content_store import (
    ContentStore,
    LocalContentStore,
    PinataContentStore,
)
from vaxledger.config import Settings
from vaxledger.errors import CertificateError, ConfigurationError, DependencyTimeoutError


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Optional[dict] = None, content: bytes = b"") -> None:
        self.status_code = status_code
        self._payload = payload or {}
        self.content = content
        self.text = str(payload)

    def json(self) -> dict:
        return self._payload


class TestLocalContentStore:
    def test_upload_and_fetch(self, tmp_path: Path) -> None:
        store = LocalContentStore(tmp_path)
        stored = store.upload(b"%PDF-1.4 test", {"name": "cert.pdf"})
        assert len(stored.content_hash) == 64
        assert stored.content_uri == f"local://{stored.content_hash}"
        assert store.fetch(stored.content_uri) == b"%PDF-1.4 test"

    def test_upload_is_idempotent(self, tmp_path: Path) -> None:
        store = LocalContentStore(tmp_path)
        first = store.upload(b"same bytes", {})
        second = store.upload(b"same bytes", {})
        assert first == second
        assert len(list(tmp_path.iterdir())) == 1

    def test_fetch_unknown(self, tmp_path: Path) -> None:
        with pytest.raises(CertificateError, match="not found"):
            LocalContentStore(tmp_path).fetch("local://" + "0" * 64)

    def test_fetch_foreign_uri(self, tmp_path: Path) -> None:
        with pytest.raises(CertificateError):
            LocalContentStore(tmp_path).fetch("https://gateway.example/ipfs/bafy")

    def test_satisfies_protocol(self, tmp_path: Path) -> None:
        assert isinstance(LocalContentStore(tmp_path), ContentStore)


class TestPinataContentStore:
    @pytest.fixture
    def store(self) -> PinataContentStore:
        return PinataContentStore(jwt="jwt-token", gateway="https://example.mypinata.cloud/")

    def test_from_settings(self) -> None:
        assert PinataContentStore.from_settings(Settings()) is None
        with pytest.raises(ConfigurationError):
            PinataContentStore.from_settings(Settings(pinata_jwt="jwt"))
        store = PinataContentStore.from_settings(
            Settings(pinata_jwt="jwt", pinata_gateway="example.mypinata.cloud"),
        )
        assert store.gateway_url("bafy") == "https://example.mypinata.cloud/ipfs/bafy"

    def test_upload(self, store: PinataContentStore, monkeypatch) -> None:
        seen = {}

        def fake_post(url, headers, files, data, timeout):
            seen.update(url=url, headers=headers, data=data, timeout=timeout, files=files)
            return FakeResponse(payload={"data": {"cid": "bafybeigdyr"}})

        monkeypatch.setattr(content_store_module.requests, "post", fake_post)
        stored = store.upload(b"%PDF", {"name": "school_readiness_CH1_20250201.pdf"})

        assert stored.content_hash == "bafybeigdyr"
        assert stored.content_uri == "https://example.mypinata.cloud/ipfs/bafybeigdyr"
        assert seen["headers"] == {"Authorization": "Bearer jwt-token"}
        assert seen["data"] == {"network": "public", "name": "school_readiness_CH1_20250201.pdf"}
        assert seen["timeout"] == 15.0

    def test_upload_timeout(self, store: PinataContentStore, monkeypatch) -> None:
        def fake_post(*args, **kwargs):
            raise requests.exceptions.Timeout()

        monkeypatch.setattr(content_store_module.requests, "post", fake_post)
        with pytest.raises(CertificateError) as exc:
            store.upload(b"%PDF", {})
        assert exc.value.code == "CONTENT_STORE_TIMEOUT"

    def test_upload_unreachable(self, store: PinataContentStore, monkeypatch) -> None:
        def fake_post(*args, **kwargs):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(content_store_module.requests, "post", fake_post)
        with pytest.raises(CertificateError) as exc:
            store.upload(b"%PDF", {})
        assert exc.value.code == "CONTENT_STORE_UNAVAILABLE"

    def test_upload_http_error(self, store: PinataContentStore, monkeypatch) -> None:
        monkeypatch.setattr(
            content_store_module.requests, "post",
            lambda *a, **k: FakeResponse(status_code=401, payload={"error": "unauthorized"}),
        )
        with pytest.raises(CertificateError) as exc:
            store.upload(b"%PDF", {})
        assert exc.value.code == "CONTENT_STORE_ERROR"
        assert exc.value.details["status_code"] == 401

    def test_upload_without_cid(self, store: PinataContentStore, monkeypatch) -> None:
        monkeypatch.setattr(
            content_store_module.requests, "post",
            lambda *a, **k: FakeResponse(payload={"data": {}}),
        )
        with pytest.raises(CertificateError, match="no CID"):
            store.upload(b"%PDF", {})

    def test_fetch(self, store: PinataContentStore, monkeypatch) -> None:
        monkeypatch.setattr(
            content_store_module.requests, "get",
            lambda url, timeout: FakeResponse(content=b"%PDF-fetched"),
        )
        assert store.fetch("https://example.mypinata.cloud/ipfs/bafy") == b"%PDF-fetched"

    def test_fetch_not_found(self, store: PinataContentStore, monkeypatch) -> None:
        monkeypatch.setattr(
            content_store_module.requests, "get",
            lambda url, timeout: FakeResponse(status_code=404),
        )
        with pytest.raises(CertificateError):
            store.fetch("https://example.mypinata.cloud/ipfs/bafy")

    def test_fetch_timeout_is_dependency_timeout(self, store: PinataContentStore, monkeypatch) -> None:
        def fake_get(url, timeout):
            raise requests.exceptions.Timeout()

        monkeypatch.setattr(content_store_module.requests, "get", fake_get)
        with pytest.raises(DependencyTimeoutError):
            store.fetch("https://example.mypinata.cloud/ipfs/bafy")
