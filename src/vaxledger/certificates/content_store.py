"""Content-addressed artifact storage for verifiable certificates.

``upload`` returns the content hash the store addresses the artifact by
and a URI it can be fetched back from. ``fetch`` is only used to verify
an issued certificate against its recorded SHA-256.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import requests

from vaxledger.config import Settings
from vaxledger.errors import CertificateError, ConfigurationError, DependencyTimeoutError

logger = logging.getLogger(__name__)

PINATA_UPLOAD_URL = "https://uploads.pinata.cloud/v3/files"
LOCAL_SCHEME = "local://"


@dataclass(frozen=True)
class StoredContent:
    content_hash: str
    content_uri: str


@runtime_checkable
class ContentStore(Protocol):
    def upload(self, data: bytes, metadata: dict[str, Any]) -> StoredContent:
        ...

    def fetch(self, content_uri: str) -> bytes:
        ...


class LocalContentStore:
    """Filesystem store addressed by SHA-256. Uploading the same bytes twice is a no-op."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def upload(self, data: bytes, metadata: dict[str, Any]) -> StoredContent:
        digest = hashlib.sha256(data).hexdigest()
        path = self._root / digest
        if not path.exists():
            self._root.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)
            logger.info("Stored %s (%d bytes) as %s", metadata.get("name", "artifact"), len(data), digest)
        return StoredContent(content_hash=digest, content_uri=f"{LOCAL_SCHEME}{digest}")

    def fetch(self, content_uri: str) -> bytes:
        if not content_uri.startswith(LOCAL_SCHEME):
            raise CertificateError(f"Not a local content URI: {content_uri}")
        path = self._root / content_uri[len(LOCAL_SCHEME):]
        if not path.exists():
            raise CertificateError(f"Artifact not found: {content_uri}")
        return path.read_bytes()


class PinataContentStore:
    """IPFS pinning through Pinata; artifacts are read back via the gateway."""

    def __init__(
        self,
        jwt: str,
        gateway: str,
        timeout_seconds: float = 15.0,
        upload_url: str = PINATA_UPLOAD_URL,
    ) -> None:
        self._headers = {"Authorization": f"Bearer {jwt}"}
        self._gateway = gateway.removeprefix("https://").rstrip("/")
        self._timeout = timeout_seconds
        self._upload_url = upload_url

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional[PinataContentStore]:
        if not settings.pinata_jwt:
            return None
        if not settings.pinata_gateway:
            raise ConfigurationError("PINATA_GATEWAY is required when PINATA_JWT is set")
        return cls(
            jwt=settings.pinata_jwt,
            gateway=settings.pinata_gateway,
            timeout_seconds=settings.http_timeout_seconds,
        )

    def gateway_url(self, cid: str) -> str:
        return f"https://{self._gateway}/ipfs/{cid}"

    def upload(self, data: bytes, metadata: dict[str, Any]) -> StoredContent:
        name = metadata.get("name", "certificate.pdf")
        try:
            logger.info("Pinata upload %s (%d bytes)", name, len(data))
            response = requests.post(
                self._upload_url,
                headers=self._headers,
                files={"file": (name, data, metadata.get("mime_type", "application/pdf"))},
                data={"network": "public", "name": name},
                timeout=self._timeout,
            )
        except requests.exceptions.Timeout:
            raise CertificateError(
                "Pinata upload timed out", code="CONTENT_STORE_TIMEOUT",
            )
        except requests.exceptions.ConnectionError as e:
            raise CertificateError(
                f"Could not reach Pinata: {e}", code="CONTENT_STORE_UNAVAILABLE",
            )

        if response.status_code >= 400:
            logger.error("Pinata upload failed: %s %s", response.status_code, response.text[:200])
            raise CertificateError(
                f"Pinata upload failed with status {response.status_code}",
                code="CONTENT_STORE_ERROR",
                details={"status_code": response.status_code},
            )

        cid = (response.json().get("data") or {}).get("cid")
        if not cid:
            raise CertificateError("Pinata response has no CID", code="CONTENT_STORE_ERROR")
        return StoredContent(content_hash=cid, content_uri=self.gateway_url(cid))

    def fetch(self, content_uri: str) -> bytes:
        try:
            response = requests.get(content_uri, timeout=self._timeout)
        except requests.exceptions.Timeout:
            raise DependencyTimeoutError(
                f"Gateway fetch timed out: {content_uri}", details={"content_uri": content_uri},
            )
        except requests.exceptions.ConnectionError as e:
            raise CertificateError(
                f"Could not reach gateway: {e}", code="CONTENT_STORE_UNAVAILABLE",
            )
        if response.status_code >= 400:
            raise CertificateError(
                f"Gateway returned {response.status_code} for {content_uri}",
                code="CONTENT_STORE_ERROR",
            )
        return response.content
