"""
Local Filesystem Storage Adapter.

Implements ObjectStoragePort on the local filesystem for development and
single-server deployments. Upload credentials are short-lived JWTs
(python-jose, HS256) naming exactly one key; the API's storage route
accepts a PUT carrying that token and writes the bytes.

Invariants:
- A credential only ever permits writing the key it was issued for.
- Keys once written cannot be overwritten.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from jose import jwt

from dam.domain.errors import Conflict, Forbidden, ValidationFailed
from dam.ports.storage import UploadCredential

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_PURPOSE = "upload"


class LocalPresignedStorage:
    """
    Filesystem-backed object storage with signed upload URLs.

    Directory structure: {base_path}/{key}
    """

    def __init__(
        self,
        base_path: str | Path,
        secret_key: str,
        *,
        upload_base_url: str = "/api/storage/upload",
        public_base_url: str = "/api/storage/objects",
        create_dirs: bool = True,
    ) -> None:
        self.base_path = Path(base_path)
        self._secret_key = secret_key
        self.upload_base_url = upload_base_url.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/")

        if create_dirs:
            self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_to_path(self, key: str) -> Path:
        # Sanitize key to prevent directory traversal
        safe_key = key.replace("..", "").lstrip("/")
        return self.base_path / safe_key

    # --- ObjectStoragePort ---

    def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        ttl_seconds: int,
        now_utc: datetime | None = None,
    ) -> UploadCredential:
        current_time = now_utc if now_utc is not None else datetime.now(UTC)
        expires_at = current_time + timedelta(seconds=ttl_seconds)
        claims: dict[str, Any] = {
            "purpose": TOKEN_PURPOSE,
            "key": key,
            "ct": content_type,
            "exp": expires_at,
        }
        token: str = jwt.encode(claims, self._secret_key, algorithm=ALGORITHM)
        logger.debug("issued upload credential for %s (ttl=%ss)", key, ttl_seconds)
        return UploadCredential(
            upload_url=f"{self.upload_base_url}/{token}",
            key=key,
            content_type=content_type,
            expires_at=expires_at,
        )

    def resolve_public_url(self, locator: str) -> str:
        if locator.startswith(("http://", "https://")):
            return locator
        return f"{self.public_base_url}/{locator.lstrip('/')}"

    def exists(self, key: str) -> bool:
        return self._key_to_path(key).is_file()

    # --- Upload endpoint support ---

    def verify_upload_token(self, token: str) -> tuple[str, str]:
        """
        Decode an upload token.

        Returns:
            (key, content_type) the token was issued for.

        Raises:
            Forbidden: the token is malformed, expired or not an upload token.
        """
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except jwt.JWTError as e:
            raise Forbidden("Upload credential is invalid or expired") from e
        if claims.get("purpose") != TOKEN_PURPOSE or "key" not in claims:
            raise Forbidden("Upload credential is invalid or expired")
        return str(claims["key"]), str(claims.get("ct", ""))

    def accept_upload(self, token: str, data: bytes, content_type: str | None = None) -> str:
        """
        Write ``data`` under the key named by ``token``.

        Returns the sha256 hex digest of the stored bytes.
        """
        key, expected_type = self.verify_upload_token(token)
        if content_type and expected_type and content_type.split(";")[0] != expected_type:
            raise ValidationFailed("content_type", "Content type does not match the credential")

        path = self._key_to_path(key)
        if path.exists():
            raise Conflict("Object already uploaded")

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)

        digest = hashlib.sha256(data).hexdigest()
        logger.info("stored %d bytes at %s", len(data), key)
        return digest

    def read(self, key: str) -> bytes:
        path = self._key_to_path(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        return path.read_bytes()
