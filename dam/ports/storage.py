"""
Object storage interface.

The engine owns key construction and hands the identical key to the
credential issuer and to the persisted asset locator. Bytes never pass
through the engine; clients PUT them directly with the credential.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class UploadCredential:
    """Time-boxed permission to write exactly one key."""

    upload_url: str
    key: str
    content_type: str
    expires_at: datetime


class ObjectStoragePort(Protocol):
    def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        ttl_seconds: int,
    ) -> UploadCredential:
        """
        Issue a credential scoped to ``key``.

        Raises:
            StorageUnavailable: the storage service could not be reached.
        """
        ...

    def resolve_public_url(self, locator: str) -> str:
        """Public URL for a stored locator (or the link itself)."""
        ...

    def exists(self, key: str) -> bool:
        """Whether bytes were written under ``key``."""
        ...
