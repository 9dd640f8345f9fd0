"""
Uploads component port definitions.
"""

from __future__ import annotations

from dam.ports.clock import ClockPort
from dam.ports.storage import ObjectStoragePort, UploadCredential

__all__ = ["ClockPort", "ObjectStoragePort", "UploadCredential"]
