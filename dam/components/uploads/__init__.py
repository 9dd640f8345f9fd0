"""
Uploads component - reserve/transfer/finalize and the carousel variant.
"""

from .component import (
    UploadOrchestrator,
    asset_key,
    carousel_item_key,
    item_type_for,
    new_attempt_token,
    raise_if_invalid,
    sanitize_file_name,
    validate_carousel_items,
    validate_common,
    validate_finalize,
    validate_upload,
)
from .models import (
    CarouselItemInput,
    FinalizeCarouselInput,
    FinalizeUploadInput,
    ReserveCarouselInput,
    ReserveCarouselItemInput,
    ReservedKey,
    ReserveUploadInput,
    ReserveUploadOutput,
    ReserveVersionInput,
    UploadLimits,
    UploadValidationError,
)
from .ports import ObjectStoragePort, UploadCredential

__all__ = [
    # Entry points
    "UploadOrchestrator",
    "asset_key",
    "carousel_item_key",
    "item_type_for",
    "new_attempt_token",
    "raise_if_invalid",
    "sanitize_file_name",
    "validate_carousel_items",
    "validate_common",
    "validate_finalize",
    "validate_upload",
    # Models
    "CarouselItemInput",
    "FinalizeCarouselInput",
    "FinalizeUploadInput",
    "ReserveCarouselInput",
    "ReserveCarouselItemInput",
    "ReservedKey",
    "ReserveUploadInput",
    "ReserveUploadOutput",
    "ReserveVersionInput",
    "UploadLimits",
    "UploadValidationError",
    # Ports
    "ObjectStoragePort",
    "UploadCredential",
]
