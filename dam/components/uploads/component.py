"""
Uploads component - reserve, transfer, finalize.

The engine builds every storage key itself and asks storage for a
credential scoped to exactly that key. The credential's echoed key is
checked, then the key is written to the asset row, and the credential is
returned only after that row is committed. Storage round-trips happen
outside any unit of work, so a slow store never holds the database.

Single asset:
    reserve_upload -> (client PUTs bytes) -> finalize_upload
Carousel:
    reserve_carousel -> reserve_carousel_item (per child, in parallel)
    -> finalize_carousel
Replacement bytes:
    reserve_version -> (client PUTs bytes) -> finalize_version

Invariants:
- credential.key == asset.storage_locator for every reserved upload.
- Keys are unique per attempt, not per asset.
- Finalize repeated with the same inputs writes nothing, including when
  the repeats overlap.
- A carousel leaves DRAFT in one unit of work, or not at all.
- Reserve failures are retryable (StorageUnavailable); finalize failures
  are not (CommitFailed).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from typing import Any, TypeVar
from urllib.parse import urlparse
from uuid import UUID, uuid4

from dam.components.audit import AuditRecorder, RecordAuditInput
from dam.components.lifecycle import ContentReplacementInput, LifecycleController, NewAsset
from dam.domain.entities import (
    Asset,
    AssetStatus,
    AssetType,
    AuditAction,
    CarouselItem,
    ResourceType,
    UploadType,
    User,
)
from dam.domain.errors import (
    CommitFailed,
    Conflict,
    EngineError,
    InvalidState,
    NotFound,
    StorageUnavailable,
    ValidationFailed,
    asset_not_found,
)
from dam.ports.repo import UnitOfWorkPort

from .models import (
    CarouselItemInput,
    FinalizeCarouselInput,
    FinalizeUploadInput,
    ReservedKey,
    ReserveCarouselInput,
    ReserveCarouselItemInput,
    ReserveUploadInput,
    ReserveUploadOutput,
    ReserveVersionInput,
    UploadLimits,
    UploadValidationError,
)
from .ports import ClockPort, ObjectStoragePort, UploadCredential

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_SHA256 = re.compile(r"^[0-9a-f]{64}$")


# --- Keys ---


def new_attempt_token() -> str:
    return uuid4().hex[:16]


def sanitize_file_name(file_name: str, max_length: int = 120) -> str:
    """
    Reduce a client file name to a safe key segment.

    Directory parts are dropped, unsafe runs become a single dash, and the
    extension survives truncation.
    """
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    base = _UNSAFE_CHARS.sub("-", base).strip(".-")
    if not base:
        return "file"
    if len(base) <= max_length:
        return base
    stem, dot, ext = base.rpartition(".")
    if dot and 0 < len(ext) < max_length // 2:
        return stem[: max_length - len(ext) - 1] + "." + ext
    return base[:max_length]


def asset_key(asset_id: UUID, token: str, safe_name: str) -> str:
    return f"assets/{asset_id}/{token}-{safe_name}"


def carousel_item_key(carousel_id: UUID, token: str, safe_name: str) -> str:
    return f"assets/{carousel_id}/items/{token}-{safe_name}"


def item_type_for(mime_type: str) -> AssetType:
    return AssetType.VIDEO if mime_type.startswith("video/") else AssetType.IMAGE


# --- Validation ---


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_common(
    title: str,
    description: str,
    tags: Sequence[str],
    upload_type: UploadType,
    company_id: UUID | None,
    limits: UploadLimits,
) -> list[UploadValidationError]:
    errors: list[UploadValidationError] = []

    if not title or not title.strip():
        errors.append(UploadValidationError("title_required", "Title is required", "title"))
    elif len(title.strip()) > limits.max_title_length:
        errors.append(
            UploadValidationError(
                "title_too_long",
                f"Title cannot exceed {limits.max_title_length} characters",
                "title",
            )
        )

    if len(description) > limits.max_description_length:
        errors.append(
            UploadValidationError(
                "description_too_long",
                f"Description cannot exceed {limits.max_description_length} characters",
                "description",
            )
        )

    if len(tags) > limits.max_tags:
        errors.append(
            UploadValidationError(
                "too_many_tags",
                f"Cannot have more than {limits.max_tags} tags",
                "tags",
            )
        )
    if any(not t.strip() for t in tags):
        errors.append(UploadValidationError("empty_tag", "Tags cannot be empty", "tags"))

    if upload_type == UploadType.BROADCAST and company_id is None:
        errors.append(
            UploadValidationError(
                "company_required",
                "Company is required for Broadcast uploads",
                "company_id",
            )
        )
    if upload_type == UploadType.PRIVATE and company_id is not None:
        errors.append(
            UploadValidationError(
                "company_not_allowed",
                "Private uploads should not have a company assigned",
                "company_id",
            )
        )

    return errors


def validate_upload(inp: ReserveUploadInput, limits: UploadLimits) -> list[UploadValidationError]:
    errors = validate_common(
        inp.title, inp.description, inp.tags, inp.upload_type, inp.company_id, limits
    )

    if inp.asset_type == AssetType.CAROUSEL:
        errors.append(
            UploadValidationError(
                "carousel_not_supported",
                "Carousels are reserved through the carousel protocol",
                "asset_type",
            )
        )
    elif inp.asset_type == AssetType.LINK:
        if not inp.url:
            errors.append(
                UploadValidationError("url_required", "URL is required for link assets", "url")
            )
        elif not _is_http_url(inp.url):
            errors.append(
                UploadValidationError("url_invalid", "URL must be an http(s) address", "url")
            )
    else:
        if not inp.file_name or not inp.file_name.strip():
            errors.append(
                UploadValidationError("file_name_required", "File name is required", "file_name")
            )
        if not inp.content_type:
            errors.append(
                UploadValidationError(
                    "content_type_required", "Content type is required", "content_type"
                )
            )

    if inp.file_size is not None and inp.file_size < 0:
        errors.append(
            UploadValidationError("file_size_invalid", "File size cannot be negative", "file_size")
        )

    return errors


def validate_finalize(inp: FinalizeUploadInput) -> list[UploadValidationError]:
    errors: list[UploadValidationError] = []
    if inp.file_size < 0:
        errors.append(
            UploadValidationError("file_size_invalid", "File size cannot be negative", "file_size")
        )
    if inp.content_sha256 is not None and not _SHA256.match(inp.content_sha256):
        errors.append(
            UploadValidationError(
                "content_sha256_invalid",
                "Content hash must be a lowercase hex SHA-256 digest",
                "content_sha256",
            )
        )
    return errors


def validate_carousel_items(
    carousel_id: UUID,
    items: Sequence[CarouselItemInput],
    limits: UploadLimits,
) -> list[UploadValidationError]:
    errors: list[UploadValidationError] = []

    if len(items) < limits.min_carousel_items:
        errors.append(
            UploadValidationError(
                "too_few_items",
                f"Carousel requires at least {limits.min_carousel_items} items",
                "items",
            )
        )
    if len(items) > limits.max_carousel_items:
        errors.append(
            UploadValidationError(
                "too_many_items",
                f"Carousel cannot have more than {limits.max_carousel_items} items",
                "items",
            )
        )

    prefix = f"assets/{carousel_id}/items/"
    seen: set[str] = set()
    for i, item in enumerate(items):
        if not item.mime_type.startswith(limits.carousel_mime_prefixes):
            errors.append(
                UploadValidationError(
                    "item_type_not_allowed",
                    "Only image and video files are allowed in carousels",
                    f"items[{i}].mime_type",
                )
            )
        if not item.storage_locator.startswith(prefix):
            errors.append(
                UploadValidationError(
                    "item_locator_invalid",
                    "Item was not reserved for this carousel",
                    f"items[{i}].storage_locator",
                )
            )
        if item.storage_locator in seen:
            errors.append(
                UploadValidationError(
                    "item_duplicated",
                    "Each item may appear only once",
                    f"items[{i}].storage_locator",
                )
            )
        seen.add(item.storage_locator)
        if item.file_size is not None and item.file_size < 0:
            errors.append(
                UploadValidationError(
                    "file_size_invalid",
                    "File size cannot be negative",
                    f"items[{i}].file_size",
                )
            )

    return errors


def raise_if_invalid(errors: list[UploadValidationError]) -> None:
    if errors:
        first = errors[0]
        raise ValidationFailed(first.field or "", first.message, errors)


# --- Orchestrator ---


class UploadOrchestrator:
    """
    Upload protocols over object storage and the lifecycle controller.

    Stateless; every call is its own unit of work.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWorkPort],
        storage: ObjectStoragePort,
        lifecycle: LifecycleController,
        clock: ClockPort,
        limits: UploadLimits | None = None,
        token_factory: Callable[[], str] = new_attempt_token,
    ) -> None:
        self._uow_factory = uow_factory
        self._storage = storage
        self._lifecycle = lifecycle
        self._clock = clock
        self._limits = limits or UploadLimits()
        self._token_factory = token_factory

    # --- Helpers ---

    def _reserve_step(self, label: str, work: Callable[[UnitOfWorkPort], T]) -> T:
        """Reserve-phase unit of work; any collaborator failure is retryable."""
        try:
            with self._uow_factory() as uow:
                result = work(uow)
                uow.commit()
                return result
        except EngineError:
            raise
        except Exception as e:
            logger.exception("%s failed", label)
            raise StorageUnavailable(f"Could not complete {label}; try again") from e

    def _finalize_step(self, label: str, work: Callable[[UnitOfWorkPort], T]) -> T:
        """Finalize-phase unit of work; never retried here."""
        try:
            with self._uow_factory() as uow:
                result = work(uow)
                uow.commit()
                return result
        except EngineError:
            raise
        except Exception as e:
            logger.exception("%s failed", label)
            raise CommitFailed(f"Could not complete {label}") from e

    def _issue(self, key: str, content_type: str) -> UploadCredential:
        """Request a credential for ``key``, retrying unavailability."""
        attempts = 1 + max(self._limits.credential_retry_attempts, 0)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                credential = self._storage.issue_upload_credential(
                    key, content_type, self._limits.credential_ttl_seconds
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "credential for %s failed (attempt %d/%d): %s", key, attempt, attempts, e
                )
                continue

            if credential.key != key:
                logger.error("storage scoped credential to %r, expected %r", credential.key, key)
                raise StorageUnavailable("Storage issued a credential for a different key")
            return credential

        raise StorageUnavailable("Object storage is unavailable") from last_error

    def _load_owned(self, uow: UnitOfWorkPort, actor: User, asset_id: UUID) -> Asset:
        asset = uow.assets.get_by_id(asset_id)
        if asset is None or asset.uploader_id != actor.id:
            raise asset_not_found()
        return asset

    def _load_replaceable(self, uow: UnitOfWorkPort, actor: User, asset_id: UUID) -> Asset:
        asset = uow.assets.get_by_id(asset_id)
        if asset is None or not (actor.is_admin or asset.uploader_id == actor.id):
            raise asset_not_found()
        if asset.asset_type in (AssetType.LINK, AssetType.CAROUSEL):
            raise InvalidState("This asset has no single stored file to replace")
        return asset

    def _first_missing(self, label: str, keys: Sequence[str]) -> int | None:
        """Index of the first key absent from storage. Call outside a unit of work."""
        try:
            for i, key in enumerate(keys):
                if not self._storage.exists(key):
                    return i
        except Exception as e:
            logger.exception("%s failed", label)
            raise CommitFailed(f"Could not complete {label}") from e
        return None

    def _check_company(self, uow: UnitOfWorkPort, company_id: UUID | None) -> None:
        if company_id is not None and uow.companies.get_by_id(company_id) is None:
            raise NotFound("Company not found")

    def _audit(
        self,
        uow: UnitOfWorkPort,
        actor: User,
        action: AuditAction,
        asset: Asset,
        metadata: dict[str, Any],
    ) -> None:
        AuditRecorder(uow.audit_log, self._clock).record(
            RecordAuditInput(
                action=action,
                resource_type=ResourceType.ASSET,
                resource_id=str(asset.id),
                actor_id=actor.id,
                metadata=metadata,
            )
        )

    # --- Single asset ---

    def reserve_upload(self, actor: User, inp: ReserveUploadInput) -> ReserveUploadOutput:
        """
        Phase 1: create the DRAFT asset and a credential for its key.

        Links have no transfer step; their locator is the URL itself.

        Raises:
            ValidationFailed: bad metadata.
            NotFound: company does not exist.
            StorageUnavailable: storage or database failed; nothing was kept.
        """
        raise_if_invalid(validate_upload(inp, self._limits))

        asset_id = uuid4()
        is_link = inp.asset_type == AssetType.LINK
        if is_link:
            locator = inp.url
        else:
            safe_name = sanitize_file_name(inp.file_name or "", self._limits.max_file_name_length)
            locator = asset_key(asset_id, self._token_factory(), safe_name)
        credential = None if is_link else self._issue(locator or "", inp.content_type or "")

        def work(uow: UnitOfWorkPort) -> ReserveUploadOutput:
            self._check_company(uow, inp.company_id)
            asset = self._lifecycle.create_in(
                uow,
                actor,
                NewAsset(
                    title=inp.title,
                    asset_type=inp.asset_type,
                    upload_type=inp.upload_type,
                    description=inp.description,
                    tags=tuple(t.strip() for t in inp.tags),
                    company_id=inp.company_id,
                    url=inp.url if is_link else None,
                    visibility=inp.visibility,
                    allowed_role=inp.allowed_role,
                    mime_type=inp.content_type,
                    file_size=inp.file_size,
                    storage_locator=locator,
                    submit_for_review=inp.submit_for_review and is_link,
                    asset_id=asset_id,
                ),
            )
            return ReserveUploadOutput(asset=asset, credential=credential)

        out = self._reserve_step("upload reservation", work)
        logger.info(
            "reserved %s upload %s for %s", out.asset.asset_type.value, out.asset.id, actor.id
        )
        if out.asset.status == AssetStatus.PENDING_REVIEW:
            self._lifecycle.notify_submitted(out.asset)
        return out

    def finalize_upload(self, actor: User, inp: FinalizeUploadInput) -> Asset:
        """
        Phase 3: record the transferred file and optionally submit it.

        Raises:
            NotFound: missing or not the caller's upload.
            InvalidState: finalized before with different metadata, or the
                object is not in storage (when verification is on).
            CommitFailed: storage, database or audit failure; nothing was written.
        """
        raise_if_invalid(validate_finalize(inp))

        def load(uow: UnitOfWorkPort) -> Asset:
            asset = self._load_owned(uow, actor, inp.asset_id)
            if asset.asset_type in (AssetType.LINK, AssetType.CAROUSEL):
                raise InvalidState("Links and carousels have no single upload to finalize")
            return asset

        def settled(asset: Asset) -> bool:
            if asset.finalized_at is None:
                return False
            same = asset.file_size == inp.file_size and (
                inp.content_sha256 is None or inp.content_sha256 == asset.content_sha256
            )
            if not same:
                raise InvalidState("Upload was already finalized with different metadata")
            if (
                inp.submit_for_review
                and asset.upload_type == UploadType.BROADCAST
                and asset.status == AssetStatus.DRAFT
            ):
                raise InvalidState("Upload is already finalized; submit it for review instead")
            return True

        current = self._finalize_step("upload finalize", load)
        if settled(current):
            return current

        if (
            self._limits.verify_objects_on_finalize
            and self._first_missing("upload finalize", [current.storage_locator or ""]) is not None
        ):
            raise InvalidState("Uploaded file was not found in storage")

        def work(uow: UnitOfWorkPort) -> tuple[Asset, bool]:
            asset = load(uow)
            if settled(asset):
                return asset, False

            now = self._clock.now_utc()
            updated = asset.model_copy(
                update={
                    "file_size": inp.file_size,
                    "content_sha256": inp.content_sha256,
                    "mime_type": inp.mime_type or asset.mime_type,
                    "finalized_at": now,
                    "updated_at": now,
                }
            )
            saved = uow.assets.update(updated, expected_revision=asset.revision)

            if inp.submit_for_review and asset.upload_type == UploadType.BROADCAST:
                return self._lifecycle.submit_in(uow, actor, asset.id), True

            self._audit(uow, actor, AuditAction.FINALIZE, saved, {"file_size": inp.file_size})
            return saved, False

        try:
            saved, submitted = self._finalize_step("upload finalize", work)
        except Conflict:
            # Lost the revision race; an identical finalize that won counts as done.
            current = self._finalize_step("upload finalize", load)
            if settled(current):
                return current
            raise

        if submitted:
            logger.info("upload %s finalized and submitted", saved.id)
            self._lifecycle.notify_submitted(saved)
        return saved

    # --- Carousel ---

    def reserve_carousel(self, actor: User, inp: ReserveCarouselInput) -> Asset:
        """Create the DRAFT container; it has no storage key of its own yet."""
        raise_if_invalid(
            validate_common(
                inp.title, inp.description, inp.tags, inp.upload_type, inp.company_id, self._limits
            )
        )

        def work(uow: UnitOfWorkPort) -> Asset:
            self._check_company(uow, inp.company_id)
            return self._lifecycle.create_in(
                uow,
                actor,
                NewAsset(
                    title=inp.title,
                    asset_type=AssetType.CAROUSEL,
                    upload_type=inp.upload_type,
                    description=inp.description,
                    tags=tuple(t.strip() for t in inp.tags),
                    company_id=inp.company_id,
                    visibility=inp.visibility,
                    allowed_role=inp.allowed_role,
                ),
            )

        return self._reserve_step("carousel reservation", work)

    def reserve_carousel_item(self, actor: User, inp: ReserveCarouselItemInput) -> ReservedKey:
        """
        Credential for one child file. Writes nothing; children become rows
        only at ``finalize_carousel``.
        """
        if not inp.content_type.startswith(self._limits.carousel_mime_prefixes):
            raise ValidationFailed(
                "content_type", "Only image and video files are allowed in carousels"
            )
        if not inp.file_name.strip():
            raise ValidationFailed("file_name", "File name is required")

        def check(uow: UnitOfWorkPort) -> None:
            carousel = self._load_owned(uow, actor, inp.carousel_id)
            if carousel.asset_type != AssetType.CAROUSEL:
                raise InvalidState("Asset is not a carousel")
            if carousel.status != AssetStatus.DRAFT or carousel.finalized_at is not None:
                raise InvalidState("Carousel has already been finalized")

        self._reserve_step("carousel item reservation", check)
        safe_name = sanitize_file_name(inp.file_name, self._limits.max_file_name_length)
        key = carousel_item_key(inp.carousel_id, self._token_factory(), safe_name)
        return ReservedKey(credential=self._issue(key, inp.content_type), locator=key)

    def finalize_carousel(self, actor: User, inp: FinalizeCarouselInput) -> Asset:
        """
        Write all children and the container in one unit of work.

        Any missing child leaves the container in DRAFT with no items; the
        caller re-uploads that child and calls again.
        """
        raise_if_invalid(validate_carousel_items(inp.carousel_id, inp.items, self._limits))
        wanted = [(i.storage_locator, i.mime_type, i.file_size) for i in inp.items]

        def load(uow: UnitOfWorkPort) -> tuple[Asset, list[CarouselItem]]:
            carousel = self._load_owned(uow, actor, inp.carousel_id)
            if carousel.asset_type != AssetType.CAROUSEL:
                raise InvalidState("Asset is not a carousel")
            return carousel, uow.carousel_items.list_by_carousel(carousel.id)

        def settled(carousel: Asset, items: list[CarouselItem]) -> bool:
            if carousel.finalized_at is None:
                if carousel.status != AssetStatus.DRAFT:
                    raise InvalidState("Carousel is not a draft")
                return False
            stored = [(i.storage_locator, i.mime_type, i.file_size) for i in items]
            if stored != wanted:
                raise InvalidState("Carousel was already finalized with different items")
            if (
                inp.submit_for_review
                and carousel.upload_type == UploadType.BROADCAST
                and carousel.status == AssetStatus.DRAFT
            ):
                raise InvalidState("Carousel is already finalized; submit it for review instead")
            return True

        current, items = self._finalize_step("carousel finalize", load)
        if settled(current, items):
            return current

        missing = self._first_missing(
            "carousel finalize", [item.storage_locator for item in inp.items]
        )
        if missing is not None:
            raise ValidationFailed(
                f"items[{missing}].storage_locator", f"Item {missing + 1} has not been uploaded"
            )

        def work(uow: UnitOfWorkPort) -> tuple[Asset, bool]:
            carousel, stored = load(uow)
            if settled(carousel, stored):
                return carousel, False

            now = self._clock.now_utc()
            rows = [
                CarouselItem(
                    carousel_id=carousel.id,
                    storage_locator=item.storage_locator,
                    file_size=item.file_size,
                    mime_type=item.mime_type,
                    item_type=item_type_for(item.mime_type),
                    position=i,
                    created_at=now,
                )
                for i, item in enumerate(inp.items)
            ]
            uow.carousel_items.replace_all(carousel.id, rows)

            updated = carousel.model_copy(
                update={
                    "storage_locator": rows[0].storage_locator,
                    "mime_type": rows[0].mime_type,
                    "file_size": sum(r.file_size or 0 for r in rows),
                    "finalized_at": now,
                    "updated_at": now,
                }
            )
            saved = uow.assets.update(updated, expected_revision=carousel.revision)

            if inp.submit_for_review and carousel.upload_type == UploadType.BROADCAST:
                return self._lifecycle.submit_in(uow, actor, carousel.id), True

            self._audit(uow, actor, AuditAction.FINALIZE, saved, {"item_count": len(rows)})
            return saved, False

        try:
            saved, submitted = self._finalize_step("carousel finalize", work)
        except Conflict:
            current, items = self._finalize_step("carousel finalize", load)
            if settled(current, items):
                return current
            raise

        if submitted:
            logger.info("carousel %s finalized and submitted", saved.id)
            self._lifecycle.notify_submitted(saved)
        return saved

    def list_carousel_items(self, carousel_id: UUID) -> list[CarouselItem]:
        with self._uow_factory() as uow:
            return uow.carousel_items.list_by_carousel(carousel_id)

    # --- Content versions ---

    def reserve_version(self, actor: User, inp: ReserveVersionInput) -> ReservedKey:
        """
        Credential for replacement bytes; ``finalize_version`` switches the
        asset over once they are uploaded.
        """
        if not inp.content_type:
            raise ValidationFailed("content_type", "Content type is required")

        self._reserve_step(
            "version reservation",
            lambda uow: self._load_replaceable(uow, actor, inp.asset_id),
        )
        safe_name = sanitize_file_name(inp.file_name, self._limits.max_file_name_length)
        key = asset_key(inp.asset_id, self._token_factory(), safe_name)
        return ReservedKey(credential=self._issue(key, inp.content_type), locator=key)

    def finalize_version(self, actor: User, inp: ContentReplacementInput) -> Asset:
        """
        Switch an asset to bytes reserved by ``reserve_version``.

        The object is checked in storage first (when verification is on);
        ``LifecycleController.replace_content`` then records the version.

        Raises:
            NotFound: missing, or neither an administrator nor the uploader.
            InvalidState: the replacement object is not in storage.
            CommitFailed: storage could not be checked.
        """
        self._finalize_step(
            "version finalize",
            lambda uow: self._load_replaceable(uow, actor, inp.asset_id),
        )
        if (
            self._limits.verify_objects_on_finalize
            and inp.storage_locator.startswith(f"assets/{inp.asset_id}/")
            and self._first_missing("version finalize", [inp.storage_locator]) is not None
        ):
            raise InvalidState("Uploaded file was not found in storage")
        return self._lifecycle.replace_content(actor, inp)
