"""
Sharing component unit tests.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from dam.adapters.dev_notifier import DevNotifier
from dam.adapters.memory import InMemoryStore, InMemoryUnitOfWork
from dam.components.sharing import (
    ListSharesInput,
    RevokeShareInput,
    ShareAssetInput,
    ShareService,
)
from dam.components.visibility import can_view
from dam.domain.entities import (
    Asset,
    AssetStatus,
    AssetType,
    AuditAction,
    Role,
    ShareTargetType,
    UploadType,
    User,
    VisibilityLevel,
)
from dam.domain.errors import Forbidden, NotFound, ValidationFailed
from dam.ports.notifier import NotificationType


class MockTimePort:
    def __init__(self, fixed_time: datetime | None = None) -> None:
        self._time = fixed_time or datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self._time


# --- Fixtures ---


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def notifier() -> DevNotifier:
    return DevNotifier()


@pytest.fixture
def service(store: InMemoryStore, notifier: DevNotifier) -> ShareService:
    return ShareService(lambda: InMemoryUnitOfWork(store), MockTimePort(), notifier)


def _user(store: InMemoryStore, name: str, role: Role = Role.CONTENT_CREATOR) -> User:
    u = User(email=f"{name}@example.com", name=name.title(), role=role)
    store.users[u.id] = u
    return u


@pytest.fixture
def owner(store: InMemoryStore) -> User:
    return _user(store, "owner")


@pytest.fixture
def friend(store: InMemoryStore) -> User:
    return _user(store, "friend")


@pytest.fixture
def stranger(store: InMemoryStore) -> User:
    return _user(store, "stranger", Role.SEO_SPECIALIST)


@pytest.fixture
def asset(store: InMemoryStore, owner: User) -> Asset:
    a = Asset(
        title="Private deck",
        asset_type=AssetType.DOCUMENT,
        upload_type=UploadType.PRIVATE,
        status=AssetStatus.DRAFT,
        visibility=VisibilityLevel.SELECTED_USERS,
        uploader_id=owner.id,
        storage_locator="assets/x/deck.pdf",
    )
    store.assets[a.id] = a
    return a


# --- Tests ---


class TestShare:
    def test_share_with_user_grants_view(
        self,
        service: ShareService,
        store: InMemoryStore,
        owner: User,
        friend: User,
        asset: Asset,
    ) -> None:
        assert not can_view(friend, asset, shares=InMemoryUnitOfWork(store).shares)

        out = service.share(ShareAssetInput(actor=owner, asset_id=asset.id, user_ids=(friend.id,)))

        assert len(out.shares) == 1
        assert out.shares[0].target_type == ShareTargetType.USER
        assert out.shares[0].target_id == str(friend.id)
        assert can_view(friend, asset, shares=InMemoryUnitOfWork(store).shares)

    def test_share_records_audit_and_notifies(
        self,
        service: ShareService,
        store: InMemoryStore,
        notifier: DevNotifier,
        owner: User,
        friend: User,
        asset: Asset,
    ) -> None:
        service.share(
            ShareAssetInput(
                actor=owner,
                asset_id=asset.id,
                user_ids=(friend.id,),
                roles=(Role.SEO_SPECIALIST,),
            )
        )

        assert [e.action for e in store.audit] == [AuditAction.SHARE]
        assert store.audit[0].metadata == {
            "users": [str(friend.id)],
            "roles": ["SEO_SPECIALIST"],
        }
        sent = notifier.of_kind(NotificationType.ASSET_SHARED)
        assert len(sent) == 1
        assert sent[0].recipient_ids == [friend.id]

    def test_sharing_twice_keeps_one_share(
        self, service: ShareService, owner: User, friend: User, asset: Asset
    ) -> None:
        inp = ShareAssetInput(actor=owner, asset_id=asset.id, user_ids=(friend.id,))
        service.share(inp)
        service.share(inp)

        out = service.list(ListSharesInput(actor=owner, asset_id=asset.id))
        assert len(out.shares) == 1

    def test_cannot_share_with_self(
        self, service: ShareService, owner: User, asset: Asset
    ) -> None:
        with pytest.raises(ValidationFailed) as exc:
            service.share(ShareAssetInput(actor=owner, asset_id=asset.id, user_ids=(owner.id,)))
        assert exc.value.field == "user_ids"

    def test_empty_share_rejected(self, service: ShareService, owner: User, asset: Asset) -> None:
        with pytest.raises(ValidationFailed):
            service.share(ShareAssetInput(actor=owner, asset_id=asset.id))

    def test_unknown_user_rejected(
        self, service: ShareService, store: InMemoryStore, owner: User, asset: Asset
    ) -> None:
        with pytest.raises(NotFound):
            service.share(ShareAssetInput(actor=owner, asset_id=asset.id, user_ids=(uuid4(),)))
        assert store.shares == {}
        assert store.audit == []

    def test_non_viewer_gets_not_found(
        self, service: ShareService, stranger: User, friend: User, asset: Asset
    ) -> None:
        with pytest.raises(NotFound):
            service.share(ShareAssetInput(actor=stranger, asset_id=asset.id, user_ids=(friend.id,)))

    def test_viewer_without_ownership_gets_forbidden(
        self,
        service: ShareService,
        owner: User,
        friend: User,
        stranger: User,
        asset: Asset,
    ) -> None:
        service.share(ShareAssetInput(actor=owner, asset_id=asset.id, user_ids=(friend.id,)))

        with pytest.raises(Forbidden):
            service.share(
                ShareAssetInput(actor=friend, asset_id=asset.id, user_ids=(stranger.id,))
            )

    def test_admin_can_share_any_asset(
        self, service: ShareService, store: InMemoryStore, friend: User, asset: Asset
    ) -> None:
        admin = _user(store, "admin", Role.ADMIN)
        out = service.share(ShareAssetInput(actor=admin, asset_id=asset.id, user_ids=(friend.id,)))
        assert out.shares[0].shared_by_id == admin.id


class TestRevoke:
    def test_revoke_removes_access(
        self,
        service: ShareService,
        store: InMemoryStore,
        owner: User,
        friend: User,
        asset: Asset,
    ) -> None:
        service.share(ShareAssetInput(actor=owner, asset_id=asset.id, user_ids=(friend.id,)))

        out = service.revoke(
            RevokeShareInput(
                actor=owner,
                asset_id=asset.id,
                target_type=ShareTargetType.USER,
                target_id=str(friend.id),
            )
        )

        assert out.shares == ()
        assert not can_view(friend, asset, shares=InMemoryUnitOfWork(store).shares)
        assert [e.action for e in store.audit] == [AuditAction.SHARE, AuditAction.REVOKE_SHARE]

    def test_revoke_missing_share(
        self, service: ShareService, owner: User, friend: User, asset: Asset
    ) -> None:
        with pytest.raises(NotFound, match="Share not found"):
            service.revoke(
                RevokeShareInput(
                    actor=owner,
                    asset_id=asset.id,
                    target_type=ShareTargetType.USER,
                    target_id=str(friend.id),
                )
            )

    def test_role_share_revoked(
        self,
        service: ShareService,
        store: InMemoryStore,
        owner: User,
        stranger: User,
        asset: Asset,
    ) -> None:
        role_asset = asset.model_copy(update={"visibility": VisibilityLevel.ROLE})
        store.assets[asset.id] = role_asset
        service.share(
            ShareAssetInput(actor=owner, asset_id=asset.id, roles=(Role.SEO_SPECIALIST,))
        )
        assert can_view(stranger, role_asset, shares=InMemoryUnitOfWork(store).shares)

        service.revoke(
            RevokeShareInput(
                actor=owner,
                asset_id=asset.id,
                target_type=ShareTargetType.ROLE,
                target_id="SEO_SPECIALIST",
            )
        )
        assert not can_view(stranger, role_asset, shares=InMemoryUnitOfWork(store).shares)


class TestList:
    def test_list_requires_management_rights(
        self,
        service: ShareService,
        owner: User,
        friend: User,
        asset: Asset,
    ) -> None:
        service.share(ShareAssetInput(actor=owner, asset_id=asset.id, user_ids=(friend.id,)))

        assert len(service.list(ListSharesInput(actor=owner, asset_id=asset.id)).shares) == 1
        with pytest.raises(Forbidden):
            service.list(ListSharesInput(actor=friend, asset_id=asset.id))
