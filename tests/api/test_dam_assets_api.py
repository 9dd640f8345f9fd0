"""
Assets, storage, sharing and audit routes over a real SQLite database.

The app is built without its lifespan; the engine dependency is overridden
with one wired to the test database and a local object store.
"""

from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from dam.adapters.local_storage import LocalPresignedStorage
from dam.adapters.sqlite_db import SQLiteUnitOfWork
from dam.api.auth_utils import create_access_token
from dam.api.deps import build_engine, get_engine
from dam.api.main import create_app

SECRET = "api-test-secret"
PNG = b"\x89PNG\r\n\x1a\n-fake-image-bytes"


# --- Fixtures ---


@pytest.fixture
def storage(tmp_path) -> LocalPresignedStorage:
    return LocalPresignedStorage(tmp_path / "objects", SECRET)


@pytest.fixture
def engine(db_path, rules, storage, clock, directory):
    return build_engine(
        lambda: SQLiteUnitOfWork(db_path), storage, rules, secret_key=SECRET, clock=clock
    )


@pytest.fixture
def client(engine) -> TestClient:
    app = create_app(with_lifespan=False)
    app.dependency_overrides[get_engine] = lambda: engine
    return TestClient(app)


def auth(user) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id)}, secret_key=SECRET)
    return {"Authorization": f"Bearer {token}"}


def presign(client, user, **overrides):
    body = {
        "title": "Spring hero",
        "asset_type": "IMAGE",
        "upload_type": "BROADCAST",
        "file_name": "hero.png",
        "content_type": "image/png",
        "tags": ["spring"],
    }
    body.update(overrides)
    if body["upload_type"] == "BROADCAST":
        body.setdefault("company_id", str(user.company_id))
    response = client.post("/api/assets/presign", json=body, headers=auth(user))
    assert response.status_code == 201, response.text
    return response.json()


def put_bytes(client, url, data=PNG):
    return client.put(url, content=data, headers={"content-type": "image/png"})


def upload_and_submit(client, user, **overrides):
    reserved = presign(client, user, **overrides)
    credential = reserved["credential"]
    put = put_bytes(client, credential["upload_url"])
    assert put.status_code == 200, put.text
    receipt = put.json()

    complete = client.post(
        f"/api/assets/{reserved['asset_id']}/complete",
        json={
            "file_size": receipt["size"],
            "content_sha256": receipt["sha256"],
            "submit_for_review": True,
        },
        headers=auth(user),
    )
    assert complete.status_code == 200, complete.text
    return complete.json()


def approve(client, admin, asset_id, **body):
    return client.post(
        f"/api/assets/{asset_id}/decision",
        json={"action": "APPROVE", **body},
        headers=auth(admin),
    )


# --- Auth ---


class TestAuth:
    def test_health_needs_no_token(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_missing_token_is_401(self, client):
        assert client.get("/api/assets").status_code == 401

    def test_garbage_token_is_401(self, client):
        response = client.get("/api/assets", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_unknown_user_is_401(self, client):
        token = create_access_token({"sub": str(uuid4())}, secret_key=SECRET)
        response = client.get("/api/assets", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_cookie_token_accepted(self, client, directory):
        token = create_access_token({"sub": str(directory.creator.id)}, secret_key=SECRET)
        client.cookies.set("access_token", f"Bearer {token}")
        assert client.get("/api/assets").status_code == 200


# --- Upload protocol ---


class TestUploadProtocol:
    def test_presign_returns_scoped_credential(self, client, directory):
        reserved = presign(client, directory.specialist)

        asset = reserved["asset"]
        credential = reserved["credential"]
        assert asset["status"] == "DRAFT"
        assert asset["storage_locator"] == credential["key"]
        assert credential["key"].startswith(f"assets/{reserved['asset_id']}/")
        assert credential["upload_url"].startswith("/api/storage/upload/")
        assert asset["public_url"] is None

    def test_full_flow_to_public(self, client, directory, storage):
        submitted = upload_and_submit(client, directory.specialist)
        assert submitted["status"] == "PENDING_REVIEW"
        assert submitted["visibility"] is None

        decided = approve(client, directory.admin, submitted["id"])
        assert decided.status_code == 200, decided.text
        body = decided.json()
        assert body["asset"]["status"] == "APPROVED"
        assert body["asset"]["visibility"] == "PUBLIC"
        assert body["approval"]["action"] == "APPROVE"

        seen = client.get(f"/api/assets/{submitted['id']}", headers=auth(directory.outsider))
        assert seen.status_code == 200
        public_url = seen.json()["public_url"]
        assert public_url == f"/api/storage/objects/{submitted['storage_locator']}"

        download = client.get(public_url, headers=auth(directory.outsider))
        assert download.status_code == 200
        assert download.content == PNG
        assert download.headers["content-type"] == "image/png"

    def test_complete_is_idempotent(self, client, directory):
        reserved = presign(client, directory.creator, upload_type="PRIVATE")
        put_bytes(client, reserved["credential"]["upload_url"])
        url = f"/api/assets/{reserved['asset_id']}/complete"
        body = {"file_size": len(PNG)}

        first = client.post(url, json=body, headers=auth(directory.creator))
        second = client.post(url, json=body, headers=auth(directory.creator))

        assert first.status_code == second.status_code == 200
        assert first.json()["revision"] == second.json()["revision"]

    def test_complete_with_different_size_conflicts(self, client, directory):
        reserved = presign(client, directory.creator, upload_type="PRIVATE")
        put_bytes(client, reserved["credential"]["upload_url"])
        url = f"/api/assets/{reserved['asset_id']}/complete"
        client.post(url, json={"file_size": len(PNG)}, headers=auth(directory.creator))

        response = client.post(url, json={"file_size": 1}, headers=auth(directory.creator))

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_complete_before_transfer_is_rejected(self, client, directory):
        reserved = presign(client, directory.creator)

        response = client.post(
            f"/api/assets/{reserved['asset_id']}/complete",
            json={"file_size": 10},
            headers=auth(directory.creator),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_replace_content_before_transfer_is_rejected(self, client, directory):
        reserved = presign(client, directory.creator, upload_type="PRIVATE")
        put_bytes(client, reserved["credential"]["upload_url"])
        asset_id = reserved["asset_id"]
        client.post(
            f"/api/assets/{asset_id}/complete",
            json={"file_size": len(PNG)},
            headers=auth(directory.creator),
        )
        version = client.post(
            f"/api/assets/{asset_id}/versions/presign",
            json={"file_name": "hero-v2.png", "content_type": "image/png"},
            headers=auth(directory.creator),
        )
        assert version.status_code == 200, version.text
        locator = version.json()["locator"]
        url = f"/api/assets/{asset_id}/content"
        body = {"storage_locator": locator, "file_size": len(PNG)}

        early = client.put(url, json=body, headers=auth(directory.creator))
        assert early.status_code == 409
        assert early.json()["code"] == "invalid_state"

        put_bytes(client, version.json()["credential"]["upload_url"])
        replaced = client.put(url, json=body, headers=auth(directory.creator))
        assert replaced.status_code == 200, replaced.text
        assert replaced.json()["storage_locator"] == locator

    def test_invalid_metadata_is_422_with_field(self, client, directory):
        response = client.post(
            "/api/assets/presign",
            json={
                "title": "   ",
                "asset_type": "IMAGE",
                "upload_type": "BROADCAST",
                "file_name": "a.png",
                "content_type": "image/png",
            },
            headers=auth(directory.creator),
        )

        assert response.status_code == 422
        assert response.json()["code"] == "validation_failed"
        assert response.json()["field"] == "title"

    def test_link_needs_no_credential(self, client, directory):
        reserved = presign(
            client,
            directory.creator,
            asset_type="LINK",
            file_name=None,
            content_type=None,
            url="https://example.com/campaign",
        )

        assert reserved["credential"] is None
        assert reserved["asset"]["public_url"] == "https://example.com/campaign"


class TestStorageRoutes:
    def test_second_put_to_same_key_conflicts(self, client, directory):
        reserved = presign(client, directory.creator)
        url = reserved["credential"]["upload_url"]

        assert put_bytes(client, url).status_code == 200
        assert put_bytes(client, url, b"other").status_code == 409

    def test_tampered_token_is_forbidden(self, client, directory):
        reserved = presign(client, directory.creator)
        url = reserved["credential"]["upload_url"] + "x"

        response = put_bytes(client, url)

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_wrong_content_type_is_rejected(self, client, directory):
        reserved = presign(client, directory.creator)

        response = client.put(
            reserved["credential"]["upload_url"],
            content=PNG,
            headers={"content-type": "application/pdf"},
        )

        assert response.status_code == 422

    def test_invisible_object_is_404(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = client.get(
            f"/api/storage/objects/{submitted['storage_locator']}",
            headers=auth(directory.outsider),
        )

        assert response.status_code == 404


# --- Review ---


class TestReview:
    def test_non_admin_who_can_see_gets_403(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = approve(client, directory.creator, submitted["id"])

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_non_admin_who_cannot_see_gets_404(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = approve(client, directory.outsider, submitted["id"])

        assert response.status_code == 404

    def test_reject_requires_reason(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = client.post(
            f"/api/assets/{submitted['id']}/decision",
            json={"action": "REJECT", "reason": "  "},
            headers=auth(directory.admin),
        )

        assert response.status_code == 422
        assert response.json()["field"] == "reason"

    def test_second_decision_is_409(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)
        assert approve(client, directory.admin, submitted["id"]).status_code == 200

        response = approve(client, directory.admin, submitted["id"])

        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    def test_approve_with_company_visibility(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = approve(client, directory.admin, submitted["id"], visibility="COMPANY")

        assert response.json()["asset"]["visibility"] == "COMPANY"
        colleague = client.get(
            f"/api/assets/{submitted['id']}", headers=auth(directory.specialist)
        )
        stranger = client.get(f"/api/assets/{submitted['id']}", headers=auth(directory.outsider))
        assert colleague.status_code == 200
        assert stranger.status_code == 404

    def test_history_lists_decisions(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)
        approve(client, directory.admin, submitted["id"])

        response = client.get(
            f"/api/assets/{submitted['id']}/history", headers=auth(directory.creator)
        )

        assert response.status_code == 200
        assert [a["action"] for a in response.json()["approvals"]] == ["APPROVE"]

    def test_mark_broken_is_admin_only(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)
        url = f"/api/assets/{submitted['id']}/mark-broken"

        assert client.post(url, headers=auth(directory.creator)).status_code == 403
        response = client.post(url, headers=auth(directory.admin))

        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"
        assert response.json()["failure_reason"] == "INTEGRITY_FAILURE"

    def test_broken_asset_cannot_be_decided(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)
        client.post(f"/api/assets/{submitted['id']}/mark-broken", headers=auth(directory.admin))

        response = approve(client, directory.admin, submitted["id"])

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"


# --- Listing & permissions ---


class TestListingAndPermissions:
    def test_list_only_returns_visible(self, client, directory):
        mine = upload_and_submit(client, directory.creator)
        theirs = upload_and_submit(client, directory.outsider)

        response = client.get("/api/assets", headers=auth(directory.creator))

        ids = {a["id"] for a in response.json()["items"]}
        assert mine["id"] in ids
        assert theirs["id"] not in ids
        assert response.json()["total"] == 1

    def test_list_filters_by_tag(self, client, directory):
        spring = upload_and_submit(client, directory.creator)
        upload_and_submit(client, directory.creator, tags=["autumn"])

        response = client.get("/api/assets?tag=spring", headers=auth(directory.creator))

        assert [a["id"] for a in response.json()["items"]] == [spring["id"]]

    def test_permission_summary(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = client.get(
            f"/api/assets/{submitted['id']}/permissions", headers=auth(directory.creator)
        )

        body = response.json()
        assert body["can_view"] is True
        assert body["can_edit"] is True
        assert body["can_approve"] is False

    def test_single_permission_check(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)
        base = f"/api/assets/{submitted['id']}/permissions"

        approve_check = client.get(f"{base}/approve", headers=auth(directory.admin))
        view_check = client.get(f"{base}/view", headers=auth(directory.outsider))

        assert approve_check.json() == {"action": "approve", "allowed": True}
        assert view_check.json() == {"action": "view", "allowed": False}

    def test_unknown_action_is_rejected(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = client.get(
            f"/api/assets/{submitted['id']}/permissions/publish", headers=auth(directory.admin)
        )

        assert response.status_code == 422


# --- Sharing ---


class TestSharing:
    def test_share_and_revoke(self, client, directory):
        reserved = presign(client, directory.creator, upload_type="PRIVATE")
        asset_id = reserved["asset_id"]
        put_bytes(client, reserved["credential"]["upload_url"])
        client.post(
            f"/api/assets/{asset_id}/complete",
            json={"file_size": len(PNG)},
            headers=auth(directory.creator),
        )
        client.put(
            f"/api/assets/{asset_id}/visibility",
            json={"visibility": "SELECTED_USERS"},
            headers=auth(directory.creator),
        )

        shared = client.post(
            f"/api/assets/{asset_id}/shares",
            json={"user_ids": [str(directory.specialist.id)]},
            headers=auth(directory.creator),
        )
        assert shared.status_code == 201
        assert [s["target_id"] for s in shared.json()] == [str(directory.specialist.id)]
        assert (
            client.get(f"/api/assets/{asset_id}", headers=auth(directory.specialist)).status_code
            == 200
        )

        revoked = client.delete(
            f"/api/assets/{asset_id}/shares/USER/{directory.specialist.id}",
            headers=auth(directory.creator),
        )
        assert revoked.status_code == 200
        assert revoked.json() == []
        assert (
            client.get(f"/api/assets/{asset_id}", headers=auth(directory.specialist)).status_code
            == 404
        )

    def test_share_without_targets_is_422(self, client, directory):
        reserved = presign(client, directory.creator, upload_type="PRIVATE")

        response = client.post(
            f"/api/assets/{reserved['asset_id']}/shares",
            json={},
            headers=auth(directory.creator),
        )

        assert response.status_code == 422
        assert response.json()["field"] == "user_ids"


# --- Audit ---


class TestAuditRoutes:
    def test_audit_is_admin_only(self, client, directory):
        response = client.get("/api/audit", headers=auth(directory.creator))
        assert response.status_code == 403

    def test_admin_can_query_and_read(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)

        response = client.get(
            f"/api/audit?resource_id={submitted['id']}", headers=auth(directory.admin)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert {e["action"] for e in body["items"]} == {"CREATE", "SUBMIT"}
        assert body["limit"] == 50

        entry_id = body["items"][0]["id"]
        single = client.get(f"/api/audit/{entry_id}", headers=auth(directory.admin))
        assert single.status_code == 200
        assert single.json()["resource_id"] == submitted["id"]

    def test_page_size_is_capped(self, client, directory):
        response = client.get("/api/audit?limit=10000", headers=auth(directory.admin))
        assert response.json()["limit"] == 500

    def test_missing_entry_is_404(self, client, directory):
        response = client.get(f"/api/audit/{uuid4()}", headers=auth(directory.admin))
        assert response.status_code == 404

    def test_delete_is_refused(self, client, directory):
        submitted = upload_and_submit(client, directory.creator)
        listing = client.get(
            f"/api/audit?resource_id={submitted['id']}", headers=auth(directory.admin)
        )
        entry_id = listing.json()["items"][0]["id"]

        response = client.delete(f"/api/audit/{entry_id}", headers=auth(directory.admin))

        assert response.status_code == 403
        assert response.json()["code"] == "immutability_violation"
        still_there = client.get(f"/api/audit/{entry_id}", headers=auth(directory.admin))
        assert still_there.status_code == 200
