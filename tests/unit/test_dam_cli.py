"""
Operator CLI tests against a temporary data directory.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from dam.adapters.sqlite_db import SQLiteAssetRepo, SQLiteUnitOfWork
from dam.api.auth_utils import decode_access_token
from dam.app_shell.cli import main
from dam.domain.entities import (
    Asset,
    AssetStatus,
    AssetType,
    FailureReason,
    Role,
    UploadType,
    VisibilityLevel,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent
SECRET = "cli-secret"
FINALIZED = datetime(2025, 2, 1, 8, 0, tzinfo=UTC)


@pytest.fixture
def data_dir(tmp_path, monkeypatch) -> Path:
    monkeypatch.setenv("DAM_MIGRATIONS_DIR", str(PROJECT_ROOT / "migrations"))
    monkeypatch.setenv("DAM_SECRET_KEY", SECRET)
    return tmp_path / "data"


def run(data_dir: Path, *args: str) -> int:
    return main(["--data-dir", str(data_dir), "--rules", str(PROJECT_ROOT / "rules.yaml"), *args])


@pytest.fixture
def seeded(data_dir, capsys):
    assert run(data_dir, "migrate") == 0
    assert run(data_dir, "create-company", "Acme") == 0
    assert run(data_dir, "create-admin", "admin@acme.test", "Ada", "--company", "Acme") == 0
    assert (
        run(
            data_dir,
            "create-user",
            "sam@acme.test",
            "Sam",
            "--role",
            "SEO_SPECIALIST",
            "--company",
            "Acme",
        )
        == 0
    )
    capsys.readouterr()
    return data_dir


def db_path(data_dir: Path) -> str:
    return str(data_dir / "dam.db")


def get_user(data_dir: Path, email: str):
    with SQLiteUnitOfWork(db_path(data_dir)) as uow:
        user = uow.users.get_by_email(email)
    assert user is not None
    return user


def insert_asset(data_dir: Path, uploader, **overrides) -> Asset:
    fields = {
        "title": "Hero",
        "asset_type": AssetType.IMAGE,
        "upload_type": UploadType.BROADCAST,
        "uploader_id": uploader.id,
        "company_id": uploader.company_id,
        "storage_locator": "assets/0000/missing-hero.png",
        "finalized_at": FINALIZED,
    }
    fields.update(overrides)
    return SQLiteAssetRepo(db_path(data_dir)).insert(Asset(**fields))


class TestMigrateAndUsers:
    def test_migrate_reports_count(self, data_dir, capsys):
        assert run(data_dir, "migrate") == 0
        assert "Applied 2 migration(s)." in capsys.readouterr().out

        assert run(data_dir, "migrate") == 0
        assert "Applied 0 migration(s)." in capsys.readouterr().out

    def test_created_users_have_roles_and_company(self, seeded):
        admin = get_user(seeded, "admin@acme.test")
        sam = get_user(seeded, "sam@acme.test")

        assert admin.role == Role.ADMIN
        assert sam.role == Role.SEO_SPECIALIST
        assert sam.company_id == admin.company_id is not None

    def test_duplicate_user_exits(self, seeded):
        with pytest.raises(SystemExit) as exc:
            run(seeded, "create-user", "SAM@acme.test", "Sam Again")
        assert exc.value.code == 1

    def test_unknown_company_exits(self, seeded):
        with pytest.raises(SystemExit):
            run(seeded, "create-user", "new@acme.test", "New", "--company", "Initech")

    def test_duplicate_company_returns_error(self, seeded):
        assert run(seeded, "create-company", "Acme") == 1

    def test_issue_token_for_user(self, seeded, capsys):
        assert run(seeded, "issue-token", "sam@acme.test", "--hours", "1") == 0

        token = capsys.readouterr().out.strip()
        payload = decode_access_token(token, SECRET)
        assert payload is not None
        assert payload["sub"] == str(get_user(seeded, "sam@acme.test").id)


class TestVerifyStorage:
    def test_dry_run_changes_nothing(self, seeded, capsys):
        sam = get_user(seeded, "sam@acme.test")
        asset = insert_asset(seeded, sam, status=AssetStatus.PENDING_REVIEW)

        assert run(seeded, "verify-storage", "--dry-run") == 0

        out = capsys.readouterr().out
        assert str(asset.id) in out
        assert "1 would be marked as broken" in out
        stored = SQLiteAssetRepo(db_path(seeded)).get_by_id(asset.id)
        assert stored is not None
        assert stored.status == AssetStatus.PENDING_REVIEW

    def test_missing_bytes_mark_asset_broken(self, seeded, capsys):
        sam = get_user(seeded, "sam@acme.test")
        missing = insert_asset(seeded, sam, status=AssetStatus.APPROVED)
        present = insert_asset(
            seeded, sam, status=AssetStatus.APPROVED, storage_locator="assets/0000/ok.png"
        )
        path = seeded / "objects" / "assets" / "0000" / "ok.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"ok")

        assert run(seeded, "verify-storage") == 0

        repo = SQLiteAssetRepo(db_path(seeded))
        broken = repo.get_by_id(missing.id)
        intact = repo.get_by_id(present.id)
        assert broken is not None and intact is not None
        assert broken.status == AssetStatus.REJECTED
        assert broken.failure_reason == FailureReason.INTEGRITY_FAILURE
        assert intact.status == AssetStatus.APPROVED
        assert "Checked 2 asset(s); 1 marked as broken." in capsys.readouterr().out

    def test_links_and_unfinalized_uploads_are_skipped(self, seeded, capsys):
        sam = get_user(seeded, "sam@acme.test")
        insert_asset(seeded, sam, finalized_at=None)
        insert_asset(
            seeded,
            sam,
            asset_type=AssetType.LINK,
            url="https://example.com",
            storage_locator="https://example.com",
        )

        assert run(seeded, "verify-storage") == 0
        assert "Checked 0 asset(s)" in capsys.readouterr().out


class TestDefaultApprovedVisibility:
    def test_sets_public_on_unset_approved_assets(self, seeded, capsys):
        sam = get_user(seeded, "sam@acme.test")
        unset = insert_asset(seeded, sam, status=AssetStatus.APPROVED)
        chosen = insert_asset(
            seeded,
            sam,
            status=AssetStatus.APPROVED,
            visibility=VisibilityLevel.COMPANY,
            visibility_explicit=True,
        )

        assert run(seeded, "default-approved-visibility", "--admin-email", "admin@acme.test") == 0

        repo = SQLiteAssetRepo(db_path(seeded))
        updated = repo.get_by_id(unset.id)
        untouched = repo.get_by_id(chosen.id)
        assert updated is not None and untouched is not None
        assert updated.visibility == VisibilityLevel.PUBLIC
        assert untouched.visibility == VisibilityLevel.COMPANY
        assert "Updated 1 approved asset(s) to PUBLIC." in capsys.readouterr().out

    def test_requires_admin(self, seeded):
        with pytest.raises(SystemExit):
            run(seeded, "default-approved-visibility", "--admin-email", "sam@acme.test")
