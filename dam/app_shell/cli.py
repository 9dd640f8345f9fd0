"""
Operator CLI.

    python -m dam.app_shell.cli migrate
    python -m dam.app_shell.cli create-company "Acme"
    python -m dam.app_shell.cli create-admin admin@acme.test "Ada Admin"
    python -m dam.app_shell.cli verify-storage --dry-run
"""

import argparse
import logging
import sys
from datetime import timedelta

from dam.adapters.sqlite.migrator import SQLiteMigrator
from dam.api.auth_utils import create_access_token
from dam.api.deps import Engine, Settings, sqlite_engine
from dam.components.lifecycle import VisibilityChangeInput
from dam.domain.entities import (
    AssetStatus,
    AssetType,
    Company,
    Role,
    User,
    VisibilityLevel,
)
from dam.domain.errors import EngineError
from dam.rules.loader import load_rules

logger = logging.getLogger("dam.cli")


def get_engine(settings: Settings) -> Engine:
    if not settings.rules_path.exists():
        logger.error("Rules file %s not found.", settings.rules_path)
        sys.exit(1)
    return sqlite_engine(settings, load_rules(settings.rules_path))


def _find_company(engine: Engine, name: str | None) -> Company | None:
    if name is None:
        return None
    with engine.uow_factory() as uow:
        company = uow.companies.get_by_name(name)
    if company is None:
        logger.error("Company %r not found.", name)
        sys.exit(1)
    return company


def _find_user(engine: Engine, email: str) -> User:
    with engine.uow_factory() as uow:
        user = uow.users.get_by_email(email)
    if user is None:
        logger.error("User %s not found.", email)
        sys.exit(1)
    return user


# --- Handlers ---


def handle_migrate(settings: Settings, args: argparse.Namespace) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    applied = SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
    print(f"Applied {len(applied)} migration(s).")


def handle_create_company(engine: Engine, args: argparse.Namespace) -> None:
    with engine.uow_factory() as uow:
        company = uow.companies.save(Company(name=args.name))
        uow.commit()
    print(f"Company created: {company.name} ({company.id})")


def handle_create_user(engine: Engine, args: argparse.Namespace, role: Role) -> None:
    company = _find_company(engine, args.company)
    user = User(
        email=args.email,
        name=args.name,
        role=role,
        company_id=company.id if company else None,
    )
    with engine.uow_factory() as uow:
        if uow.users.get_by_email(args.email) is not None:
            logger.error("User %s already exists.", args.email)
            sys.exit(1)
        uow.users.save(user)
        uow.commit()
    print(f"User created: {user.email} [{user.role.value}] ({user.id})")


def handle_issue_token(engine: Engine, args: argparse.Namespace) -> None:
    user = _find_user(engine, args.email)
    token = create_access_token(
        {"sub": str(user.id)},
        expires_delta=timedelta(hours=args.hours),
        secret_key=engine.secret_key,
    )
    print(token)


def handle_verify_storage(engine: Engine, args: argparse.Namespace) -> None:
    """Mark finalized assets whose bytes are missing as broken."""
    checked = broken = 0
    with engine.uow_factory() as uow:
        candidates = [
            a
            for status in (AssetStatus.DRAFT, AssetStatus.PENDING_REVIEW, AssetStatus.APPROVED)
            for a in uow.assets.list_by_status(status)
            if a.finalized_at is not None and a.asset_type != AssetType.LINK
        ]
        items_by_carousel = {
            a.id: uow.carousel_items.list_by_carousel(a.id)
            for a in candidates
            if a.asset_type == AssetType.CAROUSEL
        }

    for asset in candidates:
        checked += 1
        if asset.asset_type == AssetType.CAROUSEL:
            missing = [
                i.storage_locator
                for i in items_by_carousel.get(asset.id, [])
                if not engine.storage.exists(i.storage_locator)
            ]
        elif asset.storage_locator:
            exists = engine.storage.exists(asset.storage_locator)
            missing = [] if exists else [asset.storage_locator]
        else:
            missing = ["<no locator>"]

        if not missing:
            continue
        broken += 1
        print(f"Missing object(s) for asset {asset.id}: {', '.join(missing)}")
        if not args.dry_run:
            engine.lifecycle.mark_integrity_failure(None, asset.id)

    verb = "would be marked" if args.dry_run else "marked"
    print(f"Checked {checked} asset(s); {broken} {verb} as broken.")


def handle_default_visibility(engine: Engine, args: argparse.Namespace) -> None:
    """Give APPROVED assets with no visibility the PUBLIC default."""
    admin = _find_user(engine, args.admin_email)
    if not admin.is_admin:
        logger.error("%s is not an administrator.", args.admin_email)
        sys.exit(1)

    with engine.uow_factory() as uow:
        approved = uow.assets.list_by_status(AssetStatus.APPROVED)
    targets = [a for a in approved if a.visibility is None]

    for asset in targets:
        engine.lifecycle.change_visibility(
            admin, VisibilityChangeInput(asset_id=asset.id, visibility=VisibilityLevel.PUBLIC)
        )
    print(f"Updated {len(targets)} approved asset(s) to PUBLIC.")


# --- Entry point ---


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DAM asset engine CLI")
    parser.add_argument("--data-dir", help="Data directory (default: $DAM_DATA_DIR or ./data)")
    parser.add_argument("--rules", help="Rules file (default: $DAM_RULES_PATH or ./rules.yaml)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("migrate", help="Apply pending database migrations")

    company_parser = subparsers.add_parser("create-company", help="Create a company")
    company_parser.add_argument("name")

    admin_parser = subparsers.add_parser("create-admin", help="Create an administrator")
    admin_parser.add_argument("email")
    admin_parser.add_argument("name")
    admin_parser.add_argument("--company", help="Company name")

    user_parser = subparsers.add_parser("create-user", help="Create a non-admin user")
    user_parser.add_argument("email")
    user_parser.add_argument("name")
    user_parser.add_argument(
        "--role",
        choices=[Role.CONTENT_CREATOR.value, Role.SEO_SPECIALIST.value],
        default=Role.CONTENT_CREATOR.value,
    )
    user_parser.add_argument("--company", help="Company name")

    token_parser = subparsers.add_parser("issue-token", help="Print a bearer token for a user")
    token_parser.add_argument("email")
    token_parser.add_argument("--hours", type=int, default=24)

    verify_parser = subparsers.add_parser(
        "verify-storage", help="Mark assets whose stored bytes are missing as broken"
    )
    verify_parser.add_argument("--dry-run", action="store_true")

    default_parser = subparsers.add_parser(
        "default-approved-visibility",
        help="Set PUBLIC visibility on approved assets that have none",
    )
    default_parser.add_argument("--admin-email", required=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    settings = Settings(data_dir=args.data_dir, rules_path=args.rules)

    if args.command == "migrate":
        handle_migrate(settings, args)
        return 0

    engine = get_engine(settings)
    try:
        if args.command == "create-company":
            handle_create_company(engine, args)
        elif args.command == "create-admin":
            handle_create_user(engine, args, Role.ADMIN)
        elif args.command == "create-user":
            handle_create_user(engine, args, Role(args.role))
        elif args.command == "issue-token":
            handle_issue_token(engine, args)
        elif args.command == "verify-storage":
            handle_verify_storage(engine, args)
        elif args.command == "default-approved-visibility":
            handle_default_visibility(engine, args)
    except EngineError as e:
        logger.error("%s: %s", e.code, e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
