import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dam.adapters.clock import SystemClock
from dam.adapters.dev_notifier import DevNotifier
from dam.adapters.local_storage import LocalPresignedStorage
from dam.adapters.sqlite_db import SQLiteUnitOfWork
from dam.api.auth_utils import decode_access_token

# Components are stateless, so services are built once per engine and
# handed to routes through dependencies.
from dam.components.lifecycle import LifecycleController
from dam.components.sharing import ShareService
from dam.components.uploads import UploadOrchestrator
from dam.components.visibility import TeamMembershipPort, VisibilityService
from dam.domain.entities import User
from dam.ports.clock import ClockPort
from dam.ports.notifier import NotifierPort
from dam.ports.repo import UnitOfWorkPort
from dam.ports.storage import ObjectStoragePort
from dam.rules.loader import load_rules
from dam.rules.models import Rules

logger = logging.getLogger(__name__)


# --- Settings ---
class Settings:
    def __init__(
        self,
        data_dir: str | Path | None = None,
        rules_path: str | Path | None = None,
    ) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(data_dir or os.environ.get("DAM_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "dam.db")
        self.objects_dir = self.data_dir / "objects"
        self.rules_path = Path(
            rules_path or os.environ.get("DAM_RULES_PATH", self.base_dir / "rules.yaml")
        )
        self.migrations_dir = Path(
            os.environ.get("DAM_MIGRATIONS_DIR", self.base_dir / "migrations")
        )
        self.secret_key = os.environ.get("DAM_SECRET_KEY", "dev-secret-unsafe")
        self.log_level = os.environ.get("DAM_LOG_LEVEL", "INFO").upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


# --- Engine ---
@dataclass
class Engine:
    """Everything a request needs, wired once."""

    uow_factory: Callable[[], UnitOfWorkPort]
    storage: ObjectStoragePort
    clock: ClockPort
    rules: Rules
    visibility: VisibilityService
    lifecycle: LifecycleController
    uploads: UploadOrchestrator
    sharing: ShareService
    secret_key: str


def build_engine(
    uow_factory: Callable[[], UnitOfWorkPort],
    storage: ObjectStoragePort,
    rules: Rules,
    *,
    secret_key: str,
    clock: ClockPort | None = None,
    notifier: NotifierPort | None = None,
    teams: TeamMembershipPort | None = None,
) -> Engine:
    clock = clock or SystemClock()
    notifier = notifier or DevNotifier()
    lifecycle = LifecycleController(uow_factory, clock, notifier, teams)
    return Engine(
        uow_factory=uow_factory,
        storage=storage,
        clock=clock,
        rules=rules,
        visibility=VisibilityService(uow_factory, teams),
        lifecycle=lifecycle,
        uploads=UploadOrchestrator(
            uow_factory, storage, lifecycle, clock, limits=rules.uploads.to_limits()
        ),
        sharing=ShareService(uow_factory, clock, notifier),
        secret_key=secret_key,
    )


def sqlite_engine(settings: Settings, rules: Rules) -> Engine:
    """Engine over the SQLite database and local object storage in ``settings``."""
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    storage = LocalPresignedStorage(
        settings.objects_dir,
        settings.secret_key,
        upload_base_url=rules.storage.upload_base_url,
        public_base_url=rules.storage.public_base_url,
    )
    return build_engine(
        lambda: SQLiteUnitOfWork(settings.db_path),
        storage,
        rules,
        secret_key=settings.secret_key,
    )


@lru_cache
def get_engine() -> Engine:
    return sqlite_engine(get_settings(), get_rules())


EngineDep = Annotated[Engine, Depends(get_engine)]


# --- Auth ---
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    engine: EngineDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User:
    token = credentials.credentials if credentials else None

    # Cookie fallback (HttpOnly)
    if not token:
        cookie_token = request.cookies.get("access_token")
        if cookie_token and cookie_token.startswith("Bearer "):
            token = cookie_token.split(" ", 1)[1]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(token, engine.secret_key)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None or not isinstance(user_id, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        parsed_id = UUID(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        ) from None

    with engine.uow_factory() as uow:
        user = uow.users.get_by_id(parsed_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if user.status != "active":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user",
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_admin(user: CurrentUser) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
