"""
Shared FastAPI dependencies

- get_current_user: the acting user, identified by the X-User-Id header
- get_capabilities: computed once per request from the user's roles
- require_any_role: gate for the staff-only routers
- get_content_provider / get_refresh_worker: process-wide singletons,
  overridable in tests via app.dependency_overrides
"""
import threading
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session, selectinload

from database import get_db
from models import User
from core.capabilities import Capabilities
from services.osu_client import ContentProvider, OsuApiClient
from services.refresh_worker import RefreshWorker

_singletons_lock = threading.Lock()
_content_provider: Optional[ContentProvider] = None
_refresh_worker: Optional[RefreshWorker] = None


def get_current_user(
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Log in first")

    user = (
        db.query(User)
        .options(selectinload(User.roles))
        .filter(User.id == x_user_id)
        .first()
    )
    if user is None:
        raise HTTPException(status_code=401, detail="Log in first")
    return user


def get_capabilities(user: User = Depends(get_current_user)) -> Capabilities:
    return Capabilities.from_roles(user.id, user.roles)


def require_any_role(capabilities: Capabilities = Depends(get_capabilities)) -> Capabilities:
    if not capabilities.any_role:
        raise HTTPException(status_code=403, detail="Must have a role")
    return capabilities


def get_content_provider() -> ContentProvider:
    global _content_provider
    with _singletons_lock:
        if _content_provider is None:
            _content_provider = OsuApiClient()
        return _content_provider


def get_refresh_worker(content: ContentProvider = Depends(get_content_provider)) -> RefreshWorker:
    global _refresh_worker
    with _singletons_lock:
        if _refresh_worker is None:
            _refresh_worker = RefreshWorker(content)
        return _refresh_worker


def shutdown_singletons() -> None:
    """Stop the refresh worker and close the API client"""
    global _content_provider, _refresh_worker
    with _singletons_lock:
        if _refresh_worker is not None:
            _refresh_worker.stop(timeout=5)
            _refresh_worker = None
        if isinstance(_content_provider, OsuApiClient):
            _content_provider.close()
        _content_provider = None
