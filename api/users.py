"""
User and role endpoints

1. Add a user by name (admins only)
2. List users holding a role
3. Replace a user's roles (admins only)
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
import logging

from database import get_db
from schemas import RolesUpdate, UserAdd, UserWithRolesResponse
from api.deps import get_capabilities, get_content_provider, get_current_user
from core.capabilities import Capabilities
from core.exceptions import LovedException
from core.user_manager import UserManager
from services.osu_client import ContentProvider

router = APIRouter(tags=["users"])
logger = logging.getLogger(__name__)


@router.post("/add-user", response_model=UserWithRolesResponse)
def add_user(
    user_data: UserAdd,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
    content: ContentProvider = Depends(get_content_provider),
):
    try:
        return UserManager.add_user(db, content, capabilities, user_data.name)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to add user: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get(
    "/users-with-permissions",
    response_model=List[UserWithRolesResponse],
    dependencies=[Depends(get_current_user)],
)
def list_users_with_permissions(db: Session = Depends(get_db)):
    try:
        return UserManager.list_users_with_roles(db)

    except Exception as e:
        logger.error(f"Failed to list users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/update-permissions", response_model=UserWithRolesResponse)
def update_permissions(
    update_data: RolesUpdate,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        return UserManager.set_roles(db, capabilities, update_data.user_id, update_data.roles)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update permissions: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
