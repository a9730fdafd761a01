"""
Admin endpoints (god only)

1. Force-refresh one beatmapset or user from the osu! API
2. Queue many refreshes on the rate-limited background worker
"""
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import ApiObjectBulkUpdate, ApiObjectUpdate
from api.deps import get_capabilities, get_content_provider, get_refresh_worker
from core.capabilities import Capabilities
from core.exceptions import Forbidden, LovedException, ValidationError
from services.osu_client import ContentProvider
from services.refresh_worker import RefreshWorker, refresh_api_object

router = APIRouter(tags=["admin"])
logger = logging.getLogger(__name__)


def _require_god(capabilities: Capabilities) -> None:
    if not capabilities.has_god():
        raise Forbidden("Must be an admin")


@router.post("/update-api-object", status_code=204)
def update_api_object(
    update_data: ApiObjectUpdate,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
    content: ContentProvider = Depends(get_content_provider),
):
    try:
        _require_god(capabilities)

        api_object = refresh_api_object(db, content, update_data.type, update_data.id)
        if api_object is None:
            raise ValidationError(f"Invalid {update_data.type.value} ID")

        db.commit()
        logger.info(f"Updated {update_data.type.value} {update_data.id}")
        return Response(status_code=204)

    except LovedException as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update API object: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/update-api-object-bulk", status_code=204)
def update_api_object_bulk(
    update_data: ApiObjectBulkUpdate,
    capabilities: Capabilities = Depends(get_capabilities),
    worker: RefreshWorker = Depends(get_refresh_worker),
):
    """Returns immediately; progress is only logged"""
    try:
        _require_god(capabilities)
        worker.enqueue(update_data.type, dict.fromkeys(update_data.ids))
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to queue API object updates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
