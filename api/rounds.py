"""
Round API Endpoints

Notes:
1. All business logic lives in RoundManager
2. Round lists carry a nomination count aggregated per request
3. Every route here requires at least one role
"""
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

import logging

from database import get_db
from schemas import RoundCreateResponse, RoundListResponse, RoundUpdate
from api.deps import get_capabilities, require_any_role
from core.capabilities import Capabilities
from core.exceptions import LovedException
from core.round_manager import RoundManager

router = APIRouter(tags=["rounds"], dependencies=[Depends(require_any_role)])
logger = logging.getLogger(__name__)


@router.get("/rounds", response_model=RoundListResponse)
def list_rounds(db: Session = Depends(get_db)):
    """
    List rounds

    Returns:
        - complete_rounds: done rounds, newest first
        - incomplete_rounds: open rounds, oldest first
    """
    try:
        return RoundManager.list_rounds(db)

    except Exception as e:
        logger.error(f"Failed to list rounds: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/add-round", response_model=RoundCreateResponse)
def add_round(
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    """Create an empty round with one settings row per game mode"""
    try:
        round_obj = RoundManager.create_round(db, capabilities)
        return RoundCreateResponse(id=round_obj.id)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create round: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/update-round", status_code=204)
def update_round(
    update_data: RoundUpdate,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    """Only the fields present in the request body are written"""
    try:
        RoundManager.update_round(
            db,
            capabilities,
            update_data.round_id,
            update_data.round.model_dump(exclude_unset=True),
        )
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update round: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
