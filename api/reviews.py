"""
Review endpoints

Responsibilities:
1. Create or update the actor's review in one game mode
2. Review several game modes at once
3. Delete the actor's own review
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import ReviewManySubmit, ReviewResponse, ReviewSubmit
from api.deps import get_capabilities, get_content_provider
from core.capabilities import Capabilities
from core.exceptions import LovedException
from core.review_manager import ReviewManager
from services.osu_client import ContentProvider

router = APIRouter(tags=["reviews"])
logger = logging.getLogger(__name__)


@router.post("/review", response_model=ReviewResponse)
def submit_review(
    review_data: ReviewSubmit,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
    content: ContentProvider = Depends(get_content_provider),
):
    """
    Submit a review

    Returns:
        the stored review plus active_captain (true / false / null)
    """
    try:
        logger.info(
            f"User {capabilities.user_id} reviewing beatmapset #{review_data.beatmapset_id} "
            f"mode {int(review_data.game_mode)}: {review_data.score}"
        )
        return ReviewManager.submit_review(
            db,
            content,
            capabilities,
            review_data.beatmapset_id,
            review_data.game_mode,
            review_data.score,
            review_data.reason,
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to submit review: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/review-many", status_code=204)
def submit_review_many(
    review_data: ReviewManySubmit,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
    content: ContentProvider = Depends(get_content_provider),
):
    """Submit the same review (score 1 or 3) in several game modes"""
    try:
        ReviewManager.submit_review_many(
            db,
            content,
            capabilities,
            review_data.beatmapset_id,
            review_data.game_modes,
            review_data.score,
            review_data.reason,
        )
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to submit reviews: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/review", status_code=204)
def delete_review(
    review_id: int = Query(...),
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    """Delete one of the actor's reviews"""
    try:
        ReviewManager.delete_review(db, capabilities, review_id)
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to delete review: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
