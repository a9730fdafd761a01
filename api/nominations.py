"""
Nomination endpoints

Responsibilities:
1. List a round's nominations
2. Create / delete nominations
3. Edit description, metadata and moderation state
4. Manage order, nominators, assignees, excluded difficulties and locks

Every route here requires at least one role.
"""
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session
from typing import Dict
import logging

from database import get_db
from schemas import (
    AssigneeCandidatesResponse,
    AssigneesResponse,
    AssigneesUpdate,
    DescriptionEdit,
    ExcludedBeatmapsUpdate,
    MetadataEdit,
    MetadataEditResponse,
    ModerationEdit,
    ModerationResponse,
    NominationDetailResponse,
    NominationListResponse,
    NominationResponse,
    NominationsLock,
    NominationSubmit,
    NominatorsResponse,
    NominatorsUpdate,
)
from api.deps import get_capabilities, get_content_provider, require_any_role
from core.capabilities import Capabilities
from core.exceptions import LovedException
from core.nomination_manager import NominationManager
from services.osu_client import ContentProvider

router = APIRouter(tags=["nominations"], dependencies=[Depends(require_any_role)])
logger = logging.getLogger(__name__)


@router.get("/nominations", response_model=NominationListResponse)
def list_nominations(round_id: int = Query(...), db: Session = Depends(get_db)):
    try:
        return NominationManager.list_nominations(db, round_id)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list nominations: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/nomination-submit", response_model=NominationDetailResponse)
def submit_nomination(
    nomination_data: NominationSubmit,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
    content: ContentProvider = Depends(get_content_provider),
):
    """
    Nominate a beatmapset

    Flow:
    1. Check the round and the optional parent nomination
    2. Resolve the beatmapset through the osu! API
    3. Append at the end of the (round, game mode) list
    """
    try:
        return NominationManager.create_nomination(
            db,
            content,
            capabilities,
            nomination_data.round_id,
            nomination_data.game_mode,
            nomination_data.beatmapset_id,
            nomination_data.parent_id,
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to submit nomination: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/nomination", status_code=204)
def delete_nomination(
    nomination_id: int = Query(...),
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        NominationManager.delete_nomination(db, capabilities, nomination_id)
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to delete nomination: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/nomination-edit-description", response_model=NominationResponse)
def edit_description(
    edit_data: DescriptionEdit,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        return NominationManager.edit_description(
            db, capabilities, edit_data.nomination_id, edit_data.description
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to edit description: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/nomination-edit-metadata", response_model=MetadataEditResponse)
def edit_metadata(
    edit_data: MetadataEdit,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
    content: ContentProvider = Depends(get_content_provider),
):
    try:
        return NominationManager.edit_metadata(
            db,
            content,
            capabilities,
            edit_data.nomination_id,
            edit_data.state,
            edit_data.artist,
            edit_data.title,
            edit_data.creators,
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to edit metadata: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/nomination-edit-moderation", response_model=ModerationResponse)
def edit_moderation(
    edit_data: ModerationEdit,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        return NominationManager.edit_moderation(
            db, capabilities, edit_data.nomination_id, edit_data.state
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to edit moderation: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/update-nomination-order", status_code=204)
def update_nomination_order(
    orders: Dict[int, int] = Body(...),
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    """Body: {nomination_id: order, ...}"""
    try:
        NominationManager.reorder_nominations(db, capabilities, orders)
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update nomination order: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/update-nominators", response_model=NominatorsResponse)
def update_nominators(
    update_data: NominatorsUpdate,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        return NominationManager.set_nominators(
            db, capabilities, update_data.nomination_id, update_data.nominator_ids
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update nominators: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/update-nomination-assignees", response_model=AssigneesResponse)
def update_assignees(
    update_data: AssigneesUpdate,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        return NominationManager.set_assignees(
            db,
            capabilities,
            update_data.nomination_id,
            update_data.type,
            update_data.assignee_ids,
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update assignees: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/update-excluded-beatmaps", status_code=204)
def update_excluded_beatmaps(
    update_data: ExcludedBeatmapsUpdate,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        NominationManager.set_excluded_beatmaps(
            db, capabilities, update_data.nomination_id, update_data.excluded_beatmap_ids
        )
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update excluded beatmaps: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/lock-nominations", status_code=204)
def lock_nominations(
    lock_data: NominationsLock,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    try:
        NominationManager.lock_nominations(
            db, capabilities, lock_data.round_id, lock_data.game_mode, lock_data.lock
        )
        return Response(status_code=204)

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to lock nominations: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/assignees", response_model=AssigneeCandidatesResponse)
def list_assignee_candidates(db: Session = Depends(get_db)):
    try:
        return NominationManager.list_assignee_candidates(db)

    except Exception as e:
        logger.error(f"Failed to list assignees: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
