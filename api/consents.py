"""
Mapper consent endpoints

Responsibilities:
1. List all mapper consents
2. Set a mapper's consent (the mapper themselves, or a captain)
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
import logging

from database import get_db
from schemas import ConsentResponse, MapperConsentSubmit
from api.deps import get_capabilities, get_content_provider
from core.capabilities import Capabilities
from core.consent_manager import ConsentManager
from core.exceptions import LovedException
from services.osu_client import ContentProvider

router = APIRouter(tags=["consents"])
logger = logging.getLogger(__name__)


@router.get("/mapper-consents", response_model=List[ConsentResponse])
def list_mapper_consents(db: Session = Depends(get_db)):
    try:
        return ConsentManager.list_consents(db)

    except Exception as e:
        logger.error(f"Failed to list mapper consents: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/mapper-consent", response_model=ConsentResponse)
def set_mapper_consent(
    consent_data: MapperConsentSubmit,
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
    content: ContentProvider = Depends(get_content_provider),
):
    """
    Set a mapper's consent and per-beatmapset consents

    Every referenced beatmapset is resolved before anything is written;
    the whole request fails if one cannot be found.
    """
    try:
        return ConsentManager.set_consent(
            db,
            content,
            capabilities,
            consent_data.consent,
            consent_data.consent_beatmapsets,
        )

    except LovedException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to set mapper consent: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
