"""
Round Manager: voting cycles and their per-mode settings

Responsibilities:
1. Create a round, seeding one RoundGameMode per game mode
2. List rounds split into complete / incomplete, with live nomination counts
3. Edit a round's name and news texts

The done flag is set elsewhere; nothing here closes a round.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Any, Dict
import logging

from models import GameMode, Nomination, Round, RoundGameMode
from schemas import RoundListResponse, RoundWithCountResponse
from core.capabilities import Capabilities
from core.exceptions import Forbidden, RoundNotFound, ValidationError
from database import transactional, settings

logger = logging.getLogger(__name__)

DEFAULT_ROUND_NAME = "Unnamed round"
EDITABLE_ROUND_FIELDS = (
    "name",
    "news_intro",
    "news_intro_preview",
    "news_outro",
    "news_posted_at",
)


class RoundManager:
    """Round lifecycle"""

    @staticmethod
    @transactional
    def create_round(db: Session, capabilities: Capabilities) -> Round:
        """
        Create an empty round (news authors only)

        Every game mode gets a RoundGameMode with the configured default
        voting threshold, or 0 when none is configured.

        Raises:
            Forbidden
        """
        if not capabilities.has_news():
            raise Forbidden("Must be a news author")

        round_obj = Round(name=DEFAULT_ROUND_NAME, done=False)
        db.add(round_obj)
        db.flush()

        thresholds = settings.default_voting_thresholds
        db.add_all([
            RoundGameMode(
                round_id=round_obj.id,
                game_mode=int(game_mode),
                voting_threshold=thresholds.get(int(game_mode), 0),
                nominations_locked=False,
            )
            for game_mode in GameMode
        ])
        db.flush()

        logger.info(f"Created round {round_obj.id}")
        return round_obj

    @staticmethod
    def list_rounds(db: Session) -> RoundListResponse:
        """
        Complete rounds newest first, incomplete rounds in creation order

        nomination_count is aggregated per request, never stored.
        """
        counts = (
            db.query(Nomination.round_id, func.count(Nomination.id).label("count"))
            .group_by(Nomination.round_id)
            .subquery()
        )
        rows = (
            db.query(Round, func.coalesce(counts.c.count, 0))
            .outerjoin(counts, Round.id == counts.c.round_id)
            .order_by(Round.id.asc())
            .all()
        )

        rounds = [
            RoundWithCountResponse(**round_fields(round_obj), nomination_count=count)
            for round_obj, count in rows
        ]

        return RoundListResponse(
            complete_rounds=[r for r in rounds if r.done][::-1],
            incomplete_rounds=[r for r in rounds if not r.done],
        )

    @staticmethod
    @transactional
    def update_round(
        db: Session,
        capabilities: Capabilities,
        round_id: int,
        fields: Dict[str, Any],
    ) -> Round:
        """
        Update a round's name and news texts (news authors only)

        Only the keys present in fields are written.

        Raises:
            Forbidden, ValidationError, RoundNotFound
        """
        if not capabilities.has_news():
            raise Forbidden("Must be a news author")

        unknown = set(fields) - set(EDITABLE_ROUND_FIELDS)
        if unknown:
            raise ValidationError(f"Invalid round params: {', '.join(sorted(unknown))}")

        if "name" in fields and not fields["name"]:
            raise ValidationError("Round name can't be empty")

        round_obj = db.get(Round, round_id)
        if not round_obj:
            raise RoundNotFound(round_id)

        for key, value in fields.items():
            setattr(round_obj, key, value)
        db.flush()

        logger.info(f"Updated round {round_id}: {sorted(fields)}")
        return round_obj


def round_fields(round_obj: Round) -> Dict[str, Any]:
    return {
        "id": round_obj.id,
        "name": round_obj.name,
        "news_intro": round_obj.news_intro,
        "news_intro_preview": round_obj.news_intro_preview,
        "news_outro": round_obj.news_outro,
        "news_posted_at": round_obj.news_posted_at,
        "done": round_obj.done,
    }
