"""
Audit service: append structured audit records

Records are added to the caller's session, so they commit or roll back
together with the data change they describe.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models import Beatmapset, Log, LogType, Review, Submission, User

logger = logging.getLogger(__name__)


def audit(db: Session, log_type: LogType, values: Optional[Dict[str, Any]]) -> Log:
    """
    Append one audit record

    Args:
        db: SQLAlchemy Session (inside the caller's transaction)
        log_type: event kind
        values: JSON-serializable payload; always carries actor/user
            snapshots, and from/to pairs for update events

    Returns:
        the pending Log row
    """
    log = Log(type=int(log_type), values=values)
    db.add(log)
    db.flush()

    logger.info(f"Audit {log_type.name}: {values}")
    return log


def log_user(user: User) -> Dict[str, Any]:
    return {
        "banned": bool(user.banned),
        "country": user.country,
        "id": user.id,
        "name": user.name,
    }


def log_beatmapset(beatmapset: Beatmapset) -> Dict[str, Any]:
    return {
        "artist": beatmapset.artist,
        "id": beatmapset.id,
        "title": beatmapset.title,
    }


def log_review(review: Review) -> Dict[str, Any]:
    return {
        "game_mode": review.game_mode,
        "id": review.id,
        "reason": review.reason,
        "score": review.score,
    }


def log_submission(submission: Submission) -> Dict[str, Any]:
    return {
        "game_mode": submission.game_mode,
        "id": submission.id,
        "reason": submission.reason,
    }
