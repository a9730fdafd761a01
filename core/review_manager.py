"""
Review Aggregator: scored opinions per (beatmapset, game mode, reviewer)

Responsibilities:
1. Validate scores against the score policy and the actor's capabilities
2. Check the beatmapset is still eligible (not Ranked/Loved/Qualified, has the mode)
3. Upsert the review, superseding the reviewer's open submission
4. Invalidate the per-mode review cache after commit

Known gap: eligibility looks at the beatmapset's overall ranked status only,
so a Loved set with a still-pending difficulty in the requested mode is
rejected.
"""
from sqlalchemy.orm import Session
from typing import Iterable, List, Tuple
import logging

from models import (
    Beatmapset,
    GameMode,
    LogType,
    RankedStatus,
    Review,
    Submission,
    User,
    utcnow,
)
from schemas import ReviewResponse
from core.capabilities import Capabilities
from core.exceptions import (
    Forbidden,
    InvariantViolation,
    ReviewNotFound,
    ValidationError,
)
from services.audit_service import audit, log_beatmapset, log_review, log_submission, log_user
from services.cache_service import delete_cache, reviews_cache_key
from services.osu_client import ContentProvider
from services.score_policy import (
    BULK_SCORES,
    allow_deprecated_score,
    is_valid_score,
    requires_captain,
)
from database import transactional

logger = logging.getLogger(__name__)


class ReviewManager:
    """Review lifecycle"""

    @staticmethod
    def submit_review(
        db: Session,
        content: ContentProvider,
        capabilities: Capabilities,
        beatmapset_id: int,
        game_mode: GameMode,
        score: int,
        reason: str,
    ) -> ReviewResponse:
        """
        Create or update the actor's review of a beatmapset in one game mode

        Preconditions:
        1. score is an integer in -4..3
        2. -4 and 0 need captain for the game mode
        3. -2 and 2 only when the existing review already has that score
        4. the beatmapset resolves (forced refresh), is at most pending and
           has beatmaps in the game mode

        Returns:
            the stored review, with active_captain reported for the actor

        Raises:
            ValidationError, Forbidden
        """
        if not isinstance(reason, str):
            raise ValidationError("Invalid reason")

        if not is_valid_score(score):
            raise ValidationError("Invalid score")

        if requires_captain(score) and not capabilities.has_captain(game_mode):
            raise Forbidden(f"Must be a captain to use review score {score}")

        existing = ReviewManager._find_review(db, beatmapset_id, game_mode, capabilities.user_id)

        if not allow_deprecated_score(None if existing is None else existing.score, score):
            raise ValidationError("Invalid score")

        beatmapset = content.create_or_refresh_beatmapset(db, beatmapset_id, force_refresh=True)
        _check_eligible(beatmapset, [game_mode])

        reviewer = _load_actor(db, capabilities)
        review = ReviewManager._upsert_review(db, reviewer, beatmapset, game_mode, score, reason)

        delete_cache(reviews_cache_key(game_mode))

        response = ReviewResponse.model_validate(review)
        response.active_captain = capabilities.active_captain(game_mode)
        return response

    @staticmethod
    @transactional
    def _upsert_review(
        db: Session,
        reviewer: User,
        beatmapset: Beatmapset,
        game_mode: GameMode,
        score: int,
        reason: str,
    ) -> Review:
        review = _write_review(db, reviewer, beatmapset, game_mode, score, reason, utcnow())
        _delete_open_submissions(db, reviewer, beatmapset, [game_mode])
        return review

    @staticmethod
    def submit_review_many(
        db: Session,
        content: ContentProvider,
        capabilities: Capabilities,
        beatmapset_id: int,
        game_modes: Iterable[GameMode],
        score: int,
        reason: str,
    ) -> None:
        """
        Review one beatmapset in several game modes at once

        Only scores 1 and 3 are allowed. Every requested mode must have
        beatmaps, otherwise nothing is written. All modes commit together.

        Raises:
            ValidationError
        """
        game_modes = list(dict.fromkeys(GameMode(mode) for mode in game_modes))

        if not game_modes:
            raise ValidationError("No game modes selected")

        if not isinstance(reason, str):
            raise ValidationError("Invalid reason")

        if score not in BULK_SCORES or isinstance(score, bool):
            raise ValidationError("Invalid score")

        beatmapset = content.create_or_refresh_beatmapset(db, beatmapset_id)
        _check_eligible(beatmapset, game_modes)

        reviewer = _load_actor(db, capabilities)
        ReviewManager._upsert_reviews(db, reviewer, beatmapset, game_modes, score, reason)

        for game_mode in game_modes:
            delete_cache(reviews_cache_key(game_mode))

    @staticmethod
    @transactional
    def _upsert_reviews(
        db: Session,
        reviewer: User,
        beatmapset: Beatmapset,
        game_modes: List[GameMode],
        score: int,
        reason: str,
    ) -> List[Review]:
        now = utcnow()
        _delete_open_submissions(db, reviewer, beatmapset, game_modes)

        return [
            _write_review(db, reviewer, beatmapset, game_mode, score, reason, now)
            for game_mode in game_modes
        ]

    @staticmethod
    def delete_review(db: Session, capabilities: Capabilities, review_id: int) -> None:
        """
        Delete a review; only its reviewer may

        Raises:
            ReviewNotFound, Forbidden
        """
        review = db.get(Review, review_id)
        if review is None:
            raise ReviewNotFound(review_id)

        if review.reviewer_id != capabilities.user_id:
            raise Forbidden("This isn't your review")

        beatmapset = db.get(Beatmapset, review.beatmapset_id)
        if beatmapset is None:
            raise InvariantViolation(f"Missing beatmapset #{review.beatmapset_id} attached to review {review.id}")

        reviewer = _load_actor(db, capabilities)
        game_mode = review.game_mode

        ReviewManager._delete_review(db, reviewer, beatmapset, review)

        delete_cache(reviews_cache_key(game_mode))

    @staticmethod
    @transactional
    def _delete_review(db: Session, reviewer: User, beatmapset: Beatmapset, review: Review) -> None:
        log_reviewer = log_user(reviewer)
        snapshot = log_review(review)

        db.delete(review)
        db.flush()

        audit(db, LogType.review_deleted, {
            "actor": log_reviewer,
            "beatmapset": log_beatmapset(beatmapset),
            "review": snapshot,
            "user": log_reviewer,
        })
        logger.info(f"Deleted review {snapshot['id']} by user {reviewer.id}")

    @staticmethod
    def _find_review(db: Session, beatmapset_id: int, game_mode: int, reviewer_id: int):
        return db.query(Review).filter(
            Review.beatmapset_id == beatmapset_id,
            Review.game_mode == game_mode,
            Review.reviewer_id == reviewer_id
        ).first()


def _check_eligible(beatmapset, game_modes: List[GameMode]) -> None:
    if beatmapset is None:
        raise ValidationError("Invalid beatmapset ID")

    # TODO: allow sets that are Loved overall but still have a Pending/WIP/Graveyard
    #       difficulty in every requested mode
    if beatmapset.ranked_status > RankedStatus.pending:
        raise ValidationError("Beatmapset is already Ranked/Loved/Qualified")

    available = beatmapset.game_modes
    missing = [mode for mode in game_modes if mode not in available]
    if missing:
        raise ValidationError(
            f"Beatmapset has no beatmaps in game mode {', '.join(str(int(mode)) for mode in missing)}"
        )


def _load_actor(db: Session, capabilities: Capabilities) -> User:
    user = db.get(User, capabilities.user_id)
    if user is None:
        raise InvariantViolation(f"Acting user {capabilities.user_id} is missing")
    return user


def _write_review(
    db: Session,
    reviewer: User,
    beatmapset: Beatmapset,
    game_mode: GameMode,
    score: int,
    reason: str,
    reviewed_at,
) -> Review:
    """Insert or update one review inside the caller's transaction"""
    log_reviewer = log_user(reviewer)

    existing = ReviewManager._find_review(db, beatmapset.id, game_mode, reviewer.id)

    if existing is None:
        review = Review(
            beatmapset_id=beatmapset.id,
            game_mode=int(game_mode),
            reviewer_id=reviewer.id,
            score=score,
            reason=reason,
            reviewed_at=reviewed_at,
        )
        db.add(review)
        db.flush()

        stored = db.get(Review, review.id)
        if stored is None:
            raise InvariantViolation("Missing review immediately after create")

        audit(db, LogType.review_created, {
            "beatmapset": log_beatmapset(beatmapset),
            "review": log_review(stored),
            "user": log_reviewer,
        })
        logger.info(f"Created review {stored.id} of beatmapset #{beatmapset.id} mode {int(game_mode)} by user {reviewer.id}")
        return stored

    previous = log_review(existing)
    changed = existing.score != score or existing.reason != reason

    existing.score = score
    existing.reason = reason
    existing.reviewed_at = reviewed_at
    db.flush()

    stored = db.get(Review, existing.id)
    if stored is None:
        raise InvariantViolation("Missing review immediately after update")

    if changed:
        audit(db, LogType.review_updated, {
            "beatmapset": log_beatmapset(beatmapset),
            "from": previous,
            "to": log_review(stored),
            "user": log_reviewer,
        })
        logger.info(f"Updated review {stored.id} by user {reviewer.id}")
    else:
        logger.debug(f"Review {stored.id} resubmitted unchanged")

    return stored


def _delete_open_submissions(
    db: Session,
    submitter: User,
    beatmapset: Beatmapset,
    game_modes: List[GameMode],
) -> List[Tuple[int, int]]:
    """Remove the submitter's unscored submissions for these modes, one audit record each"""
    submissions = db.query(Submission).filter(
        Submission.beatmapset_id == beatmapset.id,
        Submission.game_mode.in_([int(mode) for mode in game_modes]),
        Submission.reason.is_(None),
        Submission.submitter_id == submitter.id
    ).all()

    log_submitter = log_user(submitter)
    deleted = []

    for submission in submissions:
        snapshot = log_submission(submission)
        db.delete(submission)
        db.flush()

        audit(db, LogType.submission_deleted, {
            "actor": log_submitter,
            "beatmapset": log_beatmapset(beatmapset),
            "submission": snapshot,
            "user": log_submitter,
        })
        deleted.append((snapshot["id"], snapshot["game_mode"]))

    if deleted:
        logger.info(f"Deleted {len(deleted)} open submission(s) superseded by review of beatmapset #{beatmapset.id}")
    return deleted
