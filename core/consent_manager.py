"""
Consent Ledger: mapper consent and per-beatmapset overrides

Responsibilities:
1. Validate and authorize a consent change
2. Apply only the delta against the stored rows, one audit record per change
3. Invalidate the derived consent caches after commit

Consent is independent of rounds.
"""
from sqlalchemy.orm import Session, joinedload, selectinload
from typing import Dict, List
import logging

from models import (
    Beatmapset,
    Consent,
    ConsentBeatmapset,
    ConsentValue,
    LogType,
    User,
    utcnow,
)
from schemas import (
    ConsentBeatmapsetResponse,
    ConsentBeatmapsetSubmit,
    ConsentResponse,
    ConsentSubmit,
)
from core.capabilities import Capabilities
from core.exceptions import (
    BeatmapsetNotFound,
    Forbidden,
    InvariantViolation,
    UserNotFound,
    ValidationError,
)
from services.audit_service import audit, log_beatmapset, log_user
from services.cache_service import (
    MAPPER_CONSENTS,
    SUBMISSIONS_MAPPER_CONSENT_BEATMAPSETS,
    SUBMISSIONS_MAPPER_CONSENTS,
    cache,
    delete_cache,
)
from services.grouping import group_by
from services.osu_client import ContentProvider
from database import transactional

logger = logging.getLogger(__name__)


class ConsentManager:
    """Mapper consent ledger"""

    @staticmethod
    def set_consent(
        db: Session,
        content: ContentProvider,
        capabilities: Capabilities,
        consent: ConsentSubmit,
        consent_beatmapsets: List[ConsentBeatmapsetSubmit],
    ) -> ConsentResponse:
        """
        Set a mapper's consent and per-beatmapset consents

        Flow:
        1. Reject the deprecated "unreachable" value
        2. Resolve the mapper; only the mapper or a captain may edit
        3. Resolve every requested beatmapset before writing anything
        4. Apply the delta in one transaction
        5. Invalidate consent caches

        Raises:
            ValidationError: deprecated consent value or duplicate beatmapset
            NotFound: mapper or a beatmapset cannot be resolved
            Forbidden: editing someone else's consent without captain
        """
        if consent.consent == ConsentValue.unreachable or any(
            c.consent == ConsentValue.unreachable for c in consent_beatmapsets
        ):
            raise ValidationError('The "unreachable" consent option is no longer supported')

        requested_ids = [c.beatmapset_id for c in consent_beatmapsets]
        if len(set(requested_ids)) != len(requested_ids):
            raise ValidationError("Each beatmapset may only appear once")

        mapper = content.create_or_refresh_user(db, consent.user_id)
        if mapper is None:
            raise UserNotFound(consent.user_id)

        if mapper.id != capabilities.user_id and not capabilities.has_captain():
            raise Forbidden("Must be a captain to update consents of other users")

        beatmapsets: Dict[int, Beatmapset] = {}
        for beatmapset_id in requested_ids:
            beatmapset = content.create_or_refresh_beatmapset(db, beatmapset_id)
            if beatmapset is None:
                raise BeatmapsetNotFound(beatmapset_id)
            beatmapsets[beatmapset_id] = beatmapset

        actor = db.get(User, capabilities.user_id)
        if actor is None:
            raise InvariantViolation(f"Acting user {capabilities.user_id} is missing")

        ConsentManager._apply_consent(db, actor, mapper, consent, consent_beatmapsets, beatmapsets)

        delete_cache(MAPPER_CONSENTS)
        delete_cache(SUBMISSIONS_MAPPER_CONSENT_BEATMAPSETS)
        delete_cache(SUBMISSIONS_MAPPER_CONSENTS)

        return ConsentManager.get_consent(db, mapper.id)

    @staticmethod
    @transactional
    def _apply_consent(
        db: Session,
        actor: User,
        mapper: User,
        consent: ConsentSubmit,
        consent_beatmapsets: List[ConsentBeatmapsetSubmit],
        beatmapsets: Dict[int, Beatmapset],
    ) -> None:
        log_actor = log_user(actor)
        log_mapper = log_user(mapper)

        # 1. Blanket consent: create, or update only if something changed
        current = db.get(Consent, mapper.id)

        if current is None:
            db.add(Consent(
                user_id=mapper.id,
                consent=consent.consent,
                consent_reason=consent.consent_reason,
                updated_at=utcnow(),
                updater_id=actor.id,
            ))
            db.flush()
            audit(db, LogType.mapper_consent_created, {
                "actor": log_actor,
                "consent": consent.consent,
                "reason": consent.consent_reason,
                "user": log_mapper,
            })
            logger.info(f"Created consent for mapper {mapper.id}")
        elif current.consent != consent.consent or current.consent_reason != consent.consent_reason:
            previous = {"consent": current.consent, "reason": current.consent_reason}
            current.consent = consent.consent
            current.consent_reason = consent.consent_reason
            current.updated_at = utcnow()
            current.updater_id = actor.id
            db.flush()
            audit(db, LogType.mapper_consent_updated, {
                "actor": log_actor,
                "from": previous,
                "to": {"consent": consent.consent, "reason": consent.consent_reason},
                "user": log_mapper,
            })
            logger.info(f"Updated consent for mapper {mapper.id}")
        else:
            logger.debug(f"Consent for mapper {mapper.id} unchanged")

        # 2. Per-beatmapset consents: removed / added / changed
        current_rows = {
            row.beatmapset_id: row
            for row in db.query(ConsentBeatmapset).filter(ConsentBeatmapset.user_id == mapper.id)
        }
        requested = {c.beatmapset_id: c for c in consent_beatmapsets}

        for beatmapset_id, row in current_rows.items():
            if beatmapset_id in requested:
                continue

            beatmapset = row.beatmapset
            if beatmapset is None:
                raise InvariantViolation(
                    f"Missing beatmapset #{beatmapset_id} for logging consent beatmapset delete"
                )

            audit(db, LogType.mapper_consent_beatmapset_deleted, {
                "actor": log_actor,
                "beatmapset": log_beatmapset(beatmapset),
                "consent": row.consent,
                "reason": row.consent_reason,
                "user": log_mapper,
            })
            db.delete(row)

        for beatmapset_id, submitted in requested.items():
            log_set = log_beatmapset(beatmapsets[beatmapset_id])
            row = current_rows.get(beatmapset_id)

            if row is None:
                db.add(ConsentBeatmapset(
                    user_id=mapper.id,
                    beatmapset_id=beatmapset_id,
                    consent=submitted.consent,
                    consent_reason=submitted.consent_reason,
                ))
                db.flush()
                audit(db, LogType.mapper_consent_beatmapset_created, {
                    "actor": log_actor,
                    "beatmapset": log_set,
                    "consent": submitted.consent,
                    "reason": submitted.consent_reason,
                    "user": log_mapper,
                })
            elif row.consent != submitted.consent or row.consent_reason != submitted.consent_reason:
                previous = {"consent": row.consent, "reason": row.consent_reason}
                row.consent = submitted.consent
                row.consent_reason = submitted.consent_reason
                db.flush()
                audit(db, LogType.mapper_consent_beatmapset_updated, {
                    "actor": log_actor,
                    "beatmapset": log_set,
                    "from": previous,
                    "to": {"consent": submitted.consent, "reason": submitted.consent_reason},
                    "user": log_mapper,
                })

        db.flush()

    @staticmethod
    def get_consent(db: Session, user_id: int) -> ConsentResponse:
        """
        Load one mapper's consent with mapper and beatmapset consents

        Raises:
            InvariantViolation: called right after a write but the row is gone
        """
        consent = _consent_query(db).filter(Consent.user_id == user_id).first()
        if consent is None:
            raise InvariantViolation(f"Consent for mapper {user_id} missing immediately after write")

        return _to_response(consent, _beatmapset_consents(db, [user_id]).get(user_id, []))

    @staticmethod
    def list_consents(db: Session) -> List[ConsentResponse]:
        """Every mapper consent, served from the derived cache"""
        def load():
            consents = _consent_query(db).order_by(Consent.user_id).all()
            by_user = _beatmapset_consents(db, [c.user_id for c in consents])
            return [
                _to_response(consent, by_user.get(consent.user_id, []))
                for consent in consents
            ]

        return cache.get_or_set(MAPPER_CONSENTS, load)


def _consent_query(db: Session):
    return db.query(Consent).options(joinedload(Consent.mapper))


def _beatmapset_consents(db: Session, user_ids: List[int]) -> Dict[int, List[ConsentBeatmapset]]:
    if not user_ids:
        return {}

    rows = (
        db.query(ConsentBeatmapset)
        .options(selectinload(ConsentBeatmapset.beatmapset))
        .filter(ConsentBeatmapset.user_id.in_(user_ids))
        .order_by(ConsentBeatmapset.beatmapset_id)
        .all()
    )

    return group_by(rows, key=lambda row: row.user_id)


def _to_response(consent: Consent, rows: List[ConsentBeatmapset]) -> ConsentResponse:
    response = ConsentResponse.model_validate(consent)
    response.beatmapset_consents = [ConsentBeatmapsetResponse.model_validate(row) for row in rows]
    return response
