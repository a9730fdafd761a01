"""
Data models

Content cache (filled by the osu! API client):
- User, Beatmapset, Beatmap, BeatmapsetCreator

Curation workflow:
- UserRole: role assignments that capabilities are computed from
- Consent / ConsentBeatmapset: mapper consent ledger
- Review / Submission: per-mode opinions on beatmapsets
- Round / RoundGameMode: voting cycles and their per-mode settings
- Nomination (+ nominators, assignees, excluded beatmaps): candidacies within a round
- Poll: voting result, read-only here
- Log: audit records
"""
from datetime import datetime, timezone
from enum import IntEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============ Enums ============

class GameMode(IntEnum):
    osu = 0
    taiko = 1
    catch = 2
    mania = 3


class RankedStatus(IntEnum):
    graveyard = -2
    wip = -1
    pending = 0
    ranked = 1
    approved = 2
    qualified = 3
    loved = 4


class Role(IntEnum):
    god = 0
    captain = 1
    metadata = 2
    moderator = 3
    news = 4
    developer = 5


class ConsentValue(IntEnum):
    no = 0
    yes = 1
    unreachable = 2  # no longer accepted on write


class DescriptionState(IntEnum):
    not_reviewed = 0
    reviewed = 1


class MetadataState(IntEnum):
    unchecked = 0
    needs_change = 1
    good = 2


class ModeratorState(IntEnum):
    unchecked = 0
    needs_change = 1
    sent_to_review = 2
    good = 3
    not_allowed = 4


class AssigneeType(IntEnum):
    metadata = 0
    moderator = 1


class LogType(IntEnum):
    mapper_consent_created = 0
    mapper_consent_updated = 1
    mapper_consent_beatmapset_created = 2
    mapper_consent_beatmapset_deleted = 3
    mapper_consent_beatmapset_updated = 4
    review_created = 5
    review_deleted = 6
    review_updated = 7
    submission_deleted = 8


# ============ Content cache ============

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(32), nullable=False, index=True)
    country = Column(String(2), nullable=False, default="__")
    avatar_url = Column(String(255), nullable=True)
    banned = Column(Boolean, nullable=False, default=False)
    api_fetched_at = Column(DateTime, nullable=True)

    roles = relationship("UserRole", back_populates="user")


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role_id = Column(Integer, nullable=False)
    game_mode = Column(Integer, nullable=True)  # None: not scoped to a mode
    alumni = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="roles")


class Beatmapset(Base):
    __tablename__ = "beatmapsets"

    id = Column(Integer, primary_key=True, autoincrement=False)
    artist = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    creator_id = Column(Integer, nullable=False)
    creator_name = Column(String(32), nullable=False)
    ranked_status = Column(Integer, nullable=False, default=RankedStatus.pending)
    favorite_count = Column(Integer, nullable=False, default=0)
    play_count = Column(Integer, nullable=False, default=0)
    submitted_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    api_fetched_at = Column(DateTime, nullable=True)

    beatmaps = relationship("Beatmap", back_populates="beatmapset", order_by="Beatmap.id")

    @property
    def game_modes(self) -> set:
        """Game modes that have at least one live difficulty"""
        return {
            GameMode(beatmap.game_mode)
            for beatmap in self.beatmaps
            if beatmap.deleted_at is None
        }


class Beatmap(Base):
    __tablename__ = "beatmaps"

    id = Column(Integer, primary_key=True, autoincrement=False)
    beatmapset_id = Column(Integer, ForeignKey("beatmapsets.id"), nullable=False, index=True)
    game_mode = Column(Integer, nullable=False)
    version = Column(String(255), nullable=False)
    creator_id = Column(Integer, nullable=False)
    star_rating = Column(Float, nullable=False, default=0)
    key_count = Column(Integer, nullable=True)  # mania only
    bpm = Column(Float, nullable=False, default=0)
    total_length = Column(Integer, nullable=False, default=0)
    play_count = Column(Integer, nullable=False, default=0)
    ranked_status = Column(Integer, nullable=False, default=RankedStatus.pending)
    deleted_at = Column(DateTime, nullable=True)

    beatmapset = relationship("Beatmapset", back_populates="beatmaps")


class BeatmapsetCreator(Base):
    """Per-mode creator credit for a beatmapset"""
    __tablename__ = "beatmapset_creators"

    beatmapset_id = Column(Integer, ForeignKey("beatmapsets.id"), primary_key=True)
    creator_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    game_mode = Column(Integer, primary_key=True)


# ============ Consent ============

class Consent(Base):
    __tablename__ = "mapper_consents"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True, autoincrement=False)
    consent = Column(Integer, nullable=True)
    consent_reason = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False)
    updater_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    mapper = relationship("User", foreign_keys=[user_id])


class ConsentBeatmapset(Base):
    """Consent override for one beatmapset of a mapper"""
    __tablename__ = "mapper_consent_beatmapsets"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True, autoincrement=False)
    beatmapset_id = Column(Integer, ForeignKey("beatmapsets.id"), primary_key=True, autoincrement=False)
    consent = Column(Integer, nullable=False)
    consent_reason = Column(Text, nullable=True)

    beatmapset = relationship("Beatmapset")


# ============ Reviews ============

class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("beatmapset_id", "reviewer_id", "game_mode"),
    )

    id = Column(Integer, primary_key=True, index=True)
    beatmapset_id = Column(Integer, ForeignKey("beatmapsets.id"), nullable=False)
    game_mode = Column(Integer, nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    score = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    reviewed_at = Column(DateTime, nullable=False)


class Submission(Base):
    """A request to consider a beatmapset; open (unscored) when reason is NULL"""
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    beatmapset_id = Column(Integer, ForeignKey("beatmapsets.id"), nullable=False)
    game_mode = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    submitter_id = Column(Integer, ForeignKey("users.id"), nullable=True)


# ============ Rounds ============

class Round(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    news_intro = Column(Text, nullable=True)
    news_intro_preview = Column(Text, nullable=True)
    news_outro = Column(Text, nullable=True)
    news_posted_at = Column(DateTime, nullable=True)
    done = Column(Boolean, nullable=False, default=False)

    game_modes = relationship("RoundGameMode", back_populates="round", order_by="RoundGameMode.game_mode")


class RoundGameMode(Base):
    __tablename__ = "round_game_modes"

    round_id = Column(Integer, ForeignKey("rounds.id"), primary_key=True)
    game_mode = Column(Integer, primary_key=True, autoincrement=False)
    voting_threshold = Column(Float, nullable=False, default=0)
    nominations_locked = Column(Boolean, nullable=False, default=False)

    round = relationship("Round", back_populates="game_modes")


class Nomination(Base):
    __tablename__ = "nominations"
    __table_args__ = (
        UniqueConstraint("round_id", "game_mode", "beatmapset_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    game_mode = Column(Integer, nullable=False)
    beatmapset_id = Column(Integer, ForeignKey("beatmapsets.id"), nullable=False)
    parent_id = Column(Integer, ForeignKey("nominations.id"), nullable=True)
    order = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    description_author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    description_state = Column(Integer, nullable=False, default=DescriptionState.not_reviewed)
    metadata_state = Column(Integer, nullable=False, default=MetadataState.unchecked)
    moderator_state = Column(Integer, nullable=False, default=ModeratorState.unchecked)
    overwrite_artist = Column(String(255), nullable=True)
    overwrite_title = Column(String(255), nullable=True)

    beatmapset = relationship("Beatmapset")
    description_author = relationship("User", foreign_keys=[description_author_id])


class NominationNominator(Base):
    __tablename__ = "nomination_nominators"

    nomination_id = Column(Integer, ForeignKey("nominations.id"), primary_key=True)
    nominator_id = Column(Integer, ForeignKey("users.id"), primary_key=True)


class NominationAssignee(Base):
    __tablename__ = "nomination_assignees"

    nomination_id = Column(Integer, ForeignKey("nominations.id"), primary_key=True)
    assignee_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    type = Column(Integer, primary_key=True)


class NominationExcludedBeatmap(Base):
    """A difficulty left out of the nomination's candidacy"""
    __tablename__ = "nomination_excluded_beatmaps"

    nomination_id = Column(Integer, ForeignKey("nominations.id"), primary_key=True)
    beatmap_id = Column(Integer, ForeignKey("beatmaps.id"), primary_key=True)


class Poll(Base):
    __tablename__ = "polls"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)
    game_mode = Column(Integer, nullable=False)
    beatmapset_id = Column(Integer, ForeignKey("beatmapsets.id"), nullable=False)
    topic_id = Column(Integer, nullable=False)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=False)
    result_no = Column(Integer, nullable=True)
    result_yes = Column(Integer, nullable=True)


# ============ Audit ============

class Log(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Integer, nullable=False, index=True)
    values = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
