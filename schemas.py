"""
Request and response schemas
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models import AssigneeType, ConsentValue, GameMode, MetadataState, ModeratorState, Role
from services.refresh_worker import ApiObjectType


# ============ Shared ============

class UserResponse(BaseModel):
    id: int
    name: str
    country: str
    avatar_url: Optional[str] = None
    banned: bool

    class Config:
        from_attributes = True


class BeatmapResponse(BaseModel):
    id: int
    beatmapset_id: int
    game_mode: int
    version: str
    creator_id: int
    star_rating: float
    key_count: Optional[int] = None
    bpm: float
    total_length: int
    play_count: int
    ranked_status: int
    excluded: bool = False

    class Config:
        from_attributes = True


class BeatmapsetResponse(BaseModel):
    id: int
    artist: str
    title: str
    creator_id: int
    creator_name: str
    ranked_status: int
    favorite_count: int
    play_count: int
    submitted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============ Consents ============

class ConsentBeatmapsetSubmit(BaseModel):
    beatmapset_id: int
    consent: ConsentValue
    consent_reason: Optional[str] = None


class ConsentSubmit(BaseModel):
    user_id: int
    consent: Optional[ConsentValue] = None
    consent_reason: Optional[str] = None


class MapperConsentSubmit(BaseModel):
    consent: ConsentSubmit
    consent_beatmapsets: List[ConsentBeatmapsetSubmit] = Field(default_factory=list)


class ConsentBeatmapsetResponse(BaseModel):
    beatmapset_id: int
    consent: int
    consent_reason: Optional[str] = None
    beatmapset: BeatmapsetResponse

    class Config:
        from_attributes = True


class ConsentResponse(BaseModel):
    user_id: int
    consent: Optional[int] = None
    consent_reason: Optional[str] = None
    updated_at: datetime
    updater_id: int
    mapper: UserResponse
    beatmapset_consents: List[ConsentBeatmapsetResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


# ============ Reviews ============

class ReviewSubmit(BaseModel):
    beatmapset_id: int
    game_mode: GameMode
    score: int
    reason: str


class ReviewManySubmit(BaseModel):
    beatmapset_id: int
    game_modes: List[GameMode]
    score: int
    reason: str


class ReviewResponse(BaseModel):
    id: int
    beatmapset_id: int
    game_mode: int
    reviewer_id: int
    score: int
    reason: str
    reviewed_at: datetime
    active_captain: Optional[bool] = None

    class Config:
        from_attributes = True


# ============ Rounds ============

class RoundGameModeResponse(BaseModel):
    round_id: int
    game_mode: int
    voting_threshold: float
    nominations_locked: bool

    class Config:
        from_attributes = True


class RoundResponse(BaseModel):
    id: int
    name: str
    news_intro: Optional[str] = None
    news_intro_preview: Optional[str] = None
    news_outro: Optional[str] = None
    news_posted_at: Optional[datetime] = None
    done: bool

    class Config:
        from_attributes = True


class RoundWithCountResponse(RoundResponse):
    nomination_count: int


class RoundListResponse(BaseModel):
    complete_rounds: List[RoundWithCountResponse]
    incomplete_rounds: List[RoundWithCountResponse]


class RoundDetailResponse(RoundResponse):
    game_modes: Dict[int, RoundGameModeResponse]


class RoundCreateResponse(BaseModel):
    id: int


class RoundFields(BaseModel):
    name: Optional[str] = None
    news_intro: Optional[str] = None
    news_intro_preview: Optional[str] = None
    news_outro: Optional[str] = None
    news_posted_at: Optional[datetime] = None


class RoundUpdate(BaseModel):
    round_id: int
    round: RoundFields


# ============ Nominations ============

class NominationSubmit(BaseModel):
    round_id: int
    game_mode: GameMode
    beatmapset_id: int
    parent_id: Optional[int] = None


class DescriptionEdit(BaseModel):
    nomination_id: int
    description: Optional[str] = None


class MetadataEdit(BaseModel):
    nomination_id: int
    state: MetadataState
    artist: Optional[str] = None
    title: Optional[str] = None
    creators: Optional[List[str]] = None


class ModerationEdit(BaseModel):
    nomination_id: int
    state: ModeratorState


class NominatorsUpdate(BaseModel):
    nomination_id: int
    nominator_ids: List[int] = Field(default_factory=list)


class AssigneesUpdate(BaseModel):
    nomination_id: int
    type: AssigneeType
    assignee_ids: List[int] = Field(default_factory=list)


class ExcludedBeatmapsUpdate(BaseModel):
    nomination_id: int
    excluded_beatmap_ids: List[int] = Field(default_factory=list)


class NominationsLock(BaseModel):
    round_id: int
    game_mode: GameMode
    lock: bool


class PollResponse(BaseModel):
    id: int
    topic_id: int
    started_at: datetime
    ended_at: datetime
    result_no: Optional[int] = None
    result_yes: Optional[int] = None

    class Config:
        from_attributes = True


class NominationResponse(BaseModel):
    id: int
    round_id: int
    game_mode: int
    beatmapset_id: int
    parent_id: Optional[int] = None
    order: int
    description: Optional[str] = None
    description_author_id: Optional[int] = None
    description_state: int
    metadata_state: int
    moderator_state: int
    overwrite_artist: Optional[str] = None
    overwrite_title: Optional[str] = None
    description_author: Optional[UserResponse] = None

    class Config:
        from_attributes = True


class NominationDetailResponse(NominationResponse):
    beatmapset: BeatmapsetResponse
    poll: Optional[PollResponse] = None
    beatmaps: List[BeatmapResponse] = Field(default_factory=list)
    beatmapset_creators: List[UserResponse] = Field(default_factory=list)
    nominators: List[UserResponse] = Field(default_factory=list)
    metadata_assignees: List[UserResponse] = Field(default_factory=list)
    moderator_assignees: List[UserResponse] = Field(default_factory=list)


class NominationListResponse(BaseModel):
    round: RoundDetailResponse
    nominations: List[NominationDetailResponse]


class MetadataEditResponse(NominationResponse):
    beatmapset: BeatmapsetResponse
    beatmapset_creators: List[UserResponse] = Field(default_factory=list)


class ModerationResponse(BaseModel):
    id: int
    moderator_state: int


class NominatorsResponse(BaseModel):
    id: int
    nominators: List[UserResponse]


class AssigneesResponse(BaseModel):
    id: int
    type: AssigneeType
    assignees: List[UserResponse]


class AssigneeCandidatesResponse(BaseModel):
    metadatas: List[UserResponse]
    moderators: List[UserResponse]


# ============ Users and roles ============

class UserRoleSubmit(BaseModel):
    role_id: Role
    game_mode: Optional[GameMode] = None
    alumni: bool = False


class UserRoleResponse(BaseModel):
    role_id: int
    game_mode: Optional[int] = None
    alumni: bool

    class Config:
        from_attributes = True


class UserWithRolesResponse(UserResponse):
    roles: List[UserRoleResponse] = []


class UserAdd(BaseModel):
    name: str = Field(..., min_length=1)


class RolesUpdate(BaseModel):
    user_id: int
    roles: List[UserRoleSubmit]


# ============ Admin ============

class ApiObjectUpdate(BaseModel):
    type: ApiObjectType
    id: int


class ApiObjectBulkUpdate(BaseModel):
    type: ApiObjectType
    ids: List[int]
