"""
Nomination Manager: a beatmapset's candidacy within a round and game mode

Independent state axes per nomination:
- description_state: not_reviewed -> reviewed (news editing an existing text)
- metadata_state: unchecked / needs_change / good (metadata checkers)
- moderator_state: free-form, set by moderators

Related collections (nominators, assignees, excluded beatmaps) are each
replaced wholesale by their own operation. There are no foreign-key
cascades: deleting a nomination removes its child rows first.

Ordering:
- a new nomination is appended after the highest order in (round, mode),
  which is the current count while orders are dense
- order values may develop gaps after deletions; only relative order matters
- display sorts by (order, id)
"""
from sqlalchemy import and_, func
from sqlalchemy.orm import Session, joinedload
from typing import Dict, List, Optional
import logging

from models import (
    AssigneeType,
    Beatmap,
    BeatmapsetCreator,
    DescriptionState,
    GameMode,
    MetadataState,
    ModeratorState,
    Nomination,
    NominationAssignee,
    NominationExcludedBeatmap,
    NominationNominator,
    Poll,
    RankedStatus,
    Role,
    Round,
    RoundGameMode,
    User,
    UserRole,
)
from schemas import (
    AssigneeCandidatesResponse,
    AssigneesResponse,
    BeatmapResponse,
    MetadataEditResponse,
    ModerationResponse,
    NominationDetailResponse,
    NominationListResponse,
    NominationResponse,
    NominatorsResponse,
    PollResponse,
    RoundDetailResponse,
    RoundGameModeResponse,
    UserResponse,
)
from core.capabilities import Capabilities
from core.exceptions import (
    DuplicateNomination,
    Forbidden,
    InvariantViolation,
    NominationNotFound,
    NotFound,
    RoundNotFound,
    UserNotFound,
    ValidationError,
)
from core.round_manager import round_fields
from core.locks import (
    lock_multiple_nominations,
    with_nomination_lock,
    with_round_game_mode_lock,
)
from services.grouping import group_by, unique_by
from services.osu_client import ContentProvider
from database import transactional

logger = logging.getLogger(__name__)


class NominationManager:
    """Nomination lifecycle"""

    # ============ Create / delete ============

    @staticmethod
    @transactional
    def create_nomination(
        db: Session,
        content: ContentProvider,
        capabilities: Capabilities,
        round_id: int,
        game_mode: GameMode,
        beatmapset_id: int,
        parent_id: Optional[int] = None,
    ) -> NominationDetailResponse:
        """
        Nominate a beatmapset in a round and game mode

        Preconditions:
        1. the round exists
        2. parent_id, if given, is an existing nomination
        3. the beatmapset resolves, is at most pending and has the mode
        4. not already nominated in (round, mode)

        Flow:
        1. Validate
        2. Append at order = highest order in (round, mode) + 1, starting at 0
        3. Record the actor as the sole nominator

        Raises:
            RoundNotFound, ValidationError, DuplicateNomination
        """
        if db.get(Round, round_id) is None:
            raise RoundNotFound(round_id)

        if parent_id is not None and db.get(Nomination, parent_id) is None:
            raise ValidationError("Invalid parent nomination ID")

        beatmapset = content.create_or_refresh_beatmapset(db, beatmapset_id)
        if beatmapset is None:
            raise ValidationError("Invalid beatmapset ID")

        # TODO: allow sets that are Loved overall but still Pending in this mode
        if beatmapset.ranked_status > RankedStatus.pending:
            raise ValidationError("Beatmapset is already Ranked/Loved/Qualified")

        if game_mode not in beatmapset.game_modes:
            raise ValidationError(f"Beatmapset has no beatmaps in game mode {int(game_mode)}")

        existing = db.query(Nomination).filter(
            Nomination.round_id == round_id,
            Nomination.game_mode == game_mode,
            Nomination.beatmapset_id == beatmapset.id
        ).first()
        if existing:
            raise DuplicateNomination("Duplicate nomination. Refresh the page if you don't see it")

        next_order = db.query(func.coalesce(func.max(Nomination.order) + 1, 0)).filter(
            Nomination.round_id == round_id,
            Nomination.game_mode == game_mode
        ).scalar()

        nomination = Nomination(
            round_id=round_id,
            game_mode=int(game_mode),
            beatmapset_id=beatmapset.id,
            parent_id=parent_id,
            order=next_order,
        )
        db.add(nomination)
        db.flush()

        db.add(NominationNominator(nomination_id=nomination.id, nominator_id=capabilities.user_id))
        db.flush()

        logger.info(
            f"Created nomination {nomination.id} for beatmapset #{beatmapset.id} "
            f"in round {round_id} mode {int(game_mode)} at order {next_order}"
        )

        return NominationManager._detail(db, nomination)

    @staticmethod
    @transactional
    def delete_nomination(db: Session, capabilities: Capabilities, nomination_id: int) -> None:
        """
        Delete a nomination and its child rows

        Allowed for god or one of the nomination's nominators.
        Order: assignees, excluded beatmaps, nominators, then the nomination.

        Raises:
            NominationNotFound, Forbidden
        """
        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)

        if not capabilities.has_god():
            is_nominator = db.query(NominationNominator).filter(
                NominationNominator.nomination_id == nomination_id,
                NominationNominator.nominator_id == capabilities.user_id
            ).first()
            if is_nominator is None:
                raise Forbidden("Must be a nominator of this nomination")

        db.query(NominationAssignee).filter(
            NominationAssignee.nomination_id == nomination_id
        ).delete(synchronize_session=False)
        db.query(NominationExcludedBeatmap).filter(
            NominationExcludedBeatmap.nomination_id == nomination_id
        ).delete(synchronize_session=False)
        db.query(NominationNominator).filter(
            NominationNominator.nomination_id == nomination_id
        ).delete(synchronize_session=False)
        db.delete(nomination)
        db.flush()

        logger.info(f"Deleted nomination {nomination_id}")

    # ============ Description / metadata / moderation ============

    @staticmethod
    @transactional
    def edit_description(
        db: Session,
        capabilities: Capabilities,
        nomination_id: int,
        description: Optional[str],
    ) -> NominationResponse:
        """
        Edit a nomination's news description

        Who may edit:
        - a captain of the nomination's mode while the description is not reviewed
        - a news author, but only an existing description
        Clearing the description needs captain for the mode.

        Effects:
        - author: cleared with the text; set to the actor when the text is new;
          otherwise kept
        - state: reviewed when a news author rewrites existing text,
          otherwise not_reviewed

        Raises:
            NominationNotFound, Forbidden
        """
        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)

        previous_description = nomination.description
        is_captain = capabilities.has_captain(nomination.game_mode)
        is_news = capabilities.has_news()

        captain_may_edit = nomination.description_state != DescriptionState.reviewed and is_captain
        news_may_edit = previous_description is not None and is_news

        if not captain_may_edit and not news_may_edit:
            raise Forbidden("Must be a captain for this game mode, or a news author editing an existing description")

        if description is None and not is_captain:
            raise Forbidden("Can't remove description as editor")

        if description is None:
            author_id = None
        elif previous_description is None:
            author_id = capabilities.user_id
        else:
            author_id = nomination.description_author_id

        if is_news and previous_description is not None and description is not None:
            state = DescriptionState.reviewed
        else:
            state = DescriptionState.not_reviewed

        nomination.description = description
        nomination.description_author_id = author_id
        nomination.description_state = int(state)
        db.flush()

        logger.info(f"Nomination {nomination_id} description edited by user {capabilities.user_id} ({state.name})")

        db.refresh(nomination)
        return NominationResponse.model_validate(nomination)

    @staticmethod
    @transactional
    def edit_metadata(
        db: Session,
        content: ContentProvider,
        capabilities: Capabilities,
        nomination_id: int,
        state: MetadataState,
        artist: Optional[str] = None,
        title: Optional[str] = None,
        creators: Optional[List[str]] = None,
    ) -> MetadataEditResponse:
        """
        Edit a nomination's metadata check and creator credits

        Requires metadata or news.
        - Only metadata checkers change metadata_state and the overwrites.
          Moving to good clears the overwrites, and coming from needs_change
          refreshes the beatmapset.
        - creators, when given, replaces the per-mode creator credits
          (an empty list clears them). Names are resolved by the content
          provider; banned users are stored too.

        Raises:
            Forbidden, NominationNotFound, UserNotFound
        """
        if not capabilities.has_metadata() and not capabilities.has_news():
            raise Forbidden("Must be a metadata checker or news author")

        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)

        if capabilities.has_metadata():
            if state == MetadataState.good:
                artist = None
                title = None

                if nomination.metadata_state == MetadataState.needs_change:
                    content.create_or_refresh_beatmapset(db, nomination.beatmapset_id, force_refresh=True)

            nomination.metadata_state = int(state)
            nomination.overwrite_artist = artist
            nomination.overwrite_title = title
            db.flush()

            logger.info(f"Nomination {nomination_id} metadata set to {MetadataState(state).name}")

        if creators is not None:
            resolved: List[User] = []
            for name in creators:
                user = content.create_or_refresh_user(db, name, by_name=True, store_banned=True)
                if user is None:
                    raise UserNotFound(name)
                resolved.append(user)

            db.query(BeatmapsetCreator).filter(
                BeatmapsetCreator.beatmapset_id == nomination.beatmapset_id,
                BeatmapsetCreator.game_mode == nomination.game_mode
            ).delete(synchronize_session=False)

            for user in unique_by(resolved):
                db.add(BeatmapsetCreator(
                    beatmapset_id=nomination.beatmapset_id,
                    creator_id=user.id,
                    game_mode=nomination.game_mode,
                ))
            db.flush()

            logger.info(f"Nomination {nomination_id} creators replaced with {[user.name for user in resolved]}")

        db.refresh(nomination)
        response = MetadataEditResponse.model_validate(nomination)
        response.beatmapset_creators = [
            UserResponse.model_validate(user)
            for user in _creators(db, nomination.beatmapset_id, nomination.game_mode)
        ]
        return response

    @staticmethod
    @transactional
    def edit_moderation(
        db: Session,
        capabilities: Capabilities,
        nomination_id: int,
        state: ModeratorState,
    ) -> ModerationResponse:
        """
        Overwrite a nomination's moderator state (moderators only)

        Raises:
            Forbidden, NominationNotFound
        """
        if not capabilities.has_moderator():
            raise Forbidden("Must be a moderator")

        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)

        nomination.moderator_state = int(state)
        db.flush()

        logger.info(f"Nomination {nomination_id} moderator state set to {ModeratorState(state).name}")
        return ModerationResponse(id=nomination.id, moderator_state=nomination.moderator_state)

    # ============ Ordering / collections ============

    @staticmethod
    @transactional
    def reorder_nominations(db: Session, capabilities: Capabilities, orders: Dict[int, int]) -> None:
        """
        Apply captain-assigned display orders

        Each update is independent; resulting values need not be unique.

        Raises:
            Forbidden, NominationNotFound
        """
        if not capabilities.has_captain():
            raise Forbidden("Must be a captain")

        nominations = {
            nomination.id: nomination
            for nomination in lock_multiple_nominations(list(orders), db).all()
        }

        for nomination_id, order in orders.items():
            nomination = nominations.get(nomination_id)
            if nomination is None:
                raise NominationNotFound(nomination_id)
            nomination.order = order

        db.flush()
        logger.info(f"Reordered {len(orders)} nomination(s)")

    @staticmethod
    @transactional
    def set_nominators(
        db: Session,
        capabilities: Capabilities,
        nomination_id: int,
        nominator_ids: List[int],
    ) -> NominatorsResponse:
        """
        Replace a nomination's nominators (captains only); empty list clears them

        Raises:
            Forbidden, NominationNotFound, UserNotFound
        """
        if not capabilities.has_captain():
            raise Forbidden("Must be a captain")

        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)

        nominator_ids = list(dict.fromkeys(nominator_ids))
        _check_users_exist(db, nominator_ids)

        db.query(NominationNominator).filter(
            NominationNominator.nomination_id == nomination_id
        ).delete(synchronize_session=False)
        for nominator_id in nominator_ids:
            db.add(NominationNominator(nomination_id=nomination_id, nominator_id=nominator_id))
        db.flush()

        logger.info(f"Nomination {nomination_id} nominators set to {nominator_ids}")

        return NominatorsResponse(
            id=nomination_id,
            nominators=[UserResponse.model_validate(user) for user in _nominators(db, nomination_id)],
        )

    @staticmethod
    @transactional
    def set_assignees(
        db: Session,
        capabilities: Capabilities,
        nomination_id: int,
        assignee_type: AssigneeType,
        assignee_ids: List[int],
    ) -> AssigneesResponse:
        """
        Replace a nomination's assignees of one type

        Requires news, or the role matching the type (metadata / moderator).

        Raises:
            Forbidden, NominationNotFound, UserNotFound
        """
        assignee_type = AssigneeType(assignee_type)
        has_type_role = (
            capabilities.has_metadata()
            if assignee_type == AssigneeType.metadata
            else capabilities.has_moderator()
        )
        if not capabilities.has_news() and not has_type_role:
            raise Forbidden(f"Must have {assignee_type.name} or news role")

        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)

        assignee_ids = list(dict.fromkeys(assignee_ids))
        _check_users_exist(db, assignee_ids)

        db.query(NominationAssignee).filter(
            NominationAssignee.nomination_id == nomination_id,
            NominationAssignee.type == assignee_type
        ).delete(synchronize_session=False)
        for assignee_id in assignee_ids:
            db.add(NominationAssignee(
                nomination_id=nomination_id,
                assignee_id=assignee_id,
                type=int(assignee_type),
            ))
        db.flush()

        logger.info(f"Nomination {nomination_id} {assignee_type.name} assignees set to {assignee_ids}")

        return AssigneesResponse(
            id=nomination_id,
            type=assignee_type,
            assignees=[
                UserResponse.model_validate(user)
                for user in _assignees(db, nomination_id, assignee_type)
            ],
        )

    @staticmethod
    @transactional
    def set_excluded_beatmaps(
        db: Session,
        capabilities: Capabilities,
        nomination_id: int,
        beatmap_ids: List[int],
    ) -> None:
        """
        Replace the difficulties excluded from a nomination (captains only)

        Raises:
            Forbidden, NominationNotFound, NotFound
        """
        if not capabilities.has_captain():
            raise Forbidden("Must be a captain")

        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)

        beatmap_ids = list(dict.fromkeys(beatmap_ids))
        if beatmap_ids:
            found = {
                beatmap_id
                for (beatmap_id,) in db.query(Beatmap.id).filter(Beatmap.id.in_(beatmap_ids))
            }
            missing = [beatmap_id for beatmap_id in beatmap_ids if beatmap_id not in found]
            if missing:
                raise NotFound(f"Beatmap {missing[0]} not found")

        db.query(NominationExcludedBeatmap).filter(
            NominationExcludedBeatmap.nomination_id == nomination_id
        ).delete(synchronize_session=False)
        for beatmap_id in beatmap_ids:
            db.add(NominationExcludedBeatmap(nomination_id=nomination_id, beatmap_id=beatmap_id))
        db.flush()

        logger.info(f"Nomination {nomination_id} excluded beatmaps set to {beatmap_ids}")

    @staticmethod
    @transactional
    def lock_nominations(
        db: Session,
        capabilities: Capabilities,
        round_id: int,
        game_mode: GameMode,
        locked: bool,
    ) -> None:
        """
        Flip the nominations_locked flag of a round's game mode

        Requires news or captain for the mode.

        Raises:
            Forbidden, NotFound
        """
        if not capabilities.has_news() and not capabilities.has_captain(game_mode):
            raise Forbidden("Must be a news author or captain for this game mode")

        round_game_mode = with_round_game_mode_lock(round_id, game_mode, db).first()
        if not round_game_mode:
            raise NotFound(f"Round {round_id} has no game mode {int(game_mode)}")

        round_game_mode.nominations_locked = locked
        db.flush()

        logger.info(f"Round {round_id} mode {int(game_mode)} nominations {'locked' if locked else 'unlocked'}")

    # ============ Listing ============

    @staticmethod
    def list_nominations(db: Session, round_id: int) -> NominationListResponse:
        """
        Assemble every nomination of a round

        One query per relation, grouped by nomination id afterwards. The
        creator/beatmap join fans out across both relations, so those
        collections are de-duplicated.

        Raises:
            RoundNotFound
        """
        round_obj = db.query(Round).options(joinedload(Round.game_modes)).filter(Round.id == round_id).first()
        if not round_obj:
            raise RoundNotFound(round_id)

        nominations = (
            db.query(Nomination)
            .options(joinedload(Nomination.beatmapset), joinedload(Nomination.description_author))
            .filter(Nomination.round_id == round_id)
            .order_by(Nomination.order.asc(), Nomination.id.asc())
            .all()
        )

        assignees_by_nomination = group_by(
            db.query(NominationAssignee.nomination_id, NominationAssignee.type, User)
            .join(Nomination, NominationAssignee.nomination_id == Nomination.id)
            .join(User, NominationAssignee.assignee_id == User.id)
            .filter(Nomination.round_id == round_id)
            .order_by(User.name)
            .all(),
            key=lambda row: row[0],
        )

        includes_by_nomination = group_by(
            db.query(Nomination.id, User, Beatmap, NominationExcludedBeatmap.beatmap_id)
            .select_from(Nomination)
            .outerjoin(BeatmapsetCreator, and_(
                BeatmapsetCreator.beatmapset_id == Nomination.beatmapset_id,
                BeatmapsetCreator.game_mode == Nomination.game_mode,
            ))
            .outerjoin(User, BeatmapsetCreator.creator_id == User.id)
            .outerjoin(Beatmap, and_(
                Beatmap.beatmapset_id == Nomination.beatmapset_id,
                Beatmap.game_mode == Nomination.game_mode,
                Beatmap.deleted_at.is_(None),
            ))
            .outerjoin(NominationExcludedBeatmap, and_(
                NominationExcludedBeatmap.nomination_id == Nomination.id,
                NominationExcludedBeatmap.beatmap_id == Beatmap.id,
            ))
            .filter(Nomination.round_id == round_id)
            .all(),
            key=lambda row: row[0],
        )

        nominators_by_nomination = group_by(
            db.query(NominationNominator.nomination_id, User)
            .join(Nomination, NominationNominator.nomination_id == Nomination.id)
            .join(User, NominationNominator.nominator_id == User.id)
            .filter(Nomination.round_id == round_id)
            .order_by(User.name)
            .all(),
            key=lambda row: row[0],
            value=lambda row: row[1],
        )

        polls = {
            (poll.game_mode, poll.beatmapset_id): poll
            for poll in db.query(Poll).filter(Poll.round_id == round_id)
        }

        views = []
        for nomination in nominations:
            includes = includes_by_nomination.get(nomination.id, [])

            excluded_ids = {row[3] for row in includes if row[3] is not None}
            beatmaps = sorted(
                unique_by(row[2] for row in includes),
                key=lambda beatmap: (beatmap.key_count or 0, beatmap.star_rating),
            )

            assignees = assignees_by_nomination.get(nomination.id, [])

            view = NominationDetailResponse.model_validate(nomination)
            view.beatmaps = [_beatmap_view(beatmap, beatmap.id in excluded_ids) for beatmap in beatmaps]
            view.beatmapset_creators = [
                UserResponse.model_validate(user)
                for user in sorted(unique_by(row[1] for row in includes), key=lambda user: (user.name, user.id))
            ]
            view.nominators = [
                UserResponse.model_validate(user) for user in nominators_by_nomination.get(nomination.id, [])
            ]
            view.metadata_assignees = [
                UserResponse.model_validate(row[2]) for row in assignees if row[1] == AssigneeType.metadata
            ]
            view.moderator_assignees = [
                UserResponse.model_validate(row[2]) for row in assignees if row[1] == AssigneeType.moderator
            ]

            poll = polls.get((nomination.game_mode, nomination.beatmapset_id))
            view.poll = None if poll is None else PollResponse.model_validate(poll)

            views.append(view)

        return NominationListResponse(
            round=RoundDetailResponse(
                **round_fields(round_obj),
                game_modes={
                    round_game_mode.game_mode: RoundGameModeResponse.model_validate(round_game_mode)
                    for round_game_mode in round_obj.game_modes
                },
            ),
            nominations=views,
        )

    @staticmethod
    def list_assignee_candidates(db: Session) -> AssigneeCandidatesResponse:
        """Users holding the metadata role and the moderator role"""
        def holders(role: Role) -> List[UserResponse]:
            users = (
                db.query(User)
                .join(UserRole, UserRole.user_id == User.id)
                .filter(UserRole.role_id == role, UserRole.alumni.is_(False))
                .order_by(User.name)
                .all()
            )
            return [UserResponse.model_validate(user) for user in unique_by(users)]

        return AssigneeCandidatesResponse(
            metadatas=holders(Role.metadata),
            moderators=holders(Role.moderator),
        )

    @staticmethod
    def _detail(db: Session, nomination: Nomination) -> NominationDetailResponse:
        """Single-nomination view right after creation"""
        stored = db.get(Nomination, nomination.id)
        if stored is None:
            raise InvariantViolation("Missing nomination immediately after create")

        beatmaps = (
            db.query(Beatmap)
            .filter(
                Beatmap.beatmapset_id == stored.beatmapset_id,
                Beatmap.game_mode == stored.game_mode,
                Beatmap.deleted_at.is_(None)
            )
            .all()
        )

        view = NominationDetailResponse.model_validate(stored)
        view.beatmaps = [
            _beatmap_view(beatmap, False)
            for beatmap in sorted(beatmaps, key=lambda b: (b.key_count or 0, b.star_rating))
        ]
        view.beatmapset_creators = [
            UserResponse.model_validate(user)
            for user in _creators(db, stored.beatmapset_id, stored.game_mode)
        ]
        view.nominators = [UserResponse.model_validate(user) for user in _nominators(db, stored.id)]
        return view


def _beatmap_view(beatmap: Beatmap, excluded: bool) -> BeatmapResponse:
    view = BeatmapResponse.model_validate(beatmap)
    view.excluded = excluded
    return view


def _check_users_exist(db: Session, user_ids: List[int]) -> None:
    if not user_ids:
        return

    found = {user_id for (user_id,) in db.query(User.id).filter(User.id.in_(user_ids))}
    for user_id in user_ids:
        if user_id not in found:
            raise UserNotFound(user_id)


def _creators(db: Session, beatmapset_id: int, game_mode: int) -> List[User]:
    return (
        db.query(User)
        .join(BeatmapsetCreator, BeatmapsetCreator.creator_id == User.id)
        .filter(
            BeatmapsetCreator.beatmapset_id == beatmapset_id,
            BeatmapsetCreator.game_mode == game_mode
        )
        .order_by(User.name)
        .all()
    )


def _nominators(db: Session, nomination_id: int) -> List[User]:
    return (
        db.query(User)
        .join(NominationNominator, NominationNominator.nominator_id == User.id)
        .filter(NominationNominator.nomination_id == nomination_id)
        .order_by(User.name)
        .all()
    )


def _assignees(db: Session, nomination_id: int, assignee_type: AssigneeType) -> List[User]:
    return (
        db.query(User)
        .join(NominationAssignee, NominationAssignee.assignee_id == User.id)
        .filter(
            NominationAssignee.nomination_id == nomination_id,
            NominationAssignee.type == assignee_type
        )
        .order_by(User.name)
        .all()
    )
