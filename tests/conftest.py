"""Shared fixtures: in-memory database, fake content provider, user/beatmapset factories"""
from typing import Optional, Union

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from models import (
    Beatmap,
    Beatmapset,
    GameMode,
    RankedStatus,
    User,
    UserRole,
)
from core.capabilities import Capabilities
from services.cache_service import cache
from services.osu_client import ContentProvider


class FakeContentProvider(ContentProvider):
    """
    Resolves only what the test seeded into the database

    Calls are recorded so tests can assert on refresh flags. Ids and names
    listed in `unresolvable` resolve to None even when a row exists.
    """

    def __init__(self):
        self.beatmapset_calls = []
        self.user_calls = []
        self.unresolvable = set()

    def create_or_refresh_beatmapset(self, db, beatmapset_id, force_refresh=False):
        self.beatmapset_calls.append((beatmapset_id, force_refresh))
        if beatmapset_id in self.unresolvable:
            return None
        return db.get(Beatmapset, beatmapset_id)

    def create_or_refresh_user(self, db, user, by_name=False, force_update=False, store_banned=False):
        self.user_calls.append((user, by_name, force_update, store_banned))
        if user in self.unresolvable:
            return None
        if by_name:
            return db.query(User).filter(func.lower(User.name) == str(user).lower()).first()
        return db.get(User, int(user))


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def content() -> FakeContentProvider:
    return FakeContentProvider()


# =============================================================================
# FACTORIES
# =============================================================================


@pytest.fixture
def make_user(db):
    """
    Create a user with roles

    roles: Role, or (Role, game_mode), or (Role, game_mode, alumni)
    """
    def make(user_id: int, name: Optional[str] = None, roles=()) -> User:
        user = User(id=user_id, name=name or f"user{user_id}", country="JP", banned=False)
        db.add(user)

        for role in roles:
            if not isinstance(role, tuple):
                role = (role,)
            role_id = role[0]
            game_mode = role[1] if len(role) > 1 else None
            alumni = role[2] if len(role) > 2 else False
            db.add(UserRole(
                user_id=user_id,
                role_id=int(role_id),
                game_mode=None if game_mode is None else int(game_mode),
                alumni=alumni,
            ))

        db.commit()
        return user

    return make


@pytest.fixture
def make_beatmapset(db):
    """
    Create a beatmapset with one difficulty per game mode

    Beatmap ids are beatmapset_id * 10 + game mode.
    """
    def make(
        beatmapset_id: int,
        game_modes=(GameMode.osu,),
        ranked_status: Union[RankedStatus, int] = RankedStatus.pending,
        creator_id: int = 1,
    ) -> Beatmapset:
        beatmapset = Beatmapset(
            id=beatmapset_id,
            artist=f"Artist {beatmapset_id}",
            title=f"Title {beatmapset_id}",
            creator_id=creator_id,
            creator_name=f"user{creator_id}",
            ranked_status=int(ranked_status),
        )
        db.add(beatmapset)

        for game_mode in game_modes:
            db.add(Beatmap(
                id=beatmapset_id * 10 + int(game_mode),
                beatmapset_id=beatmapset_id,
                game_mode=int(game_mode),
                version=f"{GameMode(game_mode).name} diff",
                creator_id=creator_id,
                star_rating=4.5,
                key_count=4 if game_mode == GameMode.mania else None,
                ranked_status=int(ranked_status),
            ))

        db.commit()
        return beatmapset

    return make


@pytest.fixture
def capabilities_for(db):
    def build(user: User) -> Capabilities:
        db.refresh(user)
        return Capabilities.from_roles(user.id, user.roles)

    return build


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def client(session_factory, content):
    from main import app
    from api.deps import get_content_provider

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_content_provider] = lambda: content

    yield TestClient(app)

    app.dependency_overrides.clear()
