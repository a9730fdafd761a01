"""
Content provider: osu! API v2

Resolves beatmapsets and users, storing them in the local content cache
tables (beatmapsets, beatmaps, users). A cached row younger than
api_object_max_age_seconds is returned without a request unless a refresh
is forced.

Calls are synchronous within the request. A missing remote object, a
timeout or any other request failure resolves to None; the caller decides
which error to report. Nothing is retried.
"""
import logging
import threading
import time
from datetime import timedelta
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.locks import KeyedLock
from database import settings
from models import Beatmap, Beatmapset, GameMode, User, utcnow

logger = logging.getLogger(__name__)


class ContentProvider:
    """Interface the managers depend on"""

    def create_or_refresh_beatmapset(
        self,
        db: Session,
        beatmapset_id: int,
        force_refresh: bool = False,
    ) -> Optional[Beatmapset]:
        raise NotImplementedError

    def create_or_refresh_user(
        self,
        db: Session,
        user: Union[int, str],
        by_name: bool = False,
        force_update: bool = False,
        store_banned: bool = False,
    ) -> Optional[User]:
        raise NotImplementedError


class OsuApiClient(ContentProvider):
    """ContentProvider backed by the osu! API with client-credentials auth"""

    def __init__(
        self,
        base_url: str = settings.osu_api_base_url,
        client_id: Optional[int] = settings.osu_client_id,
        client_secret: Optional[str] = settings.osu_client_secret,
        timeout: float = settings.osu_api_timeout,
        max_age_seconds: int = settings.api_object_max_age_seconds,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.max_age = timedelta(seconds=max_age_seconds)
        self.http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()
        self._user_locks = KeyedLock()

    def close(self) -> None:
        self.http.close()

    # ============ Auth ============

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token is not None and time.monotonic() < self._token_expires_at:
                return self._token

            response = self.http.post(
                "/oauth/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "client_credentials",
                    "scope": "public",
                },
            )
            response.raise_for_status()
            data = response.json()

            self._token = data["access_token"]
            # renew a minute early
            self._token_expires_at = time.monotonic() + data["expires_in"] - 60
            logger.info("Fetched osu! API client token")
            return self._token

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        try:
            response = self.http.get(
                f"/api/v2{path}",
                params=params,
                headers={"Authorization": f"Bearer {self._access_token()}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"osu! API request {path} failed: {e}")
            return None

        if response.status_code == 404:
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"osu! API request {path} failed: {e}")
            return None

        return response.json()

    def _is_fresh(self, fetched_at) -> bool:
        return fetched_at is not None and utcnow() - fetched_at < self.max_age

    # ============ Beatmapsets ============

    def create_or_refresh_beatmapset(
        self,
        db: Session,
        beatmapset_id: int,
        force_refresh: bool = False,
    ) -> Optional[Beatmapset]:
        existing = db.get(Beatmapset, beatmapset_id)

        if existing is not None and not force_refresh and self._is_fresh(existing.api_fetched_at):
            return existing

        data = self._get(f"/beatmapsets/{beatmapset_id}")
        if data is None:
            logger.warning(f"Beatmapset #{beatmapset_id} could not be fetched")
            return None

        return self._store_beatmapset(db, data, existing)

    def _store_beatmapset(
        self,
        db: Session,
        data: Dict[str, Any],
        beatmapset: Optional[Beatmapset],
    ) -> Beatmapset:
        now = utcnow()

        if beatmapset is None:
            beatmapset = Beatmapset(id=data["id"])
            db.add(beatmapset)

        beatmapset.artist = data["artist"]
        beatmapset.title = data["title"]
        beatmapset.creator_id = data["user_id"]
        beatmapset.creator_name = data["creator"]
        beatmapset.ranked_status = data["ranked"]
        beatmapset.favorite_count = data.get("favourite_count", 0)
        beatmapset.play_count = data.get("play_count", 0)
        beatmapset.api_fetched_at = now

        existing_beatmaps = {
            beatmap.id: beatmap
            for beatmap in db.query(Beatmap).filter(Beatmap.beatmapset_id == beatmapset.id)
        }
        seen_ids = set()

        for beatmap_data in data.get("beatmaps") or []:
            beatmap = existing_beatmaps.get(beatmap_data["id"])
            if beatmap is None:
                beatmap = Beatmap(id=beatmap_data["id"], beatmapset_id=beatmapset.id)
                db.add(beatmap)

            game_mode = beatmap_data["mode_int"]
            beatmap.game_mode = game_mode
            beatmap.version = beatmap_data["version"]
            beatmap.creator_id = beatmap_data["user_id"]
            beatmap.star_rating = beatmap_data["difficulty_rating"]
            beatmap.key_count = int(beatmap_data["cs"]) if game_mode == GameMode.mania else None
            beatmap.bpm = beatmap_data.get("bpm") or 0
            beatmap.total_length = beatmap_data.get("total_length", 0)
            beatmap.play_count = beatmap_data.get("playcount", 0)
            beatmap.ranked_status = beatmap_data["ranked"]
            beatmap.deleted_at = None
            seen_ids.add(beatmap.id)

        for beatmap_id, beatmap in existing_beatmaps.items():
            if beatmap_id not in seen_ids and beatmap.deleted_at is None:
                beatmap.deleted_at = now

        db.flush()
        db.refresh(beatmapset)

        logger.info(f"Stored beatmapset #{beatmapset.id} ({beatmapset.artist} - {beatmapset.title})")
        return beatmapset

    # ============ Users ============

    def create_or_refresh_user(
        self,
        db: Session,
        user: Union[int, str],
        by_name: bool = False,
        force_update: bool = False,
        store_banned: bool = False,
    ) -> Optional[User]:
        """
        Resolve a user by id or name, refreshing the stored row when stale

        The per-user locks only collapse concurrent fetches of the same user
        inside this process. They are released before the caller commits, so
        two first-time resolves in separate requests can still race on the
        insert; the losing request fails on commit.
        """
        lock_key = str(user).lower() if by_name else int(user)

        with self._user_locks.acquire(lock_key):
            if by_name:
                existing = db.query(User).filter(func.lower(User.name) == str(user).lower()).first()
            else:
                existing = db.get(User, int(user))

            if existing is not None and not force_update and self._is_fresh(existing.api_fetched_at):
                return existing

            data = self._get(
                f"/users/{quote(str(user))}",
                params={"key": "username" if by_name else "id"},
            )

            if data is None:
                if store_banned and existing is not None:
                    existing.banned = True
                    existing.api_fetched_at = utcnow()
                    db.flush()
                    logger.info(f"Marked user {existing.id} ({existing.name}) as banned")
                    return existing

                logger.warning(f"User {user} could not be fetched")
                return None

            if not by_name:
                return self._store_user(db, data)

        # name lookups store under the resolved id so they serialize with id lookups
        with self._user_locks.acquire(int(data["id"])):
            return self._store_user(db, data)

    def _store_user(self, db: Session, data: Dict[str, Any]) -> User:
        user = db.get(User, data["id"])
        if user is None:
            user = User(id=data["id"])
            db.add(user)

        user.name = data["username"]
        user.country = data.get("country_code") or "__"
        user.avatar_url = data.get("avatar_url")
        user.banned = bool(data.get("is_restricted", False))
        user.api_fetched_at = utcnow()
        db.flush()

        return user
