"""
Bulk refresh worker

Consumes a queue of (object type, id) jobs on a background thread and
refreshes each from the content provider, pausing between jobs so the
external API is not flooded. Each job runs in its own session.
"""
import logging
import queue
import threading
from enum import Enum
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from database import SessionLocal, settings
from services.osu_client import ContentProvider

logger = logging.getLogger(__name__)


class ApiObjectType(str, Enum):
    beatmapset = "beatmapset"
    user = "user"


def refresh_api_object(
    db: Session,
    content: ContentProvider,
    object_type: ApiObjectType,
    object_id: int,
):
    """Force a refresh of one beatmapset or user. Returns None if unresolvable."""
    if object_type == ApiObjectType.beatmapset:
        return content.create_or_refresh_beatmapset(db, object_id, force_refresh=True)

    return content.create_or_refresh_user(
        db,
        object_id,
        force_update=True,
        store_banned=True,
    )


class RefreshWorker:
    """
    Rate-limited refresh queue

    Usage:
        worker = RefreshWorker(content)
        worker.enqueue(ApiObjectType.user, [1, 2, 3])
        ...
        worker.stop()

    The thread starts on the first enqueue. delay_seconds is waited after
    every job, success or not.
    """

    def __init__(
        self,
        content: ContentProvider,
        delay_seconds: float = settings.bulk_refresh_delay_seconds,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.content = content
        self.delay_seconds = delay_seconds
        self.session_factory = session_factory

        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._thread_lock = threading.Lock()

    def enqueue(self, object_type: ApiObjectType, object_ids: Iterable[int]) -> int:
        count = 0
        for object_id in object_ids:
            self._queue.put((object_type, object_id))
            count += 1

        self._ensure_started()
        logger.info(f"Queued {count} {object_type.value} refresh job(s)")
        return count

    def join(self) -> None:
        """Block until every queued job has been processed"""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        self._queue.put(None)
        if self._thread is not None:
            self._thread.join(timeout)

    def _ensure_started(self) -> None:
        with self._thread_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="api-refresh-worker",
                daemon=True,
            )
            self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            job = self._queue.get()
            try:
                if job is None:
                    continue
                self._process(*job)
            finally:
                self._queue.task_done()

            if job is not None and self.delay_seconds > 0:
                # a stop request cuts the pause short
                self._stop.wait(self.delay_seconds)

    def _process(self, object_type: ApiObjectType, object_id: int) -> None:
        db = self.session_factory()
        try:
            api_object = refresh_api_object(db, self.content, object_type, object_id)
            db.commit()

            if api_object is None:
                logger.warning(f"Could not update {object_type.value} {object_id} from bulk request")
            else:
                logger.info(f"Updated {object_type.value} {object_id} from bulk request")
        except Exception as e:
            logger.error(f"Bulk refresh of {object_type.value} {object_id} failed: {e}", exc_info=True)
            db.rollback()
        finally:
            db.close()
