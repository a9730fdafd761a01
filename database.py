from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
from typing import Dict, Optional
import logging

from core.exceptions import LovedException

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./loved.db"
    log_level: str = "INFO"

    # game mode -> voting threshold used when seeding a new round
    default_voting_thresholds: Dict[int, float] = {}

    osu_api_base_url: str = "https://osu.ppy.sh"
    osu_client_id: Optional[int] = None
    osu_client_secret: Optional[str] = None
    osu_api_timeout: float = 10.0
    api_object_max_age_seconds: int = 3600

    bulk_refresh_delay_seconds: float = 3.0
    cache_ttl_seconds: int = 300

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite needs check_same_thread=False because FastAPI runs sync endpoints in a thread pool
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency: provide a database Session

    The session is closed once the request finishes; anything left
    uncommitted at that point is discarded.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator: run a unit of work atomically

    Usage:
        @transactional
        def some_business_logic(db: Session, ...):
            nomination = Nomination(...)
            db.add(nomination)
            # no manual commit, the decorator does it

    If the function raises:
        - the session is rolled back
        - a LovedException is a rejected request and logged at INFO;
          anything else is logged as an error with its traceback
        - the exception is re-raised for the caller to handle

    Notes:
        - the session must be the first positional argument or the `db` keyword
        - do not commit inside the function
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except LovedException as e:
            db.rollback()
            logger.info(f"{func.__name__} rejected: {e}")
            raise
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
