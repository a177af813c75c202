# classifieds/db.py
"""Database engine and session utilities.

`AppContext` replaces module-level engine state: it is built once from
`Settings` and handed to every component, which opens a short session scope
per operation through `AppContext.run`.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import Settings
from .errors import StoreTimeoutError
from .ranking import RankingPolicy
from .utils import logger, retry

Base = declarative_base()


def build_engine(settings: Settings):
    url = settings.database_url
    timeout = settings.db_timeout_seconds
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    # tuned pool settings for cloud DB
    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=timeout,
        pool_pre_ping=True,
        connect_args={"options": f"-c statement_timeout={int(timeout * 1000)}"},
    )


class AppContext:
    """Explicitly passed store client, settings and ranking policy."""

    def __init__(self, settings: Settings | None = None, engine=None, ranking=None):
        self.settings = settings or Settings.from_env()
        self.engine = engine if engine is not None else build_engine(self.settings)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        self.ranking = ranking or RankingPolicy.from_settings(self.settings)

    def create_all(self):
        from . import models  # noqa: F401 ensure models are imported so tables are known

        Base.metadata.create_all(bind=self.engine)

    def dispose(self):
        self.engine.dispose()

    @contextmanager
    def session_scope(self):
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()

    def get_db(self):
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def _run_once(self, fn, *args, **kwargs):
        with self.session_scope() as db:
            return fn(db, *args, **kwargs)

    def run(self, fn, *args, **kwargs):
        """Run `fn(db, ...)` in its own transaction.

        Transient store failures are retried with backoff; once the attempts
        are used up the failure surfaces as StoreTimeoutError. Application
        errors pass through untouched on the first attempt.
        """
        s = self.settings
        attempt = retry(
            OperationalError,
            tries=s.db_retry_tries,
            delay=s.db_retry_delay,
            backoff=s.db_retry_backoff,
        )(self._run_once)
        try:
            return attempt(fn, *args, **kwargs)
        except OperationalError as e:
            logger.error("Store operation %s gave up: %s", getattr(fn, "__name__", fn), e)
            raise StoreTimeoutError("store operation did not complete in time") from e
