from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker

from catalyst_monitor.config import Settings
from catalyst_monitor.errors import ConfigurationError
from catalyst_monitor.models import Base


class Backend:
    """Engine plus session factory for the relational backend.

    Constructed once per run and handed to the repository; nothing is cached
    at module level.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, key: str = "") -> Backend:
        if not url:
            raise ConfigurationError("BACKEND_URL is not set; backend credentials are required")
        try:
            parsed = make_url(url)
        except ArgumentError as exc:
            raise ConfigurationError(f"Invalid BACKEND_URL: {exc}") from exc
        if key:
            parsed = parsed.set(password=key)
        connect_args = {"check_same_thread": False} if parsed.drivername.startswith("sqlite") else {}
        return cls(create_engine(parsed, connect_args=connect_args))

    @classmethod
    def from_settings(cls, settings: Settings) -> Backend:
        return cls.from_url(settings.backend_url, settings.backend_key)

    def create_schema(self) -> None:
        """Create the mapped tables (local development and tests only)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Read-only session scope; rolls back on error and always closes.

        Usage::

            with backend.session_scope() as session:
                ...
        """
        session = self._factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
