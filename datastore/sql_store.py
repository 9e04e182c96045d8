"""Relational reading store backed by SQLAlchemy."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import BigInteger, Float, Integer, create_engine, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from datastore.base import (
    DEFAULT_HISTORY_LIMIT,
    DuplicateReadingError,
    StoreError,
    StoreUnavailableError,
    effective_limit,
)
from models.records import Reading

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ReadingRow(Base):
    __tablename__ = "tds_readings"

    # Surrogate insertion sequence; only used to order equal timestamps.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    tds_ppm: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    def to_reading(self) -> Reading:
        return Reading(id=self.id, value_ppm=self.tds_ppm, observed_at=self.timestamp)


class SqlReadingStore:
    """Each operation checks out its own pooled session."""

    def __init__(self, engine: Engine, max_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.engine = engine
        self.max_limit = max_limit
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self._schema_ready = False
        try:
            self._ensure_schema()
        except StoreError:
            # Retried lazily on the next operation.
            logger.exception("Could not prepare reading table")

    @classmethod
    def from_url(cls, url: str, max_limit: int = DEFAULT_HISTORY_LIMIT) -> "SqlReadingStore":
        connect_args = {}
        if make_url(url).get_backend_name() == "sqlite":
            connect_args["check_same_thread"] = False
        engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        logger.info(
            "Using relational reading store at %s",
            make_url(url).render_as_string(hide_password=True),
        )
        return cls(engine, max_limit=max_limit)

    def insert(self, reading: Reading) -> None:
        self._ensure_schema()
        try:
            with self._translate_errors("insert"):
                with self._sessions.begin() as session:
                    session.add(
                        ReadingRow(
                            id=reading.id,
                            tds_ppm=reading.value_ppm,
                            timestamp=reading.observed_at,
                        )
                    )
        except IntegrityError as exc:
            raise DuplicateReadingError(reading.id) from exc

    def latest(self) -> Optional[Reading]:
        self._ensure_schema()
        statement = select(ReadingRow).order_by(ReadingRow.seq.desc()).limit(1)
        with self._translate_errors("latest"):
            with self._sessions() as session:
                row = session.scalars(statement).first()
                return row.to_reading() if row is not None else None

    def recent(self, limit: int) -> List[Reading]:
        count = effective_limit(limit, self.max_limit)
        self._ensure_schema()
        statement = (
            select(ReadingRow)
            .order_by(ReadingRow.timestamp.desc(), ReadingRow.seq.desc())
            .limit(count)
        )
        with self._translate_errors("recent"):
            with self._sessions() as session:
                return [row.to_reading() for row in session.scalars(statement)]

    def dispose(self) -> None:
        self.engine.dispose()

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._translate_errors("create schema"):
            Base.metadata.create_all(self.engine)
        self._schema_ready = True

    @contextmanager
    def _translate_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError:
            raise
        except DBAPIError as exc:
            raise StoreUnavailableError(f"Reading store {action} failed: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Reading store {action} failed: {exc}") from exc
