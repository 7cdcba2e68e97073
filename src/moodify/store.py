"""
Relational track store (SQLAlchemy 2).

Tracks seen in search/recommendation results get a local `songs` row so
favorites and playlists can reference them later. Rows are inserted when
the provider id is new and never updated here.
"""

from __future__ import annotations

import datetime
import logging
from typing import Iterable, List, Optional

from sqlalchemy import DateTime, Integer, String, create_engine, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .tracks import Track

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO NOTHING.
_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


class Base(DeclarativeBase):
    pass


class Song(Base):
    __tablename__ = "songs"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    spotify_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(500))
    artist: Mapped[str] = mapped_column(String(500))
    album: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, default=0)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    preview_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class TrackStore:
    def __init__(self, database_url: str) -> None:
        connect_args = {}
        if database_url.startswith("sqlite"):
            # Background tasks write from the threadpool.
            connect_args["check_same_thread"] = False
        self._engine = create_engine(database_url, echo=False, future=True, connect_args=connect_args)
        self._sessions = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        logger.debug(f"Track store ready: {self._engine.url.render_as_string(hide_password=True)}")

    def session(self) -> Session:
        return self._sessions()

    def save_tracks(self, tracks: Iterable[Track]) -> int:
        """
        Insert tracks whose provider id has no row yet. Returns the number inserted.

        Rows that already exist, including ones written by a concurrent batch,
        are skipped without failing the rest of the batch. Other database
        errors propagate to the caller.
        """
        batch = {}
        for track in tracks:
            if track.id and track.id not in batch:
                batch[track.id] = track
        if not batch:
            return 0

        rows = [
            {
                "spotify_id": t.id,
                "title": t.name,
                "artist": t.artist,
                "album": t.album,
                "duration": t.duration,
                "image_url": t.album_art,
                "preview_url": t.preview_url,
            }
            for t in batch.values()
        ]
        with self.session() as db:
            inserted = self._insert_missing(db, rows)
            db.commit()

        logger.info(f"Saved {inserted} new tracks ({len(rows) - inserted} already stored)")
        return inserted

    def _insert_missing(self, db: Session, rows: List[dict]) -> int:
        dialect = self._engine.dialect.name
        if dialect in _UPSERT_INSERTS:
            stmt = _UPSERT_INSERTS[dialect](Song).on_conflict_do_nothing(index_elements=["spotify_id"])
            return sum(db.execute(stmt.values(**row)).rowcount for row in rows)

        inserted = 0
        for row in rows:
            try:
                with db.begin_nested():
                    db.execute(insert(Song).values(**row))
            except IntegrityError:
                logger.debug(f"Track {row['spotify_id']} already stored")
                continue
            inserted += 1
        return inserted

    def get_by_spotify_id(self, spotify_id: str) -> Optional[Song]:
        with self.session() as db:
            return db.scalars(select(Song).where(Song.spotify_id == spotify_id)).first()

    def list_songs(self) -> List[Song]:
        with self.session() as db:
            return list(db.scalars(select(Song).order_by(Song.id)))

    def count(self) -> int:
        with self.session() as db:
            return db.scalar(select(func.count()).select_from(Song)) or 0

    def dispose(self) -> None:
        self._engine.dispose()


__all__ = ["Base", "Song", "TrackStore"]
