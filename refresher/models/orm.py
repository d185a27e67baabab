"""SQLAlchemy ORM models.

These models define the database schema. DAOs convert these to Pydantic
domain models before returning to services - SQLAlchemy objects should
never leak outside the DAO layer.

The three artifact tables are owned by the creation flow; only the columns
the refresher reads or writes are mapped here.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from refresher.database import Base
from refresher.utils.time import utcnow


class AudioRecordModel(Base):
    """Dictionary audio record with an explicit storage path."""

    __tablename__ = "audio_records"

    id = Column(String, primary_key=True)
    text = Column(Text, nullable=True)
    storage_path = Column(String, nullable=True)
    audio_url = Column(Text, nullable=True)
    audio_url_expires_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class FlashcardModel(Base):
    """Flashcard whose question audio path is encoded in its URL."""

    __tablename__ = "flashcards"

    id = Column(String, primary_key=True)
    question = Column(Text, nullable=True)
    question_audio_url = Column(Text, nullable=True)
    question_audio_url_expires_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ChunkModel(Base):
    """Saved text chunk whose audio path is encoded in its URL."""

    __tablename__ = "chunks"

    id = Column(String, primary_key=True)
    text = Column(Text, nullable=True)
    chunk_audio = Column(Text, nullable=True)
    chunk_audio_expires_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class RefreshLockModel(Base):
    """Refresh lock ORM model.

    Prevents two instances from refreshing the same family at once.
    """

    __tablename__ = "refresh_locks"

    family = Column(String, primary_key=True)
    instance_id = Column(String, nullable=False)
    lock_acquired_at = Column(DateTime, nullable=False, default=utcnow)


class RefreshRunModel(Base):
    """Refresh run ORM model.

    One row per finished run, kept for alerting and the history endpoint.
    """

    __tablename__ = "refresh_runs"

    id = Column(String, primary_key=True)
    family = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)
    started_at = Column(DateTime, nullable=False, index=True)
    finished_at = Column(DateTime, nullable=True)
    scanned = Column(Integer, nullable=False, default=0)
    succeeded = Column(Integer, nullable=False, default=0)
    not_reached = Column(Integer, nullable=False, default=0)
    timed_out = Column(Boolean, nullable=False, default=False)
    failures = Column(Text, nullable=True)  # JSON list of ArtifactFailure
    error = Column(Text, nullable=True)
