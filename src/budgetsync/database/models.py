"""SQLAlchemy models for budgetsync local storage."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class StoredDocument(Base):
    """Serialized local document, one row per key."""

    __tablename__ = "documents"

    key = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )


class QuarantinedDocument(Base):
    """Copy of a document that failed to parse."""

    __tablename__ = "quarantined_documents"

    id = Column(Integer, primary_key=True)
    key = Column(String, nullable=False)
    payload = Column(Text, nullable=False)
    reason = Column(String, nullable=False)
    quarantined_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Preference(Base):
    """Small key/value setting."""

    __tablename__ = "preferences"

    name = Column(String, primary_key=True)
    value = Column(String, nullable=False)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # Keep a single connection so the in-memory database outlives sessions
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
