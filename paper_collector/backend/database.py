"""
Database module for the paper collector backend.

This module encapsulates all persistence logic.  It uses SQLAlchemy to
manage a SQLite or PostgreSQL database holding three owner-scoped
tables: the research queries a user submitted, the extraction service
API key stored per user, and the papers extracted for each query.

The :class:`Store` wraps one engine and session factory so that tests
and the orchestrator can each work against their own database.  All
methods raise SQLAlchemy errors unchanged; the adapters on top of the
store decide how failures are reported.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_database_url

logger = logging.getLogger(__name__)

# SQLAlchemy base class used to declare models
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Query(Base):
    """A research topic submitted by an owner.  Never updated."""

    __tablename__ = 'queries'

    id = Column(String, primary_key=True, default=_new_id)
    text = Column(Text, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class Credential(Base):
    """Extraction service API key stored for an owner."""

    __tablename__ = 'credentials'

    id = Column(String, primary_key=True, default=_new_id)
    api_key = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ResultRecord(Base):
    """ORM model for a single extracted paper.

    Each row links back to the query that produced it through
    ``query_id``.  Rows are written in batches after a successful
    extraction and are never updated by the research flow.
    """

    __tablename__ = 'results'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    author = Column(Text, nullable=False)
    year = Column(Integer, nullable=True)
    abstract = Column(Text, nullable=True)
    doi = Column(String, nullable=True)
    research_question = Column(Text, nullable=True)
    major_findings = Column(Text, nullable=True)
    suggestions = Column(Text, nullable=True)
    query_id = Column(String, ForeignKey('queries.id'), nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


RESULT_COLUMNS = [
    'name', 'author', 'year', 'abstract', 'doi',
    'research_question', 'major_findings', 'suggestions',
]


def create_db_engine(url: str):
    """Create an engine for ``url``.

    StaticPool is used for SQLite so that an in-memory database is
    shared by every session of the same store.
    """
    if url.startswith('sqlite'):
        return create_engine(
            url,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True)


class Store:
    """Relational store for queries, credentials and results."""

    def __init__(self, url: Optional[str] = None) -> None:
        self.url = url or get_database_url()
        self.engine = create_db_engine(self.url)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def init_db(self) -> None:
        """Create all tables if they do not exist yet."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database initialised (tables created if missing)")

    @contextmanager
    def get_db(self) -> Iterator[Session]:
        """Provide a transactional scope for database operations.

        The session is committed on success, rolled back on error and
        always closed.
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # queries

    def insert_query(self, text: str, owner_id: str) -> str:
        """Insert a query row and return the generated id."""
        with self.get_db() as session:
            query = Query(text=text, owner_id=owner_id)
            session.add(query)
            session.flush()
            return query.id

    def list_queries(self, owner_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return an owner's queries, most recent first."""
        with self.get_db() as session:
            rows = (
                session.query(Query)
                .filter(Query.owner_id == owner_id)
                .order_by(Query.created_at.desc())
            )
            if limit:
                rows = rows.limit(limit)
            return [
                {'id': q.id, 'text': q.text, 'owner_id': q.owner_id, 'created_at': q.created_at}
                for q in rows
            ]

    # credentials

    def find_credential_id(self, owner_id: str) -> Optional[str]:
        with self.get_db() as session:
            row = session.query(Credential.id).filter(Credential.owner_id == owner_id).first()
            return row[0] if row else None

    def update_credential(self, credential_id: str, owner_id: str, api_key: str) -> None:
        with self.get_db() as session:
            updated = (
                session.query(Credential)
                .filter(Credential.id == credential_id, Credential.owner_id == owner_id)
                .update({Credential.api_key: api_key}, synchronize_session=False)
            )
            if not updated:
                raise LookupError(f"Credential {credential_id} not found for owner")

    def insert_credential(self, owner_id: str, api_key: str) -> str:
        with self.get_db() as session:
            credential = Credential(api_key=api_key, owner_id=owner_id)
            session.add(credential)
            session.flush()
            return credential.id

    def latest_credential(self, owner_id: str) -> Optional[str]:
        """Return the most recently created API key for an owner."""
        with self.get_db() as session:
            row = (
                session.query(Credential.api_key)
                .filter(Credential.owner_id == owner_id)
                .order_by(Credential.created_at.desc())
                .first()
            )
            return row[0] if row else None

    def count_credentials(self, owner_id: str) -> int:
        with self.get_db() as session:
            return session.query(Credential).filter(Credential.owner_id == owner_id).count()

    # results

    def insert_results(self, rows: List[Dict[str, Any]]) -> None:
        """Insert one batch of result rows in a single transaction."""
        with self.get_db() as session:
            session.add_all([ResultRecord(**row) for row in rows])

    def fetch_results(self, query_id: str, owner_id: str) -> List[Dict[str, Any]]:
        """Return the papers saved for a query, in insertion order."""
        with self.get_db() as session:
            rows = (
                session.query(ResultRecord)
                .filter(ResultRecord.query_id == query_id, ResultRecord.owner_id == owner_id)
                .order_by(ResultRecord.id)
            )
            results: List[Dict[str, Any]] = []
            for r in rows:
                record = {column: getattr(r, column) for column in RESULT_COLUMNS}
                record['query_id'] = r.query_id
                results.append(record)
            return results
