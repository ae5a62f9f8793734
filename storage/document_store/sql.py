"""
SQLAlchemy-backed document store.

Every record lives in one ``records`` table as a JSON document keyed by
(collection, record_id). ``owner_id`` is copied into its own indexed column
so owner-scoped lookups do not scan other tenants' rows. One
``transaction()`` is one SQL transaction.
"""

import copy
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List

from loguru import logger
from sqlalchemy import JSON, Column, Index, Integer, String, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.errors import StorageError
from storage.document_store.interface import (
    Dataset,
    DocumentStore,
    Record,
    _check_collection,
    matches,
)

Base = declarative_base()

# Criteria served by real columns; anything else is filtered on the JSON body.
_INDEXED = {"id": "record_id", "owner_id": "owner_id"}


class StoredRecord(Base):
    __tablename__ = "records"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(50), nullable=False)
    record_id = Column(String(64), nullable=False)
    owner_id = Column(String(64), nullable=True)
    data = Column(JSON, nullable=False)

    __table_args__ = (
        Index("ux_records_collection_id", collection, record_id, unique=True),
        Index("idx_records_collection_owner", collection, owner_id),
    )

    def __repr__(self):
        return f"<StoredRecord(collection={self.collection}, record_id={self.record_id})>"


class SqlDataset(Dataset):
    def __init__(self, session: Session):
        self.session = session

    def _query(self, collection: str, **criteria: Any):
        _check_collection(collection)
        query = self.session.query(StoredRecord).filter(StoredRecord.collection == collection)
        for key, column in _INDEXED.items():
            if key in criteria:
                query = query.filter(getattr(StoredRecord, column) == criteria[key])
        return query.order_by(StoredRecord.seq)

    def all(self, collection: str) -> List[Record]:
        return [copy.deepcopy(row.data) for row in self._query(collection).all()]

    def find(self, collection: str, **criteria: Any) -> List[Record]:
        rows = self._query(collection, **criteria).all()
        return [copy.deepcopy(row.data) for row in rows if matches(row.data, criteria)]

    def insert(self, collection: str, record: Record) -> Record:
        _check_collection(collection)
        self.session.add(
            StoredRecord(
                collection=collection,
                record_id=record["id"],
                owner_id=record.get("owner_id"),
                data=copy.deepcopy(record),
            )
        )
        self.session.flush()
        return record

    def replace(self, collection: str, record: Record) -> Record:
        row = self._query(collection, id=record["id"]).first()
        if row is None:
            raise KeyError(f"{collection} record {record['id']} does not exist")
        row.data = copy.deepcopy(record)
        row.owner_id = record.get("owner_id")
        self.session.flush()
        return record

    def remove(self, collection: str, record_id: str) -> bool:
        row = self._query(collection, id=record_id).first()
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True


class SqlDocumentStore(DocumentStore):
    backend = "sql"

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine = None
        self._SessionLocal = None

    def _create_engine(self):
        if self.database_url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in self.database_url or self.database_url in ("sqlite://", "sqlite:///"):
                kwargs["poolclass"] = StaticPool
            return create_engine(self.database_url, echo=self.echo, **kwargs)
        return create_engine(
            self.database_url,
            echo=self.echo,
            pool_size=10,
            max_overflow=20,
            pool_recycle=1500,
            pool_pre_ping=True,
        )

    def initialize(self) -> None:
        if self._engine is not None:
            logger.debug("[STORE] SQL store already initialized")
            return
        if self.database_url.startswith("sqlite:///") and ":memory:" not in self.database_url:
            Path(self.database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

        self._engine = self._create_engine()
        self._SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self._engine, expire_on_commit=False
        )
        Base.metadata.create_all(self._engine, checkfirst=True)
        logger.info(f"[STORE] SQL store initialized ({self._engine.dialect.name})")

    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator[Dataset]:
        if self._SessionLocal is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")

        session = self._SessionLocal()
        try:
            yield SqlDataset(session)
            if read_only:
                session.rollback()
            else:
                session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[STORE] Transaction failed: {type(e).__name__}: {e}")
            raise StorageError() from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        if self._SessionLocal is None:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"[STORE] Health check failed: {e}")
            return False

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None
