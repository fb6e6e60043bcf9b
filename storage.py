"""
SQLAlchemy persistence for imported transactions, uploads and cash snapshots.

All queries are scoped to the owning user. The unique constraint on
``(user_id, dedupe_hash)`` is what makes re-imports idempotent.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from dedupe import compute_dedupe_hash, hash_transaction
from errors import DuplicateTransactionError, NotFoundError, UploadStateError
from schema import UNCATEGORIZED, Direction, ParsedTransaction, UploadStatus

logger = logging.getLogger(__name__)

Base = declarative_base()


DEDUPE_CONSTRAINT = "uq_transactions_user_dedupe"


def _is_dedupe_violation(error: IntegrityError) -> bool:
    """Postgres names the constraint; SQLite names the columns."""
    message = str(error.orig)
    return DEDUPE_CONSTRAINT in message or "transactions.user_id, transactions.dedupe_hash" in message


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Upload(Base):
    """One file-import attempt."""

    __tablename__ = "uploads"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    original_filename = Column(String, nullable=False)
    storage_bucket = Column(String, nullable=False)
    storage_path = Column(String, nullable=False)

    # PROCESSING -> IMPORTED | FAILED, once
    status = Column(String(16), nullable=False, default=UploadStatus.PROCESSING.value)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Transaction(Base):
    """A stored ledger line."""

    __tablename__ = "transactions"
    __table_args__ = (UniqueConstraint("user_id", "dedupe_hash", name=DEDUPE_CONSTRAINT),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    upload_id = Column(Integer, ForeignKey("uploads.id"), nullable=True)

    date = Column(Date, nullable=False)
    description = Column(String, nullable=False)

    # Minor units, never negative; sign lives in direction
    amount_paise = Column(BigInteger, nullable=False)
    direction = Column(String(8), nullable=False)
    category = Column(String, nullable=False, default=UNCATEGORIZED)

    dedupe_hash = Column(String(64), nullable=False)
    raw_row_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Storage-facing shape with the camelCase keys the dashboard reads."""
        return {
            'id': self.id,
            'date': self.date.isoformat(),
            'description': self.description,
            'amountPaise': self.amount_paise,
            'direction': self.direction,
            'category': self.category,
            'dedupeHash': self.dedupe_hash,
            'rawRowJson': self.raw_row_json,
            'uploadId': self.upload_id,
        }


class CashSnapshot(Base):
    """Point-in-time cash on hand. Append-only."""

    __tablename__ = "cash_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    as_of_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    cash_on_hand_paise = Column(BigInteger, nullable=False)
    source = Column(String(16), nullable=False, default="MANUAL")


def make_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


class LedgerStore:
    """Ownership-scoped data access for the import pipeline and the API."""

    def __init__(self, database_url: str = "sqlite:///statements.db", engine=None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.engine = engine if engine is not None else make_engine(database_url)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_schema(self):
        Base.metadata.create_all(self.engine)

    # Uploads

    def create_upload(self, user_id: str, original_filename: str, storage_bucket: str, storage_path: str) -> Upload:
        with self.Session() as session:
            upload = Upload(
                user_id=user_id,
                original_filename=original_filename,
                storage_bucket=storage_bucket,
                storage_path=storage_path,
                status=UploadStatus.PROCESSING.value,
            )
            session.add(upload)
            session.commit()
            self.logger.info(f"Created upload {upload.id} for {original_filename}")
            return upload

    def get_upload(self, upload_id: int) -> Optional[Upload]:
        with self.Session() as session:
            return session.get(Upload, upload_id)

    def mark_upload_imported(self, upload_id: int) -> Upload:
        return self._finish_upload(upload_id, UploadStatus.IMPORTED, None)

    def mark_upload_failed(self, upload_id: int, error: str) -> Upload:
        return self._finish_upload(upload_id, UploadStatus.FAILED, error)

    def _finish_upload(self, upload_id: int, status: UploadStatus, error: Optional[str]) -> Upload:
        with self.Session() as session:
            upload = session.get(Upload, upload_id)
            if upload is None:
                raise NotFoundError(f"Upload {upload_id} not found")
            if upload.status != UploadStatus.PROCESSING.value:
                raise UploadStateError(f"Upload {upload_id} is already {upload.status}")
            upload.status = status.value
            upload.error = error
            session.commit()
            self.logger.info(f"Upload {upload_id} -> {status.value}")
            return upload

    # Transactions

    def insert_transaction(
        self,
        user_id: str,
        transaction: ParsedTransaction,
        dedupe_hash: str,
        category: str = UNCATEGORIZED,
        upload_id: Optional[int] = None,
    ) -> Transaction:
        """
        Insert one transaction.

        Raises:
            DuplicateTransactionError: the user already has this dedupe hash
        """
        with self.Session() as session:
            record = Transaction(
                user_id=user_id,
                upload_id=upload_id,
                date=transaction.date,
                description=transaction.description,
                amount_paise=transaction.amount_paise,
                direction=transaction.direction.value,
                category=category or UNCATEGORIZED,
                dedupe_hash=dedupe_hash,
                raw_row_json=transaction.raw_row or None,
            )
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if not _is_dedupe_violation(e):
                    raise
                raise DuplicateTransactionError("A transaction with these details already exists")
            return record

    def create_transaction(
        self,
        user_id: str,
        transaction: ParsedTransaction,
        category: Optional[str] = None,
    ) -> Transaction:
        """Direct user entry; a duplicate is reported rather than skipped."""
        return self.insert_transaction(user_id, transaction, hash_transaction(transaction), category or UNCATEGORIZED)

    def update_transaction(
        self,
        user_id: str,
        transaction_id: int,
        transaction_date: Optional[date] = None,
        description: Optional[str] = None,
        amount_paise: Optional[int] = None,
        direction: Optional[Direction] = None,
        category: Optional[str] = None,
    ) -> Transaction:
        """Edit a transaction and recompute its dedupe hash from the new key fields."""
        with self.Session() as session:
            record = session.scalar(
                select(Transaction).where(Transaction.id == transaction_id, Transaction.user_id == user_id)
            )
            if record is None:
                raise NotFoundError("Transaction not found")

            if transaction_date is not None:
                record.date = transaction_date
            if description is not None:
                record.description = description.strip()
            if amount_paise is not None:
                if amount_paise < 0:
                    raise ValueError("amount_paise must not be negative")
                record.amount_paise = amount_paise
            if direction is not None:
                record.direction = Direction(direction).value
            if category is not None:
                record.category = category

            record.dedupe_hash = compute_dedupe_hash(
                record.date, record.description, record.amount_paise, record.direction
            )
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if not _is_dedupe_violation(e):
                    raise
                raise DuplicateTransactionError("A transaction with these details already exists")
            return record

    def delete_transaction(self, user_id: str, transaction_id: int) -> bool:
        with self.Session() as session:
            record = session.scalar(
                select(Transaction).where(Transaction.id == transaction_id, Transaction.user_id == user_id)
            )
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    def clear_transactions(self, user_id: str) -> int:
        """Bulk-delete every transaction the user owns."""
        with self.Session() as session:
            records = session.scalars(select(Transaction).where(Transaction.user_id == user_id)).all()
            for record in records:
                session.delete(record)
            session.commit()
            self.logger.info(f"Deleted {len(records)} transactions for user {user_id}")
            return len(records)

    def list_transactions(self, user_id: str, limit: int = 100) -> List[Transaction]:
        with self.Session() as session:
            query = (
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.date.desc(), Transaction.id.desc())
                .limit(limit)
            )
            return list(session.scalars(query).all())

    def transactions_between(self, user_id: str, start: date, end: date) -> List[Transaction]:
        with self.Session() as session:
            query = select(Transaction).where(
                Transaction.user_id == user_id,
                Transaction.date >= start,
                Transaction.date <= end,
            )
            return list(session.scalars(query).all())

    def latest_transaction_date(self, user_id: str) -> Optional[date]:
        with self.Session() as session:
            return session.scalar(
                select(func.max(Transaction.date)).where(Transaction.user_id == user_id)
            )

    def count_transactions(self, user_id: str) -> int:
        with self.Session() as session:
            return session.scalar(
                select(func.count(Transaction.id)).where(Transaction.user_id == user_id)
            ) or 0

    # Cash snapshots

    def add_cash_snapshot(
        self,
        user_id: str,
        cash_on_hand_paise: int,
        as_of_date: Optional[datetime] = None,
        source: str = "MANUAL",
    ) -> CashSnapshot:
        if cash_on_hand_paise < 0:
            raise ValueError("cash_on_hand_paise must not be negative")
        with self.Session() as session:
            snapshot = CashSnapshot(
                user_id=user_id,
                as_of_date=as_of_date or _utcnow(),
                cash_on_hand_paise=int(round(cash_on_hand_paise)),
                source=source,
            )
            session.add(snapshot)
            session.commit()
            return snapshot

    def latest_cash_snapshot(self, user_id: str) -> Optional[CashSnapshot]:
        with self.Session() as session:
            query = (
                select(CashSnapshot)
                .where(CashSnapshot.user_id == user_id)
                .order_by(CashSnapshot.as_of_date.desc(), CashSnapshot.id.desc())
                .limit(1)
            )
            return session.scalar(query)
