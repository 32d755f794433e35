"""Persistence layer for cached loan balances.

The batch recompute writes one row per loan holding its principal and
interest position and when it was computed. Each write replaces that loan's
row inside a single transaction, so readers see either the old or the new
figures, never a mix. It defaults to SQLite for local development but
accepts any SQLAlchemy-compatible URL.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Column, Date, DateTime, String, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from loan_engine.data_models import BalanceSnapshot

Base = declarative_base()


class LoanBalanceModel(Base):
    __tablename__ = "loan_balances"

    loan_id = Column(String(64), primary_key=True)
    # decimals stored as text to keep exact cents on every backend
    principal_remaining = Column(String(32), nullable=False)
    interest_remaining = Column(String(32), nullable=False)
    interest_accrued = Column(String(32), nullable=False)
    interest_paid = Column(String(32), nullable=False)
    as_of = Column(Date, nullable=False)
    balance_updated_at = Column(DateTime, nullable=False)


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"))


class BalanceStore:
    """Database-backed balance cache, usable as a batch ``sink``."""

    def __init__(self, url: str) -> None:
        kwargs: Dict[str, Any] = {}
        if _is_memory_sqlite(url):
            # one shared connection, otherwise every thread sees its own empty database
            kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
        self._engine = create_engine(url, future=True, **kwargs)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._write_lock = threading.Lock()

    def write(self, snapshot: BalanceSnapshot) -> None:
        row = LoanBalanceModel(
            loan_id=snapshot.loan_id,
            principal_remaining=str(snapshot.principal_remaining),
            interest_remaining=str(snapshot.interest_remaining),
            interest_accrued=str(snapshot.interest_accrued),
            interest_paid=str(snapshot.interest_paid),
            as_of=snapshot.as_of,
            balance_updated_at=snapshot.balance_updated_at.replace(tzinfo=None),
        )
        with self._write_lock, self._session_factory() as session:
            session.merge(row)
            session.commit()

    def get_balance(self, loan_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.get(LoanBalanceModel, loan_id)
            return self._to_dict(row) if row else None

    def list_balances(self) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows: Iterable[LoanBalanceModel] = session.execute(
                select(LoanBalanceModel).order_by(LoanBalanceModel.loan_id.asc())
            ).scalars()
            return [self._to_dict(row) for row in rows]

    def remove_balance(self, loan_id: str) -> None:
        with self._write_lock, self._session_factory() as session:
            row = session.get(LoanBalanceModel, loan_id)
            if row:
                session.delete(row)
                session.commit()

    def clear_balances(self) -> None:
        with self._write_lock, self._session_factory() as session:
            session.execute(LoanBalanceModel.__table__.delete())
            session.commit()

    @staticmethod
    def _to_dict(row: LoanBalanceModel) -> Dict[str, Any]:
        return {
            "loan_id": row.loan_id,
            "principal_remaining": row.principal_remaining,
            "interest_remaining": row.interest_remaining,
            "interest_accrued": row.interest_accrued,
            "interest_paid": row.interest_paid,
            "as_of": row.as_of.isoformat(),
            "balance_updated_at": row.balance_updated_at.isoformat(),
        }


def create_store_from_env(url: str | None) -> BalanceStore:
    return BalanceStore(url or "sqlite:///loan_balances.sqlite3")
