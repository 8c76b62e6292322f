"""
Transactional boundary for every write to products and sales.

A unit of work is a callable that receives a ``UnitOfWork`` and does its
reads and writes through it. ``run_unit_of_work`` runs it inside a single
transaction: everything commits together or nothing does.

Row exclusivity is a capability of the backing engine, described by
``RowLocking``:

- Server databases (PostgreSQL, MySQL, ...) lock the selected rows with
  ``SELECT ... FOR UPDATE``; the lock is held until commit or rollback.
- SQLite has no row locks. The transaction is started with
  ``BEGIN IMMEDIATE`` instead, which takes the database write lock before
  the first read, so a second writer waits (up to the driver's busy
  timeout) until the first one commits.

Either way, two concurrent units locking the same product never both see
the pre-decrement quantity.
"""
import logging
from typing import Callable, Protocol, TypeVar

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, SessionTransaction

from stock_management.database import SQLITE_BEGIN_MODE
from stock_management.exceptions import InvalidInputError, StorageFailureError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RowLocking(Protocol):
    """Capability: open a write transaction and make a query row-exclusive."""

    def begin(self, session: Session) -> SessionTransaction:
        ...

    def lock(self, query: Query) -> Query:
        ...


class ForUpdateLocking:
    """Pessimistic row locks with SELECT ... FOR UPDATE."""

    def begin(self, session: Session) -> SessionTransaction:
        return session.begin()

    def lock(self, query: Query) -> Query:
        return query.with_for_update()


class SQLiteImmediateLocking:
    """Database-wide write lock taken at BEGIN; row locking is implied."""

    def begin(self, session: Session) -> SessionTransaction:
        transaction = session.begin()
        try:
            session.connection(execution_options={SQLITE_BEGIN_MODE: "IMMEDIATE"})
        except BaseException:
            transaction.rollback()
            raise
        return transaction

    def lock(self, query: Query) -> Query:
        return query


def locking_for(session: Session) -> RowLocking:
    """Pick the locking strategy for the engine the session is bound to."""
    if session.get_bind().dialect.name == "sqlite":
        return SQLiteImmediateLocking()
    return ForUpdateLocking()


class UnitOfWork:
    """The session of one running transaction, plus row locking."""

    def __init__(self, session: Session, locking: RowLocking):
        self.session = session
        self._locking = locking

    def locked(self, query: Query) -> Query:
        """
        Make ``query`` row-exclusive.

        ``populate_existing`` refreshes objects already in the identity map,
        so a product loaded earlier in the session is re-read under the lock.
        """
        return self._locking.lock(query).populate_existing()

    def add(self, instance) -> None:
        self.session.add(instance)

    def delete(self, instance) -> None:
        self.session.delete(instance)

    def flush(self) -> None:
        self.session.flush()


def run_unit_of_work(session: Session, work: Callable[[UnitOfWork], T]) -> T:
    """
    Run ``work`` in one transaction and return its result.

    Commits when ``work`` returns; rolls back everything when it raises.
    The session must not carry changes made outside a unit of work; a read
    transaction left open by earlier queries is ended first.
    Domain errors propagate unchanged. Constraint and data errors from the
    store become ``InvalidInputError``; any other store error becomes
    ``StorageFailureError``.
    """
    if session.new or session.dirty or session.deleted:
        raise RuntimeError("Session has pending changes outside a unit of work")

    # An implicit transaction autobegun by earlier reads would block begin()
    if session.in_transaction():
        session.rollback()

    locking = locking_for(session)
    try:
        with locking.begin(session):
            return work(UnitOfWork(session, locking))
    except (IntegrityError, DataError) as e:
        logger.warning(f"Unit of work rejected by the store: {e.orig}")
        raise InvalidInputError(f"Rejected by the store: {e.orig}") from e
    except SQLAlchemyError as e:
        logger.error(f"Unit of work aborted: {e}")
        raise StorageFailureError("Storage failure; the operation was rolled back", e) from e
