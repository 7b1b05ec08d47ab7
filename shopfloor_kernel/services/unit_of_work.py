"""
UnitOfWork -- the explicit transaction every core operation runs in.

Responsibility:
    Wraps one SQLAlchemy Session and the Clock.  Module services take a
    UnitOfWork as a parameter and only ever ``flush()``; the owner of the
    unit of work decides when to commit.  A job stage advance, a DN
    dispatch, a QC-triggered rework or a return inspection therefore
    commits every row it touched, or none of them.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Nothing registered with ``after_commit`` runs unless the commit
      succeeded.  After-commit callbacks are best-effort: their failures
      are logged and never raised.
    - A rollback discards pending after-commit callbacks.

Failure modes:
    - Any exception inside ``transaction()`` rolls back and is re-raised.
    - Commit failures (OperationalError, IntegrityError) are rolled back
      and re-raised; the caller retries.

Usage:
    with unit_of_work(clock) as uow:
        dispatch_service.dispatch(uow, ctx, dn_id)
"""

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy.orm import Session, SessionTransaction

from shopfloor_kernel.db.engine import get_session
from shopfloor_kernel.domain.clock import Clock, SystemClock
from shopfloor_kernel.logging_config import get_logger

logger = get_logger("services.unit_of_work")


class UnitOfWork:
    """
    One atomic unit: a session, a clock, and post-commit side effects.

    Contract:
        Services receive the unit of work as an argument.  They read and
        write through ``uow.session`` and call ``uow.flush()`` to surface
        constraint errors early; they never commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
        self._after_commit: list[tuple[str, Callable[[], None]]] = []

    def flush(self) -> None:
        self.session.flush()

    def savepoint(self) -> SessionTransaction:
        """Nested transaction; use as a context manager."""
        return self.session.begin_nested()

    def after_commit(self, name: str, callback: Callable[[], None]) -> None:
        """Queue a best-effort side effect for after the next commit."""
        self._after_commit.append((name, callback))

    @property
    def pending_callbacks(self) -> int:
        return len(self._after_commit)

    def commit(self) -> None:
        self.session.commit()
        logger.debug("transaction_committed")
        self._run_after_commit()

    def rollback(self) -> None:
        dropped = len(self._after_commit)
        self._after_commit.clear()
        self.session.rollback()
        if dropped:
            logger.debug(
                "after_commit_callbacks_discarded",
                extra={"count": dropped},
            )

    @contextmanager
    def transaction(self) -> Generator["UnitOfWork", None, None]:
        """
        Commit on normal exit; roll back and re-raise on exception.

        After-commit callbacks run once the commit has succeeded.
        """
        try:
            yield self
            self.session.commit()
        except Exception:
            self.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        logger.debug("transaction_committed")
        self._run_after_commit()

    def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for name, callback in callbacks:
            try:
                callback()
            except Exception:
                logger.warning(
                    "after_commit_callback_failed",
                    extra={"callback": name},
                    exc_info=True,
                )


@contextmanager
def unit_of_work(clock: Clock | None = None) -> Generator[UnitOfWork, None, None]:
    """
    Open a session from the engine's factory and run one transaction.

    Mirrors ``session_scope()`` but hands out a UnitOfWork.
    """
    session = get_session()
    uow = UnitOfWork(session, clock)
    try:
        with uow.transaction():
            yield uow
    finally:
        session.close()
