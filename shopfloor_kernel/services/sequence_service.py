"""
SequenceService -- document numbers from locked counter rows.

Responsibility:
    Hands out per-tenant, per-prefix, per-day counters for delivery note,
    return, rework and job numbers (``DN-ACME-20240101-0001``).  Uses a
    dedicated counter table with row-level locking (``SELECT ... FOR
    UPDATE``) so two concurrent creations never get the same number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Per (tenant, counter name) values are strictly increasing.  The
      max-plus-one query over the document table is never used; the locked
      counter row is the only source of the next value.
    - The increment is only visible after the caller's transaction commits.

Failure modes:
    - IntegrityError: concurrent creation of the same counter row (handled
      with a savepoint and a locked re-read).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from shopfloor_kernel.db.base import Base, UUIDString
from shopfloor_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter per tenant.  Row-level locking keeps it monotonic."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_sequence_counter_tenant_name"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # e.g. "DN-20240101"
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Transactional counters and formatted document numbers.

    Does NOT commit -- the caller's unit of work owns the boundary.  If the
    transaction rolls back, the number is not consumed.
    """

    DELIVERY_NOTE = "DN"
    RETURN = "RET"
    REWORK = "RW"
    PRODUCTION_JOB = "JOB"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, tenant_id: UUID, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.name == sequence_name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, tenant_id: UUID, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it, return the new value.

        Postconditions:
            - Returns an integer > 0, strictly greater than any earlier value
              for this (tenant, sequence_name).
        """
        counter = self._locked_counter(tenant_id, sequence_name)

        if counter is None:
            # First use.  Another transaction may be creating the same row,
            # so the insert runs in a savepoint.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    tenant_id=tenant_id, name=sequence_name, current_value=1,
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(tenant_id, sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(
        self,
        tenant_id: UUID,
        prefix: str,
        tenant_code: str,
        on_date: date,
    ) -> str:
        """``{PREFIX}-{TENANTCODE}-{YYYYMMDD}-{NNNN}``; the counter restarts daily."""
        day = on_date.strftime("%Y%m%d")
        value = self.next_value(tenant_id, f"{prefix}-{day}")
        return f"{prefix}-{tenant_code.upper()}-{day}-{value:04d}"
