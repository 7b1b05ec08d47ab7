"""
Finance sink -- credit-note facts handed to the external finance service.

Responsibility:
    The core never posts to a general ledger.  When a return inspection
    produces a recoverable amount against an invoice, it emits a
    CreditNoteFact carrying the amount and the two journal lines the finance
    side is expected to post (Dr SALES_RETURNS / Cr AR).  Delivery happens
    after the inspection commits and is best-effort.

Architecture position:
    Kernel > Services -- outbound port plus adapters.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.finance_sink")

SALES_RETURNS_ACCOUNT = "SALES_RETURNS"
RECEIVABLES_ACCOUNT = "AR"


@dataclass(frozen=True)
class JournalLineFact:
    account: str
    debit: Decimal
    credit: Decimal
    description: str


@dataclass(frozen=True)
class CreditNoteFact:
    """A credit note the finance service should raise and post."""

    tenant_id: UUID
    return_id: UUID
    return_number: str
    invoice_id: UUID
    delivery_note_id: UUID
    outcome: str
    amount: Decimal
    lines: tuple[JournalLineFact, ...]

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError("Credit note amount must be positive")
        debits = sum((line.debit for line in self.lines), Decimal("0"))
        credits = sum((line.credit for line in self.lines), Decimal("0"))
        if debits != credits:
            raise ValueError(f"Credit note lines unbalanced: {debits} != {credits}")

    @classmethod
    def for_return(
        cls,
        tenant_id: UUID,
        return_id: UUID,
        return_number: str,
        invoice_id: UUID,
        delivery_note_id: UUID,
        outcome: str,
        amount: Decimal,
    ) -> "CreditNoteFact":
        return cls(
            tenant_id=tenant_id,
            return_id=return_id,
            return_number=return_number,
            invoice_id=invoice_id,
            delivery_note_id=delivery_note_id,
            outcome=outcome,
            amount=amount,
            lines=(
                JournalLineFact(
                    account=SALES_RETURNS_ACCOUNT,
                    debit=amount,
                    credit=Decimal("0"),
                    description=f"Credit note for return {return_number}",
                ),
                JournalLineFact(
                    account=RECEIVABLES_ACCOUNT,
                    debit=Decimal("0"),
                    credit=amount,
                    description=f"Credit note for return {return_number} applied",
                ),
            ),
        )


class FinanceSink(Protocol):
    def post_credit_note(self, fact: CreditNoteFact) -> None: ...


class InMemoryFinanceSink:
    def __init__(self):
        self.credit_notes: list[CreditNoteFact] = []

    def post_credit_note(self, fact: CreditNoteFact) -> None:
        self.credit_notes.append(fact)


class LoggingFinanceSink:
    def post_credit_note(self, fact: CreditNoteFact) -> None:
        logger.info(
            "credit_note_fact_emitted",
            extra={
                "return_id": str(fact.return_id),
                "invoice_id": str(fact.invoice_id),
                "amount": fact.amount,
                "outcome": fact.outcome,
            },
        )


class FinancePublisher:
    """Queues credit-note facts on a unit of work; delivers after commit."""

    def __init__(self, sink: FinanceSink | None = None):
        self._sink = sink or LoggingFinanceSink()

    def publish_credit_note(self, uow: UnitOfWork, fact: CreditNoteFact) -> None:
        uow.after_commit(
            f"credit_note:{fact.return_id}",
            lambda: self._deliver(fact),
        )

    def _deliver(self, fact: CreditNoteFact) -> None:
        try:
            self._sink.post_credit_note(fact)
        except Exception:
            logger.warning(
                "credit_note_publish_failed",
                extra={
                    "return_id": str(fact.return_id),
                    "invoice_id": str(fact.invoice_id),
                    "amount": fact.amount,
                },
                exc_info=True,
            )
