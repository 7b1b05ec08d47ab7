"""
ORM-Level Append-Only Enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here intercept them for rows that must never change
once written:

    session.flush()
         |
         v
    [before_update event] --> _check_append_only_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_append_only_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable          | Why
--------------------|-------------------------|----------------------------------------
StockTransaction    | ALWAYS (from creation)  | Replaying the ledger must reproduce balances
QCRecord            | ALWAYS (from creation)  | Latest-status lookups read history, not state
DeliveryTracking    | ALWAYS (from creation)  | Movement trail of a dispatched DN
AuditLog            | ALWAYS (from creation)  | Audit trail

updated_at / updated_by_id are metadata and stay writable.

Model classes are imported inside the functions: the kernel does not import
module packages at import time.

===============================================================================
USAGE
===============================================================================

    from shopfloor_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must simulate tampering call unregister_immutability_listeners()
and re-register afterwards.
"""

from sqlalchemy import event, inspect

from shopfloor_kernel.exceptions import ImmutabilityViolationError
from shopfloor_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _entity_name(target) -> str:
    return getattr(target, "__entity_name__", type(target).__name__)


def _changed_fields(target) -> list[str]:
    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _check_append_only_update(mapper, connection, target):
    """Block any content change to an append-only row."""
    changed = _changed_fields(target)
    if not changed:
        return
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": _entity_name(target),
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": changed,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=_entity_name(target),
        entity_id=str(target.id),
        reason=f"append-only row cannot be modified (fields: {', '.join(changed)})",
    )


def _check_append_only_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": _entity_name(target),
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=_entity_name(target),
        entity_id=str(target.id),
        reason="append-only row cannot be deleted",
    )


def _protected_models():
    from shopfloor_kernel.models.audit_log import AuditLog
    from shopfloor_modules.dispatch.orm import DeliveryTrackingModel
    from shopfloor_modules.inventory.orm import StockTransactionModel
    from shopfloor_modules.quality.orm import QCRecordModel

    return (StockTransactionModel, QCRecordModel, DeliveryTrackingModel, AuditLog)


def register_immutability_listeners():
    """
    Register the append-only listeners.  Idempotent.

    Call after the module ORM models are importable and before any
    database operations begin.
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _check_append_only_update):
            event.listen(model, "before_update", _check_append_only_update)
        if not event.contains(model, "before_delete", _check_append_only_delete):
            event.listen(model, "before_delete", _check_append_only_delete)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that intentionally tamper with history.
    """
    for model in _protected_models():
        _safe_remove_listener(model, "before_update", _check_append_only_update)
        _safe_remove_listener(model, "before_delete", _check_append_only_delete)
