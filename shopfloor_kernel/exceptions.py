"""
Typed Exception Hierarchy for the Shopfloor Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP handlers, batch jobs, operator consoles) must be able to tell
an operator *which* rule rejected an operation: "loadedQty exceeds qty",
"vehicle not AVAILABLE: IN_USE", "return already inspected".  Parsing
message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        dispatch_service.dispatch(uow, ctx, dn_id)
    except Exception as e:
        if "vehicle" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way (what this module enables):
    try:
        dispatch_service.dispatch(uow, ctx, dn_id)
    except DispatchBlockedError as e:
        api_response(code=e.code, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ShopfloorError:

    ShopfloorError (base)
    |
    +-- ValidationError
    |   +-- QuantityExceededError
    |   +-- InsufficientStockError
    |
    +-- NotFoundError
    |   +-- TenantNotFoundError
    |   +-- ProjectNotFoundError
    |   +-- ProductionJobNotFoundError
    |   +-- DeliveryNoteNotFoundError
    |   +-- DeliveryNoteItemNotFoundError
    |   +-- VehicleNotFoundError
    |   +-- DriverNotFoundError
    |   +-- InventoryItemNotFoundError
    |   +-- ReworkJobNotFoundError
    |   +-- ReturnNotFoundError
    |   +-- QCRecordNotFoundError
    |
    +-- InvalidTransitionError
    |   +-- StageTransitionError
    |   +-- DispatchBlockedError
    |
    +-- ResourceConflictError
    |   +-- VehicleNotAvailableError
    |   +-- DriverInactiveError
    |   +-- ResourceInUseError
    |   +-- ReturnAlreadyInspectedError
    |   +-- DuplicateCodeError
    |
    +-- ConfigurationError
    |   +-- StagesNotConfiguredError
    |
    +-- ImmutabilityViolationError

Infrastructure failures (SQLAlchemyError and friends) are NOT wrapped.  They
propagate after the unit of work rolls back; the caller retries.
"""

from decimal import Decimal


class ShopfloorError(Exception):
    """
    Base exception for all shopfloor kernel and module errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SHOPFLOOR_ERROR"


# Validation


class ValidationError(ShopfloorError):
    """Missing or out-of-range input.  Raised before any write happens."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class QuantityExceededError(ValidationError):
    """A quantity exceeds the bound it is checked against."""

    code: str = "QUANTITY_EXCEEDED"

    def __init__(self, field: str, limit_field: str, limit: Decimal, value: Decimal):
        self.limit_field = limit_field
        self.limit = limit
        self.value = value
        super().__init__(
            field,
            f"{field} exceeds {limit_field} ({value} > {limit})",
        )


class InsufficientStockError(ValidationError):
    """An OUT movement would take the item's balance below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, available: Decimal, requested: Decimal):
        self.item_id = item_id
        self.available = available
        self.requested = requested
        super().__init__(
            "qty",
            f"Insufficient stock for item {item_id}. "
            f"Available: {available}, Requested: {requested}",
        )


# Not found


class NotFoundError(ShopfloorError):
    """
    Entity with given ID was not found.

    Rows belonging to another tenant are reported as not found as well.
    """

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class TenantNotFoundError(NotFoundError):
    code: str = "TENANT_NOT_FOUND"
    entity_type: str = "Tenant"


class ProjectNotFoundError(NotFoundError):
    code: str = "PROJECT_NOT_FOUND"
    entity_type: str = "Project"


class ProductionJobNotFoundError(NotFoundError):
    code: str = "PRODUCTION_JOB_NOT_FOUND"
    entity_type: str = "ProductionJob"


class DeliveryNoteNotFoundError(NotFoundError):
    code: str = "DELIVERY_NOTE_NOT_FOUND"
    entity_type: str = "DeliveryNote"


class DeliveryNoteItemNotFoundError(NotFoundError):
    code: str = "DELIVERY_NOTE_ITEM_NOT_FOUND"
    entity_type: str = "DNItem"


class VehicleNotFoundError(NotFoundError):
    code: str = "VEHICLE_NOT_FOUND"
    entity_type: str = "Vehicle"


class DriverNotFoundError(NotFoundError):
    code: str = "DRIVER_NOT_FOUND"
    entity_type: str = "Driver"


class InventoryItemNotFoundError(NotFoundError):
    code: str = "INVENTORY_ITEM_NOT_FOUND"
    entity_type: str = "InventoryItem"


class ReworkJobNotFoundError(NotFoundError):
    code: str = "REWORK_JOB_NOT_FOUND"
    entity_type: str = "ReworkJob"


class ReturnNotFoundError(NotFoundError):
    code: str = "RETURN_NOT_FOUND"
    entity_type: str = "ReturnRecord"


class QCRecordNotFoundError(NotFoundError):
    code: str = "QC_RECORD_NOT_FOUND"
    entity_type: str = "QCRecord"


# Transitions


class InvalidTransitionError(ShopfloorError):
    """
    A status move is not permitted from the entity's current state.

    Carries the attempted and allowed states so callers can present an
    actionable message.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current: str,
        attempted: str,
        allowed: tuple[str, ...] | list[str] = (),
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted
        self.allowed = tuple(allowed)
        allowed_text = ", ".join(self.allowed) if self.allowed else "none"
        message = (
            f"Invalid {entity_type} transition from {current} to {attempted} "
            f"(allowed: {allowed_text})"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StageTransitionError(InvalidTransitionError):
    """Backward stage move attempted without override privilege."""

    code: str = "STAGE_TRANSITION_NOT_ALLOWED"

    def __init__(self, job_id: str, current_stage: str, target_stage: str, reason: str):
        self.current_stage = current_stage
        self.target_stage = target_stage
        super().__init__(
            entity_type="ProductionJob",
            entity_id=job_id,
            current=current_stage,
            attempted=target_stage,
            reason=reason,
        )


class DispatchBlockedError(InvalidTransitionError):
    """A DN in LOADING failed one of the dispatch guards."""

    code: str = "DISPATCH_BLOCKED"

    def __init__(self, dn_id: str, reason: str):
        self.dn_id = dn_id
        super().__init__(
            entity_type="DeliveryNote",
            entity_id=dn_id,
            current="LOADING",
            attempted="DISPATCHED",
            allowed=("DISPATCHED",),
            reason=reason,
        )


# Resource conflicts


class ResourceConflictError(ShopfloorError):
    """Base exception for contention on a shared resource."""

    code: str = "RESOURCE_CONFLICT"


class VehicleNotAvailableError(ResourceConflictError):
    """Vehicle is not AVAILABLE (already IN_USE, or in MAINTENANCE)."""

    code: str = "VEHICLE_NOT_AVAILABLE"

    def __init__(self, vehicle_id: str, status: str):
        self.vehicle_id = vehicle_id
        self.status = status
        super().__init__(f"vehicle not AVAILABLE: {status}")


class DriverInactiveError(ResourceConflictError):
    code: str = "DRIVER_INACTIVE"

    def __init__(self, driver_id: str, status: str):
        self.driver_id = driver_id
        self.status = status
        super().__init__(f"driver not ACTIVE: {status}")


class ResourceInUseError(ResourceConflictError):
    """Vehicle or driver is held by a DN in LOADING or DISPATCHED."""

    code: str = "RESOURCE_IN_USE"

    def __init__(self, resource_type: str, resource_id: str, delivery_note_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.delivery_note_id = delivery_note_id
        super().__init__(
            f"{resource_type} {resource_id} is assigned to in-flight "
            f"delivery note {delivery_note_id}"
        )


class ReturnAlreadyInspectedError(ResourceConflictError):
    code: str = "RETURN_ALREADY_INSPECTED"

    def __init__(self, return_id: str, outcome: str | None):
        self.return_id = return_id
        self.outcome = outcome
        super().__init__(f"Return {return_id} already inspected (outcome: {outcome})")


class DuplicateCodeError(ResourceConflictError):
    code: str = "DUPLICATE_CODE"

    def __init__(self, entity_type: str, value: str):
        self.entity_type = entity_type
        self.value = value
        super().__init__(f"{entity_type} code already exists: {value}")


# Configuration


class ConfigurationError(ShopfloorError):
    code: str = "CONFIGURATION_ERROR"


class StagesNotConfiguredError(ConfigurationError):
    """
    Tenant has no usable production stage list.

    Never defaulted: job creation fails loudly rather than picking an
    arbitrary stage.
    """

    code: str = "STAGES_NOT_CONFIGURED"

    def __init__(self, tenant_id: str | None = None, detail: str | None = None):
        self.tenant_id = tenant_id
        self.detail = detail
        message = "Production stages not configured"
        if tenant_id:
            message = f"{message} for tenant {tenant_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# Immutability


class ImmutabilityViolationError(ShopfloorError):
    """
    Attempted to modify or delete an append-only record.

    StockTransaction, QCRecord, DeliveryTracking and AuditLog rows are
    immutable from creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
