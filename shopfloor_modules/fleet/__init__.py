"""
Fleet Module (``shopfloor_modules.fleet``).

Responsibility
--------------
Vehicles and drivers as a shared, mutually exclusive resource pool.  A
vehicle is bound to at most one in-flight delivery note (LOADING or
DISPATCHED) at a time.

Architecture
------------
Layer: **Modules**.  ``VehicleAllocator`` is the only code that sets a
vehicle IN_USE; ``FleetService`` handles records and manual status moves.

Invariants
----------
- Acquisition is a compare-and-set on ``status = 'AVAILABLE'``; concurrent
  callers cannot both win.
- Resources held by an in-flight delivery note cannot be deleted, released
  by hand, sent to maintenance or deactivated.

Failure Modes
-------------
- ``VehicleNotAvailableError`` ("vehicle not AVAILABLE: IN_USE").
- ``DriverInactiveError`` when assigning an INACTIVE driver.
- ``ResourceInUseError`` when detaching an in-flight resource.

Audit Relevance
---------------
Vehicle and driver create/update/delete each write one AuditLog row.
"""

from shopfloor_modules.fleet.models import DriverInfo, DriverStatus, VehicleInfo, VehicleStatus
from shopfloor_modules.fleet.service import FleetService, VehicleAllocator

__all__ = [
    "DriverInfo",
    "DriverStatus",
    "FleetService",
    "VehicleAllocator",
    "VehicleInfo",
    "VehicleStatus",
]
