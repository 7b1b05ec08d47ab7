"""
Shopfloor Kernel

Infrastructure shared by the production-to-dispatch modules:
- Declarative base, column conventions and engine/session management
- Explicit unit of work with after-commit side effects
- Append-only enforcement for ledger, QC, tracking and audit rows
- Typed exception hierarchy and structured JSON logging
- Tenant stage lists, document numbering, audit and notification sinks
"""

__version__ = "0.1.0"
