"""
Project Module (``shopfloor_modules.project``).

Responsibility
--------------
Minimal project registry: the project a production job or delivery note
belongs to, and the client it is built for.  Delivery notes must match the
project's client.

Audit Relevance
---------------
PROJECT_CREATE writes one AuditLog row.
"""

from shopfloor_modules.project.models import ProjectInfo, ProjectStatus
from shopfloor_modules.project.service import ProjectService

__all__ = ["ProjectInfo", "ProjectService", "ProjectStatus"]
