"""
Module ORM Registry (``shopfloor_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` contains its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called by ``shopfloor_kernel.db.engine``
(lazily, inside ``create_tables``/``drop_tables``) and by tests.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``shopfloor_modules.*.orm`` module.  Idempotent."""
    import shopfloor_kernel.models  # noqa: F401
    import shopfloor_kernel.services.sequence_service  # noqa: F401  # sequence_counters
    # fmt: off
    import shopfloor_modules.project.orm  # noqa: F401
    import shopfloor_modules.production.orm  # noqa: F401
    import shopfloor_modules.quality.orm  # noqa: F401
    import shopfloor_modules.rework.orm  # noqa: F401
    import shopfloor_modules.fleet.orm  # noqa: F401
    import shopfloor_modules.inventory.orm  # noqa: F401
    import shopfloor_modules.dispatch.orm  # noqa: F401
    import shopfloor_modules.returns.orm  # noqa: F401
    # fmt: on
