"""
Module ORM Registry (``payroll_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table definition before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imports kernel models, the configuration
store and every ``payroll_modules.*.orm`` module.  Called lazily by
``payroll_kernel.db.engine.create_tables()`` and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel, config and module ORM models.  Idempotent."""
    import payroll_kernel.models  # noqa: F401
    import payroll_kernel.services.sequence_service  # noqa: F401
    import payroll_config.orm  # noqa: F401
    # fmt: off
    import payroll_modules.cycles.orm  # noqa: F401
    import payroll_modules.debt.orm  # noqa: F401
    import payroll_modules.ledger.orm  # noqa: F401
    import payroll_modules.payslip.orm  # noqa: F401
    # fmt: on
