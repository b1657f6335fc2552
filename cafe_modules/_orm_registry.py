"""
Module ORM Registry (``cafe_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``cafe_kernel.db.engine.create_tables``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``cafe_modules.*.orm`` module.

    Kernel models (branches, employees) come first since module tables
    reference them.  Idempotent.
    """
    import cafe_kernel.models  # noqa: F401
    # fmt: off
    import cafe_modules.scheduling.orm  # noqa: F401
    import cafe_modules.payroll.orm  # noqa: F401
    # fmt: on
