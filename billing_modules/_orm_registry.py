"""
Module ORM Registry (``billing_modules._orm_registry``).

Imports every module's SQLAlchemy models so ``Base.metadata`` holds the
complete schema before tables are created.  The kernel never imports
modules, so scripts and ``tests/conftest.py`` go through here.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``billing_modules.*.orm`` module.

    Idempotent.
    """
    import billing_kernel.models  # noqa: F401
    # fmt: off
    import billing_modules.invoicing.orm  # noqa: F401
    import billing_modules.proposals.orm  # noqa: F401
    import billing_modules.recurring.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """Create kernel and module tables.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from billing_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
