"""
Module ORM Registry (``corptax_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  Also provides ``create_all_tables()`` -- the entry point that
registers the models, creates every table and installs the immutability
listeners.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from ``corptax_modules`` packages
and from ``corptax_kernel.db`` (allowed: modules -> kernel).

Usage
-----
Entrypoints and ``tests/conftest.py`` call ``create_all_tables()``.
"""


def import_all_orm_models() -> None:
    """Import every ``corptax_modules.*.orm`` module to register ORM models.

    This function is idempotent -- repeated calls are harmless.
    """
    import corptax_modules.advance_tax.orm  # noqa: F401


def create_all_tables() -> None:
    """Create all module tables and register immutability listeners.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from corptax_kernel.db.engine import create_tables
    from corptax_kernel.db.immutability import register_immutability_listeners

    create_tables()
    register_immutability_listeners()
