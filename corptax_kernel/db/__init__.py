"""Database layer - engine, base classes, column types and immutability listeners."""

from corptax_kernel.db.base import (
    Base,
    FinancialYearLabel,
    JSONDocument,
    Rupees,
    TaxRate,
    TrackedBase,
    UUIDString,
)
from corptax_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_env,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_env",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "JSONDocument",
    "Rupees",
    "TaxRate",
    "FinancialYearLabel",
]
