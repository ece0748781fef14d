"""
Module: corptax_kernel.db.base
Responsibility: Declarative base for every CorpTax ORM model, plus the
    column types the tax tables share: UUID keys, rupee amounts, rates,
    financial-year labels and JSON documents (revision snapshots).
Architecture position: Kernel > DB.  The lowest-level import target within
    the kernel; ALL model files import from here.  MUST NOT import from
    modules, engines or config.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key
      stored as String(36) so SQLite and PostgreSQL hold the same text.
    - Rupees are Numeric(38, 9) and rates Numeric(38, 18).  NEVER float.
    - Financial years are stored as their "2024-25" label (String(7)).
    - JSON documents are written with sorted keys and Decimals as strings,
      so a stored revision snapshot reads back exactly as it was written.
    - Constraint and index names follow one naming convention, which keeps
      migrations identical across databases.

Audit relevance:
    created_at / created_by_id record who wrote each row; updated_at /
    updated_by_id may change even on immutable records (audit metadata,
    not tax data -- see db/immutability.py).
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, MetaData, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Column aliases for Mapped[...] annotations
Rupees = Annotated[Decimal, Numeric(38, 9)]
TaxRate = Annotated[Decimal, Numeric(38, 18)]
FinancialYearLabel = Annotated[str, String(7)]


class UUIDString(TypeDecorator):
    """UUID stored as String(36)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return str(value) if value is not None else None

    def process_result_value(self, value, dialect):
        return PyUUID(value) if value is not None else None


def _json_default(value: Any) -> str:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, PyUUID):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


class JSONDocument(TypeDecorator):
    """
    A JSON object stored as text.

    Text rather than a native JSON column so the stored bytes (and hence
    any checksum over them) are the same on every backend.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(value, sort_keys=True, default=_json_default)

    def process_result_value(self, value, dialect):
        return json.loads(value) if value is not None else None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Type map: Decimal -> Numeric(38, 9), datetime -> timezone-aware
    DateTime, UUID -> UUIDString, int -> BigInteger, dict -> JSONDocument.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger,
        dict: JSONDocument(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Abstract base with audit timestamps and actor ids."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    # Every row has a creator; the last editor is optional.
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)
