"""SQLAlchemy ORM model for the externally-owned collections table.

Maps the table created by alembic/versions/001_create_unified_collections.py.
The wallet core only reads this table; the collector and office apps write it.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.wm_common.database import Base


class CollectionORM(Base):
    __tablename__ = "unified_collections"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    collector_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    weight_kg: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False, default=0)
    total_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    material_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
