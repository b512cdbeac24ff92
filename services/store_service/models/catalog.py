"""Store catalog models: vendors and the parts they stock."""

import uuid
from datetime import datetime
from decimal import Decimal

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Vendor(Base):
    """Sellers listing parts on the marketplace."""

    __tablename__ = "market_vendors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    parts = relationship("Part", back_populates="vendor")

    def __repr__(self):
        return f"<Vendor {self.name}>"


class Part(Base):
    """A sellable part and its available stock.

    ``stock`` is only changed by order reservation and release.
    """

    __tablename__ = "market_parts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("market_vendors.id"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="market_parts_non_negative_stock"),
        CheckConstraint("price >= 0", name="market_parts_non_negative_price"),
    )

    vendor = relationship("Vendor", back_populates="parts")

    def __repr__(self):
        return f"<Part {self.title} stock={self.stock}>"
