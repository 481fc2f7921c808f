import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from fabricstore.database import Base
from fabricstore.db_types import UUIDType, MoneyType, QuantityType


class Product(Base):
    """
    Catalog product as seen by the order engine.

    Catalog management owns these rows; this service reads price and
    quantity rules and mutates only ``stock_quantity``.
    """
    __tablename__ = "products"
    __table_args__ = (
        Index('ix_product_active_sku', 'is_active', 'sku'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing (in INR)
    price: Mapped[Decimal] = mapped_column(
        MoneyType,
        nullable=False,
        comment="Price per unit"
    )

    # Stock & quantity rules (fractional for meter-sold fabric)
    stock_quantity: Mapped[Decimal] = mapped_column(
        QuantityType,
        default=Decimal("0"),
        nullable=False
    )
    min_order_quantity: Mapped[Decimal] = mapped_column(
        QuantityType,
        default=Decimal("1"),
        nullable=False
    )
    max_order_quantity: Mapped[Optional[Decimal]] = mapped_column(
        QuantityType,
        nullable=True,
        comment="Null = no upper bound"
    )
    quantity_step: Mapped[Optional[Decimal]] = mapped_column(
        QuantityType,
        nullable=True,
        comment="Orderable increment counted from min_order_quantity, e.g. 0.5 meter"
    )
    unit: Mapped[str] = mapped_column(
        String(50),
        default="meter",
        nullable=False,
        comment="meter, piece, kg, yard, set"
    )
    track_quantity: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    allow_backorder: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Product(sku='{self.sku}', price={self.price}, stock={self.stock_quantity})>"
