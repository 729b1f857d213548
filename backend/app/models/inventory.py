"""
Inventory receipt models - suppliers and the stock deliveries they make.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, Numeric, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, UUIDMixin, TimestampMixin, TenantMixin


class Supplier(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "suppliers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    receipts: Mapped[List["InventoryReceipt"]] = relationship("InventoryReceipt", back_populates="supplier")


class InventoryReceipt(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """A stock delivery. Increments variant stock (outside this engine)."""
    __tablename__ = "inventory_receipts"

    supplier_id: Mapped[Optional[str]] = mapped_column(ForeignKey("suppliers.id"))
    operator_name: Mapped[Optional[str]] = mapped_column(String(255))

    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))

    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier", back_populates="receipts")
    lines: Mapped[List["InventoryReceiptLine"]] = relationship(
        "InventoryReceiptLine", back_populates="receipt", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_receipt_tenant_date", "tenant_id", "received_at"),
        Index("idx_receipt_supplier", "supplier_id"),
    )


class InventoryReceiptLine(Base, UUIDMixin, TenantMixin):
    __tablename__ = "inventory_receipt_lines"

    receipt_id: Mapped[str] = mapped_column(ForeignKey("inventory_receipts.id", ondelete="CASCADE"), nullable=False)
    variant_id: Mapped[str] = mapped_column(ForeignKey("product_variants.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    receipt: Mapped["InventoryReceipt"] = relationship("InventoryReceipt", back_populates="lines")
    variant: Mapped["ProductVariant"] = relationship("ProductVariant")

    __table_args__ = (
        Index("idx_receipt_line_variant", "variant_id"),
    )
