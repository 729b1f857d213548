"""
Sale models - completed/pending/cancelled sales and their line items.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, DateTime, Numeric, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, UUIDMixin, TimestampMixin, TenantMixin


class SaleStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Sale(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """A sale to a client. Only completed sales feed analytics."""
    __tablename__ = "sales"

    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False)
    operator_name: Mapped[Optional[str]] = mapped_column(String(255))  # null for self-checkout

    status: Mapped[str] = mapped_column(String(20), default=SaleStatus.PENDING)
    sold_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Relationships
    client: Mapped["Client"] = relationship("Client", back_populates="sales")
    lines: Mapped[List["SaleLine"]] = relationship(
        "SaleLine", back_populates="sale", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_sale_tenant_status_date", "tenant_id", "status", "sold_at"),
        Index("idx_sale_client", "client_id"),
    )


class SaleLine(Base, UUIDMixin, TenantMixin):
    """A line item in a sale. Immutable once created."""
    __tablename__ = "sale_lines"

    sale_id: Mapped[str] = mapped_column(ForeignKey("sales.id", ondelete="CASCADE"), nullable=False)
    variant_id: Mapped[str] = mapped_column(ForeignKey("product_variants.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Relationships
    sale: Mapped["Sale"] = relationship("Sale", back_populates="lines")
    variant: Mapped["ProductVariant"] = relationship("ProductVariant")

    __table_args__ = (
        Index("idx_saleline_sale", "sale_id"),
        Index("idx_saleline_variant", "variant_id"),
    )
