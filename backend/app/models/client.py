"""
Client model - the storefront's customers, subject of behavioral analysis.
"""

from typing import Optional, List

from sqlalchemy import String, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, UUIDMixin, TimestampMixin, TenantMixin


class Client(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "clients"

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))

    sales: Mapped[List["Sale"]] = relationship("Sale", back_populates="client")

    __table_args__ = (
        Index("idx_client_tenant_email", "tenant_id", "email"),
    )
