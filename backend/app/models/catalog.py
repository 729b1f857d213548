"""
Catalog models - products, variants (size/color/price/stock) and images.
"""

from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, Text, Boolean, Integer, Numeric, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, UUIDMixin, TimestampMixin, TenantMixin


class Category(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """Top-level product category (e.g. Shirts, Dresses)."""
    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    products: Mapped[List["Product"]] = relationship("Product", back_populates="category")


class Size(Base, UUIDMixin, TenantMixin):
    """Size label shared by variants (S, M, 42...)."""
    __tablename__ = "sizes"

    name: Mapped[str] = mapped_column(String(50), nullable=False)


class Product(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """
    A catalog product. Deactivated instead of deleted so that sale
    history keeps resolving.
    """
    __tablename__ = "products"

    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    subcategory: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    category: Mapped["Category"] = relationship("Category", back_populates="products")
    variants: Mapped[List["ProductVariant"]] = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )
    images: Mapped[List["ProductImage"]] = relationship(
        "ProductImage", back_populates="product", cascade="all, delete-orphan",
        order_by="ProductImage.position"
    )

    __table_args__ = (
        Index("idx_product_tenant_active", "tenant_id", "is_active"),
        Index("idx_product_category", "category_id"),
    )


class ProductImage(Base, UUIDMixin):
    __tablename__ = "product_images"

    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0)

    product: Mapped["Product"] = relationship("Product", back_populates="images")


class ProductVariant(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """The unit of inventory and sale: one size/color/price of a product."""
    __tablename__ = "product_variants"

    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    size_id: Mapped[Optional[str]] = mapped_column(ForeignKey("sizes.id"))

    color: Mapped[Optional[str]] = mapped_column(String(100))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")
    size: Mapped[Optional["Size"]] = relationship("Size")

    __table_args__ = (
        Index("idx_variant_product", "product_id"),
        Index("idx_variant_tenant_quantity", "tenant_id", "quantity"),
    )
