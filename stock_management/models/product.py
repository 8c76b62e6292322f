from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stock_management.database import Base


class Product(Base):
    """
    Product model: one catalog entry and its current stock.

    Attributes:
        id: Unique identifier for the product
        name: Product name
        category: Product category; (name, category) identifies a product on import
        price: Unit price, two fractional digits
        quantity: Available stock (must be non-negative)
        description: Optional free text
        created_at: Timestamp when product was created
        updated_at: Timestamp when product was last updated
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Ledger rows go with the product; the database cascade removes them
    sales = relationship(
        "Sale",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        CheckConstraint("price <= 99999999.99", name="check_price_max"),
        CheckConstraint("quantity >= 0", name="check_quantity_non_negative"),
        Index("ix_products_name_category", "name", "category"),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', quantity={self.quantity})>"
