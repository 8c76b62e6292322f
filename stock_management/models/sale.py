from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stock_management.database import Base


class Sale(Base):
    """
    Sale model: one immutable ledger entry.

    Rows are only ever inserted by StockService.sell and only ever removed
    by the cascade from their product.

    Attributes:
        id: Unique identifier for the sale
        product_id: Reference to the product sold
        quantity: Number of items sold (positive)
        date: When the sale happened
    """
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity = Column(Integer, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    product = relationship("Product", back_populates="sales")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_sale_quantity_positive"),
    )

    def __repr__(self):
        return f"<Sale(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
