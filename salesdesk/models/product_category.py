"""Product Category model (sub-quantities embedded in a product)."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from salesdesk.database import Base


class ProductCategory(Base):
    """Named sub-category of a product with its own quantity and price."""

    __tablename__ = 'product_category'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='ck_product_category_quantity_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_category_price_non_negative'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=0, server_default='0')
    price = Column(Numeric(10, 2), nullable=False, default=0)

    # Relationship
    product = relationship('Product', back_populates='categories')

    def __repr__(self):
        return f"<ProductCategory(id={self.id}, name='{self.name}', quantity={self.quantity})>"
