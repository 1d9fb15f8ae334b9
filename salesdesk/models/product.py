"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from salesdesk.database import Base


class Product(Base):
    """Product model."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    product_code = Column(String(64), nullable=True, index=True)  # External product code
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    image = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default='true')
    created_by_id = Column(BigInteger, nullable=True)
    updated_by_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Sub-categories are owned by the product: removing one from the list deletes it
    categories = relationship(
        'ProductCategory',
        back_populates='product',
        order_by='ProductCategory.position',
        cascade='all, delete-orphan',
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"

    def find_category(self, category_id):
        """Return the sub-category with the given id, or None."""
        if category_id is None:
            return None
        for category in self.categories:
            if str(category.id) == str(category_id):
                return category
        return None
