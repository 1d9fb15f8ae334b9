"""Sale model."""
from sqlalchemy import (
    Column, BigInteger, Integer, String, Text, Numeric, DateTime, Enum, JSON,
    ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from salesdesk.database import Base
import enum


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class SaleStatus(str, enum.Enum):
    """Sale lifecycle status."""
    ACTIVE = 'active'
    CANCELLED = 'cancelled'
    RETURNED = 'returned'


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    CASH = 'cash'
    CARD = 'card'
    BANK_TRANSFER = 'bank_transfer'
    CHEQUE = 'cheque'
    ONLINE = 'online'


class PaymentStatus(str, enum.Enum):
    """Payment settlement status."""
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class Sale(Base):
    """Sale record coupled to exactly one stock debit while active."""

    __tablename__ = 'sale'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_sale_quantity_positive'),
        CheckConstraint('discount >= 0', name='ck_sale_discount_non_negative'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    # No FK: the category may be removed from the product after the sale
    category_id = Column(BigInteger, nullable=True)
    product_snapshot = Column(JSON, nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    final_amount = Column(Numeric(12, 2), nullable=False)

    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    customer_address = Column(Text, nullable=True)

    status = Column(
        Enum(SaleStatus, name='sale_status', values_callable=_enum_values),
        nullable=False,
        default=SaleStatus.ACTIVE,
    )
    payment_method = Column(
        Enum(PaymentMethod, name='payment_method', values_callable=_enum_values),
        nullable=False,
        default=PaymentMethod.CASH,
    )
    payment_status = Column(
        Enum(PaymentStatus, name='payment_status', values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.COMPLETED,
    )
    transaction_id = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)
    sale_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    sales_person_id = Column(BigInteger, nullable=False, index=True)
    created_by_id = Column(BigInteger, nullable=False)
    updated_by_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Optimistic concurrency: stale UPDATE/DELETE raises StaleDataError
    version_id = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version_id}

    # Relationships
    product = relationship('Product')

    @property
    def is_active(self):
        return self.status == SaleStatus.ACTIVE

    def __repr__(self):
        return f"<Sale(id={self.id}, product_id={self.product_id}, qty={self.quantity}, status={self.status.value})>"
