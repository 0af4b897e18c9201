"""SQLAlchemy ORM models for host store orders and their payment records"""

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class OrderRecord(Base):
    """
    Store order row.

    `meta` holds the payment core's metadata document (tenders, charges, Clover ids)
    and is always rewritten as a whole. `version_id` guards every UPDATE so that
    two writers working from the same snapshot cannot both succeed.
    """

    __tablename__ = "store_order"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    order_key = Column(Text, nullable=False, unique=True)
    total = Column(String(32), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(32), nullable=False, default="pending")
    customer_ip = Column(Text, nullable=False, default="")
    billing = Column(JSON, nullable=False, default=dict)
    shipping = Column(JSON, nullable=False, default=dict)
    shipping_method = Column(Text, nullable=False, default="")
    shipping_total = Column(String(32), nullable=False, default="0.00")
    shipping_tax = Column(String(32), nullable=False, default="0.00")
    meta = Column(JSON, nullable=False, default=dict)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    lines = relationship("OrderLineRecord", back_populates="order", cascade="all, delete-orphan", order_by="OrderLineRecord.id")
    notes = relationship("OrderNoteRecord", back_populates="order", cascade="all, delete-orphan", order_by="OrderNoteRecord.id")
    refunds = relationship(
        "OrderRefundRecord", back_populates="order", cascade="all, delete-orphan", order_by="OrderRefundRecord.id"
    )

    __mapper_args__ = {"version_id_col": version_id}


class OrderLineRecord(Base):
    """Product or fee line of an order"""

    __tablename__ = "store_order_line"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    order_id = Column(BigInteger, ForeignKey("store_order.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(8), nullable=False, default="item")  # item | fee
    name = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    total = Column(String(32), nullable=False)
    total_tax = Column(String(32), nullable=False, default="0.00")

    order = relationship("OrderRecord", back_populates="lines")


class OrderNoteRecord(Base):
    """Human-readable audit note"""

    __tablename__ = "store_order_note"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey("store_order.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    order = relationship("OrderRecord", back_populates="notes")


class OrderRefundRecord(Base):
    """Refund request recorded by the store, with the refunded lines as JSON"""

    __tablename__ = "store_order_refund"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey("store_order.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(String(32), nullable=False)
    reason = Column(Text, nullable=False, default="")
    status = Column(String(16), nullable=False, default="pending")
    items = Column(JSON, nullable=False, default=list)
    fees = Column(JSON, nullable=False, default=list)
    shipping_total = Column(String(32), nullable=False, default="0.00")
    shipping_tax = Column(String(32), nullable=False, default="0.00")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    order = relationship("OrderRecord", back_populates="refunds")


class RefundNonce(Base):
    """Single-use token authorizing one charge refund from the admin charge list"""

    __tablename__ = "refund_nonce"

    nonce = Column(String(64), primary_key=True)
    order_id = Column(BigInteger, ForeignKey("store_order.id", ondelete="CASCADE"), nullable=False, index=True)
    charge_id = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    used_at = Column(DateTime(timezone=True), nullable=True)
