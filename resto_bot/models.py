from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    JSON,
    DateTime,
    ForeignKey,
    Text,
    Index,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Order status values; "delivered" and "cancelled" are terminal
ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "delivered", "cancelled")
ACTIVE_ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready")
TERMINAL_ORDER_STATUSES = ("delivered", "cancelled")

PAYMENT_METHODS = ("none", "cash", "qris")
PAYMENT_STATUSES = ("pending", "paid", "failed")


class RestaurantTable(Base):
    """A physical table; its QR code carries the table number."""
    __tablename__ = "restaurant_tables"

    id = Column(Integer, primary_key=True, index=True)
    table_number = Column(Integer, unique=True, nullable=False, index=True)
    capacity = Column(Integer, nullable=False, default=4)
    is_active = Column(Boolean, nullable=False, default=True)

    orders = relationship("Order", back_populates="table")


class MenuCategory(Base):
    __tablename__ = "menu_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    items = relationship("MenuItem", back_populates="category")


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("menu_categories.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)  # smallest currency unit (rupiah)
    image_url = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    is_available = Column(Boolean, nullable=False, default=True, index=True)
    is_recommended = Column(Boolean, nullable=False, default=False)
    preparation_time = Column(Integer, nullable=False, default=15)  # minutes

    category = relationship("MenuCategory", back_populates="items")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("restaurant_tables.id"), nullable=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    payment_method = Column(String, nullable=False, default="none")
    payment_status = Column(String, nullable=False, default="pending")
    # Start of the current payment attempt; re-selecting a method resets it
    payment_requested_at = Column(DateTime(timezone=True), nullable=True)
    total_amount = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    table = relationship("RestaurantTable", back_populates="orders")

    # Kitchen console filters active statuses and sorts by age
    __table_args__ = (
        Index("ix_orders_status_created_at", "status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=True)

    # Snapshots taken at order time; catalog edits never touch them
    menu_item_name = Column(String, nullable=False)
    unit_price = Column(Integer, nullable=False)

    quantity = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem")

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


class ChatMessage(Base):
    """Append-only chat log, one row per user or assistant turn."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("restaurant_tables.id"), nullable=True)
    role = Column(String, nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    # Set client-side so turns written within the same second keep their order
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_chat_messages_session_created_at", "session_id", "created_at"),
    )


class CartSession(Base):
    """
    Persists a session's cart so it survives reloads and server restarts.
    """
    __tablename__ = "cart_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, unique=True, nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("restaurant_tables.id"), nullable=True)

    # List of {menu_item_id, name, price, quantity, notes}
    lines = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
