from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from .database import Base


class InventoryItem(Base):
    """Inventory item database model"""
    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=True, index=True)
    location = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    condition = Column(String, nullable=False, default="Brand New", index=True)
    quantity = Column(Integer, nullable=False, default=0)
    # Original stock count, written once at creation and used for valuation
    total_items = Column(Integer, nullable=False, default=0)
    unit_price = Column(Float, nullable=False, default=0)
    reorder_point = Column(Integer, nullable=False, default=20)
    status = Column(String, nullable=False, default="Out of Stock", index=True)
    image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class BorrowedItem(Base):
    """Borrowed item database model"""
    __tablename__ = "borrowed_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_borrowed_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(
        Integer, ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Snapshot of the inventory item at borrow time
    item_name = Column(String, nullable=False)
    unit_price = Column(Float, nullable=False, default=0)
    image_url = Column(String, nullable=True)

    borrower_name = Column(String, nullable=False)
    borrower_department = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False)
    borrow_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=False)
    actual_return_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String, nullable=False, default="Active", index=True)
    signature_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UsedGivenItem(Base):
    """Used or given item database model"""
    __tablename__ = "used_given_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_used_given_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(
        Integer, ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True, index=True
    )
    type = Column(String, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    recipient_name = Column(String, nullable=True)
    recipient_department = Column(String, nullable=True)
    reason = Column(Text, nullable=True)
    date = Column(Date, nullable=False)

    item_name = Column(String, nullable=False)
    unit_price = Column(Float, nullable=False, default=0)
    image_url = Column(String, nullable=True)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ActivityLog(Base):
    """Activity log database model"""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    user_email = Column(String, nullable=True)
    action_type = Column(String, nullable=False, index=True)
    action_description = Column(Text, nullable=False)
    table_name = Column(String, nullable=True)
    record_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class Profile(Base):
    """User profile database model"""
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserRole(Base):
    """User role database model"""
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String, ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    role = Column(String, nullable=False, default="viewer")
