import datetime as dt
import enum
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Condition(str, enum.Enum):
    BRAND_NEW = "Brand New"
    GOOD = "Good"
    FAIR = "Fair"
    DEFECTED = "Defected"


class InventoryItemBase(BaseModel):
    """Base schema for inventory items"""
    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    condition: Condition = Condition.BRAND_NEW
    unit_price: float = Field(0, ge=0)
    reorder_point: int = Field(20, ge=0)


class InventoryItemCreate(InventoryItemBase):
    """Schema for creating an inventory item"""
    quantity: int = Field(0, ge=0)
    image: Optional[str] = Field(None, description="Image as a base64 data URL")


class InventoryItemUpdate(BaseModel):
    """Schema for updating an inventory item; quantity changes go through /adjust"""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    condition: Optional[Condition] = None
    unit_price: Optional[float] = Field(None, ge=0)
    reorder_point: Optional[int] = Field(None, ge=0)
    image: Optional[str] = Field(None, description="Replacement image as a base64 data URL")


class InventoryAdjustment(BaseModel):
    """Schema for adjusting inventory quantity (add or subtract)"""
    amount: int = Field(..., description="Positive adds stock, negative subtracts down to zero")


class InventoryItem(InventoryItemBase):
    """Schema for reading an inventory item"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    quantity: int
    total_items: int
    status: str
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DefectedSummary(BaseModel):
    items: List[InventoryItem]
    total_records: int
    total_quantity: int
    total_value: float


class BorrowCreate(BaseModel):
    """Schema for borrowing items from inventory"""
    item_id: int = Field(..., gt=0)
    borrower_name: str = Field("", max_length=200)
    borrower_department: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    quantity: int = Field(..., gt=0)
    borrow_date: Optional[date] = None
    return_date: Optional[date] = None
    unit_price: Optional[float] = Field(None, ge=0)
    signature: Optional[str] = Field(None, description="Signature PNG as a base64 data URL")
    image: Optional[str] = Field(None, description="Custom image as a base64 data URL")


class BorrowUpdate(BaseModel):
    """Schema for editing a borrow; quantity and item are fixed after creation"""
    model_config = ConfigDict(extra="forbid")

    borrower_name: Optional[str] = Field(None, min_length=1, max_length=200)
    borrower_department: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    borrow_date: Optional[date] = None
    return_date: Optional[date] = None
    unit_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = Field(None, description="Replacement image as a base64 data URL")


class BorrowedItem(BaseModel):
    """Schema for reading a borrowed item"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: Optional[int] = None
    item_name: str
    unit_price: float
    image_url: Optional[str] = None
    borrower_name: str
    borrower_department: Optional[str] = None
    description: Optional[str] = None
    quantity: int
    borrow_date: date
    return_date: date
    actual_return_date: Optional[datetime] = None
    status: str
    display_status: Optional[str] = None
    signature_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UsageCreate(BaseModel):
    """Schema for recording used or given items"""
    item_id: int = Field(..., gt=0)
    type: Literal["used", "given"]
    quantity: int = Field(..., gt=0)
    recipient_name: Optional[str] = Field(None, max_length=200)
    recipient_department: Optional[str] = Field(None, max_length=100)
    reason: Optional[str] = Field(None, max_length=2000)
    date: Optional[dt.date] = None


class UsedGivenItem(BaseModel):
    """Schema for reading a used or given item"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: Optional[int] = None
    type: str
    quantity: int
    recipient_name: Optional[str] = None
    recipient_department: Optional[str] = None
    reason: Optional[str] = None
    date: dt.date
    item_name: str
    unit_price: float
    image_url: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class ActivityLog(BaseModel):
    """Schema for reading an activity entry"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    user_email: Optional[str] = None
    action_type: str
    action_description: str
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    created_at: Optional[datetime] = None


class UserCreate(BaseModel):
    """Schema for creating a user account"""
    email: EmailStr
    password: str = Field(..., min_length=6)
    username: str = Field(..., min_length=1, max_length=100)
    role: Literal["superadmin", "admin", "viewer"] = "viewer"


class RoleUpdate(BaseModel):
    role: Literal["superadmin", "admin", "viewer"]


class UserRead(BaseModel):
    id: str
    username: str
    email: str
    role: str
    created_at: Optional[datetime] = None


class CategoryLevel(BaseModel):
    category: str
    quantity: int
    threshold: int


class StockLevels(BaseModel):
    categories: List[CategoryLevel]
    well_stocked: List[InventoryItem]
    needs_reorder: List[InventoryItem]


class RecentActivity(BaseModel):
    type: str
    title: str
    description: str
    timestamp: datetime


class UserActivity(BaseModel):
    name: str
    email: str
    actions: int
    adds: int
    updates: int
    deletes: int


class Dashboard(BaseModel):
    total_items: int
    in_stock_quantity: int
    low_stock: int
    defected_quantity: int
    total_records: int
    borrowed_active: int
    inventory_percentage: str
    borrowed_percentage: str
    defected_percentage: str
    category_distribution: Dict[str, int]
    weekly_activity: List[UserActivity]
    recent_activity: List[RecentActivity]
    versions: Dict[str, int]


class ReportSummary(BaseModel):
    total_items: int
    total_quantity: int
    total_value: float
    low_stock_items: int
    out_of_stock_items: int
    borrowed_active: int
    borrowed_returned: int
    borrowed_overdue: int
    defected_items: int
    defected_quantity: int
