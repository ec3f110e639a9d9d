"""
Pydantic Schemas for Request/Response Validation

Covers:
- Accounts and tokens
- Trucks, shop status and menus
- Checkout (payment intents) and orders
- Pickup confirmation
- Merchant payout onboarding
"""

from pydantic import BaseModel, Field, field_validator, EmailStr
from typing import Optional, List, Any
from datetime import datetime

from qrtruck.models import UserRole, Province, ShopStatus, OrderStatus


# =============================================================================
# ACCOUNT SCHEMAS
# =============================================================================

class SignupRequest(BaseModel):
    """Request schema for registering a truck owner."""
    email: EmailStr = Field(..., examples=["owner@example.com"])
    # bcrypt only reads the first 72 bytes
    password: str = Field(..., min_length=8, max_length=72)
    name: Optional[str] = Field(None, max_length=100, examples=["Sam Taco"])

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str]
    role: UserRole
    stripe_connect_id: Optional[str]
    stripe_onboarded: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Response after signup or login."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# =============================================================================
# TRUCK SCHEMAS
# =============================================================================

class TruckCreate(BaseModel):
    """Request schema for registering a food truck."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Taco Loco"])
    description: Optional[str] = Field(None, max_length=2000)
    address: str = Field(..., min_length=1, max_length=255, examples=["100 Queen St W, Toronto"])
    province: Province = Field(..., examples=["ON"])
    logo_url: Optional[str] = Field(None, max_length=500)
    banner_url: Optional[str] = Field(None, max_length=500)

    @field_validator('name', 'address')
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Must not be blank')
        return v.strip()


class TruckUpdate(BaseModel):
    """Partial update of a truck. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    address: Optional[str] = Field(None, min_length=1, max_length=255)
    province: Optional[Province] = None
    logo_url: Optional[str] = Field(None, max_length=500)
    banner_url: Optional[str] = Field(None, max_length=500)


class ShopStatusUpdate(BaseModel):
    shop_status: ShopStatus


class TruckResponse(BaseModel):
    """Response schema for a single truck."""
    id: str
    owner_id: str
    name: str
    description: Optional[str]
    address: str
    logo_url: Optional[str]
    banner_url: Optional[str]
    qr_code_url: Optional[str]
    province: Province
    tax_rate: float
    is_active: bool
    shop_status: ShopStatus
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TruckListItem(TruckResponse):
    menu_item_count: int = 0
    order_count: int = 0


class TruckSummary(BaseModel):
    id: str
    name: str
    address: str
    logo_url: Optional[str]
    shop_status: ShopStatus

    class Config:
        from_attributes = True


# =============================================================================
# MENU SCHEMAS
# =============================================================================

class MenuItemFields(BaseModel):
    """Editable fields of a menu item."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Fish Taco"])
    description: Optional[str] = Field(None, max_length=1000)
    price: float = Field(..., gt=0, le=10000, examples=[6.5])
    category: str = Field(default="Other", min_length=1, max_length=50, examples=["Tacos"])
    image_url: Optional[str] = Field(None, max_length=500)
    is_available: bool = True

    @field_validator('name', 'category')
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Must not be blank')
        return v.strip()

    @field_validator('price')
    @classmethod
    def round_price(cls, v: float) -> float:
        return round(v, 2)


class MenuItemCreate(MenuItemFields):
    truck_id: str


class MenuBatchCreate(BaseModel):
    """
    Batch of items for one truck.

    Entries stay raw so invalid ones can be dropped individually.
    """
    truck_id: str
    items: List[dict[str, Any]] = Field(..., min_length=1)


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[float] = Field(None, gt=0, le=10000)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    image_url: Optional[str] = Field(None, max_length=500)
    is_available: Optional[bool] = None
    sort_order: Optional[int] = Field(None, ge=0)


class MenuItemResponse(BaseModel):
    id: str
    truck_id: str
    name: str
    description: Optional[str]
    price: float
    category: str
    image_url: Optional[str]
    is_available: bool
    sort_order: int

    class Config:
        from_attributes = True


class TruckDetailResponse(TruckResponse):
    menu_items: List[MenuItemResponse] = []


class ParseMenuTextRequest(BaseModel):
    menu_text: str = Field(default="", max_length=20000)


class ParsedMenuItemResponse(BaseModel):
    name: str
    description: str
    price: float
    category: str


class ParseMenuTextResponse(BaseModel):
    success: bool
    items: List[ParsedMenuItemResponse]
    message: str


# =============================================================================
# CHECKOUT SCHEMAS
# =============================================================================

class CheckoutItem(BaseModel):
    """Item in the cart. Prices are always taken from the menu."""
    menu_item_id: str
    quantity: int = Field(..., ge=1, le=99, examples=[2])


class CustomerInfo(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class CreateIntentRequest(BaseModel):
    truck_id: str
    items: List[CheckoutItem] = Field(..., min_length=1)
    customer: Optional[CustomerInfo] = None


class PriceBreakdownResponse(BaseModel):
    subtotal: float
    tax: float
    tax_rate: float
    platform_fee: float
    total: float
    fee_percentage: float
    merchant_payout: float


class CreateIntentResponse(BaseModel):
    """Everything the browser needs to confirm the payment."""
    client_secret: str
    payment_intent_id: str
    order_number: str
    breakdown: PriceBreakdownResponse


class SimulatePaymentRequest(BaseModel):
    payment_intent_id: str
    deliver_webhook: bool = True


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class OrderItem(BaseModel):
    menu_item_id: Optional[str]
    name: str
    price: float
    quantity: int


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: str
    order_number: str
    truck_id: str
    user_id: Optional[str]
    customer_name: Optional[str]
    customer_email: Optional[str]
    customer_phone: Optional[str]
    items: List[OrderItem]
    subtotal: float
    tax: float
    platform_fee: float
    total: float
    stripe_payment_id: Optional[str]
    stripe_status: Optional[str]
    pickup_code: str
    status: OrderStatus
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    truck: Optional[TruckSummary] = None


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class CreateFromPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)
    order_number: str = Field(..., min_length=1)


class CreateFromPaymentResponse(BaseModel):
    success: bool
    order: OrderResponse
    message: str


class PickupConfirmRequest(BaseModel):
    order_id: str
    pickup_code: str = Field(..., max_length=16)
    staff_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class PickupConfirmResponse(BaseModel):
    success: bool
    message: str
    order_id: str
    order_number: str
    picked_at: datetime


# =============================================================================
# PAYOUT ACCOUNT SCHEMAS
# =============================================================================

class ConnectLinkResponse(BaseModel):
    url: str
    account_id: str


class ConnectStatusResponse(BaseModel):
    account_id: Optional[str]
    onboarded: bool
    charges_enabled: bool = False
    payouts_enabled: bool = False


class DashboardLinkResponse(BaseModel):
    url: str


# =============================================================================
# COMMON
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    payment_service: str
    menu_parser: str
    timestamp: datetime
