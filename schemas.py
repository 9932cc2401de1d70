"""
Database Schemas for the FashionFusion storefront

Each Pydantic model corresponds to a MongoDB collection (lowercased class name).
Documents are stored with snake_case keys; the JSON API speaks camelCase.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


PaymentKind = Literal["razorpay", "card", "cod"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ------------------------- Collections -------------------------
class Product(CamelModel):
    title: str = Field(..., description="Product title")
    slug: str = Field(..., description="URL-safe identifier")
    description: str = Field("", description="Long product description")
    price: float = Field(..., ge=0)
    colors: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=lambda: ["S", "M", "L", "XL", "XXL"])
    images: List[str] = Field(default_factory=list, description="Image URLs")
    in_stock: bool = Field(True)
    stock_qty: int = Field(10, ge=0, description="Available quantity")


class User(CamelModel):
    name: str
    email: EmailStr
    password_hash: str
    role: Literal["customer", "admin"] = "customer"


class Session(BaseModel):
    token: str
    user_id: str
    expires_at: datetime


class Address(CamelModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    label: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "India"
    phone: str
    is_default: bool = False


class CartLineItem(CamelModel):
    item_id: str
    product_id: str
    name: str
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    size: str
    color: str
    image: Optional[str] = None


class Cart(CamelModel):
    user_id: str
    items: List[CartLineItem] = Field(default_factory=list)


class Coupon(CamelModel):
    code: str
    description: str = ""
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(..., ge=0)
    min_purchase: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    used_count: int = Field(0, ge=0)
    is_active: bool = True
    valid_from: datetime
    valid_until: datetime


class OrderTotals(CamelModel):
    subtotal: float
    shipping: float
    tax: float
    discount: float
    total: float


class Order(CamelModel):
    id: Optional[str] = None
    user_id: str
    order_number: str
    items: List[CartLineItem]
    shipping_address: Address
    payment_method: PaymentKind
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    card_last4: Optional[str] = None
    coupon_code: Optional[str] = None
    subtotal: float
    shipping: float
    tax: float
    discount: float = 0
    total: float
    status: OrderStatus = "pending"
    tracking_number: Optional[str] = None
    created_at: Optional[datetime] = None


# ------------------------- Requests -------------------------
class AuthPayload(CamelModel):
    name: Optional[str] = None
    email: EmailStr
    password: str = Field(..., min_length=6)


class AddressIn(CamelModel):
    label: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "India"
    phone: str = ""
    is_default: bool = False


class AddressUpdate(CamelModel):
    label: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None


class CartAddRequest(CamelModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    size: str
    color: str


class CartUpdateRequest(CamelModel):
    quantity: int


class CouponValidateRequest(CamelModel):
    code: str
    subtotal: float = Field(..., ge=0)


class CheckoutSummaryRequest(CamelModel):
    coupon_code: Optional[str] = None


class CardDetails(CamelModel):
    card_number: str
    name_on_card: str
    expiry: str = Field(..., description="MM/YY")
    cvv: str


class GatewayCallback(CamelModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    error: Optional[str] = None


class OrderRequest(CamelModel):
    items: Optional[List[Dict[str, Any]]] = None
    shipping_address: Optional[Union[str, Dict[str, Any]]] = None
    payment_method: PaymentKind
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    card: Optional[CardDetails] = None
    coupon_code: Optional[str] = None
    subtotal: Optional[float] = None
    shipping: Optional[float] = None
    tax: Optional[float] = None
    discount: Optional[float] = None
    total: Optional[float] = None


class OrderStatusUpdate(CamelModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
