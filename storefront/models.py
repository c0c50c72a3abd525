"""
Pydantic models for catalog data, cart state, pricing, orders, and requests.
All monetary amounts are integer minor units.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.formatting import parse_vnd


def _minor_units(value):
    # Catalog prices may arrive as display strings ("299.000đ")
    if isinstance(value, str):
        return parse_vnd(value)
    return value


class Product(BaseModel):
    """Immutable catalog entry"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Product identifier")
    name: str = Field(..., description="Display name")
    base_price: int = Field(..., ge=0, description="Base price in minor units")
    prior_price: Optional[int] = Field(None, ge=0, description="Previous price, for discount display")
    category_id: Optional[str] = Field(None, description="Category reference")
    sku: Optional[str] = Field(None, description="Stock-keeping label")
    image: Optional[str] = Field(None, description="Primary image URL")

    @field_validator("base_price", "prior_price", mode="before")
    @classmethod
    def parse_price(cls, v):
        return _minor_units(v)


class Variant(BaseModel):
    """Purchasable unit of a product (e.g. one size)"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Variant identifier")
    product_id: str = Field(..., description="Parent product")
    attribute: str = Field(..., description="Distinguishing attribute, e.g. size")
    stock: int = Field(..., ge=0, description="Units in stock")
    price: Optional[int] = Field(None, ge=0, description="Override price in minor units")


class LineDetails(BaseModel):
    """Denormalized display and pricing data carried by a cart line"""
    model_config = ConfigDict(frozen=True)

    product_id: Optional[str] = None
    product_name: str = ""
    image: Optional[str] = None
    attribute: Optional[str] = None
    variant_price: Optional[int] = Field(None, ge=0)
    base_price: int = Field(0, ge=0)

    @classmethod
    def from_catalog(cls, product: Product, variant: Variant) -> "LineDetails":
        return cls(
            product_id=product.id,
            product_name=product.name,
            image=product.image,
            attribute=variant.attribute,
            variant_price=variant.price,
            base_price=product.base_price,
        )


class CartLine(BaseModel):
    """One (variant, quantity) entry in a user's cart"""
    model_config = ConfigDict(frozen=True)

    variant_id: str = Field(..., description="Variant identifier")
    quantity: int = Field(..., gt=0, description="Line quantity")
    details: LineDetails = Field(default_factory=LineDetails)


class CartSnapshot(BaseModel):
    """Point-in-time view of a cart"""
    lines: List[CartLine] = Field(default_factory=list)
    count: int = Field(0, ge=0, description="Sum of line quantities")

    @classmethod
    def from_lines(cls, lines: List[CartLine]) -> "CartSnapshot":
        return cls(lines=list(lines), count=sum(line.quantity for line in lines))


class DiscountKind(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class Coupon(BaseModel):
    """Named discount rule"""
    code: str = Field(..., min_length=1, description="Coupon code")
    kind: DiscountKind
    value: int = Field(..., description="Percent (0-100) or fixed minor-unit amount")
    active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class PriceBreakdown(BaseModel):
    """Totals computed from a cart snapshot"""
    subtotal: int = 0
    discount: int = 0
    tax: int = 0
    shipping: int = 0
    total: int = 0
    coupon_code: Optional[str] = None


class ShippingDetails(BaseModel):
    """Contact and delivery details collected at checkout"""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    full_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)


class OrderStatus(str, Enum):
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderRequest(BaseModel):
    """Priced cart snapshot handed to the order-creation collaborator"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    lines: List[CartLine]
    totals: PriceBreakdown
    shipping: ShippingDetails
    created_at: datetime


class Order(OrderRequest):
    """Immutable order created at checkout"""
    id: str
    status: OrderStatus = OrderStatus.PROCESSING


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    NOT_SELECTED = "not_selected"
    NO_VARIANTS_AVAILABLE = "no_variants_available"


class Resolution(BaseModel):
    """Outcome of resolving a product's selected attribute to a variant"""
    status: ResolutionStatus
    variant: Optional[Variant] = None

    @property
    def resolved(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED


class AvailabilityStatus(str, Enum):
    OK = "ok"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_STOCK = "insufficient_stock"


class Availability(BaseModel):
    """Outcome of a stock check for a requested quantity"""
    status: AvailabilityStatus
    variant_id: str
    requested: int
    available: int

    @property
    def ok(self) -> bool:
        return self.status == AvailabilityStatus.OK


class CartItemRequest(BaseModel):
    """Request model for adding items to the cart"""
    variant_id: str = Field(..., description="Variant identifier")
    quantity: int = Field(1, gt=0, description="Quantity to add")


class QuantityUpdateRequest(BaseModel):
    """Request model for setting a line quantity (0 or less removes the line)"""
    quantity: int = Field(..., description="New quantity")


class ResolveRequest(BaseModel):
    """Request model for variant resolution"""
    attribute: Optional[str] = Field(None, description="Selected attribute, e.g. size")


class CheckoutRequest(BaseModel):
    """Request model for checkout"""
    shipping: ShippingDetails
    coupon_code: Optional[str] = Field(None, description="Coupon code entered by the user")
