"""
Database Schemas

MongoDB collection schemas and API payloads, defined with Pydantic.
Collection names are the lowercase class name:
- Product -> "product" collection
- Order -> "order" collection
- Counter -> "counter" collection

Request payloads accept both the camelCase keys sent by the storefront
(orderItems, shippingAddress, ...) and snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ProductStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    draft = "draft"


class OrderStatus(str, Enum):
    pending = "Pending"
    processing = "Processing"
    shipped = "Shipped"
    delivered = "Delivered"
    cancelled = "Cancelled"


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product" (lowercase of class name)
    """
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., max_length=100, description="Product name")
    description: Optional[str] = Field(None, max_length=1000, description="Product description")
    price: float = Field(..., ge=0, description="Unit price")
    category: str = Field(..., description="Category name or slug")
    brand: Optional[str] = Field(None, max_length=50)
    sku: Optional[str] = Field(None, description="Stock keeping unit")
    stock_quantity: int = Field(0, ge=0, description="Sellable units on hand")
    image: Optional[str] = Field(None, description="Image URL")
    is_featured: bool = Field(False, description="Shown in the featured listing")
    discount_percentage: float = Field(0, ge=0, le=100, description="Sale discount; drives sale_price/on_sale")
    status: ProductStatus = Field(ProductStatus.draft, validate_default=True)


class ProductUpdate(BaseModel):
    """Partial product update; only fields present in the body are written."""
    model_config = ConfigDict(use_enum_values=True)

    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    brand: Optional[str] = Field(None, max_length=50)
    sku: Optional[str] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    image: Optional[str] = None
    is_featured: Optional[bool] = None
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    status: Optional[ProductStatus] = None


class Counter(BaseModel):
    """
    Counters collection schema
    Collection name: "counter". The sequence name is stored as _id.
    """
    id: str = Field(..., alias="_id", description="Sequence name, e.g. 'orderId'")
    seq: int = Field(0, ge=0, description="Last issued value")


class ShippingAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(..., alias="fullName")
    address: str
    city: str
    postal_code: str = Field(..., alias="postalCode")
    country: str
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class OrderItem(BaseModel):
    """Line item snapshot stored inside an order."""
    product_id: str = Field(..., description="Referenced product _id as string")
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at time of order")
    image: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order" (lowercase of class name)
    """
    model_config = ConfigDict(use_enum_values=True)

    user_id: str = Field(..., description="User placing the order")
    order_number: str = Field(..., description="Human readable order number, e.g. ITS000000042")
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: str
    items_price: float = Field(..., ge=0)
    tax_price: float = Field(0.0, ge=0)
    shipping_price: float = Field(0.0, ge=0)
    total_price: float = Field(..., ge=0)
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    status: OrderStatus = Field(OrderStatus.pending, validate_default=True)
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------

class ProductRef(BaseModel):
    """A whole product object sent in place of its id."""
    id: Optional[str] = Field(None, alias="_id")


class OrderItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[Union[str, ProductRef]] = Field(None, alias="productId")
    quantity: int = Field(..., ge=1)
    # client copies, ignored in favour of the catalogue snapshot
    name: Optional[str] = None
    price: Optional[float] = None
    image: Optional[str] = None


class OrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_items: List[OrderItemIn] = Field(default_factory=list, alias="orderItems")
    shipping_address: ShippingAddress = Field(..., alias="shippingAddress")
    payment_method: str = Field(..., min_length=1, alias="paymentMethod")
    items_price: Optional[float] = Field(None, ge=0, alias="itemsPrice")
    tax_price: float = Field(0.0, ge=0, alias="taxPrice")
    shipping_price: float = Field(0.0, ge=0, alias="shippingPrice")
    total_price: Optional[float] = Field(None, ge=0, alias="totalPrice")


class StatusPayload(BaseModel):
    status: str


class InventoryPayload(BaseModel):
    quantity: int


class BulkStatusPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    product_ids: List[str] = Field(..., min_length=1, alias="productIds")
    status: ProductStatus


class ReviewPayload(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


class CurrentUser(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False
