"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase class name, except where noted.
Embedded models (sizes, colors, images, line items) are not collections
on their own.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------- Variants ----------

class StructuredSize(BaseModel):
    value: str = Field(..., description="Size label, e.g. 'M' or '42'")
    size_type: Optional[str] = Field(None, description="Sizing system, e.g. 'clothing' or 'shoe'")

    @model_validator(mode="before")
    @classmethod
    def accept_size_key(cls, data):
        if isinstance(data, dict) and not data.get("value") and data.get("size"):
            data = {**data, "value": data["size"]}
        return data

class StructuredColor(BaseModel):
    name: str = Field(..., description="Color name")
    hex_code: Optional[str] = Field(None, description="Hex swatch, e.g. '#000000'")

    @model_validator(mode="before")
    @classmethod
    def accept_value_key(cls, data):
        # admin forms send {value, label, hexCode}
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("name"):
            data["name"] = data.get("value") or data.get("label")
        if data.get("hex_code") is None and data.get("hexCode"):
            data["hex_code"] = data["hexCode"]
        return data

Size = Union[str, StructuredSize]
Color = Union[str, StructuredColor]

# ---------- Catalog ----------

class ProductImage(BaseModel):
    url: str
    alt_text: Optional[str] = None
    sort_order: int = 0
    is_primary: bool = False

class Category(BaseModel):
    name: str = Field(..., description="Category name")
    slug: str = Field(..., description="URL-friendly unique identifier")
    description: Optional[str] = Field(None, description="Short description of the category")
    parent_id: Optional[str] = Field(None, description="Parent category id")
    is_active: bool = Field(True, description="Visible in the storefront")
    sort_order: int = Field(0, description="Display position")

class Product(BaseModel):
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    sku: Optional[str] = Field(None, description="Stock keeping unit")
    brand: Optional[str] = Field(None, description="Brand name")
    price: float = Field(..., ge=0, description="Selling price")
    cost: float = Field(0, ge=0, description="Cost of goods per unit")
    compare_at_price: Optional[float] = Field(None, ge=0, description="Original price for discount display")
    stock_quantity: int = Field(0, ge=0, description="Units on hand")
    category_id: Optional[str] = Field(None, description="Category document id")
    category_name: Optional[str] = Field(None, description="Category name, denormalized for search")
    is_active: bool = True
    is_featured: bool = False
    images: List[ProductImage] = Field(default_factory=list)
    sizes: List[Size] = Field(default_factory=list)
    colors: List[Color] = Field(default_factory=list)

    @field_validator("images")
    @classmethod
    def single_primary_image(cls, images: List[ProductImage]) -> List[ProductImage]:
        if sum(1 for img in images if img.is_primary) > 1:
            raise ValueError("at most one image can be primary")
        return images

# ---------- Cart & Orders ----------

class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    refunded = "refunded"

class OrderSource(str, Enum):
    website = "website"
    pos = "pos"

class CartItem(BaseModel):
    cart_id: str = Field(..., description="Client cart/session id")
    product_id: str = Field(..., description="Product document id as string")
    quantity: int = Field(1, ge=1, description="Quantity of the product")
    unit_price: float = Field(..., ge=0, description="Price snapshot taken when added")
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None

class LineItem(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None

class CustomerInfo(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    wilaya: Optional[str] = Field(None, description="Region / province")
    baladiya: Optional[str] = Field(None, description="Municipality")
    address: Optional[str] = None

WALK_IN_CUSTOMER = CustomerInfo(
    name="Walk-in Customer",
    phone="N/A",
    email="pos@store.com",
    wilaya="In Store",
    baladiya="Physical Location",
    address="Store Location",
)

class Order(BaseModel):
    order_number: Optional[str] = None
    customer: CustomerInfo
    items: List[LineItem] = Field(..., description="Items purchased")
    subtotal: float = Field(..., ge=0)
    delivery_fee: float = Field(0, ge=0)
    discount_amount: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.pending
    order_source: OrderSource = OrderSource.website
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

# ---------- Campaigns ----------

class CampaignType(str, Enum):
    product_linked = "product_linked"
    general = "general"
    brand_awareness = "brand_awareness"
    seasonal = "seasonal"

class CampaignProduct(BaseModel):
    product_id: str
    impressions: int = Field(0, ge=0)
    clicks: int = Field(0, ge=0)
    conversions: int = Field(0, ge=0)
    revenue: float = Field(0, ge=0)

class Campaign(BaseModel):
    name: str
    description: Optional[str] = None
    campaign_type: CampaignType = CampaignType.general
    cost: float = Field(0, ge=0)
    start_date: datetime
    end_date: Optional[datetime] = Field(None, description="Open-ended when absent")
    is_active: bool = True
    campaign_products: List[CampaignProduct] = Field(default_factory=list)
    total_orders: Optional[int] = Field(None, ge=0)

class CampaignPerformanceUpdate(BaseModel):
    total_orders: Optional[int] = Field(None, ge=0)
    campaign_products: List[CampaignProduct] = Field(default_factory=list)

# ---------- Query filters ----------

class FilterSet(BaseModel):
    """Applied catalog filters. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    search_term: str = ""
    price_range: Tuple[float, float] = (0, 1000)
    selected_sizes: frozenset = frozenset()
    selected_colors: frozenset = frozenset()
    selected_categories: frozenset = frozenset()

    @field_validator("price_range")
    @classmethod
    def ordered_range(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        low, high = value
        if low > high:
            low, high = high, low
        return (low, high)

    @model_validator(mode="before")
    @classmethod
    def canonical_tokens(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("selected_sizes", "selected_colors", "selected_categories"):
            if isinstance(data.get(key), str):
                data[key] = [data[key]]
        for key in ("selected_sizes", "selected_colors"):
            if data.get(key) is not None:
                tokens = (str(t).strip().lower() for t in data[key])
                data[key] = frozenset(t for t in tokens if t)
        if data.get("selected_categories") is not None:
            data["selected_categories"] = frozenset(
                str(c) for c in data["selected_categories"] if str(c)
            )
        if data.get("search_term") is None:
            data["search_term"] = ""
        return data
