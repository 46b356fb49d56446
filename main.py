import logging
import os
from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import analytics
import catalog
import pricing
from database import DatabaseUnavailable
from gateway import DataGateway, NotFound
from schemas import (
    WALK_IN_CUSTOMER,
    Campaign,
    CampaignPerformanceUpdate,
    CartItem,
    Category,
    CustomerInfo,
    FilterSet,
    LineItem,
    Order,
    OrderSource,
    OrderStatus,
    Product,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PAGE_SIZE = int(os.getenv("PAGE_SIZE", catalog.DEFAULT_PAGE_SIZE))

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

gateway = DataGateway()

# Utilities
class IdModel(BaseModel):
    id: str

def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]

@app.exception_handler(DatabaseUnavailable)
async def database_unavailable(request: Request, exc: DatabaseUnavailable):
    logger.error("Database unavailable for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})

@app.exception_handler(NotFound)
async def not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.get("/")
def root():
    return {"message": "Storefront Backend is running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        collections = gateway.collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
        response["collections"] = collections[:10]
    except DatabaseUnavailable:
        response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response

# Seed minimal demo data if empty
@app.on_event("startup")
async def seed_data():
    try:
        if gateway.list_categories():
            return
    except DatabaseUnavailable:
        return
    ids = {}
    for c in [
        Category(name="Bags", slug="bags", description="Totes, clutches & more", sort_order=1),
        Category(name="Clothing", slug="clothing", description="Everyday wear", sort_order=2),
        Category(name="Shoes", slug="shoes", description="Sneakers & heels", sort_order=3),
    ]:
        ids[c.name] = gateway.create_category(c)
    sample = [
        Product(
            name="Aurora Leather Tote",
            description="Premium full‑grain leather tote with magnetic closure.",
            sku="BAG-TOTE-001",
            brand="Aurora",
            price=189,
            cost=80,
            compare_at_price=249,
            stock_quantity=12,
            category_id=ids["Bags"],
            category_name="Bags",
            is_featured=True,
            colors=[{"name": "Brown", "hex_code": "#A52A2A"}, {"name": "Black", "hex_code": "#000000"}],
        ),
        Product(
            name="Linen Summer Dress",
            description="Breathable linen dress with adjustable straps.",
            sku="CLO-DRS-014",
            brand="Maison Lin",
            price=96,
            cost=35,
            stock_quantity=20,
            category_id=ids["Clothing"],
            category_name="Clothing",
            sizes=["small", "medium", "large"],
            colors=["Beige", "White"],
        ),
        Product(
            name="Street Runner V2",
            description="Lightweight, everyday sneaker.",
            sku="SHO-RUN-002",
            brand="Joburg Kicks",
            price=129,
            cost=55,
            stock_quantity=8,
            category_id=ids["Shoes"],
            category_name="Shoes",
            sizes=[{"value": "42", "size_type": "shoe"}, {"value": "43", "size_type": "shoe"}],
            colors=["White"],
        ),
    ]
    for p in sample:
        gateway.create_product(p)
    logger.info("Seeded %d categories and %d products", len(ids), len(sample))

# Category endpoints
@app.get("/api/categories")
def list_categories(active_only: bool = False):
    return gateway.list_categories(active_only=active_only)

@app.post("/api/categories")
def create_category(category: Category):
    return {"id": gateway.create_category(category)}

@app.put("/api/categories/{category_id}")
def update_category(category_id: str, category: Category):
    return gateway.update_category(category_id, category)

@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str):
    gateway.delete_category(category_id)
    return {"status": "deleted"}

# Catalog endpoints
@app.get("/api/products")
def list_products(
    q: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sizes: Optional[str] = None,
    colors: Optional[str] = None,
    categories: Optional[str] = None,
    featured: Optional[bool] = None,
    page: int = 1,
    page_size: int = Query(PAGE_SIZE, ge=1, le=100),
):
    filters = FilterSet(
        search_term=q or "",
        price_range=(min_price if min_price is not None else 0,
                     max_price if max_price is not None else float("inf")),
        selected_sizes=split_csv(sizes),
        selected_colors=split_csv(colors),
        selected_categories=split_csv(categories),
    )
    products = gateway.list_products({"is_active": True, "is_featured": featured})
    result = catalog.paginate(catalog.filter_products(products, filters), page, page_size)
    return {
        "items": result.items,
        "page": result.current_page,
        "total_pages": result.total_pages,
        "total_items": result.total_items,
        "page_size": result.page_size,
        "pages": catalog.page_window(result.current_page, result.total_pages),
    }

def _with_category_name(product: Product) -> Product:
    if product.category_id and not product.category_name:
        category = gateway.get_category(product.category_id)
        product = product.model_copy(update={"category_name": category["name"]})
    return product

@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    product = gateway.get_product(product_id)
    product["primary_image"] = catalog.primary_image(product)
    return product

@app.post("/api/products")
def create_product(product: Product):
    return {"id": gateway.create_product(_with_category_name(product))}

@app.put("/api/products/{product_id}")
def update_product(product_id: str, product: Product):
    return gateway.update_product(product_id, _with_category_name(product))

@app.delete("/api/products/{product_id}")
def delete_product(product_id: str):
    gateway.delete_product(product_id)
    return {"status": "deleted"}

# Cart endpoints (session based via cart_id)
class AddToCartRequest(BaseModel):
    cart_id: str
    product_id: str
    quantity: int = Field(1, ge=1)
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None

class ScanRequest(BaseModel):
    cart_id: str
    code: str = Field(..., description="Scanned QR payload, the product id")

class UpdateQuantityRequest(BaseModel):
    id: str
    quantity: int

def _quantity_in_cart(cart_id: str, product_id: str) -> int:
    return sum(it["quantity"] for it in gateway.get_cart(cart_id) if it["product_id"] == product_id)

def _guard_stock(product: dict, current: int, delta: int):
    check = pricing.can_add(current, delta, product.get("stock_quantity", 0))
    if not check.allowed:
        logger.info("Stock guard rejected %s (+%d, in cart %d): %s", product.get("id"), delta, current, check.reason)
        raise HTTPException(409, check.message)

def _add_to_cart(req: AddToCartRequest):
    product = gateway.get_product(req.product_id)
    _guard_stock(product, _quantity_in_cart(req.cart_id, req.product_id), req.quantity)
    existing = gateway.find_cart_item(req.cart_id, req.product_id, req.selected_color, req.selected_size)
    item_id = gateway.add_cart_item(CartItem(
        cart_id=req.cart_id,
        product_id=req.product_id,
        quantity=req.quantity,
        unit_price=float(product["price"]),
        selected_color=req.selected_color,
        selected_size=req.selected_size,
    ))
    return {"status": "updated" if existing else "added", "id": item_id}

@app.post("/api/cart/add")
def add_to_cart(item: AddToCartRequest):
    return _add_to_cart(item)

@app.post("/api/cart/scan")
def scan_to_cart(payload: ScanRequest):
    product_id = payload.code.strip()
    try:
        gateway.get_product(product_id)
    except NotFound:
        raise HTTPException(404, f"No product found with ID: {product_id}")
    return _add_to_cart(AddToCartRequest(cart_id=payload.cart_id, product_id=product_id))

@app.post("/api/cart/update")
def update_cart_quantity(payload: UpdateQuantityRequest):
    item = gateway.get_cart_item(payload.id)
    if payload.quantity <= 0:
        gateway.remove_cart_item(payload.id)
        return {"status": "removed"}
    delta = payload.quantity - item["quantity"]
    if delta > 0:
        product = gateway.get_product(item["product_id"])
        _guard_stock(product, _quantity_in_cart(item["cart_id"], item["product_id"]), delta)
    gateway.set_cart_quantity(payload.id, payload.quantity)
    return {"status": "updated"}

class CartView(BaseModel):
    items: List[dict]
    subtotal: float
    total: float

@app.get("/api/cart", response_model=CartView)
def get_cart(cart_id: str):
    items = gateway.get_cart(cart_id)
    totals = pricing.compute_totals(items)
    return CartView(items=items, subtotal=totals.subtotal, total=totals.total)

@app.post("/api/cart/remove")
def remove_from_cart(payload: IdModel):
    gateway.remove_cart_item(payload.id)
    return {"status": "removed"}

# Checkout & orders
class CheckoutRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None
    customer: CustomerInfo
    discount_amount: float = Field(0, ge=0)
    notes: Optional[str] = None

class PosOrderRequest(BaseModel):
    cart_id: str
    discount_amount: float = Field(0, ge=0)
    notes: Optional[str] = "In-store POS order"

class StatusUpdate(BaseModel):
    status: OrderStatus

class OrderSummary(BaseModel):
    subtotal: float
    delivery_fee: float
    discount_amount: float
    total: float

class CheckoutResponse(BaseModel):
    order_id: str
    order_number: str
    summary: OrderSummary
    status: OrderStatus = OrderStatus.pending

def _release(reserved):
    for product_id, quantity in reserved:
        gateway.release_stock(product_id, quantity)

def _place_order(items: List[LineItem], customer: CustomerInfo, delivery_fee: float,
                 discount_amount: float, source: OrderSource, notes: Optional[str]):
    totals = pricing.compute_totals(items, delivery_fee, discount_amount)
    reserved = []
    for it in items:
        if not gateway.reserve_stock(it.product_id, it.quantity):
            _release(reserved)
            logger.warning("Stock changed before order could be placed for product %s", it.product_id)
            raise HTTPException(409, f"Insufficient stock for {it.product_name or it.product_id}")
        reserved.append((it.product_id, it.quantity))

    order = Order(
        customer=customer,
        items=items,
        subtotal=totals.subtotal,
        delivery_fee=totals.delivery_fee,
        discount_amount=totals.discount_amount,
        total=totals.total,
        order_source=source,
        notes=notes,
    )
    try:
        created = gateway.create_order(order)
    except Exception:
        logger.exception("Saving order failed, releasing reserved stock")
        _release(reserved)
        raise
    return CheckoutResponse(**created, summary=OrderSummary(**asdict(totals)))

@app.post("/api/checkout", response_model=CheckoutResponse)
def checkout(payload: CheckoutRequest):
    product = gateway.get_product(payload.product_id)
    _guard_stock(product, 0, payload.quantity)
    line = LineItem(
        product_id=payload.product_id,
        product_name=product.get("name"),
        unit_price=float(product["price"]),
        quantity=payload.quantity,
        selected_color=payload.selected_color,
        selected_size=payload.selected_size,
    )
    fee = pricing.website_delivery_fee(line.unit_price * line.quantity)
    return _place_order([line], payload.customer, fee, payload.discount_amount, OrderSource.website, payload.notes)

@app.post("/api/pos/orders", response_model=CheckoutResponse)
def create_pos_order(payload: PosOrderRequest):
    cart = gateway.get_cart(payload.cart_id)
    if not cart:
        raise HTTPException(400, "Cart is empty")
    items = []
    for it in cart:
        product = gateway.get_product(it["product_id"])
        items.append(LineItem(
            product_id=it["product_id"],
            product_name=product.get("name"),
            unit_price=it["unit_price"],
            quantity=it["quantity"],
            selected_color=it.get("selected_color"),
            selected_size=it.get("selected_size"),
        ))
    result = _place_order(items, WALK_IN_CUSTOMER, 0, payload.discount_amount, OrderSource.pos, payload.notes)
    gateway.clear_cart(payload.cart_id)
    return result

@app.get("/api/orders")
def list_orders(
    status: Optional[OrderStatus] = None,
    source: Optional[OrderSource] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = Query(10, ge=1, le=100),
):
    orders = gateway.list_orders(
        status=status.value if status else None,
        source=source.value if source else None,
        search=search,
    )
    result = catalog.paginate(orders, page, limit)
    return {
        "items": result.items,
        "page": result.current_page,
        "total_pages": result.total_pages,
        "total_items": result.total_items,
    }

@app.get("/api/orders/{order_id}")
def get_order(order_id: str):
    return gateway.get_order(order_id)

@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusUpdate):
    order = gateway.get_order(order_id)
    try:
        status = pricing.check_transition(order.get("status", OrderStatus.pending), payload.status)
    except pricing.InvalidStatusTransition as e:
        raise HTTPException(400, str(e))
    updated = gateway.update_order_status(order_id, status)
    logger.info("Order %s status %s -> %s", order.get("order_number"), order.get("status"), status.value)
    return updated

# Campaign endpoints
def _campaign_view(campaign: dict) -> dict:
    metrics = analytics.aggregate_campaign(campaign)
    return {
        **campaign,
        "performance": asdict(metrics),
        "roi": round(analytics.roi(campaign.get("cost", 0), metrics.revenue), 1),
        "state": analytics.campaign_status(campaign),
    }

@app.get("/api/campaigns")
def list_campaigns(search: Optional[str] = None, is_active: Optional[bool] = None):
    return [_campaign_view(c) for c in gateway.list_campaigns({"search": search, "is_active": is_active})]

@app.get("/api/campaigns/summary")
def campaigns_summary():
    summary = analytics.summarize_campaigns(gateway.list_campaigns())
    return {**asdict(summary), "overall_roi": round(summary.overall_roi, 1)}

@app.post("/api/campaigns")
def create_campaign(campaign: Campaign):
    return {"id": gateway.create_campaign(campaign)}

@app.put("/api/campaigns/{campaign_id}")
def update_campaign(campaign_id: str, campaign: Campaign):
    return _campaign_view(gateway.update_campaign(campaign_id, campaign))

@app.delete("/api/campaigns/{campaign_id}")
def delete_campaign(campaign_id: str):
    gateway.delete_campaign(campaign_id)
    return {"status": "deleted"}

@app.patch("/api/campaigns/{campaign_id}/performance")
def update_campaign_performance(campaign_id: str, update: CampaignPerformanceUpdate):
    return _campaign_view(gateway.update_campaign_performance(campaign_id, update))

@app.get("/api/campaigns/{campaign_id}/analytics")
def campaign_analytics(campaign_id: str):
    campaign = gateway.get_campaign(campaign_id)
    rows = campaign.get("campaign_products", [])
    share = float(campaign.get("cost", 0)) / len(rows) if rows else 0.0
    products = [
        {**row, "allocated_cost": round(share, 2),
         "performance": round(analytics.performance(row.get("revenue", 0), share), 2),
         "roi": round(analytics.roi(share, row.get("revenue", 0)), 1)}
        for row in rows
    ]
    return {**_campaign_view(campaign), "products": products}

# Analytics endpoints
@app.get("/api/analytics/dashboard")
def dashboard(from_date: Optional[date] = None, to_date: Optional[date] = None):
    stats = analytics.dashboard_stats(
        gateway.list_orders(), gateway.list_products(), gateway.list_campaigns(), from_date, to_date
    )
    return stats.to_dict()

@app.get("/api/analytics/sales")
def sales(days: int = Query(30, ge=1, le=365)):
    return analytics.sales_over_time(gateway.list_orders(), days)

@app.get("/api/analytics/products/profitability")
def product_profitability(
    category_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    sort_by: str = "profit",
    sort_order: str = "desc",
):
    rows = analytics.product_rollups(gateway.list_products(), gateway.list_orders(), gateway.list_campaigns())
    return [r.to_dict() for r in analytics.sort_rollups(rows, sort_by, sort_order, limit, category_id)]

@app.get("/api/analytics/stock-value")
def stock_value():
    return {"total_stock_value": analytics.total_stock_value(gateway.list_products())}

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
