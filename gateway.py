"""
DataGateway: persistence for products, categories, carts, orders and campaigns.

All reads return plain dicts with the Mongo ``_id`` replaced by a string
``id``. Pricing, filtering and analytics never happen here.
"""
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

import database
from database import create_document, get_documents, require_db
from schemas import Campaign, CampaignPerformanceUpdate, CartItem, Category, Order, OrderStatus, Product

logger = logging.getLogger(__name__)


class NotFound(LookupError):
    pass


def to_str_id(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise NotFound(f"Invalid id: {id_str}")


def new_order_number() -> str:
    return f"ORD-{datetime.now(timezone.utc):%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class DataGateway:
    def __init__(self, mongo_db=None):
        self._mongo_db = mongo_db

    @property
    def db(self):
        if self._mongo_db is not None:
            return self._mongo_db
        return require_db(database.db)

    # ---------- generic ----------

    def _get(self, collection: str, doc_id: str) -> dict:
        doc = self.db[collection].find_one({"_id": oid(doc_id)})
        if not doc:
            raise NotFound(f"{collection.capitalize()} not found")
        return to_str_id(doc)

    def _list(self, collection: str, filt: Optional[dict] = None, sort: Optional[list] = None) -> List[dict]:
        return [to_str_id(d) for d in get_documents(collection, filt, sort=sort, database=self.db)]

    def _update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> dict:
        fields = dict(fields)
        fields["updated_at"] = datetime.now(timezone.utc)
        doc = self.db[collection].find_one_and_update(
            {"_id": oid(doc_id)}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )
        if not doc:
            raise NotFound(f"{collection.capitalize()} not found")
        return to_str_id(doc)

    def _delete(self, collection: str, doc_id: str) -> None:
        res = self.db[collection].delete_one({"_id": oid(doc_id)})
        if res.deleted_count == 0:
            raise NotFound(f"{collection.capitalize()} not found")

    def collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    # ---------- categories ----------

    def list_categories(self, active_only: bool = False) -> List[dict]:
        filt = {"is_active": True} if active_only else {}
        return self._list("category", filt, sort=[("sort_order", 1), ("name", 1)])

    def get_category(self, category_id: str) -> dict:
        return self._get("category", category_id)

    def create_category(self, category: Category) -> str:
        return create_document("category", category, database=self.db)

    def update_category(self, category_id: str, category: Category) -> dict:
        updated = self._update("category", category_id, category.model_dump(mode="json"))
        # keep the denormalized name on products in sync
        self.db["product"].update_many({"category_id": category_id}, {"$set": {"category_name": category.name}})
        return updated

    def delete_category(self, category_id: str) -> None:
        self._delete("category", category_id)

    # ---------- products ----------

    def list_products(self, filters: Optional[Dict[str, Any]] = None) -> List[dict]:
        """Coarse server-side selection; fine-grained filtering is done by catalog.matches."""
        filters = filters or {}
        filt: Dict[str, Any] = {}
        for key in ("is_active", "is_featured", "category_id", "brand"):
            if filters.get(key) is not None:
                filt[key] = filters[key]
        if filters.get("search"):
            pattern = {"$regex": re.escape(filters["search"]), "$options": "i"}
            filt["$or"] = [{"name": pattern}, {"brand": pattern}, {"sku": pattern}, {"category_name": pattern}]
        return self._list("product", filt, sort=[("created_at", -1)])

    def get_product(self, product_id: str) -> dict:
        return self._get("product", product_id)

    def create_product(self, product: Product) -> str:
        return create_document("product", product, database=self.db)

    def update_product(self, product_id: str, product: Product) -> dict:
        return self._update("product", product_id, product.model_dump(mode="json"))

    def delete_product(self, product_id: str) -> None:
        self._delete("product", product_id)

    def reserve_stock(self, product_id: str, quantity: int) -> bool:
        """Atomically take ``quantity`` units; False when the stock would go negative."""
        doc = self.db["product"].find_one_and_update(
            {"_id": oid(product_id), "stock_quantity": {"$gte": quantity}},
            {"$inc": {"stock_quantity": -quantity}},
        )
        return doc is not None

    def release_stock(self, product_id: str, quantity: int) -> None:
        self.db["product"].update_one({"_id": oid(product_id)}, {"$inc": {"stock_quantity": quantity}})

    # ---------- cart ----------

    def get_cart(self, cart_id: str) -> List[dict]:
        return self._list("cartitem", {"cart_id": cart_id}, sort=[("created_at", 1)])

    def find_cart_item(self, cart_id: str, product_id: str,
                       selected_color: Optional[str] = None, selected_size: Optional[str] = None) -> Optional[dict]:
        return to_str_id(self.db["cartitem"].find_one({
            "cart_id": cart_id,
            "product_id": product_id,
            "selected_color": selected_color,
            "selected_size": selected_size,
        }))

    def add_cart_item(self, item: CartItem) -> str:
        existing = self.find_cart_item(item.cart_id, item.product_id, item.selected_color, item.selected_size)
        if existing:
            self.db["cartitem"].update_one({"_id": oid(existing["id"])}, {"$inc": {"quantity": item.quantity}})
            return existing["id"]
        return create_document("cartitem", item, database=self.db)

    def get_cart_item(self, item_id: str) -> dict:
        return self._get("cartitem", item_id)

    def set_cart_quantity(self, item_id: str, quantity: int) -> dict:
        return self._update("cartitem", item_id, {"quantity": quantity})

    def remove_cart_item(self, item_id: str) -> None:
        self._delete("cartitem", item_id)

    def clear_cart(self, cart_id: str) -> int:
        return self.db["cartitem"].delete_many({"cart_id": cart_id}).deleted_count

    # ---------- orders ----------

    def create_order(self, order: Order) -> Dict[str, str]:
        order = order.model_copy(update={"order_number": order.order_number or new_order_number()})
        order_id = create_document("order", order, database=self.db)
        logger.info("Order %s created (%s)", order.order_number, order.order_source.value)
        return {"order_id": order_id, "order_number": order.order_number}

    def list_orders(self, status: Optional[str] = None, source: Optional[str] = None,
                    search: Optional[str] = None) -> List[dict]:
        filt: Dict[str, Any] = {}
        if status:
            filt["status"] = status
        if source:
            filt["order_source"] = source
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            filt["$or"] = [{"order_number": pattern}, {"customer.name": pattern}, {"customer.phone": pattern}]
        return self._list("order", filt, sort=[("created_at", -1)])

    def get_order(self, order_id: str) -> dict:
        return self._get("order", order_id)

    def update_order_status(self, order_id: str, status: OrderStatus) -> dict:
        return self._update("order", order_id, {"status": OrderStatus(status).value})

    # ---------- campaigns ----------

    def list_campaigns(self, filters: Optional[Dict[str, Any]] = None) -> List[dict]:
        filters = filters or {}
        filt: Dict[str, Any] = {}
        if filters.get("is_active") is not None:
            filt["is_active"] = filters["is_active"]
        if filters.get("search"):
            filt["name"] = {"$regex": re.escape(filters["search"]), "$options": "i"}
        return self._list("campaign", filt, sort=[("start_date", -1)])

    def get_campaign(self, campaign_id: str) -> dict:
        return self._get("campaign", campaign_id)

    def create_campaign(self, campaign: Campaign) -> str:
        return create_document("campaign", campaign, database=self.db)

    def update_campaign(self, campaign_id: str, campaign: Campaign) -> dict:
        return self._update("campaign", campaign_id, campaign.model_dump(mode="json"))

    def delete_campaign(self, campaign_id: str) -> None:
        self._delete("campaign", campaign_id)

    def update_campaign_performance(self, campaign_id: str, update: CampaignPerformanceUpdate) -> dict:
        campaign = self.get_campaign(campaign_id)
        rows = {row["product_id"]: row for row in campaign.get("campaign_products", [])}
        for row in update.campaign_products:
            rows[row.product_id] = row.model_dump()
        fields: Dict[str, Any] = {"campaign_products": list(rows.values())}
        if update.total_orders is not None:
            fields["total_orders"] = update.total_orders
        return self._update("campaign", campaign_id, fields)
