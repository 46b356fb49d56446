"""
Catalog query helpers: variant normalization, filter predicates and paging.

Everything here works on plain data. Products can be pydantic models or the
dicts returned by the gateway; no function mutates its input.
"""
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

from schemas import FilterSet

DEFAULT_PAGE_SIZE = 12


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


# ---------- Variant normalization ----------

def _token(raw: Any, keys: Sequence[str]) -> str:
    if isinstance(raw, str):
        return raw.strip().lower()
    if raw is None:
        return ""
    for key in keys:
        value = _field(raw, key)
        token = str(value).strip().lower() if value is not None else ""
        if token:
            return token
    return ""


def normalize_size(raw_size: Any) -> str:
    """Canonical token for a size given as 'M', {'value': 'M'} or {'size': 'M'}."""
    return _token(raw_size, ("value", "size"))


def normalize_color(raw_color: Any) -> str:
    """Canonical token for a color given as 'Black', {'name': 'Black'} or {'value': 'black'}."""
    return _token(raw_color, ("name", "value"))


def _variant_tokens(values: Any, normalize) -> set:
    if not isinstance(values, (list, tuple)):
        return set()
    return {token for token in map(normalize, values) if token}


# ---------- Filtering ----------

def matches(product: Any, filters: FilterSet) -> bool:
    """Return True when the product passes every active filter dimension."""
    term = filters.search_term.strip().lower()
    if term:
        haystack = (
            _field(product, "name"),
            _field(product, "brand"),
            _field(product, "category_name"),
            _field(product, "sku"),
        )
        if not any(term in str(value).lower() for value in haystack if value):
            return False

    low, high = filters.price_range
    price = float(_field(product, "price") or 0)
    if price < low or price > high:
        return False

    if filters.selected_sizes:
        sizes = _variant_tokens(_field(product, "sizes"), normalize_size)
        if sizes.isdisjoint(filters.selected_sizes):
            return False

    if filters.selected_colors:
        colors = _variant_tokens(_field(product, "colors"), normalize_color)
        if colors.isdisjoint(filters.selected_colors):
            return False

    if filters.selected_categories:
        category_name = _field(product, "category_name")
        category_id = _field(product, "category_id")
        if category_name not in filters.selected_categories and category_id not in filters.selected_categories:
            return False

    return True


def filter_products(products: Iterable[Any], filters: FilterSet) -> List[Any]:
    return [p for p in products if matches(p, filters)]


# ---------- Pagination ----------

@dataclass
class Page:
    items: List[Any] = field(default_factory=list)
    current_page: int = 1
    total_pages: int = 1
    total_items: int = 0
    page_size: int = DEFAULT_PAGE_SIZE


def paginate(items: Sequence[Any], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    """Slice one page out of an already-ordered collection.

    Out-of-range page numbers are clamped to the nearest valid page, so the
    result is never an empty slice unless the collection itself is empty.
    """
    page_size = max(1, int(page_size))
    total_items = len(items)
    total_pages = max(1, math.ceil(total_items / page_size))
    current = min(max(1, int(page)), total_pages)
    start = (current - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        current_page=current,
        total_pages=total_pages,
        total_items=total_items,
        page_size=page_size,
    )


def page_window(current_page: int, total_pages: int, width: int = 5) -> List[int]:
    """Page numbers shown in the pager, centered on the current page when possible."""
    first = max(1, min(total_pages - (width - 1), current_page - width // 2))
    return [n for n in range(first, first + min(width, total_pages)) if n <= total_pages]


# ---------- Images ----------

def primary_image(product: Any) -> Optional[Any]:
    """The image flagged primary, otherwise the first one."""
    images = _field(product, "images") or []
    for image in images:
        if _field(image, "is_primary"):
            return image
    return images[0] if images else None
