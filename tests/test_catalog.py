"""Tests for catalog filtering, variant normalization and pagination."""

import pytest
from pydantic import ValidationError

from catalog import (
    filter_products,
    matches,
    normalize_color,
    normalize_size,
    page_window,
    paginate,
    primary_image,
)
from schemas import FilterSet, Product, StructuredColor, StructuredSize


@pytest.fixture
def tote():
    return {
        "id": "p1",
        "name": "Aurora Leather Tote",
        "brand": "Aurora",
        "sku": "BAG-TOTE-001",
        "category_id": "c-bags",
        "category_name": "Bags",
        "price": 189.0,
        "sizes": ["small", {"value": "Large", "size_type": "bag"}],
        "colors": [{"name": "Brown", "hex_code": "#A52A2A"}, "Black"],
    }


# ======================================================================
# Variant normalization
# ======================================================================


class TestNormalizeSize:
    def test_string_and_structured_forms_agree(self):
        assert normalize_size("Medium") == normalize_size({"value": "Medium"}) == "medium"

    def test_falls_back_to_size_key(self):
        assert normalize_size({"size": " XL "}) == "xl"

    def test_blank_value_falls_back_to_size_key(self):
        assert normalize_size({"value": "  ", "size": "M"}) == "m"

    def test_accepts_models(self):
        assert normalize_size(StructuredSize(value="42", size_type="shoe")) == "42"

    @pytest.mark.parametrize("raw", [None, "", {}, {"value": ""}, 42, []])
    def test_unknown_input_is_empty(self, raw):
        assert normalize_size(raw) == ""


class TestNormalizeColor:
    def test_name_wins_over_value(self):
        assert normalize_color({"name": "Navy", "value": "blue"}) == "navy"

    def test_falls_back_to_value(self):
        assert normalize_color({"value": "Beige"}) == "beige"

    def test_accepts_models(self):
        assert normalize_color(StructuredColor(name="Black", hex_code="#000")) == "black"

    def test_unknown_input_is_empty(self):
        assert normalize_color({"hex_code": "#fff"}) == ""


class TestVariantModels:
    def test_size_key_is_accepted(self):
        assert StructuredSize.model_validate({"size": "M"}).value == "M"

    def test_admin_form_color_is_accepted(self):
        color = StructuredColor.model_validate({"value": "Black", "label": "Black", "hexCode": "#000000"})
        assert (color.name, color.hex_code) == ("Black", "#000000")

    def test_product_keeps_alternate_shapes_filterable(self):
        product = Product(name="Coat", price=10, sizes=[{"size": "L"}], colors=[{"value": "Navy"}])
        assert matches(product, FilterSet(selected_sizes=["l"], selected_colors=["navy"]))


# ======================================================================
# FilterSet construction
# ======================================================================


class TestFilterSet:
    def test_reversed_price_range_is_swapped(self):
        assert FilterSet(price_range=(500, 20)).price_range == (20, 500)

    def test_tokens_are_canonical(self):
        filters = FilterSet(selected_sizes=[" Large", "MEDIUM", ""], selected_colors=["Black"])
        assert filters.selected_sizes == frozenset({"large", "medium"})
        assert filters.selected_colors == frozenset({"black"})

    def test_single_string_selection_is_one_token(self):
        filters = FilterSet(selected_sizes="Large", selected_categories="Bags")
        assert filters.selected_sizes == frozenset({"large"})
        assert filters.selected_categories == frozenset({"Bags"})

    def test_is_immutable(self):
        filters = FilterSet()
        with pytest.raises(ValidationError):
            filters.search_term = "tote"


# ======================================================================
# Predicate evaluation
# ======================================================================


class TestMatches:
    def test_empty_filter_matches_everything(self, tote):
        assert matches(tote, FilterSet(price_range=(0, float("inf")))) is True
        assert matches({"name": "Bare", "price": 0}, FilterSet()) is True

    def test_is_pure(self, tote):
        filters = FilterSet(search_term="tote", selected_colors=["brown"])
        assert matches(tote, filters) == matches(tote, filters)

    @pytest.mark.parametrize("term", ["TOTE", "aurora", "bags", "bag-tote"])
    def test_search_covers_name_brand_category_and_sku(self, tote, term):
        assert matches(tote, FilterSet(search_term=term))

    def test_search_miss(self, tote):
        assert not matches(tote, FilterSet(search_term="sneaker"))

    def test_price_bounds_are_inclusive(self, tote):
        assert matches(tote, FilterSet(price_range=(189, 189)))
        assert not matches(tote, FilterSet(price_range=(0, 188.99)))
        assert not matches(tote, FilterSet(price_range=(189.01, 1000)))

    def test_sizes_use_or_within_dimension(self):
        product = {"name": "Tee", "price": 10, "sizes": ["small", "large"]}
        assert matches(product, FilterSet(selected_sizes=["large", "medium"]))
        assert not matches(product, FilterSet(selected_sizes=["medium"]))

    def test_structured_variants_are_compared_canonically(self, tote):
        assert matches(tote, FilterSet(selected_sizes=["LARGE"]))
        assert matches(tote, FilterSet(selected_colors=["brown"]))
        assert not matches(tote, FilterSet(selected_colors=["red"]))

    def test_product_without_variants_fails_active_dimension(self):
        product = {"name": "Gift Card", "price": 10, "sizes": None}
        assert not matches(product, FilterSet(selected_sizes=["small"]))

    def test_categories_by_name_or_id(self, tote):
        assert matches(tote, FilterSet(selected_categories=["Bags"]))
        assert matches(tote, FilterSet(selected_categories=["c-bags"]))
        assert not matches(tote, FilterSet(selected_categories=["Shoes"]))

    def test_dimensions_combine_with_and(self, tote):
        assert matches(tote, FilterSet(search_term="tote", selected_colors=["black"], price_range=(100, 200)))
        assert not matches(tote, FilterSet(search_term="tote", selected_colors=["black"], price_range=(0, 100)))

    def test_works_with_models(self):
        product = Product(name="Runner", price=129, sizes=["42"], colors=["White"])
        assert matches(product, FilterSet(selected_sizes=["42"], selected_colors=["white"]))

    def test_filter_products_preserves_order(self):
        items = [{"name": f"Tote {i}", "price": i} for i in range(5)]
        result = filter_products(items, FilterSet(price_range=(1, 3)))
        assert [p["price"] for p in result] == [1, 2, 3]


# ======================================================================
# Pagination
# ======================================================================


class TestPaginate:
    @pytest.mark.parametrize("count,expected", [(0, 1), (1, 1), (12, 1), (13, 2), (24, 2), (25, 3)])
    def test_total_pages(self, count, expected):
        assert paginate(list(range(count)), 1).total_pages == expected

    def test_empty_collection_has_one_empty_page(self):
        page = paginate([], 3)
        assert page.items == []
        assert page.current_page == 1

    def test_out_of_range_pages_clamp(self):
        items = list(range(30))
        assert paginate(items, 9999).items == [24, 25, 26, 27, 28, 29]
        assert paginate(items, 9999).current_page == 3
        assert paginate(items, -4).items == list(range(12))

    def test_custom_page_size(self):
        page = paginate(list("abcdefg"), 2, page_size=3)
        assert page.items == ["d", "e", "f"]
        assert page.total_pages == 3

    def test_does_not_sort(self):
        assert paginate([3, 1, 2], 1).items == [3, 1, 2]

    def test_search_then_paginate_end_to_end(self):
        products = [{"name": f"Canvas Tote {i}", "price": 20} for i in range(13)]
        products += [{"name": f"Leather Belt {i}", "price": 20} for i in range(12)]
        visible = filter_products(products, FilterSet(search_term="tote"))

        first, second, third = (paginate(visible, n) for n in (1, 2, 3))

        assert len(first.items) == 12
        assert len(second.items) == 1
        assert third.total_pages == 2
        assert third.items == second.items


class TestPageWindow:
    def test_short_collection(self):
        assert page_window(1, 2) == [1, 2]

    def test_centered_on_current(self):
        assert page_window(6, 10) == [4, 5, 6, 7, 8]

    def test_pinned_to_edges(self):
        assert page_window(1, 10) == [1, 2, 3, 4, 5]
        assert page_window(10, 10) == [6, 7, 8, 9, 10]


# ======================================================================
# Images
# ======================================================================


class TestPrimaryImage:
    def test_flagged_image_wins(self):
        product = {"images": [{"url": "a.jpg"}, {"url": "b.jpg", "is_primary": True}]}
        assert primary_image(product)["url"] == "b.jpg"

    def test_first_image_by_default(self):
        assert primary_image({"images": [{"url": "a.jpg"}, {"url": "b.jpg"}]})["url"] == "a.jpg"

    def test_no_images(self):
        assert primary_image({"images": []}) is None

    def test_product_rejects_two_primary_images(self):
        with pytest.raises(ValidationError):
            Product(name="X", price=1, images=[{"url": "a", "is_primary": True}, {"url": "b", "is_primary": True}])
