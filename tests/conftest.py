"""Shared fixtures: an in-memory MongoDB and an API client bound to it."""

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from gateway import DataGateway
from schemas import Category, Product


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient().db


@pytest.fixture
def store(mongo_db):
    """DataGateway backed by mongomock."""
    return DataGateway(mongo_db)


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(main, "gateway", store)
    return TestClient(main.app)


@pytest.fixture
def bags_category(store):
    return store.create_category(Category(name="Bags", slug="bags"))


@pytest.fixture
def make_product(store, bags_category):
    """Factory inserting a product and returning its id."""

    def _make(name="Aurora Leather Tote", price=100.0, stock=5, **extra):
        fields = {
            "name": name,
            "price": price,
            "stock_quantity": stock,
            "category_id": bags_category,
            "category_name": "Bags",
        }
        fields.update(extra)
        return store.create_product(Product(**fields))

    return _make
