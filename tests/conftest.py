import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def mongo_db():
    db = mongomock.MongoClient().storefront_test
    database.ensure_indexes(db)
    return db


@pytest.fixture
def client(mongo_db, monkeypatch):
    monkeypatch.setattr(database, "db", mongo_db)
    monkeypatch.setattr(main, "db", mongo_db)
    return TestClient(main.app)


@pytest.fixture
def customer(mongo_db):
    _id = mongo_db["user"].insert_one({"name": "Ama", "email": "ama@example.com", "is_admin": False, "token": "customer-token"}).inserted_id
    return {"id": str(_id), "headers": {"Authorization": "Bearer customer-token"}}


@pytest.fixture
def other_customer(mongo_db):
    _id = mongo_db["user"].insert_one({"name": "Kofi", "email": "kofi@example.com", "is_admin": False, "token": "other-token"}).inserted_id
    return {"id": str(_id), "headers": {"Authorization": "Bearer other-token"}}


@pytest.fixture
def admin(mongo_db):
    _id = mongo_db["user"].insert_one({"name": "Admin", "email": "admin@example.com", "is_admin": True, "token": "admin-token"}).inserted_id
    return {"id": str(_id), "headers": {"Authorization": "Bearer admin-token"}}


@pytest.fixture
def add_product(mongo_db):
    def _add(name="Widget", price=10.0, stock_quantity=5, **extra):
        doc = {"name": name, "price": price, "stock_quantity": stock_quantity, "category": "misc", "status": "active"}
        doc.update(extra)
        return mongo_db["product"].insert_one(database.stamp(doc)).inserted_id
    return _add


@pytest.fixture
def shipping_address():
    return {
        "fullName": "Ama Mensah",
        "address": "12 Ring Road",
        "city": "Accra",
        "postalCode": "GA-100",
        "country": "Ghana",
    }


class WrappedDb:
    """Database stand-in that swaps selected collections for wrappers."""

    def __init__(self, db, **collections):
        self._db = db
        self._collections = collections

    def __getitem__(self, name):
        if name in self._collections:
            return self._collections[name]
        return self._db[name]


@pytest.fixture
def wrapped_db(mongo_db):
    def _wrap(**collections):
        return WrappedDb(mongo_db, **{name: factory(mongo_db[name]) for name, factory in collections.items()})
    return _wrap
