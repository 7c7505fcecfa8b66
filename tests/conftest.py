"""
Shared fixtures: an in-memory Firestore double, a fake storage bucket, a
recording SMS notifier and switchable principals, all wired into the FastAPI
app through `dependency_overrides`.
"""
import copy
import io
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from google.api_core.exceptions import NotFound

from storefront.config import get_bucket, get_db
from storefront.core.auth import get_optional_principal, get_principal
from storefront.integrations.payhere import PayHereConfig, get_payhere_config
from storefront.integrations.sms import get_sms_notifier
from storefront.main import app
from storefront.schemas.principal import Principal, Role

MERCHANT_ID = "1211149"
MERCHANT_SECRET = "MzY3NjE1NjE0MjM2NDY3NzA0NTMxMjMxMTI0OTQ4Nzk5MTE="


# ---------- Firestore double ----------
class FakeSnapshot:
    def __init__(self, reference, data: Optional[Dict[str, Any]]):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocumentReference:
    def __init__(self, db: "FakeFirestore", collection: str, doc_id: str):
        self._db = db
        self._collection = collection
        self.id = doc_id

    @property
    def _store(self) -> Dict[str, Dict[str, Any]]:
        return self._db.data.setdefault(self._collection, {})

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self, self._store.get(self.id))

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        if merge and self.id in self._store:
            self._store[self.id].update(copy.deepcopy(data))
        else:
            self._store[self.id] = copy.deepcopy(data)

    def update(self, patch: Dict[str, Any]) -> None:
        if self.id not in self._store:
            raise NotFound(f"No document to update: {self._collection}/{self.id}")
        self._store[self.id].update(copy.deepcopy(patch))

    def delete(self) -> None:
        self._store.pop(self.id, None)


_OPS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
}


class FakeQuery:
    def __init__(self, db: "FakeFirestore", collection: str, filters=None, orders=None, limit=None):
        self._db = db
        self._collection = collection
        self._filters = list(filters or [])
        self._orders = list(orders or [])
        self._limit = limit

    def _copy(self, **kw) -> "FakeQuery":
        args = {"filters": self._filters, "orders": self._orders, "limit": self._limit}
        args.update(kw)
        return FakeQuery(self._db, self._collection, **args)

    def where(self, *args, filter=None):
        if filter is None:
            field, op, value = args
        else:
            field, op, value = filter.field_path, filter.op_string, filter.value
        return self._copy(filters=self._filters + [(field, op, value)])

    def order_by(self, field: str, direction: str = "ASCENDING"):
        return self._copy(orders=self._orders + [(field, direction)])

    def limit(self, count: int):
        return self._copy(limit=count)

    def stream(self):
        store = self._db.data.get(self._collection, {})
        rows = [
            (doc_id, data) for doc_id, data in list(store.items())
            if all(_OPS[op](data.get(field), value) for field, op, value in self._filters)
        ]
        for field, direction in reversed(self._orders):
            rows.sort(key=lambda r: (r[1].get(field) is not None, r[1].get(field)), reverse=direction == "DESCENDING")
        if self._limit is not None:
            rows = rows[: self._limit]
        for doc_id, data in rows:
            ref = FakeDocumentReference(self._db, self._collection, doc_id)
            yield FakeSnapshot(ref, copy.deepcopy(data))

    def get(self) -> List[FakeSnapshot]:
        return list(self.stream())


class FakeCollection(FakeQuery):
    def document(self, doc_id: Optional[str] = None) -> FakeDocumentReference:
        return FakeDocumentReference(self._db, self._collection, doc_id or uuid.uuid4().hex[:20])


class FakeBatch:
    def __init__(self):
        self._ops = []

    def set(self, ref, data, merge: bool = False):
        self._ops.append(lambda: ref.set(data, merge=merge))

    def update(self, ref, patch):
        self._ops.append(lambda: ref.update(patch))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for op in self._ops:
            op()
        self._ops = []


class FakeFirestore:
    def __init__(self):
        self.data: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def batch(self) -> FakeBatch:
        return FakeBatch()

    # test helpers
    def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.data.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        return data

    def raw(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self.data.get(collection, {}).get(doc_id)


# ---------- Storage double ----------
class FakeBlob:
    def __init__(self, bucket: "FakeBucket", name: str):
        self.bucket = bucket
        self.name = name
        self.content_type = None

    def upload_from_file(self, fileobj, content_type=None):
        self.content_type = content_type
        self.bucket.blobs[self.name] = fileobj.read()

    def make_public(self):
        pass

    @property
    def public_url(self) -> str:
        return f"https://storage.test/{self.name}"

    def generate_signed_url(self, expiration=None) -> str:
        return f"https://storage.test/{self.name}?signed=1"

    def delete(self):
        self.bucket.blobs.pop(self.name, None)


class FakeBucket:
    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def blob(self, name: str) -> FakeBlob:
        return FakeBlob(self, name)


# ---------- SMS double ----------
class RecordingSms:
    def __init__(self):
        self.calls = []

    def cod_order_placed(self, order_id, phone):
        self.calls.append(("cod", order_id, phone))

    def card_payment_confirmed(self, order_id, phone, total_amount, customer_name):
        self.calls.append(("card", order_id, phone, total_amount, customer_name))


# ---------- auth ----------
class AuthState:
    """The principal every request in a test runs as (None = anonymous)."""

    def __init__(self):
        self.principal: Optional[Principal] = None

    def login(self, uid: str = "user-1", *roles: Role) -> Principal:
        self.principal = Principal(uid=uid, roles=set(roles) or {Role.customer})
        return self.principal

    def logout(self) -> None:
        self.principal = None


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def sms():
    return RecordingSms()


@pytest.fixture
def auth():
    return AuthState()


@pytest.fixture
def payhere_config():
    return PayHereConfig(merchant_id=MERCHANT_ID, merchant_secret=MERCHANT_SECRET)


@pytest.fixture
def client(db, bucket, sms, auth, payhere_config):
    def _optional():
        return auth.principal

    def _required():
        if auth.principal is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return auth.principal

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_bucket] = lambda: bucket
    app.dependency_overrides[get_sms_notifier] = lambda: sms
    app.dependency_overrides[get_payhere_config] = lambda: payhere_config
    app.dependency_overrides[get_optional_principal] = _optional
    app.dependency_overrides[get_principal] = _required
    # no context manager: startup (and the scheduler) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------- data helpers ----------
def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_product(db, now):
    counter = {"n": 0}

    def _make(product_id: Optional[str] = None, price: float = 45.99, discount: float = 0,
              status: str = "in_stock", name: str = "Chocolate Cake", **extra):
        counter["n"] += 1
        pid = product_id or f"prod-{counter['n']}"
        db.put("products", pid, {
            "name": name,
            "description": "",
            "category_id": "cakes",
            "price": price,
            "discount_percentage": discount,
            "status": status,
            "daily_deals": False,
            "images": [f"https://storage.test/products/{pid}/main.jpg"],
            "created_at": now + timedelta(seconds=counter["n"]),
            "updated_at": now,
            **extra,
        })
        return pid

    return _make


@pytest.fixture
def make_location(db, now):
    def _make(city: str = "Colombo", shipping_charge: float = 350.0, is_active: bool = True, **extra):
        doc_id = f"loc-{city.lower()}"
        db.put("delivery_locations", doc_id, {
            "city": city, "city_key": city.lower(), "shipping_charge": shipping_charge, "is_active": is_active,
            "created_at": now, "updated_at": now, **extra,
        })
        return doc_id

    return _make


@pytest.fixture
def make_cart(db, now):
    def _make(items, cart_id: str = "cart-1", user_id: Optional[str] = None,
              session_id: Optional[str] = None, updated_at: Optional[datetime] = None, **extra):
        rows = [
            {"id": f"item-{i}", "product_id": pid, "quantity": qty, "wish": None}
            for i, (pid, qty) in enumerate(items)
        ]
        db.put("carts", cart_id, {
            "id": cart_id, "user_id": user_id, "session_id": session_id, "items": rows,
            "created_at": now, "updated_at": updated_at or now, **extra,
        })
        return cart_id

    return _make


def image_file(name: str = "cake.jpg", content_type: str = "image/jpeg"):
    return (name, io.BytesIO(b"\xff\xd8\xff\xe0fake-jpeg"), content_type)
