import base64
import itertools
import json
from datetime import date, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from stockroom import database, inventory, models, schemas
from stockroom.auth_admin import AuthAdminClient, get_auth_admin
from stockroom.cache import CacheVersions
from stockroom.context import Role
from stockroom.main import app
from stockroom.storage import StorageClient, get_storage

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


class FakeStorage:
    """In-memory object storage behind an httpx.MockTransport"""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_uploads = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = request.url.path.rsplit("/", 1)[-1]
        if request.method == "POST":
            if self.fail_uploads:
                return httpx.Response(500, json={"error": "storage down"})
            self.objects[key] = request.content
            return httpx.Response(200, json={"Key": key})
        if request.method == "GET":
            if key in self.objects:
                return httpx.Response(200, content=self.objects[key])
            return httpx.Response(404)
        if request.method == "DELETE":
            self.deleted.append(key)
            self.objects.pop(key, None)
            return httpx.Response(200, json={})
        return httpx.Response(405)


class FakeAuthAdmin:
    """In-memory auth admin API behind an httpx.MockTransport"""

    def __init__(self):
        self.accounts = {}
        self.deleted = []
        self.next_id = None
        self._ids = itertools.count(1)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path.endswith("/users"):
            payload = json.loads(request.content)
            if any(a["email"] == payload["email"] for a in self.accounts.values()):
                return httpx.Response(422, json={"msg": "User already registered"})
            user_id = self.next_id or f"user-{next(self._ids)}"
            self.accounts[user_id] = payload
            return httpx.Response(200, json={"id": user_id, "email": payload["email"]})
        if request.method == "DELETE":
            user_id = request.url.path.rsplit("/", 1)[-1]
            self.deleted.append(user_id)
            self.accounts.pop(user_id, None)
            return httpx.Response(200, json={})
        return httpx.Response(405)


@pytest.fixture
def engine(tmp_path, monkeypatch):
    engine = database.build_engine(f"sqlite:///{tmp_path / 'stockroom.db'}")
    models.Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(
        database, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache(monkeypatch):
    versions = CacheVersions()
    monkeypatch.setattr(app.state, "cache", versions)
    return versions


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def storage(fake_storage):
    return StorageClient(
        base_url="http://storage.test/storage/v1",
        bucket="item-images",
        api_key="test-key",
        transport=httpx.MockTransport(fake_storage.handler),
    )


@pytest.fixture
def fake_auth():
    return FakeAuthAdmin()


@pytest.fixture
def auth_admin(fake_auth):
    return AuthAdminClient(
        base_url="http://auth.test/auth/v1/admin",
        api_key="test-key",
        transport=httpx.MockTransport(fake_auth.handler),
    )


@pytest.fixture
def client(engine, cache, storage, auth_admin):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_auth_admin] = lambda: auth_admin
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def add_user(db, user_id, role, email=None, username=None):
    email = email or f"{user_id}@example.com"
    db.add(models.Profile(id=user_id, username=username or user_id, email=email))
    db.flush()
    if role is not None:
        db.add(models.UserRole(user_id=user_id, role=Role(role).value))
    db.commit()
    return {"X-User-Id": user_id, "X-User-Email": email}


@pytest.fixture
def superadmin(db):
    return add_user(db, "root", "superadmin", email="root@example.com")


@pytest.fixture
def admin(db):
    return add_user(db, "clerk", "admin", email="clerk@example.com")


@pytest.fixture
def viewer(db):
    return add_user(db, "guest", "viewer", email="guest@example.com")


@pytest.fixture
def make_item(db):
    def make(name="Cement bag", quantity=50, **fields):
        return inventory.create_item(db, schemas.InventoryItemCreate(name=name, quantity=quantity, **fields))
    return make


def borrow_request(item_id, quantity, **fields):
    values = {
        "item_id": item_id,
        "quantity": quantity,
        "borrower_name": "Juan Dela Cruz",
        "borrower_department": "Site A",
        "borrow_date": date.today(),
        "return_date": date.today() + timedelta(days=7),
    }
    values.update(fields)
    return schemas.BorrowCreate(**values)
