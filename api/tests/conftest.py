import itertools
import os
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from minio.error import S3Error
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ.pop("EMAIL_USER", None)

from angelmarket.main import app  # noqa: E402
from angelmarket import db as db_module  # noqa: E402
from angelmarket.db import get_session  # noqa: E402
from angelmarket import email as email_module  # noqa: E402
from angelmarket import main as main_module  # noqa: E402
from angelmarket import offers as offers_module  # noqa: E402
from angelmarket import storage as storage_module  # noqa: E402
from angelmarket.config import ADMIN_EMAIL, ADMIN_PASSWORD  # noqa: E402
from angelmarket.routers import nda as nda_router  # noqa: E402
from angelmarket.routers import projects as projects_router  # noqa: E402

SIMPLE_SIGNATURE_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8/5+hHgAHggJ/Pf8icQAAAABJRU5ErkJggg=="
SIGNATURE_DATA_URL = f"data:image/png;base64,{SIMPLE_SIGNATURE_B64}"
PASSWORD = "password123"


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, setup_db):
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def mock_storage(monkeypatch) -> Dict[str, bytes]:
    store: Dict[str, bytes] = {}

    def fake_put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
        store[key] = bytes(data)

    def fake_get_bytes(key: str) -> bytes:
        if key not in store:
            raise S3Error(
                code="NoSuchKey",
                message="missing",
                resource=f"/{key}",
                request_id="test-request",
                host_id="test-host",
                response=None,
            )
        return store[key]

    def fake_delete_object(key: str):
        store.pop(key, None)

    for target in (storage_module, offers_module, projects_router, nda_router, main_module):
        if hasattr(target, "put_bytes"):
            monkeypatch.setattr(target, "put_bytes", fake_put_bytes)
        if hasattr(target, "get_bytes"):
            monkeypatch.setattr(target, "get_bytes", fake_get_bytes)
        if hasattr(target, "delete_object"):
            monkeypatch.setattr(target, "delete_object", fake_delete_object)
    return store


@pytest.fixture
def sent_emails(monkeypatch):
    messages = []

    def fake_send_email(to, subject, text_body, html_body=None, attachments=None):
        messages.append(
            {
                "to": to,
                "subject": subject,
                "text": text_body,
                "html": html_body,
                "attachments": attachments or [],
            }
        )

    monkeypatch.setattr(email_module, "send_email", fake_send_email)
    return messages


@pytest.fixture
def client(test_engine, setup_db, mock_storage, sent_emails):
    db_module.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(client):
    counter = itertools.count(1)

    def _make(role: str = "investor", **fields):
        n = next(counter)
        payload = {
            "email": f"{role}{n}@example.com",
            "password": PASSWORD,
            "first_name": role.title(),
            "last_name": f"Number{n}",
            "role": role,
            "company_name": f"{role.title()} Co {n}",
        }
        payload.update(fields)
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {
            "id": body["user"]["id"],
            "email": payload["email"],
            "token": body["token"],
            "headers": auth_headers(body["token"]),
        }

    return _make


@pytest.fixture
def investor(make_user):
    return make_user("investor")


@pytest.fixture
def developer(make_user):
    return make_user("developer")


@pytest.fixture
def admin_headers(client):
    resp = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text
    return auth_headers(resp.json()["token"])


@pytest.fixture
def category_id(client):
    resp = client.get("/api/categories")
    assert resp.status_code == 200
    return resp.json()["categories"][0]["id"]


@pytest.fixture
def make_project(client, developer, admin_headers, category_id):
    counter = itertools.count(1)

    def _make(owner=None, approve=True, submit=True, **fields):
        owner = owner or developer
        n = next(counter)
        payload = {
            "title": f"Startup {n}",
            "tagline": f"Tagline {n}",
            "category_id": category_id,
            "description": f"Description for startup {n}",
            "problem": "A problem",
            "solution": "A solution",
            "min_investment": 10000,
            "max_investment": 100000,
            "equity_offered": 10,
            "valuation_cap": 2000000,
        }
        payload.update(fields)
        resp = client.post("/api/projects", json=payload, headers=owner["headers"])
        assert resp.status_code == 201, resp.text
        project_id = resp.json()["project"]["id"]
        if submit or approve:
            resp = client.post(f"/api/projects/{project_id}/submit", headers=owner["headers"])
            assert resp.status_code == 200, resp.text
        if approve:
            resp = client.post(
                f"/api/admin/projects/{project_id}/approve",
                json={"approved": True},
                headers=admin_headers,
            )
            assert resp.status_code == 200, resp.text
        return project_id

    return _make


@pytest.fixture
def sign_nda(client):
    def _sign(user):
        resp = client.post(
            "/api/nda/sign",
            json={"signature_data": SIGNATURE_DATA_URL, "signed_name": "Ivy Investor", "agreed": True},
            headers=user["headers"],
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _sign


@pytest.fixture
def buy_views(client):
    def _buy(user):
        resp = client.post("/api/payments/create-intent", headers=user["headers"])
        assert resp.status_code == 201, resp.text
        payment_id = resp.json()["payment_id"]
        resp = client.post(
            "/api/payments/confirm",
            json={"payment_id": payment_id, "demo_mode": True},
            headers=user["headers"],
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["payment"]

    return _buy


@pytest.fixture
def unlocked_investor(investor, sign_nda, buy_views):
    sign_nda(investor)
    buy_views(investor)
    return investor
