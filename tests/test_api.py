import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings
from database import Base
from main import app, get_db


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _signup(client: TestClient, email: str = "ana@finance-app.io") -> dict[str, str]:
    response = client.post(
        "/api/auth/signup",
        data={"name": "Ana", "email": email, "password": "secret1"},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}


def test_signup_login_and_me(client: TestClient) -> None:
    headers = _signup(client)

    duplicate = client.post(
        "/api/auth/signup",
        data={"name": "Ana", "email": "ANA@finance-app.io", "password": "secret1"},
    )
    assert duplicate.status_code == 409

    missing = client.post("/api/auth/signup", data={"email": "x@finance-app.io"})
    assert missing.status_code == 400

    login = client.post(
        "/api/auth/login", json={"email": "ana@finance-app.io", "password": "secret1"}
    )
    assert login.status_code == 200
    bad_login = client.post(
        "/api/auth/login", json={"email": "ana@finance-app.io", "password": "nope"}
    )
    assert bad_login.status_code == 401

    me = client.get("/api/auth/me", headers=headers)
    assert me.json()["user"]["email"] == "ana@finance-app.io"


def test_protected_routes_require_token(client: TestClient) -> None:
    assert client.get("/api/stats").status_code == 401
    assert (
        client.get("/api/stats", headers={"Authorization": "Bearer forged"}).status_code
        == 401
    )


def test_transaction_round_trip_and_stats(client: TestClient) -> None:
    headers = _signup(client)
    created = client.post(
        "/api/stats/transactions",
        headers=headers,
        json={
            "type": "expense",
            "amount": 12.5,
            "category": "Food",
            "paymentMethod": "card",
            "description": "Lunch",
            "date": "2025-06-01",
        },
    )
    assert created.status_code == 201
    body = created.json()
    assert body["amount"] == 12.5
    assert body["paymentMethod"] == "card"

    listing = client.get("/api/stats/transactions", headers=headers).json()
    assert listing["total"] == 1
    assert listing["pages"] == 1
    assert listing["transactions"][0]["id"] == body["id"]

    stats = client.get("/api/stats", headers=headers).json()
    assert stats["totals"] == {"income": 0.0, "expense": 12.5, "balance": -12.5}

    bad_date = client.get("/api/stats?from=not-a-date", headers=headers)
    assert bad_date.status_code == 400


def test_transactions_are_scoped_to_owner(client: TestClient) -> None:
    owner = _signup(client)
    intruder = _signup(client, "ben@finance-app.io")
    txn_id = client.post(
        "/api/stats/transactions",
        headers=owner,
        json={"type": "income", "amount": 100, "category": "Salary"},
    ).json()["id"]

    update = client.put(
        f"/api/stats/transactions/{txn_id}",
        headers=intruder,
        json={"type": "income", "amount": 1, "category": "Salary"},
    )
    assert update.status_code == 404
    assert (
        client.delete(f"/api/stats/transactions/{txn_id}", headers=intruder).status_code
        == 404
    )
    assert client.get("/api/stats/transactions", headers=intruder).json()["total"] == 0


def test_ml_endpoints(client: TestClient) -> None:
    headers = _signup(client)

    categorized = client.post(
        "/api/ml/categorize", headers=headers, json={"description": "pizza"}
    )
    assert categorized.json() == {"category": "Food"}
    assert (
        client.post("/api/ml/categorize", headers=headers, json={}).status_code == 422
    )

    insights = client.get("/api/ml/insights", headers=headers).json()
    assert insights == {"predictions": {}, "anomalies": [], "suggestions": []}
    assert client.get("/api/insights", headers=headers).json() == {"insights": []}


def test_trends_days_zero_is_clamped_to_one_day(client: TestClient) -> None:
    headers = _signup(client)

    one_day = client.get("/api/stats/trends?days=0", headers=headers).json()["range"]
    assert one_day["start"] == one_day["end"]

    negative = client.get("/api/stats/trends?days=-5", headers=headers).json()["range"]
    assert negative["start"] == negative["end"]

    default = client.get("/api/stats/trends?days=abc", headers=headers).json()["range"]
    assert default["start"] != default["end"]


def test_invalid_filter_values_are_rejected(client: TestClient) -> None:
    headers = _signup(client)
    assert (
        client.get("/api/stats/transactions?type=refund", headers=headers).status_code
        == 400
    )
    assert (
        client.get(
            "/api/stats/transactions?paymentMethod=barter", headers=headers
        ).status_code
        == 400
    )


def test_failed_commit_returns_server_error_and_writes_nothing(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    headers = _signup(client)

    def failing_commit(self) -> None:
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(Session, "commit", failing_commit)
    with caplog.at_level(logging.ERROR, logger="services"):
        response = client.post(
            "/api/stats/transactions",
            headers=headers,
            json={"type": "expense", "amount": 10, "category": "Food"},
        )
    monkeypatch.undo()

    assert response.status_code == 500
    assert response.json() == {"detail": "Server error"}
    assert "store_error: action=create transaction" in caplog.text
    assert client.get("/api/stats/transactions", headers=headers).json()["total"] == 0


def test_duplicate_signup_does_not_leave_avatar_behind(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, tmp_path
) -> None:
    monkeypatch.setattr(get_settings(), "upload_dir", tmp_path)
    form = {"name": "Ana", "email": "ana@finance-app.io", "password": "secret1"}
    avatar = {"avatar": ("me.png", b"\x89PNG\r\n\x1a\nfake", "image/png")}

    first = client.post("/api/auth/signup", data=form, files=avatar)
    assert first.status_code == 201
    assert first.json()["user"]["avatarUrl"].startswith("/uploads/me-")
    assert len(list(tmp_path.iterdir())) == 1

    second = client.post("/api/auth/signup", data=form, files=avatar)
    assert second.status_code == 409
    assert len(list(tmp_path.iterdir())) == 1
