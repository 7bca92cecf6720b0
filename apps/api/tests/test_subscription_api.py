from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from subtracker.core.config import get_settings
from subtracker.core.database import Base, get_db
from subtracker.main import app
from subtracker.subscriptions.api import FORECAST_WARNING
from subtracker.subscriptions.service import subscription_service


USER_ID = "60601fee-2bf1-4721-ae6f-7636e79a0cba"


def _fixed_now() -> datetime:
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    get_settings.cache_clear()
    monkeypatch.setattr(subscription_service, "now", _fixed_now)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()


def _create(client: TestClient, **overrides: object) -> dict:
    payload = {
        "service_name": "Yandex Plus",
        "price": 400,
        "user_id": USER_ID,
        "start_date": "07-2025",
    }
    payload.update(overrides)
    response = client.post("/subscriptions", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_get_round_trip(client: TestClient) -> None:
    created = _create(client, start_date="01-2026", end_date="12-2027")

    response = client.get(f"/subscriptions/{created['id']}")
    assert response.status_code == 200
    body = response.json()
    assert body["start_date"] == "01-2026"
    assert body["end_date"] == "12-2027"
    assert body["user_id"] == USER_ID
    assert body["price"] == 400


def test_create_duplicate_returns_conflict_envelope(client: TestClient) -> None:
    _create(client, service_name="Netflix")

    response = client.post(
        "/subscriptions",
        json={"service_name": "Netflix", "price": 100, "user_id": USER_ID, "start_date": "01-2026"},
        headers={"X-Correlation-Id": "dup-1"},
    )
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "already_exists"
    assert body["correlation_id"] == "dup-1"


@pytest.mark.parametrize(
    ("overrides", "code"),
    [
        ({"price": -1}, "negative_price"),
        ({"start_date": "2025-07"}, "invalid_date_format"),
        ({"start_date": "05-2026", "end_date": "04-2026"}, "end_before_start"),
    ],
)
def test_create_validation_errors_map_to_bad_request(client: TestClient, overrides: dict, code: str) -> None:
    payload = {"service_name": "Spotify", "price": 300, "user_id": USER_ID, "start_date": "07-2025"}
    payload.update(overrides)

    response = client.post("/subscriptions", json=payload)

    assert response.status_code == 400
    assert response.json()["code"] == code


def test_create_rejects_malformed_request_shape(client: TestClient) -> None:
    response = client.post(
        "/subscriptions",
        json={"service_name": "x" * 101, "price": 1, "user_id": USER_ID, "start_date": "01-2026"},
    )
    assert response.status_code == 422

    response = client.post(
        "/subscriptions",
        json={"service_name": "Netflix", "price": 1, "user_id": "not-a-uuid", "start_date": "01-2026"},
    )
    assert response.status_code == 422


def test_get_missing_and_invalid_ids(client: TestClient) -> None:
    response = client.get("/subscriptions/4242")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"

    assert client.get("/subscriptions/0").status_code == 422
    assert client.get("/subscriptions/abc").status_code == 422


def test_delete_subscription(client: TestClient) -> None:
    created = _create(client)

    response = client.delete(f"/subscriptions/{created['id']}")
    assert response.status_code == 200
    assert response.json() == {"status": "deleted"}

    again = client.delete(f"/subscriptions/{created['id']}")
    assert again.status_code == 404


def test_list_subscriptions_with_filters(client: TestClient) -> None:
    _create(client, service_name="Netflix", price=800)
    _create(client, service_name="Yandex Plus", price=400)
    _create(client, service_name="Yandex Music", price=200)

    response = client.get("/subscriptions", params={"user_id": USER_ID})
    assert response.status_code == 200
    assert [item["service_name"] for item in response.json()] == ["Netflix", "Yandex Plus", "Yandex Music"]

    response = client.get("/subscriptions", params={"user_id": USER_ID, "service_name": "yandex", "max_price": 300})
    assert [item["service_name"] for item in response.json()] == ["Yandex Music"]

    response = client.get("/subscriptions", params={"user_id": USER_ID, "limit": 2, "offset": 2})
    assert [item["service_name"] for item in response.json()] == ["Yandex Music"]


def test_list_rejects_inverted_price_bounds(client: TestClient) -> None:
    response = client.get("/subscriptions", params={"user_id": USER_ID, "min_price": 500, "max_price": 100})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_filter"

    assert client.get("/subscriptions", params={"user_id": "nope"}).status_code == 422
    assert client.get("/subscriptions", params={"user_id": USER_ID, "min_price": -1}).status_code == 422


def test_total_cost_for_past_period_is_not_a_forecast(client: TestClient) -> None:
    _create(client, service_name="Netflix", price=500, start_date="01-2020", end_date="12-2020")
    _create(client, service_name="Spotify", price=300, start_date="06-2020")

    response = client.get("/subscriptions/total", params={"user_id": USER_ID, "from": "01-2020", "to": "12-2020"})

    assert response.status_code == 200
    body = response.json()
    assert body["total_cost"] == 6000 + 7 * 300
    assert body["details"] == ["Netflix: 6000", "Spotify: 2100"]
    assert body["period"] == {"from": "01-2020", "to": "12-2020"}
    assert body["is_forecast"] is False
    assert "warning" not in body


def test_total_cost_reaching_future_is_flagged_as_forecast(client: TestClient) -> None:
    _create(client, service_name="Spotify", price=300, start_date="01-2026")

    response = client.get(
        "/subscriptions/total",
        params={"user_id": USER_ID, "from": "09-2026", "to": "12-2026", "service_name": "Spotify"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_cost"] == 1200
    assert body["is_forecast"] is True
    assert body["warning"] == FORECAST_WARNING


def test_total_cost_ending_in_current_month_is_not_a_forecast(client: TestClient) -> None:
    _create(client, service_name="Spotify", price=300, start_date="01-2026")

    response = client.get("/subscriptions/total", params={"user_id": USER_ID, "from": "01-2026", "to": "10-2026"})

    assert response.status_code == 200
    body = response.json()
    assert body["total_cost"] == 3000
    assert body["is_forecast"] is False
    assert "warning" not in body


def test_total_cost_rejects_bad_periods(client: TestClient) -> None:
    response = client.get("/subscriptions/total", params={"user_id": USER_ID, "from": "2026-01", "to": "12-2026"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_date_format"

    response = client.get("/subscriptions/total", params={"user_id": USER_ID, "from": "12-2026", "to": "01-2026"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_date_range"

    assert client.get("/subscriptions/total", params={"user_id": USER_ID, "from": "01-2026"}).status_code == 422


def test_extend_subscription(client: TestClient) -> None:
    created = _create(client, start_date="01-2026", end_date="12-2026")

    same = client.put(f"/subscriptions/{created['id']}/extend", json={"end_date": "12-2026", "price": 400})
    assert same.status_code == 400
    assert same.json()["code"] == "non_advancing_extension"

    past = client.put(f"/subscriptions/{created['id']}/extend", json={"end_date": "09-2026", "price": 400})
    assert past.status_code == 400
    assert past.json()["code"] == "past_extension"

    response = client.put(f"/subscriptions/{created['id']}/extend", json={"end_date": "01-2027", "price": 550})
    assert response.status_code == 200
    body = response.json()
    assert body["end_date"] == "01-2027"
    assert body["price"] == 550

    missing = client.put("/subscriptions/4242/extend", json={"end_date": "01-2027", "price": 550})
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
