from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from subtracker.core.database import Base, get_db
from subtracker.main import app
from subtracker.otel import setup_inmemory_otel


USER_ID = "60601fee-2bf1-4721-ae6f-7636e79a0cba"


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
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel()
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_total_cost_and_extend_emit_spans(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    created = client.post(
        "/subscriptions",
        json={"service_name": "Netflix", "price": 500, "user_id": USER_ID, "start_date": "01-2020", "end_date": "12-2098"},
        headers={"X-Correlation-Id": "otel-corr-1"},
    )
    assert created.status_code == 201

    total = client.get("/subscriptions/total", params={"user_id": USER_ID, "from": "01-2020", "to": "12-2020"})
    assert total.status_code == 200

    extended = client.put(f"/subscriptions/{created.json()['id']}/extend", json={"end_date": "12-2099", "price": 600})
    assert extended.status_code == 200

    spans = {span.name: span for span in span_exporter.get_finished_spans()}
    assert "subscription.total_cost" in spans
    assert "subscription.extend" in spans

    total_span = spans["subscription.total_cost"]
    assert total_span.attributes["subscription.user_id"] == USER_ID
    assert total_span.attributes["subscription.period_from"] == "01-2020"
    assert total_span.attributes["subscription.total_cost"] == 6000

    assert spans["subscription.extend"].attributes["subscription.id"] == created.json()["id"]


def test_server_span_carries_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "otel-corr-2"})
    assert response.status_code == 200

    server_spans = [span for span in span_exporter.get_finished_spans() if span.kind.name == "SERVER"]
    assert any(span.attributes.get("correlation_id") == "otel-corr-2" for span in server_spans)
