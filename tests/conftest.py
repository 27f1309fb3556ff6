"""
Shared fixtures: isolated database, test settings and a fake Graph API.
"""
import json
from typing import Any, Dict, List, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from meta_relay.api.deps import get_graph_client
from meta_relay.core.config import Settings, get_settings
from meta_relay.core.database import Base, enable_sqlite_foreign_keys, get_db
from meta_relay.core.security import SIGNATURE_HEADER, compute_signature
from meta_relay.main import app
from meta_relay.models import conversation, message  # noqa: F401 - register models
from meta_relay.services.graph_client import GraphClient

from payloads import BUSINESS_NUMBER, PAGE_ID, TEST_SECRET, VERIFY_TOKEN


class FakeGraphAPI:
    """Stands in for graph.facebook.com, recording every request it receives."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.whatsapp_response: Tuple[int, Dict[str, Any]] = (
            200,
            {
                "messaging_product": "whatsapp",
                "contacts": [{"input": "15550002", "wa_id": "15550002"}],
                "messages": [{"id": "wamid.B"}],
            },
        )
        self.messenger_response: Tuple[int, Dict[str, Any]] = (
            200,
            {"recipient_id": "psid-2", "message_id": "m_out"},
        )
        self.templates_response: Tuple[int, Dict[str, Any]] = (
            200,
            {
                "data": [
                    {
                        "name": "order_update",
                        "language": "en_US",
                        "status": "APPROVED",
                        "components": [
                            {"type": "HEADER", "format": "TEXT", "text": "Order"},
                            {"type": "BODY", "text": "Hi {{1}}, your order {{2}} has shipped."},
                        ],
                    }
                ]
            },
        )

    def fail_whatsapp(self, code: int, message: str = "Message undeliverable") -> None:
        self.whatsapp_response = (
            400,
            {"error": {"message": message, "type": "OAuthException", "code": code, "fbtrace_id": "trace"}},
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/message_templates"):
            status, body = self.templates_response
        elif path.endswith("/me/messages"):
            status, body = self.messenger_response
        elif path.endswith("/messages"):
            status, body = self.whatsapp_response
        else:
            status, body = 404, {"error": {"message": "Unknown path", "code": 803}}
        return httpx.Response(status, json=body)

    def sent_bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]


def make_graph_client(settings: Settings, fake: FakeGraphAPI) -> GraphClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    return GraphClient(settings.meta_config(), http_client=http_client)


def get_test_settings(database_url: str) -> Settings:
    """Settings for tests."""
    return Settings(
        database_url=database_url,
        log_level="DEBUG",
        log_format="text",
        meta_base_url="https://graph.test/v21.0",
        meta_whatsapp_token="wa-token",
        meta_whatsapp_phone_number_id="pn-1",
        meta_whatsapp_business_number=BUSINESS_NUMBER,
        meta_whatsapp_business_account_id="waba-1",
        meta_messenger_token="ms-token",
        meta_page_id=PAGE_ID,
        meta_app_secret=TEST_SECRET,
        meta_webhook_verify_token=VERIFY_TOKEN,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return get_test_settings(f"sqlite:///{tmp_path / 'test_meta_relay.db'}")


@pytest.fixture
def config(settings):
    return settings.meta_config()


@pytest.fixture
def engine(settings):
    """Fresh database per test."""
    engine = create_engine(settings.database_url, connect_args={"check_same_thread": False})
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def graph_api() -> FakeGraphAPI:
    return FakeGraphAPI()


@pytest.fixture
def graph_client(settings, graph_api) -> GraphClient:
    """Graph API client wired to the fake."""
    return make_graph_client(settings, graph_api)


@pytest.fixture
def client(settings, session_factory, graph_api):
    """Test client with database, settings and Graph API overridden."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    async def override_get_graph_client():
        graph = make_graph_client(settings, graph_api)
        try:
            yield graph
        finally:
            await graph.http_client.aclose()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_graph_client] = override_get_graph_client

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def post_webhook(client):
    """POST a signed payload to a channel's webhook."""

    def _post(channel: str, payload: Any, secret: str = TEST_SECRET):
        body = json.dumps(payload).encode("utf-8")
        return client.post(
            f"/{channel}/webhook",
            content=body,
            headers={
                "Content-Type": "application/json",
                SIGNATURE_HEADER: compute_signature(secret, body),
            },
        )

    return _post
