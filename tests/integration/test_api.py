"""
Integration tests for the RSM News API.

The app runs with its real routes, middleware and SQLite repositories (on a
temporary database); only the chat transport, the portals and the model are
fakes. The scheduler is not started.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from rsmnews.api.app import create_app
from rsmnews.channel import messages
from rsmnews.news.digest import DIGEST_HEADER
from rsmnews.news.models import ArticleCandidate, ArticleDetail
from rsmnews.news.repository import NewsCacheRepository
from rsmnews.news.service import NewsService
from rsmnews.news.transform import ContentTransformer
from rsmnews.recipients.repository import RecipientRepository
from rsmnews.services import build_services

CREATED = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)
PHONE = "5491155550000"


def _broken_llm(prompt, **kwargs):
    return "Hoy las noticias más importantes son..."


def _news_service() -> NewsService:
    return NewsService(
        transformer=ContentTransformer(llm=_broken_llm),
        fetch_candidates=lambda portal: [
            ArticleCandidate(title="Titular de prueba de la portada", url="https://a.com/1", portal="a.com")
        ],
        fetch_detail=lambda url: ArticleDetail(url=url, content="Texto"),
        portals=lambda: ["https://a.com"],
    )


@pytest.fixture
def transport(fake_transport):
    return fake_transport()


@pytest.fixture
def client(temp_db, transport):
    services = build_services(transport=transport, news=_news_service(), post_send_delay=0)
    with TestClient(create_app(services=services, run_jobs=False)) as test_client:
        yield test_client


@pytest.fixture
def cached_entry(temp_db, make_article):
    return NewsCacheRepository.save(
        [
            make_article("https://a.com/1", title="Inflación de febrero"),
            make_article("https://a.com/2", category="ECONOMÍA", title="Suba del dólar"),
        ],
        CREATED,
    )


def _webhook(sender: str, body: str, message_id: str = "wamid.1") -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "contacts": [{"wa_id": sender}],
                            "messages": [
                                {"from": sender, "id": message_id, "type": "text", "text": {"body": body}}
                            ],
                        }
                    }
                ]
            }
        ],
    }


# ============================================================================
# Root and health
# ============================================================================


def test_root_lists_endpoints(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["summary"] == "/api/summary"


def test_health_reports_channel_state(client, transport):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["channel"] == {"connected": True}

    transport.connected = False
    assert client.get("/health").json()["channel"] == {"connected": False}


def test_database_health(client):
    response = client.get("/health/db")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "ok"}


# ============================================================================
# News summary
# ============================================================================


def test_summary_serves_cached_entry(cached_entry, client):
    response = client.get("/api/summary")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["cachedAt"] == CREATED.isoformat()
    assert [a["url"] for a in body["articles"]] == ["https://a.com/1", "https://a.com/2"]
    assert set(body["articles"][0]) == {"category", "title", "description", "url", "explained", "portal", "content"}
    assert "timestamp" in body


def test_summary_failure_with_empty_cache(client):
    response = client.get("/api/summary")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to get news summary"}
    assert NewsCacheRepository.count() == 0


# ============================================================================
# Subscribers
# ============================================================================


def test_subscribe_stats_unsubscribe_flow(client, transport):
    response = client.post("/api/subscribe", json={"phone": "+54 9 11 5555-0000", "email": "ana@example.com"})

    assert response.status_code == 200
    assert response.json()["user"] == {"phone": PHONE, "subscribed": True}
    assert transport.texts_for(PHONE) == [messages.WEB_SUBSCRIBED]
    assert RecipientRepository.get(PHONE).email == "ana@example.com"

    stats = client.get("/api/stats").json()
    assert stats == {
        "success": True,
        "stats": {"totalUsers": 1, "activeSubscribers": 1, "paidUsers": 0, "freeUsers": 1},
    }

    response = client.post("/api/unsubscribe", json={"phone": PHONE})

    assert response.json() == {"success": True, "message": "Successfully unsubscribed"}
    assert transport.texts_for(PHONE) == [messages.WEB_SUBSCRIBED, messages.WEB_UNSUBSCRIBED]
    assert RecipientRepository.get(PHONE) is None


def test_unsubscribe_unknown_phone_sends_nothing(client, transport):
    response = client.post("/api/unsubscribe", json={"phone": PHONE})

    assert response.status_code == 200
    assert transport.sent == []


@pytest.mark.parametrize("body", [{}, {"phone": ""}, {"phone": "sin numeros"}])
def test_subscribe_requires_phone(client, body):
    response = client.post("/api/subscribe", json=body)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Phone number required"}


def test_subscribe_succeeds_when_confirmation_fails(temp_db, fake_transport):
    transport = fake_transport(fail_for={PHONE})
    services = build_services(transport=transport, news=_news_service(), post_send_delay=0)

    with TestClient(create_app(services=services, run_jobs=False)) as client:
        response = client.post("/api/subscribe", json={"phone": PHONE})

    assert response.status_code == 200
    assert RecipientRepository.get(PHONE).subscribed


def test_validation_error_shape(client):
    response = client.post("/api/subscribe", json={"phone": ["no", "es", "texto"]})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["invalid_fields"] == ["phone"]


def test_subscribe_is_rate_limited(client):
    for _ in range(5):
        assert client.post("/api/subscribe", json={"phone": PHONE}).status_code == 200

    response = client.post("/api/subscribe", json={"phone": PHONE})

    assert response.status_code == 429
    assert response.json()["success"] is False


# ============================================================================
# WhatsApp webhook
# ============================================================================


def test_webhook_verification(client, monkeypatch):
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", "secreto")

    ok = client.get(
        "/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "secreto", "hub.challenge": "1158201444"},
    )
    rejected = client.get(
        "/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "otro", "hub.challenge": "1158201444"},
    )

    assert ok.status_code == 200
    assert ok.text == "1158201444"
    assert rejected.status_code == 403


def test_webhook_subscribe_command(client, transport):
    response = client.post("/webhooks/whatsapp", json=_webhook(PHONE, "Suscribir"))

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert transport.texts_for(PHONE) == [messages.SUBSCRIBED]
    assert RecipientRepository.get(PHONE).subscribed


def test_webhook_status_now_sends_digest(cached_entry, client, transport):
    client.post("/webhooks/whatsapp", json=_webhook(PHONE, "actualizame"))

    (digest,) = transport.texts_for(PHONE)
    assert digest.startswith(DIGEST_HEADER)
    assert "*INFLACIÓN DE FEBRERO:*" in digest
    assert "SUBA DEL DÓLAR" not in digest


def test_webhook_redelivery_is_answered_once(client, transport):
    payload = _webhook(PHONE, "ayuda", message_id="wamid.dup")

    client.post("/webhooks/whatsapp", json=payload)
    client.post("/webhooks/whatsapp", json=payload)

    assert transport.texts_for(PHONE) == [messages.HELP]


def test_webhook_ignores_status_callbacks(client, transport):
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]}

    response = client.post("/webhooks/whatsapp", json=payload)

    assert response.status_code == 200
    assert transport.sent == []


def test_webhook_rejects_invalid_json(client):
    response = client.post(
        "/webhooks/whatsapp",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400


def test_webhook_payload_must_be_an_object(client):
    response = client.post("/webhooks/whatsapp", content=json.dumps([1, 2]), headers={"Content-Type": "application/json"})

    assert response.status_code == 400
