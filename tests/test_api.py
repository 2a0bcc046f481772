"""Tests for the bridge service HTTP surface and MQTT wiring."""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from bondbot.config import BondbotConfig
from bondbot.services.bridge.api import BridgeService, MISSING_FIELDS_ERROR
from bondbot.services.bridge.models import ClassifierFailure, PairState
from tests.conftest import FakePairStore, ScriptedClassifier

UPLOAD = {"audio": "UklGRiQAAABXQVZF", "from": "B", "pair_id": "pair01", "requester": "A"}


def make_service(classifier=None, config=None):
    store = FakePairStore()
    store.docs["pair01"] = PairState.new("pair01").to_document()
    service = BridgeService(
        config=config or BondbotConfig(),
        store=store,
        classifier=classifier or ScriptedClassifier("The tone sounds happy and warm."),
    )
    service._mqtt_client = AsyncMock()
    return service


def published(service):
    """(topic, decoded payload) for every MQTT publish made so far."""
    return [
        (call.args[0], json.loads(call.args[1]))
        for call in service._mqtt_client.publish.await_args_list
    ]


@pytest.fixture
def service():
    return make_service()


@pytest.fixture
def client(service):
    return TestClient(service.get_app())


class TestAnalyzeMood:

    def test_happy_path(self, service, client):
        response = client.post("/analyze-mood", json=UPLOAD)

        assert response.status_code == 200
        assert response.json() == {"mood": "happy", "status": "ok"}
        assert published(service) == [(
            "bondbot/pair01/B_to_A",
            {"type": "MOOD_RESULT", "mood": "happy", "from": "B", "target": "A", "pair_id": "pair01"},
        )]
        records = service.store.docs["pair01"]["interactions"]
        assert [r["type"] for r in records] == ["MOOD_ANALYSIS"]

    def test_classifier_failure_returns_neutral(self):
        service = make_service(ScriptedClassifier(error=ClassifierFailure("HTTP 500")))
        client = TestClient(service.get_app())

        response = client.post("/analyze-mood", json=UPLOAD)

        assert response.status_code == 200
        assert response.json() == {"mood": "neutral", "status": "ok"}
        assert published(service) == [(
            "bondbot/pair01/B_to_A",
            {"type": "MOOD_RESULT", "mood": "neutral", "from": "B", "target": "A", "pair_id": "pair01"},
        )]

    def test_missing_fields(self, service, client):
        """Rejected before processing: no publish, no log entry"""
        response = client.post("/analyze-mood", json={"from": "A"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing fields: audio, from, pair_id, requester"}
        assert service._mqtt_client.publish.await_count == 0
        assert service.store.mutations == []
        assert service.classifier.calls == []

    @pytest.mark.parametrize("body", [
        {**UPLOAD, "audio": ""},
        {**UPLOAD, "requester": None},
        ["not", "an", "object"],
    ])
    def test_empty_or_wrong_shape_is_missing(self, service, client, body):
        response = client.post("/analyze-mood", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": MISSING_FIELDS_ERROR}

    def test_too_large(self, service, client):
        body = json.dumps({**UPLOAD, "audio": "A" * (1024 * 1024)})

        response = client.post("/analyze-mood", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 413
        assert response.json() == {"error": "Audio too large"}
        assert response.headers["connection"] == "close"
        assert service._mqtt_client.publish.await_count == 0

    def test_size_limit_from_config(self):
        config = BondbotConfig()
        config.http.max_body_bytes = 64
        service = make_service(config=config)
        client = TestClient(service.get_app())

        def chunks():
            yield b'{"audio": "'
            yield b"A" * 100
            yield b'"}'

        response = client.post("/analyze-mood", content=chunks())

        assert response.status_code == 413

    def test_invalid_json_is_internal_error(self, service, client):
        response = client.post("/analyze-mood", content=b"{oops", headers={"Content-Type": "application/json"})

        assert response.status_code == 500
        assert "error" in response.json()

    def test_broker_offline_still_answers(self, service, client):
        """No broker connection: the caller still gets its mood"""
        service._mqtt_client = None

        response = client.post("/analyze-mood", json=UPLOAD)

        assert response.status_code == 200
        assert response.json() == {"mood": "happy", "status": "ok"}
        records = service.store.docs["pair01"]["interactions"]
        assert [r["type"] for r in records] == ["MOOD_ANALYSIS"]


class TestHttpSurface:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "bondbot-backend"}
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.parametrize("path", ["/analyze-mood", "/anything/else"])
    def test_options_preflight(self, client, path):
        response = client.options(path)

        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"

    @pytest.mark.parametrize("method,path", [
        ("get", "/nope"),
        ("post", "/health"),
        ("get", "/analyze-mood"),
        ("delete", "/analyze-mood"),
    ])
    def test_not_found(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}


class TestMqttWiring:

    @pytest.mark.asyncio
    async def test_subscribed_message_reaches_router(self, service):
        raw = json.dumps({"type": "ACTIVITY_UPDATE", "from": "A", "pair_id": "pair01", "day": 2}).encode()

        await service._dispatch("bondbot/pair01/A_to_B", raw)

        doc = service.store.docs["pair01"]
        assert doc["device_a"]["activity_days"][2] is True
        assert doc["device_a"]["online"] is True
        assert len(doc["interactions"]) == 1
        # The router never replies
        assert service._mqtt_client.publish.await_count == 0

    @pytest.mark.asyncio
    async def test_foreign_topic_ignored(self, service):
        await service._dispatch("elsewhere/pair01/A_to_B", b'{"pair_id": "pair01"}')

        assert service.store.mutations == []

    @pytest.mark.asyncio
    async def test_setup_initializes_configured_pairs(self):
        config = BondbotConfig()
        config.bridge.pair_ids = ["pair01", "pair02"]
        store = FakePairStore()
        service = BridgeService(config=config, store=store, classifier=ScriptedClassifier())
        service.add_task = lambda coro: coro.close()

        await service.setup()
        await service.setup()

        assert sorted(store.docs) == ["pair01", "pair02"]
        assert store.mutations.count("ensure_pair") == 2

    @pytest.mark.asyncio
    async def test_setup_fails_when_store_down(self):
        store = FakePairStore()
        store.fail.add("ensure_indexes")
        service = BridgeService(config=BondbotConfig(), store=store, classifier=ScriptedClassifier())

        with pytest.raises(RuntimeError):
            await service.setup()
