#!/usr/bin/env python3
"""
BondBot - Bridge Service
Connects the MQTT pair topics with MongoDB pair_state and serves the audio
mood endpoint used by the devices.

Endpoints:
- GET /health: Health check
- POST /analyze-mood: Classify a voice clip and send the mood to the requester
- OPTIONS *: CORS preflight
"""

import asyncio
import json
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from bondbot.config import get_config, BondbotConfig
from bondbot.common import mqtt_topics
from bondbot.common.service_base import BondbotService
from .classifier import GeminiClassifier
from .interactions import InteractionLog
from .models import Device, MissingField, PayloadTooLarge, StoreUnavailable
from .mood import Classifier, MoodAnalysisCoordinator
from .presence import PresenceTracker
from .router import MessageRouter
from .store import PairStateStore

UPLOAD_FIELDS = ("audio", "from", "pair_id", "requester")
MISSING_FIELDS_ERROR = f"Missing fields: {', '.join(UPLOAD_FIELDS)}"
TOO_LARGE_ERROR = "Audio too large"


# Response models
class MoodResponse(BaseModel):
    """Response model for a completed mood analysis."""
    mood: str = Field(..., description="happy, neutral or sad")
    status: str = Field("ok", description="Operation status")


class ErrorResponse(BaseModel):
    error: str


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read the request body, giving up as soon as it passes ``limit`` bytes."""
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > limit:
        raise PayloadTooLarge(f"Content-Length {length} exceeds {limit}")
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise PayloadTooLarge(f"Body exceeds {limit} bytes")
    return bytes(body)


def parse_upload(data: Any) -> Dict[str, str]:
    """Validate a decoded upload body. Every field must be present and non-empty."""
    if not isinstance(data, dict):
        raise MissingField(MISSING_FIELDS_ERROR)
    missing = [name for name in UPLOAD_FIELDS if not data.get(name)]
    if missing:
        raise MissingField(f"Missing {', '.join(missing)}")
    return {name: str(data[name]) for name in UPLOAD_FIELDS}


class BridgeService(BondbotService):
    """MQTT bridge and mood endpoint for paired devices."""

    def __init__(
        self,
        config: Optional[BondbotConfig] = None,
        store: Optional[PairStateStore] = None,
        classifier: Optional[Classifier] = None,
    ):
        cfg = config or get_config()
        super().__init__(
            name="bridge",
            http_port=cfg.http.port,
            config=cfg,
            display_name=cfg.bridge.service_name,
        )
        self.store = store
        self.classifier = classifier
        self._owns_store = store is None
        self.presence: Optional[PresenceTracker] = None
        self.interactions: Optional[InteractionLog] = None
        self.router: Optional[MessageRouter] = None
        self.coordinator: Optional[MoodAnalysisCoordinator] = None

        self.on_mqtt(mqtt_topics.subscribe_all(cfg.mqtt.topic_prefix))(self._on_message)
        self._register_routes(self.get_app())

        if store is not None and classifier is not None:
            self.wire()

    def wire(self):
        """Build the bridge components around the current store and classifier."""
        cfg = self.config
        self.presence = PresenceTracker(self.store, stale_after=cfg.presence.stale_after)
        self.interactions = InteractionLog(self.store)
        self.router = MessageRouter(self.store, self.presence, self.interactions)
        self.coordinator = MoodAnalysisCoordinator(
            self.classifier,
            self.interactions,
            self.mqtt_publish,
            topic_prefix=cfg.mqtt.topic_prefix,
        )

    async def setup(self):
        """Connect the store, make sure every configured pair exists, start the sweep."""
        cfg = self.config
        if self.store is None:
            self.store = PairStateStore.from_config(cfg.mongodb)
        if self.classifier is None:
            if not cfg.gemini.api_key:
                self.logger.warning("No Gemini API key configured, every mood will be neutral")
            self.classifier = GeminiClassifier(cfg.gemini)
        self.wire()

        try:
            await self.store.ensure_indexes()
            for pair_id in cfg.bridge.pair_ids:
                if await self.store.ensure_pair(pair_id):
                    self.logger.info(f"pair_state initialized for {pair_id}")
                else:
                    self.logger.info(f"pair_state already exists for {pair_id}")
        except StoreUnavailable as e:
            self.logger.error(f"MongoDB unavailable during startup: {e}")
            raise RuntimeError("pair_state initialization failed") from e

        self.add_task(self.presence.sweep_forever(cfg.presence.sweep_interval))

    async def teardown(self):
        close = getattr(self.classifier, "close", None)
        if close is not None:
            await close()
        if self.store is not None and self._owns_store:
            self.store.close()

    async def _on_message(self, topic: str, payload: bytes):
        if self.router is None:
            self.logger.warning(f"Bridge not wired yet, dropping message on {topic}")
            return
        await self.router.handle_raw(topic, payload)

    def _register_routes(self, app: FastAPI):
        """Register the mood upload route."""
        limit = self.config.http.max_body_bytes

        @app.post(
            "/analyze-mood",
            response_model=MoodResponse,
            responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        )
        async def analyze_mood(request: Request):
            """
            Classify a voice clip and publish the mood to the requesting device.

            Body: {"audio": <base64 wav>, "from": "A"|"B", "pair_id": str, "requester": "A"|"B"}
            """
            try:
                body = await read_limited_body(request, limit)
            except PayloadTooLarge as e:
                self.logger.warning(f"Rejected upload: {e}")
                return JSONResponse(
                    status_code=413,
                    content={"error": TOO_LARGE_ERROR},
                    headers={"Connection": "close"},
                )

            self.logger.info(f"Received audio upload ({len(body)} bytes)")
            try:
                upload = parse_upload(json.loads(body))
            except MissingField as e:
                self.logger.warning(f"Rejected upload: {e}")
                return JSONResponse(status_code=400, content={"error": MISSING_FIELDS_ERROR})
            except ValueError as e:
                self.logger.error(f"Error processing audio: {e}")
                return JSONResponse(status_code=500, content={"error": str(e)})

            if self.coordinator is None:
                return JSONResponse(status_code=500, content={"error": "Mood analysis not initialized"})

            try:
                mood = await self.coordinator.analyze(
                    audio=upload["audio"],
                    speaker=Device.from_tag(upload["from"]),
                    pair_id=upload["pair_id"],
                    requester=Device.from_tag(upload["requester"]),
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Error processing audio: {e}", exc_info=True)
                return JSONResponse(status_code=500, content={"error": str(e)})

            return MoodResponse(mood=mood.value, status="ok")


def main():
    service = BridgeService()
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
