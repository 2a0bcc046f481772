"""Base class for BondBot services.

Provides:
- MQTT client lifecycle (connect, reconnect, graceful disconnect)
- FastAPI HTTP server with /health, CORS and JSON error bodies
- Structured logging
- Graceful shutdown on SIGTERM/SIGINT
- Central config loading
"""

import asyncio
import json
import secrets
import signal
from typing import Optional, Dict, Any, List, Callable, Awaitable
from contextlib import asynccontextmanager

from aiomqtt import Client as MQTTClient, MqttError
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from bondbot.config import get_config, BondbotConfig
from bondbot.common.logging import configure_logging, setup_logging

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class PublishError(Exception):
    """Raised when a message cannot be handed to the MQTT broker."""
    pass


class BondbotService:
    """Base class for BondBot services."""

    def __init__(
        self,
        name: str,
        http_port: Optional[int] = None,
        config: Optional[BondbotConfig] = None,
        display_name: Optional[str] = None,
    ):
        self.name = name
        self.display_name = display_name or f"bondbot-{name}"
        self.http_port = http_port
        self.config: BondbotConfig = config or get_config()
        configure_logging(self.config.logging.level, self.config.logging.json)
        self.logger = setup_logging(name)
        self._mqtt_client: Optional[MQTTClient] = None
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._mqtt_handlers: Dict[str, Callable] = {}
        self._app: Optional[FastAPI] = None

    # --- MQTT ---

    def on_mqtt(self, topic: str):
        """Decorator to register an MQTT topic handler."""
        def decorator(func: Callable[[str, bytes], Awaitable[None]]):
            self._mqtt_handlers[topic] = func
            return func
        return decorator

    async def mqtt_publish(self, topic: str, payload: Any):
        """Publish a message to an MQTT topic.

        Raises:
            PublishError: no broker connection, or the broker rejected the publish
        """
        client = self._mqtt_client
        if client is None:
            raise PublishError(f"MQTT not connected, cannot publish to {topic}")
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        if isinstance(payload, str):
            payload = payload.encode()
        try:
            await client.publish(topic, payload)
        except MqttError as e:
            raise PublishError(f"Publish to {topic} failed: {e}") from e

    def _client_identifier(self) -> str:
        return f"{self.config.mqtt.client_id_prefix}-{secrets.token_hex(4)}"

    async def _dispatch(self, topic_str: str, payload: bytes):
        """Hand one message to every handler whose pattern matches its topic."""
        for pattern, handler in self._mqtt_handlers.items():
            if topic_matches(topic_str, pattern):
                try:
                    await handler(topic_str, payload)
                except Exception as e:
                    self.logger.error(f"Handler error for {topic_str}: {e}", exc_info=True)

    async def _mqtt_loop(self):
        """Main MQTT connection loop with auto-reconnect and exponential backoff."""
        cfg = self.config.mqtt
        reconnect_delay = 1  # Start at 1 second
        max_delay = 60  # Cap at 60 seconds
        while self._running:
            try:
                async with MQTTClient(
                    hostname=cfg.broker,
                    port=cfg.port,
                    username=cfg.username or None,
                    password=cfg.password or None,
                    identifier=self._client_identifier(),
                ) as client:
                    self._mqtt_client = client
                    self.logger.info(f"MQTT connected to {cfg.broker}:{cfg.port}")
                    reconnect_delay = 1  # Reset on successful connection

                    for topic in self._mqtt_handlers:
                        await client.subscribe(topic)
                        self.logger.info(f"Subscribed to {topic}")

                    async for message in client.messages:
                        # Each message runs on its own task so a slow store
                        # write never holds up the next message.
                        task = asyncio.create_task(
                            self._dispatch(str(message.topic), message.payload)
                        )
                        self._track(task)

            except MqttError as e:
                self._mqtt_client = None
                if self._running:
                    self.logger.warning(f"MQTT disconnected: {e}, reconnecting in {reconnect_delay}s...")
                    await asyncio.sleep(reconnect_delay)
                    reconnect_delay = min(reconnect_delay * 2, max_delay)
            except Exception as e:
                self._mqtt_client = None
                if self._running:
                    self.logger.error(f"MQTT error: {e}, reconnecting in {reconnect_delay}s...", exc_info=True)
                    await asyncio.sleep(reconnect_delay)
                    reconnect_delay = min(reconnect_delay * 2, max_delay)
        self._mqtt_client = None

    # --- HTTP ---

    def get_app(self) -> FastAPI:
        """Get or create the FastAPI app."""
        if self._app is None:
            @asynccontextmanager
            async def lifespan(app):
                yield

            self._app = FastAPI(
                title=f"BondBot - {self.name.title()} Service",
                lifespan=lifespan,
            )

            @self._app.middleware("http")
            async def cors(request: Request, call_next):
                if request.method == "OPTIONS":
                    response = Response(status_code=200)
                else:
                    response = await call_next(request)
                response.headers.update(CORS_HEADERS)
                return response

            @self._app.exception_handler(StarletteHTTPException)
            async def http_error(request: Request, exc: StarletteHTTPException):
                # Wrong method on a known path is reported like an unknown path
                if exc.status_code in (404, 405):
                    return JSONResponse(status_code=404, content={"error": "Not found"})
                return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

            @self._app.get("/health")
            async def health():
                return {"status": "ok", "service": self.display_name}
        return self._app

    async def _run_http(self):
        """Run the FastAPI HTTP server."""
        if self.http_port:
            app = self.get_app()
            config = uvicorn.Config(
                app,
                host=self.config.http.host,
                port=self.http_port,
                log_level="warning",
            )
            server = uvicorn.Server(config)
            await server.serve()

    # --- Lifecycle ---

    def _track(self, task: asyncio.Task):
        self._tasks.append(task)
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Task):
        if task in self._tasks:
            self._tasks.remove(task)

    def add_task(self, coro: Awaitable) -> asyncio.Task:
        """Run a background coroutine for the lifetime of the service."""
        task = asyncio.create_task(coro)
        self._tasks.append(task)
        return task

    async def setup(self):
        """Override in subclass for service-specific initialization."""
        pass

    async def teardown(self):
        """Override in subclass for service-specific cleanup."""
        pass

    async def run(self):
        """Main entry point. Starts MQTT, HTTP, and runs until shutdown."""
        self._running = True
        self.logger.info(f"Starting {self.name} service...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(self.shutdown()))

        await self.setup()

        self.add_task(self._mqtt_loop())
        if self.http_port:
            self.add_task(self._run_http())

        self.logger.info(f"{self.name} service started")

        try:
            await asyncio.gather(*list(self._tasks))
        except asyncio.CancelledError:
            pass
        finally:
            await self.teardown()
            self.logger.info(f"{self.name} service stopped")

    async def shutdown(self):
        """Graceful shutdown."""
        self.logger.info(f"Shutting down {self.name}...")
        self._running = False
        for task in list(self._tasks):
            task.cancel()


def topic_matches(actual: str, pattern: str) -> bool:
    """Simple MQTT topic pattern matching with + and # wildcards."""
    if pattern == actual:
        return True
    pattern_parts = pattern.split("/")
    actual_parts = actual.split("/")
    for i, p in enumerate(pattern_parts):
        if p == "#":
            return True
        if i >= len(actual_parts):
            return False
        if p != "+" and p != actual_parts[i]:
            return False
    return len(pattern_parts) == len(actual_parts)
