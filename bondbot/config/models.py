"""
Configuration dataclass models for BondBot.
"""
from dataclasses import dataclass, field
from typing import List


@dataclass
class MQTTConfig:
    """MQTT broker configuration."""
    broker: str = "localhost"
    port: int = 1883
    username: str = "couplebot"
    password: str = ""  # loaded from env
    client_id_prefix: str = "bondbot-backend"
    topic_prefix: str = "bondbot"


@dataclass
class MongoConfig:
    """MongoDB document store configuration."""
    uri: str = "mongodb://localhost:27017"  # Atlas URI loaded from env
    database: str = "couple_companion"
    collection: str = "pair_state"
    timeout_ms: int = 5000


@dataclass
class GeminiConfig:
    """Gemini mood classifier configuration."""
    api_key: str = ""  # loaded from env
    model: str = "gemini-2.0-flash"
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 30.0
    temperature: float = 0.1
    max_output_tokens: int = 10
    mime_type: str = "audio/wav"


@dataclass
class HTTPConfig:
    """Audio upload HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 3000
    max_body_bytes: int = 1024 * 1024


@dataclass
class PresenceConfig:
    """Presence staleness sweep configuration."""
    stale_after: float = 300.0  # 5 minutes
    sweep_interval: float = 60.0


@dataclass
class LoggingConfig:
    """Log level and output format for every bondbot logger."""
    level: str = "INFO"
    json: bool = False


@dataclass
class BridgeConfig:
    """Bridge service configuration."""
    service_name: str = "bondbot-backend"
    pair_ids: List[str] = field(default_factory=lambda: ["pair01"])


@dataclass
class BondbotConfig:
    """Root configuration object containing all subsystem configs."""
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    mongodb: MongoConfig = field(default_factory=MongoConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    presence: PresenceConfig = field(default_factory=PresenceConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
