"""MQTT/MongoDB bridge and audio mood analysis for BondBot pairs."""

from .api import BridgeService
from .classifier import GeminiClassifier
from .interactions import InteractionLog
from .models import (
    Device,
    InteractionKind,
    Interaction,
    Mood,
    PairState,
    DeviceState,
    BridgeError,
    MalformedMessage,
    MissingField,
    PayloadTooLarge,
    StoreUnavailable,
    ClassifierFailure,
    PublishError,
)
from .mood import MoodAnalysisCoordinator, parse_mood
from .presence import PresenceTracker
from .router import MessageRouter
from .store import PairStateStore

__all__ = [
    "BridgeService",
    "GeminiClassifier",
    "InteractionLog",
    "MessageRouter",
    "MoodAnalysisCoordinator",
    "PairStateStore",
    "PresenceTracker",
    "parse_mood",
    "Device",
    "InteractionKind",
    "Interaction",
    "Mood",
    "PairState",
    "DeviceState",
    "BridgeError",
    "MalformedMessage",
    "MissingField",
    "PayloadTooLarge",
    "StoreUnavailable",
    "ClassifierFailure",
    "PublishError",
]
