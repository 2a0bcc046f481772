"""
Pair state and interaction records shared by the bridge components.

Documents in the pair_state collection look like:

    {
        "pair_id": "pair01",
        "device_a": {"last_seen": ..., "online": false, "activity_days": [false] * 7},
        "device_b": {...},
        "interactions": [{"type": "PRESENCE_PING", "from_device": "A", ...}],
        "created_at": ...,
        "updated_at": ...
    }
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from bondbot.common.service_base import PublishError

DAYS_PER_WEEK = 7


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Device(Enum):
    """The two roles of a pair."""
    A = "A"
    B = "B"

    @classmethod
    def from_tag(cls, tag: Any) -> "Device":
        """Resolve a wire tag to a role: "A" is A, anything else is B."""
        return cls.A if tag == "A" else cls.B

    @property
    def field(self) -> str:
        """Name of this device's sub-document."""
        return "device_a" if self is Device.A else "device_b"


class InteractionKind(Enum):
    PRESENCE_PING = "PRESENCE_PING"
    CHECKIN_REQUEST = "CHECKIN_REQUEST"
    AUDIO_MESSAGE = "AUDIO_MESSAGE"
    ACTIVITY_UPDATE = "ACTIVITY_UPDATE"
    MOOD_RESULT = "MOOD_RESULT"
    MOOD_ANALYSIS = "MOOD_ANALYSIS"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "InteractionKind":
        """Map a raw type string onto the closed set; unrecognized is UNKNOWN."""
        if isinstance(value, InteractionKind):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def parse_inbound(cls, value: Any) -> "InteractionKind":
        """Like parse(), but MOOD_ANALYSIS is only ever produced locally."""
        kind = cls.parse(value)
        return cls.UNKNOWN if kind is cls.MOOD_ANALYSIS else kind


class Mood(Enum):
    HAPPY = "happy"
    NEUTRAL = "neutral"
    SAD = "sad"


@dataclass
class Interaction:
    """Immutable record of one inbound event or one mood classification."""
    kind: InteractionKind
    from_device: Device
    timestamp: datetime = field(default_factory=utcnow)
    day: Optional[int] = None
    mood: Optional[Mood] = None
    target_device: Optional[Device] = None
    raw_type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "type": self.kind.value,
            "from_device": self.from_device.value,
            "timestamp": self.timestamp,
        }
        if self.day is not None:
            doc["day"] = self.day
        if self.mood is not None:
            doc["mood"] = self.mood.value
        if self.target_device is not None:
            doc["target_device"] = self.target_device.value
        if self.raw_type is not None:
            doc["raw_type"] = self.raw_type
        if self.data is not None:
            doc["data"] = self.data
        return doc


@dataclass
class DeviceState:
    last_seen: datetime
    online: bool = False
    activity_days: List[bool] = field(default_factory=lambda: [False] * DAYS_PER_WEEK)

    def to_document(self) -> Dict[str, Any]:
        return {
            "last_seen": self.last_seen,
            "online": self.online,
            "activity_days": list(self.activity_days),
        }


@dataclass
class PairState:
    pair_id: str
    device_a: DeviceState
    device_b: DeviceState
    interactions: List[Dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(cls, pair_id: str, now: Optional[datetime] = None) -> "PairState":
        """Zeroed state for a pair seen for the first time."""
        if not pair_id:
            raise ValueError("pair_id must not be empty")
        now = now or utcnow()
        return cls(
            pair_id=pair_id,
            device_a=DeviceState(last_seen=now),
            device_b=DeviceState(last_seen=now),
            created_at=now,
            updated_at=now,
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "pair_id": self.pair_id,
            "device_a": self.device_a.to_document(),
            "device_b": self.device_b.to_document(),
            "interactions": list(self.interactions),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# --- Errors ---

class BridgeError(Exception):
    """Base exception for the bridge service"""
    pass


class MalformedMessage(BridgeError):
    """Inbound MQTT payload is unparsable or lacks pair_id"""
    pass


class MissingField(BridgeError):
    """Mood upload is missing one of its required fields"""
    pass


class PayloadTooLarge(BridgeError):
    """Mood upload body exceeds the size ceiling"""
    pass


class StoreUnavailable(BridgeError):
    """A pair_state operation failed at the database"""
    pass


class ClassifierFailure(BridgeError):
    """The mood classifier errored or returned nothing usable"""
    pass


__all__ = [
    "DAYS_PER_WEEK",
    "utcnow",
    "Device",
    "InteractionKind",
    "Mood",
    "Interaction",
    "DeviceState",
    "PairState",
    "BridgeError",
    "MalformedMessage",
    "MissingField",
    "PayloadTooLarge",
    "StoreUnavailable",
    "ClassifierFailure",
    "PublishError",
]
