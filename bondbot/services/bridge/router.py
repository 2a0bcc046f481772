"""
Inbound MQTT message routing.

Every message carrying a pair_id refreshes the sender's presence and gets one
generic interaction record; ACTIVITY_UPDATE also flips its weekday flag. The
router never publishes; replies come from the mood coordinator only.
"""

import json
from typing import Any, Dict, Optional, Union

from bondbot.common.logging import setup_logging
from .effects import Outcome, run_side_effects
from .interactions import InteractionLog
from .models import DAYS_PER_WEEK, Device, InteractionKind, MalformedMessage
from .presence import PresenceTracker
from .store import PairStateStore

logger = setup_logging("router")

OBSERVED_ONLY = {
    InteractionKind.PRESENCE_PING: "sent presence ping",
    InteractionKind.CHECKIN_REQUEST: "wants to check in",
    InteractionKind.AUDIO_MESSAGE: "sent gratitude message",
}


def decode_payload(raw: Union[bytes, str]) -> Dict[str, Any]:
    """Parse an MQTT payload into a JSON object."""
    try:
        if isinstance(raw, bytes):
            raw = raw.decode()
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessage(f"Unparsable payload: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedMessage(f"Payload is not a JSON object: {type(payload).__name__}")
    return payload


def valid_day(day: Any) -> bool:
    return isinstance(day, int) and not isinstance(day, bool) and 0 <= day < DAYS_PER_WEEK


class MessageRouter:
    """Fans an inbound pair message out to presence, history and activity."""

    def __init__(self, store: PairStateStore, presence: PresenceTracker, interactions: InteractionLog):
        self.store = store
        self.presence = presence
        self.interactions = interactions

    async def handle_raw(self, topic: str, raw: Union[bytes, str]) -> Optional[Dict[str, Outcome]]:
        """MQTT handler entry point: decode, then route. Bad payloads are dropped."""
        try:
            payload = decode_payload(raw)
        except MalformedMessage as e:
            logger.warning(f"Dropping message on {topic}: {e}")
            return None
        logger.info(f"Message received on {topic}: {payload}")
        return await self.handle(payload, topic)

    async def handle(self, payload: Dict[str, Any], topic: str = "") -> Optional[Dict[str, Outcome]]:
        pair_id = payload.get("pair_id")
        if not pair_id:
            logger.warning(f"Message missing pair_id, ignoring (topic={topic or '-'})")
            return None

        pair_id = str(pair_id)
        sender = Device.from_tag(payload.get("from"))
        raw_type = payload.get("type")
        kind = InteractionKind.parse_inbound(raw_type)

        effects = {
            "presence": self.presence.record_activity(pair_id, sender),
            "interaction": self.interactions.record_event(pair_id, payload),
        }

        if kind in OBSERVED_ONLY:
            logger.info(f"  -> {sender.value} {OBSERVED_ONLY[kind]}")
        elif kind is InteractionKind.ACTIVITY_UPDATE:
            day = payload.get("day")
            if valid_day(day):
                logger.info(f"  -> {sender.value} updated activity (day {day})")
                effects["activity"] = self.store.set_activity_day(pair_id, sender, day)
            else:
                logger.warning(f"  -> {sender.value} sent ACTIVITY_UPDATE with invalid day {day!r}, skipping")
        elif kind is InteractionKind.MOOD_RESULT:
            logger.info(f"  -> Mood result: {payload.get('mood')} for {payload.get('target')}")
        else:
            logger.info(f"  -> Unknown message type: {raw_type}")

        return await run_side_effects(effects, logger, context=pair_id)
