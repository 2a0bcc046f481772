"""
Mood analysis: classify an uploaded voice clip and route the result back.

The requester always receives exactly one MOOD_RESULT per request. When the
classifier fails, the result is "neutral" and travels the same topic with the
same shape.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from bondbot.common import mqtt_topics
from bondbot.common.logging import setup_logging
from .effects import run_side_effects
from .interactions import InteractionLog
from .models import Device, InteractionKind, Mood, PublishError

logger = setup_logging("mood")

Publisher = Callable[[str, Dict[str, Any]], Awaitable[None]]


class Classifier(Protocol):
    async def classify(self, audio: str) -> str: ...


def parse_mood(text: Optional[str]) -> Mood:
    """Map free text to a mood: "happy" wins over "sad", anything else is neutral."""
    if not isinstance(text, str):
        return Mood.NEUTRAL
    text = text.lower().strip()
    if "happy" in text:
        return Mood.HAPPY
    if "sad" in text:
        return Mood.SAD
    return Mood.NEUTRAL


def mood_result_message(pair_id: str, speaker: Device, requester: Device, mood: Mood) -> Dict[str, Any]:
    return {
        "type": InteractionKind.MOOD_RESULT.value,
        "mood": mood.value,
        "from": speaker.value,
        "target": requester.value,
        "pair_id": pair_id,
    }


class MoodAnalysisCoordinator:
    """Classifier call, reply routing and history for one audio upload."""

    def __init__(
        self,
        classifier: Classifier,
        interactions: InteractionLog,
        publish: Publisher,
        topic_prefix: str = mqtt_topics.PREFIX,
    ):
        self.classifier = classifier
        self.interactions = interactions
        self.publish = publish
        self.topic_prefix = topic_prefix

    async def classify(self, audio: str) -> Mood:
        try:
            text = await self.classifier.classify(audio)
            logger.info(f"Classifier says: {text!r}")
            return parse_mood(text)
        except Exception as e:
            logger.error(f"Mood classification failed, defaulting to neutral: {e}")
            return Mood.NEUTRAL

    async def analyze(self, audio: str, speaker: Device, pair_id: str, requester: Device) -> Mood:
        """Classify, publish MOOD_RESULT toward the requester, record MOOD_ANALYSIS.

        A failed publish is logged; the caller still gets the mood.
        """
        logger.info(
            f"Analyzing mood for {speaker.value}'s audio ({len(audio)} chars), "
            f"requester {requester.value}, pair {pair_id}"
        )
        mood = await self.classify(audio)
        logger.info(f"Detected mood: {mood.value}")

        topic = mqtt_topics.reply_topic(pair_id, requester, self.topic_prefix)
        try:
            await self.publish(topic, mood_result_message(pair_id, speaker, requester, mood))
            logger.info(f"Sent mood result {mood.value!r} to {requester.value} on {topic}")
        except PublishError as e:
            logger.error(f"Failed to send mood result {mood.value!r} on {topic}: {e}")

        await run_side_effects(
            {"mood_analysis": self.interactions.record_mood_analysis(pair_id, speaker, requester, mood)},
            logger,
            context=pair_id,
        )
        return mood
