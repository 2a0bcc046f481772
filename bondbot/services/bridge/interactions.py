"""Append-only interaction history per pair."""

from typing import Any, Dict

from bondbot.common.logging import setup_logging
from .models import Device, Interaction, InteractionKind, Mood
from .store import PairStateStore

logger = setup_logging("interactions")


class InteractionLog:
    """Records every inbound event and every mood classification."""

    def __init__(self, store: PairStateStore):
        self.store = store

    async def record(self, pair_id: str, interaction: Interaction) -> bool:
        # Unrecognized kinds are kept as UNKNOWN, never dropped
        kind = InteractionKind.parse(interaction.kind)
        if kind is not interaction.kind:
            if kind is InteractionKind.UNKNOWN and interaction.raw_type is None:
                interaction.raw_type = str(interaction.kind)
            interaction.kind = kind
        stored = await self.store.append_interaction(pair_id, interaction)
        if stored:
            logger.info(f"{pair_id}: stored interaction {interaction.kind.value}")
        return stored

    async def record_event(self, pair_id: str, payload: Dict[str, Any]) -> bool:
        """Generic record for one inbound MQTT message."""
        raw_type = payload.get("type")
        kind = InteractionKind.parse_inbound(raw_type)
        interaction = Interaction(
            kind=kind,
            from_device=Device.from_tag(payload.get("from")),
            raw_type=str(raw_type) if kind is InteractionKind.UNKNOWN else None,
            data=payload,
        )
        return await self.record(pair_id, interaction)

    async def record_mood_analysis(self, pair_id: str, speaker: Device, requester: Device, mood: Mood) -> bool:
        interaction = Interaction(
            kind=InteractionKind.MOOD_ANALYSIS,
            from_device=speaker,
            target_device=requester,
            mood=mood,
        )
        return await self.record(pair_id, interaction)
