"""Shared fixtures: an in-memory pair store and scripted classifiers."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from bondbot.config import BondbotConfig
from bondbot.services.bridge.interactions import InteractionLog
from bondbot.services.bridge.models import (
    Device,
    Interaction,
    PairState,
    StoreUnavailable,
    utcnow,
)
from bondbot.services.bridge.mood import MoodAnalysisCoordinator
from bondbot.services.bridge.presence import PresenceTracker
from bondbot.services.bridge.router import MessageRouter

# Suppress logging during tests
logging.disable(logging.CRITICAL)


class FakePairStore:
    """In-memory stand-in for PairStateStore with the same update semantics."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.fail: set = set()
        self.mutations: List[str] = []

    def _check(self, op: str):
        if op in self.fail:
            raise StoreUnavailable(f"{op} failed: connection refused")

    def _doc(self, pair_id: str) -> Optional[Dict[str, Any]]:
        return self.docs.get(pair_id)

    async def ensure_indexes(self):
        self._check("ensure_indexes")

    async def ensure_pair(self, pair_id: str, now: Optional[datetime] = None) -> bool:
        self._check("ensure_pair")
        if pair_id in self.docs:
            return False
        self.mutations.append("ensure_pair")
        self.docs[pair_id] = PairState.new(pair_id, now).to_document()
        return True

    async def touch_presence(self, pair_id: str, device: Device, now: Optional[datetime] = None) -> bool:
        self._check("touch_presence")
        self.mutations.append("touch_presence")
        doc = self._doc(pair_id)
        if doc is None:
            return False
        now = now or utcnow()
        doc[device.field]["last_seen"] = now
        doc[device.field]["online"] = True
        doc["updated_at"] = now
        return True

    async def append_interaction(self, pair_id: str, interaction: Interaction) -> bool:
        self._check("append_interaction")
        self.mutations.append("append_interaction")
        doc = self._doc(pair_id)
        if doc is None:
            return False
        doc["interactions"].append(interaction.to_document())
        doc["updated_at"] = utcnow()
        return True

    async def set_activity_day(self, pair_id: str, device: Device, day: int) -> bool:
        self._check("set_activity_day")
        self.mutations.append("set_activity_day")
        doc = self._doc(pair_id)
        if doc is None:
            return False
        doc[device.field]["activity_days"][day] = True
        doc["updated_at"] = utcnow()
        return True

    async def mark_stale_offline(self, stale_before: datetime) -> int:
        self._check("mark_stale_offline")
        self.mutations.append("mark_stale_offline")
        modified = 0
        for doc in self.docs.values():
            if doc["device_a"]["last_seen"] < stale_before or doc["device_b"]["last_seen"] < stale_before:
                if doc["device_a"]["online"] or doc["device_b"]["online"]:
                    modified += 1
                doc["device_a"]["online"] = False
                doc["device_b"]["online"] = False
        return modified

    def close(self):
        pass


class ScriptedClassifier:
    """Returns canned text, or raises the given exception."""

    def __init__(self, text: str = "happy", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[str] = []

    async def classify(self, audio: str) -> str:
        self.calls.append(audio)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def store():
    return FakePairStore()


@pytest.fixture
async def pair_store(store):
    """Fake store with pair01 already initialized."""
    await store.ensure_pair("pair01")
    store.mutations.clear()
    return store


@pytest.fixture
def config():
    return BondbotConfig()


@pytest.fixture
def presence(pair_store):
    return PresenceTracker(pair_store)


@pytest.fixture
def interactions(pair_store):
    return InteractionLog(pair_store)


@pytest.fixture
def router(pair_store, presence, interactions):
    return MessageRouter(pair_store, presence, interactions)


@pytest.fixture
def publish():
    return AsyncMock()


@pytest.fixture
def classifier():
    return ScriptedClassifier("The tone sounds happy and warm.")


@pytest.fixture
def coordinator(classifier, interactions, publish):
    return MoodAnalysisCoordinator(classifier, interactions, publish)
