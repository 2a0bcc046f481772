"""Tests for TOML config loading and environment overrides."""

import logging

import pytest

from bondbot.common.logging import JSONFormatter, configure_logging, setup_logging
from bondbot.common.service_base import BondbotService
from bondbot.config import load_config, reset_config
from bondbot.config.loader import _apply_env_overrides
from bondbot.config.models import BondbotConfig


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    for name in ("BONDBOT_CONFIG", "BONDBOT_MQTT_PORT", "BONDBOT_GEMINI_API_KEY", "BONDBOT_BRIDGE_PAIR_IDS", "BONDBOT_LOGGING_JSON"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


def test_defaults():
    config = BondbotConfig()

    assert config.mqtt.port == 1883
    assert config.mongodb.database == "couple_companion"
    assert config.mongodb.collection == "pair_state"
    assert config.gemini.model == "gemini-2.0-flash"
    assert config.http.port == 3000
    assert config.http.max_body_bytes == 1024 * 1024
    assert config.presence.stale_after == 300.0
    assert config.presence.sweep_interval == 60.0
    assert config.bridge.pair_ids == ["pair01"]


def test_load_toml(tmp_path):
    path = tmp_path / "bondbot.toml"
    path.write_text(
        '[mqtt]\nbroker = "broker.local"\nport = 8883\n'
        '[bridge]\npair_ids = ["pair01", "pair02"]\n'
        '[presence]\nstale_after = 120.0\n'
    )

    config = load_config(path)

    assert config.mqtt.broker == "broker.local"
    assert config.mqtt.port == 8883
    assert config.bridge.pair_ids == ["pair01", "pair02"]
    assert config.presence.stale_after == 120.0


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "custom.toml"
    path.write_text('[http]\nport = 3100\n')
    monkeypatch.setenv("BONDBOT_CONFIG", str(path))

    assert load_config().http.port == 3100


def test_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "bondbot.toml"
    path.write_text('[gemini]\napi_key = "from-file"\n')
    monkeypatch.setenv("BONDBOT_GEMINI_API_KEY", "from-env")
    monkeypatch.setenv("BONDBOT_BRIDGE_PAIR_IDS", "pair01, pair09")

    config = load_config(path)

    assert config.gemini.api_key == "from-env"
    assert config.bridge.pair_ids == ["pair01", "pair09"]


def test_bad_env_override_is_ignored():
    config = _apply_env_overrides(BondbotConfig(), {"BONDBOT_MQTT_PORT": "not-a-port"})

    assert config.mqtt.port == 1883


def test_invalid_toml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[mqtt\nbroker = ")

    config = load_config(path)

    assert config.mqtt.broker == "localhost"


def test_logging_section(tmp_path, monkeypatch):
    path = tmp_path / "bondbot.toml"
    path.write_text('[logging]\nlevel = "DEBUG"\njson = false\n')
    monkeypatch.setenv("BONDBOT_LOGGING_JSON", "yes")

    config = load_config(path)

    assert config.logging.level == "DEBUG"
    assert config.logging.json is True


def test_bad_logging_json_override_is_ignored():
    config = _apply_env_overrides(BondbotConfig(), {"BONDBOT_LOGGING_JSON": "sometimes"})

    assert config.logging.json is False


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_defaults(self):
        yield
        configure_logging(logging.INFO, json_output=False)

    def test_json_output_reformats_existing_loggers(self):
        logger = setup_logging("json-check")

        configure_logging("debug", json_output=True)

        assert logger.level == logging.DEBUG
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_json_output_applies_to_new_loggers(self):
        configure_logging("INFO", json_output=True)

        logger = setup_logging("json-later")

        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_plain_output_restored(self):
        logger = setup_logging("plain-check")
        configure_logging("INFO", json_output=True)

        configure_logging("INFO", json_output=False)

        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_unknown_level_falls_back_to_info(self):
        logger = setup_logging("level-check")

        configure_logging("chatty")

        assert logger.level == logging.INFO

    def test_service_applies_logging_config(self, config):
        config.logging.json = True
        service = BondbotService("json-service", config=config)

        assert isinstance(service.logger.handlers[0].formatter, JSONFormatter)

    def test_json_record_fields(self):
        record = logging.LogRecord("bondbot.bridge", logging.INFO, __file__, 1, "hello", None, None)
        record.pair_id = "pair01"

        line = JSONFormatter().format(record)

        assert '"message": "hello"' in line
        assert '"pair_id": "pair01"' in line
