"""BondBot backend: MQTT/MongoDB bridge and mood analysis for paired devices."""

__version__ = "0.2.0"
