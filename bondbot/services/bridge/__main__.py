"""Entry point for: python3 -m bondbot.services.bridge"""
from bondbot.services.bridge.api import main

main()
