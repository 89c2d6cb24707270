"""Ingestion layer.

Helpers that turn documents from the bot API and the live store into
normalized domain objects.
"""

__all__: list[str] = []
