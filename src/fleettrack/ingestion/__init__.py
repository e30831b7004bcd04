"""Ingestion layer.

This package turns raw feed payloads into validated domain objects
before they reach the state store.
"""

__all__: list[str] = []
