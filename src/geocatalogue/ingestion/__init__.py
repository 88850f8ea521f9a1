"""Ingestion layer.

Routes decoded push events to typed handlers and turns catalogue payloads
into store updates.
"""

__all__: list[str] = []
