"""Ingestion layer.

This package contains the adapters that fetch records from the timing API
and turn them into snapshots or ordered events for the state layer.
"""

__all__: list[str] = []
