"""State layer.

This package is the single source of truth for how reconciled snapshots
and events are merged into the per-entity timing state, and for the
read-only board published to renderers.
"""
