"""pylivetiming - Async live timing board built from incremental API snapshots."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pylivetiming")
except PackageNotFoundError:
    __version__ = "0+local"
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import (
    ConfigError,
    LiveTimingError,
    MalformedRecordError,
    ReconcileError,
    RosterUnavailableError,
    TransportError,
    UnknownEntityError,
)
from pylivetiming.ingestion.categories import CATEGORY_PROFILES, POLLED_CATEGORIES, CategoryProfile, profile_for
from pylivetiming.ingestion.extract import Incomplete, Snapshot, extract_latest_set
from pylivetiming.ingestion.fetch import FetchError, RawBatch, fetch_category
from pylivetiming.monitor import LiveTimingMonitor
from pylivetiming.render import render_board
from pylivetiming.scheduler import CycleOutcome, PollScheduler
from pylivetiming.state.board import Board, CategoryPhase, CategoryStatus, EntityView
from pylivetiming.state.entity import Entity, EntityState, PitStatus, TyreInfo
from pylivetiming.state.events import Category, CategoryKind, Cursor, RawRecord
from pylivetiming.state.reconcile import Reconciler
from pylivetiming.state.registry import EntityRegistry

__all__ = [
    "__version__",
    "Board",
    "CATEGORY_PROFILES",
    "Category",
    "CategoryKind",
    "CategoryPhase",
    "CategoryProfile",
    "CategoryStatus",
    "ConfigError",
    "Cursor",
    "CycleOutcome",
    "Entity",
    "EntityRegistry",
    "EntityState",
    "EntityView",
    "FetchError",
    "Incomplete",
    "LiveTimingConfig",
    "LiveTimingError",
    "LiveTimingMonitor",
    "MalformedRecordError",
    "POLLED_CATEGORIES",
    "PitStatus",
    "PollScheduler",
    "RawBatch",
    "RawRecord",
    "ReconcileError",
    "Reconciler",
    "RosterUnavailableError",
    "Snapshot",
    "TransportError",
    "TyreInfo",
    "UnknownEntityError",
    "extract_latest_set",
    "fetch_category",
    "profile_for",
    "render_board",
]
