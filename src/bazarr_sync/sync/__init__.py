"""Sync orchestration module."""

from .action import SyncAction, classify_response
from .cache import CacheStore
from .engine import OrchestratorContext, Selection, TraversalEngine
from .processor import ItemProcessor, TrackResult, TrackState
from .report import ConsoleReporter, SyncObserver
from .supervisor import ProgressTracker, RunResult, Supervisor, build_resume_command

__all__ = [
    "CacheStore",
    "ConsoleReporter",
    "ItemProcessor",
    "OrchestratorContext",
    "ProgressTracker",
    "RunResult",
    "Selection",
    "Supervisor",
    "SyncAction",
    "SyncObserver",
    "TrackResult",
    "TrackState",
    "TraversalEngine",
    "build_resume_command",
    "classify_response",
]
