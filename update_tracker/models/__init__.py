"""Data models for the game update tracker."""

from .config import EngineConfig
from .decision import (
    CycleContext,
    CycleReport,
    DecisionKind,
    DecisionRecord,
    NotificationEvent,
)
from .listing import CandidateListing, DownloadLink, MatchCandidate
from .title import (
    SEQUEL_SENSITIVITY_THRESHOLDS,
    PendingRelatedGame,
    PendingUpdate,
    RelationshipType,
    SequelSource,
    TrackedTitle,
    TrackingPreferences,
    UpdateHistoryEntry,
)
from .version import PROPER_RELEASE_TYPES, ComparisonResult, ReleaseTier, VersionInfo

__all__ = [
    "CandidateListing",
    "ComparisonResult",
    "CycleContext",
    "CycleReport",
    "DecisionKind",
    "DecisionRecord",
    "DownloadLink",
    "EngineConfig",
    "MatchCandidate",
    "NotificationEvent",
    "PendingRelatedGame",
    "PendingUpdate",
    "PROPER_RELEASE_TYPES",
    "RelationshipType",
    "ReleaseTier",
    "SEQUEL_SENSITIVITY_THRESHOLDS",
    "SequelSource",
    "TrackedTitle",
    "TrackingPreferences",
    "UpdateHistoryEntry",
    "VersionInfo",
]
