"""Tracked title data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .listing import DownloadLink
from .version import ReleaseTier


class RelationshipType(Enum):
    """Kinds of relationship between a tracked title and another release."""
    NUMBERED_SEQUEL = "numbered_sequel"
    NAMED_SEQUEL = "named_sequel"
    EXPANSION = "expansion"
    REMASTER = "remaster"
    DEFINITIVE = "definitive"


SEQUEL_SENSITIVITY_THRESHOLDS: dict[str, float] = {
    "strict": 0.9,
    "moderate": 0.7,
    "loose": 0.5,
}


@dataclass
class TrackingPreferences:
    """Per-title behaviour flags."""
    sequel_detection: bool = True
    sequel_sensitivity: str = "moderate"
    auto_approval_threshold: float | None = None  # None uses the engine default
    avoid_repacks: bool = False
    prefer_repacks: bool = False
    preferred_release_group: str | None = None


@dataclass(frozen=True)
class UpdateHistoryEntry:
    """An approved version transition. Entries are never edited."""
    version: str
    change_type: str
    significance: int
    date_found: datetime
    link: str
    title: str
    previous_version: str | None = None
    build: str | None = None
    approved_by: str = "auto"  # "auto" or "user"
    approval_reason: str | None = None
    detection_method: str = "regex"  # "regex" or "classifier"
    classifier_confidence: float | None = None
    download_links: tuple[DownloadLink, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PendingUpdate:
    """A matched candidate waiting for explicit confirmation."""
    new_title: str
    new_link: str
    reason: str
    confidence: float
    similarity: float
    date_found: datetime
    detected_version: str | None = None
    build: str | None = None
    release_type: str | None = None
    update_type: str | None = None
    scene_group: str | None = None
    new_image: str | None = None
    previous_version: str | None = None
    suspicious: bool = False
    classifier_reason: str | None = None
    classifier_confidence: float | None = None
    download_links: tuple[DownloadLink, ...] = field(default_factory=tuple)


@dataclass
class PendingRelatedGame:
    """A suggested sequel, edition or DLC relationship."""
    title: str
    link: str
    relationship: RelationshipType
    similarity: float
    confidence: float
    date_found: datetime
    reason: str = ""
    image: str | None = None
    dismissed: bool = False


@dataclass(frozen=True)
class SequelSource:
    """Provenance of a title created from a detected relationship."""
    original_title_id: str
    original_title: str
    detection_method: str  # "automatic" or "manual"
    similarity: float
    relationship: RelationshipType


@dataclass
class TrackedTitle:
    """A user's subscription to a game."""
    id: str
    title: str
    original_title: str
    link: str
    source: str | None = None
    image: str | None = None
    verified_name: str | None = None
    catalogue_id: str | None = None  # External catalogue id, e.g. a Steam app id
    verified_version: str | None = None
    version_trusted: bool = False
    verified_build: str | None = None
    build_trusted: bool = False
    release_tier: ReleaseTier | None = None
    last_known_version: str | None = None
    last_checked: datetime | None = None
    sort_priority: int = 0
    has_new_update: bool = False
    new_update_seen: bool = True
    is_active: bool = True
    update_history: list[UpdateHistoryEntry] = field(default_factory=list)
    pending_updates: list[PendingUpdate] = field(default_factory=list)
    pending_relations: list[PendingRelatedGame] = field(default_factory=list)
    rejected_links: list[str] = field(default_factory=list)
    preferences: TrackingPreferences = field(default_factory=TrackingPreferences)
    sequel_source: SequelSource | None = None

    def known_links(self) -> set[str]:
        """Links already recorded in history, waiting for confirmation or rejected."""
        links = {entry.link for entry in self.update_history}
        links.update(pending.new_link for pending in self.pending_updates)
        links.update(self.rejected_links)
        return links

    def find_pending(self, link: str) -> PendingUpdate | None:
        for pending in self.pending_updates:
            if pending.new_link == link:
                return pending
        return None

    def find_related(self, link: str) -> PendingRelatedGame | None:
        for related in self.pending_relations:
            if related.link == link:
                return related
        return None
