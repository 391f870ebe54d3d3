"""Decision engine output and cycle state models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .listing import DownloadLink
from .title import PendingRelatedGame, PendingUpdate, TrackedTitle, UpdateHistoryEntry


class DecisionKind(Enum):
    """Outcome of evaluating one tracked title in one cycle."""
    AUTO_APPROVED = "auto_approved"
    PENDING_CONFIRMATION = "pending_confirmation"
    REJECTED = "rejected"
    SEQUEL_SUGGESTED = "sequel_suggested"
    SEQUEL_TRACKED = "sequel_tracked"
    NO_OP = "no_op"


@dataclass(frozen=True)
class NotificationEvent:
    """Description of something worth telling the user about.

    The engine only describes events; delivery belongs to another subsystem.
    """
    title: str
    link: str
    kind: DecisionKind
    is_pending: bool
    version: str | None = None
    image: str | None = None
    download_links: tuple[DownloadLink, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DecisionRecord:
    """Per-title verdict produced by the decision engine."""
    title_id: str
    kind: DecisionKind
    reason: str
    candidate_link: str | None = None
    history_entry: UpdateHistoryEntry | None = None
    pending_update: PendingUpdate | None = None
    related_game: PendingRelatedGame | None = None
    new_title: TrackedTitle | None = None
    notification: NotificationEvent | None = None


@dataclass
class CycleContext:
    """State that lives for exactly one reconciliation cycle."""
    started_at: datetime
    processed_links: set[str] = field(default_factory=set)
    classifier_available: bool = True
    normalized_titles: dict[str, str] = field(default_factory=dict)
    created_titles: list[TrackedTitle] = field(default_factory=list)

    def mark_processed(self, link: str) -> None:
        self.processed_links.add(link)

    def is_processed(self, link: str) -> bool:
        return link in self.processed_links


@dataclass
class CycleReport:
    """Counts and outputs of one reconciliation cycle."""
    checked: int = 0
    updates_found: int = 0
    pending_found: int = 0
    sequels_found: int = 0
    errors: int = 0
    decisions: list[DecisionRecord] = field(default_factory=list)
    notifications: list[NotificationEvent] = field(default_factory=list)
    new_titles: list[TrackedTitle] = field(default_factory=list)
    error_messages: list[str] = field(default_factory=list)
