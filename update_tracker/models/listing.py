"""Candidate listing data models."""

from dataclasses import dataclass, field
from datetime import datetime

from .version import VersionInfo


@dataclass(frozen=True)
class DownloadLink:
    """A single download location attached to a release post."""
    service: str
    url: str
    link_type: str = "direct"


@dataclass(frozen=True)
class CandidateListing:
    """One externally observed release post."""
    title: str
    link: str
    date: datetime | None = None
    image: str | None = None
    description: str | None = None
    source: str | None = None
    download_links: tuple[DownloadLink, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MatchCandidate:
    """A listing that cleared a match gate for a tracked title."""
    listing: CandidateListing
    similarity: float
    info: VersionInfo
    gate: str = "cleaned"
