"""Version signal and comparison data models."""

from dataclasses import dataclass
from datetime import date
from enum import IntEnum


PROPER_RELEASE_TYPES = ("PROPER", "REAL PROPER")


class ReleaseTier(IntEnum):
    """Release-priority hierarchy, higher is preferred."""
    FIRST = 1
    PROPER = 2
    VERSIONED = 3


@dataclass(frozen=True)
class VersionInfo:
    """Structured signal extracted from a raw release title.

    Version and build are independently optional; both absent is a legal
    result meaning the title carries no numeric signal.
    """
    version: str | None = None
    build: str | None = None
    release_type: str | None = None
    update_type: str | None = None
    scene_group: str | None = None
    is_date_version: bool = False
    version_date: date | None = None
    confidence: float = 1.0
    needs_confirmation: bool = False
    raw_title: str = ""
    base_title: str = ""

    @property
    def has_version(self) -> bool:
        return bool(self.version)

    @property
    def has_build(self) -> bool:
        return bool(self.build)

    @property
    def has_structured_signal(self) -> bool:
        """True when the title carries anything beyond the bare name."""
        return self.has_version or self.has_build or self.release_type is not None

    @property
    def tier(self) -> ReleaseTier:
        if self.has_version or self.has_build:
            return ReleaseTier.VERSIONED
        if self.release_type in PROPER_RELEASE_TYPES:
            return ReleaseTier.PROPER
        return ReleaseTier.FIRST

    @property
    def display_version(self) -> str | None:
        """Human-readable version string, e.g. ``v1.1 Build 1234 REPACK``."""
        parts: list[str] = []
        if self.version:
            parts.append(f"v{self.version}")
        if self.build:
            parts.append(f"Build {self.build}")
        if self.release_type:
            parts.append(self.release_type)
        return " ".join(parts) if parts else None


@dataclass(frozen=True)
class ComparisonResult:
    """Verdict of comparing a current release against a candidate."""
    is_newer: bool
    change_type: str
    significance: int
    reason: str
    comparable: bool = True
    decided_by: str | None = None  # "tier", "version", "build" or "date"
    skip_due_to_hierarchy: bool = False
    should_wait_for_regular: bool = False
    suspicious: bool = False
    suspicious_reason: str | None = None
