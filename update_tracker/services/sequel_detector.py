"""Detection of sequels, expansions and re-releases of tracked titles.

Candidates that are textually close to a tracked title but did not match it
outright may still be worth knowing about: "Mythic Quest II" is not an
update of "Mythic Quest", but a user tracking the first game probably wants
to hear about it.
"""

import re
from dataclasses import dataclass

import structlog

from ..models import SEQUEL_SENSITIVITY_THRESHOLDS, CandidateListing, RelationshipType, TrackedTitle
from .normalizer import ROMAN_NUMERALS, normalize
from .similarity import similarity

log = structlog.stdlib.get_logger()


RELATIONSHIP_CONFIDENCE: dict[RelationshipType, float] = {
    RelationshipType.NUMBERED_SEQUEL: 0.9,
    RelationshipType.NAMED_SEQUEL: 0.8,
    RelationshipType.EXPANSION: 0.7,
    RelationshipType.REMASTER: 0.6,
    RelationshipType.DEFINITIVE: 0.6,
}

MIN_SEQUEL_NUMBER = 2
MAX_SEQUEL_NUMBER = 20
NAMED_SEQUEL_BASE_SIMILARITY = 0.6
EXISTING_MATCH_THRESHOLD = 0.8

EXPANSION_KEYWORDS = re.compile(
    r"\b(?:dlc|expansion|add-?on|season pass|episode|chapter|part)\b", re.IGNORECASE
)
REMASTER_KEYWORDS = re.compile(r"\b(?:remaster(?:ed)?|remake|remade)\b", re.IGNORECASE)
DEFINITIVE_KEYWORDS = re.compile(
    r"\b(?:definitive|enhanced|ultimate|complete)\s+edition\b|\bgoty\b|\bgame of the year\b|"
    r"\bdirector'?s cut\b",
    re.IGNORECASE,
)

_SUBTITLE_SPLIT = re.compile(r"\s*(?::|\s-\s|\s–\s)\s*")
_EDITION_WORDS = re.compile(
    r"\b(?:goty|definitive|ultimate|enhanced|complete|deluxe|premium|edition|version|"
    r"remaster(?:ed)?|remake|remade)\b"
)
_TRAILING_NUMBER = re.compile(r"\s+\d+$")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Relationship:
    """A detected relationship between a tracked title and a listing."""
    relationship: RelationshipType
    confidence: float
    similarity: float
    base_title: str
    detail: str | None = None

    @property
    def reason(self) -> str:
        label = self.relationship.value.replace("_", " ")
        if self.detail:
            return f"{label} of {self.base_title} ({self.detail})"
        return f"{label} of {self.base_title}"


def extract_base_title(title: str) -> str:
    """Canonical franchise name: no subtitle, edition words or sequel number."""
    head = _SUBTITLE_SPLIT.split(title, maxsplit=1)[0]
    base = normalize(head)
    base = _EDITION_WORDS.sub(" ", base)
    base = _WHITESPACE.sub(" ", base).strip()
    base = _TRAILING_NUMBER.sub("", base)
    return base.strip()


def base_similarity(a: str, b: str) -> float:
    """Share of significant words the two base titles have in common."""
    words_a = [word for word in a.split() if len(word) > 2]
    words_b = [word for word in b.split() if len(word) > 2]
    if not words_a or not words_b:
        return 0.0
    common = [word for word in words_a if word in words_b]
    return len(common) / max(len(words_a), len(words_b))


def _trailing_number(normalized: str) -> int | None:
    match = re.search(r"\s(\d+)$", normalized)
    return int(match.group(1)) if match else None


class SequelDetector:
    """Classifies moderately similar listings as related titles."""

    def detect_relationship(
        self,
        title: TrackedTitle,
        candidate: CandidateListing,
    ) -> Relationship | None:
        """Classify how ``candidate`` relates to ``title``.

        Args:
            title: The tracked title
            candidate: A listing that did not match the title directly

        Returns:
            The detected relationship, or None when the listing is the same
            game or unrelated
        """
        tracked_normalized = normalize(title.title)
        candidate_normalized = normalize(candidate.title)
        if not tracked_normalized or not candidate_normalized:
            return None
        if tracked_normalized == candidate_normalized:
            return None

        base = extract_base_title(title.title)
        if not base:
            return None
        candidate_base = extract_base_title(candidate.title)
        shared = base_similarity(base, candidate_base)

        relationship = (
            self._numbered_sequel(base, tracked_normalized, candidate_normalized, shared)
            or self._keyword_relationship(base, candidate, candidate_normalized, shared)
            or self._named_sequel(base, candidate, shared)
        )
        if relationship is not None:
            log.debug(
                "Relationship detected",
                title=title.title,
                candidate=candidate.title,
                relationship=relationship.relationship.value,
                confidence=relationship.confidence,
            )
        return relationship

    @staticmethod
    def _numbered_sequel(
        base: str,
        tracked_normalized: str,
        candidate_normalized: str,
        shared: float,
    ) -> Relationship | None:
        match = re.match(rf"^{re.escape(base)}\s+(\d+|[ivx]+)\b", candidate_normalized)
        if not match:
            return None
        token = match.group(1)
        number = int(token) if token.isdigit() else ROMAN_NUMERALS.get(token)
        if number is None or not MIN_SEQUEL_NUMBER <= number <= MAX_SEQUEL_NUMBER:
            return None
        if number == _trailing_number(tracked_normalized):
            return None
        return Relationship(
            RelationshipType.NUMBERED_SEQUEL,
            RELATIONSHIP_CONFIDENCE[RelationshipType.NUMBERED_SEQUEL],
            shared,
            base,
            str(number),
        )

    @staticmethod
    def _keyword_relationship(
        base: str,
        candidate: CandidateListing,
        candidate_normalized: str,
        shared: float,
    ) -> Relationship | None:
        if base not in candidate_normalized:
            return None

        expansion = EXPANSION_KEYWORDS.search(candidate.title)
        if expansion:
            return Relationship(
                RelationshipType.EXPANSION,
                RELATIONSHIP_CONFIDENCE[RelationshipType.EXPANSION],
                shared,
                base,
                expansion.group(0).lower(),
            )
        if REMASTER_KEYWORDS.search(candidate.title):
            return Relationship(
                RelationshipType.REMASTER,
                RELATIONSHIP_CONFIDENCE[RelationshipType.REMASTER],
                shared,
                base,
            )
        if DEFINITIVE_KEYWORDS.search(candidate.title):
            return Relationship(
                RelationshipType.DEFINITIVE,
                RELATIONSHIP_CONFIDENCE[RelationshipType.DEFINITIVE],
                shared,
                base,
            )
        return None

    @staticmethod
    def _named_sequel(base: str, candidate: CandidateListing, shared: float) -> Relationship | None:
        candidate_normalized = normalize(candidate.title)
        if not candidate_normalized.startswith(base + " "):
            return None
        remaining = _EDITION_WORDS.sub(" ", candidate_normalized[len(base):])
        remaining = _WHITESPACE.sub(" ", remaining).strip()
        if len(remaining) <= 2 or shared <= NAMED_SEQUEL_BASE_SIMILARITY:
            return None
        return Relationship(
            RelationshipType.NAMED_SEQUEL,
            RELATIONSHIP_CONFIDENCE[RelationshipType.NAMED_SEQUEL],
            shared,
            base,
            remaining,
        )

    @staticmethod
    def meets_sensitivity(relationship: Relationship, sensitivity: str) -> bool:
        """Apply a title's strict/moderate/loose sensitivity preference."""
        threshold = SEQUEL_SENSITIVITY_THRESHOLDS.get(sensitivity, SEQUEL_SENSITIVITY_THRESHOLDS["moderate"])
        return relationship.confidence >= threshold

    @staticmethod
    def find_existing_match(
        candidate: CandidateListing,
        catalogue: list[TrackedTitle],
        exclude_id: str | None = None,
    ) -> TrackedTitle | None:
        """Find another tracked title that this listing is really an update of."""
        for tracked in catalogue:
            if tracked.id == exclude_id or not tracked.is_active:
                continue
            names = [tracked.title, tracked.original_title, tracked.verified_name]
            if any(name and similarity(name, candidate.title) >= EXISTING_MATCH_THRESHOLD for name in names):
                return tracked
        return None
