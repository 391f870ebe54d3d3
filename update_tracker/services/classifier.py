"""Optional update classifier and the confidence blender built on it.

Every matched candidate is sent to the classifier when one is configured.
Its verdict is blended with the title similarity; when the classifier is
missing or failing, a pattern-based heuristic stands in so the decision
engine always gets a score.
"""

import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from ..models import CycleContext, MatchCandidate, TrackedTitle
from .errors import ClassifierError
from .http_client import HttpClientService

log = structlog.stdlib.get_logger()


SIMILARITY_WEIGHT = 0.4
CLASSIFIER_WEIGHT = 0.6
SUPPRESSION_FACTOR = 0.3

KEYWORD_INCREMENT = 0.1
VERSION_PATTERN_INCREMENT = 0.15

UPDATE_KEYWORDS: tuple[str, ...] = (
    "update", "patch", "hotfix", "fixed", "build", "version", "upgrade", "repack",
)
VERSION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bv\d+(?:\.\d+)+", re.IGNORECASE),
    re.compile(r"\bbuild\s*#?\d+", re.IGNORECASE),
    re.compile(r"\b\d+\.\d+\.\d+\b"),
    re.compile(r"\b(?:19|20)\d{2}[-.]\d{2}[-.]\d{2}\b"),
)


@dataclass(frozen=True)
class ClassifierVerdict:
    """One classifier answer for one candidate."""
    is_update: bool
    confidence: float
    reason: str = ""


@dataclass(frozen=True)
class BlendedScore:
    """Final confidence for a candidate and how it was reached."""
    confidence: float
    method: str  # "classifier" or "regex"
    suppressed: bool = False
    classifier_confidence: float | None = None
    reason: str | None = None


class ClassifierClient:
    """Client for the external update classification endpoint."""

    def __init__(
        self,
        http_client: HttpClientService,
        base_url: str,
        timeout: float = 10.0,
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def analyze_url(self) -> str:
        return f"{self.base_url}/ai/analyze"

    async def classify(
        self,
        subject_title: str,
        candidates: list[MatchCandidate],
        context: dict[str, Any] | None = None,
    ) -> list[ClassifierVerdict | None]:
        """Ask the classifier which candidates are updates of ``subject_title``.

        Args:
            subject_title: Title of the tracked game
            candidates: Candidates to classify
            context: Extra hints such as the current version

        Returns:
            Verdicts aligned with ``candidates``; None where the classifier gave no answer

        Raises:
            ClassifierError: On transport failure or an unusable response
        """
        payload = {
            "gameTitle": subject_title,
            "candidates": [
                {
                    "title": candidate.listing.title,
                    "similarity": candidate.similarity,
                    "link": candidate.listing.link,
                    "date": candidate.listing.date.isoformat() if candidate.listing.date else None,
                }
                for candidate in candidates
            ],
            "context": context or {},
        }

        try:
            response = await self.http_client.post_json(self.analyze_url, payload, timeout=self.timeout)
            data = response.json()
        except httpx.HTTPError as e:
            raise ClassifierError("Classifier request failed", url=self.analyze_url, original_error=e) from e
        except ValueError as e:
            raise ClassifierError("Classifier returned invalid JSON", url=self.analyze_url, original_error=e) from e

        if not isinstance(data, dict) or not data.get("success") or not isinstance(data.get("analysis"), list):
            raise ClassifierError("Classifier reported failure", url=self.analyze_url)

        return self._align(candidates, data["analysis"])

    @staticmethod
    def _align(candidates: list[MatchCandidate], analysis: list[Any]) -> list[ClassifierVerdict | None]:
        by_link: dict[str, ClassifierVerdict] = {}
        by_title: dict[str, ClassifierVerdict] = {}
        for item in analysis:
            if not isinstance(item, dict):
                continue
            try:
                verdict = ClassifierVerdict(
                    is_update=bool(item.get("isUpdate")),
                    confidence=max(0.0, min(1.0, float(item.get("confidence", 0.0)))),
                    reason=str(item.get("reason") or ""),
                )
            except (TypeError, ValueError):
                continue
            if item.get("link"):
                by_link[str(item["link"])] = verdict
            if item.get("title"):
                by_title[str(item["title"])] = verdict

        return [
            by_link.get(candidate.listing.link) or by_title.get(candidate.listing.title)
            for candidate in candidates
        ]


def regex_confidence(candidate: MatchCandidate, tracked_title: str) -> float:
    """Heuristic confidence used when no classifier verdict is available."""
    title = candidate.listing.title.lower()
    tracked = tracked_title.lower()
    confidence = candidate.similarity
    for keyword in UPDATE_KEYWORDS:
        if keyword in title and keyword not in tracked:
            confidence += KEYWORD_INCREMENT
    for pattern in VERSION_PATTERNS:
        if pattern.search(candidate.listing.title):
            confidence += VERSION_PATTERN_INCREMENT
    return round(min(1.0, confidence), 4)


class ConfidenceBlender:
    """Merges similarity with the classifier signal, or falls back to heuristics."""

    def __init__(self, classifier: ClassifierClient | None = None, enabled: bool = True) -> None:
        self.classifier = classifier
        self.enabled = enabled and classifier is not None

    async def blend(
        self,
        candidates: list[MatchCandidate],
        title: TrackedTitle,
        context: CycleContext | None = None,
    ) -> list[BlendedScore]:
        """Score every candidate for ``title``.

        A classifier failure marks it unavailable on ``context`` so the rest
        of the cycle goes straight to the heuristic path.

        Args:
            candidates: Matched candidates for the title
            title: The tracked title being evaluated
            context: Current cycle state

        Returns:
            One BlendedScore per candidate, in the same order
        """
        if not candidates:
            return []

        verdicts: list[ClassifierVerdict | None] = [None] * len(candidates)
        if self.enabled and self.classifier is not None and (context is None or context.classifier_available):
            try:
                verdicts = await self.classifier.classify(
                    title.verified_name or title.title,
                    candidates,
                    {
                        "currentVersion": title.verified_version or title.last_known_version,
                        "currentBuild": title.verified_build,
                        "originalTitle": title.original_title,
                    },
                )
            except ClassifierError as e:
                log.warning(
                    "Classifier unavailable, using pattern heuristics",
                    title=title.title,
                    error=e.message,
                    technical_details=e.technical_details,
                )
                if context is not None:
                    context.classifier_available = False

        return [
            self._score(candidate, verdict, title.title)
            for candidate, verdict in zip(candidates, verdicts)
        ]

    @staticmethod
    def _score(candidate: MatchCandidate, verdict: ClassifierVerdict | None, tracked_title: str) -> BlendedScore:
        if verdict is None:
            return BlendedScore(confidence=regex_confidence(candidate, tracked_title), method="regex")
        if verdict.is_update:
            confidence = SIMILARITY_WEIGHT * candidate.similarity + CLASSIFIER_WEIGHT * verdict.confidence
            return BlendedScore(
                confidence=round(min(1.0, confidence), 4),
                method="classifier",
                classifier_confidence=verdict.confidence,
                reason=verdict.reason or None,
            )
        return BlendedScore(
            confidence=round(candidate.similarity * SUPPRESSION_FACTOR, 4),
            method="classifier",
            suppressed=True,
            classifier_confidence=verdict.confidence,
            reason=verdict.reason or None,
        )
