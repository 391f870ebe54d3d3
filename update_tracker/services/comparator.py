"""Version comparison gated by the release-priority hierarchy.

A release is tiered before any numbers are looked at: versioned releases
outrank PROPER-tagged releases, which outrank unversioned first releases.
Downgrading tier is refused outright. Within a tier, semantic versions are
compared component by component, builds numerically and date-versions by
calendar order.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime

import structlog

from ..models import ComparisonResult, ReleaseTier, VersionInfo

log = structlog.stdlib.get_logger()


COMPONENT_CHANGES: tuple[tuple[str, int], ...] = (
    ("major", 10),
    ("minor", 5),
    ("patch", 3),
)
BUILD_COMPONENT_CHANGE = ("build", 2)
SUFFIX_CHANGE = ("hotfix", 2)

TIER_UPGRADE_SIGNIFICANCE: dict[ReleaseTier, int] = {
    ReleaseTier.PROPER: 7,
    ReleaseTier.VERSIONED: 8,
}

DEFAULT_GRACE_DAYS = 2
MAX_MAJOR_STEP = 2
MAX_MINOR_STEP = 20
MAX_COMPONENT_GROWTH = 1

# Pre-release suffixes sort below the plain release, letters and hotfix tags above it.
_SUFFIX_RANKS: dict[str, int] = {
    "dev": -6,
    "alpha": -5,
    "preview": -4,
    "pre": -3,
    "beta": -2,
    "rc": -1,
    "": 0,
    "final": 0,
    "release": 0,
    "patch": 1,
    "hotfix": 1,
}

_COMPONENT = re.compile(r"^(\d+)(.*)$")
_SUFFIX_WORD = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class VersionComponent:
    text: str
    number: int
    suffix: str

    @property
    def zero_padded(self) -> bool:
        digits = self.text[: len(self.text) - len(self.suffix)] if self.suffix else self.text
        return len(digits) > 1 and digits.startswith("0")


def parse_components(version: str) -> list[VersionComponent]:
    """Split ``"1.2.3b"`` into numeric components with optional suffixes."""
    components: list[VersionComponent] = []
    cleaned = version.strip().lower().lstrip("v")
    for part in re.split(r"[.\-_]", cleaned):
        if not part:
            continue
        match = _COMPONENT.match(part)
        if match:
            components.append(VersionComponent(part, int(match.group(1)), match.group(2)))
        elif components:
            # "1.2-beta" puts the tag in its own part; attach it to the last number
            last = components[-1]
            components[-1] = VersionComponent(last.text + part, last.number, last.suffix + part)
    return components


def _suffix_rank(suffix: str) -> tuple[int, str]:
    if not suffix:
        return (0, "")
    word_match = _SUFFIX_WORD.search(suffix)
    word = word_match.group(0) if word_match else ""
    if word in _SUFFIX_RANKS:
        return (_SUFFIX_RANKS[word], suffix)
    # Single letters such as "1.5a" mark a re-release after the plain version
    return (2, suffix)


def _first_difference(
    current: list[VersionComponent],
    candidate: list[VersionComponent],
) -> tuple[int, int, bool] | None:
    """Locate the first differing component.

    Returns:
        (index, sign, suffix_only) or None when the versions are equal
    """
    length = max(len(current), len(candidate))
    for index in range(length):
        left = current[index] if index < len(current) else VersionComponent("0", 0, "")
        right = candidate[index] if index < len(candidate) else VersionComponent("0", 0, "")
        if left.number != right.number:
            return index, (1 if right.number > left.number else -1), False
        left_rank = _suffix_rank(left.suffix)
        right_rank = _suffix_rank(right.suffix)
        if left_rank != right_rank:
            return index, (1 if right_rank > left_rank else -1), True
    return None


def compare_version_strings(a: str, b: str) -> int:
    """Order two version strings.

    Returns:
        1 if ``b`` is newer than ``a``, -1 if older, 0 if equal
    """
    difference = _first_difference(parse_components(a), parse_components(b))
    return 0 if difference is None else difference[1]


def compare_build_numbers(a: str, b: str) -> int:
    """Order two build numbers numerically; non-numeric builds compare equal."""
    try:
        left, right = int(a), int(b)
    except ValueError:
        return 0
    return (right > left) - (right < left)


def check_suspicious(current: str, candidate: str) -> str | None:
    """Flag version transitions that are implausible for a real update.

    Args:
        current: Version currently tracked
        candidate: Version seen in the new listing

    Returns:
        Human-readable reason, or None when the transition looks normal
    """
    current_parts = parse_components(current)
    candidate_parts = parse_components(candidate)
    if not current_parts or not candidate_parts:
        return None

    for left, right in zip(current_parts, candidate_parts):
        if left.zero_padded != right.zero_padded and left.number == right.number:
            return f"version numbering changed padding ({current} -> {candidate})"

    if len(candidate_parts) - len(current_parts) > MAX_COMPONENT_GROWTH:
        return f"version gained {len(candidate_parts) - len(current_parts)} components ({current} -> {candidate})"

    major_step = candidate_parts[0].number - current_parts[0].number
    if major_step > MAX_MAJOR_STEP:
        return f"major version jumped by {major_step} ({current} -> {candidate})"

    if major_step == 0 and len(current_parts) > 1 and len(candidate_parts) > 1:
        minor_step = candidate_parts[1].number - current_parts[1].number
        if minor_step > MAX_MINOR_STEP:
            return f"minor version jumped by {minor_step} ({current} -> {candidate})"

    return None


class VersionComparator:
    """Decides whether a candidate release is newer than the current one."""

    def __init__(self, grace_days: int = DEFAULT_GRACE_DAYS) -> None:
        self.grace_days = grace_days

    def compare(
        self,
        current: VersionInfo,
        candidate: VersionInfo,
        now: datetime | None = None,
    ) -> ComparisonResult:
        """Compare a candidate release against the current one.

        Args:
            current: Version signal of what is tracked today
            candidate: Version signal of the newly observed listing
            now: Reference time for date-version deferral

        Returns:
            ComparisonResult describing the verdict
        """
        current_tier = current.tier
        candidate_tier = candidate.tier

        if candidate_tier < current_tier:
            return ComparisonResult(
                is_newer=False,
                change_type="hierarchy_downgrade",
                significance=0,
                reason=f"{candidate_tier.name.lower()} release cannot replace {current_tier.name.lower()} release",
                decided_by="tier",
                skip_due_to_hierarchy=True,
            )

        if candidate_tier > current_tier:
            return ComparisonResult(
                is_newer=True,
                change_type="release_tier",
                significance=TIER_UPGRADE_SIGNIFICANCE[candidate_tier],
                reason=f"release upgraded from {current_tier.name.lower()} to {candidate_tier.name.lower()}",
                decided_by="tier",
            )

        if candidate_tier != ReleaseTier.VERSIONED:
            return ComparisonResult(
                is_newer=False,
                change_type="none",
                significance=0,
                reason=f"both releases are {candidate_tier.name.lower()} releases",
                decided_by="tier",
            )

        result = self._compare_versioned(current, candidate, now or datetime.now())
        log.debug(
            "Versions compared",
            current=current.display_version,
            candidate=candidate.display_version,
            is_newer=result.is_newer,
            change_type=result.change_type,
            suspicious=result.suspicious,
        )
        return result

    def _compare_versioned(
        self,
        current: VersionInfo,
        candidate: VersionInfo,
        now: datetime,
    ) -> ComparisonResult:
        if current.version and candidate.version:
            if current.is_date_version or candidate.is_date_version:
                result = self._compare_dates(current, candidate, now)
            else:
                result = self._compare_numeric(current.version, candidate.version)
            if result is not None:
                return result

        if current.build and candidate.build:
            return self._compare_builds(current.build, candidate.build)

        if current.version and candidate.version:
            return ComparisonResult(
                is_newer=False,
                change_type="none",
                significance=0,
                reason=f"same version {candidate.version}",
                decided_by="version",
            )

        return ComparisonResult(
            is_newer=False,
            change_type="unknown",
            significance=0,
            reason="releases share no comparable version or build",
            comparable=False,
        )

    def _compare_numeric(self, current: str, candidate: str) -> ComparisonResult | None:
        suspicious_reason = check_suspicious(current, candidate)
        difference = _first_difference(parse_components(current), parse_components(candidate))

        if difference is None:
            if suspicious_reason:
                return ComparisonResult(
                    is_newer=False,
                    change_type="none",
                    significance=0,
                    reason=f"version {candidate} equals {current} numerically",
                    decided_by="version",
                    suspicious=True,
                    suspicious_reason=suspicious_reason,
                )
            return None

        index, sign, suffix_only = difference
        if suffix_only:
            change_type, significance = SUFFIX_CHANGE
        elif index < len(COMPONENT_CHANGES):
            change_type, significance = COMPONENT_CHANGES[index]
        else:
            change_type, significance = BUILD_COMPONENT_CHANGE

        is_newer = sign > 0
        return ComparisonResult(
            is_newer=is_newer,
            change_type=change_type if is_newer else "downgrade",
            significance=significance if is_newer else 0,
            reason=f"{change_type} version {'increased' if is_newer else 'decreased'} ({current} -> {candidate})",
            decided_by="version",
            suspicious=suspicious_reason is not None,
            suspicious_reason=suspicious_reason,
        )

    def _compare_dates(
        self,
        current: VersionInfo,
        candidate: VersionInfo,
        now: datetime,
    ) -> ComparisonResult | None:
        if current.version_date and candidate.version_date:
            if candidate.version_date == current.version_date:
                return None
            is_newer = candidate.version_date > current.version_date
            return ComparisonResult(
                is_newer=is_newer,
                change_type="date" if is_newer else "downgrade",
                significance=3 if is_newer else 0,
                reason=f"release date {'advanced' if is_newer else 'went back'} "
                f"({current.version_date.isoformat()} -> {candidate.version_date.isoformat()})",
                decided_by="date",
            )

        if candidate.version_date and not current.is_date_version:
            age_days = (now.date() - candidate.version_date).days
            if age_days < self.grace_days:
                return ComparisonResult(
                    is_newer=False,
                    change_type="date",
                    significance=0,
                    reason=f"date release {candidate.version} is {age_days} day(s) old, waiting for a numbered release",
                    decided_by="date",
                    should_wait_for_regular=True,
                )
            return ComparisonResult(
                is_newer=True,
                change_type="date",
                significance=2,
                reason=f"date release {candidate.version} after numbered release {current.version}",
                decided_by="date",
                suspicious=True,
                suspicious_reason=f"version scheme changed from numbered to dated ({current.version} -> {candidate.version})",
            )

        # Numbered release replacing a dated one is the expected direction.
        return ComparisonResult(
            is_newer=True,
            change_type="scheme_change",
            significance=3,
            reason=f"numbered release {candidate.version} replaces dated release {current.version}",
            decided_by="version",
        )

    def _compare_builds(self, current: str, candidate: str) -> ComparisonResult:
        sign = compare_build_numbers(current, candidate)
        if sign == 0:
            return ComparisonResult(
                is_newer=False,
                change_type="none",
                significance=0,
                reason=f"same build {candidate}",
                decided_by="build",
            )
        if sign < 0:
            return ComparisonResult(
                is_newer=False,
                change_type="downgrade",
                significance=0,
                reason=f"build decreased ({current} -> {candidate})",
                decided_by="build",
            )
        difference = int(candidate) - int(current)
        significance = min(10, max(2, math.floor(math.log10(difference))))
        return ComparisonResult(
            is_newer=True,
            change_type="build",
            significance=significance,
            reason=f"build increased ({current} -> {candidate})",
            decided_by="build",
        )


_default_comparator = VersionComparator()


def compare(current: VersionInfo, candidate: VersionInfo, now: datetime | None = None) -> ComparisonResult:
    """Compare using the default grace period."""
    return _default_comparator.compare(current, candidate, now)
