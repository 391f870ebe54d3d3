"""Version, build and release-tag extraction from raw release titles.

Extraction is driven by an ordered table of ``PatternRule`` rows. Rules are
grouped into families (version, build, scene group, release type, update
type). Within a family the highest-confidence hit wins, ties going to the
earlier row, so the table order doubles as a priority list.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date

import structlog

from ..models import VersionInfo
from .normalizer import SCENE_GROUPS, normalize

log = structlog.stdlib.get_logger()


NEEDS_CONFIRMATION_THRESHOLD = 0.7

KNOWN_SCENE_BOOST = 1.05
BOTH_AXES_BOOST = 1.1
SINGLE_AXIS_BOOST = 1.05
NO_SIGNAL_FACTOR = 0.6

_PRE_RELEASE = "alpha|beta|rc|pre|preview|dev|final|release|hotfix|patch"


@dataclass(frozen=True)
class Hit:
    """Fields produced by a single matching rule."""
    value: str
    confidence: float
    version_date: date | None = None
    known_group: bool = False


@dataclass(frozen=True)
class PatternRule:
    """One row of the extraction table."""
    family: str
    name: str
    pattern: re.Pattern[str]
    confidence: float
    parse: Callable[[re.Match[str], float], Hit | None]


def _make_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _two_digit_year(year: int) -> int:
    return 2000 + year if year < 50 else 1900 + year


def _date_shaped(version: str) -> bool:
    """True when a dotted version is really a calendar date."""
    parts = version.split(".")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return False
    first, second, third = parts
    if len(first) == 4 and len(second) == 2 and len(third) == 2:
        return _make_date(int(first), int(second), int(third)) is not None
    if len(first) == 2 and len(second) == 2 and len(third) == 2:
        return _make_date(_two_digit_year(int(third)), int(second), int(first)) is not None
    return False


def _is_year(number: str) -> bool:
    return len(number) == 4 and 1990 <= int(number) <= 2035


def _parse_iso_date(match: re.Match[str], confidence: float) -> Hit | None:
    parsed = _make_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    if parsed is None:
        return None
    return Hit(parsed.isoformat(), confidence, version_date=parsed)


def _parse_locale_date(match: re.Match[str], confidence: float) -> Hit | None:
    day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
    if not (1 <= day <= 31 and 1 <= month <= 12):
        return None
    parsed = _make_date(_two_digit_year(year), month, day)
    if parsed is None:
        return None
    return Hit(parsed.isoformat(), confidence, version_date=parsed)


def _parse_version(match: re.Match[str], confidence: float) -> Hit | None:
    version = match.group(1).rstrip(".-")
    if _date_shaped(version):
        return None
    return Hit(version, confidence)


def _parse_prefixed_version(match: re.Match[str], confidence: float) -> Hit | None:
    # An explicit "v" marks DD.MM.YY as a version; only YYYY.MM.DD still reads as a date.
    version = match.group(1).rstrip(".-")
    if _date_shaped(version) and len(version.split(".")[0]) == 4:
        return None
    return Hit(version, confidence)


def _parse_build(match: re.Match[str], confidence: float) -> Hit | None:
    build = match.group(1)
    if _is_year(build):
        return None
    if len(build) == 8 and _make_date(int(build[:4]), int(build[4:6]), int(build[6:])):
        return None
    return Hit(build, confidence)


def _keyword(label: str) -> Callable[[re.Match[str], float], Hit | None]:
    def parse(match: re.Match[str], confidence: float) -> Hit | None:
        return Hit(label, confidence)
    return parse


def _parse_known_group(match: re.Match[str], confidence: float) -> Hit | None:
    return Hit(match.group(1).upper(), confidence, known_group=True)


def _parse_unknown_group(match: re.Match[str], confidence: float) -> Hit | None:
    return Hit(match.group(1), confidence)


_I = re.IGNORECASE
_GROUP_ALTERNATION = "|".join(re.escape(group) for group in SCENE_GROUPS)


def _keyword_rule(family: str, label: str, pattern: str, confidence: float) -> PatternRule:
    return PatternRule(family, label.lower(), re.compile(pattern, _I), confidence, _keyword(label))


DEFAULT_RULES: tuple[PatternRule, ...] = (
    # Version family: semantic versions and date-shaped versions.
    PatternRule(
        "version", "prefixed_semver",
        re.compile(rf"\bv\s?(\d+(?:\.\d+)+[a-z]?(?:[-.]?(?:{_PRE_RELEASE})\d*)?)\b", _I),
        0.9, _parse_prefixed_version,
    ),
    PatternRule(
        "version", "iso_date",
        re.compile(r"(?<![\w.])v?(\d{4})[-.](\d{2})[-.](\d{2})(?![\d.])", _I),
        0.85, _parse_iso_date,
    ),
    PatternRule(
        "version", "compact_date",
        re.compile(r"(?<!build )(?<!build)(?<!#)(?<![\w.])v?((?:19|20)\d{2})(\d{2})(\d{2})(?!\d)", _I),
        0.8, _parse_iso_date,
    ),
    PatternRule(
        "version", "word_version",
        re.compile(r"\b(?:version|ver\.?)\s*(\d+(?:\.\d+)*[a-z]?)\b", _I),
        0.85, _parse_version,
    ),
    PatternRule(
        "version", "update_version",
        re.compile(r"\b(?:update|patch|hotfix)\s*v?(\d+(?:\.\d+)+)\b", _I),
        0.8, _parse_version,
    ),
    PatternRule(
        "version", "prefixed_single",
        re.compile(rf"\bv(\d+[a-z]?(?:[-.]?(?:{_PRE_RELEASE})\d*)?)\b", _I),
        0.8, _parse_version,
    ),
    PatternRule(
        "version", "locale_date",
        re.compile(r"(?<![\w.])(\d{2})\.(\d{2})\.(\d{2})(?![\w.])"),
        0.75, _parse_locale_date,
    ),
    PatternRule(
        "version", "bare_semver",
        re.compile(r"(?<![\w.#])(\d+\.\d+(?:\.\d+)*[a-z]?)(?![\w.])", _I),
        0.65, _parse_version,
    ),
    # Build family.
    PatternRule("build", "build_word", re.compile(r"\bbuild\s*#?\s*(\d+)\b", _I), 0.85, _parse_build),
    PatternRule("build", "b_prefix", re.compile(r"\bb(\d{4,})\b", _I), 0.8, _parse_build),
    PatternRule("build", "hash", re.compile(r"#(\d{4,})\b"), 0.75, _parse_build),
    PatternRule("build", "revision", re.compile(r"\brev(?:ision)?\.?\s*(\d+)\b", _I), 0.75, _parse_build),
    PatternRule("build", "parenthesized", re.compile(r"\((\d{6,})\)"), 0.7, _parse_build),
    # Scene group family.
    PatternRule(
        "scene_group", "known_group",
        re.compile(rf"[-\[(]\s*({_GROUP_ALTERNATION})(?![A-Za-z0-9])", _I),
        1.0, _parse_known_group,
    ),
    PatternRule(
        "scene_group", "trailing_group",
        re.compile(r"-((?=[A-Z0-9]*[A-Z])[A-Z0-9]{4,})\s*$"),
        1.0, _parse_unknown_group,
    ),
    # Release type family. Longer labels come first so "REAL PROPER" beats "PROPER".
    _keyword_rule("release_type", "REAL PROPER", r"\breal[ .]proper\b", 0.95),
    _keyword_rule("release_type", "PROPER", r"\bproper\b", 0.95),
    _keyword_rule("release_type", "REPACK", r"\brepack(?:ed)?\b", 0.95),
    _keyword_rule("release_type", "UNCUT", r"\buncut\b", 0.95),
    _keyword_rule("release_type", "EXTENDED", r"\bextended\b", 0.95),
    _keyword_rule("release_type", "DIRECTORS CUT", r"\bdirector'?s[ .]cut\b", 0.95),
    _keyword_rule("release_type", "GOTY", r"\b(?:goty|game of the year)\b", 0.95),
    _keyword_rule("release_type", "DEFINITIVE", r"\bdefinitive\b", 0.95),
    _keyword_rule("release_type", "COMPLETE", r"\bcomplete\b", 0.95),
    _keyword_rule("release_type", "ENHANCED", r"\benhanced\b", 0.95),
    _keyword_rule("release_type", "REMASTERED", r"\bremaster(?:ed)?\b", 0.95),
    _keyword_rule("release_type", "ULTIMATE", r"\bultimate\b", 0.95),
    _keyword_rule("release_type", "DELUXE", r"\bdeluxe\b", 0.95),
    _keyword_rule("release_type", "INTERNAL", r"\binternal\b", 0.95),
    # Update type family.
    _keyword_rule("update_type", "HOTFIX", r"\bhotfix\b", 0.9),
    _keyword_rule("update_type", "UPDATE", r"\bupdate[ds]?\b", 0.9),
    _keyword_rule("update_type", "PATCH", r"\bpatch(?:ed)?\b", 0.9),
    _keyword_rule("update_type", "DLC", r"\bdlcs?\b", 0.9),
    _keyword_rule("update_type", "EXPANSION", r"\bexpansion\b", 0.9),
    _keyword_rule("update_type", "SEASON PASS", r"\bseason pass\b", 0.9),
    _keyword_rule("update_type", "ADDON", r"\badd-?on\b", 0.9),
)

FAMILIES: tuple[str, ...] = ("version", "build", "scene_group", "release_type", "update_type")


class VersionExtractor:
    """Parses raw release titles into ``VersionInfo`` records."""

    def __init__(self, rules: tuple[PatternRule, ...] = DEFAULT_RULES) -> None:
        self.rules = rules

    def extract(self, raw_title: str | None) -> VersionInfo:
        """Extract structured version signal from a release title.

        Never raises. A title without any recognisable signal produces a
        low-confidence record flagged for confirmation.

        Args:
            raw_title: Title as published in a release post

        Returns:
            VersionInfo with every field that could be recognised
        """
        if not raw_title or not raw_title.strip():
            return VersionInfo(confidence=0.3, needs_confirmation=True, raw_title=raw_title or "")

        hits = self.match_families(raw_title)

        version_hit = hits.get("version")
        build_hit = hits.get("build")
        group_hit = hits.get("scene_group")

        confidence = 1.0
        for hit in hits.values():
            confidence *= hit.confidence
        if group_hit is not None and group_hit.known_group:
            confidence *= KNOWN_SCENE_BOOST
        if version_hit is not None and build_hit is not None:
            confidence *= BOTH_AXES_BOOST
        elif version_hit is not None or build_hit is not None:
            confidence *= SINGLE_AXIS_BOOST
        else:
            confidence *= NO_SIGNAL_FACTOR
        confidence = round(min(1.0, confidence), 4)

        info = VersionInfo(
            version=version_hit.value if version_hit else None,
            build=build_hit.value if build_hit else None,
            release_type=hits["release_type"].value if "release_type" in hits else None,
            update_type=hits["update_type"].value if "update_type" in hits else None,
            scene_group=group_hit.value if group_hit else None,
            is_date_version=bool(version_hit and version_hit.version_date),
            version_date=version_hit.version_date if version_hit else None,
            confidence=confidence,
            needs_confirmation=confidence < NEEDS_CONFIRMATION_THRESHOLD,
            raw_title=raw_title,
            base_title=normalize(raw_title),
        )

        log.debug(
            "Version info extracted",
            title=raw_title,
            version=info.version,
            build=info.build,
            release_type=info.release_type,
            scene_group=info.scene_group,
            confidence=info.confidence,
        )
        return info

    def match_families(self, raw_title: str) -> dict[str, Hit]:
        """Run the rule table and keep the best hit of each family."""
        best: dict[str, Hit] = {}
        for rule in self.rules:
            current = best.get(rule.family)
            if current is not None and current.confidence >= rule.confidence:
                continue
            for match in rule.pattern.finditer(raw_title):
                hit = rule.parse(match, rule.confidence)
                if hit is not None:
                    best[rule.family] = hit
                    break
        return best


_default_extractor = VersionExtractor()


def extract(raw_title: str | None) -> VersionInfo:
    """Extract a ``VersionInfo`` using the default rule table."""
    return _default_extractor.extract(raw_title)


def extract_release_group(title: str) -> str:
    """Identify the uploader or scene group that published a release.

    Args:
        title: Raw release title

    Returns:
        Upper-case group name, or ``UNKNOWN`` when none is recognised
    """
    for group in SCENE_GROUPS:
        if re.search(rf"(?<![A-Za-z0-9]){re.escape(group)}(?![A-Za-z0-9])", title, _I):
            return group
    return "UNKNOWN"


def normalize_version_number(version: str) -> str:
    """Canonical storage form: no ``v`` prefix, dates as ``YYYYMMDD``."""
    cleaned = version.strip()
    if cleaned[:1] in ("v", "V"):
        cleaned = cleaned[1:]
    date_match = re.fullmatch(r"(\d{4})[-.](\d{2})[-.](\d{2})", cleaned)
    if date_match and _make_date(*(int(part) for part in date_match.groups())):
        return "".join(date_match.groups())
    return cleaned


def is_valid_build_number(build: str) -> bool:
    """Builds are plain numbers of 3 to 12 digits."""
    return bool(re.fullmatch(r"\d{3,12}", build.strip()))


def with_resolved_axes(info: VersionInfo, version: str | None, build: str | None) -> VersionInfo:
    """Copy ``info`` filling in any axis that is still missing."""
    resolved_version = info.version
    is_date_version = info.is_date_version
    version_date = info.version_date
    if version and (not info.version or info.is_date_version):
        resolved_version = version
        is_date_version = False
        version_date = None
    return replace(
        info,
        version=resolved_version,
        build=info.build or build,
        is_date_version=is_date_version,
        version_date=version_date,
    )
