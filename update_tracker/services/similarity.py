"""Sequel-aware similarity between release titles."""

import re
from dataclasses import dataclass

from .normalizer import ROMAN_NUMERALS, normalize


EXACT_MATCH = 1.0
SUBSTRING_MATCH = 0.85
SEQUEL_MISMATCH = 0.3

# Words that describe an edition of the same game rather than a new one.
EDITION_WORDS: frozenset[str] = frozenset({
    "goty", "definitive", "ultimate", "enhanced", "complete", "deluxe",
    "premium", "edition", "version", "collection", "bundle", "gold",
    "special", "anniversary",
})

_TRAILING_NUMBER = re.compile(r"^(.+?)\s+(\d{1,2})$")
_TRAILING_ROMAN = re.compile(r"^(.+?)\s+([ivx]+)$")


@dataclass(frozen=True)
class SimilarityScore:
    """Similarity value plus whether it was lowered by a sequel indicator."""
    value: float
    sequel_indicated: bool = False


@dataclass(frozen=True)
class SequelNumber:
    base: str
    number: int


def split_sequel_number(title: str) -> SequelNumber | None:
    """Split ``"borderlands 2"`` into its base and trailing sequel number."""
    match = _TRAILING_NUMBER.match(title)
    if match:
        number = int(match.group(2))
        if 1 <= number <= 99:
            return SequelNumber(match.group(1), number)
    match = _TRAILING_ROMAN.match(title)
    if match and match.group(2) in ROMAN_NUMERALS:
        return SequelNumber(match.group(1), ROMAN_NUMERALS[match.group(2)])
    return None


def is_sequel_surplus(surplus: str) -> bool:
    """Decide whether text left over after a substring match names a new game."""
    words = surplus.split()
    if not words:
        return False
    first = words[0]
    if first.isdigit() or first in ROMAN_NUMERALS:
        return True
    return any(len(word) > 1 and word not in EDITION_WORDS for word in words)


def token_jaccard(a: str, b: str) -> float:
    """Jaccard overlap of the words longer than one character."""
    words_a = {word for word in a.split() if len(word) > 1}
    words_b = {word for word in b.split() if len(word) > 1}
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def score_normalized(a: str, b: str) -> SimilarityScore:
    """Score two titles that are already in canonical form."""
    if not a or not b:
        return SimilarityScore(0.0)
    if a == b:
        return SimilarityScore(EXACT_MATCH)

    sequel_a = split_sequel_number(a)
    sequel_b = split_sequel_number(b)
    if sequel_a and sequel_b and sequel_a.base == sequel_b.base:
        if sequel_a.number == sequel_b.number:
            return SimilarityScore(EXACT_MATCH)
        return SimilarityScore(SEQUEL_MISMATCH, sequel_indicated=True)
    if (sequel_a and not sequel_b and sequel_a.base == b) or (
        sequel_b and not sequel_a and sequel_b.base == a
    ):
        return SimilarityScore(SEQUEL_MISMATCH, sequel_indicated=True)

    if a in b or b in a:
        longer, shorter = (a, b) if len(a) > len(b) else (b, a)
        surplus = longer.replace(shorter, " ").strip()
        if is_sequel_surplus(surplus):
            return SimilarityScore(SEQUEL_MISMATCH, sequel_indicated=True)
        return SimilarityScore(SUBSTRING_MATCH)

    return SimilarityScore(round(token_jaccard(a, b), 4))


def score(a: str, b: str) -> SimilarityScore:
    """Normalize both titles and score them.

    Args:
        a: First raw title
        b: Second raw title

    Returns:
        SimilarityScore in the range 0..1
    """
    return score_normalized(normalize(a), normalize(b))


def similarity(a: str, b: str) -> float:
    """Symmetric 0..1 similarity between two raw titles."""
    return score(a, b).value
