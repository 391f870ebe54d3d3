"""Title normalization for comparing noisy release names.

Release posts decorate the game name with scene groups, version tokens,
edition qualifiers and assorted punctuation. ``normalize`` reduces a raw
title to a canonical comparison string so two posts of the same game compare
equal regardless of that decoration.
"""

import re

from bs4 import BeautifulSoup


SCENE_GROUPS: tuple[str, ...] = (
    "CODEX", "PLAZA", "SKIDROW", "EMPRESS", "FITGIRL", "DODI", "RUNE",
    "TENOKE", "CPY", "ALI213", "3DM", "RELOADED", "RAZOR1911", "PROPHET",
    "HOODLUM", "FAIRLIGHT", "SIMPLEX", "DARKZER0", "CHRONOS", "FLT",
    "UNLEASHED", "DEVIANCE", "VITALITY", "OUTLAWS", "TINYISO", "STEAMPUNKS",
    "DARKSIDERS", "MASQUERADE", "GOLDBERG", "ELAMIGOS", "KAOSKREW", "P2P",
    "GOG", "DINOBYTES", "I_KNOW", "ANOMALY", "TINYREPACKS",
)

ROMAN_NUMERALS: dict[str, int] = {
    "i": 1, "ii": 2, "iii": 3, "iv": 4, "v": 5, "vi": 6, "vii": 7,
    "viii": 8, "ix": 9, "x": 10, "xi": 11, "xii": 12, "xiii": 13,
    "xiv": 14, "xv": 15,
}

NUMBER_WORDS: dict[str, int] = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

# Tags that never belong to a real game name and may appear as bare words.
PIRACY_TAGS: tuple[str, ...] = (
    "real proper", "proper", "repack", "repacked", "fitgirl", "dodi",
    "empress", "codex", "skidrow", "plaza", "tenoke", "p2p", "denuvoless",
    "cracked", "elamigos", "kaoskrew", "razor1911",
)

_MAX_PASSES = 10

_SCENE_SUFFIX = re.compile(
    r"-(?:" + "|".join(re.escape(group) for group in SCENE_GROUPS) + r")\b",
    re.IGNORECASE,
)
# Upper-case trailing tag such as "-GROUPNAME"; mixed case words like "Half-Life" survive.
_UNKNOWN_GROUP_SUFFIX = re.compile(r"-(?=[A-Z0-9]*[A-Z])[A-Z0-9]{4,}\s*$")
_BRACKETED = re.compile(r"\[[^\]]*\]|\([^)]*\)|\{[^}]*\}")
_TRADEMARKS = re.compile(r"[®™©]")

_NOISE_PHRASES = re.compile(
    r"\b(?:free download|full version|pre-?installed|(?:all|with)\s+\d*\s*dlcs?|"
    r"dlcs?\s+included|bonus content|multi\d+)\b|"
    r"\+\s*\d*\s*(?:dlcs?|bonus(?:es)?)\b"
)
_VERSION_TOKENS = (
    re.compile(r"\b\d{4}[-.]\d{2}[-.]\d{2}\b"),
    re.compile(r"\b(?:19|20)\d{6}\b"),
    re.compile(
        r"\bv\s?\d+(?:[._]\d+)*[a-z]?"
        r"(?:[-.]?(?:alpha|beta|rc|pre|preview|dev|final|release|hotfix|patch)\d*)?\b"
    ),
    re.compile(r"\b(?:version|ver\.?)\s*\d+(?:\.\d+)*\b"),
    re.compile(r"\bbuild\s*#?\s*\d+\b"),
    re.compile(r"\bb\d{4,}\b"),
    re.compile(r"#\d{3,}\b"),
    re.compile(r"\brev(?:ision)?\s*\d+\b"),
    re.compile(r"\b(?:update|hotfix|patch)\s*v?\d+(?:\.\d+)*\b"),
    re.compile(r"\bhotfix\b"),
    re.compile(r"\b\d+(?:\.\d+)+[a-z]?\b"),
)
_YEAR_TAG = re.compile(r"\b(?:199\d|20[0-3]\d)\b")
_EDITION_QUALIFIERS = re.compile(
    r"\b(?:game of the year|goty)(?:\s+edition)?\b|"
    r"\b(?:definitive|ultimate|enhanced|complete|deluxe|digital deluxe|premium|"
    r"special|gold|collectors?|anniversary|standard|legendary|platinum)\s+edition\b|"
    r"\bdirector'?s cut\b"
)
_PIRACY_WORDS = re.compile(r"\b(?:" + "|".join(re.escape(tag) for tag in PIRACY_TAGS) + r")\b")
_APOSTROPHES = re.compile(r"['’`]")
_CONJUNCTIONS = (
    (re.compile(r"\band\b"), "&"),
    (re.compile(r"\bvs\.?"), "vs"),
    (re.compile(r"\bof the\b"), "of"),
)
_PUNCTUATION = re.compile(r"[^\w\s&]|_")
_NUMBER_WORD = re.compile(r"\b(" + "|".join(NUMBER_WORDS) + r")\b")
_ROMAN_TO_TEN = re.compile(r"\b(viii|vii|iii|ii|iv|ix|vi|v|x|i)\b")
_WHITESPACE = re.compile(r"\s+")


def decode_title(raw_title: str) -> str:
    """Decode HTML entities and strip markup from a scraped title.

    Args:
        raw_title: Title text as it appeared in the listing markup

    Returns:
        Plain text title with collapsed whitespace
    """
    if not raw_title:
        return ""
    text = BeautifulSoup(raw_title, "html.parser").get_text(" ")
    return _WHITESPACE.sub(" ", text).strip()


def normalize(raw_title: str) -> str:
    """Reduce a raw release title to its canonical comparison string.

    The same transformation is applied until the text stops changing, so
    ``normalize(normalize(t)) == normalize(t)``.

    Args:
        raw_title: Title as published in a release post

    Returns:
        Lower-case canonical title, possibly empty
    """
    text = raw_title or ""
    for _ in range(_MAX_PASSES):
        normalized = _normalize_once(text)
        if normalized == text:
            break
        text = normalized
    return text


def _normalize_once(text: str) -> str:
    text = _SCENE_SUFFIX.sub(" ", text)
    text = _UNKNOWN_GROUP_SUFFIX.sub(" ", text)
    text = _BRACKETED.sub(" ", text)
    text = _TRADEMARKS.sub("", text)
    text = text.lower()

    text = _NOISE_PHRASES.sub(" ", text)
    for pattern in _VERSION_TOKENS:
        text = pattern.sub(" ", text)
    text = _YEAR_TAG.sub(" ", text)
    text = _EDITION_QUALIFIERS.sub(" ", text)
    text = _PIRACY_WORDS.sub(" ", text)

    text = _APOSTROPHES.sub("", text)
    for pattern, replacement in _CONJUNCTIONS:
        text = pattern.sub(replacement, text)
    text = _PUNCTUATION.sub(" ", text)

    text = _NUMBER_WORD.sub(lambda m: str(NUMBER_WORDS[m.group(1)]), text)
    text = _ROMAN_TO_TEN.sub(lambda m: str(ROMAN_NUMERALS[m.group(1)]), text)

    return _WHITESPACE.sub(" ", text).strip()


_DISPLAY_TAIL = re.compile(
    r"\s+(?:v\s?\d|build\s*#?\d|b\d{4,}|update\s*v?\d|version\s*\d|\d+(?:\.\d+)+).*$",
    re.IGNORECASE,
)


def display_title(raw_title: str) -> str:
    """Readable game name from a release title, keeping its original casing."""
    text = _SCENE_SUFFIX.sub(" ", raw_title or "")
    text = _UNKNOWN_GROUP_SUFFIX.sub(" ", text)
    text = _BRACKETED.sub(" ", text)
    text = _TRADEMARKS.sub("", text)
    text = _DISPLAY_TAIL.sub("", text)
    return _WHITESPACE.sub(" ", text).strip(" -:")
