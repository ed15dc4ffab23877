"""
app/normalization/ingredient_normalizer.py

Deterministic text transforms for product names and active ingredient strings.

All functions are pure: no I/O, no state, same input -> same output.
"""

from __future__ import annotations

import re

SUFFIX_MARKERS = (">>",)

STOP_WORDS = frozenset({"THE", "AND", "OF", "FOR", "WITH", "IN", "A", "AN"})

STRENGTH_UNITS = ("MG", "MCG", "G", "ML", "IU", "MEQ", "MMOL", "UNITS", "UNIT")

HYDRATE_PREFIXES = ("MONO", "DI", "TRI", "TETRA", "HEMI", "SESQUI")

DOSAGE_FORM_WORDS = (
    "TABLETS",
    "TABLET",
    "CAPSULES",
    "CAPSULE",
    "INJECTION",
    "SOLUTION",
    "SUSPENSION",
    "CREAM",
    "OINTMENT",
    "GEL",
    "PATCH",
    "SPRAY",
    "INHALER",
    "EXTENDED",
    "RELEASE",
    "DELAYED",
    "MODIFIED",
    "IMMEDIATE",
)

SALT_SUFFIX_WORDS = (
    "HYDROCHLORIDE",
    "HCL",
    "HCI",
    "SODIUM",
    "POTASSIUM",
    "CALCIUM",
    "MAGNESIUM",
    "SULFATE",
    "SULPHATE",
    "PHOSPHATE",
    "ACETATE",
    "CITRATE",
    "TARTRATE",
    "MALEATE",
    "FUMARATE",
    "SUCCINATE",
    "CHLORIDE",
    "BROMIDE",
    "IODIDE",
    "NITRATE",
    "MESYLATE",
    "TOSYLATE",
    "BESYLATE",
    "MALATE",
    "GLUCONATE",
    "LACTATE",
    "OXALATE",
    "STEARATE",
    "PALMITATE",
    "OLEATE",
    "BENZOATE",
    "VALERATE",
    "BUTYRATE",
    "PROPIONATE",
    "FORMATE",
    "ASCORBATE",
    "MONOHYDRATE",
    "DIHYDRATE",
    "TRIHYDRATE",
    "ANHYDROUS",
    "HEMIHYDRATE",
    "SESQUIHYDRATE",
)

_SUFFIX_MARKER_RX = re.compile("(?:" + "|".join(re.escape(marker) for marker in SUFFIX_MARKERS) + ").*$", re.DOTALL)
_NON_WORD_RX = re.compile(r"[^\w\s-]")
_WHITESPACE_RX = re.compile(r"\s+")
_INGREDIENT_SPLIT_RX = re.compile(r";+|\band\b", re.IGNORECASE)
_CAPITALIZED_COMMA_RX = re.compile(r",(?=\s*[A-Z])")
_PARENTHETICAL_RX = re.compile(r"\([^)]*\)")
_STRENGTH_RX = re.compile(
    r"\d+(?:\.\d+)?\s*(?:(?:" + "|".join(STRENGTH_UNITS) + r")\b|%)"
    r"(?:\s*/\s*(?:\d+(?:\.\d+)?\s*)?(?:ML|MG|G|L)?\b)?"
)
_HYDRATE_RX = re.compile(r"\b(?:" + "|".join(HYDRATE_PREFIXES) + r")?HYDRATE\b")
_DOSAGE_FORM_RX = re.compile(r"\b(?:" + "|".join(DOSAGE_FORM_WORDS) + r")\b")
_SALT_RX = re.compile(r"\b(?:" + "|".join(SALT_SUFFIX_WORDS) + r")\b")
_LIST_PUNCTUATION_RX = re.compile(r"[,;]+")
_EDGE_RX = re.compile(r"^[-\s]+|[-\s]+$")
_QUALIFIER_PATTERNS = (
    _PARENTHETICAL_RX,
    _STRENGTH_RX,
    _HYDRATE_RX,
    _DOSAGE_FORM_RX,
    _LIST_PUNCTUATION_RX,
)


def _collapse(text: str) -> str:
    return _WHITESPACE_RX.sub(" ", text).strip()


def normalize_product_name(raw: str) -> str:
    """Normalize a product name for registry queries and cache keys.

    Trims, uppercases, drops everything after a suffix marker such as ``>>``,
    replaces punctuation other than hyphens with spaces and collapses
    whitespace. Idempotent.

    Args:
        raw: Product name exactly as uploaded.

    Returns:
        Uppercase name with single spaces, possibly empty.
    """
    text = (raw or "").strip().upper()
    text = _SUFFIX_MARKER_RX.sub("", text)
    text = _NON_WORD_RX.sub(" ", text)
    return _collapse(text)


def extract_primary_token(normalized: str) -> str:
    """Return the first significant word of a normalized product name.

    Significant means at least three characters and not a stop word. Falls
    back to the first word, then to the whole string.
    """
    words = normalized.split()
    for word in words:
        if len(word) >= 3 and word not in STOP_WORDS:
            return word
    return words[0] if words else normalized


def parse_ingredient_list(raw: str) -> list[str]:
    """Split raw active ingredient text into individual ingredient strings.

    Splits on semicolons, on the word ``and`` and on commas directly followed
    by a capitalized word, so that commas inside a single chemical name do
    not split it.
    """
    if not raw:
        return []
    parts: list[str] = []
    for chunk in _INGREDIENT_SPLIT_RX.split(raw):
        for piece in _CAPITALIZED_COMMA_RX.split(chunk):
            stripped = piece.strip()
            if stripped:
                parts.append(stripped)
    return parts


def clean_ingredient_token(raw: str) -> str:
    """Reduce one ingredient string to its base molecule name.

    Removes parenthetical content, strengths, hydrate qualifiers, dosage form
    words and salt suffixes. When salt removal would leave nothing (e.g.
    ``SODIUM CHLORIDE``), the salt words are the molecule and are kept.
    """
    before_salts = _until_stable((raw or "").upper(), _QUALIFIER_PATTERNS)
    cleaned = _until_stable(before_salts, _QUALIFIER_PATTERNS + (_SALT_RX,))
    return cleaned or before_salts


def _until_stable(text: str, patterns: tuple[re.Pattern[str], ...]) -> str:
    # A removal can bring a number next to a unit, so repeat until nothing changes.
    previous = None
    while text != previous:
        previous = text
        for pattern in patterns:
            text = pattern.sub(" ", text)
        text = _EDGE_RX.sub("", _collapse(text))
    return text


def build_ingredient_base(raw_ingredient_text: str) -> str:
    """Build the canonical ingredient key used to join the two registries.

    Components are cleaned, deduplicated case-insensitively, sorted and
    joined with ``"; "``. The result is independent of input ordering and
    idempotent under re-application.

    Args:
        raw_ingredient_text: Active ingredient text as returned by a registry.

    Returns:
        The canonical key, or an empty string for empty input.
    """
    if not raw_ingredient_text:
        return ""
    seen: set[str] = set()
    components: list[str] = []
    for part in parse_ingredient_list(raw_ingredient_text):
        cleaned = clean_ingredient_token(part)
        key = cleaned.upper()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        components.append(cleaned)
    return "; ".join(sorted(components))


def split_ingredient_base(ingredient_base: str) -> list[str]:
    """Return the components of a canonical key in their stored order."""
    return [part.strip() for part in (ingredient_base or "").split(";") if part.strip()]
