# ABOUTME: Publisher name normalization and reconciliation across sources.
# ABOUTME: Strips legal suffixes, leading "The", regional qualifiers, and unifies "&"/"and".

import re
from collections.abc import Mapping, Sequence

from libris.reconcile.confidence import clamp, consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.types import (
    Publisher,
    ReconciledField,
    ReconciliationInputError,
    SourcedValue,
)

_PARENTHETICAL_RE = re.compile(r"\([^)]*\)")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

_LEADING_TOKENS = frozenset({"the"})
_TRAILING_TOKENS = frozenset(
    {
        "inc", "incorporated", "corp", "corporation", "co", "company", "ltd", "limited",
        "llc", "plc", "gmbh", "ag", "sa", "publishers", "publisher", "publishing",
        "publications", "press", "books", "group", "uk", "usa", "us", "america",
        "international", "intl",
    }
)

# Canonical display name -> known variants. Matching is exact on the stripped form.
_PUBLISHER_VARIANTS: Mapping[str, tuple[str, ...]] = {
    "Penguin Random House": (
        "Penguin", "Penguin Books", "Random House", "Penguin Group", "Vintage",
        "Vintage Books", "Knopf", "Alfred A. Knopf", "Doubleday", "Bantam",
        "Bantam Books", "Ballantine", "Ballantine Books", "Viking", "Crown",
    ),
    "HarperCollins": (
        "Harper Collins", "Harper", "Harper & Row", "HarperCollins Publishers",
        "William Morrow", "Avon",
    ),
    "Simon & Schuster": ("Simon and Schuster", "S&S", "Scribner", "Pocket Books", "Atria"),
    "Macmillan": (
        "Macmillan Publishers", "St. Martin's Press", "Farrar, Straus and Giroux",
        "Henry Holt", "Tor Books", "Tor",
    ),
    "Hachette": (
        "Hachette Book Group", "Little, Brown", "Little Brown and Company",
        "Grand Central Publishing", "Orbit",
    ),
    "Oxford University Press": ("OUP", "Oxford Univ. Press", "Oxford Univ Press"),
    "Cambridge University Press": ("CUP", "Cambridge Univ. Press", "Cambridge Univ Press"),
    "Harvard University Press": ("Harvard Univ. Press", "Belknap Press"),
    "Yale University Press": ("Yale Univ. Press",),
    "Princeton University Press": ("Princeton Univ. Press",),
    "University of Chicago Press": ("Univ. of Chicago Press", "Chicago University Press"),
    "MIT Press": ("The MIT Press", "Massachusetts Institute of Technology Press"),
    "W. W. Norton": ("Norton", "W.W. Norton & Company", "WW Norton"),
    "Wiley": ("John Wiley & Sons", "John Wiley and Sons", "Wiley-Blackwell"),
    "Springer": ("Springer-Verlag", "Springer Nature", "Springer Science+Business Media"),
    "Elsevier": ("Elsevier Science", "Academic Press"),
    "Pearson": ("Pearson Education", "Prentice Hall", "Addison-Wesley", "Addison Wesley"),
    "McGraw-Hill": ("McGraw Hill", "McGraw-Hill Education"),
    "Cengage": ("Cengage Learning",),
    "SAGE": ("SAGE Publications", "Sage Publishing"),
    "Routledge": ("Taylor & Francis", "Taylor and Francis"),
    "Bloomsbury": ("Bloomsbury Publishing",),
    "Scholastic": ("Scholastic Inc", "Scholastic Press"),
}

_CANONICAL_BOOST = 1.1


def _strip(name: str) -> str:
    text = _PARENTHETICAL_RE.sub(" ", name.lower())
    text = text.replace("&", " and ").replace("+", " and ")
    text = _PUNCTUATION_RE.sub(" ", text)
    tokens = _WHITESPACE_RE.sub(" ", text).strip().split(" ")
    tokens = [t for t in tokens if t]
    changed = True
    while changed and tokens:
        changed = False
        if len(tokens) > 1 and tokens[0] in _LEADING_TOKENS:
            tokens = tokens[1:]
            changed = True
        if len(tokens) > 1 and tokens[-1] in _TRAILING_TOKENS:
            tokens = tokens[:-1]
            changed = True
        if len(tokens) > 1 and tokens[-1] == "and":
            tokens = tokens[:-1]
            changed = True
    return " ".join(tokens)


def _build_tables() -> tuple[dict[str, str], dict[str, str]]:
    canonical: dict[str, str] = {}
    display: dict[str, str] = {}
    for name, variants in _PUBLISHER_VARIANTS.items():
        key = _strip(name)
        display[key] = name
        canonical[key] = key
        for variant in variants:
            canonical.setdefault(_strip(variant), key)
    return canonical, display


_CANONICAL, _DISPLAY = _build_tables()


def normalize_publisher_name(name: str) -> str:
    """Canonical comparison form of a publisher name.

    Idempotent: normalize_publisher_name(normalize_publisher_name(x)) equals
    normalize_publisher_name(x).
    """
    stripped = _strip(name)
    return _CANONICAL.get(stripped, stripped)


def is_known_publisher(normalized: str) -> bool:
    return normalized in _DISPLAY


def make_publisher(value: str | Publisher, location: str | None = None) -> Publisher:
    if isinstance(value, Publisher):
        return value
    if not isinstance(value, str):
        raise ReconciliationInputError(f"unsupported publisher value: {value!r}")
    return Publisher(
        name=value.strip(), normalized=normalize_publisher_name(value), location=location
    )


def reconcile_publishers(
    inputs: Sequence[SourcedValue[str | Publisher | None]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "publisher",
) -> ReconciledField[Publisher | None]:
    """Merge per-source publisher names.

    Names are grouped by canonical form; the group with the largest total
    source reliability wins. The display name is the canonical name when the
    publisher is known, otherwise the name given by the group's most
    reliable source.
    """
    detector = detector or ConflictDetector()
    publishers = [
        SourcedValue(make_publisher(item.value), item.source)
        for item in inputs
        if item.value
    ]
    if not publishers:
        return ReconciledField(
            value=None,
            confidence=0.0,
            sources=(),
            reasoning="No publisher information available",
        )

    groups: dict[str, list[SourcedValue[Publisher]]] = {}
    for item in publishers:
        groups.setdefault(item.value.normalized, []).append(item)
    winning_key, agreeing = max(
        groups.items(),
        key=lambda kv: (
            sum(i.source.reliability for i in kv[1]),
            max(i.source.reliability for i in kv[1]),
        ),
    )
    dissenting = [item for key, group in groups.items() if key != winning_key for item in group]

    best = max(agreeing, key=lambda item: item.source.reliability)
    known = is_known_publisher(winning_key)
    location = None
    for item in sorted(agreeing, key=lambda i: i.source.reliability, reverse=True):
        if item.value.location:
            location = item.value.location
            break
    value = Publisher(
        name=_DISPLAY[winning_key] if known else best.value.name,
        normalized=winning_key,
        location=location,
    )

    base = best.source.reliability * (_CANONICAL_BOOST if known else 1.0)
    confidence = consensus_confidence(
        clamp(base), len(agreeing), (item.source.reliability for item in dissenting)
    )
    reasoning = (
        f"Selected {value.name!r} backed by {len(agreeing)} of {len(publishers)} source(s) "
        f"(best: {best.source.name}, reliability {best.source.reliability:.2f})"
    )
    if known:
        reasoning += "; matched a known publisher"

    return ReconciledField(
        value=value,
        confidence=confidence,
        sources=tuple(item.source for item in agreeing),
        reasoning=reasoning,
        conflicts=tuple(detector.detect_field_conflicts(field, publishers, value)),
    )
