# ABOUTME: Subject and genre normalization, classification-code mapping, and reconciliation.
# ABOUTME: Maps Dewey and LCC codes and genre synonyms onto canonical terms before deduplication.

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from libris.reconcile.confidence import clamp, consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.similarity import string_similarity
from libris.reconcile.types import (
    MetadataSource,
    ReconciledField,
    ReconciliationInputError,
    SourcedValue,
    Subject,
    SubjectScheme,
    SubjectType,
)

DEDUP_SIMILARITY = 0.9

_BISAC_RE = re.compile(r"^[A-Z]{3}\d{6}$")
_DEWEY_RE = re.compile(r"^\d{3}(\.\d+)?$")
_LCC_RE = re.compile(r"^([A-Z]{1,3})\s?\d+")
_LCSH_SEPARATOR = " -- "
_PUNCTUATION_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"\s+")

_CODE_SCHEMES = frozenset({SubjectScheme.DEWEY, SubjectScheme.LCC, SubjectScheme.BISAC})

_TYPE_ORDER = {
    SubjectType.SUBJECT: 0,
    SubjectType.GENRE: 1,
    SubjectType.KEYWORD: 2,
    SubjectType.TAG: 3,
}

DEWEY_CLASSES: Mapping[int, str] = {
    0: "computer science and information",
    10: "bibliographies",
    20: "library and information sciences",
    30: "encyclopedias",
    70: "journalism and publishing",
    100: "philosophy",
    130: "parapsychology and occultism",
    150: "psychology",
    170: "ethics",
    200: "religion",
    220: "bible",
    230: "christianity",
    290: "other religions",
    300: "social sciences",
    320: "political science",
    330: "economics",
    340: "law",
    360: "social problems and services",
    370: "education",
    390: "customs and folklore",
    400: "language",
    420: "english language",
    500: "science",
    510: "mathematics",
    520: "astronomy",
    530: "physics",
    540: "chemistry",
    550: "earth sciences",
    570: "biology",
    590: "zoology",
    600: "technology",
    610: "medicine and health",
    620: "engineering",
    630: "agriculture",
    640: "home and family management",
    650: "management and business",
    690: "building and construction",
    700: "arts",
    720: "architecture",
    740: "drawing and decorative arts",
    750: "painting",
    770: "photography",
    780: "music",
    790: "sports and recreation",
    800: "literature",
    810: "american literature",
    820: "english literature",
    830: "german literature",
    840: "french literature",
    850: "italian literature",
    860: "spanish literature",
    880: "classical literature",
    900: "history",
    910: "geography and travel",
    920: "biography",
    930: "ancient history",
    940: "european history",
    970: "north american history",
}

LCC_CLASSES: Mapping[str, str] = {
    "A": "general works",
    "B": "philosophy and religion",
    "BF": "psychology",
    "BL": "religion",
    "C": "history auxiliary sciences",
    "D": "world history",
    "E": "american history",
    "F": "american history",
    "G": "geography and anthropology",
    "GV": "sports and recreation",
    "H": "social sciences",
    "HB": "economics",
    "HF": "commerce",
    "J": "political science",
    "K": "law",
    "L": "education",
    "M": "music",
    "N": "fine arts",
    "P": "language and literature",
    "PN": "literature",
    "PR": "english literature",
    "PS": "american literature",
    "PZ": "fiction and juvenile belles lettres",
    "Q": "science",
    "QA": "mathematics",
    "QB": "astronomy",
    "QC": "physics",
    "QD": "chemistry",
    "QH": "biology",
    "R": "medicine",
    "S": "agriculture",
    "T": "technology",
    "U": "military science",
    "V": "naval science",
    "Z": "bibliography and library science",
}

# Canonical genre -> variants. Variants and canonical names are matched after cleaning.
GENRE_VARIANTS: Mapping[str, tuple[str, ...]] = {
    "fiction": ("fiction", "novel", "novels", "literary fiction", "general fiction"),
    "mystery": ("mystery", "mysteries", "detective", "detective fiction", "crime fiction",
                "whodunit"),
    "thriller": ("thriller", "thrillers", "suspense"),
    "romance": ("romance", "romantic fiction", "love stories"),
    "science fiction": ("science fiction", "sci-fi", "scifi", "sf", "speculative fiction"),
    "fantasy": ("fantasy", "fantasy fiction", "epic fantasy", "high fantasy"),
    "horror": ("horror", "horror fiction", "horror tales"),
    "historical fiction": ("historical fiction", "historical novel", "historical novels"),
    "young adult": ("young adult", "ya", "young adult fiction", "teen"),
    "children": ("children", "childrens", "children s books", "juvenile", "juvenile fiction"),
    "biography": ("biography", "biographies", "memoir", "memoirs", "autobiography"),
    "history": ("history", "historical"),
    "science": ("science", "popular science"),
    "self-help": ("self-help", "self help", "personal development"),
    "business": ("business", "business and economics", "management"),
    "health": ("health", "health and fitness", "wellness"),
    "cooking": ("cooking", "cookery", "cookbooks", "recipes"),
    "travel": ("travel", "travel writing", "guidebooks"),
    "adventure": ("adventure", "adventure stories", "action and adventure"),
    "art": ("art", "arts", "fine arts"),
    "music": ("music",),
    "sports": ("sports", "sport", "sports and recreation"),
    "religion": ("religion", "spirituality"),
    "philosophy": ("philosophy",),
    "poetry": ("poetry", "poems", "verse"),
    "drama": ("drama", "plays", "theatre", "theater"),
    "essays": ("essays", "essay"),
    "nonfiction": ("nonfiction", "non-fiction", "non fiction"),
    "reference": ("reference", "reference works"),
    "textbook": ("textbook", "textbooks"),
}

_SYNONYMS: Mapping[str, str] = {
    "wwii": "world war ii",
    "ww2": "world war ii",
    "world war 2": "world war ii",
    "world war two": "world war ii",
    "wwi": "world war i",
    "ww1": "world war i",
    "world war 1": "world war i",
    "world war one": "world war i",
    "usa": "united states",
    "u s": "united states",
    "ai": "artificial intelligence",
}

_TAG_MAX_LENGTH = 15
_KEYWORD_MAX_WORDS = 3
_KEYWORD_MAX_LENGTH = 30


def _clean(text: str) -> str:
    text = text.lower().replace("&", " and ").replace("'", " ")
    text = _PUNCTUATION_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip(" -")


def _build_genre_table() -> dict[str, str]:
    table: dict[str, str] = {}
    for canonical, variants in GENRE_VARIANTS.items():
        table[_clean(canonical)] = canonical
        for variant in variants:
            table.setdefault(_clean(variant), canonical)
    return table


_GENRES = _build_genre_table()


def normalize_subject(text: str) -> str:
    """Canonical comparison form of a subject heading.

    Lowercases, drops punctuation, collapses whitespace, and maps genre and
    topic synonyms onto one term. LCSH subdivisions are kept, joined by
    " -- ". Idempotent.
    """
    parts = [part for part in (_clean(p) for p in text.split("--")) if part]
    normalized = [_GENRES.get(part, _SYNONYMS.get(part, part)) for part in parts]
    return " -- ".join(normalized)


def detect_scheme(code: str) -> SubjectScheme:
    """Guess the classification scheme a code or heading belongs to."""
    value = code.strip()
    if _BISAC_RE.match(value):
        return SubjectScheme.BISAC
    if _DEWEY_RE.match(value):
        return SubjectScheme.DEWEY
    if _LCC_RE.match(value):
        return SubjectScheme.LCC
    if _LCSH_SEPARATOR in value or "--" in value:
        return SubjectScheme.LCSH
    return SubjectScheme.UNKNOWN


def classify_code(code: str, scheme: SubjectScheme | None = None) -> str | None:
    """Map a Dewey or LCC code onto its canonical class name."""
    value = code.strip().upper()
    scheme = scheme or detect_scheme(value)
    if scheme is SubjectScheme.DEWEY:
        number = int(value[:3])
        tens = number // 10 * 10
        hundreds = number // 100 * 100
        return DEWEY_CLASSES.get(tens) or DEWEY_CLASSES.get(hundreds)
    if scheme is SubjectScheme.LCC:
        match = _LCC_RE.match(value)
        if match is None:
            return None
        letters = match.group(1)
        return LCC_CLASSES.get(letters[:2]) or LCC_CLASSES.get(letters[:1])
    return None


def detect_subject_type(normalized: str) -> SubjectType:
    if normalized in GENRE_VARIANTS:
        return SubjectType.GENRE
    words = normalized.split()
    if len(words) == 1 and len(normalized) < _TAG_MAX_LENGTH:
        return SubjectType.TAG
    if len(words) <= _KEYWORD_MAX_WORDS and len(normalized) < _KEYWORD_MAX_LENGTH:
        return SubjectType.KEYWORD
    return SubjectType.SUBJECT


def make_subject(value: Any) -> Subject:
    """Build a Subject from free text, a {name, code, scheme} mapping, or a Subject."""
    if isinstance(value, Subject):
        return value
    if isinstance(value, str):
        name, code, scheme = value.strip(), None, None
    elif isinstance(value, Mapping):
        name = (value.get("name") or "").strip()
        code = value.get("code")
        scheme = SubjectScheme(value["scheme"]) if value.get("scheme") else None
    else:
        raise ReconciliationInputError(f"unsupported subject value: {value!r}")

    if code is None and name and detect_scheme(name) in _CODE_SCHEMES:
        code, name = name, ""
    if code is not None:
        scheme = scheme or detect_scheme(code)
        name = name or classify_code(code, scheme) or code
    elif scheme is None:
        scheme = detect_scheme(name)
    if not name:
        raise ReconciliationInputError(f"subject has neither name nor code: {value!r}")

    normalized = normalize_subject(name)
    hierarchy = tuple(part for part in normalized.split(" -- ") if part)
    return Subject(
        name=name,
        normalized=normalized,
        scheme=scheme,
        type=detect_subject_type(normalized),
        code=code,
        hierarchy=hierarchy if len(hierarchy) > 1 else (),
    )


@dataclass
class _SubjectEntry:
    subject: Subject
    source: MetadataSource
    supporters: list[MetadataSource] = field(default_factory=list)


def reconcile_subjects(
    inputs: Sequence[SourcedValue[Any]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "subjects",
) -> ReconciledField[tuple[Subject, ...]]:
    """Merge subject lists from several sources.

    Each input value may be one subject or a list of them. Near-duplicates
    (similarity >= 0.9 after normalization) collapse into one entry that
    keeps the subject reported by the more reliable source.
    """
    detector = detector or ConflictDetector()
    per_source: list[SourcedValue[tuple[Subject, ...]]] = []
    for item in inputs:
        raw = item.value
        if raw is None:
            continue
        values = raw if isinstance(raw, list | tuple) else [raw]
        subjects = tuple(make_subject(v) for v in values if v)
        if subjects:
            per_source.append(SourcedValue(subjects, item.source))

    if not per_source:
        return ReconciledField(
            value=(), confidence=0.0, sources=(), reasoning="No subject information available"
        )

    entries: list[_SubjectEntry] = []
    for item in per_source:
        for subject in item.value:
            match = next(
                (
                    e
                    for e in entries
                    if string_similarity(e.subject.normalized, subject.normalized)
                    >= DEDUP_SIMILARITY
                ),
                None,
            )
            if match is None:
                entries.append(_SubjectEntry(subject, item.source, [item.source]))
                continue
            if item.source not in match.supporters:
                match.supporters.append(item.source)
            if item.source.reliability > match.source.reliability:
                match.subject = _merge_codes(subject, match.subject)
                match.source = item.source
            else:
                match.subject = _merge_codes(match.subject, subject)

    entries.sort(
        key=lambda e: (_TYPE_ORDER[e.subject.type], -len(e.supporters), e.subject.normalized)
    )
    subjects = tuple(e.subject for e in entries)

    best_reliability = max(item.source.reliability for item in per_source)
    count = len(subjects)
    if count >= 5:
        count_factor = 1.1
    elif count >= 3:
        count_factor = 1.05
    elif count == 1:
        count_factor = 0.9
    else:
        count_factor = 1.0
    classified = sum(1 for s in subjects if s.code) / count
    base = clamp(best_reliability * count_factor * (1.0 + 0.2 * classified))
    agreeing = max(len(e.supporters) for e in entries)
    confidence = consensus_confidence(base, agreeing)

    reasoning = (
        f"Merged {sum(len(i.value) for i in per_source)} subject(s) from "
        f"{len(per_source)} source(s) into {count}; "
        f"{sum(1 for s in subjects if s.code)} carry classification codes"
    )
    return ReconciledField(
        value=subjects,
        confidence=confidence,
        sources=tuple(item.source for item in per_source),
        reasoning=reasoning,
        conflicts=tuple(detector.detect_field_conflicts(field, per_source, subjects)),
    )


def _merge_codes(primary: Subject, secondary: Subject) -> Subject:
    """Keep primary, borrowing a classification code from secondary if primary has none."""
    if primary.code or not secondary.code:
        return primary
    return Subject(
        name=primary.name,
        normalized=primary.normalized,
        scheme=secondary.scheme,
        type=primary.type,
        code=secondary.code,
        hierarchy=primary.hierarchy,
    )
