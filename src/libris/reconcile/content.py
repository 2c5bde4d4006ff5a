# ABOUTME: ContentReconciler merges descriptions, contents, reviews, ratings, covers, excerpts.
# ABOUTME: Each content type picks or combines source values by quality heuristics and reliability.

import html
import math
import re
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from libris.reconcile.confidence import clamp, consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.types import (
    CoverImage,
    Description,
    MetadataSource,
    Rating,
    ReconciledField,
    ReconciliationInputError,
    Review,
    SourcedValue,
    TableOfContents,
    TocFormat,
)

MIN_DESCRIPTION_LENGTH = 10
MAX_REVIEWS = 10
IDEAL_EXCERPT_LENGTH = 500

_MIN_COVER_WIDTH = 200
_MIN_COVER_HEIGHT = 300
_PREFERRED_COVER_WIDTH = 400
_PREFERRED_COVER_HEIGHT = 600
_COVER_ASPECT_RATIO = 1.5
_ASPECT_TOLERANCE = 0.3

_DESCRIPTION_PREFIXES = re.compile(
    r"^(book description|product description|editorial review|from the publisher|"
    r"from the back cover|book summary|description|summary|synopsis|about|overview)\s*:\s*",
    re.IGNORECASE,
)
_HTML_TAG = re.compile(r"<[^>]*>")
_SPACES = re.compile(r"[ \t]+")
_BLANK_LINES = re.compile(r"\n{3,}")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_PROMOTIONAL = ("amazing", "incredible", "must-read", "bestseller", "award-winning")

_TOC_DOTTED = re.compile(r"^(.+?)\s*\.{2,}\s*(\d+)$")
_TOC_TRAILING_PAGE = re.compile(r"^(.+?)\s+(\d+)$")
_TOC_NUMBER_PREFIX = re.compile(r"^(chapter\s*\d+\s*[:.]\s*|ch\s*\d+\s*:\s*|\d+\.\s*)", re.I)
_TOC_FORMAT_RANK = {TocFormat.DETAILED: 3, TocFormat.HIERARCHICAL: 2, TocFormat.SIMPLE: 1}

_IMAGE_FORMATS = {"jpg": "jpeg", "jpeg": "jpeg", "png": "png", "webp": "webp", "gif": "gif"}
_FORMAT_SCORES = {"jpeg": 0.1, "png": 0.1, "webp": 0.05, "gif": -0.05}


def clean_description(text: str) -> str:
    """Strip HTML, decode entities, drop boilerplate prefixes, and tidy whitespace."""
    cleaned = html.unescape(_HTML_TAG.sub("", text or ""))
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n").strip()
    cleaned = _DESCRIPTION_PREFIXES.sub("", cleaned)
    cleaned = _SPACES.sub(" ", cleaned)
    return _BLANK_LINES.sub("\n\n", cleaned).strip()


def description_quality(text: str) -> float:
    """Heuristic quality in [0.1, 1.0] from length, sentence structure, and tone."""
    if len(text) < MIN_DESCRIPTION_LENGTH:
        return 0.1
    quality = 0.5
    length = len(text)
    if 100 <= length <= 1000:
        quality += 0.2
    elif 50 <= length <= 1500:
        quality += 0.1
    elif length < 50 or length > 2000:
        quality -= 0.1
    sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    if 2 <= len(sentences) <= 10:
        quality += 0.1
    if text.rstrip()[-1:] in (".", "!", "?"):
        quality += 0.05
    lowered = text.lower()
    if sum(1 for word in _PROMOTIONAL if word in lowered) > 2:
        quality -= 0.1
    return clamp(quality, 0.1, 1.0)


def make_description(value: Any) -> Description:
    if isinstance(value, Description):
        text = clean_description(value.text)
        quality = value.quality if value.quality is not None else description_quality(text)
        return Description(text=text, quality=quality, language=value.language)
    if isinstance(value, str):
        text = clean_description(value)
        return Description(text=text, quality=description_quality(text))
    raise ReconciliationInputError(f"unsupported description value: {value!r}")


def parse_table_of_contents(text: str) -> TableOfContents:
    """Parse a newline-separated table of contents.

    Trailing page numbers ("Title ..... 12" or "Title 12") make the result
    detailed; indented lines make it hierarchical.
    """
    entries: list[str] = []
    pages = False
    indented = False
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if line[: len(line) - len(line.lstrip())]:
            indented = True
        match = _TOC_DOTTED.match(stripped) or _TOC_TRAILING_PAGE.match(stripped)
        if match:
            stripped = match.group(1).strip()
            pages = True
        title = _TOC_NUMBER_PREFIX.sub("", stripped).strip()
        if title:
            entries.append(title)
    if pages:
        toc_format = TocFormat.DETAILED
    elif indented:
        toc_format = TocFormat.HIERARCHICAL
    else:
        toc_format = TocFormat.SIMPLE
    return TableOfContents(entries=tuple(entries), format=toc_format, page_numbers=pages)


def make_table_of_contents(value: Any) -> TableOfContents:
    if isinstance(value, TableOfContents):
        return value
    if isinstance(value, str):
        return parse_table_of_contents(value)
    if isinstance(value, list | tuple):
        entries = tuple(str(entry).strip() for entry in value if str(entry).strip())
        return TableOfContents(entries=entries)
    raise ReconciliationInputError(f"unsupported table of contents value: {value!r}")


def make_rating(value: Any) -> Rating:
    if isinstance(value, Rating):
        return value
    if isinstance(value, Mapping):
        return Rating(
            value=float(value["value"]),
            scale=float(value.get("scale", 5.0)),
            count=value.get("count"),
        )
    if isinstance(value, int | float):
        return Rating(value=float(value))
    raise ReconciliationInputError(f"unsupported rating value: {value!r}")


def make_cover_image(value: Any) -> CoverImage:
    if isinstance(value, CoverImage):
        image = value
    elif isinstance(value, str):
        image = CoverImage(url=value.strip())
    elif isinstance(value, Mapping):
        image = CoverImage(
            url=str(value["url"]).strip(),
            width=value.get("width"),
            height=value.get("height"),
            format=value.get("format"),
            verified=bool(value.get("verified", False)),
        )
    else:
        raise ReconciliationInputError(f"unsupported cover image value: {value!r}")
    if image.format is None:
        extension = image.url.lower().rsplit(".", 1)[-1].split("?", 1)[0]
        image = CoverImage(
            url=image.url,
            width=image.width,
            height=image.height,
            format=_IMAGE_FORMATS.get(extension),
            verified=image.verified,
        )
    return image


def cover_quality(image: CoverImage) -> float:
    """Score in [0.1, 1.0] from resolution, aspect ratio, format, and verification."""
    score = 0.5
    if image.width and image.height:
        if image.width >= _PREFERRED_COVER_WIDTH:
            score += 0.2
        elif image.width >= _MIN_COVER_WIDTH:
            score += 0.1
        else:
            score -= 0.2
        if image.height >= _PREFERRED_COVER_HEIGHT:
            score += 0.2
        elif image.height >= _MIN_COVER_HEIGHT:
            score += 0.1
        else:
            score -= 0.2
        aspect_gap = abs(image.height / image.width - _COVER_ASPECT_RATIO)
        if aspect_gap <= _ASPECT_TOLERANCE:
            score += 0.1
        elif aspect_gap > 2 * _ASPECT_TOLERANCE:
            score -= 0.1
    score += _FORMAT_SCORES.get(image.format or "", 0.0)
    if image.verified:
        score += 0.1
    return clamp(score, 0.1, 1.0)


def _flatten(inputs: Sequence[SourcedValue[Any]]) -> list[SourcedValue[Any]]:
    """One SourcedValue per item, expanding list-valued inputs and dropping empties."""
    flat: list[SourcedValue[Any]] = []
    for item in inputs:
        if item.value is None:
            continue
        values = item.value if isinstance(item.value, list) else [item.value]
        flat.extend(SourcedValue(value, item.source) for value in values if value is not None)
    return flat


def _sources(items: Sequence[SourcedValue[Any]]) -> tuple[MetadataSource, ...]:
    seen: list[MetadataSource] = []
    for item in items:
        if item.source not in seen:
            seen.append(item.source)
    return tuple(seen)


def _empty(what: str) -> ReconciledField[Any]:
    return ReconciledField(value=None, confidence=0.0, sources=(), reasoning=f"No {what} found")


def _agreement_confidence(
    agreeing: Sequence[SourcedValue[Any]],
    dissenting: Sequence[SourcedValue[Any]],
    factor: float = 1.0,
) -> float:
    """Shared consensus rule, based on the strongest source backing the chosen value.

    A source counts once; one that backs the chosen value is never also a
    dissenter, even if it reported other values too.
    """
    backers = _sources(agreeing)
    base = max(source.reliability for source in backers) * factor
    dissenters = [source for source in _sources(dissenting) if source not in backers]
    return consensus_confidence(base, len(backers), [s.reliability for s in dissenters])


@dataclass(frozen=True)
class ContentInfo:
    description: ReconciledField[Description | None]
    table_of_contents: ReconciledField[TableOfContents | None]
    reviews: ReconciledField[tuple[Review, ...] | None]
    rating: ReconciledField[Rating | None]
    cover_image: ReconciledField[CoverImage | None]
    excerpt: ReconciledField[str | None]

    def fields(self) -> dict[str, ReconciledField[Any]]:
        return {
            "description": self.description,
            "table_of_contents": self.table_of_contents,
            "reviews": self.reviews,
            "rating": self.rating,
            "cover_image": self.cover_image,
            "excerpt": self.excerpt,
        }


class ContentReconciler:
    """Reconciles descriptive content fields reported by several sources."""

    def __init__(self, detector: ConflictDetector | None = None) -> None:
        self._detector = detector or ConflictDetector()

    def reconcile_description(
        self, inputs: Sequence[SourcedValue[Any]]
    ) -> ReconciledField[Description | None]:
        candidates = [
            SourcedValue(description, item.source)
            for item in _flatten(inputs)
            if len((description := make_description(item.value)).text) > MIN_DESCRIPTION_LENGTH
        ]
        if not candidates:
            return _empty("valid descriptions")

        best = max(
            candidates,
            key=lambda c: (c.value.quality, c.source.reliability, len(c.value.text)),
        )
        quality = best.value.quality or 0.0
        agreeing, dissenting = self._detector.split_agreement(best.value, candidates)
        confidence = _agreement_confidence(agreeing, dissenting, 0.8 + 0.2 * quality)
        conflicts = self._detector.detect_field_conflicts("description", candidates, best.value)
        return ReconciledField(
            value=best.value,
            confidence=confidence,
            sources=_sources(candidates),
            reasoning=(
                f"Selected the highest quality description ({quality:.2f}) "
                f"from {best.source.name} among {len(candidates)} candidate(s)"
            ),
            conflicts=tuple(conflicts),
        )

    def reconcile_table_of_contents(
        self, inputs: Sequence[SourcedValue[Any]]
    ) -> ReconciledField[TableOfContents | None]:
        candidates = [
            SourcedValue(toc, item.source)
            for item in inputs
            if item.value is not None and (toc := make_table_of_contents(item.value)).entries
        ]
        if not candidates:
            return _empty("table of contents")

        best = max(
            candidates,
            key=lambda c: (
                len(c.value.entries),
                _TOC_FORMAT_RANK[c.value.format],
                c.source.reliability,
            ),
        )
        agreeing, dissenting = self._detector.split_agreement(best.value, candidates)
        conflicts = self._detector.detect_field_conflicts(
            "table_of_contents", candidates, best.value
        )
        return ReconciledField(
            value=best.value,
            confidence=_agreement_confidence(agreeing, dissenting, 0.9),
            sources=_sources(candidates),
            reasoning=(
                f"Selected the most complete table of contents ({len(best.value.entries)} "
                f"entries, {best.value.format.value}) from {best.source.name}"
            ),
            conflicts=tuple(conflicts),
        )

    def reconcile_reviews(
        self, inputs: Sequence[SourcedValue[Any]]
    ) -> ReconciledField[tuple[Review, ...] | None]:
        items = _flatten(inputs)
        for item in items:
            if not isinstance(item.value, Review):
                raise ReconciliationInputError(f"unsupported review value: {item.value!r}")
        if not items:
            return _empty("reviews")

        ordered = sorted(
            items,
            key=lambda r: (r.value.verified, r.value.helpful_ratio, len(r.value.text)),
            reverse=True,
        )
        selected = tuple(item.value for item in ordered[:MAX_REVIEWS])
        sources = _sources(items)
        # Reviews are pooled, so every contributing source backs the selection.
        return ReconciledField(
            value=selected,
            confidence=_agreement_confidence(items, (), 0.8),
            sources=sources,
            reasoning=(
                f"Selected top {len(selected)} of {len(items)} review(s) "
                "by verification, helpfulness, and length"
            ),
        )

    def reconcile_rating(
        self, inputs: Sequence[SourcedValue[Any]]
    ) -> ReconciledField[Rating | None]:
        ratings = [SourcedValue(make_rating(item.value), item.source) for item in _flatten(inputs)]
        if not ratings:
            return _empty("ratings")

        weighted = 0.0
        total_weight = 0.0
        for item in ratings:
            count_weight = math.log10(item.value.count + 1) if item.value.count else 1.0
            weight = item.source.reliability * count_weight
            weighted += item.value.normalized * weight
            total_weight += weight
        average = weighted / total_weight if total_weight else 0.0

        scale = Counter(item.value.scale for item in ratings).most_common(1)[0][0]
        count = sum(item.value.count or 0 for item in ratings)
        value = Rating(value=round(average * scale, 1), scale=scale, count=count or None)
        # Confidence follows the best-supported group of similar ratings.
        groups = self._detector.group_values(ratings)
        agreeing = max(groups, key=lambda g: sum(item.source.reliability for item in g))
        dissenting = [item for group in groups if group is not agreeing for item in group]
        conflicts = self._detector.detect_field_conflicts("rating", ratings, value)
        return ReconciledField(
            value=value,
            confidence=_agreement_confidence(agreeing, dissenting, 0.9),
            sources=_sources(ratings),
            reasoning=(
                f"Weighted average of {len(ratings)} rating(s) by source reliability "
                f"and rating count, on a {scale:g}-point scale"
            ),
            conflicts=tuple(conflicts),
        )

    def reconcile_cover_image(
        self, inputs: Sequence[SourcedValue[Any]]
    ) -> ReconciledField[CoverImage | None]:
        images = [
            SourcedValue(make_cover_image(item.value), item.source) for item in _flatten(inputs)
        ]
        images = [image for image in images if image.value.url]
        if not images:
            return _empty("cover images")

        best = max(
            images,
            key=lambda i: (
                i.value.verified,
                i.value.pixels,
                cover_quality(i.value),
                i.source.reliability,
            ),
        )
        agreeing, dissenting = self._detector.split_agreement(
            best.value, images, key=lambda image: image.url
        )
        conflicts = self._detector.detect_field_conflicts("cover_image", images, best.value)
        return ReconciledField(
            value=best.value,
            confidence=_agreement_confidence(agreeing, dissenting, cover_quality(best.value)),
            sources=_sources(images),
            reasoning=f"Selected cover from {best.source.name} out of {len(images)} candidate(s)",
            conflicts=tuple(conflicts),
        )

    def reconcile_excerpt(self, inputs: Sequence[SourcedValue[Any]]) -> ReconciledField[str | None]:
        excerpts = [
            SourcedValue(item.value.strip(), item.source)
            for item in inputs
            if isinstance(item.value, str) and item.value.strip()
        ]
        if not excerpts:
            return _empty("excerpts")

        best = min(
            excerpts,
            key=lambda e: (abs(len(e.value) - IDEAL_EXCERPT_LENGTH), -e.source.reliability),
        )
        agreeing, dissenting = self._detector.split_agreement(best.value, excerpts)
        return ReconciledField(
            value=best.value,
            confidence=_agreement_confidence(agreeing, dissenting, 0.8),
            sources=_sources(excerpts),
            reasoning=(
                f"Selected the excerpt closest to {IDEAL_EXCERPT_LENGTH} chars "
                f"({len(best.value)}) from {best.source.name}"
            ),
        )

    def reconcile(self, inputs: Mapping[str, Sequence[SourcedValue[Any]]]) -> ContentInfo:
        """Reconcile every content field present in inputs; missing fields come back empty."""
        return ContentInfo(
            description=self.reconcile_description(inputs.get("description", ())),
            table_of_contents=self.reconcile_table_of_contents(
                inputs.get("table_of_contents", ())
            ),
            reviews=self.reconcile_reviews(inputs.get("reviews", ())),
            rating=self.reconcile_rating(inputs.get("rating", ())),
            cover_image=self.reconcile_cover_image(inputs.get("cover_image", ())),
            excerpt=self.reconcile_excerpt(inputs.get("excerpt", ())),
        )

