"""
Annotation Extractor
====================
Recovers reviewer annotations (comments, highlights, stamps, ...) from PDFs
authored by third-party tools, without a structural PDF parser.

Pipeline per document:
    raw bytes → printable stream → /Type/Annot candidates →
    bounded dictionary → subtype / contents / author / rect → RawAnnotation

Every candidate is handled on its own: a candidate that cannot be read is
dropped and the scan moves on. Nothing here raises for malformed input.
"""

from __future__ import annotations

import logging
import math
import re
from types import MappingProxyType
from typing import Optional

from .errors import ExtractionError
from .models import AnnotationKind, RawAnnotation, Rect
from .scanner import (
    find_dict_end,
    find_dict_start,
    printable_stream,
    read_literal_string,
)

logger = logging.getLogger(__name__)

# ─── Patterns ─────────────────────────────────────────────────────────────────

# Marker preceding (or opening) every annotation object dictionary
ANNOT_MARKER_PATTERN = re.compile(r"/Type\s*/Annot(?![A-Za-z0-9])")

SUBTYPE_PATTERN = re.compile(r"/Subtype\s*/(\w+)")
CONTENTS_PATTERN = re.compile(r"/Contents\s*\(")
AUTHOR_PATTERN = re.compile(r"/T\s*\(([^)]+)\)")
RECT_PATTERN = re.compile(r"/Rect\s*\[([^\]]+)\]")

# Where annotation metadata starts inside a badly bounded /Contents value.
# Evaluated in order; each match cuts the text further. Content that itself
# contains one of these substrings gets truncated too.
METADATA_START_PATTERNS = (
    re.compile(r"\)/[A-Z]"),
    re.compile(r"/CreationDate"),
    re.compile(r"/M\(D:"),
    re.compile(r"/NM\("),
    re.compile(r"/P \d"),
    re.compile(r"/Popup"),
    re.compile(r"/QuadPoints"),
    re.compile(r"/RC\("),
    re.compile(r"/Rect\["),
    re.compile(r"/Subj\("),
)

HTML_TAG_PATTERN = re.compile(r"<[^>]*>")
CHAR_REF_PATTERN = re.compile(r"&#(\d+);")
CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x1f\x7f]")
WHITESPACE_PATTERN = re.compile(r"\s+")

# ─── Lookup Tables ────────────────────────────────────────────────────────────

SUBTYPE_KINDS = MappingProxyType({
    "Text": AnnotationKind.COMMENT,
    "FreeText": AnnotationKind.COMMENT,
    "Highlight": AnnotationKind.HIGHLIGHT,
    "Underline": AnnotationKind.HIGHLIGHT,
    "StrikeOut": AnnotationKind.CORRECTION,
    "Stamp": AnnotationKind.VALIDATION,
    "Ink": AnnotationKind.COMMENT,
    "Square": AnnotationKind.COMMENT,
    "Circle": AnnotationKind.COMMENT,
    "Caret": AnnotationKind.CORRECTION,
})

SUBTYPE_COLORS = MappingProxyType({
    "Text": "#FFFF00",
    "FreeText": "#FFFF00",
    "Highlight": "#FFFF00",
    "Underline": "#00FF00",
    "StrikeOut": "#FF0000",
    "Stamp": "#00FF00",
    "Ink": "#0000FF",
    "Square": "#FF0000",
    "Circle": "#FF0000",
    "Caret": "#FF0000",
})

DEFAULT_AUTHOR = "Acrobat"
PLACEHOLDER_RECT = Rect(x=100, y=100, width=50, height=50)


class AnnotationExtractor:
    """
    Scans raw PDF bytes for annotation objects and normalizes them.

    Output order is scan order. The extractor holds no per-document state,
    so one instance can serve any number of documents.
    """

    def __init__(self, fallback_author: str = DEFAULT_AUTHOR):
        self.fallback_author = fallback_author

    def extract(self, pdf_bytes: bytes) -> list[RawAnnotation]:
        """
        Extract every readable annotation from a PDF.

        Args:
            pdf_bytes: Raw content of the PDF file.

        Returns:
            RawAnnotation records in scan order; empty when nothing is
            extractable.
        """
        annotations: list[RawAnnotation] = []

        try:
            stream = printable_stream(pdf_bytes or b"")
            if not stream:
                logger.info("No printable data in PDF, nothing to extract")
                return annotations

            logger.debug(f"Annotation scan over {len(stream)} characters")

            for index, candidate in enumerate(self._iter_candidates(stream)):
                try:
                    annotations.append(self._parse_candidate(candidate))
                except ExtractionError as e:
                    logger.debug(f"Skipping annotation candidate {index}: {e}")

        except Exception as e:
            logger.error(f"Annotation extraction aborted: {e}")

        if annotations:
            logger.info(f"Extracted {len(annotations)} annotations")
        else:
            logger.info("No annotations extracted from PDF")
        return annotations

    # ─── Candidate Bounding ──────────────────────────────────────────────────

    def _iter_candidates(self, stream: str):
        """
        Yield the dictionary text of each annotation candidate.

        A candidate spans from the "<<" enclosing its marker to the ">>"
        closing it, and never crosses into a neighbouring marker's segment.
        """
        markers = list(ANNOT_MARKER_PATTERN.finditer(stream))
        for i, marker in enumerate(markers):
            segment_start = markers[i - 1].end() if i > 0 else 0
            segment_end = (
                markers[i + 1].start() if i + 1 < len(markers) else len(stream)
            )

            start = find_dict_start(stream, marker.start(), segment_start)
            if start == -1:
                logger.debug(f"No dictionary opener before marker at {marker.start()}")
                continue

            end = find_dict_end(stream, marker.end(), segment_end)
            if end == -1:
                end = segment_end

            yield stream[start:end]

    # ─── Field Extraction ────────────────────────────────────────────────────

    def _parse_candidate(self, candidate: str) -> RawAnnotation:
        subtype = self._extract_subtype(candidate)
        content = clean_content(self._extract_contents(candidate))
        if not content:
            raise ExtractionError("empty contents after cleaning")

        author = self._extract_author(candidate)
        rect = self._extract_rect(candidate)

        logger.debug(
            f"Annotation: subtype={subtype}, author={author}, "
            f"content=\"{content[:50]}\""
        )

        return RawAnnotation(
            kind=SUBTYPE_KINDS[subtype],
            content=content,
            author=author,
            rect=rect,
            color=SUBTYPE_COLORS[subtype],
            subtype=subtype,
        )

    def _extract_subtype(self, candidate: str) -> str:
        match = SUBTYPE_PATTERN.search(candidate)
        if not match:
            raise ExtractionError("no /Subtype")
        subtype = match.group(1)
        if subtype not in SUBTYPE_KINDS:
            raise ExtractionError(f"unsupported subtype {subtype}")
        return subtype

    def _extract_contents(self, candidate: str) -> str:
        match = CONTENTS_PATTERN.search(candidate)
        if not match:
            raise ExtractionError("no /Contents")
        read = read_literal_string(candidate, match.end())
        if read is None:
            raise ExtractionError("unbalanced /Contents string")
        return read[0]

    def _extract_author(self, candidate: str) -> str:
        match = AUTHOR_PATTERN.search(candidate)
        if not match:
            return self.fallback_author
        return match.group(1)

    def _extract_rect(self, candidate: str) -> Rect:
        match = RECT_PATTERN.search(candidate)
        if not match:
            return PLACEHOLDER_RECT
        coords = parse_rect_values(match.group(1))
        if coords is None:
            return PLACEHOLDER_RECT
        return Rect.from_corners(*coords)


def parse_rect_values(raw: str) -> Optional[tuple[float, float, float, float]]:
    """Parse the first four numbers of a /Rect array body, or None."""
    parts = raw.split()
    if len(parts) < 4:
        return None
    try:
        a, b, c, d = (float(p) for p in parts[:4])
    except ValueError:
        return None
    if not all(math.isfinite(v) for v in (a, b, c, d)):
        return None
    return a, b, c, d


def clean_content(raw: str) -> str:
    """
    Turn a raw /Contents body into display text.

    Cuts at the first metadata-start pattern, then strips markup, decodes
    character references and escapes, drops control characters and
    collapses whitespace.
    """
    if not raw:
        return ""

    cleaned = raw
    for pattern in METADATA_START_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            cleaned = cleaned[:match.start()]

    cleaned = HTML_TAG_PATTERN.sub("", cleaned)
    cleaned = CHAR_REF_PATTERN.sub(_char_ref, cleaned)
    cleaned = (
        cleaned.replace("&amp;", "&")
        .replace("&lt;", "<")
        .replace("&gt;", ">")
        .replace("&quot;", '"')
        .replace("\\'", "'")
        .replace("\\(", "(")
        .replace("\\)", ")")
    )
    cleaned = CONTROL_CHAR_PATTERN.sub("", cleaned)
    cleaned = WHITESPACE_PATTERN.sub(" ", cleaned)
    return cleaned.strip()


def _char_ref(match: re.Match) -> str:
    code = int(match.group(1))
    try:
        return chr(code)
    except (ValueError, OverflowError):
        return ""
