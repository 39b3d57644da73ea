"""
Page-Label Extractor & Mapper
=============================
Recovers a PDF's logical page numbering (its /PageLabels) and maps physical
PDF pages onto the page numbers of a review project.

Extraction tiers:
    1. pdfinfo "Page N label: L" announcements (fast path)
    2. Object-graph walk: trailer → catalog → /PageLabels number tree →
       label dictionaries, through qpdf or PyMuPDF object dumps

Only decimal numbering is synthesized. Roman and alphabetic styles are kept
as metadata and never turned into numbers, so front-matter pages stay out
of the numeric mapping.
"""

from __future__ import annotations

import logging
import re
from bisect import bisect_right
from types import MappingProxyType
from typing import Iterable, Optional, Sequence

from .errors import PageCountUnavailable, ToolFailure
from .models import (
    NumberingStyle,
    PageAssignment,
    PageLabelMapping,
    PageLabelRange,
    ProjectPageRef,
)
from .scanner import (
    IndirectRef,
    find_array,
    find_dict_value,
    find_ref_value,
    iter_array_items,
    read_string_value,
)
from .tools import (
    DEFAULT_TIMEOUT,
    PdfInfo,
    PyMuPDFInspector,
    QpdfInspector,
    first_available,
)

logger = logging.getLogger(__name__)

# ─── Label Parsing ────────────────────────────────────────────────────────────

# Front-matter numerals; a label matching one of these maps to no number
ROMAN_NUMERALS = MappingProxyType({
    "i": 1, "ii": 2, "iii": 3, "iv": 4, "v": 5,
    "vi": 6, "vii": 7, "viii": 8, "ix": 9, "x": 10,
    "xi": 11, "xii": 12, "xiii": 13, "xiv": 14, "xv": 15,
    "xvi": 16, "xvii": 17, "xviii": 18, "xix": 19, "xx": 20,
})

# "A-12", "Ch_3", "Chapter3"
PREFIX_NUMBER_PATTERN = re.compile(r"^[A-Za-z]*[-_]?(\d+)")
ANY_NUMBER_PATTERN = re.compile(r"(\d+)")

# Trailing decimal run of an announced label; leading zeros stay in the prefix
TRAILING_NUMBER_PATTERN = re.compile(r"^(.*?)(0|[1-9]\d*)$", re.DOTALL)

STYLE_PATTERN = re.compile(r"/S\s*/(\w+)")
START_PATTERN = re.compile(r"/St\s+(\d+)")

STYLE_CODES = MappingProxyType({style.value: style for style in NumberingStyle})

# Number trees deeper than this are treated as corrupt
MAX_TREE_DEPTH = 16


def parse_page_label(label: Optional[str]) -> Optional[int]:
    """
    Extract the page number a label stands for.

    Tried in order: whole-string integer, lowercase roman numeral (returns
    None, front matter is not mapped), "prefix-number" form, first digit
    run anywhere. None when nothing matches.
    """
    if not label:
        return None

    trimmed = label.strip()

    try:
        number = int(trimmed)
    except ValueError:
        number = None
    if number is not None and number > 0:
        return number

    if trimmed.lower() in ROMAN_NUMERALS:
        return None

    match = PREFIX_NUMBER_PATTERN.match(trimmed)
    if match:
        return int(match.group(1))

    match = ANY_NUMBER_PATTERN.search(trimmed)
    if match:
        return int(match.group(1))

    return None


def label_range_from_announcement(pdf_page: int, label: str) -> PageLabelRange:
    """
    Turn a single announced label into a one-page range that synthesizes
    back to the same text.
    """
    match = TRAILING_NUMBER_PATTERN.match(label)
    if match:
        return PageLabelRange(
            pdf_page_index=pdf_page - 1,
            start_number=int(match.group(2)),
            prefix=match.group(1),
            style=NumberingStyle.DECIMAL,
        )
    return PageLabelRange(
        pdf_page_index=pdf_page - 1,
        start_number=0,
        prefix=label,
        style=NumberingStyle.NONE,
    )


# ─── Synthesis & Mapping ──────────────────────────────────────────────────────


def synthesize_labels(
    ranges: Sequence[PageLabelRange], total_pages: int
) -> list[PageLabelMapping]:
    """
    Compute the label of every physical page.

    Each page uses the last range starting at or before it. Pages before
    the first range get no mapping.
    """
    ordered = sorted(ranges, key=lambda r: r.pdf_page_index)
    starts = [r.pdf_page_index for r in ordered]
    mappings: list[PageLabelMapping] = []

    for pdf_page in range(1, total_pages + 1):
        index = pdf_page - 1
        position = bisect_right(starts, index) - 1
        if position < 0:
            continue

        entry = ordered[position]
        number = entry.start_number + (index - entry.pdf_page_index)

        if entry.style == NumberingStyle.DECIMAL:
            label = f"{entry.prefix}{number}"
            page_number: Optional[int] = number
        else:
            label = entry.prefix
            page_number = None

        mappings.append(PageLabelMapping(
            pdf_page=pdf_page,
            label=label,
            start_number=entry.start_number,
            page_number=page_number,
        ))

    return mappings


def map_pages(
    ranges: Sequence[PageLabelRange],
    total_pages: int,
    project_pages: Iterable[ProjectPageRef],
) -> list[PageAssignment]:
    """
    Match physical PDF pages to project pages by logical page number.

    Pages without a positive number, or whose number no project page
    carries, are left out; the caller treats them as unassigned.
    """
    by_number: dict[int, ProjectPageRef] = {}
    for page in project_pages:
        if page.page_number in by_number:
            logger.warning(
                f"Duplicate project page number {page.page_number}, "
                f"keeping page {by_number[page.page_number].id}"
            )
            continue
        by_number[page.page_number] = page

    assignments: list[PageAssignment] = []
    for mapping in synthesize_labels(ranges, total_pages):
        number = mapping.page_number
        if number is None:
            number = parse_page_label(mapping.label)
        if number is None or number <= 0:
            continue

        project_page = by_number.get(number)
        if project_page is None:
            continue

        assignments.append(PageAssignment(
            pdf_page=mapping.pdf_page,
            project_page_id=project_page.id,
            project_page_number=number,
            label=mapping.label,
        ))

    logger.info(
        f"Mapped {len(assignments)} of {total_pages} PDF pages "
        f"to project pages"
    )
    return assignments


# ─── Extraction ───────────────────────────────────────────────────────────────


class PageLabelExtractor:
    """
    Recovers page label ranges and page counts, degrading through
    external-tool tiers instead of failing.
    """

    def __init__(
        self,
        pdfinfo_path: str = "pdfinfo",
        qpdf_path: str = "qpdf",
        timeout: float = DEFAULT_TIMEOUT,
        use_pymupdf_fallback: bool = True,
    ):
        self.pdfinfo = PdfInfo(pdfinfo_path, timeout)
        self.qpdf = QpdfInspector(qpdf_path, timeout)
        self.pymupdf = PyMuPDFInspector() if use_pymupdf_fallback else None

    @property
    def inspectors(self) -> list:
        inspectors = [self.qpdf]
        if self.pymupdf is not None:
            inspectors.append(self.pymupdf)
        return inspectors

    def count_pages(self, pdf_path: str) -> int:
        """
        Number of pages in the PDF.

        Raises:
            PageCountUnavailable: When every page-count source fails.
        """
        tiers = [
            lambda: self.pdfinfo.page_count(pdf_path),
            *(
                (lambda inspector=inspector: inspector.page_count(pdf_path))
                for inspector in self.inspectors
            ),
        ]
        count = first_available(*tiers)
        if not count or count <= 0:
            raise PageCountUnavailable(f"Cannot count pages of {pdf_path}")
        return count

    def extract_labels(self, pdf_path: str) -> list[PageLabelRange]:
        """
        Recover the page label ranges of a PDF, sorted by page index.

        Raises:
            PageCountUnavailable: When the object-graph tier is needed and
                the page count cannot be determined.
        """
        announced = self._labels_from_pdfinfo(pdf_path)
        if announced:
            logger.info(f"pdfinfo announced {len(announced)} page labels")
            return announced

        total_pages = self.count_pages(pdf_path)
        ranges = self._labels_from_object_graph(pdf_path, total_pages)
        if ranges:
            logger.info(f"Found {len(ranges)} page label ranges in catalog")
        else:
            logger.info("No page labels in PDF, standard numbering applies")
        return ranges

    # ─── Tier 1 ──────────────────────────────────────────────────────────────

    def _labels_from_pdfinfo(self, pdf_path: str) -> list[PageLabelRange]:
        try:
            announcements = self.pdfinfo.page_labels(pdf_path)
        except ToolFailure as e:
            logger.warning(f"Page label dump unavailable: {e}")
            return []

        ranges = {
            pdf_page - 1: label_range_from_announcement(pdf_page, label)
            for pdf_page, label in announcements
            if pdf_page >= 1
        }
        return [ranges[i] for i in sorted(ranges)]

    # ─── Tier 2 ──────────────────────────────────────────────────────────────

    def _show(self, pdf_path: str, obj) -> Optional[str]:
        return first_available(*(
            (lambda inspector=inspector: inspector.show_object(pdf_path, obj))
            for inspector in self.inspectors
        ))

    def _labels_from_object_graph(
        self, pdf_path: str, total_pages: int
    ) -> list[PageLabelRange]:
        trailer = self._show(pdf_path, "trailer")
        if not trailer:
            logger.warning("Could not read PDF trailer")
            return []

        root_ref = find_ref_value(trailer, "Root")
        if root_ref is None:
            logger.warning("PDF trailer has no /Root reference")
            return []

        catalog = self._show(pdf_path, root_ref.number)
        if not catalog:
            logger.warning(f"Could not read catalog object {root_ref.number}")
            return []

        tree = self._resolve_dict(pdf_path, catalog, "PageLabels")
        if tree is None:
            return []

        pairs = list(self._walk_number_tree(pdf_path, tree, depth=0, seen=set()))

        ranges: list[PageLabelRange] = []
        for index, value in pairs:
            if not 0 <= index < total_pages:
                logger.debug(f"Dropping label range at out-of-range index {index}")
                continue
            entry = self._read_label_dict(pdf_path, index, value)
            if entry is not None:
                ranges.append(entry)

        ranges.sort(key=lambda r: r.pdf_page_index)
        return ranges

    def _resolve_dict(self, pdf_path: str, text: str, key: str) -> Optional[str]:
        """Value of /key as dictionary text, following an indirect reference."""
        ref = find_ref_value(text, key)
        if ref is not None:
            return self._show(pdf_path, ref.number)
        return find_dict_value(text, key)

    def _walk_number_tree(self, pdf_path: str, node: str, depth: int, seen: set):
        """Yield (page index, value) pairs from a number tree node."""
        if depth > MAX_TREE_DEPTH:
            logger.warning("Page label number tree too deep, stopping")
            return

        nums = find_array(node, "Nums")
        if nums is not None:
            items = list(iter_array_items(nums))
            for key, value in zip(items[0::2], items[1::2]):
                if isinstance(key, int):
                    yield key, value
                else:
                    logger.debug(f"Ignoring non-integer number tree key {key!r}")

        kids = find_array(node, "Kids")
        if kids is None:
            return
        for kid in iter_array_items(kids):
            if not isinstance(kid, IndirectRef) or kid.number in seen:
                continue
            seen.add(kid.number)
            child = self._show(pdf_path, kid.number)
            if child:
                yield from self._walk_number_tree(pdf_path, child, depth + 1, seen)

    def _read_label_dict(
        self, pdf_path: str, index: int, value
    ) -> Optional[PageLabelRange]:
        if isinstance(value, IndirectRef):
            text = self._show(pdf_path, value.number)
        elif isinstance(value, dict):
            text = value["raw"]
        else:
            text = None

        if not text:
            logger.debug(f"Unreadable label dictionary for page index {index}")
            return None

        start = START_PATTERN.search(text)
        if not start:
            logger.debug(f"Label dictionary for page index {index} has no /St")
            return None

        style_match = STYLE_PATTERN.search(text)
        style = NumberingStyle.DECIMAL
        if style_match:
            style = STYLE_CODES.get(style_match.group(1), NumberingStyle.DECIMAL)

        return PageLabelRange(
            pdf_page_index=index,
            start_number=int(start.group(1)),
            prefix=read_string_value(text, "P") or "",
            style=style,
        )
