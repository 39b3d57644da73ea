"""
External Tools
==============
Wrappers around the command-line utilities the page-label extractor shells
out to, plus an in-process PyMuPDF stand-in for object inspection.

    - pdfinfo (poppler-utils): page count and per-page label announcements
    - qpdf: page count and dumps of single indirect objects

Every call is bounded by a timeout. A missing binary, a non-zero exit, a
timeout and empty output all mean "not available": callers get None and
move on to their next tier.
"""

from __future__ import annotations

import logging
import re
import subprocess
from typing import Callable, Optional, TypeVar, Union

import fitz  # PyMuPDF

from .errors import ToolFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0

PDFINFO_PAGES_PATTERN = re.compile(r"^Pages:\s+(\d+)\s*$", re.MULTILINE)
PDFINFO_LABEL_PATTERN = re.compile(
    r"^Page\s+(\d+)\s+label:\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE
)

ObjectId = Union[int, str]


def run_tool(args: list[str], timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Run an external tool and return its stdout.

    Raises:
        ToolFailure: On missing binary, timeout, non-zero exit or empty
            output.
    """
    tool = args[0]
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        raise ToolFailure(tool, "not installed")
    except subprocess.TimeoutExpired:
        raise ToolFailure(tool, f"timed out after {timeout}s")
    except OSError as e:
        raise ToolFailure(tool, str(e))

    if result.returncode != 0:
        stderr = (result.stderr or "").strip().splitlines()
        detail = stderr[-1] if stderr else "no stderr"
        raise ToolFailure(tool, f"exit code {result.returncode} ({detail})")

    if not result.stdout or not result.stdout.strip():
        raise ToolFailure(tool, "empty output")

    return result.stdout


def first_available(*tiers: Callable[[], Optional[T]]) -> Optional[T]:
    """
    Return the first non-empty result of a chain of tiers.

    Each tier is a zero-argument callable; a ToolFailure counts as an
    empty result and is logged.
    """
    for tier in tiers:
        try:
            result = tier()
        except ToolFailure as e:
            logger.warning(f"Tool unavailable, falling back: {e}")
            continue
        if result:
            return result
    return None


# ─── pdfinfo ──────────────────────────────────────────────────────────────────


class PdfInfo:
    """Metadata dump via poppler's pdfinfo."""

    def __init__(self, binary: str = "pdfinfo", timeout: float = DEFAULT_TIMEOUT):
        self.binary = binary
        self.timeout = timeout

    def page_labels(self, pdf_path: str) -> list[tuple[int, str]]:
        """(1-based page, label) pairs announced by pdfinfo, possibly empty."""
        output = run_tool(
            [self.binary, "-f", "1", "-l", "-1", pdf_path], self.timeout
        )
        return [
            (int(m.group(1)), m.group(2))
            for m in PDFINFO_LABEL_PATTERN.finditer(output)
        ]

    def page_count(self, pdf_path: str) -> Optional[int]:
        output = run_tool([self.binary, pdf_path], self.timeout)
        match = PDFINFO_PAGES_PATTERN.search(output)
        if not match:
            raise ToolFailure(self.binary, "no Pages: line in output")
        return int(match.group(1))


# ─── Object Inspectors ────────────────────────────────────────────────────────


class QpdfInspector:
    """Object-graph inspection via qpdf --show-object."""

    name = "qpdf"

    def __init__(self, binary: str = "qpdf", timeout: float = DEFAULT_TIMEOUT):
        self.binary = binary
        self.timeout = timeout

    def show_object(self, pdf_path: str, obj: ObjectId) -> Optional[str]:
        """
        Dump one indirect object (or "trailer") as text.

        Stream objects are dumped as their dictionary only.
        """
        return run_tool(
            [self.binary, f"--show-object={obj}", pdf_path], self.timeout
        )

    def page_count(self, pdf_path: str) -> Optional[int]:
        output = run_tool([self.binary, "--show-npages", pdf_path], self.timeout)
        try:
            return int(output.strip())
        except ValueError:
            raise ToolFailure(self.binary, f"unparsable page count {output!r}")


class PyMuPDFInspector:
    """In-process object inspection for hosts without qpdf."""

    name = "pymupdf"

    def show_object(self, pdf_path: str, obj: ObjectId) -> Optional[str]:
        try:
            with fitz.open(pdf_path) as doc:
                if obj == "trailer":
                    return doc.pdf_trailer(compressed=True)
                if not 0 < int(obj) < doc.xref_length():
                    return None
                return doc.xref_object(int(obj), compressed=True)
        except Exception as e:
            raise ToolFailure(self.name, f"cannot inspect object {obj}: {e}")

    def page_count(self, pdf_path: str) -> Optional[int]:
        try:
            with fitz.open(pdf_path) as doc:
                return doc.page_count
        except Exception as e:
            raise ToolFailure(self.name, f"cannot open document: {e}")
