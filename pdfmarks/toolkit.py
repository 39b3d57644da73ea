"""
Toolkit Facade
==============
Entry point that ties configuration and logging to the three independent
components. Each method is one self-contained operation; nothing here
chains the components together.

Usage:
    toolkit = Toolkit(ToolkitConfig(log_level="DEBUG"))
    annotations = toolkit.extract_annotations("review.pdf")
    assignments = toolkit.map_pages("book.pdf", project_pages)
    pdf_bytes, report = toolkit.embed("page.pdf", annotations_to_embed)
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from .annotation_extractor import DEFAULT_AUTHOR, AnnotationExtractor
from .embedder import AnnotationEmbedder, EmbedStyle
from .models import (
    AnnotationToEmbed,
    EmbedReport,
    PageAssignment,
    PageLabelMapping,
    PageLabelRange,
    ProjectPageRef,
    RawAnnotation,
)
from .page_labels import PageLabelExtractor, map_pages, synthesize_labels
from .tools import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


@dataclass
class ToolkitConfig:
    """Configuration for the toolkit."""

    # External tools
    pdfinfo_path: str = "pdfinfo"
    qpdf_path: str = "qpdf"
    tool_timeout: float = DEFAULT_TIMEOUT
    use_pymupdf_fallback: bool = True

    # Extraction
    fallback_author: str = DEFAULT_AUTHOR

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


class Toolkit:
    """
    Facade over the annotation extractor, the page-label extractor and
    mapper, and the annotation embedder.

    Holds no per-document state; safe to share across independent calls.
    """

    def __init__(
        self,
        config: Optional[ToolkitConfig] = None,
        style: Optional[EmbedStyle] = None,
    ):
        self.config = config or ToolkitConfig()
        self._setup_logging()

        self.annotation_extractor = AnnotationExtractor(
            fallback_author=self.config.fallback_author,
        )
        self.label_extractor = PageLabelExtractor(
            pdfinfo_path=self.config.pdfinfo_path,
            qpdf_path=self.config.qpdf_path,
            timeout=self.config.tool_timeout,
            use_pymupdf_fallback=self.config.use_pymupdf_fallback,
        )
        self.embedder = AnnotationEmbedder(style)

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        # Configure root logger for the package
        package_logger = logging.getLogger("pdfmarks")
        package_logger.setLevel(log_level)

        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(formatter)
            package_logger.addHandler(console)

        # File handler, one per path
        if self.config.log_file:
            log_path = os.path.abspath(self.config.log_file)
            if any(
                isinstance(h, logging.FileHandler) and h.baseFilename == log_path
                for h in package_logger.handlers
            ):
                return
            log_dir = Path(self.config.log_file).parent
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(
                self.config.log_file, encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)

    # ─── Annotation Extraction ───────────────────────────────────────────────

    def extract_annotations(self, pdf_path: str) -> list[RawAnnotation]:
        """
        Extract reviewer annotations from a PDF file.

        Raises:
            FileNotFoundError: If the PDF file doesn't exist.
        """
        data = _read_pdf(pdf_path)
        start_time = time.time()
        annotations = self.annotation_extractor.extract(data)
        logger.info(
            f"Annotation extraction of {os.path.basename(pdf_path)} "
            f"took {time.time() - start_time:.2f}s"
        )
        return annotations

    # ─── Page Labels ─────────────────────────────────────────────────────────

    def extract_labels(self, pdf_path: str) -> list[PageLabelRange]:
        """
        Page label ranges of a PDF.

        Raises:
            FileNotFoundError: If the PDF file doesn't exist.
            PageCountUnavailable: If the page count cannot be determined.
        """
        return self.label_extractor.extract_labels(_existing(pdf_path))

    def count_pages(self, pdf_path: str) -> int:
        return self.label_extractor.count_pages(_existing(pdf_path))

    def label_pages(
        self, pdf_path: str
    ) -> tuple[list[PageLabelRange], list[PageLabelMapping]]:
        """Label ranges plus the synthesized label of every page."""
        ranges = self.extract_labels(pdf_path)
        total_pages = self.count_pages(pdf_path)
        return ranges, synthesize_labels(ranges, total_pages)

    def map_pages(
        self,
        pdf_path: str,
        project_pages: Iterable[Union[ProjectPageRef, dict]],
    ) -> list[PageAssignment]:
        """
        Match the physical pages of a PDF to project pages.

        Raises:
            FileNotFoundError: If the PDF file doesn't exist.
            PageCountUnavailable: If the page count cannot be determined.
        """
        refs = [
            p if isinstance(p, ProjectPageRef) else ProjectPageRef.model_validate(p)
            for p in project_pages
        ]
        ranges = self.extract_labels(pdf_path)
        total_pages = self.count_pages(pdf_path)
        return map_pages(ranges, total_pages, refs)

    # ─── Embedding ───────────────────────────────────────────────────────────

    def embed(
        self,
        pdf_path: str,
        annotations: Sequence[Union[AnnotationToEmbed, dict]],
        output_path: Optional[str] = None,
    ) -> tuple[bytes, EmbedReport]:
        """
        Draw annotations into a copy of a PDF.

        Args:
            pdf_path: Source PDF.
            annotations: Annotations to draw.
            output_path: Where to write the result; not written if None.

        Raises:
            FileNotFoundError: If the PDF file doesn't exist.
            SourceDocumentUnreadable: If the PDF cannot be loaded.
        """
        data = _read_pdf(pdf_path)
        output, report = self.embedder.embed_with_report(data, annotations)

        if output_path:
            target = Path(output_path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(output)
            logger.info(f"Saved annotated PDF: {target}")

        return output, report


def _existing(pdf_path: str) -> str:
    pdf_path = os.path.abspath(pdf_path)
    if not os.path.exists(pdf_path):
        raise FileNotFoundError(f"PDF not found: {pdf_path}")
    return pdf_path


def _read_pdf(pdf_path: str) -> bytes:
    return Path(_existing(pdf_path)).read_bytes()
