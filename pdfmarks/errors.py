"""
Error Types
===========
Exceptions raised inside the toolkit.

Only PageCountUnavailable and SourceDocumentUnreadable ever reach callers;
the others are raised and handled at per-candidate, per-tool or
per-annotation scope.
"""

from __future__ import annotations


class PdfMarksError(Exception):
    """Base class for all toolkit errors."""


class ExtractionError(PdfMarksError):
    """A single annotation candidate could not be extracted."""


class ToolFailure(PdfMarksError):
    """An external tool failed, timed out or produced unusable output."""

    def __init__(self, tool: str, reason: str):
        super().__init__(f"{tool}: {reason}")
        self.tool = tool
        self.reason = reason


class PageCountUnavailable(PdfMarksError):
    """No page count could be determined for the document."""


class MalformedAnnotationInput(PdfMarksError):
    """An annotation to embed has an unusable position or shape."""


class SourceDocumentUnreadable(PdfMarksError):
    """The source PDF could not be loaded for embedding."""
