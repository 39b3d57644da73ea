"""
Data Models
===========
Pydantic models shared by the extractor, the page-label mapper and the
embedder. All models are serializable to JSON for the review application.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


# ─── Enums ────────────────────────────────────────────────────────────────────


class AnnotationKind(str, Enum):
    """Normalized kind of an imported reviewer annotation."""
    COMMENT = "comment"
    HIGHLIGHT = "highlight"
    CORRECTION = "correction"
    VALIDATION = "validation"


class NumberingStyle(str, Enum):
    """Page label numbering style, as coded by /S in a label dictionary."""
    DECIMAL = "D"
    UPPER_ROMAN = "R"
    LOWER_ROMAN = "r"
    UPPER_ALPHA = "A"
    LOWER_ALPHA = "a"
    NONE = "none"


class EmbedType(str, Enum):
    """Annotation types the embedder knows how to draw."""
    HIGHLIGHT = "highlight"
    INK = "ink"
    COMMENT = "comment"
    CORRECTION = "correction"
    VALIDATION = "validation"


# ─── Geometry ─────────────────────────────────────────────────────────────────


class Rect(BaseModel):
    """Axis-aligned rectangle in PDF points, origin at its minimum corner."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)

    @classmethod
    def from_corners(cls, a: float, b: float, c: float, d: float) -> Rect:
        """Build from a PDF /Rect array, whatever order its corners are in."""
        return cls(
            x=min(a, c),
            y=min(b, d),
            width=abs(c - a),
            height=abs(d - b),
        )


class PercentPosition(BaseModel):
    """
    Position of an application annotation, as percentages of the page
    dimensions with the origin at the top-left corner.
    """
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None
    page_number: Optional[int] = None
    ink_path: Optional[str] = None


# ─── Extraction ───────────────────────────────────────────────────────────────


class RawAnnotation(BaseModel):
    """An annotation recovered from an externally authored PDF."""
    model_config = ConfigDict(frozen=True)

    kind: AnnotationKind
    content: str
    author: str
    rect: Rect
    color: str = Field(description="Hex color, e.g. #FFFF00")
    source: str = "external_import"
    subtype: str = Field(
        default="",
        description="PDF annotation subtype the record was built from",
    )


# ─── Page Labels ──────────────────────────────────────────────────────────────


class PageLabelRange(BaseModel):
    """
    A page labeling configuration that applies from pdf_page_index onward
    until the next range starts.
    """
    pdf_page_index: int = Field(ge=0)
    start_number: int = Field(ge=0)
    prefix: str = ""
    style: NumberingStyle = NumberingStyle.DECIMAL


class PageLabelMapping(BaseModel):
    """Synthesized label of one physical page."""
    pdf_page: int = Field(ge=1)
    label: str
    start_number: int
    page_number: Optional[int] = Field(
        default=None,
        description="Decimal page number, None for non-decimal styles",
    )


class ProjectPageRef(BaseModel):
    """A page of the review project, supplied by the workflow layer."""
    id: Union[int, str]
    page_number: int


class PageAssignment(BaseModel):
    """A physical PDF page matched to a project page."""
    pdf_page: int = Field(ge=1)
    project_page_id: Union[int, str]
    project_page_number: int
    label: str


# ─── Embedding ────────────────────────────────────────────────────────────────


class AnnotationToEmbed(BaseModel):
    """
    An application annotation to draw into an exported PDF.

    `position` is kept raw (object or JSON string) and validated per
    annotation, so one malformed position never fails the whole export.
    """
    type: EmbedType
    content: str = ""
    position: Any = None
    color: Optional[str] = None
    resolved: bool = False
    id: Optional[Union[int, str]] = None
    marker_number: Optional[int] = None

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value):
        return "" if value is None else value


class SkippedAnnotation(BaseModel):
    """An annotation the embedder did not draw, and why."""
    index: int
    annotation_id: Optional[Union[int, str]] = None
    reason: str


class EmbedReport(BaseModel):
    """Outcome of an embedding run."""
    total: int = 0
    drawn: int = 0
    skipped: list[SkippedAnnotation] = Field(default_factory=list)

    @computed_field
    @property
    def skipped_count(self) -> int:
        return len(self.skipped)
