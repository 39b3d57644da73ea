"""
Annotation Embedder
===================
Draws the review application's own annotations into a PDF for export,
using PyMuPDF (fitz) to load, modify and save the document.

Positions arrive as percentages of the page with a top-left origin. They
are converted to PDF user space (bottom-left origin) first, then mapped to
PyMuPDF page space through the page's transformation matrix for drawing.

Rendering by type:
    - highlight:  translucent filled rectangle, optional caption below
    - ink:        freehand polyline from an SVG-like "M x y L x y" path
    - comment / correction / validation:
                  numbered circle marker, checkmark when resolved, and a
                  wrapped content box next to unresolved markers
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import fitz  # PyMuPDF
from pydantic import ValidationError

from .errors import MalformedAnnotationInput, SourceDocumentUnreadable
from .models import (
    AnnotationToEmbed,
    EmbedReport,
    EmbedType,
    PercentPosition,
    SkippedAnnotation,
)

logger = logging.getLogger(__name__)

RGB = tuple[float, float, float]

DEFAULT_COLOR: RGB = (1.0, 1.0, 0.0)
HEX_COLOR_PATTERN = re.compile(r"^#([0-9A-Fa-f]{6}|[0-9A-Fa-f]{3})$")

# Ink paths are recorded on a Letter-sized canvas
INK_CANVAS_WIDTH = 612.0
INK_CANVAS_HEIGHT = 792.0
INK_POINT_PATTERN = re.compile(r"[ML]\s*(-?[\d.]+)[\s,]+(-?[\d.]+)")

MARKER_TYPES = (EmbedType.COMMENT, EmbedType.CORRECTION, EmbedType.VALIDATION)

CAPTION_MAX_CHARS = 100
CONTENT_MAX_CHARS = 100
CONTENT_TRUNCATE_AT = 97


@dataclass
class EmbedStyle:
    """Appearance of embedded marks. Colors are RGB in 0.0-1.0."""

    highlight_opacity: float = 0.3
    caption_size: float = 8
    caption_gap: float = 12
    caption_color: RGB = (0.3, 0.3, 0.3)

    ink_width: float = 2
    ink_opacity: float = 0.8

    marker_radius: float = 16
    marker_opacity: float = 0.9
    marker_border_width: float = 2
    marker_border_color: RGB = (1.0, 1.0, 1.0)
    marker_resolved_color: RGB = (0.2, 0.7, 0.2)
    marker_open_color: RGB = (0.9, 0.2, 0.2)
    marker_label_size: float = 10
    marker_label_min_size: float = 5

    box_gap: float = 5
    box_offset_y: float = 10
    box_padding: float = 4
    box_max_width: float = 200
    box_text_size: float = 8
    box_line_gap: float = 2
    box_fill: RGB = (1.0, 1.0, 0.9)
    box_opacity: float = 0.95
    box_border_color: RGB = (0.8, 0.8, 0.2)
    box_border_width: float = 1

    font: str = "helv"
    bold_font: str = "hebo"


# ─── Geometry & Parsing Helpers ───────────────────────────────────────────────


def parse_hex_color(value: Optional[str]) -> RGB:
    """"#RRGGBB" / "#RGB" to an RGB tuple; anything else is yellow."""
    if not value:
        return DEFAULT_COLOR
    match = HEX_COLOR_PATTERN.match(value.strip())
    if not match:
        return DEFAULT_COLOR
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return tuple(int(digits[i:i + 2], 16) / 255 for i in (0, 2, 4))


def percent_to_pdf_point(
    x_pct: float, y_pct: float, page_width: float, page_height: float
) -> tuple[float, float]:
    """
    Convert a top-left-origin percentage position to PDF user space.

    The vertical axis is inverted: y=0% is the top edge (PDF y = height),
    y=100% the bottom edge (PDF y = 0).
    """
    if not (math.isfinite(x_pct) and math.isfinite(y_pct)):
        raise MalformedAnnotationInput("non-finite position")
    return (x_pct / 100) * page_width, page_height - (y_pct / 100) * page_height


def highlight_rect(
    position: PercentPosition, page_width: float, page_height: float
) -> tuple[float, float, float, float]:
    """
    PDF-space (x, y, width, height) of a highlight whose percentage point
    is its visual top-left corner.
    """
    if not position.width or not position.height:
        raise MalformedAnnotationInput("highlight needs width and height")
    if position.width <= 0 or position.height <= 0:
        raise MalformedAnnotationInput("highlight width and height must be positive")

    x, top = percent_to_pdf_point(position.x, position.y, page_width, page_height)
    width = (position.width / 100) * page_width
    height = (position.height / 100) * page_height
    return x, top - height, width, height


def parse_ink_path(path: str) -> list[tuple[float, float]]:
    """Ordered (x, y) points of the M/L commands in an SVG-like path."""
    points = []
    for match in INK_POINT_PATTERN.finditer(path or ""):
        try:
            x, y = float(match.group(1)), float(match.group(2))
        except ValueError:
            continue
        if math.isfinite(x) and math.isfinite(y):
            points.append((x, y))
    return points


def ink_to_pdf_points(
    points: Sequence[tuple[float, float]], page_width: float, page_height: float
) -> list[tuple[float, float]]:
    """Scale canvas points to the page and flip them into PDF space."""
    scale_x = page_width / INK_CANVAS_WIDTH
    scale_y = page_height / INK_CANVAS_HEIGHT
    return [(x * scale_x, page_height - y * scale_y) for x, y in points]


def text_width(text: str, fontname: str, fontsize: float) -> float:
    return fitz.get_text_length(text, fontname=fontname, fontsize=fontsize)


def fit_text(text: str, fontname: str, fontsize: float, max_width: float) -> str:
    """Longest prefix of text that fits in max_width."""
    if text_width(text, fontname, fontsize) <= max_width:
        return text
    end = len(text)
    while end > 0 and text_width(text[:end], fontname, fontsize) > max_width:
        end -= 1
    return text[:end]


def wrap_text(
    text: str, fontname: str, fontsize: float, max_width: float
) -> list[str]:
    """
    Greedy line fill: keep adding words while the line fits, start a new
    line on overflow. A single word wider than max_width gets its own line.
    """
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and text_width(candidate, fontname, fontsize) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def truncate_content(content: str) -> str:
    if len(content) > CONTENT_MAX_CHARS:
        return content[:CONTENT_TRUNCATE_AT] + "..."
    return content


def resolve_position(raw) -> PercentPosition:
    """Validate a raw position (mapping or JSON string)."""
    if raw is None:
        raise MalformedAnnotationInput("missing position")
    if isinstance(raw, PercentPosition):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise MalformedAnnotationInput("position is not valid JSON")
    try:
        return PercentPosition.model_validate(raw)
    except ValidationError as e:
        raise MalformedAnnotationInput(
            f"invalid position: {e.error_count()} error(s)"
        )


# ─── Page Canvas ──────────────────────────────────────────────────────────────


class PageCanvas:
    """Draws on a PyMuPDF page using PDF user-space coordinates."""

    def __init__(self, page: fitz.Page):
        self.page = page
        self.matrix = page.transformation_matrix
        box = page.mediabox
        self.origin_x = box.x0
        self.origin_y = box.y0
        self.width = box.width
        self.height = box.height

    def point(self, x: float, y: float) -> fitz.Point:
        return fitz.Point(self.origin_x + x, self.origin_y + y) * self.matrix

    def rect(self, x: float, y: float, width: float, height: float) -> fitz.Rect:
        return fitz.Rect(
            self.point(x, y), self.point(x + width, y + height)
        ).normalize()

    def fill_rect(self, x, y, width, height, fill: RGB, opacity: float,
                  border: Optional[RGB] = None, border_width: float = 0):
        shape = self.page.new_shape()
        shape.draw_rect(self.rect(x, y, width, height))
        shape.finish(
            color=border,
            fill=fill,
            fill_opacity=opacity,
            width=border_width if border else 0,
        )
        shape.commit()

    def circle(self, x, y, radius, fill: RGB, opacity: float,
               border: RGB, border_width: float):
        shape = self.page.new_shape()
        shape.draw_circle(self.point(x, y), radius)
        shape.finish(
            color=border,
            fill=fill,
            fill_opacity=opacity,
            width=border_width,
        )
        shape.commit()

    def polyline(self, points: Sequence[tuple[float, float]], color: RGB,
                 width: float, opacity: float = 1.0):
        shape = self.page.new_shape()
        shape.draw_polyline([self.point(x, y) for x, y in points])
        shape.finish(
            color=color,
            width=width,
            stroke_opacity=opacity,
            closePath=False,
        )
        shape.commit()

    def text(self, x: float, y: float, text: str, fontsize: float,
             fontname: str, color: RGB):
        """Insert text with its baseline starting at PDF point (x, y)."""
        self.page.insert_text(
            self.point(x, y),
            text,
            fontsize=fontsize,
            fontname=fontname,
            color=color,
        )


# ─── Embedder ─────────────────────────────────────────────────────────────────


class AnnotationEmbedder:
    """
    Produces a copy of a PDF with application annotations drawn on it.

    Malformed annotations are skipped one by one; only an unloadable source
    document fails the call.
    """

    def __init__(self, style: Optional[EmbedStyle] = None):
        self.style = style or EmbedStyle()

    def embed(
        self,
        pdf_bytes: bytes,
        annotations: Sequence[Union[AnnotationToEmbed, dict]],
    ) -> bytes:
        """
        Draw annotations into a PDF.

        Raises:
            SourceDocumentUnreadable: If the source PDF cannot be loaded.
        """
        output, _ = self.embed_with_report(pdf_bytes, annotations)
        return output

    def embed_with_report(
        self,
        pdf_bytes: bytes,
        annotations: Sequence[Union[AnnotationToEmbed, dict]],
    ) -> tuple[bytes, EmbedReport]:
        """Like embed(), also reporting which annotations were skipped."""
        annotations = list(annotations)
        doc = self._open(pdf_bytes)
        drawn = 0
        skipped: list[SkippedAnnotation] = []

        with doc:
            for index, item in enumerate(annotations):
                annotation_id = _raw_id(item)
                try:
                    annotation = self._validate(item)
                    self._draw(doc, annotation)
                    drawn += 1
                except MalformedAnnotationInput as e:
                    logger.warning(f"Skipping annotation {annotation_id}: {e}")
                    skipped.append(SkippedAnnotation(
                        index=index, annotation_id=annotation_id, reason=str(e)
                    ))
                except Exception as e:
                    logger.warning(f"Failed drawing annotation {annotation_id}: {e}")
                    skipped.append(SkippedAnnotation(
                        index=index,
                        annotation_id=annotation_id,
                        reason=f"drawing failed: {e}",
                    ))

            output = doc.tobytes(deflate=True)

        report = EmbedReport(
            total=len(annotations),
            drawn=drawn,
            skipped=skipped,
        )
        logger.info(
            f"Embedded {report.drawn}/{report.total} annotations "
            f"({report.skipped_count} skipped)"
        )
        return output, report

    def _open(self, pdf_bytes: bytes) -> fitz.Document:
        if not pdf_bytes:
            raise SourceDocumentUnreadable("Source PDF is empty")
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as e:
            raise SourceDocumentUnreadable(f"Cannot load source PDF: {e}") from e
        if doc.needs_pass:
            doc.close()
            raise SourceDocumentUnreadable("Source PDF is encrypted")
        if doc.page_count == 0:
            doc.close()
            raise SourceDocumentUnreadable("Source PDF has no pages")
        return doc

    def _validate(self, item) -> AnnotationToEmbed:
        if isinstance(item, AnnotationToEmbed):
            return item
        try:
            return AnnotationToEmbed.model_validate(item)
        except ValidationError as e:
            raise MalformedAnnotationInput(
                f"invalid annotation: {e.error_count()} error(s)"
            )

    def _draw(self, doc: fitz.Document, annotation: AnnotationToEmbed):
        position = resolve_position(annotation.position)

        page_index = (position.page_number or 1) - 1
        if not 0 <= page_index < doc.page_count:
            raise MalformedAnnotationInput(
                f"page {page_index + 1} out of range (1-{doc.page_count})"
            )

        canvas = PageCanvas(doc[page_index])
        color = parse_hex_color(annotation.color)

        if annotation.type == EmbedType.HIGHLIGHT:
            self._draw_highlight(canvas, annotation, position, color)
        elif annotation.type == EmbedType.INK:
            self._draw_ink(canvas, position, color)
        elif annotation.type in MARKER_TYPES:
            self._draw_marker(canvas, annotation, position)

    # ─── Renderers ───────────────────────────────────────────────────────────

    def _draw_highlight(self, canvas: PageCanvas, annotation: AnnotationToEmbed,
                        position: PercentPosition, color: RGB):
        s = self.style
        x, y, width, height = highlight_rect(position, canvas.width, canvas.height)
        canvas.fill_rect(x, y, width, height, fill=color, opacity=s.highlight_opacity)

        content = annotation.content.strip()
        if content and len(content) < CAPTION_MAX_CHARS:
            caption = fit_text(content, s.font, s.caption_size, width)
            if caption:
                canvas.text(
                    x, y - s.caption_gap, caption,
                    fontsize=s.caption_size, fontname=s.font, color=s.caption_color,
                )

    def _draw_ink(self, canvas: PageCanvas, position: PercentPosition, color: RGB):
        s = self.style
        if not position.ink_path:
            raise MalformedAnnotationInput("ink annotation without ink_path")
        points = parse_ink_path(position.ink_path)
        if len(points) < 2:
            raise MalformedAnnotationInput("ink path has fewer than 2 points")
        canvas.polyline(
            ink_to_pdf_points(points, canvas.width, canvas.height),
            color=color,
            width=s.ink_width,
            opacity=s.ink_opacity,
        )

    def _draw_marker(self, canvas: PageCanvas, annotation: AnnotationToEmbed,
                     position: PercentPosition):
        s = self.style
        x, y = percent_to_pdf_point(position.x, position.y, canvas.width, canvas.height)

        fill = s.marker_resolved_color if annotation.resolved else s.marker_open_color
        canvas.circle(
            x, y, s.marker_radius,
            fill=fill,
            opacity=s.marker_opacity,
            border=s.marker_border_color,
            border_width=s.marker_border_width,
        )

        if annotation.resolved:
            self._draw_checkmark(canvas, x, y)
        else:
            self._draw_marker_label(canvas, x, y, _marker_label(annotation))

        content = annotation.content.strip()
        if content and not annotation.resolved:
            self._draw_content_box(canvas, x, y, content)

    def _draw_checkmark(self, canvas: PageCanvas, x: float, y: float):
        r = self.style.marker_radius
        canvas.polyline(
            [
                (x - 0.35 * r, y),
                (x - 0.1 * r, y - 0.3 * r),
                (x + 0.4 * r, y + 0.3 * r),
            ],
            color=self.style.marker_border_color,
            width=self.style.marker_border_width,
        )

    def _draw_marker_label(self, canvas: PageCanvas, x: float, y: float, label: str):
        s = self.style
        if not label:
            return
        size = s.marker_label_size
        max_width = 2 * s.marker_radius - 6
        while size > s.marker_label_min_size and text_width(label, s.bold_font, size) > max_width:
            size -= 1
        label = fit_text(label, s.bold_font, size, max_width)
        width = text_width(label, s.bold_font, size)
        canvas.text(
            x - width / 2, y - size * 0.4, label,
            fontsize=size, fontname=s.bold_font, color=(1.0, 1.0, 1.0),
        )

    def _draw_content_box(self, canvas: PageCanvas, x: float, y: float, content: str):
        s = self.style
        lines = wrap_text(
            truncate_content(content),
            s.font,
            s.box_text_size,
            s.box_max_width - s.box_padding * 2,
        )
        if not lines:
            return

        line_height = s.box_text_size + s.box_line_gap
        box_x = x + s.marker_radius + s.box_gap
        box_top = y - s.box_offset_y
        box_height = len(lines) * line_height + s.box_padding * 2
        box_width = min(
            s.box_max_width,
            max(text_width(line, s.font, s.box_text_size) for line in lines)
            + s.box_padding * 2,
        )

        canvas.fill_rect(
            box_x, box_top - box_height, box_width, box_height,
            fill=s.box_fill,
            opacity=s.box_opacity,
            border=s.box_border_color,
            border_width=s.box_border_width,
        )
        for i, line in enumerate(lines):
            canvas.text(
                box_x + s.box_padding,
                box_top - s.box_padding - (i + 1) * line_height + s.box_text_size,
                line,
                fontsize=s.box_text_size,
                fontname=s.font,
                color=(0.0, 0.0, 0.0),
            )


def _marker_label(annotation: AnnotationToEmbed) -> str:
    if annotation.marker_number:
        return str(annotation.marker_number)
    if annotation.id is not None:
        return str(annotation.id)
    return ""


def _raw_id(item):
    if isinstance(item, AnnotationToEmbed):
        return item.id
    if isinstance(item, dict) and isinstance(item.get("id"), (int, str)):
        return item["id"]
    return None
