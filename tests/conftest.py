"""Shared fixtures for the toolkit test suite."""

from __future__ import annotations

import fitz  # PyMuPDF
import pytest


def build_raw_pdf(*objects: str) -> bytes:
    """
    Assemble PDF-like bytes from object bodies, one object per line.

    Not a loadable PDF (no xref table); enough for the text scanner.
    """
    parts = [b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n"]
    for number, body in enumerate(objects, start=1):
        parts.append(f"{number} 0 obj {body} endobj\n".encode("latin-1"))
    parts.append(b"trailer <</Root 1 0 R>>\n%%EOF\n")
    return b"".join(parts)


@pytest.fixture
def raw_pdf():
    return build_raw_pdf


@pytest.fixture
def blank_pdf_bytes() -> bytes:
    """Two blank 600 x 800 pages."""
    doc = fitz.open()
    doc.new_page(width=600, height=800)
    doc.new_page(width=600, height=800)
    data = doc.tobytes()
    doc.close()
    return data
