"""
PDF Review Marks Toolkit
========================
Annotation and page-numbering metadata for PDFs in a document-review workflow.

Architecture:
    - Annotation Extractor: Recovers reviewer annotations from third-party PDFs
    - Page-Label Extractor: Recovers the logical page-numbering scheme
    - Page Mapper: Maps physical PDF pages onto project page numbers
    - Annotation Embedder: Draws review marks into a PDF for export

Version: 1.0.0
"""

__version__ = "1.0.0"
