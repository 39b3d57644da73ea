"""
Module entry point for: python -m pdfmarks

Allows running the toolkit directly as a module:
    python -m pdfmarks annotations <pdf_path>
    python -m pdfmarks labels <pdf_path>
    python -m pdfmarks map <pdf_path> <project_pages.json>
    python -m pdfmarks embed <pdf_path> <annotations.json> -o <out.pdf>
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
