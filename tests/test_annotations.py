"""
Test Suite for Annotation Extraction
====================================
Unit tests for the text scanner and the annotation extractor.
"""

from __future__ import annotations

import pytest

from pdfmarks.annotation_extractor import (
    PLACEHOLDER_RECT,
    AnnotationExtractor,
    clean_content,
    parse_rect_values,
)
from pdfmarks.models import AnnotationKind, Rect
from pdfmarks.scanner import (
    IndirectRef,
    decode_pdf_string,
    find_array,
    find_dict_end,
    find_dict_start,
    iter_array_items,
    printable_stream,
    read_literal_string,
    read_string_value,
)

# Acrobat writes dictionary keys sorted, so /Type/Annot comes last
ACROBAT_NOTE = (
    "<</AP<</N 12 0 R>>/C[1.0 1.0 0.0]/Contents(Please fix this typo)"
    "/CreationDate(D:20240101120000Z)/F 4/M(D:20240101120000Z)/NM(a1b2)"
    "/P 3 0 R/Popup 7 0 R/Rect[100 200 120 220]/Subtype/Text"
    "/T(Jane Doe)/Type/Annot>>"
)


# ═══════════════════════════════════════════════════════════════════════════════
# SCANNER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestPrintableStream:
    """Test the strings-style flattening pass."""

    def test_empty_input(self):
        assert printable_stream(b"") == ""

    def test_binary_runs_become_spaces(self):
        data = b"hello\x00\x01world\xff\xfeabc\x02more text"
        # "abc" is shorter than 4 bytes and dropped
        assert printable_stream(data) == "hello world more text"

    def test_newlines_split_runs(self):
        assert printable_stream(b"<</Type/Annot\n/Subtype/Text>>") == (
            "<</Type/Annot /Subtype/Text>>"
        )


class TestDictionaryBounds:
    """Test the dictionary-bounds scanners."""

    def test_find_start_skips_closed_dictionaries(self):
        text = "<</AP<</N 5 0 R>>/Subtype/Text/Type/Annot"
        assert find_dict_start(text, len(text)) == 0

    def test_find_start_respects_lower_bound(self):
        text = "<</A 1>> junk /Type/Annot"
        assert find_dict_start(text, len(text), start=8) == -1

    def test_find_start_skips_strings(self):
        text = "<</Contents(a >> b << c)/T(x)/Type/Annot"
        assert find_dict_start(text, len(text)) == 0

    def test_find_start_falls_back_to_nearest_opener(self):
        text = "<</A 1>> junk /Type/Annot"
        assert find_dict_start(text, len(text)) == 0

    def test_find_end_skips_strings(self):
        text = "<</Contents(a >> b)/T(x)>> trailing"
        end = find_dict_end(text, 2)
        assert text[:end] == "<</Contents(a >> b)/T(x)>>"

    def test_find_end_unterminated(self):
        assert find_dict_end("<</Contents(abc)", 2) == -1


class TestLiteralStrings:
    """Test balanced-parenthesis string reading."""

    def test_nested_parentheses(self):
        text = "(a (b) c) rest"
        body, end = read_literal_string(text, 1)
        assert body == "a (b) c"
        assert text[end:] == " rest"

    def test_escaped_parentheses_do_not_nest(self):
        text = r"(Hello \(world\) test)/T(x)"
        body, _ = read_literal_string(text, 1)
        assert body == r"Hello \(world\) test"

    def test_unbalanced_returns_none(self):
        assert read_literal_string("(never closed", 1) is None

    def test_limit_bounds_scan(self):
        assert read_literal_string("(abc) def", 1, limit=3) is None

    def test_decode_octal_and_escapes(self):
        assert decode_pdf_string(r"caf\351\nnext") == "café\nnext"

    def test_decode_utf16_hex(self):
        assert decode_pdf_string("FEFF0041002D", is_hex=True) == "A-"

    def test_read_string_value_literal_and_hex(self):
        assert read_string_value("<< /P (A-) /S /D >>", "P") == "A-"
        assert read_string_value("<</P<FEFF0042>/St 2>>", "P") == "B"
        assert read_string_value("<</S/D/St 2>>", "P") is None

    def test_read_string_value_ignores_longer_keys(self):
        assert read_string_value("<</Prefix(x)>>", "P") is None


class TestArrayTokenizer:
    """Test tokenizing of PDF arrays."""

    def test_number_tree_items(self):
        body = find_array("<< /Nums [ 0 << /S /r >> 4 12 0 R ] >>", "Nums")
        items = list(iter_array_items(body))
        assert items[0] == 0
        assert items[1] == {"raw": "<< /S /r >>"}
        assert items[2] == 4
        assert items[3] == IndirectRef(12, 0)

    def test_compact_form(self):
        body = find_array("<</Nums[0<</S/D/St 5>>3 9 0 R]>>", "Nums")
        items = list(iter_array_items(body))
        assert items == [0, {"raw": "<</S/D/St 5>>"}, 3, IndirectRef(9, 0)]

    def test_plain_numbers_and_names(self):
        items = list(iter_array_items("1 2.5 /Name (str)"))
        assert items == [1, 2.5, "/Name", "str"]

    def test_missing_array(self):
        assert find_array("<< /Kids [ 1 0 R", "Kids") is None
        assert find_array("<< /Type /Catalog >>", "Nums") is None


# ═══════════════════════════════════════════════════════════════════════════════
# CONTENT CLEANING TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCleanContent:
    """Test heuristic cleanup of /Contents bodies."""

    def test_cuts_at_metadata(self):
        assert clean_content("Nice work)/CreationDate(D:2024") == "Nice work"
        assert clean_content("Check this /Rect[1 2 3 4]") == "Check this"

    def test_strips_markup_and_entities(self):
        raw = "<p>Bold &amp; <b>brave</b> &lt;3 &quot;ok&quot; &#233;t&#233;</p>"
        assert clean_content(raw) == 'Bold & brave <3 "ok" été'

    def test_unescapes_parentheses(self):
        assert clean_content(r"Hello \(world\) test") == "Hello (world) test"

    def test_collapses_whitespace_and_controls(self):
        assert clean_content("  a   b \x01\x02 c  ") == "a b c"
        # Tabs and newlines are control characters and vanish outright
        assert clean_content("line\none") == "lineone"

    def test_empty(self):
        assert clean_content("") == ""
        assert clean_content("<p></p>") == ""


# ═══════════════════════════════════════════════════════════════════════════════
# RECT TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestRectNormalization:
    """Rectangles are normalized whatever order the corners come in."""

    @pytest.mark.parametrize(
        "corners",
        [
            (10, 20, 50, 80),
            (50, 80, 10, 20),
            (10, 80, 50, 20),
            (50, 20, 10, 80),
        ],
    )
    def test_corner_orderings(self, corners):
        rect = Rect.from_corners(*corners)
        assert rect == Rect(x=10, y=20, width=40, height=60)
        assert rect.width >= 0 and rect.height >= 0

    def test_parse_rect_values(self):
        assert parse_rect_values("1 2.5 -3 4") == (1.0, 2.5, -3.0, 4.0)
        assert parse_rect_values("1 2 3") is None
        assert parse_rect_values("1 2 x 4") is None
        assert parse_rect_values("1 2 nan 4") is None


# ═══════════════════════════════════════════════════════════════════════════════
# EXTRACTOR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestAnnotationExtractor:
    """Test annotation extraction over raw PDF bytes."""

    def test_acrobat_sorted_keys(self, raw_pdf):
        data = raw_pdf("<</Type/Catalog/Pages 2 0 R>>", ACROBAT_NOTE)
        annotations = AnnotationExtractor().extract(data)

        assert len(annotations) == 1
        a = annotations[0]
        assert a.kind == AnnotationKind.COMMENT
        assert a.subtype == "Text"
        assert a.content == "Please fix this typo"
        assert a.author == "Jane Doe"
        assert a.rect == Rect(x=100, y=200, width=20, height=20)
        assert a.color == "#FFFF00"
        assert a.source == "external_import"

    def test_dictionary_delimiters_inside_contents(self, raw_pdf):
        data = raw_pdf(
            "<</Contents(Move A >> B)/Subtype/Text/T(Ann)/Type/Annot>>",
            "<</Contents(Swap << and >> here)/Subtype/Text/T(Bo)/Type/Annot>>",
        )
        annotations = AnnotationExtractor().extract(data)

        assert [a.author for a in annotations] == ["Ann", "Bo"]
        assert annotations[0].content == "Move A >> B"

    def test_type_first_dictionary(self, raw_pdf):
        data = raw_pdf(
            r"<</Type/Annot/Subtype/Highlight/Rect[50 60 10 20]"
            r"/Contents(Hello \(world\) test)/T(Bob)>>"
        )
        annotations = AnnotationExtractor().extract(data)

        assert len(annotations) == 1
        a = annotations[0]
        assert a.kind == AnnotationKind.HIGHLIGHT
        assert a.content == "Hello (world) test"
        assert a.rect == Rect(x=10, y=20, width=40, height=40)

    def test_subtype_mapping(self, raw_pdf):
        data = raw_pdf(
            "<</Contents(Approved)/Subtype/Stamp/Type/Annot>>",
            "<</Contents(Delete this)/Subtype/StrikeOut/Type/Annot>>",
            "<</Contents(Insert here)/Subtype/Caret/Type/Annot>>",
            "<</Contents(Underlined)/Subtype/Underline/Type/Annot>>",
        )
        annotations = AnnotationExtractor().extract(data)

        assert [(a.kind, a.color) for a in annotations] == [
            (AnnotationKind.VALIDATION, "#00FF00"),
            (AnnotationKind.CORRECTION, "#FF0000"),
            (AnnotationKind.CORRECTION, "#FF0000"),
            (AnnotationKind.HIGHLIGHT, "#00FF00"),
        ]

    def test_unsupported_subtype_skipped(self, raw_pdf):
        data = raw_pdf(
            "<</Contents(A link)/Rect[0 0 1 1]/Subtype/Link/Type/Annot>>",
            "<</Parent 5 0 R/Subtype/Popup/Type/Annot>>",
        )
        assert AnnotationExtractor().extract(data) == []

    def test_defaults_for_missing_fields(self, raw_pdf):
        data = raw_pdf("<</Contents(No author)/Subtype/FreeText/Type/Annot>>")
        a = AnnotationExtractor().extract(data)[0]
        assert a.author == "Acrobat"
        assert a.rect == PLACEHOLDER_RECT

    def test_configurable_fallback_author(self, raw_pdf):
        data = raw_pdf("<</Contents(Hi)/Subtype/Text/Type/Annot>>")
        a = AnnotationExtractor(fallback_author="Reviewer").extract(data)[0]
        assert a.author == "Reviewer"

    def test_malformed_rect_uses_placeholder(self, raw_pdf):
        data = raw_pdf("<</Contents(Hi)/Rect[1 2]/Subtype/Text/Type/Annot>>")
        assert AnnotationExtractor().extract(data)[0].rect == PLACEHOLDER_RECT

    def test_unbalanced_contents_discards_only_that_candidate(self, raw_pdf):
        data = raw_pdf(
            "<</Type/Annot/Subtype/Text/Contents(never closed>>",
            "<</Contents(Second one)/Subtype/Text/Type/Annot>>",
        )
        annotations = AnnotationExtractor().extract(data)
        assert [a.content for a in annotations] == ["Second one"]

    def test_empty_contents_skipped(self, raw_pdf):
        data = raw_pdf(
            "<</Contents()/Subtype/Text/Type/Annot>>",
            "<</Contents(<p> </p>)/Subtype/Text/Type/Annot>>",
            "<</Subtype/Text/Type/Annot>>",
        )
        assert AnnotationExtractor().extract(data) == []

    def test_scan_order_preserved(self, raw_pdf):
        data = raw_pdf(
            "<</Contents(first)/Subtype/Text/Type/Annot>>",
            "<</Contents(second)/Subtype/Highlight/Type/Annot>>",
            "<</Contents(third)/Subtype/Ink/Type/Annot>>",
        )
        contents = [a.content for a in AnnotationExtractor().extract(data)]
        assert contents == ["first", "second", "third"]

    def test_annots_array_is_not_a_marker(self, raw_pdf):
        data = raw_pdf(
            "<</Annots[4 0 R]/Contents(page)/Subtype/Text/Type/Page>>",
        )
        assert AnnotationExtractor().extract(data) == []

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"%PDF-1.4\n1 0 obj <</Type/Catalog>> endobj\n%%EOF",
            bytes(range(256)) * 16,
            b"/Type/Annot",
            b"<<<<<<(((( /Type/Annot /Contents( ))))>>",
            b"/Contents(x)/Subtype/Text/Type/Annot>>",
        ],
    )
    def test_never_raises(self, data):
        assert AnnotationExtractor().extract(data) == []

    def test_records_are_frozen(self, raw_pdf):
        data = raw_pdf("<</Contents(Hi)/Subtype/Text/Type/Annot>>")
        a = AnnotationExtractor().extract(data)[0]
        with pytest.raises(Exception):
            a.content = "changed"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
