#!/usr/bin/env python3
"""
Tests for PDF string parsing and bookmark title decoding.
"""

import sys
import os
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from peruse.decode import decode_title, find_string_value, parse_pdf_string
from peruse.errors import TitleDecodeError


class TestParsePdfString(unittest.TestCase):

    def test_hex_string(self):
        self.assertEqual(parse_pdf_string(b"<FEFF0041>"), b"\xfe\xff\x00A")

    def test_hex_string_with_whitespace_and_odd_digits(self):
        self.assertEqual(parse_pdf_string(b"<41 42\n4>"), b"AB@")

    def test_literal_escapes(self):
        self.assertEqual(parse_pdf_string(rb"(Chapter \(1\)\n)"), b"Chapter (1)\n")

    def test_octal_escapes(self):
        self.assertEqual(parse_pdf_string(rb"(\101\7\0537)"), b"A\x07+7")

    def test_line_continuation(self):
        self.assertEqual(parse_pdf_string(b"(two \\\r\nlines)"), b"two lines")

    def test_nested_parentheses(self):
        self.assertEqual(parse_pdf_string(b"(a (b) c)"), b"a (b) c")

    def test_not_a_string(self):
        with self.assertRaises(ValueError):
            parse_pdf_string(b"/Name")


class TestFindStringValue(unittest.TestCase):

    def test_literal_value(self):
        source = rb"<< /Title (Intro \(a\)) /Dest [3 0 R /Fit] >>"
        self.assertEqual(find_string_value(source, b"Title"), rb"(Intro \(a\))")

    def test_hex_value_skips_longer_key(self):
        source = b"<< /TitleX (no) /Title <FEFF0041> >>"
        self.assertEqual(find_string_value(source, b"Title"), b"<FEFF0041>")

    def test_missing_or_non_string(self):
        self.assertIsNone(find_string_value(b"<< /Dest [3 0 R] >>", b"Title"))
        self.assertIsNone(find_string_value(b"<< /Title 12 0 R >>", b"Title"))
        self.assertIsNone(find_string_value(b"<< /Title << >> >>", b"Title"))


class TestDecodeTitle(unittest.TestCase):

    def test_utf16_big_endian(self):
        self.assertEqual(decode_title(b"\xfe\xff" + "Anhang Ä".encode("utf-16-be")), "Anhang Ä")

    def test_utf16_little_endian(self):
        self.assertEqual(decode_title(b"\xff\xfe" + "Index".encode("utf-16-le")), "Index")

    def test_utf8_with_and_without_bom(self):
        self.assertEqual(decode_title(b"\xef\xbb\xbfCaf\xc3\xa9"), "Café")
        self.assertEqual(decode_title("Café".encode("utf-8")), "Café")

    def test_latin1_title_without_bom(self):
        self.assertEqual(decode_title(b"Caf\xe9"), "Café")
        self.assertEqual(decode_title(b"R\xe9sum\xe9 du livre"), "Résumé du livre")

    def test_detected_cjk_title(self):
        title = "第一章 总则：本手册适用于所有的文档和书签"
        self.assertEqual(decode_title(title.encode("gb18030")), title)

    def test_empty_title(self):
        self.assertEqual(decode_title(b""), "")

    def test_text_passes_through(self):
        self.assertEqual(decode_title("already text"), "already text")

    def test_truncated_utf16(self):
        with self.assertRaises(UnicodeError):
            decode_title(b"\xfe\xff\x00")

    def test_no_encoding_matches(self):
        no_match = MagicMock()
        no_match.best.return_value = None
        with patch('peruse.decode.from_bytes', return_value=no_match):
            with self.assertRaises(TitleDecodeError):
                decode_title(b"\x81\x8d\x8f")


if __name__ == '__main__':
    unittest.main()
