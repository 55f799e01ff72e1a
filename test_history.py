#!/usr/bin/env python3
"""
Tests for the reading history file.
"""

import sys
import os
import json
import shutil
import tempfile
import unittest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from peruse.history import History, LAST_READ, PAGE


class TestHistory(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.history_file = os.path.join(self.temp_dir, "data", "history.json")
        self.pdf_path = os.path.join(self.temp_dir, "book.pdf")
        with open(self.pdf_path, 'wb') as f:
            f.write(b"%PDF-1.4")

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_empty_history(self):
        history = History(self.history_file)
        self.assertIsNone(history.read_last_page(self.pdf_path))
        self.assertIsNone(history.last_read_document())

    def test_save_and_reload(self):
        History(self.history_file).save(self.pdf_path, 7)
        history = History(self.history_file)
        self.assertEqual(history.read_last_page(self.pdf_path), 7)
        self.assertEqual(history.last_read_document(), os.path.abspath(self.pdf_path))

        with open(self.history_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
        self.assertEqual(data[PAGE], {os.path.abspath(self.pdf_path): 7})
        self.assertEqual(data[LAST_READ], os.path.abspath(self.pdf_path))

    def test_relative_paths_share_entry(self):
        history = History(self.history_file)
        cwd = os.getcwd()
        os.chdir(self.temp_dir)
        try:
            history.save("book.pdf", 3)
        finally:
            os.chdir(cwd)
        self.assertEqual(history.read_last_page(self.pdf_path), 3)

    def test_other_documents_are_kept(self):
        history = History(self.history_file)
        history.save("/elsewhere/a.pdf", 2)
        history.save(self.pdf_path, 9)
        reloaded = History(self.history_file)
        self.assertEqual(reloaded.read_last_page("/elsewhere/a.pdf"), 2)
        self.assertEqual(reloaded.read_last_page(self.pdf_path), 9)

    def test_corrupt_file_is_ignored(self):
        os.makedirs(os.path.dirname(self.history_file))
        with open(self.history_file, 'w', encoding='utf-8') as f:
            f.write("{not json")
        with self.assertLogs(level='ERROR'):
            history = History(self.history_file)
        self.assertIsNone(history.read_last_page(self.pdf_path))
        history.save(self.pdf_path, 4)
        self.assertEqual(History(self.history_file).read_last_page(self.pdf_path), 4)

    def test_invalid_page_values_are_ignored(self):
        os.makedirs(os.path.dirname(self.history_file))
        key = os.path.abspath(self.pdf_path)
        with open(self.history_file, 'w', encoding='utf-8') as f:
            json.dump({PAGE: {key: 0}}, f)
        self.assertIsNone(History(self.history_file).read_last_page(self.pdf_path))
        with open(self.history_file, 'w', encoding='utf-8') as f:
            json.dump({PAGE: {key: "5"}}, f)
        self.assertIsNone(History(self.history_file).read_last_page(self.pdf_path))

    def test_last_read_document_must_exist(self):
        history = History(self.history_file)
        history.save(self.pdf_path, 1)
        os.remove(self.pdf_path)
        self.assertIsNone(History(self.history_file).last_read_document())


if __name__ == '__main__':
    unittest.main()
