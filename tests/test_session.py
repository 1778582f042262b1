"""
Outline session and settings tests:
  1. Status strings for unsupported / missing / active documents
  2. Filter debounce without reparsing, sort toggle
  3. Expand state and selection across reparses
  4. Follow-cursor and click navigation through the session
  5. Settings defaults and JSON loading
"""

import unittest
import os
import sys
import json
import shutil
import tempfile

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from birdseye.edits import replace_text
from birdseye.parser import language_name_for
from birdseye.session import STATUS_NO_DOCUMENT, STATUS_UNSUPPORTED, OutlineSession
from birdseye.settings import DEFAULT_EXTENSIONS, OutlineSettings, load_settings
from birdseye.symbols import walk
from fakes import FakeTimers, ManualExecutor

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")


def find(forest, name):
    return next((n for n in walk(forest) if n.display_name == name), None)


class SessionTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        for name in ("widget.cpp", "legacy.c", "shapes.hh", "notes.txt"):
            shutil.copy(os.path.join(MOCK_PROJECT, name), self.tmp)

        self.timers = FakeTimers()
        self.executor = ManualExecutor()
        self.published = []
        self.navigated = []
        self.session = OutlineSession(
            on_outline=self.published.append,
            navigator=lambda line, col: self.navigated.append((line, col)),
            executor=self.executor,
            timer_factory=self.timers,
            clock=self.timers.clock,
        )
        self.buffer = None

    def tearDown(self):
        self.session.shutdown()
        shutil.rmtree(self.tmp, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.tmp, name)

    def open(self, name):
        with open(self.path(name), encoding="utf-8") as f:
            self.buffer = f.read()
        return self.session.open_document(self.path(name), text_provider=lambda: self.buffer)

    def edit(self, start, end, new_text):
        change = replace_text(self.buffer, start, end, new_text)
        self.buffer = change.after
        return self.session.on_text_changed([change])

    @property
    def parse_count(self):
        return self.executor.submitted


class TestStatus(SessionTestCase):

    def test_initial_status(self):
        self.assertEqual(self.session.status, STATUS_NO_DOCUMENT)

    def test_unsupported_file_type(self):
        status = self.open("notes.txt")
        self.assertEqual(status, "No outline available for this file type.")
        self.assertEqual(self.parse_count, 0)
        self.assertEqual(self.session.tree.roots, [])

    def test_no_document(self):
        self.open("widget.cpp")
        status = self.session.open_document(None)
        self.assertEqual(status, "No active document.")
        self.assertEqual(self.session.tree.roots, [])
        self.assertEqual(self.published[-1], [])

    def test_active_document_shows_file_name(self):
        status = self.open("widget.cpp")
        self.assertEqual(status, "widget.cpp")
        self.assertEqual(self.parse_count, 1)
        self.assertIsNotNone(find(self.session.tree.roots, "Widget"))
        self.assertIs(self.published[-1], self.session.tree.roots)

    def test_file_name_shown_once_outline_is_populated(self):
        self.executor.immediate = False
        self.assertEqual(self.open("widget.cpp"), STATUS_NO_DOCUMENT)
        self.assertEqual(self.session.tree.roots, [])

        self.executor.run_next()
        self.assertEqual(self.session.status, "widget.cpp")
        self.assertIsNotNone(find(self.session.tree.roots, "Widget"))

    def test_hh_header_supported(self):
        self.assertEqual(self.open("shapes.hh"), "shapes.hh")
        self.assertIsNotNone(find(self.session.tree.roots, "Shape::~Shape()"))

    def test_c_file_uses_c_grammar(self):
        self.open("legacy.c")
        self.assertEqual(self.session.scheduler._parser.language_name, "c")
        self.assertIsNotNone(find(self.session.tree.roots, "int add(int, int)"))

    def test_reopening_same_document_is_noop(self):
        self.open("widget.cpp")
        self.open("widget.cpp")
        self.assertEqual(self.parse_count, 1)

    def test_edits_on_unsupported_document_ignored(self):
        self.open("notes.txt")
        self.assertEqual(self.session.status, STATUS_UNSUPPORTED)
        self.assertEqual(self.edit(0, 0, "x"), [])


class TestFilterAndSort(SessionTestCase):

    def setUp(self):
        super().setUp()
        self.open("widget.cpp")

    def test_filter_is_debounced(self):
        self.session.set_filter("res")
        self.assertIsNotNone(find(self.session.tree.roots, "Color"))

        self.timers.advance(0.2)
        self.session.set_filter("resize")
        self.timers.advance(0.2)
        self.assertIsNotNone(find(self.session.tree.roots, "Color"))

        self.timers.advance(0.1)
        self.assertIsNone(find(self.session.tree.roots, "Color"))
        self.assertIsNotNone(find(self.session.tree.roots, "void Widget::resize(int, int)"))

    def test_filter_does_not_reparse(self):
        self.session.set_filter("main")
        self.timers.advance(1)
        self.session.set_filter("")
        self.timers.advance(1)
        self.assertEqual(self.parse_count, 1)
        self.assertIsNotNone(find(self.session.tree.roots, "Color"))

    def test_sort_applies_immediately(self):
        self.session.set_sort(True)
        self.assertEqual([n.display_name for n in self.session.tree.roots],
                         ["int main(int, char**)", "SQUARE(x)", "ui", "WIDGET_VERSION"])
        self.session.set_sort(False)
        self.assertEqual([n.display_name for n in self.session.tree.roots],
                         ["WIDGET_VERSION", "SQUARE(x)", "ui", "int main(int, char**)"])


class TestReparseReconciliation(SessionTestCase):

    def setUp(self):
        super().setUp()
        self.open("widget.cpp")

    def test_collapsed_node_stays_collapsed_after_edit(self):
        find(self.session.tree.roots, "Widget").expanded = False

        anchor = self.buffer.index("int main")
        self.edit(anchor, anchor, "void added() {}\n\n")
        self.assertIsNone(find(self.session.tree.roots, "void added()"))

        self.timers.advance(5)
        self.assertIsNotNone(find(self.session.tree.roots, "void added()"))
        self.assertFalse(find(self.session.tree.roots, "Widget").expanded)
        self.assertTrue(find(self.session.tree.roots, "ui").expanded)

    def test_selection_follows_caret_after_rebuild(self):
        self.session.on_caret_moved(32)
        self.assertEqual(self.session.tree.selected().display_name,
                         "void Widget::resize(int, int)")

        self.edit(0, 0, "\n")
        self.timers.advance(5)
        self.assertEqual(self.session.tree.selected().display_name,
                         "void Widget::resize(int, int)")

    def test_expand_and_collapse_all(self):
        self.session.collapse_all()
        self.assertFalse(any(n.expanded for n in self.session.tree.nodes()))
        self.session.expand_all()
        self.assertTrue(all(n.expanded for n in self.session.tree.nodes()))


class TestCursorAndNavigation(SessionTestCase):

    def setUp(self):
        super().setUp()
        self.open("widget.cpp")

    def test_caret_selects_innermost_symbol(self):
        node = self.session.on_caret_moved(27)
        self.assertEqual(node.display_name, "void ui::Painter::paint()")
        self.assertIs(self.session.symbol_at(27), node)

    def test_follow_cursor_toggle(self):
        self.session.set_follow_cursor(False)
        self.assertIsNone(self.session.on_caret_moved(32))
        self.assertIsNone(self.session.tree.selected())

        node = self.session.set_follow_cursor(True)
        self.assertEqual(node.display_name, "void Widget::resize(int, int)")

    def test_activate_navigates(self):
        node = find(self.session.tree.roots, "int main(int, char**)")
        self.assertTrue(self.session.activate(node))
        self.assertEqual(self.navigated, [(37, 0)])


class TestSettings(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def write(self, content):
        path = os.path.join(self.tmp, "settings.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_defaults(self):
        s = OutlineSettings()
        self.assertEqual(s.edit_debounce_ms, 5000)
        self.assertEqual(s.filter_debounce_ms, 300)
        self.assertEqual(s.supported_extensions, DEFAULT_EXTENSIONS)

    def test_extension_matching_case_insensitive(self):
        s = OutlineSettings()
        self.assertTrue(s.is_supported("A/B/Widget.HH"))
        self.assertTrue(s.is_supported("x.cpp"))
        self.assertFalse(s.is_supported("notes.txt"))
        self.assertFalse(s.is_supported("Makefile"))
        self.assertEqual(language_name_for("legacy.C", s.c_extensions), "c")
        self.assertEqual(language_name_for("widget.cc", s.c_extensions), "cpp")

    def test_load_overrides(self):
        path = self.write(json.dumps({"edit_debounce_ms": 2000, "supported_extensions": [".cpp"]}))
        s = load_settings(path)
        self.assertEqual(s.edit_debounce_ms, 2000)
        self.assertEqual(s.filter_debounce_ms, 300)
        self.assertFalse(s.is_supported("a.h"))

    def test_missing_file_gives_defaults(self):
        with self.assertLogs("birdseye.settings", level="WARNING"):
            s = load_settings(os.path.join(self.tmp, "nope.json"))
        self.assertEqual(s, OutlineSettings())

    def test_unreadable_path_gives_defaults(self):
        with self.assertLogs("birdseye.settings", level="ERROR"):
            s = load_settings(self.tmp)
        self.assertEqual(s, OutlineSettings())

    def test_invalid_json_gives_defaults(self):
        with self.assertLogs("birdseye.settings", level="ERROR"):
            s = load_settings(self.write("{not json"))
        self.assertEqual(s, OutlineSettings())

    def test_invalid_value_gives_defaults(self):
        with self.assertLogs("birdseye.settings", level="ERROR"):
            s = load_settings(self.write(json.dumps({"edit_debounce_ms": "soon"})))
        self.assertEqual(s.edit_debounce_ms, 5000)

    def test_non_object_gives_defaults(self):
        with self.assertLogs("birdseye.settings", level="ERROR"):
            s = load_settings(self.write("[1, 2]"))
        self.assertEqual(s, OutlineSettings())

    def test_session_uses_settings(self):
        timers = FakeTimers()
        session = OutlineSession(settings=OutlineSettings(filter_debounce_ms=50),
                                 executor=ManualExecutor(), timer_factory=timers)
        session.set_filter("x")
        self.assertAlmostEqual(timers.armed[0].interval, 0.05)
        session.shutdown()


if __name__ == '__main__':
    unittest.main()
