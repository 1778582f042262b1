"""
MCP server tests — tools are plain functions, so they are called directly:
  1. Module imports and registers every tool
  2. Stateless file tools (outline, symbol lookup, function list, AST dump)
  3. Error strings for missing / unsupported files
  4. Live-document flow through the full session pipeline
"""

import unittest
import os
import sys
import asyncio

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

import birdseye_server as server

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")
WIDGET = os.path.join(MOCK_PROJECT, "widget.cpp")
LEGACY = os.path.join(MOCK_PROJECT, "legacy.c")
NOTES = os.path.join(MOCK_PROJECT, "notes.txt")

EXPECTED_TOOLS = {
    "outline_file", "symbol_at_line", "list_functions", "dump_ast",
    "open_document", "edit_document", "get_outline", "set_filter",
    "set_sort", "follow_cursor", "activate_symbol", "expand_all",
}


class TestRegistration(unittest.TestCase):

    def test_all_tools_registered(self):
        tools = asyncio.run(server.mcp.list_tools())
        self.assertEqual({t.name for t in tools}, EXPECTED_TOOLS)


class TestFileTools(unittest.TestCase):

    def test_outline_file(self):
        result = server.outline_file(WIDGET)
        self.assertIn("**Outline of widget.cpp**", result)
        self.assertIn("Class      Widget", result)
        self.assertIn("void Widget::resize(int, int)", result)

    def test_outline_file_filtered_and_sorted(self):
        result = server.outline_file(WIDGET, sort=True, filter_text="paint")
        self.assertIn("Painter", result)
        self.assertNotIn("Color", result)

    def test_outline_c_file(self):
        result = server.outline_file(LEGACY)
        self.assertIn("Struct     point", result)
        self.assertIn("int add(int, int)", result)

    def test_symbol_at_line(self):
        result = server.symbol_at_line(WIDGET, 32)
        self.assertIn("**void Widget::resize(int, int)**", result)
        self.assertIn("Lines 31-33", result)

    def test_symbol_at_line_outside(self):
        self.assertIn("No symbol encloses line 2", server.symbol_at_line(WIDGET, 2))

    def test_list_functions(self):
        result = server.list_functions(WIDGET)
        self.assertIn("- Line 37: `int main(int, char**)`", result)
        self.assertIn("[declaration]", result)

    def test_dump_ast(self):
        result = server.dump_ast(WIDGET, max_lines=5)
        self.assertIn("translation_unit", result)
        self.assertIn("more nodes", result)

    def test_missing_file(self):
        self.assertTrue(server.outline_file("/no/such/file.cpp").startswith("Error:"))
        self.assertTrue(server.open_document("/no/such/file.cpp").startswith("Error:"))

    def test_unsupported_file(self):
        result = server.outline_file(NOTES)
        self.assertTrue(result.startswith("Error:"))
        self.assertIn("No outline available for this file type.", result)


class TestLiveDocument(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.opened = server.open_document(WIDGET)

    @classmethod
    def tearDownClass(cls):
        server._get_session().close_document()

    def test_01_open(self):
        self.assertEqual(self.opened, "Active document: widget.cpp")
        self.assertIn("Widget", server.get_outline())

    def test_02_edit_then_outline(self):
        offset = server._buffer.index("resize(int w, int h) {")
        result = server.edit_document(offset, offset + len("resize"), "reshape")
        self.assertIn("Applied 1 edit(s)", result)
        self.assertIn("debouncing", result)

        outline = server.get_outline()
        self.assertIn("void Widget::reshape(int, int)", outline)
        self.assertNotIn("void Widget::resize(int, int)", outline)

    def test_03_edit_out_of_range(self):
        self.assertTrue(server.edit_document(0, 10 ** 9, "x").startswith("Error:"))

    def test_04_filter(self):
        result = server.set_filter("Painter")
        self.assertIn("Painter", result)
        self.assertNotIn("int main", result)
        self.assertNotIn("Painter", server.set_filter("zzz_nothing"))
        self.assertIn("int main", server.set_filter(""))

    def test_05_sort(self):
        result = server.set_sort(True)
        self.assertLess(result.index("int main"), result.index("WIDGET_VERSION"))
        server.set_sort(False)

    def test_06_follow_cursor(self):
        result = server.follow_cursor(27)
        self.assertIn("Selected **void ui::Painter::paint()**", result)
        self.assertIn(" *", server.get_outline(flush=False))

    def test_07_activate_symbol(self):
        result = server.activate_symbol("Function:int main(int, char**)")
        self.assertEqual(result, "Navigated to line 37, column 0: int main(int, char**)")
        self.assertTrue(server.activate_symbol("Class:Missing").startswith("Error:"))

    def test_08_collapse_all(self):
        result = server.expand_all(False)
        self.assertNotIn("Color", result)
        self.assertIn("ui", result)
        self.assertIn("Color", server.expand_all(True))

    def test_09_reopen_keeps_edited_buffer(self):
        self.assertEqual(server.open_document(WIDGET), "Active document: widget.cpp")
        self.assertIn("reshape", server._buffer)
        self.assertIn("void Widget::reshape(int, int)", server.get_outline())

        offset = server._buffer.index("reshape")
        self.assertIn("Applied 1 edit(s)", server.edit_document(offset, offset + len("reshape"), "rescale"))
        self.assertIn("void Widget::rescale(int, int)", server.get_outline())


if __name__ == '__main__':
    unittest.main()
