"""
Bird's Eye Outline — MCP Server

Exposes the C/C++ outline pipeline over the Model Context Protocol:

  1.  outline_file     — hierarchical outline of a file on disk
  2.  symbol_at_line   — deepest symbol enclosing a line
  3.  list_functions   — flat function jump list
  4.  dump_ast         — raw tree-sitter AST (grammar investigation)

  Live document (drives the full debounced/incremental session):
  5.  open_document    — make a file the active document
  6.  edit_document    — replace a range of the live buffer
  7.  get_outline      — flush pending edits and render the outline
  8.  set_filter       — name filter (substring, case-insensitive)
  9.  set_sort         — alphabetical sort toggle
 10.  follow_cursor    — select the symbol under a caret line
 11.  activate_symbol  — navigate to a symbol by its stable key
 12.  expand_all       — expand or collapse every node
"""

from mcp.server.fastmcp import FastMCP
import os
import sys
import logging
import threading

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from birdseye.collector import collect, list_functions as collect_functions
from birdseye.cursor import find_deepest_containing
from birdseye.edits import replace_text
from birdseye.outline_tree import format_outline, reconcile
from birdseye.parser import dump_tree, parser_for_path, read_source
from birdseye.session import OutlineSession
from birdseye.settings import load_settings

logger = logging.getLogger("birdseye.server")

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("Bird's Eye Outline")

settings = load_settings(os.environ.get("BIRDSEYE_SETTINGS"))

session = None
_buffer = None
_buffer_lock = threading.Lock()
_last_navigation = None


def _read_buffer():
    with _buffer_lock:
        return _buffer


def _on_navigate(line: int, column: int):
    global _last_navigation
    _last_navigation = (line, column)


def _get_session() -> OutlineSession:
    global session
    if session is None:
        session = OutlineSession(settings=settings, navigator=_on_navigate)
    return session


def _parse_file(file_path: str):
    """Parse a file on disk.  Returns (source_text, tree, error_message)."""
    if not os.path.exists(file_path):
        return None, None, f"Error: File not found at {file_path}"
    if not settings.is_supported(file_path):
        return None, None, f"Error: {file_path}: No outline available for this file type."

    source_text = read_source(file_path)
    if source_text is None:
        return None, None, f"Error: Cannot read {file_path}"

    tree = parser_for_path(file_path, settings.c_extensions).parse(source_text)
    if tree is None:
        return None, None, f"Error: Parser produced no tree for {file_path}"
    return source_text, tree, None


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1 — Outline File
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def outline_file(file_path: str, sort: bool = False, filter_text: str = "") -> str:
    """
    Returns the hierarchical symbol outline of a C/C++ source file.

    Args:
        file_path:   Path of the source file.
        sort:        Sort siblings alphabetically (case-insensitive).
        filter_text: Keep only symbols whose name contains this text,
                     plus their ancestors.
    """
    source_text, tree, error = _parse_file(file_path)
    if error:
        return error

    try:
        symbols = reconcile(None, collect(tree.root_node, source_text), sort, filter_text)
    except Exception as e:
        return f"Error building outline: {e}"

    if not symbols:
        return f"No symbols found in {file_path}"
    return f"**Outline of {os.path.basename(file_path)}**\n\n```\n{format_outline(symbols)}\n```"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2 — Symbol At Line
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def symbol_at_line(file_path: str, line: int) -> str:
    """
    Finds the innermost symbol whose range contains a line.

    Args:
        file_path: Path of the source file.
        line:      1-indexed line number.
    """
    source_text, tree, error = _parse_file(file_path)
    if error:
        return error

    symbols = collect(tree.root_node, source_text)
    node = find_deepest_containing(symbols, line)
    if node is None:
        return f"No symbol encloses line {line} of {file_path}"
    return (
        f"**{node.display_name}** ({node.kind.value}, {node.access.value})\n"
        f"Lines {node.start_line}-{node.end_line}, column {node.start_column}"
    )


# ═══════════════════════════════════════════════════════════════════════
#  Tool 3 — List Functions
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_functions(file_path: str) -> str:
    """
    Flat list of every function definition and prototype in a file.

    Args:
        file_path: Path of the source file.
    """
    source_text, tree, error = _parse_file(file_path)
    if error:
        return error

    entries = collect_functions(tree.root_node, source_text)
    if not entries:
        return f"No functions found in {file_path}"

    result = f"**{len(entries)} functions in {os.path.basename(file_path)}:**\n\n"
    for entry in entries:
        badge = " [declaration]" if entry.is_declaration else ""
        result += f"- Line {entry.line}: `{entry.name}`{badge}\n"
    return result


# ═══════════════════════════════════════════════════════════════════════
#  Tool 4 — Dump AST
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def dump_ast(file_path: str, max_lines: int = 400) -> str:
    """
    Dumps the raw tree-sitter AST of a file, one node per line.

    Args:
        file_path: Path of the source file.
        max_lines: Truncate the dump after this many lines.
    """
    source_text, tree, error = _parse_file(file_path)
    if error:
        return error

    lines = dump_tree(tree.root_node, source_text).splitlines()
    text = "\n".join(lines[:max_lines])
    if len(lines) > max_lines:
        text += f"\n... ({len(lines) - max_lines} more nodes)"
    return f"```\n{text}\n```"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 5-12 — Live Document Session
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def open_document(file_path: str) -> str:
    """
    Makes a file the active document and starts a full parse.

    The file contents become the live buffer that edit_document modifies.
    Re-opening the active document keeps its edited buffer.

    Args:
        file_path: Path of the source file.
    """
    global _buffer
    if not os.path.exists(file_path):
        return f"Error: File not found at {file_path}"

    s = _get_session()
    if s.is_active(file_path):
        return f"Active document: {s.status}"

    with _buffer_lock:
        _buffer = read_source(file_path)

    s.open_document(file_path, text_provider=_read_buffer)
    s.scheduler.wait_until_idle(timeout=30)
    return f"Active document: {s.status}"


@mcp.tool()
def edit_document(start: int, end: int, new_text: str) -> str:
    """
    Replaces buffer[start:end] with new_text in the active document.

    The outline is not rebuilt until the edit debounce elapses or
    get_outline is called.

    Args:
        start:    Start offset (character index).
        end:      End offset (exclusive).
        new_text: Replacement text.
    """
    global _buffer
    s = _get_session()
    if s.document is None or _buffer is None:
        return "Error: No active document. Call open_document first."
    if start < 0 or end < start or end > len(_buffer):
        return f"Error: Range {start}-{end} outside buffer of length {len(_buffer)}"

    with _buffer_lock:
        change = replace_text(_buffer, start, end, new_text)
        _buffer = change.after
    edits = s.on_text_changed([change])
    return f"Applied {len(edits)} edit(s). Scheduler: {s.scheduler.state.value}"


@mcp.tool()
def get_outline(flush: bool = True) -> str:
    """
    Renders the outline of the active document.

    Args:
        flush: Reparse pending edits now instead of waiting for the debounce.
    """
    s = _get_session()
    if s.document is None:
        return "Error: No active document. Call open_document first."

    if flush:
        s.scheduler.flush()
        s.scheduler.wait_until_idle(timeout=30)

    if not s.tree.roots:
        return s.status
    return f"**{s.status}**\n\n```\n{format_outline(s.tree.roots, include_collapsed=False)}\n```"


@mcp.tool()
def set_filter(filter_text: str = "") -> str:
    """
    Filters the live outline by name (case-insensitive substring).

    Args:
        filter_text: Text to match; empty clears the filter.
    """
    s = _get_session()
    s.set_filter(filter_text)
    s.filter_debouncer.flush()
    return get_outline(flush=False)


@mcp.tool()
def set_sort(enabled: bool) -> str:
    """
    Toggles alphabetical sorting of the live outline.

    Args:
        enabled: True to sort siblings by name, False for source order.
    """
    s = _get_session()
    s.set_sort(enabled)
    return get_outline(flush=False)


@mcp.tool()
def follow_cursor(line: int) -> str:
    """
    Selects the innermost outline symbol that contains a caret line.

    Args:
        line: 1-indexed caret line.
    """
    s = _get_session()
    if s.document is None:
        return "Error: No active document. Call open_document first."

    node = s.follow.sync(line) if s.follow.enabled else None
    if node is None:
        return f"No symbol encloses line {line}"
    return f"Selected **{node.display_name}** ({node.kind.value}) at line {node.start_line}"


@mcp.tool()
def activate_symbol(stable_key: str) -> str:
    """
    Navigates to an outline symbol, as if it had been clicked.

    Args:
        stable_key: Key chain of the symbol, e.g. "Namespace:app/Class:Foo".
    """
    s = _get_session()
    node = s.tree.find(stable_key)
    if node is None:
        return f"Error: No symbol with key {stable_key}"
    if not s.activate(node):
        return f"Error: Could not navigate to {node.display_name}"
    line, column = _last_navigation
    return f"Navigated to line {line}, column {column}: {node.display_name}"


@mcp.tool()
def expand_all(expanded: bool = True) -> str:
    """
    Expands or collapses every node of the live outline.

    Args:
        expanded: True to expand all, False to collapse all.
    """
    s = _get_session()
    if expanded:
        s.expand_all()
    else:
        s.collapse_all()
    return get_outline(flush=False)


def main():
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get("BIRDSEYE_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if hasattr(mcp, "_tool_manager") and hasattr(mcp._tool_manager, "_tools"):
            tools = mcp._tool_manager._tools.keys()
            logger.info("Bird's Eye Outline starting with %d tools: %s", len(tools), list(tools))
    except Exception as e:
        logger.debug("Cannot inspect tools: %s", e)

    mcp.run()


if __name__ == "__main__":
    main()
