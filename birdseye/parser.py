"""
Parser seam — wraps tree-sitter for C and C++ sources.

  • Grammar selection per file extension (.c → C, everything else → C++)
  • Full and incremental parses (old tree + applied edits)
  • Source loading with binary guard and live-buffer fallback
  • Raw AST dump for investigating grammar shapes
"""

import os
import logging
from typing import Callable, Dict, List, Optional

import tree_sitter_c as tsc
import tree_sitter_cpp as tscpp
from tree_sitter import Language, Node, Parser, Tree

logger = logging.getLogger(__name__)

C_LANGUAGE = Language(tsc.language())
CPP_LANGUAGE = Language(tscpp.language())

_LANGUAGES: Dict[str, Language] = {
    "c": C_LANGUAGE,
    "cpp": CPP_LANGUAGE,
}


def language_name_for(file_path: str, c_extensions: Optional[List[str]] = None) -> str:
    """Grammar key for a file: ``"c"`` for C sources, ``"cpp"`` otherwise."""
    c_exts = {e.lower() for e in (c_extensions or [".c"])}
    ext = os.path.splitext(file_path or "")[1].lower()
    return "c" if ext in c_exts else "cpp"


class SourceParser:
    """One tree-sitter parser bound to a grammar.

    A parser instance is not shared between threads; the scheduler owns
    one per document and never runs two parses on it at once.
    """

    def __init__(self, language_name: str = "cpp"):
        if language_name not in _LANGUAGES:
            raise ValueError(f"Unknown grammar: {language_name}")
        self.language_name = language_name
        self._parser = Parser(_LANGUAGES[language_name])

    def parse(self, source_text: str, old_tree: Optional[Tree] = None) -> Optional[Tree]:
        """Parse ``source_text``; reuse ``old_tree`` for an incremental parse.

        ``old_tree`` must already have every edit since its own parse applied.
        Returns None if the parser produced no tree.
        """
        source = source_text.encode("utf-8")
        try:
            if old_tree is not None:
                tree = self._parser.parse(source, old_tree=old_tree)
            else:
                tree = self._parser.parse(source)
        except Exception as e:
            logger.warning("tree-sitter (%s) failed to parse %d bytes: %s",
                           self.language_name, len(source), e)
            return None
        if tree is None:
            logger.warning("tree-sitter (%s) returned no tree", self.language_name)
        return tree


def parser_for_path(file_path: str, c_extensions: Optional[List[str]] = None) -> SourceParser:
    return SourceParser(language_name_for(file_path, c_extensions))


# ═══════════════════════════════════════════════════════════════════════
#  Source loading
# ═══════════════════════════════════════════════════════════════════════

def read_source(file_path: str, fallback: Optional[Callable[[], Optional[str]]] = None) -> Optional[str]:
    """Read a source file from disk.

    Falls back to ``fallback()`` (typically the live editor buffer) when the
    file cannot be read or looks binary.  Returns None if neither works.
    """
    try:
        with open(file_path, "rb") as f:
            raw = f.read()
        if b"\x00" in raw[:8192]:
            logger.warning("Skipping binary file: %s", file_path)
        else:
            return raw.decode("utf-8", errors="replace")
    except OSError as e:
        logger.warning("Cannot read %s: %s", file_path, e)

    if fallback is not None:
        try:
            text = fallback()
        except Exception as e:
            logger.warning("Live buffer unavailable for %s: %s", file_path, e)
            return None
        if text is not None:
            logger.debug("Using live buffer text for %s", file_path)
        return text
    return None


# ═══════════════════════════════════════════════════════════════════════
#  Debug dump
# ═══════════════════════════════════════════════════════════════════════

def dump_tree(node: Node, source_text: str, max_text: int = 40) -> str:
    """Indented dump of the raw AST: node type, 1-based line, short text."""
    source = source_text.encode("utf-8")
    lines: List[str] = []

    def visit(n: Node, depth: int):
        content = ""
        if n.end_byte - n.start_byte < max_text:
            text = source[n.start_byte:n.end_byte].decode("utf-8", errors="replace")
            text = text.replace("\n", "\\n").replace("\r", "")
            content = f' "{text}"'
        lines.append(f"{'  ' * depth}{n.type}  (line {n.start_point[0] + 1}){content}")
        for child in n.children:
            visit(child, depth + 1)

    visit(node, 0)
    return "\n".join(lines)
