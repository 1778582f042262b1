"""
Outline Tree Manager — sort, filter and expand-state reconciliation.

``reconcile()`` turns a freshly collected symbol list into the tree the
UI shows, carrying expand/collapse state over from the previous tree by
stable key.  The collected list itself is never mutated, so the filter
and sort passes can re-run on it without re-parsing.
"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from .symbols import SymbolNode, assign_stable_keys, clone_forest, find_path, walk

logger = logging.getLogger(__name__)


def _keyed(forest: List[SymbolNode], prefix: str = "") -> Iterator[Tuple[str, SymbolNode]]:
    for node in forest:
        key = prefix + "/" + node.key if prefix else node.key
        yield key, node
        if node.children:
            yield from _keyed(node.children, key)


def capture_expand_state(forest: List[SymbolNode]) -> Dict[str, bool]:
    """Map every node's key chain to its ``expanded`` flag."""
    return {key: node.expanded for key, node in _keyed(forest)}


def restore_expand_state(forest: List[SymbolNode], state: Dict[str, bool]) -> None:
    """Re-apply captured state; nodes without an entry default to expanded."""
    for key, node in _keyed(forest):
        node.expanded = state.get(key, True)


def sort_forest(forest: List[SymbolNode]) -> None:
    """Stable, case-insensitive sort of every sibling list, in place."""
    forest.sort(key=lambda n: n.display_name.casefold())
    for node in forest:
        if node.children:
            sort_forest(node.children)


def filter_forest(forest: List[SymbolNode], filter_text: str) -> List[SymbolNode]:
    """Keep nodes whose name matches, plus every ancestor of a match.

    Every kept node with kept children is expanded.
    """
    needle = filter_text.casefold()
    kept = []
    for node in forest:
        node.children = filter_forest(node.children, filter_text) if node.children else []
        self_match = needle in node.display_name.casefold()
        if node.children:
            node.expanded = True
        if self_match or node.children:
            kept.append(node)
    return kept


def reconcile(previous_tree: Optional[List[SymbolNode]], new_symbols: List[SymbolNode],
              sort_enabled: bool = False, filter_text: str = "") -> List[SymbolNode]:
    """Build the displayed tree from ``new_symbols``.

    Expand state is taken from ``previous_tree``; selection is cleared.
    """
    state = capture_expand_state(previous_tree or [])

    tree = clone_forest(new_symbols)
    assign_stable_keys(tree)
    if sort_enabled:
        sort_forest(tree)

    restore_expand_state(tree, state)
    for node in walk(tree):
        node.selected = False
        node.visible = True

    needle = filter_text.strip()
    if needle:
        tree = filter_forest(tree, needle)
    return tree


# ═══════════════════════════════════════════════════════════════════════
#  Displayed tree
# ═══════════════════════════════════════════════════════════════════════

class OutlineTree:
    """The tree currently shown.  Mutated on the interaction thread only."""

    def __init__(self):
        self.roots: List[SymbolNode] = []

    def rebuild(self, symbols: List[SymbolNode], sort_enabled: bool = False,
                filter_text: str = "") -> List[SymbolNode]:
        self.roots = reconcile(self.roots, symbols, sort_enabled, filter_text)
        return self.roots

    def clear(self):
        self.roots = []

    def __len__(self):
        return len(self.roots)

    def nodes(self) -> Iterator[SymbolNode]:
        return walk(self.roots)

    def find(self, stable_key: str) -> Optional[SymbolNode]:
        return next((n for n in walk(self.roots) if n.stable_key == stable_key), None)

    # ────────────────────────────────────────────────────────────────
    #  Expand / collapse / selection
    # ────────────────────────────────────────────────────────────────

    def set_expanded_all(self, expanded: bool):
        for node in walk(self.roots):
            node.expanded = expanded

    def expand_all(self):
        self.set_expanded_all(True)

    def collapse_all(self):
        self.set_expanded_all(False)

    def expand_ancestors(self, target: SymbolNode) -> bool:
        """Expand every ancestor of ``target``; False if it is not in the tree."""
        path = find_path(self.roots, target)
        if path is None:
            return False
        for ancestor in path[:-1]:
            ancestor.expanded = True
        return True

    def clear_selection(self):
        for node in walk(self.roots):
            node.selected = False

    def select(self, target: SymbolNode) -> bool:
        self.clear_selection()
        if not self.expand_ancestors(target):
            return False
        target.selected = True
        return True

    def selected(self) -> Optional[SymbolNode]:
        return next((n for n in walk(self.roots) if n.selected), None)


def format_outline(forest: List[SymbolNode], indent: int = 0,
                   include_collapsed: bool = True) -> str:
    """Plain-text rendering: one line per symbol, indented by depth."""
    lines: List[str] = []

    def visit(nodes: List[SymbolNode], depth: int):
        for node in nodes:
            marker = " *" if node.selected else ""
            decl = " [decl]" if node.is_declaration else ""
            lines.append(
                f"{'  ' * depth}{node.kind.value:<10} {node.display_name}{decl}"
                f"  (L{node.start_line}-{node.end_line}){marker}"
            )
            if node.children and (include_collapsed or node.expanded):
                visit(node.children, depth + 1)

    visit(forest, indent)
    return "\n".join(lines)
