"""
Symbol model — the outline entries produced by the collector.

  • SymbolKind / AccessLevel enums
  • SymbolNode: one outline entry with transient UI state
  • Stable keys used to re-associate expand state across rebuilds
  • Tree walking helpers shared by the tree manager and cursor locator
"""

import copy
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════
#  Enums
# ═══════════════════════════════════════════════════════════════════════

class SymbolKind(str, Enum):
    NAMESPACE = "Namespace"
    CLASS = "Class"
    STRUCT = "Struct"
    UNION = "Union"
    ENUM = "Enum"
    ENUM_MEMBER = "EnumMember"
    FUNCTION = "Function"
    FIELD = "Field"
    VARIABLE = "Variable"
    MACRO = "Macro"
    TYPEDEF = "TypeDef"
    USING_ALIAS = "UsingAlias"


class AccessLevel(str, Enum):
    PUBLIC = "Public"
    PRIVATE = "Private"
    PROTECTED = "Protected"


# Icon identifiers per kind.  Kinds listed in _ACCESS_ICONS get an access
# suffix (e.g. "MethodPrivate"); the rest use a fixed icon.
_ACCESS_ICONS: Dict[SymbolKind, str] = {
    SymbolKind.CLASS: "Class",
    SymbolKind.STRUCT: "Structure",
    SymbolKind.ENUM: "Enumeration",
    SymbolKind.FUNCTION: "Method",
    SymbolKind.FIELD: "Field",
    SymbolKind.VARIABLE: "Field",
}

_FIXED_ICONS: Dict[SymbolKind, str] = {
    SymbolKind.NAMESPACE: "Namespace",
    SymbolKind.UNION: "UnionPublic",
    SymbolKind.ENUM_MEMBER: "EnumerationItemPublic",
    SymbolKind.MACRO: "MacroPublic",
    SymbolKind.TYPEDEF: "TypeDefinitionPublic",
    SymbolKind.USING_ALIAS: "TypeDefinitionPublic",
}


def icon_name(kind: SymbolKind, access: AccessLevel) -> str:
    """Map a symbol kind + access level to its outline icon identifier."""
    if kind in _FIXED_ICONS:
        return _FIXED_ICONS[kind]
    base = _ACCESS_ICONS.get(kind, "Field")
    return base + access.value


# ═══════════════════════════════════════════════════════════════════════
#  SymbolNode
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SymbolNode:
    """One entry in the document outline."""
    display_name: str           # e.g. "int Foo::Bar(int, char*)"
    kind: SymbolKind
    access: AccessLevel = AccessLevel.PUBLIC
    start_line: int = 0         # 1-indexed
    start_column: int = 0       # 0-indexed
    end_line: int = 0           # 1-indexed
    children: List["SymbolNode"] = field(default_factory=list)
    is_declaration: bool = False    # prototype without a body
    stable_key: str = ""

    # Transient UI state, excluded from equality
    expanded: bool = field(default=True, compare=False)
    selected: bool = field(default=False, compare=False)
    visible: bool = field(default=True, compare=False)

    @property
    def key(self) -> str:
        """Local key: kind + display name, without the ancestor chain."""
        return f"{self.kind.value}:{self.display_name}"

    @property
    def icon(self) -> str:
        return icon_name(self.kind, self.access)

    @property
    def position(self) -> Tuple[int, int]:
        """Navigation target as (1-indexed line, 0-indexed column)."""
        return self.start_line, self.start_column

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def __repr__(self):
        return f"<{self.kind.value} {self.display_name!r} {self.start_line}-{self.end_line}>"


# ═══════════════════════════════════════════════════════════════════════
#  Tree helpers
# ═══════════════════════════════════════════════════════════════════════

def assign_stable_keys(forest: List[SymbolNode], prefix: str = "") -> None:
    """Set ``stable_key`` on every node as ``parent_key + "/" + key``."""
    for node in forest:
        node.stable_key = prefix + "/" + node.key if prefix else node.key
        if node.children:
            assign_stable_keys(node.children, node.stable_key)


def walk(forest: List[SymbolNode]) -> Iterator[SymbolNode]:
    """Depth-first pre-order iteration over a forest."""
    for node in forest:
        yield node
        if node.children:
            yield from walk(node.children)


def find_path(forest: List[SymbolNode], target: SymbolNode) -> Optional[List[SymbolNode]]:
    """Return the ancestor chain from a root down to ``target`` (inclusive).

    Matching is by identity so two equal-looking overloads are never confused.
    """
    for node in forest:
        if node is target:
            return [node]
        if node.children:
            sub = find_path(node.children, target)
            if sub is not None:
                return [node] + sub
    return None


def clone_forest(forest: List[SymbolNode]) -> List[SymbolNode]:
    return copy.deepcopy(forest)


def count_symbols(forest: List[SymbolNode]) -> int:
    return sum(1 for _ in walk(forest))
