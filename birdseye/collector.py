"""
Symbol Collector — tree-sitter C/C++ AST → hierarchical outline.

Recursive descent over the AST carrying an immutable TraversalContext:

  • scope_path            enclosing namespace / type names
  • access                running access level inside a type body
  • inside_function_body  suppresses spurious nested function definitions
  • enclosing_type_name   used to recognise in-class constructors

Access specifiers thread through preprocessor conditionals: the walker
returns the context it ended with, so ``#ifdef``/``#else`` branches see
the access level set before them.  Any failure inside one child subtree
is logged and that subtree contributes nothing; siblings continue.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from tree_sitter import Node

from .declarators import (
    extract_declarator_name,
    find_function_declarator,
    format_parameters,
    format_signature,
    get_function_name,
    get_parameter_list,
    get_return_type,
    is_special_member_function,
    node_text,
    parse_access_specifier,
    qualify,
)
from .symbols import AccessLevel, SymbolKind, SymbolNode, assign_stable_keys, walk

logger = logging.getLogger(__name__)

TYPE_SPECIFIERS = {
    "class_specifier": SymbolKind.CLASS,
    "struct_specifier": SymbolKind.STRUCT,
    "union_specifier": SymbolKind.UNION,
}

PREPROC_CONDITIONALS = {
    "preproc_if", "preproc_ifdef", "preproc_ifndef",
    "preproc_else", "preproc_elif", "preproc_elifdef",
}

# Node types still visited inside a function body: local types only
_BODY_VISIBLE = set(TYPE_SPECIFIERS) | {
    "enum_specifier", "declaration", "compound_statement",
}

_ACCESS = {
    "public": AccessLevel.PUBLIC,
    "private": AccessLevel.PRIVATE,
    "protected": AccessLevel.PROTECTED,
}


@dataclass(frozen=True)
class TraversalContext:
    scope_path: Tuple[str, ...] = ()
    access: AccessLevel = AccessLevel.PUBLIC
    inside_function_body: bool = False
    enclosing_type_name: Optional[str] = None


@dataclass
class FunctionEntry:
    """One row of the flat function jump list."""
    name: str               # scope-qualified display name
    line: int               # 1-indexed
    column: int
    is_declaration: bool = False


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

def collect(root: Node, source_text: str) -> List[SymbolNode]:
    """Build the outline forest for an already-parsed tree.

    Never raises: a failure at the top level yields an empty outline.
    """
    try:
        forest = SymbolCollector(source_text).collect(root)
    except Exception as e:
        logger.error("Outline collection failed: %s", e)
        return []
    assign_stable_keys(forest)
    return forest


def list_functions(root: Node, source_text: str) -> List[FunctionEntry]:
    """Every accepted function definition / prototype, in source order."""
    return [
        FunctionEntry(
            name=node.display_name,
            line=node.start_line,
            column=node.start_column,
            is_declaration=node.is_declaration,
        )
        for node in walk(collect(root, source_text))
        if node.kind == SymbolKind.FUNCTION
    ]


# ═══════════════════════════════════════════════════════════════════════
#  Collector
# ═══════════════════════════════════════════════════════════════════════

class SymbolCollector:

    def __init__(self, source_text: str):
        self.source = source_text.encode("utf-8")

    def collect(self, root: Node) -> List[SymbolNode]:
        results: List[SymbolNode] = []
        self._collect_children(root, TraversalContext(), results)
        return results

    # ────────────────────────────────────────────────────────────────
    #  Walking
    # ────────────────────────────────────────────────────────────────

    def _collect_children(self, parent: Node, ctx: TraversalContext,
                          out: List[SymbolNode]) -> TraversalContext:
        """Visit the children of ``parent``; return the context left at the end."""
        for child in parent.children:
            ntype = child.type

            if ntype == "access_specifier":
                level = parse_access_specifier(child, self.source)
                ctx = replace(ctx, access=_ACCESS[level])
                continue

            if ntype in PREPROC_CONDITIONALS:
                ctx = self._collect_children(child, ctx, out)
                continue

            produced: List[SymbolNode] = []
            try:
                self._dispatch(child, ctx, produced)
            except Exception as e:
                logger.warning(
                    "Skipping %s at line %d: %s", ntype, child.start_point[0] + 1, e
                )
                continue
            out.extend(produced)
        return ctx

    def _dispatch(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        ntype = node.type

        if ctx.inside_function_body and ntype not in _BODY_VISIBLE:
            return

        if ntype == "namespace_definition":
            self._handle_namespace(node, ctx, out)
        elif ntype in TYPE_SPECIFIERS:
            self._handle_type(node, ctx, out, TYPE_SPECIFIERS[ntype])
        elif ntype == "enum_specifier":
            self._handle_enum(node, ctx, out)
        elif ntype == "function_definition":
            self._handle_function(node, ctx, out)
        elif ntype == "declaration":
            self._handle_declaration(node, ctx, out)
        elif ntype == "field_declaration":
            self._handle_field_declaration(node, ctx, out)
        elif ntype == "preproc_def":
            self._handle_macro(node, out, with_params=False)
        elif ntype == "preproc_function_def":
            self._handle_macro(node, out, with_params=True)
        elif ntype == "type_definition":
            self._handle_typedef(node, ctx, out)
        elif ntype == "alias_declaration":
            self._handle_alias(node, ctx, out)
        elif ntype == "template_declaration":
            self._handle_template(node, ctx, out)
        elif ntype == "linkage_specification":
            self._handle_linkage(node, ctx, out)
        elif ntype == "compound_statement":
            self._collect_children(node, ctx, out)
        # comments, includes, statements, friend / using declarations: skipped

    # ────────────────────────────────────────────────────────────────
    #  Containers
    # ────────────────────────────────────────────────────────────────

    def _handle_namespace(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        name = self._field_text(node, "name") or "<anonymous>"
        item = self._make_item(name, SymbolKind.NAMESPACE, AccessLevel.PUBLIC, node)

        body = node.child_by_field_name("body")
        if body is not None:
            inner = replace(ctx, scope_path=ctx.scope_path + (name,), access=AccessLevel.PUBLIC)
            self._collect_children(body, inner, item.children)
        out.append(item)

    def _handle_type(self, node: Node, ctx: TraversalContext, out: List[SymbolNode],
                     kind: SymbolKind):
        body = node.child_by_field_name("body")
        if body is None:
            # forward declaration / elaborated type reference
            return

        name = self._field_text(node, "name") or "<anonymous>"
        item = self._make_item(name, kind, ctx.access, node)

        inner = TraversalContext(
            scope_path=ctx.scope_path + (name,),
            access=AccessLevel.PRIVATE if kind == SymbolKind.CLASS else AccessLevel.PUBLIC,
            inside_function_body=False,
            enclosing_type_name=name.split("<", 1)[0].strip(),
        )
        self._collect_children(body, inner, item.children)
        out.append(item)

    def _handle_enum(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        body = node.child_by_field_name("body")
        if body is None:
            return

        name = self._field_text(node, "name") or "<anonymous enum>"
        item = self._make_item(name, SymbolKind.ENUM, ctx.access, node)
        self._collect_enumerators(body, item.children)
        out.append(item)

    def _collect_enumerators(self, body: Node, out: List[SymbolNode]):
        for child in body.children:
            if child.type == "enumerator":
                name = self._field_text(child, "name")
                if name:
                    out.append(self._make_item(
                        name, SymbolKind.ENUM_MEMBER, AccessLevel.PUBLIC, child
                    ))
            elif child.type in PREPROC_CONDITIONALS:
                self._collect_enumerators(child, out)

    # ────────────────────────────────────────────────────────────────
    #  Functions and declarations
    # ────────────────────────────────────────────────────────────────

    def _handle_function(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        # C++ has no nested function definitions; these are misparses
        if ctx.inside_function_body:
            return

        # Macro invocations like INDENT_SCOPE() { … } have no return type
        if node.child_by_field_name("type") is None:
            if not is_special_member_function(node, self.source, ctx.enclosing_type_name):
                return

        name = qualify(get_function_name(node, self.source), list(ctx.scope_path))
        display = format_signature(
            get_return_type(node, self.source),
            name,
            get_parameter_list(node, self.source),
        )
        item = self._make_item(display, SymbolKind.FUNCTION, ctx.access, node)

        body = node.child_by_field_name("body")
        if body is not None:
            self._collect_children(body, replace(ctx, inside_function_body=True), item.children)
        out.append(item)

    def _handle_declaration(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        type_node = node.child_by_field_name("type")
        self._collect_inline_type(type_node, ctx, out)

        if ctx.inside_function_body:
            return

        return_type = get_return_type(node, self.source)
        for declarator in node.children_by_field_name("declarator"):
            func_decl = find_function_declarator(declarator)
            if func_decl is not None:
                if type_node is None and not is_special_member_function(
                        node, self.source, ctx.enclosing_type_name):
                    continue
                out.append(self._function_prototype(node, declarator, func_decl,
                                                    return_type, ctx))
            else:
                name = extract_declarator_name(declarator, self.source)
                display = (return_type + " " if return_type else "") + name
                out.append(self._make_item(display, SymbolKind.VARIABLE, ctx.access, node))

    def _handle_field_declaration(self, node: Node, ctx: TraversalContext,
                                  out: List[SymbolNode]):
        type_node = node.child_by_field_name("type")
        self._collect_inline_type(type_node, ctx, out)

        return_type = get_return_type(node, self.source)
        for declarator in node.children_by_field_name("declarator"):
            func_decl = find_function_declarator(declarator)
            if func_decl is not None:
                out.append(self._function_prototype(node, declarator, func_decl,
                                                    return_type, ctx))
            else:
                name = extract_declarator_name(declarator, self.source)
                display = (return_type + " " if return_type else "") + name
                out.append(self._make_item(display, SymbolKind.FIELD, ctx.access, node))

    def _function_prototype(self, node: Node, declarator: Node, func_decl: Node,
                            return_type: str, ctx: TraversalContext) -> SymbolNode:
        """Function entry for a prototype or a function-pointer declarator."""
        name = qualify(extract_declarator_name(declarator, self.source), list(ctx.scope_path))
        display = format_signature(return_type, name, format_parameters(func_decl, self.source))
        item = self._make_item(display, SymbolKind.FUNCTION, ctx.access, node)

        inner = func_decl.child_by_field_name("declarator")
        is_pointer = inner is not None and inner.type == "parenthesized_declarator"
        item.is_declaration = not is_pointer
        return item

    def _collect_inline_type(self, type_node: Optional[Node], ctx: TraversalContext,
                             out: List[SymbolNode]):
        """Collect ``struct { … } x;`` style inline types as siblings."""
        if type_node is None or type_node.child_by_field_name("body") is None:
            return
        if type_node.type in TYPE_SPECIFIERS:
            self._handle_type(type_node, ctx, out, TYPE_SPECIFIERS[type_node.type])
        elif type_node.type == "enum_specifier":
            self._handle_enum(type_node, ctx, out)

    # ────────────────────────────────────────────────────────────────
    #  Macros, aliases, wrappers
    # ────────────────────────────────────────────────────────────────

    def _handle_macro(self, node: Node, out: List[SymbolNode], with_params: bool):
        name = self._field_text(node, "name")
        if not name:
            return
        if with_params:
            params = node.child_by_field_name("parameters")
            name += node_text(params, self.source) if params is not None else "()"
        out.append(self._make_item(name, SymbolKind.MACRO, AccessLevel.PUBLIC, node))

    def _handle_typedef(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        for declarator in node.children_by_field_name("declarator"):
            name = extract_declarator_name(declarator, self.source)
            out.append(self._make_item(name, SymbolKind.TYPEDEF, ctx.access, node))

    def _handle_alias(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        name = self._field_text(node, "name")
        if name:
            out.append(self._make_item(name, SymbolKind.USING_ALIAS, ctx.access, node))

    def _handle_template(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        for child in node.named_children:
            if child.type in ("template_parameter_list", "comment"):
                continue
            self._dispatch(child, ctx, out)

    def _handle_linkage(self, node: Node, ctx: TraversalContext, out: List[SymbolNode]):
        # extern "C" { … } or extern "C" <single declaration>
        body = node.child_by_field_name("body")
        if body is None:
            return
        if body.type == "declaration_list":
            self._collect_children(body, ctx, out)
        else:
            self._dispatch(body, ctx, out)

    # ────────────────────────────────────────────────────────────────
    #  Helpers
    # ────────────────────────────────────────────────────────────────

    def _field_text(self, node: Node, field_name: str) -> str:
        child = node.child_by_field_name(field_name)
        if child is None:
            return ""
        return " ".join(node_text(child, self.source).split())

    @staticmethod
    def _make_item(name: str, kind: SymbolKind, access: AccessLevel, node: Node) -> SymbolNode:
        start_row, start_col = node.start_point
        end_row, end_col = node.end_point
        # Directives end at column 0 of the following line
        end_line = end_row if end_col == 0 and end_row > start_row else end_row + 1
        return SymbolNode(
            display_name=name,
            kind=kind,
            access=access,
            start_line=start_row + 1,
            start_column=start_col,
            end_line=end_line,
        )
