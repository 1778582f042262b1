"""
Declarator Resolver — name / return type / parameter extraction.

Shared by the outline collector and the flat function list.  These are
pattern matches over observed tree-sitter C/C++ output, not a grammar
contract.  Shapes that need care:

  1. pointer_declarator / reference_declarator may not expose the inner
     declarator as a "declarator" field (reference_declarator never does);
     fall back to scanning children by node type.
  2. Macro invocations such as ``INDENT_SCOPE() { … }`` parse as a
     function_definition without a "type" field.  Real functions have one,
     unless they are constructors, destructors or operators.
  3. Out-of-class constructors / destructors appear as a qualified_identifier
     (``Foo::Foo`` / ``Foo::~Foo``) inside the function_declarator.
  4. Out-of-class operators come in three shapes: a function_declarator
     wrapping a qualified_identifier, a bare qualified_identifier declarator,
     or no declarator field at all with the qualified_identifier (or an
     operator_cast) as a direct child of the function_definition.
"""

from typing import List, Optional

from tree_sitter import Node

NAME_NODE_TYPES = {
    "identifier", "field_identifier", "qualified_identifier",
    "destructor_name", "operator_name", "template_function",
    "template_method", "type_identifier", "namespace_identifier",
    "primitive_type",
}

WRAPPER_DECLARATOR_TYPES = {
    "pointer_declarator", "reference_declarator", "array_declarator",
    "init_declarator", "function_declarator", "attributed_declarator",
}

# Node types accepted while scanning children of a wrapper without a field
_SCANNABLE_TYPES = NAME_NODE_TYPES | WRAPPER_DECLARATOR_TYPES | {
    "parenthesized_declarator", "operator_cast",
}

PARAMETER_TYPES = {"parameter_declaration", "optional_parameter_declaration"}
VARIADIC_TYPES = {"variadic_parameter_declaration", "variadic_parameter", "..."}


def node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _squash(text: str) -> str:
    return " ".join(text.split())


# ═══════════════════════════════════════════════════════════════════════
#  Names
# ═══════════════════════════════════════════════════════════════════════

def extract_declarator_name(declarator: Optional[Node], source: bytes) -> str:
    """Innermost name reachable through pointer/reference/array/paren wrappers."""
    if declarator is None:
        return "<unknown>"

    dtype = declarator.type

    if dtype == "qualified_identifier":
        name_node = declarator.child_by_field_name("name")
        if name_node is not None and name_node.type in ("operator_cast", "qualified_identifier"):
            scope = declarator.child_by_field_name("scope")
            prefix = _squash(node_text(scope, source)) + "::" if scope is not None else ""
            return prefix + extract_declarator_name(name_node, source)

    if dtype in NAME_NODE_TYPES:
        return _squash(node_text(declarator, source))

    if dtype == "operator_cast":
        type_node = declarator.child_by_field_name("type")
        if type_node is not None:
            return "operator " + _squash(node_text(type_node, source))
        return _squash(node_text(declarator, source))

    if dtype in WRAPPER_DECLARATOR_TYPES:
        inner = declarator.child_by_field_name("declarator")
        if inner is not None:
            return extract_declarator_name(inner, source)
        for child in declarator.named_children:
            if child.type in _SCANNABLE_TYPES:
                return extract_declarator_name(child, source)

    if dtype == "parenthesized_declarator" and declarator.named_children:
        return extract_declarator_name(declarator.named_children[0], source)

    return _squash(node_text(declarator, source))


def get_function_name(func_node: Node, source: bytes) -> str:
    """Name of a function_definition / declaration node."""
    declarator = func_node.child_by_field_name("declarator")
    if declarator is not None:
        return extract_declarator_name(declarator, source)

    # No declarator field: the qualified name sits directly under the node
    for child in func_node.children:
        if child.type in ("qualified_identifier", "operator_cast"):
            return extract_declarator_name(child, source)
    return "<unknown>"


def qualify(name: str, scope_path: List[str]) -> str:
    """Prefix an unqualified name with the enclosing scope path."""
    if "::" in name or not scope_path:
        return name
    return "::".join(scope_path) + "::" + name


def _strip_template_args(name: str) -> str:
    return name.split("<", 1)[0].strip()


def _is_qualified_special(qualified_name: str) -> bool:
    """``Foo::Foo``, ``Foo::~Foo`` or any ``…::operator…`` name."""
    if "operator" in qualified_name:
        return True
    last_sep = qualified_name.rfind("::")
    if last_sep <= 0:
        return False
    scope = qualified_name[:last_sep]
    func_name = qualified_name[last_sep + 2:]
    scope_name = _strip_template_args(scope.rsplit("::", 1)[-1])
    if func_name == scope_name:
        return True
    return func_name.startswith("~") and func_name[1:] == scope_name


# ═══════════════════════════════════════════════════════════════════════
#  Special member functions
# ═══════════════════════════════════════════════════════════════════════

def is_special_member_function(func_node: Node, source: bytes,
                               class_name: Optional[str]) -> bool:
    """Constructor, destructor or operator overload without a return type."""
    declarator = func_node.child_by_field_name("declarator")

    if declarator is None:
        for child in func_node.children:
            if child.type == "operator_cast":
                return True
            if child.type == "qualified_identifier":
                if _is_qualified_special(node_text(child, source)):
                    return True
        return False

    dtype = declarator.type

    if dtype == "operator_cast":
        return True

    if dtype == "qualified_identifier":
        return _is_qualified_special(node_text(declarator, source))

    if dtype == "function_declarator":
        inner = declarator.child_by_field_name("declarator")
        if inner is None:
            return False
        itype = inner.type
        if itype in ("destructor_name", "operator_name"):
            return True
        if itype in ("identifier", "field_identifier") and class_name is not None:
            name = node_text(inner, source)
            if name == class_name:
                return True
            if name.startswith("~") and name[1:] == class_name:
                return True
        if itype == "qualified_identifier":
            return _is_qualified_special(node_text(inner, source))

    return False


# ═══════════════════════════════════════════════════════════════════════
#  Return type and parameters
# ═══════════════════════════════════════════════════════════════════════

def get_return_type(node: Node, source: bytes) -> str:
    """Verbatim text of the "type" field; empty when there is none."""
    type_node = node.child_by_field_name("type")
    if type_node is None:
        return ""
    return _squash(node_text(type_node, source))


def find_function_declarator(node: Optional[Node]) -> Optional[Node]:
    """Unwrap pointer/reference declarators down to a function_declarator."""
    if node is None:
        return None
    ntype = node.type
    if ntype in ("function_declarator", "abstract_function_declarator"):
        return node
    if ntype == "operator_cast":
        return find_function_declarator(node.child_by_field_name("declarator"))
    if ntype == "qualified_identifier":
        return find_function_declarator(node.child_by_field_name("name"))
    if ntype in ("pointer_declarator", "reference_declarator"):
        inner = node.child_by_field_name("declarator")
        if inner is not None:
            return find_function_declarator(inner)
        for child in node.children:
            found = find_function_declarator(child)
            if found is not None:
                return found
    return None


def _declarator_suffix(declarator: Optional[Node], source: bytes) -> str:
    """``*`` / ``&`` / ``&&`` / ``[]`` markers carried by a parameter declarator."""
    suffix = ""
    node = declarator
    while node is not None:
        ntype = node.type
        if ntype in ("pointer_declarator", "abstract_pointer_declarator"):
            suffix += "*"
        elif ntype in ("reference_declarator", "abstract_reference_declarator"):
            suffix += "&&" if node_text(node, source).startswith("&&") else "&"
        elif ntype in ("array_declarator", "abstract_array_declarator"):
            suffix += "[]"
        else:
            break
        inner = node.child_by_field_name("declarator")
        if inner is None:
            inner = next(
                (c for c in node.named_children if c.type.endswith("declarator")), None
            )
        node = inner
    return suffix


def _parameter_type(param: Node, source: bytes) -> str:
    type_node = param.child_by_field_name("type")
    if type_node is None:
        return _squash(node_text(param, source))

    parts = []
    for child in param.children:
        if child == type_node:
            break
        if child.type == "type_qualifier":
            parts.append(node_text(child, source))
    parts.append(_squash(node_text(type_node, source)))
    return " ".join(parts) + _declarator_suffix(param.child_by_field_name("declarator"), source)


def get_parameter_list(node: Node, source: bytes) -> str:
    """Comma-joined parameter types of a function definition / declaration."""
    func_decl = find_function_declarator(node.child_by_field_name("declarator"))
    if func_decl is None:
        for child in node.children:
            func_decl = find_function_declarator(child)
            if func_decl is not None:
                break
    return format_parameters(func_decl, source)


def format_parameters(func_decl: Optional[Node], source: bytes) -> str:
    if func_decl is None:
        return ""

    parameters = func_decl.child_by_field_name("parameters")
    if parameters is None:
        return ""

    types = []
    for param in parameters.children:
        if param.type in PARAMETER_TYPES:
            types.append(_parameter_type(param, source))
        elif param.type in VARIADIC_TYPES:
            types.append("...")
    return ", ".join(types)


def format_signature(return_type: str, name: str, params: str) -> str:
    return (return_type + " " if return_type else "") + name + "(" + params + ")"


def parse_access_specifier(node: Node, source: bytes) -> str:
    """Return "private", "protected" or "public" for an access_specifier."""
    text = node_text(node, source).strip().rstrip(":").strip()
    if text.startswith("private"):
        return "private"
    if text.startswith("protected"):
        return "protected"
    return "public"
