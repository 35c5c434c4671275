"""
Span trees mirror a tree-sitter syntax tree 1:1 and carry a per-node
modification overlay. Rewrites are expressed purely as overlay mutations; the
source text, ranges and children never change after construction.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple

from apireport.parsers import get_node_text, node_key


class SpanKind(str, Enum):
    SOURCE_FILE = "source_file"

    # Wrappers around a declaration
    EXPORT_STATEMENT = "export_statement"
    AMBIENT_DECLARATION = "ambient_declaration"
    VARIABLE_STATEMENT = "variable_statement"

    # Declarations
    CLASS_DECLARATION = "class_declaration"
    INTERFACE_DECLARATION = "interface_declaration"
    ENUM_DECLARATION = "enum_declaration"
    ENUM_MEMBER = "enum_member"
    TYPE_ALIAS_DECLARATION = "type_alias_declaration"
    FUNCTION_DECLARATION = "function_declaration"
    MODULE_DECLARATION = "module_declaration"
    VARIABLE_DECLARATION = "variable_declaration"
    PROPERTY_DECLARATION = "property_declaration"
    PROPERTY_SIGNATURE = "property_signature"
    METHOD_DECLARATION = "method_declaration"
    METHOD_SIGNATURE = "method_signature"
    CALL_SIGNATURE = "call_signature"
    CONSTRUCT_SIGNATURE = "construct_signature"
    INDEX_SIGNATURE = "index_signature"

    # Lists
    MEMBER_LIST = "member_list"
    MODULE_BLOCK = "module_block"
    TYPE_LITERAL = "type_literal"

    # Keywords
    EXPORT_KEYWORD = "export_keyword"
    DEFAULT_KEYWORD = "default_keyword"
    DECLARE_KEYWORD = "declare_keyword"
    CLASS_KEYWORD = "class_keyword"
    INTERFACE_KEYWORD = "interface_keyword"
    ENUM_KEYWORD = "enum_keyword"
    NAMESPACE_KEYWORD = "namespace_keyword"
    MODULE_KEYWORD = "module_keyword"
    TYPE_KEYWORD = "type_keyword"
    FUNCTION_KEYWORD = "function_keyword"
    MODIFIER_KEYWORD = "modifier_keyword"
    ACCESSIBILITY_MODIFIER = "accessibility_modifier"
    KEYWORD = "keyword"

    IDENTIFIER = "identifier"
    IMPORT_TYPE = "import_type"
    JSDOC_COMMENT = "jsdoc_comment"
    COMMENT = "comment"
    PUNCTUATION = "punctuation"
    OTHER = "other"


DECLARATION_KINDS = frozenset(
    {
        SpanKind.CLASS_DECLARATION,
        SpanKind.INTERFACE_DECLARATION,
        SpanKind.ENUM_DECLARATION,
        SpanKind.ENUM_MEMBER,
        SpanKind.TYPE_ALIAS_DECLARATION,
        SpanKind.FUNCTION_DECLARATION,
        SpanKind.MODULE_DECLARATION,
        SpanKind.VARIABLE_DECLARATION,
        SpanKind.PROPERTY_DECLARATION,
        SpanKind.PROPERTY_SIGNATURE,
        SpanKind.METHOD_DECLARATION,
        SpanKind.METHOD_SIGNATURE,
        SpanKind.CALL_SIGNATURE,
        SpanKind.CONSTRUCT_SIGNATURE,
        SpanKind.INDEX_SIGNATURE,
    }
)

WRAPPER_KINDS = frozenset({SpanKind.EXPORT_STATEMENT, SpanKind.AMBIENT_DECLARATION})

_NODE_TYPE_KINDS = {
    "program": SpanKind.SOURCE_FILE,
    "export_statement": SpanKind.EXPORT_STATEMENT,
    "ambient_declaration": SpanKind.AMBIENT_DECLARATION,
    "lexical_declaration": SpanKind.VARIABLE_STATEMENT,
    "variable_declaration": SpanKind.VARIABLE_STATEMENT,
    "class_declaration": SpanKind.CLASS_DECLARATION,
    "abstract_class_declaration": SpanKind.CLASS_DECLARATION,
    "interface_declaration": SpanKind.INTERFACE_DECLARATION,
    "enum_declaration": SpanKind.ENUM_DECLARATION,
    "enum_assignment": SpanKind.ENUM_MEMBER,
    "type_alias_declaration": SpanKind.TYPE_ALIAS_DECLARATION,
    "function_declaration": SpanKind.FUNCTION_DECLARATION,
    "function_signature": SpanKind.FUNCTION_DECLARATION,
    "internal_module": SpanKind.MODULE_DECLARATION,
    "module": SpanKind.MODULE_DECLARATION,
    "variable_declarator": SpanKind.VARIABLE_DECLARATION,
    "public_field_definition": SpanKind.PROPERTY_DECLARATION,
    "property_signature": SpanKind.PROPERTY_SIGNATURE,
    "method_definition": SpanKind.METHOD_DECLARATION,
    "method_signature": SpanKind.METHOD_SIGNATURE,
    "abstract_method_signature": SpanKind.METHOD_SIGNATURE,
    "call_signature": SpanKind.CALL_SIGNATURE,
    "construct_signature": SpanKind.CONSTRUCT_SIGNATURE,
    "index_signature": SpanKind.INDEX_SIGNATURE,
    "class_body": SpanKind.MEMBER_LIST,
    "interface_body": SpanKind.MEMBER_LIST,
    "enum_body": SpanKind.MEMBER_LIST,
    "accessibility_modifier": SpanKind.ACCESSIBILITY_MODIFIER,
    "identifier": SpanKind.IDENTIFIER,
    "type_identifier": SpanKind.IDENTIFIER,
}

# Keyword tokens whose meaning depends on the parent node type
_CONTEXT_KEYWORDS = {
    "export": ({"export_statement"}, SpanKind.EXPORT_KEYWORD),
    "default": ({"export_statement"}, SpanKind.DEFAULT_KEYWORD),
    "declare": (
        {"ambient_declaration", "public_field_definition"},
        SpanKind.DECLARE_KEYWORD,
    ),
    "class": (
        {"class_declaration", "abstract_class_declaration", "class"},
        SpanKind.CLASS_KEYWORD,
    ),
    "interface": ({"interface_declaration"}, SpanKind.INTERFACE_KEYWORD),
    "enum": ({"enum_declaration"}, SpanKind.ENUM_KEYWORD),
    "namespace": ({"internal_module"}, SpanKind.NAMESPACE_KEYWORD),
    "module": ({"module"}, SpanKind.MODULE_KEYWORD),
    "type": ({"type_alias_declaration"}, SpanKind.TYPE_KEYWORD),
    "function": (
        {"function_declaration", "function_signature"},
        SpanKind.FUNCTION_KEYWORD,
    ),
    "const": ({"enum_declaration"}, SpanKind.MODIFIER_KEYWORD),
}

_MODIFIER_TOKENS = frozenset(
    {"abstract", "async", "static", "readonly", "override", "accessor"}
)

# `import("m")` and the qualified names, generic or not, built on it
_IMPORT_CHAIN_TYPES = ("member_expression", "nested_type_identifier")
_IMPORT_TYPE_NODE_TYPES = frozenset({"call_expression", "generic_type", *_IMPORT_CHAIN_TYPES})


def _is_import_call(node: Any) -> bool:
    if node is None or node.type != "call_expression":
        return False
    fn = node.child_by_field_name("function")
    return fn is not None and fn.type == "import"


def _import_chain_root(node: Any) -> Any:
    while node is not None and node.type in _IMPORT_CHAIN_TYPES:
        node = node.child_by_field_name("object") or node.child_by_field_name("module")
    return node


def _continues_import_chain(node: Any) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type in _IMPORT_CHAIN_TYPES:
        return True
    if parent.type == "generic_type":
        name = parent.child_by_field_name("name")
        return name is not None and node_key(name) == node_key(node)
    return False


def is_import_type_node(node: Any) -> bool:
    """
    True for the outermost node of an `import("m")` type reference, including
    its qualifier (`import("m").A.B`) and type arguments when present. Inner
    parts of the same reference are not import types themselves.
    """
    head = node
    if node.type == "generic_type":
        head = node.child_by_field_name("name")
        if head is None:
            return False
    if not _is_import_call(_import_chain_root(head)):
        return False
    return not _continues_import_chain(node)


def span_kind_for_node(node: Any) -> SpanKind:
    """
    Map a tree-sitter node to the syntax category the rewrite policy
    dispatches on.
    """
    node_type = node.type
    parent_type = node.parent.type if node.parent is not None else None

    if node_type == "comment":
        if get_node_text(node).startswith("/**"):
            return SpanKind.JSDOC_COMMENT
        return SpanKind.COMMENT
    if node_type == "object_type":
        if parent_type == "interface_declaration":
            return SpanKind.MEMBER_LIST
        return SpanKind.TYPE_LITERAL
    if node_type == "statement_block" and parent_type in ("internal_module", "module"):
        return SpanKind.MODULE_BLOCK
    if node_type == "property_identifier" and parent_type == "enum_body":
        return SpanKind.ENUM_MEMBER
    if node_type in _IMPORT_TYPE_NODE_TYPES and is_import_type_node(node):
        return SpanKind.IMPORT_TYPE
    if node.is_named:
        return _NODE_TYPE_KINDS.get(node_type, SpanKind.OTHER)

    if node_type in _CONTEXT_KEYWORDS:
        parents, kind = _CONTEXT_KEYWORDS[node_type]
        if parent_type in parents:
            return kind
    if node_type in _MODIFIER_TOKENS:
        return SpanKind.MODIFIER_KEYWORD
    if node_type[:1].isalpha():
        return SpanKind.KEYWORD
    return SpanKind.PUNCTUATION


@dataclass
class SpanOverlay:
    """Modification instructions applied when a span is written out."""

    skip_own_text: bool = False
    skip_subtree: bool = False
    prefix: str = ""
    suffix: str = ""
    omit_following_separator: bool = False
    sort_children: bool = False
    sort_key: Optional[str] = None

    def skip_all(self) -> None:
        """Drop the span, its children and the separator that follows it."""
        self.skip_subtree = True
        self.omit_following_separator = True


class Span:
    """
    One node of a span tree. Structural fields are fixed at construction; the
    overlay lives in the owning `SpanTree` and is addressed by `index`.
    """

    __slots__ = (
        "tree",
        "index",
        "node",
        "kind",
        "start",
        "end",
        "parent",
        "previous_sibling",
        "next_sibling",
        "children",
    )

    def __init__(
        self,
        tree: "SpanTree",
        index: int,
        node: Any,
        parent: Optional["Span"],
        previous_sibling: Optional["Span"],
    ) -> None:
        self.tree = tree
        self.index = index
        self.node = node
        self.kind = span_kind_for_node(node)
        self.start: int = node.start_byte
        self.end: int = node.end_byte
        self.parent = parent
        self.previous_sibling = previous_sibling
        self.next_sibling: Optional["Span"] = None
        self.children: Tuple["Span", ...] = ()

    @property
    def overlay(self) -> SpanOverlay:
        return self.tree.overlays[self.index]

    # Original text helpers
    def get_text(self) -> str:
        return self.tree.slice(self.start, self.end)

    @property
    def lead(self) -> str:
        """Own text before the first child (the whole token for a leaf)."""
        stop = self.children[0].start if self.children else self.end
        return self.tree.slice(self.start, stop)

    @property
    def tail(self) -> str:
        if not self.children:
            return ""
        return self.tree.slice(self.children[-1].end, self.end)

    def separator_after(self, position: int) -> str:
        """Own text between the child at `position` and the next child."""
        child = self.children[position]
        if position + 1 < len(self.children):
            return self.tree.slice(child.end, self.children[position + 1].start)
        return ""

    @property
    def starts_line(self) -> bool:
        """True when only whitespace precedes this span on its line."""
        line_start = self.tree.source.rfind(b"\n", 0, self.start) + 1
        return not self.tree.source[line_start : self.start].strip()

    @property
    def line_indentation(self) -> str:
        """Leading whitespace of the line this span starts on."""
        line_start = self.tree.source.rfind(b"\n", 0, self.start) + 1
        line = self.tree.source[line_start : self.start]
        return line[: len(line) - len(line.lstrip(b" \t"))].decode("utf-8")

    @property
    def indentation(self) -> str:
        """Whitespace between the start of the line and this span, if any."""
        line_start = self.tree.source.rfind(b"\n", 0, self.start) + 1
        indent = self.tree.slice(line_start, self.start)
        return indent if not indent.strip() else ""

    def declaration_span(self) -> Optional["Span"]:
        """
        Return the declaration this span introduces: the span itself for a
        declaration, the wrapped declaration for `export` / `declare` wrappers
        and for a variable statement with a single declarator, otherwise None.
        """
        if self.kind in DECLARATION_KINDS:
            return self
        if self.kind in WRAPPER_KINDS:
            for child in self.children:
                if (
                    child.kind in DECLARATION_KINDS
                    or child.kind in WRAPPER_KINDS
                    or child.kind == SpanKind.VARIABLE_STATEMENT
                ):
                    return child.declaration_span()
            return None
        if self.kind == SpanKind.VARIABLE_STATEMENT:
            declarators = [
                c for c in self.children if c.kind == SpanKind.VARIABLE_DECLARATION
            ]
            if len(declarators) == 1:
                return declarators[0]
        return None

    def iter_spans(self) -> Iterator["Span"]:
        yield self
        for child in self.children:
            yield from child.iter_spans()

    def get_modified_text(self) -> str:
        from apireport.writer import SpanWriter

        return SpanWriter().render(self)

    def __repr__(self) -> str:
        return f"Span({self.kind.value}, {self.start}:{self.end})"


class SpanTree:
    """
    Structural span tree over an immutable source buffer plus the parallel
    list of overlays, one per span in pre-order.
    """

    def __init__(self, root_node: Any, source: bytes | str) -> None:
        if isinstance(source, str):
            source = source.encode("utf-8")
        self.source: bytes = source
        self.spans: List[Span] = []
        self.root: Span = self._build(root_node, None, None)
        self.overlays: List[SpanOverlay] = [SpanOverlay() for _ in self.spans]

    @classmethod
    def build(cls, node: Any, source: bytes | str) -> Span:
        return cls(node, source).root

    def _build(
        self, node: Any, parent: Optional[Span], previous: Optional[Span]
    ) -> Span:
        span = Span(self, len(self.spans), node, parent, previous)
        self.spans.append(span)
        children: List[Span] = []
        prev: Optional[Span] = None
        for child_node in node.children:
            child = self._build(child_node, span, prev)
            if prev is not None:
                prev.next_sibling = child
            children.append(child)
            prev = child
        span.children = tuple(children)
        return span

    def slice(self, start: int, end: int) -> str:
        return self.source[start:end].decode("utf-8")

    def reset_overlays(self) -> None:
        self.overlays = [SpanOverlay() for _ in self.spans]
