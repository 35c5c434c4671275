"""
Rewrite rules applied to a declaration's span tree before it is written to
the API report.
"""

from typing import Callable, Optional

from apireport.collector import AbstractCollector
from apireport.emit_helpers import modify_import_type_span
from apireport.errors import InternalError
from apireport.helpers import get_sort_key_ignoring_underscore
from apireport.models import Declaration, ExportedEntity, ReportReleaseLevel
from apireport.parsers import node_key
from apireport.span import DECLARATION_KINDS, Span, SpanKind
from apireport.synopsis import get_aedoc_synopsis
from apireport.visibility import should_include_in_report

PREAPPROVED_BODY = " { /* collapsed */ }"
MEMBER_INDENT = "    "

_TERMINATORS = (";", ",")


def _indent_block(text: str, indent: str) -> str:
    if not text or not indent:
        return text
    return text.replace("\n", "\n" + indent)


class SpanRewriter:
    """
    Applies the report's rewrite rules to span overlays. Holds no state beyond
    its collaborators, so one instance can rewrite every declaration of a
    report.
    """

    def __init__(
        self,
        collector: AbstractCollector,
        release_level: ReportReleaseLevel,
        sort_key: Callable[[str], str] = get_sort_key_ignoring_underscore,
    ) -> None:
        self.collector = collector
        self.release_level = release_level
        self.sort_key = sort_key

    def should_include(self, declaration: Declaration) -> bool:
        return should_include_in_report(self.collector, declaration, self.release_level)

    def modify_span(
        self,
        span: Span,
        entity: ExportedEntity,
        declaration: Declaration,
        inside_type_literal: bool = False,
    ) -> None:
        """
        Before writing out a declaration, apply the fixups that make it
        report-shaped: drop excluded members, re-synthesize modifiers, rename
        references, sort members and attach synopsis comments.
        """
        if not self.should_include(declaration):
            span.overlay.skip_all()
            return

        recurse_children = True
        sort_children = False

        match span.kind:
            case SpanKind.JSDOC_COMMENT:
                self._skip_with_preceding_separator(span)
                recurse_children = False

            case SpanKind.EXPORT_KEYWORD | SpanKind.DEFAULT_KEYWORD | SpanKind.DECLARE_KEYWORD:
                # Re-added below from the entity state
                span.overlay.skip_all()

            case (
                SpanKind.CLASS_KEYWORD
                | SpanKind.INTERFACE_KEYWORD
                | SpanKind.ENUM_KEYWORD
                | SpanKind.NAMESPACE_KEYWORD
                | SpanKind.MODULE_KEYWORD
                | SpanKind.TYPE_KEYWORD
                | SpanKind.FUNCTION_KEYWORD
            ):
                self._replace_modifiers(span, entity)

            case SpanKind.MEMBER_LIST:
                sort_children = (
                    span.parent is not None and span.parent.kind in DECLARATION_KINDS
                )

            case SpanKind.MODULE_BLOCK:
                sort_children = True

            case SpanKind.VARIABLE_DECLARATION:
                if span.parent is None:
                    self._add_variable_statement(span, entity, declaration)

            case SpanKind.IDENTIFIER:
                self._rename_identifier(span, declaration)

            case SpanKind.TYPE_LITERAL:
                inside_type_literal = True

            case SpanKind.IMPORT_TYPE:
                nested_inside_type_literal = inside_type_literal
                modify_import_type_span(
                    self.collector,
                    span,
                    declaration,
                    lambda child, child_declaration: self.modify_span(
                        child, entity, child_declaration, nested_inside_type_literal
                    ),
                )
                # Replaced wholesale; type arguments were already rewritten
                if span.overlay.skip_own_text:
                    recurse_children = False

            case _:
                pass

        if not recurse_children:
            return

        for child in span.children:
            child_declaration = declaration
            declaration_span = child.declaration_span()

            if declaration_span is not None and node_key(declaration_span.node) != node_key(
                declaration.node
            ):
                child_declaration = self._get_child_declaration(declaration_span, declaration)

                if self.should_include(child_declaration):
                    if sort_children:
                        span.overlay.sort_children = True
                        child.overlay.sort_key = self.sort_key(child_declaration.local_name)

                    if not inside_type_literal:
                        messages = self.collector.message_router.fetch_associated_messages_for_review_file(
                            child_declaration
                        )
                        # NOTE: this raises ae-undocumented issues as a side effect
                        synopsis = get_aedoc_synopsis(self.collector, child_declaration, messages)
                        child.overlay.prefix = (
                            self._synopsis_prefix(child, synopsis) + child.overlay.prefix
                        )
                else:
                    self._skip_member(child)
                    continue

            self.modify_span(child, entity, child_declaration, inside_type_literal)

    def modify_span_for_preapproved(self, span: Span) -> None:
        """
        Used instead of `modify_span` for declarations whose shape is
        deliberately not reviewed: everything after the name collapses to a
        marker body.

            export declare class _PreapprovedClass { ... }

        becomes

            class _PreapprovedClass { /* collapsed */ }
        """
        declaration_span = span.declaration_span() or span

        cur = span
        while cur is not declaration_span:
            inner: Optional[Span] = None
            for child in cur.children:
                if child.kind in (
                    SpanKind.EXPORT_KEYWORD,
                    SpanKind.DECLARE_KEYWORD,
                    SpanKind.DEFAULT_KEYWORD,
                    SpanKind.JSDOC_COMMENT,
                    SpanKind.COMMENT,
                ):
                    child.overlay.skip_all()
                elif child.declaration_span() is declaration_span:
                    inner = child
            if inner is None:
                break
            cur = inner

        name_node = declaration_span.node.child_by_field_name("name")
        name_key = node_key(name_node) if name_node is not None else None

        skip_rest = False
        for child in declaration_span.children:
            if skip_rest or child.kind in (
                SpanKind.MODIFIER_KEYWORD,
                SpanKind.DECLARE_KEYWORD,
                SpanKind.JSDOC_COMMENT,
                SpanKind.COMMENT,
            ):
                child.overlay.skip_all()
            if name_key is not None and node_key(child.node) == name_key:
                skip_rest = True
                child.overlay.omit_following_separator = True
                child.overlay.suffix = PREAPPROVED_BODY

    # Helpers
    def _replace_modifiers(self, span: Span, entity: ExportedEntity) -> None:
        modifiers = "export " if entity.should_inline_export else ""
        if not modifiers:
            return

        # Put it in front of modifiers such as "abstract" that precede the keyword
        target = span
        prev = span.previous_sibling
        while prev is not None and prev.kind == SpanKind.MODIFIER_KEYWORD:
            target = prev
            prev = prev.previous_sibling
        target.overlay.prefix = modifiers + target.overlay.prefix

    def _add_variable_statement(
        self, span: Span, entity: ExportedEntity, declaration: Declaration
    ) -> None:
        # Several declarators can share one statement ("const a = 1, b = 2") but
        # each is rendered on its own, so copy the statement's leading text.
        statement = span.node.parent
        if statement is None or statement.type not in (
            "lexical_declaration",
            "variable_declaration",
        ):
            raise InternalError(
                f"Unsupported variable declaration {declaration.local_name!r} ({declaration.location})"
            )
        first = next(c for c in statement.named_children if c.type == "variable_declarator")
        statement_prefix = span.tree.slice(statement.start_byte, first.start_byte)

        span.overlay.prefix = statement_prefix + span.overlay.prefix
        span.overlay.suffix = ";"
        if entity.should_inline_export:
            span.overlay.prefix = "export " + span.overlay.prefix

    def _rename_identifier(self, span: Span, declaration: Declaration) -> None:
        referenced = self.collector.try_get_entity_for_node(span.node)
        if referenced is None:
            return
        if not referenced.name_for_emit:
            raise InternalError(
                f"referenced entity has no emit name: {span.get_text()!r} ({declaration.location})"
            )
        span.overlay.skip_own_text = True
        span.overlay.prefix = referenced.name_for_emit

    def _get_child_declaration(self, span: Span, parent: Declaration) -> Declaration:
        child = self.collector.get_child_declaration_by_node(span.node, parent)
        if child is None:
            raise InternalError(
                f"Cannot find the declaration for {span.get_text()!r} "
                f"inside {parent.local_name!r} ({parent.location})"
            )
        return child

    @staticmethod
    def _synopsis_prefix(span: Span, synopsis: str) -> str:
        if not synopsis or span.starts_line:
            return _indent_block(synopsis, span.indentation)
        # The member shares a line with what precedes it; start a new one
        indent = span.line_indentation + MEMBER_INDENT
        return "\n" + indent + _indent_block(synopsis, indent)

    @staticmethod
    def _skip_with_preceding_separator(span: Span) -> None:
        # The line break before a dropped member goes with it; the one after
        # it still separates its neighbors.
        span.overlay.skip_subtree = True
        if span.previous_sibling is not None:
            span.previous_sibling.overlay.omit_following_separator = True
        else:
            span.overlay.omit_following_separator = True

    def _skip_member(self, span: Span) -> None:
        self._skip_with_preceding_separator(span)
        nxt = span.next_sibling
        if nxt is not None and nxt.kind == SpanKind.PUNCTUATION and nxt.node.type in _TERMINATORS:
            self._skip_with_preceding_separator(nxt)
