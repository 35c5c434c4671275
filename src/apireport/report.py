"""
Generates the text of an API report file from a fully analyzed package.
"""

import re
from typing import Dict, List, Tuple

from apireport.collector import AbstractCollector
from apireport.emit_helpers import emit_import, emit_named_export, emit_star_exports
from apireport.errors import InternalError, UnsupportedStarExportError
from apireport.logger import logger
from apireport.messages import ExtractorMessage
from apireport.models import (
    AstImport,
    AstNamespaceImport,
    AstSymbol,
    Declaration,
    ExportedEntity,
    ReportReleaseLevel,
)
from apireport.parsers import has_syntax_error
from apireport.policy import SpanRewriter
from apireport.span import SpanTree
from apireport.synopsis import get_aedoc_synopsis, write_line_as_comments
from apireport.writer import IndentedWriter

_TRIM_SPACES_RE = re.compile(r" +$", re.M)
_WHITESPACE_RE = re.compile(r"\s+")

REPORT_TOOL_NAME = "apireport"


def are_equivalent_api_file_contents(actual: str, expected: str) -> bool:
    """
    Compare two report files while ignoring whitespace differences, such as
    newline normalization or an editor stripping blank lines.
    """
    return _WHITESPACE_RE.sub(" ", actual) == _WHITESPACE_RE.sub(" ", expected)


def generate_review_file_content(
    collector: AbstractCollector,
    release_level: ReportReleaseLevel,
    include_forgotten_exports: bool = False,
) -> str:
    writer = IndentedWriter()
    rewriter = SpanRewriter(collector, release_level)

    writer.write_line(
        "\n".join(
            [
                f'## API Report File for "{collector.package_name}"',
                "",
                f"> Do not edit this file. It is a report generated by {REPORT_TOOL_NAME}.",
                "",
            ]
        )
    )
    writer.write_line("```ts\n")

    # Triple-slash directives
    for directive in sorted(collector.dts_type_reference_directives):
        writer.write_line(f'/// <reference types="{directive}" />')
    for directive in sorted(collector.dts_lib_reference_directives):
        writer.write_line(f'/// <reference lib="{directive}" />')
    writer.ensure_skipped_line()

    # Imports
    for entity in collector.entities:
        if isinstance(entity.ast_entity, AstImport):
            emit_import(writer, entity, entity.ast_entity)
    writer.ensure_skipped_line()

    # Declarations
    for entity in collector.entities:
        if not (entity.consumable or include_forgotten_exports):
            continue
        _write_entity(writer, collector, rewriter, entity)

    emit_star_exports(writer, collector)

    # Messages that were never placed next to a declaration
    unassociated = collector.message_router.fetch_unassociated_messages_for_review_file()
    if unassociated:
        writer.ensure_skipped_line()
        write_line_as_comments(writer, "Warnings were encountered during analysis:")
        write_line_as_comments(writer, "")
        for message in unassociated:
            write_line_as_comments(
                writer, message.format_message_with_location(collector.package_folder)
            )

    if collector.package_doc_comment is None:
        writer.ensure_skipped_line()
        write_line_as_comments(writer, "(No @packageDocumentation comment for this package)")

    writer.ensure_skipped_line()
    writer.write_line("```")

    return _TRIM_SPACES_RE.sub("", writer.to_string())


def _write_entity(
    writer: IndentedWriter,
    collector: AbstractCollector,
    rewriter: SpanRewriter,
    entity: ExportedEntity,
) -> None:
    ast_entity = entity.ast_entity

    # export name -> messages to render above its export clause
    exports_to_emit: Dict[str, List[ExtractorMessage]] = {}
    if not entity.should_inline_export:
        for export_name in entity.export_names:
            exports_to_emit[export_name] = []

    if isinstance(ast_entity, AstSymbol):
        included = [d for d in ast_entity.declarations if rewriter.should_include(d)]
        for declaration in ast_entity.declarations:
            if not rewriter.should_include(declaration):
                # Drop its messages along with it
                collector.message_router.fetch_associated_messages_for_review_file(declaration)
        if not included:
            logger.debug(
                "Entity trimmed from report",
                name=entity.name_for_emit,
                release_level=rewriter.release_level.value,
            )
            return

        for declaration in included:
            messages_to_report = _route_messages(collector, declaration, exports_to_emit)
            writer.ensure_skipped_line()
            writer.write(get_aedoc_synopsis(collector, declaration, messages_to_report))
            writer.write(_render_declaration(collector, rewriter, entity, declaration))
            writer.ensure_new_line()

    if isinstance(ast_entity, AstNamespaceImport):
        _write_namespace_block(writer, collector, entity, ast_entity)

    for export_name, messages in exports_to_emit.items():
        if messages:
            writer.ensure_skipped_line()
            for message in messages:
                write_line_as_comments(
                    writer, "Warning: " + message.format_message_without_location()
                )
        emit_named_export(writer, export_name, entity)
    writer.ensure_skipped_line()


def _route_messages(
    collector: AbstractCollector,
    declaration: Declaration,
    exports_to_emit: Dict[str, List[ExtractorMessage]],
) -> List[ExtractorMessage]:
    """
    Split a declaration's messages between its export clauses and the
    declaration itself.
    """
    messages_to_report: List[ExtractorMessage] = []
    for message in collector.message_router.fetch_associated_messages_for_review_file(
        declaration
    ):
        if message.export_name and message.export_name in exports_to_emit:
            exports_to_emit[message.export_name].append(message)
            continue
        messages_to_report.append(message)
    return messages_to_report


def _render_declaration(
    collector: AbstractCollector,
    rewriter: SpanRewriter,
    entity: ExportedEntity,
    declaration: Declaration,
) -> str:
    if declaration.source is None:
        raise InternalError(
            f"Declaration {declaration.local_name!r} has no source text ({declaration.location})"
        )
    if has_syntax_error(declaration.statement_node):
        # Rendering would silently drop the text the parser could not attach
        raise InternalError(
            f"Declaration {declaration.local_name!r} could not be parsed completely "
            f"({declaration.location})"
        )
    span = SpanTree.build(declaration.statement_node, declaration.source)

    if collector.fetch_api_item_metadata(declaration).is_preapproved:
        rewriter.modify_span_for_preapproved(span)
    else:
        rewriter.modify_span(span, entity, declaration)
    return span.get_modified_text()


def _write_namespace_block(
    writer: IndentedWriter,
    collector: AbstractCollector,
    entity: ExportedEntity,
    namespace_import: AstNamespaceImport,
) -> None:
    """
    Emit a synthetic namespace for `import * as ns` of a package module:

        declare namespace example {
            export {
                f1,
                f2
            }
        }

    The members stay top-level declarations since other signatures may refer
    to them without the namespace qualifier.
    """
    if not entity.name_for_emit:
        raise InternalError(
            f"namespace import {namespace_import.namespace_name!r} has no emit name "
            f"({namespace_import.location})"
        )
    if namespace_import.star_exported_external_modules:
        raise UnsupportedStarExportError(entity.name_for_emit, namespace_import.location)

    export_clauses: List[Tuple[str, str]] = []
    for exported_name, member in namespace_import.exported_entities.items():
        collector_entity = collector.try_get_collector_entity(member)
        if collector_entity is None or not collector_entity.name_for_emit:
            raise InternalError(
                f"Cannot find collector entity for {entity.name_for_emit}.{exported_name} "
                f"({namespace_import.location})"
            )
        export_clauses.append((collector_entity.name_for_emit, exported_name))

    writer.ensure_skipped_line()
    writer.write_line(f"declare namespace {entity.name_for_emit} {{")
    writer.increase_indent()
    writer.write_line("export {")
    writer.increase_indent()
    writer.write_line(
        ",\n".join(
            name if name == exported_name else f"{name} as {exported_name}"
            for name, exported_name in export_clauses
        )
    )
    writer.decrease_indent()
    writer.write_line("}")
    writer.decrease_indent()
    writer.write_line("}")
