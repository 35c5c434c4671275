from typing import Callable, Optional

from apireport.collector import AbstractCollector
from apireport.errors import InternalError
from apireport.models import (
    DEFAULT_EXPORT_NAME,
    AstImport,
    Declaration,
    ExportedEntity,
    ImportKind,
)
from apireport.span import DECLARATION_KINDS, Span
from apireport.writer import IndentedWriter

# Callback used to rewrite a nested span with the caller's policy
ModifyNestedSpan = Callable[[Span, Declaration], None]


def emit_import(
    writer: IndentedWriter, entity: ExportedEntity, ast_import: AstImport
) -> None:
    import_prefix = "import type" if ast_import.is_type_only else "import"
    name = entity.name_for_emit

    match ast_import.import_kind:
        case ImportKind.DEFAULT:
            if name != ast_import.export_name:
                writer.write(f"{import_prefix} {{ default as {name} }}")
            else:
                writer.write(f"{import_prefix} {ast_import.export_name}")
            writer.write_line(f" from '{ast_import.module_path}';")
        case ImportKind.NAMED:
            if name == ast_import.export_name:
                writer.write(f"{import_prefix} {{ {ast_import.export_name} }}")
            else:
                writer.write(
                    f"{import_prefix} {{ {ast_import.export_name} as {name} }}"
                )
            writer.write_line(f" from '{ast_import.module_path}';")
        case ImportKind.STAR:
            writer.write_line(
                f"{import_prefix} * as {name} from '{ast_import.module_path}';"
            )
        case ImportKind.EQUALS:
            writer.write_line(
                f"{import_prefix} {name} = require('{ast_import.module_path}');"
            )
        case ImportKind.IMPORT_TYPE:
            if not ast_import.export_name:
                writer.write_line(
                    f"{import_prefix} * as {name} from '{ast_import.module_path}';"
                )
            else:
                top_export_name = ast_import.export_name.split(".")[0]
                if name == top_export_name:
                    writer.write(f"{import_prefix} {{ {top_export_name} }}")
                else:
                    writer.write(f"{import_prefix} {{ {top_export_name} as {name} }}")
                writer.write_line(f" from '{ast_import.module_path}';")
        case _:
            raise InternalError(f"Unimplemented import kind: {ast_import.import_kind}")


def emit_named_export(
    writer: IndentedWriter, export_name: str, entity: ExportedEntity
) -> None:
    if export_name == DEFAULT_EXPORT_NAME:
        writer.write_line(f"export default {entity.name_for_emit};")
    elif entity.name_for_emit != export_name:
        writer.write_line(f"export {{ {entity.name_for_emit} as {export_name} }}")
    else:
        writer.write_line(f"export {{ {export_name} }}")


def emit_star_exports(writer: IndentedWriter, collector: AbstractCollector) -> None:
    if collector.star_exported_external_module_paths:
        writer.ensure_skipped_line()
        for module_path in collector.star_exported_external_module_paths:
            writer.write_line(f'export * from "{module_path}";')


def modify_import_type_span(
    collector: AbstractCollector,
    span: Span,
    declaration: Declaration,
    modify_nested_span: ModifyNestedSpan,
) -> None:
    """
    Rewrite an `import("...")` type reference. When it resolves to a tracked
    entity the whole reference is replaced by the entity's emit name (keeping
    any type arguments, which are rewritten through *modify_nested_span*);
    otherwise the span is left for the normal recursion.
    """
    referenced: Optional[ExportedEntity] = collector.try_get_entity_for_node(span.node)
    if referenced is None:
        return

    if not referenced.name_for_emit:
        raise InternalError(
            "referenced entity has no emit name: "
            f"{span.get_text()} ({declaration.location})"
        )

    type_arguments_text = ""
    type_arguments = next(
        (c for c in span.children if c.node.type == "type_arguments"), None
    )
    if type_arguments is not None:
        for child in type_arguments.children:
            child_declaration = declaration
            if child.kind in DECLARATION_KINDS:
                found = collector.get_child_declaration_by_node(child.node, declaration)
                if found is None:
                    raise InternalError(
                        f"Cannot find declaration for {child.get_text()!r} ({declaration.location})"
                    )
                child_declaration = found
            modify_nested_span(child, child_declaration)
        type_arguments_text = type_arguments.get_modified_text()

    span.overlay.skip_own_text = True
    for child in span.children:
        child.overlay.skip_subtree = True
    span.overlay.prefix = f"{referenced.name_for_emit}{type_arguments_text}"
