import os
import re
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import tree_sitter as ts
from pydantic import BaseModel, ConfigDict, Field

from apireport.collector import AbstractCollector
from apireport.helpers import generate_id, get_sort_key_ignoring_underscore
from apireport.logger import logger
from apireport.messages import MessageRouter
from apireport.models import (
    DEFAULT_EXPORT_NAME,
    ApiItemMetadata,
    AstEntity,
    AstImport,
    AstNamespaceImport,
    AstSymbol,
    Declaration,
    DeclarationKind,
    ExportedEntity,
    ExtractorMessageId,
    ImportKind,
    ModifierFlags,
    ReleaseTag,
)
from apireport.parsers import (
    get_node_text,
    node_column,
    node_key,
    node_line,
    parse_source,
)
from apireport.settings import MessageSettings, ReportSettings
from apireport.span import DECLARATION_KINDS, SpanKind, span_kind_for_node

_SPAN_TO_DECLARATION_KIND = {
    SpanKind.CLASS_DECLARATION: DeclarationKind.CLASS,
    SpanKind.INTERFACE_DECLARATION: DeclarationKind.INTERFACE,
    SpanKind.ENUM_DECLARATION: DeclarationKind.ENUM,
    SpanKind.ENUM_MEMBER: DeclarationKind.ENUM_MEMBER,
    SpanKind.TYPE_ALIAS_DECLARATION: DeclarationKind.TYPE_ALIAS,
    SpanKind.FUNCTION_DECLARATION: DeclarationKind.FUNCTION,
    SpanKind.MODULE_DECLARATION: DeclarationKind.NAMESPACE,
    SpanKind.VARIABLE_DECLARATION: DeclarationKind.VARIABLE,
    SpanKind.PROPERTY_DECLARATION: DeclarationKind.PROPERTY,
    SpanKind.PROPERTY_SIGNATURE: DeclarationKind.PROPERTY_SIGNATURE,
    SpanKind.METHOD_DECLARATION: DeclarationKind.METHOD,
    SpanKind.METHOD_SIGNATURE: DeclarationKind.METHOD,
    SpanKind.CALL_SIGNATURE: DeclarationKind.CALL_SIGNATURE,
    SpanKind.CONSTRUCT_SIGNATURE: DeclarationKind.CONSTRUCT_SIGNATURE,
    SpanKind.INDEX_SIGNATURE: DeclarationKind.INDEX_SIGNATURE,
}

# Synthetic local names for members that have none
_SIGNATURE_NAMES = {
    DeclarationKind.CALL_SIGNATURE: "__call",
    DeclarationKind.CONSTRUCT_SIGNATURE: "__new",
    DeclarationKind.INDEX_SIGNATURE: "__index",
}

_STATEMENT_WRAPPERS = ("export_statement", "ambient_declaration", "expression_statement")
_VARIABLE_STATEMENTS = ("lexical_declaration", "variable_declaration")

_MODIFIER_TOKEN_FLAGS = {
    "static": ModifierFlags.STATIC,
    "abstract": ModifierFlags.ABSTRACT,
    "readonly": ModifierFlags.READONLY,
}

_RELEASE_TAGS = {
    "public": ReleaseTag.PUBLIC,
    "beta": ReleaseTag.BETA,
    "alpha": ReleaseTag.ALPHA,
    "internal": ReleaseTag.INTERNAL,
}

_REFERENCE_DIRECTIVE_RE = re.compile(
    r"""^///\s*<reference\s+(types|lib|path)\s*=\s*["']([^"']+)["']"""
)
# Block tags only; inline tags such as {@link X} are preceded by "{"
_BLOCK_TAG_RE = re.compile(r"(?<![\w{`])@([A-Za-z]\w*)")
_IMPORT_TYPE_RE = re.compile(r"""import\s*\(\s*["']([^"']+)["']\s*\)((?:\s*\.\s*[\w$]+)*)""")

_NAME_NODE_TYPES = (
    "identifier",
    "type_identifier",
    "property_identifier",
    "private_property_identifier",
    "string",
)

_MODULE_SUFFIXES = (".d.ts", ".ts")
_JS_SUFFIXES = (".js", ".mjs", ".cjs")


class ImportBinding(BaseModel):
    """A local name introduced by an import statement."""

    local_name: str
    import_kind: ImportKind
    module_path: str
    export_name: Optional[str] = None
    is_type_only: bool = False
    line: int = 0
    column: int = 0


class ExportBinding(BaseModel):
    """
    One name exported by a module. Either a local name of the module, or a
    name re-exported from another module (`source_name` None for
    `export * as ns from "..."`).
    """

    export_name: str
    local_name: Optional[str] = None
    module_path: Optional[str] = None
    source_name: Optional[str] = None


class ParsedDtsFile(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    path: str
    source: bytes
    tree: Any = Field(default=None, exclude=True, repr=False)
    symbols: Dict[str, AstSymbol] = Field(default_factory=dict)
    imports: Dict[str, ImportBinding] = Field(default_factory=dict)
    exports: Dict[str, ExportBinding] = Field(default_factory=dict)
    star_exports: List[str] = Field(default_factory=list)
    package_doc_comment: Optional[str] = None


class _ModuleExports(BaseModel):
    entities: Dict[str, Any] = Field(default_factory=dict)
    star_exported_external_modules: List[str] = Field(default_factory=list)


class DtsCollector(AbstractCollector):
    """
    Analyzes a package from its rolled-up declaration files. Resolution is
    name based: a reference resolves through the declarations and imports of
    the file it occurs in, following relative module specifiers to other
    `.d.ts` files of the package.
    """

    def __init__(
        self,
        entry_point: str,
        *,
        package_name: Optional[str] = None,
        package_folder: Optional[str] = None,
        message_settings: Optional[MessageSettings] = None,
        sources: Optional[Dict[str, str | bytes]] = None,
    ) -> None:
        if package_folder is None:
            # Without a package folder a relative entry point is relative to the cwd
            entry_point = os.path.abspath(entry_point)
            package_folder = os.path.dirname(entry_point)
        self.package_folder = os.path.abspath(package_folder)
        self.entry_point = self._normalize_path(entry_point)
        self.package_name = package_name or os.path.basename(self.package_folder)
        self.package_doc_comment = None
        self.entities = []
        self.dts_type_reference_directives = set()
        self.dts_lib_reference_directives = set()
        self.star_exported_external_module_paths = []
        self.message_router = MessageRouter(message_settings)

        self._sources: Dict[str, bytes] = {}
        for path, text in (sources or {}).items():
            if isinstance(text, str):
                text = text.encode("utf-8")
            self._sources[self._normalize_path(path)] = text

        self._files: Dict[str, ParsedDtsFile] = {}
        # Keyed by root node id; identical files still parse into distinct trees
        self._files_by_root: Dict[int, ParsedDtsFile] = {}
        self._ast_imports: Dict[Tuple[str, str, Optional[str]], AstImport] = {}
        self._namespace_imports: Dict[str, AstNamespaceImport] = {}
        self._entities_by_ast_id: Dict[int, ExportedEntity] = {}
        self._metadata: Dict[str, ApiItemMetadata] = {}
        self._unresolved: Set[Tuple[str, str]] = set()
        self._analyzed = False

        self._handlers: Dict[str, Callable[[ParsedDtsFile, ts.Node], None]] = {
            "comment": self._handle_comment,
            "import_statement": self._handle_import,
            "export_statement": self._handle_export,
            "ambient_declaration": self._handle_ambient,
            "expression_statement": self._handle_expression,
            "class_declaration": self._handle_declaration,
            "abstract_class_declaration": self._handle_declaration,
            "interface_declaration": self._handle_declaration,
            "enum_declaration": self._handle_declaration,
            "type_alias_declaration": self._handle_declaration,
            "function_declaration": self._handle_declaration,
            "function_signature": self._handle_declaration,
            "internal_module": self._handle_declaration,
            "module": self._handle_declaration,
            "lexical_declaration": self._handle_declaration,
            "variable_declaration": self._handle_declaration,
            "empty_statement": self._ignore,
        }

    @classmethod
    def from_settings(cls, settings: ReportSettings) -> "DtsCollector":
        if not settings.entry_point:
            raise ValueError("entry_point must be set to analyze a package")
        collector = cls(
            os.path.abspath(settings.entry_point),
            package_name=settings.package_name,
            package_folder=settings.project_folder,
            message_settings=settings.messages,
        )
        return collector.analyze()

    # AbstractCollector
    def fetch_api_item_metadata(self, declaration: Declaration) -> ApiItemMetadata:
        metadata = self._metadata.get(declaration.id)
        if metadata is None:
            metadata = self._calculate_metadata(declaration)
            self._metadata[declaration.id] = metadata
        return metadata

    def try_get_entity_for_node(self, node: Any) -> Optional[ExportedEntity]:
        ast_entity = self._resolve_reference(node)
        if ast_entity is None:
            return None
        return self.try_get_collector_entity(ast_entity)

    def try_get_collector_entity(self, ast_entity: AstEntity) -> Optional[ExportedEntity]:
        return self._entities_by_ast_id.get(id(ast_entity))

    def is_ancillary_declaration(self, declaration: Declaration) -> bool:
        """A setter is ancillary to the getter of the same name."""
        if not _has_token(declaration.node, "set") or declaration.parent is None:
            return False
        return any(
            sibling.local_name == declaration.local_name and _has_token(sibling.node, "get")
            for sibling in declaration.parent.children
        )

    # Analysis
    def analyze(self) -> "DtsCollector":
        if self._analyzed:
            return self
        self._analyzed = True

        if not self.entry_point.endswith(".d.ts"):
            self.message_router.add_analyzer_issue(
                ExtractorMessageId.WRONG_INPUT_FILE_TYPE,
                "Incorrect file type; the API report is generated from declaration files "
                "with the .d.ts file extension",
                source_file_path=self.entry_point,
            )

        entry = self._parse_file(self.entry_point)
        if entry is None:
            raise FileNotFoundError(f"Entry point not found: {self.entry_point}")
        self.package_doc_comment = entry.package_doc_comment

        exports = self._collect_module_exports(entry, set())
        for export_name, ast_entity in exports.entities.items():
            entity = self._get_or_create_entity(ast_entity)
            entity.add_export_name(export_name)
        for module_path in exports.star_exported_external_modules:
            if module_path not in self.star_exported_external_module_paths:
                self.star_exported_external_module_paths.append(module_path)

        self._collect_referenced_entities()
        self._make_unique_names()
        self.entities.sort(key=lambda e: get_sort_key_ignoring_underscore(e.name_for_emit))
        self._report_missing_release_tags()

        logger.debug(
            "Analyzed package",
            package=self.package_name,
            files=len(self._files),
            entities=len(self.entities),
        )
        return self

    def _collect_referenced_entities(self) -> None:
        # Entities referenced by the API surface become part of the report too
        queue = list(self.entities)
        while queue:
            entity = queue.pop(0)
            ast_entity = entity.ast_entity

            if isinstance(ast_entity, AstNamespaceImport):
                for member in ast_entity.exported_entities.values():
                    if self.try_get_collector_entity(member) is None:
                        member_entity = self._get_or_create_entity(member)
                        member_entity.consumable = entity.consumable
                        queue.append(member_entity)
                continue

            if not isinstance(ast_entity, AstSymbol):
                continue

            for declaration in ast_entity.declarations:
                for node in _iter_reference_nodes(declaration.statement_node):
                    referenced = self._resolve_reference(node)
                    if referenced is None or referenced is ast_entity:
                        continue
                    if self.try_get_collector_entity(referenced) is not None:
                        continue

                    new_entity = self._get_or_create_entity(referenced)
                    if isinstance(referenced, (AstSymbol, AstNamespaceImport)):
                        new_entity.consumable = False
                        self.message_router.add_analyzer_issue(
                            ExtractorMessageId.FORGOTTEN_EXPORT,
                            f'The symbol "{_ideal_name(referenced)}" '
                            f"needs to be exported by the entry point "
                            f"{os.path.basename(self.entry_point)}",
                            declaration,
                        )
                    queue.append(new_entity)

    def _make_unique_names(self) -> None:
        used: Set[str] = set()
        for entity in self.entities:
            for export_name in entity.export_names:
                if export_name != DEFAULT_EXPORT_NAME:
                    used.add(export_name)

        for entity in self.entities:
            if entity.name_for_emit:
                continue
            names = [n for n in entity.export_names if n != DEFAULT_EXPORT_NAME]
            if len(entity.export_names) == 1 and names:
                entity.name_for_emit = names[0]
                continue

            ideal = _ideal_name(entity.ast_entity)
            if ideal in names:
                entity.name_for_emit = ideal
                continue
            name = ideal
            suffix = 1
            while name in used:
                suffix += 1
                name = f"{ideal}_{suffix}"
            used.add(name)
            entity.name_for_emit = name

    def _report_missing_release_tags(self) -> None:
        for entity in self.entities:
            if not entity.exported or not isinstance(entity.ast_entity, AstSymbol):
                continue
            declarations = entity.ast_entity.declarations
            if not declarations:
                continue
            if any(
                self.fetch_api_item_metadata(d).release_tag != ReleaseTag.NONE
                for d in declarations
            ):
                continue
            self.message_router.add_analyzer_issue(
                ExtractorMessageId.MISSING_RELEASE_TAG,
                f'"{entity.ast_entity.local_name}" is part of the package\'s API, but it is missing '
                "a release tag (@alpha, @beta, @public, or @internal)",
                declarations[0],
            )

    def _get_or_create_entity(self, ast_entity: AstEntity) -> ExportedEntity:
        entity = self._entities_by_ast_id.get(id(ast_entity))
        if entity is None:
            entity = ExportedEntity(ast_entity=ast_entity)
            self._entities_by_ast_id[id(ast_entity)] = entity
            self.entities.append(entity)
        return entity

    # Metadata
    def _calculate_metadata(self, declaration: Declaration) -> ApiItemMetadata:
        doc = _find_doc_comment(declaration)
        tags: List[str] = _BLOCK_TAG_RE.findall(doc) if doc else []
        tag_set = set(tags)

        release_tag = next(
            (_RELEASE_TAGS[t] for t in tags if t in _RELEASE_TAGS), ReleaseTag.NONE
        )

        release_tag_same_as_parent = False
        if declaration.parent is not None:
            parent_tag = self._effective_release_tag(declaration.parent)
            release_tag_same_as_parent = (
                release_tag == ReleaseTag.NONE or release_tag == parent_tag
            )

        return ApiItemMetadata(
            release_tag=release_tag,
            release_tag_same_as_parent=release_tag_same_as_parent,
            is_sealed="sealed" in tag_set,
            is_virtual="virtual" in tag_set,
            is_override="override" in tag_set,
            is_event_property="eventProperty" in tag_set,
            is_deprecated="deprecated" in tag_set,
            is_preapproved="preapproved" in tag_set,
            undocumented=not (_doc_summary(doc) or "inheritDoc" in tag_set),
        )

    def _effective_release_tag(self, declaration: Declaration) -> ReleaseTag:
        cur: Optional[Declaration] = declaration
        while cur is not None:
            tag = self.fetch_api_item_metadata(cur).release_tag
            if tag != ReleaseTag.NONE:
                return tag
            cur = cur.parent
        return ReleaseTag.NONE

    # Files
    def _normalize_path(self, path: str) -> str:
        if not os.path.isabs(path):
            path = os.path.join(self.package_folder, path)
        return os.path.normpath(path)

    def _read_source(self, path: str) -> Optional[bytes]:
        if path in self._sources:
            return self._sources[path]
        if os.path.isfile(path):
            with open(path, "rb") as f:
                return f.read()
        return None

    def _source_exists(self, path: str) -> bool:
        return path in self._sources or os.path.isfile(path)

    def _resolve_module_file(self, from_path: str, module_path: str) -> Optional[str]:
        """
        Path of the package file a relative module specifier refers to, or
        None for external modules and unresolvable specifiers.
        """
        if not module_path.startswith("."):
            return None

        base = os.path.normpath(os.path.join(os.path.dirname(from_path), module_path))
        candidates: List[str] = []
        if base.endswith(_MODULE_SUFFIXES):
            candidates.append(base)
        stem = base
        for suffix in _JS_SUFFIXES:
            if stem.endswith(suffix):
                stem = stem[: -len(suffix)]
                break
        candidates.extend(
            [stem + ".d.ts", stem + ".ts", os.path.join(stem, "index.d.ts")]
        )
        for candidate in candidates:
            if self._source_exists(candidate):
                return candidate

        if (from_path, module_path) not in self._unresolved:
            self._unresolved.add((from_path, module_path))
            self.message_router.add_analyzer_issue(
                ExtractorMessageId.UNRESOLVED_IMPORT,
                f'Unable to resolve the module "{module_path}"',
                source_file_path=from_path,
            )
        return None

    def _is_local_module(self, module_path: str) -> bool:
        return module_path.startswith(".")

    def _parse_file(self, path: str) -> Optional[ParsedDtsFile]:
        parsed = self._files.get(path)
        if parsed is not None:
            return parsed

        source = self._read_source(path)
        if source is None:
            return None

        tree = parse_source(source)
        parsed = ParsedDtsFile(path=path, source=source, tree=tree)
        self._files[path] = parsed
        self._files_by_root[tree.root_node.id] = parsed
        logger.debug("Parsing declaration file", path=path)

        for child in tree.root_node.children:
            self._process_node(parsed, child)
        return parsed

    def _process_node(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        handler = self._handlers.get(node.type)
        if handler is None:
            self._debug_unknown_node(parsed, node)
            return
        handler(parsed, node)

    def _debug_unknown_node(
        self, parsed: ParsedDtsFile, node: ts.Node, *, context: Optional[str] = None
    ) -> None:
        fields = dict(
            path=parsed.path,
            node_type=node.type,
            line=node_line(node),
            raw=(get_node_text(node) or "")[:200],
        )
        if context is not None:
            fields["context"] = context
        logger.debug("Skipping unsupported statement", **fields)

    # Handlers
    def _ignore(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        return

    def _handle_comment(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        text = get_node_text(node)
        m = _REFERENCE_DIRECTIVE_RE.match(text)
        if m:
            kind, value = m.groups()
            if kind == "types":
                self.dts_type_reference_directives.add(value)
            elif kind == "lib":
                self.dts_lib_reference_directives.add(value)
            else:
                self._debug_unknown_node(parsed, node, context="reference.path")
            return
        if (
            parsed.package_doc_comment is None
            and text.startswith("/**")
            and "@packageDocumentation" in text
        ):
            parsed.package_doc_comment = text

    def _handle_import(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        is_type_only = any(c.type == "type" for c in node.children)
        source = node.child_by_field_name("source")

        require_clause = next(
            (c for c in node.children if c.type in ("import_require_clause", "external_module_reference")),
            None,
        )
        if require_clause is not None:
            # import x = require("module")
            name_node = require_clause.child_by_field_name("name") or next(
                (c for c in require_clause.children if c.type == "identifier"), None
            )
            if name_node is None:
                name_node = node.child_by_field_name("name")
            module_node = require_clause.child_by_field_name("source") or _find_first(
                require_clause, "string"
            )
            if name_node is None or module_node is None:
                self._debug_unknown_node(parsed, node, context="import.require")
                return
            self._add_import(
                parsed,
                name_node,
                ImportKind.EQUALS,
                _string_value(module_node),
                get_node_text(name_node),
                is_type_only,
            )
            return

        if source is None:
            self._debug_unknown_node(parsed, node, context="import.missing_source")
            return
        module_path = _string_value(source)

        clause = next((c for c in node.children if c.type == "import_clause"), None)
        if clause is None:
            # Side-effect import
            return

        for part in clause.children:
            if part.type == "identifier":
                self._add_import(
                    parsed, part, ImportKind.DEFAULT, module_path, get_node_text(part), is_type_only
                )
            elif part.type == "namespace_import":
                alias = next((c for c in part.children if c.type == "identifier"), None)
                if alias is not None:
                    self._add_import(
                        parsed, alias, ImportKind.STAR, module_path, get_node_text(alias), is_type_only
                    )
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name_node = spec.child_by_field_name("name")
                    alias_node = spec.child_by_field_name("alias") or name_node
                    if name_node is None:
                        continue
                    self._add_import(
                        parsed,
                        alias_node,
                        ImportKind.NAMED,
                        module_path,
                        get_node_text(name_node),
                        is_type_only or any(c.type == "type" for c in spec.children),
                    )

    def _add_import(
        self,
        parsed: ParsedDtsFile,
        name_node: ts.Node,
        import_kind: ImportKind,
        module_path: str,
        export_name: Optional[str],
        is_type_only: bool,
    ) -> None:
        local_name = get_node_text(name_node)
        parsed.imports[local_name] = ImportBinding(
            local_name=local_name,
            import_kind=import_kind,
            module_path=module_path,
            export_name=export_name,
            is_type_only=is_type_only,
            line=node_line(name_node),
            column=node_column(name_node),
        )

    def _handle_export(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        source = node.child_by_field_name("source")
        module_path = _string_value(source) if source is not None else None
        is_default = any(c.type == "default" for c in node.children)

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            names = self._register_statement(parsed, declaration)
            for name in names:
                export_name = DEFAULT_EXPORT_NAME if is_default else name
                parsed.exports[export_name] = ExportBinding(
                    export_name=export_name, local_name=name
                )
            return

        clause = next((c for c in node.children if c.type == "export_clause"), None)
        if clause is not None:
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                name_node = spec.child_by_field_name("name")
                alias_node = spec.child_by_field_name("alias") or name_node
                if name_node is None:
                    continue
                name = get_node_text(name_node)
                export_name = get_node_text(alias_node)
                if module_path is not None:
                    parsed.exports[export_name] = ExportBinding(
                        export_name=export_name, module_path=module_path, source_name=name
                    )
                else:
                    parsed.exports[export_name] = ExportBinding(
                        export_name=export_name, local_name=name
                    )
            return

        namespace_export = next((c for c in node.children if c.type == "namespace_export"), None)
        if namespace_export is not None and module_path is not None:
            alias = next(
                (c for c in namespace_export.children if c.type in ("identifier", "string")),
                None,
            )
            if alias is not None:
                export_name = _string_value(alias) if alias.type == "string" else get_node_text(alias)
                parsed.exports[export_name] = ExportBinding(
                    export_name=export_name, module_path=module_path
                )
            return

        if module_path is not None and any(c.type == "*" for c in node.children):
            parsed.star_exports.append(module_path)
            return

        value = node.child_by_field_name("value")
        if is_default and value is not None and value.type == "identifier":
            parsed.exports[DEFAULT_EXPORT_NAME] = ExportBinding(
                export_name=DEFAULT_EXPORT_NAME, local_name=get_node_text(value)
            )
            return

        self._debug_unknown_node(parsed, node, context="export")

    def _handle_ambient(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        self._register_statement(parsed, node)

    def _handle_expression(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        inner = next((c for c in node.named_children if c.type == "internal_module"), None)
        if inner is None:
            self._debug_unknown_node(parsed, node)
            return
        self._register_statement(parsed, inner)

    def _handle_declaration(self, parsed: ParsedDtsFile, node: ts.Node) -> None:
        self._register_statement(parsed, node)

    def _register_statement(self, parsed: ParsedDtsFile, node: ts.Node) -> List[str]:
        """
        Create top-level declarations for a statement and add them to the
        file's symbols. Returns the local names declared.
        """
        if node.type == "ambient_declaration":
            inner = next(
                (c for c in node.named_children if c.type not in ("comment",)), None
            )
            if inner is None or inner.type == "statement_block":
                # declare global { ... }
                self._debug_unknown_node(parsed, node, context="ambient.global")
                return []
            return self._register_statement(parsed, inner)

        if node.type in _VARIABLE_STATEMENTS:
            names: List[str] = []
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name = self._add_declaration(parsed, declarator)
                if name:
                    names.append(name)
            return names

        if node.type == "module":
            name_node = node.child_by_field_name("name")
            if name_node is None or name_node.type == "string":
                # declare module "foo" { ... }
                self._debug_unknown_node(parsed, node, context="module.augmentation")
                return []

        if span_kind_for_node(node) not in DECLARATION_KINDS:
            self._debug_unknown_node(parsed, node, context="declaration")
            return []

        name = self._add_declaration(parsed, node)
        return [name] if name else []

    def _add_declaration(self, parsed: ParsedDtsFile, node: ts.Node) -> Optional[str]:
        declaration = self._make_declaration(parsed, node, None)
        if declaration is None:
            return None
        self._collect_child_declarations(parsed, declaration, node)

        symbol = parsed.symbols.get(declaration.local_name)
        if symbol is None:
            symbol = AstSymbol(local_name=declaration.local_name, file_path=parsed.path)
            parsed.symbols[declaration.local_name] = symbol
        symbol.declarations.append(declaration)
        return declaration.local_name

    def _collect_child_declarations(
        self, parsed: ParsedDtsFile, parent: Declaration, node: ts.Node
    ) -> None:
        for child in node.children:
            if span_kind_for_node(child) in DECLARATION_KINDS:
                declaration = self._make_declaration(parsed, child, parent)
                if declaration is not None:
                    parent.children.append(declaration)
                    self._collect_child_declarations(parsed, declaration, child)
                    continue
            self._collect_child_declarations(parsed, parent, child)

    def _make_declaration(
        self, parsed: ParsedDtsFile, node: ts.Node, parent: Optional[Declaration]
    ) -> Optional[Declaration]:
        kind = _SPAN_TO_DECLARATION_KIND.get(span_kind_for_node(node))
        if kind is None:
            return None

        if kind in _SIGNATURE_NAMES:
            local_name = _SIGNATURE_NAMES[kind]
        elif node.type == "property_identifier":
            local_name = get_node_text(node)
        else:
            name_node = node.child_by_field_name("name") or next(
                (c for c in node.named_children if c.type in _NAME_NODE_TYPES), None
            )
            if name_node is None:
                # export default function (): void;
                local_name = "_default" if parent is None else "__unnamed"
            elif name_node.type == "string":
                local_name = _string_value(name_node)
            else:
                local_name = get_node_text(name_node)

        if kind == DeclarationKind.METHOD and local_name == "constructor":
            kind = DeclarationKind.CONSTRUCTOR
            local_name = "__constructor"

        return Declaration(
            id=generate_id(),
            local_name=local_name,
            kind=kind,
            modifier_flags=_modifier_flags(node),
            file_path=parsed.path,
            line=node_line(node),
            column=node_column(node),
            node=node,
            source=parsed.source,
            parent=parent,
        )

    # Module exports
    def _collect_module_exports(
        self, parsed: ParsedDtsFile, visited: Set[str]
    ) -> _ModuleExports:
        """All names a module exports, in declaration order, star exports last."""
        result = _ModuleExports()
        if parsed.path in visited:
            return result
        visited.add(parsed.path)

        for export_name in parsed.exports:
            ast_entity = self._resolve_export(parsed, export_name, set())
            if ast_entity is None:
                if (parsed.path, f"export:{export_name}") not in self._unresolved:
                    self._unresolved.add((parsed.path, f"export:{export_name}"))
                    self.message_router.add_analyzer_issue(
                        ExtractorMessageId.UNRESOLVED_IMPORT,
                        f'Unable to resolve the export "{export_name}"',
                        source_file_path=parsed.path,
                    )
                continue
            result.entities[export_name] = ast_entity

        for module_path in parsed.star_exports:
            module_file = self._resolve_module_file(parsed.path, module_path)
            if module_file is None:
                if not self._is_local_module(module_path):
                    result.star_exported_external_modules.append(module_path)
                continue
            module = self._parse_file(module_file)
            if module is None:
                continue
            nested = self._collect_module_exports(module, visited)
            for export_name, ast_entity in nested.entities.items():
                if export_name != DEFAULT_EXPORT_NAME:
                    result.entities.setdefault(export_name, ast_entity)
            for external in nested.star_exported_external_modules:
                if external not in result.star_exported_external_modules:
                    result.star_exported_external_modules.append(external)
        return result

    def _resolve_export(
        self, parsed: ParsedDtsFile, export_name: str, visited: Set[Tuple[str, str]]
    ) -> Optional[AstEntity]:
        key = (parsed.path, export_name)
        if key in visited:
            return None
        visited.add(key)

        binding = parsed.exports.get(export_name)
        if binding is not None:
            if binding.module_path is None:
                return self._resolve_local(parsed, binding.local_name or export_name)

            module_file = self._resolve_module_file(parsed.path, binding.module_path)
            if module_file is None:
                if self._is_local_module(binding.module_path):
                    return None
                if binding.source_name is None:
                    return self._get_ast_import(
                        ImportKind.STAR, binding.module_path, binding.export_name
                    )
                return self._get_ast_import(
                    ImportKind.NAMED, binding.module_path, binding.source_name
                )

            module = self._parse_file(module_file)
            if module is None:
                return None
            if binding.source_name is None:
                return self._get_namespace_import(module, export_name, parsed.path, 0, 0)
            return self._resolve_export(module, binding.source_name, visited)

        for module_path in parsed.star_exports:
            if export_name == DEFAULT_EXPORT_NAME:
                break
            module_file = self._resolve_module_file(parsed.path, module_path)
            if module_file is None:
                continue
            module = self._parse_file(module_file)
            if module is None:
                continue
            found = self._resolve_export(module, export_name, visited)
            if found is not None:
                return found
        return None

    def _resolve_local(self, parsed: ParsedDtsFile, name: str) -> Optional[AstEntity]:
        symbol = parsed.symbols.get(name)
        if symbol is not None:
            return symbol
        binding = parsed.imports.get(name)
        if binding is not None:
            return self._resolve_import_binding(parsed, binding)
        return None

    def _resolve_import_binding(
        self, parsed: ParsedDtsFile, binding: ImportBinding
    ) -> Optional[AstEntity]:
        module_file = self._resolve_module_file(parsed.path, binding.module_path)
        if module_file is None:
            if self._is_local_module(binding.module_path):
                return None
            return self._get_ast_import(
                binding.import_kind,
                binding.module_path,
                binding.export_name,
                binding.is_type_only,
            )

        module = self._parse_file(module_file)
        if module is None:
            return None
        match binding.import_kind:
            case ImportKind.NAMED:
                return self._resolve_export(module, binding.export_name or binding.local_name, set())
            case ImportKind.DEFAULT:
                return self._resolve_export(module, DEFAULT_EXPORT_NAME, set())
            case _:
                return self._get_namespace_import(
                    module, binding.local_name, parsed.path, binding.line, binding.column
                )

    def _get_ast_import(
        self,
        import_kind: ImportKind,
        module_path: str,
        export_name: Optional[str],
        is_type_only: bool = False,
    ) -> AstImport:
        key = (import_kind.value, module_path, export_name)
        ast_import = self._ast_imports.get(key)
        if ast_import is None:
            ast_import = AstImport(
                import_kind=import_kind,
                module_path=module_path,
                export_name=export_name,
                is_type_only=is_type_only,
            )
            self._ast_imports[key] = ast_import
        elif not is_type_only:
            # A value import anywhere makes the emitted import a value import
            ast_import.is_type_only = False
        return ast_import

    def _get_namespace_import(
        self,
        module: ParsedDtsFile,
        namespace_name: str,
        file_path: str,
        line: int,
        column: int,
    ) -> AstNamespaceImport:
        namespace_import = self._namespace_imports.get(module.path)
        if namespace_import is not None:
            return namespace_import

        namespace_import = AstNamespaceImport(
            namespace_name=namespace_name,
            module_path=module.path,
            file_path=file_path,
            line=line,
            column=column,
        )
        # Register first so self-referencing modules terminate
        self._namespace_imports[module.path] = namespace_import
        exports = self._collect_module_exports(module, set())
        namespace_import.exported_entities.update(exports.entities)
        namespace_import.star_exported_external_modules.extend(
            exports.star_exported_external_modules
        )
        return namespace_import

    # References
    def _file_for_node(self, node: ts.Node) -> Optional[ParsedDtsFile]:
        root = node
        while root.parent is not None:
            root = root.parent
        return self._files_by_root.get(root.id)

    def _resolve_reference(self, node: Any) -> Optional[AstEntity]:
        """
        Resolve a reference occurrence (an identifier or an import type) to
        the AST entity it denotes.
        """
        parsed = self._file_for_node(node)
        if parsed is None:
            return None

        if span_kind_for_node(node) == SpanKind.IMPORT_TYPE:
            return self._resolve_import_type(parsed, node)

        if node.type not in ("identifier", "type_identifier"):
            return None
        if not _is_reference_position(node):
            return None

        name = get_node_text(node)
        if _is_locally_scoped(node, name):
            return None
        return self._resolve_local(parsed, name)

    def _resolve_import_type(self, parsed: ParsedDtsFile, node: ts.Node) -> Optional[AstEntity]:
        m = _IMPORT_TYPE_RE.search(get_node_text(node))
        if m is None:
            return None
        module_path = m.group(1)
        qualifier = [q.strip() for q in m.group(2).split(".") if q.strip()]

        module_file = self._resolve_module_file(parsed.path, module_path)
        if module_file is None:
            if self._is_local_module(module_path):
                return None
            return self._get_ast_import(
                ImportKind.IMPORT_TYPE,
                module_path,
                ".".join(qualifier) if qualifier else None,
                True,
            )

        module = self._parse_file(module_file)
        if module is None:
            return None
        if not qualifier:
            namespace_name = _module_identifier(module_path)
            return self._get_namespace_import(
                module, namespace_name, parsed.path, node_line(node), node_column(node)
            )
        if len(qualifier) == 1:
            return self._resolve_export(module, qualifier[0], set())
        return None


# Node helpers
def _has_token(node: Any, token: str) -> bool:
    return node is not None and any(c.type == token for c in node.children)


def _find_first(node: ts.Node, node_type: str) -> Optional[ts.Node]:
    for child in node.children:
        if child.type == node_type:
            return child
        found = _find_first(child, node_type)
        if found is not None:
            return found
    return None


def _string_value(node: ts.Node) -> str:
    return get_node_text(node).strip().strip("\"'`")


def _module_identifier(module_path: str) -> str:
    base = os.path.basename(module_path.rstrip("/")) or "module"
    for suffix in (".d.ts",) + _MODULE_SUFFIXES + _JS_SUFFIXES:
        if base.endswith(suffix):
            base = base[: -len(suffix)]
            break
    ident = re.sub(r"[^\w$]", "_", base)
    if not ident or ident[0].isdigit():
        ident = "_" + ident
    return ident


def _modifier_flags(node: ts.Node) -> ModifierFlags:
    flags = ModifierFlags.NONE
    for child in node.children:
        if child.type == "accessibility_modifier":
            text = get_node_text(child)
            if text == "private":
                flags |= ModifierFlags.PRIVATE
            elif text == "protected":
                flags |= ModifierFlags.PROTECTED
        elif child.type == "private_property_identifier":
            flags |= ModifierFlags.PRIVATE
        elif child.type in _MODIFIER_TOKEN_FLAGS:
            flags |= _MODIFIER_TOKEN_FLAGS[child.type]

    cur = node.parent
    if node.type == "variable_declarator" and cur is not None:
        cur = cur.parent
    while cur is not None and cur.type in ("export_statement", "ambient_declaration"):
        if cur.type == "ambient_declaration":
            flags |= ModifierFlags.DECLARE
        else:
            flags |= ModifierFlags.EXPORT
            if _has_token(cur, "default"):
                flags |= ModifierFlags.DEFAULT
        cur = cur.parent
    return flags


def _statement_anchor(node: ts.Node) -> ts.Node:
    """The outermost node of the statement that introduces *node*."""
    anchor = node
    if anchor.type == "variable_declarator" and anchor.parent is not None:
        anchor = anchor.parent
    while anchor.parent is not None and anchor.parent.type in _STATEMENT_WRAPPERS:
        anchor = anchor.parent
    return anchor


def _find_doc_comment(declaration: Declaration) -> Optional[str]:
    if declaration.node is None:
        return None
    prev = _statement_anchor(declaration.node).prev_sibling
    if prev is None or prev.type != "comment":
        return None
    text = get_node_text(prev)
    if not text.startswith("/**") or "@packageDocumentation" in text:
        return None
    return text


def _doc_summary(doc: Optional[str]) -> str:
    """Text of a doc comment before its first block tag."""
    if not doc:
        return ""
    body = doc[3:-2] if doc.endswith("*/") else doc[3:]
    lines = []
    for line in body.splitlines():
        line = line.strip()
        if line.startswith("*"):
            line = line[1:].strip()
        lines.append(line)
    text = "\n".join(lines)
    m = _BLOCK_TAG_RE.search(text)
    if m is not None:
        text = text[: m.start()]
    return text.strip()


def _is_top_level(node: ts.Node) -> bool:
    anchor = _statement_anchor(node)
    return anchor.parent is not None and anchor.parent.type == "program"


def _is_reference_position(node: ts.Node) -> bool:
    """False for identifiers that name something rather than refer to it."""
    parent = node.parent
    if parent is None:
        return True
    key = node_key(node)

    def is_field(field: str) -> bool:
        other = parent.child_by_field_name(field)
        return other is not None and node_key(other) == key

    if parent.type == "nested_type_identifier" and is_field("name"):
        return False
    if parent.type == "nested_identifier":
        # namespace A.B { ... }
        outer = parent
        while outer.parent is not None and outer.parent.type == "nested_identifier":
            outer = outer.parent
        if outer.parent is not None and span_kind_for_node(outer.parent) in DECLARATION_KINDS:
            return False
    if parent.type in ("required_parameter", "optional_parameter") and is_field("pattern"):
        return False
    if parent.type in ("rest_pattern", "type_parameter", "infer_type"):
        return False
    if parent.type == "mapped_type_clause" and is_field("name"):
        return False
    if span_kind_for_node(parent) in DECLARATION_KINDS and is_field("name"):
        # A top-level declaration's own name refers to its symbol
        return _is_top_level(parent)

    cur = parent
    while cur is not None:
        if span_kind_for_node(cur) == SpanKind.IMPORT_TYPE:
            return False
        cur = cur.parent
    return True


def _declares_name(node: ts.Node, name: str) -> bool:
    for child in node.named_children:
        target = child
        if target.type in ("export_statement", "ambient_declaration"):
            target = next((c for c in target.named_children if c.type != "comment"), target)
        name_node = target.child_by_field_name("name")
        if name_node is not None and get_node_text(name_node) == name:
            return True
    return False


def _is_locally_scoped(node: ts.Node, name: str) -> bool:
    """
    True when *name* is bound by an enclosing construct: a type parameter,
    a mapped type key, an `infer` variable or a nested namespace member.
    """
    cur = node.parent
    while cur is not None:
        type_parameters = cur.child_by_field_name("type_parameters")
        if type_parameters is not None:
            for parameter in type_parameters.named_children:
                parameter_name = parameter.child_by_field_name("name")
                if parameter_name is not None and get_node_text(parameter_name) == name:
                    return True
        if cur.type == "mapped_type_clause" or cur.type == "index_signature":
            clause = cur if cur.type == "mapped_type_clause" else next(
                (c for c in cur.named_children if c.type == "mapped_type_clause"), None
            )
            if clause is not None:
                clause_name = clause.child_by_field_name("name")
                if clause_name is not None and get_node_text(clause_name) == name:
                    return True
        if cur.type == "conditional_type":
            for infer in _iter_nodes(cur, "infer_type"):
                infer_name = next(
                    (c for c in infer.named_children if c.type == "type_identifier"), None
                )
                if infer_name is not None and get_node_text(infer_name) == name:
                    return True
        if cur.type == "statement_block" and cur.parent is not None and cur.parent.type in (
            "internal_module",
            "module",
        ):
            if _declares_name(cur, name):
                return True
        cur = cur.parent
    return False


def _iter_nodes(node: ts.Node, node_type: str):
    stack = [node]
    while stack:
        cur = stack.pop()
        if cur.type == node_type:
            yield cur
        stack.extend(cur.children)


def _iter_reference_nodes(node: ts.Node):
    """Identifier and import type nodes under *node*, in source order."""
    stack = [node]
    while stack:
        cur = stack.pop()
        if cur.type in ("identifier", "type_identifier") or (
            span_kind_for_node(cur) == SpanKind.IMPORT_TYPE
        ):
            yield cur
            if cur.type not in ("identifier", "type_identifier"):
                continue
        stack.extend(reversed(cur.children))


def _ideal_name(ast_entity: AstEntity) -> str:
    if isinstance(ast_entity, AstSymbol):
        return ast_entity.local_name
    if isinstance(ast_entity, AstNamespaceImport):
        return ast_entity.namespace_name
    if ast_entity.export_name:
        return ast_entity.export_name.split(".")[0]
    return _module_identifier(ast_entity.module_path)
