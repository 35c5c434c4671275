from enum import Enum, IntEnum, IntFlag
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from apireport.parsers import node_key

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ReleaseTag(IntEnum):
    """
    Stability marker attached to a declaration. Values are ordered so that a
    larger value is more stable.
    """

    NONE = 0
    INTERNAL = 1
    ALPHA = 2
    BETA = 3
    PUBLIC = 4

    @property
    def tag_name(self) -> str:
        if self is ReleaseTag.NONE:
            return "(none)"
        return f"@{self.name.lower()}"


class ReportReleaseLevel(str, Enum):
    """Minimum release tag level included in an API report."""

    UNTRIMMED = "untrimmed"
    ALPHA = "alpha"
    BETA = "beta"
    PUBLIC = "public"


class DeclarationKind(str, Enum):
    CLASS = "class"
    INTERFACE = "interface"
    ENUM = "enum"
    ENUM_MEMBER = "enum_member"
    NAMESPACE = "namespace"
    TYPE_ALIAS = "type_alias"
    FUNCTION = "function"
    VARIABLE = "variable"
    PROPERTY = "property"
    PROPERTY_SIGNATURE = "property_signature"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    CALL_SIGNATURE = "call_signature"
    CONSTRUCT_SIGNATURE = "construct_signature"
    INDEX_SIGNATURE = "index_signature"


class ModifierFlags(IntFlag):
    NONE = 0
    EXPORT = 1
    DECLARE = 2
    DEFAULT = 4
    PRIVATE = 8
    PROTECTED = 16
    STATIC = 32
    ABSTRACT = 64
    READONLY = 128


class ExtractorMessageId(str, Enum):
    UNDOCUMENTED = "ae-undocumented"
    FORGOTTEN_EXPORT = "ae-forgotten-export"
    MISSING_RELEASE_TAG = "ae-missing-release-tag"
    UNRESOLVED_IMPORT = "ae-unresolved-import"
    WRONG_INPUT_FILE_TYPE = "ae-wrong-input-file-type"


class ImportKind(str, Enum):
    NAMED = "named"
    DEFAULT = "default"
    STAR = "star"
    EQUALS = "equals"
    IMPORT_TYPE = "import_type"


# Generic types
ModelId = str

# Export name used for `export default ...`
DEFAULT_EXPORT_NAME = "default"


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


_WRAPPER_NODE_TYPES = ("export_statement", "ambient_declaration")


class Declaration(BaseModel):
    id: ModelId
    local_name: str
    kind: DeclarationKind
    modifier_flags: ModifierFlags = ModifierFlags.NONE
    file_path: str = ""
    line: int = 0
    column: int = 0

    # Runtime links
    node: Any = Field(default=None, exclude=True, repr=False)
    source: Optional[bytes] = Field(default=None, exclude=True, repr=False)
    parent: Optional["Declaration"] = Field(default=None, exclude=True, repr=False)
    children: List["Declaration"] = Field(
        default_factory=list, exclude=True, repr=False
    )

    @property
    def statement_node(self) -> Any:
        """
        Syntax node a report block is rendered from. Export and ambient wrappers
        are included so their keywords can be rewritten; variable declarators are
        rendered on their own since several can share one statement.
        """
        if self.kind == DeclarationKind.VARIABLE:
            return self.node
        cur = self.node
        while cur is not None and cur.parent is not None:
            if cur.parent.type not in _WRAPPER_NODE_TYPES:
                break
            cur = cur.parent
        return cur

    def find_child_by_node(self, node: Any) -> Optional["Declaration"]:
        key = node_key(node)
        for child in self.children:
            if node_key(child.node) == key:
                return child
        return None

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"


class ApiItemMetadata(BaseModel):
    """Documentation-derived facts about a single declaration."""

    release_tag: ReleaseTag = ReleaseTag.NONE
    release_tag_same_as_parent: bool = False
    is_sealed: bool = False
    is_virtual: bool = False
    is_override: bool = False
    is_event_property: bool = False
    is_deprecated: bool = False
    is_preapproved: bool = False
    undocumented: bool = False


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class AstSymbol(BaseModel):
    local_name: str
    file_path: str = ""
    declarations: List[Declaration] = Field(default_factory=list)


class AstImport(BaseModel):
    import_kind: ImportKind
    module_path: str
    export_name: Optional[str] = None
    is_type_only: bool = False


class AstNamespaceImport(BaseModel):
    """`import * as ns from "./module"` where the module is part of the package."""

    namespace_name: str
    module_path: str
    file_path: str = ""
    line: int = 0
    column: int = 0
    # export name -> entity exported by the aliased module
    exported_entities: Dict[str, "AstEntity"] = Field(default_factory=dict)
    star_exported_external_modules: List[str] = Field(default_factory=list)

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"


AstEntity = Union[AstSymbol, AstImport, AstNamespaceImport]

AstNamespaceImport.model_rebuild()


class ExportedEntity(BaseModel):
    ast_entity: AstEntity
    name_for_emit: Optional[str] = None
    export_names: List[str] = Field(default_factory=list)
    consumable: bool = True
    # Explicit override of the computed `should_inline_export`
    inline_export: Optional[bool] = None

    def add_export_name(self, name: str) -> None:
        if name not in self.export_names:
            self.export_names.append(name)

    @property
    def exported(self) -> bool:
        return bool(self.export_names)

    @property
    def should_inline_export(self) -> bool:
        """
        True when the entity can be rendered as `export class X` instead of a
        separate `export { X }` clause. Imports are never inlined, nor are
        symbols exported under several names, as default, or under a name
        that differs from the emitted one.
        """
        if self.inline_export is not None:
            return self.inline_export
        if not isinstance(self.ast_entity, AstSymbol):
            return False
        if len(self.export_names) != 1:
            return False
        name = self.export_names[0]
        if name == DEFAULT_EXPORT_NAME:
            return False
        return self.name_for_emit is None or self.name_for_emit == name
