from abc import ABC, abstractmethod
from typing import Any, List, Optional, Set

from apireport.messages import MessageRouter
from apireport.models import ApiItemMetadata, AstEntity, Declaration, ExportedEntity


class AbstractCollector(ABC):
    """
    Everything the report engine needs from the analysis of a package. All
    data must be fully computed before a report is generated; the engine only
    reads it, apart from marking messages handled and adding `ae-undocumented`
    issues through `message_router`.
    """

    package_name: str
    package_folder: Optional[str]
    package_doc_comment: Optional[str]
    entities: List[ExportedEntity]
    dts_type_reference_directives: Set[str]
    dts_lib_reference_directives: Set[str]
    star_exported_external_module_paths: List[str]
    message_router: MessageRouter

    @abstractmethod
    def fetch_api_item_metadata(self, declaration: Declaration) -> ApiItemMetadata:
        pass

    @abstractmethod
    def try_get_entity_for_node(self, node: Any) -> Optional[ExportedEntity]:
        """
        Resolve an identifier (or import type) occurrence to the tracked entity
        it refers to, or None when it is not tracked.
        """
        pass

    @abstractmethod
    def try_get_collector_entity(self, ast_entity: AstEntity) -> Optional[ExportedEntity]:
        pass

    @abstractmethod
    def is_ancillary_declaration(self, declaration: Declaration) -> bool:
        """True for a declaration that merely accompanies a primary one (e.g. a setter)."""
        pass

    def get_child_declaration_by_node(
        self, node: Any, parent: Declaration
    ) -> Optional[Declaration]:
        return parent.find_child_by_node(node)
