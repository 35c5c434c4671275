import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from apireport.logger import logger
from apireport.models import Declaration, ExtractorMessageId, ModelId
from apireport.settings import MessageSettings


class ExtractorMessage(BaseModel):
    """A diagnostic produced while analyzing the package."""

    message_id: str
    text: str
    source_file_path: Optional[str] = None
    line: int = 0
    column: int = 0
    declaration_id: Optional[ModelId] = None
    export_name: Optional[str] = None
    handled: bool = False

    def format_message_without_location(self) -> str:
        return f"({self.message_id}) {self.text}"

    def format_message_with_location(self, base_folder: Optional[str] = None) -> str:
        if not self.source_file_path:
            return self.format_message_without_location()
        path = self.source_file_path
        if base_folder and os.path.isabs(path):
            path = os.path.relpath(path, base_folder)
        path = path.replace(os.sep, "/")
        location = path
        if self.line:
            location += f":{self.line}"
            if self.column:
                location += f":{self.column}"
        return f"{location} - {self.format_message_without_location()}"


class MessageRouter:
    """
    Collects diagnostics and hands each one out at most once, either next to
    its declaration, next to an export clause, or in the trailing block.
    """

    def __init__(self, settings: Optional[MessageSettings] = None) -> None:
        self.settings = settings or MessageSettings()
        self.messages: List[ExtractorMessage] = []
        self._by_declaration: Dict[ModelId, List[ExtractorMessage]] = {}

    def add_message(self, message: ExtractorMessage) -> ExtractorMessage:
        self.messages.append(message)
        if message.declaration_id is not None:
            self._by_declaration.setdefault(message.declaration_id, []).append(message)
        logger.warning(
            message.text,
            message_id=message.message_id,
            path=message.source_file_path,
            line=message.line,
        )
        return message

    def add_analyzer_issue(
        self,
        message_id: ExtractorMessageId | str,
        text: str,
        declaration: Optional[Declaration] = None,
        *,
        export_name: Optional[str] = None,
        source_file_path: Optional[str] = None,
        line: int = 0,
        column: int = 0,
    ) -> ExtractorMessage:
        if isinstance(message_id, ExtractorMessageId):
            message_id = message_id.value
        if declaration is not None:
            source_file_path = source_file_path or declaration.file_path
            line = line or declaration.line
            column = column or declaration.column
        return self.add_message(
            ExtractorMessage(
                message_id=message_id,
                text=text,
                source_file_path=source_file_path,
                line=line,
                column=column,
                declaration_id=declaration.id if declaration is not None else None,
                export_name=export_name,
            )
        )

    def fetch_associated_messages_for_review_file(
        self, declaration: Declaration
    ) -> List[ExtractorMessage]:
        """
        Return unhandled messages for *declaration* that belong in the report,
        marking them handled.
        """
        result = self._take(self._by_declaration.get(declaration.id, []))
        return self._sorted(result)

    def fetch_unassociated_messages_for_review_file(self) -> List[ExtractorMessage]:
        """
        Return every message not yet placed in the report, marking them handled.
        """
        return self._sorted(self._take(self.messages))

    def _take(self, messages: List[ExtractorMessage]) -> List[ExtractorMessage]:
        taken: List[ExtractorMessage] = []
        for message in messages:
            if message.handled:
                continue
            if not self.settings.rule_for(message.message_id).add_to_api_report_file:
                continue
            message.handled = True
            taken.append(message)
        return taken

    @staticmethod
    def _sorted(messages: List[ExtractorMessage]) -> List[ExtractorMessage]:
        return sorted(
            messages,
            key=lambda m: (m.source_file_path or "", m.line, m.column, m.text),
        )
