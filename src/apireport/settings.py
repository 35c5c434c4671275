from typing import Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    TomlConfigSettingsSource,
)

from apireport.models import ExtractorMessageId, ReportReleaseLevel


class MessageReportingRule(BaseModel):
    """How a single diagnostic message id is reported."""

    add_to_api_report_file: bool = Field(
        default=True,
        description=(
            "If True, messages with this id are rendered as comments in the API report. "
            "If False, they are only logged."
        ),
    )


def _get_default_message_rules() -> Dict[str, MessageReportingRule]:
    return {
        ExtractorMessageId.UNDOCUMENTED.value: MessageReportingRule(
            add_to_api_report_file=False
        ),
    }


class MessageSettings(BaseModel):
    """Settings for diagnostic message routing."""

    default: MessageReportingRule = Field(
        default_factory=MessageReportingRule,
        description="Rule applied to message ids without an explicit entry in `rules`.",
    )
    rules: Dict[str, MessageReportingRule] = Field(
        default_factory=_get_default_message_rules,
        description='Per message id rules, keyed by id (e.g. "ae-undocumented").',
    )

    def rule_for(self, message_id: str) -> MessageReportingRule:
        return self.rules.get(message_id, self.default)


class ReportSettings(BaseSettings):
    """Top-level settings for generating API reports."""

    package_name: Optional[str] = Field(
        default=None,
        description="Package name shown in the report header. Defaults to the entry point's folder name.",
    )
    entry_point: Optional[str] = Field(
        default=None,
        description="Path to the rolled-up declaration file (.d.ts) the report is generated from.",
    )
    project_folder: Optional[str] = Field(
        default=None,
        description=(
            "Folder that diagnostic locations are reported relative to. "
            "Defaults to the entry point's folder."
        ),
    )
    report_folder: str = Field(
        default=".",
        description="Folder the *.api.md report files are written to.",
    )
    release_levels: List[ReportReleaseLevel] = Field(
        default_factory=lambda: [ReportReleaseLevel.UNTRIMMED],
        description=(
            "Report variants to generate. Each level produces its own report file; "
            'allowed values: "untrimmed", "alpha", "beta", "public".'
        ),
    )
    include_forgotten_exports: bool = Field(
        default=False,
        description=(
            "If True, declarations that are referenced by the API but not exported "
            "are rendered in the report as well."
        ),
    )
    local_build: bool = Field(
        default=True,
        description=(
            "If True, changed reports are written in place. If False (CI builds), "
            "existing reports are left untouched and a change is reported as a failure."
        ),
    )
    messages: MessageSettings = Field(
        default_factory=MessageSettings,
        description="A `MessageSettings` object with diagnostic routing rules.",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Explicit arguments win over the environment, which wins over config files
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            JsonConfigSettingsSource(settings_cls),
            file_secret_settings,
        )
