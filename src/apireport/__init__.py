from apireport.extractor import ExtractorResult, ReportResult, run_extractor
from apireport.lang.typescript import DtsCollector
from apireport.models import ReleaseTag, ReportReleaseLevel
from apireport.report import are_equivalent_api_file_contents, generate_review_file_content
from apireport.settings import ReportSettings

__all__ = [
    "DtsCollector",
    "ExtractorResult",
    "ReleaseTag",
    "ReportReleaseLevel",
    "ReportResult",
    "ReportSettings",
    "are_equivalent_api_file_contents",
    "generate_review_file_content",
    "run_extractor",
]
