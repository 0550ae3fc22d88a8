from .aggregator import ResultAggregator
from .analyzer import (
    PROCESSING_ERROR_FLAG,
    ResumeAnalyzer,
    VerdictParseError,
    failure_verdict,
    is_processing_error,
    parse_verdict_payload,
)
from .intake import Document, IntakeResult, is_supported_resume, partition_uploads
from .report import ReportExportError, VerdictPartition, export_csv, partition_verdicts, report_filename
from .scheduler import BatchScheduler, iter_batches
from .state import LogEntry, RunState, RunStatus

__all__ = [
    "Document",
    "IntakeResult",
    "is_supported_resume",
    "partition_uploads",
    "ResumeAnalyzer",
    "VerdictParseError",
    "PROCESSING_ERROR_FLAG",
    "failure_verdict",
    "is_processing_error",
    "parse_verdict_payload",
    "BatchScheduler",
    "iter_batches",
    "ResultAggregator",
    "LogEntry",
    "RunState",
    "RunStatus",
    "ReportExportError",
    "VerdictPartition",
    "export_csv",
    "partition_verdicts",
    "report_filename",
]
