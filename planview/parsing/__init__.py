"""Line-oriented parsers for the plan document dialects and AI analysis payloads."""

from planview.parsing.analysis_payload import (
    AnalysisMalformed,
    AnalysisNotFound,
    AnalysisOk,
    AnalysisPayload,
    AnalysisResult,
    extract_analysis,
)
from planview.parsing.models import (
    Checkpoint,
    PlanNode,
    ProjectInfo,
    RelatedFile,
    TaskDocument,
    TaskRecord,
)
from planview.parsing.requirements_doc import ParentStrategy, group_children, parse_requirements
from planview.parsing.task_status import parse_task_document

__all__ = [
    "AnalysisMalformed",
    "AnalysisNotFound",
    "AnalysisOk",
    "AnalysisPayload",
    "AnalysisResult",
    "Checkpoint",
    "ParentStrategy",
    "PlanNode",
    "ProjectInfo",
    "RelatedFile",
    "TaskDocument",
    "TaskRecord",
    "extract_analysis",
    "group_children",
    "parse_requirements",
    "parse_task_document",
]
