"""
Core Error Handling
"""

from .errors import (
    RichMCPError,
    WorkflowParseError,
    MissingNodesError,
    MissingFieldsError,
    DuplicateNameError,
    WorkflowNameError,
    CategoryDetectionError,
    format_parse_error,
    format_missing_nodes,
    format_missing_fields,
    format_duplicate_name,
)

__all__ = [
    "RichMCPError",
    "WorkflowParseError",
    "MissingNodesError",
    "MissingFieldsError",
    "DuplicateNameError",
    "WorkflowNameError",
    "CategoryDetectionError",
    "format_parse_error",
    "format_missing_nodes",
    "format_missing_fields",
    "format_duplicate_name",
]
