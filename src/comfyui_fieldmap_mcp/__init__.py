"""
ComfyUI Field Mapping MCP Server

A Model Context Protocol server that imports ComfyUI API-format workflows
and maps their inputs to template fields (prompts, models, sampler
parameters) so an editor can confirm the mapping before it is saved.
"""

__version__ = "0.1.0"

from .server import mcp, main
from .graph import WorkflowGraph, WorkflowNode, parse_workflow
from .template_keys import WorkflowCategory
from .field_mapping import FieldCandidate, FieldMappingState, WorkflowMappingState, create_field_mapping_state
from .import_pipeline import WorkflowAnalysis, analyze_workflow, finalize_mapping

__all__ = [
    "mcp",
    "main",
    "__version__",
    "WorkflowGraph",
    "WorkflowNode",
    "parse_workflow",
    "WorkflowCategory",
    "FieldCandidate",
    "FieldMappingState",
    "WorkflowMappingState",
    "create_field_mapping_state",
    "WorkflowAnalysis",
    "analyze_workflow",
    "finalize_mapping",
]
