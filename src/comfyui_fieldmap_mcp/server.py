"""ComfyUI Field Mapping MCP Server - Main entry point."""

import json
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from core.errors import CategoryDetectionError

from . import import_pipeline
from . import role_classifier
from . import workflow_library
from .compatibility import available_class_types, validate_nodes
from .detection import detect_category
from .field_mapping import WorkflowMappingState
from .graph import parse_workflow
from .mcp_utils import mcp_tool_wrapper, validation_error
from .placeholders import WorkflowCapabilities, offered_optional_keys, scan_placeholders
from .template_keys import WorkflowCategory, display_name, optional_keys, required_keys

# Initialize MCP server
mcp = FastMCP(
    "comfyui-fieldmap",
    instructions="Map ComfyUI workflow inputs to template fields for import",
)


def _categories() -> dict:
    return {
        "categories": [
            {
                "category": category.value,
                "required": list(required_keys(category)),
                "optional": list(optional_keys(category)),
            }
            for category in WorkflowCategory
        ]
    }


# =============================================================================
# Analysis Tools (5)
# =============================================================================


@mcp.tool()
@mcp_tool_wrapper
def analyze_workflow(
    workflow_json: str,
    category: str = "",
    available_nodes: Optional[List[str]] = None,
) -> dict:
    """
    Analyze a workflow for import: parse, check nodes, build field mapping.

    category: TTI_CHECKPOINT|TTI_UNET|IIP_CHECKPOINT|IIP_UNET|TTV_UNET|ITV_UNET
    (auto-detected when empty). available_nodes: server node types; node
    check is skipped when omitted.
    """
    if category:
        try:
            WorkflowCategory.parse(category)
        except ValueError as e:
            return validation_error(str(e), "category")
    analysis = import_pipeline.analyze_workflow(workflow_json, category or None, available_nodes)
    return analysis.to_dict()


@mcp.tool()
@mcp_tool_wrapper
def detect_workflow_category(workflow_json: str) -> dict:
    """Detect the workflow category from its node types."""
    graph = parse_workflow(workflow_json)
    detected = detect_category(graph)
    if detected is None:
        raise CategoryDetectionError(class_types=graph.class_types())
    return {"category": detected.value, "class_types": graph.class_types()}


@mcp.tool()
@mcp_tool_wrapper
def scan_workflow_placeholders(workflow_json: str, category: str = "") -> dict:
    """List {{placeholder}} tokens and capability flags. Pass category to see offered optional fields."""
    graph = parse_workflow(workflow_json)
    names = scan_placeholders(graph)
    result = {
        "placeholders": sorted(names),
        "capabilities": WorkflowCapabilities.from_placeholders(names).to_dict(),
    }
    if category:
        try:
            parsed = WorkflowCategory.parse(category)
        except ValueError as e:
            return validation_error(str(e), "category")
        result["offered_optional_keys"] = list(offered_optional_keys(parsed, graph))
    return result


@mcp.tool()
@mcp_tool_wrapper
def validate_workflow_nodes(workflow_json: str, available_nodes: List[str]) -> dict:
    """Check workflow node types against the node types a server provides."""
    graph = parse_workflow(workflow_json)
    missing = validate_nodes(graph, available_class_types(available_nodes))
    return {"compatible": not missing, "missing_nodes": missing}


@mcp.tool()
@mcp_tool_wrapper
def classify_prompt_encoders(workflow_json: str) -> dict:
    """Trace which text encoders feed positive vs negative conditioning."""
    graph = parse_workflow(workflow_json)
    classifications = role_classifier.classify_encoders(graph)
    candidates = role_classifier.prompt_candidates(graph)
    return {
        "encoders": [c.to_dict() for c in classifications],
        "positive_text": [c.node_id for c in candidates["positive_text"]],
        "negative_text": [c.node_id for c in candidates["negative_text"]],
    }


# =============================================================================
# Mapping Tools (3)
# =============================================================================


@mcp.tool()
@mcp_tool_wrapper
def select_field_candidate(mapping: dict, key: str, index: int) -> dict:
    """Select candidate `index` for field `key` in a mapping from analyze_workflow. Returns the new mapping."""
    try:
        state = WorkflowMappingState.from_dict(mapping)
    except (KeyError, ValueError) as e:
        return validation_error(f"Invalid mapping: {e}", "mapping")

    if state.get(key) is None:
        return validation_error(f"Field '{key}' is not part of this mapping", "key")
    try:
        updated = state.select_candidate(key, index)
    except ValueError as e:
        return validation_error(str(e), "index")
    return updated.to_dict()


@mcp.tool()
@mcp_tool_wrapper
def finalize_field_mapping(mapping: dict) -> dict:
    """Flatten a confirmed mapping to {field: [node_id, input_key]}. Fails if a required field is unmapped."""
    try:
        state = WorkflowMappingState.from_dict(mapping)
    except (KeyError, ValueError) as e:
        return validation_error(f"Invalid mapping: {e}", "mapping")
    final = import_pipeline.finalize_mapping(state)
    return {"category": state.category.value, "field_mappings": {k: list(v) for k, v in final.items()}}


@mcp.tool()
@mcp_tool_wrapper
def prepare_workflow_for_library(
    workflow_json: str,
    field_mappings: dict,
    name: str,
    category: str,
    description: str = "",
    existing_names: Optional[List[str]] = None,
) -> dict:
    """
    Validate name/description and write mapped inputs back as placeholders.

    field_mappings: {field: [node_id, input_key]} from finalize_field_mapping.
    Returns the document to store plus its library filename.
    """
    try:
        parsed = WorkflowCategory.parse(category)
    except ValueError as e:
        return validation_error(str(e), "category")

    clean_name = workflow_library.validate_workflow_name(name)
    clean_description = workflow_library.validate_workflow_description(description)
    workflow_library.check_duplicate_name(clean_name, existing_names or [])

    mappings = {}
    for key, target in field_mappings.items():
        if not isinstance(target, (list, tuple)) or len(target) != 2:
            return validation_error(f"Mapping for '{display_name(key)}' must be [node_id, input_key]", "field_mappings")
        mappings[key] = (str(target[0]), str(target[1]))

    document = workflow_library.apply_field_mappings(workflow_json, mappings, clean_name, clean_description)
    return {
        "filename": workflow_library.generate_filename(parsed, clean_name),
        "category": parsed.value,
        "workflow": document,
    }


@mcp.tool()
def list_workflow_categories() -> dict:
    """List workflow categories with their required and optional fields."""
    return _categories()


# =============================================================================
# Resources
# =============================================================================


@mcp.resource(
    "fieldmap://categories",
    name="Workflow Categories",
    description="Workflow categories with required and optional field keys",
    mime_type="application/json",
)
def resource_categories() -> str:
    """Workflow categories and their field keys."""
    return json.dumps(_categories(), indent=2)


def main():
    """Entry point for the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
