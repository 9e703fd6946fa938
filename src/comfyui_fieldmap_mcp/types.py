"""
Type Definitions for ComfyUI Field Mapping MCP

TypedDicts for the serialized results handed to editors and MCP clients.

Usage:
    from comfyui_fieldmap_mcp.types import MappingStateDict

    def render(state: MappingStateDict) -> None:
        for field in state["field_mappings"]:
            ...
"""

from typing import (
    TypedDict,
    Literal,
    List,
    Dict,
    Any,
)


# =============================================================================
# Field Mapping Types
# =============================================================================


class CandidateDict(TypedDict):
    """One binding site for a field."""

    node_id: str
    node_name: str
    class_type: str
    input_key: str
    current_value: Any


class FieldMappingDict(TypedDict):
    """Mapping state of one field key."""

    key: str
    display_name: str
    description: str
    is_required: bool
    selected_candidate_index: int  # -1 when unmapped
    candidates: List[CandidateDict]


class MappingStateDict(TypedDict):
    """Mapping state of a whole workflow, as exchanged with an editor."""

    category: str
    is_complete: bool
    field_mappings: List[FieldMappingDict]


# =============================================================================
# Classification Types
# =============================================================================


class ClassificationDict(TypedDict):
    """Role decision for one prompt encoder."""

    node_id: str
    node_name: str
    class_type: str
    input_key: str
    role: Literal["positive", "negative", "unresolved"]
    source: Literal["direct_sink", "single_role_sink", "indirect", "title", "unresolved"]


# =============================================================================
# Analysis Types
# =============================================================================


class AnalysisDict(TypedDict):
    """Result of analyze_workflow."""

    category: str
    category_detected: bool
    name: str
    description: str
    node_count: int
    class_types: List[str]
    placeholders: List[str]
    capabilities: Dict[str, bool]
    mapping: MappingStateDict
    final_mappings: Dict[str, List[str]]
