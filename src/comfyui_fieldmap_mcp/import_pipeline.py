"""
Workflow Import Pipeline

Runs the import checks in order and stops at the first failing stage:

    parse -> node compatibility -> field mapping

Each stage raises a RichMCPError subclass with the data a caller needs to
render an actionable message. The pipeline does no I/O and may be re-run on
a corrected document at any time.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Tuple, Union

from core.errors import CategoryDetectionError, MissingFieldsError, MissingNodesError

from .compatibility import validate_nodes
from .detection import detect_category
from .field_mapping import WorkflowMappingState, create_field_mapping_state
from .graph import WorkflowGraph, parse_workflow
from .mcp_utils import log_structured
from .placeholders import WorkflowCapabilities, scan_placeholders
from .template_keys import WorkflowCategory
from .types import AnalysisDict


@dataclass(frozen=True)
class WorkflowAnalysis:
    """Everything the editor needs to confirm a workflow import."""

    graph: WorkflowGraph
    category: WorkflowCategory
    mapping_state: WorkflowMappingState
    placeholders: FrozenSet[str]
    capabilities: WorkflowCapabilities
    category_detected: bool = False

    def to_dict(self) -> AnalysisDict:
        return {
            "category": self.category.value,
            "category_detected": self.category_detected,
            "name": self.graph.name,
            "description": self.graph.description,
            "node_count": len(self.graph),
            "class_types": self.graph.class_types(),
            "placeholders": sorted(self.placeholders),
            "capabilities": self.capabilities.to_dict(),
            "mapping": self.mapping_state.to_dict(),
            "final_mappings": {k: list(v) for k, v in self.mapping_state.final_mappings().items()},
        }


def resolve_category(graph: WorkflowGraph, category: Union[WorkflowCategory, str, None]) -> Tuple[WorkflowCategory, bool]:
    """
    Return (category, was_detected).

    Raises:
        ValueError: If `category` is a string naming no category.
        CategoryDetectionError: If no category was given and none is detected.
    """
    if isinstance(category, WorkflowCategory):
        return category, False
    if category:
        return WorkflowCategory.parse(category), False

    detected = detect_category(graph)
    if detected is None:
        raise CategoryDetectionError(class_types=graph.class_types())
    return detected, True


def analyze_workflow(
    document_text: str,
    category: Union[WorkflowCategory, str, None] = None,
    available_class_types: Optional[Iterable[str]] = None,
) -> WorkflowAnalysis:
    """
    Analyze a workflow document for import.

    Args:
        document_text: Workflow JSON (flat or "nodes"-wrapped API format).
        category: Target category. Detected from the nodes when omitted.
        available_class_types: Node types the server provides. Node
            validation is skipped when None.

    Returns:
        WorkflowAnalysis with the default field mapping.

    Raises:
        WorkflowParseError: Document is not a workflow.
        CategoryDetectionError: No category given and none detected.
        MissingNodesError: Graph uses node types the server lacks.
        MissingFieldsError: Required fields without any candidate (all of them).
    """
    graph = parse_workflow(document_text)
    log_structured("info", "workflow_parsed", node_count=len(graph), wrapped=graph.wrapped)

    resolved, detected = resolve_category(graph, category)
    log_structured("info", "workflow_category", category=resolved.value, detected=detected)

    if available_class_types is None:
        log_structured("warning", "node_validation_skipped", reason="no server node list")
    else:
        missing_nodes = validate_nodes(graph, available_class_types)
        if missing_nodes:
            log_structured("warning", "missing_nodes", missing=missing_nodes)
            raise MissingNodesError(missing_nodes=missing_nodes)

    state = create_field_mapping_state(graph, resolved)
    missing = state.missing_required_fields
    if missing:
        keys = [f.key for f in missing]
        log_structured("warning", "missing_required_fields", fields=keys)
        raise MissingFieldsError(field_keys=keys, display_names=[f.display_name for f in missing])

    placeholders = scan_placeholders(graph)
    log_structured(
        "info",
        "workflow_analyzed",
        category=resolved.value,
        mapped=sorted(state.final_mappings()),
        placeholders=len(placeholders),
    )

    return WorkflowAnalysis(
        graph=graph,
        category=resolved,
        mapping_state=state,
        placeholders=placeholders,
        capabilities=WorkflowCapabilities.from_placeholders(placeholders),
        category_detected=detected,
    )


def finalize_mapping(state: WorkflowMappingState) -> Dict[str, Tuple[str, str]]:
    """
    Flatten a confirmed mapping for persistence.

    Raises:
        MissingFieldsError: If the editor left a required field unmapped.
    """
    missing = state.missing_required_fields
    if missing:
        raise MissingFieldsError(
            field_keys=[f.key for f in missing],
            display_names=[f.display_name for f in missing],
        )
    mappings = state.final_mappings()
    log_structured("info", "mapping_finalized", category=state.category.value, fields=sorted(mappings))
    return mappings
