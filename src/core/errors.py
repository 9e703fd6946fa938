"""
Core Error Handling System

Centralized error classes with actionable guidance for workflow import errors.

All errors follow MCP specification:
- Include "isError": true
- Include "code" for error categorization
- Include "suggestion" for actionable guidance
- Include "details" for additional context

Every error is also an Exception, so the import pipeline can raise it and
the MCP/CLI layers can turn it back into a dict with to_dict().
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field


@dataclass(eq=False)
class RichMCPError(Exception):
    """
    Rich MCP-compliant error response with actionable guidance.

    Per MCP spec, tool execution errors should include:
    - isError: true (required)
    - code: error category (required)
    - error: human-readable message (required)
    - suggestion: actionable guidance (recommended)
    - details: additional context (optional)
    """

    code: str = ""
    error: str = ""
    suggestion: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    troubleshooting: Optional[str | List[str]] = None

    def __str__(self) -> str:
        return self.error or self.code

    def to_dict(self) -> Dict[str, Any]:
        """Convert to MCP-compliant error dict."""
        result: Dict[str, Any] = {
            "isError": True,
            "code": self.code,
            "error": self.error,
            "suggestion": self.suggestion,
        }
        if self.details:
            result["details"] = self.details
        if self.troubleshooting:
            result["troubleshooting"] = self.troubleshooting
        return result


@dataclass(eq=False)
class WorkflowParseError(RichMCPError):
    """
    Workflow document is not valid JSON or not a node graph.

    Example:
        WorkflowParseError(reason="Expecting value: line 1 column 1 (char 0)").to_dict()
    """

    reason: str = ""

    def __post_init__(self):
        self.code = "PARSE_ERROR"
        self.error = f"Invalid workflow JSON: {self.reason}"
        self.suggestion = "Export the workflow from ComfyUI with 'Save (API Format)' and import that file."
        self.details = {"reason": self.reason}


@dataclass(eq=False)
class MissingNodesError(RichMCPError):
    """
    Workflow uses node types the target server does not provide.

    Example:
        MissingNodesError(missing_nodes=["WanVideoSampler"]).to_dict()
    """

    missing_nodes: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.code = "MISSING_NODES"
        self.error = f"Server is missing {len(self.missing_nodes)} node type(s): {', '.join(self.missing_nodes)}"
        self.suggestion = "Install the custom node packages that provide these nodes, or edit the workflow."
        self.details = {"missing_nodes": list(self.missing_nodes)}
        self.troubleshooting = (
            "1. Install the missing custom nodes (ComfyUI Manager)\n"
            "2. Restart ComfyUI so the nodes are loaded\n"
            "3. Re-import the workflow"
        )


@dataclass(eq=False)
class MissingFieldsError(RichMCPError):
    """
    One or more required fields have no candidate node in the workflow.

    Example:
        MissingFieldsError(
            field_keys=["positive_text"],
            display_names=["Positive Prompt"],
        ).to_dict()
    """

    field_keys: List[str] = field(default_factory=list)
    display_names: List[str] = field(default_factory=list)

    def __post_init__(self):
        names = self.display_names or self.field_keys
        self.code = "MISSING_FIELDS"
        self.error = f"Workflow has no node for required field(s): {', '.join(names)}"
        self.suggestion = (
            "Add the matching nodes or {{placeholder}} values to the workflow, "
            "or choose a different workflow category."
        )
        self.details = {
            "field_keys": list(self.field_keys),
            "display_names": list(names),
        }


@dataclass(eq=False)
class DuplicateNameError(RichMCPError):
    """
    A workflow with the same name already exists in the library.

    Example:
        DuplicateNameError(name="My Flux").to_dict()
    """

    name: str = ""

    def __post_init__(self):
        self.code = "DUPLICATE_NAME"
        self.error = f"A workflow named '{self.name}' already exists"
        self.suggestion = "Choose a different name for the imported workflow."
        self.details = {"name": self.name}


@dataclass(eq=False)
class WorkflowNameError(RichMCPError):
    """
    Workflow name or description fails format validation.

    Example:
        WorkflowNameError(value="", reason="Name is required").to_dict()
    """

    value: str = ""
    reason: str = ""

    def __post_init__(self):
        self.code = "INVALID_NAME"
        self.error = self.reason
        self.suggestion = "Use up to 40 letters, digits, spaces and _ - [ ] ( ) for names, 120 characters for descriptions."
        self.details = {"value": self.value}


@dataclass(eq=False)
class CategoryDetectionError(RichMCPError):
    """
    Workflow category was not given and could not be detected from its nodes.

    Example:
        CategoryDetectionError(class_types=["SaveImage"]).to_dict()
    """

    class_types: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.code = "UNKNOWN_CATEGORY"
        self.error = "Could not detect the workflow category from its nodes"
        self.suggestion = "Pass the category explicitly. Use list_workflow_categories() to see valid values."
        self.details = {"class_types": list(self.class_types)[:20]}


# =============================================================================
# Error Factory Functions
# =============================================================================


def format_parse_error(reason: str) -> Dict[str, Any]:
    """Format error for an unparseable workflow document."""
    return WorkflowParseError(reason=reason).to_dict()


def format_missing_nodes(missing_nodes: List[str]) -> Dict[str, Any]:
    """Format error for node types unknown to the server."""
    return MissingNodesError(missing_nodes=missing_nodes).to_dict()


def format_missing_fields(field_keys: List[str], display_names: Optional[List[str]] = None) -> Dict[str, Any]:
    """Format error for required fields without candidates."""
    return MissingFieldsError(field_keys=field_keys, display_names=display_names or []).to_dict()


def format_duplicate_name(name: str) -> Dict[str, Any]:
    """Format error for a workflow name collision."""
    return DuplicateNameError(name=name).to_dict()
